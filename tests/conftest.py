import os
import sys
from unittest.mock import AsyncMock

import pytest

# Add project root to path
sys.path.append(os.path.abspath(os.path.join(os.path.dirname(__file__), '..')))

from nft.host import NftHost

FLOW_ACCOUNT = "0x87fe4ebd0cddde06"


@pytest.fixture
def host():
    h = AsyncMock(spec=NftHost)
    h.is_testnet.return_value = True
    h.get_nodes_url.return_value = ["http://node-1", "http://node-2"]
    h.store_kms_transaction.return_value = "kms-1"
    h.broadcast.return_value = {"txId": "0xbroadcast"}
    h.deploy_flow_nft.return_value = {"txId": "flow-deploy"}
    return h


@pytest.fixture
def flow_mint_payload():
    return {
        "chain": "FLOW",
        "to": FLOW_ACCOUNT,
        "url": "ipfs://token/7",
        "contractAddress": "d8e2f2a6-e8a1-4c7d-9d0a-7c2f1b3b6a11",
        "account": FLOW_ACCOUNT,
        "privateKey": "4c" * 32,
    }

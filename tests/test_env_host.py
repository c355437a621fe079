import json
from unittest.mock import AsyncMock, patch

import pytest
from web3.exceptions import Web3RPCError

from app.core.settings import Settings
from errors import BROADCAST_FAILED, PREPARE_FAILED, DeploymentOrSigningFailed, UnsupportedChain
from nft.chains import Chain
from nft.env_host import EnvNftHost
from nft.models import parse_request
from nft.service import NftService
from nft.strategies import ChainStrategy
from signing.kms import InMemoryKmsStore

FLOW_ACCOUNT = "0x87fe4ebd0cddde06"
CONTRACT = "0x" + "22" * 20
KEY = "0x" + "4c" * 32


def _settings(**env):
    with patch.dict("os.environ", env, clear=True):
        return Settings()


@pytest.mark.asyncio
async def test_nodes_and_network_come_from_settings():
    s = _settings(NFT_TESTNET="0", BSC_NODE_URLS="https://bsc-1,https://bsc-2")
    host = EnvNftHost(InMemoryKmsStore(), settings=s)

    assert await host.is_testnet() is False
    assert await host.get_nodes_url(Chain.BSC, False) == ["https://bsc-1", "https://bsc-2"]
    with pytest.raises(ValueError):
        await host.get_nodes_url(Chain.CELO, False)


@pytest.mark.asyncio
async def test_kms_transactions_are_stored_by_chain_name():
    store = InMemoryKmsStore()
    host = EnvNftHost(store, settings=_settings())

    pid = await host.store_kms_transaction("tx", Chain.XDC, ["sig"], 4)

    stored = await store.get(pid)
    assert stored["chain"] == "XDC"
    assert stored["index"] == 4


@pytest.mark.asyncio
async def test_broadcast_sends_raw_transaction_to_first_node():
    host = EnvNftHost(InMemoryKmsStore(), settings=_settings(ETH_TESTNET_NODE_URLS="https://sepolia"))

    with patch("nft.env_host.send_raw_transaction", AsyncMock(return_value="0xhash")) as send:
        result = await host.broadcast(Chain.ETH, "0xf86b")

    assert result == {"txId": "0xhash"}
    send.assert_awaited_once_with("https://sepolia", "0xf86b")


@pytest.mark.asyncio
async def test_flow_payloads_are_not_broadcast():
    host = EnvNftHost(InMemoryKmsStore(), settings=_settings(FLOW_NODE_URLS="https://flow"))
    with pytest.raises(UnsupportedChain):
        await host.broadcast(Chain.FLOW, "{}")


@pytest.mark.asyncio
async def test_flow_deploy_uses_flow_node():
    host = EnvNftHost(InMemoryKmsStore(), settings=_settings(FLOW_TESTNET_NODE_URLS="https://rest-testnet.onflow.org"))
    body = object()

    with patch("nft.env_host.deploy_flow_nft_contract", AsyncMock(return_value={"txId": "d1"})) as deploy:
        result = await host.deploy_flow_nft(True, body)

    assert result == {"txId": "d1"}
    deploy.assert_awaited_once_with(True, body, "https://rest-testnet.onflow.org")


@pytest.mark.asyncio
async def test_flow_deploy_with_signature_id_is_parked_in_kms():
    store = InMemoryKmsStore()
    host = EnvNftHost(store, settings=_settings(FLOW_NODE_URLS="https://flow"))
    body = parse_request("deploy", {"chain": "FLOW", "account": FLOW_ACCOUNT, "signatureId": "sig-1", "index": 2})

    with patch("nft.env_host.deploy_flow_nft_contract", AsyncMock()) as deploy:
        result = await NftService(host).deploy_erc721(body)

    deploy.assert_not_awaited()
    (pending,) = await store.list_pending(Chain.FLOW)
    assert result == {"signatureId": pending["id"]}
    assert pending["signatureIds"] == ["sig-1"]
    assert pending["index"] == 2
    stored = json.loads(pending["serializedTransaction"])
    assert stored["type"] == "DEPLOY_NFT"
    assert stored["body"]["account"] == FLOW_ACCOUNT


@pytest.mark.asyncio
async def test_broadcast_rpc_failure_is_reported_as_broadcast_failure():
    host = EnvNftHost(InMemoryKmsStore(), settings=_settings(ETH_TESTNET_NODE_URLS="https://sepolia"))
    service = NftService(host, strategies={"burn": {Chain.ETH: ChainStrategy(prepare=AsyncMock(return_value="0xf86b"))}})
    body = parse_request("burn", {"chain": "ETH", "tokenId": "1", "contractAddress": CONTRACT, "fromPrivateKey": KEY})

    with patch("nft.env_host.send_raw_transaction", AsyncMock(side_effect=Web3RPCError("nonce too low"))):
        with pytest.raises(DeploymentOrSigningFailed) as exc:
            await service.burn_erc721(body)

    assert exc.value.code == BROADCAST_FAILED
    assert "nonce too low" in exc.value.message
    assert exc.value.data["cause"] == "rpc_error"


@pytest.mark.asyncio
async def test_missing_node_url_is_reported_as_prepare_failure():
    host = EnvNftHost(InMemoryKmsStore(), settings=_settings())
    body = parse_request("burn", {"chain": "BSC", "tokenId": "1", "contractAddress": CONTRACT, "fromPrivateKey": KEY})

    with pytest.raises(DeploymentOrSigningFailed) as exc:
        await NftService(host).burn_erc721(body)

    assert exc.value.code == PREPARE_FAILED
    assert "BSC_TESTNET_NODE_URLS" in exc.value.message

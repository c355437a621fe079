from __future__ import annotations

from typing import Any, List, Optional

from app.core.settings import Settings, settings as default_settings
from errors import UnsupportedChain
from execution.evm import send_raw_transaction
from flow.nft import FlowTxType, deploy_flow_nft_contract, prepare_flow_kms_payload
from signing.kms import KmsStore

from .chains import EVM_CHAINS, Chain
from .host import NftHost


class EnvNftHost(NftHost):
    """
    Host backed by environment settings: node urls and the testnet flag come
    from Settings, pending signatures go to the configured KMS store, and EVM
    payloads are broadcast with eth_sendRawTransaction on the first node url.
    A Flow deploy carrying a signatureId is parked in the KMS store as a
    DEPLOY_NFT payload instead of being signed here.
    """

    def __init__(self, kms_store: KmsStore, *, settings: Optional[Settings] = None) -> None:
        self._kms = kms_store
        self._settings = settings or default_settings

    async def store_kms_transaction(
        self,
        tx_data: str,
        chain: Chain,
        signature_ids: List[str],
        index: Optional[int] = None,
    ) -> str:
        return await self._kms.store(tx_data, chain.value, signature_ids, index)

    async def is_testnet(self) -> bool:
        return bool(self._settings.NFT_TESTNET)

    async def get_nodes_url(self, chain: Chain, testnet: bool) -> List[str]:
        urls = self._settings.node_urls(chain.value, testnet)
        if not urls:
            suffix = "_TESTNET" if testnet else ""
            raise ValueError(f"No node url configured for {chain.value} (set {chain.value}{suffix}_NODE_URLS)")
        return urls

    async def broadcast(self, chain: Chain, tx_data: str, signature_id: Optional[str] = None) -> Any:
        if chain not in EVM_CHAINS:
            raise UnsupportedChain(chain)
        provider = (await self.get_nodes_url(chain, await self.is_testnet()))[0]
        return {"txId": await send_raw_transaction(provider, tx_data)}

    async def deploy_flow_nft(self, testnet: bool, body: Any) -> Any:
        provider = (await self.get_nodes_url(Chain.FLOW, testnet))[0]
        if getattr(body, "signature_id", None) is not None:
            tx_data = await prepare_flow_kms_payload(FlowTxType.DEPLOY_NFT, Chain.FLOW, testnet, body, provider)
            signature_id = await self.store_kms_transaction(tx_data, Chain.FLOW, [body.signature_id], body.index)
            return {"signatureId": signature_id}
        return await deploy_flow_nft_contract(testnet, body, provider)

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any, List, Optional

from .chains import Chain


class NftHost(ABC):
    """
    Collaborators the NFT service needs from its environment: key storage,
    network selection, node resolution, broadcasting and Flow deployment.
    """

    @abstractmethod
    async def store_kms_transaction(
        self,
        tx_data: str,
        chain: Chain,
        signature_ids: List[str],
        index: Optional[int] = None,
    ) -> str:
        raise NotImplementedError

    @abstractmethod
    async def is_testnet(self) -> bool:
        raise NotImplementedError

    @abstractmethod
    async def get_nodes_url(self, chain: Chain, testnet: bool) -> List[str]:
        raise NotImplementedError

    @abstractmethod
    async def broadcast(self, chain: Chain, tx_data: str, signature_id: Optional[str] = None) -> Any:
        raise NotImplementedError

    @abstractmethod
    async def deploy_flow_nft(self, testnet: bool, body: Any) -> Any:
        raise NotImplementedError

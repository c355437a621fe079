"""
Per-operation routing tables: chain -> how to produce the transaction.
"""

from __future__ import annotations

from dataclasses import dataclass
from functools import partial
from typing import Any, Awaitable, Callable, Dict, Mapping, Optional

from execution import erc721
from flow import nft as flow_nft
from flow.nft import FlowTxType

from .chains import Chain

# (chain, testnet, body, provider) -> opaque payload
Preparer = Callable[[Chain, bool, Any, str], Awaitable[str]]
# (host, testnet, body, provider) -> result returned as-is
Direct = Callable[[Any, bool, Any, str], Awaitable[Any]]


@dataclass(frozen=True)
class ChainStrategy:
    prepare: Optional[Preparer] = None
    prepare_cashback: Optional[Preparer] = None
    direct: Optional[Direct] = None

    def preparer_for(self, body: Any) -> Preparer:
        if self.prepare_cashback is not None and getattr(body, "author_addresses", None) is not None:
            return self.prepare_cashback
        if self.prepare is None:
            raise ValueError("no preparer for this chain")
        return self.prepare


StrategyTable = Mapping[Chain, ChainStrategy]


async def _flow_send(send: Callable[..., Awaitable[Any]], host: Any, testnet: bool, body: Any, provider: str) -> Any:
    return await send(testnet, body, provider)


async def _host_flow_deploy(host: Any, testnet: bool, body: Any, provider: str) -> Any:
    return await host.deploy_flow_nft(testnet, body)


def _evm(prepare: Preparer, prepare_cashback: Optional[Preparer] = None) -> Dict[Chain, ChainStrategy]:
    table = {}
    for chain in (Chain.ETH, Chain.BSC, Chain.CELO, Chain.XDC):
        table[chain] = ChainStrategy(
            prepare=partial(prepare, chain),
            prepare_cashback=partial(prepare_cashback, chain) if prepare_cashback else None,
        )
    return table


def _flow(tx_type: FlowTxType, send: Callable[..., Awaitable[Any]]) -> ChainStrategy:
    return ChainStrategy(
        prepare=partial(flow_nft.prepare_flow_kms_payload, tx_type, Chain.FLOW),
        direct=partial(_flow_send, send),
    )


TRANSFER: Dict[Chain, ChainStrategy] = {
    **_evm(erc721.prepare_transfer),
    Chain.FLOW: _flow(FlowTxType.TRANSFER_NFT, flow_nft.send_flow_nft_transfer_token),
}

MINT: Dict[Chain, ChainStrategy] = {
    **_evm(erc721.prepare_mint, erc721.prepare_mint_cashback),
    Chain.FLOW: _flow(FlowTxType.MINT_NFT, flow_nft.send_flow_nft_mint_token),
}

MINT_MULTIPLE: Dict[Chain, ChainStrategy] = {
    **_evm(erc721.prepare_mint_multiple, erc721.prepare_mint_multiple_cashback),
    Chain.FLOW: _flow(FlowTxType.MINT_MULTIPLE_NFT, flow_nft.send_flow_nft_mint_multiple_token),
}

BURN: Dict[Chain, ChainStrategy] = {
    **_evm(erc721.prepare_burn),
    Chain.FLOW: _flow(FlowTxType.BURN_NFT, flow_nft.send_flow_nft_burn_token),
}

DEPLOY: Dict[Chain, ChainStrategy] = {
    **_evm(erc721.prepare_deploy),
    Chain.FLOW: ChainStrategy(direct=_host_flow_deploy),
}

UPDATE_CASHBACK: Dict[Chain, ChainStrategy] = _evm(erc721.prepare_update_cashback)

DEFAULT_STRATEGIES: Dict[str, StrategyTable] = {
    "transfer": TRANSFER,
    "mint": MINT,
    "mint_multiple": MINT_MULTIPLE,
    "burn": BURN,
    "deploy": DEPLOY,
    "update_cashback": UPDATE_CASHBACK,
}

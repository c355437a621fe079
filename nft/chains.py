from __future__ import annotations

from enum import Enum
from typing import FrozenSet


class Chain(str, Enum):
    """
    Chain identifiers accepted on the wire.

    Only EVM_CHAINS and FLOW are routed by the NFT service; the rest are
    representable so that a request for them fails as unsupported rather than
    as malformed.
    """

    ETH = "ETH"
    BSC = "BSC"
    CELO = "CELO"
    XDC = "XDC"
    FLOW = "FLOW"
    BTC = "BTC"
    LTC = "LTC"
    DOGE = "DOGE"
    MATIC = "MATIC"
    TRON = "TRON"
    ONE = "ONE"
    KLAY = "KLAY"
    ALGO = "ALGO"


EVM_CHAINS: FrozenSet[Chain] = frozenset({Chain.ETH, Chain.BSC, Chain.CELO, Chain.XDC})
NFT_CHAINS: FrozenSet[Chain] = EVM_CHAINS | {Chain.FLOW}


def parse_chain(value: str | Chain) -> Chain:
    if isinstance(value, Chain):
        return value
    c = (value or "").strip().upper()
    try:
        return Chain(c)
    except ValueError as e:
        raise ValueError(f"Unknown chain: {value}") from e

from .chains import EVM_CHAINS, NFT_CHAINS, Chain, parse_chain
from .models import REQUEST_VARIANTS, FeeCurrency, parse_request

__all__ = [
    "Chain",
    "EVM_CHAINS",
    "NFT_CHAINS",
    "parse_chain",
    "FeeCurrency",
    "REQUEST_VARIANTS",
    "parse_request",
]

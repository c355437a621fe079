from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict

import requests
from web3.exceptions import ContractLogicError, TransactionNotFound, Web3Exception


@dataclass
class AppError(Exception):
    code: str
    message: str
    data: Dict[str, Any] = field(default_factory=dict)

    def __str__(self) -> str:
        return self.message


class NftError(AppError):
    """
    Base class for every error surfaced by the NFT facade.
    """


class UnsupportedChain(NftError):
    def __init__(self, chain: Any, data: Dict[str, Any] | None = None) -> None:
        name = getattr(chain, "value", chain)
        super().__init__("unsupported.chain", f"Unsupported chain {name}.", data or {"chain": str(name)})


class LookupFailed(NftError):
    pass


class DeploymentOrSigningFailed(NftError):
    pass


TOKEN_LOOKUP_FAILED = "nft.erc721.failed"
TX_NOT_FOUND = "tx.not.found"
PREPARE_FAILED = "nft.erc721.prepare.failed"
BROADCAST_FAILED = "nft.erc721.broadcast.failed"
KMS_NOT_FOUND = "kms.not.found"
KMS_INVALID_STATE = "kms.invalid.state"


def classify_exception(e: Exception) -> AppError:
    """
    Map common web3 / HTTP / validation issues into stable error codes.
    """
    if isinstance(e, AppError):
        return e
    if isinstance(e, TransactionNotFound):
        return AppError("rpc_tx_not_found", str(e), {})
    if isinstance(e, ContractLogicError):
        return AppError("rpc_contract_reverted", str(e), {})
    if isinstance(e, Web3Exception):
        return AppError("rpc_error", str(e), {})
    if isinstance(e, requests.Timeout):
        return AppError("http_timeout", str(e), {})
    if isinstance(e, requests.HTTPError):
        status = getattr(e.response, "status_code", None)
        return AppError("http_error", str(e), {"status": status})
    if isinstance(e, requests.RequestException):
        return AppError("http_network_error", str(e), {})
    if isinstance(e, ValueError):
        return AppError("invalid_value", str(e), {})

    return AppError("unknown_error", str(e), {})

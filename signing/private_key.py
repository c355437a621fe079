from __future__ import annotations

from typing import Any, Dict

from eth_account import Account
from eth_account.datastructures import SignedTransaction


class PrivateKeySigner:
    """
    Signs with the raw hex private key carried by a request (fromPrivateKey).
    The key lives only as long as the request that brought it.
    """

    def __init__(self, private_key: str) -> None:
        pk = (private_key or "").strip()
        if not pk:
            raise ValueError("private key is empty")
        if not pk.startswith("0x"):
            pk = "0x" + pk
        self._account = Account.from_key(pk)

    def get_address(self) -> str:
        return self._account.address

    def sign_transaction(self, tx: Dict[str, Any]) -> SignedTransaction:
        return self._account.sign_transaction(tx)

from __future__ import annotations

import json
from dataclasses import dataclass
from typing import Any, Dict, Optional


@dataclass(frozen=True)
class EvmTxIntent:
    """
    Unsigned EVM transaction handed to the key-management store.

    The KMS co-signer fills whatever is left empty here (nonce, gas) from its
    own view of the chain before signing and broadcasting.
    """

    chain_id: Optional[int]
    to: Optional[str]
    value_wei: Optional[int]
    data_hex: Optional[str]
    gas: Optional[int]
    gas_price_wei: Optional[int]
    nonce: Optional[int]
    fee_currency: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        out: Dict[str, Any] = {
            "chainId": self.chain_id,
            "to": self.to,
            "value": hex(self.value_wei) if self.value_wei is not None else None,
            "data": self.data_hex,
            "gas": hex(self.gas) if self.gas is not None else None,
            "gasPrice": hex(self.gas_price_wei) if self.gas_price_wei is not None else None,
            "nonce": self.nonce,
        }
        if self.fee_currency is not None:
            out["feeCurrency"] = self.fee_currency
        return out

    def to_json(self) -> str:
        return json.dumps(self.to_dict(), sort_keys=True)


def _to_int(x: Any) -> Optional[int]:
    try:
        if x is None:
            return None
        if isinstance(x, bool):
            return None
        if isinstance(x, int):
            return int(x)
        if isinstance(x, str):
            s = x.strip()
            if s.startswith("0x"):
                return int(s, 16)
            return int(s)
        return int(x)
    except (TypeError, ValueError):
        return None


def build_evm_tx_intent(tx: Dict[str, Any], *, fee_currency: str | None = None) -> EvmTxIntent:
    """
    Extract the unsigned-transaction description from a web3-style tx dict.
    """
    to = tx.get("to")
    if to is not None:
        to = str(to)

    data_hex = tx.get("data")
    if data_hex is not None:
        data_hex = data_hex if isinstance(data_hex, str) else "0x" + bytes(data_hex).hex()

    return EvmTxIntent(
        chain_id=_to_int(tx.get("chainId")),
        to=to,
        value_wei=_to_int(tx.get("value")),
        data_hex=data_hex,
        gas=_to_int(tx.get("gas")),
        gas_price_wei=_to_int(tx.get("gasPrice")),
        nonce=_to_int(tx.get("nonce")),
        fee_currency=fee_currency,
    )

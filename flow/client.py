from __future__ import annotations

import asyncio
import base64
import json
import time
from typing import Any, Dict, List, Optional

import requests

from .cadence import decode_b64, decode_value, encode_argument, normalize_flow_address
from .transactions import FlowTransaction

SEALED = "Sealed"


class FlowTransactionFailed(RuntimeError):
    def __init__(self, tx_id: str, message: str) -> None:
        super().__init__(f"Flow transaction {tx_id} failed: {message}")
        self.tx_id = tx_id


class FlowAccessClient:
    """
    Minimal client for the Flow Access REST API (/v1).

    HTTP calls are blocking (requests) and run in a worker thread so the event
    loop stays free.
    """

    def __init__(self, base_url: str, *, timeout: float = 10.0) -> None:
        if not base_url:
            raise ValueError("Missing Flow access node url")
        self._base_url = base_url.rstrip("/")
        self._timeout = float(timeout)

    def _get(self, path: str, params: Optional[Dict[str, Any]] = None) -> Any:
        r = requests.get(f"{self._base_url}{path}", params=params, timeout=self._timeout)
        r.raise_for_status()
        return r.json()

    def _post(self, path: str, payload: Dict[str, Any], params: Optional[Dict[str, Any]] = None) -> Any:
        r = requests.post(f"{self._base_url}{path}", json=payload, params=params, timeout=self._timeout)
        r.raise_for_status()
        return r.json()

    async def latest_sealed_block_id(self) -> str:
        data = await asyncio.to_thread(self._get, "/v1/blocks", {"height": "sealed"})
        if not isinstance(data, list) or not data:
            raise ValueError("Flow access node returned no sealed block")
        return str(data[0]["header"]["id"])

    async def account_key_sequence(self, address: str, key_index: int) -> int:
        addr = normalize_flow_address(address)[2:]
        data = await asyncio.to_thread(self._get, f"/v1/accounts/{addr}", {"expand": "keys"})
        for key in data.get("keys") or []:
            if int(key.get("index", -1)) == int(key_index):
                if key.get("revoked"):
                    raise ValueError(f"Flow key {key_index} of {address} is revoked")
                return int(key["sequence_number"])
        raise ValueError(f"Flow key {key_index} not found on account {address}")

    async def send_transaction(self, tx: FlowTransaction) -> str:
        data = await asyncio.to_thread(self._post, "/v1/transactions", tx.to_rest())
        return str(data["id"])

    async def transaction(self, tx_id: str) -> Dict[str, Any]:
        return await asyncio.to_thread(self._get, f"/v1/transactions/{tx_id}", {"expand": "result"})

    async def transaction_result(self, tx_id: str) -> Dict[str, Any]:
        return await asyncio.to_thread(self._get, f"/v1/transaction_results/{tx_id}")

    async def wait_for_seal(self, tx_id: str, *, timeout_sec: float, poll_sec: float) -> Dict[str, Any]:
        """
        Poll the result until sealed. Raises FlowTransactionFailed when the
        execution reported an error and TimeoutError when not sealed in time.
        """
        deadline = time.monotonic() + float(timeout_sec)
        while True:
            result = await self.transaction_result(tx_id)
            if result.get("status") == SEALED:
                if result.get("error_message"):
                    raise FlowTransactionFailed(tx_id, str(result["error_message"]))
                return result
            if time.monotonic() >= deadline:
                raise TimeoutError(f"Flow transaction {tx_id} not sealed after {timeout_sec}s")
            await asyncio.sleep(float(poll_sec))

    async def execute_script(self, script: str, arguments: List[Dict[str, Any]]) -> Any:
        payload = {
            "script": base64.b64encode(script.encode("utf-8")).decode("ascii"),
            "arguments": [base64.b64encode(encode_argument(a)).decode("ascii") for a in arguments],
        }
        raw = await asyncio.to_thread(self._post, "/v1/scripts", payload, {"block_height": "sealed"})
        # the response body is a JSON string holding base64 JSON-Cadence
        if isinstance(raw, dict):
            raw = raw.get("value", "")
        return decode_b64(str(raw))


def decode_event_payload(event: Dict[str, Any]) -> Dict[str, Any]:
    """Fields of a transaction result event as a plain dict."""
    raw = event.get("payload") or ""
    decoded = decode_value(json.loads(base64.b64decode(raw)))
    return decoded if isinstance(decoded, dict) else {}

from __future__ import annotations

import asyncio
import os
import secrets
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

import requests

from errors import KMS_INVALID_STATE, KMS_NOT_FOUND, LookupFailed, NftError


def _chain_name(chain: Any) -> str:
    return str(getattr(chain, "value", chain)).upper()


def _not_found(id: str) -> LookupFailed:
    return LookupFailed(KMS_NOT_FOUND, f"Pending transaction {id} not found.", {"id": id})


@dataclass
class PendingTransaction:
    id: str
    chain: str
    serialized_transaction: str
    signature_ids: List[str]
    index: Optional[int]
    created_at: float
    expires_at: float
    tx_id: Optional[str] = None
    completed_at: Optional[float] = None
    cancelled_at: Optional[float] = None

    def settled(self) -> bool:
        return self.completed_at is not None or self.cancelled_at is not None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "chain": self.chain,
            "serializedTransaction": self.serialized_transaction,
            "signatureIds": list(self.signature_ids),
            "index": self.index,
            "txId": self.tx_id,
        }


class KmsStore(ABC):
    """
    Parks payloads that a key-management co-signer picks up, signs and
    broadcasts later, then reports back with complete() or cancel().
    """

    @abstractmethod
    async def store(
        self,
        tx_data: str,
        chain: str,
        signature_ids: List[str],
        index: Optional[int] = None,
    ) -> str:
        raise NotImplementedError

    @abstractmethod
    async def get(self, id: str) -> Dict[str, Any]:
        raise NotImplementedError

    @abstractmethod
    async def list_pending(self, chain: str) -> List[Dict[str, Any]]:
        raise NotImplementedError

    @abstractmethod
    async def complete(self, id: str, tx_id: str) -> None:
        raise NotImplementedError

    @abstractmethod
    async def cancel(self, id: str) -> None:
        raise NotImplementedError


class InMemoryKmsStore(KmsStore):
    """
    Process-local store of pending transactions.
    A pending transaction settles (completed or cancelled) at most once;
    expired and settled records are dropped on the next store().
    """

    def __init__(self, *, ttl_seconds: int = 86400) -> None:
        self._ttl = ttl_seconds
        self._items: Dict[str, PendingTransaction] = {}

    def _prune(self, now: float) -> None:
        stale = [k for k, p in self._items.items() if p.settled() or p.expires_at <= now]
        for k in stale:
            del self._items[k]

    async def store(
        self,
        tx_data: str,
        chain: str,
        signature_ids: List[str],
        index: Optional[int] = None,
    ) -> str:
        if not signature_ids:
            raise ValueError("at least one signatureId is required")
        now = time.time()
        self._prune(now)
        pending = PendingTransaction(
            id=secrets.token_hex(16),
            chain=_chain_name(chain),
            serialized_transaction=tx_data,
            signature_ids=list(signature_ids),
            index=index,
            created_at=now,
            expires_at=now + self._ttl,
        )
        self._items[pending.id] = pending
        return pending.id

    def _live(self, id: str) -> PendingTransaction:
        p = self._items.get(id)
        if p is None:
            raise _not_found(id)
        if p.completed_at is not None:
            raise NftError(KMS_INVALID_STATE, f"Pending transaction {id} already completed.", {"id": id})
        if p.cancelled_at is not None:
            raise NftError(KMS_INVALID_STATE, f"Pending transaction {id} cancelled.", {"id": id})
        if p.expires_at <= time.time():
            raise NftError(KMS_INVALID_STATE, f"Pending transaction {id} expired.", {"id": id})
        return p

    async def get(self, id: str) -> Dict[str, Any]:
        p = self._items.get(id)
        if p is None:
            raise _not_found(id)
        return p.to_dict()

    async def list_pending(self, chain: str) -> List[Dict[str, Any]]:
        now = time.time()
        name = _chain_name(chain)
        return [
            p.to_dict()
            for p in self._items.values()
            if not p.settled() and p.expires_at > now and p.chain == name
        ]

    async def complete(self, id: str, tx_id: str) -> None:
        p = self._live(id)
        p.tx_id = tx_id
        p.completed_at = time.time()

    async def cancel(self, id: str) -> None:
        self._live(id).cancelled_at = time.time()


@dataclass
class RemoteKmsStore(KmsStore):
    """
    Remote key-management service.

    Protocol (HTTP JSON, x-api-key header when configured):
    POST   {KMS_REMOTE_URL}/kms                 {"serializedTransaction", "chain", "signatureIds", "index"} -> {"signatureId"}
    GET    {KMS_REMOTE_URL}/kms/{id}            -> pending transaction
    GET    {KMS_REMOTE_URL}/kms/pending/{chain} -> [pending transaction, ...]
    PUT    {KMS_REMOTE_URL}/kms/{id}/{txId}
    DELETE {KMS_REMOTE_URL}/kms/{id}
    """

    base_url: str
    api_key: Optional[str] = None
    timeout: float = field(default_factory=lambda: float(os.getenv("HTTP_TIMEOUT_SEC", "10")))

    def __post_init__(self) -> None:
        url = (self.base_url or "").strip()
        if not url:
            raise ValueError("KMS_REMOTE_URL is not set")
        self.base_url = url.rstrip("/")

    def _headers(self) -> Dict[str, str]:
        return {"x-api-key": self.api_key} if self.api_key else {}

    async def store(
        self,
        tx_data: str,
        chain: str,
        signature_ids: List[str],
        index: Optional[int] = None,
    ) -> str:
        payload: Dict[str, Any] = {
            "serializedTransaction": tx_data,
            "chain": _chain_name(chain),
            "signatureIds": list(signature_ids),
        }
        if index is not None:
            payload["index"] = index
        return await asyncio.to_thread(self._post, payload)

    def _post(self, payload: Dict[str, Any]) -> str:
        r = requests.post(f"{self.base_url}/kms", json=payload, headers=self._headers(), timeout=self.timeout)
        r.raise_for_status()
        data = r.json()
        sig = str(data.get("signatureId") or "").strip()
        if not sig:
            raise ValueError("KMS did not return signatureId")
        return sig

    def _call(self, method: str, path: str, id: str | None = None) -> requests.Response:
        r = requests.request(method, f"{self.base_url}{path}", headers=self._headers(), timeout=self.timeout)
        if id is not None and r.status_code == 404:
            raise _not_found(id)
        r.raise_for_status()
        return r

    async def get(self, id: str) -> Dict[str, Any]:
        r = await asyncio.to_thread(self._call, "GET", f"/kms/{id}", id)
        return r.json()

    async def list_pending(self, chain: str) -> List[Dict[str, Any]]:
        r = await asyncio.to_thread(self._call, "GET", f"/kms/pending/{_chain_name(chain)}")
        return list(r.json() or [])

    async def complete(self, id: str, tx_id: str) -> None:
        await asyncio.to_thread(self._call, "PUT", f"/kms/{id}/{tx_id}", id)

    async def cancel(self, id: str) -> None:
        await asyncio.to_thread(self._call, "DELETE", f"/kms/{id}", id)

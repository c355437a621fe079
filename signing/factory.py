from __future__ import annotations

from functools import lru_cache

from app.core.settings import KmsStoreType, settings

from .kms import InMemoryKmsStore, KmsStore, RemoteKmsStore


@lru_cache(maxsize=1)
def get_kms_store() -> KmsStore:
    """
    Select the pending-signature store based on KMS_STORE_TYPE.

    Supported:
    - memory (default): process-local store, lost on restart
    - remote: KMS_REMOTE_URL (+ optional KMS_API_KEY)
    """
    if settings.KMS_STORE_TYPE == KmsStoreType.MEMORY:
        return InMemoryKmsStore(ttl_seconds=settings.KMS_PENDING_TTL_SEC)
    if settings.KMS_STORE_TYPE == KmsStoreType.REMOTE:
        return RemoteKmsStore(
            base_url=settings.KMS_REMOTE_URL or "",
            api_key=settings.KMS_API_KEY,
            timeout=float(settings.HTTP_TIMEOUT_SEC),
        )
    raise ValueError(f"Unsupported KMS_STORE_TYPE: {settings.KMS_STORE_TYPE}")

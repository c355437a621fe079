from .factory import get_kms_store
from .intents import EvmTxIntent, build_evm_tx_intent
from .kms import InMemoryKmsStore, KmsStore, PendingTransaction, RemoteKmsStore
from .private_key import PrivateKeySigner

__all__ = [
    "PrivateKeySigner",
    "KmsStore",
    "InMemoryKmsStore",
    "RemoteKmsStore",
    "PendingTransaction",
    "get_kms_store",
    "EvmTxIntent",
    "build_evm_tx_intent",
]

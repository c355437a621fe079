from app.core.settings import settings
from nft.env_host import EnvNftHost
from nft.service import NftService
from observability import AuditLog
from signing import get_kms_store


class Container:
    def __init__(self):
        # Observability
        self.audit_log = AuditLog(db_path=settings.AUDIT_DB_PATH)

        # Key management
        self.kms_store = get_kms_store()

        # NFT dispatch
        self.nft_host = EnvNftHost(self.kms_store, settings=settings)
        self.nft_service = NftService(self.nft_host, audit_log=self.audit_log)

global_container = Container()

"""
NFT Connector Unified Settings System

This module provides a validated, typed settings layer that serves as the single
source of truth for all configuration. All environment variables are validated
at startup to catch misconfigurations early.

Usage:
    from app.core.settings import settings

    if settings.NFT_TESTNET:
        # testnet node urls / chain ids
"""

from __future__ import annotations

import os
import tomllib
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any, Dict, Tuple

from dotenv import load_dotenv

# Load environment variables from .env file
load_dotenv()


class KmsStoreType(Enum):
    """Pending-signature store backends."""

    MEMORY = "memory"
    REMOTE = "remote"


class FlowKeyCurve(Enum):
    """Signature curves accepted by Flow account keys."""

    SECP256K1 = "secp256k1"
    P256 = "p256"


NODE_URL_CHAINS: Tuple[str, ...] = ("ETH", "BSC", "CELO", "XDC", "FLOW")


class SettingsValidationError(Exception):
    """Raised when settings validation fails."""

    def __init__(self, field: str, value: Any, message: str):
        self.field = field
        self.value = value
        super().__init__(f"Invalid configuration for {field}={value!r}: {message}")


def _parse_bool(value: str | None, default: bool = False) -> bool:
    """Parse a boolean from environment variable."""
    if value is None or value.strip() == "":
        return default
    return value.strip().lower() in ("true", "1", "yes", "on")


def _parse_int(value: str | None, default: int | None = None) -> int | None:
    """Parse an integer from environment variable."""
    if value is None or value.strip() == "":
        return default
    try:
        return int(value.strip(), 0)  # Support hex with 0x prefix
    except ValueError:
        return default


def _parse_float(value: str | None, default: float | None = None) -> float | None:
    """Parse a float from environment variable."""
    if value is None or value.strip() == "":
        return default
    try:
        return float(value.strip())
    except ValueError:
        return default


def _parse_url_list(value: str | None) -> Tuple[str, ...]:
    """Parse a comma-separated list of urls, keeping order (first entry wins)."""
    if not value:
        return ()
    return tuple(v.strip() for v in value.split(",") if v.strip())


def _parse_enum(enum_cls: type[Enum], raw: str | None, default: Enum) -> Any:
    v = (raw or default.value).strip().lower()
    if v in [e.value for e in enum_cls]:
        return enum_cls(v)
    return default


def _node_urls_from_env() -> Dict[str, Tuple[str, ...]]:
    """
    Node urls per chain.

    Env precedence (chain=ETH, testnet):
    - ETH_TESTNET_NODE_URLS
    - ETH_NODE_URLS
    """
    out: Dict[str, Tuple[str, ...]] = {}
    for chain in NODE_URL_CHAINS:
        for suffix, key in (("", f"{chain}_NODE_URLS"), ("_TESTNET", f"{chain}_TESTNET_NODE_URLS")):
            urls = _parse_url_list(os.getenv(key))
            if urls:
                out[chain + suffix] = urls
    return out


def _get_version_from_pyproject() -> str:
    """Extract version from pyproject.toml."""
    try:
        pyproject_path = Path(__file__).parent.parent.parent / "pyproject.toml"
        with open(pyproject_path, "rb") as f:
            data = tomllib.load(f)
        version: str = str(data.get("project", {}).get("version", "0.0.0"))
        return version
    except Exception:
        return "0.0.0"


@dataclass
class Settings:
    """
    Unified settings class with validation.

    All configuration is loaded and validated at instantiation time.
    This ensures misconfigurations are caught at startup, not runtime.
    """

    # Project metadata (read from pyproject.toml)
    PROJECT_NAME: str = "nft-connector"
    VERSION: str = field(default_factory=_get_version_from_pyproject)

    # Network
    NFT_TESTNET: bool = field(default_factory=lambda: _parse_bool(os.getenv("NFT_TESTNET"), True))
    NODE_URLS: Dict[str, Tuple[str, ...]] = field(default_factory=_node_urls_from_env)
    HTTP_TIMEOUT_SEC: int = field(default_factory=lambda: _parse_int(os.getenv("HTTP_TIMEOUT_SEC"), 10) or 10)

    # API server settings
    API_PORT: int = field(default_factory=lambda: _parse_int(os.getenv("API_PORT"), 8000) or 8000)
    API_HOST: str = field(default_factory=lambda: os.getenv("API_HOST", "127.0.0.1").strip())

    # Key management
    KMS_STORE_TYPE: KmsStoreType = field(
        default_factory=lambda: _parse_enum(KmsStoreType, os.getenv("KMS_STORE_TYPE"), KmsStoreType.MEMORY)
    )
    KMS_REMOTE_URL: str | None = field(default_factory=lambda: os.getenv("KMS_REMOTE_URL"))
    KMS_API_KEY: str | None = field(default_factory=lambda: os.getenv("KMS_API_KEY"))
    KMS_PENDING_TTL_SEC: int = field(default_factory=lambda: _parse_int(os.getenv("KMS_PENDING_TTL_SEC"), 86400) or 86400)

    # Contract artifacts
    ERC721_ARTIFACT_PATH: str | None = field(default_factory=lambda: os.getenv("ERC721_ARTIFACT_PATH"))

    # Flow
    FLOW_NFT_CONTRACT_ADDRESS: str | None = field(default_factory=lambda: os.getenv("FLOW_NFT_CONTRACT_ADDRESS"))
    FLOW_NFT_CONTRACT_NAME: str = field(default_factory=lambda: os.getenv("FLOW_NFT_CONTRACT_NAME", "TatumMultiNFT").strip())
    FLOW_NFT_CONTRACT_PATH: str | None = field(default_factory=lambda: os.getenv("FLOW_NFT_CONTRACT_PATH"))
    FLOW_KEY_CURVE: FlowKeyCurve = field(
        default_factory=lambda: _parse_enum(FlowKeyCurve, os.getenv("FLOW_KEY_CURVE"), FlowKeyCurve.SECP256K1)
    )
    FLOW_KEY_INDEX: int = field(default_factory=lambda: _parse_int(os.getenv("FLOW_KEY_INDEX"), 0) or 0)
    FLOW_GAS_LIMIT: int = field(default_factory=lambda: _parse_int(os.getenv("FLOW_GAS_LIMIT"), 9999) or 9999)
    FLOW_SEAL_TIMEOUT_SEC: float = field(default_factory=lambda: _parse_float(os.getenv("FLOW_SEAL_TIMEOUT_SEC"), 60.0) or 60.0)
    FLOW_SEAL_POLL_SEC: float = field(default_factory=lambda: _parse_float(os.getenv("FLOW_SEAL_POLL_SEC"), 1.0) or 1.0)

    # Persistence paths
    AUDIT_DB_PATH: str | None = field(default_factory=lambda: os.getenv("AUDIT_DB_PATH"))

    # Observability
    NFT_LOG_LEVEL: str = field(default_factory=lambda: os.getenv("NFT_LOG_LEVEL", "info").strip().lower())
    NFT_SERVICE_NAME: str = field(default_factory=lambda: os.getenv("NFT_SERVICE_NAME", "nft-connector").strip())

    def __post_init__(self) -> None:
        """Validate settings after initialization."""
        self._validate()

    def _validate(self) -> None:
        """Validate all settings and emit configuration warnings."""
        import warnings

        errors: list[str] = []

        if self.KMS_STORE_TYPE == KmsStoreType.REMOTE and not self.KMS_REMOTE_URL:
            errors.append("KMS_REMOTE_URL required when KMS_STORE_TYPE=remote")

        if self.NFT_LOG_LEVEL not in ("debug", "info", "warning", "error"):
            errors.append(f"NFT_LOG_LEVEL must be one of debug/info/warning/error, got {self.NFT_LOG_LEVEL}")

        if self.FLOW_SEAL_POLL_SEC <= 0 or self.FLOW_SEAL_TIMEOUT_SEC <= 0:
            errors.append("FLOW_SEAL_POLL_SEC and FLOW_SEAL_TIMEOUT_SEC must be > 0")

        if self.ERC721_ARTIFACT_PATH and not Path(self.ERC721_ARTIFACT_PATH).expanduser().exists():
            warnings.warn(
                f"ERC721_ARTIFACT_PATH={self.ERC721_ARTIFACT_PATH} does not exist: EVM deploys will fail.",
                UserWarning,
                stacklevel=3,
            )

        # Port validation
        if not (1 <= self.API_PORT <= 65535):
            errors.append(f"API_PORT must be between 1 and 65535, got {self.API_PORT}")

        if errors:
            raise SettingsValidationError("MULTIPLE", None, "; ".join(errors))

    def node_urls(self, chain: str, testnet: bool) -> list[str]:
        """Ordered node urls for a chain; testnet-specific urls win when present."""
        key = chain.upper()
        if testnet and self.NODE_URLS.get(key + "_TESTNET"):
            return list(self.NODE_URLS[key + "_TESTNET"])
        return list(self.NODE_URLS.get(key, ()))

    def to_dict(self) -> dict[str, Any]:
        """Convert settings to dictionary (redacting secrets)."""
        result: dict[str, Any] = {}
        for key in dir(self):
            if key.startswith("_") or key.isupper() is False:
                continue
            value = getattr(self, key)
            # Redact sensitive values
            if any(s in key.upper() for s in ["SECRET", "PASSWORD", "API_KEY", "TOKEN", "PRIVATE"]):
                result[key] = "***REDACTED***" if value else None
            elif isinstance(value, (frozenset, tuple)):
                result[key] = list(value)
            elif isinstance(value, dict):
                result[key] = {k: list(v) for k, v in value.items()}
            elif isinstance(value, Enum):
                result[key] = value.value
            else:
                result[key] = value
        return result


# Global settings instance
settings = Settings()

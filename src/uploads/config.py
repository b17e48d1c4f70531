"""
Upload Storage Configuration

All configuration loaded from environment/config files.
Zero hardcoding principle applied.
"""

import os
from dataclasses import dataclass, fields
from typing import Any, Dict, Optional

import yaml
from dotenv import load_dotenv


@dataclass(frozen=True)
class StorageConfig:
    """Provider credentials and fallback-chain configuration."""

    # Primary provider (Storacha). The space DID doubles as the credential;
    # the endpoint is the w3up HTTP bridge, there is no public default.
    storacha_space_did: Optional[str] = None
    storacha_endpoint: Optional[str] = None
    storacha_delegation_proof: Optional[str] = None

    # Secondary provider (web3.storage)
    web3storage_token: Optional[str] = None
    web3storage_endpoint: str = "https://api.web3.storage"

    # Runtime mode: local fallback only outside production
    environment: str = "development"

    # Local fallback
    uploads_dir: str = "uploads"
    uploads_url_prefix: str = "/uploads"

    # Public gateway used to build content URLs
    gateway_host: str = "ipfs.w3s.link"

    # Limits
    provider_timeout_seconds: float = 300.0  # 0 disables
    max_upload_bytes: int = 500 * 1024 * 1024  # 500MB

    @property
    def is_production(self) -> bool:
        return self.environment.lower() == "production"

    @property
    def primary_enabled(self) -> bool:
        return bool(self.storacha_space_did and self.storacha_endpoint)

    @property
    def secondary_enabled(self) -> bool:
        return bool(self.web3storage_token)

    @classmethod
    def from_env(cls, dotenv: bool = True) -> "StorageConfig":
        """Load configuration from environment variables (and .env if present)."""
        if dotenv:
            load_dotenv()
        return cls(
            storacha_space_did=os.getenv("STORACHA_TOKEN") or None,
            storacha_endpoint=os.getenv("STORACHA_ENDPOINT") or None,
            storacha_delegation_proof=os.getenv("STORACHA_DELEGATION_PROOF") or None,
            web3storage_token=os.getenv("WEB3STORAGE_TOKEN") or None,
            web3storage_endpoint=os.getenv("WEB3STORAGE_ENDPOINT", "https://api.web3.storage"),
            environment=os.getenv("NODE_ENV") or os.getenv("APP_ENV") or "development",
            uploads_dir=os.getenv("UPLOADS_DIR", "uploads"),
            uploads_url_prefix=os.getenv("UPLOADS_URL_PREFIX", "/uploads"),
            gateway_host=os.getenv("IPFS_GATEWAY_HOST", "ipfs.w3s.link"),
            provider_timeout_seconds=float(os.getenv("STORAGE_PROVIDER_TIMEOUT", "300")),
            max_upload_bytes=int(os.getenv("MAX_UPLOAD_BYTES", str(500 * 1024 * 1024))),
        )

    @classmethod
    def from_yaml(cls, config_path: str) -> "StorageConfig":
        """
        Load configuration from a YAML file.

        The file may wrap the settings in a single top-level key
        (e.g. ``storage:``); unknown keys are ignored.
        """
        with open(config_path) as f:
            config: Dict[str, Any] = yaml.safe_load(f) or {}
        if len(config) == 1 and isinstance(next(iter(config.values())), dict):
            config = list(config.values())[0]

        known = {f.name for f in fields(cls)}
        return cls(**{k: v for k, v in config.items() if k in known})

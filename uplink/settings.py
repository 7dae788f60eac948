"""
Client Settings

Configuration for the UPLINK client, with UPLINK_* environment overrides.
"""

from __future__ import annotations
from dataclasses import dataclass, replace
from typing import Mapping, Optional
import os


@dataclass(frozen=True)
class UplinkSettings:
    """Complete client configuration."""
    base_url: str = "http://localhost:8000/"
    schema_version: str = "1.2"
    asset_version: Optional[str] = None  # defaults to schema_version
    storage_path: Optional[str] = None   # sqlite file; None = in-memory only
    request_timeout: float = 30.0
    user_agent: str = "UplinkClient/1.0"
    max_retries: int = 3
    episodes_ttl_ms: int = 300_000
    stats_ttl_ms: int = 300_000
    config_ttl_ms: int = 3_600_000
    log_level: str = "INFO"
    log_dir: Optional[str] = None

    @property
    def effective_asset_version(self) -> str:
        return self.asset_version or self.schema_version

    def with_overrides(self, **overrides) -> 'UplinkSettings':
        """Copy with the given non-None fields replaced."""
        return replace(self, **{k: v for k, v in overrides.items() if v is not None})

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> 'UplinkSettings':
        env = os.environ if environ is None else environ
        defaults = cls()
        return cls(
            base_url=env.get("UPLINK_BASE_URL", defaults.base_url),
            schema_version=env.get("UPLINK_SCHEMA_VERSION", defaults.schema_version),
            asset_version=env.get("UPLINK_ASSET_VERSION") or None,
            storage_path=env.get("UPLINK_STORAGE_PATH") or None,
            request_timeout=float(env.get("UPLINK_REQUEST_TIMEOUT", defaults.request_timeout)),
            user_agent=env.get("UPLINK_USER_AGENT", defaults.user_agent),
            max_retries=int(env.get("UPLINK_MAX_RETRIES", defaults.max_retries)),
            episodes_ttl_ms=int(env.get("UPLINK_EPISODES_TTL_MS", defaults.episodes_ttl_ms)),
            stats_ttl_ms=int(env.get("UPLINK_STATS_TTL_MS", defaults.stats_ttl_ms)),
            config_ttl_ms=int(env.get("UPLINK_CONFIG_TTL_MS", defaults.config_ttl_ms)),
            log_level=env.get("UPLINK_LOG_LEVEL", defaults.log_level),
            log_dir=env.get("UPLINK_LOG_DIR") or None
        )

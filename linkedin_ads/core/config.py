"""Configuration management for the LinkedIn Ads CLI.

This module resolves configuration with clear precedence:
CLI arguments > Environment variables (.env included) > Catalog defaults > Constants

The resolved CLIConfig is the only configuration the core sees; nothing
below this module reads environment variables.
"""

from dataclasses import dataclass
from typing import Any, Dict, Optional
from urllib.parse import urlparse

from dotenv import load_dotenv
from loguru import logger

from linkedin_ads.core.constants import (
    DEFAULT_BASE_URL,
    ENV_ACCESS_TOKEN,
    ENV_AD_ACCOUNT_ID,
    ENV_ASSET_ID,
    ENV_BASE_URL,
    ENV_LINKEDIN_VERSION,
    ENV_MAX_RETRIES,
    ENV_RESTLI_PROTOCOL_VERSION,
    ENV_TIMEOUT,
    ENV_TUNNEL_THRESHOLD,
    ENV_UPLOAD_WORKERS,
    LINKEDIN_API_VERSION,
    MAX_RETRIES,
    REQUEST_TIMEOUT_SECONDS,
    RESTLI_PROTOCOL_VERSION,
    TUNNEL_URL_THRESHOLD,
    UPLOAD_MAX_WORKERS,
    TunnelMode,
)
from linkedin_ads.core.exceptions import ConfigurationError
from shared.utils.env import get_env, get_env_float, get_env_int


@dataclass(frozen=True)
class CLIConfig:
    """Resolved configuration for one invocation."""

    access_token: str
    base_url: str = DEFAULT_BASE_URL
    linkedin_version: str = LINKEDIN_API_VERSION
    restli_protocol_version: str = RESTLI_PROTOCOL_VERSION
    timeout: float = REQUEST_TIMEOUT_SECONDS
    tunnel_mode: TunnelMode = TunnelMode.AUTO
    tunnel_threshold: int = TUNNEL_URL_THRESHOLD
    max_retries: int = MAX_RETRIES
    upload_workers: int = UPLOAD_MAX_WORKERS
    default_ad_account_id: Optional[str] = None
    default_asset_id: Optional[str] = None

    def __post_init__(self):
        """Validate configuration after initialization."""
        if not self.access_token or not self.access_token.strip():
            raise ConfigurationError(
                f"Access token missing: set {ENV_ACCESS_TOKEN} or pass --access-token"
            )
        parsed = urlparse(self.base_url or "")
        if parsed.scheme not in ("http", "https") or not parsed.netloc:
            raise ConfigurationError(
                f"Invalid base URL: {self.base_url!r}",
                details={"expected": "http(s)://host[/path]"},
            )
        if self.timeout <= 0:
            raise ConfigurationError(f"Timeout must be positive, got {self.timeout}")
        if self.tunnel_threshold <= 0:
            raise ConfigurationError(
                f"Tunnel threshold must be positive, got {self.tunnel_threshold}"
            )
        if self.max_retries < 1:
            raise ConfigurationError(f"Max retries must be at least 1, got {self.max_retries}")
        if self.upload_workers < 1:
            raise ConfigurationError(
                f"Upload workers must be at least 1, got {self.upload_workers}"
            )

    def default_id_for(self, resource: str) -> Optional[str]:
        """Default --id for a resource, if one is configured."""
        if resource == "ad-account":
            return self.default_ad_account_id
        if resource == "asset":
            return self.default_asset_id
        return None


class ConfigurationManager:
    """Resolves CLIConfig from CLI overrides, environment and catalog defaults."""

    def __init__(self, catalog_defaults: Optional[Dict[str, str]] = None, use_dotenv: bool = True):
        """Initialize the configuration manager.

        Args:
            catalog_defaults: Defaults declared by the catalog
                (default_linkedin_version, default_base_url)
            use_dotenv: Load a .env file into the environment first
        """
        self.catalog_defaults = catalog_defaults or {}
        if use_dotenv:
            load_dotenv()

    def load_config(self, overrides: Optional[Dict[str, Any]] = None) -> CLIConfig:
        """Build the configuration for one invocation.

        Args:
            overrides: Values from CLI flags; None entries are ignored

        Returns:
            Validated CLIConfig

        Raises:
            ConfigurationError: If configuration is missing or invalid
        """
        overrides = {k: v for k, v in (overrides or {}).items() if v is not None}

        try:
            values: Dict[str, Any] = {
                "access_token": get_env(ENV_ACCESS_TOKEN, ""),
                "base_url": get_env(
                    ENV_BASE_URL, self.catalog_defaults.get("default_base_url", DEFAULT_BASE_URL)
                ),
                "linkedin_version": get_env(
                    ENV_LINKEDIN_VERSION,
                    self.catalog_defaults.get("default_linkedin_version", LINKEDIN_API_VERSION),
                ),
                "restli_protocol_version": get_env(
                    ENV_RESTLI_PROTOCOL_VERSION, RESTLI_PROTOCOL_VERSION
                ),
                "timeout": get_env_float(ENV_TIMEOUT, float(REQUEST_TIMEOUT_SECONDS)),
                "tunnel_threshold": get_env_int(ENV_TUNNEL_THRESHOLD, TUNNEL_URL_THRESHOLD),
                "max_retries": get_env_int(ENV_MAX_RETRIES, MAX_RETRIES),
                "upload_workers": get_env_int(ENV_UPLOAD_WORKERS, UPLOAD_MAX_WORKERS),
                "default_ad_account_id": get_env(ENV_AD_ACCOUNT_ID),
                "default_asset_id": get_env(ENV_ASSET_ID),
            }
        except ValueError as e:
            raise ConfigurationError(str(e))

        values.update(overrides)

        tunnel_mode = values.get("tunnel_mode", TunnelMode.AUTO)
        if not isinstance(tunnel_mode, TunnelMode):
            try:
                tunnel_mode = TunnelMode(str(tunnel_mode).lower())
            except ValueError:
                raise ConfigurationError(
                    f"Invalid tunnel mode {tunnel_mode!r} (expected: auto|always|never)"
                )
        values["tunnel_mode"] = tunnel_mode

        config = CLIConfig(**values)
        logger.debug(
            f"Configuration resolved: base_url={config.base_url} "
            f"version={config.linkedin_version} tunnel={config.tunnel_mode.value}"
        )
        return config

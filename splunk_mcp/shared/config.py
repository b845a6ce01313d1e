# Configuration loader with environment variable support.
# Secrets and connection details come from the environment (or .env);
# non-secret application defaults may come from an optional YAML file.

import logging
from pathlib import Path
from typing import Optional

import yaml
from pydantic import BaseModel, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from splunk_mcp import __version__

from .models import AdapterBaseModel

logger = logging.getLogger(__name__)

DEFAULT_SIGNALFX_REALM = "us0"
VALID_LOG_LEVELS = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}

SERVER_INSTRUCTIONS = (
    "You are connected to Splunk (and, when configured, SignalFx APM) via MCP tools. "
    "Use list_indexes or get_indexes_and_sourcetypes to discover data before writing "
    "searches with search_splunk. Keep max_results small and narrow earliest_time "
    "for exploratory queries. For latency or error investigations use list_services, "
    "then search_traces, get_trace_details and the metrics tools."
)


class AppConfig(BaseModel):
    name: str = "splunk-mcp"
    version: str = __version__
    log_level: str = "INFO"
    instructions: str = SERVER_INSTRUCTIONS

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        level = v.strip().upper()
        if level not in VALID_LOG_LEVELS:
            raise ValueError(f"log_level must be one of {VALID_LOG_LEVELS}, got {v}")
        return level


class SearchDefaultsConfig(BaseModel):
    """Defaults applied when a tool call omits the optional search arguments."""

    earliest_time: str = "-24h"
    latest_time: str = "now"
    max_results: int = Field(default=100, gt=0)
    sourcetype_max_results: int = Field(default=10000, gt=0)
    sourcetype_time_range: str = "24 hours"


class Config(AdapterBaseModel):
    """Main configuration model"""

    app: AppConfig = Field(default_factory=AppConfig)
    search: SearchDefaultsConfig = Field(default_factory=SearchDefaultsConfig)


class SplunkSettings(BaseModel):
    host: str = "localhost"
    port: int = 8089
    username: Optional[str] = None
    password: Optional[str] = None
    token: Optional[str] = None
    scheme: str = "https"
    verify_ssl: bool = True

    @property
    def base_url(self) -> str:
        return f"{self.scheme}://{self.host}:{self.port}"


class SignalFxSettings(BaseModel):
    access_token: str
    realm: str = DEFAULT_SIGNALFX_REALM
    base_url: Optional[str] = None

    @property
    def resolved_base_url(self) -> str:
        if self.base_url:
            return self.base_url.rstrip("/")
        realm = self.realm or DEFAULT_SIGNALFX_REALM
        return f"https://api.{realm}.signalfx.com/v2/apm"


class Settings(BaseSettings):
    """Environment-based settings"""

    config_path: Optional[str] = Field(default=None, alias="CONFIG_PATH")

    # Splunk
    splunk_host: str = Field(default="localhost", alias="SPLUNK_HOST")
    splunk_port: int = Field(default=8089, alias="SPLUNK_PORT")
    splunk_username: Optional[str] = Field(default=None, alias="SPLUNK_USERNAME")
    splunk_password: Optional[str] = Field(default=None, alias="SPLUNK_PASSWORD")
    splunk_token: Optional[str] = Field(default=None, alias="SPLUNK_TOKEN")
    splunk_scheme: str = Field(default="https", alias="SPLUNK_SCHEME")
    verify_ssl: bool = Field(default=True, alias="VERIFY_SSL")

    # SignalFx (tracing tools are disabled without a token)
    signalfx_access_token: Optional[str] = Field(
        default=None, alias="SIGNALFX_ACCESS_TOKEN"
    )
    signalfx_realm: str = Field(default=DEFAULT_SIGNALFX_REALM, alias="SIGNALFX_REALM")
    signalfx_base_url: Optional[str] = Field(default=None, alias="SIGNALFX_BASE_URL")

    # Deadlines
    upstream_timeout_seconds: float = Field(
        default=30.0, gt=0, alias="UPSTREAM_TIMEOUT_SECONDS"
    )
    tool_timeout_seconds: float = Field(default=120.0, gt=0, alias="TOOL_TIMEOUT_SECONDS")

    # Logging (overrides app.log_level from the YAML config when set)
    log_level: Optional[str] = Field(default=None, alias="LOG_LEVEL")

    model_config = SettingsConfigDict(
        env_file=".env",
        case_sensitive=False,
        extra="ignore",
        populate_by_name=True,
    )

    @field_validator("splunk_scheme")
    @classmethod
    def validate_scheme(cls, v: str) -> str:
        scheme = v.strip().lower()
        if scheme not in {"http", "https"}:
            raise ValueError(f"SPLUNK_SCHEME must be http or https, got {v}")
        return scheme

    @field_validator("splunk_port")
    @classmethod
    def validate_port(cls, v: int) -> int:
        if not 0 < v < 65536:
            raise ValueError(f"SPLUNK_PORT must be between 1 and 65535, got {v}")
        return v

    @field_validator(
        "splunk_username",
        "splunk_password",
        "splunk_token",
        "signalfx_access_token",
        "signalfx_base_url",
        "log_level",
    )
    @classmethod
    def _blank_to_none(cls, v: Optional[str]) -> Optional[str]:
        if v is None:
            return v
        stripped = v.strip()
        return stripped or None

    @property
    def signalfx_enabled(self) -> bool:
        return bool(self.signalfx_access_token)

    def splunk(self) -> SplunkSettings:
        return SplunkSettings(
            host=self.splunk_host,
            port=self.splunk_port,
            username=self.splunk_username,
            password=self.splunk_password,
            token=self.splunk_token,
            scheme=self.splunk_scheme,
            verify_ssl=self.verify_ssl,
        )

    def signalfx(self) -> Optional[SignalFxSettings]:
        if not self.signalfx_access_token:
            return None
        return SignalFxSettings(
            access_token=self.signalfx_access_token,
            realm=self.signalfx_realm,
            base_url=self.signalfx_base_url,
        )


def effective_log_level(config: Config, settings: Settings) -> str:
    """LOG_LEVEL from the environment wins over the YAML app.log_level."""
    level = (settings.log_level or config.app.log_level).upper()
    if level not in VALID_LOG_LEVELS:
        raise ValueError(f"LOG_LEVEL must be one of {VALID_LOG_LEVELS}, got {level}")
    return level


def load_config() -> tuple[Config, Settings]:
    """
    Load configuration from the optional YAML file and environment variables.

    Returns:
        tuple: (Config, Settings) - YAML config and environment settings

    Raises:
        FileNotFoundError: If CONFIG_PATH points at a missing file
        ValueError: If configuration validation fails
    """
    settings = Settings()

    config_dict: dict = {}
    if settings.config_path:
        config_path = Path(settings.config_path).expanduser()
        if not config_path.exists():
            raise FileNotFoundError(f"Configuration file not found: {config_path}")
        logger.info(f"Loading configuration from: {config_path}")
        with open(config_path, "r") as f:
            config_dict = yaml.safe_load(f) or {}

    config = Config(**config_dict)
    validate_config_at_startup(config, settings)
    return config, settings


def validate_config_at_startup(config: Config, settings: Settings) -> None:
    """
    Validate configuration that spans both sources.

    Raises:
        ValueError: If the effective log level is invalid
    """
    effective_log_level(config, settings)

    if not settings.splunk_token and not (
        settings.splunk_username and settings.splunk_password
    ):
        logger.warning(
            "No Splunk credentials configured (SPLUNK_TOKEN or "
            "SPLUNK_USERNAME/SPLUNK_PASSWORD); requests will be unauthenticated"
        )
    if not settings.verify_ssl:
        logger.warning("TLS certificate verification is disabled for Splunk")

    logger.info(
        "Configuration loaded: splunk=%s signalfx_enabled=%s",
        settings.splunk().base_url,
        settings.signalfx_enabled,
    )


# Global config instances (loaded once at startup)
_config: Optional[Config] = None
_settings: Optional[Settings] = None


def get_config() -> Config:
    """Get the global Config instance"""
    global _config, _settings
    if _config is None:
        _config, _settings = load_config()
    return _config


def get_settings() -> Settings:
    """Get the global Settings instance"""
    global _config, _settings
    if _settings is None:
        _config, _settings = load_config()
    return _settings


def init_config() -> tuple[Config, Settings]:
    """Initialize and cache global config instances"""
    global _config, _settings
    _config, _settings = load_config()
    return _config, _settings


def reload_config() -> tuple[Config, Settings]:
    """Force reload of config/settings from disk and environment."""
    return init_config()

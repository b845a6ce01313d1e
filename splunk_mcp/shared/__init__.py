# Shared utilities package
from .config import (
    Config,
    Settings,
    SignalFxSettings,
    SplunkSettings,
    get_config,
    get_settings,
    init_config,
)

__all__ = [
    "Config",
    "Settings",
    "SplunkSettings",
    "SignalFxSettings",
    "get_config",
    "get_settings",
    "init_config",
]

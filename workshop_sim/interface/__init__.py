"""User-facing surfaces: CLI, headless runner and configuration."""

from .config import Config, DEFAULT_CONFIG, load_config, save_config, get_config_path
from .headless import HeadlessRunner

__all__ = [
    "Config",
    "DEFAULT_CONFIG",
    "load_config",
    "save_config",
    "get_config_path",
    "HeadlessRunner",
]

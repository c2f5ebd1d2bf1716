"""
shush configuration.

- Pydantic-based settings (SHUSH_* environment variables, .env files)
- YAML config file discovery with ${VAR} substitution
"""

from shush.config.loader import get_config_path, load_settings, substitute_env
from shush.config.settings import Settings

__all__ = [
    "Settings",
    "get_config_path",
    "load_settings",
    "substitute_env",
]

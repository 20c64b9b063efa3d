"""Configuration package: typed settings and system-wide constants."""

from courier.core.config.settings import Settings, get_settings, reload_settings

__all__ = ["Settings", "get_settings", "reload_settings"]

"""Configuration: settings singleton and shared constants."""

from menu_tts.core.config.settings import Settings, get_settings, reload_settings

__all__ = ["Settings", "get_settings", "reload_settings"]

from .settings import Settings as Settings, load_settings as load_settings

__all__ = [
    "Settings",
    "load_settings",
]

from .logging import setup_logger
from .loop import SessionController
from .settings import AppSettings, SettingsError

__all__ = [
    "AppSettings",
    "SessionController",
    "SettingsError",
    "setup_logger",
]

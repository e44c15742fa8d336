"""Core configuration, logging, domain models and collaborator protocols."""

from .config import AppSettings, SchedulerSettings, load_app_settings
from .logging import configure_logging

__all__ = [
    "AppSettings",
    "SchedulerSettings",
    "configure_logging",
    "load_app_settings",
]

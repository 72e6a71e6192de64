"""
Configuration, logging and token utilities.
"""

from .config import AppConfig, load_config, get_config
from .logging_config import configure_logging, request_id_var

__all__ = [
    "AppConfig",
    "load_config",
    "get_config",
    "configure_logging",
    "request_id_var",
]

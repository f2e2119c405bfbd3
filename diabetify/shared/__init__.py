"""
Shared Layer

Cross-cutting helpers used by every other layer: environment and log-level
enums, structured logging setup and Docker secret resolution.

Nothing in here may import from Domain, Application, Infrastructure or
Presentation.
"""

from .consts import EnumEnvironment, EnumLogLevel
from .logging import configure_logging, get_logger, update_logging_from_settings

__all__ = [
    "EnumEnvironment",
    "EnumLogLevel",
    "configure_logging",
    "get_logger",
    "update_logging_from_settings",
]

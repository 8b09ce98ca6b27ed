"""
Constraint Guard - Utilities
"""
from .server_logger import setup_logger, log_hook_outcome, log_error, JsonFormatter

__all__ = [
    "setup_logger",
    "log_hook_outcome",
    "log_error",
    "JsonFormatter",
]

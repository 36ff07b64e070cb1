"""Utility functions module."""

from shared.utils.logging import setup_logging
from shared.utils.env import (
    get_env,
    get_env_bool,
    get_env_int,
    get_env_float,
    first_env,
)

__all__ = [
    "setup_logging",
    "get_env",
    "get_env_bool",
    "get_env_int",
    "get_env_float",
    "first_env",
]

"""
Environment variable utilities.
Typed accessors over os.environ; blank values count as unset.
"""

import os
from typing import Optional


def get_env(key: str, default: Optional[str] = None) -> Optional[str]:
    """
    Get environment variable with optional default.

    Args:
        key: Environment variable name
        default: Returned when the variable is unset or blank

    Returns:
        Stripped value or default
    """
    value = os.environ.get(key)
    if value is None or not value.strip():
        return default
    return value.strip()


def first_env(*keys: str, default: Optional[str] = None) -> Optional[str]:
    """
    Return the first non-blank value among several variable names.

    Examples:
        >>> first_env("S3_ACCESS_KEY", "AWS_ACCESS_KEY_ID")
    """
    for key in keys:
        value = get_env(key)
        if value is not None:
            return value
    return default


def get_env_bool(key: str, default: bool = False) -> bool:
    """
    Get environment variable as boolean.

    Accepts true/false, 1/0, yes/no and on/off; anything else yields default.
    """
    value = (get_env(key) or "").lower()
    if value in ("true", "1", "yes", "on"):
        return True
    if value in ("false", "0", "no", "off"):
        return False
    return default


def get_env_int(key: str, default: Optional[int] = None) -> Optional[int]:
    """
    Get environment variable as integer.

    Raises:
        ValueError: If the variable is set but is not an integer
    """
    value = get_env(key)
    if value is None:
        return default
    try:
        return int(value)
    except ValueError:
        raise ValueError(f"Environment variable '{key}' must be an integer, got {value!r}")


def get_env_float(key: str, default: Optional[float] = None) -> Optional[float]:
    """
    Get environment variable as float.

    Raises:
        ValueError: If the variable is set but is not a number
    """
    value = get_env(key)
    if value is None:
        return default
    try:
        return float(value)
    except ValueError:
        raise ValueError(f"Environment variable '{key}' must be a number, got {value!r}")

"""Typed readers for the service's environment variables.

Invalid values never abort start-up: they are logged and replaced by the
default so a typo in a queue or retention setting cannot take workers down.
"""

from __future__ import annotations

import os
from typing import Callable, List, Optional, TypeVar

from core.logging import get_logger

logger = get_logger(__name__)

N = TypeVar("N", int, float)

_TRUE_VALUES = {"1", "true", "yes", "y", "on"}
_FALSE_VALUES = {"0", "false", "no", "n", "off"}


def _read(key: str) -> Optional[str]:
    raw = os.getenv(key)
    if raw is None or not raw.strip():
        return None
    return raw.strip()


def _bounded(
    key: str,
    default: N,
    cast: Callable[[str], N],
    minimum: Optional[N],
    maximum: Optional[N],
) -> N:
    raw = _read(key)
    if raw is None:
        return default
    try:
        value = cast(raw)
    except ValueError:
        logger.warning("%s=%r is not a valid %s; using %s.", key, raw, cast.__name__, default)
        return default
    if (minimum is not None and value < minimum) or (maximum is not None and value > maximum):
        logger.warning("%s=%s outside [%s, %s]; using %s.", key, value, minimum, maximum, default)
        return default
    return value


def env_str(key: str, default: Optional[str] = None) -> Optional[str]:
    value = os.getenv(key, default)
    if value is None:
        logger.debug("Environment variable %s not set.", key)
    return value


def env_int(key: str, default: int, *, minimum: Optional[int] = None, maximum: Optional[int] = None) -> int:
    return _bounded(key, default, int, minimum, maximum)


def env_float(key: str, default: float, *, minimum: Optional[float] = None, maximum: Optional[float] = None) -> float:
    return _bounded(key, default, float, minimum, maximum)


def env_bool(key: str, default: bool) -> bool:
    raw = _read(key)
    if raw is None:
        return default
    normalized = raw.lower()
    if normalized in _TRUE_VALUES:
        return True
    if normalized in _FALSE_VALUES:
        return False
    logger.warning("Invalid boolean env %s=%r; using %s.", key, raw, default)
    return default


def env_csv(key: str, default: Optional[List[str]] = None) -> List[str]:
    """Split a comma separated variable such as ``CORS_ALLOW_ORIGINS``."""
    raw = os.getenv(key)
    if raw is None:
        return list(default or [])
    return [item.strip() for item in raw.split(",") if item.strip()]

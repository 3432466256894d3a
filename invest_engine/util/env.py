from __future__ import annotations

import os
from decimal import Decimal, InvalidOperation
from typing import Optional

from ..errors import ConfigurationError

ENV_PREFIX = "INVEST_ENGINE_"

_TRUE = {"1", "true", "yes", "on"}
_FALSE = {"0", "false", "no", "off", ""}


def env_str(name: str, default: Optional[str] = None) -> Optional[str]:
    """Read a prefixed environment variable, e.g. env_str("DATA_DIR")."""
    value = os.environ.get(ENV_PREFIX + name)
    if value is None:
        return default
    return value.strip()


def env_decimal(name: str, default: Decimal) -> Decimal:
    raw = env_str(name)
    if raw is None or raw == "":
        return default
    try:
        value = Decimal(raw)
    except InvalidOperation as e:
        raise ConfigurationError(f"{ENV_PREFIX}{name} must be a number, got {raw!r}") from e
    if not value.is_finite() or value < 0:
        raise ConfigurationError(f"{ENV_PREFIX}{name} must be a non-negative number, got {raw!r}")
    return value


def env_bool(name: str, default: bool) -> bool:
    raw = env_str(name)
    if raw is None:
        return default
    lowered = raw.lower()
    if lowered in _TRUE:
        return True
    if lowered in _FALSE:
        return False
    raise ConfigurationError(f"{ENV_PREFIX}{name} must be a boolean flag, got {raw!r}")

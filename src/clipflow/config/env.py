"""Environment variable access for configuration.

``EnvReader`` wraps a mapping (``os.environ`` by default) so tests can
inject their own environment. Every getter returns None for unset or empty
variables; malformed values are logged and treated as unset.
"""

import logging
import os
from collections.abc import Mapping
from pathlib import Path

logger = logging.getLogger(__name__)

_TRUE_VALUES = frozenset({"1", "true", "yes", "on"})
_FALSE_VALUES = frozenset({"0", "false", "no", "off"})


class EnvReader:
    """Typed reader over environment variables."""

    def __init__(self, env: Mapping[str, str] | None = None) -> None:
        self._env = env if env is not None else os.environ

    def get_str(self, name: str) -> str | None:
        value = self._env.get(name)
        if value is None or not value.strip():
            return None
        return value.strip()

    def get_path(self, name: str) -> Path | None:
        value = self.get_str(name)
        return Path(value).expanduser() if value else None

    def get_int(self, name: str) -> int | None:
        value = self.get_str(name)
        if value is None:
            return None
        try:
            return int(value)
        except ValueError:
            logger.warning("Ignoring %s=%r: not an integer", name, value)
            return None

    def get_float(self, name: str) -> float | None:
        value = self.get_str(name)
        if value is None:
            return None
        try:
            return float(value)
        except ValueError:
            logger.warning("Ignoring %s=%r: not a number", name, value)
            return None

    def get_bool(self, name: str) -> bool | None:
        value = self.get_str(name)
        if value is None:
            return None
        folded = value.casefold()
        if folded in _TRUE_VALUES:
            return True
        if folded in _FALSE_VALUES:
            return False
        logger.warning("Ignoring %s=%r: not a boolean", name, value)
        return None

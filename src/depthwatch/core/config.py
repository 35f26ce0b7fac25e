"""
Layered configuration: TOML file, DEPTHWATCH_* environment, CLI overrides.

A key is looked up in the layers from the most to the least specific:

    overrides (set())  ->  environment  ->  TOML file  ->  caller default

Keys use dot notation matching the TOML tables, so "display.precision" is
`[display] precision = ...` in the file and DEPTHWATCH_DISPLAY_PRECISION in
the environment.
"""
import os
from pathlib import Path
from typing import Any, Callable, Optional, TypeVar

from depthwatch.core.errors import InvalidConfiguration

try:
    import tomllib
except ImportError:
    import tomli as tomllib  # type: ignore

T = TypeVar("T")

_TRUE = frozenset({"true", "1", "yes", "on"})
_FALSE = frozenset({"false", "0", "no", "off", ""})
_MISSING = object()


def _parse_env(value: str) -> Any:
    """Best-effort typing of an environment string."""
    lowered = value.strip().lower()
    if lowered in ("true", "yes", "on"):
        return True
    if lowered in ("false", "no", "off"):
        return False
    for convert in (int, float):
        try:
            return convert(value)
        except ValueError:
            pass
    return value


def _to_int(value: Any) -> int:
    if isinstance(value, bool):
        raise TypeError("booleans are not integers")
    if isinstance(value, float) and not value.is_integer():
        raise ValueError("not a whole number")
    return int(value)


def _to_bool(value: Any) -> bool:
    if isinstance(value, bool):
        return value
    if isinstance(value, int):
        return value != 0
    if isinstance(value, str) and value.strip().lower() in _TRUE | _FALSE:
        return value.strip().lower() in _TRUE
    raise ValueError("expected a boolean")


class ConfigManager:
    """Read-mostly view over the configuration layers.

    Usage:
        config = ConfigManager(Path("config/default.toml"))
        precision = config.get_int("display.precision", 2)
        ws_url = config.get("polymarket.ws_url")
    """

    def __init__(
        self,
        config_path: Optional[Path] = None,
        env_prefix: str = "DEPTHWATCH_",
    ) -> None:
        """
        Raises:
            InvalidConfiguration: If the file exists but is not valid TOML.
        """
        self._env_prefix = env_prefix
        self._overrides: dict[str, Any] = {}
        self._file: dict[str, Any] = {}
        if config_path is not None and config_path.exists():
            try:
                self._file = tomllib.loads(config_path.read_text(encoding="utf-8"))
            except tomllib.TOMLDecodeError as e:
                raise InvalidConfiguration(f"{config_path} is not valid TOML", cause=e) from e

    def _from_file(self, key: str) -> Any:
        node: Any = self._file
        for part in key.split("."):
            if not isinstance(node, dict) or part not in node:
                return _MISSING
            node = node[part]
        return node

    def _from_env(self, key: str) -> Any:
        raw = os.environ.get(self._env_prefix + key.upper().replace(".", "_"))
        return _MISSING if raw is None else _parse_env(raw)

    def _lookup(self, key: str) -> Any:
        if key in self._overrides:
            return self._overrides[key]
        for layer in (self._from_env, self._from_file):
            value = layer(key)
            if value is not _MISSING:
                return value
        return _MISSING

    def _typed(self, key: str, default: T, convert: Callable[[Any], T]) -> T:
        value = self._lookup(key)
        if value is _MISSING or value is None:
            return default
        try:
            return convert(value)
        except (TypeError, ValueError) as e:
            raise InvalidConfiguration(f"{key}: cannot use {value!r} ({e})", cause=e) from e

    def set(self, key: str, value: Any) -> None:
        """Override `key` for the lifetime of this manager (CLI flags)."""
        self._overrides[key] = value

    def get(self, key: str, default: Any = None) -> Any:
        """Raw value for a dot-notation key, or `default`."""
        value = self._lookup(key)
        return default if value is _MISSING else value

    def get_int(self, key: str, default: int = 0) -> int:
        return self._typed(key, default, _to_int)

    def get_float(self, key: str, default: float = 0.0) -> float:
        return self._typed(key, default, float)

    def get_bool(self, key: str, default: bool = False) -> bool:
        return self._typed(key, default, _to_bool)

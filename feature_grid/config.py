from __future__ import annotations
from typing import Any, Callable, Dict, Mapping, Optional
import logging
from pathlib import Path

import yaml

logger = logging.getLogger(__name__)

_TRUE = {"true", "yes", "on", "1"}
_FALSE = {"false", "no", "off", "0"}


def _to_bool(raw: Any) -> bool:
    if isinstance(raw, bool):
        return raw
    if isinstance(raw, (int, float)):
        return bool(raw)
    s = str(raw).strip().lower()
    if s in _TRUE:
        return True
    if s in _FALSE:
        return False
    raise ValueError(f"not a boolean: {raw!r}")


def _converter(type_: type) -> Callable[[Any], Any]:
    if type_ is bool:
        return _to_bool
    return type_


class Config:
    """
    Flat key-value option block.

    Values are stored as read (YAML or JSON scalars); typed reads convert on
    the way out. A value that cannot be converted is logged and treated as
    absent. Anything built from the typed values therefore re-emits them in
    their typed form: "12.5" comes back as 12.5 and "yes" as True.
    """

    def __init__(self, values: Optional[Mapping[str, Any]] = None):
        self._values: Dict[str, Any] = dict(values or {})

    @classmethod
    def from_file(cls, path: str) -> "Config":
        cfg_path = Path(path)
        if not cfg_path.is_file():
            raise FileNotFoundError(f"Config file not found: {cfg_path}")
        with open(cfg_path, "r", encoding="utf-8") as f:
            data = yaml.safe_load(f)
        if data is None:
            data = {}
        if not isinstance(data, dict):
            raise ValueError(f"Config root must be a mapping: {cfg_path}")
        logger.info("Loaded config %s (%d keys)", cfg_path, len(data))
        return cls(data)

    # ---------------- reads ---------------- #
    def has_value(self, key: str) -> bool:
        return self._values.get(key) is not None

    def value(self, key: str, default: Any = None, type_: type = str) -> Any:
        if not self.has_value(key):
            return default
        raw = self._values[key]
        try:
            return _converter(type_)(raw)
        except (TypeError, ValueError):
            logger.warning("Ignoring malformed value for '%s': %r (expected %s)", key, raw, type_.__name__)
            return default

    def get_optional(self, key: str, type_: type, current: Any = None) -> Any:
        """Return the typed value of `key` if present and well-formed, else `current`."""
        return self.value(key, default=current, type_=type_)

    # ---------------- writes ---------------- #
    def add(self, key: str, value: Any) -> None:
        self._values[key] = value

    def add_optional(self, key: str, value: Any) -> None:
        if value is not None:
            self._values[key] = value

    def update(self, other: Mapping[str, Any]) -> None:
        for k, v in other.items():
            self.add_optional(k, v)

    def to_dict(self) -> Dict[str, Any]:
        return dict(self._values)

    def to_yaml(self) -> str:
        return yaml.safe_dump(self._values, default_flow_style=False, sort_keys=True)

    def __contains__(self, key: str) -> bool:
        return self.has_value(key)

    def __repr__(self) -> str:
        return f"Config({self._values!r})"

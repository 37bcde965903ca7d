"""Variable scope with global and context-qualified fallback lookups."""

from __future__ import annotations

import json
import logging
from types import MappingProxyType
from typing import Any, Mapping, Tuple

import yaml  # type: ignore[import-untyped]

logger = logging.getLogger(__name__)

SCOPE_FORMATS = ("yaml", "json")
_GLOBAL_PREFIX = "::"


class ScopeFormatError(RuntimeError):
    """Raised when scope text cannot be turned into a variable mapping."""


def _load_yaml(raw: str) -> Any:
    # JSON documents go through json so numbers like 1e3 keep their JSON type
    try:
        return json.loads(raw)
    except json.JSONDecodeError:
        pass
    try:
        return yaml.safe_load(raw)
    except yaml.YAMLError as exc:
        raise ScopeFormatError(f"invalid YAML scope: {exc}") from exc


class _Undef:
    _instance: "_Undef | None" = None

    def __new__(cls) -> "_Undef":
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __bool__(self) -> bool:
        return False

    def __repr__(self) -> str:
        return "UNDEF"

    def __str__(self) -> str:
        return "undef"


UNDEF = _Undef()


class Scope:
    def __init__(self, variables: Mapping[str, Any] | None = None, context: str = "") -> None:
        if variables is None:
            variables = {}
        if not isinstance(variables, Mapping):
            raise ScopeFormatError(f"scope must be a mapping, got {type(variables).__name__}")
        bad_keys = [key for key in variables if not isinstance(key, str)]
        if bad_keys:
            raise ScopeFormatError(f"scope keys must be strings: {', '.join(repr(k) for k in bad_keys)}")
        self._variables: Mapping[str, Any] = MappingProxyType(dict(variables))
        self._context = context

    @classmethod
    def from_text(cls, raw: str, context: str = "", fmt: str = "yaml") -> "Scope":
        if fmt not in SCOPE_FORMATS:
            raise ScopeFormatError(f"unsupported scope format '{fmt}'")
        if not raw.strip():
            data: Any = {}
        elif fmt == "json":
            try:
                data = json.loads(raw)
            except json.JSONDecodeError as exc:
                raise ScopeFormatError(f"invalid JSON scope: {exc}") from exc
        else:
            data = _load_yaml(raw)
        if data is None:
            data = {}
        scope = cls(data, context)
        logger.debug("loaded %s scope with %d variable(s), context=%r", fmt, len(scope), context)
        return scope

    @property
    def context(self) -> str:
        return self._context

    @property
    def variables(self) -> Mapping[str, Any]:
        return self._variables

    def __len__(self) -> int:
        return len(self._variables)

    def __repr__(self) -> str:
        return f"Scope(context={self._context!r}, variables={len(self._variables)})"

    def has_variable(self, name: str) -> bool:
        return name in self._variables

    def qualified_names(self, name: str) -> Tuple[str, str, str]:
        """Candidate keys for ``name``, in the order :meth:`lookup` tries them."""
        return (name, _GLOBAL_PREFIX + name, self._context + _GLOBAL_PREFIX + name)

    def resolve_key(self, name: str) -> str | None:
        for key in self.qualified_names(name):
            if key in self._variables:
                return key
        return None

    def lookup(self, name: str) -> Any:
        key = self.resolve_key(name)
        if key is None:
            return UNDEF
        return self._variables[key]


__all__ = ["SCOPE_FORMATS", "Scope", "ScopeFormatError", "UNDEF"]

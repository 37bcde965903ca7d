from __future__ import annotations

import codecs
import dataclasses
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Mapping

import yaml  # type: ignore[import-untyped]
from jsonschema import Draft202012Validator, ValidationError

from .scope import SCOPE_FORMATS

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_NAME = "scoperender.yaml"
UNDEFINED_POLICIES = ("empty", "marker", "strict")

CONFIG_SCHEMA: Mapping[str, Any] = {
    "type": "object",
    "additionalProperties": False,
    "properties": {
        "render": {
            "type": "object",
            "additionalProperties": False,
            "properties": {
                "undefined": {"enum": list(UNDEFINED_POLICIES)},
                "scope_format": {"enum": list(SCOPE_FORMATS)},
                "encoding": {"type": "string", "minLength": 1},
                "trim_blocks": {"type": "boolean"},
                "lstrip_blocks": {"type": "boolean"},
                "keep_trailing_newline": {"type": "boolean"},
            },
        },
    },
}


class RenderConfigError(RuntimeError):
    def __init__(self, source: str, errors: list[str] | tuple[str, ...]) -> None:
        super().__init__(f"{source} is not a valid render config")
        self.source = source
        self.errors = tuple(errors)

    def __str__(self) -> str:
        errors = "\n  - ".join(self.errors)
        return f"{self.source} is not a valid render config:\n  - {errors}"


@dataclass(frozen=True)
class RenderConfig:
    undefined: str = "empty"
    scope_format: str = "yaml"
    encoding: str = "utf-8"
    trim_blocks: bool = True
    lstrip_blocks: bool = False
    keep_trailing_newline: bool = True

    def replace(self, **overrides: Any) -> "RenderConfig":
        """Return a copy with every override that is not ``None`` applied."""
        changes = {key: value for key, value in overrides.items() if value is not None}
        if not changes:
            return self
        return dataclasses.replace(self, **changes)


def _format_error(error: ValidationError) -> str:
    path = ".".join(str(part) for part in error.path) or "<root>"
    return f"{path}: {error.message}"


def load_render_config(path: str | Path | None = None) -> RenderConfig:
    if path is None:
        return RenderConfig()
    config_path = Path(path)
    try:
        text = config_path.read_text(encoding="utf-8")
    except (OSError, UnicodeDecodeError) as exc:
        raise RenderConfigError(str(config_path), [f"cannot read file: {exc}"]) from exc
    try:
        data = yaml.safe_load(text)
    except yaml.YAMLError as exc:
        raise RenderConfigError(str(config_path), [f"invalid YAML: {exc}"]) from exc
    if data is None:
        data = {}
    if not isinstance(data, Mapping):
        raise RenderConfigError(str(config_path), ["<root>: config must be a mapping"])

    validator = Draft202012Validator(CONFIG_SCHEMA)
    errors = sorted(validator.iter_errors(data), key=lambda error: tuple(str(p) for p in error.path))
    if errors:
        raise RenderConfigError(str(config_path), [_format_error(error) for error in errors])

    section = data.get("render") or {}
    encoding = section.get("encoding")
    if encoding is not None:
        try:
            codecs.lookup(encoding)
        except LookupError as exc:
            raise RenderConfigError(str(config_path), [f"render.encoding: {exc}"]) from exc
    config = RenderConfig(**section)
    logger.debug("loaded render config from %s: %s", config_path, config)
    return config


def default_config_path(cwd: Path | None = None) -> Path | None:
    candidate = (cwd or Path.cwd()) / DEFAULT_CONFIG_NAME
    return candidate if candidate.is_file() else None


__all__ = [
    "CONFIG_SCHEMA",
    "DEFAULT_CONFIG_NAME",
    "RenderConfig",
    "RenderConfigError",
    "UNDEFINED_POLICIES",
    "default_config_path",
    "load_render_config",
]

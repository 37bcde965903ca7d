"""Render ERB-style templates with Jinja2, resolving names through a :class:`Scope`.

Tag syntax::

    <%= expr %>     output an expression
    <% stmt %>      a Jinja statement (if/for/set/...)
    <%# text %>     comment
    <%- ... -%>     strip surrounding whitespace

Every free variable of a template is looked up with :meth:`Scope.lookup`.
``scope``, ``has_variable`` and ``lookup`` are reserved and bound to the
resolver itself.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any, Dict, Mapping, Type

from jinja2 import Environment, StrictUndefined, TemplateError, TemplateSyntaxError, Undefined, pass_environment
from jinja2.runtime import Context
from jinja2.utils import missing

from .config import RenderConfig
from .scope import UNDEF, Scope

logger = logging.getLogger(__name__)

SCOPE_NAME = "scope"


class RenderError(RuntimeError):
    """Raised when a template fails to parse or evaluate."""


class MarkerUndefined(Undefined):
    """Undefined that prints as ``undef`` instead of an empty string."""

    __slots__ = ()

    def __str__(self) -> str:
        return str(UNDEF)


UNDEFINED_CLASSES: Dict[str, Type[Undefined]] = {
    "empty": Undefined,
    "marker": MarkerUndefined,
    "strict": StrictUndefined,
}


class ScopeContext(Context):
    def resolve_or_missing(self, key: str) -> Any:
        value = super().resolve_or_missing(key)
        if value is not missing:
            return value
        scope = self.parent.get(SCOPE_NAME)
        if not isinstance(scope, Scope):
            return missing
        value = scope.lookup(key)
        if value is UNDEF:
            return missing
        return value


@pass_environment
def _finalize(environment: Environment, value: Any) -> Any:
    if value is UNDEF:
        return environment.undefined(hint="scope lookup returned undef")
    if value is None:
        return ""
    if isinstance(value, bool):
        return "true" if value else "false"
    return value


def build_environment(config: RenderConfig | None = None) -> Environment:
    config = config or RenderConfig()
    try:
        undefined = UNDEFINED_CLASSES[config.undefined]
    except KeyError:
        raise RenderError(f"unknown undefined policy '{config.undefined}'") from None
    env = Environment(
        block_start_string="<%",
        block_end_string="%>",
        variable_start_string="<%=",
        variable_end_string="%>",
        comment_start_string="<%#",
        comment_end_string="%>",
        trim_blocks=config.trim_blocks,
        lstrip_blocks=config.lstrip_blocks,
        keep_trailing_newline=config.keep_trailing_newline,
        autoescape=False,
        undefined=undefined,
        finalize=_finalize,
    )
    env.context_class = ScopeContext
    return env


def template_vars(scope: Scope) -> Mapping[str, Any]:
    return {
        SCOPE_NAME: scope,
        "has_variable": scope.has_variable,
        "lookup": scope.lookup,
    }


def render(
    template_source: str,
    scope: Scope,
    config: RenderConfig | None = None,
    *,
    name: str | None = None,
) -> str:
    config = config or RenderConfig()
    label = name or "<template>"
    env = build_environment(config)
    logger.debug("rendering %s with undefined=%s against %r", label, config.undefined, scope)
    try:
        template = env.from_string(template_source)
        return template.render(template_vars(scope))
    except TemplateSyntaxError as exc:
        raise RenderError(f"{label}:{exc.lineno}: {exc.message}") from exc
    except TemplateError as exc:
        raise RenderError(f"{label}: {exc.message or exc.__class__.__name__}") from exc
    except Exception as exc:
        raise RenderError(f"{label}: {exc.__class__.__name__}: {exc}") from exc


def render_file(path: str | Path, scope: Scope, config: RenderConfig | None = None) -> str:
    config = config or RenderConfig()
    template_path = Path(path)
    try:
        source = template_path.read_text(encoding=config.encoding)
    except (UnicodeDecodeError, LookupError) as exc:
        raise RenderError(f"{template_path}: {exc}") from exc
    return render(source, scope, config, name=str(template_path))


__all__ = [
    "MarkerUndefined",
    "RenderError",
    "ScopeContext",
    "build_environment",
    "render",
    "render_file",
    "template_vars",
]

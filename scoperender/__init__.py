"""Render ERB-style templates against a context-qualified variable scope."""

from __future__ import annotations

__version__ = "0.1.0"

from .config import RenderConfig, RenderConfigError, load_render_config  # noqa: E402
from .render import RenderError, build_environment, render, render_file  # noqa: E402
from .scope import UNDEF, Scope, ScopeFormatError  # noqa: E402

__all__ = [
    "RenderConfig",
    "RenderConfigError",
    "RenderError",
    "Scope",
    "ScopeFormatError",
    "UNDEF",
    "__version__",
    "build_environment",
    "load_render_config",
    "render",
    "render_file",
]

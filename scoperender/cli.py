"""Command-line entry point.

Reads from standard input::

    <context name>
    <template path>
    <scope document, YAML or JSON, up to end of input>

and prints the rendered template.

Examples::

    printf 'Foo\\nmotd.erb\\n{"bar": 1, "::baz": 2}' | scoperender
    scoperender --undefined marker --format json < request.txt
    scoperender --explain baz < request.txt
"""

from __future__ import annotations

import argparse
import logging
import sys
from dataclasses import dataclass
from pathlib import Path
from typing import Sequence, TextIO

from . import __version__
from .config import UNDEFINED_POLICIES, RenderConfig, RenderConfigError, default_config_path, load_render_config
from .render import RenderError, render_file
from .scope import SCOPE_FORMATS, Scope, ScopeFormatError

logger = logging.getLogger(__name__)

_LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
_KEY_KINDS = ("exact", "global", "context")
_handler: logging.Handler | None = None


class InputFormatError(RuntimeError):
    """Raised when standard input does not follow the three-segment layout."""


@dataclass(frozen=True)
class RenderRequest:
    context: str
    template_path: Path
    scope_text: str


def read_request(stream: TextIO) -> RenderRequest:
    context = stream.readline()
    template = stream.readline()
    if not context or not template:
        raise InputFormatError("expected a context line and a template path line on standard input")
    template_path = template.rstrip("\r\n")
    if not template_path:
        raise InputFormatError("template path line is empty")
    return RenderRequest(
        context=context.rstrip("\r\n"),
        template_path=Path(template_path),
        scope_text=stream.read(),
    )


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="scoperender",
        description="Render an ERB-style template against a variable scope read from standard input",
        epilog=(
            "Standard input: context name, template path, then the scope document.\n"
            "Examples:\n"
            "  scoperender < request.txt\n"
            "  scoperender --undefined strict --format json < request.txt\n"
            "  scoperender --explain ntp_servers < request.txt\n"
        ),
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument("--config", help="Render config YAML (default: ./scoperender.yaml when present)")
    parser.add_argument(
        "--undefined",
        choices=UNDEFINED_POLICIES,
        help="How undefined variables render: empty string, 'undef' marker, or an error",
    )
    parser.add_argument("--format", dest="scope_format", choices=SCOPE_FORMATS, help="Scope document format")
    parser.add_argument("--explain", metavar="NAME", help="Report which scope key NAME resolves to and exit")
    parser.add_argument("-v", "--verbose", action="store_true", help="Debug logging on stderr")
    parser.add_argument("--version", action="version", version=f"scoperender {__version__}")
    return parser


def configure_logging(verbose: bool) -> None:
    global _handler
    package_logger = logging.getLogger("scoperender")
    package_logger.setLevel(logging.DEBUG if verbose else logging.WARNING)
    if _handler is not None:
        package_logger.removeHandler(_handler)
    _handler = logging.StreamHandler(stream=sys.stderr)
    _handler.setFormatter(logging.Formatter(_LOG_FORMAT))
    package_logger.addHandler(_handler)


def _load_config(args: argparse.Namespace) -> RenderConfig:
    config_path = Path(args.config) if args.config else default_config_path()
    config = load_render_config(config_path)
    return config.replace(undefined=args.undefined, scope_format=args.scope_format)


def explain(scope: Scope, name: str) -> str:
    key = scope.resolve_key(name)
    if key is None:
        tried = ", ".join(repr(k) for k in scope.qualified_names(name))
        return f"{name}: undefined (tried {tried})"
    kind = _KEY_KINDS[scope.qualified_names(name).index(key)]
    return f"{name}: {kind} key {key!r} = {scope.lookup(name)!r}"


def _write_output(text: str, out: TextIO) -> None:
    out.write(text)
    if not text.endswith("\n"):
        out.write("\n")


def run(args: argparse.Namespace, stdin: TextIO, stdout: TextIO) -> None:
    config = _load_config(args)
    request = read_request(stdin)
    scope = Scope.from_text(request.scope_text, request.context, fmt=config.scope_format)
    if args.explain:
        _write_output(explain(scope, args.explain), stdout)
        return
    logger.debug("template %s", request.template_path)
    _write_output(render_file(request.template_path, scope, config), stdout)


def main(argv: Sequence[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    configure_logging(args.verbose)
    try:
        run(args, sys.stdin, sys.stdout)
    except (InputFormatError, ScopeFormatError, RenderConfigError, RenderError, OSError) as exc:
        logger.debug("render failed", exc_info=True)
        print(f"scoperender: error: {exc}", file=sys.stderr)
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())

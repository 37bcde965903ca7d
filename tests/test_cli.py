from __future__ import annotations

import io
import json
import os
import subprocess
import sys
from pathlib import Path

import pytest

from scoperender import __version__
from scoperender.cli import InputFormatError, explain, main, read_request
from scoperender.scope import Scope

REPO_ROOT = Path(__file__).resolve().parents[1]


def _run_cli(args: list[str], stdin: str, cwd: Path) -> subprocess.CompletedProcess[str]:
    env = dict(os.environ)
    env["PYTHONPATH"] = os.pathsep.join(filter(None, [str(REPO_ROOT), env.get("PYTHONPATH")]))
    return subprocess.run(
        [sys.executable, "-m", "scoperender", *args],
        input=stdin,
        capture_output=True,
        text=True,
        cwd=str(cwd),
        env=env,
    )


def _main(monkeypatch: pytest.MonkeyPatch, stdin: str, args: list[str] | None = None) -> int:
    monkeypatch.setattr("sys.stdin", io.StringIO(stdin))
    return main(args or [])


@pytest.fixture
def workdir(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    monkeypatch.chdir(tmp_path)
    return tmp_path


def test_read_request_splits_segments():
    request = read_request(io.StringIO("Foo\r\n/tmp/t.erb\nbar: 1\nbaz: 2\n"))
    assert request.context == "Foo"
    assert request.template_path == Path("/tmp/t.erb")
    assert request.scope_text == "bar: 1\nbaz: 2\n"


@pytest.mark.parametrize("stdin", ["", "Foo\n", "Foo\n\n{}"])
def test_read_request_rejects_short_input(stdin: str):
    with pytest.raises(InputFormatError):
        read_request(io.StringIO(stdin))


def test_main_renders_template(workdir: Path, monkeypatch, capsys):
    template = workdir / "t.erb"
    template.write_text("<%= bar %>-<%= baz %>-<%= qux %>", encoding="utf-8")
    scope = json.dumps({"bar": 1, "::baz": 2, "Foo::qux": 3})

    assert _main(monkeypatch, f"Foo\n{template}\n{scope}") == 0
    assert capsys.readouterr().out == "1-2-3\n"


def test_main_does_not_double_trailing_newline(workdir: Path, monkeypatch, capsys):
    template = workdir / "t.erb"
    template.write_text("line\n", encoding="utf-8")
    assert _main(monkeypatch, f"Foo\n{template}\n") == 0
    assert capsys.readouterr().out == "line\n"


def test_main_undefined_flag_overrides_config(workdir: Path, monkeypatch, capsys):
    (workdir / "scoperender.yaml").write_text("render:\n  undefined: strict\n", encoding="utf-8")
    template = workdir / "t.erb"
    template.write_text("[<%= missing %>]", encoding="utf-8")

    assert _main(monkeypatch, f"Foo\n{template}\n{{}}") == 1
    assert "missing" in capsys.readouterr().err

    assert _main(monkeypatch, f"Foo\n{template}\n{{}}", ["--undefined", "marker"]) == 0
    assert capsys.readouterr().out == "[undef]\n"


def test_main_json_format(workdir: Path, monkeypatch, capsys):
    template = workdir / "t.erb"
    template.write_text("<%= name %>", encoding="utf-8")
    assert _main(monkeypatch, f"Foo\n{template}\nname: yaml", ["--format", "json"]) == 1
    assert "invalid JSON scope" in capsys.readouterr().err


@pytest.mark.parametrize(
    "stdin_tail, message",
    [
        ("missing.erb\n{}", "missing.erb"),
        ("t.erb\n[1, 2]", "scope must be a mapping"),
        ("t.erb\n{}", "t.erb:1:"),
    ],
)
def test_main_failures_exit_nonzero(workdir: Path, monkeypatch, capsys, stdin_tail: str, message: str):
    (workdir / "t.erb").write_text("<% if %>", encoding="utf-8")
    assert _main(monkeypatch, f"Foo\n{stdin_tail}") == 1
    captured = capsys.readouterr()
    assert captured.out == ""
    assert captured.err.startswith("scoperender: error:")
    assert message in captured.err


def test_main_undecodable_template_exits_nonzero(workdir: Path, monkeypatch, capsys):
    (workdir / "t.erb").write_bytes(b"\xff\xfe<%= x %>")
    assert _main(monkeypatch, "Foo\nt.erb\n{}") == 1
    captured = capsys.readouterr()
    assert captured.out == ""
    assert captured.err.startswith("scoperender: error: t.erb:")
    assert "Traceback" not in captured.err


def test_main_unknown_config_encoding_exits_nonzero(workdir: Path, monkeypatch, capsys):
    (workdir / "scoperender.yaml").write_text("render:\n  encoding: no-such-codec\n", encoding="utf-8")
    (workdir / "t.erb").write_text("x", encoding="utf-8")
    assert _main(monkeypatch, "Foo\nt.erb\n{}") == 1
    captured = capsys.readouterr()
    assert captured.err.startswith("scoperender: error:")
    assert "render.encoding" in captured.err


def test_main_explain(workdir: Path, monkeypatch, capsys):
    stdin = 'Foo\nunused.erb\n{"::baz": 2}'
    assert _main(monkeypatch, stdin, ["--explain", "baz"]) == 0
    assert capsys.readouterr().out == "baz: global key '::baz' = 2\n"


def test_explain_reports_each_tier():
    scope = Scope({"bar": 1, "::baz": 2, "Foo::qux": 3}, "Foo")
    assert explain(scope, "bar") == "bar: exact key 'bar' = 1"
    assert explain(scope, "qux") == "qux: context key 'Foo::qux' = 3"
    assert explain(scope, "nope") == "nope: undefined (tried 'nope', '::nope', 'Foo::nope')"


def test_main_rejects_unknown_policy(workdir: Path, monkeypatch):
    with pytest.raises(SystemExit) as excinfo:
        _main(monkeypatch, "", ["--undefined", "loud"])
    assert excinfo.value.code == 2


def test_module_entry_point_relative_template(tmp_path: Path):
    (tmp_path / "motd.erb").write_text(
        "Welcome to <%= fqdn %> (<%= role %>)\n<% if has_variable('banner') -%>\n<%= banner %>\n<% endif -%>\n",
        encoding="utf-8",
    )
    stdin = "Web\nmotd.erb\nfqdn: web01\n'Web::role': frontend\n"
    result = _run_cli([], stdin, tmp_path)
    assert result.returncode == 0, result.stderr
    assert result.stdout == "Welcome to web01 (frontend)\n"


def test_module_entry_point_verbose_logs_to_stderr(tmp_path: Path):
    (tmp_path / "t.erb").write_text("<%= x %>", encoding="utf-8")
    result = _run_cli(["-v"], "Ctx\nt.erb\nx: 1\n", tmp_path)
    assert result.returncode == 0, result.stderr
    assert result.stdout == "1\n"
    assert "DEBUG" in result.stderr
    assert "scoperender.scope" in result.stderr


def test_module_entry_point_missing_template(tmp_path: Path):
    result = _run_cli([], "Ctx\nabsent.erb\n{}", tmp_path)
    assert result.returncode == 1
    assert result.stdout == ""
    assert "absent.erb" in result.stderr


def test_version():
    result = _run_cli(["--version"], "", REPO_ROOT)
    assert result.returncode == 0
    assert result.stdout.strip() == f"scoperender {__version__}"

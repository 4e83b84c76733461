"""Tests for the command line interface."""

from __future__ import annotations

import json
import sys
from pathlib import Path
from typing import Generator

import pytest

from devtoolbox import __version__
from devtoolbox.cli import create_parser, error_envelope, load_application, main, parse_options
from devtoolbox.errors import ApplicationLoadError, InvalidScanOptions
from devtoolbox.runtime.memory import InMemoryApplication

HOST_MODULE = '''
from devtoolbox import InMemoryApplication

app = InMemoryApplication()
app.get("hello", lambda: "hi", name="hello")
app.post("admin/users", lambda: "ok", name="admin.users.store")


def create_app():
    return app


not_an_app = 42
'''


@pytest.fixture
def host(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Generator[str, None, None]:
    """Write an importable host module into the working directory."""
    module_name = f"host_{tmp_path.name.replace('-', '_')}"
    (tmp_path / f"{module_name}.py").write_text(HOST_MODULE, encoding="utf-8")
    monkeypatch.chdir(tmp_path)
    monkeypatch.setattr(sys, "path", list(sys.path))
    yield module_name
    sys.modules.pop(module_name, None)


def test_parser_defaults():
    args = create_parser().parse_args([])
    assert args.types == []
    assert args.option == []
    assert args.app is None
    assert args.timeout is None


def test_version(capsys):
    with pytest.raises(SystemExit) as exc:
        main(["--version"])
    assert exc.value.code == 0
    assert __version__ in capsys.readouterr().out


def test_init_config(capsys):
    main(["--init-config"])
    out = capsys.readouterr().out
    assert out.startswith("# ====")
    assert "provider_timeline:" in out


def test_list(capsys, tmp_path, monkeypatch):
    """--list prints one line per registered scanner."""
    monkeypatch.chdir(tmp_path)
    main(["--list"])
    lines = capsys.readouterr().out.splitlines()
    assert len(lines) == 15
    assert lines[0].startswith("models ")
    assert any(line.startswith("provider-timeline") and "simulated" in line for line in lines)


def test_single_scan_without_app(capsys, tmp_path, monkeypatch):
    """Without --app an empty application rooted at the cwd is scanned."""
    monkeypatch.chdir(tmp_path)
    main(["routes", "--option", "include_metadata=false"])
    result = json.loads(capsys.readouterr().out)
    assert result["type"] == "routes"
    assert result["options"] == {"include_metadata": False}
    assert result["routes"] == []


def test_scan_with_app(capsys, host):
    main(["--app", f"{host}:app", "security", "--option", "include_metadata=false"])
    result = json.loads(capsys.readouterr().out)
    assert result["type"] == "security"
    assert [r["uri"] for r in result["unprotected_routes"]] == ["hello", "admin/users"]
    assert result["unprotected_routes"][1]["severity"] == "critical"


def test_scan_with_factory(capsys, host):
    main(["--app", f"{host}:create_app", "routes", "--option", "include_metadata=false"])
    result = json.loads(capsys.readouterr().out)
    assert {r["uri"] for r in result["routes"]} == {"hello", "admin/users"}


def test_scan_multiple_types(capsys, host):
    main(["--app", f"{host}.app", "routes", "commands"])
    result = json.loads(capsys.readouterr().out)
    assert result["scanned_types"] == ["routes", "commands"]
    assert set(result["results"]) == {"routes", "commands"}


def test_scan_all(capsys, host):
    main(["--app", f"{host}:app", "all"])
    result = json.loads(capsys.readouterr().out)
    assert len(result["scanned_types"]) == 15


def test_output_file(capsys, host, tmp_path):
    target = tmp_path / "report.json"
    main(["--app", f"{host}:app", "routes", "-o", str(target), "-v"])
    captured = capsys.readouterr()
    assert captured.out == ""
    assert f"Output written to: {target}" in captured.err
    assert json.loads(target.read_text(encoding="utf-8"))["type"] == "routes"


def test_config_file(capsys, host, tmp_path):
    """Values from --config are merged over the defaults."""
    config = tmp_path / "devtoolbox.yaml"
    config.write_text("security:\n  public_paths: [hello]\n", encoding="utf-8")
    main(["--app", f"{host}:app", "--config", str(config), "security", "--option", "include_metadata=false"])
    result = json.loads(capsys.readouterr().out)
    assert [r["uri"] for r in result["unprotected_routes"]] == ["admin/users"]


def test_missing_config_file(capsys, tmp_path):
    with pytest.raises(SystemExit) as exc:
        main(["--config", str(tmp_path / "nope.yaml"), "routes"])
    assert exc.value.code == 1
    assert "does not exist" in capsys.readouterr().err


def test_unknown_type_exits_with_error_envelope(capsys, tmp_path, monkeypatch):
    """Unknown scanner types exit 1 and still print a JSON error document."""
    monkeypatch.chdir(tmp_path)
    with pytest.raises(SystemExit) as exc:
        main(["nope"])
    assert exc.value.code == 1
    captured = capsys.readouterr()
    assert "Error: Unknown scanner type [nope]." in captured.err
    envelope = json.loads(captured.out)
    assert envelope["type"] == "nope"
    assert envelope["error"] == "Unknown scanner type [nope]."
    assert "timestamp" in envelope


def test_bad_app_exits(capsys, tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)
    with pytest.raises(SystemExit) as exc:
        main(["--app", "no_such_module_here:app", "routes"])
    assert exc.value.code == 1
    assert "Could not import application" in capsys.readouterr().err


def test_bad_option_exits(capsys, tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)
    with pytest.raises(SystemExit):
        main(["routes", "--option", "novalue"])
    assert "KEY=VALUE" in capsys.readouterr().err


def test_parse_options():
    """Values are read as YAML scalars and sequences."""
    options = parse_options([
        "detect_unused=true",
        "threshold=3",
        "url=/users",
        "exclude_patterns=[api/*, health]",
        "route=",
    ])
    assert options == {
        "detect_unused": True,
        "threshold": 3,
        "url": "/users",
        "exclude_patterns": ["api/*", "health"],
        "route": None,
    }


@pytest.mark.parametrize("pair", ["novalue", "=1", "bad=[unclosed"])
def test_parse_options_rejects(pair):
    with pytest.raises(InvalidScanOptions):
        parse_options([pair])


def test_load_application(host):
    assert isinstance(load_application(f"{host}:app"), InMemoryApplication)
    assert isinstance(load_application(None), InMemoryApplication)


def test_load_application_rejects_non_applications(host):
    with pytest.raises(ApplicationLoadError, match="not a devtoolbox Application"):
        load_application(f"{host}:not_an_app")
    with pytest.raises(ApplicationLoadError, match="Could not import"):
        load_application(f"{host}:missing")


def test_error_envelope_for_batches():
    assert error_envelope(["routes", "models"], "boom")["type"] == ["routes", "models"]
    assert error_envelope([], "boom")["type"] == ["all"]

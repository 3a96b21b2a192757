from __future__ import annotations

import io
import json

import pytest

from jobrelay.cli.main import build_parser


def run_cli(argv: list[str]):
    from jobrelay.cli import main
    return main(argv)


def test_cli_ask(tmp_path, capsys):
    code = run_cli(["--log-dir", str(tmp_path), "ask", "--step-delay", "0", "Hello"])
    out = capsys.readouterr().out
    assert code == 0
    assert "[100%] completed" in out
    assert "user: Hello" in out
    assert "assistant: Echo: Hello" in out


def test_cli_ask_document_scope(tmp_path, capsys):
    code = run_cli(
        ["--log-dir", str(tmp_path), "ask", "--scope", "documentQA", "--step-delay", "0", "totals?"]
    )
    assert code == 0
    assert "assistant: Echo: totals?" in capsys.readouterr().out


def test_cli_ask_cancel(tmp_path, capsys):
    code = run_cli(
        [
            "--log-dir",
            str(tmp_path),
            "ask",
            "--step-delay",
            "0.2",
            "--cancel-after",
            "0.05",
            "Hello",
        ]
    )
    out = capsys.readouterr().out
    assert code == 1
    assert "error: Generation cancelled by user" in out
    assert "assistant:" not in out


def test_cli_ask_blank_text(tmp_path, capsys):
    assert run_cli(["--log-dir", str(tmp_path), "ask", "   "]) == 2
    assert "empty input" in capsys.readouterr().err


def test_cli_ask_with_settings_file(tmp_path, capsys):
    path = tmp_path / "engine.json"
    path.write_text(json.dumps({"cancel_message": "Stopped (cancelled)"}), encoding="utf-8")
    code = run_cli(
        [
            "--settings",
            str(path),
            "--log-dir",
            str(tmp_path),
            "ask",
            "--step-delay",
            "0.2",
            "--cancel-after",
            "0.05",
            "Hello",
        ]
    )
    assert code == 1
    assert "error: Stopped (cancelled)" in capsys.readouterr().out


def test_cli_bad_settings_file(tmp_path):
    path = tmp_path / "engine.json"
    path.write_text(json.dumps({"scopes": {}}), encoding="utf-8")
    with pytest.raises(SystemExit):
        run_cli(["--settings", str(path), "normalize", "{}"])


def test_cli_normalize_argument(tmp_path, capsys):
    code = run_cli(
        ["--log-dir", str(tmp_path), "normalize", '{"Success": true, "Result": "x", "ProcessingTime": 3}']
    )
    data = json.loads(capsys.readouterr().out)
    assert code == 0
    assert data == {"success": True, "result": "x", "error": "", "processing_time": 3.0}


def test_cli_normalize_stdin(tmp_path, capsys, monkeypatch):
    monkeypatch.setattr("sys.stdin", io.StringIO("Error: model crashed"))
    code = run_cli(["--log-dir", str(tmp_path), "normalize"])
    data = json.loads(capsys.readouterr().out)
    assert code == 1
    assert data["success"] is False
    assert data["error"] == "Error: model crashed"


def test_cli_requires_command():
    with pytest.raises(SystemExit):
        build_parser().parse_args([])

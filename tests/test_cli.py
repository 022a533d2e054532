"""
Tests for the command-line entry point.
"""

import pytest

from switchboard.cli import build_parser, cmd_tap, main
from switchboard.wiretap import WireLog


def test_aliases_resolve_to_same_command():
    parser = build_parser()
    for name in ("dial", "serve", "start"):
        args = parser.parse_args([name, "--port", "9000"])
        assert args.func.__name__ == "cmd_dial"
        assert args.port == 9000
    assert parser.parse_args(["chat"]).func.__name__ == "cmd_ring"
    assert parser.parse_args(["tail", "-n", "5"]).last == 5
    assert parser.parse_args(["info"]).func.__name__ == "cmd_flash"


def test_no_command_prints_help(capsys):
    assert main([]) == 0
    out = capsys.readouterr().out
    assert "switchboard" in out
    assert "<command>" in out


def test_version(capsys):
    with pytest.raises(SystemExit):
        main(["--version"])
    assert "switchboard 0.1.0" in capsys.readouterr().out


def test_tap_prints_entries(tmp_path, capsys):
    path = tmp_path / "wire.jsonl"
    wire = WireLog(path)
    wire.log(direction="inbound", role="user", content="hello operator", conversation_id="c1")
    wire.log(direction="outbound", role="assistant", content="connecting you now", conversation_id="c1")
    wire.close()

    args = build_parser().parse_args(["tap", "--log", str(path), "--role", "assistant"])
    cmd_tap(args)
    out = capsys.readouterr().out
    assert "connecting you now" in out
    assert "hello operator" not in out


def test_tap_missing_log(tmp_path, capsys):
    args = build_parser().parse_args(["tap", "--log", str(tmp_path / "none.jsonl")])
    cmd_tap(args)
    assert "No wire entries" in capsys.readouterr().out

# tests/test_cli.py
from __future__ import annotations

import json
from pathlib import Path

import pytest
import typer
from typer.testing import CliRunner

from launchcore.apps.cli.app import app, load_arguments_file, parse_launch_arguments

runner = CliRunner()

DESCRIPTION = '''
from launchcore.actions import DeclareArgument, LogInfo
from launchcore.description import LaunchDescription


def generate_description():
    return LaunchDescription([
        DeclareArgument("who", default="world", description="кого приветствуем"),
        DeclareArgument("mode", default="fast", choices=["fast", "slow"]),
        LogInfo("hello $who ($mode)"),
    ])
'''

BROKEN = '''
from launchcore.actions import IncludeDescription
from launchcore.description import LaunchDescription


def generate_description(context):
    return LaunchDescription([IncludeDescription("/nonexistent/launchcore/child.py")])
'''


@pytest.fixture(autouse=True)
def _no_signals(monkeypatch):
    monkeypatch.setenv("LAUNCHCORE_HANDLE_SIGNALS", "0")


def _messages(logs_dir: Path) -> list[dict]:
    lines = (logs_dir / "launchcore.log").read_text(encoding="utf-8").splitlines()
    return [json.loads(l) for l in lines if l.strip()]


def test_parse_launch_arguments():
    assert parse_launch_arguments(["a:=1", "b=x=y", "c:="]) == {"a": "1", "b": "x=y", "c": ""}
    with pytest.raises(typer.BadParameter):
        parse_launch_arguments(["novalue"])
    with pytest.raises(typer.BadParameter):
        parse_launch_arguments([":=1"])


def test_load_arguments_file(tmp_path):
    f = tmp_path / "args.yaml"
    f.write_text("who: ana\nretries: 3\nhosts: [a, b]\n", encoding="utf-8")
    assert load_arguments_file(f) == {"who": "ana", "retries": "3", "hosts": ["a", "b"]}


def test_run_writes_user_log_to_file(tmp_path):
    desc = tmp_path / "hello.py"
    desc.write_text(DESCRIPTION, encoding="utf-8")
    logs = tmp_path / "logs"
    result = runner.invoke(app, ["run", str(desc), "who:=ana", "--log-dir", str(logs)])
    assert result.exit_code == 0, result.output
    msgs = _messages(logs)
    user = [m for m in msgs if m["logger"] == "launchcore.user"]
    assert [m["msg"] for m in user] == ["hello ana (fast)"]


def test_run_args_file_is_overridden_by_command_line(tmp_path):
    desc = tmp_path / "hello.py"
    desc.write_text(DESCRIPTION, encoding="utf-8")
    args = tmp_path / "args.yaml"
    args.write_text("who: file\nmode: slow\n", encoding="utf-8")
    logs = tmp_path / "logs"
    result = runner.invoke(app, ["run", str(desc), "who:=cli", "--args-file", str(args), "--log-dir", str(logs)])
    assert result.exit_code == 0, result.output
    assert [m["msg"] for m in _messages(logs) if m["logger"] == "launchcore.user"] == ["hello cli (slow)"]


def test_run_warns_about_unused_arguments(tmp_path):
    desc = tmp_path / "hello.py"
    desc.write_text(DESCRIPTION, encoding="utf-8")
    logs = tmp_path / "logs"
    result = runner.invoke(app, ["run", str(desc), "typo:=1", "--log-dir", str(logs)])
    assert result.exit_code == 0, result.output
    warn = [m for m in _messages(logs) if m["msg"] == "executor.unused_launch_arguments"]
    assert warn and warn[0]["names"] == ["typo"]


def test_run_failed_required_include_exits_nonzero(tmp_path):
    desc = tmp_path / "broken.py"
    desc.write_text(BROKEN, encoding="utf-8")
    result = runner.invoke(app, ["run", str(desc), "--log-dir", str(tmp_path / "logs")])
    assert result.exit_code == 1


def test_show_args_lists_declared_arguments(tmp_path):
    desc = tmp_path / "hello.py"
    desc.write_text(DESCRIPTION, encoding="utf-8")
    result = runner.invoke(app, ["show-args", str(desc)])
    assert result.exit_code == 0, result.output
    assert "who" in result.output
    assert "mode" in result.output
    assert "world" in result.output

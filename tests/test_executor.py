import io
import signal

import pytest

from minishell.builtins import ShellExit
from minishell.environment import Environment, EnvVar
from minishell.executor import (
    CommandError,
    execute_single_command,
    is_builtin,
    resolve_command,
    run_builtin,
    run_external,
    status_from_returncode,
)
from minishell.model import Command, ShellState


def _script(path, body, mode=0o755):
    path.write_text("#!/bin/sh\n" + body)
    path.chmod(mode)
    return path


@pytest.fixture
def bindir(tmp_path):
    directory = tmp_path / "bin"
    directory.mkdir()
    return directory


def test_is_builtin():
    assert is_builtin(["echo", "x"]) is True
    assert is_builtin(["export"]) is True
    assert is_builtin(["ls"]) is False
    assert is_builtin([]) is False


def test_run_builtin_echo_records_status():
    out = io.StringIO()
    state = ShellState(exit_status=7)
    status = run_builtin(["echo", "a", "b"], Environment(), state, out, io.StringIO())
    assert status == 0
    assert state.exit_status == 0
    assert out.getvalue() == "a b\n"


def test_run_builtin_unset_invalid():
    env = Environment([EnvVar("A", "1")])
    state = ShellState()
    status = run_builtin(["unset", "1bad", "A"], env, state, io.StringIO(), io.StringIO())
    assert status == 1
    assert state.exit_status == 1
    assert env.find("A") is None


def test_run_builtin_exit_raises():
    with pytest.raises(ShellExit) as info:
        run_builtin(["exit", "42"], Environment(), ShellState(), io.StringIO(), io.StringIO())
    assert info.value.status == 42


def test_resolve_command_searches_path(bindir):
    script = _script(bindir / "hello", "exit 0\n")
    env = Environment([EnvVar("PATH", f"/nonexistent:{bindir}")])
    assert resolve_command("hello", env) == f"{bindir}/hello"
    assert script.exists()


def test_resolve_command_not_found(bindir):
    env = Environment([EnvVar("PATH", str(bindir))])
    with pytest.raises(CommandError) as info:
        resolve_command("nothing_here", env)
    assert info.value.status == 127
    assert str(info.value) == "minishell: nothing_here: command not found"


def test_resolve_direct_directory(tmp_path):
    with pytest.raises(CommandError) as info:
        resolve_command(str(tmp_path), Environment())
    assert info.value.status == 126
    assert info.value.reason == "is a directory"


def test_resolve_direct_missing(tmp_path):
    with pytest.raises(CommandError) as info:
        resolve_command(str(tmp_path / "missing"), Environment())
    assert info.value.status == 127
    assert info.value.reason == "No such file or directory"


def test_resolve_direct_not_executable(tmp_path):
    target = _script(tmp_path / "plain", "exit 0\n", mode=0o644)
    with pytest.raises(CommandError) as info:
        resolve_command(str(target), Environment())
    assert info.value.status == 126
    assert info.value.reason == "Permission denied"


def test_resolve_direct_not_a_directory(tmp_path):
    regular = tmp_path / "file"
    regular.write_text("x")
    with pytest.raises(CommandError) as info:
        resolve_command(f"{regular}/x", Environment())
    assert info.value.status == 126
    assert info.value.reason == "Not a directory"


def test_resolve_dotdot_without_path():
    with pytest.raises(CommandError) as info:
        resolve_command("..", Environment([EnvVar("HOME", "/")]))
    assert info.value.status == 126


def test_status_from_returncode():
    assert status_from_returncode(0) == 0
    assert status_from_returncode(3) == 3
    assert status_from_returncode(-signal.SIGINT) == 128 + signal.SIGINT
    assert status_from_returncode(-signal.SIGQUIT) == 128 + signal.SIGQUIT
    assert status_from_returncode(-signal.SIGTERM) == 0


def test_run_external_output_and_status(tmp_path, bindir):
    _script(bindir / "greet", 'echo "hi $1 $FOO"\nexit 3\n')
    env = Environment([EnvVar("PATH", str(bindir)), EnvVar("FOO", "bar")])
    state = ShellState()
    out_path = tmp_path / "out.txt"
    with open(out_path, "w") as out:
        status = run_external(Command(args=["greet", "x"]), env, state, None, out, None)
    assert status == 3
    assert state.exit_status == 3
    assert out_path.read_text() == "hi x bar\n"


def test_run_external_missing_reports(bindir):
    env = Environment([EnvVar("PATH", str(bindir))])
    state = ShellState()
    err = io.StringIO()
    status = run_external(Command(args=["nope"]), env, state, None, None, err)
    assert status == 127
    assert state.exit_status == 127
    assert err.getvalue() == "minishell: nope: command not found\n"


def test_run_external_empty_environment_does_nothing():
    state = ShellState(exit_status=5)
    assert run_external(Command(args=["ls"]), Environment(), state) == 5
    assert state.exit_status == 5


def test_execute_single_command_builtin_and_external(tmp_path, bindir):
    _script(bindir / "ok", "echo done\n")
    env = Environment([EnvVar("PATH", str(bindir))])
    state = ShellState()
    out_path = tmp_path / "out.txt"
    with open(out_path, "w") as out:
        first = execute_single_command(Command(args=["echo", "-n", "one"]), env, state, None, out, None)
        second = execute_single_command(Command(args=["ok"]), env, state, None, out, None)
    assert (first, second) == (0, 0)
    assert out_path.read_text() == "onedone\n"
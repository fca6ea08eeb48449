import io
import os

import pytest

from minishell.builtins import ShellExit
from minishell.environment import Environment, EnvVar
from minishell.model import Command, Redirection, RedirType, ShellState
from minishell.pipeline import run_pipeline


@pytest.fixture
def env():
    return Environment([EnvVar("PATH", "/usr/bin:/bin"), EnvVar("HOME", "/tmp")])


def cmd(*args, **kwargs):
    return Command(cmd=args[0] if args else None, args=list(args), **kwargs)


def pipeline(*commands):
    commands = list(commands)
    for command in commands[:-1]:
        command.pipe_out = True
    return commands


def test_builtin_feeds_external(env):
    out, err = io.StringIO(), io.StringIO()
    state = ShellState()
    status = run_pipeline(pipeline(cmd("echo", "hi"), cmd("cat")), env, state, None, out, err)
    assert status == 0
    assert out.getvalue() == "hi\n"
    assert err.getvalue() == ""


def test_status_is_that_of_last_command(env):
    state = ShellState()
    out, err = io.StringIO(), io.StringIO()
    assert run_pipeline(pipeline(cmd("true"), cmd("false")), env, state, None, out, err) == 1
    assert state.exit_status == 1
    assert run_pipeline(pipeline(cmd("false"), cmd("true")), env, state, None, out, err) == 0
    assert state.exit_status == 0


def test_unknown_command_reports_and_continues(env):
    out, err = io.StringIO(), io.StringIO()
    state = ShellState()
    status = run_pipeline(
        pipeline(cmd("nosuchcmd_xyz"), cmd("echo", "after")), env, state, None, out, err
    )
    assert status == 0
    assert out.getvalue() == "after\n"
    assert err.getvalue() == "minishell: nosuchcmd_xyz: command not found\n"


def test_unknown_last_command_gives_127(env):
    out, err = io.StringIO(), io.StringIO()
    state = ShellState()
    status = run_pipeline(
        pipeline(cmd("echo", "x"), cmd("nosuchcmd_xyz")), env, state, None, out, err
    )
    assert status == 127
    assert state.exit_status == 127


def test_builtins_do_not_change_parent_environment(env):
    out, err = io.StringIO(), io.StringIO()
    state = ShellState()
    run_pipeline(
        pipeline(cmd("export", "NEWVAR=1"), cmd("unset", "HOME")), env, state, None, out, err
    )
    assert env.find("NEWVAR") is None
    assert env.get("HOME") == "/tmp"


def test_exit_in_pipeline_does_not_end_shell(env):
    out, err = io.StringIO(), io.StringIO()
    state = ShellState()
    status = run_pipeline(pipeline(cmd("true"), cmd("exit", "3")), env, state, None, out, err)
    assert status == 3
    assert out.getvalue() == "exit\n"


def test_stdin_from_text_stream(env):
    out, err = io.StringIO(), io.StringIO()
    state = ShellState()
    status = run_pipeline(
        pipeline(cmd("cat"), cmd("cat")), env, state, io.StringIO("data\nmore\n"), out, err
    )
    assert status == 0
    assert out.getvalue() == "data\nmore\n"


def test_signalled_last_command(env):
    out, err = io.StringIO(), io.StringIO()
    state = ShellState()
    status = run_pipeline(
        pipeline(cmd("true"), cmd("sh", "-c", "kill -QUIT $$")), env, state, None, out, err
    )
    assert status == 131
    assert out.getvalue() == "Quit: 3\n"


def test_failed_redirection_skips_command(env):
    out, err = io.StringIO(), io.StringIO()
    state = ShellState()
    broken = Redirection(RedirType.IN, "missing", orig_token="missing", fd=-1)
    status = run_pipeline(
        pipeline(cmd("echo", "a"), cmd("echo", "b", redirs=[broken])), env, state, None, out, err
    )
    assert status == 1
    assert out.getvalue() == ""


def test_output_redirection_to_file(env, tmp_path):
    target = tmp_path / "out.txt"
    fd = os.open(target, os.O_WRONLY | os.O_CREAT | os.O_TRUNC, 0o644)
    try:
        redir = Redirection(RedirType.OUT, str(target), orig_token=str(target), fd=fd)
        out, err = io.StringIO(), io.StringIO()
        state = ShellState()
        status = run_pipeline(
            pipeline(cmd("echo", "x"), cmd("echo", "to file", redirs=[redir])),
            env, state, None, out, err,
        )
    finally:
        os.close(fd)
    assert status == 0
    assert target.read_text() == "to file\n"
    assert out.getvalue() == ""


def test_external_output_redirection_to_file(env, tmp_path):
    target = tmp_path / "ext.txt"
    fd = os.open(target, os.O_WRONLY | os.O_CREAT | os.O_TRUNC, 0o644)
    try:
        redir = Redirection(RedirType.OUT, str(target), orig_token=str(target), fd=fd)
        out, err = io.StringIO(), io.StringIO()
        run_pipeline(
            pipeline(cmd("echo", "piped"), cmd("cat", redirs=[redir])),
            env, ShellState(), None, out, err,
        )
    finally:
        os.close(fd)
    assert target.read_text() == "piped\n"


def test_interrupted_heredoc_ends_shell(env):
    out, err = io.StringIO(), io.StringIO()
    with pytest.raises(ShellExit) as info:
        run_pipeline(pipeline(cmd("true", flag=True), cmd("true")), env, ShellState(), None, out, err)
    assert info.value.status == 130


def test_empty_pipeline_keeps_status(env):
    state = ShellState(exit_status=7)
    assert run_pipeline([], env, state, None, io.StringIO(), io.StringIO()) == 7
"""Running one command: built-ins in the shell, everything else as a child process."""

from __future__ import annotations

import os
import signal
import stat
import subprocess
import sys
import threading
from collections.abc import Callable, Iterator
from contextlib import contextmanager
from typing import IO, Any, TextIO

from minishell.builtins import echo, env_builtin, exit_builtin, export_builtin, unset_builtin
from minishell.environment import Environment
from minishell.model import Command, ShellState
from minishell.textutils import split_words

_Builtin = Callable[[list[str], Environment, ShellState, TextIO, TextIO], int]

_BUILTINS: dict[str, _Builtin] = {
    "echo": lambda args, env, state, out, err: echo(args, out),
    "env": lambda args, env, state, out, err: env_builtin(args, env, out, err),
    "exit": lambda args, env, state, out, err: exit_builtin(args, state, out, err),
    "export": lambda args, env, state, out, err: export_builtin(args, env, out, err),
    "unset": lambda args, env, state, out, err: unset_builtin(args, env, out),
}


class CommandError(Exception):
    """A command that cannot be started, with the status the shell reports."""

    def __init__(self, name: str, reason: str, status: int) -> None:
        super().__init__(f"minishell: {name}: {reason}")
        self.name = name
        self.reason = reason
        self.status = status


def is_builtin(args: list[str]) -> bool:
    """True when ``args`` names a command the shell runs itself."""
    return bool(args) and args[0] in _BUILTINS


def run_builtin(
    args: list[str],
    env: Environment,
    state: ShellState,
    out: TextIO | None = None,
    err: TextIO | None = None,
) -> int:
    """Run a built-in and record its status; an unknown name gives status 0."""
    out = out if out is not None else sys.stdout
    err = err if err is not None else sys.stderr
    handler = _BUILTINS.get(args[0]) if args else None
    status = handler(args, env, state, out, err) if handler else 0
    state.exit_status = status
    return status


def _check_direct_path(name: str) -> None:
    try:
        info = os.stat(name)
    except NotADirectoryError:
        raise CommandError(name, "Not a directory", 126) from None
    except FileNotFoundError:
        raise CommandError(name, "No such file or directory", 127) from None
    except PermissionError:
        raise CommandError(name, "Permission denied", 126) from None
    if stat.S_ISDIR(info.st_mode):
        raise CommandError(name, "is a directory", 126)
    if not os.access(name, os.X_OK):
        raise CommandError(name, "Permission denied", 126)


def _check_without_path(name: str) -> str:
    if name == "..":
        raise CommandError(name, "is a directory", 126)
    if os.access(name, os.X_OK):
        return os.path.join(".", name)
    if not os.path.lexists(name):
        raise CommandError(name, "No such file or directory", 127)
    raise CommandError(name, "Permission denied", 126)


def resolve_command(name: str, env: Environment) -> str:
    """Find the file to run for ``name``, or raise :class:`CommandError`.

    A name with a slash is used as given; otherwise each PATH directory is
    tried in turn. Without PATH the name is looked up in the current directory.
    """
    if "/" in name:
        _check_direct_path(name)
        return name
    path = env.path()
    if path is None:
        return _check_without_path(name)
    for directory in split_words(path, ":"):
        candidate = f"{directory}/{name}"
        if os.access(candidate, os.X_OK):
            return candidate
    raise CommandError(name, "command not found", 127)


def status_from_returncode(code: int) -> int:
    """Shell status for a child's return code; a negative code is a signal."""
    if code >= 0:
        return code
    sig = -code
    if sig in (signal.SIGQUIT, signal.SIGINT):
        return 128 + sig
    return 0


def _in_main_thread() -> bool:
    return threading.current_thread() is threading.main_thread()


@contextmanager
def _signals_ignored() -> Iterator[None]:
    if not _in_main_thread():
        yield
        return
    saved = {sig: signal.signal(sig, signal.SIG_IGN) for sig in (signal.SIGINT, signal.SIGQUIT)}
    try:
        yield
    finally:
        for sig, handler in saved.items():
            signal.signal(sig, handler)


def _child_setup() -> None:
    signal.signal(signal.SIGINT, signal.SIG_DFL)
    signal.signal(signal.SIGQUIT, signal.SIG_DFL)
    try:
        import termios

        if os.isatty(0):
            attrs = termios.tcgetattr(0)
            attrs[3] |= getattr(termios, "ECHOCTL", 0)
            termios.tcsetattr(0, termios.TCSANOW, attrs)
    except (ImportError, OSError):
        pass


def _child_environ(env: Environment) -> dict[str, str]:
    return dict(item.split("=", 1) for item in env.to_envp())


def _flush(stream: Any) -> None:
    if stream is not None and hasattr(stream, "flush"):
        stream.flush()


def run_external(
    command: Command,
    env: Environment,
    state: ShellState,
    stdin: IO[Any] | None = None,
    stdout: IO[Any] | None = None,
    stderr: IO[Any] | None = None,
) -> int:
    """Run a non-built-in command as a child process and record its status."""
    args = command.args
    if not len(env) or not args:
        return state.exit_status
    err = stderr if stderr is not None else sys.stderr
    name = args[0]
    try:
        executable = resolve_command(name, env)
    except CommandError as exc:
        err.write(f"{exc}\n")
        _flush(err)
        state.exit_status = exc.status
        return exc.status
    _flush(stdout)
    _flush(stderr)
    searched = "/" not in name and env.path() is not None
    with _signals_ignored():
        try:
            completed = subprocess.run(
                args,
                executable=executable,
                env=_child_environ(env),
                stdin=stdin,
                stdout=stdout,
                stderr=stderr,
                preexec_fn=_child_setup,
            )
        except OSError:
            if searched:
                err.write(f"minishell: {name}: command not found\n")
                _flush(err)
                state.exit_status = 127
            else:
                state.exit_status = 0
            return state.exit_status
    if completed.returncode == -signal.SIGQUIT:
        out = stdout if stdout is not None else sys.stdout
        out.write("Quit: 3\n")
        _flush(out)
    state.exit_status = status_from_returncode(completed.returncode)
    return state.exit_status


def execute_single_command(
    command: Command,
    env: Environment,
    state: ShellState,
    stdin: IO[Any] | None = None,
    stdout: IO[Any] | None = None,
    stderr: IO[Any] | None = None,
) -> int:
    """Run ``command`` as a built-in or a child process; return its status."""
    if is_builtin(command.args):
        return run_builtin(command.args, env, state, stdout, stderr)
    return run_external(command, env, state, stdin, stdout, stderr)
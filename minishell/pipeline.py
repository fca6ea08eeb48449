"""Running a pipeline: each command in its own process, joined by pipes."""

from __future__ import annotations

import codecs
import os
import signal
import subprocess
import sys
import threading
from collections.abc import Iterable, Iterator
from contextlib import contextmanager
from dataclasses import dataclass, replace
from typing import IO, Any, TextIO

from minishell.builtins import ShellExit
from minishell.environment import Environment
from minishell.executor import CommandError, is_builtin, resolve_command, run_builtin
from minishell.model import Command, RedirType, ShellState

_INPUT_REDIRS = (RedirType.IN, RedirType.HEREDOC)
_CHUNK = 65536


class _ForkFailed(Exception):
    """A stage could not be started for lack of resources."""


def _fileno(stream: Any) -> int | None:
    try:
        return stream.fileno()
    except (AttributeError, OSError, ValueError):
        return None


def _flush(stream: Any) -> None:
    if stream is not None and hasattr(stream, "flush"):
        try:
            stream.flush()
        except (OSError, ValueError):
            pass


def _close_quietly(fd: int) -> None:
    try:
        os.close(fd)
    except OSError:
        pass


def _pump(fd: int, stream: TextIO) -> None:
    decoder = codecs.getincrementaldecoder("utf-8")("replace")
    try:
        while chunk := os.read(fd, _CHUNK):
            stream.write(decoder.decode(chunk))
        stream.write(decoder.decode(b"", final=True))
    finally:
        _close_quietly(fd)


def _feed(fd: int, data: bytes) -> None:
    try:
        view = memoryview(data)
        while view:
            written = os.write(fd, view)
            view = view[written:]
    except OSError:
        pass
    finally:
        _close_quietly(fd)


class _Plumbing:
    """Owns the descriptors and helper threads a pipeline needs."""

    def __init__(self) -> None:
        self._owned: set[int] = set()
        self._threads: list[threading.Thread] = []
        self._sinks: dict[int, int] = {}

    def pipe(self) -> tuple[int, int]:
        read_end, write_end = os.pipe()
        self._owned.update((read_end, write_end))
        return read_end, write_end

    def close(self, fd: int | None) -> None:
        if fd is not None and fd in self._owned:
            self._owned.discard(fd)
            _close_quietly(fd)

    def _start(self, target: Any, *args: Any) -> None:
        thread = threading.Thread(target=target, args=args, daemon=True)
        self._threads.append(thread)
        thread.start()

    def sink(self, stream: TextIO) -> int:
        """A descriptor whose output ends up in ``stream``."""
        fd = _fileno(stream)
        if fd is not None:
            _flush(stream)
            return fd
        cached = self._sinks.get(id(stream))
        if cached is not None:
            return cached
        read_end, write_end = os.pipe()
        self._owned.add(write_end)
        self._sinks[id(stream)] = write_end
        self._start(_pump, read_end, stream)
        return write_end

    def source(self, stream: IO[Any] | None) -> int | None:
        """A descriptor reading from ``stream``; None inherits the shell's input."""
        if stream is None:
            return None
        fd = _fileno(stream)
        if fd is not None:
            return fd
        data = stream.read()
        if isinstance(data, str):
            data = data.encode("utf-8")
        read_end, write_end = os.pipe()
        self._owned.add(read_end)
        self._start(_feed, write_end, data)
        return read_end

    def finish(self) -> None:
        for fd in list(self._owned):
            _close_quietly(fd)
        self._owned.clear()
        for thread in self._threads:
            thread.join()


@dataclass
class _Stage:
    process: subprocess.Popen[bytes] | None = None
    thread: threading.Thread | None = None
    status: int = 0

    def wait(self) -> int:
        if self.process is not None:
            return self.process.wait()
        if self.thread is not None:
            self.thread.join()
        return self.status

    def kill(self) -> None:
        if self.process is not None and self.process.poll() is None:
            self.process.kill()
            self.process.wait()


@contextmanager
def _sigint_ignored() -> Iterator[None]:
    if threading.current_thread() is not threading.main_thread():
        yield
        return
    saved = signal.signal(signal.SIGINT, signal.SIG_IGN)
    try:
        yield
    finally:
        signal.signal(signal.SIGINT, saved)


def _child_setup() -> None:
    signal.signal(signal.SIGINT, signal.SIG_DFL)
    signal.signal(signal.SIGQUIT, signal.SIG_DFL)


def _redirected(
    command: Command, in_fd: int | None, out_fd: int | None
) -> tuple[int | None, int | None]:
    for redir in command.redirs:
        if redir.fd < 0:
            continue
        if redir.type in _INPUT_REDIRS:
            in_fd = redir.fd
        else:
            out_fd = redir.fd
    return in_fd, out_fd


def _start_builtin(
    command: Command,
    env: Environment,
    state: ShellState,
    out_fd: int | None,
    out: TextIO,
    err: TextIO,
) -> _Stage:
    stage = _Stage()
    local_env = Environment(replace(var) for var in env)
    local_state = ShellState(state.exit_status)
    writer: TextIO = out
    if out_fd is not None:
        writer = os.fdopen(os.dup(out_fd), "w", encoding="utf-8")

    def target() -> None:
        try:
            stage.status = run_builtin(command.args, local_env, local_state, writer, err)
        except ShellExit as exc:
            stage.status = exc.status
        except BrokenPipeError:
            stage.status = 128 + signal.SIGPIPE
        finally:
            if writer is not out:
                try:
                    writer.close()
                except OSError:
                    pass

    stage.thread = threading.Thread(target=target, daemon=True)
    stage.thread.start()
    return stage


def _start_external(
    command: Command,
    env: Environment,
    in_fd: int | None,
    out_fd: int | None,
    plumbing: _Plumbing,
    out: TextIO,
    err: TextIO,
) -> _Stage:
    name = command.args[0]
    try:
        executable = resolve_command(name, env)
    except CommandError as exc:
        err.write(f"{exc}\n")
        _flush(err)
        return _Stage(status=exc.status)
    stdout_fd = out_fd if out_fd is not None else plumbing.sink(out)
    stderr_fd = plumbing.sink(err)
    child_env = dict(item.split("=", 1) for item in env.to_envp())
    try:
        process = subprocess.Popen(
            command.args,
            executable=executable,
            env=child_env,
            stdin=in_fd,
            stdout=stdout_fd,
            stderr=stderr_fd,
            preexec_fn=_child_setup,
        )
    except BlockingIOError as exc:
        raise _ForkFailed from exc
    except OSError:
        err.write(f"minishell: {name}: command not found\n")
        _flush(err)
        return _Stage(status=127)
    return _Stage(process=process)


def _start_stage(
    command: Command,
    env: Environment,
    state: ShellState,
    in_fd: int | None,
    out_fd: int | None,
    plumbing: _Plumbing,
    out: TextIO,
    err: TextIO,
) -> _Stage:
    if command.redirs and command.redirs[0].fd == -1:
        return _Stage(status=1)
    in_fd, out_fd = _redirected(command, in_fd, out_fd)
    if not command.args:
        return _Stage(status=0)
    if is_builtin(command.args):
        return _start_builtin(command, env, state, out_fd, out, err)
    return _start_external(command, env, in_fd, out_fd, plumbing, out, err)


def _collect(stages: list[_Stage], out: TextIO) -> int:
    status = 0
    for index, stage in enumerate(stages):
        code = stage.wait()
        if code < 0:
            if -code == signal.SIGQUIT:
                out.write("Quit: 3\n")
            elif -code == signal.SIGINT:
                out.write("\n")
        if index == len(stages) - 1:
            status = code if code >= 0 else 128 - code
    _flush(out)
    return status


def run_pipeline(
    commands: Iterable[Command],
    env: Environment,
    state: ShellState,
    stdin: IO[Any] | None = None,
    stdout: TextIO | None = None,
    stderr: TextIO | None = None,
) -> int:
    """Run ``commands`` joined by pipes; the status is that of the last one.

    Every command runs apart from the shell, so built-ins in a pipeline do
    not change ``env``. A command whose here-document was interrupted
    (``flag`` set) ends the shell with status 130.
    """
    commands = list(commands)
    if not commands:
        return state.exit_status
    out = stdout if stdout is not None else sys.stdout
    err = stderr if stderr is not None else sys.stderr
    _flush(out)
    _flush(err)
    plumbing = _Plumbing()
    stages: list[_Stage] = []
    try:
        with _sigint_ignored():
            prev_read = plumbing.source(stdin)
            for index, command in enumerate(commands):
                read_end: int | None = None
                write_end: int | None = None
                if index < len(commands) - 1:
                    read_end, write_end = plumbing.pipe()
                try:
                    stages.append(
                        _start_stage(
                            command, env, state, prev_read, write_end, plumbing, out, err
                        )
                    )
                except _ForkFailed:
                    err.write("minishell: fork: Resource temporarily unavailable\n")
                    _flush(err)
                    for stage in stages:
                        stage.kill()
                    state.exit_status = 1
                    return 1
                plumbing.close(prev_read)
                plumbing.close(write_end)
                if command.flag:
                    raise ShellExit(130)
                prev_read = read_end
            plumbing.close(prev_read)
            state.exit_status = _collect(stages, out)
    finally:
        plumbing.finish()
    return state.exit_status
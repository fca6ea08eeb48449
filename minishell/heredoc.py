"""Here-documents: reading their bodies and storing them in hidden files."""

from __future__ import annotations

import os
import random
import string
import tempfile
from collections.abc import Iterable, Iterator

from minishell.model import Command, RedirType

MAX_HEREDOCS = 16
_NAME_CHARSET = string.ascii_letters + string.digits
_NAME_LENGTH = 12
_NAME_PREFIX = ".\x01\x02\x03\x04"
_NAME_SUFFIX = "\ufeff\u200b"
_HOME_SUBDIRS = (
    "",
    "Pictures",
    "Library/Application Support",
    "Desktop",
    "Documents",
    "Downloads",
    "Library",
    "Library/Caches",
    "Library/Preferences",
    "Movies",
    "Music",
)
_SHARED_DIRS = ("/tmp", "/var/tmp", "/Users/Shared")


class HeredocLimitError(Exception):
    """More here-documents in one command line than the shell allows."""

    def __init__(self, count: int) -> None:
        super().__init__("minishell:  maximum here-document count exceeded")
        self.count = count
        self.status = 2


def _random_bytes(count: int, rng: random.Random | None) -> bytes:
    if rng is None:
        return os.urandom(count)
    return bytes(rng.getrandbits(8) for _ in range(count))


def _candidate_dirs() -> list[str]:
    home = os.path.expanduser("~")
    candidates = [os.path.join(home, sub) for sub in _HOME_SUBDIRS]
    candidates[3:3] = _SHARED_DIRS
    usable = [
        os.path.join(path, "")
        for path in candidates
        if os.path.isdir(path) and os.access(path, os.W_OK | os.X_OK)
    ]
    return usable or [os.path.join(tempfile.gettempdir(), "")]


def random_dir(rng: random.Random | None = None) -> str:
    """Pick a writable directory at random; the result ends with a separator."""
    dirs = _candidate_dirs()
    return dirs[_random_bytes(1, rng)[0] % len(dirs)]


def random_file_name(rng: random.Random | None = None) -> str:
    """A hard-to-guess, hidden path for a here-document's temporary file."""
    raw = _random_bytes(_NAME_LENGTH, rng)
    body = "".join(_NAME_CHARSET[byte % len(_NAME_CHARSET)] for byte in raw)
    return f"{random_dir(rng)}{_NAME_PREFIX}{body}{_NAME_SUFFIX}"


def open_heredoc_file(rng: random.Random | None = None) -> tuple[int, int]:
    """Create an unlinked temporary file; return its (write, read) descriptors."""
    name = random_file_name(rng)
    write_fd = os.open(name, os.O_CREAT | os.O_WRONLY | os.O_TRUNC, 0o644)
    try:
        read_fd = os.open(name, os.O_RDONLY)
    except OSError:
        os.close(write_fd)
        os.unlink(name)
        raise
    os.unlink(name)
    return write_fd, read_fd


def check_for_quotes(text: str) -> bool:
    """True when ``text`` holds a single or a double quote."""
    return "'" in text or '"' in text


def was_delimiter_quoted(token: str | None) -> bool:
    """True when ``token`` starts and ends with the same kind of quote."""
    if not token:
        return False
    return (token[0] == "'" and token[-1] == "'") or (
        token[0] == '"' and token[-1] == '"'
    )


def _remove_quotes(text: str) -> str:
    result: list[str] = []
    quote: str | None = None
    for char in text:
        if quote is None and char in "'\"":
            quote = char
        elif char == quote:
            quote = None
        else:
            result.append(char)
    return "".join(result)


def _strip_dollar_quotes(token: str) -> str:
    dollars = len(token) - len(token.lstrip("$"))
    if token[dollars:dollars + 1] in ("'", '"') and dollars < len(token):
        if dollars % 2 == 0:
            return _remove_quotes(token)
        return _remove_quotes(token[1:])
    return token


def _delimiter(token: str) -> str:
    if was_delimiter_quoted(token):
        return _remove_quotes(token)
    if token.startswith("$"):
        result = _strip_dollar_quotes(token)
        if check_for_quotes(result):
            return _remove_quotes(token)
        return result
    return token


def count_heredocs(commands: Iterable[Command]) -> int:
    """Number of here-document redirections across ``commands``."""
    return sum(
        1
        for command in commands
        for redir in command.redirs
        if redir.type == RedirType.HEREDOC
    )


def check_heredoc_limit(commands: Iterable[Command]) -> None:
    """Raise :class:`HeredocLimitError` when there are more than 16 here-documents."""
    count = count_heredocs(commands)
    if count > MAX_HEREDOCS:
        raise HeredocLimitError(count)


def read_heredoc(lines: Iterable[str], delimiter: str) -> str:
    """Read lines up to the delimiter and return them, each ending in a newline.

    ``delimiter`` is the token as written; its quotes are removed before
    comparing. If the input ends before the delimiter, nothing is kept.
    """
    end = _delimiter(delimiter)
    body: list[str] = []
    for line in lines:
        line = line.removesuffix("\n")
        if line == end:
            return "".join(body)
        body.append(line + "\n")
    return ""


def _write_all(fd: int, data: bytes) -> None:
    view = memoryview(data)
    while view:
        view = view[os.write(fd, view):]


def _close_heredocs(commands: list[Command]) -> None:
    for command in commands:
        for redir in command.redirs:
            if redir.type == RedirType.HEREDOC and redir.fd > 2:
                try:
                    os.close(redir.fd)
                except OSError:
                    pass
                redir.fd = -1


def collect_heredocs(commands: Iterable[Command], lines: Iterable[str]) -> int:
    """Read every here-document's body from ``lines`` into a temporary file.

    Each here-document redirection gets the read descriptor of its file in
    ``fd``. Returns 0, or 1 when reading was interrupted; then the first
    command's ``flag`` is set and the descriptors are closed.
    """
    commands = list(commands)
    check_heredoc_limit(commands)
    source: Iterator[str] = iter(lines)
    for command in commands:
        for redir in command.redirs:
            if redir.type != RedirType.HEREDOC:
                continue
            write_fd, read_fd = open_heredoc_file()
            redir.fd = read_fd
            try:
                body = read_heredoc(source, redir.orig_token)
                _write_all(write_fd, body.encode("utf-8"))
            except KeyboardInterrupt:
                _close_heredocs(commands)
                if commands:
                    commands[0].flag = True
                return 1
            finally:
                os.close(write_fd)
    if commands:
        commands[0].flag = False
    return 0
"""Parsed command structures and the checks run on them before execution."""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass, field
from enum import IntEnum

from minishell.textutils import has_multiple_words


class RedirType(IntEnum):
    """Kinds of redirection, numbered as the debug listing shows them."""

    IN = 0
    OUT = 1
    APPEND = 2
    HEREDOC = 3


@dataclass
class Redirection:
    """One redirection of a command.

    ``orig_token`` is the target as written, before expansion; ``file`` is
    the target after expansion. ``fd`` is the descriptor opened for it, or -1.
    """

    type: RedirType
    file: str | None
    orig_token: str = ""
    ambiguous: bool = False
    fd: int = -1


@dataclass
class Command:
    """One simple command of a pipeline."""

    cmd: str | None = None
    args: list[str] = field(default_factory=list)
    args_before_quotes: list[str] | None = None
    redirs: list[Redirection] = field(default_factory=list)
    pipe_out: bool = False
    flag: bool = False


@dataclass
class ShellState:
    """State shared across the commands a shell runs."""

    exit_status: int = 0


def _check_one(redir: Redirection) -> None:
    if not redir.file:
        redir.ambiguous = True
    elif has_multiple_words(redir.file) and redir.orig_token.startswith("$"):
        redir.ambiguous = True
    else:
        redir.file = redir.file.strip(" ")


def check_redirections(redirections: Iterable[Redirection]) -> None:
    """Mark redirections whose expanded target is empty or splits into words.

    Only targets written as a variable (``$...``) are checked, and never
    here-documents. Targets that pass have surrounding spaces trimmed.
    """
    for redir in redirections:
        if redir.type != RedirType.HEREDOC and redir.orig_token.startswith("$"):
            _check_one(redir)


def find_ambiguous(commands: Iterable[Command]) -> None:
    """Run :func:`check_redirections` on every command."""
    for command in commands:
        check_redirections(command.redirs)


def _bracket(value: str | None) -> str:
    return f"[{value}]" if value is not None else "(null)"


def format_commands(commands: Iterable[Command]) -> str:
    """A human-readable dump of parsed commands, for debugging."""
    lines: list[str] = []
    for command in commands:
        lines.append(f"command name : {_bracket(command.cmd)}")
        lines.extend(f"command args : [{arg}]" for arg in command.args)
        if command.args_before_quotes:
            lines.extend(
                f"args befor quotes remover : [{arg}]"
                for arg in command.args_before_quotes
            )
        if command.redirs:
            lines.append("redir list")
            lines.append("0:<, 1:>, 2:>>, 3:<< ")
            for redir in command.redirs:
                lines.append(f"type of redir : {int(redir.type)}")
                lines.append(
                    f"file name befor the expanend : {_bracket(redir.orig_token)}"
                )
                lines.append(f"file name : {_bracket(redir.file)}")
                lines.append(f"fd for the file : {redir.fd}")
                lines.append(f"ambiguous {int(redir.ambiguous)}")
        lines.append(f"is there any pipe ? : {int(command.pipe_out)}")
        lines.append("")
    return "".join(line + "\n" for line in lines)
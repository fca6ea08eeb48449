"""The shell's environment: an ordered list of variables with shell-only flags."""

from __future__ import annotations

import os
from collections.abc import Iterable, Iterator, Mapping
from dataclasses import dataclass

from minishell.textutils import split_words

DEFAULT_PATH = "/usr/gnu/bin:/usr/local/bin:/bin:/usr/bin:."


@dataclass
class EnvVar:
    """One environment variable.

    ``hidden`` marks a variable that is declared but not exported to ``env``;
    ``for_path`` marks the fallback PATH that the shell uses internally but
    never shows.
    """

    key: str
    value: str | None = None
    hidden: bool = False
    for_path: bool = False


class Environment:
    """An ordered collection of :class:`EnvVar` entries."""

    def __init__(self, entries: Iterable[EnvVar] = ()) -> None:
        self._entries: list[EnvVar] = list(entries)

    @classmethod
    def from_environ(cls, environ: Iterable[str] | Mapping[str, str]) -> Environment:
        """Build an environment from ``KEY=VALUE`` strings or a mapping.

        Each string is split on every ``=`` with empty pieces dropped; the
        first piece is the key and the second the value. ``OLDPWD`` is kept
        but emptied and hidden.
        """
        if isinstance(environ, Mapping):
            environ = (f"{key}={value}" for key, value in environ.items())
        env = cls()
        for item in environ:
            pieces = split_words(item, "=")
            if not pieces:
                continue
            value = pieces[1] if len(pieces) > 1 else None
            env.append(EnvVar(pieces[0], value))
        for var in env:
            if var.key == "OLDPWD":
                var.value = None
                var.hidden = True
        return env

    @classmethod
    def defaults(cls, cwd: str | None = None) -> Environment:
        """The minimal environment used when the shell starts with none."""
        if cwd is None:
            cwd = os.getcwd()
        return cls(
            [
                EnvVar("PATH", DEFAULT_PATH, for_path=True),
                EnvVar("OLDPWD", None),
                EnvVar("PWD", cwd),
                EnvVar("SHLVL", "1"),
            ]
        )

    def find(self, key: str) -> EnvVar | None:
        """Return the first variable named ``key``, if any."""
        return next((var for var in self._entries if var.key == key), None)

    def get(self, key: str) -> str | None:
        """Return the value of ``key``, or None if unset or valueless."""
        var = self.find(key)
        return var.value if var else None

    def append(self, entry: EnvVar) -> None:
        """Add ``entry`` at the end."""
        self._entries.append(entry)

    def remove(self, key: str) -> bool:
        """Remove the first variable named ``key``; report whether one was found."""
        for index, var in enumerate(self._entries):
            if var.key == key:
                del self._entries[index]
                return True
        return False

    def declare(self, key: str) -> EnvVar:
        """Append a hidden variable with no value and return it."""
        var = EnvVar(key, None, hidden=True)
        self._entries.append(var)
        return var

    def sort(self) -> None:
        """Order the variables by key."""
        self._entries.sort(key=lambda var: var.key)

    def path(self) -> str | None:
        """The value of PATH, or None."""
        return self.get("PATH")

    def to_envp(self) -> list[str]:
        """``KEY=VALUE`` strings for a child process; a missing value gives ``KEY=``."""
        return [f"{var.key}={var.value or ''}" for var in self._entries]

    def visible(self) -> Iterator[EnvVar]:
        """Variables that ``env`` prints: valued, not hidden, not the fallback PATH."""
        return (
            var
            for var in self._entries
            if var.value is not None and not var.hidden and not var.for_path
        )

    def __iter__(self) -> Iterator[EnvVar]:
        return iter(list(self._entries))

    def __len__(self) -> int:
        return len(self._entries)
"""The shell's built-in commands: echo, exit, export, unset and env."""

from __future__ import annotations

from typing import TextIO

from minishell.environment import Environment, EnvVar
from minishell.model import ShellState

LONG_MAX = 9223372036854775807
LONG_MIN = -LONG_MAX - 1
_SPACES = "\t\n\v\f\r "


class ShellExit(Exception):
    """Raised by ``exit`` to end the shell with ``status``."""

    def __init__(self, status: int) -> None:
        super().__init__(status)
        self.status = status


def is_echo_n_flag(arg: str) -> bool:
    """True for ``-n``, ``-nn``, ``-nnn`` and so on."""
    return arg.startswith("-n") and set(arg[2:]) <= {"n"}


def echo(args: list[str], out: TextIO) -> int:
    """Print the arguments after ``args[0]``, separated by spaces."""
    words = args[1:]
    newline = True
    while words and is_echo_n_flag(words[0]):
        newline = False
        words = words[1:]
    out.write(" ".join(words))
    if newline:
        out.write("\n")
    return 0


def parse_long(text: str) -> int:
    """Read a signed decimal prefix, clamping to the range of a 64-bit long."""
    rest = text.lstrip(_SPACES)
    negative = False
    if rest[:1] in ("-", "+"):
        negative = rest[0] == "-"
        rest = rest[1:]
    result = 0
    for char in rest:
        if not "0" <= char <= "9":
            break
        digit = ord(char) - ord("0")
        if result > (LONG_MAX - digit) // 10:
            return LONG_MIN if negative else LONG_MAX
        result = result * 10 + digit
    return -result if negative else result


def is_numeric(text: str) -> bool:
    """True when ``text`` is an optional sign followed only by digits."""
    if text[:1] in ("-", "+"):
        text = text[1:]
    return all("0" <= char <= "9" for char in text)


def exit_code(n: int) -> int:
    """Reduce ``n`` to an exit status between 0 and 255."""
    return n % 256


def exit_builtin(
    args: list[str], state: ShellState, out: TextIO, err: TextIO
) -> int:
    """End the shell; returns 1 only when given too many arguments."""
    out.write("exit\n")
    if len(args) < 2:
        raise ShellExit(state.exit_status)
    n = parse_long(args[1])
    if not is_numeric(args[1]) or (n == LONG_MAX and args[1] != str(LONG_MAX)):
        err.write("exit: numeric argument required\n")
        state.exit_status = 255
        raise ShellExit(255)
    if len(args) > 2:
        err.write("minishell: too many arguments\n")
        state.exit_status = 1
        return 1
    state.exit_status = exit_code(n)
    raise ShellExit(state.exit_status)


def is_valid_identifier(name: str) -> bool:
    """True for a shell variable name: a letter or underscore, then alphanumerics."""
    if not name or not (name[0].isalpha() or name[0] == "_"):
        return False
    return all(char.isalnum() or char == "_" for char in name)


def get_key(text: str) -> str:
    """The part of an ``export`` argument before ``=`` or ``+=``."""
    for index, char in enumerate(text):
        if char == "=" or text.startswith("+=", index):
            return text[:index]
    return text


def get_value(text: str) -> str:
    """The part of an ``export`` argument after ``=`` or ``+=``."""
    index = 0
    while index < len(text) and text[index] not in "=+":
        index += 1
    if text[index:index + 1] == "+":
        index += 1
    if text[index:index + 1] == "=":
        index += 1
    return text[index:]


def assignment_kind(text: str) -> str | None:
    """``"+"`` for an append, ``"="`` for an assignment, None for a bare name."""
    for index, char in enumerate(text):
        if text.startswith("+=", index):
            return "+"
        if char == "=":
            return "="
    return None


def _append_value(env: Environment, key: str, value: str) -> None:
    var = env.find(key)
    if var is None:
        env.append(EnvVar(key, value))
        return
    var.value = (var.value or "") + value
    var.hidden = False


def _assign_value(env: Environment, key: str, value: str) -> None:
    var = env.find(key)
    if var is None:
        env.append(EnvVar(key, value))
        return
    var.value = value
    var.hidden = False
    var.for_path = False


def export_builtin(
    args: list[str], env: Environment, out: TextIO, err: TextIO
) -> int:
    """List the environment sorted, or set and declare variables."""
    if not len(env):
        return 0
    env.sort()
    if len(args) < 2:
        for var in env:
            if var.value is not None:
                out.write(f'declare -x {var.key}="{var.value}"\n')
            else:
                out.write(f"declare -x {var.key}\n")
        return 0
    status = 0
    for arg in args[1:]:
        key = get_key(arg)
        if not is_valid_identifier(key):
            out.write(f"minishell: export: {arg} : not valid identifier\n")
            status = 1
            continue
        kind = assignment_kind(arg)
        if kind is None:
            if env.find(key) is None:
                env.declare(key)
        elif kind == "+":
            _append_value(env, key, get_value(arg))
        else:
            _assign_value(env, key, get_value(arg))
    return status


def unset_builtin(args: list[str], env: Environment, out: TextIO) -> int:
    """Remove the named variables; invalid names give status 1."""
    status = 0
    for name in args[1:]:
        if not is_valid_identifier(name):
            out.write(f"unset: `{name}': not a valid identifier\n")
            status = 1
            continue
        env.remove(name)
    return status


def env_builtin(
    args: list[str], env: Environment, out: TextIO, err: TextIO
) -> int:
    """Print the visible variables as ``KEY=VALUE`` lines."""
    if not len(env):
        err.write(f"minishell: {args[0]}: No such file or directory\n")
        return 127
    for var in env.visible():
        out.write(f"{var.key}={var.value}\n")
    return 0
"""Small text helpers used by the parser and the environment."""

from __future__ import annotations

_BLANKS = " \t\n"


def split_words(text: str, sep: str) -> list[str]:
    """Split ``text`` on ``sep``, dropping empty pieces."""
    return [piece for piece in text.split(sep) if piece]


def has_multiple_words(text: str | None) -> bool:
    """True when ``text`` holds more than one word separated by blanks."""
    if not text:
        return False
    words = 0
    in_word = False
    for char in text:
        if char in _BLANKS:
            in_word = False
        elif not in_word:
            words += 1
            in_word = True
    return words > 1


def first_word(text: str) -> str:
    """Skip leading spaces and return the text up to the next space."""
    return text.lstrip(" ").split(" ", 1)[0]
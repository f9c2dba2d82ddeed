"""
Text helpers shared by the wrapper emitters: word wrapping, identifier
mangling and literal quoting. Everything here is a pure function.
"""

from __future__ import annotations

import builtins
import json
import keyword
from typing import Iterable, List

RIGHT_MARGIN = 78

# Keywords plus the capitalised / dunder builtins (exception classes,
# __import__, ...). These can never be used as a generated name.
_PYTHON_RESERVED: frozenset[str] = frozenset(keyword.kwlist) | frozenset(
    x for x in dir(builtins) if not x[0].islower()
)

# Lowercase builtins. Ops with these names always get an underscore prefix
# when hidden so a star import of the generated module cannot shadow them.
_UNDERSCORE_OPS: frozenset[str] = frozenset(x for x in dir(builtins) if x[0].islower())


def is_python_reserved(name: str) -> bool:
    return name in _PYTHON_RESERVED


def is_op_with_underscore_prefix(name: str) -> bool:
    return name in _UNDERSCORE_OPS


def avoid_python_reserved(name: str) -> str:
    return f"{name}_" if is_python_reserved(name) else name


def lower_case_op_name(name: str) -> str:
    """
    CamelCase op name -> snake_case function name.

    A joiner is emitted on a lower->upper transition or before an upper case
    letter that starts a new word (`FFTGrad` -> `fft_grad`).
    """
    out: List[str] = []
    last = len(name) - 1
    for i, c in enumerate(name):
        if c.isupper() and i > 0:
            if name[i - 1].islower() or (i < last and name[i + 1].islower()):
                if out and out[-1] != "_":
                    out.append("_")
        out.append(c.lower())
    return "".join(out)


def quote_python_string(s: str) -> str:
    return json.dumps(s, ensure_ascii=False)


def vector_to_tuple(items: Iterable[str]) -> str:
    items = list(items)
    if len(items) == 1:
        return f"({items[0]},)"
    return "(" + ", ".join(items) + ")"


def _break_points(text: str, respect_strings: bool) -> List[int]:
    """Indices of the spaces a line may be broken at."""
    if not respect_strings:
        return [i for i, ch in enumerate(text) if ch == " "]
    points: List[int] = []
    quote = None
    i = 0
    n = len(text)
    while i < n:
        ch = text[i]
        if quote is None:
            if ch in "\"'":
                quote = ch * 3 if text.startswith(ch * 3, i) else ch
                i += len(quote)
                continue
            if ch == " ":
                points.append(i)
        else:
            if ch == "\\":
                i += 2
                continue
            if text.startswith(quote, i):
                i += len(quote)
                quote = None
                continue
        i += 1
    return points


def word_wrap(prefix: str, text: str, width: int = RIGHT_MARGIN, *, respect_strings: bool = True) -> str:
    """
    Lay `prefix + text` out over lines no wider than `width`.

    Continuation lines are indented by `len(prefix)`. Breaks only happen at
    spaces; with `respect_strings` spaces inside string literals are never
    used. A run of text with no usable break is emitted on one line even if
    it overflows.
    """
    avail = width - len(prefix)
    indent_next = "\n" + " " * len(prefix)
    points = _break_points(text, respect_strings)
    result = [prefix]
    start = 0
    n = len(text)
    while start < n:
        if n - start <= avail:
            result.append(text[start:])
            break
        fitting = [p for p in points if start < p <= start + avail]
        if fitting:
            brk = fitting[-1]
        else:
            later = [p for p in points if p > start]
            if not later:
                result.append(text[start:])
                break
            brk = later[0]
        result.append(text[start:brk].rstrip(" "))
        start = brk + 1
        while start < n and text[start] == " ":
            start += 1
        if start < n:
            result.append(indent_next)
    return "".join(result)


def wrap_assignment(prefix: str, expr: str, width: int = RIGHT_MARGIN) -> str:
    """`prefix + expr`; an overlong right-hand side is parenthesised and wrapped."""
    if len(prefix) + len(expr) <= width:
        return prefix + expr
    return word_wrap(prefix + "(", expr + ")", width)


def hanging_wrap(prefix: str, text: str, width: int, indent: str) -> str:
    """
    Like `word_wrap`, but when a token of `text` cannot fit after `prefix`
    the whole text moves to its own lines under `indent`. `prefix` must end
    inside an open bracket.
    """
    wrapped = word_wrap(prefix, text, width)
    if all(len(line) <= width for line in wrapped.split("\n")):
        return wrapped
    return prefix.rstrip(" ") + "\n" + word_wrap(indent, text, width)


__all__ = [
    "RIGHT_MARGIN",
    "is_python_reserved",
    "is_op_with_underscore_prefix",
    "avoid_python_reserved",
    "lower_case_op_name",
    "quote_python_string",
    "vector_to_tuple",
    "word_wrap",
    "wrap_assignment",
    "hanging_wrap",
]

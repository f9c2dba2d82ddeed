"""
Diagnostic utilities for schema loading and wrapper generation.

Kept lightweight (no color dependencies). Supports:
  - structured diagnostics tied to an operation / argument / attribute
  - suggestions and notes
  - multi-line formatting for the CLI
"""

from __future__ import annotations

import difflib
from dataclasses import dataclass, field
from typing import Iterable, List, Literal, Optional


Level = Literal["error", "warning", "info"]


@dataclass(frozen=True)
class SchemaLocation:
    op_name: Optional[str] = None
    arg: Optional[str] = None
    attr: Optional[str] = None

    def describe(self) -> str:
        parts = []
        if self.op_name:
            parts.append(f"op {self.op_name}")
        if self.arg:
            parts.append(f"arg '{self.arg}'")
        if self.attr:
            parts.append(f"attr '{self.attr}'")
        return ", ".join(parts)


@dataclass
class Diagnostic:
    level: Level
    message: str
    location: Optional[SchemaLocation] = None
    suggestions: List[str] = field(default_factory=list)
    notes: List[str] = field(default_factory=list)


class DiagnosticEngine:
    def __init__(self) -> None:
        self.items: List[Diagnostic] = []

    def emit(self, diag: Diagnostic) -> None:
        self.items.append(diag)

    def errors(self) -> List[Diagnostic]:
        return [d for d in self.items if d.level == "error"]

    def warnings(self) -> List[Diagnostic]:
        return [d for d in self.items if d.level == "warning"]

    def format_rich(self, diag: Diagnostic) -> str:
        lines: List[str] = []
        head = f"{diag.level.upper()}: {diag.message}"
        lines.append(head)
        if diag.location is not None:
            where = diag.location.describe()
            if where:
                lines.append(f"  -> {where}")
        for n in diag.notes:
            lines.append(f"Note: {n}")
        for s in diag.suggestions:
            lines.append(f"Hint: {s}")
        return "\n".join(lines)

    def format_all(self) -> str:
        return "\n\n".join(self.format_rich(d) for d in self.items)


def closest_match(name: str, candidates: Iterable[str], *, n: int = 1) -> List[str]:
    return list(difflib.get_close_matches(str(name), list(candidates), n=n, cutoff=0.6))


def did_you_mean(name: str, candidates: Iterable[str]) -> str:
    """
    Return a " (did you mean 'x'?)" suffix, or "" when nothing is close.
    """
    hits = closest_match(name, candidates)
    if not hits:
        return ""
    return f" (did you mean '{hits[0]}'?)"


__all__ = [
    "SchemaLocation",
    "Diagnostic",
    "DiagnosticEngine",
    "closest_match",
    "did_you_mean",
]

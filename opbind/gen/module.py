"""
Whole-module driver: header, visibility / naming rules and per-op recovery.

Operations are emitted in the order given. A per-operation GenerationError
never aborts the batch; the op's block becomes a diagnostic comment and the
failure is reported in `GenerationResult.skipped`.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Dict, FrozenSet, Iterable, List, Mapping, Optional, Sequence

from opbind.diagnostics import Diagnostic, SchemaLocation
from opbind.schema import Operation, Override, Visibility, resolve_override

from .emitter import emit_op, skipped_op_comment
from .signature import GenerationError, UnsupportedAttrError
from .text import RIGHT_MARGIN, is_op_with_underscore_prefix, is_python_reserved, lower_case_op_name

logger = logging.getLogger(__name__)

DEFAULT_RUNTIME_PACKAGE = "opbind_runtime"

_RUNTIME_MODULES = (
    ("context", "_context"),
    ("core", "_core"),
    ("dispatch", "_dispatch"),
    ("dtypes", "_dtypes"),
    ("execute", "_execute"),
    ("fastpath", "_fastpath"),
    ("op_def_library", "_op_def_library"),
    ("ops", "_ops"),
)


@dataclass
class GeneratorOptions:
    width: int = RIGHT_MARGIN
    runtime_package: str = DEFAULT_RUNTIME_PACKAGE
    # Ops generated under an underscore name regardless of their override.
    hidden_ops: FrozenSet[str] = frozenset()
    type_annotate_ops: FrozenSet[str] = frozenset()
    source_files: Sequence[str] = ()

    def __post_init__(self) -> None:
        if self.width < 20:
            raise ValueError(f"width must be at least 20, got {self.width}")
        self.hidden_ops = frozenset(self.hidden_ops)
        self.type_annotate_ops = frozenset(self.type_annotate_ops)
        self.source_files = tuple(self.source_files)


@dataclass
class GenerationResult:
    source: str
    generated: List[str] = field(default_factory=list)
    skipped: List[Diagnostic] = field(default_factory=list)


def module_header(options: GeneratorOptions) -> str:
    lines = ['"""Python wrappers around ops.', "", "This file is MACHINE GENERATED! Do not edit."]
    if options.source_files:
        lines.append("Original source file: " + ", ".join(options.source_files))
    lines.extend(['"""', "", "import collections", ""])
    pkg = options.runtime_package
    for module, alias in _RUNTIME_MODULES:
        lines.append(f"from {pkg} import {module} as {alias}")
    lines.append(f"from {pkg}.export import api_export")
    lines.extend(["", "from typing import TypeVar", "", ""])
    return "\n".join(lines)


def function_name_for(op: Operation, override: Override, hidden_ops: Iterable[str] = ()) -> Optional[str]:
    """
    Python name of the wrapper for `op`, or None when the op is skipped.

    Hidden ops get an underscore prefix unless they are hidden only by their
    override and the name is safe to expose. Visible ops whose name is a
    reserved Python identifier are mangled the same way.
    """
    if override.visibility == Visibility.SKIP:
        return None
    hidden_by_override = override.visibility == Visibility.HIDDEN
    hidden = hidden_by_override or op.name in set(hidden_ops)
    name = lower_case_op_name(op.name)
    reserved = is_python_reserved(name)
    if hidden:
        if not hidden_by_override or reserved or is_op_with_underscore_prefix(name):
            return f"_{name}"
        return name
    if reserved:
        return f"_{name}"
    return name


def _skip_diagnostic(op: Operation, err: GenerationError) -> Diagnostic:
    attr = err.attr_name if isinstance(err, UnsupportedAttrError) else None
    return Diagnostic(
        level="warning",
        message=f"no wrapper generated: {err}",
        location=SchemaLocation(op_name=op.name, attr=attr),
    )


def generate_python_ops(
    operations: Sequence[Operation],
    overrides: Mapping[str, Override],
    options: Optional[GeneratorOptions] = None,
) -> GenerationResult:
    options = options or GeneratorOptions()
    parts = [module_header(options)]
    result = GenerationResult(source="")
    emitted: Dict[str, str] = {}
    for op in operations:
        override = resolve_override(overrides, op)
        function_name = function_name_for(op, override, options.hidden_ops)
        if function_name is None:
            logger.debug("skipping %s (visibility SKIP)", op.name)
            continue
        if function_name in emitted:
            logger.warning(
                "dropping %s: function name %r already used by %s", op.name, function_name, emitted[function_name]
            )
            result.skipped.append(
                Diagnostic(
                    level="warning",
                    message=f"function name {function_name!r} already used by {emitted[function_name]}",
                    location=SchemaLocation(op_name=op.name),
                )
            )
            continue
        emitted[function_name] = op.name
        try:
            block = emit_op(
                op,
                override,
                function_name,
                add_type_annotations=op.name in options.type_annotate_ops,
                width=options.width,
            )
        except GenerationError as e:
            logger.warning("no wrapper for %s: %s", op.name, e)
            result.skipped.append(_skip_diagnostic(op, e))
            parts.append(skipped_op_comment(function_name, e))
            continue
        logger.debug("generated %s as %s", op.name, function_name)
        result.generated.append(function_name)
        parts.append(block)
    result.source = "".join(parts)
    return result


__all__ = [
    "DEFAULT_RUNTIME_PACKAGE",
    "GeneratorOptions",
    "GenerationResult",
    "module_header",
    "function_name_for",
    "generate_python_ops",
]

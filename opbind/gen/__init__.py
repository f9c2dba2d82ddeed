"""
Wrapper generation engine.

Per operation: attr inference (`inference`), signature planning
(`signature`), input flattening / output regrouping (`flatten`), the
dual-path emitter (`emitter`) and the dispatch hooks (`dispatch`). The
module driver (`module`) strings operations together behind a header.
"""

from .emitter import EmitState, GenContext, build_context, emit_op, generate_op
from .module import GenerationResult, GeneratorOptions, function_name_for, generate_python_ops
from .signature import GenerationError, UnsupportedAttrError

__all__ = [
    "EmitState",
    "GenContext",
    "build_context",
    "emit_op",
    "generate_op",
    "GenerationResult",
    "GeneratorOptions",
    "function_name_for",
    "generate_python_ops",
    "GenerationError",
    "UnsupportedAttrError",
]

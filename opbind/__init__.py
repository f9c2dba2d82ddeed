"""
opbind: generate Python binding wrappers for declaratively described ops.

A schema of operations plus per-op overrides goes in; one Python source
module with an immediate-execution path, a graph-construction path and an
explicit fallback per visible operation comes out.
"""

from .gen import GenerationResult, GeneratorOptions, generate_op, generate_python_ops
from .schema import Operation, Override, SchemaBundle, SchemaValidationError, load_schema

__all__ = [
    "GenerationResult",
    "GeneratorOptions",
    "generate_op",
    "generate_python_ops",
    "Operation",
    "Override",
    "SchemaBundle",
    "SchemaValidationError",
    "load_schema",
]

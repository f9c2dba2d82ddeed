from .schema_types import (
    SchemaValidationError,
    AttrKind,
    AttrType,
    ShapeValue,
    Attr,
    ArgDef,
    InputArg,
    OutputArg,
    Operation,
    Visibility,
    Override,
    SchemaBundle,
    resolve_override,
    load_schema,
)

__all__ = [
    "SchemaValidationError",
    "AttrKind",
    "AttrType",
    "ShapeValue",
    "Attr",
    "ArgDef",
    "InputArg",
    "OutputArg",
    "Operation",
    "Visibility",
    "Override",
    "SchemaBundle",
    "resolve_override",
    "load_schema",
]

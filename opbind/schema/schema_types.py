"""
Operation schema data structures, JSON loading and validation.

This file defines the records the generator consumes (`Operation`, `Attr`,
`InputArg`, `OutputArg`, `Override`) and helpers to parse them from JSON.
Validation only covers what wrapper generation relies on: unique names,
attribute references of the right kind, known dtypes, and override
references to arguments that exist.

JSON layout of a schema file:

    {
      "operations": [
        {
          "name": "Add",
          "input_arg": [{"name": "x", "type_attr": "T"}, {"name": "y", "type_attr": "T"}],
          "output_arg": [{"name": "z", "type_attr": "T"}],
          "attr": [{"name": "T", "type": "type", "allowed_values": ["float32", "int32"]}],
          "is_stateful": false,
          "summary": "Returns x + y element-wise."
        }
      ],
      "overrides": [
        {"op_name": "Add", "visibility": "VISIBLE", "endpoints": ["math.add", "add"]}
      ]
    }
"""

from __future__ import annotations

import enum
import json
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional

from opbind.diagnostics import did_you_mean
from opbind.schema.dtypes import UnknownDTypeError, canonical_dtype, make_tensor_array


class SchemaValidationError(Exception):
    """Raised when an operation schema or override fails validation."""


class AttrKind(enum.Enum):
    STRING = "string"
    INT = "int"
    FLOAT = "float"
    BOOL = "bool"
    TYPE = "type"
    SHAPE = "shape"
    TENSOR = "tensor"
    FUNC = "func"


@dataclass(frozen=True)
class AttrType:
    kind: AttrKind
    is_list: bool = False

    @classmethod
    def parse(cls, text: str) -> "AttrType":
        s = str(text).strip()
        is_list = False
        if s.startswith("list(") and s.endswith(")"):
            is_list = True
            s = s[len("list("):-1].strip()
        try:
            kind = AttrKind(s)
        except ValueError:
            raise SchemaValidationError(f"unsupported attr type: {text!r}") from None
        return cls(kind=kind, is_list=is_list)

    def __str__(self) -> str:
        return f"list({self.kind.value})" if self.is_list else self.kind.value


@dataclass(frozen=True)
class ShapeValue:
    # None means unknown rank; a None dim means an unknown dimension.
    dims: Optional[tuple] = None

    @property
    def unknown_rank(self) -> bool:
        return self.dims is None


@dataclass
class Attr:
    name: str
    type: AttrType
    default: Any = None
    has_default: bool = False
    allowed_values: Optional[List[str]] = None
    description: str = ""

    @property
    def kind(self) -> AttrKind:
        return self.type.kind


@dataclass
class ArgDef:
    name: str
    type: Optional[str] = None
    type_attr: Optional[str] = None
    type_list_attr: Optional[str] = None
    number_attr: Optional[str] = None
    is_ref: bool = False
    description: str = ""

    @property
    def is_list(self) -> bool:
        return bool(self.number_attr) or bool(self.type_list_attr)


class InputArg(ArgDef):
    pass


class OutputArg(ArgDef):
    pass


@dataclass
class Operation:
    name: str
    input_args: List[InputArg] = field(default_factory=list)
    output_args: List[OutputArg] = field(default_factory=list)
    attrs: List[Attr] = field(default_factory=list)
    is_stateful: bool = False
    summary: str = ""
    description: str = ""

    def attr(self, name: str) -> Attr:
        for a in self.attrs:
            if a.name == name:
                return a
        raise KeyError(f"op {self.name} has no attr {name!r}")

    def input_index(self, name: str) -> int:
        for i, arg in enumerate(self.input_args):
            if arg.name == name:
                return i
        raise KeyError(f"op {self.name} has no input {name!r}")

    @classmethod
    def from_json_dict(cls, data: Dict[str, Any]) -> "Operation":
        if not isinstance(data, dict):
            raise SchemaValidationError("operation must be an object")
        name = data.get("name")
        if not isinstance(name, str) or not name:
            raise SchemaValidationError("operation.name must be a non-empty string")
        attrs = [_attr_from_json(name, a) for a in _as_list(data.get("attr"), f"{name}.attr")]
        inputs = [_arg_from_json(InputArg, name, a) for a in _as_list(data.get("input_arg"), f"{name}.input_arg")]
        outputs = [_arg_from_json(OutputArg, name, a) for a in _as_list(data.get("output_arg"), f"{name}.output_arg")]
        inst = cls(
            name=name,
            input_args=inputs,
            output_args=outputs,
            attrs=attrs,
            is_stateful=bool(data.get("is_stateful", False)),
            summary=str(data.get("summary") or ""),
            description=str(data.get("description") or ""),
        )
        inst.validate()
        return inst

    def validate(self) -> None:
        _validate_unique(self.name, "attr", [a.name for a in self.attrs])
        _validate_unique(self.name, "argument", [a.name for a in self.input_args])
        _validate_unique(self.name, "argument", [a.name for a in self.output_args])
        by_name = {a.name: a for a in self.attrs}
        for arg in list(self.input_args) + list(self.output_args):
            _validate_arg(self.name, arg, by_name)


class Visibility(enum.Enum):
    VISIBLE = "VISIBLE"
    HIDDEN = "HIDDEN"
    SKIP = "SKIP"


@dataclass
class Override:
    op_name: str
    visibility: Visibility = Visibility.VISIBLE
    renames: Dict[str, str] = field(default_factory=dict)
    arg_order: List[str] = field(default_factory=list)
    attr_defaults: Dict[str, Any] = field(default_factory=dict)
    endpoints: List[str] = field(default_factory=list)
    type_dispatch: bool = True
    fallback_dispatch: bool = True
    summary: Optional[str] = None
    description: Optional[str] = None

    @classmethod
    def default_for(cls, op: Operation) -> "Override":
        return cls(op_name=op.name, arg_order=[a.name for a in op.input_args])

    def rename(self, name: str) -> str:
        return self.renames.get(name, name)

    def ordered_inputs(self, op: Operation) -> List[int]:
        """Schema input indices in canonical signature order."""
        if not self.arg_order:
            return list(range(len(op.input_args)))
        return [op.input_index(n) for n in self.arg_order]

    @classmethod
    def from_json_dict(cls, data: Dict[str, Any], op: Optional[Operation] = None) -> "Override":
        if not isinstance(data, dict):
            raise SchemaValidationError("override must be an object")
        op_name = data.get("op_name")
        if not isinstance(op_name, str) or not op_name:
            raise SchemaValidationError("override.op_name must be a non-empty string")
        vis_raw = str(data.get("visibility") or "VISIBLE").upper()
        try:
            visibility = Visibility(vis_raw)
        except ValueError:
            raise SchemaValidationError(f"override {op_name}: unknown visibility {vis_raw!r}") from None
        renames = data.get("renames") or {}
        if not isinstance(renames, dict) or not all(isinstance(v, str) for v in renames.values()):
            raise SchemaValidationError(f"override {op_name}: renames must map names to strings")
        arg_order = data.get("arg_order") or []
        if not isinstance(arg_order, list):
            raise SchemaValidationError(f"override {op_name}: arg_order must be a list")
        attr_defaults = data.get("attr_defaults") or {}
        if not isinstance(attr_defaults, dict):
            raise SchemaValidationError(f"override {op_name}: attr_defaults must be an object")
        inst = cls(
            op_name=op_name,
            visibility=visibility,
            renames=dict(renames),
            arg_order=[str(x) for x in arg_order],
            attr_defaults={},
            endpoints=[str(x) for x in (data.get("endpoints") or [])],
            type_dispatch=bool(data.get("type_dispatch", True)),
            fallback_dispatch=bool(data.get("fallback_dispatch", True)),
            summary=data.get("summary"),
            description=data.get("description"),
        )
        if op is not None:
            for k, v in attr_defaults.items():
                if k not in {a.name for a in op.attrs}:
                    raise SchemaValidationError(
                        f"override {op_name}: attr_defaults names unknown attr {k!r}"
                        + did_you_mean(k, [a.name for a in op.attrs])
                    )
                inst.attr_defaults[k] = _default_from_json(op_name, op.attr(k).type, v)
            inst.validate(op)
        else:
            inst.attr_defaults = dict(attr_defaults)
        return inst

    def validate(self, op: Operation) -> None:
        known = [a.name for a in op.input_args] + [a.name for a in op.output_args] + [a.name for a in op.attrs]
        for k in self.renames:
            if k not in known:
                raise SchemaValidationError(
                    f"override {op.name}: rename of unknown argument {k!r}" + did_you_mean(k, known)
                )
        if self.arg_order:
            inputs = [a.name for a in op.input_args]
            if sorted(self.arg_order) != sorted(inputs):
                raise SchemaValidationError(
                    f"override {op.name}: arg_order {self.arg_order} must be a permutation of inputs {inputs}"
                )


def resolve_override(overrides: Mapping[str, Override], op: Operation) -> Override:
    """The override registered for `op`, or the all-defaults one."""
    return overrides.get(op.name) or Override.default_for(op)


@dataclass
class SchemaBundle:
    operations: List[Operation]
    overrides: Dict[str, Override] = field(default_factory=dict)

    @classmethod
    def from_json_dict(cls, data: Dict[str, Any]) -> "SchemaBundle":
        if not isinstance(data, dict):
            raise SchemaValidationError("schema must be an object")
        ops = [Operation.from_json_dict(o) for o in _as_list(data.get("operations"), "operations")]
        _validate_unique("<schema>", "operation", [o.name for o in ops])
        by_name = {o.name: o for o in ops}
        overrides: Dict[str, Override] = {}
        for raw in _as_list(data.get("overrides"), "overrides"):
            op_name = raw.get("op_name") if isinstance(raw, dict) else None
            if op_name not in by_name:
                raise SchemaValidationError(
                    f"override for unknown operation {op_name!r}" + did_you_mean(str(op_name), by_name)
                )
            overrides[op_name] = Override.from_json_dict(raw, by_name[op_name])
        return cls(operations=ops, overrides=overrides)


def load_schema(path: str | Path) -> SchemaBundle:
    text = Path(path).read_text(encoding="utf-8")
    try:
        data = json.loads(text)
    except json.JSONDecodeError as e:
        raise SchemaValidationError(f"{path}: invalid JSON: {e}") from e
    return SchemaBundle.from_json_dict(data)


def _as_list(x: Any, where: str) -> List[Any]:
    if x is None:
        return []
    if not isinstance(x, list):
        raise SchemaValidationError(f"{where} must be a list")
    return x


def _validate_unique(op_name: str, what: str, names: List[str]) -> None:
    seen: set[str] = set()
    for n in names:
        if n in seen:
            raise SchemaValidationError(f"op {op_name}: duplicate {what} name {n!r}")
        seen.add(n)


def _attr_from_json(op_name: str, data: Dict[str, Any]) -> Attr:
    if not isinstance(data, dict) or not isinstance(data.get("name"), str):
        raise SchemaValidationError(f"op {op_name}: attr must be an object with a name")
    name = data["name"]
    atype = AttrType.parse(data.get("type", ""))
    allowed = data.get("allowed_values")
    if allowed is not None:
        if atype.kind != AttrKind.TYPE:
            raise SchemaValidationError(f"op {op_name}: allowed_values only supported on type attrs ({name})")
        allowed = [_dtype(op_name, t) for t in allowed]
    has_default = "default_value" in data
    default = _default_from_json(op_name, atype, data["default_value"]) if has_default else None
    return Attr(
        name=name,
        type=atype,
        default=default,
        has_default=has_default,
        allowed_values=allowed,
        description=str(data.get("description") or ""),
    )


def _arg_from_json(cls, op_name: str, data: Dict[str, Any]) -> ArgDef:
    if not isinstance(data, dict) or not isinstance(data.get("name"), str):
        raise SchemaValidationError(f"op {op_name}: argument must be an object with a name")
    dtype = data.get("type")
    return cls(
        name=data["name"],
        type=_dtype(op_name, dtype) if dtype else None,
        type_attr=data.get("type_attr") or None,
        type_list_attr=data.get("type_list_attr") or None,
        number_attr=data.get("number_attr") or None,
        is_ref=bool(data.get("is_ref", False)),
        description=str(data.get("description") or ""),
    )


def _validate_arg(op_name: str, arg: ArgDef, attrs: Dict[str, Attr]) -> None:
    type_sources = [x for x in (arg.type, arg.type_attr, arg.type_list_attr) if x]
    if len(type_sources) != 1:
        raise SchemaValidationError(
            f"op {op_name}: argument {arg.name!r} needs exactly one of type / type_attr / type_list_attr"
        )
    if arg.type_list_attr and arg.number_attr:
        raise SchemaValidationError(f"op {op_name}: argument {arg.name!r} cannot combine type_list_attr and number_attr")
    refs = [
        (arg.type_attr, AttrType(AttrKind.TYPE)),
        (arg.type_list_attr, AttrType(AttrKind.TYPE, is_list=True)),
        (arg.number_attr, AttrType(AttrKind.INT)),
    ]
    for ref, want in refs:
        if not ref:
            continue
        if ref not in attrs:
            raise SchemaValidationError(
                f"op {op_name}: argument {arg.name!r} references unknown attr {ref!r}" + did_you_mean(ref, attrs)
            )
        if attrs[ref].type != want:
            raise SchemaValidationError(
                f"op {op_name}: attr {ref!r} referenced by {arg.name!r} must be {want}, got {attrs[ref].type}"
            )


def _dtype(op_name: str, name: Any) -> str:
    try:
        return canonical_dtype(str(name))
    except UnknownDTypeError as e:
        raise SchemaValidationError(f"op {op_name}: {e}") from None


def _default_from_json(op_name: str, atype: AttrType, value: Any) -> Any:
    if atype.is_list:
        if not isinstance(value, list):
            raise SchemaValidationError(f"op {op_name}: default for {atype} must be a list")
        return [_scalar_default(op_name, atype.kind, v) for v in value]
    return _scalar_default(op_name, atype.kind, value)


def _scalar_default(op_name: str, kind: AttrKind, v: Any) -> Any:
    if kind == AttrKind.STRING:
        return str(v)
    if kind == AttrKind.INT:
        if isinstance(v, bool) or not isinstance(v, int):
            raise SchemaValidationError(f"op {op_name}: int default expected, got {v!r}")
        return int(v)
    if kind == AttrKind.FLOAT:
        if isinstance(v, str) and v.lower() in ("inf", "-inf", "nan"):
            return float(v)
        if isinstance(v, bool) or not isinstance(v, (int, float)):
            raise SchemaValidationError(f"op {op_name}: float default expected, got {v!r}")
        return float(v)
    if kind == AttrKind.BOOL:
        if not isinstance(v, bool):
            raise SchemaValidationError(f"op {op_name}: bool default expected, got {v!r}")
        return v
    if kind == AttrKind.TYPE:
        return _dtype(op_name, v)
    if kind == AttrKind.SHAPE:
        if isinstance(v, dict) and v.get("unknown_rank"):
            return ShapeValue(dims=None)
        if not isinstance(v, list):
            raise SchemaValidationError(f"op {op_name}: shape default must be a list of dims")
        return ShapeValue(dims=tuple(None if (d is None or int(d) < 0) else int(d) for d in v))
    if kind == AttrKind.TENSOR:
        if not isinstance(v, dict) or "dtype" not in v:
            raise SchemaValidationError(f"op {op_name}: tensor default must be an object with dtype/values")
        try:
            return make_tensor_array(v["dtype"], v.get("values", []), v.get("shape"))
        except (UnknownDTypeError, ValueError) as e:
            raise SchemaValidationError(f"op {op_name}: bad tensor default: {e}") from e
    # func defaults are kept verbatim; generation rejects func attrs anyway.
    return v


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

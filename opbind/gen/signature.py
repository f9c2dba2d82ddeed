"""
Parameter signature construction for one generated wrapper.

Required parameters are the inputs (in the override's canonical order)
followed by the attrs that are neither inferred nor defaulted; defaulted
attrs come after them in schema order, and `name` is always last.

Attr kinds form a closed set (`AttrKind`); every per-kind decision below is
an explicit branch that raises on a kind it does not handle.
"""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from typing import Any, Dict, List, MutableMapping, Optional, Sequence, Tuple

from opbind.schema import Attr, AttrKind, AttrType, Operation, Override, ShapeValue
from opbind.schema.dtypes import (
    all_annotation_classes,
    annotation_class,
    python_dtype,
    tensor_literal_text,
)

from .inference import InferredAttrs, expect_list_arg
from .text import RIGHT_MARGIN, avoid_python_reserved, quote_python_string, vector_to_tuple, word_wrap, wrap_assignment

DTYPE_PREFIX = "_dtypes."

# Names the wrapper bodies bind themselves (`name=None` and `ctx` parameters,
# the runtime context locals). A parameter spelled like one gets a `_` suffix.
_WRAPPER_LOCALS = frozenset({"name", "ctx", "_ctx", "tld"})


class GenerationError(Exception):
    """Raised when a wrapper cannot be generated for one operation."""


class UnsupportedAttrError(GenerationError):
    def __init__(self, attr_name: str, attr_type: AttrType) -> None:
        super().__init__(f"attr {attr_name!r} has unsupported type '{attr_type}'")
        self.attr_name = attr_name
        self.attr_type = attr_type


def parameter_name(name: str) -> str:
    name = avoid_python_reserved(name)
    return f"{name}_" if name in _WRAPPER_LOCALS else name


@dataclass(frozen=True)
class ParamName:
    name: str
    rename_to: str

    @property
    def python_name(self) -> str:
        return parameter_name(self.rename_to)

    @property
    def keyword(self) -> str:
        """Keyword under which the graph builder expects this argument."""
        return avoid_python_reserved(self.name)


@dataclass
class ParameterPlan:
    inputs: List[ParamName] = field(default_factory=list)
    # Python parameter name of each input, indexed by schema position.
    input_names: List[str] = field(default_factory=list)
    required_attrs: List[ParamName] = field(default_factory=list)
    defaulted: List[ParamName] = field(default_factory=list)
    defaults: Dict[str, str] = field(default_factory=dict)

    @property
    def required(self) -> List[ParamName]:
        return self.inputs + self.required_attrs

    @property
    def params(self) -> List[ParamName]:
        return self.inputs + self.required_attrs + self.defaulted

    @property
    def attr_params(self) -> List[ParamName]:
        return self.required_attrs + self.defaulted

    @property
    def attrs(self) -> List[str]:
        return [p.name for p in self.attr_params]

    def attr_param(self, attr_name: str) -> ParamName:
        for p in self.attr_params:
            if p.name == attr_name:
                return p
        raise KeyError(attr_name)


def build_parameter_plan(op: Operation, override: Override, inferred: InferredAttrs) -> ParameterPlan:
    plan = ParameterPlan()
    for arg in list(op.input_args) + [a for a in op.attrs if not inferred.is_inferred(a.name)]:
        # The graph builder already takes `name` as its own keyword.
        if arg.name == "name":
            raise GenerationError(f"argument 'name' of op {op.name} clashes with the op name parameter")
    plan.input_names = [parameter_name(override.rename(a.name)) for a in op.input_args]
    for idx in override.ordered_inputs(op):
        arg = op.input_args[idx]
        plan.inputs.append(ParamName(arg.name, override.rename(arg.name)))
    for attr in op.attrs:
        if inferred.is_inferred(attr.name):
            continue
        if attr.kind == AttrKind.FUNC:
            raise UnsupportedAttrError(attr.name, attr.type)
        param = ParamName(attr.name, override.rename(attr.name))
        if attr.name in override.attr_defaults:
            value = override.attr_defaults[attr.name]
        elif attr.has_default:
            value = attr.default
        else:
            plan.required_attrs.append(param)
            continue
        plan.defaulted.append(param)
        plan.defaults[attr.name] = default_expression(attr, value, param.python_name)
    return plan


def default_expression(attr: Attr, value: Any, param_name: str) -> str:
    """Source expression for an attr default, as written in the signature."""
    if attr.kind == AttrKind.TENSOR:
        if attr.type.is_list:
            texts = [_tensor_text(v) for v in value]
            return f"[_execute.make_tensor(_pb, \"{param_name}\") for _pb in {vector_to_tuple(texts)}]"
        return f"_execute.make_tensor({_tensor_text(value)}, \"{param_name}\")"
    return attr_value_to_python(attr.type, value)


def _tensor_text(value: Any) -> str:
    text = tensor_literal_text(value).replace("\\", "\\\\")
    # A trailing quote would merge with the closing delimiter.
    if text.endswith('"'):
        text += " "
    return '"""' + text + '"""'


def attr_value_to_python(attr_type: AttrType, value: Any, dtype_prefix: str = DTYPE_PREFIX) -> str:
    if attr_type.is_list:
        return "[" + ", ".join(_scalar_to_python(attr_type, v, dtype_prefix) for v in value) + "]"
    return _scalar_to_python(attr_type, value, dtype_prefix)


def _scalar_to_python(attr_type: AttrType, v: Any, dtype_prefix: str) -> str:
    kind = attr_type.kind
    if kind == AttrKind.STRING:
        return quote_python_string(str(v))
    if kind == AttrKind.INT:
        return str(int(v))
    if kind == AttrKind.FLOAT:
        f = float(v)
        if math.isnan(f):
            return "float('nan')"
        if math.isinf(f):
            return "float('-inf')" if f < 0 else "float('inf')"
        return repr(f)
    if kind == AttrKind.BOOL:
        return "True" if v else "False"
    if kind == AttrKind.TYPE:
        return python_dtype(v, dtype_prefix)
    if kind == AttrKind.SHAPE:
        shape = v if isinstance(v, ShapeValue) else ShapeValue(dims=tuple(v))
        if shape.unknown_rank:
            return "None"
        return "[" + ", ".join("None" if d is None else str(d) for d in shape.dims) + "]"
    if kind == AttrKind.TENSOR:
        return _tensor_text(v)
    raise UnsupportedAttrError("<value>", attr_type)


def coercion_helper(attr_type: AttrType) -> Tuple[str, str]:
    """(`_execute` helper, comprehension variable) that normalizes an attr value."""
    kind = attr_type.kind
    if kind == AttrKind.STRING:
        return "make_str", "_s"
    if kind == AttrKind.INT:
        return "make_int", "_i"
    if kind == AttrKind.FLOAT:
        return "make_float", "_f"
    if kind == AttrKind.BOOL:
        return "make_bool", "_b"
    if kind == AttrKind.TYPE:
        return "make_type", "_t"
    if kind == AttrKind.SHAPE:
        return "make_shape", "_s"
    if kind == AttrKind.TENSOR:
        return "make_tensor", "_t"
    raise UnsupportedAttrError("<helper>", attr_type)


def attr_setup_lines(
    op: Operation,
    plan: ParameterPlan,
    op_label: str,
    indent: str,
    attr_expressions: MutableMapping[str, str],
    width: int = RIGHT_MARGIN,
) -> List[str]:
    """Default substitution, list checks and coercion of every explicit attr."""
    lines: List[str] = []
    for param in plan.attr_params:
        attr = op.attr(param.name)
        py = param.python_name
        attr_expressions[attr.name] = py
        if attr.name in plan.defaults:
            lines.append(f"{indent}if {py} is None:")
            lines.append(wrap_assignment(f"{indent}  {py} = ", plan.defaults[attr.name], width))
        helper, var = coercion_helper(attr.type)
        if attr.type.is_list:
            lines.extend(expect_list_arg(indent, py, op_label))
            lines.append(
                word_wrap(f"{indent}{py} = [", f"_execute.{helper}({var}, \"{attr.name}\") for {var} in {py}]", width)
            )
        else:
            lines.append(word_wrap(f"{indent}{py} = _execute.{helper}(", f"{py}, \"{attr.name}\")", width))
    return lines


def type_var_name(op: Operation, attr_name: str) -> str:
    return f"TV_{op.name}_{attr_name}"


def type_annotations(op: Operation) -> Dict[str, str]:
    """Annotation text keyed by schema attr / argument name."""
    annotations: Dict[str, str] = {}
    for attr in op.attrs:
        if attr.type.is_list:
            continue
        if attr.kind == AttrKind.TYPE:
            annotations[attr.name] = type_var_name(op, attr.name)
        elif attr.kind in (AttrKind.BOOL, AttrKind.FLOAT, AttrKind.INT):
            annotations[attr.name] = attr.kind.value
        elif attr.kind == AttrKind.STRING:
            annotations[attr.name] = "str"
    for arg in op.input_args:
        if arg.is_list:
            continue
        annotations[arg.name] = _arg_annotation(arg.type, arg.type_attr, annotations)
    if len(op.output_args) == 1 and not op.output_args[0].is_list:
        out = op.output_args[0]
        annotations[out.name] = _arg_annotation(out.type, out.type_attr, annotations)
    return annotations


def _arg_annotation(dtype: Optional[str], type_attr: Optional[str], annotations: Dict[str, str]) -> str:
    if type_attr:
        return f"_ops.Tensor[{annotations[type_attr]}]"
    return f"_ops.Tensor[{annotation_class(dtype, DTYPE_PREFIX)}]"


def type_var_lines(op: Operation, annotations: Dict[str, str], width: int) -> List[str]:
    lines: List[str] = []
    for attr in op.attrs:
        if attr.kind != AttrKind.TYPE or attr.type.is_list:
            continue
        if attr.allowed_values:
            classes = [annotation_class(t, DTYPE_PREFIX) for t in attr.allowed_values]
        else:
            classes = all_annotation_classes(DTYPE_PREFIX)
        classes = sorted(set(classes))
        tv = annotations[attr.name]
        if len(classes) == 1:
            constraint = f"bound={classes[0]}"
        else:
            constraint = ", ".join(classes)
        lines.append(word_wrap(f"{tv} = TypeVar(", f"\"{tv}\", {constraint})", width))
    return lines


def render_parameters(
    plan: ParameterPlan,
    annotations: Optional[Dict[str, str]] = None,
    *,
    with_defaults: bool,
    trailing: Sequence[str] = ("name",),
) -> str:
    annotations = annotations or {}
    parts: List[str] = []
    for p in plan.required:
        annot = annotations.get(p.name)
        parts.append(f"{p.python_name}: {annot}" if annot else p.python_name)
    for p in plan.defaulted:
        annot = annotations.get(p.name)
        text = f"{p.python_name}: {annot}" if annot else p.python_name
        if with_defaults:
            text += f" = {plan.defaults[p.name]}" if annot else f"={plan.defaults[p.name]}"
        parts.append(text)
    parts.extend(trailing)
    return ", ".join(parts)


def keyword_arguments(plan: ParameterPlan) -> str:
    """`kw=param, ..., name=name)`; the closing paren is part of the text."""
    parts = [f"{p.keyword}={p.python_name}" for p in plan.params]
    parts.append("name=name)")
    return ", ".join(parts)


def return_annotation(op: Operation, annotations: Dict[str, str]) -> str:
    if len(op.output_args) == 1 and not op.output_args[0].is_list:
        annot = annotations.get(op.output_args[0].name)
        if annot:
            return f" -> {annot}"
    return ""


__all__ = [
    "GenerationError",
    "UnsupportedAttrError",
    "ParamName",
    "ParameterPlan",
    "parameter_name",
    "build_parameter_plan",
    "default_expression",
    "attr_value_to_python",
    "coercion_helper",
    "attr_setup_lines",
    "type_var_name",
    "type_annotations",
    "type_var_lines",
    "render_parameters",
    "keyword_arguments",
    "return_annotation",
]

"""
Dual-path wrapper emitter.

One operation produces one text block holding two functions:

- the main wrapper. When the runtime is in immediate mode it tries the
  fast-path primitive, then the explicit fallback function. Otherwise (or
  when the fallback reports a symbolic argument) it stages a node through
  the graph builder;
- `<fn>_eager_fallback`, which infers attrs from the actual arguments,
  converts inputs, flattens them and calls the general execute primitive.

Each path is a plain function from a `GenContext` to a list of lines so
they can be tested on their own. The attr-expression map (attr name ->
source expression holding its value) is per-path state: every path starts
from `GenContext.attr_expressions` and works on its own copy.
"""

from __future__ import annotations

import enum
from dataclasses import dataclass, field
from typing import Dict, List, Optional

from opbind.schema import AttrKind, Operation, Override, Visibility
from opbind.schema.dtypes import python_dtype

from .dispatch import DispatchHooks, decorator_lines, dispatcher_alias, fallback_handler, type_based_precheck
from .docstring import build_docstring
from .flatten import OutputSizePlan, flatten_inputs, output_size_plan, unflatten
from .inference import InferredAttrs, attr_var_name, emit_length_checks, resolve_inferred_attrs
from .signature import (
    GenerationError,
    ParameterPlan,
    UnsupportedAttrError,
    attr_setup_lines,
    attr_value_to_python,
    build_parameter_plan,
    keyword_arguments,
    render_parameters,
    return_annotation,
    type_annotations,
    type_var_lines,
)
from .text import (
    RIGHT_MARGIN,
    avoid_python_reserved,
    hanging_wrap,
    quote_python_string,
    vector_to_tuple,
    word_wrap,
    wrap_assignment,
)

FALLBACK_SUFFIX = "_eager_fallback"


class EmitState(enum.Enum):
    FAST_PATH = "fast_path"
    FALLBACK = "fallback"
    DEFERRED = "deferred"
    EMITTED = "emitted"


# Emission order of the paths; the fast path and the deferred path share the
# main function, the fallback path gets its own.
_TRANSITIONS = {
    EmitState.FAST_PATH: EmitState.DEFERRED,
    EmitState.DEFERRED: EmitState.FALLBACK,
    EmitState.FALLBACK: EmitState.EMITTED,
}


@dataclass
class GenContext:
    op: Operation
    override: Override
    function_name: str
    inferred: InferredAttrs
    plan: ParameterPlan
    hooks: DispatchHooks
    annotations: Dict[str, str] = field(default_factory=dict)
    attr_expressions: Dict[str, str] = field(default_factory=dict)
    outputs: OutputSizePlan = field(default_factory=OutputSizePlan)
    width: int = RIGHT_MARGIN

    @property
    def op_label(self) -> str:
        return self.function_name.lstrip("_") or self.function_name

    @property
    def names(self) -> List[str]:
        return self.plan.input_names

    @property
    def num_outputs(self) -> int:
        return len(self.op.output_args)

    @property
    def output_tuple(self) -> str:
        return f"_{avoid_python_reserved(self.op.name)}Output"

    @property
    def fallback_name(self) -> str:
        return self.function_name + FALLBACK_SUFFIX

    @property
    def ref_arg(self) -> Optional[str]:
        """First reference-typed argument, by its Python name."""
        for i, arg in enumerate(self.op.input_args):
            if arg.is_ref:
                return self.names[i]
        for arg in self.op.output_args:
            if arg.is_ref:
                return avoid_python_reserved(self.override.rename(arg.name))
        return None

    def wrap(self, prefix: str, text: str) -> str:
        return word_wrap(prefix, text, self.width)


def build_context(
    op: Operation,
    override: Override,
    function_name: str,
    add_type_annotations: bool = False,
    width: int = RIGHT_MARGIN,
) -> GenContext:
    """Derive every per-operation plan. Raises GenerationError for unsupported ops."""
    inferred = resolve_inferred_attrs(op)
    plan = build_parameter_plan(op, override, inferred)
    ctx = GenContext(
        op=op,
        override=override,
        function_name=function_name,
        inferred=inferred,
        plan=plan,
        hooks=DispatchHooks.for_override(override),
        annotations=type_annotations(op) if add_type_annotations else {},
        width=width,
    )
    for p in plan.attr_params:
        ctx.attr_expressions[p.name] = p.python_name
    for attr in op.attrs:
        if inferred.is_inferred(attr.name) and attr.kind == AttrKind.INT and not attr.type.is_list:
            ctx.attr_expressions[attr.name] = attr_var_name(attr.name)
    ctx.outputs = output_size_plan(op, inferred, ctx.attr_expressions, plan.input_names)
    return ctx


def function_setup(ctx: GenContext, indent: str, attr_expressions: Dict[str, str]) -> List[str]:
    """Length inference / checks of list inputs, then attr defaults and coercion."""
    lines = emit_length_checks(ctx.op, ctx.inferred, ctx.names, ctx.op_label, indent, attr_expressions)
    lines.extend(attr_setup_lines(ctx.op, ctx.plan, ctx.op_label, indent, attr_expressions, ctx.width))
    return lines


def refusal_lines(ctx: GenContext, indent: str) -> List[str]:
    return [
        f"{indent}raise RuntimeError(",
        f"{indent}    \"{ctx.op_label} op does not support eager execution. \"",
        f"{indent}    \"Arg '{ctx.ref_arg}' is a ref.\")",
    ]


def _def_line(ctx: GenContext, name: str, params: str, with_return: bool) -> str:
    ret = return_annotation(ctx.op, ctx.annotations) if with_return else ""
    # The annotation after the closing paren must stay on the last line.
    tail = ret.replace(" ", "\0")
    return word_wrap(f"def {name}(", params + ")" + tail + ":", ctx.width).replace("\0", " ")


def _result_teardown(ctx: GenContext, indent: str) -> List[str]:
    """Reshape the flat `_result` list into the structure the caller sees."""
    if ctx.num_outputs == 1 and ctx.outputs.single_list:
        return []
    if ctx.num_outputs == 1:
        return [f"{indent}_result, = _result"]
    lines = unflatten(indent, ctx.outputs.sizes, "_result", ctx.width)
    lines.append(f"{indent}_result = {ctx.output_tuple}._make(_result)")
    return lines


def _record_gradient(ctx: GenContext, indent: str) -> List[str]:
    return [
        f"{indent}_execute.record_gradient(",
        f"{indent}    {quote_python_string(ctx.op.name)}, _inputs_flat, _attrs, _result)",
    ]


def fast_path_lines(ctx: GenContext) -> List[str]:
    """Body of the `if tld.is_eager:` branch of the main wrapper."""
    if ctx.ref_arg is not None:
        return refusal_lines(ctx, "    ")
    op = ctx.op
    params = [f"_ctx, {quote_python_string(op.name)}, name"]
    params.extend(ctx.names)
    for attr in op.attrs:
        if ctx.inferred.is_inferred(attr.name):
            continue
        params.append(f"{quote_python_string(attr.name)}, {ctx.plan.attr_param(attr.name).python_name}")
    fallback_args = [p.python_name for p in ctx.plan.inputs]
    fallback_args.extend(f"{p.python_name}={p.python_name}" for p in ctx.plan.attr_params)
    fallback_args.extend(["name=name", "ctx=_ctx"])

    lines = [
        "    try:",
        "      _result = _fastpath.fast_path_execute(",
        ctx.wrap("        ", ", ".join(params) + ")"),
    ]
    if ctx.num_outputs > 1:
        lines.append(f"      _result = {ctx.output_tuple}._make(_result)")
    lines.extend(
        [
            "      return _result",
            "    except _core._NotOkStatusException as e:",
            "      _ops.raise_from_not_ok_status(e, name)",
            "    except _core._FallbackException:",
            "      pass",
            "    try:",
        ]
    )
    lines.extend(type_based_precheck(ctx.hooks, ctx.function_name, ctx.plan, "      ", ctx.width))
    lines.append(f"      return {ctx.fallback_name}(")
    lines.append(ctx.wrap("          ", ", ".join(fallback_args) + ")"))
    lines.extend(
        [
            "    except _core._SymbolicException:",
            "      pass  # Add nodes to the graph.",
        ]
    )
    lines.extend(fallback_handler(ctx.hooks, ctx.function_name, ctx.plan, "    ", ctx.width))
    return lines


def _graph_attr_getter(ctx: GenContext, attr_name: str) -> str:
    attr = ctx.op.attr(attr_name)
    quoted = quote_python_string(attr_name)
    if not attr.type.is_list:
        if attr.kind == AttrKind.TYPE:
            return f"{quoted}, _op._get_attr_type({quoted})"
        if attr.kind == AttrKind.BOOL:
            return f"{quoted}, _op._get_attr_bool({quoted})"
        if attr.kind == AttrKind.INT:
            return f"{quoted}, _op._get_attr_int({quoted})"
    return f"{quoted}, _op.get_attr({quoted})"


def deferred_lines(ctx: GenContext) -> List[str]:
    """Graph-construction tail of the main wrapper."""
    lines: List[str] = []
    if ctx.hooks.type_based:
        lines.append("  else:")
        lines.extend(type_based_precheck(ctx.hooks, ctx.function_name, ctx.plan, "    ", ctx.width))
    lines.append("  # Add nodes to the graph.")
    lines.extend(function_setup(ctx, "  ", dict(ctx.attr_expressions)))
    call_indent = "  "
    if ctx.hooks.fallback:
        lines.append("  try:")
        call_indent = "    "
    lines.append(f"{call_indent}_, _, _op, _outputs = _op_def_library._apply_op_helper(")
    lines.append(
        hanging_wrap(
            f"{call_indent}      {quote_python_string(ctx.op.name)}, ",
            keyword_arguments(ctx.plan),
            ctx.width,
            call_indent + " " * 6,
        )
    )
    lines.extend(fallback_handler(ctx.hooks, ctx.function_name, ctx.plan, "  ", ctx.width))

    if ctx.num_outputs == 0:
        lines.append("  return _op")
        return lines
    lines.append("  _result = _outputs[:]")
    if ctx.num_outputs == 1 and ctx.op.is_stateful and ctx.outputs.single_list:
        # A stateful op with an empty list output still needs its node.
        lines.extend(["  if not _result:", "    return _op"])
    lines.append("  if _execute.must_record_gradient():")
    if ctx.op.attrs:
        getters = ", ".join(_graph_attr_getter(ctx, a.name) for a in ctx.op.attrs)
        lines.append(ctx.wrap("    _attrs = (", getters + ")"))
    else:
        lines.append("    _attrs = ()")
    lines.append("    _inputs_flat = _op.inputs")
    lines.extend(_record_gradient(ctx, "    "))
    lines.extend(_result_teardown(ctx, "  "))
    lines.append("  return _result")
    return lines


def inferred_attr_lines(ctx: GenContext, indent: str, attr_expressions: Dict[str, str]) -> List[str]:
    """Derive type attrs from the actual arguments, converting them to tensors."""
    lines: List[str] = []
    op = ctx.op
    for attr in op.attrs:
        if not ctx.inferred.is_inferred(attr.name) or attr.kind != AttrKind.TYPE:
            continue
        indices = ctx.inferred.attr_to_args[attr.name]
        var = attr_var_name(attr.name)
        attr_expressions[attr.name] = var
        if not attr.type.is_list:
            flat, sizes = flatten_inputs(op, ctx.names, indices)
            allowed = ", ".join(python_dtype(t) for t in attr.allowed_values or [])
            args = f"{flat}, ctx, [{allowed}]"
            if attr.has_default:
                args += ", " + attr_value_to_python(attr.type, attr.default)
            if len(indices) == 1:
                target = ctx.names[indices[0]]
                lhs = f"{var}, {target}" if sizes[0] else f"{var}, ({target},)"
                lines.append(ctx.wrap(f"{indent}{lhs} = _execute.args_to_matching_eager(", args + ")"))
            else:
                tmp = f"_inputs_{attr.name}"
                lines.append(ctx.wrap(f"{indent}{var}, {tmp} = _execute.args_to_matching_eager(", args + ")"))
                lines.extend(unflatten(indent, sizes, tmp, ctx.width))
                # Break only inside the target tuple.
                targets = ", ".join(ctx.names[i] for i in indices)
                lines.append(ctx.wrap(f"{indent}(", f"{targets})\0=\0{tmp}").replace("\0", " "))
        else:
            # Defaults of list(type) attrs are ignored; the arguments decide.
            if len(indices) > 1:
                target = vector_to_tuple(ctx.names[i] for i in indices)
                helper = "args_to_mixed_eager_tensors"
            else:
                target = ctx.names[indices[0]]
                helper = "convert_to_mixed_eager_tensors"
            lines.append(ctx.wrap(f"{indent}{var}, {target} = _execute.{helper}(", f"{target}, ctx)"))
    return lines


def input_cast_lines(ctx: GenContext, indent: str) -> List[str]:
    lines: List[str] = []
    for i, arg in enumerate(ctx.op.input_args):
        if arg.type_attr or arg.type_list_attr:
            continue
        name = ctx.names[i]
        fn = "convert_n_to_tensor" if arg.number_attr else "convert_to_tensor"
        lines.append(ctx.wrap(f"{indent}{name} = _ops.{fn}(", f"{name}, {python_dtype(arg.type)})"))
    return lines


def fallback_lines(ctx: GenContext) -> List[str]:
    """The complete `<fn>_eager_fallback` function."""
    params = render_parameters(ctx.plan, ctx.annotations, with_defaults=False, trailing=("name", "ctx"))
    lines = [_def_line(ctx, ctx.fallback_name, params, with_return=True)]
    if ctx.ref_arg is not None:
        lines.extend(refusal_lines(ctx, "  "))
        return lines
    attr_expressions = dict(ctx.attr_expressions)
    lines.extend(function_setup(ctx, "  ", attr_expressions))
    lines.extend(inferred_attr_lines(ctx, "  ", attr_expressions))
    lines.extend(input_cast_lines(ctx, "  "))
    flat, _ = flatten_inputs(ctx.op, ctx.names)
    lines.append(wrap_assignment("  _inputs_flat = ", flat, ctx.width))
    if ctx.op.attrs:
        values = ", ".join(f"{quote_python_string(a.name)}, {attr_expressions[a.name]}" for a in ctx.op.attrs)
        lines.append(ctx.wrap("  _attrs = (", values + ")"))
    else:
        lines.append("  _attrs = None")
    lines.append(
        ctx.wrap(
            "  _result = _execute.execute(",
            f"b{quote_python_string(ctx.op.name)}, {ctx.outputs.num_outputs_expr}, "
            "inputs=_inputs_flat, attrs=_attrs, ctx=ctx, name=name)",
        )
    )
    if ctx.num_outputs == 0:
        lines.append("  _result = None")
    else:
        lines.append("  if _execute.must_record_gradient():")
        lines.extend(_record_gradient(ctx, "    "))
        lines.extend(_result_teardown(ctx, "  "))
    lines.append("  return _result")
    return lines


def output_tuple_lines(ctx: GenContext) -> List[str]:
    if ctx.num_outputs <= 1:
        return []
    fields = ", ".join(
        quote_python_string(avoid_python_reserved(ctx.override.rename(a.name))) for a in ctx.op.output_args
    )
    return [
        f"{ctx.output_tuple} = collections.namedtuple(",
        f"    {quote_python_string(ctx.op.name)},",
        ctx.wrap("    [", fields + "])"),
    ]


def main_header_lines(ctx: GenContext) -> List[str]:
    lines = decorator_lines(ctx.hooks)
    if ctx.override.visibility == Visibility.VISIBLE and ctx.override.endpoints:
        endpoints = ", ".join(quote_python_string(e) for e in ctx.override.endpoints)
        lines.append(ctx.wrap("@api_export(", endpoints + ")"))
    params = render_parameters(ctx.plan, ctx.annotations, with_defaults=True, trailing=("name=None",))
    lines.append(_def_line(ctx, ctx.function_name, params, with_return=True))
    lines.extend(build_docstring(ctx.op, ctx.override, ctx.plan, ctx.inferred, ctx.width))
    lines.extend(
        [
            "  _ctx = _context._context or _context.context()",
            "  tld = _ctx._thread_local_data",
            "  if tld.is_eager:",
        ]
    )
    return lines


def path_lines(ctx: GenContext, state: EmitState) -> List[str]:
    if state == EmitState.FAST_PATH:
        return main_header_lines(ctx) + fast_path_lines(ctx)
    if state == EmitState.DEFERRED:
        lines = deferred_lines(ctx)
        alias = dispatcher_alias(ctx.hooks, ctx.function_name, ctx.width)
        if alias:
            lines.extend([""] + alias)
        return lines + ["", ""]
    if state == EmitState.FALLBACK:
        return fallback_lines(ctx) + [""]
    raise ValueError(f"nothing to emit in state {state}")


def emit_op(
    op: Operation,
    override: Override,
    function_name: str,
    add_type_annotations: bool = False,
    width: int = RIGHT_MARGIN,
) -> str:
    """Text block for one operation; raises GenerationError if it cannot be bound."""
    ctx = build_context(op, override, function_name, add_type_annotations, width)
    lines: List[str] = []
    if ctx.annotations:
        tv = type_var_lines(op, ctx.annotations, width)
        if tv:
            lines.extend(tv + [""])
    tuple_lines = output_tuple_lines(ctx)
    if tuple_lines:
        lines.extend(tuple_lines + ["", ""])
    state = EmitState.FAST_PATH
    while state != EmitState.EMITTED:
        lines.extend(path_lines(ctx, state))
        state = _TRANSITIONS[state]
    raw_name = avoid_python_reserved(op.name)
    export = f"{raw_name} = api_export(\"raw_ops.{raw_name}\")("
    lines.append(hanging_wrap(export, f"_ops.to_raw_op({function_name}))", width, "    "))
    return "\n".join(lines) + "\n\n\n"


def skipped_op_comment(function_name: str, err: GenerationError) -> str:
    if isinstance(err, UnsupportedAttrError):
        return (
            f"# No definition for {function_name} since we don't support attrs with type\n"
            f"# '{err.attr_type}' right now.\n\n"
        )
    return f"# No definition for {function_name}: {err}\n\n"


def generate_op(
    op: Operation,
    override: Override,
    function_name: str,
    add_type_annotations: bool = False,
    width: int = RIGHT_MARGIN,
) -> str:
    """Like `emit_op`, but a generation failure yields the diagnostic comment."""
    try:
        return emit_op(op, override, function_name, add_type_annotations, width)
    except GenerationError as e:
        return skipped_op_comment(function_name, e)


__all__ = [
    "FALLBACK_SUFFIX",
    "EmitState",
    "GenContext",
    "build_context",
    "function_setup",
    "refusal_lines",
    "fast_path_lines",
    "deferred_lines",
    "inferred_attr_lines",
    "input_cast_lines",
    "fallback_lines",
    "output_tuple_lines",
    "main_header_lines",
    "path_lines",
    "emit_op",
    "skipped_op_comment",
    "generate_op",
]

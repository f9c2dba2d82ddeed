"""
Docstrings of generated wrappers.

The layout is the usual Google style: summary line, free-form description,
an `Args:` section (inputs, then explicit attrs, then `name`) and a
`Returns:` section. Type phrases point at the argument that fixes a type
attr ("Has the same type as `x`.") instead of repeating the attr name.
"""

from __future__ import annotations

from typing import List, Optional, Sequence

from opbind.schema import ArgDef, Attr, AttrKind, Operation, Override

from .inference import InferredAttrs
from .signature import ParameterPlan, attr_value_to_python
from .text import RIGHT_MARGIN, avoid_python_reserved, word_wrap

_INDENT = "  "
_ENTRY = "    "

_KIND_NAMES = {
    AttrKind.STRING: ("A", "string"),
    AttrKind.INT: ("An", "int"),
    AttrKind.FLOAT: ("A", "float"),
    AttrKind.BOOL: ("A", "bool"),
    AttrKind.TYPE: ("A", "DType"),
    AttrKind.SHAPE: ("A", "TensorShape"),
    AttrKind.TENSOR: ("A", "Tensor"),
}


def _escape(text: str) -> str:
    # Raw docstrings can hold anything but their own delimiter.
    return text.replace('"""', '\\"\\"\\"')


def _wrap_paragraphs(prefix: str, text: str, width: int) -> List[str]:
    lines: List[str] = []
    for para in text.strip().split("\n"):
        if not para.strip():
            lines.append("")
            continue
        lines.append(word_wrap(prefix, para.strip(), width, respect_strings=False))
    return lines


def _first_owner(op: Operation, attr_name: str, names: Sequence[str], before: int) -> Optional[str]:
    """Name of the first input (index < `before`) whose type is fixed by `attr_name`."""
    for i, arg in enumerate(op.input_args[:before]):
        if attr_name in (arg.type_attr, arg.type_list_attr):
            return names[i]
    return None


def _allowed_text(attr: Attr) -> str:
    return ", ".join(f"`{t}`" for t in attr.allowed_values or [])


def input_type_phrase(op: Operation, index: int, names: Sequence[str]) -> str:
    arg = op.input_args[index]
    tensor = "mutable `Tensor`" if arg.is_ref else "`Tensor`"
    if arg.number_attr:
        head = f"A list of `{arg.number_attr}` {tensor} objects"
    elif arg.type_list_attr:
        head = f"A list of {tensor} objects"
    else:
        head = f"A {tensor}"
    if arg.type:
        return f"{head} {'with type' if arg.is_list else 'of type'} `{arg.type}`."
    if arg.type_list_attr:
        owner = _first_owner(op, arg.type_list_attr, names, index)
        return f"{head} with the same types as `{owner}`." if owner else f"{head}."
    owner = _first_owner(op, arg.type_attr, names, index)
    if owner:
        if arg.is_list:
            return f"{head} with the same type as `{owner}`."
        return f"{head}. Must have the same type as `{owner}`."
    attr = op.attr(arg.type_attr)
    if not attr.allowed_values:
        return f"{head}."
    if arg.is_list:
        return f"{head} with the same type in: {_allowed_text(attr)}."
    return f"{head}. Must be one of the following types: {_allowed_text(attr)}."


def output_type_phrase(op: Operation, arg: ArgDef, names: Sequence[str], inferred: InferredAttrs) -> str:
    if arg.number_attr:
        head = f"A list of `{arg.number_attr}` `Tensor` objects"
    elif arg.type_list_attr:
        head = "A list of `Tensor` objects"
    else:
        head = "A `Tensor`"
    if arg.type:
        return f"{head} {'with type' if arg.is_list else 'of type'} `{arg.type}`."
    if arg.type_list_attr:
        if inferred.is_inferred(arg.type_list_attr):
            return f"{head} with the same types as `{names[inferred.source(arg.type_list_attr)]}`."
        return f"{head} of type `{arg.type_list_attr}`."
    if inferred.is_inferred(arg.type_attr):
        owner = names[inferred.source(arg.type_attr)]
        if arg.is_list:
            return f"{head} with the same type as `{owner}`."
        return f"{head}. Has the same type as `{owner}`."
    return f"{head} {'with type' if arg.is_list else 'of type'} `{arg.type_attr}`."


def attr_phrase(attr: Attr, default_text: Optional[str]) -> str:
    article, kind = _KIND_NAMES[attr.kind]
    if attr.type.is_list:
        article, kind = "A list of", f"{kind}s"
    if default_text is not None:
        article = "An optional list of" if attr.type.is_list else "An optional"
    text = f"{article} `{kind}`"
    if attr.kind == AttrKind.TYPE and attr.allowed_values:
        text += " from: " + _allowed_text(attr)
    text += "."
    if default_text is not None:
        text += f" Defaults to `{default_text}`."
    return text


def build_docstring(
    op: Operation,
    override: Override,
    plan: ParameterPlan,
    inferred: InferredAttrs,
    width: int = RIGHT_MARGIN,
) -> List[str]:
    """Lines of the docstring, indented for a function body."""
    summary = override.summary if override.summary is not None else op.summary
    description = override.description if override.description is not None else op.description
    summary = _escape(summary.strip()) or f"Wraps the `{op.name}` operation."
    lines = [word_wrap(f'{_INDENT}r"""', summary, width, respect_strings=False)]
    if description.strip():
        lines.append("")
        lines.extend(_wrap_paragraphs(_INDENT, _escape(description), width))

    lines.extend(["", f"{_INDENT}Args:"])
    names = plan.input_names
    by_schema = {arg.name: i for i, arg in enumerate(op.input_args)}
    for p in plan.inputs:
        idx = by_schema[p.name]
        arg = op.input_args[idx]
        text = input_type_phrase(op, idx, names)
        if arg.description:
            text += " " + " ".join(arg.description.split())
        lines.append(word_wrap(f"{_ENTRY}{p.python_name}: ", _escape(text), width, respect_strings=False))
    for p in plan.attr_params:
        attr = op.attr(p.name)
        default_text = None
        if p.name in plan.defaults:
            value = override.attr_defaults.get(p.name, attr.default)
            default_text = "tensor" if attr.kind == AttrKind.TENSOR else attr_value_to_python(attr.type, value, "")
        text = attr_phrase(attr, default_text)
        if attr.description:
            text += " " + " ".join(attr.description.split())
        lines.append(word_wrap(f"{_ENTRY}{p.python_name}: ", _escape(text), width, respect_strings=False))
    lines.append(f"{_ENTRY}name: A name for the operation (optional).")

    lines.extend(["", f"{_INDENT}Returns:"])
    outputs = op.output_args
    if not outputs:
        lines.append(f"{_ENTRY}The created Operation.")
    elif len(outputs) == 1:
        text = output_type_phrase(op, outputs[0], names, inferred)
        if outputs[0].description:
            text += " " + " ".join(outputs[0].description.split())
        lines.append(word_wrap(_ENTRY, _escape(text), width, respect_strings=False))
    else:
        fields = [avoid_python_reserved(override.rename(a.name)) for a in outputs]
        lines.append(word_wrap(_ENTRY, f"A tuple of `Tensor` objects ({', '.join(fields)}).", width, respect_strings=False))
        lines.append("")
        for field_name, arg in zip(fields, outputs):
            text = output_type_phrase(op, arg, names, inferred)
            if arg.description:
                text += " " + " ".join(arg.description.split())
            lines.append(word_wrap(f"{_ENTRY}{field_name}: ", _escape(text), width, respect_strings=False))
    lines.append(f'{_INDENT}"""')
    return lines


__all__ = [
    "build_docstring",
    "input_type_phrase",
    "output_type_phrase",
    "attr_phrase",
]

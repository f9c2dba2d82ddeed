"""
Attribute inference: which attrs are implied by the inputs instead of being
passed by the caller.

An attr referenced by an input's `type_attr`, `type_list_attr` or
`number_attr` is inferred. Several inputs may share one attr (two lists
whose lengths must agree); each registers its schema index, in input order.
The first index is the source the generated code reads the value from, the
others are checked against it at run time.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, List, MutableMapping, Sequence

from opbind.schema import AttrKind, Operation


def attr_var_name(attr_name: str) -> str:
    return f"_attr_{attr_name}"


@dataclass
class InferredAttrs:
    attr_to_args: Dict[str, List[int]] = field(default_factory=dict)

    def is_inferred(self, attr_name: str) -> bool:
        return attr_name in self.attr_to_args

    def source(self, attr_name: str) -> int:
        return self.attr_to_args[attr_name][0]

    def add(self, attr_name: str, arg_index: int) -> None:
        self.attr_to_args.setdefault(attr_name, []).append(arg_index)


def resolve_inferred_attrs(op: Operation) -> InferredAttrs:
    inferred = InferredAttrs()
    for i, arg in enumerate(op.input_args):
        if arg.type_attr:
            inferred.add(arg.type_attr, i)
        elif arg.type_list_attr:
            inferred.add(arg.type_list_attr, i)
        if arg.number_attr:
            inferred.add(arg.number_attr, i)
    return inferred


def expect_list_arg(indent: str, arg_name: str, op_label: str) -> List[str]:
    return [
        f"{indent}if not isinstance({arg_name}, (list, tuple)):",
        f"{indent}  raise TypeError(",
        f"{indent}      \"Expected list for '{arg_name}' argument to \"",
        f"{indent}      \"'{op_label}' Op, not %r.\" % {arg_name})",
    ]


def emit_length_checks(
    op: Operation,
    inferred: InferredAttrs,
    names: Sequence[str],
    op_label: str,
    indent: str,
    attr_expressions: MutableMapping[str, str],
) -> List[str]:
    """
    Runtime statements that infer every int attr from list lengths.

    `names` holds the Python parameter name of each schema input. The first
    referring input defines `_attr_<N>`; every later one must have the same
    length or the generated code raises a ValueError naming both inputs.
    """
    lines: List[str] = []
    for attr in op.attrs:
        if attr.kind != AttrKind.INT or attr.type.is_list or not inferred.is_inferred(attr.name):
            continue
        indices = inferred.attr_to_args[attr.name]
        source_name = names[indices[0]]
        for pos, idx in enumerate(indices):
            arg_name = names[idx]
            lines.extend(expect_list_arg(indent, arg_name, op_label))
            if pos == 0:
                var = attr_var_name(attr.name)
                attr_expressions[attr.name] = var
                lines.append(f"{indent}{var} = len({arg_name})")
                continue
            var = attr_expressions[attr.name]
            lines.extend(
                [
                    f"{indent}if len({arg_name}) != {var}:",
                    f"{indent}  raise ValueError(",
                    f"{indent}      \"List argument '{arg_name}' to '{op_label}' Op with length %d \"",
                    f"{indent}      \"must match length %d of argument '{source_name}'.\" %",
                    f"{indent}      (len({arg_name}), {var}))",
                ]
            )
    return lines


__all__ = [
    "InferredAttrs",
    "attr_var_name",
    "resolve_inferred_attrs",
    "expect_list_arg",
    "emit_length_checks",
]

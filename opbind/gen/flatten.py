"""
Flattening of structured inputs into the single positional list the
execute primitive takes, and the inverse regrouping of flat results.

A list-valued argument contributes all of its elements; a scalar argument
contributes one. The per-argument size markers ("" for scalars, a length
expression for lists) are what the unflatten step needs to rebuild the
grouping.
"""

from __future__ import annotations

import enum
from dataclasses import dataclass, field
from typing import List, Mapping, Optional, Sequence, Tuple

from opbind.schema import Operation

from .inference import InferredAttrs, attr_var_name
from .text import RIGHT_MARGIN, wrap_assignment


class _Run(enum.Enum):
    STARTING = 0
    LIST = 1
    SOLO = 2


def flatten_inputs(
    op: Operation,
    names: Sequence[str],
    indices: Optional[Sequence[int]] = None,
) -> Tuple[str, List[str]]:
    """
    Expression for the flat list of the given inputs (all inputs when
    `indices` is None) plus one size marker per input.

    Adjacent scalars share one list literal and lists are concatenated with
    `+`, e.g. `[a, b] + list(c) + [d]`.
    """
    if indices is None:
        indices = range(len(op.input_args))
    expr = ""
    sizes: List[str] = []
    state = _Run.STARTING
    for i in indices:
        arg = op.input_args[i]
        name = names[i]
        if arg.is_list:
            if state == _Run.SOLO:
                expr += "] + "
            elif state == _Run.LIST:
                expr += " + "
            expr += f"list({name})"
            state = _Run.LIST
            if arg.number_attr:
                sizes.append(attr_var_name(arg.number_attr))
            else:
                sizes.append(f"len({name})")
        else:
            if state == _Run.SOLO:
                expr += ", "
            elif state == _Run.LIST:
                expr += " + ["
            else:
                expr += "["
            expr += name
            state = _Run.SOLO
            sizes.append("")
    if state == _Run.STARTING:
        return "[]", sizes
    if state == _Run.SOLO:
        expr += "]"
    return expr, sizes


def unflatten(indent: str, sizes: Sequence[str], var: str, width: int = RIGHT_MARGIN) -> List[str]:
    """
    Statements regrouping the flat list `var` by `sizes`.

    Groups are collapsed left to right, so when group `i` is processed every
    earlier group already occupies a single slot and group `i` starts at
    offset `i`. Scalar positions need no statement.
    """
    lines: List[str] = []
    end = len(sizes)
    for i, size in enumerate(sizes):
        if not size:
            continue
        text = ""
        if i > 0:
            text += f"{var}[:{i}] + "
        if i + 1 < end:
            if i == 0:
                text += f"[{var}[:{size}]] + {var}[{size}:]"
            else:
                text += f"[{var}[{i}:{i} + {size}]] + {var}[{i} + {size}:]"
        else:
            text += f"[{var}[{i}:]]"
        lines.append(wrap_assignment(f"{indent}{var} = ", text, width))
    return lines


@dataclass
class OutputSizePlan:
    sizes: List[str] = field(default_factory=list)
    num_outputs_expr: str = "0"

    @property
    def single_list(self) -> bool:
        return len(self.sizes) == 1 and bool(self.sizes[0])


def output_size_plan(
    op: Operation,
    inferred: InferredAttrs,
    attr_expressions: Mapping[str, str],
    input_names: Sequence[str],
) -> OutputSizePlan:
    """Length expression of each list output and the total output count."""
    sizes: List[str] = []
    terms: List[str] = []
    num_fixed = 0
    for arg in op.output_args:
        if arg.number_attr:
            size = attr_expressions[arg.number_attr]
        elif arg.type_list_attr:
            # Must be valid in both the graph and the eager path.
            if inferred.is_inferred(arg.type_list_attr):
                size = f"len({input_names[inferred.source(arg.type_list_attr)]})"
            else:
                size = f"len({attr_expressions[arg.type_list_attr]})"
        else:
            sizes.append("")
            num_fixed += 1
            continue
        sizes.append(size)
        terms.append(size)
    if num_fixed:
        terms.append(str(num_fixed))
    return OutputSizePlan(sizes=sizes, num_outputs_expr=" + ".join(terms) if terms else "0")


__all__ = ["flatten_inputs", "unflatten", "OutputSizePlan", "output_size_plan"]

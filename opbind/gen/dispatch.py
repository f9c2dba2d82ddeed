"""
Extension-dispatch hooks layered on top of a generated wrapper.

Two independent mechanisms, both only for VISIBLE operations:

- type-based: before running the op, offer the full argument tuple to the
  dispatcher registered on the wrapper; anything other than
  `NotImplemented` is returned as the result.
- fallback (name-based): when running the op raises a coercion-class error,
  offer the call to `_dispatch.dispatch`; unless it answers
  `OpDispatcher.NOT_SUPPORTED` its result is returned, otherwise the
  original error is re-raised.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import List

from opbind.schema import Override, Visibility

from .signature import ParameterPlan, keyword_arguments
from .text import RIGHT_MARGIN, hanging_wrap, word_wrap


@dataclass(frozen=True)
class DispatchHooks:
    type_based: bool = False
    fallback: bool = False

    @classmethod
    def for_override(cls, override: Override) -> "DispatchHooks":
        if override.visibility != Visibility.VISIBLE:
            return cls()
        return cls(type_based=override.type_dispatch, fallback=override.fallback_dispatch)


def dispatcher_name(function_name: str) -> str:
    return f"_dispatcher_for_{function_name}"


def decorator_lines(hooks: DispatchHooks) -> List[str]:
    lines: List[str] = []
    if hooks.fallback:
        lines.append("@_dispatch.add_fallback_dispatch_list")
    if hooks.type_based:
        lines.append("@_dispatch.add_type_based_api_dispatcher")
    return lines


def type_based_precheck(
    hooks: DispatchHooks,
    function_name: str,
    plan: ParameterPlan,
    prefix: str,
    width: int = RIGHT_MARGIN,
) -> List[str]:
    if not hooks.type_based:
        return []
    args = "(" + "".join(f"{p.python_name}, " for p in plan.params) + "name,), None"
    return [
        f"{prefix}_result = {dispatcher_name(function_name)}(",
        word_wrap(prefix + "    ", args, width) + ")",
        f"{prefix}if _result is not NotImplemented:",
        f"{prefix}  return _result",
    ]


def fallback_handler(
    hooks: DispatchHooks,
    function_name: str,
    plan: ParameterPlan,
    prefix: str,
    width: int = RIGHT_MARGIN,
) -> List[str]:
    """`except` clause closing a `try:` around the op call."""
    if not hooks.fallback:
        return []
    return [
        f"{prefix}except (TypeError, ValueError):",
        f"{prefix}  _result = _dispatch.dispatch(",
        hanging_wrap(
            f"{prefix}        {function_name}, (), dict(", keyword_arguments(plan), width, prefix + " " * 10
        ),
        f"{prefix}      )",
        f"{prefix}  if _result is not _dispatch.OpDispatcher.NOT_SUPPORTED:",
        f"{prefix}    return _result",
        f"{prefix}  raise",
    ]


def dispatcher_alias(hooks: DispatchHooks, function_name: str, width: int = RIGHT_MARGIN) -> List[str]:
    # A parameter may share the op's name; the alias keeps the dispatcher
    # reachable from inside the function body.
    if not hooks.type_based:
        return []
    alias = dispatcher_name(function_name)
    target = f"{function_name}._type_based_dispatcher.Dispatch"
    if len(alias) + 3 + len(target) <= width:
        return [f"{alias} = {target}"]
    return [f"{alias} = (", f"    {target})"]


__all__ = [
    "DispatchHooks",
    "dispatcher_name",
    "decorator_lines",
    "type_based_precheck",
    "fallback_handler",
    "dispatcher_alias",
]

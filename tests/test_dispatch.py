import pathlib
import sys

ROOT = pathlib.Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from opbind.gen.dispatch import (
    DispatchHooks,
    decorator_lines,
    dispatcher_alias,
    fallback_handler,
    type_based_precheck,
)
from opbind.gen.inference import resolve_inferred_attrs
from opbind.gen.signature import build_parameter_plan
from opbind.schema import Operation, Override, Visibility


def _add_op():
    return Operation.from_json_dict(
        {
            "name": "Add",
            "input_arg": [{"name": "x", "type_attr": "T"}, {"name": "y", "type_attr": "T"}],
            "output_arg": [{"name": "z", "type_attr": "T"}],
            "attr": [{"name": "T", "type": "type"}],
        }
    )


def _plan(op):
    return build_parameter_plan(op, Override.default_for(op), resolve_inferred_attrs(op))


def test_hooks_follow_visibility_and_flags():
    op = _add_op()
    visible = Override.default_for(op)
    assert DispatchHooks.for_override(visible) == DispatchHooks(type_based=True, fallback=True)
    hidden = Override(op_name="Add", visibility=Visibility.HIDDEN)
    assert DispatchHooks.for_override(hidden) == DispatchHooks()
    only_type = Override(op_name="Add", fallback_dispatch=False)
    assert DispatchHooks.for_override(only_type) == DispatchHooks(type_based=True, fallback=False)


def test_decorators_and_alias():
    hooks = DispatchHooks(type_based=True, fallback=True)
    assert decorator_lines(hooks) == [
        "@_dispatch.add_fallback_dispatch_list",
        "@_dispatch.add_type_based_api_dispatcher",
    ]
    assert dispatcher_alias(hooks, "add") == ["_dispatcher_for_add = add._type_based_dispatcher.Dispatch"]
    assert decorator_lines(DispatchHooks()) == []
    assert dispatcher_alias(DispatchHooks(fallback=True), "add") == []


def test_long_dispatcher_alias_is_split():
    hooks = DispatchHooks(type_based=True)
    fn = "sparse_segment_sqrt_n_grad"
    lines = dispatcher_alias(hooks, fn)
    assert lines == [
        f"_dispatcher_for_{fn} = (",
        f"    {fn}._type_based_dispatcher.Dispatch)",
    ]
    assert max(len(line) for line in lines) <= 78
    compile("\n".join(lines), "<gen>", "exec")


def test_type_based_precheck():
    op = _add_op()
    lines = type_based_precheck(DispatchHooks(type_based=True), "add", _plan(op), "    ")
    assert lines == [
        "    _result = _dispatcher_for_add(",
        "        (x, y, name,), None)",
        "    if _result is not NotImplemented:",
        "      return _result",
    ]
    assert type_based_precheck(DispatchHooks(fallback=True), "add", _plan(op), "    ") == []


def test_fallback_handler():
    op = _add_op()
    lines = fallback_handler(DispatchHooks(fallback=True), "add", _plan(op), "  ")
    assert lines == [
        "  except (TypeError, ValueError):",
        "    _result = _dispatch.dispatch(",
        "          add, (), dict(x=x, y=y, name=name)",
        "        )",
        "    if _result is not _dispatch.OpDispatcher.NOT_SUPPORTED:",
        "      return _result",
        "    raise",
    ]


def test_hooks_are_valid_python():
    op = _add_op()
    plan = _plan(op)
    hooks = DispatchHooks(type_based=True, fallback=True)
    body = ["  try:"]
    body += type_based_precheck(hooks, "add", plan, "    ")
    body += ["    return None"]
    body += fallback_handler(hooks, "add", plan, "  ")
    src = "def add(x, y, name=None):\n" + "\n".join(body) + "\n"
    compile(src, "<hooks>", "exec")

import logging
import pathlib
import sys

import pytest

ROOT = pathlib.Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from opbind.gen.module import GeneratorOptions, function_name_for, generate_python_ops, module_header
from opbind.schema import Operation, Override, SchemaBundle, Visibility


def _unary(name):
    return {
        "name": name,
        "input_arg": [{"name": "x", "type_attr": "T"}],
        "output_arg": [{"name": "y", "type_attr": "T"}],
        "attr": [{"name": "T", "type": "type"}],
    }


def _op(name):
    return Operation.from_json_dict(_unary(name))


def _override(op, visibility):
    override = Override.default_for(op)
    override.visibility = visibility
    return override


def test_reserved_name_gets_underscore():
    op = _op("For")
    assert function_name_for(op, _override(op, Visibility.VISIBLE)) == "_for"
    assert function_name_for(op, _override(op, Visibility.HIDDEN)) == "_for"


def test_skip_yields_no_name():
    op = _op("Add")
    assert function_name_for(op, _override(op, Visibility.SKIP)) is None
    assert function_name_for(op, _override(op, Visibility.SKIP), ["Add"]) is None


def test_hidden_prefix_rules():
    add = _op("Add")
    # Hidden by override alone, safe name: no prefix.
    assert function_name_for(add, _override(add, Visibility.HIDDEN)) == "add"
    # Listed in hidden_ops: always prefixed.
    assert function_name_for(add, _override(add, Visibility.VISIBLE), ["Add"]) == "_add"
    abs_op = _op("Abs")
    assert function_name_for(abs_op, _override(abs_op, Visibility.HIDDEN)) == "_abs"
    assert function_name_for(abs_op, _override(abs_op, Visibility.VISIBLE)) == "abs"
    round_op = _op("Round")
    assert function_name_for(round_op, _override(round_op, Visibility.HIDDEN)) == "_round"


def test_module_header():
    header = module_header(GeneratorOptions(runtime_package="rt", source_files=["a.cc", "b.cc"]))
    assert header.startswith('"""Python wrappers around ops.\n\nThis file is MACHINE GENERATED! Do not edit.\n')
    assert "Original source file: a.cc, b.cc" in header
    assert "from rt import context as _context" in header
    assert "from rt import op_def_library as _op_def_library" in header
    assert "from rt.export import api_export" in header
    assert "from typing import TypeVar" in header
    compile(header, "<gen>", "exec")

    plain = module_header(GeneratorOptions())
    assert "Original source file" not in plain
    assert "from opbind_runtime import ops as _ops" in plain


def test_generate_keeps_input_order_and_parses():
    ops = [_op("Sqrt"), _op("Abs"), _op("Neg")]
    result = generate_python_ops(ops, {})
    compile(result.source, "<gen>", "exec")
    assert result.generated == ["sqrt", "abs", "neg"]
    assert result.skipped == []
    src = result.source
    assert src.index("def sqrt(") < src.index("def abs(") < src.index("def neg(")


def test_skip_emits_nothing():
    ops = [_op("Sqrt"), _op("Neg")]
    overrides = {"Neg": _override(ops[1], Visibility.SKIP)}
    result = generate_python_ops(ops, overrides)
    assert result.generated == ["sqrt"]
    assert "neg" not in result.source
    assert "Neg" not in result.source


def test_duplicate_function_name_is_dropped(caplog):
    # Both lower-case to "relu6"; the second is dropped.
    ops = [_op("Relu6"), _op("RELU6")]
    with caplog.at_level(logging.WARNING, logger="opbind.gen.module"):
        result = generate_python_ops(ops, {})
    assert result.generated == ["relu6"]
    assert len(result.skipped) == 1
    diag = result.skipped[0]
    assert diag.level == "warning"
    assert diag.location.op_name == "RELU6"
    assert "already used by Relu6" in diag.message
    assert "dropping RELU6" in caplog.text
    assert result.source.count("def relu6(") == 1


def test_unsupported_op_is_reported_and_batch_continues():
    bad = _unary("Call")
    bad["attr"].append({"name": "f", "type": "func"})
    ops = [Operation.from_json_dict(bad), _op("Neg")]
    result = generate_python_ops(ops, {})
    compile(result.source, "<gen>", "exec")
    assert result.generated == ["neg"]
    assert len(result.skipped) == 1
    assert result.skipped[0].location.op_name == "Call"
    assert result.skipped[0].location.attr == "f"
    assert "# No definition for call since we don't support attrs with type\n# 'func' right now." in result.source
    assert "def neg(" in result.source


def test_argument_named_name_is_reported():
    clash = _unary("Lookup")
    clash["attr"].append({"name": "name", "type": "string"})
    result = generate_python_ops([Operation.from_json_dict(clash), _op("Neg")], {})
    compile(result.source, "<gen>", "exec")
    assert result.generated == ["neg"]
    assert result.skipped[0].location.op_name == "Lookup"
    assert "# No definition for lookup: argument 'name' of op Lookup clashes" in result.source


def test_hidden_ops_option_and_annotations():
    bundle = SchemaBundle.from_json_dict(
        {
            "operations": [_unary("Add"), _unary("Neg")],
            "overrides": [{"op_name": "Neg", "visibility": "hidden"}],
        }
    )
    options = GeneratorOptions(hidden_ops={"Add"}, type_annotate_ops={"Neg"})
    result = generate_python_ops(bundle.operations, bundle.overrides, options)
    compile(result.source, "<gen>", "exec")
    assert result.generated == ["_add", "neg"]
    assert "def neg(x: _ops.Tensor[TV_Neg_T], name=None) -> _ops.Tensor[TV_Neg_T]:" in result.source
    # Dispatch hooks follow the override, not the hidden_ops list.
    assert "_dispatcher_for__add = _add._type_based_dispatcher.Dispatch" in result.source
    assert "_dispatcher_for_neg" not in result.source


def test_options_validation():
    with pytest.raises(ValueError, match="width must be at least 20"):
        GeneratorOptions(width=10)
    options = GeneratorOptions(hidden_ops=["A", "A"], source_files=["x.cc"])
    assert options.hidden_ops == frozenset({"A"})
    assert options.source_files == ("x.cc",)

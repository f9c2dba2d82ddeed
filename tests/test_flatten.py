import pathlib
import sys

ROOT = pathlib.Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from opbind.gen.flatten import flatten_inputs, output_size_plan, unflatten
from opbind.gen.inference import resolve_inferred_attrs
from opbind.schema import Operation


def _mixed_json():
    return {
        "name": "Mixed",
        "input_arg": [
            {"name": "a", "type": "int32"},
            {"name": "b", "type": "float32", "number_attr": "N"},
            {"name": "c", "type_list_attr": "Tc"},
            {"name": "d", "type": "int32"},
        ],
        "output_arg": [
            {"name": "parts", "type": "float32", "number_attr": "N"},
            {"name": "flag", "type": "bool"},
            {"name": "rest", "type_list_attr": "Tc"},
        ],
        "attr": [
            {"name": "N", "type": "int"},
            {"name": "Tc", "type": "list(type)"},
        ],
    }


def _run(lines, var, flat, **sizes):
    ns = dict(sizes)
    ns[var] = list(flat)
    exec("\n".join(lines), ns)
    return ns[var]


def test_flatten_groups_scalars_and_concatenates_lists():
    op = Operation.from_json_dict(_mixed_json())
    expr, sizes = flatten_inputs(op, ["a", "b", "c", "d"])
    assert expr == "[a] + list(b) + list(c) + [d]"
    assert sizes == ["", "_attr_N", "len(c)", ""]


def test_flatten_subset_and_empty():
    op = Operation.from_json_dict(_mixed_json())
    expr, sizes = flatten_inputs(op, ["a", "b", "c", "d"], [1, 3])
    assert expr == "list(b) + [d]"
    assert sizes == ["_attr_N", ""]
    assert flatten_inputs(op, ["a", "b", "c", "d"], []) == ("[]", [])
    assert flatten_inputs(op, ["a", "b", "c", "d"], [0, 3]) == ("[a, d]", ["", ""])


def test_flatten_evaluates_to_flat_order():
    op = Operation.from_json_dict(_mixed_json())
    expr, _ = flatten_inputs(op, ["a", "b", "c", "d"])
    assert eval(expr, {"a": 0, "b": (1, 2), "c": [3], "d": 4}) == [0, 1, 2, 3, 4]


def test_unflatten_first_segment_has_no_zero_offset():
    lines = unflatten("", ["n", ""], "_r")
    assert lines == ["_r = [_r[:n]] + _r[n:]"]
    assert "0 +" not in lines[0]


def test_unflatten_middle_and_last_segments():
    assert unflatten("  ", ["", "n", ""], "_r") == ["  _r = _r[:1] + [_r[1:1 + n]] + _r[1 + n:]"]
    assert unflatten("", ["", "n"], "_r") == ["_r = _r[:1] + [_r[1:]]"]
    assert unflatten("", ["", ""], "_r") == []


def test_unflatten_restores_grouping():
    lines = unflatten("", ["", "n1", "n2", ""], "_r")
    assert _run(lines, "_r", range(7), n1=3, n2=2) == [0, [1, 2, 3], [4, 5], 6]
    lines = unflatten("", ["n1", "n2"], "_r")
    assert _run(lines, "_r", range(4), n1=1, n2=3) == [[0], [1, 2, 3]]
    # Empty lists keep their slot.
    lines = unflatten("", ["n1", "", "n2"], "_r")
    assert _run(lines, "_r", [7], n1=0, n2=0) == [[], 7, []]


def test_output_size_plan():
    op = Operation.from_json_dict(_mixed_json())
    inferred = resolve_inferred_attrs(op)
    plan = output_size_plan(op, inferred, {"N": "_attr_N"}, ["a", "b", "c", "d"])
    assert plan.sizes == ["_attr_N", "", "len(c)"]
    assert plan.num_outputs_expr == "_attr_N + len(c) + 1"
    assert not plan.single_list


def test_output_size_plan_explicit_and_empty():
    split = Operation.from_json_dict(
        {
            "name": "Split",
            "input_arg": [{"name": "axis", "type": "int32"}, {"name": "value", "type_attr": "T"}],
            "output_arg": [{"name": "output", "type_attr": "T", "number_attr": "num_split"}],
            "attr": [{"name": "num_split", "type": "int"}, {"name": "T", "type": "type"}],
        }
    )
    plan = output_size_plan(split, resolve_inferred_attrs(split), {"num_split": "num_split"}, ["axis", "value"])
    assert plan.sizes == ["num_split"]
    assert plan.num_outputs_expr == "num_split"
    assert plan.single_list

    noop = Operation.from_json_dict({"name": "NoOp"})
    plan = output_size_plan(noop, resolve_inferred_attrs(noop), {}, [])
    assert plan.sizes == []
    assert plan.num_outputs_expr == "0"


def test_unflatten_long_sizes_wrap_and_still_regroup():
    lines = unflatten("  ", ["", "num_segments_out_of_the_split", ""], "_result")
    assert len(lines) == 1
    assert "\n" in lines[0]
    assert max(len(line) for line in lines[0].split("\n")) <= 78
    regrouped = _run([lines[0].strip()], "_result", range(5), num_segments_out_of_the_split=3)
    assert regrouped == [0, [1, 2, 3], 4]

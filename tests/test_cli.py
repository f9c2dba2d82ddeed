import pathlib
import sys

ROOT = pathlib.Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from opbind.cli import EXIT_OK, EXIT_SCHEMA_ERROR, EXIT_SKIPPED, main, parse_name_list


def _schema(extra_attr=None):
    add = {
        "name": "Add",
        "input_arg": [{"name": "x", "type_attr": "T"}, {"name": "y", "type_attr": "T"}],
        "output_arg": [{"name": "z", "type_attr": "T"}],
        "attr": [{"name": "T", "type": "type"}],
    }
    if extra_attr is not None:
        add["attr"].append(extra_attr)
    neg = {
        "name": "Neg",
        "input_arg": [{"name": "x", "type_attr": "T"}],
        "output_arg": [{"name": "y", "type_attr": "T"}],
        "attr": [{"name": "T", "type": "type"}],
    }
    return {"operations": [add, neg], "overrides": [{"op_name": "Neg", "visibility": "HIDDEN"}]}


def test_parse_name_list(tmp_path):
    assert parse_name_list(None) == []
    assert parse_name_list("A, B,,C") == ["A", "B", "C"]
    f = tmp_path / "hidden.txt"
    f.write_text("# hidden ops\nAdd\n\nNeg  # trailing comment\n", encoding="utf-8")
    assert parse_name_list(f"@{f}") == ["Add", "Neg"]


def test_main_writes_module(tmp_path, write_schema):
    schema = write_schema(_schema())
    out = tmp_path / "gen_ops.py"
    rc = main([str(schema), "-o", str(out), "--runtime-package", "rt", "--source-file", "math_ops.cc"])
    assert rc == EXIT_OK
    src = out.read_text(encoding="utf-8")
    compile(src, "<gen>", "exec")
    assert "from rt import execute as _execute" in src
    assert "Original source file: math_ops.cc" in src
    assert "def add(x, y, name=None):" in src
    assert "def neg(x, name=None):" in src


def test_main_hidden_ops_to_stdout(write_schema, capsys):
    schema = write_schema(_schema())
    rc = main([str(schema), "--hidden-ops", "Add"])
    assert rc == EXIT_OK
    out = capsys.readouterr().out
    assert "def _add(x, y, name=None):" in out


def test_main_bad_schema(tmp_path, write_schema, capsys):
    data = _schema()
    data["overrides"][0]["op_name"] = "Nge"
    schema = write_schema(data)
    rc = main([str(schema), "-o", str(tmp_path / "out.py")])
    assert rc == EXIT_SCHEMA_ERROR
    err = capsys.readouterr().err
    assert "ERROR: override for unknown operation 'Nge'" in err
    assert "did you mean 'Neg'?" in err
    assert not (tmp_path / "out.py").exists()


def test_main_invalid_json_and_missing_file(tmp_path, write_schema):
    bad = tmp_path / "bad.json"
    bad.write_text("{not json", encoding="utf-8")
    assert main([str(bad)]) == EXIT_SCHEMA_ERROR
    assert main([str(tmp_path / "missing.json")]) == EXIT_SCHEMA_ERROR
    assert main([str(write_schema(_schema())), "--width", "5"]) == EXIT_SCHEMA_ERROR


def test_main_strict_reports_skipped(tmp_path, write_schema, capsys):
    schema = write_schema(_schema(extra_attr={"name": "f", "type": "func"}))
    out = tmp_path / "gen_ops.py"
    assert main([str(schema), "-o", str(out)]) == EXIT_OK
    assert main([str(schema), "-o", str(out), "--strict"]) == EXIT_SKIPPED
    err = capsys.readouterr().err
    assert "WARNING: no wrapper generated" in err
    src = out.read_text(encoding="utf-8")
    assert "# No definition for add since we don't support attrs with type" in src
    assert "def neg(" in src

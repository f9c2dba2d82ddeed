"""
Command line front end.

Example:
  python -m opbind ops.json -o gen_ops.py --hidden-ops @hidden.txt --strict
"""

from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path
from typing import List, Optional, Sequence

from opbind.diagnostics import Diagnostic, DiagnosticEngine
from opbind.gen.module import DEFAULT_RUNTIME_PACKAGE, GeneratorOptions, generate_python_ops
from opbind.gen.text import RIGHT_MARGIN
from opbind.schema import SchemaValidationError, load_schema

logger = logging.getLogger(__name__)

EXIT_OK = 0
EXIT_SKIPPED = 1
EXIT_SCHEMA_ERROR = 2


def parse_name_list(value: Optional[str]) -> List[str]:
    """`a,b,c` or `@file` (one name per line, `#` comments)."""
    if not value:
        return []
    if value.startswith("@"):
        names: List[str] = []
        for line in Path(value[1:]).read_text(encoding="utf-8").splitlines():
            line = line.split("#", 1)[0].strip()
            if line:
                names.append(line)
        return names
    return [x.strip() for x in value.split(",") if x.strip()]


def build_parser() -> argparse.ArgumentParser:
    ap = argparse.ArgumentParser(prog="opbind", description="Generate Python op wrappers from a JSON op schema.")
    ap.add_argument("schema", help="JSON schema with 'operations' and optional 'overrides'")
    ap.add_argument("-o", "--output", default=None, help="output .py file (default: stdout)")
    ap.add_argument("--hidden-ops", default=None, help="ops to generate under an underscore name: a,b,c or @file")
    ap.add_argument("--type-annotate-ops", default=None, help="ops whose wrappers get type annotations: a,b,c or @file")
    ap.add_argument("--source-file", action="append", default=[], help="source file named in the header (repeatable)")
    ap.add_argument("--runtime-package", default=DEFAULT_RUNTIME_PACKAGE, help="package the generated code imports")
    ap.add_argument("--width", type=int, default=RIGHT_MARGIN, help="maximum generated line width")
    ap.add_argument("--strict", action="store_true", help="exit with status 1 if any op was skipped")
    ap.add_argument("-v", "--verbose", action="store_true")
    return ap


def main(argv: Optional[Sequence[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(levelname)s %(name)s: %(message)s",
    )

    engine = DiagnosticEngine()
    try:
        bundle = load_schema(args.schema)
        options = GeneratorOptions(
            width=args.width,
            runtime_package=args.runtime_package,
            hidden_ops=frozenset(parse_name_list(args.hidden_ops)),
            type_annotate_ops=frozenset(parse_name_list(args.type_annotate_ops)),
            source_files=args.source_file,
        )
    except (SchemaValidationError, OSError, ValueError) as e:
        engine.emit(Diagnostic(level="error", message=str(e)))
        print(engine.format_all(), file=sys.stderr)
        return EXIT_SCHEMA_ERROR

    result = generate_python_ops(bundle.operations, bundle.overrides, options)
    if args.output:
        Path(args.output).write_text(result.source, encoding="utf-8")
        logger.info("wrote %d wrappers to %s", len(result.generated), args.output)
    else:
        sys.stdout.write(result.source)

    for diag in result.skipped:
        engine.emit(diag)
    if engine.items:
        print(engine.format_all(), file=sys.stderr)
        logger.info("%d error(s), %d warning(s)", len(engine.errors()), len(engine.warnings()))
    if result.skipped and args.strict:
        return EXIT_SKIPPED
    return EXIT_OK


if __name__ == "__main__":
    raise SystemExit(main())

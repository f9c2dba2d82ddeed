from __future__ import annotations

import json
import sys
from pathlib import Path

import pytest

# Generated-code tests import `opbind` straight from the checkout.
ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))


@pytest.fixture
def write_schema(tmp_path):
    """Write a schema dict as JSON under tmp_path and return its path."""

    def _write(data, name: str = "ops.json") -> Path:
        p = tmp_path / name
        p.write_text(json.dumps(data), encoding="utf-8")
        return p

    return _write

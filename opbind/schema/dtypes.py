"""
Closed table of element types known to the binding generator.

Every schema dtype spelling resolves to one canonical name here. The table
also carries the spellings the generated code needs:
  - the runtime attribute name (`_dtypes.<name>`)
  - the annotation class name used for TypeVar constraints
  - the `DT_*` enum used in tensor literal text
  - the numpy dtype used to materialize tensor-valued attribute defaults

This module intentionally does NOT import the rest of `opbind.schema`.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, List, Optional

import numpy as np


@dataclass(frozen=True)
class DTypeInfo:
    name: str
    enum: str
    annotation: str
    # Field of the tensor literal text holding the values; None when tensor
    # defaults of this dtype cannot be written.
    value_field: Optional[str] = None
    np_dtype: Optional[str] = None


_TABLE: List[DTypeInfo] = [
    DTypeInfo("float16", "DT_HALF", "Float16", "half_val", "float16"),
    DTypeInfo("bfloat16", "DT_BFLOAT16", "BFloat16"),
    DTypeInfo("float32", "DT_FLOAT", "Float32", "float_val", "float32"),
    DTypeInfo("float64", "DT_DOUBLE", "Float64", "double_val", "float64"),
    DTypeInfo("complex64", "DT_COMPLEX64", "Complex64", "scomplex_val", "complex64"),
    DTypeInfo("complex128", "DT_COMPLEX128", "Complex128", "dcomplex_val", "complex128"),
    DTypeInfo("int8", "DT_INT8", "Int8", "int_val", "int8"),
    DTypeInfo("int16", "DT_INT16", "Int16", "int_val", "int16"),
    DTypeInfo("int32", "DT_INT32", "Int32", "int_val", "int32"),
    DTypeInfo("int64", "DT_INT64", "Int64", "int64_val", "int64"),
    DTypeInfo("uint8", "DT_UINT8", "UInt8", "int_val", "uint8"),
    DTypeInfo("uint16", "DT_UINT16", "UInt16", "int_val", "uint16"),
    DTypeInfo("uint32", "DT_UINT32", "UInt32", "uint32_val", "uint32"),
    DTypeInfo("uint64", "DT_UINT64", "UInt64", "uint64_val", "uint64"),
    DTypeInfo("bool", "DT_BOOL", "Bool", "bool_val", "bool"),
    DTypeInfo("string", "DT_STRING", "String", "string_val", "object"),
    DTypeInfo("qint8", "DT_QINT8", "QInt8"),
    DTypeInfo("quint8", "DT_QUINT8", "QUInt8"),
    DTypeInfo("qint16", "DT_QINT16", "QInt16"),
    DTypeInfo("quint16", "DT_QUINT16", "QUInt16"),
    DTypeInfo("qint32", "DT_QINT32", "QInt32"),
    DTypeInfo("resource", "DT_RESOURCE", "Resource"),
    DTypeInfo("variant", "DT_VARIANT", "Variant"),
]

DTYPES: Dict[str, DTypeInfo] = {info.name: info for info in _TABLE}

ALIASES: Dict[str, str] = {
    "half": "float16",
    "float": "float32",
    "double": "float64",
}

# Enum spellings are accepted too (`DT_FLOAT` -> float32).
_BY_ENUM: Dict[str, str] = {info.enum: info.name for info in _TABLE}


class UnknownDTypeError(ValueError):
    """Raised when a dtype spelling is not in the table."""


def canonical_dtype(name: str) -> str:
    key = str(name).strip()
    if key in DTYPES:
        return key
    if key in ALIASES:
        return ALIASES[key]
    if key in _BY_ENUM:
        return _BY_ENUM[key]
    if key.startswith("_dtypes."):
        return canonical_dtype(key[len("_dtypes."):])
    raise UnknownDTypeError(f"unknown dtype: {name!r}")


def dtype_info(name: str) -> DTypeInfo:
    return DTYPES[canonical_dtype(name)]


def python_dtype(name: str, prefix: str = "_dtypes.") -> str:
    return f"{prefix}{canonical_dtype(name)}"


def annotation_class(name: str, prefix: str = "_dtypes.") -> str:
    return f"{prefix}{dtype_info(name).annotation}"


def all_annotation_classes(prefix: str = "_dtypes.") -> List[str]:
    return [f"{prefix}{info.annotation}" for info in _TABLE]


def _fmt_scalar(info: DTypeInfo, v) -> List[str]:
    if info.name in ("float16",):
        # half_val holds the raw 16-bit pattern.
        bits = np.asarray(v, dtype=np.float16).view(np.uint16)
        return [str(int(bits))]
    if info.name == "float32":
        return [format(float(v), ".9g")]
    if info.name == "float64":
        return [format(float(v), ".17g")]
    if info.name in ("complex64", "complex128"):
        spec = ".9g" if info.name == "complex64" else ".17g"
        c = complex(v)
        return [format(c.real, spec), format(c.imag, spec)]
    if info.name == "bool":
        return ["true" if bool(v) else "false"]
    if info.name == "string":
        raw = v if isinstance(v, bytes) else str(v).encode("utf-8")
        return ['"' + _escape_bytes(raw) + '"']
    return [str(int(v))]


def _escape_bytes(raw: bytes) -> str:
    out = []
    for b in raw:
        ch = chr(b)
        if ch == '"':
            out.append('\\"')
        elif ch == "\\":
            out.append("\\\\")
        elif ch == "\n":
            out.append("\\n")
        elif 32 <= b < 127:
            out.append(ch)
        else:
            out.append(f"\\{b:03o}")
    return "".join(out)


def make_tensor_array(dtype: str, values, shape: Optional[List[int]] = None) -> np.ndarray:
    info = dtype_info(dtype)
    if info.np_dtype is None:
        raise UnknownDTypeError(f"tensor literals of dtype {info.name} are not supported")
    arr = np.asarray(values, dtype=np.dtype(info.np_dtype))
    if shape is not None:
        arr = arr.reshape([int(d) for d in shape])
    return arr


def tensor_literal_text(arr: np.ndarray, dtype: Optional[str] = None) -> str:
    """
    Single-line text form of a tensor value, e.g.
    `dtype: DT_FLOAT tensor_shape { dim { size: 2 } } float_val: 1 float_val: 2`.
    """
    if dtype is None:
        dtype = "string" if arr.dtype == np.object_ else arr.dtype.name
    info = dtype_info(dtype)
    if info.value_field is None:
        raise UnknownDTypeError(f"tensor literals of dtype {info.name} are not supported")
    dims = " ".join(f"dim {{ size: {int(d)} }}" for d in arr.shape)
    shape_txt = f"tensor_shape {{ {dims} }}" if dims else "tensor_shape { }"
    parts = [f"dtype: {info.enum}", shape_txt]
    for v in arr.reshape(-1).tolist():
        for item in _fmt_scalar(info, v):
            parts.append(f"{info.value_field}: {item}")
    return " ".join(parts)


__all__ = [
    "DTypeInfo",
    "DTYPES",
    "ALIASES",
    "UnknownDTypeError",
    "canonical_dtype",
    "dtype_info",
    "python_dtype",
    "annotation_class",
    "all_annotation_classes",
    "make_tensor_array",
    "tensor_literal_text",
]

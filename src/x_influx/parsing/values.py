from __future__ import annotations

import math
import re
from dataclasses import dataclass
from typing import Union


## -- Typed values. Closed union, inference order: bool -> int -> float -> text.

@dataclass(frozen=True, slots=True)
class Integer:
    value: int


@dataclass(frozen=True, slots=True)
class Float:
    value: float


@dataclass(frozen=True, slots=True)
class Boolean:
    value: bool


@dataclass(frozen=True, slots=True)
class Text:
    value: str


TypedValue = Union[Integer, Float, Boolean, Text]


_I64_MIN = -(2**63)
_I64_MAX = 2**63 - 1

# "0" is the only integer allowed to start with a zero.
_INT_RE = re.compile(r"[+-]?(?:0|[1-9][0-9]*)")
# plain decimal or scientific literals only; rejects "nan", "inf", "1_000", hex...
_FLOAT_RE = re.compile(r"[+-]?(?:[0-9]+\.?[0-9]*|\.[0-9]+)(?:[eE][+-]?[0-9]+)?")


def infer_value(raw: str) -> TypedValue:
    """
    Infer the line-protocol type of one raw text field. Total: never raises.

    First match wins:
    - `true`/`false` (any case) -> `Boolean`
    - signed 64-bit integer without leading zeros -> `Integer`
    - finite decimal/scientific number -> `Float` (integers out of range land here)
    - anything else, including `""`, `NaN` and `Infinity` -> `Text`
    """
    lowered = raw.lower()
    if lowered == "true":
        return Boolean(True)
    if lowered == "false":
        return Boolean(False)

    # more than 19 digits can never fit in 64 bits.
    if _INT_RE.fullmatch(raw) and len(raw.lstrip("+-")) <= 19:
        n = int(raw)
        if _I64_MIN <= n <= _I64_MAX:
            return Integer(n)

    if _FLOAT_RE.fullmatch(raw):
        f = float(raw)
        if math.isfinite(f):
            return Float(f)

    return Text(raw)


## -- Line-protocol escaping

_MEASUREMENT_ESCAPES = str.maketrans({
    "\\": "\\\\",
    ",": r"\,",
    " ": r"\ ",
    "\n": r"\n",
    "\r": r"\r",
    "\t": r"\t",
})

_KEY_ESCAPES = str.maketrans({
    "\\": "\\\\",
    ",": r"\,",
    "=": r"\=",
    " ": r"\ ",
    "\n": r"\n",
    "\r": r"\r",
    "\t": r"\t",
})

_STRING_ESCAPES = str.maketrans({
    "\\": "\\\\",
    '"': r"\"",
})


def escape_measurement(s: str) -> str:
    """Escape a measurement (series) name."""
    return s.translate(_MEASUREMENT_ESCAPES)


def escape_key(s: str) -> str:
    """Escape a tag key, tag value or field key."""
    return s.translate(_KEY_ESCAPES)


escape_tag_value = escape_key


def render_value(value: TypedValue, *, integer_suffix: bool = False) -> str:
    """
    Render a typed value as a line-protocol field value.

    Integers are written as float literals unless `integer_suffix` is set,
    so a column mixing `3` and `3.5` keeps one field type in the database.
    """
    if isinstance(value, Boolean):
        return "true" if value.value else "false"
    if isinstance(value, Integer):
        return f"{value.value:d}i" if integer_suffix else f"{value.value:d}"
    if isinstance(value, Float):
        return repr(value.value)
    if isinstance(value, Text):
        return '"' + value.value.translate(_STRING_ESCAPES) + '"'
    raise TypeError(f"unsupported value type: {type(value).__name__}")

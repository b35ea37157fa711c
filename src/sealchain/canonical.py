"""
Canonical JSON serialization, the sole input to every evidence digest.

Two values that are deeply equal modulo mapping-key order and number
formatting always serialize to identical bytes. Output is compact JSON
whose primitives are written the way ECMAScript JSON.stringify writes
them, so digests reproduce byte-for-byte in other runtimes.

Rules:
- Mapping keys sorted by Unicode code point (keys must be strings)
- Sequences (list, tuple) keep their order
- No whitespace between tokens
- Floats: shortest round-trip digits, ECMAScript Number::toString layout
- NaN, Infinity and values JSON cannot represent become null
- Cyclic structures are rejected
"""

import json
import math
import re
from typing import Any

from .errors import CanonicalizationError


_LONE_SURROGATE = re.compile("[\ud800-\udfff]")


def canonical_json(value: Any) -> str:
    """
    Serialize a value to its canonical JSON text.

    Args:
        value: Any JSON-like value, arbitrarily nested

    Returns:
        Canonical JSON string with sorted keys and no whitespace

    Raises:
        CanonicalizationError: If the value contains a reference cycle
            or a mapping with a non-string key
    """
    return _serialize_value(value, set())


def canonicalize(value: Any) -> bytes:
    """Canonical JSON of `value` as UTF-8 bytes."""
    return canonical_json(value).encode("utf-8")


def _serialize_value(value: Any, active: set[int]) -> str:
    if value is None:
        return "null"

    if isinstance(value, bool):
        # Must check bool before int (bool is subclass of int in Python)
        return "true" if value else "false"

    if isinstance(value, (int, float)):
        return _serialize_number(value)

    if isinstance(value, str):
        return _serialize_string(value)

    if isinstance(value, (list, tuple)):
        return _serialize_container(value, active, _serialize_array)

    if isinstance(value, dict):
        return _serialize_container(value, active, _serialize_object)

    # Functions, sets, bytes and the like have no JSON form
    return "null"


def _serialize_container(value, active: set[int], serializer) -> str:
    marker = id(value)
    if marker in active:
        raise CanonicalizationError(
            f"Cyclic reference to {type(value).__name__} cannot be canonicalized"
        )
    active.add(marker)
    try:
        return serializer(value, active)
    finally:
        active.discard(marker)


def _serialize_number(num: float | int) -> str:
    """
    Serialize a number.

    Integers are written exactly. Floats follow ECMAScript
    Number::toString: plain notation for decimal exponents in (-7, 21),
    otherwise `d.ddde+N` with no leading zeros in the exponent.
    """
    if isinstance(num, int):
        return str(num)

    if math.isnan(num) or math.isinf(num):
        return "null"

    if num.is_integer() and abs(num) < 1e21:
        return str(int(num))

    return _format_float(num)


def _format_float(num: float) -> str:
    sign = "-" if num < 0 else ""
    mantissa, _, exponent = repr(abs(num)).partition("e")
    whole, _, fraction = mantissa.partition(".")

    raw = whole + fraction
    digits = raw.lstrip("0")
    # value == 0.<digits> * 10**point
    point = len(whole) + (int(exponent) if exponent else 0) - (len(raw) - len(digits))
    digits = digits.rstrip("0")
    count = len(digits)

    if count <= point <= 21:
        text = digits + "0" * (point - count)
    elif 0 < point <= 21:
        text = digits[:point] + "." + digits[point:]
    elif -6 < point <= 0:
        text = "0." + "0" * -point + digits
    else:
        exp = point - 1
        exp_text = ("+" if exp >= 0 else "-") + str(abs(exp))
        if count == 1:
            text = digits + "e" + exp_text
        else:
            text = digits[0] + "." + digits[1:] + "e" + exp_text

    return sign + text


def _serialize_string(text: str) -> str:
    """
    Serialize string with JSON escaping.

    json.dumps escapes control characters, backslash and double-quote;
    lone surrogates are escaped as \\uXXXX so the result stays valid UTF-8.
    """
    encoded = json.dumps(text, ensure_ascii=False)
    return _LONE_SURROGATE.sub(lambda m: "\\u%04x" % ord(m.group()), encoded)


def _serialize_array(arr: list | tuple, active: set[int]) -> str:
    items = [_serialize_value(item, active) for item in arr]
    return "[" + ",".join(items) + "]"


def _serialize_object(obj: dict, active: set[int]) -> str:
    """Serialize object with keys sorted by Unicode code point."""
    for key in obj:
        if not isinstance(key, str):
            raise CanonicalizationError(
                f"Mapping keys must be strings, got {type(key).__name__}"
            )

    pairs = [
        _serialize_string(key) + ":" + _serialize_value(obj[key], active)
        for key in sorted(obj)
    ]
    return "{" + ",".join(pairs) + "}"

"""
Runtime values of the template language.

Values are plain Python data: None, bool, int/float, str, list/tuple and
mappings. This module holds the rules shared by the evaluator and the
built-in filters: truthiness, string conversion, equality, ordering and
arithmetic.
"""

from __future__ import annotations

import html
import json
import math
from collections.abc import Mapping
from typing import Any

from ..errors import RenderErrorKind


class SafeString(str):
    """String that is exempt from output escaping."""

    def __repr__(self) -> str:
        return f"SafeString({str.__repr__(self)})"


class OperationError(Exception):
    """
    Failure of a value operation without position information.

    The evaluator re-raises it as RenderError at the offending node.
    """

    def __init__(self, kind: RenderErrorKind, message: str):
        super().__init__(message)
        self.kind = kind
        self.message = message


def is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def is_sequence(value: Any) -> bool:
    return isinstance(value, (list, tuple))


def is_mapping(value: Any) -> bool:
    return isinstance(value, Mapping)


def type_name(value: Any) -> str:
    """Name of the value's type as shown in diagnostics."""
    if value is None:
        return "null"
    if isinstance(value, bool):
        return "bool"
    if is_number(value):
        return "number"
    if isinstance(value, str):
        return "string"
    if is_sequence(value):
        return "sequence"
    if is_mapping(value):
        return "mapping"
    return type(value).__name__


def is_truthy(value: Any) -> bool:
    """
    Null, false, numeric zero, the empty string and empty collections
    are falsy; everything else is truthy.
    """
    if value is None:
        return False
    if isinstance(value, bool):
        return value
    if is_number(value):
        return value != 0
    if isinstance(value, str) or is_sequence(value) or is_mapping(value):
        return len(value) > 0
    return True


def to_string(value: Any) -> str:
    """String form used when a value is written to the output."""
    if value is None:
        return ""
    if isinstance(value, str):
        return value
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, float):
        if math.isfinite(value) and value.is_integer():
            return str(int(value))
        return repr(value)
    if is_number(value):
        return str(value)
    if is_sequence(value) or is_mapping(value):
        return json.dumps(_plain(value), ensure_ascii=False, default=str)
    return str(value)


def _plain(value: Any) -> Any:
    if is_mapping(value):
        return {str(k): _plain(v) for k, v in value.items()}
    if is_sequence(value):
        return [_plain(v) for v in value]
    return value


def escape_html(text: str) -> str:
    """Escapes & < > " and ' for safe inclusion in HTML."""
    return html.escape(text, quote=True)


def values_equal(left: Any, right: Any) -> bool:
    """Type-strict structural equality: 1 != true, 1 == 1.0."""
    if is_number(left) and is_number(right):
        return left == right
    if type_name(left) != type_name(right):
        return False
    if is_sequence(left):
        return len(left) == len(right) and all(values_equal(a, b) for a, b in zip(left, right))
    if is_mapping(left):
        if set(left.keys()) != set(right.keys()):
            return False
        return all(values_equal(left[k], right[k]) for k in left)
    return left == right


def compare(op: str, left: Any, right: Any) -> bool:
    """Ordering comparison; only number/number and string/string are ordered."""
    both_numbers = is_number(left) and is_number(right)
    both_strings = isinstance(left, str) and isinstance(right, str)
    if not (both_numbers or both_strings):
        raise _mismatch(op, left, right)
    if op == "<":
        return left < right
    if op == "<=":
        return left <= right
    if op == ">":
        return left > right
    return left >= right


def contains(container: Any, item: Any) -> bool:
    """Membership test for the 'in' operator."""
    if isinstance(container, str):
        if not isinstance(item, str):
            raise _mismatch("in", item, container)
        return item in container
    if is_sequence(container):
        return any(values_equal(item, element) for element in container)
    if is_mapping(container):
        try:
            return item in container
        except TypeError:
            # Нехешируемый ключ, например список
            raise _mismatch("in", item, container) from None
    raise _mismatch("in", item, container)


def arithmetic(op: str, left: Any, right: Any) -> Any:
    """Arithmetic operators: + - * / %."""
    if op == "+":
        if is_number(left) and is_number(right):
            return left + right
        if isinstance(left, str) and isinstance(right, str):
            return left + right
        if is_sequence(left) and is_sequence(right):
            return list(left) + list(right)
        raise _mismatch(op, left, right)

    if not (is_number(left) and is_number(right)):
        raise _mismatch(op, left, right)

    if op == "-":
        return left - right
    if op == "*":
        return left * right

    if right == 0:
        raise OperationError(RenderErrorKind.DIVISION_BY_ZERO, "Division by zero")
    if op == "/":
        if isinstance(left, int) and isinstance(right, int) and left % right == 0:
            return left // right
        return left / right
    return left % right


def negate(value: Any) -> Any:
    if not is_number(value):
        raise OperationError(
            RenderErrorKind.TYPE_MISMATCH,
            f"Unary '-' is not supported for {type_name(value)}",
        )
    return -value


def _mismatch(op: str, left: Any, right: Any) -> OperationError:
    return OperationError(
        RenderErrorKind.TYPE_MISMATCH,
        f"Operator '{op}' is not supported between {type_name(left)} and {type_name(right)}",
    )


__all__ = [
    "SafeString", "OperationError",
    "is_number", "is_sequence", "is_mapping", "type_name",
    "is_truthy", "to_string", "escape_html",
    "values_equal", "compare", "contains", "arithmetic", "negate",
]

"""
Filter registry and the built-in filter library.

A filter is any callable taking the piped value as its first argument and
the filter arguments after it: fn(value, *args, **kwargs), where kwargs come
from named arguments (`name: expr`). Filters reject bad input by raising
FilterArgumentError.

The registry is an immutable value: register_filter() returns a new registry
and leaves the receiver untouched, so one registry can be shared by
concurrent renders.
"""

from __future__ import annotations

import inspect
import json
import logging
import re
from types import MappingProxyType
from typing import Any, Callable, Dict, Iterator, Mapping, Optional

from .errors import FilterArgumentError
from .template.values import (
    SafeString, escape_html, is_mapping, is_number, is_sequence, to_string, type_name,
)

logger = logging.getLogger(__name__)

FilterFunc = Callable[..., Any]

_FILTER_NAME = re.compile(r'^[A-Za-z_][A-Za-z0-9_]*$')


class FilterRegistry(Mapping):
    """Immutable mapping from filter name to implementation."""

    def __init__(self, filters: Optional[Mapping[str, FilterFunc]] = None):
        checked: Dict[str, FilterFunc] = {}
        for name, fn in (filters or {}).items():
            _validate(name, fn)
            checked[name] = fn
        self._filters = MappingProxyType(checked)

    @classmethod
    def builtin(cls) -> FilterRegistry:
        """Registry with the built-in filters."""
        return _BUILTIN

    def with_filter(self, name: str, fn: FilterFunc) -> FilterRegistry:
        """Returns a new registry with the filter added or replaced."""
        if name in self._filters:
            logger.debug("Filter '%s' is overridden", name)
        merged = dict(self._filters)
        merged[name] = fn
        return FilterRegistry(merged)

    def merged(self, other: Mapping[str, FilterFunc]) -> FilterRegistry:
        merged = dict(self._filters)
        merged.update(other)
        return FilterRegistry(merged)

    def __getitem__(self, name: str) -> FilterFunc:
        return self._filters[name]

    def __iter__(self) -> Iterator[str]:
        return iter(self._filters)

    def __len__(self) -> int:
        return len(self._filters)

    def __repr__(self) -> str:
        return f"FilterRegistry({sorted(self._filters)})"


def register_filter(registry: FilterRegistry, name: str, fn: FilterFunc) -> FilterRegistry:
    """
    Registers a filter.

    Returns:
        A new registry; the passed one is unchanged.

    Raises:
        ValueError: If the name is not an identifier or fn is not callable
    """
    return registry.with_filter(name, fn)


def check_arity(name: str, fn: FilterFunc, value: Any, args: tuple,
                kwargs: Optional[Mapping[str, Any]] = None) -> None:
    """
    Checks that the filter accepts the value plus the given arguments.

    Raises:
        FilterArgumentError: On argument count mismatch or an unknown
            named argument
    """
    kwargs = kwargs or {}
    try:
        signature = inspect.signature(fn)
    except (TypeError, ValueError):
        # Builtins without introspectable signature are called as is
        return
    try:
        signature.bind(value, *args, **kwargs)
    except TypeError as e:
        raise FilterArgumentError(f"filter '{name}': {e}") from None


def _validate(name: str, fn: FilterFunc) -> None:
    if not isinstance(name, str) or not _FILTER_NAME.match(name):
        raise ValueError(f"Invalid filter name: {name!r}")
    if not callable(fn):
        raise ValueError(f"Filter '{name}' is not callable")


# Built-in filters

def _require_string(name: str, value: Any) -> str:
    if not isinstance(value, str):
        raise FilterArgumentError(f"filter '{name}' requires string input, got {type_name(value)}")
    return value


def _require_number(name: str, value: Any):
    if not is_number(value):
        raise FilterArgumentError(f"filter '{name}' requires number input, got {type_name(value)}")
    return value


def _require_sequence(name: str, value: Any):
    if isinstance(value, str) or is_sequence(value):
        return value
    raise FilterArgumentError(f"filter '{name}' requires sequence input, got {type_name(value)}")


def _safe(value):
    return SafeString(to_string(value))


def _escape(value):
    if isinstance(value, SafeString):
        return value
    return SafeString(escape_html(to_string(value)))


def _upper(value):
    return _require_string("upper", value).upper()


def _lower(value):
    return _require_string("lower", value).lower()


def _capitalize(value):
    return _require_string("capitalize", value).capitalize()


def _title(value):
    return _require_string("title", value).title()


def _trim(value):
    return _require_string("trim", value).strip()


def _length(value):
    if isinstance(value, str) or is_sequence(value) or is_mapping(value):
        return len(value)
    raise FilterArgumentError(f"filter 'length' requires string or collection input, got {type_name(value)}")


def _join(value, separator=""):
    items = _require_sequence("join", value)
    if not isinstance(separator, str):
        raise FilterArgumentError("filter 'join' requires a string separator")
    return separator.join(to_string(item) for item in items)


def _default(value, fallback=""):
    return fallback if value is None else value


def _first(value):
    items = _require_sequence("first", value)
    return items[0] if len(items) else None


def _last(value):
    items = _require_sequence("last", value)
    return items[-1] if len(items) else None


def _reverse(value):
    items = _require_sequence("reverse", value)
    if isinstance(items, str):
        return items[::-1]
    return list(reversed(items))


def _sort(value):
    items = _require_sequence("sort", value)
    if isinstance(items, str):
        return "".join(sorted(items))
    if all(is_number(item) for item in items) or all(isinstance(item, str) for item in items):
        return sorted(items)
    raise FilterArgumentError("filter 'sort' requires all numbers or all strings")


def _replace(value, old, new):
    text = _require_string("replace", value)
    if not isinstance(old, str) or not isinstance(new, str):
        raise FilterArgumentError("filter 'replace' requires string arguments")
    return text.replace(old, new)


def _truncate(value, length=80, suffix="..."):
    text = _require_string("truncate", value)
    if not isinstance(length, int) or isinstance(length, bool) or length < 0:
        raise FilterArgumentError("filter 'truncate' requires a non-negative integer length")
    if len(text) <= length:
        return text
    return text[:length] + to_string(suffix)


def _abs(value):
    return abs(_require_number("abs", value))


def _round(value, digits=0):
    number = _require_number("round", value)
    if not isinstance(digits, int) or isinstance(digits, bool):
        raise FilterArgumentError("filter 'round' requires an integer precision")
    try:
        if digits == 0:
            return int(round(number))
        return round(number, digits)
    except (ValueError, OverflowError):
        raise FilterArgumentError(f"filter 'round' cannot round {number!r}") from None


def _int(value):
    try:
        if isinstance(value, str):
            return int(float(value.strip()))
        return int(_require_number("int", value))
    except (ValueError, OverflowError):
        raise FilterArgumentError(f"filter 'int' cannot convert {value!r}") from None


def _float(value):
    try:
        if isinstance(value, str):
            return float(value.strip())
        return float(_require_number("float", value))
    except (ValueError, OverflowError):
        raise FilterArgumentError(f"filter 'float' cannot convert {value!r}") from None


def _string(value):
    return to_string(value)


def _keys(value):
    if not is_mapping(value):
        raise FilterArgumentError(f"filter 'keys' requires mapping input, got {type_name(value)}")
    return list(value.keys())


def _values(value):
    if not is_mapping(value):
        raise FilterArgumentError(f"filter 'values' requires mapping input, got {type_name(value)}")
    return list(value.values())


def _json(value):
    try:
        return json.dumps(value, ensure_ascii=False, sort_keys=True)
    except TypeError as e:
        raise FilterArgumentError(f"filter 'json' cannot serialize value: {e}") from None


def _prepend(value, text):
    return to_string(text) + to_string(value)


def _append(value, text):
    return to_string(value) + to_string(text)


BUILTIN_FILTERS: Mapping[str, FilterFunc] = MappingProxyType({
    "safe": _safe,
    "escape": _escape,
    "upper": _upper,
    "lower": _lower,
    "capitalize": _capitalize,
    "title": _title,
    "trim": _trim,
    "length": _length,
    "join": _join,
    "default": _default,
    "first": _first,
    "last": _last,
    "reverse": _reverse,
    "sort": _sort,
    "replace": _replace,
    "truncate": _truncate,
    "abs": _abs,
    "round": _round,
    "int": _int,
    "float": _float,
    "string": _string,
    "keys": _keys,
    "values": _values,
    "json": _json,
    "prepend": _prepend,
    "append": _append,
})

_BUILTIN = FilterRegistry(BUILTIN_FILTERS)


__all__ = [
    "FilterRegistry",
    "FilterFunc",
    "register_filter",
    "check_arity",
    "BUILTIN_FILTERS",
]

# SPDX-License-Identifier: MIT
# Copyright (c) 2025 bolt-store contributors

"""Equality queries and the predicate matcher.

A query maps field names to literal values. A document matches when every
queried field is present and strictly equal to the query value.
"""

from collections.abc import Mapping
from typing import Any

from .storage_engine import InvalidQueryError

_MISSING = object()


def is_number(value: Any) -> bool:
    """Return True for int and float values; bool is not a number here."""
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def strict_equals(left: Any, right: Any) -> bool:
    """Compare two values without type coercion.

    int and float form a single numeric type, bool only equals bool, and
    containers compare element-wise under the same rules.
    """
    if isinstance(left, bool) or isinstance(right, bool):
        return isinstance(left, bool) and isinstance(right, bool) and left == right
    if is_number(left) or is_number(right):
        return is_number(left) and is_number(right) and left == right
    if isinstance(left, Mapping) and isinstance(right, Mapping):
        if left.keys() != right.keys():
            return False
        return all(strict_equals(left[key], right[key]) for key in left)
    if isinstance(left, (list, tuple)) and isinstance(right, (list, tuple)):
        if len(left) != len(right):
            return False
        return all(strict_equals(a, b) for a, b in zip(left, right))
    if type(left) is not type(right):
        return False
    return left == right


def _is_operator_expression(value: Any) -> bool:
    return isinstance(value, Mapping) and any(
        isinstance(key, str) and key.startswith("$") for key in value
    )


def validate_query(query: Mapping[str, Any] | None) -> dict[str, Any]:
    """Check that a query is a flat equality mapping and return it as a dict.

    ``None`` is the empty query.

    Raises:
        InvalidQueryError: If the query is not a mapping, has non-string keys,
            or uses an operator expression such as ``{"$gte": 30}``
    """
    if query is None:
        return {}
    if not isinstance(query, Mapping):
        raise InvalidQueryError(f"Query must be a mapping, got {type(query).__name__}")

    for key, value in query.items():
        if not isinstance(key, str):
            raise InvalidQueryError(f"Query field names must be strings, got {key!r}")
        if _is_operator_expression(value):
            raise InvalidQueryError(
                f"Unsupported operator expression for field '{key}': {value!r}. "
                "Only exact-equality queries are supported"
            )
    return dict(query)


def matches(document: Mapping[str, Any], query: Mapping[str, Any]) -> bool:
    """Return True if the document satisfies every equality in the query."""
    for key, expected in query.items():
        actual = document.get(key, _MISSING)
        if actual is _MISSING or not strict_equals(actual, expected):
            return False
    return True


def filter_documents(
    documents: list[dict[str, Any]], query: Mapping[str, Any]
) -> list[dict[str, Any]]:
    """Return the matching documents, preserving their order."""
    return [doc for doc in documents if matches(doc, query)]

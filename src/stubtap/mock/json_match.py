"""
StubTap JSON Sub-Matcher

Structural comparison where the expected value only has to be a subset
of the actual one:

- objects: every expected key must be present with a sub-matching value
- arrays: prefix, index-aligned match (not set equality)
- strings, numbers, booleans: exact equality (1 == 1.0)
- null: matches null only

Any other pairing, including a kind mismatch, fails.
"""

from enum import Enum
from typing import Any, Dict, List, Optional, Union


JSONValue = Union[Dict[str, Any], List[Any], str, int, float, bool, None]


class JsonKind(Enum):
    """The closed set of JSON value kinds."""

    OBJECT = 'object'
    ARRAY = 'array'
    STRING = 'string'
    NUMBER = 'number'
    BOOLEAN = 'boolean'
    NULL = 'null'


def json_kind(value: Any) -> Optional[JsonKind]:
    """
    Classify a Python value as a JSON kind.

    bool is checked before int, since bool subclasses int.

    Returns:
        JsonKind, or None for values outside the JSON domain
    """
    if value is None:
        return JsonKind.NULL
    if isinstance(value, bool):
        return JsonKind.BOOLEAN
    if isinstance(value, (int, float)):
        return JsonKind.NUMBER
    if isinstance(value, str):
        return JsonKind.STRING
    if isinstance(value, dict):
        return JsonKind.OBJECT
    if isinstance(value, (list, tuple)):
        return JsonKind.ARRAY
    return None


def subset_matches(expected: Any, actual: Any) -> bool:
    """
    Check that ``actual`` structurally satisfies ``expected``.

    Args:
        expected: Expected (subset) JSON value
        actual: Actual JSON value, usually a parsed request body

    Returns:
        True if every part of expected is found in actual
    """
    expected_kind = json_kind(expected)
    if expected_kind is None or expected_kind != json_kind(actual):
        return False

    if expected_kind is JsonKind.OBJECT:
        for key, expected_value in expected.items():
            if key not in actual:
                return False
            if not subset_matches(expected_value, actual[key]):
                return False
        return True

    if expected_kind is JsonKind.ARRAY:
        if len(actual) < len(expected):
            return False
        return all(
            subset_matches(expected_item, actual_item)
            for expected_item, actual_item in zip(expected, actual)
        )

    if expected_kind is JsonKind.NULL:
        return True

    return expected == actual

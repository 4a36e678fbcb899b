"""
StubTap Predicates

Value types describing which requests a mock rule applies to. They carry
no behaviour; evaluation lives in matcher.py.
"""

from dataclasses import dataclass
from typing import Any, Optional, Union


class _AnyValue:
    """Sentinel for a query parameter whose value doesn't matter."""

    _instance = None

    def __new__(cls):
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __repr__(self) -> str:
        return 'ANY_VALUE'

    def __reduce__(self):
        return (_AnyValue, ())


ANY_VALUE = _AnyValue()


@dataclass(frozen=True)
class Method:
    """HTTP method, compared case-sensitively."""

    method: str


@dataclass(frozen=True)
class UrlPattern:
    """
    URL pattern with optional wildcards.

    "*" as host matches any host; "*" as a path segment matches one
    segment; "**" matches the rest of the path.
    """

    pattern: str


@dataclass(frozen=True)
class QueryParam:
    """
    Query item that must be present on the request.

    value:
        ANY_VALUE (default) - any value, or none at all
        None                - present without '=' ("?flag")
        str                 - exact (decoded) value; "" means "?flag="
    """

    key: str
    value: Union[Optional[str], _AnyValue] = ANY_VALUE


@dataclass(frozen=True)
class HeaderParam:
    """Header with an exact key and value."""

    key: str
    value: str


@dataclass(frozen=True)
class PathExtension:
    """File extension of the last path segment, without the dot."""

    extension: str


@dataclass(frozen=True)
class BodySubset:
    """JSON value the request body must structurally contain."""

    expected: Any


Predicate = Union[Method, UrlPattern, QueryParam, HeaderParam, PathExtension, BodySubset]

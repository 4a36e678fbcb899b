"""
StubTap Request Matcher

Evaluates rule predicates against an intercepted request.

Features:
- URL pattern matching with host and path wildcards ("*", "**")
- Method, query parameter, header and path extension matching
- JSON body matching by structural subset

Every check is a pure function returning a bool. Malformed patterns or
bodies never raise; they just don't match.
"""

from typing import Iterable, List, Optional

from ..common import URLComponents, safe_json_parse
from .json_match import subset_matches
from .predicates import (
    ANY_VALUE,
    BodySubset,
    HeaderParam,
    Method,
    PathExtension,
    Predicate,
    QueryParam,
    UrlPattern,
)
from .request import RequestView


SINGLE_SEGMENT_WILDCARD = '*'
REST_WILDCARD = '**'
HOST_WILDCARD = '*'

# Sentinel distinguishing "body is not JSON" from a JSON null body
_INVALID_JSON = object()


def path_matches_pattern(pattern_url: str, request_url: str) -> bool:
    """
    Check a request URL against a wildcard URL pattern.

    Hosts must be equal unless the pattern host is "*". Path segments are
    compared positionally: "*" matches any one segment, "**" matches the
    rest of the path (including nothing), anything else must be equal.
    The pattern must cover every request segment.

    A URL with no path at all ("https://h") has no segments, not even the
    root "/", so "https://*/**" doesn't match it; "https://h/" does.

    Args:
        pattern_url: Pattern such as "https://*/users/*/orders/**"
        request_url: Absolute request URL

    Returns:
        True if the request URL matches the pattern
    """
    try:
        pattern_host = URLComponents.hostname(pattern_url)
        request_host = URLComponents.hostname(request_url)
        pattern_segments = URLComponents.path_segments(pattern_url)
        request_segments = URLComponents.path_segments(request_url)
    except ValueError:
        return False

    if pattern_host != HOST_WILDCARD and pattern_host != request_host:
        return False

    return _segments_match(pattern_segments, request_segments)


def _segments_match(pattern_segments: List[str], request_segments: List[str]) -> bool:
    for idx, request_segment in enumerate(request_segments):
        if idx >= len(pattern_segments):
            return False

        pattern_segment = pattern_segments[idx]
        if pattern_segment == REST_WILDCARD:
            return True
        if pattern_segment != SINGLE_SEGMENT_WILDCARD and pattern_segment != request_segment:
            return False

    if len(pattern_segments) > len(request_segments):
        # Only a trailing "**" may cover zero remaining segments
        return pattern_segments[len(request_segments)] == REST_WILDCARD

    return True


def _query_matches(predicate: QueryParam, request: RequestView) -> bool:
    for name, value in request.query_items:
        if name != predicate.key:
            continue
        if predicate.value is ANY_VALUE or value == predicate.value:
            return True
    return False


def _header_matches(predicate: HeaderParam, request: RequestView) -> bool:
    return request.headers.get(predicate.key) == predicate.value


def _body_matches(predicate: BodySubset, request: RequestView) -> bool:
    actual = safe_json_parse(request.body, default=_INVALID_JSON)
    if actual is _INVALID_JSON:
        return False
    return subset_matches(predicate.expected, actual)


def evaluate(predicate: Predicate, request: RequestView) -> bool:
    """
    Evaluate a single predicate against a request.

    Args:
        predicate: Predicate to check
        request: Request view

    Returns:
        True if the predicate holds for the request
    """
    if isinstance(predicate, Method):
        return predicate.method == request.method
    if isinstance(predicate, UrlPattern):
        return path_matches_pattern(predicate.pattern, request.url)
    if isinstance(predicate, QueryParam):
        return _query_matches(predicate, request)
    if isinstance(predicate, HeaderParam):
        return _header_matches(predicate, request)
    if isinstance(predicate, PathExtension):
        return request.path_extension == predicate.extension
    if isinstance(predicate, BodySubset):
        return _body_matches(predicate, request)
    return False


def evaluate_all(predicates: Iterable[Predicate], request: RequestView) -> bool:
    """All predicates must hold; stops at the first that doesn't."""
    return all(evaluate(predicate, request) for predicate in predicates)


def first_failing(predicates: Iterable[Predicate], request: RequestView) -> Optional[Predicate]:
    """
    Find the first predicate that doesn't hold, for debugging output.

    Returns:
        The failing predicate, or None if all of them hold
    """
    for predicate in predicates:
        if not evaluate(predicate, request):
            return predicate
    return None

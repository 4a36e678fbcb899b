"""
StubTap Request View

Read-only projection of an intercepted request: the only thing the
matcher ever looks at.
"""

from dataclasses import dataclass, field
from functools import cached_property
from typing import List, Mapping, Optional

from ..common import URLComponents, QueryItem


@dataclass(frozen=True)
class RequestView:
    """
    Minimal description of an outgoing request.

    Headers keep the case they were given in and header matching is exact,
    unless ``headers`` is a case-insensitive mapping (the mock server passes
    Starlette's Headers, since ASGI servers lowercase header names).

    Example:
        view = RequestView('POST', 'https://api.example.com/users',
                           headers={'Content-Type': 'application/json'},
                           body=b'{"name": "Jane"}')
    """

    method: str
    url: str
    headers: Mapping[str, str] = field(default_factory=dict)
    body: Optional[bytes] = None

    @cached_property
    def host(self) -> Optional[str]:
        try:
            return URLComponents.hostname(self.url)
        except ValueError:
            return None

    @cached_property
    def path_segments(self) -> List[str]:
        try:
            return URLComponents.path_segments(self.url)
        except ValueError:
            return []

    @cached_property
    def query_items(self) -> List[QueryItem]:
        try:
            return URLComponents.query_items(self.url)
        except ValueError:
            return []

    @cached_property
    def path_extension(self) -> str:
        try:
            return URLComponents.path_extension(self.url)
        except ValueError:
            return ''

"""
StubTap URL Utilities

Shared URL parsing helpers used by the request matcher and the adapters.
"""

import posixpath
from urllib.parse import urlparse, unquote
from typing import List, Optional, Tuple


# A query item is (name, value); value is None when the item has no '='
QueryItem = Tuple[str, Optional[str]]


class URLComponents:
    """Splits absolute URLs into the pieces the matcher compares."""

    @staticmethod
    def hostname(url: str) -> Optional[str]:
        """
        Extract the host of a URL.

        Args:
            url: Absolute URL

        Returns:
            Lower-cased host name, or None when the URL has no host

        Raises:
            ValueError: If the URL cannot be parsed
        """
        return urlparse(url).hostname

    @staticmethod
    def path_segments(url: str) -> List[str]:
        """
        Split the URL path into positional segments.

        A rooted path starts with a "/" segment, followed by every
        non-empty component, so "https://h/a/b/" gives ["/", "a", "b"]
        and "https://h" gives [].

        Args:
            url: Absolute URL

        Returns:
            List of path segments

        Raises:
            ValueError: If the URL cannot be parsed
        """
        path = urlparse(url).path
        if not path:
            return []

        segments = ['/'] if path.startswith('/') else []
        segments.extend(s for s in path.split('/') if s)
        return segments

    @staticmethod
    def query_items(url: str) -> List[QueryItem]:
        """
        Parse query items in wire order.

        Unlike parse_qsl, this keeps "?flag" (value None) apart from
        "?flag=" (value ""). Names and values are percent-decoded.

        Args:
            url: Absolute URL

        Returns:
            List of (name, value) tuples
        """
        query = urlparse(url).query
        if not query:
            return []

        items: List[QueryItem] = []
        for part in query.split('&'):
            if not part:
                continue
            name, sep, value = part.partition('=')
            items.append((unquote(name), unquote(value) if sep else None))
        return items

    @staticmethod
    def path_extension(url: str) -> str:
        """
        Extension of the final path segment, without the dot.

        Returns "" when the last segment has no extension.
        """
        path = urlparse(url).path
        last_segment = posixpath.basename(path.rstrip('/'))
        return posixpath.splitext(last_segment)[1][1:]

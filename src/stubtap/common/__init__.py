"""
StubTap Common Utilities

Shared utilities and helpers used across StubTap modules.
"""

from .utils import safe_json_parse, read_bundled_file
from .url_utils import URLComponents, QueryItem

__all__ = [
    'safe_json_parse',
    'read_bundled_file',
    'URLComponents',
    'QueryItem',
]

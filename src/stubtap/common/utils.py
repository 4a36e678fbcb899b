"""
StubTap Common Utilities

Shared helpers for JSON bodies and bundled mock files.
"""

import json
from pathlib import Path
from typing import Any, Optional, Union


def safe_json_parse(raw: Optional[Union[str, bytes]], default: Any = None) -> Any:
    """
    Safely parse a JSON document with error handling.

    Args:
        raw: JSON text or UTF-8 encoded bytes
        default: Value to return if parsing fails

    Returns:
        Parsed JSON value, or default if the input is empty or invalid

    Example:
        body = safe_json_parse(request.body, default={})
    """
    if not raw:
        return default

    try:
        if isinstance(raw, bytes):
            raw = raw.decode('utf-8')
        return json.loads(raw)
    except (json.JSONDecodeError, UnicodeDecodeError, TypeError, ValueError):
        return default


def read_bundled_file(file_name: str, bundle_dir: Union[str, Path], extension: str = 'json') -> Optional[bytes]:
    """
    Read a file shipped next to the tests by name.

    Args:
        file_name: Name of the file without extension
        bundle_dir: Directory holding the bundled files
        extension: File extension to append

    Returns:
        File content, or None if the file doesn't exist
    """
    path = Path(bundle_dir) / f"{file_name}.{extension}"
    if not path.is_file():
        return None
    return path.read_bytes()

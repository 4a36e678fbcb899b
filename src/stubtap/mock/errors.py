"""
StubTap Mock Errors

Errors the interception adapters report to client code. Matching itself
never raises: a malformed pattern or body simply doesn't match.
"""

from typing import Any, Optional


class MockError(Exception):
    """Base class for all StubTap mock errors."""


class MockNotFoundError(MockError):
    """No usable mock for a request.

    ``excluded`` is True when an exclude rule matched but there was no
    passthrough transport to hand the request to.
    """

    def __init__(self, request: Any, excluded: bool = False):
        self.request = request
        self.excluded = excluded
        url = getattr(request, 'url', '') or ''
        if excluded:
            message = f"Request excluded from mocking and no passthrough configured: {url}"
        else:
            message = f"Mock NOT found for this request: {url}"
        super().__init__(message)


class JsonFileNotFoundError(MockError):
    """A bundled JSON body file could not be loaded."""

    def __init__(self, file_name: str):
        self.file_name = file_name
        super().__init__(f"JSON mock file can't be loaded: {file_name}")


class ResponseBuildError(MockError):
    """The adapter could not render a protocol response from a ResponseSpec."""

    def __init__(self, response: Any, reason: Optional[str] = None):
        self.response = response
        self.reason = reason
        message = f"Can't create HTTP response from response: {response!r}"
        if reason:
            message = f"{message} ({reason})"
        super().__init__(message)


class ForcedResponseError(MockError):
    """Intentional error outcome configured on a rule."""

    def __init__(self, code: int, domain: str):
        self.code = code
        self.domain = domain
        super().__init__(f"Forced error {code} ({domain})")


class InvalidRuleError(ValueError):
    """A mock rule was constructed with invalid arguments."""


class RuleDecodeError(ValueError):
    """A serialized mock rule could not be decoded."""

"""
StubTap Interception Policy

Shared decision logic for the adapters that hook into HTTP clients:
claim a rule from the registry, apply the not-found policy, and check
that a response spec can be rendered.
"""

import logging
from dataclasses import dataclass
from typing import Callable, Dict, Optional

from .errors import ForcedResponseError, MockNotFoundError, ResponseBuildError
from .registry import MockRegistry, get_default_registry
from .request import RequestView
from .rules import ForcedError, MockRule, Respond, ResponseSpec


logger = logging.getLogger("stubtap.mock.interception")

_HEADER_BREAKS = ("\r", "\n", "\0")


def log_mock_not_found(request: RequestView) -> None:
    """Default not-found hook: log a warning."""
    logger.warning(str(MockNotFoundError(request)))


@dataclass
class Decision:
    """What an adapter should do with an intercepted request."""

    rule: Optional[MockRule] = None
    excluded: bool = False

    @property
    def serves_mock(self) -> bool:
        return self.rule is not None and isinstance(self.rule.outcome, Respond)

    @property
    def response(self) -> ResponseSpec:
        return self.rule.outcome.response


class Interceptor:
    """
    Resolves intercepted requests against a registry.

    Args:
        registry: Registry to claim rules from (default: process-wide one)
        fail_when_mock_not_found: Raise MockNotFoundError when nothing
            matches, instead of passing the request through
        on_mock_not_found: Called with the request view when nothing matches
    """

    def __init__(
        self,
        registry: Optional[MockRegistry] = None,
        fail_when_mock_not_found: bool = True,
        on_mock_not_found: Optional[Callable[[RequestView], None]] = None
    ):
        self.registry = registry if registry is not None else get_default_registry()
        self.fail_when_mock_not_found = fail_when_mock_not_found
        self.on_mock_not_found = on_mock_not_found or log_mock_not_found

    def decide(self, request: RequestView) -> Decision:
        """
        Claim a rule for the request.

        Returns:
            Decision with the claimed rule; when it doesn't serve a mock the
            adapter must pass the request through

        Raises:
            MockNotFoundError: If nothing matches and failing is enabled
        """
        matched = self.registry.claim(request)

        if matched is None:
            self.on_mock_not_found(request)
            if self.fail_when_mock_not_found:
                raise MockNotFoundError(request)
            return Decision()

        if matched.is_exclusion:
            logger.debug(f"Request excluded from mocking: {request.method} {request.url}")
            return Decision(rule=matched, excluded=True)

        return Decision(rule=matched)


def check_renderable(spec: ResponseSpec) -> None:
    """
    Make sure a response spec can become a protocol response.

    Raises:
        ForcedResponseError: If the body is a forced error
        ResponseBuildError: If status code or headers are invalid
    """
    if isinstance(spec.body, ForcedError):
        raise ForcedResponseError(spec.body.code, spec.body.domain)

    if isinstance(spec.status_code, bool) or not isinstance(spec.status_code, int) \
            or not 100 <= spec.status_code <= 599:
        raise ResponseBuildError(spec, f"invalid status code {spec.status_code!r}")

    for key, value in (spec.headers or {}).items():
        if not isinstance(key, str) or not isinstance(value, str):
            raise ResponseBuildError(spec, f"invalid header {key!r}: {value!r}")
        # httpx encodes header values as ASCII; a CR or LF would split the header
        if not key or not key.isascii() or not value.isascii() \
                or any(c in _HEADER_BREAKS for c in key + value):
            raise ResponseBuildError(spec, f"header must be ASCII without line breaks {key!r}: {value!r}")


def response_headers(spec: ResponseSpec) -> Dict[str, str]:
    return dict(spec.headers) if spec.headers else {}

"""
StubTap requests Adapter

Interception adapter for the requests library. Mount it on a session
and the session's requests are answered from the mock registry.

Example:
    session = requests.Session()
    session.mount('https://', MockAdapter(registry))
    session.mount('http://', MockAdapter(registry))
"""

import logging
import time
from typing import Callable, Optional

from requests.adapters import BaseAdapter
from requests.models import PreparedRequest, Response
from requests.structures import CaseInsensitiveDict
from requests.utils import get_encoding_from_headers

from .errors import MockNotFoundError
from .interception import Decision, Interceptor, check_renderable, response_headers
from .registry import MockRegistry
from .request import RequestView
from .rules import ResponseSpec


logger = logging.getLogger("stubtap.mock.adapters")


def request_view_from_prepared(request: PreparedRequest) -> RequestView:
    """Project a prepared requests request."""
    body = request.body
    if isinstance(body, str):
        body = body.encode('utf-8')
    elif body is not None and not isinstance(body, bytes):
        # Streaming bodies (file objects, generators) can't be matched on
        body = None

    return RequestView(
        method=request.method or 'GET',
        url=request.url or '',
        headers=dict(request.headers),
        body=body or None
    )


def build_requests_response(spec: ResponseSpec, request: PreparedRequest, adapter: BaseAdapter) -> Response:
    """
    Render a response spec as a requests response.

    Raises:
        ForcedResponseError: If the rule forces an error
        ResponseBuildError: If the response can't be rendered
    """
    check_renderable(spec)

    resp = Response()
    resp.status_code = spec.status_code
    resp.headers = CaseInsensitiveDict(response_headers(spec))
    resp.encoding = get_encoding_from_headers(resp.headers)
    resp._content = spec.body_bytes()
    resp.url = request.url
    resp.request = request
    resp.connection = adapter
    resp.reason = 'Mocked'
    return resp


class MockAdapter(BaseAdapter):
    """
    requests transport adapter serving responses from a mock registry.

    Args:
        registry: Registry to claim rules from (default: process-wide one)
        passthrough: Adapter for excluded or (when not failing) unmatched
            requests, e.g. requests.adapters.HTTPAdapter()
        fail_when_mock_not_found: Raise MockNotFoundError for unmatched requests
        on_mock_not_found: Hook called with the request view when nothing matches
    """

    def __init__(
        self,
        registry: Optional[MockRegistry] = None,
        passthrough: Optional[BaseAdapter] = None,
        fail_when_mock_not_found: bool = True,
        on_mock_not_found: Optional[Callable[[RequestView], None]] = None
    ):
        super().__init__()
        self.interceptor = Interceptor(
            registry=registry,
            fail_when_mock_not_found=fail_when_mock_not_found,
            on_mock_not_found=on_mock_not_found
        )
        self.passthrough = passthrough

    @property
    def registry(self) -> MockRegistry:
        return self.interceptor.registry

    def send(self, request, stream=False, timeout=None, verify=True, cert=None, proxies=None):
        decision = self.interceptor.decide(request_view_from_prepared(request))

        if not decision.serves_mock:
            return self._pass_through(request, decision, stream=stream, timeout=timeout,
                                      verify=verify, cert=cert, proxies=proxies)

        delay = decision.rule.delay
        if delay:
            time.sleep(delay)
        return build_requests_response(decision.response, request, self)

    def _pass_through(self, request: PreparedRequest, decision: Decision, **kwargs) -> Response:
        if self.passthrough is None:
            raise MockNotFoundError(request_view_from_prepared(request), excluded=decision.excluded)
        logger.debug(f"Passing through {request.method} {request.url}")
        return self.passthrough.send(request, **kwargs)

    def close(self):
        if self.passthrough is not None:
            self.passthrough.close()

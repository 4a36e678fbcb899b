"""
StubTap httpx Transport

Interception adapter for httpx clients. Plug it in as the client
transport and every request is answered from the mock registry.

Example:
    registry = MockRegistry()
    registry.add(rule([Method('GET'), UrlPattern('https://*/users/*')],
                      response(200, body=TextBody('{"id": 1}'))))

    with httpx.Client(transport=MockTransport(registry)) as client:
        client.get('https://api.example.com/users/1').json()
"""

import asyncio
import logging
import time
from typing import Callable, Optional, Union

import httpx

from .errors import MockNotFoundError, ResponseBuildError
from .interception import Decision, Interceptor, check_renderable, response_headers
from .registry import MockRegistry
from .request import RequestView
from .rules import ResponseSpec


logger = logging.getLogger("stubtap.mock.transport")

CACHE_POLICY_EXTENSION = 'stubtap_cache_policy'


def request_view_from_httpx(request: httpx.Request) -> RequestView:
    """Project an httpx request; the body must already be read."""
    headers = {
        key.decode('latin-1'): value.decode('latin-1')
        for key, value in request.headers.raw
    }
    return RequestView(
        method=request.method,
        url=str(request.url),
        headers=headers,
        body=request.content or None
    )


def build_httpx_response(spec: ResponseSpec, request: httpx.Request) -> httpx.Response:
    """
    Render a response spec as an httpx response.

    Raises:
        ForcedResponseError: If the rule forces an error
        ResponseBuildError: If the response can't be rendered
    """
    check_renderable(spec)
    try:
        return httpx.Response(
            status_code=spec.status_code,
            headers=response_headers(spec),
            content=spec.body_bytes(),
            request=request,
            extensions={
                'http_version': spec.http_version.encode('ascii', errors='replace'),
                CACHE_POLICY_EXTENSION: spec.cache_storage_policy.value,
            }
        )
    except (UnicodeEncodeError, ValueError) as e:
        raise ResponseBuildError(spec, str(e)) from e


class MockTransport(httpx.BaseTransport, httpx.AsyncBaseTransport):
    """
    httpx transport serving responses from a mock registry.

    Works for both httpx.Client and httpx.AsyncClient. Rule delays block
    only the request being served: time.sleep for sync clients,
    asyncio.sleep for async ones. A cancelled async request gets nothing.

    Args:
        registry: Registry to claim rules from (default: process-wide one)
        passthrough: Transport for excluded or (when not failing) unmatched
            requests; must be async-capable for AsyncClient use
        fail_when_mock_not_found: Raise MockNotFoundError for unmatched requests
        on_mock_not_found: Hook called with the request view when nothing matches
    """

    def __init__(
        self,
        registry: Optional[MockRegistry] = None,
        passthrough: Optional[Union[httpx.BaseTransport, httpx.AsyncBaseTransport]] = None,
        fail_when_mock_not_found: bool = True,
        on_mock_not_found: Optional[Callable[[RequestView], None]] = None
    ):
        self.interceptor = Interceptor(
            registry=registry,
            fail_when_mock_not_found=fail_when_mock_not_found,
            on_mock_not_found=on_mock_not_found
        )
        self.passthrough = passthrough

    @property
    def registry(self) -> MockRegistry:
        return self.interceptor.registry

    def handle_request(self, request: httpx.Request) -> httpx.Response:
        request.read()
        decision = self.interceptor.decide(request_view_from_httpx(request))

        if not decision.serves_mock:
            return self._pass_through(request, decision)

        delay = decision.rule.delay
        if delay:
            time.sleep(delay)
        return build_httpx_response(decision.response, request)

    async def handle_async_request(self, request: httpx.Request) -> httpx.Response:
        await request.aread()
        decision = self.interceptor.decide(request_view_from_httpx(request))

        if not decision.serves_mock:
            return await self._pass_through_async(request, decision)

        delay = decision.rule.delay
        if delay:
            await asyncio.sleep(delay)
        return build_httpx_response(decision.response, request)

    def _pass_through(self, request: httpx.Request, decision: Decision) -> httpx.Response:
        if not isinstance(self.passthrough, httpx.BaseTransport):
            raise MockNotFoundError(request_view_from_httpx(request), excluded=decision.excluded)
        logger.debug(f"Passing through {request.method} {request.url}")
        return self.passthrough.handle_request(request)

    async def _pass_through_async(self, request: httpx.Request, decision: Decision) -> httpx.Response:
        if not isinstance(self.passthrough, httpx.AsyncBaseTransport):
            raise MockNotFoundError(request_view_from_httpx(request), excluded=decision.excluded)
        logger.debug(f"Passing through {request.method} {request.url}")
        return await self.passthrough.handle_async_request(request)

    def close(self) -> None:
        if isinstance(self.passthrough, httpx.BaseTransport):
            self.passthrough.close()

    async def aclose(self) -> None:
        if isinstance(self.passthrough, httpx.AsyncBaseTransport):
            await self.passthrough.aclose()

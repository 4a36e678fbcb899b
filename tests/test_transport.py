"""
Tests for StubTap httpx Transport

Tests interception of httpx clients:
- Serving matched responses (sync and async)
- Not-found policy and hook
- Exclusion and passthrough
- Forced errors and unrenderable responses
- Delays
"""

import asyncio
import json
import time
from unittest.mock import Mock

import httpx
import pytest

from stubtap.mock.errors import ForcedResponseError, MockNotFoundError, ResponseBuildError
from stubtap.mock.predicates import BodySubset, HeaderParam, Method, PathExtension, UrlPattern
from stubtap.mock.registry import MockRegistry
from stubtap.mock.rules import (
    CachePolicy,
    ForcedError,
    RemainingUses,
    TextBody,
    exclude_rule,
    response,
    rule,
)
from stubtap.mock.transport import CACHE_POLICY_EXTENSION, MockTransport


@pytest.fixture
def registry():
    """Registry with a user endpoint mock."""
    registry = MockRegistry()
    registry.add(rule(
        [Method('GET'), UrlPattern('https://*/users/*')],
        response(200, {'Content-Type': 'application/json'}, TextBody('{"id": 1, "name": "Jane"}'),
                 cache_storage_policy=CachePolicy.ALLOWED)
    ))
    return registry


@pytest.fixture
def real_server():
    """Stand-in for the network, records what it receives."""
    received = []

    def handler(request):
        received.append(request)
        return httpx.Response(200, text='from network')

    transport = httpx.MockTransport(handler)
    transport.received = received
    return transport


class TestServing:
    """Test matched responses."""

    def test_matched_response(self, registry):
        """Test a matching request gets the canned response."""
        with httpx.Client(transport=MockTransport(registry)) as client:
            resp = client.get('https://api.example.com/users/1')

        assert resp.status_code == 200
        assert resp.json() == {'id': 1, 'name': 'Jane'}
        assert resp.headers['content-type'] == 'application/json'
        assert resp.extensions[CACHE_POLICY_EXTENSION] == 'allowed'
        assert resp.http_version == 'HTTP/1.1'

    def test_counters_updated(self, registry):
        """Test the rule records its matches."""
        with httpx.Client(transport=MockTransport(registry)) as client:
            client.get('https://api.example.com/users/1')
            client.get('https://api.example.com/users/2')

        assert registry.all()[0].match_count == 2

    def test_header_and_body_predicates(self):
        """Test request headers and JSON body reach the matcher."""
        registry = MockRegistry([rule(
            [Method('POST'), HeaderParam('X-Token', 'abc'), BodySubset({'name': 'Jane'})],
            response(201)
        )])

        with httpx.Client(transport=MockTransport(registry)) as client:
            resp = client.post('https://h/users', json={'name': 'Jane', 'age': 30},
                               headers={'X-Token': 'abc'})

        assert resp.status_code == 201

    def test_single_use_then_fallthrough(self, registry):
        """Test a one-shot rule in front of a permanent one."""
        registry.add(rule([Method('GET')], response(503), consumption=RemainingUses(1)))

        with httpx.Client(transport=MockTransport(registry)) as client:
            first = client.get('https://api.example.com/users/1')
            second = client.get('https://api.example.com/users/1')

        assert first.status_code == 503
        assert second.status_code == 200

    def test_async_client(self, registry):
        """Test AsyncClient support."""
        async def fetch():
            async with httpx.AsyncClient(transport=MockTransport(registry)) as client:
                return await client.get('https://api.example.com/users/1')

        resp = asyncio.run(fetch())

        assert resp.status_code == 200
        assert resp.json()['name'] == 'Jane'


class TestNotFound:
    """Test the not-found policy."""

    def test_raises_by_default(self, registry):
        """Test unmatched requests fail."""
        with httpx.Client(transport=MockTransport(registry)) as client:
            with pytest.raises(MockNotFoundError) as exc_info:
                client.get('https://api.example.com/orders')

        assert not exc_info.value.excluded
        assert exc_info.value.request.url == 'https://api.example.com/orders'

    def test_hook_called(self, registry):
        """Test the not-found hook receives the request."""
        hook = Mock()
        transport = MockTransport(registry, on_mock_not_found=hook)

        with httpx.Client(transport=transport) as client:
            with pytest.raises(MockNotFoundError):
                client.delete('https://api.example.com/users/1')

        hook.assert_called_once()
        assert hook.call_args[0][0].method == 'DELETE'

    def test_default_hook_logs(self, registry, caplog):
        """Test the default hook logs a warning."""
        with httpx.Client(transport=MockTransport(registry)) as client:
            with caplog.at_level('WARNING', logger='stubtap.mock.interception'):
                with pytest.raises(MockNotFoundError):
                    client.get('https://api.example.com/orders')

        assert 'Mock NOT found for this request' in caplog.text

    def test_no_fail_passes_through(self, registry, real_server):
        """Test unmatched requests go to the passthrough when not failing."""
        transport = MockTransport(registry, passthrough=real_server, fail_when_mock_not_found=False)

        with httpx.Client(transport=transport) as client:
            resp = client.get('https://api.example.com/orders')

        assert resp.text == 'from network'
        assert len(real_server.received) == 1

    def test_no_fail_without_passthrough(self, registry):
        """Test there is nowhere to go without a passthrough."""
        transport = MockTransport(registry, fail_when_mock_not_found=False)

        with httpx.Client(transport=transport) as client:
            with pytest.raises(MockNotFoundError):
                client.get('https://api.example.com/orders')


class TestExclusion:
    """Test exclusion rules."""

    def test_excluded_goes_to_passthrough(self, registry, real_server):
        """Test excluded requests reach the network."""
        registry.add(exclude_rule([PathExtension('png')]))
        transport = MockTransport(registry, passthrough=real_server)

        with httpx.Client(transport=transport) as client:
            resp = client.get('https://cdn.example.com/images/logo.png')

        assert resp.text == 'from network'
        assert registry.all()[0].match_count == 1

    def test_excluded_without_passthrough(self, registry):
        """Test exclusion with no passthrough raises an excluded error."""
        registry.add(exclude_rule([UrlPattern('https://*/users/*')]))

        with httpx.Client(transport=MockTransport(registry)) as client:
            with pytest.raises(MockNotFoundError) as exc_info:
                client.get('https://api.example.com/users/1')

        assert exc_info.value.excluded

    def test_excluded_doesnt_call_hook(self, registry, real_server):
        """Test exclusion isn't reported as not found."""
        registry.add(exclude_rule([PathExtension('png')]))
        hook = Mock()
        transport = MockTransport(registry, passthrough=real_server, on_mock_not_found=hook)

        with httpx.Client(transport=transport) as client:
            client.get('https://cdn.example.com/logo.png')

        hook.assert_not_called()

    def test_async_passthrough(self, registry, real_server):
        """Test async exclusion passthrough."""
        registry.add(exclude_rule([PathExtension('png')]))

        async def fetch():
            transport = MockTransport(registry, passthrough=real_server)
            async with httpx.AsyncClient(transport=transport) as client:
                return await client.get('https://cdn.example.com/logo.png')

        assert asyncio.run(fetch()).text == 'from network'


class TestErrors:
    """Test forced errors and build errors."""

    def test_forced_error(self):
        """Test a forced error body fails the request."""
        registry = MockRegistry([rule([Method('GET')], response(200, body=ForcedError(-1009, 'offline')))])

        with httpx.Client(transport=MockTransport(registry)) as client:
            with pytest.raises(ForcedResponseError) as exc_info:
                client.get('https://h/')

        assert exc_info.value.code == -1009
        assert exc_info.value.domain == 'offline'

    def test_invalid_status(self):
        """Test an unrenderable response fails the request."""
        registry = MockRegistry([rule([Method('GET')], response(42))])

        with httpx.Client(transport=MockTransport(registry)) as client:
            with pytest.raises(ResponseBuildError):
                client.get('https://h/')

    @pytest.mark.parametrize('headers', [
        {'X-Name': 'café'},
        {'X-Name': 'a\r\nX-Injected: b'},
        {'': 'value'},
    ])
    def test_unencodable_headers(self, headers):
        """Test headers httpx can't send are reported as build errors."""
        registry = MockRegistry([rule([Method('GET')], response(200, headers=headers))])

        with httpx.Client(transport=MockTransport(registry)) as client:
            with pytest.raises(ResponseBuildError):
                client.get('https://h/')


class TestDelay:
    """Test response delays."""

    def test_sync_delay(self):
        """Test the response is delayed."""
        registry = MockRegistry([rule([Method('GET')], response(204), delay=0.2)])

        start = time.monotonic()
        with httpx.Client(transport=MockTransport(registry)) as client:
            resp = client.get('https://h/')

        assert resp.status_code == 204
        assert time.monotonic() - start >= 0.2

    def test_async_delays_overlap(self):
        """Test delayed async requests don't block each other."""
        registry = MockRegistry([rule([Method('GET')], response(200, body=TextBody(json.dumps({}))), delay=0.3)])

        async def fetch_many():
            async with httpx.AsyncClient(transport=MockTransport(registry)) as client:
                return await asyncio.gather(*(client.get('https://h/') for _ in range(5)))

        start = time.monotonic()
        responses = asyncio.run(fetch_many())
        elapsed = time.monotonic() - start

        assert all(r.status_code == 200 for r in responses)
        assert elapsed < 1.0

    def test_cancel_during_delay(self):
        """Test a cancelled request gets nothing and its rule stays consumed."""
        delayed = rule([Method('GET')], response(200), delay=5, consumption=RemainingUses(1))
        registry = MockRegistry([delayed])

        async def cancel_midway():
            async with httpx.AsyncClient(transport=MockTransport(registry)) as client:
                task = asyncio.create_task(client.get('https://h/'))
                await asyncio.sleep(0.1)
                task.cancel()
                with pytest.raises(asyncio.CancelledError):
                    await task

        start = time.monotonic()
        asyncio.run(cancel_midway())

        assert time.monotonic() - start < 2.0
        assert delayed.consumption == RemainingUses(0)
        assert delayed.match_count == 1

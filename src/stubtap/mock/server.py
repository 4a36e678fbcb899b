"""
StubTap Mock Server

FastAPI-based HTTP mock server that answers requests from a mock registry.

Features:
- Rule matching with wildcards, query/header/body predicates
- Single-use and limited-use rules, exclusion rules
- Per-rule response delays
- Admin API to push, replace and inspect rules from a test driver
- Metrics and logging
"""

from __future__ import annotations  # Enable forward references for type hints

import asyncio
import json
import logging
from dataclasses import dataclass, field, fields
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

import httpx
import uvicorn
import yaml
from fastapi import FastAPI, Request, Response
from fastapi.responses import JSONResponse

from .codec import RuleLoader, decode_rules, encode_predicate, encode_rule
from .errors import ForcedResponseError, ResponseBuildError, RuleDecodeError
from .interception import check_renderable, response_headers
from .matcher import first_failing
from .registry import MockRegistry, get_default_registry
from .request import RequestView
from .rules import MockRule, ResponseSpec


@dataclass
class MockConfig:
    """Configuration for mock server behavior."""

    # Fallback behavior
    fallback_status: int = 404
    fallback_body: str = '{"error": "No matching mock found"}'
    forced_error_status: int = 502
    fallback_candidates_limit: int = 5  # Rules explained in the fallback body

    # Server options
    host: str = "127.0.0.1"
    port: int = 8080
    log_level: str = "info"
    verbose_mode: bool = False  # Show detailed request/match info in console

    # Admin API
    admin_enabled: bool = True
    admin_prefix: str = "/__admin__"

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> MockConfig:
        """Create config from a dictionary, ignoring unknown keys."""
        known = {f.name for f in fields(cls)}
        return cls(**{k: v for k, v in data.items() if k in known})

    @classmethod
    def from_yaml(cls, yaml_path: Union[str, Path]) -> MockConfig:
        """Load config from a YAML file; settings may sit under a "server" key."""
        with open(yaml_path, 'r') as f:
            data = yaml.safe_load(f) or {}

        return cls.from_dict(data.get('server', data))


@dataclass
class MockMetrics:
    """Track mock server metrics."""

    total_requests: int = 0
    matched_requests: int = 0
    unmatched_requests: int = 0
    excluded_requests: int = 0
    forced_errors: int = 0
    start_time: str = field(default_factory=lambda: datetime.now().isoformat())

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary."""
        uptime_seconds = (datetime.now() - datetime.fromisoformat(self.start_time)).total_seconds()
        return {
            'total_requests': self.total_requests,
            'matched_requests': self.matched_requests,
            'unmatched_requests': self.unmatched_requests,
            'excluded_requests': self.excluded_requests,
            'forced_errors': self.forced_errors,
            'match_rate': round((self.matched_requests / self.total_requests * 100) if self.total_requests > 0 else 0, 2),
            'uptime_seconds': round(uptime_seconds, 2),
            'start_time': self.start_time
        }


class MockServer:
    """
    FastAPI-based mock server answering requests from a mock registry.

    Rules are matched against the URL the server receives, so patterns
    for the server usually use a wildcard host ("http://*/users/*").

    Example:
        # Serve rules from a file
        server = create_mock_server('mocks.yaml', port=8080)
        server.start()

        # Push rules from a test driver
        push_mocks('http://127.0.0.1:8080', [rule([Method('GET')], response(204))])
    """

    def __init__(
        self,
        registry: Optional[MockRegistry] = None,
        config: Optional[MockConfig] = None
    ):
        """
        Initialize mock server.

        Args:
            registry: Registry to serve from (default: process-wide registry)
            config: Optional MockConfig for server behavior
        """
        self.registry = registry if registry is not None else get_default_registry()
        self.config = config or MockConfig()
        self.metrics = MockMetrics()

        self.logger = logging.getLogger("stubtap.mock")
        self.logger.setLevel(getattr(logging, self.config.log_level.upper()))

        self.app = self._create_app()

    def _create_app(self) -> FastAPI:
        """Create FastAPI application with routes."""
        app = FastAPI(
            title="StubTap Mock Server",
            description="Mock HTTP server serving rule-matched canned responses",
            version="1.0.0"
        )

        if self.config.admin_enabled:
            self._add_admin_routes(app)

        # Main catch-all route for mocking
        @app.api_route("/{path:path}", methods=["GET", "POST", "PUT", "DELETE", "PATCH", "HEAD", "OPTIONS"])
        async def mock_request(request: Request, path: str):
            """Handle incoming requests and serve mock responses."""
            return await self._handle_request(request)

        return app

    def _add_admin_routes(self, app: FastAPI) -> None:
        prefix = self.config.admin_prefix

        @app.get(f"{prefix}/mocks")
        async def list_mocks():
            """List rules in resolution order."""
            rules = self.registry.all()
            return JSONResponse(content={
                'total': len(rules),
                'mocks': [encode_rule(r) for r in rules]
            })

        @app.post(f"{prefix}/mocks")
        async def add_mocks(request: Request):
            """Add rules in front of the existing ones."""
            rules = await self._decode_request_rules(request)
            if isinstance(rules, Response):
                return rules
            self.registry.add(rules)
            self.logger.info(f"Added {len(rules)} mock(s) via admin API")
            return JSONResponse(content={'status': 'added', 'count': len(rules), 'total': len(self.registry)})

        @app.put(f"{prefix}/mocks")
        async def set_mocks(request: Request):
            """Replace all rules."""
            rules = await self._decode_request_rules(request)
            if isinstance(rules, Response):
                return rules
            self.registry.set(rules)
            self.logger.info(f"Replaced mocks via admin API ({len(rules)} rule(s))")
            return JSONResponse(content={'status': 'set', 'count': len(rules), 'total': len(self.registry)})

        @app.delete(f"{prefix}/mocks")
        async def reset_mocks():
            """Remove all rules."""
            count = len(self.registry)
            self.registry.reset()
            self.logger.info(f"Reset mocks via admin API ({count} removed)")
            return JSONResponse(content={'status': 'reset', 'cleared_count': count})

        @app.get(f"{prefix}/mocks/unmatched")
        async def unmatched_mocks():
            """Rules that haven't served any request yet."""
            rules = self.registry.never_matched()
            return JSONResponse(content={
                'total': len(rules),
                'mocks': [encode_rule(r) for r in rules]
            })

        @app.get(f"{prefix}/metrics")
        async def get_metrics():
            """Get server metrics."""
            return JSONResponse(content=self.metrics.to_dict())

        @app.post(f"{prefix}/reset")
        async def reset_metrics():
            """Reset metrics."""
            self.metrics = MockMetrics()
            return JSONResponse(content={'status': 'reset'})

        @app.get(f"{prefix}/config")
        async def get_config():
            """Get current configuration."""
            return JSONResponse(content={
                'fallback_status': self.config.fallback_status,
                'forced_error_status': self.config.forced_error_status,
                'verbose_mode': self.config.verbose_mode,
                'log_level': self.config.log_level,
                'total_mocks': len(self.registry)
            })

        @app.post(f"{prefix}/config")
        async def update_config(request: Request):
            """Update configuration at runtime."""
            body = await request.json()

            if 'fallback_status' in body:
                self.config.fallback_status = int(body['fallback_status'])
            if 'forced_error_status' in body:
                self.config.forced_error_status = int(body['forced_error_status'])
            if 'verbose_mode' in body:
                self.config.verbose_mode = bool(body['verbose_mode'])
            if 'log_level' in body:
                self.config.log_level = str(body['log_level'])
                self.logger.setLevel(getattr(logging, self.config.log_level.upper()))

            return JSONResponse(content={'status': 'updated'})

    async def _decode_request_rules(self, request: Request) -> Union[List[MockRule], Response]:
        try:
            data = json.loads(await request.body())
            return decode_rules(data)
        except (json.JSONDecodeError, UnicodeDecodeError, RuleDecodeError) as e:
            self.logger.warning(f"Rejected mocks from admin API: {e}")
            return JSONResponse(content={'error': f"Invalid mocks: {e}"}, status_code=400)

    async def _handle_request(self, request: Request) -> Response:
        """
        Handle incoming request and serve mock response.

        Args:
            request: FastAPI Request object

        Returns:
            FastAPI Response with mocked data
        """
        self.metrics.total_requests += 1

        view = RequestView(
            method=request.method,
            url=str(request.url),
            # Header names arrive lowercased; Headers.get is case-insensitive
            headers=request.headers,
            body=(await request.body()) or None
        )

        self.logger.debug(f"Incoming: {view.method} {view.url}")
        if self.config.verbose_mode:
            print(f"[{datetime.now().strftime('%H:%M:%S')}] {view.method} {view.url}")

        matched = self.registry.claim(view)

        if matched is None:
            self.metrics.unmatched_requests += 1
            self.logger.warning(f"No mock found for {view.method} {view.url}")
            return self._create_fallback(view, excluded=False)

        if matched.is_exclusion:
            self.metrics.excluded_requests += 1
            self.logger.info(f"Request excluded from mocking: {view.method} {view.url}")
            return self._create_fallback(view, excluded=True)

        self.metrics.matched_requests += 1

        # Delay only this response; the registry lock isn't held here
        if matched.delay:
            await asyncio.sleep(matched.delay)

        if self.config.verbose_mode:
            print(f"[{datetime.now().strftime('%H:%M:%S')}]   ✓ Matched rule (uses: {matched.match_count})")

        return self._create_response(matched.outcome.response)

    def _create_response(self, spec: ResponseSpec) -> Response:
        """
        Create FastAPI Response from a response spec.

        Forced errors and unrenderable specs become JSON error responses
        with StubTap debug headers.
        """
        try:
            check_renderable(spec)
        except ForcedResponseError as e:
            self.metrics.forced_errors += 1
            return JSONResponse(
                content={'error': e.domain, 'code': e.code},
                status_code=self.config.forced_error_status,
                headers={'X-StubTap-Forced-Error': 'true'}
            )
        except ResponseBuildError as e:
            return self._create_build_error(e)

        # Filter headers that the server sets itself
        headers_to_skip = {'content-length', 'transfer-encoding', 'connection'}
        headers = {
            k: v for k, v in response_headers(spec).items()
            if k.lower() not in headers_to_skip
        }
        headers['X-StubTap-Matched'] = 'true'
        headers['X-StubTap-Cache-Policy'] = spec.cache_storage_policy.value

        try:
            return Response(
                content=spec.body_bytes(),
                status_code=spec.status_code,
                headers=headers
            )
        except (UnicodeEncodeError, ValueError) as e:
            return self._create_build_error(ResponseBuildError(spec, str(e)))

    def _create_build_error(self, error: ResponseBuildError) -> Response:
        self.logger.error(str(error))
        return JSONResponse(
            content={'error': str(error)},
            status_code=500,
            headers={'X-StubTap-Build-Error': 'true'}
        )

    def _create_fallback(self, view: RequestView, excluded: bool) -> Response:
        """Build the response for unmatched or excluded requests, with debugging info."""
        try:
            content = json.loads(self.config.fallback_body)
        except json.JSONDecodeError:
            content = {'error': self.config.fallback_body}
        if not isinstance(content, dict):
            content = {'error': content}

        content['request'] = {'method': view.method, 'url': view.url}
        content['excluded'] = excluded

        if not excluded:
            # A matching but exhausted rule is the usual cause of surprise 404s
            content['exhausted_rule_matched'] = self.registry.resolve_any(view) is not None
            content['candidates'] = self._explain_candidates(view)

        return JSONResponse(
            content=content,
            status_code=self.config.fallback_status,
            headers={
                'X-StubTap-Matched': 'false',
                'X-StubTap-Excluded': 'true' if excluded else 'false'
            }
        )

    def _explain_candidates(self, view: RequestView) -> List[Dict[str, Any]]:
        candidates = []
        for index, candidate in enumerate(self.registry.all()[:self.config.fallback_candidates_limit]):
            failing = first_failing(candidate.predicates, view)
            candidates.append({
                'index': index,
                'eligible': candidate.is_eligible(),
                'failed_predicate': encode_predicate(failing) if failing is not None else None
            })
        return candidates

    def start(
        self,
        host: Optional[str] = None,
        port: Optional[int] = None,
        access_log: bool = True
    ):
        """
        Start the mock server.

        Args:
            host: Host to bind to (overrides config)
            port: Port to bind to (overrides config)
            access_log: Enable access logging
        """
        actual_host = host or self.config.host
        actual_port = port or self.config.port

        print(f"🚀 StubTap Mock Server starting...")
        print(f"   Host: {actual_host}:{actual_port}")
        print(f"   Mocks loaded: {len(self.registry)}")

        if self.config.admin_enabled:
            print(f"   Admin API: http://{actual_host}:{actual_port}{self.config.admin_prefix}/mocks")

        print()

        uvicorn.run(
            self.app,
            host=actual_host,
            port=actual_port,
            log_level=self.config.log_level,
            access_log=access_log
        )

    def get_app(self) -> FastAPI:
        """
        Get the FastAPI app instance for testing or custom deployment.

        Returns:
            FastAPI application instance
        """
        return self.app


def create_mock_server(
    rules_file: Optional[Union[str, Path]] = None,
    host: str = "127.0.0.1",
    port: int = 8080,
    log_level: str = "info",
    admin_enabled: bool = True,
    verbose_mode: bool = False,
    registry: Optional[MockRegistry] = None
) -> MockServer:
    """
    Convenience function to create and configure a mock server.

    Args:
        rules_file: Optional JSON/YAML rule file to load
        host: Host to bind to
        port: Port to bind to
        log_level: Logging level
        admin_enabled: Enable the admin API
        verbose_mode: Print each request and match to the console
        registry: Registry to serve from (default: a new one)

    Returns:
        Configured MockServer instance

    Example:
        server = create_mock_server('mocks.yaml', port=8080)
        server.start()
    """
    config = MockConfig(
        host=host,
        port=port,
        log_level=log_level,
        admin_enabled=admin_enabled,
        verbose_mode=verbose_mode
    )

    registry = registry if registry is not None else MockRegistry()
    if rules_file:
        registry.set(RuleLoader(rules_file).load())

    return MockServer(registry=registry, config=config)


def push_mocks(
    base_url: str,
    rules: List[MockRule],
    replace: bool = False,
    admin_prefix: str = "/__admin__",
    timeout: float = 10.0
) -> Dict[str, Any]:
    """
    Send rules to a running mock server.

    Args:
        base_url: Server base URL, e.g. http://127.0.0.1:8080
        rules: Rules to send
        replace: Replace the server's rules instead of adding in front
        admin_prefix: Admin API prefix of the server
        timeout: Request timeout in seconds

    Returns:
        Admin API response body

    Raises:
        httpx.HTTPError: If the request fails or the server rejects the rules
    """
    url = f"{base_url.rstrip('/')}{admin_prefix}/mocks"
    payload = [encode_rule(r) for r in rules]

    response = httpx.request('PUT' if replace else 'POST', url, json=payload, timeout=timeout)
    response.raise_for_status()
    return response.json()

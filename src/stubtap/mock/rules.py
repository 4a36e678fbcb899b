"""
StubTap Mock Rules

A mock rule pairs a set of predicates with an outcome: either respond
with a canned response, or exclude the request from mocking. Rules can
be limited to a number of uses and can delay their response.

Example:
    ok = response(200, {'Content-Type': 'application/json'}, TextBody('{"id": 1}'))
    rules = [
        rule([Method('GET'), UrlPattern('https://*/users/*')], ok),
        rule([Method('POST')], response(500), consumption=RemainingUses(1)),
        exclude_rule([PathExtension('png')]),
    ]
"""

import logging
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Callable, Dict, Iterable, Optional, Tuple, Union

from ..common import read_bundled_file
from .errors import InvalidRuleError, JsonFileNotFoundError
from .predicates import Predicate


logger = logging.getLogger("stubtap.mock")


# Response bodies

@dataclass(frozen=True)
class EmptyBody:
    """No body."""


@dataclass(frozen=True)
class DataBody:
    """Raw bytes."""

    data: bytes


@dataclass(frozen=True)
class TextBody:
    """Text, sent UTF-8 encoded."""

    text: str


@dataclass(frozen=True)
class ForcedError:
    """Fail the request with an error instead of responding."""

    code: int
    domain: str


Body = Union[EmptyBody, DataBody, TextBody, ForcedError]


class CachePolicy(Enum):
    """Cache storage directive passed through to the adapter."""

    ALLOWED = 'allowed'
    ALLOWED_IN_MEMORY_ONLY = 'allowed_in_memory_only'
    NOT_ALLOWED = 'not_allowed'


@dataclass(frozen=True)
class ResponseSpec:
    """Canned response served by a rule."""

    status_code: int
    headers: Optional[Dict[str, str]] = None
    body: Body = field(default_factory=EmptyBody)
    cache_storage_policy: CachePolicy = CachePolicy.NOT_ALLOWED
    http_version: str = 'HTTP/1.1'

    def body_bytes(self) -> bytes:
        """Encoded body; empty for EmptyBody and ForcedError."""
        if isinstance(self.body, DataBody):
            return self.body.data
        if isinstance(self.body, TextBody):
            return self.body.text.encode('utf-8')
        return b''


# Outcomes

@dataclass(frozen=True)
class Respond:
    """Serve the given response."""

    response: ResponseSpec


@dataclass(frozen=True)
class Exclude:
    """Don't mock matching requests."""


Outcome = Union[Respond, Exclude]


# Consumption policies

@dataclass(frozen=True)
class Unlimited:
    """Rule can be used any number of times."""


@dataclass(frozen=True)
class RemainingUses:
    """Rule can be used ``remaining`` more times; 0 means exhausted."""

    remaining: int

    def __post_init__(self):
        if self.remaining < 0:
            raise InvalidRuleError(f"remaining uses can't be negative: {self.remaining}")


ConsumptionPolicy = Union[Unlimited, RemainingUses]


@dataclass
class MockRule:
    """
    Predicates plus an outcome.

    All predicates must hold for the rule to match. ``consumption`` and
    ``match_count`` are the only fields that change, and only through the
    registry holding the rule.
    """

    predicates: Tuple[Predicate, ...]
    outcome: Outcome
    delay: Optional[float] = None  # seconds
    consumption: ConsumptionPolicy = field(default_factory=Unlimited)
    match_count: int = 0

    def __post_init__(self):
        self.predicates = tuple(self.predicates)
        if not self.predicates:
            raise InvalidRuleError("a mock rule needs at least one predicate")
        if self.delay is not None and self.delay < 0:
            raise InvalidRuleError(f"delay can't be negative: {self.delay}")

    @property
    def is_exclusion(self) -> bool:
        return isinstance(self.outcome, Exclude)

    def is_eligible(self) -> bool:
        """True unless the rule has used up its remaining uses."""
        return self.consumption != RemainingUses(0)

    def consume_one(self) -> None:
        """Use up one remaining use; never goes below zero."""
        if isinstance(self.consumption, RemainingUses):
            self.consumption = RemainingUses(max(self.consumption.remaining - 1, 0))

    def record_match(self) -> None:
        self.match_count += 1


# Construction helpers

def response(
    status_code: int,
    headers: Optional[Dict[str, str]] = None,
    body: Optional[Body] = None,
    cache_storage_policy: CachePolicy = CachePolicy.NOT_ALLOWED,
    http_version: str = 'HTTP/1.1'
) -> ResponseSpec:
    """Build a ResponseSpec; body defaults to empty."""
    return ResponseSpec(
        status_code=status_code,
        headers=headers,
        body=body if body is not None else EmptyBody(),
        cache_storage_policy=cache_storage_policy,
        http_version=http_version
    )


def rule(
    when: Union[Predicate, Iterable[Predicate]],
    respond: ResponseSpec,
    delay: Optional[float] = None,
    consumption: Optional[ConsumptionPolicy] = None
) -> MockRule:
    """
    Build a rule that responds with ``respond`` when all predicates hold.

    Args:
        when: One predicate or a sequence of predicates
        respond: Response to serve
        delay: Optional delay in seconds before the response is delivered
        consumption: Usage limit (default: unlimited)

    Returns:
        MockRule
    """
    return MockRule(
        predicates=_as_predicates(when),
        outcome=Respond(respond),
        delay=delay,
        consumption=consumption if consumption is not None else Unlimited()
    )


def exclude_rule(
    when: Union[Predicate, Iterable[Predicate]],
    consumption: Optional[ConsumptionPolicy] = None
) -> MockRule:
    """Build a rule that keeps matching requests from being mocked."""
    return MockRule(
        predicates=_as_predicates(when),
        outcome=Exclude(),
        consumption=consumption if consumption is not None else Unlimited()
    )


def _as_predicates(when: Union[Predicate, Iterable[Predicate]]) -> Tuple[Predicate, ...]:
    # Predicates are dataclasses; anything else is taken as a sequence of them
    if hasattr(when, '__dataclass_fields__'):
        return (when,)
    return tuple(when)


# Bundled JSON bodies

def _log_failed_loading_json(file_name: str) -> None:
    logger.warning(str(JsonFileNotFoundError(file_name)))


# Called with the file name when json_file_body can't find a file
on_failed_loading_json: Callable[[str], None] = _log_failed_loading_json


def json_file_body(file_name: str, bundle_dir: Union[str, Path]) -> Body:
    """
    Load a response body from ``<bundle_dir>/<file_name>.json``.

    A missing file doesn't raise: the hook is notified and the body
    becomes a forced error, so the request fails visibly in the test.

    Args:
        file_name: File name without the .json extension
        bundle_dir: Directory with the bundled files

    Returns:
        DataBody with the file content, or ForcedError if missing
    """
    data = read_bundled_file(file_name, bundle_dir)
    if data is None:
        on_failed_loading_json(file_name)
        return ForcedError(code=0, domain=f"JSON mock file: {file_name} not found!")
    return DataBody(data)

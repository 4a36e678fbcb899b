"""
StubTap Mock Registry

Ordered, thread-safe collection of mock rules. The first rule in order
that is eligible and matches a request wins; there is no scoring, so
callers control precedence through insertion order. ``add`` puts new
rules in front of the existing ones.
"""

import logging
import threading
from typing import Iterable, Iterator, List, Optional, Union

from .matcher import evaluate_all
from .request import RequestView
from .rules import MockRule


logger = logging.getLogger("stubtap.mock.registry")


class MockRegistry:
    """
    Holds the mock rules for one test run or process.

    Selecting a rule and consuming it happen under one lock, so two
    concurrent requests can't both be served by a single-use rule.

    Example:
        registry = MockRegistry()
        registry.add(rule([Method('GET')], response(200)))

        matched = registry.claim(RequestView('GET', 'https://api.example.com/'))
        if matched:
            print(matched.outcome)
    """

    def __init__(self, rules: Optional[Iterable[MockRule]] = None):
        self._lock = threading.Lock()
        self._rules: List[MockRule] = list(rules) if rules else []

    # Administration

    def add(self, rules: Union[MockRule, Iterable[MockRule]]) -> None:
        """Put rules in front of the existing ones, keeping their order."""
        new_rules = _as_rule_list(rules)
        with self._lock:
            self._rules[0:0] = new_rules
        logger.debug(f"Added {len(new_rules)} mock rule(s)")

    def set(self, rules: Union[MockRule, Iterable[MockRule]]) -> None:
        """Replace all rules."""
        new_rules = _as_rule_list(rules)
        with self._lock:
            self._rules = new_rules
        logger.debug(f"Set {len(new_rules)} mock rule(s)")

    def reset(self) -> None:
        """Remove all rules."""
        with self._lock:
            self._rules = []
        logger.debug("Mock rules reset")

    def all(self) -> List[MockRule]:
        """Snapshot of the rules in resolution order."""
        with self._lock:
            return list(self._rules)

    def __len__(self) -> int:
        with self._lock:
            return len(self._rules)

    def __iter__(self) -> Iterator[MockRule]:
        return iter(self.all())

    # Resolution

    def resolve_eligible(self, request: RequestView) -> Optional[MockRule]:
        """
        First eligible rule matching the request, without consuming it.

        Args:
            request: Request view

        Returns:
            Matching rule, or None
        """
        with self._lock:
            return self._find(request, eligible_only=True)

    def resolve_any(self, request: RequestView) -> Optional[MockRule]:
        """First matching rule, even if it is exhausted."""
        with self._lock:
            return self._find(request, eligible_only=False)

    def consume(self, rule: MockRule) -> None:
        """Record that ``rule`` served a request."""
        with self._lock:
            rule.consume_one()
            rule.record_match()

    def claim(self, request: RequestView) -> Optional[MockRule]:
        """
        Resolve and consume in one step.

        This is what adapters call for every intercepted request: the
        returned rule has already been consumed once.

        Args:
            request: Request view

        Returns:
            The rule to serve, or None if no eligible rule matches
        """
        with self._lock:
            matched = self._find(request, eligible_only=True)
            if matched is not None:
                matched.consume_one()
                matched.record_match()

        if matched is None:
            logger.debug(f"No eligible mock for {request.method} {request.url}")
        else:
            logger.debug(f"Mock matched {request.method} {request.url} (uses: {matched.match_count})")
        return matched

    def _find(self, request: RequestView, eligible_only: bool) -> Optional[MockRule]:
        for candidate in self._rules:
            if eligible_only and not candidate.is_eligible():
                continue
            if evaluate_all(candidate.predicates, request):
                return candidate
        return None

    # Diagnostics

    def never_matched(self) -> List[MockRule]:
        """Rules that haven't served a single request."""
        with self._lock:
            return [r for r in self._rules if r.match_count == 0]

    def exhausted(self) -> List[MockRule]:
        """Rules with no remaining uses."""
        with self._lock:
            return [r for r in self._rules if not r.is_eligible()]


def _as_rule_list(rules: Union[MockRule, Iterable[MockRule]]) -> List[MockRule]:
    if isinstance(rules, MockRule):
        return [rules]
    return list(rules)


_default_registry = MockRegistry()


def get_default_registry() -> MockRegistry:
    """Process-wide registry used when none is passed explicitly."""
    return _default_registry

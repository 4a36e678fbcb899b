"""
Tests for StubTap Mock Registry

Tests the registry's resolution and consumption protocol:
- add / set / reset / all
- First-match precedence
- Eligible vs any resolution
- Atomic claim under concurrency
- Diagnostics
"""

import threading

import pytest

from stubtap.mock.predicates import Method, UrlPattern
from stubtap.mock.registry import MockRegistry, get_default_registry
from stubtap.mock.request import RequestView
from stubtap.mock.rules import RemainingUses, TextBody, exclude_rule, response, rule


@pytest.fixture
def registry():
    """Fresh registry."""
    return MockRegistry()


@pytest.fixture
def request_view():
    """GET request matched by the rules below."""
    return RequestView('GET', 'https://api.example.com/users/1')


def make_rule(text, **kwargs):
    """Rule matching any GET, tagged by its body text."""
    return rule([Method('GET')], response(200, body=TextBody(text)), **kwargs)


class TestAdministration:
    """Test add/set/reset/all."""

    def test_add_prepends(self, registry):
        """Test newer rules come first."""
        rule_a, rule_b = make_rule('a'), make_rule('b')
        registry.add(rule_a)
        registry.add(rule_b)

        assert registry.all() == [rule_b, rule_a]

    def test_add_group_keeps_order(self, registry):
        """Test a group is inserted in front in its own order."""
        rule_a, rule_b, rule_c = make_rule('a'), make_rule('b'), make_rule('c')
        registry.add(rule_a)
        registry.add([rule_b, rule_c])

        assert registry.all() == [rule_b, rule_c, rule_a]

    def test_set_replaces(self, registry):
        """Test set replaces everything."""
        registry.add([make_rule('a'), make_rule('b')])
        rule_c = make_rule('c')
        registry.set(rule_c)

        assert registry.all() == [rule_c]

    def test_reset(self, registry):
        """Test reset clears the registry."""
        registry.add(make_rule('a'))
        registry.reset()

        assert registry.all() == []
        assert len(registry) == 0

    def test_all_is_snapshot(self, registry):
        """Test mutating the snapshot doesn't affect the registry."""
        registry.add(make_rule('a'))
        snapshot = registry.all()
        snapshot.clear()

        assert len(registry) == 1

    def test_initial_rules(self):
        """Test constructing with rules."""
        rule_a = make_rule('a')

        assert list(MockRegistry([rule_a])) == [rule_a]

    def test_default_registry_is_shared(self):
        """Test the process-wide registry."""
        assert get_default_registry() is get_default_registry()


class TestResolution:
    """Test resolve_eligible and resolve_any."""

    def test_precedence(self, registry, request_view):
        """Test the most recently added rule wins."""
        rule_a, rule_b = make_rule('a'), make_rule('b')
        registry.add(rule_a)
        registry.add(rule_b)

        assert registry.resolve_eligible(request_view) is rule_b

    def test_no_match(self, registry):
        """Test no matching rule."""
        registry.add(make_rule('a'))

        assert registry.resolve_eligible(RequestView('POST', 'https://h/')) is None

    def test_resolve_doesnt_consume(self, registry, request_view):
        """Test resolve_eligible has no side effects."""
        single = make_rule('a', consumption=RemainingUses(1))
        registry.add(single)

        registry.resolve_eligible(request_view)
        registry.resolve_eligible(request_view)

        assert single.consumption == RemainingUses(1)
        assert single.match_count == 0

    def test_exhausted_rule_skipped(self, registry, request_view):
        """Test exhausted rules fall through to the next rule."""
        fallback = make_rule('fallback')
        exhausted = make_rule('exhausted', consumption=RemainingUses(0))
        registry.set([exhausted, fallback])

        assert registry.resolve_eligible(request_view) is fallback
        assert registry.resolve_any(request_view) is exhausted

    def test_exclusion_rules_resolve(self, registry, request_view):
        """Test exclusion rules take part in ordering."""
        excluded = exclude_rule([UrlPattern('https://*/users/*')])
        registry.set([excluded, make_rule('a')])

        assert registry.resolve_eligible(request_view) is excluded


class TestClaim:
    """Test claim and consume."""

    def test_single_use_rule(self, registry, request_view):
        """Test a one-shot rule is served once, then falls through."""
        fallback = make_rule('fallback')
        single = make_rule('single', consumption=RemainingUses(1))
        registry.add(fallback)
        registry.add(single)

        assert registry.claim(request_view) is single
        assert single.consumption == RemainingUses(0)
        assert single.match_count == 1

        assert registry.claim(request_view) is fallback
        assert single.match_count == 1

    def test_single_use_only_rule(self, registry, request_view):
        """Test no match after the only rule is used up."""
        registry.add(make_rule('single', consumption=RemainingUses(1)))

        assert registry.claim(request_view) is not None
        assert registry.claim(request_view) is None

    def test_claim_no_match(self, registry, request_view):
        """Test claim without a match."""
        assert registry.claim(request_view) is None

    def test_consume(self, registry, request_view):
        """Test explicit consume after resolution."""
        limited = make_rule('a', consumption=RemainingUses(2))
        registry.add(limited)

        resolved = registry.resolve_eligible(request_view)
        registry.consume(resolved)

        assert limited.consumption == RemainingUses(1)
        assert limited.match_count == 1

    def test_concurrent_claims_single_use(self, registry, request_view):
        """Test only one of many concurrent requests gets a one-shot rule."""
        single = make_rule('single', consumption=RemainingUses(1))
        registry.add(single)

        results = []
        barrier = threading.Barrier(16)

        def worker():
            barrier.wait()
            results.append(registry.claim(request_view))

        threads = [threading.Thread(target=worker) for _ in range(16)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        served = [r for r in results if r is not None]
        assert len(served) == 1
        assert single.match_count == 1
        assert single.consumption == RemainingUses(0)

    def test_concurrent_claims_limited(self, registry, request_view):
        """Test a RemainingUses(n) rule serves exactly n requests."""
        limited = make_rule('limited', consumption=RemainingUses(5))
        registry.add(limited)

        results = []
        lock = threading.Lock()

        def worker():
            matched = registry.claim(request_view)
            with lock:
                results.append(matched)

        threads = [threading.Thread(target=worker) for _ in range(20)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert sum(1 for r in results if r is limited) == 5
        assert limited.match_count == 5


class TestDiagnostics:
    """Test never_matched and exhausted."""

    def test_never_matched(self, registry, request_view):
        """Test rules that never served a request are listed."""
        used = make_rule('used')
        unused = rule([Method('DELETE')], response(204))
        registry.set([used, unused])

        registry.claim(request_view)

        assert registry.never_matched() == [unused]

    def test_exhausted(self, registry, request_view):
        """Test exhausted rules are listed."""
        single = make_rule('single', consumption=RemainingUses(1))
        registry.add(single)

        assert registry.exhausted() == []
        registry.claim(request_view)
        assert registry.exhausted() == [single]

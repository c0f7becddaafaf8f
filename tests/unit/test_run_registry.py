"""Unit tests for the pending-run handoff registry."""

from src.api.run_registry import PendingRunRegistry, RunPhase
from tests.conftest import make_context, make_txn


class _Clock:
    def __init__(self) -> None:
        self.now = 1000.0

    def __call__(self) -> float:
        return self.now


def _registry(clock: _Clock) -> PendingRunRegistry:
    return PendingRunRegistry(created_ttl_seconds=300, started_grace_seconds=5, clock=clock)


class TestPendingRunRegistry:
    def test_claim_once(self):
        registry = _registry(_Clock())
        context = make_context(make_txn())
        registry.register("run-1", context)

        assert registry.phase("run-1") == RunPhase.CREATED
        assert registry.claim("run-1") == context
        assert registry.phase("run-1") == RunPhase.STARTED
        assert registry.claim("run-1") is None

    def test_unknown_run(self):
        assert _registry(_Clock()).claim("nope") is None

    def test_unclaimed_run_expires(self):
        clock = _Clock()
        registry = _registry(clock)
        registry.register("run-1", make_context(make_txn()))

        clock.now += 301
        assert registry.claim("run-1") is None
        assert len(registry) == 0

    def test_started_run_dropped_after_grace(self):
        clock = _Clock()
        registry = _registry(clock)
        registry.register("run-1", make_context(make_txn()))
        registry.claim("run-1")

        clock.now += 4
        assert registry.phase("run-1") == RunPhase.STARTED
        clock.now += 2
        assert registry.phase("run-1") is None

    def test_purge_counts(self):
        clock = _Clock()
        registry = _registry(clock)
        registry.register("a", make_context(make_txn()))
        registry.register("b", make_context(make_txn()))
        registry.claim("a")

        clock.now += 10
        assert registry.purge() == 1
        assert registry.phase("b") == RunPhase.CREATED

"""Tests for the context orchestrator: gating, fan-out, timeouts and merging."""

import asyncio
import logging
import zlib
from unittest.mock import AsyncMock

import pytest

from diffanchor_core.config import ContextSettings, RolloutSettings
from diffanchor_core.context.base import ContextStrategy
from diffanchor_core.context.models import ContextMatch, ContextResult, DiffBundle, MatchReason, build_metadata
from diffanchor_core.context.orchestrator import (
    ContextOrchestrator,
    build_orchestrator,
    merge_strategy_results,
    rollout_bucket,
)
from diffanchor_core.diff.parser import parse_diff
from diffanchor_core.scm.base import SourceControlPort

DIFF = parse_diff("--- a/f.txt\n+++ b/f.txt\n@@ -1,3 +1,3 @@\n line1\n-old\n+new\n line3\n")
BUNDLE = DiffBundle(DIFF, repository="acme/widgets")


class StubStrategy(ContextStrategy):
    """Returns fixed matches, optionally after a delay or by raising."""

    def __init__(self, name, matches=(), priority=100, delay=0.0, error=None):
        self.name = name
        self.priority = priority
        self.matches = list(matches)
        self.delay = delay
        self.error = error
        self.calls = 0
        self.cancelled = False

    async def _collect_matches(self, bundle):
        self.calls += 1
        try:
            await asyncio.sleep(self.delay)
        except asyncio.CancelledError:
            self.cancelled = True
            raise
        if self.error is not None:
            raise self.error
        return self.matches


def _match(path, confidence, reason=MatchReason.SIBLING):
    return ContextMatch(path, reason, confidence)


def _settings(**kwargs) -> ContextSettings:
    kwargs.setdefault("strategies", ("first", "second"))
    return ContextSettings(**kwargs)


# ---------------------------------------------------------------------------
# Gating
# ---------------------------------------------------------------------------


class TestSkipReasons:
    @pytest.mark.asyncio
    async def test_disabled(self):
        strategy = StubStrategy("first")
        orchestrator = ContextOrchestrator([strategy], _settings(enabled=False))

        enriched = await orchestrator.retrieve_enriched_context(BUNDLE)

        assert orchestrator.skip_reason(BUNDLE) == "context retrieval is disabled"
        assert enriched.context is None
        assert enriched.bundle is BUNDLE
        assert strategy.calls == 0

    @pytest.mark.asyncio
    async def test_large_diff(self):
        strategy = StubStrategy("first")
        settings = _settings(rollout=RolloutSettings(max_diff_lines=3))
        orchestrator = ContextOrchestrator([strategy], settings)

        enriched = await orchestrator.retrieve_enriched_context(BUNDLE)

        assert orchestrator.skip_reason(BUNDLE) == "diff has 4 lines, above the 3 line limit"
        assert not enriched.has_context()
        assert strategy.calls == 0

    def test_large_diff_allowed_when_size_gate_off(self):
        settings = _settings(rollout=RolloutSettings(max_diff_lines=3, skip_large_diffs=False))
        assert ContextOrchestrator([StubStrategy("first")], settings).skip_reason(BUNDLE) is None

    def test_diff_at_limit_runs(self):
        settings = _settings(rollout=RolloutSettings(max_diff_lines=4))
        assert ContextOrchestrator([StubStrategy("first")], settings).skip_reason(BUNDLE) is None

    def test_zero_rollout_skips_everything(self):
        orchestrator = ContextOrchestrator([StubStrategy("first")], _settings(rollout=RolloutSettings(percentage=0)))
        assert orchestrator.skip_reason(BUNDLE) == "repository 'acme/widgets' is outside the 0% rollout"

    def test_partial_rollout_follows_bucket(self):
        bucket = rollout_bucket("acme/widgets")
        inside = ContextOrchestrator(
            [StubStrategy("first")], _settings(rollout=RolloutSettings(percentage=bucket + 1))
        )
        outside = ContextOrchestrator([StubStrategy("first")], _settings(rollout=RolloutSettings(percentage=bucket)))
        assert inside.skip_reason(BUNDLE) is None
        assert outside.skip_reason(BUNDLE) is not None

    def test_no_enabled_strategy(self, caplog):
        with caplog.at_level(logging.WARNING):
            orchestrator = ContextOrchestrator([StubStrategy("first")], ContextSettings(strategies=("other",)))
        assert orchestrator.skip_reason(BUNDLE) == "no context strategy is enabled"
        assert "None of the configured strategies" in caplog.text

    @pytest.mark.asyncio
    async def test_none_bundle_raises(self):
        with pytest.raises(ValueError):
            await ContextOrchestrator([StubStrategy("first")], _settings()).retrieve_enriched_context(None)


class TestRolloutBucket:
    def test_stable_and_in_range(self):
        bucket = rollout_bucket("acme/widgets")
        assert bucket == zlib.crc32(b"acme/widgets") % 100
        assert 0 <= bucket < 100

    def test_empty_repository(self):
        assert rollout_bucket("") == 0


# ---------------------------------------------------------------------------
# Fan-out and merge
# ---------------------------------------------------------------------------


class TestRetrieval:
    @pytest.mark.asyncio
    async def test_strategies_run_in_priority_order_and_merge(self):
        second = StubStrategy("second", [_match("a.py", 0.9), _match("c.py", 0.65)], priority=20)
        first = StubStrategy("first", [_match("a.py", 0.7), _match("b.py", 0.8)], priority=10)
        orchestrator = ContextOrchestrator([second, first], _settings())

        enriched = await orchestrator.retrieve_enriched_context(BUNDLE)
        context = enriched.context

        assert [s.name for s in orchestrator.strategies] == ["first", "second"]
        assert [(m.file_path, m.confidence) for m in context.matches] == [
            ("a.py", 0.9),
            ("b.py", 0.8),
            ("c.py", 0.65),
        ]
        assert context.metadata.strategy_name == "first+second"
        assert context.metadata.total_candidates == 4
        assert context.metadata.high_confidence_count == 2
        assert context.metadata.reason_histogram == {MatchReason.SIBLING: 4}
        assert set(enriched.strategy_results) == {"first", "second"}
        assert enriched.strategy_results["first"].total_matches == 2

    @pytest.mark.asyncio
    async def test_only_enabled_strategies_run(self):
        first = StubStrategy("first", [_match("a.py", 0.9)])
        other = StubStrategy("other", [_match("z.py", 0.9)])
        enriched = await ContextOrchestrator([first, other], _settings()).retrieve_enriched_context(BUNDLE)

        assert other.calls == 0
        assert [m.file_path for m in enriched.context.matches] == ["a.py"]

    @pytest.mark.asyncio
    async def test_strategies_run_concurrently(self):
        strategies = [StubStrategy("first", delay=0.2), StubStrategy("second", delay=0.2)]
        orchestrator = ContextOrchestrator(strategies, _settings())

        loop = asyncio.get_running_loop()
        started = loop.time()
        await orchestrator.retrieve_enriched_context(BUNDLE)
        assert loop.time() - started < 0.35

    @pytest.mark.asyncio
    async def test_empty_results(self):
        enriched = await ContextOrchestrator([StubStrategy("first")], _settings()).retrieve_enriched_context(BUNDLE)
        assert enriched.context is not None
        assert enriched.context.is_empty()
        assert not enriched.has_context()


class TestFailures:
    @pytest.mark.asyncio
    async def test_strategy_error_cancels_the_rest(self):
        failing = StubStrategy("first", error=RuntimeError("boom"))
        slow = StubStrategy("second", delay=5)
        orchestrator = ContextOrchestrator([failing, slow], _settings())

        with pytest.raises(RuntimeError, match="boom"):
            await orchestrator.retrieve_enriched_context(BUNDLE)
        assert slow.cancelled

    @pytest.mark.asyncio
    async def test_strategy_timeout(self):
        slow = StubStrategy("first", delay=5)
        fast = StubStrategy("second", [_match("a.py", 0.9)])
        orchestrator = ContextOrchestrator([slow, fast], _settings(strategy_timeout_seconds=0.05))

        with pytest.raises(asyncio.TimeoutError):
            await orchestrator.retrieve_enriched_context(BUNDLE)
        assert slow.cancelled

    @pytest.mark.asyncio
    async def test_overall_timeout(self):
        slow = StubStrategy("first", delay=5)
        orchestrator = ContextOrchestrator([slow], _settings(overall_timeout_seconds=0.05))

        with pytest.raises(asyncio.TimeoutError):
            await orchestrator.retrieve_enriched_context(BUNDLE)
        assert slow.cancelled


# ---------------------------------------------------------------------------
# merge_strategy_results
# ---------------------------------------------------------------------------


class TestMergeStrategyResults:
    def _result(self, name, matches):
        return ContextResult(tuple(matches), build_metadata(name, 0.5, matches))

    def test_histograms_are_summed(self):
        merged = merge_strategy_results(
            [
                self._result("a", [_match("x.py", 0.95, MatchReason.DIRECT_IMPORT)]),
                self._result("b", [_match("y.py", 0.8, MatchReason.GIT_COCHANGE_HIGH), _match("x.py", 0.7)]),
            ],
            duration=1.25,
        )
        assert merged.metadata.duration == 1.25
        assert merged.metadata.reason_histogram == {
            MatchReason.DIRECT_IMPORT: 1,
            MatchReason.GIT_COCHANGE_HIGH: 1,
            MatchReason.SIBLING: 1,
        }
        assert [m.file_path for m in merged.matches] == ["x.py", "y.py"]
        assert merged.matches[0].reason is MatchReason.DIRECT_IMPORT

    def test_single_result_is_unchanged(self):
        result = self._result("a", [_match("x.py", 0.7), _match("y.py", 0.9)])
        merged = merge_strategy_results([result], duration=0.5)
        assert merged.matches == result.matches
        assert merged.metadata == result.metadata


# ---------------------------------------------------------------------------
# build_orchestrator
# ---------------------------------------------------------------------------


class TestBuildOrchestrator:
    def test_builtin_strategies(self):
        orchestrator = build_orchestrator(AsyncMock(spec=SourceControlPort))
        assert [s.name for s in orchestrator.strategies] == ["metadata-based", "git-history"]

    def test_history_settings_are_passed_through(self):
        settings = ContextSettings.from_config({"context": {"history": {"lookback_days": 7}}})
        orchestrator = build_orchestrator(AsyncMock(spec=SourceControlPort), settings)
        history = orchestrator.strategies[1]
        assert history.analyzer.settings.lookback_days == 7

    @pytest.mark.asyncio
    async def test_end_to_end(self):
        diff = parse_diff("--- a/src/parser.py\n+++ b/src/parser.py\n@@ -1 +1,2 @@\n x\n+import src.lexer\n")
        scm = AsyncMock(spec=SourceControlPort)
        scm.list_repository_files.return_value = ["src/parser.py", "src/lexer.py", "tests/test_parser.py"]
        scm.get_commits_for.return_value = []

        enriched = await build_orchestrator(scm).retrieve_enriched_context(DiffBundle(diff, repository="o/r"))

        assert {m.file_path: m.reason for m in enriched.context.matches} == {
            "src/lexer.py": MatchReason.DIRECT_IMPORT,
            "tests/test_parser.py": MatchReason.PATH_PATTERN,
        }
        assert enriched.context.metadata.strategy_name == "metadata-based+git-history"

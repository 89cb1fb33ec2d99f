"""Fan-out of the enabled context strategies for one diff.

The orchestrator decides whether retrieval runs at all, runs every enabled
strategy concurrently and folds their results into one ContextResult:

    disabled / too large / outside rollout / nothing enabled
        -> EnrichedDiff(bundle, context=None), no strategy invoked
    otherwise
        -> gather(wait_for(strategy.retrieve(bundle), per_strategy) ...)
        -> cross-strategy dedup -> merged metadata

Retrieval is all-or-nothing: the first strategy that fails or times out
cancels the others and its exception reaches the caller.
"""

from __future__ import annotations

import asyncio
import logging
import time
import zlib
from collections import Counter

from diffanchor_core.config import ContextSettings
from diffanchor_core.context.base import ContextStrategy
from diffanchor_core.context.history import CoChangeAnalyzer, HistoryContextStrategy
from diffanchor_core.context.metadata import MetadataContextStrategy
from diffanchor_core.context.models import (
    ContextMetadata,
    ContextResult,
    DiffBundle,
    EnrichedDiff,
    deduplicate_matches,
)
from diffanchor_core.scm.base import SourceControlPort

logger = logging.getLogger(__name__)


def rollout_bucket(repository: str) -> int:
    """Stable 0-99 bucket for a repository id, identical across processes."""
    return zlib.crc32((repository or "").encode("utf-8")) % 100


def merge_strategy_results(results: list[ContextResult], duration: float) -> ContextResult:
    """Fold per-strategy results, in order, into one result."""
    matches = deduplicate_matches(m for result in results for m in result.matches)

    histogram: Counter = Counter()
    for result in results:
        histogram.update(result.metadata.reason_histogram)

    metadata = ContextMetadata(
        strategy_name="+".join(r.metadata.strategy_name for r in results),
        duration=duration,
        total_candidates=sum(r.metadata.total_candidates for r in results),
        high_confidence_count=sum(r.metadata.high_confidence_count for r in results),
        reason_histogram=dict(histogram),
    )
    return ContextResult(matches=tuple(matches), metadata=metadata)


class ContextOrchestrator:
    def __init__(self, strategies: list[ContextStrategy], settings: ContextSettings | None = None):
        self.strategies = sorted(strategies or [], key=lambda s: s.priority)
        self.settings = settings or ContextSettings()
        if self.settings.enabled and not self.enabled_strategies():
            logger.warning(
                "None of the configured strategies %s is available (have: %s)",
                list(self.settings.strategies),
                [s.name for s in self.strategies],
            )

    def enabled_strategies(self) -> list[ContextStrategy]:
        allowed = set(self.settings.strategies)
        return [s for s in self.strategies if s.name in allowed]

    def skip_reason(self, bundle: DiffBundle) -> str | None:
        """Why retrieval would be skipped for ``bundle``, or None when it would run."""
        settings = self.settings
        if not settings.enabled:
            return "context retrieval is disabled"

        rollout = settings.rollout
        if rollout.skip_large_diffs and bundle.total_line_count > rollout.max_diff_lines:
            return f"diff has {bundle.total_line_count} lines, above the {rollout.max_diff_lines} line limit"

        if rollout.percentage < 100 and rollout_bucket(bundle.repository) >= rollout.percentage:
            return f"repository {bundle.repository!r} is outside the {rollout.percentage}% rollout"

        if not self.enabled_strategies():
            return "no context strategy is enabled"

        return None

    async def retrieve_enriched_context(self, bundle: DiffBundle) -> EnrichedDiff:
        if bundle is None:
            raise ValueError("bundle must not be None")

        reason = self.skip_reason(bundle)
        if reason is not None:
            logger.info("Skipping context retrieval: %s", reason)
            return EnrichedDiff(bundle=bundle)

        strategies = self.enabled_strategies()
        started = time.perf_counter()

        fan_out = self._run_all(strategies, bundle)
        if self.settings.overall_timeout_seconds is not None:
            results = await asyncio.wait_for(fan_out, timeout=self.settings.overall_timeout_seconds)
        else:
            results = await fan_out

        merged = merge_strategy_results(results, time.perf_counter() - started)
        for match in merged.matches:
            logger.debug("  %s  %.2f  %s", match.file_path, match.confidence, match.reason.name)
        logger.info(
            "Retrieved %d context file(s) via %s in %.2fs",
            merged.total_matches,
            merged.metadata.strategy_name,
            merged.metadata.duration,
        )
        return EnrichedDiff(
            bundle=bundle,
            context=merged,
            strategy_results={s.name: r for s, r in zip(strategies, results)},
        )

    async def _run_one(self, strategy: ContextStrategy, bundle: DiffBundle) -> ContextResult:
        result = await asyncio.wait_for(strategy.retrieve(bundle), timeout=self.settings.strategy_timeout_seconds)
        logger.debug(
            "Strategy %s returned %d match(es) in %.3fs",
            strategy.name,
            result.total_matches,
            result.metadata.duration,
        )
        return result

    async def _run_all(self, strategies: list[ContextStrategy], bundle: DiffBundle) -> list[ContextResult]:
        tasks = [asyncio.ensure_future(self._run_one(s, bundle)) for s in strategies]
        try:
            return list(await asyncio.gather(*tasks))
        except BaseException:
            # gather leaves the other tasks running after the first failure.
            for task in tasks:
                task.cancel()
            await asyncio.gather(*tasks, return_exceptions=True)
            raise


def build_orchestrator(scm: SourceControlPort, settings: ContextSettings | None = None) -> ContextOrchestrator:
    """Orchestrator over the built-in strategies, all reading from ``scm``."""
    settings = settings or ContextSettings()
    strategies: list[ContextStrategy] = [
        MetadataContextStrategy(scm),
        HistoryContextStrategy(CoChangeAnalyzer(scm, settings.history)),
    ]
    return ContextOrchestrator(strategies, settings)

"""Co-change analysis over commit history.

If two files keep being modified in the same commits they are coupled,
whatever the language or import syntax. For each changed file we count how
often every other file appeared in the commits that touched it, then scale
the counts against the most frequent partner:

    normalized = count / max_count
    >= high_threshold    GIT_COCHANGE_HIGH
    >= medium_threshold  GIT_COCHANGE_MEDIUM
    below                dropped
"""

from __future__ import annotations

import logging
from collections import Counter
from datetime import datetime, timedelta, timezone

from diffanchor_core.config import HistorySettings
from diffanchor_core.context.base import ContextStrategy
from diffanchor_core.context.models import CoChangeAnalysis, CoChangeMetrics, CommitInfo, ContextMatch, DiffBundle
from diffanchor_core.scm.base import SourceControlPort

logger = logging.getLogger(__name__)


def calculate_frequency(target_file: str, commits: list[CommitInfo]) -> Counter[str]:
    """Count the other files in each commit that touched ``target_file``.

    Commits that did not touch the target are ignored even if the history
    source returned them.
    """
    counter: Counter[str] = Counter()
    for commit in commits:
        if not commit.touched(target_file):
            continue
        for path in commit.changed_files:
            if path != target_file:
                counter[path] += 1
    return counter


def normalize_frequency(frequency: Counter[str], settings: HistorySettings) -> list[CoChangeMetrics]:
    """Scale counts against the batch maximum, most frequent first."""
    if not frequency:
        return []
    max_count = max(frequency.values())
    metrics = [
        CoChangeMetrics(
            file_path=path,
            co_change_count=count,
            normalized_frequency=count / max_count,
            high_threshold=settings.high_threshold,
            medium_threshold=settings.medium_threshold,
        )
        for path, count in frequency.most_common()
    ]
    return [m for m in metrics if m.normalized_frequency >= settings.medium_threshold]


class CoChangeAnalyzer:
    def __init__(self, scm: SourceControlPort, settings: HistorySettings | None = None):
        if scm is None:
            raise ValueError("scm must not be None")
        self.scm = scm
        self.settings = settings or HistorySettings()

    async def analyze(self, repository: str, target_file: str, now: datetime | None = None) -> CoChangeAnalysis:
        since = (now or datetime.now(timezone.utc)) - timedelta(days=self.settings.lookback_days)
        commits = await self.scm.get_commits_for(repository, target_file, since, self.settings.max_results)

        frequency = calculate_frequency(target_file, commits)
        metrics = normalize_frequency(frequency, self.settings)
        logger.debug(
            "%s: %d commit(s), %d co-changed file(s), %d above threshold",
            target_file,
            len(commits),
            len(frequency),
            len(metrics),
        )
        return CoChangeAnalysis(
            target_file=target_file,
            metrics=tuple(metrics),
            raw_frequency=dict(frequency),
            max_frequency=max(frequency.values(), default=0),
        )


class HistoryContextStrategy(ContextStrategy):
    """Related files from the co-change history of every changed file."""

    name = "git-history"
    priority = 20

    def __init__(self, analyzer: CoChangeAnalyzer):
        if analyzer is None:
            raise ValueError("analyzer must not be None")
        self.analyzer = analyzer

    async def _collect_matches(self, bundle: DiffBundle) -> list[ContextMatch]:
        matches: list[ContextMatch] = []
        for file in bundle.diff.files:
            # Deleted files have no future to be coupled with.
            if file.is_deleted or not file.new_path:
                continue
            analysis = await self.analyzer.analyze(bundle.repository, file.new_path)
            matches.extend(analysis.to_matches())
        return matches

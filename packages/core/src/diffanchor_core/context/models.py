"""Records shared by the context strategies and the orchestrator."""

from __future__ import annotations

from collections import Counter
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum

from diffanchor_core.diff.models import Diff

HIGH_CONFIDENCE_THRESHOLD = 0.75


class MatchReason(Enum):
    DIRECT_IMPORT = ("direct import", 0.95)
    TYPE_REFERENCE = ("type reference", 0.90)
    PATH_PATTERN = ("test/implementation pair", 0.85)
    GIT_COCHANGE_HIGH = ("frequently co-changed", 0.80)
    SIBLING = ("same directory", 0.70)
    RELATED_LAYER = ("related architectural layer", 0.70)
    GIT_COCHANGE_MEDIUM = ("sometimes co-changed", 0.65)

    def __init__(self, description: str, base_confidence: float):
        self.description = description
        self.base_confidence = base_confidence


@dataclass(frozen=True)
class ContextMatch:
    file_path: str
    reason: MatchReason
    confidence: float
    evidence: str = ""

    def __post_init__(self):
        if not self.file_path or not self.file_path.strip():
            raise ValueError("file_path must not be blank")
        if not 0.0 <= self.confidence <= 1.0:
            raise ValueError(f"confidence must be between 0.0 and 1.0, got {self.confidence}")

    @property
    def is_high_confidence(self) -> bool:
        return self.confidence >= HIGH_CONFIDENCE_THRESHOLD


def deduplicate_matches(matches) -> list[ContextMatch]:
    """Collapse matches to one entry per file path.

    The first occurrence of a path keeps its slot. A later occurrence replaces
    it in that slot only when strictly more confident, so the result is
    independent of how many times the same list is repeated.
    """
    kept: dict[str, ContextMatch] = {}
    for match in matches:
        current = kept.get(match.file_path)
        if current is None or match.confidence > current.confidence:
            kept[match.file_path] = match
    return list(kept.values())


@dataclass(frozen=True)
class ContextMetadata:
    strategy_name: str
    duration: float
    total_candidates: int
    high_confidence_count: int
    reason_histogram: dict[MatchReason, int] = field(default_factory=dict)

    def __post_init__(self):
        if not self.strategy_name or not self.strategy_name.strip():
            raise ValueError("strategy_name must not be blank")
        if self.total_candidates < 0 or self.high_confidence_count < 0:
            raise ValueError("candidate counts must not be negative")
        if self.high_confidence_count > self.total_candidates:
            raise ValueError(
                f"high_confidence_count ({self.high_confidence_count}) exceeds "
                f"total_candidates ({self.total_candidates})"
            )

    @property
    def high_confidence_percentage(self) -> float:
        if self.total_candidates == 0:
            return 0.0
        return self.high_confidence_count / self.total_candidates * 100.0


def build_metadata(strategy_name: str, duration: float, matches: list[ContextMatch]) -> ContextMetadata:
    histogram = Counter(m.reason for m in matches)
    return ContextMetadata(
        strategy_name=strategy_name,
        duration=duration,
        total_candidates=len(matches),
        high_confidence_count=sum(1 for m in matches if m.is_high_confidence),
        reason_histogram=dict(histogram),
    )


@dataclass(frozen=True)
class ContextResult:
    matches: tuple[ContextMatch, ...]
    metadata: ContextMetadata

    @property
    def total_matches(self) -> int:
        return len(self.matches)

    def is_empty(self) -> bool:
        return not self.matches

    def high_confidence_matches(self) -> list[ContextMatch]:
        return [m for m in self.matches if m.is_high_confidence]

    def matches_for(self, reason: MatchReason) -> list[ContextMatch]:
        return [m for m in self.matches if m.reason is reason]


@dataclass(frozen=True)
class CommitInfo:
    commit_id: str
    message: str = ""
    author: str = ""
    timestamp: datetime | None = None
    changed_files: tuple[str, ...] = ()

    def __post_init__(self):
        if not self.commit_id or not self.commit_id.strip():
            raise ValueError("commit_id must not be blank")

    def touched(self, file_path: str) -> bool:
        return file_path in self.changed_files


@dataclass(frozen=True)
class CoChangeMetrics:
    file_path: str
    co_change_count: int
    normalized_frequency: float
    high_threshold: float = 0.70
    medium_threshold: float = 0.40

    def __post_init__(self):
        if not self.file_path or not self.file_path.strip():
            raise ValueError("file_path must not be blank")
        if self.co_change_count < 0:
            raise ValueError("co_change_count must not be negative")
        if not 0.0 <= self.normalized_frequency <= 1.0:
            raise ValueError(f"normalized_frequency must be between 0.0 and 1.0, got {self.normalized_frequency}")

    @property
    def is_high_frequency(self) -> bool:
        return self.normalized_frequency >= self.high_threshold

    @property
    def is_medium_frequency(self) -> bool:
        return self.medium_threshold <= self.normalized_frequency < self.high_threshold

    @property
    def reason(self) -> MatchReason:
        return MatchReason.GIT_COCHANGE_HIGH if self.is_high_frequency else MatchReason.GIT_COCHANGE_MEDIUM

    @property
    def confidence(self) -> float:
        return self.reason.base_confidence * self.normalized_frequency

    @property
    def evidence(self) -> str:
        return f"co-changed in {self.co_change_count} commits"

    def to_match(self) -> ContextMatch:
        return ContextMatch(self.file_path, self.reason, self.confidence, self.evidence)


@dataclass(frozen=True)
class CoChangeAnalysis:
    """History analysis of one target file."""

    target_file: str
    metrics: tuple[CoChangeMetrics, ...] = ()
    raw_frequency: dict[str, int] = field(default_factory=dict)
    max_frequency: int = 0

    def has_matches(self) -> bool:
        return bool(self.metrics)

    def high_confidence(self) -> list[CoChangeMetrics]:
        return [m for m in self.metrics if m.is_high_frequency]

    def medium_confidence(self) -> list[CoChangeMetrics]:
        return [m for m in self.metrics if m.is_medium_frequency]

    def frequency_for(self, file_path: str) -> int:
        return self.raw_frequency.get(file_path, 0)

    def to_matches(self) -> list[ContextMatch]:
        return [m.to_match() for m in self.metrics]


@dataclass(frozen=True)
class DiffBundle:
    """A parsed diff plus what retrieval needs to know about where it came from."""

    diff: Diff
    raw_text: str = ""
    repository: str = ""

    @property
    def total_line_count(self) -> int:
        return self.diff.total_line_count


@dataclass(frozen=True)
class EnrichedDiff:
    bundle: DiffBundle
    context: ContextResult | None = None
    strategy_results: dict[str, ContextResult] = field(default_factory=dict)

    def has_context(self) -> bool:
        return self.context is not None and not self.context.is_empty()

    def summary(self) -> str:
        text = f"{self.bundle.diff.file_count} file(s), {self.bundle.total_line_count} line(s)"
        if self.has_context():
            text += f", {self.context.total_matches} context file(s)"
        return text

"""Findings produced by a review pass over one diff chunk.

The JSON shape matches what the reviewer prompt asks the model for:

    {
      "summary": "...",
      "issues": [{"file": "...", "start_line": 42, "severity": "major", "title": "...", ...}],
      "non_blocking_notes": [{"file": "...", "line": 7, "note": "..."}]
    }

Parsing is lenient about key spelling (``startLine``, ``notes``, ``text``)
because it has to accept whatever the model actually produced.
"""

from __future__ import annotations

import json
import re
from dataclasses import dataclass, field


def _int_or_none(value) -> int | None:
    if value is None or value == "":
        return None
    try:
        return int(value)
    except (TypeError, ValueError):
        return None


def _first(data: dict, *keys, default=None):
    for key in keys:
        if data.get(key) is not None:
            return data[key]
    return default


def _entries(value, key: str) -> list[dict]:
    if value is None:
        return []
    if not isinstance(value, list):
        raise ValueError(f"'{key}' must be a list, got {type(value).__name__}")
    for index, entry in enumerate(value):
        if not isinstance(entry, dict):
            raise ValueError(f"'{key}'[{index}] must be an object, got {type(entry).__name__}")
    return value


@dataclass(frozen=True)
class Issue:
    file: str
    start_line: int | None
    severity: str = "minor"
    title: str = ""
    suggestion: str = ""
    confidence_score: float | None = None

    @classmethod
    def from_dict(cls, data: dict) -> Issue:
        score = _first(data, "confidence_score", "confidenceScore")
        return cls(
            file=str(_first(data, "file", "path", default="")),
            start_line=_int_or_none(_first(data, "start_line", "startLine", "line")),
            severity=str(_first(data, "severity", default="minor")).lower(),
            title=str(_first(data, "title", "comment", default="")),
            suggestion=str(_first(data, "suggestion", default="")),
            confidence_score=float(score) if score is not None else None,
        )

    def to_dict(self) -> dict:
        data = {
            "file": self.file,
            "start_line": self.start_line,
            "severity": self.severity,
            "title": self.title,
            "suggestion": self.suggestion,
        }
        if self.confidence_score is not None:
            data["confidence_score"] = self.confidence_score
        return data


@dataclass(frozen=True)
class Note:
    file: str
    line: int | None
    text: str = ""

    @classmethod
    def from_dict(cls, data: dict) -> Note:
        return cls(
            file=str(_first(data, "file", "path", default="")),
            line=_int_or_none(_first(data, "line", "start_line", "startLine")),
            text=str(_first(data, "text", "note", "comment", default="")),
        )

    def to_dict(self) -> dict:
        return {"file": self.file, "line": self.line, "text": self.text}


@dataclass(frozen=True)
class ReviewResult:
    summary: str | None = None
    issues: tuple[Issue, ...] = ()
    notes: tuple[Note, ...] = ()

    @property
    def item_count(self) -> int:
        return len(self.issues) + len(self.notes)

    def has_content(self) -> bool:
        return bool(self.issues or self.notes or (self.summary and self.summary.strip()))

    @classmethod
    def from_dict(cls, data: dict) -> ReviewResult:
        if not isinstance(data, dict):
            raise ValueError(f"expected a JSON object, got {type(data).__name__}")
        notes = _first(data, "non_blocking_notes", "nonBlockingNotes", "notes")
        return cls(
            summary=data.get("summary"),
            issues=tuple(Issue.from_dict(i) for i in _entries(data.get("issues"), "issues")),
            notes=tuple(Note.from_dict(n) for n in _entries(notes, "notes")),
        )

    def to_dict(self) -> dict:
        return {
            "summary": self.summary,
            "issues": [i.to_dict() for i in self.issues],
            "non_blocking_notes": [n.to_dict() for n in self.notes],
        }


def parse_review_json(raw: str) -> ReviewResult:
    """Parse a review from model output, tolerating a ``` fence or chatter around the object.

    Raises ValueError when no JSON object can be recovered.
    """
    if raw is None or not raw.strip():
        raise ValueError("review JSON must not be empty")

    # Strip only the outer ```json ... ``` fence, not backticks inside string values.
    cleaned = re.sub(r"^```(?:json)?\s*", "", raw.strip())
    cleaned = re.sub(r"\s*```$", "", cleaned.strip())
    try:
        return ReviewResult.from_dict(json.loads(cleaned))
    except json.JSONDecodeError as first_error:
        start, end = cleaned.find("{"), cleaned.rfind("}")
        if start < 0 or end <= start:
            raise ValueError(f"no JSON object found: {first_error}") from first_error
        try:
            return ReviewResult.from_dict(json.loads(cleaned[start : end + 1]))
        except json.JSONDecodeError as e:
            raise ValueError(f"could not parse review JSON: {e}") from e


@dataclass(frozen=True)
class PlacementSplit:
    """Findings that can be anchored on the diff, and the ones that cannot."""

    inline: ReviewResult
    fallback: ReviewResult
    diagnostics: tuple[str, ...] = field(default_factory=tuple)

    @property
    def total(self) -> int:
        return self.inline.item_count + self.fallback.item_count

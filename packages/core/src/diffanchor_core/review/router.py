"""Route findings to inline comments or to the fallback review body.

A finding whose line is not shown in the diff cannot be posted as an inline
review comment; the provider rejects the whole review if we try. Those
findings go to ``fallback`` instead, each with a diagnostic saying why, so
nothing is ever dropped.
"""

from __future__ import annotations

import logging

from diffanchor_core.diff.models import Diff
from diffanchor_core.diff.positions import placement_problem
from diffanchor_core.review.models import PlacementSplit, ReviewResult

logger = logging.getLogger(__name__)


def _diagnostic(prefix: str, file: str, line, problem: str) -> str:
    text = f"{prefix} at {file}:{line} is outside diff range"
    if not problem.endswith(f"is outside every hunk of {file}"):
        text += f" ({problem})"
    return text


def split_findings(diff: Diff, review: ReviewResult) -> PlacementSplit:
    """Partition ``review`` by whether each finding's line is addressable in ``diff``.

    The summary stays with the inline result; the fallback result carries none.
    """
    if review is None:
        raise ValueError("review must not be None")

    inline_issues, fallback_issues = [], []
    inline_notes, fallback_notes = [], []
    diagnostics: list[str] = []

    for issue in review.issues:
        problem = placement_problem(diff, issue.file, issue.start_line)
        if problem is None:
            inline_issues.append(issue)
        else:
            fallback_issues.append(issue)
            diagnostics.append(_diagnostic(f"Issue '{issue.title}'", issue.file, issue.start_line, problem))

    for note in review.notes:
        problem = placement_problem(diff, note.file, note.line)
        if problem is None:
            inline_notes.append(note)
        else:
            fallback_notes.append(note)
            diagnostics.append(_diagnostic("Note", note.file, note.line, problem))

    if diagnostics:
        logger.info("%d finding(s) routed to fallback", len(diagnostics))

    return PlacementSplit(
        inline=ReviewResult(summary=review.summary, issues=tuple(inline_issues), notes=tuple(inline_notes)),
        fallback=ReviewResult(issues=tuple(fallback_issues), notes=tuple(fallback_notes)),
        diagnostics=tuple(diagnostics),
    )

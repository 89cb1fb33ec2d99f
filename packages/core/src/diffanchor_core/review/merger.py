from __future__ import annotations

from diffanchor_core.review.models import ReviewResult

_SUMMARY_SEPARATOR = " "


def merge_results(parts: list[ReviewResult | None]) -> ReviewResult:
    """Combine per-chunk review results into one, preserving input order.

    ``None`` entries are skipped. Blank summaries are dropped, the rest are
    joined as written and only the joined text is trimmed.
    """
    if parts is None:
        raise ValueError("review parts must not be None")

    present = [p for p in parts if p is not None]
    summaries = [p.summary for p in present if p.summary and p.summary.strip()]
    return ReviewResult(
        summary=_SUMMARY_SEPARATOR.join(summaries).strip() or None,
        issues=tuple(issue for p in present for issue in p.issues),
        notes=tuple(note for p in present for note in p.notes),
    )


def review_statistics(result: ReviewResult) -> str:
    if result is None:
        raise ValueError("review result must not be None")
    has_summary = bool(result.summary and result.summary.strip())
    return (
        f"{len(result.issues)} issue(s), {len(result.notes)} note(s), "
        f"summary: {'present' if has_summary else 'absent'}"
    )

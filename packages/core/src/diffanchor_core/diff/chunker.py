"""Split a diff into hunk-atomic chunks bounded by a line budget."""

from __future__ import annotations

import logging

from diffanchor_core.diff.models import Diff, FileChange

logger = logging.getLogger(__name__)

DEFAULT_MAX_LINES_PER_CHUNK = 1000


def split_diff(diff: Diff, max_lines_per_chunk: int = DEFAULT_MAX_LINES_PER_CHUNK) -> list[Diff]:
    """Return self-contained sub-diffs of at most ``max_lines_per_chunk`` body lines.

    A hunk is never split: a hunk larger than the budget is placed alone in
    its own chunk. Every hunk is wrapped in a single-hunk copy of its file
    header, so two hunks of the same file that land in one chunk appear as two
    FileChange entries. Hunks are shared with the input diff, not copied.

    Path lookups on a chunk stop at the first matching entry, so a chunk can
    miss lines of a later hunk of the same file. Route findings with
    ``split_findings`` against the full diff, never against a chunk.
    """
    if diff is None:
        raise ValueError("diff must not be None")
    if max_lines_per_chunk <= 0:
        raise ValueError(f"max_lines_per_chunk must be positive, got {max_lines_per_chunk}")

    chunks: list[Diff] = []
    current: list[FileChange] = []
    running = 0

    for file in diff.files:
        for hunk in file.hunks:
            if running + hunk.line_count > max_lines_per_chunk and running > 0:
                chunks.append(Diff(files=tuple(current)))
                current = []
                running = 0
            current.append(file.with_single_hunk(hunk))
            running += hunk.line_count

    if current:
        chunks.append(Diff(files=tuple(current)))

    logger.debug(
        "Split %d hunk(s) into %d chunk(s) at %d lines per chunk",
        diff.hunk_count,
        len(chunks),
        max_lines_per_chunk,
    )
    return chunks

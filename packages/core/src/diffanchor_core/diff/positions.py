"""Line-in-diff validation and diff-relative position mapping.

Review APIs accept an inline comment only on a line the diff actually shows.
``is_line_in_diff`` answers that question for a new-file line number;
``DiffPositionMapper`` translates it into the diff-relative position GitHub's
legacy review-comment API expects.

Position convention, per file:

    @@ -1,3 +1,3 @@      (first header: not counted)
     line1               1
    -old                 2   (occupies a slot, never addressable)
    +new                 3
     line3               4
    @@ -9,2 +9,2 @@      5   (every later header takes a slot)
     line9               6
"""

from __future__ import annotations

import logging

from diffanchor_core.diff.models import Diff, FileChange, LineKind

logger = logging.getLogger(__name__)


def placement_problem(diff: Diff | None, file_path: str | None, new_line: int | None) -> str | None:
    """Return why ``file_path:new_line`` cannot carry an inline comment, or None if it can."""
    if diff is None:
        return "no diff"
    if not file_path or not file_path.strip():
        return "no file path"
    if new_line is None or new_line <= 0:
        return f"invalid line number {new_line}"

    file = diff.find_file(file_path)
    if file is None:
        return f"{file_path} is not part of the diff"
    if file.is_deleted:
        return f"{file_path} is deleted"

    for hunk in file.hunks:
        if hunk.new_start <= new_line <= hunk.new_end:
            return None
    return f"line {new_line} is outside every hunk of {file_path}"


def is_line_in_diff(diff: Diff | None, file_path: str | None, new_line: int | None) -> bool:
    """True when ``new_line`` of ``file_path`` falls inside one of the file's hunks.

    Never raises: a missing diff, a blank path, a non-positive line, an absent
    file or a deleted file all simply give False.
    """
    return placement_problem(diff, file_path, new_line) is None


def file_positions(file: FileChange) -> dict[int, int]:
    """Map each addressable new-file line of ``file`` to its diff position."""
    positions: dict[int, int] = {}
    position = 0

    for index, hunk in enumerate(file.hunks):
        if index > 0:
            position += 1  # hunk header
        new_line = hunk.new_start
        for line in hunk.lines:
            position += 1
            if line.kind in (LineKind.ADDED, LineKind.CONTEXT):
                if hunk.new_start <= new_line <= hunk.new_end:
                    positions[new_line] = position
                new_line += 1

    return positions


def _file_lines(file: FileChange) -> dict[int, str]:
    lines: dict[int, str] = {}
    for hunk in file.hunks:
        new_line = hunk.new_start
        for line in hunk.lines:
            if line.kind in (LineKind.ADDED, LineKind.CONTEXT):
                lines[new_line] = line.content
                new_line += 1
    return lines


class DiffPositionMapper:
    """Per-diff position lookup with a per-file cache.

    A mapper is bound to one Diff. Since Diff values are immutable the cache
    never goes stale; a different diff needs a new mapper.
    """

    def __init__(self, diff: Diff):
        if diff is None:
            raise ValueError("diff must not be None")
        self.diff = diff
        self._positions: dict[str, dict[int, int]] = {}

    def _positions_for(self, file_path: str) -> dict[int, int] | None:
        if file_path in self._positions:
            return self._positions[file_path]
        file = self.diff.find_file(file_path)
        if file is None or file.is_deleted:
            return None
        positions = file_positions(file)
        self._positions[file_path] = positions
        logger.debug("Mapped %d addressable line(s) in %s", len(positions), file_path)
        return positions

    def position_for(self, file_path: str, new_line: int) -> int | None:
        if not file_path or new_line is None or new_line <= 0:
            return None
        positions = self._positions_for(file_path)
        if positions is None:
            return None
        return positions.get(new_line)


def position_for(diff: Diff, file_path: str, new_line: int) -> int | None:
    """One-off lookup; build a DiffPositionMapper when resolving many lines."""
    return DiffPositionMapper(diff).position_for(file_path, new_line)


def line_content(diff: Diff, file_path: str, new_line: int) -> str:
    """Return the source text of an added or context line, or "" when the line is not shown."""
    file = diff.find_file(file_path) if diff is not None and file_path else None
    if file is None or file.is_deleted:
        return ""
    return _file_lines(file).get(new_line, "")

"""Unified diff parser.

Reads ``git diff`` / ``diff -u`` output into the frozen model in
diff/models.py. The scan is a single pass over the lines:

    --- a/path     opens a new file (old side)
    +++ b/path     sets the new side and registers the file
    @@ -a,b +c,d @@ starts a hunk on the current file
    + / - / " " / \\  hunk body

Anything else outside a hunk (``diff --git``, ``index``, mode lines) is
ignored. A hunk header that cannot be read is a hard error: silently
skipping it would shift every later line number and misplace comments.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field

from diffanchor_core.diff.models import DEV_NULL, Diff, DiffLine, FileChange, Hunk, LineKind

logger = logging.getLogger(__name__)

_HUNK_HEADER_RE = re.compile(r"^@@ -(\S+) \+(\S+) @@ ?(.*)$")

_PREFIX_KINDS = {kind.value: kind for kind in LineKind}


class DiffParseError(ValueError):
    """Raised when the input is not valid unified-diff syntax."""

    def __init__(self, message: str, line_number: int):
        super().__init__(f"line {line_number}: {message}")
        self.line_number = line_number


@dataclass
class _HunkBuilder:
    old_start: int
    old_count: int
    new_start: int
    new_count: int
    section: str
    lines: list[DiffLine] = field(default_factory=list)
    old_seen: int = 0
    new_seen: int = 0

    def expects_more(self) -> bool:
        return self.old_seen < self.old_count or self.new_seen < self.new_count

    def add(self, kind: LineKind, content: str) -> None:
        self.lines.append(DiffLine(kind, content))
        if kind in (LineKind.REMOVED, LineKind.CONTEXT):
            self.old_seen += 1
        if kind in (LineKind.ADDED, LineKind.CONTEXT):
            self.new_seen += 1

    def build(self) -> Hunk:
        return Hunk(
            old_start=self.old_start,
            old_count=self.old_count,
            new_start=self.new_start,
            new_count=self.new_count,
            lines=tuple(self.lines),
            section=self.section,
        )


@dataclass
class _FileBuilder:
    old_path: str | None = None
    new_path: str | None = None
    hunks: list[_HunkBuilder] = field(default_factory=list)
    registered: bool = False

    def build(self) -> FileChange:
        return FileChange(
            old_path=self.old_path,
            new_path=self.new_path,
            hunks=tuple(h.build() for h in self.hunks),
        )


def _clean_path(raw: str, prefix: str) -> str:
    # "--- a/foo.py\t2024-01-01 10:00:00": drop the timestamp diff -u appends.
    path = raw.split("\t", 1)[0].rstrip()
    if path == DEV_NULL:
        return path
    if path.startswith(prefix):
        return path[len(prefix) :]
    return path


def _parse_range(spec: str, line_number: int) -> tuple[int, int]:
    start, _, count = spec.partition(",")
    try:
        return int(start), int(count) if count else 1
    except ValueError:
        raise DiffParseError(f"malformed hunk range {spec!r}", line_number) from None


def _parse_hunk_header(line: str, line_number: int) -> _HunkBuilder:
    match = _HUNK_HEADER_RE.match(line)
    if not match:
        raise DiffParseError(f"malformed hunk header {line!r}", line_number)
    old_start, old_count = _parse_range(match.group(1), line_number)
    new_start, new_count = _parse_range(match.group(2), line_number)
    return _HunkBuilder(old_start, old_count, new_start, new_count, section=match.group(3).strip())


def parse_diff(text: str) -> Diff:
    """Parse unified-diff text into a Diff.

    Raises DiffParseError for a malformed hunk header; never raises for
    well-formed input, including the empty string.
    """
    if text is None:
        raise ValueError("diff text must not be None")

    files: list[_FileBuilder] = []
    current_file: _FileBuilder | None = None
    current_hunk: _HunkBuilder | None = None

    for number, line in enumerate(text.splitlines(), 1):
        # Inside a hunk that still owes lines, everything is body. This keeps a
        # removed "-- comment" line from being read as a "--- " file header.
        if current_hunk is not None and current_hunk.expects_more():
            if line == "":
                current_hunk.add(LineKind.CONTEXT, "")
                continue
            kind = _PREFIX_KINDS.get(line[0])
            if kind is not None:
                current_hunk.add(kind, line[1:])
                continue

        if line.startswith("--- "):
            current_file = _FileBuilder(old_path=_clean_path(line[4:], "a/"))
            current_hunk = None
        elif line.startswith("+++ "):
            if current_file is None or current_file.registered:
                current_file = _FileBuilder()
            current_file.new_path = _clean_path(line[4:], "b/")
            current_file.registered = True
            files.append(current_file)
            current_hunk = None
        elif line.startswith("@@"):
            current_hunk = _parse_hunk_header(line, number)
            if current_file is None:
                current_file = _FileBuilder(registered=True)
                files.append(current_file)
            elif not current_file.registered:
                # "--- " without a "+++ " line: keep what we have.
                current_file.registered = True
                files.append(current_file)
            current_file.hunks.append(current_hunk)
        elif current_hunk is not None and line.startswith(LineKind.NO_NEWLINE.value):
            # Once the declared counts are met only the trailing
            # "\ No newline at end of file" marker still belongs to the hunk;
            # a format-patch "-- " signature does not.
            current_hunk.add(LineKind.NO_NEWLINE, line[1:])
        else:
            # Trailing garbage or extended git headers end the current hunk.
            current_hunk = None

    diff = Diff(files=tuple(f.build() for f in files))

    for file in diff.files:
        for hunk in file.hunks:
            if not hunk.is_consistent():
                logger.warning(
                    "Hunk %s in %s does not match its header counts (truncated diff?)",
                    hunk.header(),
                    file.effective_path,
                )

    logger.debug("Parsed diff: %d file(s), %d hunk(s)", diff.file_count, diff.hunk_count)
    return diff

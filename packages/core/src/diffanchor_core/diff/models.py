"""Structural model of a unified diff.

Everything here is frozen: a Diff is parsed once and never mutated. The
chunker builds new Diff values that share Hunk objects with the original,
which is only safe because nothing can change a hunk after parsing.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum

DEV_NULL = "/dev/null"


class LineKind(Enum):
    ADDED = "+"
    REMOVED = "-"
    CONTEXT = " "
    NO_NEWLINE = "\\"


@dataclass(frozen=True)
class DiffLine:
    """A single body line of a hunk, stored without its prefix character."""

    kind: LineKind
    content: str

    def render(self) -> str:
        return self.kind.value + self.content


@dataclass(frozen=True)
class Hunk:
    old_start: int
    old_count: int
    new_start: int
    new_count: int
    lines: tuple[DiffLine, ...] = ()
    # Text after the closing "@@", usually the enclosing function signature.
    section: str = ""

    @property
    def line_count(self) -> int:
        return len(self.lines)

    @property
    def added_count(self) -> int:
        return sum(1 for line in self.lines if line.kind is LineKind.ADDED)

    @property
    def removed_count(self) -> int:
        return sum(1 for line in self.lines if line.kind is LineKind.REMOVED)

    @property
    def context_count(self) -> int:
        return sum(1 for line in self.lines if line.kind is LineKind.CONTEXT)

    @property
    def new_end(self) -> int:
        """Last new-file line covered by this hunk (new_start - 1 for pure deletions)."""
        return self.new_start + self.new_count - 1

    def is_consistent(self) -> bool:
        """True when the body agrees with the counts declared in the header."""
        return (
            self.removed_count + self.context_count == self.old_count
            and self.added_count + self.context_count == self.new_count
        )

    def header(self) -> str:
        text = f"@@ -{self.old_start},{self.old_count} +{self.new_start},{self.new_count} @@"
        return f"{text} {self.section}" if self.section else text


@dataclass(frozen=True)
class FileChange:
    old_path: str | None = None
    new_path: str | None = None
    hunks: tuple[Hunk, ...] = ()

    @property
    def is_new_file(self) -> bool:
        return not self.old_path or self.old_path == DEV_NULL

    @property
    def is_deleted(self) -> bool:
        return not self.new_path or self.new_path == DEV_NULL

    @property
    def is_renamed(self) -> bool:
        return self.old_path != self.new_path and not self.is_new_file and not self.is_deleted

    @property
    def effective_path(self) -> str | None:
        """The path a reviewer would recognise: the new path unless the file was deleted."""
        if self.is_deleted:
            return self.old_path if self.old_path != DEV_NULL else None
        return self.new_path

    @property
    def line_count(self) -> int:
        return sum(h.line_count for h in self.hunks)

    def matches_path(self, path: str) -> bool:
        return path == self.new_path or path == self.old_path

    def with_single_hunk(self, hunk: Hunk) -> FileChange:
        return FileChange(old_path=self.old_path, new_path=self.new_path, hunks=(hunk,))

    def status(self) -> str:
        if self.is_new_file:
            return "added"
        if self.is_deleted:
            return "deleted"
        if self.is_renamed:
            return "renamed"
        return "modified"


@dataclass(frozen=True)
class Diff:
    files: tuple[FileChange, ...] = field(default_factory=tuple)

    @property
    def is_empty(self) -> bool:
        return all(not f.hunks for f in self.files)

    @property
    def file_count(self) -> int:
        return len(self.files)

    @property
    def hunk_count(self) -> int:
        return sum(len(f.hunks) for f in self.files)

    @property
    def total_line_count(self) -> int:
        return sum(f.line_count for f in self.files)

    def find_file(self, path: str) -> FileChange | None:
        """Return the first file whose old or new path equals ``path``."""
        for file in self.files:
            if file.matches_path(path):
                return file
        return None

    def changed_paths(self) -> list[str]:
        """Paths of files that still exist after the change, in diff order."""
        return [f.new_path for f in self.files if f.new_path and not f.is_deleted]

    def to_unified_string(self) -> str:
        out: list[str] = []
        for file in self.files:
            old = DEV_NULL if file.is_new_file else f"a/{file.old_path}"
            new = DEV_NULL if file.is_deleted else f"b/{file.new_path}"
            out.append(f"--- {old}")
            out.append(f"+++ {new}")
            for hunk in file.hunks:
                out.append(hunk.header())
                out.extend(line.render() for line in hunk.lines)
        return "\n".join(out) + "\n" if out else ""

    def summary(self) -> str:
        if self.is_empty:
            return "empty diff"
        return f"{self.file_count} file(s), {self.hunk_count} hunk(s), {self.total_line_count} line(s)"

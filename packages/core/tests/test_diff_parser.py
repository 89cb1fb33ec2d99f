"""Tests for the unified diff parser and the diff model it produces."""

import pytest

from diffanchor_core.diff.models import DEV_NULL, Diff, FileChange, Hunk, LineKind
from diffanchor_core.diff.parser import DiffParseError, parse_diff

SIMPLE = """\
--- a/f.txt
+++ b/f.txt
@@ -1,3 +1,3 @@
 line1
-old
+new
 line3
"""

GIT_DIFF = """\
diff --git a/src/app.py b/src/app.py
index 1234567..89abcde 100644
--- a/src/app.py
+++ b/src/app.py
@@ -1,4 +1,5 @@ def main():
 import os
+import sys

 def main():
     pass
@@ -20,2 +21,2 @@ class App:
 a
-b
+c
diff --git a/README.md b/README.md
--- a/README.md
+++ b/README.md
@@ -1 +1 @@
-old title
+new title
"""


# ---------------------------------------------------------------------------
# Basic structure
# ---------------------------------------------------------------------------


class TestParseBasics:
    def test_single_file_single_hunk(self):
        diff = parse_diff(SIMPLE)
        assert diff.file_count == 1
        file = diff.files[0]
        assert file.old_path == "f.txt"
        assert file.new_path == "f.txt"
        assert len(file.hunks) == 1
        hunk = file.hunks[0]
        assert (hunk.old_start, hunk.old_count, hunk.new_start, hunk.new_count) == (1, 3, 1, 3)

    def test_line_kinds_in_order(self):
        hunk = parse_diff(SIMPLE).files[0].hunks[0]
        assert [line.kind for line in hunk.lines] == [
            LineKind.CONTEXT,
            LineKind.REMOVED,
            LineKind.ADDED,
            LineKind.CONTEXT,
        ]
        assert [line.content for line in hunk.lines] == ["line1", "old", "new", "line3"]

    def test_parsed_hunk_is_consistent(self):
        assert parse_diff(SIMPLE).files[0].hunks[0].is_consistent()

    def test_empty_text_gives_empty_diff(self):
        diff = parse_diff("")
        assert diff.files == ()
        assert diff.is_empty

    def test_none_text_raises(self):
        with pytest.raises(ValueError):
            parse_diff(None)

    def test_git_headers_are_ignored(self):
        diff = parse_diff(GIT_DIFF)
        assert [f.new_path for f in diff.files] == ["src/app.py", "README.md"]

    def test_multiple_hunks_keep_order(self):
        file = parse_diff(GIT_DIFF).files[0]
        assert [h.new_start for h in file.hunks] == [1, 21]

    def test_section_heading_kept(self):
        file = parse_diff(GIT_DIFF).files[0]
        assert file.hunks[0].section == "def main():"
        assert file.hunks[1].section == "class App:"

    def test_missing_counts_default_to_one(self):
        hunk = parse_diff(GIT_DIFF).files[1].hunks[0]
        assert hunk.old_count == 1
        assert hunk.new_count == 1

    def test_bare_empty_line_inside_hunk_is_empty_context(self):
        hunk = parse_diff(GIT_DIFF).files[0].hunks[0]
        assert hunk.lines[2].kind is LineKind.CONTEXT
        assert hunk.lines[2].content == ""
        assert hunk.is_consistent()


# ---------------------------------------------------------------------------
# Paths and file status
# ---------------------------------------------------------------------------


class TestPaths:
    def test_new_file(self):
        diff = parse_diff("--- /dev/null\n+++ b/new.py\n@@ -0,0 +1,2 @@\n+a\n+b\n")
        file = diff.files[0]
        assert file.old_path == DEV_NULL
        assert file.is_new_file
        assert not file.is_deleted
        assert file.effective_path == "new.py"
        assert file.status() == "added"

    def test_deleted_file(self):
        diff = parse_diff("--- a/gone.py\n+++ /dev/null\n@@ -1,2 +0,0 @@\n-a\n-b\n")
        file = diff.files[0]
        assert file.is_deleted
        assert not file.is_new_file
        assert file.effective_path == "gone.py"
        assert file.status() == "deleted"

    def test_renamed_file(self):
        diff = parse_diff("--- a/old/name.py\n+++ b/new/name.py\n@@ -1 +1 @@\n-x\n+y\n")
        file = diff.files[0]
        assert file.is_renamed
        assert file.effective_path == "new/name.py"
        assert file.status() == "renamed"

    def test_modified_file_is_not_renamed(self):
        file = parse_diff(SIMPLE).files[0]
        assert not file.is_renamed
        assert file.status() == "modified"

    def test_timestamp_after_tab_is_dropped(self):
        text = "--- a/x.c\t2024-01-01 10:00:00.000 +0000\n+++ b/x.c\t2024-01-02 10:00:00.000 +0000\n@@ -1 +1 @@\n-a\n+b\n"
        file = parse_diff(text).files[0]
        assert file.old_path == "x.c"
        assert file.new_path == "x.c"

    def test_paths_without_prefix_are_kept(self):
        file = parse_diff("--- x.c\n+++ x.c\n@@ -1 +1 @@\n-a\n+b\n").files[0]
        assert file.new_path == "x.c"

    def test_hunk_before_any_header_has_no_paths(self):
        diff = parse_diff("@@ -1,2 +1,2 @@\n a\n-b\n+c\n")
        file = diff.files[0]
        assert file.old_path is None
        assert file.new_path is None
        assert len(file.hunks) == 1


# ---------------------------------------------------------------------------
# Tricky content
# ---------------------------------------------------------------------------


class TestContentThatLooksLikeHeaders:
    def test_removed_sql_comment_is_not_a_file_header(self):
        text = "--- a/q.sql\n+++ b/q.sql\n@@ -1,2 +1,1 @@\n--- comment\n SELECT 1;\n"
        diff = parse_diff(text)
        assert diff.file_count == 1
        hunk = diff.files[0].hunks[0]
        assert hunk.lines[0].kind is LineKind.REMOVED
        assert hunk.lines[0].content == "-- comment"

    def test_added_line_starting_with_plus_plus(self):
        text = "--- a/c.c\n+++ b/c.c\n@@ -1,1 +1,2 @@\n x\n+++i;\n"
        hunk = parse_diff(text).files[0].hunks[0]
        assert hunk.lines[1].kind is LineKind.ADDED
        assert hunk.lines[1].content == "++i;"

    def test_no_newline_marker(self):
        text = "--- a/f\n+++ b/f\n@@ -1 +1 @@\n-a\n\\ No newline at end of file\n+b\n\\ No newline at end of file\n"
        hunk = parse_diff(text).files[0].hunks[0]
        kinds = [line.kind for line in hunk.lines]
        assert kinds == [LineKind.REMOVED, LineKind.NO_NEWLINE, LineKind.ADDED, LineKind.NO_NEWLINE]
        assert hunk.is_consistent()


# ---------------------------------------------------------------------------
# Errors and warnings
# ---------------------------------------------------------------------------


class TestErrors:
    def test_malformed_hunk_header_raises_with_line_number(self):
        text = "--- a/f\n+++ b/f\n@@ bad header @@\n+x\n"
        with pytest.raises(DiffParseError) as exc_info:
            parse_diff(text)
        assert exc_info.value.line_number == 3
        assert "line 3" in str(exc_info.value)

    def test_non_numeric_range_raises(self):
        with pytest.raises(DiffParseError):
            parse_diff("--- a/f\n+++ b/f\n@@ -a,b +c,d @@\n")

    def test_parse_error_is_a_value_error(self):
        assert issubclass(DiffParseError, ValueError)

    def test_truncated_hunk_is_warned_about(self, caplog):
        text = "--- a/f\n+++ b/f\n@@ -1,5 +1,5 @@\n a\n"
        with caplog.at_level("WARNING"):
            diff = parse_diff(text)
        assert not diff.files[0].hunks[0].is_consistent()
        assert "does not match its header counts" in caplog.text

    def test_format_patch_signature_is_not_body(self, caplog):
        text = "--- a/f.txt\n+++ b/f.txt\n@@ -1,3 +1,3 @@\n line1\n-old\n+new\n line3\n-- \n2.39.0\n"
        with caplog.at_level("WARNING"):
            diff = parse_diff(text)
        hunk = diff.files[0].hunks[0]
        assert hunk.line_count == 4
        assert hunk.is_consistent()
        assert "does not match its header counts" not in caplog.text

    def test_lines_past_declared_counts_end_the_hunk(self):
        text = "--- a/f\n+++ b/f\n@@ -1 +1 @@\n-x\n+y\n+stray\n"
        hunk = parse_diff(text).files[0].hunks[0]
        assert [line.content for line in hunk.lines] == ["x", "y"]

    def test_no_newline_marker_after_counts_is_kept(self):
        text = "--- a/f\n+++ b/f\n@@ -1 +1 @@\n-x\n+y\n\\ No newline at end of file\n"
        hunk = parse_diff(text).files[0].hunks[0]
        assert hunk.lines[-1].kind is LineKind.NO_NEWLINE
        assert hunk.line_count == 3


# ---------------------------------------------------------------------------
# Model helpers
# ---------------------------------------------------------------------------


class TestDiffModel:
    def test_counts(self):
        diff = parse_diff(GIT_DIFF)
        assert diff.hunk_count == 3
        assert diff.total_line_count == 5 + 3 + 2

    def test_empty_when_files_have_no_hunks(self):
        assert Diff(files=(FileChange("a", "a"),)).is_empty

    def test_find_file_matches_old_or_new_path(self):
        diff = parse_diff("--- a/old.py\n+++ b/new.py\n@@ -1 +1 @@\n-x\n+y\n")
        assert diff.find_file("old.py") is diff.files[0]
        assert diff.find_file("new.py") is diff.files[0]
        assert diff.find_file("other.py") is None

    def test_changed_paths_skip_deleted_files(self):
        text = SIMPLE + "--- a/gone.py\n+++ /dev/null\n@@ -1 +0,0 @@\n-x\n"
        assert parse_diff(text).changed_paths() == ["f.txt"]

    def test_hunk_header_rendering(self):
        hunk = Hunk(3, 2, 4, 3, section="def f():")
        assert hunk.header() == "@@ -3,2 +4,3 @@ def f():"

    def test_unified_string_parses_back_to_the_same_model(self):
        diff = parse_diff(GIT_DIFF)
        assert parse_diff(diff.to_unified_string()) == diff

    def test_summary(self):
        assert parse_diff("").summary() == "empty diff"
        assert parse_diff(SIMPLE).summary() == "1 file(s), 1 hunk(s), 4 line(s)"

"""Tests for porcelain status parsing."""

import itertools
import string

from treestate.git.models import ChangeCategory, StatusEntry
from treestate.git.status import (
    categorize,
    is_unmerged_status,
    parse_status,
    parse_status_line,
    unquote_path,
)

CONFLICT_PAIRS = {"DD", "AU", "UD", "UA", "DU", "AA", "UU"}


class TestParseStatusLine:
    """Test parse_status_line function."""

    def test_modified(self):
        assert parse_status_line(" M src/app.py") == StatusEntry(x=" ", y="M", path="src/app.py")

    def test_untracked(self):
        entry = parse_status_line("?? notes.txt")
        assert (entry.x, entry.y, entry.path) == ("?", "?", "notes.txt")

    def test_rename_splits_paths(self):
        entry = parse_status_line("R  old name.txt -> new name.txt")
        assert entry.path == "new name.txt"
        assert entry.old_path == "old name.txt"

    def test_path_with_spaces(self):
        assert parse_status_line(" M path with spaces/file.txt").path == "path with spaces/file.txt"

    def test_quoted_path_is_unquoted(self):
        entry = parse_status_line('?? "caf\\303\\251 \\"menu\\".txt"')
        assert entry.path == 'café "menu".txt'

    def test_arrow_inside_quoted_name_is_not_a_rename(self):
        entry = parse_status_line('?? "a -> b"')
        assert entry.path == "a -> b"
        assert entry.old_path is None

    def test_arrow_in_unquoted_name_without_rename_code(self):
        entry = parse_status_line(" M x -> y.txt")
        assert entry.path == "x -> y.txt"
        assert entry.old_path is None

    def test_rename_of_quoted_name_containing_arrow(self):
        entry = parse_status_line('R  "a -> b" -> c.txt')
        assert entry.old_path == "a -> b"
        assert entry.path == "c.txt"

    def test_rename_to_quoted_name(self):
        entry = parse_status_line('R  old.txt -> "new \\"x\\".txt"')
        assert entry.old_path == "old.txt"
        assert entry.path == 'new "x".txt'

    def test_short_lines_dropped(self):
        assert parse_status_line("") is None
        assert parse_status_line(" M") is None
        assert parse_status_line("MM ") is None


class TestUnquotePath:
    """Test C-style path unquoting."""

    def test_plain_path_unchanged(self):
        assert unquote_path("plain.txt") == "plain.txt"

    def test_escapes(self):
        assert unquote_path('"tab\\there"') == "tab\there"
        assert unquote_path('"back\\\\slash"') == "back\\slash"


class TestIsUnmergedStatus:
    """Test is_unmerged_status over every two-character combination."""

    def test_exhaustive(self):
        for x, y in itertools.product(string.printable, repeat=2):
            assert is_unmerged_status(x, y) == (x + y in CONFLICT_PAIRS), repr(x + y)

    def test_common_non_conflicts(self):
        for pair in ("MM", "A ", " D", "??", "R ", "AM", "UM"):
            assert not is_unmerged_status(pair[0], pair[1])


class TestCategorize:
    """Test categorize routing."""

    def _categories(self, xy):
        entry = StatusEntry(x=xy[0], y=xy[1], path="f")
        return [(r.category, r.status_code) for r in categorize(entry)]

    def test_conflict_is_exclusive(self):
        for pair in CONFLICT_PAIRS:
            assert self._categories(pair) == [(ChangeCategory.CONFLICT, pair)]

    def test_staged_and_unstaged(self):
        assert self._categories("MM") == [
            (ChangeCategory.STAGED, "M"),
            (ChangeCategory.UNSTAGED, "M"),
        ]

    def test_staged_only(self):
        assert self._categories("A ") == [(ChangeCategory.STAGED, "A")]

    def test_unstaged_only(self):
        assert self._categories(" D") == [(ChangeCategory.UNSTAGED, "D")]

    def test_unknown_pair_is_untracked(self):
        assert self._categories("??") == [(ChangeCategory.UNTRACKED, "?")]
        assert self._categories("!!") == [(ChangeCategory.UNTRACKED, "?")]


class TestParseStatus:
    """Test parse_status grouping."""

    def test_every_category_present(self):
        grouped = parse_status("")
        assert set(grouped) == set(ChangeCategory)
        assert all(records == [] for records in grouped.values())

    def test_malformed_lines_skipped(self, caplog):
        grouped = parse_status(" M a.txt\nX\n?? b.txt\n")
        assert [r.path for r in grouped[ChangeCategory.UNSTAGED]] == ["a.txt"]
        assert [r.path for r in grouped[ChangeCategory.UNTRACKED]] == ["b.txt"]
        assert "Skipping malformed status line" in caplog.text

    def test_untracked_name_with_arrow(self):
        grouped = parse_status('?? "a -> b"\n')
        records = grouped[ChangeCategory.UNTRACKED]
        assert [(r.path, r.old_path) for r in records] == [("a -> b", None)]

    def test_conflict_not_in_staged_or_unstaged(self):
        grouped = parse_status("UU both.txt\nAA added.txt\n")
        assert len(grouped[ChangeCategory.CONFLICT]) == 2
        assert grouped[ChangeCategory.STAGED] == []
        assert grouped[ChangeCategory.UNSTAGED] == []

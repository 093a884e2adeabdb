"""Tests for git error formatting and taxonomy."""

from treestate.git.errors import (
    MAX_DISPLAY_LENGTH,
    ConflictState,
    GitError,
    HookFailure,
    UncommittedChanges,
    format_git_error,
)


class TestFormatGitError:
    """Test format_git_error function."""

    def test_prefers_fatal_line_over_hints(self):
        stderr = "hint: Updates were rejected\nfatal: refusing to merge unrelated histories\nhint: see docs\n"
        assert format_git_error(stderr, "Failed") == "refusing to merge unrelated histories"

    def test_prefers_error_line(self):
        stderr = "Auto packing\nerror: Your local changes would be overwritten\nAborting\n"
        assert format_git_error(stderr, "Failed") == "Your local changes would be overwritten"

    def test_keeps_conflict_marker(self):
        stderr = "Auto-merging a.txt\nCONFLICT (content): Merge conflict in a.txt\n"
        assert format_git_error(stderr, "Failed") == "CONFLICT (content): Merge conflict in a.txt"

    def test_first_line_when_nothing_preferred(self):
        assert format_git_error("\n  something odd\nmore\n", "Failed") == "something odd"

    def test_fallback_for_empty(self):
        assert format_git_error("", "Failed to push") == "Failed to push"
        assert format_git_error(None, "Failed to push") == "Failed to push"

    def test_truncates(self):
        message = format_git_error("fatal: " + "x" * 500, "Failed")
        assert len(message) == MAX_DISPLAY_LENGTH
        assert message.endswith("...")


class TestErrorTypes:
    """Test error classes."""

    def test_carry_message_and_stderr(self):
        err = HookFailure("Pre-commit hook failed", stderr="lint failed")
        assert isinstance(err, GitError)
        assert err.message == "Pre-commit hook failed"
        assert err.stderr == "lint failed"
        assert str(err) == "Pre-commit hook failed"

    def test_uncommitted_changes_lists_paths(self):
        err = UncommittedChanges("You have uncommitted changes", changes=[" M a.txt"])
        assert err.changes == [" M a.txt"]
        assert UncommittedChanges("dirty").changes == []

    def test_conflict_state_is_git_error(self):
        assert issubclass(ConflictState, GitError)

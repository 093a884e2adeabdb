"""Tests for CLI argument parsing and command dispatch."""

from unittest.mock import patch, AsyncMock, MagicMock

import pytest

from treestate.cli import _activity_char, build_parser, main
from treestate.git.errors import NothingToCommit, ValidationError
from treestate.git.models import (
    ActivityDay,
    ActivitySeries,
    Hunk,
    Result,
    StashApplyOutcome,
    StashRecord,
    WorktreeInfo,
)


@pytest.fixture(autouse=True)
def no_config_file(monkeypatch):
    monkeypatch.delenv("TREESTATE_CONFIG", raising=False)


@pytest.fixture
def engine():
    with patch("treestate.cli.GitEngine") as engine_cls:
        instance = MagicMock()
        engine_cls.return_value = instance
        yield instance


class TestParser:
    """Test build_parser function."""

    def test_command_required(self):
        with pytest.raises(SystemExit):
            build_parser().parse_args([])

    def test_hunk_defaults(self):
        args = build_parser().parse_args(["hunk", "a.txt", "1"])
        assert (args.path, args.index, args.type, args.action) == ("a.txt", 1, "unstaged", "stage")

    def test_resolve_needs_source(self):
        with pytest.raises(SystemExit):
            build_parser().parse_args(["resolve", "a.txt"])

    def test_stash_ref_default(self):
        args = build_parser().parse_args(["-C", "/tmp/r", "stash", "pop"])
        assert args.repo == "/tmp/r"
        assert args.ref == "stash@{0}"

    def test_invalid_diff_type(self):
        with pytest.raises(SystemExit):
            build_parser().parse_args(["diff", "a.txt", "--type", "merged"])


class TestMain:
    """Test main dispatch with a mocked engine."""

    def test_commit_failure_exit_code(self, engine, capsys):
        engine.commit = AsyncMock(return_value=Result(error=NothingToCommit("Nothing staged to commit")))
        assert main(["commit", "-m", "msg"]) == 1
        assert "Nothing staged to commit" in capsys.readouterr().out

    def test_commit_all_names_step(self, engine, capsys):
        engine.commit_all = AsyncMock(
            return_value=Result(error=ValidationError("Commit message cannot be empty"), step="commit")
        )
        assert main(["commit", "--all"]) == 1
        assert "(commit)" in capsys.readouterr().out

    def test_repository_selected(self, engine, tmp_path):
        engine.undo_last_commit = AsyncMock(return_value=Result(value=None))
        assert main(["-C", str(tmp_path), "undo"]) == 0
        engine.set_repository.assert_called_once_with(str(tmp_path))
        engine.undo_last_commit.assert_called_once_with(str(tmp_path))

    def test_hunk_applies_selected_patch(self, engine):
        hunks = [
            Hunk(header="@@ -1 +1 @@", old_start=1, old_count=1, new_start=1, new_count=1, patch_text="first"),
            Hunk(header="@@ -9 +9 @@", old_start=9, old_count=1, new_start=9, new_count=1, patch_text="second"),
        ]
        engine.load_hunks = AsyncMock(return_value=Result(value=hunks))
        engine.apply_hunk = AsyncMock(return_value=Result(value=None))
        assert main(["hunk", "a.txt", "1", "--action", "discard"]) == 0
        engine.apply_hunk.assert_called_once_with(".", "a.txt", "unstaged", "discard", "second")

    def test_hunk_index_out_of_range(self, engine):
        engine.load_hunks = AsyncMock(return_value=Result(value=[]))
        engine.apply_hunk = AsyncMock()
        assert main(["hunk", "a.txt", "0"]) == 2
        engine.apply_hunk.assert_not_called()

    def test_stash_pop_conflict(self, engine, capsys):
        engine.stash_pop = AsyncMock(return_value=Result(value=StashApplyOutcome(conflicts=True, kept=True)))
        assert main(["stash", "pop"]) == 1
        assert "stash kept" in capsys.readouterr().out

    def test_stash_list_default(self, engine, capsys):
        engine.stash_list = AsyncMock(return_value=Result(value=[
            StashRecord(ref="stash@{0}", message="On main: wip", relative_time="1 minute ago"),
        ]))
        assert main(["stash"]) == 0
        assert "On main: wip" in capsys.readouterr().out

    def test_resolve_takes_side(self, engine):
        versions = MagicMock(ours="ours\n")
        engine.load_conflict = AsyncMock(return_value=Result(value=versions))
        engine.resolve_conflict = AsyncMock(return_value=Result(value=None))
        assert main(["resolve", "a.txt", "--take", "ours"]) == 0
        engine.resolve_conflict.assert_called_once_with(".", "a.txt", "ours\n")

    def test_activity_summary(self, engine, capsys):
        series = ActivitySeries(
            series=tuple(ActivityDay(date=f"2024-03-{d:02d}", count=d % 3) for d in range(1, 8)),
            total=7,
        )
        engine.activity = AsyncMock(return_value=Result(value=series))
        assert main(["activity", "--days", "7"]) == 0
        assert "7 commits in 7 days" in capsys.readouterr().out

    def test_worktrees_list_default(self, engine, capsys):
        engine.load_worktrees = AsyncMock(return_value=Result(value=[
            WorktreeInfo(path="/home/ada/project", head="a" * 40, branch="main", is_main=True),
            WorktreeInfo(path="/home/ada/scratch", head="b" * 40, is_detached=True),
        ]))
        assert main(["worktrees"]) == 0
        out = capsys.readouterr().out
        assert "(main)" in out
        assert "(detached)" in out

    def test_worktree_add_new_branch(self, engine):
        engine.add_worktree = AsyncMock(return_value=Result(value="/home/ada/wt"))
        assert main(["worktrees", "add", "../wt", "feature", "-b"]) == 0
        engine.add_worktree.assert_called_once_with(".", "../wt", "feature", create_branch=True)

    def test_worktree_remove_failure(self, engine, capsys):
        engine.remove_worktree = AsyncMock(
            return_value=Result(error=ValidationError("Cannot remove the main worktree"))
        )
        assert main(["worktrees", "remove", ".", "--force"]) == 1
        engine.remove_worktree.assert_called_once_with(".", ".", force=True)
        assert "Cannot remove the main worktree" in capsys.readouterr().out

    def test_bad_config_exit_code(self, engine, tmp_path, capsys):
        config = tmp_path / "config.yaml"
        config.write_text("status_ttl: fast\n")
        assert main(["--config", str(config), "status"]) == 2


class TestActivityChar:
    """Test heatmap bucketing."""

    def test_buckets(self):
        assert [_activity_char(n) for n in (0, 1, 2, 3, 6, 50)] == ["·", "░", "░", "▒", "▓", "█"]

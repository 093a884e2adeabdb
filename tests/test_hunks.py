"""Tests for hunk apply-mode selection and validation."""

from unittest.mock import patch, AsyncMock

import pytest

from treestate.git.errors import ExecutionError, ValidationError
from treestate.git.hunks import build_apply_args, apply_hunk
from treestate.git.models import DiffType, HunkAction
from treestate.git.runner import CommandResult
from treestate.lib.config import EngineConfig

PATCH = (
    "diff --git a/a.txt b/a.txt\n"
    "--- a/a.txt\n"
    "+++ b/a.txt\n"
    "@@ -1 +1 @@\n"
    "-one\n"
    "+uno\n"
)


class TestBuildApplyArgs:
    """Test build_apply_args mode table."""

    def test_stage_from_unstaged(self):
        assert build_apply_args("unstaged", "stage") == ["apply", "--cached", "--whitespace=nowarn", "-"]

    def test_stage_from_conflict(self):
        assert build_apply_args(DiffType.CONFLICT, HunkAction.STAGE)[1] == "--cached"

    def test_unstage_from_staged(self):
        assert build_apply_args(DiffType.STAGED, HunkAction.UNSTAGE) == [
            "apply", "-R", "--cached", "--whitespace=nowarn", "-",
        ]

    def test_discard_from_unstaged(self):
        assert build_apply_args(DiffType.UNSTAGED, HunkAction.DISCARD) == [
            "apply", "-R", "--whitespace=nowarn", "-",
        ]

    def test_action_is_case_insensitive(self):
        assert build_apply_args("unstaged", "STAGE") == build_apply_args("unstaged", "stage")

    @pytest.mark.parametrize("diff_type, action", [
        ("staged", "stage"),
        ("staged", "discard"),
        ("unstaged", "unstage"),
        ("conflict", "unstage"),
        ("untracked", "stage"),
        ("untracked", "discard"),
    ])
    def test_disallowed_combinations(self, diff_type, action):
        with pytest.raises(ValidationError):
            build_apply_args(diff_type, action)

    def test_unknown_values(self):
        with pytest.raises(ValidationError, match="Invalid hunk action"):
            build_apply_args("unstaged", "--exec=sh")
        with pytest.raises(ValidationError, match="Invalid diff type"):
            build_apply_args("worktree", "stage")


class TestApplyHunk:
    """Test apply_hunk with a mocked runner."""

    @pytest.mark.asyncio
    @patch("treestate.git.hunks.run_git", new_callable=AsyncMock)
    async def test_pipes_patch_on_stdin(self, mock_run, tmp_path):
        mock_run.return_value = CommandResult(returncode=0, stdout="", stderr="")
        await apply_hunk(tmp_path, "a.txt", "unstaged", "stage", PATCH)
        args = mock_run.call_args[0][0]
        assert args == ["apply", "--cached", "--whitespace=nowarn", "-"]
        assert mock_run.call_args.kwargs["input_data"] == PATCH

    @pytest.mark.asyncio
    @patch("treestate.git.hunks.run_git", new_callable=AsyncMock)
    async def test_failure_surfaces_stderr_verbatim(self, mock_run, tmp_path):
        stderr = "error: patch failed: a.txt:1\nerror: a.txt: patch does not apply\n"
        mock_run.return_value = CommandResult(returncode=1, stdout="", stderr=stderr)
        with pytest.raises(ExecutionError) as exc:
            await apply_hunk(tmp_path, "a.txt", "unstaged", "stage", PATCH)
        assert exc.value.message == stderr.strip()

    @pytest.mark.asyncio
    @pytest.mark.parametrize("path, diff_type, action, patch_text", [
        ("../outside.txt", "unstaged", "stage", PATCH),
        ("", "unstaged", "stage", PATCH),
        ("a.txt", "staged", "discard", PATCH),
        ("a.txt", "unstaged", "stage", "not a patch"),
        ("a.txt", "unstaged", "stage", None),
    ])
    @patch("treestate.git.hunks.run_git", new_callable=AsyncMock)
    async def test_rejected_before_spawn(self, mock_run, path, diff_type, action, patch_text, tmp_path):
        with pytest.raises(ValidationError):
            await apply_hunk(tmp_path, path, diff_type, action, patch_text)
        mock_run.assert_not_called()

    @pytest.mark.asyncio
    @patch("treestate.git.hunks.run_git", new_callable=AsyncMock)
    async def test_oversized_patch_rejected(self, mock_run, tmp_path):
        config = EngineConfig(max_patch_bytes=16)
        with pytest.raises(ValidationError):
            await apply_hunk(tmp_path, "a.txt", "unstaged", "stage", PATCH, config)
        mock_run.assert_not_called()

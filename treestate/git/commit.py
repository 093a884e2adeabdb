"""Git commit and index operations."""

import logging
from pathlib import Path

from treestate.git.branch import get_current_branch, get_parent_count
from treestate.git.errors import (
    ConflictState,
    ExecutionError,
    GitError,
    HookFailure,
    NothingToCommit,
    ValidationError,
    format_git_error,
)
from treestate.git.models import DiffType
from treestate.git.refs import ensure_within_repo, is_valid_branch_name, is_valid_commit_hash
from treestate.git.runner import CommandResult, run_git, run_git_checked
from treestate.lib.config import DEFAULT_CONFIG, EngineConfig

logger = logging.getLogger(__name__)

COMMIT_HOOKS = ("pre-commit", "commit-msg", "prepare-commit-msg")


def _is_unborn_error(stderr: str) -> bool:
    return "unknown revision" in stderr or "ambiguous argument 'HEAD'" in stderr


def build_message_args(message: str) -> list[str]:
    """Split "summary\\n\\nbody" into separate -m arguments."""
    summary, _, body = message.strip().partition("\n\n")
    args = ["-m", summary.strip()]
    if body.strip():
        args += ["-m", body.strip()]
    return args


def validate_message(message: str | None, config: EngineConfig, required: bool = True) -> None:
    if required and (not message or not message.strip()):
        raise ValidationError("Commit message cannot be empty")
    if message and len(message) > config.max_message_length:
        raise ValidationError("Commit message too long")


async def _has_commit_hook(repo: Path, config: EngineConfig) -> bool:
    for hook in COMMIT_HOOKS:
        result = await run_git(["rev-parse", "--git-path", f"hooks/{hook}"], repo, config)
        if result.success and (Path(repo) / result.stdout.strip()).is_file():
            return True
    return False


async def _raise_commit_failure(repo: Path, result: CommandResult, fallback: str, config: EngineConfig) -> None:
    if result.timed_out or result.not_found:
        result.raise_for_status(fallback)

    text = f"{result.stderr}\n{result.stdout}"
    if "nothing to commit" in text:
        raise NothingToCommit("Nothing to commit", stderr=text.strip())
    if "empty ident" in text:
        raise ExecutionError("Git user name/email not configured", stderr=text.strip())
    # A failing hook prints its own output, not a fatal:/error: line.
    reported_by_git = any(
        line.startswith(("fatal:", "error:")) for line in result.stderr.splitlines()
    )
    if "hook" in text or (not reported_by_git and await _has_commit_hook(repo, config)):
        raise HookFailure("Pre-commit hook failed", stderr=text.strip())
    result.raise_for_status(fallback)


async def list_staged_files(repo: Path, config: EngineConfig = DEFAULT_CONFIG) -> list[str]:
    result = await run_git_checked(
        ["diff", "--cached", "--name-only"], repo, config,
        timeout=config.index_timeout,
        max_output_bytes=config.large_output_bytes,
    )
    return [f for f in result.stdout.splitlines() if f.strip()]


async def commit(repo: Path, message: str, config: EngineConfig = DEFAULT_CONFIG) -> None:
    """Create a commit from the index."""
    validate_message(message, config)
    if not await list_staged_files(repo, config):
        raise NothingToCommit("Nothing staged to commit")

    result = await run_git(
        ["commit", *build_message_args(message)], repo, config,
        timeout=config.commit_timeout,
        max_output_bytes=config.large_output_bytes,
    )
    if not result.success:
        await _raise_commit_failure(repo, result, "Commit failed", config)


async def amend(repo: Path, message: str | None = None, config: EngineConfig = DEFAULT_CONFIG) -> None:
    """Amend the last commit; without a message the old one is kept."""
    validate_message(message, config, required=False)
    if message and message.strip():
        args = ["commit", "--amend", *build_message_args(message)]
    else:
        args = ["commit", "--amend", "--no-edit"]

    result = await run_git(
        args, repo, config,
        timeout=config.commit_timeout,
        max_output_bytes=config.large_output_bytes,
    )
    if not result.success:
        await _raise_commit_failure(repo, result, "Amend failed", config)


async def undo_last_commit(repo: Path, config: EngineConfig = DEFAULT_CONFIG) -> None:
    """
    Undo the last commit, keeping its changes staged.

    For the root commit there is no parent to reset to, so the branch ref is
    deleted instead: the branch becomes unborn and the index stays populated.
    """
    parents = await get_parent_count(repo, "HEAD", config)
    if parents > 0:
        await run_git_checked(
            ["reset", "--soft", "HEAD~1"], repo, config, fallback="Failed to undo commit"
        )
        return

    branch = await get_current_branch(repo, config)
    if not branch:
        raise ValidationError("Cannot undo: detached HEAD")
    if not is_valid_branch_name(branch):
        raise ValidationError("Cannot undo: invalid branch name")
    await run_git_checked(
        ["update-ref", "-d", f"refs/heads/{branch}"], repo, config,
        fallback="Failed to undo initial commit",
    )


async def revert_commit(repo: Path, commit_hash: str, config: EngineConfig = DEFAULT_CONFIG) -> None:
    """
    Create a commit that reverts commit_hash.

    Merge commits are reverted against their first parent; git refuses a
    merge revert without a mainline.
    """
    if not is_valid_commit_hash(commit_hash):
        raise ValidationError("Invalid commit hash")

    args = ["revert", "--no-edit"]
    try:
        if await get_parent_count(repo, commit_hash, config) > 1:
            args += ["-m", "1"]
    except GitError as e:
        logger.debug(f"Parent lookup failed for {commit_hash}, letting revert report: {e}")

    result = await run_git(
        [*args, commit_hash], repo, config,
        timeout=config.commit_timeout,
        max_output_bytes=config.large_output_bytes,
    )
    if result.success:
        return
    text = f"{result.stderr}\n{result.stdout}"
    if "CONFLICT" in text:
        raise ConflictState(format_git_error(text, "Revert produced conflicts"), stderr=text.strip())
    result.raise_for_status("Failed to revert commit")


async def stage_file(repo: Path, path: str, config: EngineConfig = DEFAULT_CONFIG) -> None:
    ensure_within_repo(repo, path)
    await run_git_checked(["add", "--", path], repo, config, fallback="Failed to stage file")


async def unstage_file(repo: Path, path: str, config: EngineConfig = DEFAULT_CONFIG) -> None:
    """Reset a path in the index to HEAD; on an unborn branch, drop it from the index."""
    ensure_within_repo(repo, path)
    result = await run_git(["reset", "HEAD", "--", path], repo, config)
    if result.success:
        return
    if _is_unborn_error(result.stderr):
        await run_git_checked(
            ["rm", "-r", "--cached", "--quiet", "--", path], repo, config,
            fallback="Failed to unstage file",
        )
        return
    result.raise_for_status("Failed to unstage file")


async def discard_file(
    repo: Path,
    path: str,
    diff_type: DiffType | str,
    config: EngineConfig = DEFAULT_CONFIG,
) -> None:
    """Throw away changes to one path, from the side named by diff_type."""
    ensure_within_repo(repo, path)
    try:
        diff_type = DiffType(diff_type)
    except ValueError:
        raise ValidationError("Invalid diff type") from None
    if diff_type == DiffType.UNTRACKED:
        args = ["clean", "-fd", "--", path]
    elif diff_type == DiffType.STAGED:
        args = ["checkout", "HEAD", "--", path]
    else:
        args = ["checkout", "--", path]
    await run_git_checked(args, repo, config, fallback="Failed to discard file")


async def stage_all(repo: Path, config: EngineConfig = DEFAULT_CONFIG) -> None:
    """Stage all changes (new, modified, deleted)."""
    await run_git_checked(
        ["add", "-A"], repo, config, timeout=config.index_timeout, fallback="Failed to stage all"
    )


async def unstage_all(repo: Path, config: EngineConfig = DEFAULT_CONFIG) -> None:
    """Empty the index back to HEAD, or entirely on an unborn branch."""
    result = await run_git(["reset"], repo, config)
    if result.success:
        return
    if _is_unborn_error(result.stderr):
        await run_git_checked(
            ["rm", "-r", "--cached", "--quiet", "."], repo, config,
            timeout=config.index_timeout,
            max_output_bytes=config.large_output_bytes,
            fallback="Failed to unstage all",
        )
        return
    result.raise_for_status("Failed to unstage all")


async def discard_all_unstaged(repo: Path, config: EngineConfig = DEFAULT_CONFIG) -> None:
    """
    Restore tracked files and remove untracked ones.

    Ignored files are kept (no -x), matching the "unstaged changes" scope.
    """
    await run_git_checked(["checkout", "--", "."], repo, config, fallback="Failed to discard changes")
    await run_git_checked(["clean", "-fd"], repo, config, fallback="Failed to discard changes")

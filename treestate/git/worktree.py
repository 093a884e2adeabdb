"""Git worktree operations."""

import logging
from dataclasses import replace
from pathlib import Path

from treestate.git.errors import ValidationError
from treestate.git.models import WorktreeInfo
from treestate.git.refs import is_valid_branch_name
from treestate.git.runner import run_git_checked
from treestate.lib.config import DEFAULT_CONFIG, EngineConfig
from treestate.lib.paths import is_path_within_project, resolve_for_containment

logger = logging.getLogger(__name__)

HEADS_PREFIX = "refs/heads/"


def parse_worktree_list(stdout: str) -> list[WorktreeInfo]:
    """Parse `git worktree list --porcelain` into entries, main worktree first."""
    worktrees = []
    current = None
    for line in stdout.split("\n"):
        if line.startswith("worktree "):
            if current is not None:
                worktrees.append(current)
            current = WorktreeInfo(path=line[len("worktree "):])
        elif current is None:
            continue
        elif line.startswith("HEAD "):
            current = replace(current, head=line[len("HEAD "):])
        elif line.startswith("branch "):
            branch = line[len("branch "):]
            if branch.startswith(HEADS_PREFIX):
                branch = branch[len(HEADS_PREFIX):]
            current = replace(current, branch=branch)
        elif line == "bare":
            current = replace(current, is_bare=True)
        elif line == "detached":
            current = replace(current, is_detached=True)
        elif line == "locked" or line.startswith("locked "):
            current = replace(current, is_locked=True)
    if current is not None:
        worktrees.append(current)

    if worktrees:
        worktrees[0] = replace(worktrees[0], is_main=True)
    return worktrees


async def load_worktrees(repo: Path, config: EngineConfig = DEFAULT_CONFIG) -> list[WorktreeInfo]:
    result = await run_git_checked(
        ["worktree", "list", "--porcelain"], repo, config, fallback="Failed to list worktrees"
    )
    return parse_worktree_list(result.stdout)


def _target_path(repo: Path, path: str) -> Path:
    """Absolute worktree location; relative paths are taken from the repository."""
    if not path:
        raise ValidationError("Missing worktree path")
    return resolve_for_containment(Path(repo) / path)


async def add_worktree(
    repo: Path,
    path: str,
    branch: str,
    create_branch: bool = False,
    config: EngineConfig = DEFAULT_CONFIG,
) -> Path:
    """
    Check out branch into a new worktree at path.

    With create_branch the branch is created there (`-b`) from HEAD.
    The worktree must live under the user's home directory.

    Returns:
        The absolute path of the new worktree
    """
    if not is_valid_branch_name(branch):
        raise ValidationError("Invalid branch name")
    target = _target_path(repo, path)
    if not is_path_within_project(target, Path.home()):
        raise ValidationError("Worktree path must be within home directory")

    if create_branch:
        args = ["worktree", "add", "-b", branch, str(target)]
    else:
        args = ["worktree", "add", str(target), branch]
    await run_git_checked(args, repo, config, fallback="Failed to add worktree")
    logger.info(f"Added worktree {target} on {branch}")
    return target


async def remove_worktree(
    repo: Path,
    path: str,
    force: bool = False,
    config: EngineConfig = DEFAULT_CONFIG,
) -> None:
    """
    Remove a linked worktree. Only paths git lists for this repository are
    accepted, and never the main worktree.

    Without force git refuses when the worktree has local changes.
    """
    target = _target_path(repo, path)
    worktrees = await load_worktrees(repo, config)
    match = next(
        (wt for wt in worktrees if resolve_for_containment(wt.path) == target), None
    )
    if match is None:
        raise ValidationError("Not a worktree of this repository")
    if match.is_main:
        raise ValidationError("Cannot remove the main worktree")

    args = ["worktree", "remove", "--force", match.path] if force else ["worktree", "remove", match.path]
    await run_git_checked(args, repo, config, fallback="Failed to remove worktree")
    logger.info(f"Removed worktree {match.path}")

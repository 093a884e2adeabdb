"""Git branch operations."""

from pathlib import Path

from treestate.git.errors import UncommittedChanges, ValidationError
from treestate.git.models import BranchInfo
from treestate.git.refs import is_valid_branch_name
from treestate.git.runner import run_git, run_git_checked
from treestate.git.status import list_uncommitted_changes
from treestate.lib.config import DEFAULT_CONFIG, EngineConfig

REMOTE_PREFIX = "origin/"

_BRANCH_FORMAT = "%(refname:short)%00%(objectname:short)%00%(committerdate:relative)%00%(subject)"


async def get_current_branch(repo: Path, config: EngineConfig = DEFAULT_CONFIG) -> str | None:
    """Get the current branch name, or None if detached HEAD."""
    result = await run_git(["branch", "--show-current"], repo, config)
    if result.success:
        return result.stdout.strip() or None
    return None


async def get_parent_count(repo: Path, ref: str, config: EngineConfig = DEFAULT_CONFIG) -> int:
    """Number of parents of ref (0 for a root commit)."""
    result = await run_git_checked(
        ["rev-list", "--parents", "-n", "1", ref], repo, config,
        fallback=f"Unknown revision: {ref}",
    )
    return max(0, len(result.stdout.split()) - 1)


def parse_branch_list(stdout: str, current: str | None) -> list[BranchInfo]:
    """Parse NUL-delimited `git branch -a --format` output."""
    branches = []
    for line in stdout.split("\n"):
        parts = line.split("\0")
        if len(parts) < 3:
            continue
        name, commit, date, *message_parts = parts
        # refs/remotes/origin/HEAD shortens to plain "origin"
        if "HEAD" in name or name == REMOTE_PREFIX.rstrip("/"):
            continue
        branches.append(BranchInfo(
            name=name,
            commit=commit,
            date=date,
            message="".join(message_parts),
            is_remote=name.startswith(REMOTE_PREFIX),
            is_current=name == current,
        ))
    return branches


async def load_branches(repo: Path, config: EngineConfig = DEFAULT_CONFIG) -> list[BranchInfo]:
    """List local and remote-tracking branches."""
    await run_git_checked(
        ["rev-parse", "--is-inside-work-tree"], repo, config, fallback="Not a git repository"
    )
    current = await get_current_branch(repo, config)
    result = await run_git_checked(
        ["branch", "-a", f"--format={_BRANCH_FORMAT}"], repo, config,
        fallback="Failed to list branches",
    )
    return parse_branch_list(result.stdout, current)


async def switch_branch(repo: Path, branch: str, config: EngineConfig = DEFAULT_CONFIG) -> str:
    """
    Check out a branch. Remote names ("origin/x") check out local "x".

    Returns:
        The branch now checked out

    Raises:
        UncommittedChanges: the working tree is dirty
    """
    if not is_valid_branch_name(branch):
        raise ValidationError("Invalid branch name")

    changes = await list_uncommitted_changes(repo, config)
    if changes:
        raise UncommittedChanges("You have uncommitted changes", changes=changes)

    target = branch[len(REMOTE_PREFIX):] if branch.startswith(REMOTE_PREFIX) else branch
    await run_git_checked(["checkout", target], repo, config, fallback="Failed to switch branch")
    return target


async def create_branch(
    repo: Path,
    branch: str,
    checkout: bool = True,
    base: str | None = None,
    config: EngineConfig = DEFAULT_CONFIG,
) -> str:
    """Create a branch, optionally from base, optionally switching to it."""
    if not is_valid_branch_name(branch):
        raise ValidationError("Invalid branch name")
    if base and not is_valid_branch_name(base):
        raise ValidationError("Invalid base branch name")

    args = ["checkout", "-b", branch] if checkout else ["branch", branch]
    if base:
        args.append(base)
    await run_git_checked(args, repo, config, fallback="Failed to create branch")
    return branch


async def delete_branch(
    repo: Path,
    branch: str,
    force: bool = False,
    config: EngineConfig = DEFAULT_CONFIG,
) -> None:
    if not is_valid_branch_name(branch):
        raise ValidationError("Invalid branch name")
    flag = "-D" if force else "-d"
    await run_git_checked(["branch", flag, branch], repo, config, fallback="Failed to delete branch")

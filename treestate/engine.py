"""
GitEngine: the public, result-returning face of the working-tree engine.

Every method returns a Result instead of raising a GitError. Queries go
through the RepoCache; mutations invalidate it for their repository when they
complete, successful or not, so the next read is fresh.
"""

import asyncio
import logging
from pathlib import Path
from typing import Awaitable

from treestate.git import activity as activity_ops
from treestate.git import branch as branch_ops
from treestate.git import commit as commit_ops
from treestate.git import conflict as conflict_ops
from treestate.git import diff as diff_ops
from treestate.git import hunks as hunk_ops
from treestate.git import remote as remote_ops
from treestate.git import stash as stash_ops
from treestate.git import status as status_ops
from treestate.git import worktree as worktree_ops
from treestate.git.errors import GitError
from treestate.git.models import (
    ActivitySeries,
    AheadBehind,
    BranchInfo,
    ChangeCategory,
    ConflictVersions,
    DiffType,
    FileDiff,
    Hunk,
    HunkAction,
    RepoSnapshot,
    Result,
    StashApplyOutcome,
    StashRecord,
    WorktreeInfo,
)
from treestate.lib.cache import ACTIVITY, AHEAD_BEHIND, STATUS, RepoCache, canonical_repo_key, make_key
from treestate.lib.config import EngineConfig, load_config

logger = logging.getLogger(__name__)


class GitEngine:
    """
    Working-tree state engine for one or more repositories.

    Args:
        config: Engine settings; loaded from $TREESTATE_CONFIG when omitted
        cache: Shared RepoCache; a private one is created when omitted
    """

    def __init__(self, config: EngineConfig | None = None, cache: RepoCache | None = None):
        self.config = config or load_config()
        self.cache = cache or RepoCache()
        self.repository: str | None = None

    async def _call(self, operation: Awaitable, step: str | None = None) -> Result:
        try:
            return Result(value=await operation)
        except GitError as e:
            logger.debug(f"{type(e).__name__}{f' at {step}' if step else ''}: {e.message}")
            return Result(error=e, step=step)

    async def _mutate(
        self,
        root: Path | str,
        operation: Awaitable,
        ahead_behind: bool = True,
        activity: bool = False,
    ) -> Result:
        try:
            return await self._call(operation)
        finally:
            self.cache.invalidate(root, status=True, ahead_behind=ahead_behind, activity=activity)

    # Repository lifecycle

    def set_repository(self, root: Path | str | None) -> None:
        """Switch the active repository; all caches are dropped on a real change."""
        new_key = canonical_repo_key(root) if root else None
        if new_key != self.repository:
            logger.debug(f"Repository changed: {self.repository} -> {new_key}")
            self.cache.reset()
        self.repository = new_key

    def reset(self) -> None:
        self.cache.reset()

    # Queries

    async def _load_activity_value(self, repo: Path, days: int) -> ActivitySeries:
        return await self.cache.cached(
            ACTIVITY, make_key(repo, days), self.config.activity_ttl,
            lambda: activity_ops.load_activity(repo, days, config=self.config),
        )

    async def _build_snapshot(self, repo: Path) -> RepoSnapshot:
        grouped = await status_ops.load_status(repo, self.config)
        sync, graph = await asyncio.gather(
            remote_ops.load_sync_commits(repo, self.config),
            remote_ops.load_commit_graph(repo, self.config),
        )

        # has_upstream decides which list is populated; nothing carries over from earlier loads.
        local = []
        if not sync.has_upstream:
            local = await remote_ops.load_local_commits(repo, self.config)

        try:
            activity = await self._load_activity_value(repo, self.config.activity_days)
        except GitError as e:
            logger.warning(f"Activity unavailable for {repo}: {e.message}")
            activity = ActivitySeries()

        return RepoSnapshot(
            conflicts=tuple(grouped[ChangeCategory.CONFLICT]),
            staged=tuple(grouped[ChangeCategory.STAGED]),
            unstaged=tuple(grouped[ChangeCategory.UNSTAGED]),
            untracked=tuple(grouped[ChangeCategory.UNTRACKED]),
            has_upstream=sync.has_upstream,
            tracking_branch=sync.tracking_branch,
            outgoing_commits=remote_ops.decorate_commits(list(sync.outgoing_commits), graph),
            incoming_commits=remote_ops.decorate_commits(list(sync.incoming_commits), graph),
            local_commits=remote_ops.decorate_commits(local, graph),
            commit_graph=graph,
            activity=activity,
        )

    async def load_status(self, root: Path | str, force: bool = False) -> Result[RepoSnapshot]:
        """Snapshot of the working tree plus sync metadata and activity."""
        repo = Path(root)
        if force:
            self.cache.invalidate(repo, status=True, ahead_behind=False)
        return await self._call(self.cache.cached(
            STATUS, make_key(repo), self.config.status_ttl,
            lambda: self._build_snapshot(repo),
        ))

    async def ahead_behind(self, root: Path | str, force: bool = False) -> Result[AheadBehind]:
        repo = Path(root)
        if force:
            self.cache.invalidate(repo, status=False, ahead_behind=True)
        return await self._call(self.cache.cached(
            AHEAD_BEHIND, make_key(repo), self.config.ahead_behind_ttl,
            lambda: remote_ops.ahead_behind(repo, self.config),
        ))

    async def activity(
        self, root: Path | str, days: int | None = None, force: bool = False
    ) -> Result[ActivitySeries]:
        repo = Path(root)
        if force:
            self.cache.invalidate(repo, status=False, ahead_behind=False, activity=True)
        return await self._call(self._load_activity_value(repo, days or self.config.activity_days))

    async def load_diff(self, root: Path | str, path: str, diff_type: DiffType | str) -> Result[FileDiff]:
        return await self._call(diff_ops.load_diff(Path(root), path, diff_type, self.config))

    async def load_hunks(self, root: Path | str, path: str, diff_type: DiffType | str) -> Result[list[Hunk]]:
        """Standalone hunk patches for one file's diff."""
        result = await self.load_diff(root, path, diff_type)
        if not result.ok:
            return result
        return Result(value=diff_ops.extract_hunk_patches(result.value.text))

    async def load_commit_diff(self, root: Path | str, commit_hash: str) -> Result[str]:
        return await self._call(diff_ops.load_commit_diff(Path(root), commit_hash, self.config))

    async def load_conflict(self, root: Path | str, path: str) -> Result[ConflictVersions]:
        return await self._call(conflict_ops.load_conflict(Path(root), path, self.config))

    async def stash_list(self, root: Path | str) -> Result[list[StashRecord]]:
        return await self._call(stash_ops.stash_list(Path(root), self.config))

    async def stash_show(self, root: Path | str, ref: str) -> Result[str]:
        return await self._call(stash_ops.stash_show(Path(root), ref, self.config))

    async def load_branches(self, root: Path | str) -> Result[list[BranchInfo]]:
        return await self._call(branch_ops.load_branches(Path(root), self.config))

    # Index and working tree mutations

    async def apply_hunk(
        self,
        root: Path | str,
        path: str,
        diff_type: DiffType | str,
        action: HunkAction | str,
        hunk_patch: str,
    ) -> Result[None]:
        return await self._mutate(root, hunk_ops.apply_hunk(
            Path(root), path, diff_type, action, hunk_patch, self.config
        ), ahead_behind=False)

    async def stage_file(self, root: Path | str, path: str) -> Result[None]:
        return await self._mutate(
            root, commit_ops.stage_file(Path(root), path, self.config), ahead_behind=False
        )

    async def unstage_file(self, root: Path | str, path: str) -> Result[None]:
        return await self._mutate(
            root, commit_ops.unstage_file(Path(root), path, self.config), ahead_behind=False
        )

    async def discard_file(self, root: Path | str, path: str, diff_type: DiffType | str) -> Result[None]:
        return await self._mutate(
            root, commit_ops.discard_file(Path(root), path, diff_type, self.config), ahead_behind=False
        )

    async def stage_all(self, root: Path | str) -> Result[None]:
        return await self._mutate(root, commit_ops.stage_all(Path(root), self.config), ahead_behind=False)

    async def unstage_all(self, root: Path | str) -> Result[None]:
        return await self._mutate(root, commit_ops.unstage_all(Path(root), self.config), ahead_behind=False)

    async def discard_all_unstaged(self, root: Path | str) -> Result[None]:
        return await self._mutate(
            root, commit_ops.discard_all_unstaged(Path(root), self.config), ahead_behind=False
        )

    async def resolve_conflict(self, root: Path | str, path: str, content: str) -> Result[None]:
        return await self._mutate(
            root, conflict_ops.resolve_conflict(Path(root), path, content, self.config),
            ahead_behind=False,
        )

    # History mutations

    async def commit(self, root: Path | str, message: str) -> Result[None]:
        return await self._mutate(root, commit_ops.commit(Path(root), message, self.config), activity=True)

    async def amend(self, root: Path | str, message: str | None = None) -> Result[None]:
        return await self._mutate(root, commit_ops.amend(Path(root), message, self.config), activity=True)

    async def commit_all(self, root: Path | str, message: str) -> Result[None]:
        """
        Stage everything, then commit.

        Stops at the first failing step and names it ("stage" or "commit").
        A failed commit leaves the staged changes in place.
        """
        repo = Path(root)
        try:
            # Validated first so a bad message does not leave everything staged.
            commit_ops.validate_message(message, self.config)
        except GitError as e:
            return Result(error=e, step="commit")
        try:
            staged = await self._call(commit_ops.stage_all(repo, self.config), step="stage")
            if not staged.ok:
                return staged
            return await self._call(commit_ops.commit(repo, message, self.config), step="commit")
        finally:
            self.cache.invalidate(repo, status=True, ahead_behind=True, activity=True)

    async def undo_last_commit(self, root: Path | str) -> Result[None]:
        return await self._mutate(root, commit_ops.undo_last_commit(Path(root), self.config), activity=True)

    async def revert_commit(self, root: Path | str, commit_hash: str) -> Result[None]:
        return await self._mutate(
            root, commit_ops.revert_commit(Path(root), commit_hash, self.config), activity=True
        )

    # Stash

    async def stash_changes(
        self,
        root: Path | str,
        path: str | None = None,
        message: str | None = None,
        include_untracked: bool = False,
    ) -> Result[None]:
        return await self._mutate(root, stash_ops.stash_changes(
            Path(root), path, message, include_untracked, self.config
        ), ahead_behind=False)

    async def stash_apply(self, root: Path | str, ref: str) -> Result[StashApplyOutcome]:
        return await self._mutate(root, stash_ops.stash_apply(Path(root), ref, self.config), ahead_behind=False)

    async def stash_pop(self, root: Path | str, ref: str) -> Result[StashApplyOutcome]:
        return await self._mutate(root, stash_ops.stash_pop(Path(root), ref, self.config), ahead_behind=False)

    async def stash_drop(self, root: Path | str, ref: str) -> Result[None]:
        return await self._mutate(root, stash_ops.stash_drop(Path(root), ref, self.config), ahead_behind=False)

    # Remote and branches

    async def fetch(self, root: Path | str, prune: bool = True) -> Result[None]:
        return await self._mutate(root, remote_ops.fetch(Path(root), prune, self.config), activity=True)

    async def push(self, root: Path | str, branch: str | None = None, set_upstream: bool = False) -> Result[None]:
        return await self._mutate(root, remote_ops.push(Path(root), branch, set_upstream, self.config))

    async def pull(self, root: Path | str, branch: str | None = None, no_upstream: bool = False) -> Result[None]:
        return await self._mutate(
            root, remote_ops.pull(Path(root), branch, no_upstream, self.config), activity=True
        )

    async def switch_branch(self, root: Path | str, branch: str) -> Result[str]:
        return await self._mutate(root, branch_ops.switch_branch(Path(root), branch, self.config))

    async def create_branch(
        self,
        root: Path | str,
        branch: str,
        checkout: bool = True,
        base: str | None = None,
    ) -> Result[str]:
        return await self._mutate(
            root, branch_ops.create_branch(Path(root), branch, checkout, base, self.config)
        )

    async def delete_branch(self, root: Path | str, branch: str, force: bool = False) -> Result[None]:
        return await self._mutate(
            root, branch_ops.delete_branch(Path(root), branch, force, self.config), activity=True
        )

    # Worktrees

    async def load_worktrees(self, root: Path | str) -> Result[list[WorktreeInfo]]:
        return await self._call(worktree_ops.load_worktrees(Path(root), self.config))

    async def add_worktree(
        self,
        root: Path | str,
        path: str,
        branch: str,
        create_branch: bool = False,
    ) -> Result[Path]:
        # A new branch shows up in the activity graph's refs.
        return await self._mutate(
            root,
            worktree_ops.add_worktree(Path(root), path, branch, create_branch, self.config),
            ahead_behind=False,
            activity=create_branch,
        )

    async def remove_worktree(self, root: Path | str, path: str, force: bool = False) -> Result[None]:
        return await self._mutate(
            root, worktree_ops.remove_worktree(Path(root), path, force, self.config), ahead_behind=False
        )

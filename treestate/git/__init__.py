"""Git operations for the treestate engine.

Every function takes the repository path first and an EngineConfig last.

Error conventions:
- Operations raise a GitError subclass (see errors.py) on failure. Invalid
  input raises ValidationError before any git process is spawned.
- A missing upstream is not an error: ahead_behind() and load_sync_commits()
  report has_upstream=False.
- Degraded reads return an empty value and log a warning:
  read_stage() -> "", load_commit_graph() -> {}, load_local_commits() -> []

Use treestate.engine.GitEngine for cached, result-returning access.
The commit function itself is not re-exported: its name would shadow the
treestate.git.commit module.
"""

from treestate.git.status import (
    parse_status_line,
    parse_status,
    is_unmerged_status,
    load_status,
    list_uncommitted_changes,
)
from treestate.git.diff import (
    parse_diff,
    extract_hunk_patches,
    load_diff,
    load_commit_diff,
)
from treestate.git.hunks import (
    build_apply_args,
    apply_hunk,
)
from treestate.git.branch import (
    get_current_branch,
    load_branches,
    switch_branch,
    create_branch,
    delete_branch,
)
from treestate.git.remote import (
    ahead_behind,
    load_sync_commits,
    load_local_commits,
    load_commit_graph,
    fetch,
    push,
    pull,
)
from treestate.git.conflict import (
    load_conflict,
    resolve_conflict,
)
from treestate.git.stash import (
    stash_changes,
    stash_list,
    stash_show,
    stash_apply,
    stash_pop,
    stash_drop,
)
from treestate.git.commit import (
    amend,
    undo_last_commit,
    revert_commit,
    stage_file,
    unstage_file,
    discard_file,
    stage_all,
    unstage_all,
    discard_all_unstaged,
)
from treestate.git.activity import load_activity
from treestate.git.worktree import (
    load_worktrees,
    add_worktree,
    remove_worktree,
)

__all__ = [
    # status
    "parse_status_line",
    "parse_status",
    "is_unmerged_status",
    "load_status",
    "list_uncommitted_changes",
    # diff
    "parse_diff",
    "extract_hunk_patches",
    "load_diff",
    "load_commit_diff",
    # hunks
    "build_apply_args",
    "apply_hunk",
    # branch
    "get_current_branch",
    "load_branches",
    "switch_branch",
    "create_branch",
    "delete_branch",
    # remote
    "ahead_behind",
    "load_sync_commits",
    "load_local_commits",
    "load_commit_graph",
    "fetch",
    "push",
    "pull",
    # conflict
    "load_conflict",
    "resolve_conflict",
    # stash
    "stash_changes",
    "stash_list",
    "stash_show",
    "stash_apply",
    "stash_pop",
    "stash_drop",
    # commit
    "amend",
    "undo_last_commit",
    "revert_commit",
    "stage_file",
    "unstage_file",
    "discard_file",
    "stage_all",
    "unstage_all",
    "discard_all_unstaged",
    # activity
    "load_activity",
    # worktree
    "load_worktrees",
    "add_worktree",
    "remove_worktree",
]

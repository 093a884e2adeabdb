"""
Typed records produced by the git engine.

Everything here is an immutable value object. A new load produces new
records; nothing is mutated after construction.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Generic, TypeVar

from treestate.git.errors import GitError

T = TypeVar("T")


class ChangeCategory(str, Enum):
    CONFLICT = "conflict"
    STAGED = "staged"
    UNSTAGED = "unstaged"
    UNTRACKED = "untracked"


class DiffType(str, Enum):
    """Which side of the working tree a diff was taken from."""
    STAGED = "staged"
    UNSTAGED = "unstaged"
    UNTRACKED = "untracked"
    CONFLICT = "conflict"


class HunkAction(str, Enum):
    STAGE = "stage"
    UNSTAGE = "unstage"
    DISCARD = "discard"


class LineKind(str, Enum):
    HEADER = "header"
    META = "meta"
    CONTEXT = "context"
    ADD = "add"
    REMOVE = "remove"
    WARNING = "warning"


@dataclass(frozen=True)
class StatusEntry:
    """One parsed porcelain line."""
    x: str  # index status
    y: str  # worktree status
    path: str
    old_path: str | None = None


@dataclass(frozen=True)
class ChangeRecord:
    path: str
    status_code: str
    category: ChangeCategory
    old_path: str | None = None


@dataclass(frozen=True)
class DiffLine:
    kind: LineKind
    text: str
    hunk_index: int  # -1 for file-level meta lines
    old_line_number: int | None = None
    new_line_number: int | None = None


@dataclass(frozen=True)
class ParsedDiff:
    lines: tuple[DiffLine, ...]
    additions: int
    deletions: int


@dataclass(frozen=True)
class Hunk:
    """A single hunk plus the file headers needed to apply it alone."""
    header: str
    old_start: int
    old_count: int
    new_start: int
    new_count: int
    patch_text: str


@dataclass(frozen=True)
class FileDiff:
    path: str
    text: str
    binary: bool = False


@dataclass(frozen=True)
class CommitRecord:
    hash: str
    short_hash: str
    message: str
    author: str
    relative_time: str
    graph_lane: str | None = None


@dataclass(frozen=True)
class StashRecord:
    ref: str
    message: str
    relative_time: str


@dataclass(frozen=True)
class StashApplyOutcome:
    conflicts: bool = False
    kept: bool = False  # pop hit a conflict, so the entry is still in the list


@dataclass(frozen=True)
class AheadBehind:
    ahead: int = 0
    behind: int = 0
    branch: str | None = None
    upstream: str | None = None
    has_upstream: bool = False


@dataclass(frozen=True)
class SyncCommits:
    outgoing_commits: tuple[CommitRecord, ...] = ()
    incoming_commits: tuple[CommitRecord, ...] = ()
    has_upstream: bool = False
    tracking_branch: str | None = None


@dataclass(frozen=True)
class ConflictVersions:
    path: str
    base: str
    ours: str
    theirs: str
    current: str


@dataclass(frozen=True)
class ActivityDay:
    date: str  # YYYY-MM-DD, author date
    count: int


@dataclass(frozen=True)
class ActivitySeries:
    series: tuple[ActivityDay, ...] = ()
    total: int = 0


@dataclass(frozen=True)
class BranchInfo:
    name: str
    commit: str
    date: str
    message: str
    is_remote: bool
    is_current: bool


@dataclass(frozen=True)
class WorktreeInfo:
    """One entry of `git worktree list`. The first entry is the main worktree."""
    path: str
    head: str | None = None
    branch: str | None = None
    is_main: bool = False
    is_bare: bool = False
    is_detached: bool = False
    is_locked: bool = False


@dataclass(frozen=True)
class RepoSnapshot:
    """Aggregate result of a status query."""
    conflicts: tuple[ChangeRecord, ...] = ()
    staged: tuple[ChangeRecord, ...] = ()
    unstaged: tuple[ChangeRecord, ...] = ()
    untracked: tuple[ChangeRecord, ...] = ()
    has_upstream: bool = False
    tracking_branch: str | None = None
    outgoing_commits: tuple[CommitRecord, ...] = ()
    incoming_commits: tuple[CommitRecord, ...] = ()
    local_commits: tuple[CommitRecord, ...] = ()
    commit_graph: dict[str, str] = field(default_factory=dict)
    activity: ActivitySeries = field(default_factory=ActivitySeries)

    @property
    def total_count(self) -> int:
        return len(self.conflicts) + len(self.staged) + len(self.unstaged) + len(self.untracked)


@dataclass(frozen=True)
class Result(Generic[T]):
    """
    Outcome of a public engine operation.

    Exactly one of value/error is meaningful: check .ok before using value.
    step names the failing stage of a multi-step flow.
    """
    value: T | None = None
    error: GitError | None = None
    step: str | None = None

    @property
    def ok(self) -> bool:
        return self.error is None

    @property
    def message(self) -> str | None:
        return self.error.message if self.error else None

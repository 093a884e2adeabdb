"""Upstream tracking, commit lists and remote sync."""

import logging
from dataclasses import replace
from pathlib import Path

from treestate.git.branch import get_current_branch
from treestate.git.errors import ValidationError
from treestate.git.models import AheadBehind, CommitRecord, SyncCommits
from treestate.git.refs import is_valid_branch_name
from treestate.git.runner import run_git, run_git_checked
from treestate.lib.config import DEFAULT_CONFIG, EngineConfig

logger = logging.getLogger(__name__)

# NUL between fields: subjects may contain any printable delimiter
COMMIT_LOG_FORMAT = "--pretty=format:%H%x00%h%x00%s%x00%an%x00%ar"
GRAPH_FIELD_SEPARATOR = "\x01"
GRAPH_LOG_FORMAT = "--pretty=format:%x01%H%x01%h%x01%s%x01%an%x01%ar"
DEFAULT_LANE = "*"
UPSTREAM_REF = "@{u}"


def parse_commit_list(stdout: str) -> list[CommitRecord]:
    """Parse commits written with COMMIT_LOG_FORMAT. Short lines are skipped."""
    commits = []
    for line in stdout.split("\n"):
        if not line:
            continue
        parts = line.split("\0")
        if len(parts) < 5:
            logger.warning(f"Skipping malformed log line: {line!r}")
            continue
        commits.append(CommitRecord(
            hash=parts[0],
            short_hash=parts[1],
            message=parts[2],
            author=parts[3],
            relative_time=parts[4],
        ))
    return commits


def parse_commit_graph(stdout: str) -> dict[str, str]:
    """Map commit hash -> ASCII graph prefix from a `log --graph` run."""
    by_hash: dict[str, str] = {}
    for line in stdout.split("\n"):
        sep = line.find(GRAPH_FIELD_SEPARATOR)
        if sep == -1:
            continue  # pure connector rows like "|\"
        graph = line[:sep]
        commit_hash = line[sep + 1:].split(GRAPH_FIELD_SEPARATOR)[0]
        if commit_hash and commit_hash not in by_hash:
            by_hash[commit_hash] = graph
    return by_hash


def decorate_commits(commits: list[CommitRecord], graph: dict[str, str]) -> tuple[CommitRecord, ...]:
    """Attach graph lanes; commits never seen in the graph get a bare marker."""
    return tuple(replace(c, graph_lane=graph.get(c.hash, DEFAULT_LANE)) for c in commits)


async def get_upstream(repo: Path, config: EngineConfig = DEFAULT_CONFIG) -> str | None:
    """Upstream ref of the current branch (e.g. "origin/main"), or None."""
    result = await run_git(
        ["rev-parse", "--abbrev-ref", "--symbolic-full-name", UPSTREAM_REF], repo, config
    )
    if not result.success:
        return None
    return result.stdout.strip() or None


async def ahead_behind(repo: Path, config: EngineConfig = DEFAULT_CONFIG) -> AheadBehind:
    """
    Count commits ahead of and behind the upstream.

    No current branch or no upstream is a normal state and yields zeros
    with has_upstream=False.
    """
    branch = await get_current_branch(repo, config)
    if not branch:
        return AheadBehind()

    upstream = await get_upstream(repo, config)
    if not upstream:
        return AheadBehind(branch=branch)

    result = await run_git_checked(
        ["rev-list", "--left-right", "--count", f"{upstream}...HEAD"], repo, config,
        fallback="Failed to count commits",
    )
    parts = result.stdout.split()
    try:
        behind, ahead = int(parts[0]), int(parts[1])
    except (IndexError, ValueError):
        logger.warning(f"Unexpected rev-list --count output: {result.stdout!r}")
        behind, ahead = 0, 0

    return AheadBehind(
        ahead=ahead, behind=behind, branch=branch, upstream=upstream, has_upstream=True
    )


async def _log_range(repo: Path, rev_range: str, config: EngineConfig) -> list[CommitRecord]:
    result = await run_git_checked(
        ["log", rev_range, COMMIT_LOG_FORMAT, f"--max-count={config.sync_log_limit}"],
        repo, config,
        fallback=f"Failed to list {rev_range}",
    )
    return parse_commit_list(result.stdout)


async def load_sync_commits(repo: Path, config: EngineConfig = DEFAULT_CONFIG) -> SyncCommits:
    """Outgoing (HEAD not in upstream) and incoming (upstream not in HEAD) commits."""
    upstream = await get_upstream(repo, config)
    if not upstream:
        return SyncCommits()

    outgoing = await _log_range(repo, f"{UPSTREAM_REF}..HEAD", config)
    incoming = await _log_range(repo, f"HEAD..{UPSTREAM_REF}", config)
    return SyncCommits(
        outgoing_commits=tuple(outgoing),
        incoming_commits=tuple(incoming),
        has_upstream=True,
        tracking_branch=upstream,
    )


async def load_local_commits(repo: Path, config: EngineConfig = DEFAULT_CONFIG) -> list[CommitRecord]:
    """Most recent commits on HEAD; used when there is no upstream to compare against."""
    result = await run_git(
        ["log", f"--max-count={config.local_commit_limit}", COMMIT_LOG_FORMAT],
        repo, config,
        timeout=config.log_timeout,
        max_output_bytes=config.history_output_bytes,
    )
    if not result.success:
        # Unborn branch: no commits yet.
        return []
    return parse_commit_list(result.stdout)


async def load_commit_graph(repo: Path, config: EngineConfig = DEFAULT_CONFIG) -> dict[str, str]:
    """Graph lane per commit hash across all refs; {} if the log cannot be read."""
    result = await run_git(
        [
            "log", "--graph", "--date-order", "--all",
            f"--max-count={config.graph_max_count}",
            GRAPH_LOG_FORMAT,
        ],
        repo, config,
        max_output_bytes=config.history_output_bytes,
    )
    if not result.success:
        logger.warning(f"Commit graph unavailable for {repo}: {result.stderr.strip()}")
        return {}
    return parse_commit_graph(result.stdout)


async def fetch(repo: Path, prune: bool = True, config: EngineConfig = DEFAULT_CONFIG) -> None:
    """Fetch remote refs for accurate incoming/outgoing counts."""
    args = ["fetch"]
    if prune:
        args.append("--prune")
    result = await run_git(args, repo, config, timeout=config.network_timeout)
    if not result.success and "No remote repository specified" in result.stderr:
        raise ValidationError("No remote configured", stderr=result.stderr)
    result.raise_for_status("Fetch failed")


async def push(
    repo: Path,
    branch: str | None = None,
    set_upstream: bool = False,
    config: EngineConfig = DEFAULT_CONFIG,
) -> None:
    args = ["push"]
    if set_upstream and branch:
        if not is_valid_branch_name(branch):
            raise ValidationError("Invalid branch name")
        args += ["-u", "origin", branch]
    await run_git_checked(args, repo, config, fallback="Push failed", timeout=config.network_timeout)


async def pull(
    repo: Path,
    branch: str | None = None,
    no_upstream: bool = False,
    config: EngineConfig = DEFAULT_CONFIG,
) -> None:
    args = ["pull"]
    if no_upstream and branch:
        if not is_valid_branch_name(branch):
            raise ValidationError("Invalid branch name")
        args += ["origin", branch]
    await run_git_checked(
        args, repo, config,
        fallback="Pull failed",
        timeout=config.network_timeout,
        max_output_bytes=config.large_output_bytes,
    )

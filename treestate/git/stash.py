"""Git stash operations."""

from pathlib import Path

from treestate.git.errors import ValidationError
from treestate.git.models import StashApplyOutcome, StashRecord
from treestate.git.refs import ensure_within_repo, is_valid_stash_ref
from treestate.git.runner import run_git, run_git_checked
from treestate.lib.config import DEFAULT_CONFIG, EngineConfig

STASH_LIST_FORMAT = "--pretty=format:%gd%x00%s%x00%ar"
CONFLICT_MARKER = "CONFLICT"


def _require_stash_ref(ref: str) -> None:
    if not ref:
        raise ValidationError("Missing stash reference")
    if not is_valid_stash_ref(ref):
        raise ValidationError("Invalid stash reference")


def parse_stash_list(stdout: str) -> list[StashRecord]:
    stashes = []
    for line in stdout.split("\n"):
        parts = line.split("\0")
        if len(parts) < 3:
            continue
        stashes.append(StashRecord(ref=parts[0], message=parts[1], relative_time=parts[2]))
    return stashes


async def stash_changes(
    repo: Path,
    path: str | None = None,
    message: str | None = None,
    include_untracked: bool = False,
    config: EngineConfig = DEFAULT_CONFIG,
) -> None:
    """Stash changes, optionally for a single file and with a message."""
    if path:
        ensure_within_repo(repo, path)

    args = ["stash", "push"]
    if include_untracked:
        args.append("--include-untracked")
    if message:
        args += ["-m", message]
    if path:
        args += ["--", path]
    await run_git_checked(args, repo, config, fallback="Failed to stash changes")


async def stash_list(repo: Path, config: EngineConfig = DEFAULT_CONFIG) -> list[StashRecord]:
    result = await run_git_checked(
        ["stash", "list", STASH_LIST_FORMAT], repo, config, fallback="Failed to list stashes"
    )
    return parse_stash_list(result.stdout)


async def stash_show(repo: Path, ref: str, config: EngineConfig = DEFAULT_CONFIG) -> str:
    """Patch text for a stash entry."""
    _require_stash_ref(ref)
    result = await run_git_checked(
        ["stash", "show", "-p", ref], repo, config,
        max_output_bytes=config.history_output_bytes,
        fallback="Failed to show stash",
    )
    return result.stdout


async def _apply(repo: Path, verb: str, ref: str, config: EngineConfig) -> StashApplyOutcome:
    _require_stash_ref(ref)
    result = await run_git(["stash", verb, ref], repo, config)
    if result.success:
        return StashApplyOutcome(conflicts=CONFLICT_MARKER in result.stderr + result.stdout)
    # A conflicting apply exits non-zero but is a usable outcome; pop keeps the entry.
    if CONFLICT_MARKER in result.stderr or CONFLICT_MARKER in result.stdout:
        return StashApplyOutcome(conflicts=True, kept=verb == "pop")
    result.raise_for_status(f"Failed to {verb} stash")
    return StashApplyOutcome()


async def stash_apply(repo: Path, ref: str, config: EngineConfig = DEFAULT_CONFIG) -> StashApplyOutcome:
    """Apply a stash, keeping it in the list."""
    return await _apply(repo, "apply", ref, config)


async def stash_pop(repo: Path, ref: str, config: EngineConfig = DEFAULT_CONFIG) -> StashApplyOutcome:
    """Apply a stash and drop it unless the apply conflicted."""
    return await _apply(repo, "pop", ref, config)


async def stash_drop(repo: Path, ref: str, config: EngineConfig = DEFAULT_CONFIG) -> None:
    _require_stash_ref(ref)
    await run_git_checked(["stash", "drop", ref], repo, config, fallback="Failed to drop stash")

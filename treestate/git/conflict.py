"""Three-way conflict inspection and caller-chosen resolution."""

import logging
from pathlib import Path

from treestate.git.errors import ExecutionError, ValidationError
from treestate.git.models import ConflictVersions
from treestate.git.refs import ensure_within_repo
from treestate.git.runner import run_git, run_git_checked
from treestate.lib.config import DEFAULT_CONFIG, EngineConfig

logger = logging.getLogger(__name__)

BASE_STAGE = 1
OURS_STAGE = 2
THEIRS_STAGE = 3


async def read_stage(repo: Path, path: str, stage: int, config: EngineConfig = DEFAULT_CONFIG) -> str:
    """
    Read one index stage of an unmerged path.

    Returns "" when the stage is missing: add/add conflicts have no base and
    delete/modify conflicts lack one side.
    """
    result = await run_git(
        ["show", f":{stage}:{path}"], repo, config,
        max_output_bytes=config.max_resolved_bytes,
    )
    if not result.success:
        logger.warning(f"Stage {stage} unavailable for {path}: {result.stderr.strip()}")
        return ""
    return result.stdout


async def load_conflict(repo: Path, path: str, config: EngineConfig = DEFAULT_CONFIG) -> ConflictVersions:
    """Load base/ours/theirs and the current working copy for a conflicted file."""
    full_path = ensure_within_repo(repo, path)

    unmerged = await run_git_checked(
        ["ls-files", "-u", "--", path], repo, config, fallback="Failed to load conflict data"
    )
    if not unmerged.stdout.strip():
        raise ValidationError("File is not in conflict state")

    base = await read_stage(repo, path, BASE_STAGE, config)
    ours = await read_stage(repo, path, OURS_STAGE, config)
    theirs = await read_stage(repo, path, THEIRS_STAGE, config)

    if full_path.exists():
        current = full_path.read_text(encoding="utf-8", errors="replace")
    else:
        current = ours or theirs

    return ConflictVersions(path=path, base=base, ours=ours, theirs=theirs, current=current)


async def resolve_conflict(
    repo: Path,
    path: str,
    content: str,
    config: EngineConfig = DEFAULT_CONFIG,
) -> None:
    """Write the caller's resolved content and stage exactly that path."""
    full_path = ensure_within_repo(repo, path)
    if not isinstance(content, str):
        raise ValidationError("Resolved content must be text")
    if len(content.encode("utf-8")) > config.max_resolved_bytes:
        raise ValidationError("Resolved content too large")

    try:
        full_path.write_text(content, encoding="utf-8")
    except OSError as e:
        raise ExecutionError(f"Failed to write {path}", stderr=str(e)) from e

    await run_git_checked(["add", "--", path], repo, config, fallback="Failed to resolve conflict")

"""Hunk-level stage, unstage and discard via `git apply`."""

from pathlib import Path

from treestate.git.errors import ExecutionError, ValidationError
from treestate.git.models import DiffType, HunkAction
from treestate.git.refs import ensure_within_repo
from treestate.git.runner import run_git
from treestate.lib.config import DEFAULT_CONFIG, EngineConfig

# (action, diff_type) -> extra `git apply` flags. Anything absent is rejected.
APPLY_MODES: dict[tuple[HunkAction, DiffType], list[str]] = {
    (HunkAction.STAGE, DiffType.UNSTAGED): ["--cached"],
    (HunkAction.STAGE, DiffType.CONFLICT): ["--cached"],
    (HunkAction.UNSTAGE, DiffType.STAGED): ["-R", "--cached"],
    (HunkAction.DISCARD, DiffType.UNSTAGED): ["-R"],
    (HunkAction.DISCARD, DiffType.CONFLICT): ["-R"],
}


def build_apply_args(diff_type: DiffType | str, action: HunkAction | str) -> list[str]:
    """
    Build the `git apply` argv for a (diff_type, action) pair.

    Raises:
        ValidationError: unknown action/diff type or a disallowed combination
    """
    try:
        action = HunkAction(action.lower() if isinstance(action, str) else action)
    except ValueError:
        raise ValidationError("Invalid hunk action") from None
    try:
        diff_type = DiffType(diff_type)
    except ValueError:
        raise ValidationError("Invalid diff type") from None

    flags = APPLY_MODES.get((action, diff_type))
    if flags is None:
        if action == HunkAction.UNSTAGE:
            raise ValidationError("Hunk unstage is only available for staged diff")
        raise ValidationError(f"Hunk {action.value} is only available for unstaged/conflict diff")
    return ["apply", *flags, "--whitespace=nowarn", "-"]


async def apply_hunk(
    repo: Path,
    path: str,
    diff_type: DiffType | str,
    action: HunkAction | str,
    hunk_patch: str,
    config: EngineConfig = DEFAULT_CONFIG,
) -> None:
    """
    Apply one hunk patch to the index and/or working tree.

    The patch is piped on stdin. On failure the apply tool's stderr is
    surfaced unchanged since it already says what went wrong.
    """
    ensure_within_repo(repo, path)
    if (
        not isinstance(hunk_patch, str)
        or "@@" not in hunk_patch
        or len(hunk_patch.encode("utf-8")) > config.max_patch_bytes
    ):
        raise ValidationError("Invalid hunk patch")

    args = build_apply_args(diff_type, action)
    result = await run_git(
        args, repo, config,
        timeout=config.patch_timeout,
        input_data=hunk_patch,
    )
    if not result.success and not result.not_found and not result.timed_out:
        stderr = result.stderr.strip() or result.stdout.strip() or "Failed to apply hunk"
        raise ExecutionError(stderr, stderr=stderr)
    result.raise_for_status("Failed to apply hunk")

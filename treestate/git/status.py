"""Git status parsing and loading."""

import logging
from pathlib import Path

from treestate.git.models import ChangeCategory, ChangeRecord, StatusEntry
from treestate.git.runner import run_git_checked
from treestate.lib.config import DEFAULT_CONFIG, EngineConfig

logger = logging.getLogger(__name__)

# git status short format: unmerged pairs
UNMERGED_PAIRS = frozenset({"DD", "AU", "UD", "UA", "DU", "AA", "UU"})

# Codes that mean "something changed" in the index (X) or worktree (Y) column
INDEX_CODES = frozenset("MTADRC")
WORKTREE_CODES = frozenset("MTADRC")

RENAME_SEPARATOR = " -> "
RENAME_CODES = frozenset("RC")

_C_ESCAPES = {
    "a": 0x07, "b": 0x08, "t": 0x09, "n": 0x0A, "v": 0x0B,
    "f": 0x0C, "r": 0x0D, '"': 0x22, "\\": 0x5C,
}


def unquote_path(raw: str) -> str:
    """Undo git's C-style quoting of unusual path names."""
    if len(raw) < 2 or not (raw.startswith('"') and raw.endswith('"')):
        return raw

    data = raw[1:-1].encode("utf-8")
    out = bytearray()
    i = 0
    while i < len(data):
        byte = data[i]
        if byte == 0x5C and i + 1 < len(data):
            escaped = chr(data[i + 1])
            if escaped in _C_ESCAPES:
                out.append(_C_ESCAPES[escaped])
                i += 2
                continue
            octal = data[i + 1:i + 4]
            if len(octal) == 3 and all(0x30 <= c <= 0x37 for c in octal):
                out.append(int(octal, 8))
                i += 4
                continue
        out.append(byte)
        i += 1
    return out.decode("utf-8", errors="replace")


def _rename_separator_index(rest: str) -> int:
    """Index of the " -> " between old and new path, skipping a quoted old path."""
    if not rest.startswith('"'):
        return rest.find(RENAME_SEPARATOR)
    i = 1
    while i < len(rest):
        if rest[i] == "\\":
            i += 2
            continue
        if rest[i] == '"':
            return i + 1 if rest.startswith(RENAME_SEPARATOR, i + 1) else -1
        i += 1
    return -1


def parse_status_line(line: str) -> StatusEntry | None:
    """
    Parse one `git status --porcelain` line.

    Format: "XY PATH" or "XY OLD -> NEW" for renames/copies.
    Returns None for lines too short to carry a path.
    """
    if not line or len(line) < 4:
        return None

    x, y = line[0], line[1]
    rest = line[3:]

    old_path = None
    path = rest
    # Only renames and copies carry two paths; any other arrow is part of the name.
    if x in RENAME_CODES or y in RENAME_CODES:
        idx = _rename_separator_index(rest)
        if idx != -1:
            old_path = unquote_path(rest[:idx])
            path = rest[idx + len(RENAME_SEPARATOR):]

    return StatusEntry(x=x, y=y, path=unquote_path(path), old_path=old_path)


def is_unmerged_status(x: str, y: str) -> bool:
    """True for the seven unmerged XY pairs."""
    return f"{x}{y}" in UNMERGED_PAIRS


def categorize(entry: StatusEntry) -> list[ChangeRecord]:
    """
    Route a status entry to its categories.

    Conflicts are exclusive. Otherwise a file can be both staged and
    unstaged; anything that is neither is reported as untracked.
    """
    if is_unmerged_status(entry.x, entry.y):
        return [ChangeRecord(
            path=entry.path, old_path=entry.old_path,
            status_code=f"{entry.x}{entry.y}", category=ChangeCategory.CONFLICT,
        )]

    records = []
    if entry.x in INDEX_CODES:
        records.append(ChangeRecord(
            path=entry.path, old_path=entry.old_path,
            status_code=entry.x, category=ChangeCategory.STAGED,
        ))
    if entry.y in WORKTREE_CODES:
        records.append(ChangeRecord(
            path=entry.path, old_path=entry.old_path,
            status_code=entry.y, category=ChangeCategory.UNSTAGED,
        ))
    if not records:
        records.append(ChangeRecord(
            path=entry.path, old_path=entry.old_path,
            status_code="?", category=ChangeCategory.UNTRACKED,
        ))
    return records


def parse_status(stdout: str) -> dict[ChangeCategory, list[ChangeRecord]]:
    """Parse full porcelain output into records grouped by category."""
    grouped: dict[ChangeCategory, list[ChangeRecord]] = {c: [] for c in ChangeCategory}
    for line in stdout.split("\n"):
        if not line:
            continue
        entry = parse_status_line(line)
        if entry is None:
            logger.warning(f"Skipping malformed status line: {line!r}")
            continue
        for record in categorize(entry):
            grouped[record.category].append(record)
    return grouped


async def load_status(
    repo: Path,
    config: EngineConfig = DEFAULT_CONFIG,
) -> dict[ChangeCategory, list[ChangeRecord]]:
    """Run `git status --porcelain` and categorize the result.

    Raises ExecutionError when repo is not a git work tree.
    """
    await run_git_checked(
        ["rev-parse", "--is-inside-work-tree"], repo, config, fallback="Not a git repository"
    )
    result = await run_git_checked(
        ["-c", "core.quotePath=false", "status", "--porcelain"],
        repo, config,
        max_output_bytes=config.large_output_bytes,
        fallback="Failed to read status",
    )
    return parse_status(result.stdout)


async def list_uncommitted_changes(repo: Path, config: EngineConfig = DEFAULT_CONFIG) -> list[str]:
    """Return the porcelain lines for a dirty tree, or [] when clean."""
    result = await run_git_checked(["status", "--porcelain"], repo, config)
    return [line for line in result.stdout.split("\n") if line]

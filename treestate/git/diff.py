"""Unified diff loading, parsing and hunk extraction."""

import logging
import re
from pathlib import Path

from treestate.git.errors import ExecutionError, ValidationError
from treestate.git.models import DiffLine, DiffType, FileDiff, Hunk, LineKind, ParsedDiff
from treestate.git.refs import ensure_within_repo, is_valid_commit_hash
from treestate.git.runner import run_command, run_git, run_git_checked
from treestate.lib.config import DEFAULT_CONFIG, EngineConfig

logger = logging.getLogger(__name__)

HUNK_HEADER_PATTERN = re.compile(r"^@@ -(\d+)(?:,(\d+))? \+(\d+)(?:,(\d+))? @@")

NO_NEWLINE_MARKER = "\\ No newline at end of file"

# git's own heuristic: a NUL in the first 8000 bytes means binary
_BINARY_SNIFF_BYTES = 8000


def parse_hunk_header(line: str) -> tuple[int, int, int, int] | None:
    """Return (old_start, old_count, new_start, new_count); counts default to 1."""
    match = HUNK_HEADER_PATTERN.match(line)
    if not match:
        return None
    return (
        int(match.group(1)),
        int(match.group(2) or "1"),
        int(match.group(3)),
        int(match.group(4) or "1"),
    )


def parse_diff(text: str) -> ParsedDiff:
    """
    Parse a unified diff into typed lines with running line numbers.

    Lines outside a hunk (diff/index/---/+++/mode lines) are meta with
    hunk_index -1. Inside a hunk the header's counts decide where the body
    ends, so a removed line that happens to start with "--" stays a removal.
    "\\ No newline" lines are kept as warnings and not counted.
    """
    raw_lines = text.split("\n")
    if raw_lines and raw_lines[-1] == "":
        raw_lines.pop()

    lines: list[DiffLine] = []
    additions = 0
    deletions = 0
    old_no = new_no = 0
    old_left = new_left = 0
    hunk_index = -1
    in_hunk = False
    counted = True

    for line in raw_lines:
        if line.startswith("\\"):
            lines.append(DiffLine(kind=LineKind.WARNING, text=line, hunk_index=hunk_index))
            continue

        if line.startswith("@@"):
            hunk_index += 1
            in_hunk = True
            header = parse_hunk_header(line)
            counted = header is not None
            if header:
                old_no, old_left, new_no, new_left = header
            lines.append(DiffLine(kind=LineKind.HEADER, text=line, hunk_index=hunk_index))
            continue

        in_body = in_hunk and (not counted or old_left > 0 or new_left > 0)
        if in_body and not line.startswith("diff "):
            if line.startswith("+"):
                additions += 1
                lines.append(DiffLine(
                    kind=LineKind.ADD, text=line[1:], hunk_index=hunk_index,
                    new_line_number=new_no,
                ))
                new_no += 1
                new_left -= 1
            elif line.startswith("-"):
                deletions += 1
                lines.append(DiffLine(
                    kind=LineKind.REMOVE, text=line[1:], hunk_index=hunk_index,
                    old_line_number=old_no,
                ))
                old_no += 1
                old_left -= 1
            else:
                lines.append(DiffLine(
                    kind=LineKind.CONTEXT,
                    text=line[1:] if line.startswith(" ") else line,
                    hunk_index=hunk_index,
                    old_line_number=old_no,
                    new_line_number=new_no,
                ))
                old_no += 1
                new_no += 1
                old_left -= 1
                new_left -= 1
            continue

        in_hunk = False
        lines.append(DiffLine(kind=LineKind.META, text=line, hunk_index=-1))

    return ParsedDiff(lines=tuple(lines), additions=additions, deletions=deletions)


def extract_hunk_patches(text: str) -> list[Hunk]:
    """
    Split a single-file diff into standalone, independently applicable patches.

    The file header (everything before the first @@) is captured once and
    prefixed to every hunk. Each patch ends with a newline.
    """
    raw_lines = text.split("\n")
    prefix: list[str] = []
    i = 0
    while i < len(raw_lines) and not raw_lines[i].startswith("@@"):
        if raw_lines[i]:
            prefix.append(raw_lines[i])
        i += 1

    hunks = []
    while i < len(raw_lines):
        header = raw_lines[i]
        body = [header]
        i += 1
        while i < len(raw_lines) and not raw_lines[i].startswith("@@"):
            if raw_lines[i]:
                body.append(raw_lines[i])
            i += 1

        counts = parse_hunk_header(header) or (0, 0, 0, 0)
        hunks.append(Hunk(
            header=header,
            old_start=counts[0],
            old_count=counts[1],
            new_start=counts[2],
            new_count=counts[3],
            patch_text="\n".join(prefix + body) + "\n",
        ))
    return hunks


def build_untracked_diff(path: str, content: str) -> str:
    """Render an untracked file as an all-added diff."""
    lines = content.split("\n") if content else []
    ends_with_newline = content.endswith("\n")
    if ends_with_newline:
        lines.pop()

    out = ["--- /dev/null", f"+++ b/{path}"]
    if lines:
        out.append(f"@@ -0,0 +1,{len(lines)} @@")
        out.extend(f"+{line}" for line in lines)
        if not ends_with_newline:
            out.append(NO_NEWLINE_MARKER)
    return "\n".join(out) + "\n"


def _sniff_binary(full_path: Path) -> bool:
    with open(full_path, "rb") as f:
        return b"\0" in f.read(_BINARY_SNIFF_BYTES)


async def is_binary_file(repo: Path, full_path: Path, config: EngineConfig = DEFAULT_CONFIG) -> bool:
    """Ask `file --mime-encoding`; sniff for NUL bytes when it is unavailable."""
    result = await run_command(
        ["file", "--mime-encoding", str(full_path)],
        repo,
        timeout=config.query_timeout,
        max_output_bytes=config.max_output_bytes,
        extra_paths=config.extra_paths,
    )
    if result.success:
        return "binary" in result.stdout
    logger.debug(f"file(1) unavailable ({result.stderr.strip()}), sniffing {full_path}")
    return _sniff_binary(full_path)


async def _load_untracked_diff(repo: Path, path: str, full_path: Path, config: EngineConfig) -> FileDiff:
    try:
        if await is_binary_file(repo, full_path, config):
            return FileDiff(path=path, text="", binary=True)
        content = full_path.read_text(encoding="utf-8")
    except UnicodeDecodeError:
        return FileDiff(path=path, text="", binary=True)
    except OSError as e:
        raise ExecutionError(f"Cannot read file: {path}", stderr=str(e)) from e
    return FileDiff(path=path, text=build_untracked_diff(path, content))


async def load_diff(
    repo: Path,
    path: str,
    diff_type: DiffType | str,
    config: EngineConfig = DEFAULT_CONFIG,
) -> FileDiff:
    """
    Load the diff for one file.

    Staged and unstaged diffs fall back to a diff against HEAD when empty:
    the file may have moved between index and worktree since the status
    list was loaded.
    """
    full_path = ensure_within_repo(repo, path)
    try:
        diff_type = DiffType(diff_type)
    except ValueError:
        raise ValidationError("Invalid diff type") from None

    if diff_type == DiffType.UNTRACKED:
        return await _load_untracked_diff(repo, path, full_path, config)

    args = ["diff", "--cached", "--", path] if diff_type == DiffType.STAGED else ["diff", "--", path]
    result = await run_git_checked(
        args, repo, config,
        max_output_bytes=config.large_output_bytes,
        fallback="Failed to load diff",
    )
    text = result.stdout
    if not text.strip():
        fallback = await run_git(
            ["diff", "HEAD", "--", path], repo, config,
            max_output_bytes=config.large_output_bytes,
        )
        text = fallback.stdout if fallback.success else ""

    if "Binary files" in text:
        return FileDiff(path=path, text="", binary=True)
    return FileDiff(path=path, text=text)


async def load_commit_diff(repo: Path, commit_hash: str, config: EngineConfig = DEFAULT_CONFIG) -> str:
    """Full patch for one commit, root commits included."""
    if not is_valid_commit_hash(commit_hash):
        raise ValidationError("Invalid commit hash")
    result = await run_git_checked(
        ["show", "--format=", "--no-color", "--root", commit_hash],
        repo, config,
        timeout=config.log_timeout,
        max_output_bytes=config.large_output_bytes,
        fallback="Failed to load commit diff",
    )
    return result.stdout

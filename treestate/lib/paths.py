"""Path containment checks for repository-scoped operations.

Resolution follows symlinks, including through ancestors of paths that do
not exist yet.
"""

import os
from pathlib import Path


def resolve_for_containment(candidate: Path | str) -> Path:
    """
    Resolve a path, following symlinks, even when it does not exist yet.

    For a missing target, the nearest existing ancestor is resolved and the
    missing segments are re-attached, so a symlinked parent cannot be used
    to escape the root when creating files.
    """
    absolute = Path(os.path.abspath(candidate))
    try:
        return absolute.resolve(strict=True)
    except FileNotFoundError:
        pass
    except (OSError, RuntimeError):
        return absolute

    cursor = absolute
    missing: list[str] = []
    while not cursor.exists():
        parent = cursor.parent
        if parent == cursor:
            return absolute
        missing.insert(0, cursor.name)
        cursor = parent

    try:
        base = cursor.resolve(strict=True)
    except OSError:
        base = cursor
    return base.joinpath(*missing)


def is_path_within_project(file_path: Path | str, project_path: Path | str) -> bool:
    """True if file_path (absolute or cwd-relative) resolves inside project_path."""
    if not file_path or not project_path:
        return False
    resolved_file = resolve_for_containment(file_path)
    resolved_root = resolve_for_containment(project_path)
    return resolved_file == resolved_root or resolved_file.is_relative_to(resolved_root)


def is_relative_path_within_project(project_path: Path | str, relative_path: str) -> bool:
    """True if relative_path, joined onto project_path, stays inside it."""
    if not project_path or not relative_path:
        return False
    return is_path_within_project(Path(project_path) / relative_path, project_path)


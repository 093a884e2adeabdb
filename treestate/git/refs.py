"""
Validators for user-supplied git references and paths.

Anything that ends up in an argv position is checked here first so a value
like "--upload-pack=..." can never be smuggled in as an option, and a path
can never point outside the repository.
"""

import re
from pathlib import Path

from treestate.git.errors import ValidationError
from treestate.lib.paths import is_relative_path_within_project

STASH_REF_PATTERN = re.compile(r"^stash@\{\d+\}$")
COMMIT_HASH_PATTERN = re.compile(r"^[0-9a-fA-F]{4,64}$")
BRANCH_NAME_PATTERN = re.compile(r"^[A-Za-z0-9._/-]+$")

MAX_BRANCH_NAME_LENGTH = 255


def is_valid_stash_ref(ref: str) -> bool:
    """True for exactly stash@{N} with N a non-negative integer."""
    return isinstance(ref, str) and bool(STASH_REF_PATTERN.match(ref))


def is_valid_commit_hash(commit_hash: str) -> bool:
    return isinstance(commit_hash, str) and bool(COMMIT_HASH_PATTERN.match(commit_hash))


def is_valid_branch_name(name: str) -> bool:
    """
    Conservative branch-name check.

    Allows alphanumerics, dots, underscores, hyphens and slashes. Rejects a
    leading '-' (option injection) and the ref-format rules git enforces.
    """
    if not name or not isinstance(name, str):
        return False
    if len(name) > MAX_BRANCH_NAME_LENGTH:
        return False
    if name.startswith("-"):
        return False
    if ".." in name or "//" in name:
        return False
    if ".lock" in name or name.endswith(".") or name.endswith("/"):
        return False
    if name == ".git" or ".git/" in name:
        return False
    return bool(BRANCH_NAME_PATTERN.match(name))


def ensure_within_repo(repo: Path, relative_path: str) -> Path:
    """Return the absolute path for relative_path, or raise ValidationError."""
    if not relative_path:
        raise ValidationError("Missing file path")
    if not is_relative_path_within_project(repo, relative_path):
        raise ValidationError("Path is outside project directory")
    return Path(repo) / relative_path

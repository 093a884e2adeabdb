"""Error taxonomy for git engine operations.

Module-level operations raise these; the GitEngine facade converts them
into Result values so callers never see an exception for an engine failure.
"""

import re

MAX_DISPLAY_LENGTH = 200

_PREFERRED_LINE = re.compile(r"^(fatal: |error: |CONFLICT)", re.IGNORECASE)
_NOISE_PREFIX = re.compile(r"^(fatal|error|hint):\s*", re.IGNORECASE)


class GitError(Exception):
    """Base class for engine failures."""

    def __init__(self, message: str, stderr: str = ""):
        self.message = message
        self.stderr = stderr
        super().__init__(message)


class CommandNotFound(GitError):
    """The executable could not be resolved on the augmented PATH."""


class CommandTimeout(GitError):
    """The external command ran past its timeout and was killed."""


class ExecutionError(GitError):
    """Non-zero exit, or output exceeded the configured limit."""


class ValidationError(GitError):
    """Input rejected before any process was spawned."""


class ConflictState(GitError):
    """The operation left the working tree with merge conflicts."""


class NothingToCommit(GitError):
    """Commit requested with an empty index."""


class HookFailure(GitError):
    """A commit hook rejected the commit or amend."""


class UncommittedChanges(GitError):
    """Branch switch refused because the working tree is dirty."""

    def __init__(self, message: str, changes: list[str] | None = None):
        super().__init__(message)
        self.changes = changes or []


def format_git_error(stderr: str, fallback: str) -> str:
    """
    Reduce git stderr to a single display line.

    Prefers the first fatal:/error:/CONFLICT line over trailing hints and
    truncates to MAX_DISPLAY_LENGTH characters.
    """
    lines = [line.strip() for line in (stderr or "").splitlines() if line.strip()]
    if not lines:
        return fallback

    preferred = next((line for line in lines if _PREFERRED_LINE.match(line)), lines[0])
    cleaned = _NOISE_PREFIX.sub("", preferred).strip()
    if len(cleaned) > MAX_DISPLAY_LENGTH:
        return cleaned[:MAX_DISPLAY_LENGTH - 3] + "..."
    return cleaned or fallback

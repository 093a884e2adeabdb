"""Application-side view of one repository, fed by GitEngine.

Refreshes may overlap (a poll and a user-triggered reload). Each refresh takes
a generation number first; a response that comes back after a newer refresh
was issued is dropped so older data never overwrites newer data.
"""

import logging
from pathlib import Path

from treestate.engine import GitEngine
from treestate.git.errors import GitError
from treestate.git.models import AheadBehind, RepoSnapshot
from treestate.lib.cache import AHEAD_BEHIND, STATUS, Generations

logger = logging.getLogger(__name__)


class RepoState:
    def __init__(self, engine: GitEngine, root: Path | str):
        self.engine = engine
        self.root = Path(root)
        self.generations = Generations()
        self.snapshot: RepoSnapshot | None = None
        self.ahead_behind: AheadBehind | None = None
        self.error: GitError | None = None
        engine.set_repository(self.root)

    def set_repository(self, root: Path | str) -> None:
        """Point at another repository; in-flight responses for the old one are dropped."""
        self.root = Path(root)
        self.engine.set_repository(self.root)
        self.generations.next(STATUS)
        self.generations.next(AHEAD_BEHIND)
        self.snapshot = None
        self.ahead_behind = None
        self.error = None

    async def refresh_status(self, force: bool = False) -> bool:
        """
        Reload the snapshot.

        Returns:
            True if the response was applied, False if a newer refresh
            superseded it
        """
        generation = self.generations.next(STATUS)
        result = await self.engine.load_status(self.root, force=force)
        if not self.generations.is_current(STATUS, generation):
            logger.debug(f"Dropping stale status response (generation {generation})")
            return False

        if result.ok:
            self.snapshot = result.value
            self.error = None
        else:
            self.error = result.error
        return True

    async def refresh_ahead_behind(self, force: bool = False) -> bool:
        generation = self.generations.next(AHEAD_BEHIND)
        result = await self.engine.ahead_behind(self.root, force=force)
        if not self.generations.is_current(AHEAD_BEHIND, generation):
            logger.debug(f"Dropping stale ahead/behind response (generation {generation})")
            return False

        if result.ok:
            self.ahead_behind = result.value
        else:
            self.error = result.error
        return True

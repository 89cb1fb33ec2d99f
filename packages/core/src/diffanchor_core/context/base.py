from __future__ import annotations

import logging
import time
from abc import ABC, abstractmethod

from diffanchor_core.context.models import ContextMatch, ContextResult, DiffBundle, build_metadata, deduplicate_matches

logger = logging.getLogger(__name__)


class ContextStrategy(ABC):
    """A way of finding files related to a diff.

    Subclasses implement ``_collect_matches``; ``retrieve`` adds timing,
    per-strategy deduplication and metadata so every strategy reports the
    same way. Collaborator errors are not caught here.
    """

    name: str = ""
    priority: int = 100

    async def retrieve(self, bundle: DiffBundle) -> ContextResult:
        if bundle is None:
            raise ValueError("bundle must not be None")

        started = time.perf_counter()
        candidates = await self._collect_matches(bundle)
        matches = deduplicate_matches(candidates)
        duration = time.perf_counter() - started

        logger.debug(
            "%s: %d candidate(s), %d after dedup in %.3fs",
            self.name,
            len(candidates),
            len(matches),
            duration,
        )
        return ContextResult(matches=tuple(matches), metadata=build_metadata(self.name, duration, matches))

    @abstractmethod
    async def _collect_matches(self, bundle: DiffBundle) -> list[ContextMatch]:
        """Return raw, possibly duplicated, matches for ``bundle``."""

    def __repr__(self) -> str:
        return f"{type(self).__name__}(name={self.name!r}, priority={self.priority})"

from __future__ import annotations

from abc import ABC, abstractmethod
from datetime import datetime

from diffanchor_core.context.models import CommitInfo


class SourceControlPort(ABC):
    """Read-only view of a repository snapshot used by the context strategies.

    Implementations are free to block internally but must expose coroutines so
    the orchestrator can fan strategies out on one event loop.
    """

    @abstractmethod
    async def list_repository_files(self) -> list[str]:
        """Return every tracked file path in the snapshot."""

    @abstractmethod
    async def get_commits_for(
        self,
        repository: str,
        file_path: str,
        since: datetime,
        max_results: int,
    ) -> list[CommitInfo]:
        """Return at most ``max_results`` commits touching ``file_path`` since ``since``, newest first."""

    @abstractmethod
    async def get_file_content(self, repository: str, path: str) -> str:
        """Return the decoded content of ``path`` in the snapshot."""

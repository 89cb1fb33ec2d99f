"""Source-control port over a local clone, driving the ``git`` binary.

Useful in CI where the repository is already checked out: no API quota, and
history is as deep as the clone.
"""

from __future__ import annotations

import asyncio
import logging
import subprocess
from datetime import datetime
from pathlib import Path

from diffanchor_core.context.models import CommitInfo
from diffanchor_core.scm.base import SourceControlPort

logger = logging.getLogger(__name__)

# Record and field separators for `git log --format`; neither can occur in a path or subject line.
_RS = "\x1e"
_FS = "\x1f"
_LOG_FORMAT = f"{_RS}%H{_FS}%an{_FS}%aI{_FS}%s"


def parse_git_log(output: str) -> list[CommitInfo]:
    """Parse ``git log --name-only`` output produced with ``_LOG_FORMAT``."""
    commits: list[CommitInfo] = []
    for record in output.split(_RS):
        if not record.strip():
            continue
        header, _, body = record.partition("\n")
        sha, author, date, subject = (header.split(_FS) + ["", "", ""])[:4]
        commits.append(
            CommitInfo(
                commit_id=sha.strip(),
                message=subject,
                author=author,
                timestamp=datetime.fromisoformat(date) if date else None,
                changed_files=tuple(line.strip() for line in body.splitlines() if line.strip()),
            )
        )
    return commits


class LocalGitSourceControl(SourceControlPort):
    def __init__(self, repo_path: str | Path = ".", ref: str = "HEAD"):
        self.repo_path = Path(repo_path)
        self.ref = ref

    def _git(self, *args: str) -> str:
        logger.debug("git %s (in %s)", " ".join(args), self.repo_path)
        result = subprocess.run(
            ["git", *args],
            cwd=self.repo_path,
            capture_output=True,
            text=True,
            check=True,
        )
        return result.stdout

    async def list_repository_files(self) -> list[str]:
        output = await asyncio.to_thread(self._git, "ls-tree", "-r", "--name-only", self.ref)
        return [line for line in output.splitlines() if line]

    async def get_commits_for(
        self,
        repository: str,
        file_path: str,
        since: datetime,
        max_results: int,
    ) -> list[CommitInfo]:
        output = await asyncio.to_thread(
            self._git,
            "log",
            f"--since={since.isoformat()}",
            f"--max-count={max_results}",
            "--name-only",
            # Without --full-diff the pathspec would hide every other file in the commit.
            "--full-diff",
            f"--format={_LOG_FORMAT}",
            self.ref,
            "--",
            file_path,
        )
        return parse_git_log(output)

    async def get_file_content(self, repository: str, path: str) -> str:
        return await asyncio.to_thread(self._git, "show", f"{self.ref}:{path}")

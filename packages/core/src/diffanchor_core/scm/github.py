"""GitHub adapter for the source-control port, built on PyGithub.

Every call is pinned to one ref (a commit SHA or branch) so the listing,
history and file contents all describe the same snapshot. PyGithub is
blocking, so each call runs in a worker thread via ``asyncio.to_thread``.
"""

from __future__ import annotations

import asyncio
import logging
from datetime import datetime

from github import Github

from diffanchor_core.context.models import CommitInfo
from diffanchor_core.scm.base import SourceControlPort

logger = logging.getLogger(__name__)


def get_repo(repo_name: str, token: str):
    return Github(token).get_repo(repo_name)


def _to_commit_info(commit) -> CommitInfo:
    git_commit = commit.commit
    author = git_commit.author
    return CommitInfo(
        commit_id=commit.sha,
        message=git_commit.message or "",
        author=(author.name or "") if author else "",
        timestamp=author.date if author else None,
        changed_files=tuple(f.filename for f in commit.files),
    )


class GitHubSourceControl(SourceControlPort):
    def __init__(self, repo, ref: str | None = None):
        if repo is None:
            raise ValueError("repo must not be None")
        self.repo = repo
        self.ref = ref or repo.default_branch

    @classmethod
    def connect(cls, repo_name: str, token: str, ref: str | None = None) -> GitHubSourceControl:
        return cls(get_repo(repo_name, token), ref)

    def _list_files(self) -> list[str]:
        tree = self.repo.get_git_tree(self.ref, recursive=True)
        return [entry.path for entry in tree.tree if entry.type == "blob"]

    async def list_repository_files(self) -> list[str]:
        files = await asyncio.to_thread(self._list_files)
        logger.debug("%s@%s: %d tracked file(s)", self.repo.full_name, self.ref, len(files))
        return files

    def _commits_for(self, file_path: str, since: datetime, max_results: int) -> list[CommitInfo]:
        commits: list[CommitInfo] = []
        # Iterate lazily and stop at max_results so PyGithub fetches no more pages than needed.
        for i, commit in enumerate(self.repo.get_commits(sha=self.ref, path=file_path, since=since)):
            if i >= max_results:
                break
            commits.append(_to_commit_info(commit))
        return commits

    async def get_commits_for(
        self,
        repository: str,
        file_path: str,
        since: datetime,
        max_results: int,
    ) -> list[CommitInfo]:
        if repository and repository != self.repo.full_name:
            logger.debug("Ignoring repository %r; adapter is bound to %s", repository, self.repo.full_name)
        return await asyncio.to_thread(self._commits_for, file_path, since, max_results)

    def _content(self, path: str) -> str:
        return self.repo.get_contents(path, ref=self.ref).decoded_content.decode("utf-8", errors="replace")

    async def get_file_content(self, repository: str, path: str) -> str:
        return await asyncio.to_thread(self._content, path)

from __future__ import annotations

import logging

from diffanchor_core.context.base import ContextStrategy
from diffanchor_core.context.heuristics import extract_references, find_directory_siblings, find_path_patterns
from diffanchor_core.context.models import ContextMatch, DiffBundle
from diffanchor_core.scm.base import SourceControlPort

logger = logging.getLogger(__name__)


class MetadataContextStrategy(ContextStrategy):
    """Related files from imports, directory layout and naming conventions.

    Needs one collaborator call per retrieval: the repository file listing.
    """

    name = "metadata-based"
    priority = 10

    def __init__(self, scm: SourceControlPort):
        if scm is None:
            raise ValueError("scm must not be None")
        self.scm = scm

    async def _collect_matches(self, bundle: DiffBundle) -> list[ContextMatch]:
        repository_files = await self.scm.list_repository_files()
        changed = [f.effective_path for f in bundle.diff.files if f.effective_path]

        references = extract_references(bundle.diff, repository_files)
        siblings = find_directory_siblings(changed, repository_files)
        patterns = find_path_patterns(changed, repository_files)

        logger.debug(
            "Metadata heuristics over %d file(s): %d reference(s), %d sibling(s), %d path pattern(s)",
            len(repository_files),
            len(references),
            len(siblings),
            len(patterns),
        )
        return references + siblings + patterns

"""Classify every branch by what happened to a TODO on it."""

import asyncio

import structlog

from todotracks.exceptions import InternalError
from todotracks.git.base import VersionControlBackend
from todotracks.git.parsing import (
    parse_branches,
    parse_commit_list,
    parse_patch_changes,
)
from todotracks.models import Alias, BranchStatus, MarkerId, Revision

from .extractor import read_blob_lines, resolve_blob

logger = structlog.get_logger(__name__)


async def read_marker_contents(
    backend: VersionControlBackend, marker_id: MarkerId
) -> str:
    """Read the exact line a marker id points at."""
    blob_id = await resolve_blob(backend, marker_id.revision, marker_id.file_name)
    lines = await read_blob_lines(backend, blob_id)
    if not 1 <= marker_id.line_number <= len(lines):
        raise InternalError(
            f"Line {marker_id.line_number} not found in {marker_id.file_name} "
            f"at {marker_id.revision}"
        )
    return lines[marker_id.line_number - 1]


class BranchStatusResolver:
    """Decides, per branch, whether a TODO is present, missing or removed.

    - present: the branch head is the TODO's revision, or descends from it
      and no closing revision is in its history
    - removed: the branch head descends from the TODO's revision and some
      closing revision is in its history
    - missing: the branch never incorporated the TODO's revision

    A closing revision is a commit reachable from a branch head but not
    from the TODO's revision whose patch deletes the TODO's exact line
    without adding it back.
    """

    def __init__(self, backend: VersionControlBackend) -> None:
        self.backend = backend

    async def list_branches(self) -> list[Alias]:
        return parse_branches(await self.backend.list_branches())

    async def find_closing_revisions(
        self,
        marker_id: MarkerId,
        aliases: list[Alias] | None = None,
        contents: str | None = None,
    ) -> list[Revision]:
        if aliases is None:
            aliases = await self.list_branches()
        if contents is None:
            contents = await read_marker_contents(self.backend, marker_id)

        # An empty -S argument is not a search.
        if not contents:
            return []

        include: list[Revision] = []
        for alias in aliases:
            if alias.revision != marker_id.revision and alias.revision not in include:
                include.append(alias.revision)
        if not include:
            return []

        out = await self.backend.search_content_history(
            contents, exclude=[marker_id.revision], include=include
        )
        candidates = parse_commit_list(out)
        closing = [
            revision
            for revision, closes in zip(
                candidates,
                await asyncio.gather(*(self._closes(r, contents) for r in candidates)),
            )
            if closes
        ]
        logger.debug(
            "status.closing_revisions",
            todo=marker_id.model_dump(),
            candidates=len(candidates),
            closing=closing,
        )
        return closing

    async def _closes(self, revision: Revision, contents: str) -> bool:
        removed, added = parse_patch_changes(await self.backend.show_patch(revision))
        return contents in removed and contents not in added

    async def resolve(self, marker_id: MarkerId) -> BranchStatus:
        """Partition all branches by the status of ``marker_id`` on them."""
        contents = await read_marker_contents(self.backend, marker_id)
        aliases = await self.list_branches()
        closing = await self.find_closing_revisions(marker_id, aliases, contents)

        buckets = await asyncio.gather(
            *(self._classify(marker_id, alias, closing) for alias in aliases)
        )
        status = BranchStatus(
            missing=[a for a, b in zip(aliases, buckets) if b == "missing"],
            present=[a for a, b in zip(aliases, buckets) if b == "present"],
            removed=[a for a, b in zip(aliases, buckets) if b == "removed"],
        )
        logger.info(
            "status.resolved",
            revision=marker_id.revision,
            file_name=marker_id.file_name,
            line_number=marker_id.line_number,
            present=len(status.present),
            removed=len(status.removed),
            missing=len(status.missing),
        )
        return status

    async def _classify(
        self, marker_id: MarkerId, alias: Alias, closing: list[Revision]
    ) -> str:
        if alias.revision == marker_id.revision:
            return "present"
        if not await self.backend.is_ancestor(marker_id.revision, alias.revision):
            return "missing"
        for revision in closing:
            if await self.backend.is_ancestor(revision, alias.revision):
                return "removed"
        return "present"

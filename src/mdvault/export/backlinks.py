"""Recursive backlink discovery for exports.

Breadth-first expansion over the whole vault: each round finds the files
linking into the previous round's discoveries. A file is marked processed
as soon as it is found, so circular link graphs terminate.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable, Sequence

from ..config import MAX_BACKLINK_DEPTH
from ..models import BacklinksDiscoveryResult
from ..resolver import PathResolver
from ..vault import VaultFile
from ..workerpool import CancelToken

log = logging.getLogger(__name__)


class BacklinksHandler:
    """Find files that transitively link into an export selection.

    Args:
        vault_files: Every markdown file of the vault.
        resolver: Resolver over the full vault file set.
        max_depth: Rounds of expansion before stopping.
    """

    def __init__(
        self,
        vault_files: Sequence[VaultFile],
        resolver: PathResolver,
        max_depth: int = MAX_BACKLINK_DEPTH,
    ):
        self.vault_files = vault_files
        self.resolver = resolver
        self.max_depth = max_depth

    def _resolved_targets(self, file: VaultFile) -> set[str]:
        targets = set()
        for link in file.links:
            resolved = self.resolver.try_resolve(link.target, file.relative_path, link.type)
            if resolved is not None and resolved != file.relative_path:
                targets.add(resolved)
        return targets

    def discover(
        self,
        exported_paths: Iterable[str],
        cancel: CancelToken | None = None,
    ) -> BacklinksDiscoveryResult:
        """Expand ``exported_paths`` with their transitive backlinks.

        Depth exhaustion is not an error: the result carries what was found
        and ``depth_limit_reached`` is set.

        Raises:
            OperationCancelledError: If ``cancel`` fires between rounds;
                ``partial`` holds the result so far.
        """
        result = BacklinksDiscoveryResult()
        processed = set(exported_paths)
        frontier = set(processed)
        targets_cache: dict[str, set[str]] = {}

        depth = 0
        while frontier and depth < self.max_depth:
            if cancel is not None:
                result.processed_files = len(processed)
                cancel.raise_if_cancelled(partial=result)
            depth += 1

            next_frontier: set[str] = set()
            for file in self.vault_files:
                path = file.relative_path
                if path in processed:
                    continue
                if path not in targets_cache:
                    targets_cache[path] = self._resolved_targets(file)
                hits = targets_cache[path] & frontier
                if not hits:
                    continue

                processed.add(path)
                next_frontier.add(path)
                result.backlink_files.append(path)
                for target in sorted(hits):
                    result.backlink_map.setdefault(target, []).append(path)

            log.debug("Backlink round %d found %d file(s)", depth, len(next_frontier))
            frontier = next_frontier

        result.depth_reached = depth
        result.total_backlinks = len(result.backlink_files)
        result.processed_files = len(processed)
        if frontier and depth >= self.max_depth:
            result.depth_limit_reached = True
            log.warning(
                "Backlink discovery stopped at max depth %d; %d file(s) may have further backlinks",
                self.max_depth,
                len(frontier),
            )
        return result

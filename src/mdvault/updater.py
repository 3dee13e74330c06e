"""Rewrite links after files move.

With a ``PathResolver`` over the vault as it was before the moves, a link
is rewritten only when it resolves to a moved file, so relative lookup and
basename ranking agree with ``mdv resolve``.

Without one, matching is by spelling: each move is registered under its
``.md`` and extension-less forms plus the percent-encoded variants of both,
so ``[[old/note]]``, ``[x](old/note.md)`` and ``[x](old%20note.md)`` all
find their move. Bare wiki-links (no directory) also match by basename.
"""

from __future__ import annotations

import logging
import posixpath
from collections.abc import Iterable

from .errors import InvalidPathError
from .parser.links import apply_replacements, extract_links, render_link, url_encode
from .resolver import PathResolver, candidate_paths, with_markdown_forms
from .vault import FileMove, Link, LinkType, VaultFile, normalize_vault_path

log = logging.getLogger(__name__)


def _strip_md(path: str) -> str:
    return path[:-3] if path.lower().endswith(".md") else path


class LinkUpdater:
    """Rewrite links that point at moved files.

    Args:
        moves: Batch of moves; old paths must be unique within the batch.
        resolver: Resolver over the vault before the moves; must know every
            old path. None falls back to matching by spelling.

    Raises:
        InvalidPathError: If two moves share an old path or a path escapes the vault.
    """

    def __init__(self, moves: Iterable[FileMove], resolver: PathResolver | None = None):
        self.moves: list[FileMove] = []
        self.resolver = resolver
        self._by_old: dict[str, FileMove] = {}
        self._lookup: dict[str, FileMove] = {}
        self._by_basename: dict[str, FileMove | None] = {}

        seen: set[str] = set()
        for move in moves:
            move = FileMove(normalize_vault_path(move.old_path), normalize_vault_path(move.new_path))
            if move.old_path in seen:
                raise InvalidPathError(f"Duplicate move source: {move.old_path}", move.old_path)
            seen.add(move.old_path)
            self.moves.append(move)
            self._by_old[move.old_path] = move

            stripped = _strip_md(move.old_path)
            for key in (move.old_path, stripped, url_encode(move.old_path), url_encode(stripped)):
                self._lookup.setdefault(key, move)

            # Two moves with the same basename make bare links ambiguous.
            basename = posixpath.basename(stripped)
            self._by_basename[basename] = None if basename in self._by_basename else move

    def find_move(self, link: Link, source_path: str | None = None) -> FileMove | None:
        """Return the move a link points at, if any.

        With a resolver and a ``source_path`` the link is resolved and must
        land on a moved file; ambiguous links are left alone. Otherwise
        matching covers the full path with or without ``.md``, the
        URL-decoded and encoded spellings, paths relative to ``source_path``
        and, for bare wiki-links, the basename.
        """
        if not link.path:
            return None

        if self.resolver is not None and source_path is not None:
            resolved = self.resolver.try_resolve(link.target, source_path, link.type)
            return self._by_old.get(resolved) if resolved else None

        raw_path = link.target.partition("#")[0].strip()
        for key in (link.path, raw_path):
            if key in self._lookup:
                return self._lookup[key]

        if source_path is not None:
            for candidate in candidate_paths(link.path, source_path):
                for form in with_markdown_forms(candidate):
                    if form in self._lookup:
                        return self._lookup[form]

        if link.type is LinkType.WIKI and "/" not in link.path:
            return self._by_basename.get(_strip_md(link.path))
        return None

    def rewrite(self, body: str, source_path: str | None = None) -> tuple[str, int]:
        """Rewrite every matching link in ``body``.

        Returns:
            (new body, number of links rewritten). A link counts even if its
            re-rendered text happens to equal the original.
        """
        if not self.moves:
            return body, 0

        replacements: list[tuple[int, int, str]] = []
        for link in reversed(extract_links(body)):
            move = self.find_move(link, source_path)
            if move is None:
                continue
            replacements.append((link.start, link.end, render_link(link, move.new_path)))

        if not replacements:
            return body, 0
        return apply_replacements(body, replacements), len(replacements)

    def update_references(self, body: str, source_path: str | None = None) -> str:
        return self.rewrite(body, source_path)[0]

    def update_file(self, file: VaultFile) -> int:
        """Rewrite links in a file's body in place.

        Returns:
            Number of links rewritten; the body is only reassigned if it changed.
        """
        new_body, count = self.rewrite(file.body, file.relative_path)
        if new_body != file.body:
            file.body = new_body
        return count

    def update_batch(self, files: Iterable[VaultFile]) -> list[VaultFile]:
        """Rewrite links in many files.

        Returns:
            Files whose body changed.
        """
        modified = []
        for file in files:
            original = file.body
            if self.update_file(file) and file.body != original:
                modified.append(file)
        log.debug("Updated links in %d file(s) for %d move(s)", len(modified), len(self.moves))
        return modified


def update_references(
    body: str,
    moves: Iterable[FileMove],
    source_path: str | None = None,
    resolver: PathResolver | None = None,
) -> str:
    """Rewrite links in ``body`` for a batch of moves.

    An empty batch returns ``body`` unchanged.
    """
    return LinkUpdater(moves, resolver).update_references(body, source_path)

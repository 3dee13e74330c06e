"""Filename normalization (slugify/flatten) for exports.

Output names are assigned in input order. The first file wanting a name
gets it; later ones get ``-1``, ``-2``... before the extension. Collision
bookkeeping lives in a ``NormalizationState`` owned by the caller, one per
run.
"""

from __future__ import annotations

import logging
import posixpath
import re
from collections.abc import Iterable
from dataclasses import dataclass, field

from ..models import FilenameNormalizationResult
from ..parser.links import apply_replacements, extract_links, render_link
from ..resolver import PathResolver
from ..vault import VaultFile

log = logging.getLogger(__name__)

_REPEATED_HYPHENS = re.compile(r"-{2,}")


def slugify(name: str) -> str:
    """Lower-case, hyphenated, letters/digits/hyphens/dots only.

    >>> slugify("My Great_Note (draft)")
    'my-great-note-draft'
    """
    slug = name.lower().replace(" ", "-").replace("_", "-")
    slug = "".join(ch for ch in slug if ch.isalnum() or ch in "-.")
    slug = _REPEATED_HYPHENS.sub("-", slug).strip("-")
    return slug or "untitled"


@dataclass
class NormalizationState:
    """Names handed out during one normalization run."""

    used: dict[str, str] = field(default_factory=dict)  # output path -> original path
    collisions: dict[str, list[str]] = field(default_factory=dict)

    def claim(self, wanted: str, original: str) -> str:
        """Reserve ``wanted`` or the first free ``-N`` variant of it."""
        if wanted not in self.used:
            self.used[wanted] = original
            return wanted

        self.collisions.setdefault(wanted, [self.used[wanted]]).append(original)
        stem, ext = posixpath.splitext(wanted)
        n = 1
        while f"{stem}-{n}{ext}" in self.used:
            n += 1
        candidate = f"{stem}-{n}{ext}"
        self.used[candidate] = original
        return candidate


class FilenameNormalizer:
    """Compute and apply new export paths.

    Args:
        slugify: Slugify file names (extensions are kept).
        flatten: Move every file to the export root.
    """

    def __init__(self, slugify: bool = True, flatten: bool = False):
        self.slugify = slugify
        self.flatten = flatten

    @property
    def enabled(self) -> bool:
        return self.slugify or self.flatten

    def wanted_path(self, relative_path: str) -> str:
        directory, name = posixpath.split(relative_path)
        if self.slugify:
            stem, ext = posixpath.splitext(name)
            name = slugify(stem) + ext.lower()
        if self.flatten or not directory:
            return name
        return f"{directory}/{name}"

    def build_file_map(
        self,
        paths: Iterable[str],
        state: NormalizationState | None = None,
    ) -> FilenameNormalizationResult:
        """Map each input path to its output path.

        Args:
            paths: Vault-relative paths, in the order that decides collisions.
            state: Names already taken; a fresh state is used when omitted.
        """
        state = state if state is not None else NormalizationState()
        result = FilenameNormalizationResult()

        for path in paths:
            new_path = state.claim(self.wanted_path(path), path)
            result.file_map[path] = new_path
            if new_path != path:
                result.renamed_files += 1

        result.collisions = {k: list(v) for k, v in state.collisions.items()}
        if result.collisions:
            log.info("Resolved %d filename collision(s)", len(result.collisions))
        return result

    def new_link_target(self, target: str, new_source: str) -> str:
        """Path to write in a link from ``new_source`` to ``target`` (both output paths)."""
        if self.flatten and "/" not in target:
            return target
        source_dir = posixpath.dirname(new_source)
        if not source_dir:
            return target
        return posixpath.relpath(target, source_dir)

    def update_links(
        self,
        body: str,
        source_path: str,
        file_map: dict[str, str],
        vault_resolver: PathResolver,
        output_resolver: PathResolver,
    ) -> tuple[str, int]:
        """Retarget links in ``body`` after files were renamed.

        Every link is resolved against the original vault. If its target was
        remapped, or the link no longer reaches the target from the source's
        new location, it is rewritten relative to the new location.

        Args:
            body: Body of the file as exported.
            source_path: Original vault-relative path of the file.
            file_map: Original path -> output path for exported files.
            vault_resolver: Resolver over the original vault.
            output_resolver: Resolver over the output paths (files and assets).

        Returns:
            (new body, number of links rewritten)
        """
        new_source = file_map.get(source_path, source_path)
        replacements: list[tuple[int, int, str]] = []

        for link in reversed(extract_links(body)):
            if not link.path:
                continue
            resolved = vault_resolver.try_resolve(link.target, source_path, link.type)
            if resolved is None:
                continue
            expected = file_map.get(resolved, resolved)
            if expected not in output_resolver:
                continue
            if output_resolver.try_resolve(link.target, new_source, link.type) == expected:
                continue
            new_target = self.new_link_target(expected, new_source)
            replacements.append((link.start, link.end, render_link(link, new_target)))

        if not replacements:
            return body, 0
        return apply_replacements(body, replacements), len(replacements)

    def update_file_links(
        self,
        file: VaultFile,
        file_map: dict[str, str],
        vault_resolver: PathResolver,
        output_resolver: PathResolver,
    ) -> int:
        """In-place variant of ``update_links`` for a loaded file."""
        new_body, count = self.update_links(
            file.body, file.relative_path, file_map, vault_resolver, output_resolver
        )
        if count:
            file.body = new_body
        return count

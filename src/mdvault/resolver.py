"""Resolution of link targets to canonical vault-relative paths.

A target is decoded, stripped of its ``#fragment`` and looked up first
relative to the linking file's directory, then relative to the vault root.
Wiki-links that name a bare file (no directory) may also resolve by
basename anywhere in the vault; if several files tie at the best rank the
link is ambiguous and resolution fails loudly instead of guessing.
"""

from __future__ import annotations

import logging
import posixpath
from collections.abc import Iterable
from enum import IntEnum

from .config import ASSET_EXTENSIONS, MARKDOWN_EXTENSION
from .errors import AmbiguousResolutionError, InvalidPathError, UnresolvableTargetError
from .parser.links import split_target
from .models import LinkProblem
from .vault import LinkType, VaultFile, normalize_vault_path

log = logging.getLogger(__name__)


class MatchPriority(IntEnum):
    """How well a vault file matches a link target. Higher wins."""

    NO_MATCH = 0
    BASENAME_MATCH = 1
    FULL_PATH_MATCH = 2


def strip_known_extension(path: str) -> str:
    """Drop a markdown or asset extension; other dotted suffixes are part of the name."""
    root, ext = posixpath.splitext(path)
    if ext.lower() == MARKDOWN_EXTENSION or ext.lower() in ASSET_EXTENSIONS:
        return root
    return path


def candidate_paths(target_path: str, source_path: str) -> list[str]:
    """Canonical paths a decoded target may denote, most specific first.

    Absolute targets ('/x/y') are vault-root-relative. Others are tried
    against the source file's directory and then the vault root. Forms that
    escape the vault are skipped.
    """
    if target_path.startswith("/"):
        raw = [target_path.lstrip("/")]
    else:
        source_dir = posixpath.dirname(source_path)
        raw = [posixpath.join(source_dir, target_path)] if source_dir else []
        raw.append(target_path)

    candidates: list[str] = []
    for path in raw:
        try:
            canonical = normalize_vault_path(path)
        except InvalidPathError:
            continue
        if canonical not in candidates:
            candidates.append(canonical)
    return candidates


def with_markdown_forms(path: str) -> list[str]:
    """The path as written plus its ``.md`` form (wiki-links omit the extension)."""
    if path.lower().endswith(MARKDOWN_EXTENSION):
        return [path]
    return [path, path + MARKDOWN_EXTENSION]


class PathResolver:
    """Resolve link targets against a fixed set of known vault files.

    The file set is a snapshot and is never mutated while resolving.
    """

    def __init__(self, known_paths: Iterable[str]):
        self._known: set[str] = set(known_paths)
        self._by_name: dict[str, list[str]] = {}
        for path in sorted(self._known):
            name = posixpath.basename(strip_known_extension(path))
            self._by_name.setdefault(name, []).append(path)

    def __contains__(self, path: object) -> bool:
        return path in self._known

    def analyze_match(self, target_path: str, candidate: str) -> MatchPriority:
        """Rank how ``candidate`` satisfies a decoded, fragment-free target.

        Extensions must agree; a target without one only names markdown files.
        """
        target = target_path.lstrip("/")
        target_stem = strip_known_extension(target)
        target_ext = target[len(target_stem):].lower() or MARKDOWN_EXTENSION
        candidate_stem = strip_known_extension(candidate)
        if candidate[len(candidate_stem):].lower() != target_ext:
            return MatchPriority.NO_MATCH

        if target_stem == candidate_stem:
            return MatchPriority.FULL_PATH_MATCH
        if "/" not in target_stem and posixpath.basename(candidate_stem) == target_stem:
            return MatchPriority.BASENAME_MATCH
        return MatchPriority.NO_MATCH

    def find_all_matches(self, target_path: str) -> list[tuple[str, MatchPriority]]:
        """All known files matching a target, best first.

        Returns:
            (path, priority) pairs sorted by descending priority, then path.
        """
        name = posixpath.basename(strip_known_extension(target_path.lstrip("/")))
        matches = []
        for candidate in self._by_name.get(name, []):
            priority = self.analyze_match(target_path, candidate)
            if priority is not MatchPriority.NO_MATCH:
                matches.append((candidate, priority))
        matches.sort(key=lambda m: (-m[1], m[0]))
        return matches

    def resolve_best_match(self, target_path: str) -> str | None:
        """Pick the single best-ranked match.

        Raises:
            AmbiguousResolutionError: If several files tie at the winning rank.
        """
        matches = self.find_all_matches(target_path)
        if not matches:
            return None
        best = matches[0][1]
        winners = [path for path, priority in matches if priority == best]
        if len(winners) > 1:
            raise AmbiguousResolutionError(target_path, winners)
        return winners[0]

    def resolve(
        self,
        target: str,
        source_path: str,
        link_type: LinkType = LinkType.WIKI,
    ) -> str | None:
        """Resolve a raw link target to a known vault file.

        Args:
            target: Target as written (may be URL-encoded, may carry #fragment).
            source_path: Vault-relative path of the file containing the link.
            link_type: Only wiki-links fall back to ranked basename matching.

        Returns:
            Canonical vault-relative path, or None if nothing matches.
            A fragment-only target ('#heading') resolves to the source itself.

        Raises:
            AmbiguousResolutionError: If ranked matching finds a tie.
        """
        path, _ = split_target(target)
        if not path:
            return source_path

        for candidate in candidate_paths(path, source_path):
            for form in with_markdown_forms(candidate):
                if form in self._known:
                    return form

        if link_type is not LinkType.WIKI:
            return None
        return self.resolve_best_match(path)

    def resolve_or_raise(
        self,
        target: str,
        source_path: str,
        link_type: LinkType = LinkType.WIKI,
    ) -> str:
        """Like ``resolve`` but a missing target is an error.

        Raises:
            AmbiguousResolutionError: If ranked matching finds a tie.
            UnresolvableTargetError: If nothing in the vault matches.
        """
        resolved = self.resolve(target, source_path, link_type)
        if resolved is None:
            raise UnresolvableTargetError(target, source_path)
        return resolved

    def try_resolve(
        self,
        target: str,
        source_path: str,
        link_type: LinkType = LinkType.WIKI,
    ) -> str | None:
        """Resolve, treating an ambiguous target as unresolved (logged)."""
        try:
            return self.resolve(target, source_path, link_type)
        except AmbiguousResolutionError as e:
            log.debug("Skipping ambiguous link in %s: %s", source_path, e.message)
            return None


def check_links(files: Iterable[VaultFile], resolver: PathResolver) -> list[LinkProblem]:
    """Internal links that are broken or ambiguous, in file then position order."""
    problems = []
    for file in files:
        for link in file.links:
            try:
                resolved = resolver.resolve(link.target, file.relative_path, link.type)
            except AmbiguousResolutionError as e:
                problems.append(
                    LinkProblem(
                        source_path=file.relative_path,
                        target=link.target,
                        line=file.body.count("\n", 0, link.start) + 1,
                        kind="ambiguous",
                        candidates=e.candidates,
                    )
                )
                continue
            if resolved is None:
                problems.append(
                    LinkProblem(
                        source_path=file.relative_path,
                        target=link.target,
                        line=file.body.count("\n", 0, link.start) + 1,
                        kind="broken",
                    )
                )
    return problems

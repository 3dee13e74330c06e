"""Classify links relative to an export selection."""

from __future__ import annotations

import logging
import posixpath
from collections import Counter
from collections.abc import Iterable
from dataclasses import dataclass, field

from ..config import ASSET_EXTENSIONS, MARKDOWN_EXTENSION
from ..errors import AmbiguousResolutionError
from ..models import LinkCategory
from ..parser.links import extract_links, is_internal_link
from ..resolver import PathResolver
from ..vault import Link, VaultFile

log = logging.getLogger(__name__)


@dataclass
class AnalyzedLink:
    link: Link
    category: LinkCategory
    resolved_path: str | None = None
    ambiguous: AmbiguousResolutionError | None = None


@dataclass
class LinkAnalysis:
    """Links of one file with their categories."""

    source_path: str
    links: list[AnalyzedLink] = field(default_factory=list)
    counts: Counter = field(default_factory=Counter)

    def count(self, category: LinkCategory) -> int:
        return self.counts[category]

    @property
    def ambiguous(self) -> list[AmbiguousResolutionError]:
        return [a.ambiguous for a in self.links if a.ambiguous is not None]

    def summary(self) -> str:
        return (
            f"{len(self.links)} links: "
            f"{self.count(LinkCategory.INTERNAL)} internal, "
            f"{self.count(LinkCategory.EXTERNAL)} external, "
            f"{self.count(LinkCategory.ASSET)} assets, "
            f"{self.count(LinkCategory.URL)} URLs"
        )


class ExportLinkAnalyzer:
    """Categorize links against the exported set and the whole vault.

    Args:
        exported_paths: Vault-relative paths of the files being exported.
        resolver: Resolver over every file in the vault, markdown and assets.
    """

    def __init__(self, exported_paths: Iterable[str], resolver: PathResolver):
        self.exported = set(exported_paths)
        self.resolver = resolver

    def categorize(self, link: Link, source_path: str) -> AnalyzedLink:
        if not is_internal_link(link.target):
            return AnalyzedLink(link, LinkCategory.URL)

        try:
            resolved = self.resolver.resolve(link.target, source_path, link.type)
        except AmbiguousResolutionError as e:
            log.debug("Ambiguous link in %s: %s", source_path, e.message)
            return AnalyzedLink(link, LinkCategory.EXTERNAL, ambiguous=e)

        if resolved is not None:
            if resolved in self.exported:
                return AnalyzedLink(link, LinkCategory.INTERNAL, resolved)
            if resolved.lower().endswith(MARKDOWN_EXTENSION):
                return AnalyzedLink(link, LinkCategory.EXTERNAL, resolved)
            return AnalyzedLink(link, LinkCategory.ASSET, resolved)

        if posixpath.splitext(link.path)[1].lower() in ASSET_EXTENSIONS:
            return AnalyzedLink(link, LinkCategory.ASSET)

        # Unresolvable non-URL targets count as missing vault files.
        log.debug("Unresolvable link in %s: %s", source_path, link.target)
        return AnalyzedLink(link, LinkCategory.EXTERNAL)

    def analyze_file(self, file: VaultFile) -> LinkAnalysis:
        analysis = LinkAnalysis(file.relative_path)
        for link in extract_links(file.body, include_urls=True):
            analyzed = self.categorize(link, file.relative_path)
            analysis.links.append(analyzed)
            analysis.counts[analyzed.category] += 1
        return analysis

"""Rewrite external links in exported files.

Only links classified as external are touched. Strategies are looked up in
``STRATEGIES`` by ``LinkStrategy``; every enum member must have an entry.
"""

from __future__ import annotations

import logging

from ..config import URL_FRONTMATTER_FIELDS
from ..errors import InvalidStrategyError
from ..models import LinkCategory, LinkChange, LinkRewriteResult, LinkStrategy
from ..parser.links import apply_replacements
from ..vault import Link, VaultFile
from .analyzer import ExportLinkAnalyzer

log = logging.getLogger(__name__)


def display_text(link: Link) -> str:
    """Plain-text form of a link: its display text, else its target path."""
    text = link.text.strip()
    return text if text else link.path


def find_frontmatter_url(file: VaultFile) -> str | None:
    """First http(s) URL among the file's url/link/source/website fields."""
    for key in URL_FRONTMATTER_FIELDS:
        value = file.get_string(key)
        if value and value.strip().lower().startswith("http"):
            return value.strip()
    return None


class RewriteStrategy:
    """Turns one external link into replacement text."""

    kind: LinkStrategy

    def rewrite(self, link: Link, file: VaultFile) -> tuple[str, bool]:
        """
        Returns:
            (replacement text, whether a URL was substituted)
        """
        raise NotImplementedError


class RemoveStrategy(RewriteStrategy):
    kind = LinkStrategy.REMOVE

    def rewrite(self, link: Link, file: VaultFile) -> tuple[str, bool]:
        return display_text(link), False


class UrlStrategy(RewriteStrategy):
    """Point the link at a URL from the source file's frontmatter, else remove it."""

    kind = LinkStrategy.URL

    def rewrite(self, link: Link, file: VaultFile) -> tuple[str, bool]:
        url = find_frontmatter_url(file)
        if url is None:
            return display_text(link), False
        return f"[{display_text(link)}]({url})", True


STRATEGIES: dict[LinkStrategy, RewriteStrategy] = {
    LinkStrategy.REMOVE: RemoveStrategy(),
    LinkStrategy.URL: UrlStrategy(),
}

_unregistered = set(LinkStrategy) - set(STRATEGIES)
if _unregistered:
    raise RuntimeError(f"No rewrite strategy registered for: {sorted(s.value for s in _unregistered)}")


def is_valid_strategy(name: str) -> bool:
    return name in {s.value for s in LinkStrategy}


def get_strategy(name: LinkStrategy | str) -> RewriteStrategy:
    """Look up a strategy by enum member or name.

    Raises:
        InvalidStrategyError: If ``name`` is not a known strategy.
    """
    if not isinstance(name, LinkStrategy):
        if not is_valid_strategy(name):
            raise InvalidStrategyError(name, [s.value for s in LinkStrategy])
        name = LinkStrategy(name)
    return STRATEGIES[name]


class ExportLinkRewriter:
    """Apply a strategy to every external link of a file.

    Args:
        analyzer: Categorizes links against the export selection.
        strategy: Strategy kind or name.
    """

    def __init__(self, analyzer: ExportLinkAnalyzer, strategy: LinkStrategy | str = LinkStrategy.REMOVE):
        self.analyzer = analyzer
        self.strategy = get_strategy(strategy)

    def rewrite_file_content(self, file: VaultFile) -> LinkRewriteResult:
        """Compute the rewritten body of ``file`` without modifying it."""
        analysis = self.analyzer.analyze_file(file)
        result = LinkRewriteResult(original_content=file.body, rewritten_content=file.body)

        replacements: list[tuple[int, int, str]] = []
        for analyzed in reversed(analysis.links):
            if analyzed.category is not LinkCategory.EXTERNAL:
                continue
            link = analyzed.link
            new_text, converted = self.strategy.rewrite(link, file)
            replacements.append((link.start, link.end, new_text))
            if converted:
                result.external_links_converted += 1
            else:
                result.external_links_removed += 1
            result.changes.append(
                LinkChange(
                    original_text=link.raw,
                    new_text=new_text,
                    link_type=link.type.value,
                    category=analyzed.category,
                    position=link.start,
                    was_converted=converted,
                )
            )

        if replacements:
            result.rewritten_content = apply_replacements(file.body, replacements)
            log.debug(
                "%s: %d external link(s) removed, %d converted",
                file.relative_path,
                result.external_links_removed,
                result.external_links_converted,
            )
        result.changes.reverse()
        return result

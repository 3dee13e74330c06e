"""Tests for export link classification and rewriting.

Coverage:
- src/mdvault/export/analyzer.py - link categories
- src/mdvault/export/rewriter.py - remove/url strategies, strategy registry
"""

from __future__ import annotations

import pytest

from mdvault.errors import InvalidStrategyError
from mdvault.export.analyzer import ExportLinkAnalyzer
from mdvault.export.rewriter import (
    STRATEGIES,
    ExportLinkRewriter,
    RemoveStrategy,
    UrlStrategy,
    find_frontmatter_url,
    get_strategy,
    is_valid_strategy,
)
from mdvault.models import LinkCategory, LinkStrategy
from mdvault.resolver import PathResolver
from mdvault.vault import VaultFile

VAULT_PATHS = [
    "note1.md",
    "note2.md",
    "private/diary.md",
    "images/photo.png",
    "dup/a/same.md",
    "dup/b/same.md",
]


@pytest.fixture
def analyzer() -> ExportLinkAnalyzer:
    return ExportLinkAnalyzer(["note1.md", "note2.md"], PathResolver(VAULT_PATHS))


def _note(body: str, frontmatter: dict | None = None) -> VaultFile:
    return VaultFile("note1.md", body=body, frontmatter=frontmatter)


# ─────────────────────────────────────────────────────────────────────────────
# Analyzer
# ─────────────────────────────────────────────────────────────────────────────


class TestExportLinkAnalyzer:
    """Tests for ExportLinkAnalyzer."""

    @pytest.mark.parametrize(
        "body,category",
        [
            ("[[note2]]", LinkCategory.INTERNAL),
            ("[n](note2.md)", LinkCategory.INTERNAL),
            ("[[private/diary]]", LinkCategory.EXTERNAL),
            ("[[missing note]]", LinkCategory.EXTERNAL),
            ("![[images/photo.png]]", LinkCategory.ASSET),
            ("![[not-there.jpg]]", LinkCategory.ASSET),
            ("[site](https://example.com)", LinkCategory.URL),
            ("[[#Heading]]", LinkCategory.INTERNAL),
        ],
    )
    def test_categories(self, analyzer, body, category):
        analysis = analyzer.analyze_file(_note(body))
        assert [a.category for a in analysis.links] == [category]

    def test_ambiguous_is_external_and_recorded(self, analyzer):
        analysis = analyzer.analyze_file(_note("[[same]]"))

        (analyzed,) = analysis.links
        assert analyzed.category is LinkCategory.EXTERNAL
        assert analyzed.ambiguous is not None
        assert analysis.ambiguous[0].candidates == ["dup/a/same.md", "dup/b/same.md"]

    def test_counts(self, analyzer):
        body = "[[note2]] [[private/diary]] [[gone]] ![[images/photo.png]] [w](https://x.org)"
        analysis = analyzer.analyze_file(_note(body))

        assert analysis.count(LinkCategory.INTERNAL) == 1
        assert analysis.count(LinkCategory.EXTERNAL) == 2
        assert analysis.count(LinkCategory.ASSET) == 1
        assert analysis.count(LinkCategory.URL) == 1
        assert analysis.summary() == "5 links: 1 internal, 2 external, 1 assets, 1 URLs"


# ─────────────────────────────────────────────────────────────────────────────
# Rewriter
# ─────────────────────────────────────────────────────────────────────────────


class TestExportLinkRewriter:
    """Tests for ExportLinkRewriter."""

    def test_remove_strategy(self, analyzer):
        """Example: an external wiki-link becomes its text."""
        file = _note("See [[missing note]].")

        result = ExportLinkRewriter(analyzer, LinkStrategy.REMOVE).rewrite_file_content(file)

        assert result.rewritten_content == "See missing note."
        assert result.external_links_removed == 1
        assert result.external_links_converted == 0
        assert file.body == "See [[missing note]]."

    def test_url_strategy(self, analyzer):
        """Example: with a frontmatter URL the link points at it."""
        file = _note("[[missing note]]", {"url": "https://x.com"})

        result = ExportLinkRewriter(analyzer, "url").rewrite_file_content(file)

        assert result.rewritten_content == "[missing note](https://x.com)"
        assert result.external_links_converted == 1
        assert result.changes[0].was_converted

    def test_url_strategy_falls_back_to_remove(self, analyzer):
        file = _note("[[missing note|the note]]", {"url": "not a url"})

        result = ExportLinkRewriter(analyzer, "url").rewrite_file_content(file)

        assert result.rewritten_content == "the note"
        assert result.external_links_removed == 1

    def test_only_external_links_touched(self, analyzer):
        body = "[[note2]] [Diary](private/diary.md) ![[images/photo.png]] [w](https://x.org)"

        result = ExportLinkRewriter(analyzer).rewrite_file_content(_note(body))

        assert result.rewritten_content == "[[note2]] Diary ![[images/photo.png]] [w](https://x.org)"
        assert len(result.changes) == 1
        assert result.changes[0].original_text == "[Diary](private/diary.md)"

    def test_multiple_links_rewritten_in_place(self, analyzer):
        body = "a [[gone one]] b [[note2]] c [[gone two|Two]] d"

        result = ExportLinkRewriter(analyzer).rewrite_file_content(_note(body))

        assert result.rewritten_content == "a gone one b [[note2]] c Two d"
        assert [c.position for c in result.changes] == [2, 29]

    def test_no_external_links(self, analyzer):
        result = ExportLinkRewriter(analyzer).rewrite_file_content(_note("[[note2]]"))
        assert not result.changed


class TestFrontmatterUrl:
    """Tests for find_frontmatter_url."""

    def test_field_order(self):
        file = _note("", {"website": "https://w.example", "source": "https://s.example"})
        assert find_frontmatter_url(file) == "https://s.example"

    def test_non_http_ignored(self):
        assert find_frontmatter_url(_note("", {"url": "ftp://x", "link": 42})) is None


class TestStrategyRegistry:
    """Tests for the strategy registry."""

    def test_every_kind_registered(self):
        assert set(STRATEGIES) == set(LinkStrategy)

    def test_lookup(self):
        assert isinstance(get_strategy("remove"), RemoveStrategy)
        assert isinstance(get_strategy(LinkStrategy.URL), UrlStrategy)

    def test_unknown_strategy(self):
        assert not is_valid_strategy("shout")
        with pytest.raises(InvalidStrategyError) as exc_info:
            get_strategy("shout")
        assert exc_info.value.details["valid"] == ["remove", "url"]

"""Tests for link extraction and re-rendering.

Coverage:
- src/mdvault/parser/links.py - extraction, URL detection, encoding, rendering
- apply_replacements span builder

Philosophy: Test behaviors, not regex internals. Use parametrize for variations.
"""

from __future__ import annotations

import pytest

from mdvault.parser.links import (
    apply_replacements,
    extract_links,
    is_internal_link,
    needs_url_encoding,
    render_link,
    split_target,
    url_encode,
)
from mdvault.vault import LinkEncoding, LinkType

# ─────────────────────────────────────────────────────────────────────────────
# Extraction
# ─────────────────────────────────────────────────────────────────────────────


class TestExtractLinks:
    """Tests for extract_links."""

    def test_wiki_links_with_and_without_alias(self):
        """Wiki-links expose target, path and display text."""
        links = extract_links("See [[note]] and [[dir/other|Other]].")

        assert [link.type for link in links] == [LinkType.WIKI, LinkType.WIKI]
        assert links[0].target == "note"
        assert links[0].text == "note"
        assert links[0].alias is None
        assert links[1].path == "dir/other"
        assert links[1].alias == "Other"
        assert links[1].text == "Other"

    def test_embed(self):
        """Embeds are their own link type."""
        links = extract_links("![[images/diagram.png]]")

        assert len(links) == 1
        assert links[0].type is LinkType.EMBED
        assert links[0].path == "images/diagram.png"

    def test_markdown_link(self):
        """Markdown links keep their text."""
        links = extract_links("Read [the guide](guides/setup.md) first.")

        assert len(links) == 1
        assert links[0].type is LinkType.MARKDOWN
        assert links[0].text == "the guide"
        assert links[0].target == "guides/setup.md"

    def test_spans_cover_raw_text(self):
        """start/end slice out exactly the link as written."""
        body = "a [[one]] b ![[two.png]] c [three](three.md) d"
        for link in extract_links(body):
            assert body[link.start:link.end] == link.raw

    def test_links_sorted_by_position(self):
        """Mixed syntaxes come back ordered by offset."""
        body = "[m](m.md) [[w]] ![[e.png]]"
        assert [link.type for link in extract_links(body)] == [
            LinkType.MARKDOWN,
            LinkType.WIKI,
            LinkType.EMBED,
        ]

    def test_urls_excluded_by_default(self):
        """Web links are skipped unless requested."""
        body = "[site](https://example.com) and [[note]]"

        assert [link.target for link in extract_links(body)] == ["note"]
        assert len(extract_links(body, include_urls=True)) == 2

    def test_balanced_parentheses_in_target(self):
        """A ')' inside the target does not end the link early."""
        links = extract_links("[copy](notes/foo (1).md)")
        assert links[0].path == "notes/foo (1).md"

    def test_fragment_split_off(self):
        """#heading is kept separately from the path."""
        links = extract_links("[[note#Setup Steps]]")
        assert links[0].path == "note"
        assert links[0].fragment == "Setup Steps"

    def test_encoded_hash_is_part_of_name(self):
        """%23 decodes into the file name, not a fragment."""
        links = extract_links("[x](issue%2312.md)")
        assert links[0].path == "issue#12.md"
        assert links[0].fragment == ""
        assert links[0].encoding is LinkEncoding.URL

    def test_escaped_pipe_in_table(self):
        """Wiki-links inside tables escape the alias pipe."""
        links = extract_links("| [[note\\|Alias]] |")
        assert links[0].path == "note"
        assert links[0].alias == "Alias"

    def test_angle_bracket_target(self):
        """<...> targets may contain raw spaces."""
        links = extract_links("[x](<my note.md>)")
        assert links[0].path == "my note.md"
        assert links[0].encoding is LinkEncoding.ANGLE

    def test_empty_targets_ignored(self):
        """[[]] and [x]() are not links."""
        assert extract_links("[[ ]] and [x]()") == []


class TestSplitTarget:
    """Tests for split_target."""

    @pytest.mark.parametrize(
        "target,expected",
        [
            ("note", ("note", "")),
            ("note#part", ("note", "part")),
            ("my%20note.md#sec%20one", ("my note.md", "sec one")),
            ("#only-heading", ("", "only-heading")),
        ],
    )
    def test_split(self, target, expected):
        assert split_target(target) == expected


class TestIsInternalLink:
    """Tests for is_internal_link."""

    @pytest.mark.parametrize(
        "target,expected",
        [
            ("notes/a.md", True),
            ("a note", True),
            ("https://example.com", False),
            ("mailto:someone@example.org", False),
            ("www.example.com", False),
            ("example.com/page", False),
            ("docs/example.com.md", True),
            ("", False),
        ],
    )
    def test_classification(self, target, expected):
        assert is_internal_link(target) is expected


# ─────────────────────────────────────────────────────────────────────────────
# Encoding and rendering
# ─────────────────────────────────────────────────────────────────────────────


class TestUrlEncode:
    """Tests for url_encode."""

    def test_encodes_editor_character_set(self):
        assert url_encode("a b(1)#") == "a%20b%281%29%23"

    def test_percent_encoded_first(self):
        """A literal % is encoded so the result decodes back to the input."""
        assert url_encode("100% done") == "100%25%20done"

    def test_plain_path_unchanged(self):
        assert url_encode("dir/file-name_1.md") == "dir/file-name_1.md"
        assert not needs_url_encoding("dir/file-name_1.md")


class TestRenderLink:
    """Tests for render_link."""

    def _only(self, body: str):
        (link,) = extract_links(body)
        return link

    def test_wiki_drops_extension(self):
        assert render_link(self._only("[[old]]"), "new/place.md") == "[[new/place]]"

    def test_wiki_keeps_alias_and_fragment(self):
        link = self._only("[[old#Intro|Read this]]")
        assert render_link(link, "new.md") == "[[new#Intro|Read this]]"

    def test_wiki_keeps_escaped_pipe(self):
        link = self._only("[[old\\|Alias]]")
        assert render_link(link, "new.md") == "[[new\\|Alias]]"

    def test_embed_keeps_size_hint(self):
        link = self._only("![[img.png|300]]")
        assert render_link(link, "media/img.png") == "![[media/img.png|300]]"

    def test_markdown_encodes_when_needed(self):
        link = self._only("[t](plain.md)")
        assert render_link(link, "new name.md") == "[t](new%20name.md)"

    def test_markdown_stays_plain(self):
        link = self._only("[t](a.md#sec)")
        assert render_link(link, "dir/b.md") == "[t](dir/b.md#sec)"

    def test_markdown_angle_brackets_preserved(self):
        link = self._only("[t](<a b.md>)")
        assert render_link(link, "c d.md") == "[t](<c d.md>)"


class TestApplyReplacements:
    """Tests for apply_replacements."""

    def test_replaces_in_any_order(self):
        content = "0123456789"
        result = apply_replacements(content, [(6, 8, "X"), (1, 3, "YYYY")])
        assert result == "0YYYY345X89"

    def test_no_replacements(self):
        assert apply_replacements("same", []) == "same"

    def test_overlap_rejected(self):
        with pytest.raises(ValueError):
            apply_replacements("0123456789", [(1, 5, "a"), (4, 6, "b")])

    def test_out_of_range_rejected(self):
        with pytest.raises(ValueError):
            apply_replacements("abc", [(1, 10, "x")])

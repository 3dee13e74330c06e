"""Tests for filename templates.

Coverage:
- src/mdvault/templates.py - filters, variables, error handling
"""

from __future__ import annotations

from datetime import date, datetime

import pytest

from mdvault.config import DEFAULT_RENAME_TEMPLATE, ConfigurationError
from mdvault.templates import TemplateEngine, format_date, slug, slug_underscore, split_datestring
from mdvault.vault import VaultFile

NOW = datetime(2024, 1, 2, 3, 4, 5)


@pytest.fixture
def engine() -> TemplateEngine:
    return TemplateEngine(now=NOW)


class TestFilters:
    """Tests for the template filters."""

    def test_slug(self):
        assert slug("  Hello, World! 2024 ") == "hello-world-2024"

    def test_slug_underscore(self):
        assert slug_underscore("My Great-Note") == "my_great_note"

    @pytest.mark.parametrize(
        "value,fmt,expected",
        [
            (date(2024, 3, 5), "%Y%m%d", "20240305"),
            ("2024-03-05", "%d.%m.%Y", "05.03.2024"),
            (None, "%Y", ""),
            ("someday", "%Y", "someday"),
        ],
    )
    def test_format_date(self, value, fmt, expected):
        assert format_date(value, fmt) == expected

    @pytest.mark.parametrize(
        "stem,expected",
        [
            ("20240101120000-note", ("20240101120000", "note")),
            ("note", ("", "note")),
            ("2024-note", ("", "2024-note")),
        ],
    )
    def test_split_datestring(self, stem, expected):
        assert split_datestring(stem) == expected


class TestTemplateEngine:
    """Tests for TemplateEngine.process."""

    def test_default_template_uses_created(self, engine):
        file = VaultFile("Meeting Notes.md", frontmatter={"created": date(2023, 5, 6)})
        assert engine.process(DEFAULT_RENAME_TEMPLATE, file) == "20230506000000-meeting_notes.md"

    def test_default_template_falls_back_to_mtime(self, engine):
        file = VaultFile("Note.md", modified=datetime(2022, 2, 3, 4, 5, 6))
        assert engine.process(DEFAULT_RENAME_TEMPLATE, file) == "20220203040506-note.md"

    def test_existing_datestring_replaced(self, engine):
        file = VaultFile("20200101000000-old.md", frontmatter={"created": "2023-05-06"})
        assert engine.process(DEFAULT_RENAME_TEMPLATE, file) == "20230506000000-old.md"

    def test_variables(self, engine):
        file = VaultFile("projects/20200101000000-plan.md", frontmatter={"title": "The Plan"})
        template = (
            "{{ current_date }}|{{ parent_dir }}|{{ existing_datestring }}|"
            "{{ filename_without_datestring }}|{{ fm.title }}|{{ title }}"
        )

        assert engine.process(template, file) == "2024-01-02|projects|20200101000000|plan|The Plan|The Plan"

    def test_unknown_variable_is_empty(self, engine):
        assert engine.process("{{ nope }}x.md", VaultFile("a.md")) == "x.md"

    def test_uuid_unique(self, engine):
        file = VaultFile("a.md")
        assert engine.process("{{ uuid }}", file) != engine.process("{{ uuid }}", file)

    def test_malformed_template(self, engine):
        with pytest.raises(ConfigurationError):
            engine.process("{{ unclosed", VaultFile("a.md"))

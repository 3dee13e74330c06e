"""Tests for the mdv command line.

Coverage:
- src/mdvault/cli.py - rename, export, links check, resolve, error output
"""

from __future__ import annotations

import json
from pathlib import Path

import pytest

from mdvault import __version__
from mdvault.cli import cli


def _write_note(root: Path, rel_path: str, content: str) -> Path:
    path = root / rel_path
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(content, encoding="utf-8")
    return path


@pytest.fixture
def notes(vault: Path) -> Path:
    _write_note(vault, "notes/old name.md", "---\nstatus: published\n---\n# Old\n")
    _write_note(vault, "index.md", "---\nstatus: published\n---\nSee [[old name]] and [[private/todo]].\n")
    _write_note(vault, "private/todo.md", "todo\n")
    return vault


# ─────────────────────────────────────────────────────────────────────────────
# Global options
# ─────────────────────────────────────────────────────────────────────────────


class TestGlobal:
    """Version, help and typo handling."""

    def test_version(self, runner):
        result = runner.invoke(cli, ["--version"])

        assert result.exit_code == 0
        assert f"mdv, version {__version__}" in result.output

    def test_help_lists_commands(self, runner):
        result = runner.invoke(cli, ["--help"])

        for command in ("rename", "export", "links", "resolve"):
            assert command in result.output

    def test_typo_suggestion(self, runner):
        result = runner.invoke(cli, ["renam", "a.md"])

        assert result.exit_code != 0
        assert "No such command 'renam'" in result.output
        assert "Did you mean 'rename'?" in result.output

    def test_usage_error_as_json(self, runner):
        result = runner.invoke(cli, ["export", "--json-errors"])

        assert result.exit_code == 1
        error = json.loads(result.stderr)["error"]
        assert error["code"] == "MISSING_ARGUMENT"

    def test_configuration_error(self, runner, notes, monkeypatch):
        monkeypatch.setenv("MDVAULT_WORKERS", "lots")

        result = runner.invoke(cli, ["--json-errors", "links", "check"])

        assert result.exit_code == 1
        assert json.loads(result.stderr)["error"]["code"] == "CONFIGURATION_ERROR"


# ─────────────────────────────────────────────────────────────────────────────
# rename
# ─────────────────────────────────────────────────────────────────────────────


class TestRename:
    """Tests for mdv rename."""

    def test_rename(self, runner, notes):
        result = runner.invoke(cli, ["rename", "notes/old name.md", "archive/new name.md", "--no-search"])

        assert result.exit_code == 0, result.output
        assert "Renamed notes/old name.md -> archive/new name.md" in result.stdout
        assert "1 link(s) in 1 file(s)" in result.stdout
        assert (notes / "archive/new name.md").exists()
        assert "[[archive/new name]]" in (notes / "index.md").read_text()

    def test_dry_run_json(self, runner, notes):
        result = runner.invoke(
            cli, ["rename", "notes/old name.md", "new.md", "--dry-run", "--json", "--no-search"]
        )

        assert result.exit_code == 0, result.output
        (data,) = json.loads(result.stdout)
        assert data["dry_run"] is True
        assert data["modified_files"] == ["index.md"]
        assert (notes / "notes/old name.md").exists()

    def test_explicit_vault(self, runner, notes, monkeypatch):
        monkeypatch.delenv("MDVAULT_VAULT_ROOT")

        result = runner.invoke(
            cli, ["rename", "notes/old name.md", "new.md", "--vault", str(notes), "--no-search"]
        )

        assert result.exit_code == 0, result.output
        assert (notes / "new.md").exists()

    def test_missing_source(self, runner, notes):
        result = runner.invoke(cli, ["rename", "nope.md", "x.md"])

        assert result.exit_code == 1
        assert "Error: Source file not found: nope.md" in result.stderr

    def test_missing_source_json_errors(self, runner, notes):
        result = runner.invoke(cli, ["rename", "nope.md", "x.md", "--json-errors"])

        assert result.exit_code == 1
        error = json.loads(result.stderr)["error"]
        assert error["code"] == "INVALID_PATH"
        assert error["details"] == {"path": "nope.md"}

    def test_directory_with_target(self, runner, notes):
        result = runner.invoke(cli, ["rename", "notes", "elsewhere"])

        assert result.exit_code == 2
        assert "TARGET cannot be given" in result.output

    def test_directory_template(self, runner, notes):
        result = runner.invoke(
            cli, ["rename", "notes", "--template", "{{ filename | slug }}.md", "--no-search"]
        )

        assert result.exit_code == 0, result.output
        assert (notes / "notes/old-name.md").exists()
        assert "[[notes/old-name]]" in (notes / "index.md").read_text()


# ─────────────────────────────────────────────────────────────────────────────
# export
# ─────────────────────────────────────────────────────────────────────────────


class TestExport:
    """Tests for mdv export."""

    def test_export_json(self, runner, notes, tmp_path):
        out = tmp_path / "out"

        result = runner.invoke(cli, ["export", str(out), "--query", "status = published", "--json"])

        assert result.exit_code == 0, result.output
        data = json.loads(result.stdout)
        assert data["files_exported"] == 2
        assert data["external_links_removed"] == 1
        assert "See [[old name]] and private/todo." in (out / "index.md").read_text()

    def test_export_summary(self, runner, notes, tmp_path):
        result = runner.invoke(cli, ["export", str(tmp_path / "out"), "--dry-run"])

        assert result.exit_code == 0, result.output
        assert "Would export 3 of 3 file(s)" in result.stdout
        assert not (tmp_path / "out").exists()

    def test_invalid_strategy_from_config(self, runner, notes, tmp_path):
        (notes / ".vaultconfig").write_text("link_strategy: shout\n")

        result = runner.invoke(cli, ["--json-errors", "export", str(tmp_path / "out")])

        assert result.exit_code == 1
        assert json.loads(result.stderr)["error"]["code"] == "INVALID_STRATEGY"

    def test_output_inside_vault(self, runner, notes):
        result = runner.invoke(cli, ["export", str(notes / "out")])

        assert result.exit_code == 1
        assert "inside the vault" in result.stderr

    def test_bad_query(self, runner, notes, tmp_path):
        result = runner.invoke(cli, ["--json-errors", "export", str(tmp_path / "out"), "--query", "status"])

        assert result.exit_code == 1
        assert json.loads(result.stderr)["error"]["code"] == "INVALID_QUERY"


# ─────────────────────────────────────────────────────────────────────────────
# links check / resolve
# ─────────────────────────────────────────────────────────────────────────────


class TestLinksAndResolve:
    """Tests for mdv links check and mdv resolve."""

    def test_clean_vault(self, runner, notes):
        result = runner.invoke(cli, ["links", "check"])

        assert result.exit_code == 0
        assert "No broken links in 3 file(s)." in result.stdout

    def test_broken_and_ambiguous(self, runner, vault):
        _write_note(vault, "a.md", "intro\nsee [[missing]]\n")
        _write_note(vault, "b.md", "[[same]]")
        _write_note(vault, "x/same.md", "")
        _write_note(vault, "y/same.md", "")

        result = runner.invoke(cli, ["links", "check", "--json"])

        assert result.exit_code == 1
        problems = json.loads(result.stdout)
        assert [(p["source_path"], p["line"], p["kind"]) for p in problems] == [
            ("a.md", 2, "broken"),
            ("b.md", 1, "ambiguous"),
        ]
        assert problems[1]["candidates"] == ["x/same.md", "y/same.md"]

    def test_broken_text_output(self, runner, vault):
        _write_note(vault, "a.md", "intro\nsee [[missing]]\n")

        result = runner.invoke(cli, ["links", "check"])

        assert result.exit_code == 1
        assert "line 2: broken 'missing'" in result.stdout

    def test_resolve(self, runner, vault):
        _write_note(vault, "dir/target.md", "")

        result = runner.invoke(cli, ["resolve", "target", "--from", "a.md"])

        assert result.exit_code == 0, result.output
        assert result.stdout.strip() == "dir/target.md"

    def test_resolve_markdown_relative(self, runner, vault):
        _write_note(vault, "img/a b.png", "")

        result = runner.invoke(cli, ["resolve", "../img/a%20b.png", "--from", "notes/x.md", "--type", "markdown"])

        assert result.stdout.strip() == "img/a b.png"

    def test_resolve_ambiguous(self, runner, vault):
        _write_note(vault, "x/same.md", "")
        _write_note(vault, "y/same.md", "")

        result = runner.invoke(cli, ["--json-errors", "resolve", "same", "--from", "a.md"])

        assert result.exit_code == 1
        error = json.loads(result.stderr)["error"]
        assert error["code"] == "AMBIGUOUS_TARGET"
        assert error["details"]["candidates"] == ["x/same.md", "y/same.md"]

    def test_resolve_missing(self, runner, vault):
        result = runner.invoke(cli, ["resolve", "ghost", "--from", "a.md"])

        assert result.exit_code == 1
        assert "Link target not found in vault: 'ghost'" in result.stderr

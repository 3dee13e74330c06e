"""Tests for recursive backlink discovery.

Coverage:
- src/mdvault/export/backlinks.py - BFS expansion, depth limit, cycles,
  cancellation
"""

from __future__ import annotations

import logging

import pytest

from mdvault.errors import OperationCancelledError
from mdvault.export.backlinks import BacklinksHandler
from mdvault.models import BacklinksDiscoveryResult
from mdvault.resolver import PathResolver
from mdvault.vault import VaultFile
from mdvault.workerpool import CancelToken


def _handler(files: list[VaultFile], max_depth: int = 10) -> BacklinksHandler:
    return BacklinksHandler(files, PathResolver(f.relative_path for f in files), max_depth=max_depth)


def _chain(length: int) -> list[VaultFile]:
    """n1 links to n0, n2 to n1, and so on."""
    files = [VaultFile("n0.md", body="start")]
    for i in range(1, length):
        files.append(VaultFile(f"n{i}.md", body=f"back to [[n{i - 1}]]"))
    return files


class TestBacklinksHandler:
    """Tests for BacklinksHandler.discover."""

    def test_direct_backlinks(self):
        files = [
            VaultFile("target.md", body=""),
            VaultFile("a.md", body="[[target]]"),
            VaultFile("b.md", body="[t](target.md)"),
            VaultFile("c.md", body="unrelated"),
        ]

        result = _handler(files).discover(["target.md"])

        assert result.backlink_files == ["a.md", "b.md"]
        assert result.backlink_map == {"target.md": ["a.md", "b.md"]}
        assert result.depth_reached == 2
        assert not result.depth_limit_reached

    def test_transitive(self):
        result = _handler(_chain(4)).discover(["n0.md"])
        assert result.backlink_files == ["n1.md", "n2.md", "n3.md"]
        assert result.total_backlinks == 3

    def test_depth_limit(self, caplog):
        """A 14-file chain stops after 10 rounds."""
        with caplog.at_level(logging.WARNING, logger="mdvault"):
            result = _handler(_chain(14)).discover(["n0.md"])

        assert result.total_backlinks <= 10
        assert result.total_backlinks == 10
        assert result.depth_limit_reached
        assert "max depth" in caplog.text

    def test_cycle_terminates(self):
        """A <-> B exporting A finds exactly B."""
        files = [
            VaultFile("A.md", body="[[B]]"),
            VaultFile("B.md", body="[[A]]"),
        ]

        result = _handler(files).discover(["A.md"])

        assert result.backlink_files == ["B.md"]
        assert not result.depth_limit_reached

    def test_self_links_ignored(self):
        files = [VaultFile("a.md", body=""), VaultFile("b.md", body="[[b]] [[#top]]")]
        assert _handler(files).discover(["a.md"]).backlink_files == []

    def test_ambiguous_links_skipped(self):
        files = [
            VaultFile("x/same.md", body=""),
            VaultFile("y/same.md", body=""),
            VaultFile("linker.md", body="[[same]]"),
        ]
        assert _handler(files).discover(["x/same.md"]).backlink_files == []

    def test_cancelled_between_rounds(self):
        cancel = CancelToken()
        cancel.cancel("stop")

        with pytest.raises(OperationCancelledError) as exc_info:
            _handler(_chain(3)).discover(["n0.md"], cancel)

        assert exc_info.value.message == "stop"
        assert isinstance(exc_info.value.partial, BacklinksDiscoveryResult)

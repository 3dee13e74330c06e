"""Vault directory scanning with ignore patterns."""

from __future__ import annotations

import fnmatch
import logging
from collections.abc import Callable, Iterable, Iterator
from pathlib import Path

from .config import DEFAULT_IGNORE_PATTERNS, MARKDOWN_EXTENSION
from .errors import ParseError
from .vault import VaultFile

log = logging.getLogger(__name__)


class Scanner:
    """Walk a vault and load its markdown files.

    Ignore patterns are shell globs matched against the vault-relative path
    and the file name. A pattern ending in ``/*`` also excludes everything
    below that directory, at any depth.

    Args:
        ignore_patterns: Globs to skip.
        continue_on_errors: Log and collect unreadable files in ``errors``
            instead of raising.
    """

    def __init__(
        self,
        ignore_patterns: Iterable[str] = DEFAULT_IGNORE_PATTERNS,
        continue_on_errors: bool = False,
    ):
        self.ignore_patterns = list(ignore_patterns)
        self.continue_on_errors = continue_on_errors
        self.errors: list[ParseError] = []

    def should_ignore(self, relative_path: str) -> bool:
        name = relative_path.rsplit("/", 1)[-1]
        for pattern in self.ignore_patterns:
            if fnmatch.fnmatchcase(relative_path, pattern) or fnmatch.fnmatchcase(name, pattern):
                return True
            if pattern.endswith("/*"):
                prefix = pattern[:-1]
                if relative_path.startswith(prefix) or f"/{prefix}" in f"/{relative_path}":
                    return True
        return False

    def iter_paths(self, root: Path, suffix: str | None = MARKDOWN_EXTENSION) -> Iterator[Path]:
        """Yield non-ignored files under ``root`` in sorted order.

        Args:
            root: Vault root.
            suffix: Only files with this extension; None for every file.
        """
        pattern = f"*{suffix}" if suffix else "*"
        for path in sorted(root.rglob(pattern)):
            if not path.is_file():
                continue
            if self.should_ignore(path.relative_to(root).as_posix()):
                continue
            yield path

    def list_paths(self, root: Path, suffix: str | None = MARKDOWN_EXTENSION) -> list[str]:
        """Vault-relative paths of non-ignored files, without parsing them."""
        return [path.relative_to(root).as_posix() for path in self.iter_paths(root, suffix)]

    def walk_with_callback(self, root: Path, fn: Callable[[VaultFile], None]) -> int:
        """Load each markdown file and hand it to ``fn``.

        Returns:
            Number of files loaded.

        Raises:
            ParseError: If a file cannot be loaded and continue_on_errors is off.
        """
        count = 0
        for path in self.iter_paths(root):
            try:
                vault_file = VaultFile.load(path, root)
            except ParseError as e:
                if not self.continue_on_errors:
                    raise
                log.warning("Skipping unreadable file %s", e.message)
                self.errors.append(e)
                continue
            fn(vault_file)
            count += 1
        return count

    def walk(self, root: Path) -> list[VaultFile]:
        """Load every non-ignored markdown file, sorted by vault-relative path."""
        files: list[VaultFile] = []
        self.walk_with_callback(root, files.append)
        return files

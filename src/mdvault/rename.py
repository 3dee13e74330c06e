"""Rename a file and update every link pointing at it.

Phases, in order:

1. Candidate search: ripgrep narrows the vault to files that may link to
   the source; if ripgrep is unavailable every markdown file is a candidate.
2. Parallel match: each candidate is parsed and its links rewritten in
   memory. Nothing touches the disk yet.
3. Commit: modified files are written one by one through a ``.tmp`` file.
4. Rename: the source file is moved to its target.

Dry runs stop after phase 2. If the final rename fails, rewritten files
keep their new links unless ``rollback_on_failure`` is set, in which case
their original content is restored.
"""

from __future__ import annotations

import logging
import posixpath
import re
import time
from dataclasses import dataclass
from pathlib import Path

from .config import DEFAULT_RENAME_TEMPLATE, MARKDOWN_EXTENSION
from .errors import (
    InvalidPathError,
    RenameFailureError,
    SubprocessUnavailableError,
    WriteFailureError,
)
from .models import RenameOptions, RenameResult
from .resolver import PathResolver
from .scanner import Scanner
from .search import CandidateSearcher
from .templates import TemplateEngine
from .updater import LinkUpdater
from .vault import FileMove, VaultFile, normalize_vault_path, relative_to_vault, write_atomic
from .workerpool import CancelToken, ParallelFileProcessor

log = logging.getLogger(__name__)

# Any link opener at all; checked before full parsing.
_ANY_LINK = re.compile(r"\[\[|\]\(")


@dataclass
class FileUpdate:
    """In-memory rewrite of one candidate file."""

    file: VaultFile
    original_text: str
    links_updated: int

    @property
    def modified(self) -> bool:
        return self.file.serialize() != self.original_text


class RenameProcessor:
    """Move one file and rewrite links to it across the vault.

    Args:
        options: Rename options (vault root, dry run, workers...).
        searcher: Candidate searcher; defaults to ripgrep.
        templates: Template engine used when no target is given.
    """

    def __init__(
        self,
        options: RenameOptions,
        searcher: CandidateSearcher | None = None,
        templates: TemplateEngine | None = None,
    ):
        self.options = options
        self.vault_root = options.vault_root.resolve()
        self.scanner = Scanner(options.ignore_patterns)
        self.searcher = searcher or CandidateSearcher(options.rg_path, options.search_timeout)
        self.templates = templates or TemplateEngine()

    # ─────────────────────────────────────────────────────────────────────────
    # Path handling
    # ─────────────────────────────────────────────────────────────────────────

    def _to_relative(self, path: str | Path) -> str:
        path = Path(path)
        if path.is_absolute():
            return relative_to_vault(path, self.vault_root)
        return normalize_vault_path(path.as_posix())

    def resolve_target(self, source_rel: str, target: str | Path | None) -> str:
        """Work out the vault-relative target path.

        With no target the filename comes from the template and the file
        stays in its directory. An existing directory as target keeps the
        source's filename.

        Raises:
            InvalidPathError: If the target is taken, equals the source or escapes the vault.
        """
        if target is None:
            source_file = VaultFile.load(self.vault_root / source_rel, self.vault_root)
            template = self.options.template or DEFAULT_RENAME_TEMPLATE
            name = self.templates.process(template, source_file)
            target_rel = normalize_vault_path(posixpath.join(posixpath.dirname(source_rel), name))
        else:
            target_rel = self._to_relative(target)
            if (self.vault_root / target_rel).is_dir():
                target_rel = f"{target_rel}/{posixpath.basename(source_rel)}"

        if target_rel == source_rel:
            raise InvalidPathError(f"Source and target are the same: {source_rel}", source_rel)
        if (self.vault_root / target_rel).exists():
            raise InvalidPathError(f"Target already exists: {target_rel}", target_rel)
        return target_rel

    # ─────────────────────────────────────────────────────────────────────────
    # Phases
    # ─────────────────────────────────────────────────────────────────────────

    def find_candidates(self, source_rel: str, cancel: CancelToken | None = None) -> tuple[list[str], bool]:
        """Markdown files that may link to ``source_rel``.

        Returns:
            (vault-relative paths, whether ripgrep produced them)
        """
        if self.options.use_search:
            try:
                found = self.searcher.find_candidates(self.vault_root, source_rel, cancel)
            except SubprocessUnavailableError as e:
                log.debug("Falling back to full vault scan: %s", e.message)
            else:
                candidates = [
                    path
                    for path in found
                    if path.lower().endswith(MARKDOWN_EXTENSION) and not self.scanner.should_ignore(path)
                ]
                return candidates, True
        return self.scanner.list_paths(self.vault_root), False

    def _match_file(self, relative_path: str, updater: LinkUpdater) -> FileUpdate | None:
        file = VaultFile.load(self.vault_root / relative_path, self.vault_root)
        if not _ANY_LINK.search(file.body):
            return None
        original_text = file.serialize()
        count = updater.update_file(file)
        if count == 0:
            return None
        return FileUpdate(file, original_text, count)

    def _commit(self, updates: list[FileUpdate]) -> tuple[list[FileUpdate], dict[str, str]]:
        written: list[FileUpdate] = []
        failures: dict[str, str] = {}
        for update in updates:
            try:
                write_atomic(update.file.path, update.file.serialize())
            except OSError as e:
                log.warning("Failed to write %s: %s", update.file.relative_path, e)
                failures[update.file.relative_path] = str(e)
                if self.options.stop_on_error:
                    break
                continue
            written.append(update)
        return written, failures

    def _rollback(self, written: list[FileUpdate]) -> bool:
        restored = True
        for update in written:
            try:
                write_atomic(update.file.path, update.original_text)
            except OSError as e:
                log.error("Rollback failed for %s: %s", update.file.relative_path, e)
                restored = False
        log.warning("Rolled back link updates in %d file(s)", len(written))
        return restored

    # ─────────────────────────────────────────────────────────────────────────
    # Entry points
    # ─────────────────────────────────────────────────────────────────────────

    def process_rename(
        self,
        source: str | Path,
        target: str | Path | None = None,
        cancel: CancelToken | None = None,
    ) -> RenameResult:
        """Rename ``source`` to ``target`` and update links to it.

        Args:
            source: Absolute path, or path relative to the vault root.
            target: Same forms; an existing directory keeps the file name;
                None generates a name from the template.
            cancel: Checked between phases and before each candidate file.

        Returns:
            RenameResult with counts and modified files.

        Raises:
            InvalidPathError: If the source is missing or the target is unusable.
            OperationCancelledError: If cancelled before the commit phase.
            WriteFailureError: If any modified file could not be written;
                the rename is then not performed.
            RenameFailureError: If the final rename fails.
        """
        started = time.monotonic()
        source_rel = self._to_relative(source)
        source_abs = self.vault_root / source_rel
        if not source_abs.is_file():
            raise InvalidPathError(f"Source file not found: {source_rel}", source_rel)

        target_rel = self.resolve_target(source_rel, target)
        result = RenameResult(source_path=source_rel, target_path=target_rel, dry_run=self.options.dry_run)
        resolver = PathResolver([*self.scanner.list_paths(self.vault_root, None), source_rel])
        updater = LinkUpdater([FileMove(source_rel, target_rel)], resolver)

        if cancel is not None:
            cancel.raise_if_cancelled(partial=result)
        candidates, result.used_search = self.find_candidates(source_rel, cancel)
        result.files_scanned = len(candidates)
        log.debug(
            "%d candidate file(s) for %s (%s)",
            len(candidates),
            source_rel,
            "ripgrep" if result.used_search else "full scan",
        )

        processor = ParallelFileProcessor(self.options.workers, stop_on_error=self.options.stop_on_error)
        task_results = processor.process(candidates, lambda rel: self._match_file(rel, updater), cancel)

        updates: list[FileUpdate] = []
        for task in task_results:
            if task.error is not None:
                result.errors[task.item] = str(task.error)
            elif task.value is not None:
                result.links_updated += task.value.links_updated
                if task.value.modified:
                    updates.append(task.value)

        result.modified_files = sorted(u.file.relative_path for u in updates)
        result.files_modified = len(updates)

        if self.options.dry_run:
            result.duration = time.monotonic() - started
            return result

        if cancel is not None:
            cancel.raise_if_cancelled(partial=result)

        written, failures = self._commit(updates)
        if failures:
            result.errors.update(failures)
            if self.options.rollback_on_failure:
                self._rollback(written)
            raise WriteFailureError(failures)

        target_abs = self.vault_root / target_rel
        try:
            target_abs.parent.mkdir(parents=True, exist_ok=True)
            source_abs.rename(target_abs)
        except OSError as e:
            rolled_back = self.options.rollback_on_failure and self._rollback(written)
            raise RenameFailureError(source_rel, target_rel, str(e), rolled_back) from e

        result.duration = time.monotonic() - started
        log.info(
            "Renamed %s -> %s: %d link(s) updated in %d file(s)",
            source_rel,
            target_rel,
            result.links_updated,
            result.files_modified,
        )
        return result

    def process_directory(
        self,
        directory: str | Path,
        cancel: CancelToken | None = None,
    ) -> list[RenameResult]:
        """Rename every markdown file below ``directory`` using the template.

        Ignore patterns apply to vault-relative paths. Files whose generated
        name equals their current name are skipped. A generated name that is
        taken, on disk or earlier in the batch, gets a ``-N`` suffix.
        """
        dir_rel = self._to_relative(directory)
        if not (self.vault_root / dir_rel).is_dir():
            raise InvalidPathError(f"Directory not found: {dir_rel}", dir_rel)

        sources = [rel for rel in self.scanner.list_paths(self.vault_root) if rel.startswith(f"{dir_rel}/")]
        claimed: set[str] = set()
        results = []
        for source_rel in sources:
            file = VaultFile.load(self.vault_root / source_rel, self.vault_root)
            name = self.templates.process(self.options.template or DEFAULT_RENAME_TEMPLATE, file)
            if name == posixpath.basename(source_rel):
                continue
            wanted = normalize_vault_path(posixpath.join(posixpath.dirname(source_rel), name))
            target_rel = self._claim_target(wanted, source_rel, claimed)
            if target_rel is None:
                continue
            results.append(self.process_rename(source_rel, target_rel, cancel))
        return results

    def _claim_target(self, wanted: str, source_rel: str, claimed: set[str]) -> str | None:
        """First free ``wanted`` or ``-N`` variant; None if that is the source itself."""
        stem, ext = posixpath.splitext(wanted)
        candidate, n = wanted, 0
        while candidate != source_rel and (candidate in claimed or (self.vault_root / candidate).exists()):
            n += 1
            candidate = f"{stem}-{n}{ext}"
        if candidate == source_rel:
            return None
        if candidate != wanted:
            log.info("Name %s is taken; renaming %s to %s", wanted, source_rel, candidate)
        claimed.add(candidate)
        return candidate

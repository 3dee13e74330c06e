"""Export a filtered subset of a vault to a new root.

Pipeline:

1. Scan the vault and select files with the query.
2. Optionally add files linking into the selection (backlinks).
3. Optionally compute new output names (slugify/flatten).
4. Analyze every selected file in parallel: rewrite external links with the
   chosen strategy, then retarget links whose targets moved.
5. Write the results sequentially and copy referenced assets.

Dry runs do all the analysis and report counts without touching the
output directory.
"""

from __future__ import annotations

import copy
import logging
import time
from dataclasses import dataclass
from pathlib import Path

from ..errors import InvalidPathError
from ..models import ExportOptions, ExportResult
from ..query import filter_files
from ..resolver import PathResolver
from ..scanner import Scanner
from ..vault import VaultFile, index_by_path, write_atomic
from ..workerpool import CancelToken, ParallelFileProcessor
from .analyzer import ExportLinkAnalyzer
from .assets import AssetHandler
from .backlinks import BacklinksHandler
from .normalizer import FilenameNormalizer
from .rewriter import ExportLinkRewriter

log = logging.getLogger(__name__)


@dataclass
class FileExport:
    """Rendered output for one exported file."""

    source_path: str
    output_path: str
    text: str
    external_links_removed: int = 0
    external_links_converted: int = 0
    internal_links_updated: int = 0

    @property
    def links_processed(self) -> bool:
        return bool(self.external_links_removed or self.external_links_converted or self.internal_links_updated)


@dataclass
class _ExportContext:
    file_map: dict[str, str]
    vault_resolver: PathResolver
    output_resolver: PathResolver
    rewriter: ExportLinkRewriter | None


class ExportProcessor:
    """Run one export.

    Args:
        options: Export options; see ``ExportOptions``.
    """

    def __init__(self, options: ExportOptions):
        self.options = options
        self.vault_root = options.vault_path.resolve()
        self.output_root = options.output_path.resolve()
        self.scanner = Scanner(options.ignore_patterns)
        self.normalizer = FilenameNormalizer(slugify=options.slugify, flatten=options.flatten)

    def validate_output(self) -> None:
        """Check the output root is usable.

        Raises:
            InvalidPathError: If the output is inside the vault, is a file,
                or is a non-empty directory.
        """
        if self.output_root == self.vault_root or self.vault_root in self.output_root.parents:
            raise InvalidPathError(f"Output directory is inside the vault: {self.output_root}", str(self.output_root))
        if not self.output_root.exists():
            return
        if not self.output_root.is_dir():
            raise InvalidPathError(f"Output path is not a directory: {self.output_root}", str(self.output_root))
        if any(self.output_root.iterdir()):
            raise InvalidPathError(f"Output directory is not empty: {self.output_root}", str(self.output_root))

    # ─────────────────────────────────────────────────────────────────────────
    # Selection
    # ─────────────────────────────────────────────────────────────────────────

    def select(self, vault_files: list[VaultFile]) -> list[VaultFile]:
        if not self.options.query:
            return list(vault_files)
        selected = filter_files(vault_files, self.options.query)
        log.info("Query matched %d of %d file(s)", len(selected), len(vault_files))
        return selected

    def _add_backlinks(
        self,
        selected: list[VaultFile],
        vault_files: list[VaultFile],
        resolver: PathResolver,
        result: ExportResult,
        cancel: CancelToken | None,
    ) -> list[VaultFile]:
        handler = BacklinksHandler(vault_files, resolver)
        discovery = handler.discover([f.relative_path for f in selected], cancel)
        by_path = index_by_path(vault_files)
        result.backlinks_included = discovery.total_backlinks
        result.backlink_depth_limit_reached = discovery.depth_limit_reached
        if discovery.total_backlinks:
            log.info("Including %d backlinked file(s)", discovery.total_backlinks)
        return selected + [by_path[path] for path in discovery.backlink_files]

    # ─────────────────────────────────────────────────────────────────────────
    # Per-file work
    # ─────────────────────────────────────────────────────────────────────────

    def export_file(self, file: VaultFile, ctx: _ExportContext) -> FileExport:
        """Compute the exported text of ``file``; nothing is written."""
        output_path = ctx.file_map.get(file.relative_path, file.relative_path)
        body = file.body
        export = FileExport(file.relative_path, output_path, text="")

        if ctx.rewriter is not None:
            rewrite = ctx.rewriter.rewrite_file_content(file)
            body = rewrite.rewritten_content
            export.external_links_removed = rewrite.external_links_removed
            export.external_links_converted = rewrite.external_links_converted

        if self.normalizer.enabled:
            body, export.internal_links_updated = self.normalizer.update_links(
                body, file.relative_path, ctx.file_map, ctx.vault_resolver, ctx.output_resolver
            )

        exported = copy.copy(file)
        exported.body = body
        export.text = exported.serialize()
        return export

    def _write(self, exports: list[FileExport], result: ExportResult) -> None:
        for export in exports:
            destination = self.output_root / export.output_path
            try:
                destination.parent.mkdir(parents=True, exist_ok=True)
                write_atomic(destination, export.text)
            except OSError as e:
                log.warning("Failed to write %s: %s", export.output_path, e)
                result.errors[export.source_path] = str(e)
                continue
            result.exported_files.append(export.output_path)

    # ─────────────────────────────────────────────────────────────────────────
    # Entry point
    # ─────────────────────────────────────────────────────────────────────────

    def process(self, cancel: CancelToken | None = None) -> ExportResult:
        """Run the export.

        Args:
            cancel: Cancellation token; one is created from ``options.timeout``
                when omitted.

        Returns:
            ExportResult with counts; per-file failures are in ``errors``.

        Raises:
            InvalidPathError: If the output directory is unusable.
            QueryParseError: If the query is malformed.
            OperationCancelledError: If cancelled or the timeout expires.
        """
        started = time.monotonic()
        options = self.options
        if cancel is None and options.timeout is not None:
            cancel = CancelToken(options.timeout)

        self.validate_output()
        result = ExportResult(
            vault_path=str(self.vault_root),
            output_path=str(self.output_root),
            dry_run=options.dry_run,
        )

        vault_files = self.scanner.walk(self.vault_root)
        result.files_scanned = len(vault_files)
        selected = self.select(vault_files)
        result.files_selected = len(selected)

        # Notes and assets alike, so embeds of images resolve.
        vault_resolver = PathResolver(self.scanner.list_paths(self.vault_root, None))
        if options.with_backlinks and selected:
            selected = self._add_backlinks(selected, vault_files, vault_resolver, result, cancel)

        exported_paths = [f.relative_path for f in selected]
        if self.normalizer.enabled:
            normalization = self.normalizer.build_file_map(exported_paths)
            file_map = normalization.file_map
            result.files_renamed = normalization.renamed_files
        else:
            file_map = {path: path for path in exported_paths}

        analyzer = ExportLinkAnalyzer(exported_paths, vault_resolver)
        asset_handler = AssetHandler(self.vault_root, analyzer)
        assets = asset_handler.discover_assets(selected) if options.include_assets else None
        asset_paths = list(assets.asset_files) if assets is not None else []

        ctx = _ExportContext(
            file_map=file_map,
            vault_resolver=vault_resolver,
            output_resolver=PathResolver(list(file_map.values()) + asset_paths),
            rewriter=ExportLinkRewriter(analyzer, options.link_strategy) if options.process_links else None,
        )

        processor = ParallelFileProcessor(options.workers)
        task_results = processor.process(
            selected,
            lambda file: self.export_file(file, ctx),
            cancel,
            label=lambda file: file.relative_path,
        )

        exports: list[FileExport] = []
        for task in task_results:
            if task.error is not None:
                result.errors[task.item.relative_path] = str(task.error)
                continue
            export = task.value
            exports.append(export)
            result.external_links_removed += export.external_links_removed
            result.external_links_converted += export.external_links_converted
            result.internal_links_updated += export.internal_links_updated
            if export.links_processed:
                result.files_with_links_processed += 1

        if cancel is not None:
            cancel.raise_if_cancelled(partial=result)

        if options.dry_run:
            result.exported_files = [export.output_path for export in exports]
        else:
            self.output_root.mkdir(parents=True, exist_ok=True)
            self._write(exports, result)
        result.files_exported = len(result.exported_files)

        if assets is not None:
            result.assets_missing = assets.missing_assets
            copied, errors = asset_handler.copy_assets(assets, self.output_root, options.dry_run)
            result.assets_copied = copied
            result.errors.update(errors)

        result.duration = time.monotonic() - started
        log.info(
            "Exported %d file(s) to %s (%d external link(s) removed, %d converted)",
            result.files_exported,
            self.output_root,
            result.external_links_removed,
            result.external_links_converted,
        )
        return result


def export_vault(vault_path: Path, output_path: Path, **kwargs) -> ExportResult:
    """Shorthand for ``ExportProcessor(ExportOptions(...)).process()``."""
    return ExportProcessor(ExportOptions(vault_path=vault_path, output_path=output_path, **kwargs)).process()

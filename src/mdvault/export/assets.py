"""Discover and copy assets referenced by exported files."""

from __future__ import annotations

import logging
import shutil
from collections.abc import Iterable
from pathlib import Path

from ..models import AssetDiscoveryResult, LinkCategory
from ..vault import VaultFile
from .analyzer import ExportLinkAnalyzer

log = logging.getLogger(__name__)


class AssetHandler:
    """Collect asset links of exported files and copy the assets alongside them.

    Assets keep their vault-relative location in the export.
    """

    def __init__(self, vault_root: Path, analyzer: ExportLinkAnalyzer):
        self.vault_root = vault_root
        self.analyzer = analyzer

    def discover_assets(self, files: Iterable[VaultFile]) -> AssetDiscoveryResult:
        result = AssetDiscoveryResult()
        missing: set[str] = set()

        for file in files:
            for analyzed in self.analyzer.analyze_file(file).links:
                if analyzed.category is not LinkCategory.ASSET:
                    continue
                if analyzed.resolved_path is None:
                    missing.add(analyzed.link.path)
                    continue
                referrers = result.asset_files.setdefault(analyzed.resolved_path, [])
                if file.relative_path not in referrers:
                    referrers.append(file.relative_path)

        result.missing_assets = sorted(missing)
        result.total_assets = len(result.asset_files)
        if missing:
            log.warning("%d referenced asset(s) not found in vault", len(missing))
        return result

    def copy_assets(
        self,
        result: AssetDiscoveryResult,
        output_root: Path,
        dry_run: bool = False,
    ) -> tuple[int, dict[str, str]]:
        """Copy discovered assets into ``output_root``.

        Returns:
            (number copied, mapping of asset path to error for failed copies)
        """
        copied = 0
        errors: dict[str, str] = {}
        for asset in sorted(result.asset_files):
            if dry_run:
                copied += 1
                continue
            destination = output_root / asset
            try:
                destination.parent.mkdir(parents=True, exist_ok=True)
                shutil.copy2(self.vault_root / asset, destination)
            except OSError as e:
                log.warning("Failed to copy asset %s: %s", asset, e)
                errors[asset] = str(e)
                continue
            copied += 1
        return copied, errors

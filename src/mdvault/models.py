"""Pydantic models for operation options and results."""

from enum import Enum
from pathlib import Path

from pydantic import BaseModel, Field

from .config import DEFAULT_IGNORE_PATTERNS, SEARCH_TIMEOUT_SECONDS


class LinkCategory(str, Enum):
    """Where a link points relative to an export selection."""

    INTERNAL = "internal"  # resolves to an exported file
    EXTERNAL = "external"  # vault file outside the selection, or missing
    ASSET = "asset"  # non-markdown file
    URL = "url"  # web address, never rewritten


class LinkStrategy(str, Enum):
    """How external links are rewritten during export."""

    REMOVE = "remove"
    URL = "url"


# =============================================================================
# Rename
# =============================================================================


class RenameOptions(BaseModel):
    """Options for a single file rename."""

    vault_root: Path
    ignore_patterns: list[str] = Field(default_factory=lambda: list(DEFAULT_IGNORE_PATTERNS))
    template: str | None = None  # used when no explicit target is given
    dry_run: bool = False
    workers: int | None = None
    use_search: bool = True  # try ripgrep before scanning the whole vault
    rg_path: str | None = None
    search_timeout: float = SEARCH_TIMEOUT_SECONDS
    rollback_on_failure: bool = False
    stop_on_error: bool = False


class RenameResult(BaseModel):
    """Outcome of renaming one file and updating links to it."""

    source_path: str
    target_path: str
    files_scanned: int = 0
    files_modified: int = 0
    links_updated: int = 0
    modified_files: list[str] = Field(default_factory=list)
    duration: float = 0.0  # seconds
    dry_run: bool = False
    used_search: bool = False  # candidates came from ripgrep
    errors: dict[str, str] = Field(default_factory=dict)  # path -> per-file failure


# =============================================================================
# Export
# =============================================================================


class LinkChange(BaseModel):
    """One link rewritten during export."""

    original_text: str
    new_text: str
    link_type: str
    category: LinkCategory
    position: int
    was_converted: bool = False  # True when a frontmatter URL was substituted


class LinkRewriteResult(BaseModel):
    original_content: str
    rewritten_content: str
    external_links_removed: int = 0
    external_links_converted: int = 0
    internal_links_updated: int = 0
    changes: list[LinkChange] = Field(default_factory=list)

    @property
    def changed(self) -> bool:
        return self.rewritten_content != self.original_content


class BacklinksDiscoveryResult(BaseModel):
    """Files found to link, directly or transitively, into an export selection."""

    backlink_files: list[str] = Field(default_factory=list)  # discovery order
    backlink_map: dict[str, list[str]] = Field(default_factory=dict)  # target -> linking files
    total_backlinks: int = 0
    processed_files: int = 0
    depth_reached: int = 0
    depth_limit_reached: bool = False


class FilenameNormalizationResult(BaseModel):
    file_map: dict[str, str] = Field(default_factory=dict)  # original -> new vault-relative path
    renamed_files: int = 0
    collisions: dict[str, list[str]] = Field(default_factory=dict)  # wanted path -> originals


class AssetDiscoveryResult(BaseModel):
    asset_files: dict[str, list[str]] = Field(default_factory=dict)  # asset -> referencing files
    missing_assets: list[str] = Field(default_factory=list)
    total_assets: int = 0


class ExportOptions(BaseModel):
    """Options for exporting part of a vault to a new root."""

    vault_path: Path
    output_path: Path
    query: str | None = None
    ignore_patterns: list[str] = Field(default_factory=lambda: list(DEFAULT_IGNORE_PATTERNS))
    dry_run: bool = False
    process_links: bool = True
    link_strategy: LinkStrategy = LinkStrategy.REMOVE
    include_assets: bool = False
    with_backlinks: bool = False
    slugify: bool = False
    flatten: bool = False
    workers: int | None = None
    timeout: float | None = None  # seconds for the whole export


class ExportResult(BaseModel):
    vault_path: str
    output_path: str
    files_scanned: int = 0
    files_selected: int = 0  # matched the query, before backlinks
    files_exported: int = 0
    exported_files: list[str] = Field(default_factory=list)  # output-relative paths
    backlinks_included: int = 0
    backlink_depth_limit_reached: bool = False
    files_renamed: int = 0
    files_with_links_processed: int = 0
    external_links_removed: int = 0
    external_links_converted: int = 0
    internal_links_updated: int = 0
    assets_copied: int = 0
    assets_missing: list[str] = Field(default_factory=list)
    dry_run: bool = False
    duration: float = 0.0
    errors: dict[str, str] = Field(default_factory=dict)


# =============================================================================
# Link check
# =============================================================================


class LinkProblem(BaseModel):
    """An internal link that does not resolve to exactly one vault file."""

    source_path: str
    target: str
    line: int
    kind: str  # "broken" or "ambiguous"
    candidates: list[str] = Field(default_factory=list)

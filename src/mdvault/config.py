"""Configuration management for mdvault.

This module contains the documented constants of the link engine and the
loader for per-vault settings. Precedence, lowest to highest: built-in
defaults, ``.vaultconfig`` at the vault root, environment variables. CLI
flags are applied on top by the caller.
"""

from __future__ import annotations

import os
from pathlib import Path

import yaml
from pydantic import BaseModel, Field, ValidationError


class ConfigurationError(Exception):
    """Raised when configuration is missing or invalid."""

    pass


# =============================================================================
# Link engine constants
# =============================================================================

# Rounds of breadth-first backlink expansion before giving up.
MAX_BACKLINK_DEPTH = 10

# Hard ceiling on worker threads regardless of configuration or CPU count.
MAX_WORKERS = 8

# Task queue capacity is workers * QUEUE_SIZE_FACTOR; producers block when full.
QUEUE_SIZE_FACTOR = 10

# Batches smaller than workers * SEQUENTIAL_THRESHOLD_FACTOR run without the pool.
SEQUENTIAL_THRESHOLD_FACTOR = 2

# Timeout for the external candidate-search subprocess.
SEARCH_TIMEOUT_SECONDS = 30.0

# How often the search subprocess is polled for cancellation.
SEARCH_POLL_INTERVAL_SECONDS = 0.1

DEFAULT_IGNORE_PATTERNS: tuple[str, ...] = (".obsidian/*", "*.tmp")

# Frontmatter fields searched, in order, by the URL rewrite strategy.
URL_FRONTMATTER_FIELDS: tuple[str, ...] = ("url", "link", "source", "website")

ASSET_EXTENSIONS: frozenset[str] = frozenset(
    {
        ".png", ".jpg", ".jpeg", ".gif", ".webp", ".svg", ".bmp",
        ".pdf", ".doc", ".docx", ".xls", ".xlsx", ".ppt", ".pptx",
        ".csv", ".txt", ".zip", ".mp3", ".mp4", ".mov", ".avi", ".wav",
    }
)

MARKDOWN_EXTENSION = ".md"

DEFAULT_RENAME_TEMPLATE = "{{ created | date('%Y%m%d%H%M%S') }}-{{ filename_without_datestring | slug_underscore }}.md"

CONFIG_FILENAME = ".vaultconfig"


# =============================================================================
# Runtime configuration
# =============================================================================


class VaultConfig(BaseModel):
    """Settings resolved for one vault."""

    vault_root: Path = Field(default_factory=Path.cwd)
    ignore: list[str] = Field(default_factory=lambda: list(DEFAULT_IGNORE_PATTERNS))
    workers: int | None = None  # None means "use CPU count", still capped by MAX_WORKERS
    link_strategy: str = "remove"
    rename_template: str = DEFAULT_RENAME_TEMPLATE
    search_timeout: float = SEARCH_TIMEOUT_SECONDS
    rg_path: str | None = None


def get_vault_root(explicit: str | Path | None = None) -> Path:
    """Resolve the vault root directory.

    Args:
        explicit: Path given on the command line, if any.

    Returns:
        Absolute vault root.

    Raises:
        ConfigurationError: If the resolved path is not a directory.
    """
    if explicit is not None:
        root = Path(explicit)
    else:
        env_root = os.environ.get("MDVAULT_VAULT_ROOT")
        root = Path(env_root) if env_root else Path.cwd()

    root = root.expanduser().resolve()
    if not root.is_dir():
        raise ConfigurationError(f"Vault root is not a directory: {root}")
    return root


def _read_config_file(vault_root: Path) -> dict:
    config_path = vault_root / CONFIG_FILENAME
    if not config_path.exists():
        return {}

    try:
        data = yaml.safe_load(config_path.read_text(encoding="utf-8"))
    except (OSError, yaml.YAMLError) as e:
        raise ConfigurationError(f"Cannot read {config_path}: {e}") from e

    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ConfigurationError(f"{config_path} must contain a YAML mapping")
    return data


def _env_overrides() -> dict:
    overrides: dict = {}

    workers = os.environ.get("MDVAULT_WORKERS")
    if workers:
        try:
            overrides["workers"] = int(workers)
        except ValueError as e:
            raise ConfigurationError(f"MDVAULT_WORKERS must be an integer, got {workers!r}") from e

    rg_path = os.environ.get("MDVAULT_RG_PATH")
    if rg_path:
        overrides["rg_path"] = rg_path

    return overrides


def load_config(vault_root: str | Path | None = None) -> VaultConfig:
    """Load configuration for a vault.

    Args:
        vault_root: Explicit vault root; falls back to MDVAULT_VAULT_ROOT or cwd.

    Returns:
        Validated VaultConfig.

    Raises:
        ConfigurationError: If the config file or environment holds invalid values.
    """
    root = get_vault_root(vault_root)

    values: dict = {"vault_root": root}
    values.update(_read_config_file(root))
    values.update(_env_overrides())
    values["vault_root"] = root

    try:
        return VaultConfig(**values)
    except ValidationError as e:
        raise ConfigurationError(f"Invalid configuration for {root}: {e}") from e

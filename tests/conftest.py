"""Shared test fixtures for the mdvault test suite.

Design:
- vault: isolated vault in a temp directory, MDVAULT_VAULT_ROOT pointing at it
- runner: CliRunner for the mdv command
- markers: slow (large worker-pool batches), requires_rg (ripgrep on PATH)
"""

import logging
import shutil
from pathlib import Path

import pytest
from click.testing import CliRunner

# ─────────────────────────────────────────────────────────────────────────────
# Markers
# ─────────────────────────────────────────────────────────────────────────────


def pytest_configure(config: pytest.Config) -> None:
    config.addinivalue_line(
        "markers",
        "slow: marks tests as slow (deselect with '-m \"not slow\"')",
    )
    config.addinivalue_line(
        "markers",
        "requires_rg: needs the ripgrep binary on PATH",
    )


def pytest_collection_modifyitems(config: pytest.Config, items: list[pytest.Item]) -> None:
    if shutil.which("rg") is not None:
        return

    skip_rg = pytest.mark.skip(reason="ripgrep (rg) not installed")
    for item in items:
        if "requires_rg" in item.keywords:
            item.add_marker(skip_rg)


# ─────────────────────────────────────────────────────────────────────────────
# Core Fixtures
# ─────────────────────────────────────────────────────────────────────────────


@pytest.fixture
def runner() -> CliRunner:
    """CLI runner with isolated environment."""
    return CliRunner()


@pytest.fixture
def vault(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    """Empty vault directory with MDVAULT_* settings isolated.

    Usage:
        def test_something(vault):
            (vault / "note.md").write_text("# Note")
    """
    root = tmp_path / "vault"
    root.mkdir()

    monkeypatch.setenv("MDVAULT_VAULT_ROOT", str(root))
    for name in ("MDVAULT_WORKERS", "MDVAULT_RG_PATH", "MDVAULT_QUIET", "MDVAULT_LOG_LEVEL"):
        monkeypatch.delenv(name, raising=False)
    return root


@pytest.fixture(autouse=True)
def _reset_mdvault_logging():
    """Drop handlers installed by the CLI so each test starts clean."""
    yield
    logger = logging.getLogger("mdvault")
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
    logger.setLevel(logging.NOTSET)
    logger.propagate = True

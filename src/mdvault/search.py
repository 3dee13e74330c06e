"""Candidate pre-filtering with ripgrep.

Renaming a file only needs to touch documents that could link to it. A
ripgrep pass narrows the vault down to markdown files mentioning the
file's name after a link opener; any failure (ripgrep missing, bad exit
status, timeout) surfaces as ``SubprocessUnavailableError`` so callers can
fall back to scanning every file.
"""

from __future__ import annotations

import logging
import os
import posixpath
import shutil
import subprocess
from pathlib import Path
from urllib.parse import quote

from .config import SEARCH_POLL_INTERVAL_SECONDS, SEARCH_TIMEOUT_SECONDS
from .errors import OperationCancelledError, SubprocessUnavailableError
from .parser.links import url_encode
from .workerpool import CancelToken

log = logging.getLogger(__name__)

_COMMON_RG_LOCATIONS = (
    "/usr/local/bin/rg",
    "/opt/homebrew/bin/rg",
    "/usr/bin/rg",
)

_RG_META = set("\\.+*?()|[]{}^$")


def rg_escape(text: str) -> str:
    """Escape regex metacharacters for ripgrep's Rust regex syntax."""
    return "".join(f"\\{ch}" if ch in _RG_META else ch for ch in text)


def name_variants(relative_path: str) -> list[str]:
    """Spellings of a file's name that a link to it may contain."""
    stem = posixpath.splitext(posixpath.basename(relative_path))[0]
    variants = [
        stem,
        url_encode(stem),
        quote(stem),
        stem.replace(" ", "_"),
        stem.replace("_", " "),
    ]
    seen: list[str] = []
    for variant in variants:
        if variant and variant not in seen:
            seen.append(variant)
    return seen


def build_link_pattern(relative_path: str) -> str:
    """Regex matching a wiki, markdown or embed link that mentions the file.

    Matches any link opener followed on the same line by a
    spelling of the file name. The caller parses candidates properly.
    """
    names = "|".join(rg_escape(v) for v in name_variants(relative_path))
    return rf"(\[\[|\]\()[^\n]*?({names})"


def find_ripgrep(configured: str | None = None) -> str:
    """Locate the ripgrep executable.

    Raises:
        SubprocessUnavailableError: If ripgrep cannot be found.
    """
    candidates = [configured, os.environ.get("MDVAULT_RG_PATH"), shutil.which("rg")]
    candidates.extend(_COMMON_RG_LOCATIONS)
    for candidate in candidates:
        if candidate and os.path.isfile(candidate) and os.access(candidate, os.X_OK):
            return candidate
    raise SubprocessUnavailableError("rg", "executable not found")


class CandidateSearcher:
    """Run ripgrep to find markdown files that may link to a path.

    Args:
        rg_path: Explicit ripgrep location; otherwise discovered.
        timeout: Seconds before the subprocess is killed.
    """

    def __init__(self, rg_path: str | None = None, timeout: float = SEARCH_TIMEOUT_SECONDS):
        self.rg_path = rg_path
        self.timeout = timeout

    def search(self, root: Path, pattern: str, cancel: CancelToken | None = None) -> list[str]:
        """Return vault-relative paths of markdown files matching ``pattern``.

        Raises:
            SubprocessUnavailableError: On missing ripgrep, error exit or timeout.
            OperationCancelledError: If ``cancel`` fires while ripgrep runs.
        """
        executable = find_ripgrep(self.rg_path)
        cmd = [
            executable,
            "--files-with-matches",
            "--ignore-case",
            "--hidden",
            "--no-ignore",
            "--no-messages",
            "--glob",
            "*.md",
            "--regexp",
            pattern,
            str(root),
        ]
        log.debug("Running candidate search: %s", " ".join(cmd))

        try:
            proc = subprocess.Popen(
                cmd,
                stdout=subprocess.PIPE,
                stderr=subprocess.PIPE,
                text=True,
            )
        except OSError as e:
            raise SubprocessUnavailableError("rg", str(e)) from e

        stdout, stderr = self._communicate(proc, cancel)

        # Exit status 1 means "no matches", not failure.
        if proc.returncode == 1:
            return []
        if proc.returncode != 0:
            raise SubprocessUnavailableError(
                "rg", f"exit status {proc.returncode}: {stderr.strip()}"
            )

        paths = []
        for line in stdout.splitlines():
            line = line.strip()
            if not line:
                continue
            try:
                paths.append(Path(line).resolve().relative_to(root.resolve()).as_posix())
            except ValueError:
                log.debug("Ignoring search result outside vault: %s", line)
        return sorted(set(paths))

    def _communicate(self, proc: subprocess.Popen, cancel: CancelToken | None) -> tuple[str, str]:
        waited = 0.0
        while True:
            try:
                return proc.communicate(timeout=SEARCH_POLL_INTERVAL_SECONDS)
            except subprocess.TimeoutExpired:
                waited += SEARCH_POLL_INTERVAL_SECONDS
                if cancel is not None and cancel.cancelled:
                    self._kill(proc)
                    raise OperationCancelledError(cancel.reason) from None
                if waited >= self.timeout:
                    self._kill(proc)
                    raise SubprocessUnavailableError(
                        "rg", f"timed out after {self.timeout:.0f}s"
                    ) from None

    @staticmethod
    def _kill(proc: subprocess.Popen) -> None:
        proc.kill()
        proc.communicate()

    def find_candidates(
        self,
        root: Path,
        relative_path: str,
        cancel: CancelToken | None = None,
    ) -> list[str]:
        """Markdown files that may contain links to ``relative_path``."""
        return self.search(root, build_link_pattern(relative_path), cancel)

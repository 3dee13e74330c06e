"""Core data model: links, vault files and file moves."""

from __future__ import annotations

import copy
import os
import posixpath
import re
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from pathlib import Path
from typing import TYPE_CHECKING, Any, NamedTuple

import frontmatter
import yaml

from .errors import InvalidPathError, ParseError

if TYPE_CHECKING:
    from collections.abc import Iterable

# Leading YAML block delimited by "---" lines
_FRONTMATTER_BLOCK = re.compile(
    r"\A---[ \t]*\r?\n(?:.*?\r?\n)??---[ \t]*(?:\r?\n|\Z)",
    re.DOTALL,
)


class LinkType(str, Enum):
    """Syntax a link was written in."""

    WIKI = "wiki"  # [[target]] / [[target|alias]]
    MARKDOWN = "markdown"  # [text](target)
    EMBED = "embed"  # ![[target]]


class LinkEncoding(str, Enum):
    """How a markdown link target was written."""

    NONE = "none"
    URL = "url"  # percent-encoded, e.g. file%20name.md
    ANGLE = "angle"  # <file name.md>


@dataclass
class Link:
    """A link found in a document body.

    ``start``/``end`` are offsets into the body the link was extracted from;
    any edit before ``start`` invalidates them.
    """

    type: LinkType
    target: str  # as written, without alias or angle brackets; may hold %XX and #fragment
    path: str  # decoded target with the fragment removed
    text: str  # display text; the target for plain wiki-links
    start: int
    end: int
    fragment: str = ""
    alias: str | None = None
    encoding: LinkEncoding = LinkEncoding.NONE
    raw: str = ""

    @property
    def has_alias(self) -> bool:
        return self.alias is not None and self.alias != self.target


class FileMove(NamedTuple):
    """A file moving from one vault-relative path to another."""

    old_path: str
    new_path: str


def normalize_vault_path(path: str) -> str:
    """Bring a vault-relative path into canonical form.

    Backslashes become '/', '.' segments and leading slashes are dropped and
    '..' segments are folded.

    Raises:
        InvalidPathError: If the path is empty or escapes the vault root.
    """
    cleaned = path.replace("\\", "/").strip()
    cleaned = posixpath.normpath(cleaned.lstrip("/")) if cleaned else ""
    if not cleaned or cleaned == ".":
        raise InvalidPathError("Empty vault path", path)
    if cleaned == ".." or cleaned.startswith("../"):
        raise InvalidPathError(f"Path escapes the vault: {path}", path)
    return cleaned


def relative_to_vault(path: Path, vault_root: Path) -> str:
    """Vault-relative, '/'-separated form of an absolute path."""
    try:
        rel = path.resolve().relative_to(vault_root.resolve())
    except ValueError as e:
        raise InvalidPathError(f"Path is outside the vault: {path}", str(path)) from e
    return normalize_vault_path(rel.as_posix())


class VaultFile:
    """One markdown document of a vault.

    Assigning ``body`` drops the cached link list; ``links`` re-extracts lazily.
    """

    def __init__(
        self,
        relative_path: str,
        body: str = "",
        frontmatter: dict[str, Any] | None = None,
        path: Path | None = None,
        modified: datetime | None = None,
        frontmatter_block: str = "",
    ):
        self.relative_path = normalize_vault_path(relative_path)
        self.path = path if path is not None else Path(self.relative_path)
        self.frontmatter: dict[str, Any] = frontmatter if frontmatter is not None else {}
        self.modified = modified
        self._body = body
        self._links: list[Link] | None = None
        self._frontmatter_block = frontmatter_block
        # Frontmatter as parsed; serialize() re-dumps YAML only when it changed.
        self._frontmatter_snapshot = copy.deepcopy(self.frontmatter) if frontmatter_block else None

    def __repr__(self) -> str:
        return f"VaultFile({self.relative_path!r})"

    @property
    def body(self) -> str:
        return self._body

    @body.setter
    def body(self, value: str) -> None:
        self._body = value
        self._links = None

    @property
    def links(self) -> list[Link]:
        """Internal links of the current body, extracted on first access."""
        if self._links is None:
            from .parser.links import extract_links

            self._links = extract_links(self._body)
        return self._links

    @property
    def stem(self) -> str:
        return posixpath.splitext(posixpath.basename(self.relative_path))[0]

    @classmethod
    def from_text(
        cls,
        text: str,
        relative_path: str,
        path: Path | None = None,
        modified: datetime | None = None,
    ) -> VaultFile:
        """Parse file content into frontmatter and body.

        Raises:
            ParseError: If a frontmatter block is present but is not valid YAML.
        """
        match = _FRONTMATTER_BLOCK.match(text)
        if not match:
            return cls(relative_path, body=text, path=path, modified=modified)

        block = match.group(0)
        try:
            post = frontmatter.loads(block)
        except (yaml.YAMLError, ValueError, TypeError) as e:
            raise ParseError(relative_path, f"invalid frontmatter: {e}") from e

        return cls(
            relative_path,
            body=text[match.end():],
            frontmatter=dict(post.metadata),
            path=path,
            modified=modified,
            frontmatter_block=block,
        )

    @classmethod
    def load(cls, path: Path, vault_root: Path) -> VaultFile:
        """Read and parse a file from disk.

        Raises:
            ParseError: If the file cannot be read or decoded.
        """
        relative_path = relative_to_vault(path, vault_root)
        try:
            text = path.read_text(encoding="utf-8")
            mtime = datetime.fromtimestamp(path.stat().st_mtime)
        except (OSError, UnicodeDecodeError) as e:
            raise ParseError(relative_path, str(e)) from e
        return cls.from_text(text, relative_path, path=path, modified=mtime)

    def serialize(self) -> str:
        """Render the file back to text.

        An untouched frontmatter block is emitted verbatim so that only the
        body changes on disk.
        """
        if self._frontmatter_block and self.frontmatter == self._frontmatter_snapshot:
            return self._frontmatter_block + self._body

        if not self.frontmatter:
            return self._body.lstrip("\n") if self._frontmatter_block else self._body

        dumped = yaml.safe_dump(
            self.frontmatter,
            sort_keys=False,
            allow_unicode=True,
            default_flow_style=False,
        )
        separator = "\n" if self._body and not self._body.startswith("\n") else ""
        return f"---\n{dumped}---\n{separator}{self._body}"

    def get_string(self, key: str) -> str | None:
        value = self.frontmatter.get(key)
        return value if isinstance(value, str) else None


def index_by_path(files: Iterable[VaultFile]) -> dict[str, VaultFile]:
    return {f.relative_path: f for f in files}


def write_atomic(path: Path, text: str) -> None:
    """Write via a sibling ``.tmp`` file renamed over ``path``.

    Raises:
        OSError: If writing or renaming fails; the temp file is removed first.
    """
    tmp_path = path.with_name(path.name + ".tmp")
    try:
        tmp_path.write_text(text, encoding="utf-8")
        os.replace(tmp_path, path)
    except OSError:
        tmp_path.unlink(missing_ok=True)
        raise

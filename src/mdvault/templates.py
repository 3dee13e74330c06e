"""Filename templates for rename targets.

Templates are Jinja2 strings rendered against one file, e.g.::

    {{ created | date('%Y%m%d%H%M%S') }}-{{ filename_without_datestring | slug_underscore }}.md

Frontmatter fields are available by name and under ``fm``; unknown names
render as empty strings.
"""

from __future__ import annotations

import posixpath
import re
import uuid
from datetime import date, datetime
from typing import Any

from jinja2 import BaseLoader, Environment, TemplateError

from .config import ConfigurationError
from .query import parse_date
from .vault import VaultFile

_DATESTRING_PREFIX = re.compile(r"^(\d{14})-")
_NON_SLUG = re.compile(r"[^a-z0-9]+")


def slug(value: Any) -> str:
    return _NON_SLUG.sub("-", str(value).lower()).strip("-")


def slug_underscore(value: Any) -> str:
    return _NON_SLUG.sub("_", str(value).lower()).strip("_")


def format_date(value: Any, fmt: str = "%Y-%m-%d") -> str:
    """Format a date, datetime or date-like string; other values pass through."""
    when = parse_date(value) if value not in (None, "") else None
    if when is None:
        return "" if value is None else str(value)
    return when.strftime(fmt)


def split_datestring(stem: str) -> tuple[str, str]:
    """Split a leading 'YYYYMMDDHHMMSS-' prefix off a file stem."""
    match = _DATESTRING_PREFIX.match(stem)
    if not match:
        return "", stem
    return match.group(1), stem[match.end():]


def _get_env() -> Environment:
    """Jinja2 environment for plain-text filenames (no autoescaping)."""
    env = Environment(loader=BaseLoader(), autoescape=False, keep_trailing_newline=False)
    env.filters["slug"] = slug
    env.filters["slug_underscore"] = slug_underscore
    env.filters["date"] = format_date
    return env


class TemplateEngine:
    """Render filename templates.

    Args:
        now: Fixed "current" time, mainly for tests.
    """

    def __init__(self, now: datetime | None = None):
        self.now = now
        self._env = _get_env()

    def variables(self, file: VaultFile) -> dict[str, Any]:
        now = self.now or datetime.now()
        stem = file.stem
        datestring, bare_stem = split_datestring(stem)
        modified = file.modified or now
        parent = posixpath.dirname(file.relative_path)

        created = file.frontmatter.get("created")
        if not isinstance(created, (str, date, datetime)) or created == "":
            created = modified

        values: dict[str, Any] = dict(file.frontmatter)
        values.update(
            {
                "fm": file.frontmatter,
                "current_date": now.strftime("%Y-%m-%d"),
                "current_datetime": now.strftime("%Y-%m-%dT%H:%M:%SZ"),
                "filename": stem,
                "filename_without_datestring": bare_stem,
                "existing_datestring": datestring,
                "relative_path": file.relative_path,
                "parent_dir": posixpath.basename(parent) if parent else "",
                "file_mtime": modified.strftime("%Y-%m-%d"),
                "file_mtime_iso": modified.strftime("%Y-%m-%dT%H:%M:%SZ"),
                "uuid": str(uuid.uuid4()),
                "created": created,
            }
        )
        return values

    def process(self, template: str, file: VaultFile) -> str:
        """Render ``template`` for ``file``.

        Raises:
            ConfigurationError: If the template is malformed.
        """
        try:
            return self._env.from_string(template).render(self.variables(file)).strip()
        except TemplateError as e:
            raise ConfigurationError(f"Invalid filename template {template!r}: {e}") from e

"""Frontmatter query language for selecting files to export.

Examples::

    status = published
    tags contains python AND created after 2024-01-01
    priority >= 3 OR path contains "projects/"
    modified within "2 weeks"

``AND`` binds tighter than ``OR``. Values may be quoted. ``path`` and
``filename`` are pseudo-fields; everything else is looked up in frontmatter.
"""

from __future__ import annotations

import re
from collections.abc import Iterable
from dataclasses import dataclass
from datetime import date, datetime, timedelta
from typing import Any

from .errors import QueryParseError
from .vault import VaultFile

_TOKEN = re.compile(
    r"""\s*(?:
        (?P<quoted>"[^"]*"|'[^']*')
      | (?P<op>>=|<=|!=|=|>|<)
      | (?P<word>[^\s=!<>"']+)
    )""",
    re.VERBOSE,
)

_WORD_OPERATORS = {"contains", "after", "before", "within"}

_DATE_FORMATS = (
    "%Y-%m-%d",
    "%Y-%m-%dT%H:%M:%SZ",
    "%Y-%m-%dT%H:%M:%S",
    "%Y-%m-%d %H:%M:%S",
    "%b %d, %Y",
    "%B %d, %Y",
    "%Y/%m/%d",
)

_DURATION = re.compile(r"^(\d+)\s*(days?|weeks?|months?|years?)$")
_DURATION_DAYS = {"day": 1, "week": 7, "month": 30, "year": 365}


def _as_text(value: Any) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (date, datetime)):
        return value.isoformat()
    return str(value)


def _as_float(value: Any) -> float | None:
    if isinstance(value, bool):
        return None
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


def parse_date(value: Any) -> datetime | None:
    """Interpret a frontmatter value or query literal as a datetime."""
    if isinstance(value, datetime):
        return value.replace(tzinfo=None)
    if isinstance(value, date):
        return datetime(value.year, value.month, value.day)
    text = str(value).strip()
    for fmt in _DATE_FORMATS:
        try:
            return datetime.strptime(text, fmt)
        except ValueError:
            continue
    try:
        return datetime.fromisoformat(text).replace(tzinfo=None)
    except ValueError:
        return None


def parse_duration(text: str) -> timedelta | None:
    """Parse '7 days', '2 weeks', '3 months' or '1 year' (months are 30 days)."""
    match = _DURATION.match(text.strip().lower())
    if not match:
        return None
    count, unit = int(match.group(1)), match.group(2).rstrip("s")
    return timedelta(days=count * _DURATION_DAYS[unit])


@dataclass
class Condition:
    field: str
    operator: str
    value: str

    def field_value(self, file: VaultFile) -> Any:
        if self.field == "path":
            return file.relative_path
        if self.field == "filename":
            return file.stem
        if self.field == "modified" and "modified" not in file.frontmatter:
            return file.modified
        return file.frontmatter.get(self.field)

    def matches(self, file: VaultFile) -> bool:
        actual = self.field_value(file)
        op = self.operator

        if op == "!=":
            return not self._equals(actual)
        if actual is None:
            return False
        if op == "=":
            return self._equals(actual)
        if op == "contains":
            if isinstance(actual, list):
                return any(_as_text(item).lower() == self.value.lower() for item in actual)
            return self.value.lower() in _as_text(actual).lower()
        if op in (">", "<", ">=", "<="):
            return self._compare(actual)
        return self._compare_date(actual)

    def _equals(self, actual: Any) -> bool:
        if actual is None:
            return False
        if isinstance(actual, list):
            return any(_as_text(item) == self.value for item in actual)
        return _as_text(actual) == self.value

    def _compare(self, actual: Any) -> bool:
        left, right = _as_float(actual), _as_float(self.value)
        if left is None or right is None:
            left, right = _as_text(actual), self.value
        if self.operator == ">":
            return left > right
        if self.operator == "<":
            return left < right
        if self.operator == ">=":
            return left >= right
        return left <= right

    def _compare_date(self, actual: Any) -> bool:
        when = parse_date(actual)
        if when is None:
            return False
        if self.operator == "within":
            span = parse_duration(self.value)
            return span is not None and when >= datetime.now() - span
        limit = parse_date(self.value)
        if limit is None:
            return False
        return when > limit if self.operator == "after" else when < limit


@dataclass
class And:
    parts: list

    def matches(self, file: VaultFile) -> bool:
        return all(part.matches(file) for part in self.parts)


@dataclass
class Or:
    parts: list

    def matches(self, file: VaultFile) -> bool:
        return any(part.matches(file) for part in self.parts)


def _tokenize(query: str) -> list[tuple[str, str]]:
    tokens = []
    pos = 0
    text = query.rstrip()
    while pos < len(text):
        match = _TOKEN.match(text, pos)
        if not match or match.end() == pos:
            raise QueryParseError(query, f"unexpected character at position {pos}")
        pos = match.end()
        if match.group("quoted"):
            tokens.append(("value", match.group("quoted")[1:-1]))
        elif match.group("op"):
            tokens.append(("op", match.group("op")))
        else:
            word = match.group("word")
            lowered = word.lower()
            if lowered in ("and", "or"):
                tokens.append((lowered, word))
            elif lowered in _WORD_OPERATORS:
                tokens.append(("op", lowered))
            else:
                tokens.append(("value", word))
    return tokens


def parse_query(query: str) -> And | Or | Condition:
    """Parse a query string into an expression with a ``matches(file)`` method.

    Raises:
        QueryParseError: If the query is empty or malformed.
    """
    tokens = _tokenize(query)
    if not tokens:
        raise QueryParseError(query, "empty query")

    alternatives: list = []
    current: list = []
    i = 0
    while i < len(tokens):
        if len(tokens) - i < 3:
            raise QueryParseError(query, "expected 'field operator value'")
        (kind_f, field), (kind_o, operator), (kind_v, value) = tokens[i:i + 3]
        if kind_f != "value" or kind_o != "op" or kind_v != "value":
            raise QueryParseError(query, f"expected 'field operator value' near '{field}'")
        current.append(Condition(field, operator, value))
        i += 3

        if i == len(tokens):
            break
        kind, word = tokens[i]
        if kind == "or":
            alternatives.append(current)
            current = []
        elif kind != "and":
            raise QueryParseError(query, f"expected AND or OR, got '{word}'")
        i += 1
        if i == len(tokens):
            raise QueryParseError(query, f"dangling {word.upper()}")

    alternatives.append(current)
    groups = [group[0] if len(group) == 1 else And(group) for group in alternatives]
    return groups[0] if len(groups) == 1 else Or(groups)


def filter_files(files: Iterable[VaultFile], query: str) -> list[VaultFile]:
    """Files matching ``query``, in input order."""
    expression = parse_query(query)
    return [f for f in files if expression.matches(f)]

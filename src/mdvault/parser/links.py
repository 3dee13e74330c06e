"""Link extraction and re-rendering for wiki, markdown and embed links.

Bodies are treated as opaque text: only the spans occupied by recognized
links are ever read or rewritten. Extraction order is by start offset, and
rewrites go through ``apply_replacements`` which copies untouched text
between non-overlapping spans.
"""

from __future__ import annotations

import re
from collections.abc import Iterable
from urllib.parse import unquote

from ..vault import Link, LinkEncoding, LinkType

# [[target]], [[target|alias]], [[target#heading]], ![[embed]]
WIKI_PATTERN = re.compile(r"(!?)\[\[([^\[\]\n]+?)\]\]")

# Opening half of [text](target); the closing paren is found by balancing.
MARKDOWN_OPEN_PATTERN = re.compile(r"\[([^\]\n]*)\]\(")

URL_PREFIXES = ("http://", "https://", "ftp://", "mailto:", "tel:", "www.")

# Targets containing a web domain are URLs unless they name a local file.
_DOMAIN_MARKERS = (".com", ".org", ".net", ".edu")
_LOCAL_FILE_SUFFIXES = (".md", ".png", ".jpg", ".pdf")

# Characters percent-encoded in markdown link targets, the way the editor writes them.
_URL_ENCODE_MAP = {
    "%": "%25",
    " ": "%20",
    "'": "%27",
    '"': "%22",
    "(": "%28",
    ")": "%29",
    "[": "%5B",
    "]": "%5D",
    "{": "%7B",
    "}": "%7D",
    "#": "%23",
}


def url_encode(path: str) -> str:
    """Percent-encode the characters the editor encodes in link targets."""
    return "".join(_URL_ENCODE_MAP.get(ch, ch) for ch in path)


def needs_url_encoding(path: str) -> bool:
    return any(ch in _URL_ENCODE_MAP for ch in path)


def decode_target(target: str) -> str:
    """URL-decode a target if it contains percent escapes."""
    if "%" not in target:
        return target
    return unquote(target)


def split_target(target: str) -> tuple[str, str]:
    """Split a raw target into (decoded path, decoded fragment).

    The fragment separator is located before decoding so that an encoded
    '%23' stays part of the file name.
    """
    path, sep, fragment = target.partition("#")
    return decode_target(path.strip()), decode_target(fragment.strip()) if sep else ""


def is_url(target: str) -> bool:
    lowered = target.strip().lower()
    return lowered.startswith(URL_PREFIXES)


def is_internal_link(target: str) -> bool:
    """Check whether a link target refers to something inside the vault.

    Anything with a URL scheme is external, as is a bare domain such as
    ``example.com/page`` unless it names a local markdown or media file.
    """
    lowered = target.strip().lower()
    if not lowered:
        return False
    if lowered.startswith(URL_PREFIXES):
        return False
    if any(marker in lowered for marker in _DOMAIN_MARKERS):
        return lowered.endswith(_LOCAL_FILE_SUFFIXES)
    return True


def _split_alias(inner: str) -> tuple[str, str | None]:
    # Inside tables the pipe is escaped as \|
    if "\\|" in inner:
        target, _, alias = inner.partition("\\|")
        return target, alias
    if "|" in inner:
        target, _, alias = inner.partition("|")
        return target, alias
    return inner, None


def _find_closing_paren(content: str, start: int) -> int:
    """Index of the ')' closing a link target that starts at ``start``, or -1."""
    depth = 1
    for i in range(start, len(content)):
        ch = content[i]
        if ch == "\n":
            return -1
        if ch == "(":
            depth += 1
        elif ch == ")":
            depth -= 1
            if depth == 0:
                return i
    return -1


def _wiki_links(content: str) -> list[Link]:
    links = []
    for match in WIKI_PATTERN.finditer(content):
        is_embed = match.group(1) == "!"
        target, alias = _split_alias(match.group(2))
        target = target.strip()
        if not target:
            continue
        path, fragment = split_target(target)
        links.append(
            Link(
                type=LinkType.EMBED if is_embed else LinkType.WIKI,
                target=target,
                path=path,
                text=alias if alias is not None else target,
                start=match.start(),
                end=match.end(),
                fragment=fragment,
                alias=alias,
                raw=match.group(0),
            )
        )
    return links


def _markdown_links(content: str) -> list[Link]:
    links = []
    for match in MARKDOWN_OPEN_PATTERN.finditer(content):
        close = _find_closing_paren(content, match.end())
        if close == -1:
            continue

        inner = content[match.end():close].strip()
        encoding = LinkEncoding.NONE
        if inner.startswith("<") and inner.endswith(">"):
            inner = inner[1:-1]
            encoding = LinkEncoding.ANGLE
        elif "%" in inner:
            encoding = LinkEncoding.URL

        if not inner:
            continue

        path, fragment = split_target(inner)
        links.append(
            Link(
                type=LinkType.MARKDOWN,
                target=inner,
                path=path,
                text=match.group(1),
                start=match.start(),
                end=close + 1,
                fragment=fragment,
                encoding=encoding,
                raw=content[match.start():close + 1],
            )
        )
    return links


def extract_links(content: str, include_urls: bool = False) -> list[Link]:
    """Extract links from a document body.

    Wiki-links and embeds are matched first; markdown links overlapping one
    of them are dropped.

    Args:
        content: Document body (without frontmatter).
        include_urls: Keep links whose target is a web URL.

    Returns:
        Links ordered by start offset.
    """
    links = _wiki_links(content)
    taken = [(link.start, link.end) for link in links]

    for link in _markdown_links(content):
        if any(link.start < end and start < link.end for start, end in taken):
            continue
        links.append(link)

    if not include_urls:
        links = [link for link in links if is_internal_link(link.target)]

    links.sort(key=lambda link: link.start)
    return links


def _strip_md(path: str) -> str:
    return path[:-3] if path.lower().endswith(".md") else path


def render_link(link: Link, new_path: str) -> str:
    """Render ``link`` pointing at ``new_path`` in its original syntax.

    Fragment and alias survive. Wiki-links and embeds drop the ``.md``
    extension; markdown links are percent-encoded when they were encoded
    before or when the new path contains characters that need it.
    """
    if link.type in (LinkType.WIKI, LinkType.EMBED):
        inner = _strip_md(new_path)
        if link.fragment:
            inner += f"#{link.fragment}"
        if link.type is LinkType.EMBED:
            if link.alias is not None:
                inner += f"|{link.alias}"
            return f"![[{inner}]]"
        if link.has_alias:
            separator = "\\|" if "\\|" in link.raw else "|"
            inner += f"{separator}{link.alias}"
        return f"[[{inner}]]"

    if link.encoding is LinkEncoding.ANGLE:
        target = new_path + (f"#{link.fragment}" if link.fragment else "")
        return f"[{link.text}](<{target}>)"

    if link.encoding is LinkEncoding.URL or needs_url_encoding(new_path):
        target = url_encode(new_path)
        if link.fragment:
            target += f"#{url_encode(link.fragment)}"
    else:
        target = new_path + (f"#{link.fragment}" if link.fragment else "")
    return f"[{link.text}]({target})"


def apply_replacements(content: str, replacements: Iterable[tuple[int, int, str]]) -> str:
    """Substitute text for a set of non-overlapping spans.

    Args:
        content: Original text the spans were computed against.
        replacements: ``(start, end, new_text)`` triples in any order.

    Returns:
        The rewritten text; untouched regions are copied as-is.

    Raises:
        ValueError: If two spans overlap or a span lies outside ``content``.
    """
    spans = sorted(replacements, key=lambda r: (r[0], r[1]))
    if not spans:
        return content

    parts: list[str] = []
    cursor = 0
    for start, end, text in spans:
        if start < cursor:
            raise ValueError(f"Overlapping replacement span at {start}")
        if start > end or end > len(content):
            raise ValueError(f"Replacement span [{start}, {end}) outside content")
        parts.append(content[cursor:start])
        parts.append(text)
        cursor = end
    parts.append(content[cursor:])
    return "".join(parts)

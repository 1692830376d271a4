"""
Two-phase placeholder handling.

Compilation leaves structural placeholders in the artifact: ``{{ name }}``
merge fields and ``TRACK_TOKEN_<campaign>_<index>`` click markers. Rendering
replaces them per recipient. Merge fields are found by a small scanner that
only accepts identifier names, so stray braces in user content are left
alone.
"""

import re
from dataclasses import dataclass
from urllib.parse import parse_qs, urlsplit

from bs4 import BeautifulSoup

from .link_processor import PLACEHOLDER_PREFIX

OPEN = "{{"
CLOSE = "}}"

_IDENTIFIER_RE = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")


@dataclass(frozen=True)
class Placeholder:
    name: str
    raw: str


def parse(text):
    """
    Split ``text`` into literal strings and :class:`Placeholder` segments.

    ``{{`` that does not open a well-formed ``{{ identifier }}`` stays part
    of the surrounding literal.
    """
    segments = []
    if not text:
        return segments

    literal_start = 0
    pos = 0
    while True:
        open_at = text.find(OPEN, pos)
        if open_at == -1:
            break
        close_at = text.find(CLOSE, open_at + len(OPEN))
        if close_at == -1:
            break
        inner = text[open_at + len(OPEN):close_at].strip()
        if not _IDENTIFIER_RE.match(inner):
            pos = open_at + 1
            continue

        if open_at > literal_start:
            segments.append(text[literal_start:open_at])
        end = close_at + len(CLOSE)
        segments.append(Placeholder(name=inner, raw=text[open_at:end]))
        literal_start = pos = end

    if literal_start < len(text):
        segments.append(text[literal_start:])
    return segments


def names(text):
    """Placeholder names in order of first appearance."""
    seen = []
    for segment in parse(text):
        if isinstance(segment, Placeholder) and segment.name not in seen:
            seen.append(segment.name)
    return seen


def substitute(text, values):
    """Replace known placeholders with ``values``; unknown ones are kept verbatim."""
    out = []
    for segment in parse(text):
        if isinstance(segment, Placeholder):
            if segment.name in values and values[segment.name] is not None:
                out.append(str(values[segment.name]))
            else:
                out.append(segment.raw)
        else:
            out.append(segment)
    return "".join(out)


def click_marker(placeholder):
    """Exact text that identifies one tracked link inside compiled HTML."""
    return f"/c/{placeholder}?"


def find_tracking_links(html, campaign_id):
    """
    Locate compile-time click placeholders by parsing anchor hrefs.

    Returns a list of ``{"index", "placeholder", "destination"}`` dicts in
    document order, for artifacts whose persisted link map is unavailable.
    """
    if not html:
        return []
    prefix = f"{PLACEHOLDER_PREFIX}{campaign_id}_"
    found = []
    soup = BeautifulSoup(html, "html.parser")
    for anchor in soup.find_all("a", href=True):
        try:
            parts = urlsplit(anchor["href"])
        except ValueError:
            continue
        segment = parts.path.rsplit("/", 1)[-1]
        if not segment.startswith(prefix):
            continue
        suffix = segment[len(prefix):]
        if not suffix.isdigit():
            continue
        destination = parse_qs(parts.query).get("url", [None])[0]
        found.append({"index": int(suffix), "placeholder": segment, "destination": destination})
    return found

"""
Plaintext generation for templates that only ship HTML.
"""

import logging
import re

from bs4 import BeautifulSoup, NavigableString
from bs4.element import PreformattedString
from django.conf import settings

from . import placeholders

logger = logging.getLogger(__name__)

UNSUBSCRIBE_PLACEHOLDER = "unsubscribe_url"
UNSUBSCRIBE_TOKEN = "{{unsubscribe_url}}"
MIN_TEXT_LENGTH = 20

HEADINGS = {"h1", "h2", "h3", "h4", "h5", "h6"}
BLOCKS = {"p", "div", "section", "article", "header", "footer", "table", "blockquote", "ul", "ol"}
LINE_BLOCKS = {"li", "tr"}

_BREAK = "\n"
_PARAGRAPH = "\n\n"

_TAG_RE = re.compile(r"<[^>]*>")
_WS_RE = re.compile(r"\s+")
_SPACES_RE = re.compile(r"[ \t]{2,}")
_NEWLINES_RE = re.compile(r"\n{3,}")


def _squash(value):
    return _WS_RE.sub(" ", value)


def strip_tags(html):
    """Last-resort conversion: drop every tag and normalize whitespace."""
    return _WS_RE.sub(" ", _TAG_RE.sub(" ", html or "")).strip()


def _remove_hidden(soup):
    doomed = soup.find_all(["style", "script", "head", "meta", "title", "noscript"])
    doomed += soup.select(
        '[style*="display:none"], [style*="display: none"], .hidden, .sr-only, [aria-hidden="true"]'
    )
    for element in doomed:
        # Nested matches go away with their ancestor
        if not element.decomposed:
            element.decompose()


def _link_text(anchor, tracking_domain):
    text = _squash(anchor.get_text(" ")).strip()
    href = (anchor.get("href") or "").strip()
    if not text:
        return ""
    if (
        href.lower().startswith("http")
        and "{{" not in href
        and tracking_domain not in href
    ):
        return f"{text} ({href})"
    return text


def _walk(node, out, tracking_domain):
    for child in node.children:
        if isinstance(child, PreformattedString):
            continue
        if isinstance(child, NavigableString):
            out.append(_squash(str(child)))
            continue

        name = (child.name or "").lower()
        if name in HEADINGS:
            heading = _squash(child.get_text(" ")).strip()
            if heading:
                out.extend([_PARAGRAPH, heading.upper(), _BREAK, "=" * len(heading), _PARAGRAPH])
        elif name == "a":
            out.append(_link_text(child, tracking_domain))
        elif name == "img":
            alt = (child.get("alt") or "").strip()
            if alt:
                out.append(f"[{alt}]")
        elif name == "br":
            out.append(_BREAK)
        elif name in BLOCKS:
            out.append(_PARAGRAPH)
            _walk(child, out, tracking_domain)
            out.append(_PARAGRAPH)
        elif name in LINE_BLOCKS:
            out.append(_BREAK)
            if name == "li":
                out.append("- ")
            _walk(child, out, tracking_domain)
            out.append(_BREAK)
        else:
            _walk(child, out, tracking_domain)


def _assemble(pieces):
    text = "".join(pieces)
    lines = [_SPACES_RE.sub(" ", line).strip() for line in text.split("\n")]
    return _NEWLINES_RE.sub("\n\n", "\n".join(lines)).strip()


def _with_unsubscribe(html, text):
    if (
        UNSUBSCRIBE_PLACEHOLDER in placeholders.names(html)
        and UNSUBSCRIBE_PLACEHOLDER not in placeholders.names(text)
    ):
        text += f"\n\nUnsubscribe: {UNSUBSCRIBE_TOKEN}"
    return text


def html_to_text(html, tracking_domain=None):
    """
    Derive readable plaintext from ``html``.

    Headings come out uppercased and underlined, blocks are separated by
    blank lines, external links keep their URL in parentheses and images
    render as ``[alt]``. Never raises: any failure degrades to
    :func:`strip_tags`.
    """
    if not html or not isinstance(html, str):
        return ""

    try:
        domain = tracking_domain or settings.TRACKING_DOMAIN
        soup = BeautifulSoup(html, "html.parser")
        _remove_hidden(soup)

        root = soup.body or soup
        pieces = []
        _walk(root, pieces, domain)
        text = _assemble(pieces)

        if len(text) < MIN_TEXT_LENGTH:
            text = _squash(soup.get_text(" ")).strip()
        if not text:
            text = strip_tags(html)

        return _with_unsubscribe(html, text)
    except Exception as e:
        logger.warning(f"HTML-to-text conversion failed: {str(e)}")
        return strip_tags(html)

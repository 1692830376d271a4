"""
Size and content checks for compiled campaign HTML.

The result is advisory: ``validate_html`` reports, the caller decides
whether ``validated=False`` should stop anything.
"""

import logging
import re

from bs4 import BeautifulSoup

logger = logging.getLogger(__name__)

# Hard limits produce errors, 80% of them a warning
MAX_HTML_BYTES = 500 * 1024
MAX_DOM_NODES = 2000
MAX_LINKS = 100
WARNING_RATIO = 0.8

# Advisory limits only ever warn
MAX_IMAGES = 50
MAX_TEXT_LENGTH = 100 * 1024

SUSPICIOUS_PATTERNS = [
    (re.compile(r"<script", re.IGNORECASE), "script_tags", "Script tags detected"),
    (re.compile(r"javascript:", re.IGNORECASE), "javascript_urls", "JavaScript URLs detected"),
    (re.compile(r"\bon\w+\s*=", re.IGNORECASE), "event_handlers", "Inline event handlers detected"),
]


def _check_hard_limit(kind, label, actual, limit, warnings, errors):
    if actual > limit:
        errors.append(
            {
                "type": f"{kind}_exceeded",
                "message": f"{label} ({actual}) exceeds limit ({limit})",
                "limit": limit,
                "actual": actual,
            }
        )
    elif actual > limit * WARNING_RATIO:
        warnings.append(
            {
                "type": f"{kind}_warning",
                "message": f"{label} ({actual}) is approaching limit ({limit})",
                "limit": limit,
                "actual": actual,
            }
        )


def validate_html(html):
    """
    Check ``html`` against the size, node and link limits.

    Returns:
        dict with ``validated``, ``warnings``, ``errors`` and ``metrics``
    """
    warnings = []
    errors = []
    if not html:
        return {"validated": True, "warnings": warnings, "errors": errors, "metrics": {}}

    html_size = len(html.encode("utf-8"))
    soup = BeautifulSoup(html, "html.parser")
    node_count = len(soup.find_all(True))
    link_count = len(soup.find_all("a", href=True))
    image_count = len(soup.find_all("img"))
    text_length = len(soup.get_text())

    _check_hard_limit("html_size", "HTML size in bytes", html_size, MAX_HTML_BYTES, warnings, errors)
    _check_hard_limit("dom_nodes", "DOM node count", node_count, MAX_DOM_NODES, warnings, errors)
    _check_hard_limit("links", "Link count", link_count, MAX_LINKS, warnings, errors)

    if image_count > MAX_IMAGES:
        warnings.append(
            {
                "type": "images_warning",
                "message": f"Image count ({image_count}) exceeds recommended limit ({MAX_IMAGES})",
                "limit": MAX_IMAGES,
                "actual": image_count,
            }
        )
    if text_length > MAX_TEXT_LENGTH:
        warnings.append(
            {
                "type": "text_length_warning",
                "message": f"Text content ({text_length}) exceeds recommended limit ({MAX_TEXT_LENGTH})",
                "limit": MAX_TEXT_LENGTH,
                "actual": text_length,
            }
        )

    for pattern, kind, message in SUSPICIOUS_PATTERNS:
        count = len(pattern.findall(html))
        if count:
            warnings.append({"type": kind, "message": f"{message} ({count} instances)", "count": count})

    validated = not errors
    metrics = {
        "html_size": html_size,
        "node_count": node_count,
        "link_count": link_count,
        "image_count": image_count,
        "text_length": text_length,
    }
    logger.info(
        f"Security validation completed: validated={validated}, "
        f"{len(warnings)} warnings, {len(errors)} errors"
    )
    return {"validated": validated, "warnings": warnings, "errors": errors, "metrics": metrics}

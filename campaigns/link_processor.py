"""
Click tracking and UTM handling for compiled campaign HTML.

Every eligible ``<a href>`` is rewritten to point at the tracking domain.
The rewritten URL carries a ``TRACK_TOKEN_<campaign>_<index>`` placeholder
rather than a signed token: signing happens per recipient at send time, so
one compiled artifact can yield distinct click tokens for every contact.
"""

import logging
import re
from html import escape
from dataclasses import dataclass, field
from urllib.parse import parse_qsl, quote, urlencode, urlsplit, urlunsplit

from bs4 import BeautifulSoup

logger = logging.getLogger(__name__)

UTM_POLICIES = ("preserve", "append", "override")

DEFAULT_UTMS = {
    "utm_source": "email",
    "utm_medium": "campaign",
}

DO_NOT_TRACK_PATTERNS = [
    re.compile(r"^mailto:", re.IGNORECASE),
    re.compile(r"^tel:", re.IGNORECASE),
    re.compile(r"^javascript:", re.IGNORECASE),
    re.compile(r"unsubscribe", re.IGNORECASE),
    re.compile(r"opt.?out", re.IGNORECASE),
]

PLACEHOLDER_PREFIX = "TRACK_TOKEN_"

_HTTP_SCHEME_RE = re.compile(r"^https?://", re.IGNORECASE)
_ANCHOR_TAG_RE = re.compile(r"""<a\b(?:[^>"']|"[^"]*"|'[^']*')*>""", re.IGNORECASE)
_ATTRIBUTE_RE = re.compile(r"""([^\s"'>/=]+)(?:\s*=\s*("[^"]*"|'[^']*'|[^\s"'=<>`]+))?""")


@dataclass
class LinkProcessingResult:
    html: str
    link_map: list = field(default_factory=list)
    stats: dict = field(default_factory=dict)


def should_track_link(href):
    """Return True when ``href`` may be wrapped for click tracking."""
    if not href:
        return False
    value = href.strip()
    if value.startswith("#") or value.startswith("/"):
        return False
    if "{{" in value:
        return False
    if not _HTTP_SCHEME_RE.match(value):
        return False
    return not any(pattern.search(value) for pattern in DO_NOT_TRACK_PATTERNS)


def parse_utm_params(url):
    """Extract the ``utm_*`` query parameters of ``url`` as a dict."""
    try:
        query = urlsplit(url).query
    except ValueError:
        return {}
    return {
        key: value
        for key, value in parse_qsl(query, keep_blank_values=True)
        if key.startswith("utm_")
    }


def _absolute_http(url):
    parts = urlsplit(url.strip())
    if parts.scheme.lower() not in ("http", "https") or not parts.netloc:
        raise ValueError(f"Not an absolute http(s) URL: {url!r}")
    # Port parsing is lazy in urllib, force it so bad ports fail here
    parts.port
    return parts


def apply_utm_policy(url, policy, utms=None):
    """
    Apply a UTM policy to ``url``.

    ``preserve`` leaves the URL alone, ``append`` adds each default key the
    URL does not already carry, ``override`` strips every ``utm_*`` key and
    then applies the full default set.

    Raises:
        ValueError: ``url`` is not an absolute http(s) URL, or the policy
            is unknown
    """
    if policy not in UTM_POLICIES:
        raise ValueError(f"Unknown UTM policy: {policy}")

    parts = _absolute_http(url)
    if policy == "preserve" or not utms:
        return url.strip()

    params = parse_qsl(parts.query, keep_blank_values=True)
    if policy == "override":
        params = [(k, v) for k, v in params if not k.startswith("utm_")]

    present = {key for key, _ in params}
    for key, value in utms.items():
        if value in (None, ""):
            continue
        if key not in present:
            params.append((key, str(value)))

    return urlunsplit(
        (parts.scheme, parts.netloc, parts.path, urlencode(params), parts.fragment)
    )


def tracking_placeholder(campaign_id, link_index):
    return f"{PLACEHOLDER_PREFIX}{campaign_id}_{link_index}"


def wrap_link(destination, campaign_id, link_index, tracking_domain):
    """Build the compile-time tracking URL for one link."""
    placeholder = tracking_placeholder(campaign_id, link_index)
    return f"https://{tracking_domain}/c/{placeholder}?url={quote(destination, safe='')}"


def _splice_hrefs(html, rewrites):
    """
    Write each ``(anchor, href)`` rewrite into the original markup, leaving
    every other byte as authored. Returns None when an anchor cannot be
    located in the source.
    """
    line_starts = [0]
    for line in html.split("\n")[:-1]:
        line_starts.append(line_starts[-1] + len(line) + 1)

    spans = []
    for anchor, href in rewrites:
        if anchor.sourceline is None or anchor.sourcepos is None:
            return None
        start = line_starts[anchor.sourceline - 1] + anchor.sourcepos
        tag = _ANCHOR_TAG_RE.match(html, start)
        if not tag:
            return None
        # Duplicate attributes resolve to the last one, as in the parsed tree
        found = None
        for attribute in _ATTRIBUTE_RE.finditer(html, start + 2, tag.end() - 1):
            if attribute.group(1).lower() == "href" and attribute.group(2) is not None:
                found = attribute
        if found is None:
            return None
        spans.append((found.start(), found.end(), f'href="{escape(href)}"'))

    for span_start, span_end, replacement in sorted(spans, reverse=True):
        html = html[:span_start] + replacement + html[span_end:]
    return html


def process_html_links(html, campaign_id, tracking_domain, policy="preserve", utms=None):
    """
    Rewrite eligible links in ``html`` and build the link map.

    Each link-map entry records ``index``, ``original_url``,
    ``processed_url``, ``text`` and ``tracked``; tracked entries add
    ``final_destination_url``, ``utm_policy`` and ``utms_applied``, skipped
    ones add ``reason`` (``do-not-track`` or ``processing-error``). A link
    that cannot be processed is left untouched and never aborts the run.
    """
    if utms is None:
        utms = DEFAULT_UTMS
    stats = {"total": 0, "tracked": 0, "skipped": 0}
    if not html:
        return LinkProcessingResult(html=html or "", link_map=[], stats=stats)

    soup = BeautifulSoup(html, "html.parser")
    link_map = []
    rewrites = []

    for link_index, anchor in enumerate(soup.find_all("a", href=True)):
        href = anchor["href"]
        text = anchor.get_text(" ", strip=True)
        stats["total"] += 1
        entry = {
            "index": link_index,
            "original_url": href,
            "processed_url": href,
            "text": text,
            "tracked": False,
        }

        if not should_track_link(href):
            entry["reason"] = "do-not-track"
            stats["skipped"] += 1
            link_map.append(entry)
            continue

        try:
            destination = apply_utm_policy(href, policy, utms)
            wrapped = wrap_link(destination, campaign_id, link_index, tracking_domain)
        except ValueError as e:
            logger.warning(f"Link processing failed for campaign {campaign_id}: {href!r} ({e})")
            entry["reason"] = "processing-error"
            entry["error"] = str(e)
            stats["skipped"] += 1
            link_map.append(entry)
            continue

        anchor["href"] = wrapped
        rewrites.append((anchor, wrapped))
        entry.update(
            {
                "processed_url": wrapped,
                "final_destination_url": destination,
                "tracked": True,
                "utm_policy": policy,
                "utms_applied": parse_utm_params(destination),
            }
        )
        stats["tracked"] += 1
        link_map.append(entry)

    logger.info(
        f"Link processing completed for campaign {campaign_id}: "
        f"{stats['tracked']} tracked, {stats['skipped']} skipped"
    )

    processed = html
    if rewrites:
        processed = _splice_hrefs(html, rewrites)
        if processed is None:
            processed = str(soup)
    return LinkProcessingResult(html=processed, link_map=link_map, stats=stats)


def utm_settings_for(google_analytics, campaign_id):
    """
    Pick the UTM policy and parameter set from a campaign's analytics settings.

    Disabled (or missing) settings preserve URLs as authored. Enabled
    settings append the configured parameters; ``policy: override`` replaces
    any the author wrote.
    """
    settings_ = google_analytics or {}
    short_id = str(campaign_id).replace("-", "")[:8]
    if not settings_.get("enabled"):
        return "preserve", {
            "utm_source": "email",
            "utm_medium": "motorical_campaign",
            "utm_campaign": f"campaign_{short_id}",
        }

    utms = {
        "utm_source": settings_.get("utm_source") or "email",
        "utm_medium": settings_.get("utm_medium") or "email",
        "utm_campaign": settings_.get("utm_campaign") or f"campaign_{short_id}",
        "utm_content": settings_.get("utm_content") or "email_link",
    }
    if settings_.get("utm_term"):
        utms["utm_term"] = settings_["utm_term"]

    policy = settings_.get("policy", "append")
    if policy not in ("append", "override"):
        policy = "append"
    return policy, utms

"""
Tests for click-tracking link rewriting and UTM policies.
"""

from urllib.parse import parse_qs, unquote, urlsplit

from django.test import SimpleTestCase

from campaigns.link_processor import (
    apply_utm_policy,
    parse_utm_params,
    process_html_links,
    should_track_link,
    tracking_placeholder,
    utm_settings_for,
)

CAMPAIGN_ID = "4f1c2d3e-0000-4000-8000-000000000001"
DOMAIN = "track.example.com"


class ShouldTrackLinkTests(SimpleTestCase):
    """Test suite for should_track_link."""

    def test_http_links_tracked(self):
        """Test ordinary web links are trackable."""
        self.assertTrue(should_track_link("https://shop.example.com/sale"))

    def test_do_not_track_links(self):
        """Test mailto, tel, javascript, unsubscribe and opt-out links are skipped."""
        for href in [
            "mailto:help@example.com",
            "tel:+15551234",
            "javascript:void(0)",
            "https://example.com/unsubscribe",
            "https://example.com/opt-out",
            "https://example.com/optout",
        ]:
            with self.subTest(href=href):
                self.assertFalse(should_track_link(href))

    def test_anchors_and_merge_fields_skipped(self):
        """Test fragment links and links carrying merge fields are skipped."""
        self.assertFalse(should_track_link("#top"))
        self.assertFalse(should_track_link("{{unsubscribe_url}}"))
        self.assertFalse(should_track_link(""))

    def test_relative_paths_skipped(self):
        """Test links without an http(s) scheme are not tracked."""
        for href in ["page.html", "shop/sale", "/account", "ftp://files.example.com/a.pdf"]:
            with self.subTest(href=href):
                self.assertFalse(should_track_link(href))


class UtmPolicyTests(SimpleTestCase):
    """Test suite for apply_utm_policy."""

    utms = {"utm_source": "email", "utm_medium": "campaign"}

    def test_preserve_leaves_url(self):
        """Test preserve returns the URL untouched."""
        url = "https://example.com/a?utm_source=blog"

        self.assertEqual(apply_utm_policy(url, "preserve", self.utms), url)

    def test_append_keeps_existing(self):
        """Test append only adds missing keys."""
        result = apply_utm_policy("https://example.com/a?utm_source=blog&x=1", "append", self.utms)

        params = parse_utm_params(result)
        self.assertEqual(params["utm_source"], "blog")
        self.assertEqual(params["utm_medium"], "campaign")
        self.assertIn("x=1", result)

    def test_override_replaces_existing(self):
        """Test override strips authored UTMs before applying the defaults."""
        result = apply_utm_policy(
            "https://example.com/a?utm_source=blog&utm_term=old", "override", self.utms
        )

        self.assertEqual(parse_utm_params(result), {"utm_source": "email", "utm_medium": "campaign"})

    def test_override_is_idempotent(self):
        """Test applying override twice gives the same URL as applying it once."""
        url = "https://example.com/a?utm_source=blog&utm_term=old&x=1#top"

        once = apply_utm_policy(url, "override", self.utms)

        self.assertEqual(apply_utm_policy(once, "override", self.utms), once)

    def test_relative_url_rejected(self):
        """Test non-absolute URLs raise ValueError."""
        with self.assertRaises(ValueError):
            apply_utm_policy("shop/sale", "append", self.utms)

    def test_unknown_policy_rejected(self):
        """Test an unknown policy raises ValueError."""
        with self.assertRaises(ValueError):
            apply_utm_policy("https://example.com", "rewrite", self.utms)


class ProcessHtmlLinksTests(SimpleTestCase):
    """Test suite for process_html_links."""

    def test_wraps_trackable_links(self):
        """Test eligible links are rewritten and recorded in the link map."""
        html = (
            '<p><a href="https://shop.example.com/sale">Sale</a> '
            '<a href="mailto:help@example.com">Help</a> '
            '<a href="https://blog.example.com/">Blog</a></p>'
        )

        result = process_html_links(html, CAMPAIGN_ID, DOMAIN, policy="append")

        self.assertEqual(result.stats, {"total": 3, "tracked": 2, "skipped": 1})
        self.assertEqual([entry["index"] for entry in result.link_map], [0, 1, 2])
        first, mail, blog = result.link_map
        self.assertTrue(first["tracked"])
        self.assertEqual(first["text"], "Sale")
        self.assertEqual(first["utm_policy"], "append")
        self.assertEqual(first["utms_applied"]["utm_source"], "email")
        self.assertFalse(mail["tracked"])
        self.assertEqual(mail["reason"], "do-not-track")
        self.assertIn(tracking_placeholder(CAMPAIGN_ID, 2), blog["processed_url"])
        self.assertIn("mailto:help@example.com", result.html)
        self.assertNotIn('href="https://shop.example.com/sale"', result.html)

    def test_wrapped_url_carries_destination(self):
        """Test the tracking URL encodes the final destination in ?url=."""
        result = process_html_links(
            '<a href="https://shop.example.com/sale?a=1">Sale</a>', CAMPAIGN_ID, DOMAIN
        )

        wrapped = urlsplit(result.link_map[0]["processed_url"])
        self.assertEqual(wrapped.netloc, DOMAIN)
        self.assertEqual(wrapped.path, f"/c/{tracking_placeholder(CAMPAIGN_ID, 0)}")
        destination = parse_qs(wrapped.query)["url"][0]
        self.assertEqual(unquote(destination), result.link_map[0]["final_destination_url"])

    def test_bad_link_does_not_abort(self):
        """Test an unprocessable link is skipped and the rest still tracked."""
        html = '<a href="http://[broken">Bad</a><a href="https://ok.example.com">Ok</a>'

        result = process_html_links(html, CAMPAIGN_ID, DOMAIN)

        self.assertEqual(result.link_map[0]["reason"], "processing-error")
        self.assertTrue(result.link_map[1]["tracked"])

    def test_relative_link_is_do_not_track(self):
        """Test a relative path is skipped as do-not-track rather than an error."""
        result = process_html_links('<a href="page.html">More</a>', CAMPAIGN_ID, DOMAIN)

        self.assertEqual(result.link_map[0]["reason"], "do-not-track")
        self.assertEqual(result.stats["skipped"], 1)

    def test_untracked_links_kept_byte_for_byte(self):
        """Test skipped hrefs and surrounding markup survive when other links are tracked."""
        html = (
            "<p>Shop <a class='cta' href='https://shop.example.com/boots'>boots</a><br>\n"
            '<a href="mailto:help@example.com?subject=Hi&body=Boots">Ask us</a> or '
            '<a href="/account">your account</a> or '
            '<a HREF="https://shop.example.com/unsubscribe?list=1&amp;x=2">Unsubscribe</a></p>'
        )

        result = process_html_links(html, CAMPAIGN_ID, DOMAIN)

        self.assertEqual(result.stats["tracked"], 1)
        wrapped = result.link_map[0]["processed_url"]
        expected = html.replace("href='https://shop.example.com/boots'", f'href="{wrapped}"')
        self.assertEqual(result.html, expected)

    def test_nothing_tracked_returns_original(self):
        """Test HTML with no trackable links is returned byte-for-byte."""
        html = '<p>Hi <a href="#top">top</a></p>'

        result = process_html_links(html, CAMPAIGN_ID, DOMAIN)

        self.assertEqual(result.html, html)
        self.assertEqual(result.stats["tracked"], 0)

    def test_empty_html(self):
        """Test empty input yields an empty result."""
        result = process_html_links("", CAMPAIGN_ID, DOMAIN)

        self.assertEqual(result.html, "")
        self.assertEqual(result.link_map, [])


class UtmSettingsTests(SimpleTestCase):
    """Test suite for utm_settings_for."""

    def test_disabled_preserves(self):
        """Test analytics disabled selects preserve."""
        policy, utms = utm_settings_for({}, CAMPAIGN_ID)

        self.assertEqual(policy, "preserve")
        self.assertEqual(utms["utm_campaign"], "campaign_4f1c2d3e")

    def test_enabled_appends_configured_values(self):
        """Test analytics enabled appends the configured parameters."""
        policy, utms = utm_settings_for(
            {"enabled": True, "utm_source": "newsletter", "utm_term": "shoes"}, CAMPAIGN_ID
        )

        self.assertEqual(policy, "append")
        self.assertEqual(utms["utm_source"], "newsletter")
        self.assertEqual(utms["utm_medium"], "email")
        self.assertEqual(utms["utm_content"], "email_link")
        self.assertEqual(utms["utm_term"], "shoes")

    def test_enabled_override(self):
        """Test an explicit override policy is honoured."""
        policy, _ = utm_settings_for({"enabled": True, "policy": "override"}, CAMPAIGN_ID)

        self.assertEqual(policy, "override")

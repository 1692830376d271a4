"""
Tests for campaign compilation.

Tests cover:
- Versioned artifacts and audience snapshots
- Link map, security and text backfill written by the hooks
- Hook failure isolation
- Refusals (no template, empty template, terminal campaign)
"""

from django.test import TestCase, override_settings

from audience.models import Contact, ContactList, ListMembership
from campaigns import repository
from campaigns.compiler import compile_campaign
from campaigns.exceptions import CampaignStateError, CompileError
from campaigns.hooks import HookName, HookRegistry
from campaigns.models import AudienceSnapshot, Campaign, CampaignArtifact, Template
from tenants.models import Account, Tenant

HTML = (
    "<h1>Spring collection</h1>"
    "<p>Hi {{name}}, our new boots are in. "
    '<a href="https://shop.example.com/boots">Shop boots</a></p>'
    '<p><a href="{{unsubscribe_url}}">Unsubscribe</a></p>'
)


@override_settings(TRACKING_DOMAIN="track.example.com")
class CompileCampaignTests(TestCase):
    """Test suite for compile_campaign."""

    def setUp(self):
        """Set up test fixtures."""
        self.account = Account.objects.create(name="Acme Holdings")
        self.tenant = Tenant.objects.create(account=self.account, name="Acme Shoes")
        self.template = Template.objects.create(
            tenant=self.tenant, name="Spring", subject="New boots, {{name}}", html=HTML
        )
        self.contact_list = ContactList.objects.create(tenant=self.tenant, name="Newsletter")
        for i in range(3):
            contact = Contact.objects.create(tenant=self.tenant, email=f"c{i}@example.com")
            ListMembership.objects.create(contact_list=self.contact_list, contact=contact)
        self.campaign = Campaign.objects.create(
            tenant=self.tenant, name="Spring launch", template=self.template
        )
        self.campaign.lists.set([self.contact_list])

    def test_compile_creates_first_version(self):
        """Test the first compile yields version 1 with a snapshot."""
        result = compile_campaign(self.campaign)

        self.assertEqual(result.version, 1)
        self.assertEqual(result.snapshot.total_recipients, 3)
        self.assertEqual(result.snapshot.included_lists, [str(self.contact_list.id)])
        self.assertEqual(result.snapshot.dedup_policy, "email_lower")
        self.assertEqual(result.artifact.subject, "New boots, {{name}}")
        self.assertIn("track.example.com/c/TRACK_TOKEN_", result.artifact.html_compiled)
        self.assertIn("{{unsubscribe_url}}", result.artifact.html_compiled)

    def test_recompile_bumps_version(self):
        """Test each compile appends a new version and keeps the old one."""
        compile_campaign(self.campaign)
        second = compile_campaign(self.campaign)

        self.assertEqual(second.version, 2)
        self.assertEqual(CampaignArtifact.objects.filter(campaign=self.campaign).count(), 2)
        self.assertEqual(AudienceSnapshot.objects.filter(campaign=self.campaign).count(), 2)
        self.assertEqual(repository.latest_artifact(self.campaign.id).version, 2)

    def test_hooks_persist_meta_and_text(self):
        """Test the built-in hooks write link map, security result and text."""
        result = compile_campaign(self.campaign)
        meta = result.artifact.meta

        self.assertEqual(meta["link_stats"], {"total": 2, "tracked": 1, "skipped": 1})
        self.assertEqual(meta["link_map"][0]["original_url"], "https://shop.example.com/boots")
        self.assertTrue(meta["security"]["validated"])
        self.assertEqual(meta["utm_policy"], "preserve")
        self.assertEqual(meta["template_id"], str(self.template.id))
        self.assertIn("SPRING COLLECTION", result.artifact.text_compiled)
        self.assertIn("shop.example.com/boots", result.artifact.text_compiled)
        self.assertTrue(all(outcome.success for outcome in result.hook_outcomes))

    def test_text_omits_tracking_domain_urls(self):
        """Test links already on the tracking domain appear in the text as link text only."""
        self.template.html = HTML + '<p><a href="https://track.example.com/p/preferences">Email preferences</a></p>'
        self.template.save()

        result = compile_campaign(self.campaign)

        self.assertIn("Email preferences", result.artifact.text_compiled)
        self.assertNotIn("track.example.com", result.artifact.text_compiled)
        self.assertIn("shop.example.com/boots", result.artifact.text_compiled)

    def test_authored_text_is_kept(self):
        """Test an authored text part is never overwritten."""
        self.template.text = "Hi {{name}}, boots are in."
        self.template.save()

        result = compile_campaign(self.campaign)

        self.assertEqual(result.artifact.text_compiled, "Hi {{name}}, boots are in.")

    def test_analytics_enabled_appends_utms(self):
        """Test enabled analytics settings append UTMs to tracked destinations."""
        self.campaign.google_analytics = {"enabled": True, "utm_campaign": "spring"}
        self.campaign.save()

        result = compile_campaign(self.campaign)

        entry = result.artifact.meta["link_map"][0]
        self.assertEqual(entry["utm_policy"], "append")
        self.assertEqual(entry["utms_applied"]["utm_campaign"], "spring")

    def test_failing_hook_does_not_fail_compile(self):
        """Test a broken hook is reported while the artifact still exists."""
        registry = HookRegistry()
        registry.register(HookName.AUDIT_LOG, lambda event, context: 1 / 0)
        registry.register(HookName.METRICS_EMIT, lambda event, context: {"ok": True})

        result = compile_campaign(self.campaign, registry=registry)

        self.assertEqual(result.version, 1)
        self.assertEqual([o.success for o in result.hook_outcomes], [False, True])
        self.assertEqual(result.as_dict()["hooks"][0]["hook"], "audit-log")

    def test_no_template(self):
        """Test compiling without a template raises CompileError."""
        self.campaign.template = None
        self.campaign.save()

        with self.assertRaises(CompileError):
            compile_campaign(self.campaign)
        self.assertFalse(CampaignArtifact.objects.exists())

    def test_empty_template(self):
        """Test compiling an empty template raises CompileError."""
        self.template.html = ""
        self.template.save()

        with self.assertRaises(CompileError):
            compile_campaign(self.campaign)

    def test_terminal_campaign(self):
        """Test completed and cancelled campaigns cannot be compiled."""
        self.campaign.status = "cancelled"
        self.campaign.save()

        with self.assertRaises(CampaignStateError):
            compile_campaign(self.campaign)


class ArtifactImmutabilityTests(TestCase):
    """Test suite for artifact append-only rules."""

    def setUp(self):
        """Set up test fixtures."""
        account = Account.objects.create(name="Acme Holdings")
        tenant = Tenant.objects.create(account=account, name="Acme Shoes")
        self.campaign = Campaign.objects.create(tenant=tenant, name="Launch")

    def test_save_existing_artifact_raises(self):
        """Test re-saving an artifact is refused."""
        artifact = repository.create_artifact(self.campaign, subject="Hi", html_compiled="<p>x</p>")
        artifact.subject = "Changed"

        with self.assertRaises(ValueError):
            artifact.save()

    def test_merge_meta_keeps_existing_keys(self):
        """Test merge_artifact_meta only adds or replaces patched keys."""
        artifact = repository.create_artifact(
            self.campaign, subject="Hi", html_compiled="<p>x</p>", meta={"a": 1}
        )

        self.assertTrue(repository.merge_artifact_meta(self.campaign.id, artifact.version, {"b": 2}))

        artifact.refresh_from_db()
        self.assertEqual(artifact.meta, {"a": 1, "b": 2})

    def test_merge_meta_missing_artifact(self):
        """Test merging into a missing version returns False."""
        self.assertFalse(repository.merge_artifact_meta(self.campaign.id, 9, {"b": 2}))

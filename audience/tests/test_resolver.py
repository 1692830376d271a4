"""
Tests for audience resolution.

Tests cover:
- Active-only membership and contact filtering
- Case-insensitive dedup with lowest-membership-wins
- Account-wide suppression across tenants
- Exclusion of already-processed contacts
"""

from django.test import TestCase
from django.utils import timezone

from audience.models import Contact, ContactList, ListMembership, Suppression
from audience.resolver import candidate_recipients, resolve_audience
from campaigns.models import Campaign
from tenants.models import Account, Tenant
from tracking.models import EmailEvent


class AudienceResolverTests(TestCase):
    """Test suite for candidate_recipients and resolve_audience."""

    def setUp(self):
        """Set up test fixtures."""
        self.account = Account.objects.create(name="Acme Holdings")
        self.tenant = Tenant.objects.create(account=self.account, name="Acme Shoes")
        self.list_a = ContactList.objects.create(tenant=self.tenant, name="Newsletter")
        self.list_b = ContactList.objects.create(tenant=self.tenant, name="VIP")
        self.campaign = Campaign.objects.create(tenant=self.tenant, name="Launch")
        self.campaign.lists.set([self.list_a, self.list_b])

    def _contact(self, email, tenant=None, **kwargs):
        return Contact.objects.create(tenant=tenant or self.tenant, email=email, **kwargs)

    def _member(self, contact_list, contact, status="active"):
        return ListMembership.objects.create(contact_list=contact_list, contact=contact, status=status)

    def test_active_members_are_candidates(self):
        """Test active members of attached lists are returned."""
        ada = self._contact("ada@example.com", name="Ada")
        self._member(self.list_a, ada)

        recipients = candidate_recipients(self.campaign)

        self.assertEqual(len(recipients), 1)
        self.assertEqual(recipients[0].contact_id, ada.id)
        self.assertEqual(recipients[0].name, "Ada")

    def test_removed_membership_excluded(self):
        """Test removed memberships are not candidates."""
        ada = self._contact("ada@example.com")
        self._member(self.list_a, ada, status="removed")

        self.assertEqual(candidate_recipients(self.campaign), [])

    def test_inactive_contacts_excluded(self):
        """Test unsubscribed, bounced and deleted contacts are skipped."""
        for index, contact_status in enumerate(["unsubscribed", "bounced", "complained", "deleted"]):
            contact = self._contact(f"c{index}@example.com", status=contact_status)
            self._member(self.list_a, contact)

        self.assertEqual(candidate_recipients(self.campaign), [])

    def test_deleted_list_excluded(self):
        """Test members of a soft-deleted list are skipped."""
        self.list_b.deleted_at = timezone.now()
        self.list_b.save()
        ada = self._contact("ada@example.com")
        self._member(self.list_b, ada)

        self.assertEqual(candidate_recipients(self.campaign), [])

    def test_dedup_on_lowercased_email_lowest_membership_wins(self):
        """Test contacts sharing an email collapse to the earliest membership."""
        first = self._contact("Ada@Example.com")
        second = self._contact("ada@example.com")
        first_membership = self._member(self.list_b, first)
        self._member(self.list_a, second)
        self._member(self.list_a, first)

        recipients = candidate_recipients(self.campaign)

        self.assertEqual(len(recipients), 1)
        self.assertEqual(recipients[0].contact_id, first.id)
        self.assertEqual(recipients[0].membership_id, first_membership.id)

    def test_same_contact_in_two_lists_once(self):
        """Test a contact on two lists is a single recipient."""
        ada = self._contact("ada@example.com")
        self._member(self.list_a, ada)
        self._member(self.list_b, ada)

        self.assertEqual(len(candidate_recipients(self.campaign)), 1)

    def test_suppression_from_sibling_tenant_applies(self):
        """Test a suppression recorded for the account hides the email in every tenant."""
        ada = self._contact("ada@example.com")
        self._member(self.list_a, ada)
        Suppression.objects.create(account=self.account, email="ADA@example.com", reason="unsubscribe")

        self.assertEqual(candidate_recipients(self.campaign), [])

    def test_suppression_from_other_account_ignored(self):
        """Test suppressions of a different account do not apply."""
        other = Account.objects.create(name="Other")
        ada = self._contact("ada@example.com")
        self._member(self.list_a, ada)
        Suppression.objects.create(account=other, email="ada@example.com")

        self.assertEqual(len(candidate_recipients(self.campaign)), 1)

    def test_other_tenant_contacts_never_included(self):
        """Test memberships pointing at another tenant's contact are ignored."""
        other_tenant = Tenant.objects.create(account=self.account, name="Acme Hats")
        stranger = self._contact("stranger@example.com", tenant=other_tenant)
        self._member(self.list_a, stranger)

        self.assertEqual(candidate_recipients(self.campaign), [])

    def test_processed_contacts_not_remaining(self):
        """Test any ledger event for the campaign marks the contact processed."""
        ada = self._contact("ada@example.com")
        bob = self._contact("bob@example.com")
        cy = self._contact("cy@example.com")
        for contact in (ada, bob, cy):
            self._member(self.list_a, contact)
        EmailEvent.objects.create(tenant=self.tenant, campaign=self.campaign, contact=ada, type="queued")
        EmailEvent.objects.create(tenant=self.tenant, campaign=self.campaign, contact=bob, type="failed")

        audience = resolve_audience(self.campaign)

        self.assertEqual(audience.total_candidates, 3)
        self.assertEqual(audience.remaining_count, 1)
        self.assertEqual(audience.processed_count, 2)
        self.assertEqual(audience.remaining[0].contact_id, cy.id)

    def test_events_of_other_campaign_do_not_count(self):
        """Test events of another campaign leave the contact remaining."""
        other_campaign = Campaign.objects.create(tenant=self.tenant, name="Other")
        ada = self._contact("ada@example.com")
        self._member(self.list_a, ada)
        EmailEvent.objects.create(tenant=self.tenant, campaign=other_campaign, contact=ada, type="queued")

        self.assertEqual(resolve_audience(self.campaign).remaining_count, 1)

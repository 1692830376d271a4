"""
Tests for the contact, list and suppression endpoints.
"""

from django.test import TestCase
from rest_framework import status
from rest_framework.test import APIClient

from audience.models import Contact, ContactList, ListMembership, Suppression
from tenants.models import Account, Tenant


class AudienceApiTestCase(TestCase):
    def setUp(self):
        """Set up test fixtures."""
        self.client = APIClient()
        self.account = Account.objects.create(name="Acme Holdings")
        self.tenant = Tenant.objects.create(account=self.account, name="Acme Shoes")
        self.other_tenant = Tenant.objects.create(account=self.account, name="Acme Hats")
        self.client.credentials(HTTP_X_TENANT_ID=str(self.tenant.id))


class ContactViewSetTests(AudienceApiTestCase):
    """Test suite for ContactViewSet."""

    def test_create_contact(self):
        """Test creating a contact scopes it to the header tenant."""
        response = self.client.post(
            "/api/contacts/", {"email": "ada@example.com", "name": "Ada"}, format="json"
        )

        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        contact = Contact.objects.get(id=response.data["id"])
        self.assertEqual(contact.tenant, self.tenant)
        self.assertEqual(response.data["status"], "active")

    def test_duplicate_email_rejected(self):
        """Test a second contact with the same email (any case) is rejected."""
        Contact.objects.create(tenant=self.tenant, email="ada@example.com")

        response = self.client.post("/api/contacts/", {"email": "ADA@example.com"}, format="json")

        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_list_only_own_tenant(self):
        """Test other tenants' contacts are invisible."""
        Contact.objects.create(tenant=self.tenant, email="mine@example.com")
        Contact.objects.create(tenant=self.other_tenant, email="theirs@example.com")

        response = self.client.get("/api/contacts/")

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        emails = [row["email"] for row in response.data["results"]]
        self.assertEqual(emails, ["mine@example.com"])

    def test_other_tenant_contact_is_404(self):
        """Test retrieving another tenant's contact returns 404."""
        theirs = Contact.objects.create(tenant=self.other_tenant, email="theirs@example.com")

        response = self.client.get(f"/api/contacts/{theirs.id}/")

        self.assertEqual(response.status_code, status.HTTP_404_NOT_FOUND)

    def test_delete_is_soft(self):
        """Test deleting a contact marks it deleted and removes memberships."""
        contact = Contact.objects.create(tenant=self.tenant, email="ada@example.com")
        contact_list = ContactList.objects.create(tenant=self.tenant, name="News")
        ListMembership.objects.create(contact_list=contact_list, contact=contact)

        response = self.client.delete(f"/api/contacts/{contact.id}/")

        self.assertEqual(response.status_code, status.HTTP_204_NO_CONTENT)
        contact.refresh_from_db()
        self.assertEqual(contact.status, "deleted")
        self.assertEqual(ListMembership.objects.get().status, "removed")

    def test_manual_unsubscribe_and_resubscribe(self):
        """Test the unsubscribe and resubscribe actions."""
        contact = Contact.objects.create(tenant=self.tenant, email="ada@example.com")

        response = self.client.post(f"/api/contacts/{contact.id}/unsubscribe/")

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertTrue(response.data["changed"])
        self.assertEqual(response.data["contact"]["status"], "unsubscribed")
        self.assertEqual(Suppression.objects.get().source, "manual")

        response = self.client.post(f"/api/contacts/{contact.id}/resubscribe/")

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data["status"], "active")
        self.assertFalse(Suppression.objects.exists())


class ContactListViewSetTests(AudienceApiTestCase):
    """Test suite for ContactListViewSet."""

    def setUp(self):
        """Set up test fixtures."""
        super().setUp()
        self.source = ContactList.objects.create(tenant=self.tenant, name="Leads")
        self.target = ContactList.objects.create(tenant=self.tenant, name="Customers")
        self.contact = Contact.objects.create(tenant=self.tenant, email="ada@example.com")

    def test_add_members_and_count(self):
        """Test adding members and the active member count."""
        response = self.client.post(
            f"/api/lists/{self.source.id}/members/",
            {"contact_ids": [str(self.contact.id)]},
            format="json",
        )

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data["added"], 1)

        response = self.client.get(f"/api/lists/{self.source.id}/")
        self.assertEqual(response.data["active_members"], 1)

    def test_bulk_move(self):
        """Test the bulk_move action."""
        ListMembership.objects.create(contact_list=self.source, contact=self.contact)

        response = self.client.post(
            f"/api/lists/{self.source.id}/bulk_move/",
            {"contact_ids": [str(self.contact.id)], "target_list_id": str(self.target.id)},
            format="json",
        )

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data["moved"], 1)
        self.assertEqual(
            ListMembership.objects.get(contact_list=self.source).status, "removed"
        )

    def test_bulk_move_unknown_target(self):
        """Test moving to a list of another tenant returns 400."""
        foreign = ContactList.objects.create(tenant=self.other_tenant, name="Foreign")

        response = self.client.post(
            f"/api/lists/{self.source.id}/bulk_move/",
            {"contact_ids": [str(self.contact.id)], "target_list_id": str(foreign.id)},
            format="json",
        )

        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertIn("error", response.data)

    def test_create_smart_list_validates_filter(self):
        """Test a smart list with an invalid filter is rejected."""
        response = self.client.post(
            "/api/lists/",
            {"name": "Smart", "is_smart": True, "filter_definition": {"shoe_size": 9}},
            format="json",
        )

        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_refresh_smart_list(self):
        """Test the refresh action materializes a smart list."""
        smart = ContactList.objects.create(
            tenant=self.tenant,
            name="Example people",
            is_smart=True,
            filter_definition={"email_domain": "example.com"},
        )

        response = self.client.post(f"/api/lists/{smart.id}/refresh/")

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data["total"], 1)

    def test_refresh_plain_list_is_400(self):
        """Test refreshing a non-smart list returns 400."""
        response = self.client.post(f"/api/lists/{self.source.id}/refresh/")

        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_delete_is_soft(self):
        """Test deleting a list sets deleted_at and hides it."""
        response = self.client.delete(f"/api/lists/{self.source.id}/")

        self.assertEqual(response.status_code, status.HTTP_204_NO_CONTENT)
        self.source.refresh_from_db()
        self.assertIsNotNone(self.source.deleted_at)
        self.assertEqual(self.client.get(f"/api/lists/{self.source.id}/").status_code, 404)


class SuppressionViewSetTests(AudienceApiTestCase):
    """Test suite for SuppressionViewSet."""

    def test_suppressions_shared_across_account(self):
        """Test a sibling tenant sees suppressions added by another tenant."""
        response = self.client.post(
            "/api/suppressions/", {"email": "Ada@Example.com", "reason": "manual"}, format="json"
        )
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        self.assertEqual(response.data["email"], "ada@example.com")

        self.client.credentials(HTTP_X_TENANT_ID=str(self.other_tenant.id))
        response = self.client.get("/api/suppressions/")

        self.assertEqual(response.data["count"], 1)

    def test_duplicate_suppression_returns_existing(self):
        """Test adding an existing suppression is a no-op."""
        Suppression.objects.create(account=self.account, email="ada@example.com")

        response = self.client.post("/api/suppressions/", {"email": "ada@example.com"}, format="json")

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(Suppression.objects.count(), 1)

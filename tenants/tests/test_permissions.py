"""
Tests for X-Tenant-Id request scoping.
"""

import uuid

from django.test import TestCase
from rest_framework import status
from rest_framework.exceptions import ValidationError
from rest_framework.test import APIClient, APIRequestFactory

from tenants.models import Account, Tenant
from tenants.permissions import tenant_from_request


class TenantFromRequestTests(TestCase):
    """Test suite for tenant_from_request."""

    def setUp(self):
        """Set up test fixtures."""
        self.factory = APIRequestFactory()
        self.account = Account.objects.create(name="Acme Holdings")
        self.tenant = Tenant.objects.create(account=self.account, name="Acme Shoes")

    def test_resolves_tenant(self):
        """Test a valid header resolves the tenant."""
        request = self.factory.get("/", HTTP_X_TENANT_ID=str(self.tenant.id))

        self.assertEqual(tenant_from_request(request), self.tenant)

    def test_missing_header(self):
        """Test a missing header is rejected."""
        request = self.factory.get("/")

        with self.assertRaises(ValidationError):
            tenant_from_request(request)

    def test_malformed_header(self):
        """Test a non-UUID header is rejected."""
        request = self.factory.get("/", HTTP_X_TENANT_ID="not-a-uuid")

        with self.assertRaises(ValidationError):
            tenant_from_request(request)

    def test_unknown_tenant(self):
        """Test a UUID that names no tenant is rejected."""
        request = self.factory.get("/", HTTP_X_TENANT_ID=str(uuid.uuid4()))

        with self.assertRaises(ValidationError):
            tenant_from_request(request)


class TenantScopedApiTests(TestCase):
    """Test tenant scoping through the API."""

    def setUp(self):
        """Set up test fixtures."""
        self.client = APIClient()
        self.account = Account.objects.create(name="Acme Holdings")
        self.tenant = Tenant.objects.create(account=self.account, name="Acme Shoes")

    def test_request_without_header_is_400(self):
        """Test API requests without X-Tenant-Id get a 400."""
        response = self.client.get("/api/campaigns/")

        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertIn("error", response.data)

    def test_request_with_header_is_allowed(self):
        """Test API requests with a valid header succeed."""
        response = self.client.get("/api/campaigns/", HTTP_X_TENANT_ID=str(self.tenant.id))

        self.assertEqual(response.status_code, status.HTTP_200_OK)

"""
Request scoping for the tenant API.

Authentication happens upstream; by the time a request reaches us it carries
the caller's tenant in the ``X-Tenant-Id`` header. Views mix in
``TenantScopedMixin`` to resolve it once and filter querysets by it.
"""

import uuid

from rest_framework import permissions
from rest_framework.exceptions import ValidationError

from .models import Tenant

TENANT_HEADER = "X-Tenant-Id"


def tenant_from_request(request):
    """
    Resolve the Tenant named by the X-Tenant-Id header.

    Raises:
        ValidationError: header missing, malformed, or unknown tenant
    """
    cached = getattr(request, "_tenant", None)
    if cached is not None:
        return cached

    raw = request.headers.get(TENANT_HEADER)
    if not raw:
        raise ValidationError({"error": "Missing X-Tenant-Id header"})
    try:
        tenant_id = uuid.UUID(raw)
    except ValueError:
        raise ValidationError({"error": "Malformed X-Tenant-Id header"})

    tenant = Tenant.objects.select_related("account").filter(id=tenant_id).first()
    if tenant is None:
        raise ValidationError({"error": "Unknown tenant"})
    request._tenant = tenant
    return tenant


class HasTenantHeader(permissions.BasePermission):
    """Only let requests through that carry a resolvable tenant."""

    def has_permission(self, request, view):
        tenant_from_request(request)
        return True


class TenantScopedMixin:
    """Expose ``self.tenant`` and restrict the queryset to it."""

    tenant_field = "tenant"

    @property
    def tenant(self):
        return tenant_from_request(self.request)

    def get_queryset(self):
        queryset = super().get_queryset()
        return queryset.filter(**{self.tenant_field: self.tenant})

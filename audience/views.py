"""
Tenant-scoped contact, list and suppression endpoints.

Suppressions belong to the tenant's account, so every tenant of one account
sees and edits the same suppression rows.
"""

import logging

from django.db import transaction
from django.db.models import Count, Q
from django.utils import timezone
from django_filters.rest_framework import DjangoFilterBackend
from rest_framework import filters, mixins, status, viewsets
from rest_framework.decorators import action
from rest_framework.response import Response

from tenants.permissions import TenantScopedMixin
from . import services
from .exceptions import InvalidFilterDefinition, ListNotFound
from .models import Contact, ContactList, ListMembership, Suppression
from .serializers import (
    BulkMoveSerializer,
    ContactListSerializer,
    ContactSerializer,
    MembershipChangeSerializer,
    SuppressionSerializer,
)

logger = logging.getLogger(__name__)


class ContactViewSet(TenantScopedMixin, viewsets.ModelViewSet):
    queryset = Contact.objects.all()
    serializer_class = ContactSerializer
    filter_backends = [DjangoFilterBackend, filters.SearchFilter]
    filterset_fields = ["status"]
    search_fields = ["email", "name"]

    def get_serializer_context(self):
        context = super().get_serializer_context()
        context["tenant"] = self.tenant
        return context

    def perform_create(self, serializer):
        serializer.save(tenant=self.tenant)

    def perform_destroy(self, instance):
        # Soft delete; ledger rows keep pointing at the contact
        with transaction.atomic():
            instance.status = "deleted"
            instance.save(update_fields=["status", "updated_at"])
            instance.memberships.update(status="removed")
        logger.info(f"Contact {instance.pk} soft-deleted")

    @action(detail=True, methods=["post"])
    def unsubscribe(self, request, pk=None):
        contact = self.get_object()
        changed = services.unsubscribe_contact(contact, source="manual")
        contact.refresh_from_db()
        return Response({"changed": changed, "contact": self.get_serializer(contact).data})

    @action(detail=True, methods=["post"])
    def resubscribe(self, request, pk=None):
        contact = self.get_object()
        if contact.status == "deleted":
            return Response(
                {"error": "Deleted contacts cannot be resubscribed"},
                status=status.HTTP_400_BAD_REQUEST,
            )
        contact = services.resubscribe_contact(contact)
        return Response(self.get_serializer(contact).data)


class ContactListViewSet(TenantScopedMixin, viewsets.ModelViewSet):
    """
    Lists for the current tenant.

    Extra endpoints:
    - POST {id}/members/         add contacts (reactivates removed rows)
    - POST {id}/remove_members/  mark contacts removed
    - POST {id}/bulk_move/       move contacts to another list
    - POST {id}/refresh/         re-materialize a smart list
    """

    queryset = ContactList.objects.filter(deleted_at__isnull=True)
    serializer_class = ContactListSerializer

    def get_queryset(self):
        return super().get_queryset().annotate(
            active_members=Count("memberships", filter=Q(memberships__status="active"))
        )

    def perform_create(self, serializer):
        serializer.save(tenant=self.tenant)

    def perform_destroy(self, instance):
        instance.deleted_at = timezone.now()
        instance.save(update_fields=["deleted_at", "updated_at"])
        logger.info(f"List {instance.pk} soft-deleted")

    @action(detail=True, methods=["post"])
    def members(self, request, pk=None):
        contact_list = self.get_object()
        serializer = MembershipChangeSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        contact_ids = Contact.objects.filter(
            tenant=self.tenant, pk__in=serializer.validated_data["contact_ids"]
        ).exclude(status="deleted").values_list("pk", flat=True)
        added = 0
        with transaction.atomic():
            for contact_id in contact_ids:
                membership, created = ListMembership.objects.get_or_create(
                    contact_list=contact_list, contact_id=contact_id
                )
                if not created and membership.status != "active":
                    membership.status = "active"
                    membership.save(update_fields=["status"])
                    created = True
                added += int(created)
        return Response({"added": added}, status=status.HTTP_200_OK)

    @action(detail=True, methods=["post"])
    def remove_members(self, request, pk=None):
        contact_list = self.get_object()
        serializer = MembershipChangeSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        removed = ListMembership.objects.filter(
            contact_list=contact_list,
            contact_id__in=serializer.validated_data["contact_ids"],
            status="active",
        ).update(status="removed")
        return Response({"removed": removed})

    @action(detail=True, methods=["post"])
    def bulk_move(self, request, pk=None):
        contact_list = self.get_object()
        serializer = BulkMoveSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        try:
            added = services.bulk_move(
                self.tenant,
                contact_list,
                serializer.validated_data["contact_ids"],
                serializer.validated_data["target_list_id"],
            )
        except ListNotFound as e:
            return Response({"error": str(e)}, status=status.HTTP_400_BAD_REQUEST)
        return Response({"moved": added})

    @action(detail=True, methods=["post"])
    def refresh(self, request, pk=None):
        contact_list = self.get_object()
        try:
            result = services.refresh_smart_list(contact_list)
        except InvalidFilterDefinition as e:
            return Response({"error": str(e)}, status=status.HTTP_400_BAD_REQUEST)
        return Response(result)


class SuppressionViewSet(
    TenantScopedMixin,
    mixins.ListModelMixin,
    mixins.CreateModelMixin,
    mixins.DestroyModelMixin,
    viewsets.GenericViewSet,
):
    queryset = Suppression.objects.all()
    serializer_class = SuppressionSerializer
    filter_backends = [filters.SearchFilter]
    search_fields = ["email"]

    def get_queryset(self):
        return Suppression.objects.filter(account_id=self.tenant.account_id)

    def create(self, request, *args, **kwargs):
        serializer = self.get_serializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        email = serializer.validated_data["email"].strip().lower()
        suppression, created = Suppression.objects.get_or_create(
            account_id=self.tenant.account_id,
            email=email,
            defaults={"reason": serializer.validated_data.get("reason", "manual"), "source": "manual"},
        )
        if created:
            logger.info(f"Manual suppression added for account {self.tenant.account_id}")
        return Response(
            self.get_serializer(suppression).data,
            status=status.HTTP_201_CREATED if created else status.HTTP_200_OK,
        )

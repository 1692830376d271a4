"""
DRF viewsets for templates and campaigns.

Campaign lifecycle (compile, schedule, cancel, pause, resume, settings) is
exposed as actions on the campaign resource; the sender worker owns the
transitions into ``sending`` and ``completed``. Everything is scoped to the
tenant in the ``X-Tenant-Id`` header.
"""

import logging

from django_filters.rest_framework import DjangoFilterBackend
from rest_framework import status, viewsets
from rest_framework.decorators import action
from rest_framework.response import Response

from audience.resolver import resolve_audience
from tenants.permissions import TenantScopedMixin
from tracking.analytics import campaign_summary
from tracking.filters import EmailEventFilter
from tracking.models import EmailEvent
from tracking.serializers import EmailEventSerializer
from . import repository, services
from .compiler import compile_campaign
from .exceptions import CampaignStateError, CompileError
from .models import Campaign, Template
from .serializers import (
    AudienceSnapshotSerializer,
    CampaignArtifactSerializer,
    CampaignSerializer,
    CampaignSettingsSerializer,
    ScheduleSerializer,
    TemplateSerializer,
)

logger = logging.getLogger(__name__)


def _error(exc):
    return Response({"error": str(exc)}, status=status.HTTP_400_BAD_REQUEST)


class TemplateViewSet(TenantScopedMixin, viewsets.ModelViewSet):
    queryset = Template.objects.all()
    serializer_class = TemplateSerializer

    def perform_create(self, serializer):
        serializer.save(tenant=self.tenant)


class CampaignViewSet(TenantScopedMixin, viewsets.ModelViewSet):
    """
    ViewSet for campaigns.

    Provides endpoints for:
    - CRUD on campaigns (delete refused while sending)
    - compile: build the next artifact version
    - schedule / cancel / pause / resume: lifecycle transitions
    - settings: chunk size, delay, timezone, scheduled_at
    - artifact: latest compiled artifact and audience snapshot
    - recipients: resolved audience preview
    - events: paginated ledger rows, filterable by type
    - stats: delivery and engagement summary
    """

    queryset = Campaign.objects.select_related("template").prefetch_related("lists")
    serializer_class = CampaignSerializer
    filter_backends = [DjangoFilterBackend]
    filterset_fields = ["status"]

    def get_serializer_context(self):
        context = super().get_serializer_context()
        context["tenant"] = self.tenant
        return context

    def perform_create(self, serializer):
        serializer.save(tenant=self.tenant)

    def destroy(self, request, *args, **kwargs):
        campaign = self.get_object()
        try:
            services.ensure_deletable(campaign)
        except CampaignStateError as e:
            return _error(e)
        campaign.delete()
        logger.info(f"Campaign {campaign.pk} deleted")
        return Response(status=status.HTTP_204_NO_CONTENT)

    @action(detail=True, methods=["post"])
    def compile(self, request, pk=None):
        campaign = self.get_object()
        try:
            result = compile_campaign(campaign)
        except (CompileError, CampaignStateError) as e:
            logger.warning(f"Compile refused for campaign {campaign.pk}: {str(e)}")
            return _error(e)
        return Response(result.as_dict(), status=status.HTTP_201_CREATED)

    @action(detail=True, methods=["get"])
    def artifact(self, request, pk=None):
        campaign = self.get_object()
        artifact = repository.latest_artifact(campaign.pk)
        if artifact is None:
            return Response({"error": "Campaign has not been compiled"}, status=status.HTTP_404_NOT_FOUND)
        snapshot = repository.latest_audience_snapshot(campaign.pk)
        data = CampaignArtifactSerializer(artifact).data
        data["audience"] = AudienceSnapshotSerializer(snapshot).data if snapshot else None
        return Response(data)

    @action(detail=True, methods=["post"])
    def schedule(self, request, pk=None):
        campaign = self.get_object()
        serializer = ScheduleSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        try:
            campaign = services.schedule_campaign(
                campaign,
                scheduled_at=serializer.validated_data.get("scheduled_at"),
                timezone_name=serializer.validated_data.get("timezone"),
            )
        except CampaignStateError as e:
            return _error(e)
        return Response(self.get_serializer(campaign).data)

    def _lifecycle(self, transition):
        campaign = self.get_object()
        try:
            campaign = transition(campaign)
        except CampaignStateError as e:
            return _error(e)
        return Response(self.get_serializer(campaign).data)

    @action(detail=True, methods=["post"])
    def cancel(self, request, pk=None):
        return self._lifecycle(services.cancel_campaign)

    @action(detail=True, methods=["post"])
    def pause(self, request, pk=None):
        return self._lifecycle(services.pause_campaign)

    @action(detail=True, methods=["post"])
    def resume(self, request, pk=None):
        return self._lifecycle(services.resume_campaign)

    @action(detail=True, methods=["post", "patch"], url_path="settings")
    def send_settings(self, request, pk=None):
        campaign = self.get_object()
        serializer = CampaignSettingsSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        try:
            campaign = services.update_send_settings(campaign, **serializer.validated_data)
        except CampaignStateError as e:
            return _error(e)
        return Response(self.get_serializer(campaign).data)

    @action(detail=True, methods=["get"])
    def recipients(self, request, pk=None):
        campaign = self.get_object()
        audience = resolve_audience(campaign)
        remaining_ids = {r.contact_id for r in audience.remaining}
        recipients = [
            {
                "contact_id": str(r.contact_id),
                "email": r.email,
                "name": r.name,
                "is_processed": r.contact_id not in remaining_ids,
            }
            for r in audience.candidates
        ]
        page = self.paginate_queryset(recipients)
        summary = {
            "total_potential": audience.total_candidates,
            "remaining": audience.remaining_count,
            "processed": audience.processed_count,
        }
        if page is not None:
            response = self.get_paginated_response(page)
            response.data.update(summary)
            return response
        return Response({**summary, "results": recipients})

    @action(detail=True, methods=["get"])
    def events(self, request, pk=None):
        campaign = self.get_object()
        events = EmailEvent.objects.filter(campaign=campaign).select_related("contact").order_by(
            "-occurred_at", "-id"
        )
        filterset = EmailEventFilter(request.query_params, queryset=events)
        if not filterset.is_valid():
            return Response(filterset.errors, status=status.HTTP_400_BAD_REQUEST)
        page = self.paginate_queryset(filterset.qs)
        serializer = EmailEventSerializer(page, many=True)
        return self.get_paginated_response(serializer.data)

    @action(detail=True, methods=["get"])
    def stats(self, request, pk=None):
        return Response(campaign_summary(self.get_object()))

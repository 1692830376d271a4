"""
Storage for versioned campaign artifacts and audience snapshots.

Both tables are append-only. The only in-place writes are the compile hooks'
``merge_artifact_meta`` and ``backfill_artifact_text``, which always target
one exact (campaign, version) row.
"""

import logging

from django.db import transaction
from django.db.models import Max

from .models import AudienceSnapshot, Campaign, CampaignArtifact

logger = logging.getLogger(__name__)


def next_version(campaign_id):
    current = CampaignArtifact.objects.filter(campaign_id=campaign_id).aggregate(
        Max("version")
    )["version__max"]
    return (current or 0) + 1


def create_artifact(campaign, subject, html_compiled, text_compiled="", meta=None):
    """Store a new artifact at the next version for ``campaign``."""
    with transaction.atomic():
        # Serialize concurrent compiles of the same campaign
        Campaign.objects.select_for_update().only("id").get(pk=campaign.pk)
        version = next_version(campaign.pk)
        artifact = CampaignArtifact.objects.create(
            campaign=campaign,
            version=version,
            subject=subject,
            html_compiled=html_compiled or "",
            text_compiled=text_compiled or "",
            meta=meta or {},
        )
    logger.info(f"Artifact created for campaign {campaign.pk}: v{version}")
    return artifact


def latest_artifact(campaign_id):
    return (
        CampaignArtifact.objects.filter(campaign_id=campaign_id)
        .order_by("-version")
        .first()
    )


def create_audience_snapshot(
    campaign, version, total_recipients, included_lists, filters=None, dedup_policy="email_lower"
):
    return AudienceSnapshot.objects.create(
        campaign=campaign,
        version=version,
        total_recipients=total_recipients,
        included_lists=[str(list_id) for list_id in included_lists],
        filters=filters or {},
        dedup_policy=dedup_policy,
    )


def latest_audience_snapshot(campaign_id):
    return (
        AudienceSnapshot.objects.filter(campaign_id=campaign_id)
        .order_by("-version")
        .first()
    )


def merge_artifact_meta(campaign_id, version, patch):
    """
    Merge ``patch`` into the artifact's ``meta``; existing keys not in the
    patch survive. Returns False when the artifact does not exist.
    """
    with transaction.atomic():
        row = (
            CampaignArtifact.objects.select_for_update()
            .filter(campaign_id=campaign_id, version=version)
            .values("meta")
            .first()
        )
        if row is None:
            logger.warning(f"No artifact to merge meta into: {campaign_id} v{version}")
            return False
        merged = dict(row["meta"] or {})
        merged.update(patch)
        CampaignArtifact.objects.filter(campaign_id=campaign_id, version=version).update(
            meta=merged
        )
    return True


def backfill_artifact_text(campaign_id, version, text):
    updated = CampaignArtifact.objects.filter(
        campaign_id=campaign_id, version=version
    ).update(text_compiled=text)
    return updated == 1

"""
Compile a campaign's template into a new immutable artifact.
"""

import logging
from dataclasses import dataclass, field

from django.conf import settings
from django.db import transaction
from django.utils import timezone

from audience.resolver import candidate_recipients
from . import repository
from .exceptions import CampaignStateError, CompileError
from .hooks import CompileContext, CompileEvent, CompileEventType, default_registry
from .link_processor import process_html_links, utm_settings_for
from .models import Campaign

logger = logging.getLogger(__name__)


@dataclass
class CompileResult:
    artifact: object
    snapshot: object
    hook_outcomes: list = field(default_factory=list)

    @property
    def version(self):
        return self.artifact.version

    def as_dict(self):
        meta = self.artifact.meta or {}
        return {
            "campaign_id": str(self.artifact.campaign_id),
            "version": self.artifact.version,
            "total_recipients": self.snapshot.total_recipients,
            "link_stats": meta.get("link_stats", {}),
            "security": meta.get("security", {}),
            "hooks": [outcome.as_dict() for outcome in self.hook_outcomes],
        }


def compile_campaign(campaign, registry=None):
    """
    Produce the next artifact version and audience snapshot for ``campaign``
    and run the post-compile hooks over it.

    Raises:
        CompileError: the campaign has no template, or the template is empty
        CampaignStateError: the campaign is completed or cancelled
    """
    registry = registry or default_registry

    if campaign.status in Campaign.TERMINAL_STATUSES:
        raise CampaignStateError(f"Cannot compile a {campaign.status} campaign")
    template = campaign.template
    if template is None:
        raise CompileError("Campaign has no template")
    if not (template.html or template.text):
        raise CompileError("Template has no content")

    policy, utms = utm_settings_for(campaign.google_analytics, campaign.id)
    links = process_html_links(
        template.html,
        campaign_id=campaign.id,
        tracking_domain=settings.TRACKING_DOMAIN,
        policy=policy,
        utms=utms,
    )
    recipients = candidate_recipients(campaign)
    list_ids = list(campaign.lists.values_list("id", flat=True))

    with transaction.atomic():
        artifact = repository.create_artifact(
            campaign,
            subject=template.subject,
            html_compiled=links.html,
            text_compiled=template.text,
            meta={
                "template_id": str(template.id),
                "utm_policy": policy,
                "compiled_at": timezone.now().isoformat(),
            },
        )
        snapshot = repository.create_audience_snapshot(
            campaign,
            version=artifact.version,
            total_recipients=len(recipients),
            included_lists=list_ids,
        )

    event = CompileEvent(
        type=CompileEventType.ARTIFACT_COMPILED,
        campaign_id=campaign.id,
        tenant_id=campaign.tenant_id,
        version=artifact.version,
    )
    context = CompileContext(
        campaign=campaign,
        artifact=artifact,
        source_html=template.html,
        authored_text=template.text,
        total_recipients=len(recipients),
        link_map=links.link_map,
        link_stats=links.stats,
    )
    outcomes = registry.execute(event, context)
    artifact.refresh_from_db()

    failed = [o.hook.value for o in outcomes if not o.success]
    if failed:
        logger.warning(f"Campaign {campaign.id} v{artifact.version} compiled with failed hooks: {failed}")
    logger.info(
        f"Campaign {campaign.id} compiled to v{artifact.version} "
        f"({len(recipients)} recipients, {links.stats['tracked']} tracked links)"
    )
    return CompileResult(artifact=artifact, snapshot=snapshot, hook_outcomes=outcomes)

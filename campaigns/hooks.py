"""
Post-compile hook registry.

Hooks are keyed by a closed ``HookName`` enum and run around one event type,
``CompileEventType.ARTIFACT_COMPILED``. Every registered hook runs, in
registration order, and each one's failure is captured in its own
``HookOutcome`` instead of aborting the rest. Hooks that need to share data
do it through the persisted artifact row, not through each other's results.
"""

import logging
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Optional

from django.utils import timezone

from . import repository
from .html_to_text import MIN_TEXT_LENGTH, html_to_text
from .security import validate_html

logger = logging.getLogger(__name__)


class HookName(str, Enum):
    AUDIT_LOG = "audit-log"
    METRICS_EMIT = "metrics-emit"
    HTML_TO_TEXT = "html-to-text-generation"
    SECURITY_VALIDATION = "security-validation"
    LINK_PROCESSING = "link-processing"


class CompileEventType(str, Enum):
    ARTIFACT_COMPILED = "artifact.compiled"


@dataclass(frozen=True)
class CompileEvent:
    type: CompileEventType
    campaign_id: Any
    tenant_id: Any
    version: int
    occurred_at: Any = field(default_factory=timezone.now)


@dataclass
class CompileContext:
    """What every hook receives alongside the event."""

    campaign: Any
    artifact: Any
    source_html: str
    authored_text: str
    total_recipients: int
    link_map: list = field(default_factory=list)
    link_stats: dict = field(default_factory=dict)


@dataclass
class HookOutcome:
    hook: HookName
    success: bool
    duration_ms: float
    result: Optional[dict] = None
    error: Optional[str] = None

    def as_dict(self):
        return {
            "hook": self.hook.value,
            "success": self.success,
            "duration_ms": round(self.duration_ms, 2),
            "result": self.result,
            "error": self.error,
        }


Handler = Callable[[CompileEvent, CompileContext], Optional[dict]]


class HookRegistry:
    def __init__(self):
        self._hooks = {}

    def register(self, name, handler: Handler):
        name = HookName(name)
        if not callable(handler):
            raise TypeError(f"Hook handler for '{name.value}' must be callable")
        self._hooks[name] = handler
        logger.debug(f"Registered compile hook: {name.value}")

    def hook(self, name):
        """Decorator form of :meth:`register`."""

        def decorator(handler):
            self.register(name, handler)
            return handler

        return decorator

    def names(self):
        return list(self._hooks)

    def execute(self, event: CompileEvent, context: CompileContext):
        outcomes = []
        for name, handler in list(self._hooks.items()):
            started = time.monotonic()
            try:
                result = handler(event, context)
            except Exception as e:
                duration = (time.monotonic() - started) * 1000
                logger.error(
                    f"Hook {name.value} failed for campaign {event.campaign_id} "
                    f"v{event.version}: {str(e)}"
                )
                outcomes.append(
                    HookOutcome(hook=name, success=False, duration_ms=duration, error=str(e))
                )
                continue
            duration = (time.monotonic() - started) * 1000
            logger.info(f"Hook {name.value} executed in {duration:.1f}ms")
            outcomes.append(
                HookOutcome(hook=name, success=True, duration_ms=duration, result=result)
            )
        return outcomes


default_registry = HookRegistry()


@default_registry.hook(HookName.AUDIT_LOG)
def audit_log(event, context):
    logger.info(
        f"Compile audit: event={event.type.value} campaign={event.campaign_id} "
        f"tenant={event.tenant_id} version={event.version} "
        f"recipients={context.total_recipients} at={event.occurred_at.isoformat()}"
    )
    return {"logged": True}


@default_registry.hook(HookName.METRICS_EMIT)
def metrics_emit(event, context):
    logger.info(
        f"metric=compile.completed campaign={event.campaign_id} version={event.version} "
        f"recipients={context.total_recipients} tenant={event.tenant_id}"
    )
    return {"metrics_emitted": True}


@default_registry.hook(HookName.HTML_TO_TEXT)
def generate_text(event, context):
    if context.authored_text:
        return {"text_generated": False, "reason": "authored-text"}
    if not context.source_html:
        return {"text_generated": False, "reason": "no-html"}

    text = html_to_text(context.source_html)
    if len(text) <= MIN_TEXT_LENGTH:
        logger.warning(
            f"Generated text too short for campaign {event.campaign_id}, keeping original"
        )
        return {"text_generated": False, "reason": "text-too-short"}

    repository.backfill_artifact_text(event.campaign_id, event.version, text)
    return {
        "text_generated": True,
        "text_length": len(text),
        "compression_ratio": round(len(text) / len(context.source_html) * 100),
    }


@default_registry.hook(HookName.SECURITY_VALIDATION)
def security_validation(event, context):
    result = validate_html(context.artifact.html_compiled)
    repository.merge_artifact_meta(event.campaign_id, event.version, {"security": result})
    return result


@default_registry.hook(HookName.LINK_PROCESSING)
def store_link_map(event, context):
    if context.link_map:
        repository.merge_artifact_meta(
            event.campaign_id,
            event.version,
            {"link_map": context.link_map, "link_stats": context.link_stats},
        )
    return {
        "links_processed": context.link_stats.get("tracked", 0),
        "links_skipped": context.link_stats.get("skipped", 0),
        "total_links": context.link_stats.get("total", 0),
        "tracking_applied": context.link_stats.get("tracked", 0) > 0,
    }

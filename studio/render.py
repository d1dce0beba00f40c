"""
Render provider callback reconciliation.

The provider calls back with a render id it assigned when the render was
submitted. We authenticate the call, pull the id/status/url/error out of
whichever payload shape arrived, and patch the matching job.
"""
import hmac
import logging
from dataclasses import dataclass

from django.conf import settings

from . import jobs
from .errors import ConfigurationError, NotFoundError, Unauthorized, ValidationError
from .models import Job

logger = logging.getLogger(__name__)

Stage = Job.Stage
Status = Job.Status

SECRET_HEADERS = ("X-Webhook-Secret", "X-Shotstack-Signature", "Authorization")
BEARER_PREFIX = "Bearer "

# Precedence is fixed: the first matching class wins when keywords co-occur
STATUS_KEYWORDS = (
    ("done", ("done", "complete")),
    ("failed", ("fail", "error")),
    ("rendering", ("render", "process")),
)


@dataclass(frozen=True)
class RenderEvent:
    render_job_id: str
    status: str
    raw_status: str | None = None
    url: str | None = None
    error: str | None = None
    payload_id: str | None = None


def classify_render_status(raw_status) -> str:
    """Map provider status text onto done / failed / rendering / queued."""
    normalized = raw_status.lower() if isinstance(raw_status, str) else ""
    for label, keywords in STATUS_KEYWORDS:
        if any(k in normalized for k in keywords):
            return label
    return "queued"


def secrets_match(provided, expected) -> bool:
    if not provided or not expected:
        return False
    provided_b, expected_b = provided.encode("utf-8"), expected.encode("utf-8")
    if len(provided_b) != len(expected_b):
        return False
    return hmac.compare_digest(provided_b, expected_b)


def read_webhook_secret(headers) -> str | None:
    """First non-empty secret header; a `Bearer ` prefix is stripped."""
    for name in SECRET_HEADERS:
        value = headers.get(name)
        if value:
            if value.startswith(BEARER_PREFIX):
                return value[len(BEARER_PREFIX):]
            return value
    return None


def authenticate(headers) -> None:
    expected = settings.RENDER_WEBHOOK_SECRET
    if not expected:
        raise ConfigurationError("Missing RENDER_WEBHOOK_SECRET")
    if not secrets_match(read_webhook_secret(headers), expected):
        raise Unauthorized("Unauthorized webhook")


def _as_string(value) -> str | None:
    return value.strip() if isinstance(value, str) and value.strip() else None


def _first_string(payload: dict, *locations) -> str | None:
    """Try (container, key) locations in order; container None means top level."""
    for container, key in locations:
        source = payload if container is None else payload.get(container)
        if isinstance(source, dict):
            value = _as_string(source.get(key))
            if value:
                return value
    return None


def extract_render_event(payload) -> RenderEvent:
    if not isinstance(payload, dict):
        raise ValidationError("Webhook payload must be a JSON object")

    render_job_id = _first_string(payload, (None, "id"), (None, "renderId"), ("response", "id"))
    if not render_job_id:
        raise ValidationError("Webhook payload missing render id")

    raw_status = _first_string(payload, (None, "status"), ("response", "status"), ("data", "status"))
    return RenderEvent(
        render_job_id=render_job_id,
        status=classify_render_status(raw_status),
        raw_status=raw_status,
        url=_first_string(payload, (None, "url"), ("response", "url"), ("data", "url")),
        error=_first_string(payload, (None, "error"), ("response", "error"), ("data", "error")),
        payload_id=_as_string(payload.get("id")),
    )


def reconcile_render_event(event: RenderEvent) -> Job:
    job = jobs.find_by_render_job_id(event.render_job_id)
    if job is None:
        raise NotFoundError(f"No job found for render id {event.render_job_id}.")

    meta = {"webhookStatus": event.raw_status, "webhookPayloadId": event.payload_id}
    if event.status == "done":
        fields = dict(
            status=Status.COMPLETED,
            stage=Stage.COMPLETED,
            progress=100,
            message="Render completed.",
            final_video_url=event.url or job.final_video_url,
        )
    elif event.status == "failed":
        fields = dict(
            status=Status.FAILED,
            stage=Stage.FAILED,
            message=event.error or "Render failed.",
            error=event.error or "Render failed.",
        )
    else:
        fields = dict(
            status=Status.GENERATING,
            stage=Stage.ASSEMBLY,
            message="Render is in progress.",
        )

    job = jobs.patch_job(job.pk, provider_meta=meta, **fields)
    logger.info("job %s: render %s reported %s", job.pk, event.render_job_id, event.status)
    return job


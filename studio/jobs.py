"""
Job store and stage state machine.

Main path:  queued -> pre_production -> production_pending -> production
            -> assembly -> completed
Any non-terminal stage may move to failed. failed is terminal; completed is
terminal except for the reopen edge completed -> production.

The agent may label pre-production with sub-stage hints (idea, story,
screenplay, scene_plan, planning). They are advisory and interchangeable with
pre_production.
"""
import logging
import math

from django.core.exceptions import ValidationError as DjangoValidationError
from django.db import transaction
from django.utils import timezone

from . import documents
from .errors import NotFoundError, PreconditionError, ValidationError
from .models import Job, Movie

logger = logging.getLogger(__name__)

Stage = Job.Stage
Status = Job.Status

PRE_PRODUCTION_STAGES = frozenset({
    Stage.PRE_PRODUCTION.value,
    Stage.IDEA.value,
    Stage.STORY.value,
    Stage.SCREENPLAY.value,
    Stage.SCENE_PLAN.value,
    Stage.PLANNING.value,
})

TERMINAL_STAGES = frozenset({Stage.COMPLETED.value, Stage.FAILED.value})

_STAGE_TRANSITIONS = {
    (Stage.PRODUCTION_PENDING.value, Stage.PRODUCTION.value),
    (Stage.PRODUCTION.value, Stage.ASSEMBLY.value),
    (Stage.ASSEMBLY.value, Stage.COMPLETED.value),
    # Reopen a finished job for another production pass
    (Stage.COMPLETED.value, Stage.PRODUCTION.value),
}
_STAGE_TRANSITIONS |= {(Stage.QUEUED.value, s) for s in PRE_PRODUCTION_STAGES}
_STAGE_TRANSITIONS |= {(a, b) for a in PRE_PRODUCTION_STAGES for b in PRE_PRODUCTION_STAGES}
_STAGE_TRANSITIONS |= {(s, Stage.PRODUCTION_PENDING.value) for s in PRE_PRODUCTION_STAGES}

PATCHABLE_FIELDS = frozenset({
    "status", "stage", "progress", "message", "error", "completion_token",
    "render_provider", "render_job_id", "provider_meta", "final_video_url",
})

DEFAULT_TITLE = "Untitled Movie"


def can_transition_stage(from_stage: str, to_stage: str) -> bool:
    from_stage, to_stage = str(from_stage), str(to_stage)
    if from_stage == to_stage:
        return True
    if to_stage == Stage.FAILED:
        return from_stage not in TERMINAL_STAGES
    return (from_stage, to_stage) in _STAGE_TRANSITIONS


def validate_stage_transition(from_stage: str, to_stage: str) -> None:
    if not can_transition_stage(from_stage, to_stage):
        raise PreconditionError(
            f"Invalid stage transition: {from_stage} -> {to_stage}",
            current_stage=from_stage,
            target_stage=to_stage,
        )


def clamp_progress(value, fallback: int) -> int:
    """Round to an int in [0, 100]; non-numeric values give the fallback."""
    if isinstance(value, bool) or not isinstance(value, (int, float)) or math.isnan(value):
        return fallback
    if math.isinf(value):
        return 100 if value > 0 else 0
    # Halves round up: 42.5 -> 43
    return max(0, min(100, int(math.floor(value + 0.5))))


def create_movie_and_job(*, user_id, title="", concept="", plot_overview="", script="", visual_style="") -> Job:
    """Create the Movie, its queued Job and the six seed documents in one transaction."""
    user_id = documents.normalize_text(user_id)
    if not user_id:
        raise ValidationError("Missing userId")

    seed = {
        "title": documents.normalize_text(title)[:512] or DEFAULT_TITLE,
        "concept": documents.normalize_text(concept),
        "plot_overview": documents.normalize_text(plot_overview),
        "script": documents.normalize_text(script),
        "visual_style": documents.normalize_text(visual_style),
    }

    with transaction.atomic():
        movie = Movie.objects.create(
            user_id=user_id,
            idea=seed["concept"],
            story=seed["plot_overview"],
            screenplay=seed["script"],
            **seed,
        )
        job = Job.objects.create(
            movie=movie,
            user_id=user_id,
            status=Status.QUEUED,
            stage=Stage.QUEUED,
            progress=0,
            message="Queued for pre-production.",
        )
        documents.initialize(job, seed)

    logger.info("job %s created for user %s (movie %s)", job.id, user_id, movie.id)
    return job


def get_job(job_id) -> Job:
    try:
        return Job.objects.select_related("movie").get(pk=job_id)
    except (Job.DoesNotExist, DjangoValidationError, ValueError, TypeError):
        raise NotFoundError(f"Job not found: {job_id}")


def list_jobs_by_user(user_id) -> list[Job]:
    user_id = documents.normalize_text(user_id)
    if not user_id:
        raise ValidationError("Missing userId")
    return list(Job.objects.select_related("movie").filter(user_id=user_id).order_by("-created_at"))


def find_by_render_job_id(render_job_id) -> Job | None:
    if not render_job_id:
        return None
    return Job.objects.filter(render_job_id=render_job_id).order_by("created_at").first()


def patch_job(job_id, **fields) -> Job:
    """
    Merge the given fields into the job, leaving every other field untouched.

    progress is clamped to [0, 100] (a non-numeric value keeps the current one),
    a stage change must follow the transition graph, error=None clears the
    error, and completed_at is stamped when status becomes completed.
    """
    unknown = set(fields) - PATCHABLE_FIELDS
    if unknown:
        raise ValidationError(f"Unknown job fields: {sorted(unknown)}")

    with transaction.atomic():
        try:
            job = Job.objects.select_for_update().get(pk=job_id)
        except (Job.DoesNotExist, DjangoValidationError, ValueError, TypeError):
            raise NotFoundError(f"Job not found: {job_id}")

        if "stage" in fields:
            validate_stage_transition(job.stage, fields["stage"])
        if "progress" in fields:
            fields["progress"] = clamp_progress(fields["progress"], job.progress)
        for key in ("error", "message", "completion_token", "final_video_url", "render_provider", "render_job_id"):
            if key in fields and fields[key] is None:
                fields[key] = ""

        for key, value in fields.items():
            setattr(job, key, value)
        update_fields = list(fields)
        if fields.get("status") == Status.COMPLETED:
            job.completed_at = timezone.now()
            update_fields.append("completed_at")
        update_fields.append("updated_at")
        job.save(update_fields=update_fields)

    logger.debug("job %s patched: %s", job_id, sorted(fields))
    return job


def start_production(job_id) -> Job:
    """Operator action: move a job whose pre-production is done into production."""
    job = get_job(job_id)
    if job.stage not in (Stage.PRODUCTION_PENDING, Stage.COMPLETED):
        raise PreconditionError(
            "Pre-production is not complete yet. Finish pre-production first.",
            current_stage=job.stage,
            target_stage=Stage.PRODUCTION,
        )
    job = patch_job(
        job_id,
        status=Status.GENERATING,
        stage=Stage.PRODUCTION,
        progress=0,
        message="Production triggered.",
        error=None,
    )
    logger.info("job %s: production started", job_id)
    return job


def assign_render(job_id, render_job_id, provider="shotstack") -> Job:
    """Record the provider render id for a job in production and enter assembly."""
    render_job_id = documents.normalize_text(render_job_id)
    if not render_job_id:
        raise ValidationError("Missing render job id")
    job = get_job(job_id)
    if job.stage != Stage.PRODUCTION:
        raise PreconditionError(
            f"Render can only be submitted during production (stage is {job.stage}).",
            current_stage=job.stage,
            target_stage=Stage.ASSEMBLY,
        )
    return patch_job(
        job_id,
        stage=Stage.ASSEMBLY,
        render_job_id=render_job_id,
        render_provider=provider,
        message="Render submitted.",
    )

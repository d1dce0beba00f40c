"""
Pre-production convergence loop.

Drives one agent session through at most `max_iterations` turns. Each turn the
agent sees the current documents and proposes replacements; the loop applies
them, re-syncs the Movie, and checks whether pre-production is finished.

Finished means all three of: the agent said done, every document passes the
minimum-length check, and the agent echoed the exact done token. A turn that
only claims completion keeps the loop running.
"""
import logging
from dataclasses import dataclass

from django.conf import settings

from . import documents, jobs
from .agent import GenerationSession, TurnContext, TurnResponse, build_system_prompt
from .errors import NotFoundError, PreconditionError, StudioError
from .models import Job

logger = logging.getLogger(__name__)

Stage = Job.Stage
Status = Job.Status

MAX_ITERATIONS_REACHED = "MAX_ITERATIONS_REACHED"
STARTED_PROGRESS = 3


@dataclass
class JobContext:
    job: Job
    documents: list

    @property
    def movie(self):
        return self.job.movie

    def turn_context(self, iteration: int, max_iterations: int) -> TurnContext:
        return TurnContext(
            iteration=iteration,
            max_iterations=max_iterations,
            movie={"title": self.movie.title, "concept": self.movie.concept},
            documents=self.documents,
        )


@dataclass
class LoopResult:
    ok: bool
    iterations: int = 0
    error: str | None = None
    completion_token: str | None = None


def load_context(job_id) -> JobContext:
    job = Job.objects.select_related("movie").filter(pk=job_id).first()
    if job is None:
        raise NotFoundError("Missing job context.")
    return JobContext(job=job, documents=documents.list_by_job(job_id))


def default_progress(iteration: int) -> int:
    """Fallback progress when the agent reports none: rises per turn, never reaches 100."""
    return min(95, 15 + iteration * 10)


def stage_from_hint(hint) -> str:
    """Map the agent's stage label onto a pre-production stage."""
    if not isinstance(hint, str):
        return Stage.PRE_PRODUCTION
    normalized = hint.strip().lower().replace("-", "_")
    if normalized in jobs.PRE_PRODUCTION_STAGES:
        return normalized
    return Stage.PRE_PRODUCTION


class ConvergenceLoop:
    def __init__(self, job_id, *, session_factory=GenerationSession, max_iterations=None,
                 max_updates_per_turn=None, done_token=None):
        self.job_id = job_id
        self.session_factory = session_factory
        self.max_iterations = max_iterations if max_iterations is not None else settings.AGENT_MAX_ITERATIONS
        self.max_updates_per_turn = (
            max_updates_per_turn if max_updates_per_turn is not None else settings.AGENT_MAX_UPDATES_PER_TURN
        )
        self.done_token = done_token if done_token is not None else settings.AGENT_DONE_TOKEN
        self.system_prompt = build_system_prompt(self.done_token)
        self.iterations = 0

    def run(self) -> LoopResult:
        try:
            jobs.patch_job(
                self.job_id,
                status=Status.GENERATING,
                stage=Stage.PRE_PRODUCTION,
                progress=STARTED_PROGRESS,
                message="Agent started pre-production.",
            )
        except PreconditionError as e:
            # Job already left pre-production (redelivered task); leave it alone
            logger.warning("job %s: not starting pre-production: %s", self.job_id, e)
            return LoopResult(ok=False, error=str(e))
        except Exception as e:
            return self._handle_error(e)

        try:
            with self.session_factory() as session:
                return self._iterate(session)
        except Exception as e:
            return self._handle_error(e)

    def _handle_error(self, e: Exception) -> LoopResult:
        if not isinstance(e, StudioError):
            logger.exception("job %s: unexpected error in convergence loop", self.job_id)
        return self._fail(str(e) or e.__class__.__name__)

    def _iterate(self, session) -> LoopResult:
        for iteration in range(1, self.max_iterations + 1):
            self.iterations = iteration
            context = load_context(self.job_id)
            turn = session.send_turn(
                context.turn_context(iteration, self.max_iterations),
                self.system_prompt,
            )

            applied = self.apply_updates(turn)
            documents.sync_movie_from_documents(self.job_id)
            context = load_context(self.job_id)

            if self.is_complete(turn, context.documents):
                jobs.patch_job(
                    self.job_id,
                    status=Status.COMPLETED,
                    stage=Stage.PRODUCTION_PENDING,
                    progress=100,
                    message=turn.message or "Pre-production complete. Ready for production.",
                    completion_token=self.done_token,
                )
                logger.info("job %s: pre-production converged after %d turn(s)", self.job_id, iteration)
                return LoopResult(ok=True, iterations=iteration, completion_token=self.done_token)

            progress = jobs.clamp_progress(turn.progress, default_progress(iteration))
            jobs.patch_job(
                self.job_id,
                status=Status.GENERATING,
                stage=stage_from_hint(turn.stage),
                progress=progress,
                message=self._turn_message(turn, context, iteration),
            )
            logger.info(
                "job %s: turn %d/%d applied %d update(s), progress %d",
                self.job_id, iteration, self.max_iterations, applied, progress,
            )

        jobs.patch_job(
            self.job_id,
            status=Status.FAILED,
            stage=Stage.FAILED,
            progress=100,
            message="Pre-production stopped before completing the required files.",
            error=MAX_ITERATIONS_REACHED,
        )
        logger.warning("job %s: %s", self.job_id, MAX_ITERATIONS_REACHED)
        return LoopResult(ok=False, iterations=self.max_iterations, error=MAX_ITERATIONS_REACHED)

    def apply_updates(self, turn: TurnResponse) -> int:
        applied = 0
        for update in turn.updates[:self.max_updates_per_turn]:
            doc = documents.apply_agent_update(self.job_id, update.file_key, update.content, title=update.title)
            if doc is not None:
                applied += 1
        return applied

    def has_done_token(self, turn: TurnResponse) -> bool:
        return documents.normalize_text(turn.done_token) == self.done_token

    def is_complete(self, turn: TurnResponse, docs) -> bool:
        return turn.done and documents.documents_complete(docs) and self.has_done_token(turn)

    def _turn_message(self, turn: TurnResponse, context: JobContext, iteration: int) -> str:
        if documents.normalize_text(turn.message):
            return turn.message.strip()
        if turn.done and documents.documents_complete(context.documents) and not self.has_done_token(turn):
            return f"Agent requested completion but did not send the required token {self.done_token}."
        return f"Pre-production turn {iteration}/{self.max_iterations} finished."

    def _fail(self, error: str) -> LoopResult:
        logger.error("job %s: pre-production failed: %s", self.job_id, error)
        try:
            jobs.patch_job(
                self.job_id,
                status=Status.FAILED,
                stage=Stage.FAILED,
                progress=100,
                message="Pre-production failed.",
                error=error,
            )
        except StudioError as e:
            logger.warning("job %s: could not record failure: %s", self.job_id, e)
        return LoopResult(ok=False, iterations=self.iterations, error=error)

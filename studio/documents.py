"""
Creative document store: the six versioned planning documents of a job.

Documents are the source of truth once a job exists; the Movie summary is
re-derived from them with sync_movie_from_documents().
"""
import logging
import re
from dataclasses import dataclass

from django.db import transaction

from .errors import NotFoundError
from .models import CreativeFile, Job

logger = logging.getLogger(__name__)

PLACEHOLDER = "_TODO_"


@dataclass(frozen=True)
class FileSlot:
    file_key: str
    title: str
    file_name: str
    sort_order: int
    min_length: int = 20


CATALOG = (
    FileSlot("title", "Title", "01-title.md", 10, min_length=3),
    FileSlot("concept", "Concept", "02-concept.md", 20),
    FileSlot("plot_overview", "Plot Overview", "03-plot-overview.md", 30),
    FileSlot("visual_style", "Visual Style", "04-visual-style.md", 40),
    FileSlot("script", "Script", "05-script.md", 50),
    FileSlot("storyboard_text", "Storyboard (Text)", "06-storyboard-text.md", 60),
)
SLOTS = {slot.file_key: slot for slot in CATALOG}
FILE_KEYS = tuple(SLOTS)

_STORYBOARD_TEMPLATE = "\n".join([
    "## Scene 1",
    "- Shot: ",
    "- Visual: ",
    "- Dialogue/Audio: ",
    "",
    "## Scene 2",
    "- Shot: ",
    "- Visual: ",
    "- Dialogue/Audio: ",
])

_LEADING_HEADING = re.compile(r"^#\s+[^\n]*\n+")


def normalize_text(value) -> str:
    return value.strip() if isinstance(value, str) else ""


def normalize_file_key(value) -> str:
    return normalize_text(value).lower()


def to_markdown_document(title: str, body: str) -> str:
    """Render a document as `# Title` plus body; an empty body becomes a placeholder."""
    body = normalize_text(body)
    if not body:
        return f"# {title}\n\n{PLACEHOLDER}\n"
    return f"# {title}\n\n{body}\n"


def strip_heading(content) -> str:
    """Return the document body without its leading `# Heading` line."""
    text = normalize_text(content)
    if not text:
        return ""
    return _LEADING_HEADING.sub("", text, count=1).strip()


def _seed_body(file_key: str, seed: dict) -> str:
    if file_key == "plot_overview":
        return normalize_text(seed.get("plot_overview")) or normalize_text(seed.get("concept"))
    if file_key == "storyboard_text":
        return _STORYBOARD_TEMPLATE
    return normalize_text(seed.get(file_key))


def initialize(job: Job, seed: dict) -> list[CreativeFile]:
    """Create all six documents for a new job at revision 1."""
    files = [
        CreativeFile(
            job=job,
            movie_id=job.movie_id,
            file_key=slot.file_key,
            title=slot.title,
            file_name=slot.file_name,
            sort_order=slot.sort_order,
            content=to_markdown_document(slot.title, _seed_body(slot.file_key, seed)),
            revision=1,
            updated_by=CreativeFile.UpdatedBy.SYSTEM,
        )
        for slot in CATALOG
    ]
    return CreativeFile.objects.bulk_create(files)


def apply_agent_update(job_id, file_key, content, title=None) -> CreativeFile | None:
    """
    Write one agent-proposed document body.

    Unknown keys and blank content are dropped (returns None). Otherwise the
    content replaces the document and its revision is bumped.
    """
    key = normalize_file_key(file_key)
    slot = SLOTS.get(key)
    if slot is None:
        logger.info("job %s: dropping update for unknown file key %r", job_id, file_key)
        return None
    if not normalize_text(content):
        logger.info("job %s: dropping empty update for %s", job_id, key)
        return None

    with transaction.atomic():
        doc = CreativeFile.objects.select_for_update().filter(job_id=job_id, file_key=key).first()
        if doc is None:
            job = Job.objects.get(pk=job_id)
            return CreativeFile.objects.create(
                job=job,
                movie_id=job.movie_id,
                file_key=key,
                title=normalize_text(title) or slot.title,
                file_name=slot.file_name,
                sort_order=slot.sort_order,
                content=content,
                revision=1,
                updated_by=CreativeFile.UpdatedBy.AGENT,
            )

        doc.title = normalize_text(title) or doc.title
        doc.content = content
        doc.revision += 1
        doc.updated_by = CreativeFile.UpdatedBy.AGENT
        doc.save(update_fields=["title", "content", "revision", "updated_by", "updated_at"])
        return doc


def apply_user_edit(job_id, file_key, content) -> CreativeFile:
    """Replace a document's content on behalf of the user."""
    key = normalize_file_key(file_key)
    with transaction.atomic():
        doc = CreativeFile.objects.select_for_update().filter(job_id=job_id, file_key=key).first()
        if doc is None:
            raise NotFoundError(f"File not found for key '{file_key}'.")

        if not normalize_text(content):
            content = to_markdown_document(doc.title, "")
        doc.content = content
        doc.revision += 1
        doc.updated_by = CreativeFile.UpdatedBy.USER
        doc.save(update_fields=["content", "revision", "updated_by", "updated_at"])
        return doc


def list_by_job(job_id) -> list[CreativeFile]:
    return list(CreativeFile.objects.filter(job_id=job_id).order_by("sort_order"))


def documents_complete(documents) -> bool:
    """True when every catalog document has at least its minimum body length."""
    by_key = {doc.file_key: doc for doc in documents}
    for slot in CATALOG:
        doc = by_key.get(slot.file_key)
        if doc is None or len(strip_heading(doc.content)) < slot.min_length:
            return False
    return True


def _summary(doc) -> str:
    body = strip_heading(doc.content) if doc is not None else ""
    return "" if body == PLACEHOLDER else body


def sync_movie_from_documents(job_id) -> None:
    """Copy document bodies onto the Movie; blank bodies keep the previous value."""
    job = Job.objects.select_related("movie").filter(pk=job_id).first()
    if job is None:
        return
    movie = job.movie
    by_key = {doc.file_key: doc for doc in list_by_job(job_id)}

    title = _summary(by_key.get("title"))
    concept = _summary(by_key.get("concept"))
    plot_overview = _summary(by_key.get("plot_overview"))
    visual_style = _summary(by_key.get("visual_style"))
    script = _summary(by_key.get("script"))

    movie.title = (title or movie.title)[:512]
    movie.concept = concept or movie.concept
    movie.plot_overview = plot_overview or movie.plot_overview
    movie.visual_style = visual_style or movie.visual_style
    movie.script = script or movie.script
    movie.idea = concept or movie.idea or movie.concept
    movie.story = plot_overview or movie.story or movie.plot_overview
    movie.screenplay = script or movie.screenplay or movie.script
    movie.save(update_fields=[
        "title", "concept", "plot_overview", "visual_style", "script",
        "idea", "story", "screenplay", "updated_at",
    ])

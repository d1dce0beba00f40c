import uuid
from django.db import models


class Movie(models.Model):
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    user_id = models.CharField(max_length=128, db_index=True)

    # Seed fields from the submission form; kept in sync from documents afterwards
    title = models.CharField(max_length=512)
    concept = models.TextField(blank=True, default="")
    plot_overview = models.TextField(blank=True, default="")
    script = models.TextField(blank=True, default="")
    visual_style = models.TextField(blank=True, default="")

    # Derived summary fields
    idea = models.TextField(blank=True, default="")
    story = models.TextField(blank=True, default="")
    screenplay = models.TextField(blank=True, default="")

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)


class Job(models.Model):
    class Status(models.TextChoices):
        QUEUED = "queued"
        GENERATING = "generating"
        COMPLETED = "completed"
        FAILED = "failed"

    class Stage(models.TextChoices):
        QUEUED = "queued"
        PRE_PRODUCTION = "pre_production"
        # Advisory sub-stage hints reported by the agent during pre-production
        IDEA = "idea"
        STORY = "story"
        SCREENPLAY = "screenplay"
        SCENE_PLAN = "scene_plan"
        PLANNING = "planning"
        PRODUCTION_PENDING = "production_pending"
        PRODUCTION = "production"
        ASSEMBLY = "assembly"
        COMPLETED = "completed"
        FAILED = "failed"

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    movie = models.ForeignKey(Movie, on_delete=models.CASCADE, related_name="jobs")
    user_id = models.CharField(max_length=128, db_index=True)

    status = models.CharField(max_length=16, choices=Status.choices, default=Status.QUEUED)
    stage = models.CharField(max_length=32, choices=Stage.choices, default=Stage.QUEUED)
    progress = models.PositiveSmallIntegerField(default=0)  # 0..100
    message = models.TextField(blank=True, default="")
    error = models.TextField(blank=True, default="")

    render_provider = models.CharField(max_length=64, blank=True, default="")
    render_job_id = models.CharField(max_length=128, blank=True, default="", db_index=True)
    provider_meta = models.JSONField(blank=True, null=True)
    final_video_url = models.URLField(max_length=2048, blank=True, default="")
    completion_token = models.CharField(max_length=128, blank=True, default="")

    # Reserved for worker claiming; nothing enforces it yet
    claimed_by = models.CharField(max_length=128, blank=True, default="")
    claimed_at = models.DateTimeField(blank=True, null=True)

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)
    completed_at = models.DateTimeField(blank=True, null=True)


class CreativeFile(models.Model):
    class UpdatedBy(models.TextChoices):
        SYSTEM = "system"
        AGENT = "agent"
        USER = "user"

    job = models.ForeignKey(Job, on_delete=models.CASCADE, related_name="files")
    movie = models.ForeignKey(Movie, on_delete=models.CASCADE, related_name="files")
    file_key = models.CharField(max_length=32)
    title = models.CharField(max_length=255)
    file_name = models.CharField(max_length=255)
    sort_order = models.PositiveSmallIntegerField(default=0)
    content = models.TextField(default="")
    revision = models.PositiveIntegerField(default=1)
    updated_by = models.CharField(max_length=16, choices=UpdatedBy.choices, default=UpdatedBy.SYSTEM)

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ["sort_order"]
        constraints = [
            models.UniqueConstraint(fields=["job", "file_key"], name="unique_file_per_job"),
        ]

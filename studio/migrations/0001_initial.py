import uuid

import django.db.models.deletion
from django.db import migrations, models


class Migration(migrations.Migration):

    initial = True

    dependencies = []

    operations = [
        migrations.CreateModel(
            name="Movie",
            fields=[
                ("id", models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ("user_id", models.CharField(db_index=True, max_length=128)),
                ("title", models.CharField(max_length=512)),
                ("concept", models.TextField(blank=True, default="")),
                ("plot_overview", models.TextField(blank=True, default="")),
                ("script", models.TextField(blank=True, default="")),
                ("visual_style", models.TextField(blank=True, default="")),
                ("idea", models.TextField(blank=True, default="")),
                ("story", models.TextField(blank=True, default="")),
                ("screenplay", models.TextField(blank=True, default="")),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("updated_at", models.DateTimeField(auto_now=True)),
            ],
        ),
        migrations.CreateModel(
            name="Job",
            fields=[
                ("id", models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ("user_id", models.CharField(db_index=True, max_length=128)),
                (
                    "status",
                    models.CharField(
                        choices=[
                            ("queued", "Queued"),
                            ("generating", "Generating"),
                            ("completed", "Completed"),
                            ("failed", "Failed"),
                        ],
                        default="queued",
                        max_length=16,
                    ),
                ),
                (
                    "stage",
                    models.CharField(
                        choices=[
                            ("queued", "Queued"),
                            ("pre_production", "Pre Production"),
                            ("idea", "Idea"),
                            ("story", "Story"),
                            ("screenplay", "Screenplay"),
                            ("scene_plan", "Scene Plan"),
                            ("planning", "Planning"),
                            ("production_pending", "Production Pending"),
                            ("production", "Production"),
                            ("assembly", "Assembly"),
                            ("completed", "Completed"),
                            ("failed", "Failed"),
                        ],
                        default="queued",
                        max_length=32,
                    ),
                ),
                ("progress", models.PositiveSmallIntegerField(default=0)),
                ("message", models.TextField(blank=True, default="")),
                ("error", models.TextField(blank=True, default="")),
                ("render_provider", models.CharField(blank=True, default="", max_length=64)),
                ("render_job_id", models.CharField(blank=True, db_index=True, default="", max_length=128)),
                ("provider_meta", models.JSONField(blank=True, null=True)),
                ("final_video_url", models.URLField(blank=True, default="", max_length=2048)),
                ("completion_token", models.CharField(blank=True, default="", max_length=128)),
                ("claimed_by", models.CharField(blank=True, default="", max_length=128)),
                ("claimed_at", models.DateTimeField(blank=True, null=True)),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("updated_at", models.DateTimeField(auto_now=True)),
                ("completed_at", models.DateTimeField(blank=True, null=True)),
                (
                    "movie",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="jobs",
                        to="studio.movie",
                    ),
                ),
            ],
        ),
        migrations.CreateModel(
            name="CreativeFile",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("file_key", models.CharField(max_length=32)),
                ("title", models.CharField(max_length=255)),
                ("file_name", models.CharField(max_length=255)),
                ("sort_order", models.PositiveSmallIntegerField(default=0)),
                ("content", models.TextField(default="")),
                ("revision", models.PositiveIntegerField(default=1)),
                (
                    "updated_by",
                    models.CharField(
                        choices=[("system", "System"), ("agent", "Agent"), ("user", "User")],
                        default="system",
                        max_length=16,
                    ),
                ),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("updated_at", models.DateTimeField(auto_now=True)),
                (
                    "job",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="files",
                        to="studio.job",
                    ),
                ),
                (
                    "movie",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="files",
                        to="studio.movie",
                    ),
                ),
            ],
            options={
                "ordering": ["sort_order"],
            },
        ),
        migrations.AddConstraint(
            model_name="creativefile",
            constraint=models.UniqueConstraint(fields=("job", "file_key"), name="unique_file_per_job"),
        ),
    ]

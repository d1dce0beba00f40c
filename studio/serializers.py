from rest_framework import serializers
from .models import CreativeFile, Job


class JobSerializer(serializers.ModelSerializer):
    movieId = serializers.UUIDField(source="movie_id", read_only=True)
    userId = serializers.CharField(source="user_id", read_only=True)
    movieTitle = serializers.CharField(source="movie.title", read_only=True)
    renderJobId = serializers.CharField(source="render_job_id", read_only=True)
    finalVideoUrl = serializers.CharField(source="final_video_url", read_only=True)
    completionToken = serializers.CharField(source="completion_token", read_only=True)
    createdAt = serializers.DateTimeField(source="created_at", read_only=True)
    updatedAt = serializers.DateTimeField(source="updated_at", read_only=True)
    completedAt = serializers.DateTimeField(source="completed_at", read_only=True)

    class Meta:
        model = Job
        fields = [
            "id",
            "movieId",
            "userId",
            "movieTitle",
            "status",
            "stage",
            "progress",
            "message",
            "error",
            "renderJobId",
            "finalVideoUrl",
            "completionToken",
            "createdAt",
            "updatedAt",
            "completedAt",
        ]


class CreativeFileSerializer(serializers.ModelSerializer):
    fileKey = serializers.CharField(source="file_key", read_only=True)
    fileName = serializers.CharField(source="file_name", read_only=True)
    sortOrder = serializers.IntegerField(source="sort_order", read_only=True)
    updatedBy = serializers.CharField(source="updated_by", read_only=True)
    updatedAt = serializers.DateTimeField(source="updated_at", read_only=True)

    class Meta:
        model = CreativeFile
        fields = ["fileKey", "title", "fileName", "sortOrder", "content", "revision", "updatedBy", "updatedAt"]


class MovieSubmissionSerializer(serializers.Serializer):
    userId = serializers.CharField()
    title = serializers.CharField(required=False, allow_blank=True, default="")
    concept = serializers.CharField(required=False, allow_blank=True, default="")
    plotOverview = serializers.CharField(required=False, allow_blank=True, default="")
    script = serializers.CharField(required=False, allow_blank=True, default="")
    visualStyle = serializers.CharField(required=False, allow_blank=True, default="")


class FileEditSerializer(serializers.Serializer):
    content = serializers.CharField(allow_blank=True, trim_whitespace=False)

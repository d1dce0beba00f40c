import logging

from rest_framework import status, views
from rest_framework.permissions import AllowAny
from rest_framework.response import Response

from . import documents, jobs, render
from .serializers import (
    CreativeFileSerializer,
    FileEditSerializer,
    JobSerializer,
    MovieSubmissionSerializer,
)
from .tasks import run_preproduction

logger = logging.getLogger(__name__)


class JobListCreateView(views.APIView):
    """
    GET lists a user's jobs (newest first).
    POST creates a Movie + Job + seed documents and enqueues pre-production.
    """
    permission_classes = [AllowAny]
    authentication_classes = []

    def get(self, request):
        user_jobs = jobs.list_jobs_by_user(request.query_params.get("userId", ""))
        return Response({"jobs": JobSerializer(user_jobs, many=True).data})

    def post(self, request):
        ser = MovieSubmissionSerializer(data=request.data)
        ser.is_valid(raise_exception=True)
        data = ser.validated_data

        job = jobs.create_movie_and_job(
            user_id=data["userId"],
            title=data["title"],
            concept=data["concept"],
            plot_overview=data["plotOverview"],
            script=data["script"],
            visual_style=data["visualStyle"],
        )

        run_preproduction.delay(str(job.id))  # queue background pre-production
        return Response({"jobId": str(job.id)}, status=status.HTTP_202_ACCEPTED)


class JobDetailView(views.APIView):
    permission_classes = [AllowAny]
    authentication_classes = []

    def get(self, request, job_id):
        return Response({"job": JobSerializer(jobs.get_job(job_id)).data})


class JobFilesView(views.APIView):
    permission_classes = [AllowAny]
    authentication_classes = []

    def get(self, request, job_id):
        jobs.get_job(job_id)
        files = documents.list_by_job(job_id)
        return Response({"files": CreativeFileSerializer(files, many=True).data})


class JobFileDetailView(views.APIView):
    permission_classes = [AllowAny]
    authentication_classes = []

    def patch(self, request, job_id, file_key):
        ser = FileEditSerializer(data=request.data)
        ser.is_valid(raise_exception=True)
        doc = documents.apply_user_edit(job_id, file_key, ser.validated_data["content"])
        return Response({"ok": True, "file": CreativeFileSerializer(doc).data})


class StartProductionView(views.APIView):
    permission_classes = [AllowAny]
    authentication_classes = []

    def post(self, request, job_id):
        job = jobs.start_production(job_id)
        return Response({"ok": True, "job": JobSerializer(job).data})


class RenderWebhookView(views.APIView):
    """
    Render provider callback. Authenticated with a shared secret sent as
    X-Webhook-Secret, X-Shotstack-Signature or `Authorization: Bearer`.
    """
    permission_classes = [AllowAny]
    authentication_classes = []

    def post(self, request):
        render.authenticate(request.headers)  # before touching the body
        job = render.reconcile_render_event(render.extract_render_event(request.data))
        return Response({"ok": True, "jobId": str(job.id), "status": job.status, "stage": job.stage})

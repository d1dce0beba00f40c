from django.urls import path
from .views import (
    JobDetailView,
    JobFileDetailView,
    JobFilesView,
    JobListCreateView,
    RenderWebhookView,
    StartProductionView,
)

urlpatterns = [
    path("jobs/", JobListCreateView.as_view(), name="jobs"),
    path("jobs/<uuid:job_id>/", JobDetailView.as_view(), name="job_detail"),
    path("jobs/<uuid:job_id>/files/", JobFilesView.as_view(), name="job_files"),
    path("jobs/<uuid:job_id>/files/<str:file_key>/", JobFileDetailView.as_view(), name="job_file_detail"),
    path("jobs/<uuid:job_id>/start-production/", StartProductionView.as_view(), name="start_production"),
    path("webhooks/render/", RenderWebhookView.as_view(), name="render_webhook"),
]

import pytest
from django.forms.models import model_to_dict
from rest_framework.test import APIClient

from conftest import advance
from studio import jobs, render
from studio.errors import ValidationError

WEBHOOK_URL = "/api/webhooks/render/"
SECRET = "s3cret-webhook"


@pytest.fixture
def rendering_job(job):
    advance(job, "pre_production", "production_pending")
    jobs.start_production(job.pk)
    return jobs.assign_render(job.pk, "rnd-42")


@pytest.fixture
def api():
    return APIClient()


@pytest.mark.parametrize("raw,expected", [
    ("done", "done"),
    ("COMPLETED", "done"),
    ("failed", "failed"),
    ("error", "failed"),
    ("rendering", "rendering"),
    ("Processing", "rendering"),
    ("queued", "queued"),
    ("fetching", "queued"),
    (None, "queued"),
    ("", "queued"),
    # Precedence when classes co-occur
    ("done with errors", "done"),
    ("render error", "failed"),
])
def test_classify_render_status(raw, expected) -> None:
    assert render.classify_render_status(raw) == expected


def test_secrets_match() -> None:
    assert render.secrets_match("abc", "abc")
    assert not render.secrets_match("abd", "abc")
    assert not render.secrets_match("abcd", "abc")
    assert not render.secrets_match("", "abc")
    assert not render.secrets_match(None, "abc")


def test_read_webhook_secret() -> None:
    assert render.read_webhook_secret({"X-Webhook-Secret": "a"}) == "a"
    assert render.read_webhook_secret({"X-Shotstack-Signature": "b"}) == "b"
    assert render.read_webhook_secret({"Authorization": "Bearer c"}) == "c"
    assert render.read_webhook_secret({"X-Webhook-Secret": "", "Authorization": "Bearer d"}) == "d"
    assert render.read_webhook_secret({}) is None


def test_extract_top_level_shape() -> None:
    event = render.extract_render_event(
        {"id": "rnd-1", "status": "done", "url": "https://cdn.test/v.mp4"}
    )
    assert event.render_job_id == "rnd-1"
    assert event.status == "done"
    assert event.url == "https://cdn.test/v.mp4"


def test_extract_nested_shapes() -> None:
    event = render.extract_render_event({
        "renderId": "rnd-2",
        "data": {"status": "failed", "error": "codec missing"},
    })
    assert (event.render_job_id, event.status, event.error) == ("rnd-2", "failed", "codec missing")

    event = render.extract_render_event({
        "response": {"id": "rnd-3", "status": "rendering", "url": "https://cdn.test/p.mp4"},
        "data": {"status": "done"},
    })
    assert event.render_job_id == "rnd-3"
    assert event.status == "rendering"
    assert event.url == "https://cdn.test/p.mp4"


def test_extract_skips_blank_values() -> None:
    event = render.extract_render_event({"id": "  ", "renderId": "rnd-4", "status": ""})
    assert event.render_job_id == "rnd-4"
    assert event.status == "queued"


@pytest.mark.parametrize("payload", [{}, {"status": "done"}, {"id": 17}, ["rnd"]])
def test_extract_requires_render_id(payload) -> None:
    with pytest.raises(ValidationError):
        render.extract_render_event(payload)


# -----------------------------------------------------
# Webhook endpoint
# -----------------------------------------------------
def test_webhook_complete(api, rendering_job) -> None:
    r = api.post(
        WEBHOOK_URL,
        {"id": "rnd-42", "status": "Render complete", "url": "https://cdn.test/final.mp4"},
        format="json",
        HTTP_X_WEBHOOK_SECRET=SECRET,
    )
    assert r.status_code == 200
    job = jobs.get_job(rendering_job.pk)
    assert job.status == "completed"
    assert job.stage == "completed"
    assert job.progress == 100
    assert job.final_video_url == "https://cdn.test/final.mp4"
    assert job.provider_meta == {"webhookStatus": "Render complete", "webhookPayloadId": "rnd-42"}


def test_webhook_error(api, rendering_job) -> None:
    r = api.post(
        WEBHOOK_URL,
        {"response": {"id": "rnd-42", "status": "error"}, "data": {"error": "out of credits"}},
        format="json",
        HTTP_AUTHORIZATION=f"Bearer {SECRET}",
    )
    assert r.status_code == 200
    job = jobs.get_job(rendering_job.pk)
    assert job.status == "failed"
    assert job.stage == "failed"
    assert job.error == "out of credits"


def test_webhook_in_progress(api, rendering_job) -> None:
    r = api.post(WEBHOOK_URL, {"id": "rnd-42", "status": "processing"}, format="json",
                 HTTP_X_SHOTSTACK_SIGNATURE=SECRET)
    assert r.status_code == 200
    job = jobs.get_job(rendering_job.pk)
    assert job.status == "generating"
    assert job.stage == "assembly"


def test_duplicate_done_delivery_is_reapplied(api, rendering_job) -> None:
    body = {"id": "rnd-42", "status": "done", "url": "https://cdn.test/final.mp4"}
    for _ in range(2):
        r = api.post(WEBHOOK_URL, body, format="json", HTTP_X_WEBHOOK_SECRET=SECRET)
        assert r.status_code == 200
    assert jobs.get_job(rendering_job.pk).status == "completed"


@pytest.mark.parametrize("headers", [
    {},
    {"HTTP_X_WEBHOOK_SECRET": "wrong-secret!!"},
    {"HTTP_X_WEBHOOK_SECRET": SECRET + "x"},
    {"HTTP_AUTHORIZATION": SECRET[:-1]},
    {"HTTP_AUTHORIZATION": f"Basic {SECRET}"},
])
def test_webhook_bad_secret_leaves_job_untouched(api, rendering_job, headers) -> None:
    job = jobs.get_job(rendering_job.pk)
    before = model_to_dict(job)
    before_updated = job.updated_at

    r = api.post(WEBHOOK_URL, {"id": "rnd-42", "status": "done", "url": "https://x.test/v.mp4"},
                 format="json", **headers)

    assert r.status_code == 401
    after = jobs.get_job(rendering_job.pk)
    assert model_to_dict(after) == before
    assert after.updated_at == before_updated


def test_webhook_secret_not_configured(api, rendering_job, settings) -> None:
    settings.RENDER_WEBHOOK_SECRET = ""
    r = api.post(WEBHOOK_URL, {"id": "rnd-42", "status": "done"}, format="json", HTTP_X_WEBHOOK_SECRET=SECRET)
    assert r.status_code == 500
    assert jobs.get_job(rendering_job.pk).status == "generating"


def test_webhook_missing_render_id(api, rendering_job) -> None:
    r = api.post(WEBHOOK_URL, {"status": "done"}, format="json", HTTP_X_WEBHOOK_SECRET=SECRET)
    assert r.status_code == 400
    assert r.json()["detail"] == "Webhook payload missing render id"


def test_webhook_unknown_render_id(api, rendering_job) -> None:
    r = api.post(WEBHOOK_URL, {"id": "rnd-unknown", "status": "done"}, format="json", HTTP_X_WEBHOOK_SECRET=SECRET)
    assert r.status_code == 404

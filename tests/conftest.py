from types import SimpleNamespace

import pytest

from studio import jobs
from studio.agent import TurnResponse


@pytest.fixture(autouse=True)
def studio_settings(settings):
    settings.AGENT_BASE_URL = "http://agent.test"
    settings.AGENT_USERNAME = "opencode"
    settings.AGENT_PASSWORD = ""
    settings.AGENT_MODEL = ""
    settings.AGENT_TIMEOUT_SECONDS = 5
    settings.AGENT_MAX_ITERATIONS = 8
    settings.AGENT_MAX_UPDATES_PER_TURN = 6
    settings.AGENT_DONE_TOKEN = "__OPENCODE_DONE__"
    settings.RENDER_WEBHOOK_SECRET = "s3cret-webhook"
    return settings


@pytest.fixture
def job(db):
    return jobs.create_movie_and_job(
        user_id="user-1",
        title="The Last Lighthouse",
        concept="A retired lighthouse keeper discovers the beam guides more than ships.",
        plot_overview="Over one storm-bound night, Ada relights the lamp and meets the lost.",
        script="INT. LIGHTHOUSE - NIGHT. Ada climbs the spiral stairs, lantern in hand.",
        visual_style="Cold blue palette, 35mm grain, long static wide shots.",
    )


def advance(job, *stages):
    """Walk a job through stages via patch_job; returns the refreshed job."""
    for stage in stages:
        jobs.patch_job(job.pk, stage=stage)
    return jobs.get_job(job.pk)


FULL_DOCUMENTS = {
    "title": "# Title\n\nThe Last Lighthouse\n",
    "concept": "# Concept\n\nA keeper learns the beam guides the drowned home.\n",
    "plot_overview": "# Plot Overview\n\nAda relights the lamp during the worst storm in decades.\n",
    "visual_style": "# Visual Style\n\nCold blue palette, 35mm grain, long static wide shots.\n",
    "script": "# Script\n\nINT. LIGHTHOUSE - NIGHT. Ada climbs the stairs with a lantern.\n",
    "storyboard_text": "# Storyboard (Text)\n\n## Scene 1\n- Shot: wide of the tower in rain\n",
}


def full_updates():
    return [{"fileKey": k, "content": v} for k, v in FULL_DOCUMENTS.items()]


def turn(**kwargs) -> TurnResponse:
    """Build a TurnResponse from camelCase update dicts."""
    updates = tuple(
        SimpleNamespace(file_key=u["fileKey"], content=u["content"], title=u.get("title"))
        for u in kwargs.pop("updates", [])
    )
    return TurnResponse(updates=updates, **kwargs)


class ScriptedSession:
    """Stand-in GenerationSession that replays scripted turns.

    Each script item is a TurnResponse, an exception to raise, or a callable
    taking the TurnContext and returning either.
    """

    def __init__(self, script, *, fail_open=None):
        self.script = list(script)
        self.fail_open = fail_open
        self.turns = []
        self.opened = False
        self.closed = False

    def __call__(self):
        return self

    def __enter__(self):
        if self.fail_open:
            raise self.fail_open
        self.opened = True
        return self

    def __exit__(self, exc_type, exc, tb):
        self.closed = True
        return False

    def send_turn(self, context, system_prompt):
        self.turns.append(context)
        item = self.script[min(len(self.turns), len(self.script)) - 1]
        if callable(item) and not isinstance(item, TurnResponse):
            item = item(context)
        if isinstance(item, Exception):
            raise item
        return item

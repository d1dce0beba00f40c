import json
from types import SimpleNamespace

import pytest
import requests

from studio.agent import (
    GenerationSession,
    TurnContext,
    extract_json_object,
    parse_turn_payload,
)
from studio.errors import ConfigurationError, ExternalServiceError, ParseError


class FakeResponse:
    def __init__(self, status_code=200, body=None, text=""):
        self.status_code = status_code
        self._body = body
        self.text = text or (json.dumps(body) if body is not None else "")

    @property
    def ok(self):
        return self.status_code < 400

    def json(self):
        if self._body is None:
            raise ValueError("no json")
        return self._body


class FakeHttp:
    def __init__(self, *, post=(), delete=()):
        self.headers = {}
        self.auth = None
        self.post_responses = list(post)
        self.delete_responses = list(delete)
        self.calls = []

    def _next(self, queue):
        item = queue.pop(0)
        if isinstance(item, Exception):
            raise item
        return item

    def post(self, url, json=None, timeout=None):
        self.calls.append(("POST", url, json))
        return self._next(self.post_responses)

    def delete(self, url, timeout=None):
        self.calls.append(("DELETE", url, None))
        return self._next(self.delete_responses)


def _context():
    doc = SimpleNamespace(
        file_key="title", title="Title", file_name="01-title.md", sort_order=10,
        revision=2, content="# Title\n\nBeacon\n",
    )
    return TurnContext(iteration=1, max_iterations=8, movie={"title": "Beacon", "concept": "c"}, documents=[doc])


def _text_payload(text):
    return {"info": {}, "parts": [{"type": "text", "text": text}]}


# -----------------------------------------------------
# JSON extraction
# -----------------------------------------------------
def test_extract_prefers_fenced_block() -> None:
    raw = 'Here you go {"ignored": true}\n```json\n{"done": false}\n```\nthanks'
    assert extract_json_object(raw) == '{"done": false}'


def test_extract_falls_back_to_outer_braces() -> None:
    raw = 'Sure! {"stage": "story", "updates": [{"fileKey": "x"}]} Hope that helps.'
    assert json.loads(extract_json_object(raw))["stage"] == "story"


def test_extract_without_braces_returns_text() -> None:
    assert extract_json_object("  no json here  ") == "no json here"


# -----------------------------------------------------
# Payload parsing
# -----------------------------------------------------
def test_parse_structured_output() -> None:
    payload = {
        "info": {
            "structured_output": {
                "stage": "screenplay",
                "progress": 40,
                "done": False,
                "updates": [{"fileKey": "script", "title": "Script", "content": "# Script\n\nINT."}],
            }
        },
        "parts": [],
    }
    turn = parse_turn_payload(payload)
    assert turn.stage == "screenplay"
    assert turn.progress == 40
    assert turn.done is False
    assert turn.updates[0].file_key == "script"
    assert turn.updates[0].content == "# Script\n\nINT."


def test_parse_camel_case_structured_output() -> None:
    turn = parse_turn_payload({"info": {"structuredOutput": {"done": True, "doneToken": "T"}}})
    assert turn.done is True
    assert turn.done_token == "T"


def test_parse_free_text_parts() -> None:
    text = 'Planning done.\n```\n{"done": true, "doneToken": "__OPENCODE_DONE__", "updates": []}\n```'
    turn = parse_turn_payload(_text_payload(text))
    assert turn.done is True
    assert turn.done_token == "__OPENCODE_DONE__"
    assert turn.updates == ()


def test_parse_keeps_blank_update_content_for_the_loop_to_drop() -> None:
    turn = parse_turn_payload(_text_payload('{"updates": [{"fileKey": "concept", "content": "   "}]}'))
    assert turn.updates[0].content == "   "


@pytest.mark.parametrize("text", [
    "I could not finish the plan.",
    "{not: valid json}",
    '```json\n{"done": tru}\n```',
])
def test_parse_invalid_json_raises(text) -> None:
    with pytest.raises(ParseError):
        parse_turn_payload(_text_payload(text))


@pytest.mark.parametrize("data", [
    {"progress": "50"},
    {"done": "true"},
    {"doneToken": 123},
    {"updates": {"fileKey": "title", "content": "x"}},
    {"updates": ["title"]},
    {"updates": [{"fileKey": "title"}]},
    {"updates": [{"fileKey": "title", "content": 5}]},
    ["not", "an", "object"],
])
def test_parse_rejects_mismatched_shapes(data) -> None:
    with pytest.raises(ParseError):
        parse_turn_payload(_text_payload(json.dumps(data)))


def test_parse_empty_response_raises() -> None:
    with pytest.raises(ParseError):
        parse_turn_payload({"info": {}, "parts": []})
    with pytest.raises(ParseError):
        parse_turn_payload("nope")


# -----------------------------------------------------
# Session lifecycle
# -----------------------------------------------------
def test_missing_base_url_is_configuration_error(settings) -> None:
    settings.AGENT_BASE_URL = ""
    with pytest.raises(ConfigurationError):
        GenerationSession(http=FakeHttp())


def test_basic_auth_when_password_configured(settings) -> None:
    settings.AGENT_PASSWORD = "pw"
    http = FakeHttp()
    GenerationSession(http=http)
    assert http.auth == ("opencode", "pw")


def test_open_returns_session_id() -> None:
    http = FakeHttp(post=[FakeResponse(200, {"id": "ses_1"})])
    session = GenerationSession(base_url="http://agent.test/", http=http)
    assert session.open() == "ses_1"
    assert http.calls[0][1] == "http://agent.test/session"


@pytest.mark.parametrize("response", [
    FakeResponse(500, text="boom"),
    FakeResponse(200, {"id": ""}),
    FakeResponse(200, {"title": "no id"}),
    FakeResponse(200, text="<html>gateway</html>"),
    requests.ConnectionError("refused"),
])
def test_open_failures(response) -> None:
    session = GenerationSession(http=FakeHttp(post=[response]))
    with pytest.raises(ExternalServiceError):
        session.open()


def test_send_turn_posts_context_and_parses(settings) -> None:
    settings.AGENT_MODEL = "anthropic/claude"
    reply = FakeResponse(200, _text_payload('{"stage": "idea", "progress": 12}'))
    http = FakeHttp(post=[FakeResponse(200, {"id": "ses_1"}), reply])
    session = GenerationSession(http=http)
    session.open()

    turn = session.send_turn(_context(), "SYSTEM")

    assert turn.stage == "idea"
    method, url, body = http.calls[1]
    assert url == "http://agent.test/session/ses_1/message"
    assert body["system"] == "SYSTEM"
    assert body["model"] == "anthropic/claude"
    prompt = json.loads(body["parts"][0]["text"])
    assert prompt["iteration"] == 1
    assert prompt["maxIterations"] == 8
    assert prompt["files"][0] == {
        "fileKey": "title",
        "title": "Title",
        "fileName": "01-title.md",
        "revision": 2,
        "content": "# Title\n\nBeacon\n",
    }


def test_send_turn_non_success_raises() -> None:
    http = FakeHttp(post=[FakeResponse(200, {"id": "ses_1"}), FakeResponse(429, text="slow down")])
    session = GenerationSession(http=http)
    session.open()
    with pytest.raises(ExternalServiceError, match="429"):
        session.send_turn(_context(), "SYSTEM")


@pytest.mark.parametrize("response", [
    FakeResponse(200, {}),
    FakeResponse(404, text="gone"),
    FakeResponse(500, text="boom"),
    requests.Timeout("slow"),
])
def test_close_never_raises(response) -> None:
    http = FakeHttp(post=[FakeResponse(200, {"id": "ses_1"})], delete=[response])
    session = GenerationSession(http=http)
    session.open()
    session.close()
    assert http.calls[-1] == ("DELETE", "http://agent.test/session/ses_1", None)
    assert session.session_id is None


def test_context_manager_closes_on_error() -> None:
    http = FakeHttp(post=[FakeResponse(200, {"id": "ses_1"})], delete=[FakeResponse(200, {})])
    with pytest.raises(RuntimeError):
        with GenerationSession(http=http):
            raise RuntimeError("mid-turn failure")
    assert http.calls[-1][0] == "DELETE"

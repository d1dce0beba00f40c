"""
Client for the external generative agent that drafts the planning documents.

A GenerationSession wraps one conversation: open() creates it, send_turn()
posts the current documents and returns the parsed TurnResponse, close()
releases it. Use it as a context manager so the session is released on every
exit path; close() never raises.
"""
import json
import logging
import re
from dataclasses import dataclass, field

import requests
from django.conf import settings
from rest_framework import serializers

from .errors import ConfigurationError, ExternalServiceError, ParseError

logger = logging.getLogger(__name__)

SESSION_TITLE = "Movie Pre-production Planner"

_FENCED_BLOCK = re.compile(r"```(?:json)?\s*([\s\S]*?)```", re.IGNORECASE)


# -----------------------------------------------------
# Turn response shape
# -----------------------------------------------------
class StrictCharField(serializers.CharField):
    """CharField that rejects numbers and other non-string input instead of coercing."""

    def to_internal_value(self, data):
        if not isinstance(data, str):
            self.fail("invalid")
        return super().to_internal_value(data)


class StrictBooleanField(serializers.BooleanField):
    def to_internal_value(self, data):
        if not isinstance(data, bool):
            self.fail("invalid", input=data)
        return data


class StrictNumberField(serializers.FloatField):
    def to_internal_value(self, data):
        if isinstance(data, bool) or not isinstance(data, (int, float)):
            self.fail("invalid")
        return super().to_internal_value(data)


class DocumentUpdateSerializer(serializers.Serializer):
    fileKey = StrictCharField(allow_blank=True)
    title = StrictCharField(required=False, allow_blank=True, allow_null=True, trim_whitespace=False)
    # Blank content passes here; the convergence loop drops it
    content = StrictCharField(allow_blank=True, trim_whitespace=False)


class TurnResponseSerializer(serializers.Serializer):
    stage = StrictCharField(required=False, allow_blank=True, allow_null=True)
    progress = StrictNumberField(required=False, allow_null=True)
    message = StrictCharField(required=False, allow_blank=True, allow_null=True)
    done = StrictBooleanField(required=False, allow_null=True)
    doneToken = StrictCharField(required=False, allow_blank=True, allow_null=True)
    updates = DocumentUpdateSerializer(many=True, required=False, allow_null=True)


@dataclass(frozen=True)
class DocumentUpdate:
    file_key: str
    content: str
    title: str | None = None


@dataclass(frozen=True)
class TurnResponse:
    stage: str | None = None
    progress: float | None = None
    message: str | None = None
    done: bool = False
    done_token: str | None = None
    updates: tuple = ()


@dataclass
class TurnContext:
    """Everything the agent sees on one turn."""
    iteration: int
    max_iterations: int
    movie: dict
    documents: list = field(default_factory=list)

    def to_prompt(self) -> str:
        return json.dumps(
            {
                "task": "Improve the movie planning files.",
                "iteration": self.iteration,
                "maxIterations": self.max_iterations,
                "movie": self.movie,
                "files": [
                    {
                        "fileKey": doc.file_key,
                        "title": doc.title,
                        "fileName": doc.file_name or f"{doc.file_key}.md",
                        "revision": doc.revision,
                        "content": doc.content,
                    }
                    for doc in sorted(self.documents, key=lambda d: d.sort_order)
                ],
            },
            indent=2,
        )


def build_system_prompt(done_token: str) -> str:
    return "\n".join([
        "You are a film pre-production agent inside a movie generation workflow.",
        "The workflow has two steps:",
        "1) pre-production (active now)",
        "2) production (not active yet)",
        "In this run, work ONLY on pre-production.",
        "Return ONLY valid JSON with this shape:",
        "{",
        '  "stage": "pre_production|idea|story|screenplay|scene_plan|planning",',
        '  "progress": 0-100,',
        '  "message": "short status",',
        '  "done": boolean,',
        f'  "doneToken": "Use {done_token} only when done",',
        '  "updates": [{ "fileKey": "title|concept|plot_overview|visual_style|script|storyboard_text", '
        '"title": "optional", "content": "full markdown replacement text" }]',
        "}",
        "Rules:",
        "1) Update at least one file each turn unless done=true.",
        "2) Every file is a .md document and may be edited in any turn.",
        "3) Preserve markdown structure and rewrite the full document when improving.",
        "4) done=true only after all pre-production documents are complete and coherent: "
        "title, concept, plot_overview, visual_style, script, storyboard_text.",
        f"5) When done=true, doneToken must be exactly {done_token}.",
    ])


# -----------------------------------------------------
# Payload parsing
# -----------------------------------------------------
def extract_json_object(raw: str) -> str:
    """Pull the JSON text out of free-form agent output.

    A fenced code block wins; otherwise take everything from the first `{`
    to the last `}`; otherwise return the stripped text unchanged.
    """
    fenced = _FENCED_BLOCK.search(raw)
    if fenced and fenced.group(1):
        return fenced.group(1).strip()

    first, last = raw.find("{"), raw.rfind("}")
    if first == -1 or last == -1 or last < first:
        return raw.strip()
    return raw[first:last + 1].strip()


def _content_text(parts) -> str:
    if isinstance(parts, str):
        return parts
    if not isinstance(parts, list):
        return ""
    texts = [p["text"] for p in parts if isinstance(p, dict) and isinstance(p.get("text"), str)]
    return "\n".join(texts)


def validate_turn_response(data) -> TurnResponse:
    if not isinstance(data, dict):
        raise ParseError(f"Agent response must be a JSON object, got {type(data).__name__}.")
    ser = TurnResponseSerializer(data=data)
    if not ser.is_valid():
        raise ParseError(f"Agent response failed validation: {ser.errors}")
    v = ser.validated_data
    updates = tuple(
        DocumentUpdate(file_key=u["fileKey"], content=u["content"], title=u.get("title"))
        for u in (v.get("updates") or [])
    )
    return TurnResponse(
        stage=v.get("stage"),
        progress=v.get("progress"),
        message=v.get("message"),
        done=v.get("done") is True,
        done_token=v.get("doneToken"),
        updates=updates,
    )


def parse_turn_payload(payload) -> TurnResponse:
    """
    Resolve an agent message response into a TurnResponse.

    Prefers the structured output under info.structured_output (or
    info.structuredOutput); falls back to extracting JSON from the text parts.
    """
    if not isinstance(payload, dict):
        raise ParseError("Agent message returned an invalid payload.")

    info = payload.get("info") if isinstance(payload.get("info"), dict) else {}
    structured = info.get("structured_output") or info.get("structuredOutput")
    if isinstance(structured, dict):
        return validate_turn_response(structured)

    raw = _content_text(payload.get("parts"))
    if not raw.strip():
        raise ParseError("Agent returned an empty response.")

    try:
        data = json.loads(extract_json_object(raw))
    except json.JSONDecodeError:
        raise ParseError(f"Agent response was not valid JSON: {raw[:2000]}")
    return validate_turn_response(data)


# -----------------------------------------------------
# Session
# -----------------------------------------------------
class GenerationSession:
    def __init__(self, *, base_url=None, username=None, password=None, model=None,
                 timeout=None, http=None):
        base_url = (base_url if base_url is not None else settings.AGENT_BASE_URL) or ""
        if not base_url.strip():
            raise ConfigurationError("Missing AGENT_BASE_URL for the generative agent.")
        self.base_url = base_url.strip().rstrip("/")
        self.model = model if model is not None else settings.AGENT_MODEL
        self.timeout = timeout if timeout is not None else settings.AGENT_TIMEOUT_SECONDS
        self.session_id = None

        self.http = http or requests.Session()
        self.http.headers.update({"Content-Type": "application/json"})
        password = password if password is not None else settings.AGENT_PASSWORD
        if password:
            self.http.auth = (username or settings.AGENT_USERNAME, password)

    def __enter__(self):
        self.open()
        return self

    def __exit__(self, exc_type, exc, tb):
        self.close()
        return False

    def _post(self, path: str, body: dict, action: str):
        try:
            r = self.http.post(f"{self.base_url}{path}", json=body, timeout=self.timeout)
        except requests.RequestException as e:
            raise ExternalServiceError(f"Agent {action} failed: {e}") from e
        if not r.ok:
            raise ExternalServiceError(f"Agent {action} failed ({r.status_code}): {r.text}")
        try:
            return r.json()
        except ValueError:
            raise ParseError(f"Agent {action} returned a non-JSON body.")

    def open(self) -> str:
        try:
            payload = self._post("/session", {"title": SESSION_TITLE}, "session creation")
        except ParseError as e:
            raise ExternalServiceError("Agent session creation returned no session id.") from e
        session_id = payload.get("id") if isinstance(payload, dict) else None
        if not isinstance(session_id, str) or not session_id.strip():
            raise ExternalServiceError("Agent session creation returned no session id.")
        self.session_id = session_id.strip()
        logger.info("agent session %s opened", self.session_id)
        return self.session_id

    def send_turn(self, context: TurnContext, system_prompt: str) -> TurnResponse:
        if not self.session_id:
            raise ExternalServiceError("Agent session is not open.")
        body = {
            "system": system_prompt,
            "parts": [{"type": "text", "text": context.to_prompt()}],
        }
        if self.model:
            body["model"] = self.model
        payload = self._post(f"/session/{self.session_id}/message", body, "message")
        return parse_turn_payload(payload)

    def close(self) -> None:
        """Delete the remote session. Failures are logged, never raised."""
        if not self.session_id:
            return
        session_id, self.session_id = self.session_id, None
        try:
            r = self.http.delete(f"{self.base_url}/session/{session_id}", timeout=self.timeout)
        except requests.RequestException as e:
            logger.warning("agent session %s close failed: %s", session_id, e)
            return
        if r.ok or r.status_code == 404:
            logger.info("agent session %s closed", session_id)
            return
        logger.warning("agent session %s close failed (%s): %s", session_id, r.status_code, r.text[:500])

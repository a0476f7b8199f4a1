"""Normalization of the provider's webhook envelope variants"""

from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Optional

from callinsight.errors import InvalidPayload

POST_CALL_EVENT = "post_call_transcription"
INITIATION_FAILURE_EVENT = "call_initiation_failure"

PROVIDER_STATUS_MAP = {
    "initiated": "initiated",
    "ringing": "ringing",
    "processing": "in-progress",
    "in-progress": "in-progress",
    "call-disconnected": "disconnected",
    "disconnected": "disconnected",
    "done": "completed",
    "completed": "completed",
    "failed": "failed",
    "busy": "failed",
    "no-answer": "failed",
}

# Column widths of the stored identifiers
MAX_CONVERSATION_ID_LENGTH = 128
MAX_PHONE_LENGTH = 32
MAX_DURATION_SECONDS = 2**31 - 1


@dataclass
class WebhookEnvelope:
    conversation_id: str
    provider_agent_id: str
    event_type: Optional[str] = None
    provider_status: Optional[str] = None
    status: str = "initiated"
    dynamic_variables: Dict[str, Any] = field(default_factory=dict)
    metadata: Dict[str, Any] = field(default_factory=dict)
    analysis: Optional[Dict[str, Any]] = None
    started_at: Optional[datetime] = None
    ended_at: Optional[datetime] = None
    duration_seconds: Optional[int] = None
    called_number: Optional[str] = None


def _dict(value: Any) -> Dict[str, Any]:
    return value if isinstance(value, dict) else {}


def _identifier(*values: Any, max_length: Optional[int] = None) -> Optional[str]:
    for value in values:
        if isinstance(value, str) and value.strip():
            value = value.strip()
            if max_length is not None and len(value) > max_length:
                return None
            return value
    return None


def _from_unix(value: Any) -> Optional[datetime]:
    if isinstance(value, bool):
        return None
    if isinstance(value, str):
        try:
            value = float(value)
        except ValueError:
            return None
    if not isinstance(value, (int, float)):
        return None
    try:
        return datetime.fromtimestamp(value, tz=timezone.utc).replace(tzinfo=None)
    except (OverflowError, OSError, ValueError):
        return None


def _from_iso(value: Any) -> Optional[datetime]:
    if not isinstance(value, str) or not value.strip():
        return None
    try:
        parsed = datetime.fromisoformat(value.strip().replace("Z", "+00:00"))
    except ValueError:
        return None
    if parsed.tzinfo is not None:
        parsed = parsed.astimezone(timezone.utc).replace(tzinfo=None)
    return parsed


def _duration(*values: Any) -> Optional[int]:
    for value in values:
        if isinstance(value, bool) or value is None:
            continue
        try:
            seconds = int(float(value))
        except (TypeError, ValueError, OverflowError):
            continue
        if 0 <= seconds <= MAX_DURATION_SECONDS:
            return seconds
    return None


def map_call_status(provider_status: Optional[str], event_type: Optional[str], has_analysis: bool) -> str:
    """Map a provider status onto the call lifecycle"""
    if isinstance(provider_status, str):
        mapped = PROVIDER_STATUS_MAP.get(provider_status.strip().lower())
        if mapped:
            return mapped
    if event_type == INITIATION_FAILURE_EVENT:
        return "failed"
    if has_analysis or event_type == POST_CALL_EVENT:
        return "completed"
    return "initiated"


def normalize_envelope(payload: Any) -> WebhookEnvelope:
    """
    Accept both webhook layouts:

    - wrapped: ``{"type", "event_timestamp", "data": {...conversation...}}``
    - legacy: the conversation object at the root, optionally with
      ``phone_number``/``duration_seconds``/``timestamp`` instead of
      dynamic variables.

    Conversation and agent ids are required; nothing is synthesized when
    they are missing.
    """
    if not isinstance(payload, dict):
        raise InvalidPayload("Webhook payload must be a JSON object")

    if isinstance(payload.get("data"), dict):
        body = payload["data"]
    else:
        body = payload

    event_type = payload.get("type")
    event_time = _from_unix(payload.get("event_timestamp"))

    client_data = _dict(body.get("conversation_initiation_client_data"))
    dynamic = dict(_dict(client_data.get("dynamic_variables")))
    metadata = _dict(body.get("metadata"))

    conversation_id = _identifier(body.get("conversation_id"), dynamic.get("system__conversation_id"))
    agent_id = _identifier(body.get("agent_id"), dynamic.get("system__agent_id"))
    if conversation_id is None:
        raise InvalidPayload("conversation_id is required")
    if len(conversation_id) > MAX_CONVERSATION_ID_LENGTH:
        raise InvalidPayload(f"conversation_id is longer than {MAX_CONVERSATION_ID_LENGTH} characters")
    if agent_id is None:
        raise InvalidPayload("agent_id is required")

    dynamic.setdefault("system__conversation_id", conversation_id)
    dynamic.setdefault("system__agent_id", agent_id)

    phone_call = _dict(metadata.get("phone_call"))
    legacy_caller = _identifier(
        body.get("phone_number"),
        metadata.get("phone_number"),
        phone_call.get("external_number"),
    )
    if legacy_caller and not dynamic.get("system__caller_id"):
        dynamic["system__caller_id"] = legacy_caller

    duration = _duration(
        metadata.get("call_duration_secs"),
        dynamic.get("system__call_duration_secs"),
        body.get("duration_seconds"),
    )

    started_at = (
        _from_unix(metadata.get("start_time_unix_secs"))
        or _from_iso(dynamic.get("system__time_utc"))
        or _from_iso(body.get("timestamp"))
        or event_time
    )
    ended_at = started_at + timedelta(seconds=duration) if started_at and duration is not None else None

    analysis = body.get("analysis") if isinstance(body.get("analysis"), dict) else None
    provider_status = body.get("status") if isinstance(body.get("status"), str) else None

    return WebhookEnvelope(
        conversation_id=conversation_id,
        provider_agent_id=agent_id,
        event_type=event_type if isinstance(event_type, str) else None,
        provider_status=provider_status,
        status=map_call_status(provider_status, event_type, analysis is not None),
        dynamic_variables=dynamic,
        metadata=metadata,
        analysis=analysis,
        started_at=started_at,
        ended_at=ended_at,
        duration_seconds=duration,
        called_number=_identifier(
            dynamic.get("system__called_number"),
            phone_call.get("agent_number"),
            max_length=MAX_PHONE_LENGTH,
        ),
    )

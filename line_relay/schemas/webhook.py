import json
from typing import Any, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationError

EventType = Literal["message", "follow", "join", "other"]
KNOWN_EVENT_TYPES = {"message", "follow", "join"}


class MalformedPayloadError(ValueError):
    """Inbound body is not a LINE webhook payload."""


class WebhookSource(BaseModel):
    type: Optional[str] = None
    userId: Optional[str] = None
    groupId: Optional[str] = None
    roomId: Optional[str] = None


class WebhookMessage(BaseModel):
    id: Optional[str] = None
    type: Optional[str] = None
    text: Optional[str] = None


class WebhookEvent(BaseModel):
    type: Optional[str] = None
    mode: Optional[str] = None
    timestamp: Optional[int] = None
    replyToken: Optional[str] = None
    source: Optional[WebhookSource] = None
    message: Optional[WebhookMessage] = None


class WebhookPayload(BaseModel):
    destination: Optional[str] = None
    events: List[Any] = Field(default_factory=list)


class InboundEvent(BaseModel):
    """One normalized unit of work, scoped to a single request."""

    model_config = ConfigDict(frozen=True)

    type: EventType
    mode: str = "(unknown)"
    source_user_id: Optional[str] = None
    reply_token: Optional[str] = None
    message_type: Optional[str] = None
    text: Optional[str] = None

    @property
    def is_text_message(self) -> bool:
        return self.type == "message" and self.message_type == "text"

    @classmethod
    def from_webhook_event(cls, event: WebhookEvent) -> "InboundEvent":
        event_type = event.type if event.type in KNOWN_EVENT_TYPES else "other"
        message = event.message if event_type == "message" else None
        return cls(
            type=event_type,
            mode=event.mode or "(unknown)",
            source_user_id=event.source.userId if event.source else None,
            reply_token=event.replyToken or None,
            message_type=message.type if message else None,
            text=message.text if message and message.type == "text" else None,
        )


def parse_inbound_events(raw: bytes) -> List[InboundEvent]:
    """Parse the raw webhook body. Raises MalformedPayloadError on bad JSON.

    Individual events that fail validation are skipped rather than failing
    the whole batch.
    """
    if not raw or not raw.strip():
        return []
    try:
        body = json.loads(raw.decode("utf-8", errors="replace"))
    except ValueError as exc:
        raise MalformedPayloadError(f"invalid JSON: {exc}") from exc
    if not isinstance(body, dict):
        raise MalformedPayloadError("payload is not a JSON object")

    try:
        payload = WebhookPayload(**body)
    except ValidationError as exc:
        raise MalformedPayloadError(f"invalid payload: {exc.error_count()} errors") from exc

    events = []
    for item in payload.events:
        if not isinstance(item, dict):
            continue
        try:
            events.append(InboundEvent.from_webhook_event(WebhookEvent(**item)))
        except ValidationError:
            continue
    return events

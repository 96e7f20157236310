import base64
import hashlib
import hmac
import html
import json
import re
from dataclasses import dataclass, field
from typing import List, Optional

import httpx

from line_relay.config import Settings
from line_relay.logging_config import get_logger
from line_relay.services.deadline import execute
from line_relay.services.outcome import CallOutcome

logger = get_logger("vendor_service")

MAX_VENDOR_MESSAGES = 5
LEGACY_TEXT_KEYS = ("reply", "text")

_SCRIPT_STYLE_RE = re.compile(r"<(script|style)\b[^>]*>.*?</\1\s*>", re.IGNORECASE | re.DOTALL)
_BREAK_RE = re.compile(r"<\s*(br|/p|/div|/li)\b[^>]*>", re.IGNORECASE)
_TAG_RE = re.compile(r"<[^>]+>")


@dataclass
class VendorReply:
    messages: List[dict] = field(default_factory=list)
    reason: Optional[str] = None

    @property
    def ok(self) -> bool:
        return bool(self.messages)

    @staticmethod
    def invalid(reason: str) -> "VendorReply":
        return VendorReply(messages=[], reason=reason)


def sign_payload(raw_payload: bytes, secret: str) -> str:
    """Base64 HMAC-SHA256 over the exact payload bytes."""
    digest = hmac.new(secret.encode("utf-8"), raw_payload, hashlib.sha256).digest()
    return base64.b64encode(digest).decode("ascii")


def strip_markup(body: str) -> str:
    """Drop HTML tags and collapse whitespace."""
    text = _SCRIPT_STYLE_RE.sub(" ", body)
    text = _BREAK_RE.sub("\n", text)
    text = _TAG_RE.sub(" ", text)
    text = html.unescape(text)
    lines = [re.sub(r"[ \t\r\f\v]+", " ", line).strip() for line in text.split("\n")]
    return "\n".join(line for line in lines if line)


def _text_reply(text: str, min_chars: int, source: str) -> VendorReply:
    text = (text or "").strip()
    if len(text) < min_chars:
        return VendorReply.invalid(f"{source}_too_short")
    return VendorReply(messages=[{"type": "text", "text": text}])


def _messages_reply(raw_messages: list, min_chars: int) -> VendorReply:
    messages = [m for m in raw_messages if isinstance(m, dict)][:MAX_VENDOR_MESSAGES]
    if not messages:
        return VendorReply.invalid("messages_empty")
    if len(messages) == 1 and messages[0].get("type") == "text":
        text = messages[0].get("text")
        if not isinstance(text, str) or len(text.strip()) < min_chars:
            return VendorReply.invalid("single_text_too_short")
    return VendorReply(messages=messages)


def parse_vendor_reply(body: Optional[str], min_chars: int) -> VendorReply:
    """Normalize a vendor response body into at most five LINE messages.

    Accepted shapes, in order:
    - ``{"messages": [...]}``: used as-is, except a lone short text message;
    - ``{"reply": "..."}`` or ``{"text": "..."}``: wrapped into one text message;
    - plain text or HTML: tags stripped, wrapped into one text message.

    A body that parses as a JSON scalar (a quoted string, a bare tracking
    number) is still plain text. Only objects and arrays can be unrecognized.
    """
    if body is None or not body.strip():
        return VendorReply.invalid("empty_body")

    try:
        data = json.loads(body)
    except ValueError:
        return _text_reply(strip_markup(body), min_chars, "markup")

    if isinstance(data, dict):
        if isinstance(data.get("messages"), list):
            return _messages_reply(data["messages"], min_chars)
        for key in LEGACY_TEXT_KEYS:
            if isinstance(data.get(key), str):
                return _text_reply(data[key], min_chars, key)
        return VendorReply.invalid("unrecognized_json")
    if isinstance(data, list):
        return VendorReply.invalid("unrecognized_json")
    if isinstance(data, str):
        return _text_reply(strip_markup(data), min_chars, "markup")
    return _text_reply(strip_markup(body), min_chars, "markup")


class VendorForwarder:
    """Forwards the signed inbound payload to the configured vendor responder."""

    def __init__(self, settings: Settings, transport: Optional[httpx.AsyncBaseTransport] = None):
        self.url = settings.vendor_forward_url
        self.secret = settings.vendor_shared_secret
        self.signature_header = settings.vendor_signature_header
        self.timeout_ms = settings.vendor_timeout_ms
        self.min_reply_chars = settings.vendor_min_reply_chars
        self._transport = transport

    @property
    def ready(self) -> bool:
        return bool(self.url and self.secret)

    async def forward(self, raw_payload: bytes) -> CallOutcome:
        if not self.ready:
            logger.info(
                "Vendor forward skipped: not configured",
                extra={"context": {"has_url": bool(self.url), "has_secret": bool(self.secret)}},
            )
            return CallOutcome.not_configured("vendor_not_configured")

        headers = {
            "Content-Type": "application/json",
            self.signature_header: sign_payload(raw_payload, self.secret),
        }
        async with httpx.AsyncClient(timeout=self.timeout_ms / 1000, transport=self._transport) as client:
            outcome = await execute(
                lambda: client.post(self.url, content=raw_payload, headers=headers),
                self.timeout_ms,
                label="vendor_forward",
            )

        if outcome.ok:
            logger.info("Vendor forward ok", extra={"context": {"status": outcome.status, "bytes": len(outcome.body)}})
        else:
            logger.warning("Vendor forward failed", extra={"context": outcome.log_context()})
        return outcome

    def parse(self, body: Optional[str]) -> VendorReply:
        reply = parse_vendor_reply(body, self.min_reply_chars)
        if not reply.ok:
            logger.info("Vendor reply rejected", extra={"context": {"reason": reply.reason}})
        return reply

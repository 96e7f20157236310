from typing import List, Optional

import httpx

from line_relay.config import Settings
from line_relay.logging_config import get_logger, user_tail
from line_relay.services.deadline import execute
from line_relay.services.outcome import CallOutcome

logger = get_logger("line_service")

MAX_MESSAGES_PER_REQUEST = 5


def text_message(text: str) -> dict:
    return {"type": "text", "text": text}


def truncate_messages(messages: List[dict], max_chars: int) -> List[dict]:
    """Cap text length per message and message count per request."""
    prepared = []
    for message in messages[:MAX_MESSAGES_PER_REQUEST]:
        text = message.get("text")
        if message.get("type") == "text" and isinstance(text, str) and len(text) > max_chars:
            message = {**message, "text": text[:max_chars]}
        prepared.append(message)
    return prepared


class LineService:
    """Reply and push delivery to the LINE Messaging API.

    Both calls are best-effort: failures are logged and returned as a
    `CallOutcome`, never raised.
    """

    REPLY_PATH = "/v2/bot/message/reply"
    PUSH_PATH = "/v2/bot/message/push"

    def __init__(self, settings: Settings, transport: Optional[httpx.AsyncBaseTransport] = None):
        self.access_token = settings.line_channel_access_token
        self.base_url = settings.line_api_base.rstrip("/")
        self.max_text_chars = settings.line_max_text_chars
        self.reply_timeout_ms = settings.reply_timeout_ms
        self.push_timeout_ms = settings.push_timeout_ms
        self._transport = transport

    async def _make_request(self, path: str, data: dict, timeout_ms: int, log_context: dict) -> CallOutcome:
        url = f"{self.base_url}{path}"
        async with httpx.AsyncClient(timeout=timeout_ms / 1000, transport=self._transport) as client:
            outcome = await execute(
                lambda: client.post(
                    url,
                    headers={
                        "Authorization": f"Bearer {self.access_token}",
                        "Content-Type": "application/json",
                    },
                    json=data,
                ),
                timeout_ms,
                label=path.rsplit("/", 1)[-1],
            )

        if outcome.ok:
            logger.info("LINE call ok", extra={"context": {**log_context, "path": path, "status": outcome.status}})
        else:
            logger.error("LINE call failed", extra={"context": {**log_context, "path": path, **outcome.log_context()}})
        return outcome

    async def reply(self, reply_token: Optional[str], messages: List[dict], log_context: Optional[dict] = None) -> CallOutcome:
        """Send a reply with a single-use token."""
        log_context = log_context or {}
        if not reply_token:
            logger.error("Reply skipped: missing reply token", extra={"context": log_context})
            return CallOutcome.not_configured("missing_reply_token")
        if not self.access_token:
            logger.error("Reply skipped: missing channel access token", extra={"context": log_context})
            return CallOutcome.not_configured("missing_access_token")

        data = {
            "replyToken": reply_token,
            "messages": truncate_messages(messages, self.max_text_chars),
        }
        return await self._make_request(self.REPLY_PATH, data, self.reply_timeout_ms, log_context)

    async def push(self, user_id: Optional[str], messages: List[dict], log_context: Optional[dict] = None) -> CallOutcome:
        """Push messages to a user id; usable any number of times."""
        log_context = {"user": user_tail(user_id), **(log_context or {})}
        if not user_id:
            logger.error("Push skipped: missing user id", extra={"context": log_context})
            return CallOutcome.not_configured("missing_user_id")
        if not self.access_token:
            logger.error("Push skipped: missing channel access token", extra={"context": log_context})
            return CallOutcome.not_configured("missing_access_token")

        data = {
            "to": user_id,
            "messages": truncate_messages(messages, self.max_text_chars),
        }
        return await self._make_request(self.PUSH_PATH, data, self.push_timeout_ms, log_context)

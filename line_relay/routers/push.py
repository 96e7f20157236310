"""Internal push endpoint: other services hand over a prompt, the answer goes out as push."""

import hmac
from typing import Optional

from fastapi import APIRouter, Depends, Header, HTTPException, Request, status
from fastapi.responses import PlainTextResponse
from pydantic import ValidationError

from line_relay.config import settings
from line_relay.logging_config import event_context, get_logger
from line_relay.schemas.push import PushRequest
from line_relay.services.ai_service import AIService
from line_relay.services.line_service import LineService, text_message

logger = get_logger("push")

router = APIRouter()

_ai_service: Optional[AIService] = None
_line_service: Optional[LineService] = None


def get_ai_service() -> AIService:
    global _ai_service
    if _ai_service is None:
        _ai_service = AIService(settings)
    return _ai_service


def get_line_service() -> LineService:
    global _line_service
    if _line_service is None:
        _line_service = LineService(settings)
    return _line_service


def get_push_secret() -> Optional[str]:
    return settings.push_secret


def _require_push_secret(provided: Optional[str], expected: Optional[str]) -> None:
    if not expected or not provided or not hmac.compare_digest(provided, expected):
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Unauthorized")


@router.post("/push")
async def handle_push(
    request: Request,
    x_auth: Optional[str] = Header(default=None, alias="X-Auth"),
    push_secret: Optional[str] = Depends(get_push_secret),
    ai: AIService = Depends(get_ai_service),
    line: LineService = Depends(get_line_service),
):
    """Answer `prompt` with the AI and push it to `userId`.

    401 without the shared secret, 400 without `userId` or `prompt`. Once the
    request is accepted the caller always gets 200; delivery failures are logged.
    """
    _require_push_secret(x_auth, push_secret)

    try:
        data = await request.json()
    except ValueError:
        data = {}
    try:
        push_request = PushRequest.model_validate(data if isinstance(data, dict) else {})
    except ValidationError:
        push_request = PushRequest()
    if not push_request.user_id or not push_request.prompt:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Bad Request")

    log_context = event_context(None, push_request.user_id, route="push_api")
    try:
        answer = await ai.answer(push_request.prompt, system_prompt=push_request.system, model=push_request.model)
        outcome = await line.push(push_request.user_id, [text_message(answer)], log_context)
        logger.info("Push request handled", extra={"context": {**log_context, "delivered": outcome.ok}})
    except Exception as e:
        logger.error(f"Push handler error: {e}", extra={"context": log_context}, exc_info=True)
    return PlainTextResponse("OK", status_code=200)

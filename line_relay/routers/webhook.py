import asyncio
from typing import Callable, Optional

from fastapi import APIRouter, BackgroundTasks, Depends, Request
from fastapi.responses import PlainTextResponse

from line_relay.config import settings
from line_relay.logging_config import event_context, get_logger
from line_relay.schemas.webhook import InboundEvent, MalformedPayloadError, parse_inbound_events
from line_relay.services.ai_service import AIService
from line_relay.services.dispatch_service import EventDispatcher
from line_relay.services.handoff_store import get_handoff_store
from line_relay.services.line_service import LineService
from line_relay.services.vendor_service import VendorForwarder

logger = get_logger("webhook")

router = APIRouter()

_dispatcher: Optional[EventDispatcher] = None


def get_dispatcher() -> EventDispatcher:
    """Get or create the dispatcher wired to the process settings."""
    global _dispatcher
    if _dispatcher is None:
        _dispatcher = EventDispatcher(
            settings=settings,
            line=LineService(settings),
            ai=AIService(settings),
            vendor=VendorForwarder(settings),
            handoff_store=get_handoff_store(),
        )
    return _dispatcher


async def _dispatch_event(dispatcher: EventDispatcher, event: InboundEvent, raw: bytes, defer: Callable) -> None:
    log_context = event_context(event.mode, event.source_user_id, type=event.type)
    logger.info("Event received", extra={"context": {**log_context, "has_reply_token": bool(event.reply_token)}})
    try:
        await dispatcher.handle(event, raw, defer)
    except Exception as e:
        logger.error(f"Event dispatch failed: {e}", extra={"context": log_context}, exc_info=True)


def _ok() -> PlainTextResponse:
    return PlainTextResponse("OK", status_code=200)


@router.post("/webhook")
async def handle_webhook(
    request: Request,
    background_tasks: BackgroundTasks,
    dispatcher: EventDispatcher = Depends(get_dispatcher),
):
    """Handle LINE webhook events. Always answers 200 so LINE does not redeliver."""
    try:
        raw = await request.body()
        try:
            events = parse_inbound_events(raw)
        except MalformedPayloadError as e:
            logger.warning(f"Malformed webhook payload: {e}", extra={"context": {"bytes": len(raw)}})
            return _ok()

        # Handoff changes and gate checks run before each event's first await, so
        # they still apply in batch order; the slow collaborator calls overlap.
        await asyncio.gather(*(_dispatch_event(dispatcher, event, raw, background_tasks.add_task) for event in events))
    except Exception as e:
        logger.error(f"Webhook error: {e}", exc_info=True)
    return _ok()


@router.api_route("/webhook", methods=["GET", "HEAD", "PUT", "PATCH", "DELETE", "OPTIONS"])
async def handle_webhook_other_methods():
    """Verification calls and stray methods get 200 without processing."""
    return _ok()

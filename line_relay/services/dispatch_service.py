"""Per-event routing: handoff gate, intent, vendor forward and fallbacks.

A reply token is good for exactly one reply. Order and vendor routes spend it
on the acknowledgement (when enabled) and hand the rest of the work to a
deferred task, which may finish after the reply window has closed; everything
that task delivers goes out as push.
"""

from typing import Any, Callable, List, Optional

from line_relay.config import Settings
from line_relay.logging_config import event_context, get_logger
from line_relay.schemas.webhook import InboundEvent
from line_relay.services.ai_service import AIService
from line_relay.services.handoff_store import HandoffStore
from line_relay.services.intent_service import FORWARD_INTENTS, Intent, classify, is_gated
from line_relay.services.line_service import LineService, text_message
from line_relay.services.outcome import CallOutcome
from line_relay.services.vendor_service import VendorForwarder

logger = get_logger("dispatch_service")

HANDOFF_REQUEST_RESPONSE = "已為您轉接真人客服，接下來 {minutes} 分鐘內將暫停自動回覆。輸入「恢復自動回覆」可隨時切回。"
HANDOFF_RESUME_RESPONSE = "已恢復自動回覆，有任何問題都可以直接詢問。"
GREETING_RESPONSE = "您好！請問有什麼可以幫您？"
LOW_INFORMATION_RESPONSE = "可以再多描述一點您的問題嗎？例如訂單編號或想詢問的商品。"
ORDER_ACK_RESPONSE = "已收到您的訂單查詢，正在為您確認，請稍候。"
VENDOR_ACK_RESPONSE = "已收到，我正在處理，稍後提供完整答案。"
FALLBACK_LINK_RESPONSE = "目前無法即時取得結果，請至以下連結查詢：{url}"
FALLBACK_NO_LINK_RESPONSE = "目前無法即時取得結果，請稍後再試或輸入「真人客服」由專人協助。"
TEXT_ONLY_RESPONSE = "目前僅支援文字訊息，請以文字描述您的問題。"
WELCOME_RESPONSE = "感謝加入！直接輸入問題即可開始，輸入「真人客服」可轉接專人。"

Defer = Callable[..., Any]


class ReplyTokenSlot:
    """Hands out an event's reply token at most once."""

    def __init__(self, token: Optional[str]):
        self._token = token
        self.used = False

    def take(self) -> Optional[str]:
        if self.used:
            return None
        self.used = True
        return self._token


class EventDispatcher:
    def __init__(
        self,
        settings: Settings,
        line: LineService,
        ai: AIService,
        vendor: VendorForwarder,
        handoff_store: HandoffStore,
    ):
        self.settings = settings
        self.line = line
        self.ai = ai
        self.vendor = vendor
        self.handoff_store = handoff_store

    async def handle(self, event: InboundEvent, raw_payload: bytes, defer: Defer) -> str:
        """Route one event and return the chosen route name."""
        slot = ReplyTokenSlot(event.reply_token)
        log_context = event_context(event.mode, event.source_user_id)

        try:
            route = await self._route(event, raw_payload, defer, slot, log_context)
        except Exception as exc:
            logger.error(
                "Event handling failed",
                extra={"context": {**log_context, "route": "error", "error": str(exc)}},
                exc_info=True,
            )
            return "error"
        logger.info("Event routed", extra={"context": {**log_context, "route": route}})
        return route

    async def _route(
        self,
        event: InboundEvent,
        raw_payload: bytes,
        defer: Defer,
        slot: ReplyTokenSlot,
        log_context: dict,
    ) -> str:
        user_id = event.source_user_id

        if event.type in ("follow", "join"):
            if not self.settings.welcome_on_follow:
                return "ignored"
            if user_id and self.handoff_store.is_active(user_id):
                return "snoozed"
            await self._reply(slot, [text_message(WELCOME_RESPONSE)], log_context)
            return "welcome"

        if event.type != "message" or not user_id:
            return "ignored"

        if not event.is_text_message:
            if self.handoff_store.is_active(user_id):
                return "snoozed"
            await self._reply(slot, [text_message(TEXT_ONLY_RESPONSE)], log_context)
            return "non_text"

        text = event.text or ""
        intent = classify(text)
        log_context["intent"] = intent.value

        if intent is Intent.HUMAN_HANDOFF_REQUEST:
            minutes = self.settings.snooze_minutes
            self.handoff_store.set(user_id, minutes)
            await self._reply(slot, [text_message(HANDOFF_REQUEST_RESPONSE.format(minutes=minutes))], log_context)
            return intent.value

        if intent is Intent.HUMAN_HANDOFF_RESUME:
            self.handoff_store.clear(user_id)
            await self._reply(slot, [text_message(HANDOFF_RESUME_RESPONSE)], log_context)
            return intent.value

        if is_gated(intent) and self.handoff_store.is_active(user_id):
            return "snoozed"

        if intent is Intent.GREETING:
            await self._reply(slot, [text_message(GREETING_RESPONSE)], log_context)
            return intent.value

        if intent is Intent.LOW_INFORMATION:
            await self._reply(slot, [text_message(LOW_INFORMATION_RESPONSE)], log_context)
            return intent.value

        if intent in FORWARD_INTENTS:
            if self._ack_enabled(intent):
                ack = ORDER_ACK_RESPONSE if intent is Intent.ORDER_QUERY else VENDOR_ACK_RESPONSE
                await self._reply(slot, [text_message(ack)], log_context)
            defer(self._run_deferred, user_id, text, raw_payload, dict(log_context))
            return intent.value

        answer = await self.ai.answer(text)
        await self._reply(slot, [text_message(answer)], log_context)
        return intent.value

    def _ack_enabled(self, intent: Intent) -> bool:
        if intent is Intent.ORDER_QUERY:
            return self.settings.order_ack_enabled
        return self.settings.vendor_ack_enabled

    async def _reply(self, slot: ReplyTokenSlot, messages: List[dict], log_context: dict) -> Optional[CallOutcome]:
        if slot.used:
            logger.error("Reply token already consumed; reply dropped", extra={"context": log_context})
            return None
        return await self.line.reply(slot.take(), messages, log_context)

    async def _forward_and_push(self, user_id: str, text: str, raw_payload: bytes, log_context: dict) -> None:
        if not self.vendor.ready:
            await self._push_fallback(user_id, text, "vendor_not_configured", log_context)
            return

        outcome = await self.vendor.forward(raw_payload)
        if outcome.ok:
            reply = self.vendor.parse(outcome.body)
            if reply.ok:
                await self.line.push(user_id, reply.messages, {**log_context, "route": "vendor"})
                return
            reason = reply.reason or "vendor_reply_invalid"
        else:
            reason = outcome.kind.value

        await self._push_fallback(user_id, text, reason, log_context)

    async def _push_fallback(self, user_id: str, text: str, reason: str, log_context: dict) -> None:
        mode = self.settings.fallback_mode
        logger.info("Vendor fallback", extra={"context": {**log_context, "reason": reason, "fallback_mode": mode}})
        if mode == "link":
            url = self.settings.fallback_link_url
            answer = FALLBACK_LINK_RESPONSE.format(url=url) if url else FALLBACK_NO_LINK_RESPONSE
        else:
            answer = await self.ai.answer(text)
        await self.line.push(user_id, [text_message(answer)], {**log_context, "route": f"fallback_{mode}"})

    async def _run_deferred(self, user_id: str, text: str, raw_payload: bytes, log_context: dict) -> None:
        """Runs after the HTTP response has been sent; failures are logged only."""
        try:
            await self._forward_and_push(user_id, text, raw_payload, log_context)
        except Exception as exc:
            logger.error(
                "Deferred forward failed",
                extra={"context": {**log_context, "error": str(exc)}},
                exc_info=True,
            )

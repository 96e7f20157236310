from typing import Optional

from line_relay.config import Settings
from line_relay.logging_config import get_logger
from line_relay.services.llm import LLMProvider, OpenAIProvider
from line_relay.services.outcome import CallOutcome, OutcomeKind, RateLimitKind

logger = get_logger("ai_service")

EMPTY_ANSWER_RESPONSE = "（沒有產生回覆）"
BUSY_RESPONSE = "（系統稍忙，我再想一下，請稍後再試或改問更精準的問題）"
QUOTA_EXHAUSTED_RESPONSE = "（AI 服務額度不足或未開通付款，請稍後再試或轉人工協助）"
RATE_LIMITED_RESPONSE = "（目前請求較多，稍候幾秒再試）"
UNAVAILABLE_RESPONSE = "（AI 服務暫時無法使用，請稍後再試）"


def degraded_response(outcome: CallOutcome) -> str:
    """Fixed user-facing text for a failed completion."""
    if outcome.kind is OutcomeKind.TIMEOUT:
        return BUSY_RESPONSE
    if outcome.kind is OutcomeKind.RATE_LIMITED:
        if outcome.rate_limit is RateLimitKind.QUOTA_EXHAUSTED:
            return QUOTA_EXHAUSTED_RESPONSE
        return RATE_LIMITED_RESPONSE
    return UNAVAILABLE_RESPONSE


class AIService:
    """Answers free-form questions; always returns text, never raises."""

    def __init__(self, settings: Settings, provider: Optional[LLMProvider] = None):
        self.provider = provider or OpenAIProvider(api_key=settings.openai_api_key, base_url=settings.openai_api_url)
        self.system_prompt = settings.ai_system_prompt
        self.model = settings.ai_model
        self.max_tokens = settings.ai_max_tokens
        self.temperature = settings.ai_temperature
        self.timeout_ms = settings.ai_timeout_ms

    async def answer(self, text: str, *, system_prompt: Optional[str] = None, model: Optional[str] = None) -> str:
        """Answer `text`; `system_prompt` and `model` override the configured ones for this call."""
        outcome = await self.provider.complete(
            system_prompt or self.system_prompt,
            text,
            model=model or self.model,
            max_tokens=self.max_tokens,
            temperature=self.temperature,
            timeout_ms=self.timeout_ms,
        )
        if not outcome.ok:
            logger.warning("AI completion failed", extra={"context": outcome.log_context()})
            return degraded_response(outcome)

        response = self.provider.extract_content(outcome.body)
        if not response.content:
            logger.warning("AI completion returned empty content", extra={"context": {"model": response.model}})
            return EMPTY_ANSWER_RESPONSE
        return response.content

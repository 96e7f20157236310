import json
from typing import Optional

import httpx

from line_relay.logging_config import get_logger
from line_relay.services.deadline import execute
from line_relay.services.llm.base import LLMProvider, LLMResponse
from line_relay.services.outcome import CallOutcome

logger = get_logger("llm.openai")

DEFAULT_BASE_URL = "https://api.openai.com/v1/chat/completions"


class OpenAIProvider(LLMProvider):
    """OpenAI chat-completions provider."""

    def __init__(
        self,
        api_key: Optional[str],
        base_url: str = DEFAULT_BASE_URL,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.api_key = api_key
        self.base_url = base_url
        self._transport = transport

    async def complete(
        self,
        system_prompt: str,
        user_text: str,
        *,
        model: str,
        max_tokens: int,
        temperature: float,
        timeout_ms: int,
    ) -> CallOutcome:
        if not self.api_key:
            logger.error("OpenAI API key is missing (OPENAI_API_KEY not set)")
            return CallOutcome.not_configured("openai_key_missing")

        payload = {
            "model": model,
            "temperature": temperature,
            "max_tokens": max_tokens,
            "messages": [
                {"role": "system", "content": system_prompt},
                {"role": "user", "content": user_text},
            ],
        }
        logger.debug(f"OpenAI request: model={model}, chars={len(user_text)}")

        async with httpx.AsyncClient(timeout=timeout_ms / 1000, transport=self._transport) as client:
            return await execute(
                lambda: client.post(
                    self.base_url,
                    headers={
                        "Authorization": f"Bearer {self.api_key}",
                        "Content-Type": "application/json",
                    },
                    json=payload,
                ),
                timeout_ms,
                label="openai_completion",
            )

    def extract_content(self, body: str) -> LLMResponse:
        try:
            data = json.loads(body) if body else {}
        except ValueError:
            logger.warning(f"OpenAI response is not JSON: {body[:100]}")
            return LLMResponse(content="", model="")
        if not isinstance(data, dict):
            return LLMResponse(content="", model="")

        content = ""
        choices = data.get("choices")
        if isinstance(choices, list) and choices and isinstance(choices[0], dict):
            message = choices[0].get("message")
            if isinstance(message, dict) and isinstance(message.get("content"), str):
                content = message["content"]
        logger.debug(f"OpenAI content: {content[:100] if content else 'EMPTY'}")

        return LLMResponse(
            content=content.strip(),
            model=data.get("model", ""),
            usage=data.get("usage"),
        )

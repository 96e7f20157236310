from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Optional

from line_relay.services.outcome import CallOutcome


@dataclass
class LLMResponse:
    content: str
    model: str
    usage: Optional[dict] = None


class LLMProvider(ABC):
    """Abstract base class for LLM providers."""

    @abstractmethod
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
        """Run one completion under a deadline."""
        pass

    @abstractmethod
    def extract_content(self, body: str) -> LLMResponse:
        """Pull the generated text out of a successful response body."""
        pass

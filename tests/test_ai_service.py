import asyncio
import json

import httpx

from line_relay.services.ai_service import (
    BUSY_RESPONSE,
    EMPTY_ANSWER_RESPONSE,
    QUOTA_EXHAUSTED_RESPONSE,
    RATE_LIMITED_RESPONSE,
    UNAVAILABLE_RESPONSE,
    AIService,
    degraded_response,
)
from line_relay.services.llm import OpenAIProvider
from line_relay.services.outcome import CallOutcome, RateLimitKind


def _completion(content):
    return {"model": "gpt-4o-mini", "choices": [{"message": {"role": "assistant", "content": content}}]}


def _service(settings, handler):
    provider = OpenAIProvider(
        api_key=settings.openai_api_key,
        base_url=settings.openai_api_url,
        transport=httpx.MockTransport(handler),
    )
    return AIService(settings, provider=provider)


class TestDegradedResponse:
    def test_timeout(self):
        assert degraded_response(CallOutcome.timeout()) == BUSY_RESPONSE

    def test_quota_exhausted(self):
        assert degraded_response(CallOutcome.rate_limited(RateLimitKind.QUOTA_EXHAUSTED)) == QUOTA_EXHAUSTED_RESPONSE

    def test_generic_rate_limit(self):
        assert degraded_response(CallOutcome.rate_limited(RateLimitKind.GENERIC)) == RATE_LIMITED_RESPONSE

    def test_other_failures(self):
        for outcome in (
            CallOutcome.http_error(500, ""),
            CallOutcome.network_error("ConnectError"),
            CallOutcome.not_configured("openai_key_missing"),
        ):
            assert degraded_response(outcome) == UNAVAILABLE_RESPONSE


class TestAnswer:
    def test_returns_generated_text(self, settings_factory):
        seen = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(200, json=_completion("  退貨請於七天內申請。  "))

        settings = settings_factory(ai_model="gpt-test", ai_system_prompt="be brief", ai_max_tokens=128)
        answer = asyncio.run(_service(settings, handler).answer("怎麼退貨"))

        assert answer == "退貨請於七天內申請。"
        payload = json.loads(seen[0].content)
        assert payload["model"] == "gpt-test"
        assert payload["max_tokens"] == 128
        assert payload["temperature"] == 0.3
        assert payload["messages"] == [
            {"role": "system", "content": "be brief"},
            {"role": "user", "content": "怎麼退貨"},
        ]
        assert seen[0].headers["Authorization"] == "Bearer test-key"

    def test_per_call_overrides(self, settings_factory):
        seen = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(200, json=_completion("ok"))

        settings = settings_factory(ai_model="gpt-default", ai_system_prompt="default prompt")
        asyncio.run(_service(settings, handler).answer("question", system_prompt="custom", model="gpt-custom"))

        payload = json.loads(seen[0].content)
        assert payload["model"] == "gpt-custom"
        assert payload["messages"][0] == {"role": "system", "content": "custom"}

    def test_empty_content(self, settings_factory):
        answer = asyncio.run(
            _service(settings_factory(), lambda request: httpx.Response(200, json=_completion(""))).answer("hi there")
        )
        assert answer == EMPTY_ANSWER_RESPONSE

    def test_quota_exhausted(self, settings_factory):
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(429, json={"error": {"code": "insufficient_quota"}})

        assert asyncio.run(_service(settings_factory(), handler).answer("hello?")) == QUOTA_EXHAUSTED_RESPONSE

    def test_rate_limited(self, settings_factory):
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(429, json={"error": {"code": "rate_limit_exceeded"}})

        assert asyncio.run(_service(settings_factory(), handler).answer("hello?")) == RATE_LIMITED_RESPONSE

    def test_timeout(self, settings_factory):
        async def handler(request: httpx.Request) -> httpx.Response:
            await asyncio.sleep(5)
            return httpx.Response(200, json=_completion("late"))

        answer = asyncio.run(_service(settings_factory(ai_timeout_ms=20), handler).answer("slow question"))
        assert answer == BUSY_RESPONSE

    def test_server_error(self, settings_factory):
        answer = asyncio.run(
            _service(settings_factory(), lambda request: httpx.Response(500, text="oops")).answer("question")
        )
        assert answer == UNAVAILABLE_RESPONSE

    def test_missing_api_key_skips_request(self, settings_factory):
        seen = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(200, json=_completion("never"))

        answer = asyncio.run(_service(settings_factory(openai_api_key=None), handler).answer("question"))

        assert answer == UNAVAILABLE_RESPONSE
        assert seen == []


class TestExtractContent:
    def test_malformed_bodies(self):
        provider = OpenAIProvider(api_key="k")
        assert provider.extract_content("not json").content == ""
        assert provider.extract_content('{"choices": []}').content == ""
        assert provider.extract_content('{"choices": ["bad"]}').content == ""
        assert provider.extract_content("[]").content == ""

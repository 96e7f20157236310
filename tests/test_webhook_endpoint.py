import asyncio
import json
from unittest.mock import AsyncMock, Mock

import pytest
from fastapi.testclient import TestClient

from line_relay.main import app
from line_relay.routers.webhook import get_dispatcher
from line_relay.services.dispatch_service import ORDER_ACK_RESPONSE, EventDispatcher
from line_relay.services.handoff_store import HandoffStore
from line_relay.services.vendor_service import VendorForwarder

USER_ID = "U4af4980629abcdef"


def _payload(*texts):
    return json.dumps(
        {
            "destination": "Ubot",
            "events": [
                {
                    "type": "message",
                    "mode": "active",
                    "replyToken": f"rt-{i}",
                    "source": {"type": "user", "userId": USER_ID},
                    "message": {"id": str(i), "type": "text", "text": text},
                }
                for i, text in enumerate(texts)
            ],
        },
        ensure_ascii=False,
    ).encode("utf-8")


@pytest.fixture
def client():
    return TestClient(app)


@pytest.fixture
def fake_dispatcher():
    dispatcher = Mock()
    dispatcher.handle = AsyncMock(return_value="greeting")
    app.dependency_overrides[get_dispatcher] = lambda: dispatcher
    yield dispatcher
    app.dependency_overrides.clear()


class TestWebhookMethods:
    @pytest.mark.parametrize("method", ["GET", "PUT", "DELETE"])
    def test_non_post_returns_ok_without_processing(self, client, fake_dispatcher, method):
        response = client.request(method, "/webhook")

        assert response.status_code == 200
        assert response.text == "OK"
        fake_dispatcher.handle.assert_not_called()

    def test_health(self, client):
        assert client.get("/health").json() == {"status": "ok"}


class TestWebhookPost:
    def test_dispatches_each_event_with_raw_body(self, client, fake_dispatcher):
        raw = _payload("hello", "查訂單 A123456")

        response = client.post("/webhook", content=raw, headers={"Content-Type": "application/json"})

        assert response.status_code == 200
        assert response.text == "OK"
        assert fake_dispatcher.handle.await_count == 2
        first_event, first_raw, _ = fake_dispatcher.handle.call_args_list[0].args
        assert first_event.text == "hello"
        assert first_event.reply_token == "rt-0"
        assert first_raw == raw

    def test_malformed_json_is_acknowledged(self, client, fake_dispatcher):
        response = client.post("/webhook", content=b"{broken", headers={"Content-Type": "application/json"})

        assert response.status_code == 200
        fake_dispatcher.handle.assert_not_called()

    def test_empty_body_is_acknowledged(self, client, fake_dispatcher):
        response = client.post("/webhook")

        assert response.status_code == 200
        fake_dispatcher.handle.assert_not_called()

    def test_failing_event_does_not_stop_the_batch(self, client, fake_dispatcher):
        fake_dispatcher.handle = AsyncMock(side_effect=[RuntimeError("boom"), "greeting"])

        response = client.post("/webhook", content=_payload("hello", "hi there"))

        assert response.status_code == 200
        assert fake_dispatcher.handle.await_count == 2
        assert [c.args[0].reply_token for c in fake_dispatcher.handle.call_args_list] == ["rt-0", "rt-1"]

    def test_dispatcher_crash_still_returns_ok(self, client, fake_dispatcher):
        fake_dispatcher.handle = AsyncMock(side_effect=RuntimeError("boom"))

        response = client.post("/webhook", content=_payload("hello"))

        assert response.status_code == 200
        assert response.text == "OK"


class TestWebhookEndToEnd:
    def test_order_query_pushes_after_response(self, client, settings_factory, line_mock, ai_mock):
        settings = settings_factory()
        dispatcher = EventDispatcher(
            settings=settings,
            line=line_mock,
            ai=ai_mock,
            vendor=VendorForwarder(settings),
            handoff_store=HandoffStore(),
        )
        app.dependency_overrides[get_dispatcher] = lambda: dispatcher
        try:
            response = client.post("/webhook", content=_payload("查訂單 A123456"))
        finally:
            app.dependency_overrides.clear()

        assert response.status_code == 200
        assert line_mock.reply.call_args.args[1][0]["text"] == ORDER_ACK_RESPONSE
        line_mock.push.assert_awaited_once()
        assert line_mock.push.call_args.args[0] == USER_ID

    def test_failing_reply_does_not_stop_the_batch(self, client, settings_factory, line_mock, ai_mock):
        settings = settings_factory()
        line_mock.reply = AsyncMock(side_effect=[RuntimeError("reply exploded"), None])
        dispatcher = EventDispatcher(
            settings=settings,
            line=line_mock,
            ai=ai_mock,
            vendor=VendorForwarder(settings),
            handoff_store=HandoffStore(),
        )
        app.dependency_overrides[get_dispatcher] = lambda: dispatcher
        try:
            response = client.post("/webhook", content=_payload("hello", "hi there"))
        finally:
            app.dependency_overrides.clear()

        assert response.status_code == 200
        assert sorted(c.args[0] for c in line_mock.reply.call_args_list) == ["rt-0", "rt-1"]

    def test_slow_ai_events_in_one_batch_overlap(self, client, settings_factory, line_mock, ai_mock):
        state = {"in_flight": 0, "peak": 0}

        async def slow_answer(text):
            state["in_flight"] += 1
            state["peak"] = max(state["peak"], state["in_flight"])
            await asyncio.sleep(0.05)
            state["in_flight"] -= 1
            return f"answer: {text}"

        ai_mock.answer = AsyncMock(side_effect=slow_answer)
        settings = settings_factory()
        dispatcher = EventDispatcher(
            settings=settings,
            line=line_mock,
            ai=ai_mock,
            vendor=VendorForwarder(settings),
            handoff_store=HandoffStore(),
        )
        app.dependency_overrides[get_dispatcher] = lambda: dispatcher
        try:
            response = client.post("/webhook", content=_payload("今天天氣如何", "推薦一本書", "明天會下雨嗎"))
        finally:
            app.dependency_overrides.clear()

        assert response.status_code == 200
        assert ai_mock.answer.await_count == 3
        assert state["peak"] == 3
        assert line_mock.reply.await_count == 3

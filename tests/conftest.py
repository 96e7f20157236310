from datetime import datetime, timedelta, timezone
from unittest.mock import AsyncMock, Mock

import pytest

from line_relay.config import Settings
from line_relay.services.outcome import CallOutcome


class FakeClock:
    def __init__(self, start: datetime):
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now += timedelta(**kwargs)


def make_settings(**overrides) -> Settings:
    values = {
        "line_channel_access_token": "line-token",
        "openai_api_key": "test-key",
        "vendor_forward_url": None,
        "vendor_shared_secret": None,
    }
    values.update(overrides)
    return Settings(_env_file=None, **values)


@pytest.fixture
def settings_factory():
    return make_settings


@pytest.fixture
def clock():
    return FakeClock(datetime(2026, 1, 1, 12, 0, tzinfo=timezone.utc))


@pytest.fixture
def line_mock():
    """LineService stand-in that records reply/push calls."""
    line = Mock()
    line.reply = AsyncMock(return_value=CallOutcome.success("{}"))
    line.push = AsyncMock(return_value=CallOutcome.success("{}"))
    return line


@pytest.fixture
def ai_mock():
    ai = Mock()
    ai.answer = AsyncMock(return_value="AI 產生的回答")
    return ai

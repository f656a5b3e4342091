"""Shared fakes for the orchestration tests."""

import json
from typing import Callable, List, Optional, Sequence, Union

import pytest

from config import EntityConfig, RunConfiguration
from providers import ProviderError, ProviderGateway
from run_state import HistoryTurn


class FakeGateway(ProviderGateway):
    """Gateway that replays scripted replies and records every call."""

    provider_id = "openai"

    def __init__(self, replies: Optional[Sequence[Union[str, BaseException]]] = None,
                 default: Optional[Callable[[int], str]] = None):
        self.replies = list(replies or [])
        self.default = default or (lambda n: reply_json(
            [{"type": "dot", "cx": 10 * n, "cy": 20, "r": 3}],
            intent=f"call {n}"
        ))
        self.calls: List[dict] = []

    async def invoke(self, model, api_key, system_prompt, history: Sequence[HistoryTurn],
                     image=None, notes=None) -> str:
        self.calls.append({
            "model": model,
            "api_key": api_key,
            "system_prompt": system_prompt,
            "history": list(history),
            "image": image,
            "notes": notes
        })
        if self.replies:
            reply = self.replies.pop(0)
        else:
            reply = self.default(len(self.calls))
        if isinstance(reply, BaseException):
            raise reply
        return reply


class RecordingSleep:
    """Async sleep replacement that records requested waits and returns at once."""

    def __init__(self, on_sleep: Optional[Callable[[float], None]] = None):
        self.waits: List[float] = []
        self.on_sleep = on_sleep

    async def __call__(self, seconds: float) -> None:
        self.waits.append(seconds)
        if self.on_sleep:
            self.on_sleep(seconds)


def reply_json(shapes, intent="probe", notes=None, **extra) -> str:
    data = {"shapes": shapes, "intent": intent, **extra}
    if notes is not None:
        data["notes"] = notes
    return json.dumps(data)


def rate_limit_error() -> ProviderError:
    return ProviderError("OpenAI", 429, "Rate limit reached for requests")


def make_config(rounds=2, pace_seconds=1.0, history_window=8, max_attempts=5,
                provider_a="openai", provider_b="gemini") -> RunConfiguration:
    return RunConfiguration(
        entity_a=EntityConfig(provider=provider_a),
        entity_b=EntityConfig(provider=provider_b),
        rounds=rounds,
        pace_seconds=pace_seconds,
        credentials={
            "openai": "sk-test-openai-key-0000000000",
            "gemini": "gemini-test-key-000000000000",
            "anthropic": "sk-ant-REDACTED",
            "groq": "gsk_test_groq_key_00000000000"
        },
        history_window=history_window,
        max_attempts=max_attempts
    )


@pytest.fixture
def config():
    return make_config()


@pytest.fixture
def recording_sleep():
    return RecordingSleep()

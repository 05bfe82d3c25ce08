"""
Shared fixtures: scripted chat/speech collaborators and a fresh fact store per test.
"""
import pytest

from prompts.personas import PEPPER
from server.errors import ModelCallFailed, SpeechServiceError
from server.orchestrator import TurnOrchestrator
from server.prompting import PromptBuilder
from services.fact_store import FactStore


class FakeChat:
    """Returns queued replies in order; an Exception instance in the queue is raised."""

    def __init__(self, *replies):
        self.replies = list(replies)
        self.calls = []

    def complete(self, messages):
        self.calls.append(messages)
        reply = self.replies.pop(0) if self.replies else ""
        if isinstance(reply, Exception):
            raise reply
        return reply


class FakeSpeech:
    def __init__(self, fail=False, transcript="I want a puzzle"):
        self.fail = fail
        self.transcript = transcript
        self.spoken = []

    def synthesize(self, text, voice=None, speed=None):
        if self.fail:
            raise SpeechServiceError("tts: boom")
        self.spoken.append((text, voice, speed))
        return b"ID3fake-mp3"

    def transcribe(self, audio, filename):
        if self.fail:
            raise SpeechServiceError("stt: boom")
        return self.transcript


@pytest.fixture
def store():
    return FactStore()


@pytest.fixture
def quota_error():
    return ModelCallFailed("RateLimitError: insufficient_quota")


@pytest.fixture
def make_orchestrator(store):
    def _make(*replies, persona=PEPPER, speech=None):
        chat = FakeChat(*replies)
        orch = TurnOrchestrator(
            store=store,
            chat_client=chat,
            persona=persona,
            builder=PromptBuilder(),
            speech=speech,
            default_child_id="demo-child",
        )
        return orch, chat
    return _make


@pytest.fixture
def fake_speech():
    return FakeSpeech


@pytest.fixture
def fake_chat():
    return FakeChat

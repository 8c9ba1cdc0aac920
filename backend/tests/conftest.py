import json
from typing import Any, Dict, List

import pytest
from fastapi.testclient import TestClient

from speech_coach.db import Base, build_engine, build_session_factory
from speech_coach.deps import get_feedback_synthesizer, get_transcription_orchestrator
from speech_coach.feedback import FeedbackSynthesizer
from speech_coach.main import create_app
from speech_coach.settings import Settings
from speech_coach.transcription import TranscriptionResult


def make_settings(**overrides: Any) -> Settings:
	values: Dict[str, Any] = {
		"ASSEMBLYAI_API_KEY": "test-assemblyai-key",
		"AI_GATEWAY_API_KEY": "test-gateway-key",
		"JWT_SECRET_KEY": "test-jwt-secret",
		"DATABASE_URL": "sqlite://",
		"RATE_LIMIT_RETENTION_DAYS": 0,
		"RATE_LIMIT_AUTHENTICATED_PER_HOUR": 20,
		"RATE_LIMIT_ANONYMOUS_PER_HOUR": 3,
	}
	values.update(overrides)
	return Settings(_env_file=None, **values)


@pytest.fixture
def settings() -> Settings:
	return make_settings()


@pytest.fixture
def session_factory():
	engine = build_engine("sqlite://")
	Base.metadata.create_all(bind=engine)
	yield build_session_factory(engine)
	engine.dispose()


class FakeGateway:
	"""Stands in for ChatGatewayClient; replays canned replies or raises."""

	def __init__(self, reply: str = "", error: Exception | None = None) -> None:
		self.reply = reply
		self.error = error
		self.calls: List[List[Dict[str, str]]] = []

	async def complete(self, messages):
		self.calls.append(messages)
		if self.error is not None:
			raise self.error
		return self.reply


class FakeOrchestrator:
	def __init__(self, result: TranscriptionResult | None = None, error: Exception | None = None) -> None:
		self.result = result or TranscriptionResult(
			transcript="So I think we should um ship it",
			filler_word_count=2,
			word_count=8,
			duration=4.2,
			confidence=0.93,
		)
		self.error = error
		self.calls: List[str] = []

	async def transcribe(self, audio_base64, should_cancel=None):
		self.calls.append(audio_base64)
		if self.error is not None:
			raise self.error
		return self.result


GOOD_FEEDBACK = json.dumps({
	"delivery": ["Slow down slightly between ideas."],
	"content": ["Lead with your main recommendation."],
})


@pytest.fixture
def gateway() -> FakeGateway:
	return FakeGateway(reply=GOOD_FEEDBACK)


@pytest.fixture
def orchestrator() -> FakeOrchestrator:
	return FakeOrchestrator()


@pytest.fixture
def app(settings, gateway, orchestrator):
	app = create_app(settings)
	app.dependency_overrides[get_transcription_orchestrator] = lambda: orchestrator
	app.dependency_overrides[get_feedback_synthesizer] = lambda: FeedbackSynthesizer(gateway)
	return app


@pytest.fixture
def client(app):
	with TestClient(app) as c:
		yield c

import asyncio
import json

import httpx
import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from ielts_coach import models  # noqa: F401  (registers tables on Base)
from ielts_coach.db import Base
from ielts_coach.errors import GenerationError
from ielts_coach.schemas import GenerationResult, Highlight
from ielts_coach.speech import SpeechEngine, Voice
from ielts_coach.settings import settings
from ielts_coach.stores import LocalRecordStore, RemoteRecordStore


SAMPLE_ANSWER = {
	"content": (
		"Well, the book I'd love to talk about is The Three-Body Problem. "
		"I picked it up on a whim, and to be honest it completely changed the way I think about the future."
	),
	"highlights": [
		{"phrase": "pick something up on a whim", "cn_meaning": "一时兴起买下/拿起", "reusability": "描述购物、爱好的开端都能用"},
		{"phrase": "to be honest", "cn_meaning": "说实话", "reusability": "任何话题表达真实感受"},
	],
}


def gemini_body(text: str) -> dict:
	return {"candidates": [{"content": {"parts": [{"text": text}]}}]}


def gemini_transport(answer=None, *, status_code: int = 200, calls=None) -> httpx.MockTransport:
	"""Fake Gemini endpoint; ``answer`` may be a dict (sent as JSON text) or raw text."""
	def handler(request: httpx.Request) -> httpx.Response:
		if calls is not None:
			calls.append(request)
		if status_code != 200:
			return httpx.Response(status_code, json={"error": {"code": status_code, "message": "quota exceeded", "status": "RESOURCE_EXHAUSTED"}})
		text = answer if isinstance(answer, str) else json.dumps(answer or SAMPLE_ANSWER, ensure_ascii=False)
		return httpx.Response(200, json=gemini_body(text))
	return httpx.MockTransport(handler)


def sample_result(content: str = SAMPLE_ANSWER["content"]) -> GenerationResult:
	return GenerationResult(
		content=content,
		highlights=tuple(Highlight(**h) for h in SAMPLE_ANSWER["highlights"]),
	)


class FakeGateway:
	"""Returns queued results (or raises queued errors) in order."""

	def __init__(self, *outcomes):
		self.outcomes = list(outcomes) or [sample_result()]
		self.requests = []

	async def generate(self, req):
		self.requests.append(req)
		outcome = self.outcomes.pop(0) if len(self.outcomes) > 1 else self.outcomes[0]
		if isinstance(outcome, Exception):
			raise outcome
		return outcome


class FakeEngine(SpeechEngine):
	def __init__(self, voices=None):
		self._voices = voices if voices is not None else [
			Voice(id="zh", name="Tingting", lang="zh-CN"),
			Voice(id="en1", name="Daniel", lang="en-GB"),
			Voice(id="en2", name="Microsoft Aria Online (Natural)", lang="en-US"),
		]
		self.started = []
		self.cancelled = 0
		self.active = None

	def voices(self):
		return list(self._voices)

	def start(self, text, voice, rate, on_done):
		self.started.append((text, voice, rate))
		self.active = on_done

	def cancel(self):
		self.cancelled += 1
		self.active = None

	def finish(self, callback=None):
		(callback or self.active)()


class HeldGateway:
	"""Blocks inside generate until ``release`` is set."""

	def __init__(self, result=None):
		self.release = asyncio.Event()
		self.result = result or sample_result()
		self.calls = 0

	async def generate(self, req):
		self.calls += 1
		await self.release.wait()
		if isinstance(self.result, Exception):
			raise self.result
		return self.result


@pytest.fixture
def api_key(monkeypatch):
	monkeypatch.setattr(settings, "gemini_api_key", "test-key")
	monkeypatch.setattr(settings, "gemini_provider", "ai_studio")
	return "test-key"


@pytest.fixture
def local_store(tmp_path):
	return LocalRecordStore(tmp_path / "storage.json")


@pytest.fixture
def session_factory(tmp_path):
	engine = create_engine(f"sqlite:///{tmp_path / 'remote.db'}", connect_args={"check_same_thread": False}, future=True)
	Base.metadata.create_all(bind=engine)
	yield sessionmaker(bind=engine, autoflush=False, future=True)
	engine.dispose()


@pytest.fixture
def remote_store(session_factory):
	return RemoteRecordStore(session_factory, owner="alice")


@pytest.fixture
def failed_generation():
	return GenerationError("quota exceeded")

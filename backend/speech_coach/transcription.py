"""
Transcription Orchestrator
==========================

Turns a base64 audio sample into a transcript with filler-word counts using
AssemblyAI's asynchronous transcription API:

1. upload the raw bytes and get back an ``upload_url``
2. submit a job for that URL, boosting the filler-word vocabulary
3. poll the job every ``poll_interval`` seconds, at most ``max_attempts`` times
4. count filler words in the finished transcript

Polling is an explicit state machine (POLLING -> COMPLETED | FAILED) and the
sleep function is injected so tests can run it without real delays. Each HTTP
call opens its own short-lived client, so no connection is held open while
the loop sleeps.
"""

from __future__ import annotations

import asyncio
import base64
import binascii
import logging
import re
from dataclasses import dataclass
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, List, Optional, Sequence

import httpx

from .errors import UpstreamRateLimited, UpstreamServiceError, ValidationFailed

logger = logging.getLogger(__name__)

FILLER_WORDS: List[str] = ["um", "uh", "like", "you know", "so", "actually", "basically"]

TRANSCRIPTION_FAILED_DETAILS = "Transcription failed. Please check your audio and try again."

_FILLER_PATTERNS = [re.compile(rf"\b{re.escape(word)}\b", re.IGNORECASE) for word in FILLER_WORDS]


def count_filler_words(text: str, patterns: Sequence[re.Pattern] = _FILLER_PATTERNS) -> int:
	"""Whole-word, case-insensitive count of every filler-word occurrence."""
	if not text:
		return 0
	return sum(len(p.findall(text)) for p in patterns)


# ============================================================================
# ERRORS
# ============================================================================

class TranscriptionError(UpstreamServiceError):
	def __init__(self, message: str) -> None:
		super().__init__(message, details=TRANSCRIPTION_FAILED_DETAILS)


class TranscriptionRemoteError(TranscriptionError):
	"""The provider reported the job as failed."""


class TranscriptionTimeout(TranscriptionError):
	"""The job never reached a terminal state within the attempt budget."""


class TranscriptionCancelled(TranscriptionError):
	# Client went away; nobody will read this response
	status_code = 499


# ============================================================================
# PROVIDER CLIENT
# ============================================================================

class AssemblyAIClient:
	def __init__(
		self,
		api_key: str,
		*,
		base_url: str = "https://api.assemblyai.com/v2",
		timeout: float = 30.0,
		transport: Optional[httpx.AsyncBaseTransport] = None,
	) -> None:
		if not api_key:
			raise ValueError("ASSEMBLYAI_API_KEY is not configured")
		self._api_key = api_key
		self._base_url = base_url.rstrip("/")
		self._timeout = timeout
		self._transport = transport

	def _client(self) -> httpx.AsyncClient:
		return httpx.AsyncClient(
			timeout=self._timeout,
			transport=self._transport,
			headers={"authorization": self._api_key},
		)

	@staticmethod
	def _raise_for_status(r: httpx.Response, action: str) -> None:
		if r.is_success:
			return
		logger.error("AssemblyAI %s failed: %s %s", action, r.status_code, r.text[:500])
		if r.status_code == 429:
			raise UpstreamRateLimited(
				"Transcription service is busy. Please try again later.",
				details=TRANSCRIPTION_FAILED_DETAILS,
			)
		raise TranscriptionError(f"Failed to {action}: {r.status_code}")

	async def _send(self, action: str, method: str, path: str, **kwargs: Any) -> httpx.Response:
		try:
			async with self._client() as client:
				r = await client.request(method, f"{self._base_url}{path}", **kwargs)
		except httpx.RequestError as e:
			logger.error("AssemblyAI %s unreachable: %s", action, e)
			raise TranscriptionError(f"Failed to {action}: {e.__class__.__name__}") from e
		self._raise_for_status(r, action)
		return r

	async def upload(self, audio: bytes) -> str:
		r = await self._send(
			"upload audio",
			"POST",
			"/upload",
			content=audio,
			headers={"content-type": "application/octet-stream"},
		)
		return r.json()["upload_url"]

	async def submit(self, audio_url: str, word_boost: Sequence[str]) -> str:
		r = await self._send(
			"request transcription",
			"POST",
			"/transcript",
			json={"audio_url": audio_url, "word_boost": list(word_boost)},
		)
		return r.json()["id"]

	async def fetch(self, job_id: str) -> Dict[str, Any]:
		r = await self._send("check status", "GET", f"/transcript/{job_id}")
		return r.json()


# ============================================================================
# POLLING STATE MACHINE
# ============================================================================

class PollState(str, Enum):
	POLLING = "polling"
	COMPLETED = "completed"
	FAILED = "failed"


class FailureKind(str, Enum):
	TIMEOUT = "timeout"
	REMOTE_ERROR = "remote_error"


@dataclass
class PollOutcome:
	state: PollState
	job: Optional[Dict[str, Any]] = None
	failure: Optional[FailureKind] = None
	message: Optional[str] = None
	attempts: int = 0


@dataclass(frozen=True)
class TranscriptionResult:
	transcript: str
	filler_word_count: int
	word_count: int
	duration: Optional[float]
	confidence: Optional[float]

	def to_response(self) -> Dict[str, Any]:
		return {
			"transcript": self.transcript,
			"fillerWordCount": self.filler_word_count,
			"wordCount": self.word_count,
			"duration": self.duration,
			"confidence": self.confidence,
		}


class TranscriptionOrchestrator:
	def __init__(
		self,
		client: AssemblyAIClient,
		*,
		poll_interval: float = 5.0,
		max_attempts: int = 60,
		word_boost: Sequence[str] = FILLER_WORDS,
		sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
	) -> None:
		self._client = client
		self._poll_interval = poll_interval
		self._max_attempts = max_attempts
		self._word_boost = list(word_boost)
		self._sleep = sleep

	async def poll(
		self,
		job_id: str,
		should_cancel: Optional[Callable[[], Awaitable[bool]]] = None,
	) -> PollOutcome:
		outcome = PollOutcome(state=PollState.POLLING)
		while outcome.state is PollState.POLLING:
			if outcome.attempts >= self._max_attempts:
				outcome.state = PollState.FAILED
				outcome.failure = FailureKind.TIMEOUT
				outcome.message = f"Transcription timeout after {outcome.attempts} status checks"
				break
			await self._sleep(self._poll_interval)
			if should_cancel is not None and await should_cancel():
				raise TranscriptionCancelled("Transcription cancelled: client disconnected")
			job = await self._client.fetch(job_id)
			outcome.attempts += 1
			status = job.get("status")
			logger.debug("Transcription %s status: %s (attempt %d)", job_id, status, outcome.attempts)
			if status == "completed":
				outcome.state = PollState.COMPLETED
				outcome.job = job
			elif status == "error":
				outcome.state = PollState.FAILED
				outcome.failure = FailureKind.REMOTE_ERROR
				outcome.message = f"Transcription failed: {job.get('error') or 'unknown provider error'}"
		return outcome

	async def transcribe(
		self,
		audio_base64: str,
		should_cancel: Optional[Callable[[], Awaitable[bool]]] = None,
	) -> TranscriptionResult:
		try:
			audio = base64.b64decode(audio_base64, validate=True)
		except (binascii.Error, ValueError):
			raise ValidationFailed("Invalid base64 format")
		if not audio:
			raise ValidationFailed("Audio payload is empty")

		upload_url = await self._client.upload(audio)
		logger.info("Audio uploaded (%d bytes)", len(audio))
		job_id = await self._client.submit(upload_url, self._word_boost)
		logger.info("Transcription requested, id=%s", job_id)

		outcome = await self.poll(job_id, should_cancel)
		if outcome.state is PollState.FAILED:
			if outcome.failure is FailureKind.TIMEOUT:
				raise TranscriptionTimeout(outcome.message or "Transcription timeout")
			raise TranscriptionRemoteError(outcome.message or "Transcription failed")

		job = outcome.job or {}
		text = job.get("text") or ""
		result = TranscriptionResult(
			transcript=text,
			filler_word_count=count_filler_words(text),
			word_count=len(job.get("words") or []),
			duration=job.get("audio_duration"),
			confidence=job.get("confidence"),
		)
		logger.info(
			"Transcription complete: words=%d fillers=%d duration=%s",
			result.word_count, result.filler_word_count, result.duration,
		)
		return result


"""
Payload validation for the coaching endpoints.

Both validators are pure: they inspect an already-decoded JSON value, never
raise on malformed input and never mutate it. They run before any upload or
model call so a bad request costs nothing beyond its rate-limit record.
"""

from __future__ import annotations

import math
import re
from dataclasses import dataclass
from typing import Any, Optional

# 10MB of base64 is roughly 7.5MB of audio (5-7 minutes of compressed speech)
MAX_AUDIO_BASE64_CHARS = 10_485_760
MAX_TRANSCRIPT_CHARS = 10_000
MAX_DURATION_SECONDS = 600.0
MAX_FILLER_WORD_COUNT = 1000
PROMPT_MIN_CHARS = 10
PROMPT_MAX_CHARS = 500

_BASE64_RE = re.compile(r"[A-Za-z0-9+/=]+")


@dataclass(frozen=True)
class ValidationResult:
	valid: bool
	error: Optional[str] = None


_OK = ValidationResult(valid=True)


def _fail(message: str) -> ValidationResult:
	return ValidationResult(valid=False, error=message)


def _is_number(value: Any) -> bool:
	# bool is an int subclass but never a meaningful duration or count
	if isinstance(value, bool) or not isinstance(value, (int, float)):
		return False
	try:
		return math.isfinite(value)
	except OverflowError:
		# ints past float range come straight out of json.loads
		return False


def validate_audio_payload(audio: Any, *, max_chars: int = MAX_AUDIO_BASE64_CHARS) -> ValidationResult:
	if not isinstance(audio, str):
		return _fail("Audio must be a base64 string")
	if len(audio) > max_chars:
		return _fail("Audio too large. Maximum 7.5MB (approximately 5-7 minutes)")
	if not _BASE64_RE.fullmatch(audio):
		return _fail("Invalid base64 format")
	return _OK


def validate_analysis_payload(
	body: Any,
	*,
	max_transcript_chars: int = MAX_TRANSCRIPT_CHARS,
	max_duration: float = MAX_DURATION_SECONDS,
) -> ValidationResult:
	if not isinstance(body, dict):
		return _fail("Request body must be a JSON object")

	transcript = body.get("transcript")
	if not isinstance(transcript, str):
		return _fail("Transcript must be a string")
	if not transcript.strip():
		return _fail("Transcript cannot be empty")
	if len(transcript) > max_transcript_chars:
		return _fail(f"Transcript too long. Maximum {max_transcript_chars:,} characters.")

	duration = body.get("duration")
	if not _is_number(duration) or duration <= 0 or duration > max_duration:
		return _fail(f"Duration must be a number between 0 and {max_duration:g} seconds")

	filler_count = body.get("fillerWordCount")
	if (
		not _is_number(filler_count)
		or float(filler_count) != int(filler_count)
		or not 0 <= filler_count <= MAX_FILLER_WORD_COUNT
	):
		return _fail(f"Filler word count must be an integer between 0 and {MAX_FILLER_WORD_COUNT}")

	prompt = body.get("prompt")
	if prompt is not None:
		if not isinstance(prompt, str) or not PROMPT_MIN_CHARS <= len(prompt) <= PROMPT_MAX_CHARS:
			return _fail(f"Prompt must be a string between {PROMPT_MIN_CHARS} and {PROMPT_MAX_CHARS} characters")

	return _OK

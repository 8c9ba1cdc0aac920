"""
Speech Coaching Endpoints
=========================

Two quota-gated endpoints backing the practice flow:

- POST /transcribe-audio: base64 audio -> transcript, filler-word and word counts
- POST /analyze-speech: transcript + timing -> fluency metrics and AI feedback

Both run the same gate before touching any paid service:
identity -> rate limit (record written here) -> payload validation.
"""

from __future__ import annotations

import logging
from typing import Any, Dict

from fastapi import APIRouter, Depends, Request, Response

from ..deps import (
	get_feedback_synthesizer,
	get_identity_resolver,
	get_quota_policy,
	get_rate_limiter,
	get_settings,
	get_transcription_orchestrator,
)
from ..errors import RateLimited, ServiceError, StorageUnavailable, UpstreamServiceError, ValidationFailed
from ..feedback import FeedbackSynthesizer
from ..identity import AUTHENTICATED, CallerIdentity, IdentityResolver
from ..ratelimit import QuotaPolicy, RateLimiter
from ..settings import Settings
from ..transcription import TRANSCRIPTION_FAILED_DETAILS, TranscriptionOrchestrator
from ..validation import validate_analysis_payload, validate_audio_payload

logger = logging.getLogger(__name__)

router = APIRouter(tags=["coaching"])

TRANSCRIBE_ENDPOINT = "transcribe-audio"
ANALYZE_ENDPOINT = "analyze-speech"

CORS_ALLOW_HEADERS = ["authorization", "x-client-info", "apikey", "content-type"]
CORS_HEADERS = {
	"Access-Control-Allow-Headers": ", ".join(CORS_ALLOW_HEADERS),
	"Access-Control-Allow-Methods": "POST, OPTIONS",
}


def _log_label(identity: CallerIdentity) -> str:
	return identity.identifier_value if identity.identifier_class == AUTHENTICATED else "guest"


def enforce_quota(
	request: Request,
	endpoint: str,
	resolver: IdentityResolver,
	limiter: RateLimiter,
	policy: QuotaPolicy,
) -> CallerIdentity:
	"""Resolve the caller and charge one request against their quota."""
	identity = resolver.resolve(request.headers)
	limit = policy.limit_for(identity.identifier_class)
	decision = limiter.check_and_record(identity.identifier_value, identity.identifier_class, endpoint, limit)
	if not decision.allowed:
		if decision.storage_failure:
			raise StorageUnavailable(decision.error or "Rate limit service unavailable")
		raise RateLimited(decision.error or f"Rate limit exceeded ({limit} requests per hour)", limit=limit)
	return identity


async def _read_json(request: Request) -> Any:
	try:
		return await request.json()
	except ValueError:
		raise ValidationFailed("Invalid JSON body")


@router.options(f"/{TRANSCRIBE_ENDPOINT}", include_in_schema=False)
@router.options(f"/{ANALYZE_ENDPOINT}", include_in_schema=False)
async def preflight(request: Request, settings: Settings = Depends(get_settings)) -> Response:
	headers = dict(CORS_HEADERS)
	allowed = settings.cors_allow_origins
	origin = request.headers.get("origin")
	if "*" in allowed:
		headers["Access-Control-Allow-Origin"] = "*"
	elif origin in allowed:
		headers["Access-Control-Allow-Origin"] = origin
		headers["Vary"] = "Origin"
	return Response(status_code=200, headers=headers)


@router.post(f"/{TRANSCRIBE_ENDPOINT}")
async def transcribe_audio(
	request: Request,
	settings: Settings = Depends(get_settings),
	orchestrator: TranscriptionOrchestrator = Depends(get_transcription_orchestrator),
	resolver: IdentityResolver = Depends(get_identity_resolver),
	limiter: RateLimiter = Depends(get_rate_limiter),
	policy: QuotaPolicy = Depends(get_quota_policy),
) -> Dict[str, Any]:
	identity = enforce_quota(request, TRANSCRIBE_ENDPOINT, resolver, limiter, policy)

	body = await _read_json(request)
	audio = body.get("audio") if isinstance(body, dict) else None
	validation = validate_audio_payload(audio, max_chars=settings.max_audio_base64_chars)
	if not validation.valid:
		raise ValidationFailed(validation.error or "Invalid audio payload")

	logger.info(
		"Starting transcription: class=%s identifier=%s audio_chars=%d",
		identity.identifier_class, _log_label(identity), len(audio),
	)
	try:
		result = await orchestrator.transcribe(audio, should_cancel=request.is_disconnected)
	except ServiceError:
		raise
	except Exception as e:
		logger.exception("Error in transcribe-audio")
		raise UpstreamServiceError(str(e) or "Unknown error", details=TRANSCRIPTION_FAILED_DETAILS) from e
	return result.to_response()


@router.post(f"/{ANALYZE_ENDPOINT}")
async def analyze_speech(
	request: Request,
	settings: Settings = Depends(get_settings),
	synthesizer: FeedbackSynthesizer = Depends(get_feedback_synthesizer),
	resolver: IdentityResolver = Depends(get_identity_resolver),
	limiter: RateLimiter = Depends(get_rate_limiter),
	policy: QuotaPolicy = Depends(get_quota_policy),
) -> Dict[str, Any]:
	identity = enforce_quota(request, ANALYZE_ENDPOINT, resolver, limiter, policy)

	body = await _read_json(request)
	validation = validate_analysis_payload(
		body,
		max_transcript_chars=settings.max_transcript_chars,
		max_duration=settings.max_duration_seconds,
	)
	if not validation.valid:
		raise ValidationFailed(validation.error or "Invalid analysis payload")

	transcript: str = body["transcript"]
	duration = float(body["duration"])
	filler_word_count = int(body["fillerWordCount"])
	prompt = body.get("prompt")

	logger.info(
		"Analyzing speech: class=%s identifier=%s transcript_chars=%d duration=%s fillers=%d prompt=%s",
		identity.identifier_class, _log_label(identity), len(transcript), duration, filler_word_count, bool(prompt),
	)
	try:
		result = await synthesizer.analyze(transcript, duration, filler_word_count, prompt)
	except ServiceError:
		raise
	except Exception as e:
		logger.exception("Error in analyze-speech")
		raise UpstreamServiceError(str(e) or "Unknown error") from e
	return result.to_response()

from __future__ import annotations
from typing import AsyncIterator

from fastapi import Request

from .auth import TokenVerifier
from .errors import ConfigurationError
from .feedback import FeedbackSynthesizer
from .gateway_client import ChatGatewayClient
from .identity import IdentityResolver
from .ratelimit import QuotaPolicy, RateLimiter
from .settings import Settings
from .transcription import AssemblyAIClient, TranscriptionOrchestrator

SERVER_CONFIGURATION_ERROR = "Server configuration error"


def get_settings(request: Request) -> Settings:
	return request.app.state.settings


def get_token_verifier(request: Request) -> TokenVerifier:
	return TokenVerifier(request.app.state.settings, request.app.state.session_factory)


def get_identity_resolver(request: Request) -> IdentityResolver:
	return IdentityResolver(get_token_verifier(request), require_auth=request.app.state.settings.require_auth)


def get_rate_limiter(request: Request) -> RateLimiter:
	return request.app.state.rate_limiter


def get_quota_policy(request: Request) -> QuotaPolicy:
	return request.app.state.quota_policy


def get_transcription_orchestrator(request: Request) -> TranscriptionOrchestrator:
	settings: Settings = request.app.state.settings
	if not settings.assemblyai_api_key:
		raise ConfigurationError(SERVER_CONFIGURATION_ERROR)
	client = AssemblyAIClient(settings.assemblyai_api_key, base_url=settings.assemblyai_base_url)
	return TranscriptionOrchestrator(
		client,
		poll_interval=settings.transcription_poll_interval_seconds,
		max_attempts=settings.transcription_max_poll_attempts,
	)


async def get_feedback_synthesizer(request: Request) -> AsyncIterator[FeedbackSynthesizer]:
	settings: Settings = request.app.state.settings
	if not settings.ai_gateway_api_key:
		raise ConfigurationError(SERVER_CONFIGURATION_ERROR)
	gateway = ChatGatewayClient.from_settings(settings)
	try:
		yield FeedbackSynthesizer(gateway)
	finally:
		await gateway.aclose()

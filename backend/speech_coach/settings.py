from functools import lru_cache
from typing import List

from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import Field

# Placeholder shipped in .env examples; never valid for signing real tokens
DEFAULT_JWT_SECRET = "change-me"


class Settings(BaseSettings):
	# Speech-to-text provider (AssemblyAI)
	assemblyai_api_key: str | None = Field(default=None, validation_alias="ASSEMBLYAI_API_KEY")
	assemblyai_base_url: str = Field(default="https://api.assemblyai.com/v2", validation_alias="ASSEMBLYAI_BASE_URL")
	# Transcription polling: 60 checks every 5s gives a 5 minute ceiling
	transcription_poll_interval_seconds: float = Field(default=5.0, validation_alias="TRANSCRIPTION_POLL_INTERVAL_SECONDS")
	transcription_max_poll_attempts: int = Field(default=60, validation_alias="TRANSCRIPTION_MAX_POLL_ATTEMPTS")

	# OpenAI-compatible chat completion gateway used for coaching feedback
	ai_gateway_api_key: str | None = Field(default=None, validation_alias="AI_GATEWAY_API_KEY")
	ai_gateway_url: str = Field(default="https://ai.gateway.lovable.dev/v1/chat/completions", validation_alias="AI_GATEWAY_URL")
	ai_model: str = Field(default="google/gemini-2.5-flash", validation_alias="AI_MODEL")

	# Optional secondary gateway, tried once when the primary fails for reasons other than quota/billing
	fallback_gateway_api_key: str | None = Field(default=None, validation_alias="FALLBACK_GATEWAY_API_KEY")
	fallback_gateway_url: str = Field(default="https://openrouter.ai/api/v1/chat/completions", validation_alias="FALLBACK_GATEWAY_URL")
	fallback_model: str = Field(default="google/gemini-2.5-flash", validation_alias="FALLBACK_MODEL")

	# Auth configuration (bearer JWTs issued by /auth)
	jwt_secret_key: str = Field(default=DEFAULT_JWT_SECRET, validation_alias="JWT_SECRET_KEY")
	jwt_algorithm: str = Field(default="HS256", validation_alias="JWT_ALGORITHM")
	access_token_expire_minutes: int = Field(default=120, validation_alias="ACCESS_TOKEN_EXPIRE_MINUTES")
	# When enabled, both coaching endpoints reject callers without a valid token (401)
	require_auth: bool = Field(default=False, validation_alias="SPEECH_COACH_REQUIRE_AUTH")

	# Quotas per caller class, per rate-limit window
	rate_limit_authenticated_per_hour: int = Field(default=20, validation_alias="RATE_LIMIT_AUTHENTICATED_PER_HOUR")
	rate_limit_anonymous_per_hour: int = Field(default=3, validation_alias="RATE_LIMIT_ANONYMOUS_PER_HOUR")
	rate_limit_window_minutes: int = Field(default=60, validation_alias="RATE_LIMIT_WINDOW_MINUTES")
	# Housekeeping for the rate-limit log (0 disables the purge task)
	rate_limit_retention_days: int = Field(default=7, validation_alias="RATE_LIMIT_RETENTION_DAYS")

	# Payload ceilings
	max_audio_base64_chars: int = Field(default=10_485_760, validation_alias="MAX_AUDIO_BASE64_CHARS")
	max_transcript_chars: int = Field(default=10_000, validation_alias="MAX_TRANSCRIPT_CHARS")
	max_duration_seconds: float = Field(default=600.0, validation_alias="MAX_DURATION_SECONDS")

	# Database
	database_url: str | None = Field(default=None, validation_alias="DATABASE_URL")

	log_level: str = Field(default="INFO", validation_alias="SPEECH_COACH_LOG_LEVEL")
	cors_allow_origins: List[str] = Field(default=["*"], validation_alias="CORS_ALLOW_ORIGINS")

	# pydantic-settings v2 style config
	model_config = SettingsConfigDict(env_file=".env", extra="ignore")

	def missing_service_keys(self) -> List[str]:
		"""Names of required credentials that are not configured."""
		missing: List[str] = []
		if not self.assemblyai_api_key:
			missing.append("ASSEMBLYAI_API_KEY")
		if not self.ai_gateway_api_key:
			missing.append("AI_GATEWAY_API_KEY")
		if not self.jwt_secret_key or self.jwt_secret_key == DEFAULT_JWT_SECRET:
			missing.append("JWT_SECRET_KEY")
		return missing


@lru_cache
def get_settings() -> Settings:
	return Settings()

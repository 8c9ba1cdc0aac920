from __future__ import annotations
import asyncio
import contextlib
import logging
from datetime import timedelta
from typing import Optional

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from .cleanup import purge_rate_limit_records
from .db import Base, build_engine, build_session_factory
from .errors import ConfigurationError, install_error_handlers
from .logger_config import setup_logging
from .ratelimit import QuotaPolicy, RateLimiter, SqlRateLimitStore
from .routers import auth, coaching, health
from .settings import Settings, get_settings

logger = logging.getLogger(__name__)

PURGE_INTERVAL_SECONDS = 24 * 60 * 60


def create_app(settings: Optional[Settings] = None) -> FastAPI:
	settings = settings or get_settings()
	setup_logging(settings.log_level)

	engine = build_engine(settings.database_url)
	session_factory = build_session_factory(engine)

	app = FastAPI(title="Speech Coach API")
	app.state.settings = settings
	app.state.engine = engine
	app.state.session_factory = session_factory
	app.state.quota_policy = QuotaPolicy(
		authenticated_per_hour=settings.rate_limit_authenticated_per_hour,
		anonymous_per_hour=settings.rate_limit_anonymous_per_hour,
	)
	app.state.rate_limiter = RateLimiter(
		SqlRateLimitStore(session_factory),
		window=timedelta(minutes=settings.rate_limit_window_minutes),
	)

	app.add_middleware(
		CORSMiddleware,
		allow_origins=settings.cors_allow_origins,
		allow_methods=["POST", "OPTIONS", "GET"],
		allow_headers=coaching.CORS_ALLOW_HEADERS,
	)
	install_error_handlers(app)

	app.include_router(health.router)
	app.include_router(auth.router)
	app.include_router(coaching.router)

	@app.get("/info")
	def info():
		return {
			"status": "ok",
			"transcription_configured": bool(settings.assemblyai_api_key),
			"ai_gateway_configured": bool(settings.ai_gateway_api_key),
			"fallback_gateway_configured": bool(settings.fallback_gateway_api_key),
			"require_auth": settings.require_auth,
		}

	def _purge_once() -> None:
		db = session_factory()
		try:
			purge_rate_limit_records(db, timedelta(days=settings.rate_limit_retention_days))
		except Exception:
			logger.exception("Rate limit log purge failed")
		finally:
			db.close()

	async def _cleanup_watcher() -> None:
		while True:
			await asyncio.sleep(PURGE_INTERVAL_SECONDS)
			_purge_once()

	@app.on_event("startup")
	async def startup_event():
		# Refuse to serve anything without upstream credentials
		missing = settings.missing_service_keys()
		if missing:
			raise ConfigurationError(f"Missing required configuration: {', '.join(missing)}")
		Base.metadata.create_all(bind=engine)
		if settings.rate_limit_retention_days > 0:
			_purge_once()
			app.state.cleanup_task = asyncio.create_task(_cleanup_watcher())

	@app.on_event("shutdown")
	async def shutdown_event():
		task = getattr(app.state, "cleanup_task", None)
		if task is not None:
			task.cancel()
			with contextlib.suppress(asyncio.CancelledError):
				await task
			app.state.cleanup_task = None

	return app


app = create_app()

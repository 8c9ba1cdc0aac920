from __future__ import annotations
import logging
from typing import Any, Dict, Optional

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

logger = logging.getLogger(__name__)


class ServiceError(Exception):
	"""Error that maps onto an HTTP response of the form {"error", "details"?}."""

	status_code: int = 500

	def __init__(self, message: str, *, details: Optional[str] = None, status_code: Optional[int] = None) -> None:
		super().__init__(message)
		self.message = message
		self.details = details
		if status_code is not None:
			self.status_code = status_code

	def to_payload(self) -> Dict[str, Any]:
		payload: Dict[str, Any] = {"error": self.message}
		if self.details:
			payload["details"] = self.details
		return payload


class ValidationFailed(ServiceError):
	status_code = 400


class AuthenticationRequired(ServiceError):
	status_code = 401


class RateLimited(ServiceError):
	status_code = 429

	def __init__(self, message: str, *, limit: int) -> None:
		super().__init__(message)
		self.limit = limit


class UpstreamRateLimited(ServiceError):
	status_code = 429


class UpstreamPaymentRequired(ServiceError):
	status_code = 402


class UpstreamServiceError(ServiceError):
	status_code = 500


class ConfigurationError(ServiceError):
	status_code = 500


class StorageUnavailable(ServiceError):
	status_code = 500


async def _service_error_handler(request: Request, exc: ServiceError) -> JSONResponse:
	if exc.status_code >= 500:
		logger.error("%s %s failed: %s", request.method, request.url.path, exc.message)
	return JSONResponse(status_code=exc.status_code, content=exc.to_payload())


def install_error_handlers(app: FastAPI) -> None:
	app.add_exception_handler(ServiceError, _service_error_handler)

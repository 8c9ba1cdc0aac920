from __future__ import annotations
import logging
import httpx
from typing import Any, Dict, List, Optional
from .errors import UpstreamPaymentRequired, UpstreamRateLimited, UpstreamServiceError
from .settings import Settings

logger = logging.getLogger(__name__)

Message = Dict[str, str]


class ChatGatewayClient:
	"""OpenAI-compatible chat completion client.

	Quota (429) and billing (402) responses are surfaced as distinct errors and
	never retried. Any other failure is retried once against the fallback
	gateway when one is configured.
	"""

	def __init__(
		self,
		api_key: str,
		*,
		url: str,
		model: str,
		fallback_api_key: Optional[str] = None,
		fallback_url: Optional[str] = None,
		fallback_model: Optional[str] = None,
		timeout: float = 30.0,
		transport: Optional[httpx.AsyncBaseTransport] = None,
	) -> None:
		if not api_key:
			raise ValueError("AI_GATEWAY_API_KEY is not configured")
		self.api_key = api_key
		self.url = url
		self.model = model
		self._fallback_enabled = bool(fallback_api_key and fallback_url)
		self._fallback_api_key = fallback_api_key
		self._fallback_url = fallback_url
		self._fallback_model = fallback_model or model
		self._client = httpx.AsyncClient(timeout=timeout, transport=transport)

	@classmethod
	def from_settings(cls, settings: Settings, *, transport: Optional[httpx.AsyncBaseTransport] = None) -> "ChatGatewayClient":
		return cls(
			settings.ai_gateway_api_key or "",
			url=settings.ai_gateway_url,
			model=settings.ai_model,
			fallback_api_key=settings.fallback_gateway_api_key,
			fallback_url=settings.fallback_gateway_url,
			fallback_model=settings.fallback_model,
			transport=transport,
		)

	async def complete(self, messages: List[Message]) -> str:
		try:
			return await self._post(self.url, self.api_key, self.model, messages)
		except (UpstreamRateLimited, UpstreamPaymentRequired):
			raise
		except UpstreamServiceError as primary_error:
			if not self._fallback_enabled:
				raise
			logger.warning("Primary AI gateway failed (%s); trying fallback", primary_error.message)
			try:
				return await self._post(self._fallback_url or "", self._fallback_api_key or "", self._fallback_model, messages)
			except UpstreamServiceError as fallback_error:
				raise UpstreamServiceError(
					f"{primary_error.message}; fallback gateway also failed ({fallback_error.message})"
				) from fallback_error

	async def _post(self, url: str, api_key: str, model: str, messages: List[Message]) -> str:
		headers = {"Authorization": f"Bearer {api_key}", "Content-Type": "application/json"}
		payload: Dict[str, Any] = {"model": model, "messages": messages}
		try:
			r = await self._client.post(url, headers=headers, json=payload)
		except httpx.RequestError as net_err:
			raise UpstreamServiceError(f"AI Gateway unreachable: {net_err.__class__.__name__}") from net_err
		if r.status_code == 429:
			raise UpstreamRateLimited("Rate limit exceeded. Please try again later.")
		if r.status_code == 402:
			raise UpstreamPaymentRequired("Payment required. Please add funds to your workspace.")
		if not r.is_success:
			logger.error("AI Gateway error: %s %s", r.status_code, r.text[:500])
			raise UpstreamServiceError(f"AI Gateway error: {r.status_code}")
		try:
			data = r.json()
			content = data["choices"][0]["message"]["content"]
		except Exception:
			raise UpstreamServiceError(f"Unexpected AI Gateway response: {r.text[:200]}")
		return content if isinstance(content, str) else ""

	async def aclose(self) -> None:
		await self._client.aclose()

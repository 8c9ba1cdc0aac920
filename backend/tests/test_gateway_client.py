import asyncio
import json

import httpx
import pytest

from speech_coach.errors import UpstreamPaymentRequired, UpstreamRateLimited, UpstreamServiceError
from speech_coach.gateway_client import ChatGatewayClient

PRIMARY = "https://gateway.test/v1/chat/completions"
FALLBACK = "https://fallback.test/v1/chat/completions"
MESSAGES = [{"role": "system", "content": "coach"}, {"role": "user", "content": "hi"}]


def _reply(content):
	return httpx.Response(200, json={"choices": [{"message": {"role": "assistant", "content": content}}]})


def _client(handler, **kwargs):
	return ChatGatewayClient(
		"primary-key",
		url=PRIMARY,
		model="google/gemini-2.5-flash",
		transport=httpx.MockTransport(handler),
		**kwargs,
	)


def _complete(client):
	async def run():
		try:
			return await client.complete(MESSAGES)
		finally:
			await client.aclose()
	return asyncio.run(run())


def test_returns_first_choice_content():
	seen = []

	def handler(request):
		seen.append(request)
		return _reply('{"delivery": [], "content": []}')

	assert _complete(_client(handler)) == '{"delivery": [], "content": []}'
	body = json.loads(seen[0].content)
	assert body == {"model": "google/gemini-2.5-flash", "messages": MESSAGES}
	assert seen[0].headers["authorization"] == "Bearer primary-key"


@pytest.mark.parametrize("status, error_type, message", [
	(429, UpstreamRateLimited, "Rate limit exceeded. Please try again later."),
	(402, UpstreamPaymentRequired, "Payment required. Please add funds to your workspace."),
	(503, UpstreamServiceError, "AI Gateway error: 503"),
])
def test_upstream_status_classification(status, error_type, message):
	with pytest.raises(error_type) as exc_info:
		_complete(_client(lambda request: httpx.Response(status, text="nope")))
	assert type(exc_info.value) is error_type
	assert exc_info.value.message == message
	assert exc_info.value.status_code == (status if status in (429, 402) else 500)


def test_generic_failure_retries_fallback_gateway():
	hosts = []

	def handler(request):
		hosts.append(request.url.host)
		if request.url.host == "gateway.test":
			return httpx.Response(500, text="boom")
		assert request.headers["authorization"] == "Bearer fallback-key"
		assert json.loads(request.content)["model"] == "openrouter/model"
		return _reply("from fallback")

	client = _client(handler, fallback_api_key="fallback-key", fallback_url=FALLBACK, fallback_model="openrouter/model")
	assert _complete(client) == "from fallback"
	assert hosts == ["gateway.test", "fallback.test"]


@pytest.mark.parametrize("status", [429, 402])
def test_quota_and_billing_errors_skip_fallback(status):
	hosts = []

	def handler(request):
		hosts.append(request.url.host)
		return httpx.Response(status)

	client = _client(handler, fallback_api_key="fallback-key", fallback_url=FALLBACK)
	with pytest.raises((UpstreamRateLimited, UpstreamPaymentRequired)):
		_complete(client)
	assert hosts == ["gateway.test"]


def test_both_gateways_failing_reports_both():
	client = _client(lambda request: httpx.Response(500), fallback_api_key="k", fallback_url=FALLBACK)
	with pytest.raises(UpstreamServiceError, match="fallback gateway also failed"):
		_complete(client)


def test_malformed_completion_payload():
	with pytest.raises(UpstreamServiceError, match="Unexpected AI Gateway response"):
		_complete(_client(lambda request: httpx.Response(200, json={"choices": []})))


def test_requires_api_key():
	with pytest.raises(ValueError):
		ChatGatewayClient("", url=PRIMARY, model="m")

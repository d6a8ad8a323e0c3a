"""OpenAI-compatible chat completions provider over httpx."""

import json
import logging
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Optional

import httpx

from ..errors import MultiCompletionUnsupportedError, ProviderError, ProviderTimeoutError
from .base import LLMProvider, ModelStream

logger = logging.getLogger(__name__)


class OpenAICompatibleProvider(LLMProvider):
	"""
	Provider for any server speaking the OpenAI chat completions API.

	Works against OpenAI itself, vLLM, llama.cpp server, Ollama's /v1
	endpoint and similar. Multi-completion requests use the ``n`` parameter;
	if the server rejects it, the provider remembers and reports
	MultiCompletionUnsupportedError from then on.
	"""

	def __init__(
		self,
		model: str,
		base_url: str = "https://api.openai.com/v1",
		api_key: str = "",
		provider_name: str = "openai",
		supports_n: bool = True,
		timeout: float = 300.0,
		transport: Optional[httpx.AsyncBaseTransport] = None,
	):
		self._model = model
		self._name = provider_name
		self.base_url = base_url.rstrip("/")
		self.api_key = api_key
		self.timeout = timeout
		self._supports_n = supports_n
		self._transport = transport

	@property
	def name(self) -> str:
		return self._name

	@property
	def model(self) -> str:
		return self._model

	@property
	def supports_multiple_completions(self) -> bool:
		return self._supports_n

	def _headers(self) -> dict[str, str]:
		headers = {"Content-Type": "application/json"}
		if self.api_key:
			headers["Authorization"] = f"Bearer {self.api_key}"
		return headers

	def _payload(
		self,
		prompt: str,
		system_prompt: Optional[str],
		temperature: Optional[float],
		max_tokens: Optional[int],
		**extra: Any,
	) -> dict[str, Any]:
		messages = []
		if system_prompt:
			messages.append({"role": "system", "content": system_prompt})
		messages.append({"role": "user", "content": prompt})
		payload: dict[str, Any] = {"model": self._model, "messages": messages}
		if temperature is not None:
			payload["temperature"] = temperature
		if max_tokens is not None:
			payload["max_tokens"] = max_tokens
		payload.update(extra)
		return payload

	@asynccontextmanager
	async def _client(self) -> AsyncIterator[httpx.AsyncClient]:
		async with httpx.AsyncClient(
			base_url=self.base_url,
			headers=self._headers(),
			timeout=self.timeout,
			transport=self._transport,
		) as client:
			yield client

	async def _post(self, payload: dict[str, Any]) -> dict[str, Any]:
		try:
			async with self._client() as client:
				resp = await client.post("/chat/completions", json=payload)
				if resp.status_code == 400 and payload.get("n", 1) > 1 and _mentions_n(resp.text):
					self._supports_n = False
					raise MultiCompletionUnsupportedError(f"{self._name} rejected n={payload['n']}")
				resp.raise_for_status()
				return resp.json()
		except httpx.TimeoutException as e:
			raise ProviderTimeoutError(f"{self._name} request timed out: {e}") from e
		except httpx.HTTPStatusError as e:
			raise ProviderError(f"{self._name} returned HTTP {e.response.status_code}: {e.response.text[:200]}") from e
		except httpx.HTTPError as e:
			raise ProviderError(f"{self._name} request failed: {e}") from e
		except json.JSONDecodeError as e:
			raise ProviderError(f"{self._name} returned invalid JSON: {e}") from e

	@staticmethod
	def _choice_texts(data: dict[str, Any]) -> list[str]:
		choices = data.get("choices") or []
		if not choices:
			raise ProviderError("Response contained no choices")
		return [(c.get("message") or {}).get("content") or "" for c in choices]

	async def complete(
		self,
		prompt: str,
		system_prompt: Optional[str] = None,
		*,
		temperature: Optional[float] = None,
		max_tokens: Optional[int] = None,
	) -> str:
		data = await self._post(self._payload(prompt, system_prompt, temperature, max_tokens))
		return self._choice_texts(data)[0]

	async def complete_n(
		self,
		prompt: str,
		system_prompt: Optional[str] = None,
		n: int = 1,
		*,
		temperature: Optional[float] = None,
		max_tokens: Optional[int] = None,
	) -> list[str]:
		if not self._supports_n and n > 1:
			raise MultiCompletionUnsupportedError(f"{self._name} does not support n > 1")
		data = await self._post(self._payload(prompt, system_prompt, temperature, max_tokens, n=n))
		return self._choice_texts(data)

	async def stream(
		self,
		prompt: str,
		system_prompt: Optional[str] = None,
		*,
		temperature: Optional[float] = None,
		max_tokens: Optional[int] = None,
	) -> ModelStream:
		payload = self._payload(prompt, system_prompt, temperature, max_tokens, stream=True)
		return ModelStream(self._stream_chunks(payload))

	async def _stream_chunks(self, payload: dict[str, Any]) -> AsyncIterator[str]:
		try:
			async with self._client() as client:
				async with client.stream("POST", "/chat/completions", json=payload) as resp:
					resp.raise_for_status()
					async for line in resp.aiter_lines():
						chunk = _parse_sse_line(line)
						if chunk is None:
							break
						if chunk:
							yield chunk
		except httpx.TimeoutException as e:
			raise ProviderTimeoutError(f"{self._name} stream timed out: {e}") from e
		except httpx.HTTPError as e:
			raise ProviderError(f"{self._name} stream failed: {e}") from e


def _mentions_n(body: str) -> bool:
	"""Best-effort check that a 400 error complains about the n parameter."""
	lowered = body.lower()
	return "'n'" in lowered or '"n"' in lowered or "parameter n" in lowered or "n must" in lowered


def _parse_sse_line(line: str) -> Optional[str]:
	"""
	Extract the delta text from one server-sent-events line.

	Returns None at the [DONE] marker and "" for lines carrying no text.
	"""
	line = line.strip()
	if not line.startswith("data:"):
		return ""
	data = line[len("data:"):].strip()
	if data == "[DONE]":
		return None
	try:
		event = json.loads(data)
	except json.JSONDecodeError:
		logger.debug(f"Skipping malformed stream line: {data[:80]}")
		return ""
	choices = event.get("choices") or []
	if not choices:
		return ""
	return (choices[0].get("delta") or {}).get("content") or ""

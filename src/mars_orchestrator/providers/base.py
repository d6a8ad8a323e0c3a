"""
Provider abstraction - the only contract higher layers depend on.

Agents, aggregators and the tree search talk to an LLMProvider, never to a
concrete backend, so new backends plug in without touching orchestration code.
"""

import asyncio
import logging
from abc import ABC, abstractmethod
from typing import AsyncIterator, Awaitable, Optional, TypeVar

from ..errors import MultiCompletionUnsupportedError, ProviderError, ProviderTimeoutError

logger = logging.getLogger(__name__)

T = TypeVar("T")


class ModelStream:
	"""
	Finite, single-use async iterator of text chunks.

	Iterating a second time raises ProviderError; streams are not restartable.
	"""

	def __init__(self, chunks: AsyncIterator[str]):
		self._chunks = chunks
		self._consumed = False

	@classmethod
	def from_text(cls, text: str) -> "ModelStream":
		"""Wrap a full completion as a one-chunk stream."""
		async def single() -> AsyncIterator[str]:
			if text:
				yield text
		return cls(single())

	def __aiter__(self) -> AsyncIterator[str]:
		if self._consumed:
			raise ProviderError("Stream already consumed")
		self._consumed = True
		return self._chunks.__aiter__()

	async def collect(self) -> str:
		"""Drain the stream into a single string."""
		parts = []
		async for chunk in self:
			parts.append(chunk)
		return "".join(parts)


class LLMProvider(ABC):
	"""Capability interface every inference backend implements."""

	@property
	@abstractmethod
	def name(self) -> str:
		"""Provider name for logging and diagnostics."""

	@property
	@abstractmethod
	def model(self) -> str:
		"""Model name for logging and diagnostics."""

	@property
	def supports_multiple_completions(self) -> bool:
		return False

	@abstractmethod
	async def complete(
		self,
		prompt: str,
		system_prompt: Optional[str] = None,
		*,
		temperature: Optional[float] = None,
		max_tokens: Optional[int] = None,
	) -> str:
		"""Complete a prompt and return the full response text."""

	async def stream(
		self,
		prompt: str,
		system_prompt: Optional[str] = None,
		*,
		temperature: Optional[float] = None,
		max_tokens: Optional[int] = None,
	) -> ModelStream:
		"""
		Stream a response incrementally.

		Backends without real streaming return the whole completion as a
		single chunk.
		"""
		text = await self.complete(prompt, system_prompt, temperature=temperature, max_tokens=max_tokens)
		return ModelStream.from_text(text)

	async def complete_n(
		self,
		prompt: str,
		system_prompt: Optional[str] = None,
		n: int = 1,
		*,
		temperature: Optional[float] = None,
		max_tokens: Optional[int] = None,
	) -> list[str]:
		"""Return n parallel completions from a single request."""
		raise MultiCompletionUnsupportedError(f"{self.name} does not support multiple completions per request")

	def __repr__(self) -> str:
		return f"<{type(self).__name__} {self.name}/{self.model}>"


async def with_timeout(awaitable: Awaitable[T], timeout: Optional[float], what: str = "provider call") -> T:
	"""Await a backend call, converting a timeout into ProviderTimeoutError."""
	if timeout is None:
		return await awaitable
	try:
		return await asyncio.wait_for(awaitable, timeout=timeout)
	except asyncio.TimeoutError as e:
		logger.warning(f"{what} timed out after {timeout}s")
		raise ProviderTimeoutError(f"{what} timed out after {timeout}s") from e


def estimate_tokens(*texts: str) -> int:
	"""Rough token count (about four characters per token)."""
	total = sum(len(t) for t in texts if t)
	if total == 0:
		return 0
	return max(1, total // 4)

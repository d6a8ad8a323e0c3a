"""
Fan-out/fan-in execution of backend calls within a phase.

Each item is handled concurrently under a concurrency limit; backend calls
carry their own timeout (see providers.base.with_timeout). Individual
failures are captured, never raised, so one failing agent cannot abort the
phase. Results come back in input order
regardless of completion order.
"""

import asyncio
import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Awaitable, Callable, Generic, Optional, Sequence, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")
R = TypeVar("R")


class FanOutStatus(str, Enum):
	"""Outcome of a fan-out."""
	COMPLETED = "completed"
	PARTIAL_FAILURE = "partial_failure"
	FAILED = "failed"


@dataclass
class FanOutResult(Generic[T, R]):
	"""Result of handling one item."""
	index: int
	item: T
	result: Optional[R] = None
	error: Optional[BaseException] = None

	@property
	def success(self) -> bool:
		return self.error is None


@dataclass
class FanOutSummary(Generic[T, R]):
	"""All results of a fan-out, in input order."""
	status: FanOutStatus
	results: list[FanOutResult[T, R]] = field(default_factory=list)

	@property
	def succeeded(self) -> list[FanOutResult[T, R]]:
		return [r for r in self.results if r.success]

	@property
	def failed(self) -> list[FanOutResult[T, R]]:
		return [r for r in self.results if not r.success]


class FanOut(Generic[T, R]):
	"""
	Runs one coroutine per item and waits for all of them.

	Uses asyncio.Semaphore to limit concurrent backend calls.
	"""

	def __init__(self, max_concurrency: int = 8):
		self.max_concurrency = max(1, max_concurrency)

	async def run(
		self,
		items: Sequence[T],
		handler: Callable[[T], Awaitable[R]],
	) -> FanOutSummary[T, R]:
		"""
		Handle every item and return once all have finished.

		Args:
			items: Items to process
			handler: Async function called once per item

		Returns:
			FanOutSummary with one result per item, in input order
		"""
		if not items:
			return FanOutSummary(status=FanOutStatus.COMPLETED)

		semaphore = asyncio.Semaphore(self.max_concurrency)

		async def process(index: int, item: T) -> FanOutResult[T, R]:
			async with semaphore:
				try:
					value = await handler(item)
					return FanOutResult(index=index, item=item, result=value)
				except Exception as e:
					logger.warning(f"Item {index} failed: {e}")
					return FanOutResult(index=index, item=item, error=e)

		# Fan out
		tasks = [asyncio.create_task(process(i, item)) for i, item in enumerate(items)]
		# Fan in
		results = list(await asyncio.gather(*tasks))

		failed = sum(1 for r in results if not r.success)
		if failed == 0:
			status = FanOutStatus.COMPLETED
		elif failed == len(results):
			status = FanOutStatus.FAILED
		else:
			status = FanOutStatus.PARTIAL_FAILURE

		return FanOutSummary(status=status, results=results)

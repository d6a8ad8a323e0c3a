"""
Lifecycle events and the observation channel.

Every phase of a run emits typed events. The coordinator publishes them on an
EventChannel whose receiving end belongs to the caller. Emission never blocks:
the channel is bounded and drops the oldest buffered event on overflow, since
events are observability, not control flow.
"""

import asyncio
import logging
from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, AsyncIterator, ClassVar

logger = logging.getLogger(__name__)

DEFAULT_CHANNEL_CAPACITY = 100


class EventType(str, Enum):
	"""Kinds of lifecycle events."""
	EXPLORATION_STARTED = "exploration_started"
	SOLUTION_GENERATED = "solution_generated"
	AGGREGATION_STARTED = "aggregation_started"
	SOLUTIONS_AGGREGATED = "solutions_aggregated"
	STRATEGY_NETWORK_STARTED = "strategy_network_started"
	STRATEGY_EXTRACTED = "strategy_extracted"
	VERIFICATION_STARTED = "verification_started"
	SOLUTION_VERIFIED = "solution_verified"
	IMPROVEMENT_STARTED = "improvement_started"
	SOLUTION_IMPROVED = "solution_improved"
	SYNTHESIS_STARTED = "synthesis_started"
	ANSWER_SYNTHESIZED = "answer_synthesized"
	ERROR = "error"


@dataclass(frozen=True)
class MarsEvent:
	"""Base class for lifecycle events."""
	type: ClassVar[EventType]
	timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc), kw_only=True)

	def to_dict(self) -> dict[str, Any]:
		data = asdict(self)
		data["type"] = self.type.value
		data["timestamp"] = self.timestamp.isoformat()
		return data


@dataclass(frozen=True)
class ExplorationStarted(MarsEvent):
	type: ClassVar[EventType] = EventType.EXPLORATION_STARTED
	agent_count: int


@dataclass(frozen=True)
class SolutionGenerated(MarsEvent):
	type: ClassVar[EventType] = EventType.SOLUTION_GENERATED
	candidate_id: str
	producer_id: str


@dataclass(frozen=True)
class AggregationStarted(MarsEvent):
	type: ClassVar[EventType] = EventType.AGGREGATION_STARTED


@dataclass(frozen=True)
class SolutionsAggregated(MarsEvent):
	type: ClassVar[EventType] = EventType.SOLUTIONS_AGGREGATED
	candidate_id: str


@dataclass(frozen=True)
class StrategyNetworkStarted(MarsEvent):
	type: ClassVar[EventType] = EventType.STRATEGY_NETWORK_STARTED


@dataclass(frozen=True)
class StrategyExtracted(MarsEvent):
	type: ClassVar[EventType] = EventType.STRATEGY_EXTRACTED
	strategy_id: str


@dataclass(frozen=True)
class VerificationStarted(MarsEvent):
	type: ClassVar[EventType] = EventType.VERIFICATION_STARTED


@dataclass(frozen=True)
class SolutionVerified(MarsEvent):
	type: ClassVar[EventType] = EventType.SOLUTION_VERIFIED
	candidate_id: str
	is_correct: bool
	score: float


@dataclass(frozen=True)
class ImprovementStarted(MarsEvent):
	type: ClassVar[EventType] = EventType.IMPROVEMENT_STARTED
	iteration: int


@dataclass(frozen=True)
class SolutionImproved(MarsEvent):
	type: ClassVar[EventType] = EventType.SOLUTION_IMPROVED
	candidate_id: str


@dataclass(frozen=True)
class SynthesisStarted(MarsEvent):
	type: ClassVar[EventType] = EventType.SYNTHESIS_STARTED


@dataclass(frozen=True)
class AnswerSynthesized(MarsEvent):
	type: ClassVar[EventType] = EventType.ANSWER_SYNTHESIZED
	answer: str


@dataclass(frozen=True)
class ErrorEvent(MarsEvent):
	type: ClassVar[EventType] = EventType.ERROR
	message: str


_CLOSED = object()


class EventChannel:
	"""
	Bounded single-consumer event stream.

	The producer side (emit, close) never awaits. The consumer iterates with
	``async for`` until the run closes the channel, or calls drain() to take
	whatever is buffered without waiting.
	"""

	def __init__(self, capacity: int = DEFAULT_CHANNEL_CAPACITY):
		self.capacity = max(1, capacity)
		self._queue: asyncio.Queue = asyncio.Queue(maxsize=self.capacity + 1)
		self._closed = False
		self.dropped = 0

	@property
	def closed(self) -> bool:
		return self._closed

	def emit(self, event: MarsEvent) -> None:
		"""Publish an event, dropping the oldest buffered one when full."""
		if self._closed:
			logger.debug(f"Dropping {event.type.value} event: channel closed")
			return
		# One slot stays reserved for the close marker
		if self._queue.qsize() >= self.capacity:
			self._queue.get_nowait()
			self.dropped += 1
		self._queue.put_nowait(event)

	def close(self) -> None:
		"""Mark the end of the stream. Further emits are ignored."""
		if self._closed:
			return
		self._closed = True
		self._queue.put_nowait(_CLOSED)

	def drain(self) -> list[MarsEvent]:
		"""Return all buffered events without waiting."""
		events = []
		while not self._queue.empty():
			item = self._queue.get_nowait()
			if item is _CLOSED:
				# Keep the marker so an iterating consumer still terminates
				self._queue.put_nowait(_CLOSED)
				break
			events.append(item)
		return events

	def __aiter__(self) -> AsyncIterator[MarsEvent]:
		return self._iterate()

	async def _iterate(self) -> AsyncIterator[MarsEvent]:
		while True:
			item = await self._queue.get()
			if item is _CLOSED:
				self._queue.put_nowait(_CLOSED)
				return
			yield item

"""Strategy network - registry of reasoning strategies shared across agents."""

import logging
from dataclasses import dataclass
from typing import Optional

from .models import new_id

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Strategy:
	"""A reasoning strategy extracted from one agent's solution."""
	id: str
	producer_id: str
	description: str
	provenance: str


class StrategyNetwork:
	"""
	Append-only registry of strategies.

	Written during the strategy phase, read by later phases to give agents
	insights from their peers. Entries are never removed. Registration does not
	await, so it is atomic with respect to other tasks on the event loop.
	"""

	def __init__(self):
		self._strategies: dict[str, Strategy] = {}

	def register(self, producer_id: str, description: str, provenance: str) -> str:
		"""Register a strategy and return its id."""
		strategy_id = new_id("strategy")
		self._strategies[strategy_id] = Strategy(
			id=strategy_id,
			producer_id=producer_id,
			description=description,
			provenance=provenance,
		)
		logger.debug(f"Registered {strategy_id} from {producer_id}")
		return strategy_id

	def get(self, strategy_id: str) -> Optional[Strategy]:
		return self._strategies.get(strategy_id)

	def all(self) -> list[Strategy]:
		return list(self._strategies.values())

	def for_producer(self, producer_id: str) -> list[Strategy]:
		return [s for s in self._strategies.values() if s.producer_id == producer_id]

	def shared_insights(self, exclude_producer: Optional[str] = None, limit: int = 5) -> list[str]:
		"""Descriptions of strategies from other producers, oldest first, deduplicated."""
		seen: set[str] = set()
		insights = []
		for strategy in self._strategies.values():
			if strategy.producer_id == exclude_producer or strategy.description in seen:
				continue
			seen.add(strategy.description)
			insights.append(strategy.description)
			if len(insights) >= limit:
				break
		return insights

	def __len__(self) -> int:
		return len(self._strategies)

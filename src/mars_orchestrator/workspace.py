"""
Workspace - the shared, concurrency-safe collection of candidates in a run.

All operations take the same asyncio.Lock, so concurrent phase tasks see a
linearizable history of adds and updates.
"""

import asyncio
import logging
from typing import Callable, Optional

from .models import Solution

logger = logging.getLogger(__name__)


class Workspace:
	"""Mutable candidate store for a single run."""

	def __init__(self):
		self._solutions: list[Solution] = []
		self._index: dict[str, int] = {}
		self._lock = asyncio.Lock()

	async def add(self, solution: Solution) -> None:
		"""Append a solution. The caller's id is trusted."""
		async with self._lock:
			if solution.id in self._index:
				logger.warning(f"Solution {solution.id} added twice; keeping the newer copy")
				self._solutions[self._index[solution.id]] = solution.copy()
				return
			self._index[solution.id] = len(self._solutions)
			self._solutions.append(solution.copy())

	async def get_all(self) -> list[Solution]:
		"""Snapshot of all solutions in insertion order."""
		async with self._lock:
			return [s.copy() for s in self._solutions]

	async def get(self, solution_id: str) -> Optional[Solution]:
		async with self._lock:
			pos = self._index.get(solution_id)
			return self._solutions[pos].copy() if pos is not None else None

	async def update(self, solution: Solution) -> bool:
		"""
		Replace the solution with a matching id.

		Returns False (and changes nothing) if no such solution exists.
		"""
		async with self._lock:
			pos = self._index.get(solution.id)
			if pos is None:
				logger.warning(f"Update for unknown solution {solution.id} ignored")
				return False
			self._solutions[pos] = solution.copy()
			return True

	async def modify(self, solution_id: str, fn: Callable[[Solution], None]) -> Optional[Solution]:
		"""
		Atomically apply fn to the stored solution and return a copy of the result.

		Returns None if no such solution exists.
		"""
		async with self._lock:
			pos = self._index.get(solution_id)
			if pos is None:
				logger.warning(f"Modify for unknown solution {solution_id} ignored")
				return None
			fn(self._solutions[pos])
			return self._solutions[pos].copy()

	async def size(self) -> int:
		async with self._lock:
			return len(self._solutions)

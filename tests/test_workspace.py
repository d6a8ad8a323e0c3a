"""Tests for the concurrency-safe candidate workspace."""

import asyncio

import pytest

from mars_orchestrator.workspace import Workspace

from .helpers import make_solution


class TestWorkspaceBasic:
	@pytest.mark.asyncio
	async def test_add_and_get_all_in_order(self):
		ws = Workspace()
		a, b = make_solution("1"), make_solution("2")
		await ws.add(a)
		await ws.add(b)
		assert [s.id for s in await ws.get_all()] == [a.id, b.id]
		assert await ws.size() == 2

	@pytest.mark.asyncio
	async def test_snapshot_is_a_copy(self):
		"""Mutating a snapshot does not leak into the workspace."""
		ws = Workspace()
		a = make_solution("1")
		await ws.add(a)
		snapshot = await ws.get_all()
		snapshot[0].add_verification_failure()
		a.add_verification_failure()
		stored = await ws.get(a.id)
		assert stored.verification_failures == 0

	@pytest.mark.asyncio
	async def test_get_missing(self):
		assert await Workspace().get("nope") is None

	@pytest.mark.asyncio
	async def test_duplicate_add_replaces(self):
		ws = Workspace()
		a = make_solution("1")
		await ws.add(a)
		changed = a.copy()
		changed.answer = "2"
		await ws.add(changed)
		assert await ws.size() == 1
		assert (await ws.get(a.id)).answer == "2"


class TestWorkspaceUpdate:
	@pytest.mark.asyncio
	async def test_update_existing(self):
		ws = Workspace()
		a = make_solution("1")
		await ws.add(a)
		updated = a.copy()
		updated.add_verification_pass(0.9, threshold=1)
		assert await ws.update(updated) is True
		assert (await ws.get(a.id)).is_verified is True

	@pytest.mark.asyncio
	async def test_update_missing_is_soft_failure(self):
		"""Updating an unknown id changes nothing and reports False."""
		ws = Workspace()
		await ws.add(make_solution("1"))
		assert await ws.update(make_solution("2")) is False
		assert await ws.size() == 1

	@pytest.mark.asyncio
	async def test_modify_missing(self):
		assert await Workspace().modify("nope", lambda s: None) is None

	@pytest.mark.asyncio
	async def test_concurrent_modify_loses_no_updates(self):
		"""Concurrent passes on one candidate all land."""
		ws = Workspace()
		a = make_solution("1")
		await ws.add(a)

		async def record_pass():
			await asyncio.sleep(0)
			await ws.modify(a.id, lambda s: s.add_verification_pass(0.1, threshold=50))

		await asyncio.gather(*(record_pass() for _ in range(20)))
		stored = await ws.get(a.id)
		assert stored.verification_passes == 20
		assert stored.verification_score == pytest.approx(2.0)

	@pytest.mark.asyncio
	async def test_concurrent_adds(self):
		ws = Workspace()
		await asyncio.gather(*(ws.add(make_solution(str(i))) for i in range(30)))
		assert await ws.size() == 30

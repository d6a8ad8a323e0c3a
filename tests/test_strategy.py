"""Tests for the strategy network."""

from mars_orchestrator.strategy import StrategyNetwork


class TestStrategyNetwork:
	def test_register_and_get(self):
		network = StrategyNetwork()
		strategy_id = network.register("agent-0", "check units", provenance="solution abc")
		strategy = network.get(strategy_id)
		assert strategy.producer_id == "agent-0"
		assert strategy.description == "check units"
		assert strategy.provenance == "solution abc"
		assert network.get("strategy-missing") is None

	def test_ids_unique(self):
		network = StrategyNetwork()
		ids = {network.register("agent-0", "same", provenance="x") for _ in range(5)}
		assert len(ids) == 5
		assert len(network) == 5

	def test_for_producer(self):
		network = StrategyNetwork()
		network.register("agent-0", "a", provenance="x")
		network.register("agent-1", "b", provenance="x")
		network.register("agent-0", "c", provenance="x")
		assert [s.description for s in network.for_producer("agent-0")] == ["a", "c"]
		assert [s.description for s in network.all()] == ["a", "b", "c"]


class TestSharedInsights:
	"""Insights an agent receives from its peers."""

	def test_excludes_own_strategies(self):
		network = StrategyNetwork()
		network.register("agent-0", "mine", provenance="x")
		network.register("agent-1", "theirs", provenance="x")
		assert network.shared_insights(exclude_producer="agent-0") == ["theirs"]

	def test_deduplicated_and_limited(self):
		network = StrategyNetwork()
		network.register("agent-1", "draw a diagram", provenance="x")
		network.register("agent-2", "draw a diagram", provenance="x")
		for i in range(10):
			network.register("agent-2", f"idea {i}", provenance="x")
		insights = network.shared_insights(limit=3)
		assert insights == ["draw a diagram", "idea 0", "idea 1"]

	def test_empty(self):
		assert StrategyNetwork().shared_insights() == []

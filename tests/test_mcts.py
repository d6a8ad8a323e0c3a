"""Tests for the dialogue tree search."""

import math

import pytest

from mars_orchestrator import prompts
from mars_orchestrator.mcts import MCTS, DialogueState, MCTSConfig, Message
from mars_orchestrator.providers.base import estimate_tokens

from .helpers import DEFAULT_REPLIES, StubProvider


def make_state(history_len: int = 0, query: str = "What is 6 * 7?") -> DialogueState:
	history = [
		Message("user" if i % 2 == 0 else "assistant", f"turn {i}")
		for i in range(history_len)
	]
	return DialogueState("You are helpful.", history, query)


class TestDialogueState:
	def test_with_turn_appends_messages(self):
		state = make_state()
		next_state = state.with_turn("42", "Why?")
		assert next_state.conversation_history == (
			Message("user", "What is 6 * 7?"),
			Message("assistant", "42"),
		)
		assert next_state.current_query == "Why?"
		assert state.conversation_history == ()

	def test_history_is_tuple(self):
		assert isinstance(make_state(3).conversation_history, tuple)

	def test_transcript(self):
		text = make_state().with_turn("42", "Why?").transcript()
		assert text == "user: What is 6 * 7?\nassistant: 42\nuser: Why?"


class TestTerminal:
	"""Terminal states stop search and simulation."""

	def setup_method(self):
		self.mcts = MCTS(MCTSConfig(), StubProvider())

	def test_long_history_is_terminal(self):
		"""More than ten messages is terminal regardless of the query."""
		assert self.mcts.is_terminal(make_state(11, "Tell me more")) is True

	def test_ten_messages_not_terminal(self):
		assert self.mcts.is_terminal(make_state(10)) is False

	def test_closing_signal_is_terminal(self):
		assert self.mcts.is_terminal(make_state(0, "Thanks, goodbye!")) is True
		assert self.mcts.is_terminal(make_state(0, "Farewell")) is True

	def test_ordinary_state_not_terminal(self):
		assert self.mcts.is_terminal(make_state(2)) is False


class TestSelection:
	def test_unvisited_children_picked_first_in_order(self):
		"""Among unvisited children, selection is always the first one."""
		mcts = MCTS(MCTSConfig(), StubProvider())
		root = mcts._add_node(make_state(), None)
		children = [mcts._add_node(make_state(), root, action=str(i)) for i in range(3)]
		mcts.nodes[root].visits = 1
		for _ in range(5):
			assert mcts.select(root) == children[0]

	def test_unvisited_beats_visited(self):
		mcts = MCTS(MCTSConfig(), StubProvider())
		root = mcts._add_node(make_state(), None)
		first = mcts._add_node(make_state(), root)
		second = mcts._add_node(make_state(), root)
		mcts.backpropagate(first, 1.0)
		assert mcts.select(root) == second

	def test_ucb_formula(self):
		mcts = MCTS(MCTSConfig(exploration_weight=0.2), StubProvider())
		root = mcts._add_node(make_state(), None)
		child = mcts._add_node(make_state(), root)
		mcts.nodes[root].visits = 4
		mcts.nodes[child].visits = 2
		mcts.nodes[child].value = 1.0
		expected = 0.5 + 0.2 * math.sqrt(math.log(4) / 2)
		assert mcts.ucb(child) == pytest.approx(expected)
		assert mcts.ucb(mcts._add_node(make_state(), root)) == math.inf

	def test_backpropagate_reaches_root(self):
		mcts = MCTS(MCTSConfig(), StubProvider())
		root = mcts._add_node(make_state(), None)
		child = mcts._add_node(make_state(), root)
		grandchild = mcts._add_node(make_state(), child)
		mcts.backpropagate(grandchild, 0.5)
		mcts.backpropagate(child, 1.0)
		assert mcts.nodes[root].visits == 2
		assert mcts.nodes[root].value == pytest.approx(1.5)
		assert mcts.nodes[grandchild].visits == 1


class TestEvaluation:
	@pytest.mark.asyncio
	async def test_score_parsed_and_clamped(self):
		mcts = MCTS(MCTSConfig(), StubProvider(replies={"mcts_eval": "Score: 1.7"}))
		assert await mcts.evaluate_state(make_state()) == 1.0

	@pytest.mark.asyncio
	async def test_unparsable_defaults(self):
		mcts = MCTS(MCTSConfig(), StubProvider(replies={"mcts_eval": "pretty good"}))
		assert await mcts.evaluate_state(make_state()) == 0.5

	@pytest.mark.asyncio
	async def test_evaluation_temperature(self):
		provider = StubProvider()
		await MCTS(MCTSConfig(evaluation_temperature=0.1), provider).evaluate_state(make_state())
		assert provider.calls_of("mcts_eval")[0].temperature == 0.1

	@pytest.mark.asyncio
	async def test_tokens_include_prompt(self):
		state = make_state(4)
		mcts = MCTS(MCTSConfig(), StubProvider())
		await mcts.evaluate_state(state)
		prompt = f"{state.transcript()}\n\n{prompts.MCTS_EVALUATION_PROMPT}"
		assert mcts.tokens_used == estimate_tokens(state.system_prompt, prompt, DEFAULT_REPLIES["mcts_eval"])


class TestSearch:
	"""Full search with a stub backend."""

	@pytest.mark.asyncio
	async def test_returns_action_and_counts_tokens(self):
		provider = StubProvider()
		mcts = MCTS(MCTSConfig(num_simulations=2, num_actions=3, simulation_depth=1), provider)
		action = await mcts.search(make_state())

		assert action == DEFAULT_REPLIES["generate"]
		assert mcts.tokens_used > 0
		root = mcts.nodes[0]
		assert root.visits == 2
		assert len(root.children) == 3

	@pytest.mark.asyncio
	async def test_most_visited_child_wins(self):
		replies = iter(["first", "second", "third"] + ["rollout"] * 50)
		provider = StubProvider(replies={"generate": lambda prompt, temperature: next(replies)})
		mcts = MCTS(MCTSConfig(num_simulations=4, num_actions=3, simulation_depth=0), provider)
		action = await mcts.search(make_state())
		# Four simulations over three children: the first child is visited twice
		assert action == "first"

	@pytest.mark.asyncio
	async def test_multi_completion_expansion(self):
		provider = StubProvider(supports_n=True)
		mcts = MCTS(MCTSConfig(num_simulations=1, num_actions=3), provider)
		await mcts.search(make_state())
		assert provider.n_requests == [3]

	@pytest.mark.asyncio
	async def test_multi_completion_counts_prompt_once(self):
		state = make_state(2)
		mcts = MCTS(MCTSConfig(num_actions=3), StubProvider(supports_n=True))
		actions = await mcts.generate_actions(state, 3)
		assert len(actions) == 3
		reply = DEFAULT_REPLIES["generate"]
		assert mcts.tokens_used == estimate_tokens(state.system_prompt, state.transcript(), reply, reply, reply)

	@pytest.mark.asyncio
	async def test_terminal_root_yields_nothing(self):
		mcts = MCTS(MCTSConfig(), StubProvider())
		assert await mcts.search(make_state(0, "goodbye")) is None

	@pytest.mark.asyncio
	async def test_tree_rebuilt_per_search(self):
		mcts = MCTS(MCTSConfig(num_simulations=1), StubProvider())
		await mcts.search(make_state())
		first_size = len(mcts.nodes)
		await mcts.search(make_state())
		assert len(mcts.nodes) == first_size

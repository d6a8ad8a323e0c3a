"""
Monte-Carlo tree search over dialogue states.

Each simulation runs the four classic steps from the root:

1. Selection - descend by upper confidence bound; unvisited children first.
2. Expansion - ask the backend for candidate next utterances at a leaf.
3. Simulation - roll the dialogue forward a few turns.
4. Backpropagation - score the reached state and add it to every ancestor.

Nodes live in a flat arena; parent and children are integer indices into it.
The tree is rebuilt for every call to search().
"""

import logging
import math
import re
from dataclasses import dataclass, field
from typing import Optional

from . import prompts
from .errors import MultiCompletionUnsupportedError
from .providers.base import LLMProvider, estimate_tokens, with_timeout

logger = logging.getLogger(__name__)

CLOSING_SIGNALS = ("goodbye", "farewell")
DEFAULT_EVALUATION_SCORE = 0.5
_NUMBER_RE = re.compile(r"-?[0-9]*\.?[0-9]+")


@dataclass(frozen=True)
class Message:
	"""One turn of a conversation."""
	role: str
	content: str

	def to_dict(self) -> dict[str, str]:
		return {"role": self.role, "content": self.content}


@dataclass(frozen=True)
class DialogueState:
	"""Immutable conversation snapshot: system prompt, history, pending user query."""
	system_prompt: str
	conversation_history: tuple[Message, ...]
	current_query: str

	def __post_init__(self):
		# Accept any sequence but store a tuple so the state stays immutable
		object.__setattr__(self, "conversation_history", tuple(self.conversation_history))

	def with_turn(self, action: str, next_query: str) -> "DialogueState":
		"""New state with the query and the assistant's action appended to history."""
		history = self.conversation_history + (
			Message("user", self.current_query),
			Message("assistant", action),
		)
		return DialogueState(self.system_prompt, history, next_query)

	def transcript(self) -> str:
		"""Conversation rendered as plain text for single-prompt providers."""
		lines = [f"{m.role}: {m.content}" for m in self.conversation_history]
		if self.current_query:
			lines.append(f"user: {self.current_query}")
		return "\n".join(lines)


@dataclass
class MCTSNode:
	"""Search tree node. Parent and children are arena indices."""
	state: DialogueState
	parent: Optional[int] = None
	children: list[int] = field(default_factory=list)
	visits: int = 0
	value: float = 0.0
	action: Optional[str] = None


@dataclass
class MCTSConfig:
	"""Tree search parameters."""
	simulation_depth: int = 1
	exploration_weight: float = 0.2
	num_simulations: int = 2
	num_actions: int = 3
	generation_temperature: float = 1.0
	evaluation_temperature: float = 0.1
	max_history_length: int = 10


class MCTS:
	"""Chooses the next assistant action for a dialogue by tree search."""

	def __init__(self, config: MCTSConfig, provider: LLMProvider, timeout: Optional[float] = None):
		self.config = config
		self.provider = provider
		self.timeout = timeout
		self.nodes: list[MCTSNode] = []
		self.tokens_used = 0

	def _add_node(self, state: DialogueState, parent: Optional[int], action: Optional[str] = None) -> int:
		self.nodes.append(MCTSNode(state=state, parent=parent, action=action))
		index = len(self.nodes) - 1
		if parent is not None:
			self.nodes[parent].children.append(index)
		return index

	def is_terminal(self, state: DialogueState) -> bool:
		"""History too long, or the user is closing the conversation."""
		if len(state.conversation_history) > self.config.max_history_length:
			return True
		query = state.current_query.lower()
		return any(signal in query for signal in CLOSING_SIGNALS)

	def ucb(self, index: int) -> float:
		"""Upper confidence bound of a node relative to its parent."""
		node = self.nodes[index]
		if node.visits == 0:
			return math.inf
		parent_visits = self.nodes[node.parent].visits if node.parent is not None else node.visits
		exploit = node.value / node.visits
		explore = self.config.exploration_weight * math.sqrt(math.log(max(parent_visits, 1)) / node.visits)
		return exploit + explore

	def select(self, index: int = 0) -> int:
		"""Descend from index to a leaf, taking the best UCB child at each level."""
		while self.nodes[index].children:
			best = None
			best_score = -math.inf
			# Strict '>' keeps the first child on ties, including among unvisited ones
			for child in self.nodes[index].children:
				score = self.ucb(child)
				if best is None or score > best_score:
					best, best_score = child, score
			index = best
		return index

	async def _call(self, prompt: str, system_prompt: str, temperature: float) -> str:
		text = await with_timeout(
			self.provider.complete(prompt, system_prompt, temperature=temperature),
			self.timeout,
			what="tree search call",
		)
		self.tokens_used += estimate_tokens(system_prompt, prompt, text)
		return text

	async def generate_actions(self, state: DialogueState, count: int) -> list[str]:
		"""Candidate assistant replies to the state's pending query."""
		prompt = state.transcript()
		temperature = self.config.generation_temperature
		if count > 1 and self.provider.supports_multiple_completions:
			try:
				texts = await with_timeout(
					self.provider.complete_n(prompt, state.system_prompt, count, temperature=temperature),
					self.timeout,
					what="tree search expansion",
				)
				self.tokens_used += estimate_tokens(state.system_prompt, prompt, *texts)
				return [t.strip() for t in texts[:count]]
			except MultiCompletionUnsupportedError:
				logger.info("Provider declined multi-completion, generating actions one by one")
		actions = []
		for _ in range(count):
			actions.append((await self._call(prompt, state.system_prompt, temperature)).strip())
		return actions

	async def apply_action(self, state: DialogueState, action: str) -> DialogueState:
		"""Append the action and a simulated next user query."""
		provisional = state.with_turn(action, "")
		prompt = f"{provisional.transcript()}\n\n{prompts.MCTS_NEXT_QUERY_PROMPT}"
		next_query = await self._call(prompt, state.system_prompt, self.config.generation_temperature)
		return state.with_turn(action, next_query.strip())

	async def evaluate_state(self, state: DialogueState) -> float:
		"""Score a state in [0, 1]; unparsable replies score 0.5."""
		prompt = f"{state.transcript()}\n\n{prompts.MCTS_EVALUATION_PROMPT}"
		text = await self._call(prompt, state.system_prompt, self.config.evaluation_temperature)
		match = _NUMBER_RE.search(text)
		if not match:
			logger.warning(f"Could not parse evaluation score from {text[:40]!r}, using {DEFAULT_EVALUATION_SCORE}")
			return DEFAULT_EVALUATION_SCORE
		return min(1.0, max(0.0, float(match.group(0))))

	async def expand(self, index: int) -> int:
		"""Add up to num_actions children to a leaf; returns the first new child."""
		state = self.nodes[index].state
		actions = await self.generate_actions(state, self.config.num_actions)
		first_child = None
		for action in actions:
			new_state = await self.apply_action(state, action)
			child = self._add_node(new_state, index, action)
			if first_child is None:
				first_child = child
		logger.debug(f"Expanded node {index} with {len(actions)} actions")
		return first_child if first_child is not None else index

	async def simulate(self, index: int) -> float:
		"""Roll forward up to simulation_depth turns, then evaluate."""
		state = self.nodes[index].state
		for depth in range(self.config.simulation_depth):
			if self.is_terminal(state):
				logger.debug(f"Terminal state reached at depth {depth}")
				break
			action = (await self.generate_actions(state, 1))[0]
			state = await self.apply_action(state, action)
		return await self.evaluate_state(state)

	def backpropagate(self, index: Optional[int], reward: float) -> None:
		while index is not None:
			node = self.nodes[index]
			node.visits += 1
			node.value += reward
			index = node.parent

	async def search(self, initial_state: DialogueState) -> Optional[str]:
		"""
		Run num_simulations simulations and return the chosen next action.

		Returns the action of the most visited root child, or None if the
		root is terminal and nothing could be expanded.
		"""
		self.nodes = []
		root = self._add_node(initial_state, None)

		for i in range(self.config.num_simulations):
			leaf = self.select(root)
			if not self.is_terminal(self.nodes[leaf].state):
				leaf = await self.expand(leaf)
			reward = await self.simulate(leaf)
			self.backpropagate(leaf, reward)
			logger.debug(f"Simulation {i + 1}/{self.config.num_simulations}: reward {reward:.2f}")

		children = self.nodes[root].children
		if not children:
			return None
		best = children[0]
		for child in children[1:]:
			if self.nodes[child].visits > self.nodes[best].visits:
				best = child
		logger.info(f"Search chose child {best} after {self.config.num_simulations} simulations ({self.tokens_used} tokens)")
		return self.nodes[best].action

"""Shared stub providers and builders for mars-orchestrator tests."""

import asyncio
import itertools
from dataclasses import dataclass
from typing import Callable, Iterable, Optional, Union

from mars_orchestrator import prompts
from mars_orchestrator.errors import ProviderError
from mars_orchestrator.models import GenerationPhase, Solution
from mars_orchestrator.providers.base import LLMProvider

Reply = Union[str, Callable[[str, Optional[float]], str]]

CORRECT = "VERDICT: CORRECT\nSCORE: 0.9\nThe reasoning holds."
INCORRECT = "VERDICT: INCORRECT\nSCORE: 0.2\nThe arithmetic is wrong."

DEFAULT_REPLIES: dict[str, Reply] = {
	"generate": "<think>Add the numbers.</think>\nFinal Answer: 42",
	"verify": CORRECT,
	"extract": "- check units\n- work backwards",
	"improve": "<think>Fixed the arithmetic.</think>\nFinal Answer: 42",
	"aggregate": "<think>Combined the best ideas.</think>\nFinal Answer: 42",
	"mcts_next": "Can you explain that further?",
	"mcts_eval": "0.8",
}


def classify(prompt: str, system_prompt: Optional[str]) -> str:
	"""Which kind of request a prompt is."""
	if system_prompt == prompts.VERIFICATION_SYSTEM_PROMPT:
		return "verify"
	if prompt.startswith("List the key reasoning strategies"):
		return "extract"
	if "did not pass verification" in prompt:
		return "improve"
	if "Refine this solution" in prompt or "Combine the strongest ideas" in prompt:
		return "aggregate"
	if prompts.MCTS_EVALUATION_PROMPT in prompt:
		return "mcts_eval"
	if prompts.MCTS_NEXT_QUERY_PROMPT in prompt:
		return "mcts_next"
	return "generate"


@dataclass
class Call:
	kind: str
	prompt: str
	system_prompt: Optional[str]
	temperature: Optional[float]
	max_tokens: Optional[int]


class StubProvider(LLMProvider):
	"""
	Offline provider that answers by request kind and records every call.

	Replies can be fixed strings or callables of (prompt, temperature). Kinds
	listed in ``fail`` raise ProviderError.
	"""

	def __init__(
		self,
		replies: Optional[dict[str, Reply]] = None,
		fail: Iterable[str] = (),
		supports_n: bool = False,
		delay: float = 0.0,
		name: str = "stub",
		model: str = "stub-model",
	):
		self.replies = {**DEFAULT_REPLIES, **(replies or {})}
		self.fail = set(fail)
		self.delay = delay
		self._supports_n = supports_n
		self._name = name
		self._model = model
		self.calls: list[Call] = []
		self.n_requests: list[int] = []

	@property
	def name(self) -> str:
		return self._name

	@property
	def model(self) -> str:
		return self._model

	@property
	def supports_multiple_completions(self) -> bool:
		return self._supports_n

	def _reply(self, kind: str, prompt: str, temperature: Optional[float]) -> str:
		if kind in self.fail:
			raise ProviderError(f"stub failure for {kind}")
		reply = self.replies[kind]
		return reply(prompt, temperature) if callable(reply) else reply

	async def complete(self, prompt, system_prompt=None, *, temperature=None, max_tokens=None):
		kind = classify(prompt, system_prompt)
		self.calls.append(Call(kind, prompt, system_prompt, temperature, max_tokens))
		if self.delay:
			await asyncio.sleep(self.delay)
		return self._reply(kind, prompt, temperature)

	async def complete_n(self, prompt, system_prompt=None, n=1, *, temperature=None, max_tokens=None):
		if not self._supports_n:
			return await super().complete_n(prompt, system_prompt, n, temperature=temperature, max_tokens=max_tokens)
		kind = classify(prompt, system_prompt)
		self.calls.append(Call(kind, prompt, system_prompt, temperature, max_tokens))
		self.n_requests.append(n)
		return [self._reply(kind, prompt, temperature) for _ in range(n)]

	def calls_of(self, kind: str) -> list[Call]:
		return [c for c in self.calls if c.kind == kind]


def answers_by_temperature(answers: dict[float, str]) -> Callable[[str, Optional[float]], str]:
	"""Generation reply whose final answer depends on the agent temperature."""
	def reply(prompt: str, temperature: Optional[float]) -> str:
		return f"<think>Reasoning at {temperature}.</think>\nFinal Answer: {answers[temperature]}"
	return reply


def numbered_replies(template: str) -> Callable[[str, Optional[float]], str]:
	"""Reply that differs on every call; template gets the call number as {n}."""
	counter = itertools.count(1)

	def reply(prompt: str, temperature: Optional[float]) -> str:
		return template.format(n=next(counter))
	return reply


def split_verdicts() -> Callable[[str, Optional[float]], str]:
	"""
	Verifier that passes the first check of each distinct prompt and fails the second.

	Every candidate ends a two-pass verification with one pass and one failure,
	whatever order the passes run in.
	"""
	seen: dict[str, int] = {}

	def reply(prompt: str, temperature: Optional[float]) -> str:
		seen[prompt] = seen.get(prompt, 0) + 1
		return CORRECT if seen[prompt] % 2 == 1 else INCORRECT
	return reply


def make_solution(
	answer: str = "42",
	score: Optional[float] = None,
	producer_id: str = "agent-0",
	token_count: int = 10,
	reasoning: Optional[str] = None,
	phase: GenerationPhase = GenerationPhase.INITIAL,
	verified: bool = False,
	failures: int = 0,
) -> Solution:
	"""Build a Solution with the given verification state."""
	solution = Solution.create(
		producer_id=producer_id,
		reasoning=reasoning or f"Reasoning for {answer}",
		answer=answer,
		temperature=0.5,
		token_count=token_count,
		phase=phase,
	)
	solution.verification_score = score
	solution.is_verified = verified
	solution.verification_failures = failures
	return solution

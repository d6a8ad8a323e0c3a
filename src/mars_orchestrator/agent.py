"""
Agents - logical generators that explore, verify and refine solutions.

An agent is a temperature plus a provider. Every backend call it makes is
bounded by the run timeout and its token usage is tracked.
"""

import logging
import re
from typing import Optional

from . import prompts
from .errors import ResponseParseError
from .models import GenerationPhase, Solution, VerificationResult, new_id
from .providers.base import LLMProvider, estimate_tokens, with_timeout

logger = logging.getLogger(__name__)

VERIFICATION_TEMPERATURE = 0.3
EXTRACTION_TEMPERATURE = 0.3

_THINK_RE = re.compile(r"<think>(.*?)</think>", re.DOTALL | re.IGNORECASE)
_FINAL_ANSWER_RE = re.compile(r"final\s+answer\s*[:：]\s*(.+)", re.IGNORECASE)
_BOXED_RE = re.compile(r"\\boxed\{([^{}]*)\}")
_VERDICT_RE = re.compile(r"verdict\s*[:=]\s*(incorrect|correct)", re.IGNORECASE)
_SCORE_RE = re.compile(r"score\s*[:=]\s*([0-9]*\.?[0-9]+)", re.IGNORECASE)
_LIST_ITEM_RE = re.compile(r"^\s*(?:[-*•]|\d+[.)])\s+(.*)$")


def parse_response(text: str) -> tuple[str, str]:
	"""
	Split a model response into (reasoning, answer).

	Looks for <think> tags, a 'Final Answer:' line, a \\boxed{} answer, or a
	'---' separator, in that order. Without any marker the whole text is
	both reasoning and answer.
	"""
	text = text.strip()
	think = _THINK_RE.search(text)
	if think:
		reasoning = think.group(1).strip()
		rest = text[think.end():].strip()
	else:
		reasoning = None
		rest = text

	finals = _FINAL_ANSWER_RE.findall(rest)
	if finals:
		answer = finals[-1].strip()
		if reasoning is None:
			reasoning = rest[:rest.lower().rfind("final answer")].strip() or rest
		return reasoning, answer

	boxed = _BOXED_RE.findall(rest)
	if boxed:
		return (reasoning if reasoning is not None else rest), boxed[-1].strip()

	if reasoning is not None:
		return reasoning, rest or reasoning

	parts = [p.strip() for p in text.split("---")]
	if len(parts) >= 2 and parts[-1]:
		return parts[0], parts[-1]

	return text, text


def parse_verification(text: str) -> tuple[bool, float]:
	"""Interpret a verifier reply as (is_correct, score)."""
	verdict = _VERDICT_RE.search(text)
	if verdict:
		is_correct = verdict.group(1).lower() == "correct"
	else:
		lowered = text.lower()
		if "incorrect" in lowered:
			is_correct = False
		elif "correct" in lowered:
			is_correct = True
		else:
			raise ResponseParseError(f"No verdict in verification reply: {text[:80]!r}")

	score_match = _SCORE_RE.search(text)
	if score_match:
		score = min(1.0, max(0.0, float(score_match.group(1))))
	else:
		score = 1.0 if is_correct else 0.0
	return is_correct, score


def parse_strategies(text: str) -> list[str]:
	"""Extract one strategy per list item; falls back to the whole reply."""
	strategies = []
	for line in text.splitlines():
		match = _LIST_ITEM_RE.match(line)
		if match and match.group(1).strip():
			strategies.append(match.group(1).strip())
	if not strategies and text.strip():
		strategies.append(text.strip())
	return strategies


class Agent:
	"""A single reasoning agent."""

	def __init__(
		self,
		temperature: float,
		provider: LLMProvider,
		timeout: Optional[float] = None,
		max_tokens: Optional[int] = None,
		agent_id: Optional[str] = None,
	):
		self.id = agent_id or new_id("agent")
		self.temperature = max(0.0, temperature)
		self.provider = provider
		self.timeout = timeout
		self.max_tokens = max_tokens
		self.tokens_used = 0

	async def _ask(self, prompt: str, system_prompt: Optional[str], temperature: float) -> tuple[str, int]:
		text = await with_timeout(
			self.provider.complete(
				prompt,
				system_prompt,
				temperature=temperature,
				max_tokens=self.max_tokens,
			),
			self.timeout,
			what=f"{self.id} via {self.provider.name}",
		)
		tokens = estimate_tokens(system_prompt or "", prompt, text)
		self.tokens_used += tokens
		return text, tokens

	async def generate_solution(self, query: str, use_thinking_tags: bool = True) -> Solution:
		"""Generate an initial solution for the query."""
		system_prompt = prompts.MARS_SYSTEM_PROMPT_WITH_THINKING if use_thinking_tags else prompts.MARS_SYSTEM_PROMPT
		prompt = f"{prompts.REASONING_PROMPT}\n\n{query}"
		text, tokens = await self._ask(prompt, system_prompt, self.temperature)
		reasoning, answer = parse_response(text)
		logger.debug(f"{self.id} produced answer {answer[:60]!r}")
		return Solution.create(
			producer_id=self.id,
			reasoning=reasoning,
			answer=answer,
			temperature=self.temperature,
			token_count=tokens,
		)

	async def verify_solution(self, solution: Solution, query: str = "") -> VerificationResult:
		"""Judge another agent's solution."""
		prompt = prompts.VERIFICATION_PROMPT.format(
			query=query,
			reasoning=solution.reasoning,
			answer=solution.answer,
		)
		text, _ = await self._ask(prompt, prompts.VERIFICATION_SYSTEM_PROMPT, VERIFICATION_TEMPERATURE)
		is_correct, score = parse_verification(text)
		return VerificationResult(
			solution_id=solution.id,
			verifier_id=self.id,
			is_correct=is_correct,
			score=score,
			feedback=text.strip(),
		)

	async def improve_solution(
		self,
		solution: Solution,
		query: str,
		feedback: str,
		insights: Optional[list[str]] = None,
		use_thinking_tags: bool = True,
	) -> Solution:
		"""Regenerate a solution that failed verification. The result has a fresh id."""
		insight_text = ""
		if insights:
			insight_text = prompts.STRATEGY_INSIGHTS_HEADER + "\n".join(f"- {i}" for i in insights) + "\n"
		prompt = prompts.IMPROVEMENT_PROMPT.format(
			query=query,
			reasoning=solution.reasoning,
			answer=solution.answer,
			feedback=feedback or "No detailed feedback available.",
			insights=insight_text,
		)
		system_prompt = prompts.MARS_SYSTEM_PROMPT_WITH_THINKING if use_thinking_tags else prompts.MARS_SYSTEM_PROMPT
		text, tokens = await self._ask(prompt, system_prompt, self.temperature)
		reasoning, answer = parse_response(text)
		return solution.derive(
			reasoning=reasoning,
			answer=answer,
			temperature=self.temperature,
			token_count=tokens,
			phase=GenerationPhase.IMPROVED,
		)

	async def extract_strategies(self, solution: Solution) -> list[str]:
		"""Identify reusable strategies in a solution."""
		prompt = prompts.STRATEGY_EXTRACTION_PROMPT.format(reasoning=solution.reasoning)
		text, _ = await self._ask(prompt, None, EXTRACTION_TEMPERATURE)
		return parse_strategies(text)

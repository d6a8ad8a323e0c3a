"""
Aggregation strategies.

Three interchangeable algorithms turn the current state of a run into new
candidates:

- RSA: recursive select-and-regenerate refinement over a fixed-size population.
- MoA: mixture of agents, several parallel completions of the query.
- MCTS: tree search over the dialogue to choose the best next reply.

Any failure here is an AggregationError or propagates unchanged; the
coordinator treats both as fatal.
"""

import asyncio
import logging
from typing import Optional

from . import prompts
from .agent import parse_response
from .errors import AggregationError, MultiCompletionUnsupportedError
from .mcts import MCTS, DialogueState, MCTSConfig
from .models import GenerationPhase, Solution
from .providers.base import LLMProvider, estimate_tokens, with_timeout

logger = logging.getLogger(__name__)

RSA_TEMPERATURE = 0.7
MOA_TEMPERATURE = 1.0


def rank_for_aggregation(solutions: list[Solution]) -> list[Solution]:
	"""Scored solutions first by score, then everything by recency (newest first)."""
	return sorted(
		solutions,
		key=lambda s: (
			s.verification_score is not None,
			s.verification_score or 0.0,
			s.created_at,
		),
		reverse=True,
	)


class Aggregator:
	"""Runs the aggregation algorithms against a provider."""

	def __init__(
		self,
		provider: LLMProvider,
		timeout: Optional[float] = None,
		max_tokens: Optional[int] = None,
	):
		self.provider = provider
		self.timeout = timeout
		self.max_tokens = max_tokens
		self.tokens_used = 0

	async def _complete(self, prompt: str, system_prompt: Optional[str], temperature: float) -> str:
		text = await with_timeout(
			self.provider.complete(prompt, system_prompt, temperature=temperature, max_tokens=self.max_tokens),
			self.timeout,
			what="aggregation call",
		)
		self.tokens_used += estimate_tokens(system_prompt or "", prompt, text)
		return text

	async def aggregate_rsa(
		self,
		solutions: list[Solution],
		query: str,
		population_size: int,
		selection_size: int,
		loops: int,
	) -> list[Solution]:
		"""
		Recursive self-aggregation.

		Each loop keeps the top S of the population as seeds and generates
		P - S new candidates from them, so the population never exceeds P.
		Returns only the newly generated candidates that survive the final loop.
		An empty population has nothing to refine and yields nothing.

		Args:
			solutions: Current candidates (already in the workspace)
			query: The original query
			population_size: Target population size P
			selection_size: Seeds kept per loop S (clamped to P and to the population)
			loops: Number of refinement loops L
		"""
		if not solutions:
			logger.warning("RSA aggregation skipped: no candidates to refine")
			return []

		population_size = max(1, population_size)
		selection_size = min(max(1, selection_size), population_size)
		original_ids = {s.id for s in solutions}
		population = list(solutions)

		for loop in range(max(0, loops)):
			ranked = rank_for_aggregation(population)
			seeds = ranked[:min(selection_size, len(ranked))]
			num_new = population_size - len(seeds)
			logger.info(f"RSA loop {loop + 1}/{loops}: {len(seeds)} seeds, generating {num_new}")
			if num_new <= 0:
				population = seeds
				continue

			new_solutions = await asyncio.gather(*(
				self._refine(seeds, query, f"rsa-loop-{loop + 1}") for _ in range(num_new)
			))
			population = seeds + list(new_solutions)

		return [s for s in population if s.id not in original_ids]

	async def _refine(self, seeds: list[Solution], query: str, producer_id: str) -> Solution:
		if len(seeds) == 1:
			prompt = prompts.SINGLE_REFINEMENT_PROMPT.format(query=query, candidate=seeds[0].reasoning)
		else:
			candidates = "\n\n".join(
				f"Solution {i + 1}:\n{s.reasoning}\nAnswer: {s.answer}" for i, s in enumerate(seeds)
			)
			prompt = prompts.MULTI_AGGREGATION_PROMPT.format(query=query, candidates=candidates)
		text = await self._complete(prompt, prompts.MARS_SYSTEM_PROMPT, RSA_TEMPERATURE)
		reasoning, answer = parse_response(text)
		return Solution.create(
			producer_id=producer_id,
			reasoning=reasoning,
			answer=answer,
			temperature=RSA_TEMPERATURE,
			token_count=estimate_tokens(text),
			phase=GenerationPhase.AGGREGATED,
		)

	async def aggregate_moa(
		self,
		query: str,
		system_prompt: str,
		num_completions: int,
		fallback_enabled: bool,
	) -> list[Solution]:
		"""
		Mixture of agents: num_completions parallel completions of the query.

		Uses a single multi-completion request when the provider supports it.
		Otherwise falls back to independent requests, or fails when the
		fallback is disabled.
		"""
		num_completions = max(1, num_completions)
		try:
			if not self.provider.supports_multiple_completions:
				raise MultiCompletionUnsupportedError(f"{self.provider.name} does not support multiple completions")
			texts = await with_timeout(
				self.provider.complete_n(
					query,
					system_prompt,
					num_completions,
					temperature=MOA_TEMPERATURE,
					max_tokens=self.max_tokens,
				),
				self.timeout,
				what="mixture completion",
			)
			# One request: the prompt is counted once
			self.tokens_used += estimate_tokens(system_prompt, query, *texts)
		except MultiCompletionUnsupportedError as e:
			if not fallback_enabled:
				raise AggregationError(f"Multi-completion unsupported and fallback disabled: {e}") from e
			logger.info(f"Falling back to {num_completions} single completions")
			texts = await asyncio.gather(*(
				self._complete(query, system_prompt, MOA_TEMPERATURE) for _ in range(num_completions)
			))

		solutions = []
		for text in texts:
			reasoning, answer = parse_response(text)
			solutions.append(Solution.create(
				producer_id="moa",
				reasoning=reasoning,
				answer=answer,
				temperature=MOA_TEMPERATURE,
				token_count=estimate_tokens(text),
				phase=GenerationPhase.AGGREGATED,
			))
		logger.info(f"MoA produced {len(solutions)} candidates")
		return solutions

	async def aggregate_mcts(
		self,
		query: str,
		system_prompt: str,
		config: MCTSConfig,
	) -> list[Solution]:
		"""Tree search for the best reply to the query; returns one candidate."""
		search = MCTS(config, self.provider, timeout=self.timeout)
		action = await search.search(DialogueState(system_prompt, (), query))
		self.tokens_used += search.tokens_used
		if action is None:
			raise AggregationError("Tree search produced no action")

		reasoning, answer = parse_response(action)
		return [Solution.create(
			producer_id="mcts",
			reasoning=reasoning,
			answer=answer,
			temperature=config.generation_temperature,
			token_count=search.tokens_used,
			phase=GenerationPhase.AGGREGATED,
		)]

"""
MARS coordinator - the phase state machine of a run.

Phases run strictly in order, each one a fan-out over agents followed by a
fan-in barrier:

	Exploration -> [Aggregation] -> [StrategyNetwork] -> Verification
	-> Improvement (up to max_iterations) -> Synthesis

Backend failures inside a phase are reported as Error events and the phase
continues with what succeeded. Aggregation failures and an empty candidate
set at synthesis are fatal: the run emits an Error event, closes the event
channel and raises.
"""

import logging
from typing import Optional

from . import prompts
from .agent import Agent
from .aggregator import Aggregator
from .config import MarsConfig
from .errors import AggregationError, NoSolutionsError
from .events import (
	AggregationStarted,
	AnswerSynthesized,
	ErrorEvent,
	EventChannel,
	ExplorationStarted,
	ImprovementStarted,
	SolutionGenerated,
	SolutionImproved,
	SolutionsAggregated,
	SolutionVerified,
	StrategyExtracted,
	StrategyNetworkStarted,
	SynthesisStarted,
	VerificationStarted,
)
from .fanout import FanOut
from .models import AggregationMethod, MarsOutput, SelectionMethod, Solution
from .providers.base import LLMProvider
from .providers.router import ProviderRouter
from .strategy import StrategyNetwork
from .verifier import (
	apply_verification,
	find_best_verified,
	select_by_majority_voting,
	select_for_improvement,
	synthesize_final_answer,
)
from .workspace import Workspace

logger = logging.getLogger(__name__)

VERIFICATION_PASSES = 2
MAX_CONCURRENT_CALLS = 8


class MarsCoordinator:
	"""
	Runs one query through all MARS phases.

	The event channel belongs to the caller: pass one in, or read
	``coordinator.events`` before awaiting run(). It is closed when the run
	finishes, successfully or not.
	"""

	def __init__(
		self,
		config: Optional[MarsConfig],
		provider: LLMProvider,
		router: Optional[ProviderRouter] = None,
		events: Optional[EventChannel] = None,
	):
		# Private copy; the run never observes later changes by the caller
		self.config = (config or MarsConfig()).model_copy(deep=True)
		self.provider = provider
		if router is None and self.config.enable_multi_provider and self.config.provider_routing is not None:
			router = ProviderRouter(self.config.provider_routing)
		self.router = router
		self.events = events if events is not None else EventChannel()
		self.workspace = Workspace()
		self.strategy_network = StrategyNetwork()
		self.agents: list[Agent] = []
		self.aggregator: Optional[Aggregator] = None
		self._fanout: FanOut = FanOut(max_concurrency=MAX_CONCURRENT_CALLS)
		self._feedback: dict[str, list[str]] = {}
		self._query = ""

	@property
	def total_tokens(self) -> int:
		"""Tokens of every backend call made so far in the run."""
		total = sum(agent.tokens_used for agent in self.agents)
		if self.aggregator is not None:
			total += self.aggregator.tokens_used
		return total

	def _provider_for(self, agent_index: int) -> LLMProvider:
		if self.router is not None:
			return self.router.for_agent(agent_index)
		return self.provider

	def _agent_for(self, solution: Solution, offset: int = 0) -> Agent:
		"""The agent that produced a solution, or a round-robin pick for non-agent producers."""
		for i, agent in enumerate(self.agents):
			if agent.id == solution.producer_id:
				return self.agents[(i + offset) % len(self.agents)]
		return self.agents[offset % len(self.agents)]

	def _report_failure(self, what: str, error: BaseException) -> None:
		message = f"{what}: {error}"
		logger.warning(message)
		self.events.emit(ErrorEvent(message=message))

	async def run(self, query: str, max_tokens: Optional[int] = None) -> MarsOutput:
		"""
		Solve a query.

		Args:
			query: The problem to solve
			max_tokens: Requested completion budget; small budgets switch to
				the lightweight token budget

		Returns:
			MarsOutput with the chosen answer and every candidate

		Raises:
			AggregationError: The enabled aggregation step failed
			NoSolutionsError: No candidate survived to synthesis
		"""
		try:
			return await self._run(query, max_tokens)
		except Exception as e:
			logger.error(f"Run failed: {e}")
			self.events.emit(ErrorEvent(message=str(e)))
			raise
		finally:
			self.events.close()

	async def _run(self, query: str, max_tokens: Optional[int]) -> MarsOutput:
		self._query = query
		lightweight = self.config.should_use_lightweight(max_tokens)
		token_budget = self.config.get_token_budget(lightweight)
		logger.info(
			f"Starting run with {self.config.num_agents} agents "
			f"({'lightweight' if lightweight else 'reasoning'} budget {token_budget})"
		)

		self.agents = [
			Agent(
				temperature=temperature,
				provider=self._provider_for(i),
				timeout=self.config.timeout_seconds,
				max_tokens=token_budget,
				agent_id=f"agent-{i}",
			)
			for i, temperature in enumerate(self.config.agent_temperatures())
		]
		aggregation_provider = self.router.default() if self.router is not None else self.provider
		self.aggregator = Aggregator(aggregation_provider, timeout=self.config.timeout_seconds, max_tokens=token_budget)

		await self._explore()
		if self.config.enable_aggregation:
			await self._aggregate()
		if self.config.enable_strategy_network:
			await self._extract_strategies()

		self.events.emit(VerificationStarted())
		await self._verify(await self.workspace.get_all())

		iterations = await self._improve()
		return await self._synthesize(iterations)

	async def _explore(self) -> None:
		"""Every agent generates one solution; failures are reported and skipped."""
		self.events.emit(ExplorationStarted(agent_count=len(self.agents)))

		async def generate(agent: Agent) -> Solution:
			return await agent.generate_solution(self._query, self.config.use_thinking_tags)

		summary = await self._fanout.run(self.agents, generate)
		for result in summary.results:
			if not result.success:
				self._report_failure(f"Exploration failed for {result.item.id}", result.error)
				continue
			await self.workspace.add(result.result)
			self.events.emit(SolutionGenerated(candidate_id=result.result.id, producer_id=result.result.producer_id))

		logger.info(f"Exploration produced {len(summary.succeeded)}/{len(self.agents)} solutions ({summary.status.value})")

	async def _aggregate(self) -> None:
		"""Run the configured aggregation algorithm. Any failure is fatal."""
		method = self.config.aggregation_method
		self.events.emit(AggregationStarted())
		system_prompt = (
			prompts.MARS_SYSTEM_PROMPT_WITH_THINKING if self.config.use_thinking_tags else prompts.MARS_SYSTEM_PROMPT
		)

		try:
			if method == AggregationMethod.RSA:
				new_solutions = await self.aggregator.aggregate_rsa(
					await self.workspace.get_all(),
					self._query,
					self.config.aggregation_population_size,
					self.config.effective_selection_size,
					self.config.aggregation_loops,
				)
			elif method == AggregationMethod.MIXTURE_OF_AGENTS:
				new_solutions = await self.aggregator.aggregate_moa(
					f"{prompts.REASONING_PROMPT}\n\n{self._query}",
					system_prompt,
					self.config.moa_num_completions,
					self.config.moa_fallback_enabled,
				)
			else:
				new_solutions = await self.aggregator.aggregate_mcts(
					self._query,
					system_prompt,
					self.config.mcts_config(),
				)
		except AggregationError:
			raise
		except Exception as e:
			raise AggregationError(f"{method.value} aggregation failed: {e}") from e

		for solution in new_solutions:
			await self.workspace.add(solution)
			self.events.emit(SolutionsAggregated(candidate_id=solution.id))
		logger.info(f"{method.value} aggregation added {len(new_solutions)} solutions")

	async def _extract_strategies(self) -> None:
		"""Extract strategies from every candidate into the strategy network."""
		self.events.emit(StrategyNetworkStarted())
		solutions = await self.workspace.get_all()

		async def extract(solution: Solution) -> list[str]:
			return await self._agent_for(solution).extract_strategies(solution)

		summary = await self._fanout.run(solutions, extract)
		for result in summary.results:
			if not result.success:
				self._report_failure(f"Strategy extraction failed for {result.item.id}", result.error)
				continue
			for description in result.result:
				strategy_id = self.strategy_network.register(
					producer_id=result.item.producer_id,
					description=description,
					provenance=f"solution {result.item.id}",
				)
				self.events.emit(StrategyExtracted(strategy_id=strategy_id))

		logger.info(f"Strategy network holds {len(self.strategy_network)} strategies")

	async def _verify(self, solutions: list[Solution]) -> None:
		"""Two independent verification passes per solution, all concurrent."""
		threshold = self.config.consensus_threshold
		items = [(solution, n) for solution in solutions for n in range(VERIFICATION_PASSES)]

		async def verify(item: tuple[Solution, int]) -> None:
			solution, n = item
			# Prefer a verifier other than the producer
			verifier = self._agent_for(solution, offset=n + 1)
			result = await verifier.verify_solution(solution, self._query)
			updated = await self.workspace.modify(
				solution.id,
				lambda s: apply_verification(s, result, threshold),
			)
			if updated is None:
				return
			self._feedback.setdefault(solution.id, []).append(result.feedback)
			self.events.emit(SolutionVerified(
				candidate_id=solution.id,
				is_correct=result.is_correct,
				score=result.score,
			))

		summary = await self._fanout.run(items, verify)
		for result in summary.failed:
			solution, n = result.item
			self._report_failure(f"Verification pass {n + 1} failed for {solution.id}", result.error)

	async def _improve(self) -> int:
		"""
		Improvement loop. Returns the number of iterations that ran.

		Each candidate is improved at most once per run; improved candidates
		are verified before the next iteration picks its targets.
		"""
		attempted: set[str] = set()
		iterations = 0

		for iteration in range(1, self.config.max_iterations + 1):
			eligible = select_for_improvement(await self.workspace.get_all(), exclude=attempted)
			if not eligible:
				logger.info("No solutions eligible for improvement")
				break

			iterations = iteration
			self.events.emit(ImprovementStarted(iteration=iteration))
			attempted.update(s.id for s in eligible)

			async def improve(solution: Solution) -> Solution:
				insights = None
				if self.config.enable_strategy_network:
					insights = self.strategy_network.shared_insights(exclude_producer=solution.producer_id)
				return await self._agent_for(solution).improve_solution(
					solution,
					self._query,
					feedback="\n\n".join(self._feedback.get(solution.id, [])),
					insights=insights,
					use_thinking_tags=self.config.use_thinking_tags,
				)

			summary = await self._fanout.run(eligible, improve)
			improved = []
			for result in summary.results:
				if not result.success:
					self._report_failure(f"Improvement failed for {result.item.id}", result.error)
					continue
				await self.workspace.add(result.result)
				self.events.emit(SolutionImproved(candidate_id=result.result.id))
				improved.append(result.result)

			logger.info(f"Iteration {iteration}: improved {len(improved)}/{len(eligible)} solutions")
			if not improved:
				break
			await self._verify(improved)

		return iterations

	async def _synthesize(self, iterations: int) -> MarsOutput:
		"""Pick the final answer: majority vote, then best verified, then synthesis."""
		self.events.emit(SynthesisStarted())
		solutions = await self.workspace.get_all()
		if not solutions:
			raise NoSolutionsError()

		chosen = select_by_majority_voting(solutions)
		method = SelectionMethod.MAJORITY_VOTING
		if chosen is None:
			chosen = find_best_verified(solutions)
			method = SelectionMethod.BEST_VERIFIED
		if chosen is None:
			chosen = synthesize_final_answer(solutions)
			method = SelectionMethod.SYNTHESIZED
			await self.workspace.add(chosen)
			solutions = await self.workspace.get_all()

		self.events.emit(AnswerSynthesized(answer=chosen.answer))
		logger.info(f"Selected {chosen.id} by {method.value} after {iterations} iterations")

		return MarsOutput(
			answer=chosen.answer,
			reasoning=chosen.reasoning,
			all_solutions=solutions,
			final_solution_id=chosen.id,
			selection_method=method,
			iterations=iterations,
			total_tokens=self.total_tokens,
		)


async def run(
	query: str,
	provider: LLMProvider,
	config: Optional[MarsConfig] = None,
	events: Optional[EventChannel] = None,
) -> MarsOutput:
	"""Run a query through a fresh coordinator."""
	return await MarsCoordinator(config, provider, events=events).run(query)

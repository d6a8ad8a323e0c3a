"""
Verification bookkeeping and consensus selection.

The correctness judgment itself comes from the backend (see Agent.verify_solution).
This module owns what happens around it: pass/fail counters, the consensus
threshold, and the three final-answer selection strategies.
"""

import functools
import logging
from collections import defaultdict
from typing import Iterable, Optional

from .errors import NoSolutionsError
from .models import GenerationPhase, Solution, VerificationResult

logger = logging.getLogger(__name__)

SYNTHESIZER_ID = "synthesizer"
SYNTHESIS_TOP_K = 3
MAX_VERIFICATION_FAILURES = 2


def apply_verification(solution: Solution, result: VerificationResult, threshold: int) -> None:
	"""Record one verification pass or failure on a solution in place."""
	if result.is_correct:
		solution.add_verification_pass(result.score, threshold)
	else:
		solution.add_verification_failure()


def lineage_root(solution: Solution, by_id: dict[str, Solution]) -> str:
	"""Id of the earliest known ancestor of a solution (itself if it has none)."""
	current = solution
	seen = {current.id}
	while current.parent_id is not None and current.parent_id in by_id and current.parent_id not in seen:
		current = by_id[current.parent_id]
		seen.add(current.id)
	return current.id


def select_by_majority_voting(solutions: list[Solution]) -> Optional[Solution]:
	"""
	Pick the answer shared by the most independent lineages, if at least two agree.

	An improved candidate and the candidate it was derived from count as one
	supporter, so an agent cannot out-vote the others by agreeing with itself.
	Ties between equally supported answers go to the answer seen first.
	Returns the first candidate carrying the winning answer.
	"""
	by_id = {s.id: s for s in solutions}
	supporters: dict[str, set[str]] = defaultdict(set)
	for solution in solutions:
		supporters[solution.answer].add(lineage_root(solution, by_id))

	best: Optional[Solution] = None
	best_count = 1
	for solution in solutions:
		count = len(supporters[solution.answer])
		if count > best_count:
			best, best_count = solution, count
	return best


def find_best_verified(solutions: list[Solution]) -> Optional[Solution]:
	"""Highest-scoring verified candidate; first seen wins ties."""
	best: Optional[Solution] = None
	for solution in solutions:
		if not solution.is_verified:
			continue
		if best is None or _compare_scores(solution, best) > 0:
			best = solution
	return best


def _compare_scores(a: Solution, b: Solution) -> int:
	"""
	Compare verification scores: unset sorts lowest, incomparable values
	(NaN) compare equal instead of raising.
	"""
	sa, sb = a.verification_score, b.verification_score
	if sa is None and sb is None:
		return 0
	if sa is None:
		return -1
	if sb is None:
		return 1
	if sa > sb:
		return 1
	if sa < sb:
		return -1
	return 0


def rank_by_score(solutions: list[Solution]) -> list[Solution]:
	"""Solutions sorted by descending score; stable for equal scores."""
	return sorted(solutions, key=functools.cmp_to_key(_compare_scores), reverse=True)


def synthesize_final_answer(solutions: list[Solution]) -> Solution:
	"""
	Fallback synthesis: combine the reasoning of the top candidates.

	The answer is the top candidate's answer; the token count is the sum over
	all candidates.
	"""
	if not solutions:
		raise NoSolutionsError()

	# sorted(reverse=True) keeps equal elements in original order
	top = rank_by_score(solutions)[:SYNTHESIS_TOP_K]
	combined_reasoning = "\n\n".join(
		f"Approach {i + 1}:\n{s.reasoning}" for i, s in enumerate(top)
	)
	return Solution.create(
		producer_id=SYNTHESIZER_ID,
		reasoning=combined_reasoning,
		answer=top[0].answer,
		temperature=0.5,
		token_count=sum(s.token_count for s in solutions),
		phase=GenerationPhase.SYNTHESIZED,
	)


def select_for_improvement(
	solutions: list[Solution],
	exclude: Iterable[str] = (),
) -> list[Solution]:
	"""Unverified candidates that have not yet failed twice."""
	excluded = set(exclude)
	return [
		s for s in solutions
		if not s.is_verified
		and s.verification_failures < MAX_VERIFICATION_FAILURES
		and s.id not in excluded
	]

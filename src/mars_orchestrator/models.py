"""
Core data model shared by every phase of a MARS run.

A Solution is the unit that flows through exploration, aggregation,
verification, improvement and synthesis.
"""

import uuid
from dataclasses import asdict, dataclass, field, replace
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Optional


class GenerationPhase(str, Enum):
	"""Generation stage that produced a solution."""
	INITIAL = "initial"
	IMPROVED = "improved"
	AGGREGATED = "aggregated"
	SYNTHESIZED = "synthesized"


class SelectionMethod(str, Enum):
	"""How the final answer was chosen."""
	MAJORITY_VOTING = "majority_voting"
	BEST_VERIFIED = "best_verified"
	SYNTHESIZED = "synthesized"


class AggregationMethod(str, Enum):
	"""Aggregation algorithm run in the optional aggregation phase."""
	RSA = "rsa"
	MIXTURE_OF_AGENTS = "moa"
	MONTE_CARLO_TREE_SEARCH = "mcts"


def _utcnow() -> datetime:
	return datetime.now(timezone.utc)


def new_id(prefix: str = "") -> str:
	"""Return a fresh unique identifier."""
	value = str(uuid.uuid4())
	return f"{prefix}-{value}" if prefix else value


@dataclass
class Solution:
	"""A candidate answer with its reasoning, provenance and verification state."""
	id: str
	producer_id: str
	reasoning: str
	answer: str
	temperature: float = 0.0
	token_count: int = 0
	phase: GenerationPhase = GenerationPhase.INITIAL
	verification_score: Optional[float] = None
	verification_passes: int = 0
	verification_failures: int = 0
	consecutive_passes: int = 0
	is_verified: bool = False
	parent_id: Optional[str] = None
	created_at: datetime = field(default_factory=_utcnow)

	@classmethod
	def create(
		cls,
		producer_id: str,
		reasoning: str,
		answer: str,
		temperature: float = 0.0,
		token_count: int = 0,
		phase: GenerationPhase = GenerationPhase.INITIAL,
	) -> "Solution":
		"""Create a solution with a freshly assigned id."""
		return cls(
			id=new_id(),
			producer_id=producer_id,
			reasoning=reasoning,
			answer=answer,
			temperature=max(0.0, temperature),
			token_count=max(0, token_count),
			phase=phase,
		)

	def add_verification_pass(self, score: float, threshold: int) -> None:
		"""Record a passing verification. Score accumulates across passes."""
		self.verification_passes += 1
		self.consecutive_passes += 1
		self.verification_score = (self.verification_score or 0.0) + score
		self.is_verified = self.consecutive_passes >= threshold

	def add_verification_failure(self) -> None:
		"""Record a failing verification; resets the pass streak."""
		self.verification_failures += 1
		self.consecutive_passes = 0
		self.is_verified = False

	def derive(self, **changes: Any) -> "Solution":
		"""
		Build a logically new solution from this one.

		The result always gets a fresh id, links back via parent_id and
		starts with clean verification state.
		"""
		defaults = {
			"id": new_id(),
			"parent_id": self.id,
			"verification_score": None,
			"verification_passes": 0,
			"verification_failures": 0,
			"consecutive_passes": 0,
			"is_verified": False,
			"created_at": _utcnow(),
		}
		defaults.update(changes)
		return replace(self, **defaults)

	def copy(self) -> "Solution":
		"""Return a shallow copy that keeps the same id."""
		return replace(self)

	def to_dict(self) -> dict[str, Any]:
		data = asdict(self)
		data["phase"] = self.phase.value
		data["created_at"] = self.created_at.isoformat()
		return data


@dataclass
class VerificationResult:
	"""Judgment produced by a single verification pass."""
	solution_id: str
	verifier_id: str
	is_correct: bool
	score: float
	feedback: str = ""

	def __post_init__(self):
		self.score = min(1.0, max(0.0, self.score))


@dataclass
class MarsOutput:
	"""Final result of a run."""
	answer: str
	reasoning: str
	all_solutions: list[Solution]
	final_solution_id: str
	selection_method: SelectionMethod
	iterations: int = 0
	total_tokens: int = 0
	completed_at: datetime = field(default_factory=_utcnow)

	@property
	def final_solution(self) -> Optional[Solution]:
		"""The chosen solution, looked up in the candidate set."""
		for solution in self.all_solutions:
			if solution.id == self.final_solution_id:
				return solution
		return None

	def to_dict(self) -> dict[str, Any]:
		return {
			"answer": self.answer,
			"reasoning": self.reasoning,
			"all_solutions": [s.to_dict() for s in self.all_solutions],
			"final_solution_id": self.final_solution_id,
			"selection_method": self.selection_method.value,
			"iterations": self.iterations,
			"total_tokens": self.total_tokens,
			"completed_at": self.completed_at.isoformat(),
		}

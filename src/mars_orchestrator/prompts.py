"""Prompt templates used by agents, aggregators and the tree search."""

MARS_SYSTEM_PROMPT = (
	"You are one of several independent reasoning agents. Work through the problem "
	"carefully, then state your final answer on its own line as 'Final Answer: <answer>'."
)

MARS_SYSTEM_PROMPT_WITH_THINKING = (
	"You are one of several independent reasoning agents. Put your step-by-step reasoning "
	"inside <think></think> tags, then state your final answer after the closing tag as "
	"'Final Answer: <answer>'."
)

REASONING_PROMPT = "Solve the following problem. Be rigorous and complete."

VERIFICATION_SYSTEM_PROMPT = (
	"You are a strict verifier. Check the solution for correctness, completeness and rigor. "
	"Reply with 'VERDICT: CORRECT' or 'VERDICT: INCORRECT', then 'SCORE: <0.0-1.0>', "
	"then a short justification."
)

VERIFICATION_PROMPT = """Problem:
{query}

Solution to verify:
{reasoning}

Answer: {answer}"""

IMPROVEMENT_PROMPT = """Problem:
{query}

A previous attempt did not pass verification.

Reasoning:
{reasoning}

Answer: {answer}

Verification feedback:
{feedback}
{insights}
Write an improved solution."""

STRATEGY_INSIGHTS_HEADER = "\nStrategies that worked for other agents:\n"

STRATEGY_EXTRACTION_PROMPT = """List the key reasoning strategies used in the solution below, one per line, each starting with '- '.

Solution:
{reasoning}"""

SINGLE_REFINEMENT_PROMPT = """Problem:
{query}

Candidate solution:
{candidate}

Refine this solution: fix any errors and make the reasoning complete."""

MULTI_AGGREGATION_PROMPT = """Problem:
{query}

Candidate solutions:
{candidates}

Combine the strongest ideas of these candidates into a single, better solution."""

MCTS_NEXT_QUERY_PROMPT = (
	"Based on this conversation, what might the user ask or say next? "
	"Provide a likely user query."
)

MCTS_EVALUATION_PROMPT = (
	"Evaluate the quality of this conversation on a scale from 0 to 1, where 0 is poor "
	"and 1 is excellent. Consider coherence, relevance and correctness. Respond with only a number."
)

"""Tests for the rich views."""

from io import StringIO

from rich.console import Console

from mars_orchestrator.config import Config
from mars_orchestrator.events import AnswerSynthesized, ErrorEvent, ExplorationStarted, SolutionVerified
from mars_orchestrator.models import MarsOutput, SelectionMethod
from mars_orchestrator.visualizer import (
	describe_event,
	format_score,
	render_config,
	render_event,
	render_output,
	render_solutions,
	short_id,
	truncate,
)

from .helpers import make_solution


def capture_console() -> tuple[Console, StringIO]:
	buf = StringIO()
	return Console(file=buf, width=120, force_terminal=False), buf


class TestHelpers:
	def test_truncate(self):
		assert truncate("") == ""
		assert truncate("a\n  b") == "a b"
		assert truncate("x" * 100, 10) == "xxxxxxx..."

	def test_short_id(self):
		assert short_id(None) == "-"
		assert short_id("0123456789abcdef") == "01234567"

	def test_format_score(self):
		assert format_score(None) == "-"
		assert format_score(0.456) == "0.46"


class TestEvents:
	def test_describe_event(self):
		text = describe_event(SolutionVerified(candidate_id="abc", is_correct=True, score=0.9))
		assert text.startswith("solution_verified")
		assert "candidate_id=abc" in text
		assert "is_correct=True" in text
		assert "timestamp" not in text

	def test_long_values_truncated(self):
		text = describe_event(AnswerSynthesized(answer="y" * 200))
		assert "y" * 47 + "..." in text
		assert "y" * 60 not in text

	def test_render_event(self):
		console, buf = capture_console()
		render_event(ExplorationStarted(agent_count=3), console)
		render_event(ErrorEvent(message="agent-1 failed: [boom]"), console)
		out = buf.getvalue()
		assert "agent_count=3" in out
		# Markup in messages is printed literally
		assert "[boom]" in out


class TestOutput:
	"""Final result rendering."""

	def make_output(self, answer: str = "42") -> MarsOutput:
		chosen = make_solution(answer, score=0.9, verified=True)
		other = make_solution("41", producer_id="agent-1")
		return MarsOutput(
			answer=answer,
			reasoning=chosen.reasoning,
			all_solutions=[chosen, other],
			final_solution_id=chosen.id,
			selection_method=SelectionMethod.BEST_VERIFIED,
			iterations=2,
			total_tokens=1234,
		)

	def test_render_output(self):
		console, buf = capture_console()
		output = self.make_output()
		render_output(output, console)
		out = buf.getvalue()
		assert "best_verified" in out
		assert "1234" in out
		assert "Final Answer" in out
		assert f"* {short_id(output.final_solution_id)}" in out

	def test_empty_answer(self):
		console, buf = capture_console()
		render_output(self.make_output(answer=""), console)
		assert "(empty answer)" in buf.getvalue()

	def test_solutions_table(self):
		output = self.make_output()
		table = render_solutions(output.all_solutions, output.final_solution_id)
		assert table.row_count == 2
		assert table.title == "Candidates"


class TestConfigView:
	def test_render_config(self, tmp_path):
		console, buf = capture_console()
		render_config(Config(config_dir=tmp_path / "c", data_dir=tmp_path / "d"), console)
		out = buf.getvalue()
		assert "provider_model" in out
		assert "consensus_threshold" in out

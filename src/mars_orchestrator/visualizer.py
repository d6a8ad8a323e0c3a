"""Rich views for run events, final output and configuration."""

from typing import Optional

from rich.console import Console
from rich.markup import escape
from rich.panel import Panel
from rich.table import Table

from .config import Config
from .events import EventType, MarsEvent
from .models import MarsOutput, Solution

EVENT_STYLES = {
	EventType.EXPLORATION_STARTED: "bold cyan",
	EventType.AGGREGATION_STARTED: "bold cyan",
	EventType.STRATEGY_NETWORK_STARTED: "bold cyan",
	EventType.VERIFICATION_STARTED: "bold cyan",
	EventType.IMPROVEMENT_STARTED: "bold cyan",
	EventType.SYNTHESIS_STARTED: "bold cyan",
	EventType.ANSWER_SYNTHESIZED: "bold green",
	EventType.ERROR: "bold red",
}


def truncate(text: str, max_len: int = 60) -> str:
	"""Shorten text to a single line for table display."""
	if not text:
		return ""
	line = " ".join(text.split())
	if len(line) <= max_len:
		return line
	return line[:max_len - 3] + "..."


def short_id(value: Optional[str]) -> str:
	"""First block of a uuid."""
	if not value:
		return "-"
	return value[:8]


def status_style(success: bool) -> str:
	return "green" if success else "red"


def format_score(score: Optional[float]) -> str:
	return "-" if score is None else f"{score:.2f}"


def describe_event(event: MarsEvent) -> str:
	"""One-line human description of an event."""
	data = event.to_dict()
	details = []
	for key, value in data.items():
		if key in ("type", "timestamp"):
			continue
		if isinstance(value, str):
			value = truncate(value, 50)
		details.append(f"{key}={value}")
	return f"{event.type.value} {' '.join(details)}".strip()


def render_event(event: MarsEvent, console: Optional[Console] = None) -> None:
	"""Print a single event as one timestamped line."""
	console = console or Console(stderr=True)
	style = EVENT_STYLES.get(event.type, "dim")
	if event.type == EventType.SOLUTION_VERIFIED:
		style = status_style(event.is_correct)
	time_str = event.timestamp.strftime("%H:%M:%S")
	console.print(f"[dim]{time_str}[/dim] [{style}]{escape(describe_event(event))}[/{style}]")


def render_solutions(solutions: list[Solution], final_id: Optional[str] = None) -> Table:
	"""Table of every candidate in a run."""
	table = Table(title="Candidates")
	table.add_column("Id", style="cyan")
	table.add_column("Producer")
	table.add_column("Phase")
	table.add_column("Answer")
	table.add_column("Score", justify="right")
	table.add_column("Pass/Fail", justify="center")
	table.add_column("Tokens", justify="right")

	for s in solutions:
		marker = "* " if s.id == final_id else ""
		style = status_style(s.is_verified)
		table.add_row(
			f"{marker}{short_id(s.id)}",
			s.producer_id,
			s.phase.value,
			escape(truncate(s.answer, 40)),
			format_score(s.verification_score),
			f"[{style}]{s.verification_passes}/{s.verification_failures}[/{style}]",
			str(s.token_count),
		)
	return table


def render_output(output: MarsOutput, console: Optional[Console] = None) -> None:
	"""Render the final answer, the run summary and the candidate table."""
	console = console or Console()

	console.print()
	console.rule("[bold cyan]MARS Result[/bold cyan]")
	console.print()

	summary = (
		f"[bold]Selection:[/bold] {output.selection_method.value}  |  "
		f"[bold]Iterations:[/bold] {output.iterations}  |  "
		f"[bold]Candidates:[/bold] {len(output.all_solutions)}  |  "
		f"[bold]Tokens:[/bold] {output.total_tokens}"
	)
	console.print(Panel(summary, title="Summary", border_style="green"))
	console.print()
	console.print(render_solutions(output.all_solutions, output.final_solution_id))
	console.print()
	console.print(Panel(escape(output.answer) if output.answer else "[dim](empty answer)[/dim]", title="Final Answer", border_style="bold green"))
	console.print()


def render_config(config: Config, console: Optional[Console] = None) -> None:
	"""Show the effective configuration."""
	console = console or Console()

	paths = Table(title="Settings", show_header=False)
	paths.add_column("Setting", style="cyan")
	paths.add_column("Value")
	paths.add_row("config_file", str(config.config_file))
	paths.add_row("data_dir", str(config.data_dir))
	paths.add_row("log_dir", str(config.log_dir))
	paths.add_row("provider_base_url", config.provider_base_url)
	paths.add_row("provider_model", config.provider_model)
	paths.add_row("provider_api_key_env", f"{config.provider_api_key_env} ({'set' if config.api_key() else 'unset'})")
	paths.add_row("log_level", config.log_level)
	console.print(paths)

	mars = Table(title="Run configuration", show_header=False)
	mars.add_column("Field", style="cyan")
	mars.add_column("Value")
	for key, value in config.mars.model_dump(mode="json").items():
		mars.add_row(key, str(value))
	console.print(mars)

"""CLI for mars-orchestrator: run a query, show the effective configuration."""

import argparse
import asyncio
import json
import sys
from typing import Optional

from dotenv import load_dotenv
from rich.console import Console

from .config import Config, MarsConfig, load_config
from .coordinator import MarsCoordinator
from .errors import MarsError
from .events import EventChannel
from .logging_config import setup_logging
from .models import AggregationMethod, MarsOutput
from .providers.openai_compat import OpenAICompatibleProvider
from .visualizer import render_config, render_event, render_output


def _build_run_config(config: Config, args: argparse.Namespace) -> MarsConfig:
	"""Apply command-line overrides on top of the configured run settings."""
	mars = config.mars.model_copy(deep=True)
	if args.agents is not None:
		mars = mars.with_num_agents(args.agents)
	if args.aggregation is not None:
		mars.enable_aggregation = True
		mars.aggregation_method = AggregationMethod(args.aggregation)
	if args.strategy_network:
		mars.enable_strategy_network = True
	if args.max_iterations is not None:
		mars.max_iterations = args.max_iterations
	if args.debug:
		mars.debug = True
	return mars


async def _run_query(
	query: str,
	mars: MarsConfig,
	provider: OpenAICompatibleProvider,
	max_tokens: Optional[int],
	show_events: bool,
) -> MarsOutput:
	"""Run the coordinator while rendering its events as they arrive."""
	console = Console(stderr=True)
	coordinator = MarsCoordinator(mars, provider, events=EventChannel())

	async def consume(events: EventChannel) -> None:
		async for event in events:
			if show_events:
				render_event(event, console)

	consumer = asyncio.create_task(consume(coordinator.events))
	try:
		return await coordinator.run(query, max_tokens=max_tokens)
	finally:
		# The run closes the channel, so the consumer always finishes
		await consumer


def cmd_run(args: argparse.Namespace) -> None:
	"""Solve a query with a multi-agent run."""
	config = load_config()
	mars = _build_run_config(config, args)
	setup_logging(level="DEBUG" if mars.debug else config.log_level, log_dir=config.log_dir)

	provider = OpenAICompatibleProvider(
		model=args.model or config.provider_model,
		base_url=args.base_url or config.provider_base_url,
		api_key=config.api_key(),
		supports_n=config.provider_supports_n,
		timeout=mars.timeout_seconds,
	)

	try:
		output = asyncio.run(_run_query(args.query, mars, provider, args.max_tokens, show_events=not args.json))
	except MarsError as e:
		Console(stderr=True).print(f"[bold red]Run failed:[/bold red] {e}")
		sys.exit(1)

	if args.json:
		print(json.dumps(output.to_dict(), indent=2))
	else:
		render_output(output)


def cmd_config(args: argparse.Namespace) -> None:
	"""Show the effective configuration."""
	config = load_config()
	if args.json:
		data = {
			"config_file": str(config.config_file),
			"data_dir": str(config.data_dir),
			"log_dir": str(config.log_dir),
			"provider": {
				"base_url": config.provider_base_url,
				"model": config.provider_model,
				"api_key_env": config.provider_api_key_env,
				"supports_n": config.provider_supports_n,
			},
			"log_level": config.log_level,
			"mars": config.mars.model_dump(mode="json"),
		}
		print(json.dumps(data, indent=2))
		return
	render_config(config)


def build_parser() -> argparse.ArgumentParser:
	parser = argparse.ArgumentParser(
		prog="mars-orchestrator",
		description="Multi-agent reasoning: explore, aggregate, verify, improve and synthesize",
	)
	subparsers = parser.add_subparsers(dest="command")

	# run
	run_parser = subparsers.add_parser("run", help="Solve a query")
	run_parser.add_argument("query", type=str, help="The problem to solve")
	run_parser.add_argument("--agents", type=int, default=None, help="Number of agents")
	run_parser.add_argument(
		"--aggregation",
		choices=[m.value for m in AggregationMethod],
		default=None,
		help="Enable aggregation with the given method",
	)
	run_parser.add_argument("--strategy-network", action="store_true", help="Share strategies between agents")
	run_parser.add_argument("--max-iterations", type=int, default=None, help="Improvement iteration cap")
	run_parser.add_argument("--max-tokens", type=int, default=None, help="Requested completion budget")
	run_parser.add_argument("--model", type=str, default=None, help="Model name (overrides config)")
	run_parser.add_argument("--base-url", type=str, default=None, help="Provider base URL (overrides config)")
	run_parser.add_argument("--debug", action="store_true", help="Debug logging")
	run_parser.add_argument("--json", action="store_true", help="Print the result as JSON")
	run_parser.set_defaults(func=cmd_run)

	# config
	config_parser = subparsers.add_parser("config", help="Show effective configuration")
	config_parser.add_argument("--json", action="store_true", help="Print as JSON")
	config_parser.set_defaults(func=cmd_config)

	return parser


def main() -> None:
	"""CLI entry point."""
	load_dotenv()
	parser = build_parser()
	args = parser.parse_args()

	if not args.command:
		parser.print_help()
		sys.exit(1)

	args.func(args)


if __name__ == "__main__":
	main()

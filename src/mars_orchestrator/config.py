"""
Configuration for MARS.

Two layers:
- MarsConfig: the run configuration (agent count, temperatures, aggregation
  and search parameters). Validated with pydantic; numeric fields are clamped
  on construction and on assignment.
- Config: application settings (platformdirs paths, provider defaults), loaded
  with precedence env vars > config.toml > defaults.
"""

import logging
import os
import tomllib
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional

import platformdirs
from pydantic import BaseModel, ConfigDict, Field, field_validator

from .mcts import MCTSConfig
from .models import AggregationMethod
from .providers.router import ProviderRoutingConfig

logger = logging.getLogger(__name__)

APP_NAME = "mars-orchestrator"
APP_AUTHOR = "mars-orchestrator"

DEFAULT_TEMPERATURES = [0.3, 0.6, 1.0]
PADDING_TEMPERATURE = 1.0
DEFAULT_TIMEOUT_SECONDS = 300
LIGHTWEIGHT_TOKEN_THRESHOLD = 4000


class MarsConfig(BaseModel):
	"""Run configuration. Immutable for the duration of a run once started."""

	model_config = ConfigDict(validate_assignment=True)

	num_agents: int = Field(default=3, description="Number of exploring agents")
	temperatures: list[float] = Field(default_factory=lambda: list(DEFAULT_TEMPERATURES))
	consensus_threshold: int = Field(default=2, description="Consecutive passes needed to verify")
	enable_aggregation: bool = False
	enable_strategy_network: bool = False
	max_iterations: int = 5
	use_thinking_tags: bool = True

	# Token budgets
	token_budget_reasoning: int = 64000
	token_budget_lightweight: int = 4000
	auto_lightweight_mode: bool = True

	# Aggregation
	aggregation_method: AggregationMethod = AggregationMethod.RSA
	aggregation_population_size: int = 6
	aggregation_selection_size: int = 3
	aggregation_loops: int = 3
	moa_num_completions: int = 3
	moa_fallback_enabled: bool = True

	# Providers
	enable_multi_provider: bool = False
	provider_routing: Optional[ProviderRoutingConfig] = None
	timeout_seconds: float = DEFAULT_TIMEOUT_SECONDS

	# Tree search
	mcts_simulation_depth: int = 1
	mcts_exploration_weight: float = 0.2
	mcts_num_simulations: int = 2
	mcts_num_actions: int = 3

	debug: bool = False

	@field_validator(
		"num_agents",
		"consensus_threshold",
		"max_iterations",
		"token_budget_reasoning",
		"token_budget_lightweight",
		"aggregation_population_size",
		"aggregation_selection_size",
		"aggregation_loops",
		"moa_num_completions",
		"mcts_num_simulations",
		"mcts_num_actions",
	)
	@classmethod
	def _at_least_one(cls, value: int) -> int:
		return max(1, value)

	@field_validator("mcts_simulation_depth")
	@classmethod
	def _non_negative_int(cls, value: int) -> int:
		return max(0, value)

	@field_validator("mcts_exploration_weight")
	@classmethod
	def _non_negative_float(cls, value: float) -> float:
		return max(0.0, value)

	@field_validator("timeout_seconds")
	@classmethod
	def _positive_timeout(cls, value: float) -> float:
		return value if value > 0 else DEFAULT_TIMEOUT_SECONDS

	@field_validator("temperatures")
	@classmethod
	def _valid_temperatures(cls, value: list[float]) -> list[float]:
		if not value:
			return list(DEFAULT_TEMPERATURES)
		return [max(0.0, t) for t in value]

	def agent_temperatures(self) -> list[float]:
		"""Temperatures for exactly num_agents agents (truncated or padded)."""
		temps = list(self.temperatures[:self.num_agents])
		while len(temps) < self.num_agents:
			temps.append(PADDING_TEMPERATURE)
		return temps

	@property
	def effective_selection_size(self) -> int:
		"""Selection size clamped to the population size."""
		return min(self.aggregation_selection_size, self.aggregation_population_size)

	def with_num_agents(self, num: int) -> "MarsConfig":
		"""Copy with a new agent count and a temperature list resized to match."""
		if num <= 0:
			return self.model_copy(deep=True)
		config = self.model_copy(deep=True)
		config.num_agents = num
		config.temperatures = config.agent_temperatures()
		return config

	def lightweight(self) -> "MarsConfig":
		"""Copy tuned for simple tasks: fewer agents, fewer iterations."""
		config = self.with_num_agents(2)
		config.max_iterations = 2
		config.enable_aggregation = False
		config.enable_strategy_network = False
		return config

	def with_advanced_features(self) -> "MarsConfig":
		"""Copy with aggregation and the strategy network enabled."""
		return self.model_copy(update={"enable_aggregation": True, "enable_strategy_network": True}, deep=True)

	def get_token_budget(self, is_lightweight: bool) -> int:
		return self.token_budget_lightweight if is_lightweight else self.token_budget_reasoning

	def should_use_lightweight(self, max_tokens: Optional[int]) -> bool:
		"""Lightweight mode kicks in for small requested budgets."""
		if not self.auto_lightweight_mode or max_tokens is None:
			return False
		return max_tokens <= LIGHTWEIGHT_TOKEN_THRESHOLD

	def mcts_config(self) -> MCTSConfig:
		return MCTSConfig(
			simulation_depth=self.mcts_simulation_depth,
			exploration_weight=self.mcts_exploration_weight,
			num_simulations=self.mcts_num_simulations,
			num_actions=self.mcts_num_actions,
			generation_temperature=1.0,
			evaluation_temperature=0.1,
			max_history_length=10,
		)


@dataclass
class Config:
	"""Application settings with XDG/platform conventions."""

	config_dir: Path = field(default_factory=lambda: Path(platformdirs.user_config_dir(APP_NAME)))
	data_dir: Path = field(default_factory=lambda: Path(platformdirs.user_data_dir(APP_NAME)))

	# Derived paths
	config_file: Path = field(init=False)
	log_dir: Path = field(init=False)

	# Provider defaults
	provider_base_url: str = "https://api.openai.com/v1"
	provider_model: str = "gpt-4o-mini"
	provider_api_key_env: str = "OPENAI_API_KEY"
	provider_supports_n: bool = True

	log_level: str = "INFO"
	mars: MarsConfig = field(default_factory=MarsConfig)

	def __post_init__(self) -> None:
		self.config_file = self.config_dir / "config.toml"
		self.log_dir = self.data_dir / "logs"

	def ensure_dirs(self) -> None:
		"""Create all required directories."""
		self.config_dir.mkdir(parents=True, exist_ok=True)
		self.data_dir.mkdir(parents=True, exist_ok=True)
		self.log_dir.mkdir(parents=True, exist_ok=True)

	def api_key(self) -> str:
		return os.getenv(self.provider_api_key_env, "")


def _apply_env_overrides(config: Config) -> Config:
	"""Apply MARS_ORCHESTRATOR_* environment variable overrides."""
	path_map = {
		"MARS_ORCHESTRATOR_CONFIG_DIR": "config_dir",
		"MARS_ORCHESTRATOR_DATA_DIR": "data_dir",
	}
	for env_key, attr in path_map.items():
		val = os.getenv(env_key)
		if val:
			setattr(config, attr, Path(val))

	str_map = {
		"MARS_ORCHESTRATOR_BASE_URL": "provider_base_url",
		"MARS_ORCHESTRATOR_MODEL": "provider_model",
		"MARS_ORCHESTRATOR_API_KEY_ENV": "provider_api_key_env",
		"MARS_ORCHESTRATOR_LOG_LEVEL": "log_level",
	}
	for env_key, attr in str_map.items():
		val = os.getenv(env_key)
		if val:
			setattr(config, attr, val)

	# Recompute derived paths after overrides
	config.__post_init__()
	return config


def _apply_toml(config: Config) -> Config:
	"""Apply config.toml overrides if the file exists."""
	toml_path = config.config_dir / "config.toml"
	if not toml_path.exists():
		return config

	with open(toml_path, "rb") as f:
		data = tomllib.load(f)

	path_fields = {"config_dir", "data_dir"}
	for key, val in data.items():
		if key == "mars" and isinstance(val, dict):
			config.mars = MarsConfig.model_validate({**config.mars.model_dump(), **val})
		elif key == "provider" and isinstance(val, dict):
			for sub_key, sub_val in val.items():
				attr = f"provider_{sub_key}"
				if hasattr(config, attr):
					setattr(config, attr, sub_val)
				else:
					logger.warning(f"Unknown provider setting in {toml_path}: {sub_key}")
		elif key in path_fields:
			setattr(config, key, Path(os.path.expanduser(val)))
		elif hasattr(config, key):
			setattr(config, key, val)
		else:
			logger.warning(f"Unknown setting in {toml_path}: {key}")

	# Recompute derived paths after toml overrides
	config.__post_init__()
	return config


def load_config() -> Config:
	"""Load config with precedence: env vars > config.toml > defaults."""
	config = Config()
	# Env is applied twice: first to locate config.toml, then to win over it
	config = _apply_env_overrides(config)
	config = _apply_toml(config)
	config = _apply_env_overrides(config)
	config.ensure_dirs()
	return config


# Singleton
_config: Config | None = None


def get_config() -> Config:
	"""Get or create the global config instance."""
	global _config
	if _config is None:
		_config = load_config()
	return _config

"""
Multi-provider routing.

A ProviderRoutingConfig lists the backends available to a run. The router
turns each ProviderSpec into a provider instance and assigns providers to
agents, so one run can mix models from different backends.
"""

import logging
import os
from typing import Callable, Optional

from pydantic import BaseModel, Field

from ..errors import ConfigError
from .base import LLMProvider

logger = logging.getLogger(__name__)

# Providers that usually run locally and need no API key
LOCAL_PROVIDERS = {"ollama", "vllm", "llamacpp", "local"}


class ProviderSpec(BaseModel):
	"""Description of one backend a run may use."""
	provider: str = Field(description="Provider name (e.g. 'openai', 'ollama')")
	model: str = Field(description="Model identifier")
	api_key: str = Field(default="", description="API key; empty for local backends")
	api_key_env: Optional[str] = Field(default=None, description="Env var to read the key from")
	base_url: Optional[str] = Field(default=None, description="Override the backend URL")
	priority: int = Field(default=0, description="Higher priority specs are assigned first")
	supports_n: bool = Field(default=True, description="Whether the backend accepts n > 1")

	def with_api_key(self, api_key: str) -> "ProviderSpec":
		return self.model_copy(update={"api_key": api_key})

	def with_base_url(self, base_url: str) -> "ProviderSpec":
		return self.model_copy(update={"base_url": base_url})

	def with_priority(self, priority: int) -> "ProviderSpec":
		return self.model_copy(update={"priority": priority})

	def resolved_api_key(self) -> str:
		if self.api_key:
			return self.api_key
		if self.api_key_env:
			return os.getenv(self.api_key_env, "")
		return ""

	def validate_spec(self) -> None:
		"""Raise ConfigError if this spec cannot produce a working provider."""
		if not self.provider.strip():
			raise ConfigError("Provider spec is missing a provider name")
		if not self.model.strip():
			raise ConfigError(f"Provider spec for '{self.provider}' is missing a model")
		is_local = self.provider.lower() in LOCAL_PROVIDERS or self.base_url is not None
		if not is_local and not self.resolved_api_key():
			raise ConfigError(f"Provider '{self.provider}' needs an API key")


class ProviderRoutingConfig(BaseModel):
	"""Provider specs for a multi-provider run."""
	default: ProviderSpec
	agents: list[ProviderSpec] = Field(default_factory=list)

	def ordered_specs(self) -> list[ProviderSpec]:
		"""Agent specs by descending priority (stable), or the default alone."""
		if not self.agents:
			return [self.default]
		return sorted(self.agents, key=lambda s: s.priority, reverse=True)


ProviderFactory = Callable[[ProviderSpec], LLMProvider]


def build_provider(spec: ProviderSpec, timeout: float = 300.0) -> LLMProvider:
	"""Create a provider instance for a spec."""
	from .openai_compat import OpenAICompatibleProvider

	spec.validate_spec()
	base_url = spec.base_url
	if base_url is None:
		base_url = "http://localhost:11434/v1" if spec.provider.lower() == "ollama" else "https://api.openai.com/v1"
	return OpenAICompatibleProvider(
		model=spec.model,
		base_url=base_url,
		api_key=spec.resolved_api_key(),
		provider_name=spec.provider,
		supports_n=spec.supports_n,
		timeout=timeout,
	)


class ProviderRouter:
	"""Assigns providers to agents according to a routing config."""

	def __init__(
		self,
		routing: ProviderRoutingConfig,
		factory: Optional[ProviderFactory] = None,
	):
		self.routing = routing
		self._factory = factory or build_provider
		self._specs = routing.ordered_specs()
		self._instances: dict[int, LLMProvider] = {}
		self._default: Optional[LLMProvider] = None

	def _instance(self, index: int) -> LLMProvider:
		if index not in self._instances:
			spec = self._specs[index]
			self._instances[index] = self._factory(spec)
			logger.info(f"Routing slot {index} to {spec.provider}/{spec.model}")
		return self._instances[index]

	def for_agent(self, agent_index: int) -> LLMProvider:
		"""Provider for the agent at the given index (round-robin over specs)."""
		return self._instance(agent_index % len(self._specs))

	def default(self) -> LLMProvider:
		"""Provider used for non-agent work such as aggregation."""
		if self._default is None:
			self._default = self._factory(self.routing.default)
		return self._default

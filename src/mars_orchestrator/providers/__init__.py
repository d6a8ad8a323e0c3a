"""Provider abstraction and backends."""

from .base import LLMProvider, ModelStream, estimate_tokens, with_timeout
from .openai_compat import OpenAICompatibleProvider
from .router import ProviderRouter, ProviderRoutingConfig, ProviderSpec, build_provider

__all__ = [
	"LLMProvider",
	"ModelStream",
	"OpenAICompatibleProvider",
	"ProviderRouter",
	"ProviderRoutingConfig",
	"ProviderSpec",
	"build_provider",
	"estimate_tokens",
	"with_timeout",
]

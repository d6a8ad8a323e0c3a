"""MARS - multi-agent reasoning with aggregation, verification and consensus synthesis."""

from .config import Config, MarsConfig, get_config, load_config
from .coordinator import MarsCoordinator, run
from .errors import (
	AggregationError,
	ConfigError,
	MarsError,
	MultiCompletionUnsupportedError,
	NoSolutionsError,
	ProviderError,
	ProviderTimeoutError,
	ResponseParseError,
)
from .events import EventChannel, EventType, MarsEvent
from .models import AggregationMethod, GenerationPhase, MarsOutput, SelectionMethod, Solution
from .providers import LLMProvider, ModelStream, OpenAICompatibleProvider, ProviderRouter, ProviderSpec

__all__ = [
	"AggregationError",
	"AggregationMethod",
	"Config",
	"ConfigError",
	"EventChannel",
	"EventType",
	"GenerationPhase",
	"LLMProvider",
	"MarsConfig",
	"MarsCoordinator",
	"MarsError",
	"MarsEvent",
	"MarsOutput",
	"ModelStream",
	"MultiCompletionUnsupportedError",
	"NoSolutionsError",
	"OpenAICompatibleProvider",
	"ProviderError",
	"ProviderRouter",
	"ProviderSpec",
	"ProviderTimeoutError",
	"ResponseParseError",
	"SelectionMethod",
	"Solution",
	"get_config",
	"load_config",
	"run",
]

"""Exception hierarchy for MARS runs."""


class MarsError(Exception):
	"""Base exception for all MARS errors."""
	pass


class ProviderError(MarsError):
	"""Raised when an inference backend call fails."""
	pass


class ProviderTimeoutError(ProviderError):
	"""Raised when a backend call exceeds the configured timeout."""
	pass


class MultiCompletionUnsupportedError(ProviderError):
	"""Raised when a backend cannot return several completions in one request."""
	pass


class AggregationError(MarsError):
	"""Raised when an aggregation algorithm fails. Always fatal to the run."""
	pass


class NoSolutionsError(MarsError):
	"""Raised when synthesis is attempted with no candidates."""

	def __init__(self, message: str = "no candidates"):
		super().__init__(message)


class ConfigError(MarsError):
	"""Raised when a configuration value cannot be used."""
	pass


class ResponseParseError(MarsError):
	"""Raised when a backend response cannot be interpreted."""
	pass

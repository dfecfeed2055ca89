"""Exceptions for agent operations."""


class AgentError(Exception):
    """Base exception for all agent operations."""


class GenerationError(AgentError):
    """Raised when the generation service fails after all retries."""


class SetupValidationError(AgentError):
    """Raised when the target project cannot be inspected at all."""


class ProviderConfigError(AgentError):
    """Raised when the requested LLM provider chain cannot be built."""

"""Exceptions for orchestrator operations."""


class OrchestratorError(Exception):
    """Base exception for all orchestrator operations."""


class GraphBuildError(OrchestratorError):
    """Raised when workflow graph construction fails."""

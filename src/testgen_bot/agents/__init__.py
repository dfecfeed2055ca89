"""Agent components for testgen-bot."""

from testgen_bot.agents.exceptions import (
    AgentError,
    GenerationError,
    ProviderConfigError,
    SetupValidationError,
)
from testgen_bot.agents.change_analyzer import ChangeAnalyzer
from testgen_bot.agents.coverage_extractor import CoverageExtractor
from testgen_bot.agents.project_inspector import ProjectInspector
from testgen_bot.agents.setup_validator import SetupReport, SetupValidator
from testgen_bot.agents.test_generator import GenerationContext, TestGenerator

__all__ = [
    "AgentError",
    "ChangeAnalyzer",
    "CoverageExtractor",
    "GenerationContext",
    "GenerationError",
    "ProjectInspector",
    "ProviderConfigError",
    "SetupReport",
    "SetupValidationError",
    "SetupValidator",
    "TestGenerator",
]

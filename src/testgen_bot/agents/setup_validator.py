"""Setup Validator agent: checks the target project can run Jest."""

import json
import logging
from pathlib import Path

from pydantic import BaseModel, ConfigDict, Field

from testgen_bot.agents.exceptions import SetupValidationError
from testgen_bot.config import EngineConfig

logger = logging.getLogger(__name__)

JEST_CONFIG_FILES = ("jest.config.js", "jest.config.cjs", "jest.config.mjs", "jest.config.json")


class SetupReport(BaseModel):
    model_config = ConfigDict(frozen=False)

    valid: bool
    issues: list[str] = Field(default_factory=list)


class SetupValidator:
    """Validates package.json and the Jest installation of a project."""

    def __init__(self, config: EngineConfig) -> None:
        self.config = config
        self.root = Path(config.repo_path)
        if not self.root.is_dir():
            raise SetupValidationError(f"Repository path does not exist: {config.repo_path}")

    def validate(self) -> SetupReport:
        """Return every setup problem found. Never raises."""
        issues: list[str] = []
        package_json = self.root / "package.json"

        if not package_json.is_file():
            issues.append("Missing package.json file")
            return self._report(issues)

        try:
            package = json.loads(package_json.read_text(encoding="utf-8"))
        except (OSError, json.JSONDecodeError) as exc:
            issues.append(f"package.json could not be parsed: {exc}")
            return self._report(issues)

        if not isinstance(package, dict):
            issues.append("package.json is not a JSON object")
            return self._report(issues)

        if not package.get("name"):
            logger.warning("Package name not set in package.json")

        declared = {}
        for section in ("dependencies", "devDependencies"):
            declared.update(package.get(section) or {})
        has_config = "jest" in package or any(
            (self.root / name).is_file() for name in JEST_CONFIG_FILES
        )
        if "jest" not in declared and not has_config:
            issues.append("Jest is not a declared dependency and no Jest config was found")

        return self._report(issues)

    def _report(self, issues: list[str]) -> SetupReport:
        if issues:
            logger.warning("Setup issues found: %s", "; ".join(issues))
        return SetupReport(valid=not issues, issues=issues)

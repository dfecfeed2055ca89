"""Project Inspector: test-artifact locations and import hints for sources."""

import json
import logging
import os
from pathlib import Path

from testgen_bot.config import EngineConfig
from testgen_bot.utils.symbol_extractor import RegexSymbolExtractor, SymbolExtractor

logger = logging.getLogger(__name__)

TEST_INFIX = ".test"
SKIPPED_DIRS = frozenset({"node_modules", "coverage", ".git"})


class ProjectInspector:
    """Answers layout questions about the target JavaScript project."""

    def __init__(
        self,
        config: EngineConfig,
        extractor: SymbolExtractor | None = None,
    ) -> None:
        self.config = config
        self.root = Path(config.repo_path).resolve()
        self.extractor: SymbolExtractor = extractor or RegexSymbolExtractor()
        self._package_type: str | None = None

    def resolve(self, path: str) -> Path:
        """Absolute path of a repository-relative (or absolute) path."""
        candidate = Path(path)
        return candidate if candidate.is_absolute() else self.root / candidate

    def relative(self, path: str) -> str:
        resolved = self.resolve(path)
        try:
            return resolved.relative_to(self.root).as_posix()
        except ValueError:
            return resolved.as_posix()

    def source_files(self) -> list[str]:
        """Repository-relative source files on disk that pass the source filter."""
        found: list[str] = []
        for dirpath, dirnames, filenames in os.walk(self.root):
            dirnames[:] = [name for name in dirnames if name not in SKIPPED_DIRS]
            for filename in filenames:
                relative = (Path(dirpath) / filename).relative_to(self.root).as_posix()
                if self.config.source_filter.matches(relative):
                    found.append(relative)
        return sorted(found)

    def test_path(self, source_path: str) -> Path:
        """``<root>/<test_dir>/<relative dir>/<stem>.test<ext>`` for a source file."""
        relative = Path(self.relative(source_path))
        suffix = relative.suffix or ".js"
        return self.root / self.config.test_dir / relative.parent / f"{relative.stem}{TEST_INFIX}{suffix}"

    def package_type(self) -> str:
        """``"module"`` when package.json declares ESM, else ``"commonjs"``."""
        if self._package_type is None:
            self._package_type = "commonjs"
            package_json = self.root / "package.json"
            try:
                data = json.loads(package_json.read_text(encoding="utf-8"))
                if isinstance(data, dict) and data.get("type") == "module":
                    self._package_type = "module"
            except FileNotFoundError:
                pass
            except (OSError, json.JSONDecodeError) as exc:
                logger.warning("Could not read %s: %s", package_json, exc)
        return self._package_type

    def relative_import_path(self, test_path: Path, source_path: str) -> str:
        """Import specifier of the source as seen from the test file."""
        source = self.resolve(source_path)
        specifier = os.path.relpath(source, test_path.parent).replace(os.sep, "/")
        if specifier.endswith(".js") and self.package_type() != "module":
            specifier = specifier[: -len(".js")]
        if not specifier.startswith("."):
            specifier = "./" + specifier
        return specifier

    def import_hints(self, source_path: str, source_text: str | None = None) -> str:
        """The import statement a generated test should start with."""
        if source_text is None:
            try:
                source_text = self.resolve(source_path).read_text(encoding="utf-8")
            except OSError:
                source_text = ""

        test_path = self.test_path(source_path)
        specifier = self.relative_import_path(test_path, source_path)
        exports = sorted(self.extractor.exports(source_text))
        module_name = Path(source_path).stem.replace("-", "_").replace(".", "_")
        esm = self.package_type() == "module"

        if exports:
            names = ", ".join(exports)
            if esm:
                return f'import {{ {names} }} from "{specifier}";'
            return f'const {{ {names} }} = require("{specifier}");'
        if esm:
            return f'import {module_name} from "{specifier}";'
        return f'const {module_name} = require("{specifier}");'

"""YAML configuration loading with include directive support."""

from __future__ import annotations

import os
import sys
from pathlib import Path

import yaml
from platformdirs import user_config_dir
from pydantic_settings import BaseSettings, YamlConfigSettingsSource

# Bootstrap logger used while the real one is not configured yet
_bootstrap_logger = None


def _get_bootstrap_logger():
    global _bootstrap_logger
    if _bootstrap_logger is None:
        from forksync.core.log import ConsoleSink, Logger

        _bootstrap_logger = Logger(console=ConsoleSink(level="warn"))
        _bootstrap_logger.setup(log_root=Path.home(), run_name="bootstrap")
    return _bootstrap_logger


def _cleanup_bootstrap_logger():
    """Close the bootstrap logger once Config has set up the real one."""
    global _bootstrap_logger
    if _bootstrap_logger:
        _bootstrap_logger.close()
        _bootstrap_logger = None


def _cli_includes(argv: list[str]) -> list[str]:
    """Values of every ``--include FILE`` / ``--include=FILE`` in argv."""
    includes = []
    i = 1
    while i < len(argv):
        arg = argv[i]
        if arg == "--include" and i + 1 < len(argv):
            includes.append(argv[i + 1])
            i += 1
        elif arg.startswith("--include="):
            includes.append(arg.split("=", 1)[1])
        i += 1
    return includes


def merge_dicts(base: dict, override: dict) -> dict:
    """Deep merge ``override`` into a copy of ``base`` (override wins)."""
    result = base.copy()
    for key, value in override.items():
        if (
            key in result
            and isinstance(result[key], dict)
            and isinstance(value, dict)
        ):
            result[key] = merge_dicts(result[key], value)
        else:
            result[key] = value
    return result


class YamlWithIncludesSettingsSource(YamlConfigSettingsSource):
    """YAML settings source with ``include:`` and ``--include`` support.

    Deep merges, lowest priority first: package defaults, user config,
    project ``forksync.yaml``, then files named by ``--include``.
    """

    def __init__(self, settings_cls: type[BaseSettings], yaml_file=None):
        includes = _cli_includes(sys.argv)
        self.project_file = yaml_file or settings_cls.model_config.get(
            "yaml_file"
        )
        # An empty list keeps the base class from re-reading yaml_file
        super().__init__(settings_cls, includes)

    def _read_files(self, files, deep_merge: bool = True):
        # Included files always deep merge, whatever deep_merge says
        files_to_load = [
            Path(__file__).parent.parent / "defaults" / "default.yaml",
            Path(user_config_dir("forksync", appauthor=False))
            / "forksync.yaml",
        ]
        if self.project_file:
            files_to_load.append(Path(self.project_file))
        if files:
            if isinstance(files, (str, os.PathLike)):
                files = [files]
            files_to_load.extend(Path(f).expanduser() for f in files)

        result = {}
        for file_path in files_to_load:
            if not file_path.is_file():
                _get_bootstrap_logger().debug(
                    "Configuration file not found (skipping)",
                    file=str(file_path),
                )
                continue
            with _get_bootstrap_logger().span(
                "Configuration loading", file=str(file_path)
            ):
                data = self._load_file_recursive(file_path, set())
                result = merge_dicts(result, data)
        return result

    def _load_file_recursive(self, filepath: Path, visited: set[Path]) -> dict:
        """Load a file, resolving its include: directives first.

        Raises:
            ValueError: Circular include detected
        """
        filepath = filepath.resolve()
        if filepath in visited:
            raise ValueError(f"Circular include: {filepath}")
        visited.add(filepath)

        with open(filepath, encoding="utf-8") as f:
            data = yaml.safe_load(f) or {}

        if "include" in data:
            includes = data.pop("include")
            if isinstance(includes, str):
                includes = [includes]
            for inc in includes:
                inc_path = Path(inc)
                if not inc_path.is_absolute():
                    inc_path = filepath.parent / inc_path
                inc_data = self._load_file_recursive(inc_path, visited.copy())
                # The including file wins over what it includes
                data = merge_dicts(inc_data, data)

        return data

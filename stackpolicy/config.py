"""
Project-level configuration.

Looked up in the project directory, first match wins:
  1. ``stackpolicy.toml``             (top-level keys)
  2. ``pyproject.toml``               (``[tool.stackpolicy]`` table)

Command-line options override anything read here.
"""

from __future__ import annotations

import tomllib
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from .errors import ConfigError
from .facts import DEFAULT_FLAG_FILES
from .policy.schema import SEVERITIES

CONFIG_FILENAME = "stackpolicy.toml"
FAIL_ON_CHOICES = (*SEVERITIES, "never")


@dataclass(frozen=True)
class ProjectConfig:
    catalog: Path | None = None
    strict_catalog: bool = False
    fail_on: str = "mandatory"
    flag_files: tuple[str, ...] = DEFAULT_FLAG_FILES
    flags: dict[str, Any] = field(default_factory=dict)
    disabled_rules: frozenset[str] = frozenset()
    source: Path | None = None


def _read_table(project_dir: Path) -> tuple[dict[str, Any], Path | None]:
    own = project_dir / CONFIG_FILENAME
    if own.is_file():
        return _parse(own), own

    pyproject = project_dir / "pyproject.toml"
    if pyproject.is_file():
        tool = _parse(pyproject).get("tool", {})
        table = tool.get("stackpolicy") if isinstance(tool, dict) else None
        if isinstance(table, dict):
            return table, pyproject

    return {}, None


def _parse(path: Path) -> dict[str, Any]:
    try:
        return tomllib.loads(path.read_text(encoding="utf-8"))
    except (OSError, UnicodeDecodeError, tomllib.TOMLDecodeError) as e:
        raise ConfigError(f"{path}: {e}") from e


def _str_list(value: Any, *, key: str, source: Path) -> tuple[str, ...]:
    if not isinstance(value, list) or not all(isinstance(v, str) for v in value):
        raise ConfigError(f"{source}: {key} must be a list of strings")
    return tuple(value)


def load_project_config(project_dir: Path) -> ProjectConfig:
    """Read configuration for ``project_dir``; defaults when none is present."""
    project_dir = Path(project_dir)
    data, source = _read_table(project_dir)
    if source is None:
        return ProjectConfig()

    catalog = data.get("catalog")
    if catalog is not None and not isinstance(catalog, str):
        raise ConfigError(f"{source}: catalog must be a path string")

    fail_on = str(data.get("fail_on", "mandatory")).strip().lower()
    if fail_on not in FAIL_ON_CHOICES:
        raise ConfigError(f"{source}: fail_on must be one of {', '.join(FAIL_ON_CHOICES)}")

    strict = data.get("strict_catalog", False)
    if not isinstance(strict, bool):
        raise ConfigError(f"{source}: strict_catalog must be true or false")

    flags = data.get("flags", {})
    if not isinstance(flags, dict):
        raise ConfigError(f"{source}: [flags] must be a table")

    flag_files = DEFAULT_FLAG_FILES
    if "flag_files" in data:
        flag_files = _str_list(data["flag_files"], key="flag_files", source=source)

    disabled: tuple[str, ...] = ()
    if "disabled_rules" in data:
        disabled = _str_list(data["disabled_rules"], key="disabled_rules", source=source)

    return ProjectConfig(
        catalog=(project_dir / catalog) if catalog else None,
        strict_catalog=strict,
        fail_on=fail_on,
        flag_files=flag_files,
        flags=dict(flags),
        disabled_rules=frozenset(disabled),
        source=source,
    )

"""
Fact collection: build a FactSnapshot from a project tree or a facts file.

Detection is observational only. Marker files map to artifact tags, flag
files (``.env.example`` style) map to flags. Missing files are not errors;
an empty project yields an empty snapshot.
"""

from __future__ import annotations

import json
import logging
import tomllib
from pathlib import Path
from typing import Any, Iterable, Mapping

import yaml
from dotenv import dotenv_values

from .errors import StackPolicyError
from .policy.schema import FactSnapshot, FlagValue, normalize_flag_value

logger = logging.getLogger(__name__)

DEFAULT_FLAG_FILES = (".env.example",)

# ecosystem -> files whose presence marks it
ECOSYSTEM_MARKERS: dict[str, tuple[str, ...]] = {
    "javascript": ("package.json",),
    "python": ("pyproject.toml", "setup.py", "setup.cfg", "requirements.txt", "Pipfile"),
    "rust": ("Cargo.toml",),
    "go": ("go.mod",),
}

# file -> artifact tag
ARTIFACT_MARKERS: dict[str, str] = {
    "package-lock.json": "npm-lockfile-present",
    "yarn.lock": "yarn-lockfile-present",
    "pnpm-lock.yaml": "pnpm-lockfile-present",
    "bun.lockb": "bun-lockfile-present",
    "bun.lock": "bun-lockfile-present",
    "uv.lock": "uv-lockfile-present",
    "poetry.lock": "poetry-lockfile-present",
    "Pipfile.lock": "pipenv-lockfile-present",
    "Cargo.lock": "cargo-lockfile-present",
    "go.sum": "go-sum-present",
    ".git": "git-repo",
    ".env": "env-file-present",
    ".env.example": "env-example-present",
    "Dockerfile": "dockerfile-present",
    ".pre-commit-config.yaml": "pre-commit-config-present",
    ".github/workflows": "ci-github-actions",
}

JS_LOCKFILES = ("npm-lockfile-present", "yarn-lockfile-present", "pnpm-lockfile-present", "bun-lockfile-present")
PY_LOCKFILES = ("uv-lockfile-present", "poetry-lockfile-present", "pipenv-lockfile-present")

README_NAMES = ("README.md", "README.rst", "README.txt", "README")
TEST_DIRS = ("tests", "test", "__tests__", "spec")
ENV_IGNORE_PATTERNS = {".env", "/.env", ".env*", "/.env*", "*.env"}

def _str_set(value: Any, *, field: str) -> set[str]:
    if value is None:
        return set()
    if isinstance(value, str):
        return {value}
    if not isinstance(value, (list, tuple, set, frozenset)):
        raise StackPolicyError(f"facts: {field} must be a list of strings")
    return {str(v).strip() for v in value if str(v).strip()}


def snapshot_from_dict(data: Mapping[str, Any]) -> FactSnapshot:
    flags_raw = data.get("flags") or {}
    if not isinstance(flags_raw, Mapping):
        raise StackPolicyError("facts: flags must be a table")
    return FactSnapshot(
        ecosystems=frozenset(_str_set(data.get("ecosystems"), field="ecosystems")),
        artifacts=frozenset(_str_set(data.get("artifacts"), field="artifacts")),
        flags={str(k): normalize_flag_value(v) for k, v in flags_raw.items()},
    )


def load_facts(path: Path) -> FactSnapshot:
    """Load a FactSnapshot from a JSON, TOML or YAML file."""
    path = Path(path)
    try:
        text = path.read_text(encoding="utf-8")
    except (OSError, UnicodeDecodeError) as e:
        raise StackPolicyError(f"facts: cannot read {path}: {e}") from e
    suffix = path.suffix.lower()
    try:
        if suffix == ".json":
            data = json.loads(text)
        elif suffix in (".yaml", ".yml"):
            data = yaml.safe_load(text) or {}
        else:
            data = tomllib.loads(text)
    except (json.JSONDecodeError, yaml.YAMLError, tomllib.TOMLDecodeError) as e:
        raise StackPolicyError(f"facts: cannot parse {path}: {e}") from e
    if not isinstance(data, dict):
        raise StackPolicyError(f"facts: {path} must contain a table")
    return snapshot_from_dict(data)


def read_flag_file(path: Path) -> dict[str, FlagValue]:
    """Read KEY=VALUE flags from a dotenv-style file. Missing file -> {}.

    Keys declared without a value are left unset.
    """
    if not path.is_file():
        return {}
    values = dotenv_values(path)
    return {k: normalize_flag_value(v) for k, v in values.items() if k and v not in (None, "")}


def _gitignore_covers_env(project_dir: Path) -> bool:
    gitignore = project_dir / ".gitignore"
    if not gitignore.is_file():
        return False
    for line in gitignore.read_text(encoding="utf-8", errors="replace").splitlines():
        if line.strip() in ENV_IGNORE_PATTERNS:
            return True
    return False


def detect_markers(project_dir: Path) -> tuple[set[str], set[str]]:
    """Return (ecosystems, artifacts) detected from marker files."""
    ecosystems: set[str] = set()
    artifacts: set[str] = set()

    for ecosystem, markers in ECOSYSTEM_MARKERS.items():
        if any((project_dir / m).exists() for m in markers):
            ecosystems.add(ecosystem)

    for marker, artifact in ARTIFACT_MARKERS.items():
        if (project_dir / marker).exists():
            artifacts.add(artifact)

    if "javascript" in ecosystems and not any(a in artifacts for a in JS_LOCKFILES):
        artifacts.add("no-lockfile")

    if (project_dir / "requirements.txt").is_file() and not any(a in artifacts for a in PY_LOCKFILES):
        artifacts.add("pip-bare")

    if _gitignore_covers_env(project_dir):
        artifacts.add("gitignore-covers-env")

    if any((project_dir / name).is_file() for name in README_NAMES):
        artifacts.add("readme-present")

    if any((project_dir / name).is_dir() for name in TEST_DIRS):
        artifacts.add("tests-present")

    return ecosystems, artifacts


def collect_facts(
    project_dir: Path,
    *,
    flag_files: Iterable[str] | None = None,
    config_flags: Mapping[str, Any] | None = None,
    extra_flags: Mapping[str, Any] | None = None,
) -> FactSnapshot:
    """
    Collect a snapshot for ``project_dir``.

    Flag precedence (later wins): flag files in order, project config
    ``[flags]``, then ``extra_flags`` (e.g. ``--flag`` on the command line).
    """
    project_dir = Path(project_dir)
    ecosystems, artifacts = detect_markers(project_dir)

    flags: dict[str, FlagValue] = {}
    for name in flag_files if flag_files is not None else DEFAULT_FLAG_FILES:
        file_flags = read_flag_file(project_dir / name)
        if file_flags:
            logger.debug("read %d flag(s) from %s", len(file_flags), name)
        flags.update(file_flags)

    for source in (config_flags, extra_flags):
        if source:
            flags.update({str(k): normalize_flag_value(v) for k, v in source.items()})

    logger.debug(
        "collected facts for %s: ecosystems=%s artifacts=%s flags=%s",
        project_dir,
        sorted(ecosystems),
        sorted(artifacts),
        sorted(flags),
    )
    return FactSnapshot(ecosystems=frozenset(ecosystems), artifacts=frozenset(artifacts), flags=flags)


def parse_flag_assignments(assignments: Iterable[str]) -> dict[str, FlagValue]:
    """Parse ``KEY=VALUE`` strings (CLI ``--flag``)."""
    flags: dict[str, FlagValue] = {}
    for item in assignments:
        key, sep, value = item.partition("=")
        key = key.strip()
        if not sep or not key:
            raise StackPolicyError(f"invalid flag assignment {item!r}; expected KEY=VALUE")
        flags[key] = normalize_flag_value(value)
    return flags

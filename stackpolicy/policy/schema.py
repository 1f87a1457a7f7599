from __future__ import annotations

import re
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any, Iterable, Literal, Mapping


Domain = Literal[
    "language-tooling",
    "security",
    "auth",
    "cloud",
    "performance",
    "version-control",
    "deployment",
    "documentation",
    "testing",
    "general",
]
Severity = Literal["mandatory", "strong", "advisory"]
FlagValue = str | bool | int | float

_INT_RE = re.compile(r"^[+-]?\d+$")
_FLOAT_RE = re.compile(r"^[+-]?\d+\.\d+$")


def normalize_flag_value(value: Any) -> FlagValue:
    """Coerce a raw flag value to str, bool, int or float.

    Strings that spell booleans or numbers become those types; anything
    else non-scalar is stringified. Collected flags and the values rules
    compare them against both go through here, so ``"20"`` in a flag file
    and ``value = "20"`` in a catalog end up as the same int.
    """
    if isinstance(value, (bool, int, float)):
        return value
    if value is None:
        return ""
    text = str(value).strip()
    lowered = text.lower()
    if lowered in ("true", "yes", "on"):
        return True
    if lowered in ("false", "no", "off"):
        return False
    if _INT_RE.match(text):
        return int(text)
    if _FLOAT_RE.match(text):
        return float(text)
    return text

DOMAINS: tuple[str, ...] = (
    "language-tooling",
    "security",
    "auth",
    "cloud",
    "performance",
    "version-control",
    "deployment",
    "documentation",
    "testing",
    "general",
)

# Lower rank wins inside an exclusion group.
SEVERITY_RANK: dict[str, int] = {"mandatory": 0, "strong": 1, "advisory": 2}
SEVERITIES: tuple[str, ...] = tuple(SEVERITY_RANK)

UNIVERSAL_SCOPE = "*"

DEFAULT_TIERS: tuple[str, ...] = ("free", "hobby", "starter", "pro", "team", "business", "enterprise")


@dataclass(frozen=True)
class Condition:
    """Node of a condition tree.

    ``kind`` is either a connective (``all``, ``any``, ``not``) with
    ``children``, or the name of an atomic predicate with ``params``.
    """

    kind: str
    params: Mapping[str, Any] = field(default_factory=dict)
    children: tuple["Condition", ...] = ()

    def describe(self) -> str:
        """Render the tree as a compact, human-readable expression."""
        if self.kind == "all":
            if not self.children:
                return "always"
            return " AND ".join(_wrap(c) for c in self.children)
        if self.kind == "any":
            if not self.children:
                return "never"
            return " OR ".join(_wrap(c) for c in self.children)
        if self.kind == "not":
            return f"NOT {_wrap(self.children[0])}" if self.children else "NOT ?"
        args = ", ".join(f"{k}={v!r}" for k, v in sorted(self.params.items()))
        return f"{self.kind}({args})"


ALWAYS = Condition(kind="all")


def _wrap(cond: Condition) -> str:
    text = cond.describe()
    if cond.kind in ("all", "any") and len(cond.children) > 1:
        return f"({text})"
    return text


@dataclass(frozen=True)
class Step:
    id: str
    description: str
    command: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {"id": self.id, "description": self.description, "command": self.command}


@dataclass(frozen=True)
class RuleDef:
    id: str
    domain: Domain
    severity: Severity = "advisory"
    action: str = ""
    rationale: str | None = None
    scope: str | None = None
    condition: Condition = ALWAYS
    steps: tuple[Step, ...] = ()
    excludes: frozenset[str] = frozenset()
    supersedes: frozenset[str] = frozenset()

    @property
    def is_universal(self) -> bool:
        return self.scope is None or self.scope == UNIVERSAL_SCOPE

    def applies_to(self, ecosystems: Iterable[str]) -> bool:
        """Scope gate: universal rules always apply, scoped rules need their ecosystem."""
        if self.is_universal:
            return True
        return self.scope in set(ecosystems)


@dataclass(frozen=True)
class FactSnapshot:
    """Immutable capture of a project's state for one evaluation run."""

    ecosystems: frozenset[str] = frozenset()
    artifacts: frozenset[str] = frozenset()
    flags: Mapping[str, FlagValue] = field(default_factory=dict)

    def __post_init__(self) -> None:
        object.__setattr__(self, "ecosystems", frozenset(self.ecosystems))
        object.__setattr__(self, "artifacts", frozenset(self.artifacts))
        object.__setattr__(self, "flags", MappingProxyType(dict(self.flags)))

    def to_dict(self) -> dict[str, Any]:
        return {
            "ecosystems": sorted(self.ecosystems),
            "artifacts": sorted(self.artifacts),
            "flags": dict(sorted(self.flags.items())),
        }


@dataclass(frozen=True)
class Recommendation:
    rule_id: str
    domain: Domain
    severity: Severity
    action: str
    rationale: str | None = None
    steps: tuple[Step, ...] = ()
    superseded_ids: tuple[str, ...] = ()

    def to_dict(self) -> dict[str, Any]:
        return {
            "rule_id": self.rule_id,
            "domain": self.domain,
            "severity": self.severity,
            "action": self.action,
            "rationale": self.rationale,
            "steps": [s.to_dict() for s in self.steps],
            "superseded_ids": list(self.superseded_ids),
        }

"""Error taxonomy for stackpolicy."""

from __future__ import annotations


class StackPolicyError(Exception):
    """Base class for all stackpolicy errors."""


class CatalogError(StackPolicyError):
    """Malformed or internally inconsistent rule data.

    All problems found during a load are collected and reported together so
    a catalog author can fix them in one pass.
    """

    def __init__(self, problems: list[str] | str, *, source: str | None = None) -> None:
        if isinstance(problems, str):
            problems = [problems]
        self.problems = list(problems)
        self.source = source
        where = f" ({source})" if source else ""
        if len(self.problems) == 1:
            message = f"Invalid catalog{where}: {self.problems[0]}"
        else:
            message = f"Invalid catalog{where}: {len(self.problems)} problems\n" + "\n".join(
                f"  - {p}" for p in self.problems
            )
        super().__init__(message)


class EvaluationError(StackPolicyError):
    """A fact in the snapshot has the wrong kind for a rule's comparator.

    Raised by atomic predicates; the evaluator treats the offending rule's
    condition as false and moves on.
    """

    def __init__(self, message: str, *, rule_id: str | None = None, flag: str | None = None) -> None:
        self.rule_id = rule_id
        self.flag = flag
        super().__init__(message)


class ConfigError(StackPolicyError):
    """Malformed project configuration."""

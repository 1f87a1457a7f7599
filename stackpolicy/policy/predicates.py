from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Callable, Mapping

from ..errors import EvaluationError
from .schema import DEFAULT_TIERS, Condition, FactSnapshot


@dataclass(frozen=True)
class PredicateContext:
    snapshot: FactSnapshot
    tiers: tuple[str, ...] = DEFAULT_TIERS


PredicateFn = Callable[[Mapping[str, Any], PredicateContext], bool]

_TRUTHY = {"1", "true", "yes", "on", "enabled"}


def _norm(value: str) -> str:
    return value.strip().lower()


def _same_kind(expected: Any, actual: Any) -> bool:
    if isinstance(expected, bool) or isinstance(actual, bool):
        return isinstance(expected, bool) and isinstance(actual, bool)
    if isinstance(expected, (int, float)):
        return isinstance(actual, (int, float))
    return isinstance(expected, str) and isinstance(actual, str)


def _is_scalar(value: Any) -> bool:
    return isinstance(value, (str, bool, int, float))


def _values_equal(flag: str, expected: Any, actual: Any) -> bool:
    if not _same_kind(expected, actual):
        raise EvaluationError(
            f"flag {flag!r} is {type(actual).__name__}, rule compares against {type(expected).__name__}",
            flag=flag,
        )
    if isinstance(expected, str):
        return _norm(expected) == _norm(actual)
    return expected == actual


def predicate_flag_equals(params: Mapping[str, Any], ctx: PredicateContext) -> bool:
    flag = str(params["flag"])
    if flag not in ctx.snapshot.flags:
        return False
    return _values_equal(flag, params["value"], ctx.snapshot.flags[flag])


def predicate_flag_in(params: Mapping[str, Any], ctx: PredicateContext) -> bool:
    flag = str(params["flag"])
    if flag not in ctx.snapshot.flags:
        return False
    actual = ctx.snapshot.flags[flag]
    comparable = [v for v in params["values"] if _same_kind(v, actual)]
    if params["values"] and not comparable:
        raise EvaluationError(
            f"flag {flag!r} is {type(actual).__name__}, no listed value has that kind",
            flag=flag,
        )
    return any(_values_equal(flag, v, actual) for v in comparable)


def predicate_flag_enabled(params: Mapping[str, Any], ctx: PredicateContext) -> bool:
    value = ctx.snapshot.flags.get(str(params["flag"]))
    if value is None:
        return False
    if isinstance(value, bool):
        return value
    if isinstance(value, (int, float)):
        return value != 0
    return _norm(str(value)) in _TRUTHY


def tier_rank(tier: str, tiers: tuple[str, ...]) -> int | None:
    """Position of ``tier`` on the ladder, or None when it is not on it."""
    ladder = [_norm(t) for t in tiers]
    try:
        return ladder.index(_norm(tier))
    except ValueError:
        return None


def predicate_tier_at_least(params: Mapping[str, Any], ctx: PredicateContext) -> bool:
    flag = str(params["flag"])
    if flag not in ctx.snapshot.flags:
        return False
    actual = ctx.snapshot.flags[flag]
    threshold = params["tier"]

    if isinstance(actual, bool):
        raise EvaluationError(f"flag {flag!r} is a boolean, expected a tier", flag=flag)

    if isinstance(threshold, (int, float)) and not isinstance(threshold, bool):
        if not isinstance(actual, (int, float)):
            raise EvaluationError(f"flag {flag!r}={actual!r} is not numeric", flag=flag)
        return actual >= threshold

    if not isinstance(actual, str):
        raise EvaluationError(f"flag {flag!r}={actual!r} is not a tier name", flag=flag)

    have = tier_rank(actual, ctx.tiers)
    if have is None:
        raise EvaluationError(f"flag {flag!r}={actual!r} is not a known tier", flag=flag)
    need = tier_rank(str(threshold), ctx.tiers)
    if need is None:
        # Thresholds are validated at catalog load; only reachable with a hand-built catalog.
        raise EvaluationError(f"unknown tier threshold {threshold!r}", flag=flag)
    return have >= need


def predicate_artifact_present(params: Mapping[str, Any], ctx: PredicateContext) -> bool:
    return str(params["artifact"]) in ctx.snapshot.artifacts


def predicate_artifact_absent(params: Mapping[str, Any], ctx: PredicateContext) -> bool:
    return str(params["artifact"]) not in ctx.snapshot.artifacts


def predicate_ecosystem_detected(params: Mapping[str, Any], ctx: PredicateContext) -> bool:
    return str(params["ecosystem"]) in ctx.snapshot.ecosystems


PREDICATES: dict[str, PredicateFn] = {
    "flag_equals": predicate_flag_equals,
    "flag_in": predicate_flag_in,
    "flag_enabled": predicate_flag_enabled,
    "tier_at_least": predicate_tier_at_least,
    "artifact_present": predicate_artifact_present,
    "artifact_absent": predicate_artifact_absent,
    "ecosystem_detected": predicate_ecosystem_detected,
}

# Required params per predicate. The first one is the shorthand target
# (``{ artifact_present = "no-lockfile" }``).
PREDICATE_PARAMS: dict[str, tuple[str, ...]] = {
    "flag_equals": ("flag", "value"),
    "flag_in": ("flag", "values"),
    "flag_enabled": ("flag",),
    "tier_at_least": ("flag", "tier"),
    "artifact_present": ("artifact",),
    "artifact_absent": ("artifact",),
    "ecosystem_detected": ("ecosystem",),
}


def evaluate_condition(cond: Condition, ctx: PredicateContext) -> bool:
    """Evaluate a condition tree. Raises EvaluationError on malformed facts."""
    if cond.kind == "all":
        return all(evaluate_condition(c, ctx) for c in cond.children)
    if cond.kind == "any":
        return any(evaluate_condition(c, ctx) for c in cond.children)
    if cond.kind == "not":
        return not evaluate_condition(cond.children[0], ctx)

    fn = PREDICATES.get(cond.kind)
    if fn is None:
        raise EvaluationError(f"unknown predicate {cond.kind!r}")
    return fn(cond.params, ctx)


def validate_condition(cond: Condition, tiers: tuple[str, ...], *, where: str) -> list[str]:
    """Structural checks for a condition tree; returns problem strings."""
    problems: list[str] = []

    if cond.kind in ("all", "any"):
        for child in cond.children:
            problems.extend(validate_condition(child, tiers, where=where))
        return problems

    if cond.kind == "not":
        if len(cond.children) != 1:
            problems.append(f"{where}: 'not' takes exactly one condition")
        for child in cond.children:
            problems.extend(validate_condition(child, tiers, where=where))
        return problems

    required = PREDICATE_PARAMS.get(cond.kind)
    if required is None:
        return [f"{where}: unknown predicate {cond.kind!r}"]

    missing = [p for p in required if p not in cond.params]
    if missing:
        problems.append(f"{where}: {cond.kind} missing params: {', '.join(missing)}")
        return problems

    if cond.kind == "flag_equals" and not _is_scalar(cond.params["value"]):
        problems.append(f"{where}: flag_equals 'value' must be a string, boolean or number")

    if cond.kind == "flag_in":
        values = cond.params["values"]
        if not isinstance(values, (list, tuple)):
            problems.append(f"{where}: flag_in 'values' must be a list")
        elif not all(_is_scalar(v) for v in values):
            problems.append(f"{where}: flag_in 'values' must hold strings, booleans or numbers")

    if cond.kind == "tier_at_least":
        threshold = cond.params["tier"]
        if isinstance(threshold, bool):
            problems.append(f"{where}: tier_at_least 'tier' must be a tier name or number")
        elif isinstance(threshold, str) and tier_rank(threshold, tiers) is None:
            problems.append(f"{where}: unknown tier {threshold!r} (known: {', '.join(tiers)})")

    return problems

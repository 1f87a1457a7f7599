from __future__ import annotations

from dataclasses import dataclass, field, replace
from typing import Callable, Iterable

from ..errors import EvaluationError
from .catalog import RuleCatalog
from .predicates import PredicateContext, evaluate_condition
from .schema import SEVERITY_RANK, FactSnapshot, Recommendation, RuleDef

ErrorCallback = Callable[[RuleDef, EvaluationError], None]


@dataclass(frozen=True)
class Resolution:
    """Outcome of conflict resolution.

    ``superseded`` maps each dropped id to the candidates that superseded it;
    ``excluded`` maps each exclusion loser to the group's survivor. Both are
    for the caller to log or report; the final list is ``recommendations``.
    """

    recommendations: tuple[Recommendation, ...] = ()
    superseded: dict[str, tuple[str, ...]] = field(default_factory=dict)
    excluded: dict[str, str] = field(default_factory=dict)
    skipped: dict[str, str] = field(default_factory=dict)

    def __iter__(self):
        return iter(self.recommendations)

    def __len__(self) -> int:
        return len(self.recommendations)

    @property
    def rule_ids(self) -> list[str]:
        return [r.rule_id for r in self.recommendations]


def _materialize(rule: RuleDef) -> Recommendation:
    return Recommendation(
        rule_id=rule.id,
        domain=rule.domain,
        severity=rule.severity,
        action=rule.action,
        rationale=rule.rationale,
        steps=rule.steps,
    )


def rule_fires(rule: RuleDef, ctx: PredicateContext) -> bool:
    """Scope gate, then condition. EvaluationError propagates."""
    if not rule.applies_to(ctx.snapshot.ecosystems):
        return False
    return evaluate_condition(rule.condition, ctx)


def evaluate(
    catalog: RuleCatalog,
    snapshot: FactSnapshot,
    *,
    on_error: ErrorCallback | None = None,
) -> list[Recommendation]:
    """
    Match every rule against the snapshot and return candidates.

    Candidates come out in catalog declaration order. A rule whose condition
    trips over a malformed fact is skipped (treated as not firing) and
    reported through ``on_error``; the rest of the evaluation continues.
    """
    ctx = PredicateContext(snapshot=snapshot, tiers=catalog.tiers)
    candidates: list[Recommendation] = []

    for rule in catalog.rules:
        try:
            fires = rule_fires(rule, ctx)
        except EvaluationError as e:
            if e.rule_id is None:
                e.rule_id = rule.id
            if on_error is not None:
                on_error(rule, e)
            continue
        if fires:
            candidates.append(_materialize(rule))

    return candidates


class _DisjointSet:
    def __init__(self, items: Iterable[str]) -> None:
        self.parent = {i: i for i in items}

    def find(self, item: str) -> str:
        root = item
        while self.parent[root] != root:
            root = self.parent[root]
        while self.parent[item] != root:
            self.parent[item], item = root, self.parent[item]
        return root

    def union(self, a: str, b: str) -> None:
        ra, rb = self.find(a), self.find(b)
        if ra != rb:
            self.parent[rb] = ra


def resolve_detailed(candidates: Iterable[Recommendation], catalog: RuleCatalog) -> Resolution:
    """
    Resolve supersession, then mutual exclusion.

    1. A candidate named in another candidate's ``supersedes`` is dropped and
       recorded under that candidate's ``superseded_ids``.
    2. Remaining candidates linked through ``excludes`` form groups; each
       group keeps its highest-severity member, earliest declared on ties.

    Survivors keep their relative catalog declaration order.
    """
    ordered = sorted(candidates, key=lambda c: catalog.index_of(c.rule_id))
    present = {c.rule_id for c in ordered}

    superseded_by: dict[str, list[str]] = {}
    for cand in ordered:
        rule = catalog.get(cand.rule_id)
        if rule is None:
            continue
        # Hand-built catalogs may name ids that do not exist; only firing ones matter.
        for target in sorted(rule.supersedes & present, key=catalog.index_of):
            superseded_by.setdefault(target, []).append(cand.rule_id)

    remaining = [c for c in ordered if c.rule_id not in superseded_by]

    groups = _DisjointSet(c.rule_id for c in remaining)
    remaining_ids = {c.rule_id for c in remaining}
    for cand in remaining:
        rule = catalog.get(cand.rule_id)
        if rule is None:
            continue
        for other in rule.excludes:
            if other in remaining_ids:
                groups.union(cand.rule_id, other)

    winners: dict[str, Recommendation] = {}
    for cand in remaining:
        root = groups.find(cand.rule_id)
        best = winners.get(root)
        if best is None or _outranks(cand, best, catalog):
            winners[root] = cand

    excluded: dict[str, str] = {}
    survivors: list[Recommendation] = []
    for cand in remaining:
        winner = winners[groups.find(cand.rule_id)]
        if winner.rule_id != cand.rule_id:
            excluded[cand.rule_id] = winner.rule_id
            continue
        dropped = tuple(t for t, by in superseded_by.items() if cand.rule_id in by)
        if dropped:
            dropped = tuple(sorted(dropped, key=catalog.index_of))
            cand = replace(cand, superseded_ids=dropped)
        survivors.append(cand)

    return Resolution(
        recommendations=tuple(survivors),
        superseded={k: tuple(v) for k, v in superseded_by.items()},
        excluded=excluded,
    )


def _outranks(a: Recommendation, b: Recommendation, catalog: RuleCatalog) -> bool:
    key_a = (SEVERITY_RANK[a.severity], catalog.index_of(a.rule_id))
    key_b = (SEVERITY_RANK[b.severity], catalog.index_of(b.rule_id))
    return key_a < key_b


def resolve(candidates: Iterable[Recommendation], catalog: RuleCatalog) -> list[Recommendation]:
    """Final, conflict-free recommendations in declaration order."""
    return list(resolve_detailed(candidates, catalog).recommendations)


def advise(
    catalog: RuleCatalog,
    snapshot: FactSnapshot,
    *,
    on_error: ErrorCallback | None = None,
) -> Resolution:
    """Evaluate then resolve. Pure: no logging, no I/O."""
    skipped: dict[str, str] = {}

    def _record(rule: RuleDef, err: EvaluationError) -> None:
        skipped[rule.id] = str(err)
        if on_error is not None:
            on_error(rule, err)

    candidates = evaluate(catalog, snapshot, on_error=_record)
    resolution = resolve_detailed(candidates, catalog)
    return replace(resolution, skipped=skipped)

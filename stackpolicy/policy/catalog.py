"""
Rule catalog: an immutable, versioned, validated collection of rules.

Catalogs are built by ``load.py``; once constructed they are read-only and
safe to share between concurrent evaluations.
"""

from __future__ import annotations

import threading
from dataclasses import dataclass, field
from typing import Callable, Iterator

from ..errors import CatalogError
from .schema import DEFAULT_TIERS, RuleDef


@dataclass(frozen=True)
class RuleCatalog:
    catalog_id: str
    version: int
    rules: tuple[RuleDef, ...] = ()
    description: str | None = None
    tiers: tuple[str, ...] = DEFAULT_TIERS
    content_id: str | None = None
    _index: dict[str, int] = field(default_factory=dict, init=False, repr=False, compare=False)

    def __post_init__(self) -> None:
        index: dict[str, int] = {}
        for pos, rule in enumerate(self.rules):
            if rule.id in index:
                raise CatalogError(f"duplicate rule id {rule.id!r}")
            index[rule.id] = pos
        object.__setattr__(self, "_index", index)

    def __iter__(self) -> Iterator[RuleDef]:
        return iter(self.rules)

    def __len__(self) -> int:
        return len(self.rules)

    def __contains__(self, rule_id: object) -> bool:
        return rule_id in self._index

    @property
    def ids(self) -> tuple[str, ...]:
        return tuple(r.id for r in self.rules)

    def get(self, rule_id: str) -> RuleDef | None:
        pos = self._index.get(rule_id)
        return None if pos is None else self.rules[pos]

    def index_of(self, rule_id: str) -> int:
        """Declaration position of a rule (authoring priority)."""
        return self._index[rule_id]

    def domains(self) -> list[str]:
        """Domains in first-declared order."""
        seen: list[str] = []
        for rule in self.rules:
            if rule.domain not in seen:
                seen.append(rule.domain)
        return seen

    def rules_for(self, domain: str | None = None, ecosystem: str | None = None) -> list[RuleDef]:
        """Rules matching a domain and/or ecosystem, in declaration order.

        ``ecosystem`` matches rules scoped to it plus universal rules.
        """
        out: list[RuleDef] = []
        for rule in self.rules:
            if domain is not None and rule.domain != domain:
                continue
            if ecosystem is not None and not rule.applies_to([ecosystem]):
                continue
            out.append(rule)
        return out


class CatalogHolder:
    """Shared reference to the active catalog, with atomic reload.

    Readers call ``current()`` and keep the returned catalog for the whole
    evaluation. ``reload`` builds and validates the replacement before the
    swap, so a failed reload leaves the previous catalog in effect.
    """

    def __init__(self, catalog: RuleCatalog | None = None) -> None:
        self._catalog = catalog
        self._lock = threading.Lock()

    def current(self) -> RuleCatalog:
        catalog = self._catalog
        if catalog is None:
            raise CatalogError("no catalog loaded")
        return catalog

    @property
    def loaded(self) -> bool:
        return self._catalog is not None

    def reload(self, loader: Callable[[], RuleCatalog]) -> RuleCatalog:
        """Load a new catalog and swap it in. CatalogError propagates unchanged."""
        with self._lock:
            new_catalog = loader()
            self._catalog = new_catalog
            return new_catalog

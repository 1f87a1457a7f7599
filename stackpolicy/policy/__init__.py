"""Policy evaluation engine (rules as data, predicates as code)."""

from .catalog import CatalogHolder, RuleCatalog
from .engine import Resolution, advise, evaluate, resolve, resolve_detailed
from .load import catalog_from_dict, load_catalog, load_default_catalog
from .schema import Condition, FactSnapshot, Recommendation, RuleDef, Step
from .sequencer import Action, ExecutionPlan, sequence, sequence_all

__all__ = [
    "Action",
    "CatalogHolder",
    "Condition",
    "ExecutionPlan",
    "FactSnapshot",
    "Recommendation",
    "Resolution",
    "RuleCatalog",
    "RuleDef",
    "Step",
    "advise",
    "catalog_from_dict",
    "evaluate",
    "load_catalog",
    "load_default_catalog",
    "resolve",
    "resolve_detailed",
    "sequence",
    "sequence_all",
]

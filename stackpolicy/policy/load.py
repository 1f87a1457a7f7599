from __future__ import annotations

import hashlib
import re
import tomllib
from dataclasses import replace
from pathlib import Path
from typing import Any

import yaml

from ..errors import CatalogError
from .catalog import RuleCatalog
from .predicates import PREDICATE_PARAMS, validate_condition
from .schema import (
    ALWAYS,
    DEFAULT_TIERS,
    DOMAINS,
    SEVERITIES,
    UNIVERSAL_SCOPE,
    Condition,
    RuleDef,
    Step,
    normalize_flag_value,
)

DEFAULT_CATALOG_PATH = Path(__file__).resolve().parent.parent / "rulesets" / "default.toml"

_SLUG_RE = re.compile(r"[^a-z0-9]+")


def _coerce_dict(value: Any) -> dict[str, Any]:
    return value if isinstance(value, dict) else {}


def _str_or_none(value: Any) -> str | None:
    if not isinstance(value, str):
        return None
    value = value.strip()
    return value or None


def _slug(text: str) -> str:
    return _SLUG_RE.sub("-", text.lower()).strip("-")[:48] or "step"


def _id_set(value: Any, *, where: str, problems: list[str]) -> frozenset[str]:
    if value is None:
        return frozenset()
    if isinstance(value, str):
        value = [value]
    if not isinstance(value, list) or not all(isinstance(v, str) for v in value):
        problems.append(f"{where}: expected a list of rule ids")
        return frozenset()
    return frozenset(v.strip() for v in value if v.strip())


def parse_condition(raw: Any, *, where: str, problems: list[str]) -> Condition:
    """
    Parse the condition syntax used in catalog files.

    A condition is a single-key table: ``{ all = [...] }``, ``{ any = [...] }``,
    ``{ not = {...} }``, or ``{ <predicate> = <params> }`` where params is a
    table or a scalar shorthand for the predicate's first param. A bare list
    is shorthand for ``all``.
    """
    if raw is None:
        return ALWAYS

    if isinstance(raw, list):
        return Condition(kind="all", children=tuple(parse_condition(c, where=where, problems=problems) for c in raw))

    if not isinstance(raw, dict) or len(raw) != 1:
        problems.append(f"{where}: condition must be a single-key table or a list")
        return ALWAYS

    (kind, body), = raw.items()

    if kind in ("all", "any"):
        if not isinstance(body, list):
            problems.append(f"{where}: '{kind}' expects a list of conditions")
            return ALWAYS
        children = tuple(parse_condition(c, where=where, problems=problems) for c in body)
        return Condition(kind=kind, children=children)

    if kind == "not":
        return Condition(kind="not", children=(parse_condition(body, where=where, problems=problems),))

    required = PREDICATE_PARAMS.get(kind)
    if required is None:
        problems.append(f"{where}: unknown predicate {kind!r}")
        return ALWAYS

    if isinstance(body, dict):
        params = dict(body)
    else:
        params = {required[0]: body}

    if kind == "flag_equals" and isinstance(params.get("value"), str):
        params["value"] = normalize_flag_value(params["value"])
    if kind == "flag_in" and isinstance(params.get("values"), list):
        params["values"] = [normalize_flag_value(v) if isinstance(v, str) else v for v in params["values"]]
    return Condition(kind=kind, params=params)


def _parse_steps(raw: Any, action: str, *, where: str, problems: list[str]) -> tuple[Step, ...]:
    if raw is None:
        return (Step(id=_slug(action), description=action),) if action else ()
    if not isinstance(raw, list):
        problems.append(f"{where}: steps must be a list")
        return ()

    steps: list[Step] = []
    seen: set[str] = set()
    for pos, item in enumerate(raw, start=1):
        if isinstance(item, str) and item.strip():
            step = Step(id=_slug(item), description=item.strip())
        elif isinstance(item, dict):
            description = _str_or_none(item.get("description")) or _str_or_none(item.get("id"))
            if description is None:
                problems.append(f"{where}: step {pos} needs an id or description")
                continue
            step_id = _str_or_none(item.get("id")) or _slug(description)
            step = Step(id=step_id, description=description, command=_str_or_none(item.get("command")))
        else:
            problems.append(f"{where}: step {pos} must be a string or table")
            continue

        if step.id in seen:
            problems.append(f"{where}: duplicate step id {step.id!r}")
        seen.add(step.id)
        steps.append(step)
    return tuple(steps)


def _find_supersession_cycle(rules: dict[str, RuleDef]) -> list[str] | None:
    """Return one cycle in the ``supersedes`` graph, if any."""
    WHITE, GREY, BLACK = 0, 1, 2
    color = {rid: WHITE for rid in rules}
    stack: list[str] = []

    def visit(rid: str) -> list[str] | None:
        color[rid] = GREY
        stack.append(rid)
        for nxt in sorted(rules[rid].supersedes):
            if nxt not in rules:
                continue
            if color[nxt] == GREY:
                return stack[stack.index(nxt):] + [nxt]
            if color[nxt] == WHITE:
                found = visit(nxt)
                if found:
                    return found
        stack.pop()
        color[rid] = BLACK
        return None

    for rid in rules:
        if color[rid] == WHITE:
            found = visit(rid)
            if found:
                return found
    return None


def catalog_from_dict(
    data: dict[str, Any],
    *,
    strict: bool = False,
    source: str | None = None,
    content_id: str | None = None,
) -> RuleCatalog:
    """
    Build and validate a catalog from parsed data.

    Asymmetric ``excludes`` declarations are mirrored onto the other rule;
    with ``strict=True`` they are reported as problems instead.
    """
    problems: list[str] = []

    catalog_id = str(data.get("catalog_id", "")).strip()
    if not catalog_id:
        problems.append("catalog_id is required")

    try:
        version = int(data.get("version", 0))
    except (TypeError, ValueError):
        version = 0
    if version <= 0:
        problems.append("version must be a positive integer")

    tiers_raw = data.get("tiers")
    if tiers_raw is None:
        tiers = DEFAULT_TIERS
    elif isinstance(tiers_raw, list) and tiers_raw and all(isinstance(t, str) and t.strip() for t in tiers_raw):
        tiers = tuple(t.strip() for t in tiers_raw)
    else:
        problems.append("tiers must be a non-empty list of names")
        tiers = DEFAULT_TIERS

    defaults = _coerce_dict(data.get("defaults"))
    default_domain = str(defaults.get("domain", "general")).strip() or "general"
    default_severity = str(defaults.get("severity", "advisory")).strip() or "advisory"

    raw_rules = data.get("rules", [])
    if not isinstance(raw_rules, list):
        problems.append("rules must be a list of tables")
        raw_rules = []

    parsed: dict[str, RuleDef] = {}
    for pos, raw in enumerate(raw_rules, start=1):
        if not isinstance(raw, dict):
            problems.append(f"rule #{pos}: must be a table")
            continue

        rule_id = str(raw.get("id", "")).strip()
        if not rule_id:
            problems.append(f"rule #{pos}: id is required")
            continue
        where = f"rule {rule_id!r}"
        if rule_id in parsed:
            problems.append(f"{where}: duplicate id")
            continue

        domain = str(raw.get("domain", default_domain)).strip()
        if domain not in DOMAINS:
            problems.append(f"{where}: unknown domain {domain!r}")

        severity = str(raw.get("severity", default_severity)).strip()
        if severity not in SEVERITIES:
            problems.append(f"{where}: unknown severity {severity!r}")

        scope = _str_or_none(raw.get("scope"))
        if scope == UNIVERSAL_SCOPE:
            scope = None

        action = _str_or_none(raw.get("action")) or ""
        if not action:
            problems.append(f"{where}: action is required")

        condition = parse_condition(raw.get("condition"), where=where, problems=problems)
        problems.extend(validate_condition(condition, tiers, where=where))

        excludes = _id_set(raw.get("excludes"), where=f"{where}.excludes", problems=problems)
        supersedes = _id_set(raw.get("supersedes"), where=f"{where}.supersedes", problems=problems)
        if rule_id in excludes:
            problems.append(f"{where}: rule excludes itself")
        if rule_id in supersedes:
            problems.append(f"{where}: rule supersedes itself")
        both = excludes & supersedes
        if both:
            problems.append(f"{where}: ids both excluded and superseded: {', '.join(sorted(both))}")

        parsed[rule_id] = RuleDef(
            id=rule_id,
            domain=domain,  # type: ignore[arg-type]
            severity=severity,  # type: ignore[arg-type]
            action=action,
            rationale=_str_or_none(raw.get("rationale")),
            scope=scope,
            condition=condition,
            steps=_parse_steps(raw.get("steps"), action, where=where, problems=problems),
            excludes=excludes,
            supersedes=supersedes,
        )

    for rule in parsed.values():
        for ref in sorted(rule.excludes):
            if ref not in parsed:
                problems.append(f"rule {rule.id!r}: excludes unknown rule {ref!r}")
        for ref in sorted(rule.supersedes):
            if ref not in parsed:
                problems.append(f"rule {rule.id!r}: supersedes unknown rule {ref!r}")

    mirrored: dict[str, set[str]] = {rid: set(r.excludes) for rid, r in parsed.items()}
    for rule in parsed.values():
        for ref in sorted(rule.excludes):
            if ref in parsed and rule.id not in parsed[ref].excludes:
                if strict:
                    problems.append(f"rule {rule.id!r} excludes {ref!r} but {ref!r} does not exclude {rule.id!r}")
                else:
                    mirrored[ref].add(rule.id)

    cycle = _find_supersession_cycle(parsed)
    if cycle:
        problems.append(f"supersession cycle: {' -> '.join(cycle)}")

    if problems:
        raise CatalogError(problems, source=source)

    rules = tuple(
        replace(r, excludes=frozenset(mirrored[r.id])) if mirrored[r.id] != r.excludes else r
        for r in parsed.values()
    )

    return RuleCatalog(
        catalog_id=catalog_id,
        version=version,
        rules=rules,
        description=_str_or_none(data.get("description")),
        tiers=tiers,
        content_id=content_id,
    )


def load_catalog(path: Path, *, strict: bool = False) -> RuleCatalog:
    """
    Load a catalog from TOML (``.toml``) or YAML (``.yaml``/``.yml``).

    Rules are data, evaluation is code: nothing in the file is executed.
    """
    path = Path(path)
    try:
        raw_bytes = path.read_bytes()
    except OSError as e:
        raise CatalogError(f"cannot read catalog: {e}", source=str(path)) from e

    suffix = path.suffix.lower()
    try:
        text = raw_bytes.decode("utf-8")
        if suffix in (".yaml", ".yml"):
            data = yaml.safe_load(text) or {}
        else:
            data = tomllib.loads(text)
    except (UnicodeDecodeError, tomllib.TOMLDecodeError, yaml.YAMLError) as e:
        raise CatalogError(f"parse error: {e}", source=str(path)) from e

    if not isinstance(data, dict):
        raise CatalogError("top level must be a table", source=str(path))

    return catalog_from_dict(
        data,
        strict=strict,
        source=str(path),
        content_id=hashlib.sha256(raw_bytes).hexdigest(),
    )


def load_default_catalog(*, strict: bool = False) -> RuleCatalog:
    """Load the built-in tooling policy shipped with the package."""
    return load_catalog(DEFAULT_CATALOG_PATH, strict=strict)


def open_catalog(path: Path | None, *, strict: bool = False) -> RuleCatalog:
    """Load ``path`` if given, else the built-in catalog."""
    if path is None:
        return load_default_catalog(strict=strict)
    return load_catalog(path, strict=strict)

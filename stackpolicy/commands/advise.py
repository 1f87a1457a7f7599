"""Advise command implementation."""

import json
import logging
from collections import defaultdict
from pathlib import Path

from rich.console import Console
from rich.markup import escape
from rich.table import Table

from ..config import load_project_config
from ..facts import collect_facts, load_facts
from ..policy import FactSnapshot, Recommendation, Resolution, RuleCatalog, advise
from ..policy.load import open_catalog
from ..policy.schema import SEVERITY_RANK
from ..policy.sequencer import sequence, sequence_all

logger = logging.getLogger(__name__)

SEVERITY_STYLE = {
    "mandatory": ("MUST", "bold red"),
    "strong": ("SHOULD", "yellow"),
    "advisory": ("MAY", "cyan"),
}


def run_advise(
    project_dir: Path,
    *,
    facts_path: Path | None = None,
    catalog_path: Path | None = None,
    strict_catalog: bool = False,
    extra_flags: dict | None = None,
    output_json: bool = False,
    show_steps: bool = True,
    fail_on: str | None = None,
) -> int:
    """Evaluate the policy for a project and report recommendations.

    Args:
        project_dir: Project root to scan (and to read stackpolicy.toml from)
        facts_path: Use a facts file instead of scanning the project
        catalog_path: Rule catalog to use (defaults to config, then built-in)
        strict_catalog: Reject asymmetric exclusions instead of mirroring them
        extra_flags: Flags that override everything collected
        output_json: Output results as JSON instead of human-readable
        show_steps: Include remediation steps in human output
        fail_on: Lowest severity that makes the exit code non-zero ("never" disables)

    Returns:
        Exit code (0 = nothing at or above fail_on, 1 = otherwise)
    """
    console = Console(stderr=True)
    config = load_project_config(project_dir)

    catalog = open_catalog(
        catalog_path or config.catalog,
        strict=strict_catalog or config.strict_catalog,
    )

    if facts_path is not None:
        snapshot = load_facts(facts_path)
        if extra_flags:
            snapshot = FactSnapshot(
                ecosystems=snapshot.ecosystems,
                artifacts=snapshot.artifacts,
                flags={**snapshot.flags, **extra_flags},
            )
    else:
        snapshot = collect_facts(
            project_dir,
            flag_files=config.flag_files,
            config_flags=config.flags,
            extra_flags=extra_flags,
        )

    resolution = advise(
        catalog,
        snapshot,
        on_error=lambda rule, err: logger.warning("skipped rule %s: %s", rule.id, err),
    )
    _log_dropped(resolution)

    recommendations = [r for r in resolution if r.rule_id not in config.disabled_rules]
    disabled = [r.rule_id for r in resolution if r.rule_id in config.disabled_rules]
    for rule_id in disabled:
        logger.debug("rule %s disabled by project config", rule_id)

    if output_json:
        _output_json(catalog, snapshot, resolution, recommendations, disabled)
    else:
        _print_report(console, catalog, recommendations, show_steps=show_steps)

    threshold = fail_on or config.fail_on
    if threshold == "never":
        return 0
    limit = SEVERITY_RANK[threshold]
    if any(SEVERITY_RANK[r.severity] <= limit for r in recommendations):
        return 1
    return 0


def _log_dropped(resolution: Resolution) -> None:
    for dropped, by in resolution.superseded.items():
        logger.debug("candidate %s superseded by %s", dropped, ", ".join(by))
    for dropped, winner in resolution.excluded.items():
        logger.debug("candidate %s excluded in favour of %s", dropped, winner)


def _counts(recommendations: list[Recommendation]) -> dict[str, int]:
    counts = {s: 0 for s in SEVERITY_RANK}
    for r in recommendations:
        counts[r.severity] += 1
    return counts


def _output_json(
    catalog: RuleCatalog,
    snapshot: FactSnapshot,
    resolution: Resolution,
    recommendations: list[Recommendation],
    disabled: list[str],
) -> None:
    output = {
        "catalog": {
            "catalog_id": catalog.catalog_id,
            "version": catalog.version,
            "content_id": catalog.content_id,
        },
        "facts": snapshot.to_dict(),
        "recommendations": [r.to_dict() for r in recommendations],
        "actions": [a.to_dict() for a in sequence_all(recommendations)],
        "dropped": {
            "superseded": {k: list(v) for k, v in resolution.superseded.items()},
            "excluded": dict(resolution.excluded),
            "skipped": dict(resolution.skipped),
            "disabled": disabled,
        },
        "summary": _counts(recommendations),
    }
    print(json.dumps(output, indent=2, default=str))


def _print_report(
    console: Console,
    catalog: RuleCatalog,
    recommendations: list[Recommendation],
    *,
    show_steps: bool,
) -> None:
    if not recommendations:
        console.print("✅ Nothing to flag", style="bold green")
        return

    by_domain: dict[str, list[Recommendation]] = defaultdict(list)
    for rec in recommendations:
        by_domain[rec.domain].append(rec)

    for domain in catalog.domains():
        recs = by_domain.get(domain)
        if not recs:
            continue
        console.print()
        console.print(f"{domain}", style="bold")
        for rec in recs:
            label, style = SEVERITY_STYLE[rec.severity]
            console.print(f"  [{style}]{label}[/] {rec.rule_id}: {escape(rec.action)}")
            if rec.rationale:
                console.print(f"       {escape(rec.rationale)}", style="dim")
            if rec.superseded_ids:
                console.print(f"       replaces: {', '.join(rec.superseded_ids)}", style="dim")
            if show_steps and len(rec.steps) > 1:
                for action in sequence(rec):
                    cmd = f"  [dim]$ {escape(action.step.command)}[/]" if action.step.command else ""
                    console.print(f"       {action.position}. {escape(action.step.description)}{cmd}")

    counts = _counts(recommendations)
    console.print()
    table = Table(title="Recommendations", show_header=False)
    table.add_column("Severity", style="cyan")
    table.add_column("Count", justify="right")
    for severity in SEVERITY_RANK:
        table.add_row(severity, str(counts[severity]))
    console.print(table)

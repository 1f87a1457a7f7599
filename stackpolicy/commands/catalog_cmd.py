"""Catalog inspection commands: check, list, explain."""

import json
from pathlib import Path

from rich.console import Console
from rich.markup import escape
from rich.table import Table

from ..errors import CatalogError
from ..policy.load import open_catalog


def run_catalog_check(catalog_path: Path | None = None, strict: bool = False) -> int:
    """Validate a catalog and print a summary.

    Returns:
        Exit code (0 = valid, 1 = problems found)
    """
    console = Console(stderr=True)
    try:
        catalog = open_catalog(catalog_path, strict=strict)
    except CatalogError as e:
        console.print(f"✗ {e.source or 'catalog'}: {len(e.problems)} problem(s)", style="bold red")
        for problem in e.problems:
            console.print(f"  - {escape(problem)}", style="red")
        return 1

    console.print(f"✓ {catalog.catalog_id} v{catalog.version}: {len(catalog)} rules", style="bold green")
    table = Table(show_header=True)
    table.add_column("Domain", style="cyan")
    table.add_column("Rules", justify="right")
    for domain in catalog.domains():
        table.add_row(domain, str(len(catalog.rules_for(domain=domain))))
    console.print(table)
    return 0


def run_catalog_list(
    catalog_path: Path | None = None,
    domain: str | None = None,
    ecosystem: str | None = None,
    output_json: bool = False,
) -> int:
    catalog = open_catalog(catalog_path)
    rules = catalog.rules_for(domain=domain, ecosystem=ecosystem)

    if output_json:
        rows = [
            {
                "id": r.id,
                "domain": r.domain,
                "scope": r.scope or "*",
                "severity": r.severity,
                "action": r.action,
                "condition": r.condition.describe(),
                "excludes": sorted(r.excludes),
                "supersedes": sorted(r.supersedes),
            }
            for r in rules
        ]
        print(json.dumps(rows, indent=2))
        return 0

    console = Console(stderr=True)
    table = Table(title=f"{catalog.catalog_id} v{catalog.version}")
    table.add_column("Rule", style="bold")
    table.add_column("Domain", style="cyan")
    table.add_column("Scope")
    table.add_column("Severity")
    table.add_column("Action")
    for r in rules:
        table.add_row(r.id, r.domain, r.scope or "*", r.severity, escape(r.action))
    console.print(table)
    return 0


def run_explain(rule_id: str, catalog_path: Path | None = None) -> int:
    """Explain a specific rule."""
    console = Console(stderr=True)
    catalog = open_catalog(catalog_path)
    rule = catalog.get(rule_id)
    if rule is None:
        console.print(f"Unknown rule: {rule_id}", style="bold red")
        console.print(f"Available: {', '.join(catalog.ids)}", style="dim")
        return 1

    console.print(f"\n{rule.id}", style="bold cyan")
    console.print(f"  Domain: {rule.domain}")
    console.print(f"  Scope: {rule.scope or '*'}")
    console.print(f"  Severity: {rule.severity}")
    console.print(f"  Action: {escape(rule.action)}")
    if rule.rationale:
        console.print(f"  Rationale: {escape(rule.rationale)}")
    console.print(f"  Condition: {escape(rule.condition.describe())}")
    if rule.excludes:
        console.print(f"  Excludes: {', '.join(sorted(rule.excludes, key=catalog.index_of))}")
    if rule.supersedes:
        console.print(f"  Supersedes: {', '.join(sorted(rule.supersedes, key=catalog.index_of))}")

    superseded_by = [r.id for r in catalog if rule.id in r.supersedes]
    if superseded_by:
        console.print(f"  Superseded by: {', '.join(superseded_by)}", style="dim")

    if rule.steps:
        console.print("  Steps:")
        for pos, step in enumerate(rule.steps, start=1):
            line = f"    {pos}. {escape(step.description)}"
            if step.command:
                line += f"  [dim]$ {escape(step.command)}[/]"
            console.print(line)
    console.print()
    return 0

"""CLI entrypoint for stackpolicy."""

import sys
from pathlib import Path

import click

from . import __version__
from .config import FAIL_ON_CHOICES
from .errors import StackPolicyError
from .policy.schema import DOMAINS


def _flags_from_options(values: tuple[str, ...]) -> dict:
    from .facts import parse_flag_assignments

    try:
        return parse_flag_assignments(values)
    except StackPolicyError as e:
        raise click.BadParameter(str(e), param_hint="--flag") from e


def _exit(fn, *args, **kwargs) -> None:
    """Run a command implementation and exit with its code."""
    try:
        code = fn(*args, **kwargs)
    except StackPolicyError as e:
        raise click.ClickException(str(e)) from e
    sys.exit(code)


catalog_option = click.option(
    "--catalog",
    "catalog_path",
    type=click.Path(exists=True, dir_okay=False, path_type=Path),
    default=None,
    help="Rule catalog (TOML or YAML). Defaults to the built-in catalog.",
)

flag_option = click.option(
    "--flag",
    "flags",
    multiple=True,
    metavar="KEY=VALUE",
    help="Set a feature flag, overriding collected values (repeatable)",
)


@click.group()
@click.version_option(__version__, prog_name="stackpolicy")
@click.option("--verbose", "-V", is_flag=True, help="Log debug output (dropped candidates, collected facts)")
def cli(verbose: bool) -> None:
    """stackpolicy - Tooling recommendations from project facts.

    Detects a project's ecosystems, artifacts and feature flags, evaluates
    them against a declarative rule catalog, and reports conflict-free
    recommendations with ordered remediation steps.
    """
    from .logging_setup import configure_logging

    configure_logging(verbose)


@cli.command("advise")
@click.argument(
    "project_dir",
    type=click.Path(exists=True, file_okay=False, dir_okay=True, path_type=Path),
    default=".",
)
@click.option(
    "--facts",
    "facts_path",
    type=click.Path(exists=True, dir_okay=False, path_type=Path),
    default=None,
    help="Read facts from a JSON/TOML/YAML file instead of scanning PROJECT_DIR",
)
@catalog_option
@click.option(
    "--strict-catalog",
    is_flag=True,
    help="Reject asymmetric exclusions instead of mirroring them",
)
@flag_option
@click.option("--json", "output_json", is_flag=True, help="Output results as JSON")
@click.option("--steps/--no-steps", "show_steps", default=True, help="Show remediation steps")
@click.option(
    "--fail-on",
    type=click.Choice(FAIL_ON_CHOICES),
    default=None,
    help="Exit with error if a recommendation of this severity or higher remains (default: mandatory)",
)
def advise_cmd(
    project_dir: Path,
    facts_path: Path | None,
    catalog_path: Path | None,
    strict_catalog: bool,
    flags: tuple[str, ...],
    output_json: bool,
    show_steps: bool,
    fail_on: str | None,
) -> None:
    """Recommend tooling changes for a project.

    Examples:

        stackpolicy advise

        stackpolicy advise ./web --flag CLOUD_TIER=pro --fail-on strong

        stackpolicy advise --facts facts.json --json
    """
    from .commands.advise import run_advise

    _exit(
        run_advise,
        project_dir,
        facts_path=facts_path,
        catalog_path=catalog_path,
        strict_catalog=strict_catalog,
        extra_flags=_flags_from_options(flags),
        output_json=output_json,
        show_steps=show_steps,
        fail_on=fail_on,
    )


@cli.command("facts")
@click.argument(
    "project_dir",
    type=click.Path(exists=True, file_okay=False, dir_okay=True, path_type=Path),
    default=".",
)
@flag_option
@click.option("--json", "output_json", is_flag=True, help="Output the snapshot as JSON")
def facts_cmd(project_dir: Path, flags: tuple[str, ...], output_json: bool) -> None:
    """Show the facts collected for a project."""
    from .commands.facts_cmd import run_facts

    _exit(run_facts, project_dir, extra_flags=_flags_from_options(flags), output_json=output_json)


@cli.group("catalog")
def catalog_group() -> None:
    """Inspect and validate rule catalogs."""


@catalog_group.command("check")
@catalog_option
@click.option("--strict", is_flag=True, help="Reject asymmetric exclusions instead of mirroring them")
def catalog_check(catalog_path: Path | None, strict: bool) -> None:
    """Validate a catalog (ids, references, exclusion symmetry, conditions)."""
    from .commands.catalog_cmd import run_catalog_check

    _exit(run_catalog_check, catalog_path, strict=strict)


@catalog_group.command("list")
@catalog_option
@click.option("--domain", type=click.Choice(DOMAINS), default=None, help="Only rules in this domain")
@click.option("--ecosystem", type=str, default=None, help="Only rules that apply to this ecosystem")
@click.option("--json", "output_json", is_flag=True, help="Output as JSON")
def catalog_list(catalog_path: Path | None, domain: str | None, ecosystem: str | None, output_json: bool) -> None:
    """List rules in declaration order."""
    from .commands.catalog_cmd import run_catalog_list

    _exit(run_catalog_list, catalog_path, domain=domain, ecosystem=ecosystem, output_json=output_json)


@cli.command("explain")
@click.argument("rule_id")
@catalog_option
def explain(rule_id: str, catalog_path: Path | None) -> None:
    """Explain a rule: condition, relations and steps."""
    from .commands.catalog_cmd import run_explain

    _exit(run_explain, rule_id, catalog_path=catalog_path)


def main() -> None:
    cli()


if __name__ == "__main__":
    main()

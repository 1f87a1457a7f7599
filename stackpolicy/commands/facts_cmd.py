"""Facts command: show what would be fed to the engine."""

import json
from pathlib import Path

from rich.console import Console
from rich.table import Table

from ..config import load_project_config
from ..facts import collect_facts


def run_facts(project_dir: Path, extra_flags: dict | None = None, output_json: bool = False) -> int:
    config = load_project_config(project_dir)
    snapshot = collect_facts(
        project_dir,
        flag_files=config.flag_files,
        config_flags=config.flags,
        extra_flags=extra_flags,
    )

    if output_json:
        print(json.dumps(snapshot.to_dict(), indent=2))
        return 0

    console = Console(stderr=True)
    console.print(f"Ecosystems: {', '.join(sorted(snapshot.ecosystems)) or '(none)'}")
    console.print(f"Artifacts: {', '.join(sorted(snapshot.artifacts)) or '(none)'}")

    if snapshot.flags:
        table = Table(title="Flags", show_header=False)
        table.add_column("Flag", style="cyan")
        table.add_column("Value")
        for key, value in sorted(snapshot.flags.items()):
            table.add_row(key, repr(value))
        console.print(table)
    else:
        console.print("Flags: (none)", style="dim")
    return 0

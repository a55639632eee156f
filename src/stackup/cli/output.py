"""Rendering of command results."""

import json
from typing import Any, Dict, List

import click
import yaml
from rich.console import Console
from rich.table import Table

from stackup.differ import plain_data
from stackup.stack.models import ChangeSetSummary, StackEvent

console = Console()


def format_data(data: Any, output_format: str = "json") -> str:
    """Serialize command data as pretty JSON or YAML."""
    if output_format == "yaml":
        return yaml.safe_dump(
            json.loads(json.dumps(plain_data(data), default=str)),
            sort_keys=False,
            default_flow_style=False
        ).rstrip("\n")
    return json.dumps(plain_data(data), indent=2, default=str)


def display_data(data: Any, output_format: str = "json"):
    click.echo(format_data(data, output_format))


def event_data(event: StackEvent) -> Dict[str, Any]:
    """Event fields for data display, with blank fields omitted."""
    data = {
        "timestamp": event.timestamp.astimezone().isoformat(),
        "logical_resource_id": event.logical_resource_id,
        "physical_resource_id": event.physical_resource_id,
        "resource_status": event.resource_status,
        "resource_status_reason": event.resource_status_reason,
    }
    return {key: value for key, value in data.items() if value}


def display_event(event: StackEvent, as_data: bool = False, output_format: str = "json"):
    if as_data:
        display_data(event_data(event), output_format)
    else:
        click.echo(event.summary())


def display_change_set_summaries(summaries: List[ChangeSetSummary]):
    """Print change-sets as a table."""
    if not summaries:
        console.print("[dim]No change-sets found[/dim]")
        return

    table = Table(show_header=True, header_style="bold")
    table.add_column("Name", style="cyan")
    table.add_column("Status")
    table.add_column("Execution Status")

    for summary in summaries:
        table.add_row(summary.name, summary.status, summary.execution_status or "")

    console.print(table)

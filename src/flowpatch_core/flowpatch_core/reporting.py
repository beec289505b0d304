# Copyright (c) Microsoft Corporation.
# Licensed under the MIT License.

"""Terminal rendering of validation reports and diff results."""

from typing import Optional

from rich.console import Console
from rich.panel import Panel
from rich.table import Table
from rich.text import Text

from .workflow.diff import DiffResult
from .workflow.validator import Severity, ValidationReport


def _console(console: Optional[Console]) -> Console:
    return console if console is not None else Console(stderr=True)


def render_report(
    report: ValidationReport,
    console: Optional[Console] = None,
    title: str = "Validation Results",
    quiet: bool = False,
):
    """Print findings as a table followed by a statistics panel.

    With ``quiet`` only errors are listed.
    """
    console = _console(console)
    findings = [f for f in report.findings if not (quiet and f.severity == Severity.WARNING)]

    if findings:
        table = Table(title=title)
        table.add_column("Severity", style="bold")
        table.add_column("Node", style="cyan")
        table.add_column("Message")
        table.add_column("Suggestion", style="green")
        for finding in findings:
            style = "red" if finding.severity == Severity.ERROR else "yellow"
            suggestion = finding.suggestion or "-"
            if finding.suggestion and finding.confidence is not None:
                suggestion += f" ({finding.confidence:.0%})"
            table.add_row(
                f"[{style}]{finding.severity.value}[/{style}]",
                finding.node_name or "-",
                finding.message,
                suggestion,
            )
        console.print(table)

    stats = report.statistics
    summary = Text()
    if report.valid:
        summary.append("✓ Workflow is valid\n\n", style="bold green")
    else:
        summary.append("✗ Workflow is invalid\n\n", style="bold red")
    summary.append(f"Errors: {len(report.errors)}  Warnings: {len(report.warnings)}\n")
    summary.append(
        f"Nodes: {stats.total_nodes} ({stats.enabled_nodes} enabled, {stats.trigger_nodes} triggers)\n"
    )
    summary.append(
        f"Connections: {stats.total_connections} "
        f"({stats.valid_connections} valid, {stats.invalid_connections} invalid)"
    )
    console.print(Panel(summary, border_style="green" if report.valid else "red", expand=False))


def render_diff_result(result: DiffResult, console: Optional[Console] = None):
    """Print the outcome of a diff, its failed operations and any attached report."""
    console = _console(console)
    style = "green" if result.success else "red"
    mark = "✓" if result.success else "✗"
    console.print(Panel(Text(f"{mark} {result.message}", style=f"bold {style}"), border_style=style, expand=False))

    if result.errors:
        table = Table(title="Operation Errors")
        table.add_column("Operation", style="magenta")
        table.add_column("Message")
        for error in result.errors:
            table.add_row("-" if error.operation is None else str(error.operation), error.message)
        console.print(table)

    if result.validation is not None:
        render_report(result.validation, console, title="Resulting Workflow")

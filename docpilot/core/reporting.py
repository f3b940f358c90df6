"""
Progress reporting for the schema provisioner.

The provisioner never prints; it calls the reporter it was constructed with.
LogReporter emits structlog events, ConsoleReporter renders for an operator
at a terminal.
"""

from typing import TYPE_CHECKING, Optional

from rich.console import Console
from rich.table import Table

from docpilot.core.logging import get_logger

if TYPE_CHECKING:
    from docpilot.models.provisioning import ProvisioningReport


class ProvisioningReporter:
    """Reporter interface. The base implementation discards everything."""

    def step_started(self, step: str) -> None:
        pass

    def step_succeeded(self, step: str, message: str) -> None:
        pass

    def warning(self, step: str, message: str) -> None:
        pass

    def step_failed(self, step: str, message: str) -> None:
        pass

    def summary(self, report: "ProvisioningReport") -> None:
        pass


class LogReporter(ProvisioningReporter):
    """Reports provisioning progress as structured log events."""

    def __init__(self, logger=None):
        self.logger = logger or get_logger("docpilot.provisioning")

    def step_started(self, step):
        self.logger.info("step_started", step=step)

    def step_succeeded(self, step, message):
        self.logger.info("step_succeeded", step=step, detail=message)

    def warning(self, step, message):
        self.logger.warning("step_warning", step=step, detail=message)

    def step_failed(self, step, message):
        self.logger.error("step_failed", step=step, detail=message)

    def summary(self, report):
        self.logger.info(
            "provisioning_complete",
            database_id=report.database_id,
            collections=[c.collection_id for c in report.collections],
            changed=report.changed,
            attributes_created=report.attributes_created,
            relationships_created=len(report.relationships_created),
            relationships_existing=len(report.relationships_existing),
        )


class ConsoleReporter(ProvisioningReporter):
    """Human-readable progress on a rich console."""

    def __init__(self, console: Optional[Console] = None):
        self.console = console or Console()

    def step_started(self, step):
        self.console.print(f"[blue]…[/blue] {step}")

    def step_succeeded(self, step, message):
        self.console.print(f"[bold green]✔[/bold green] {message}")

    def warning(self, step, message):
        self.console.print(f"[yellow]![/yellow] {step}: {message}")

    def step_failed(self, step, message):
        self.console.print(f"[bold red]✖ {step} failed:[/bold red] {message}")

    def summary(self, report):
        self.console.print("\n[bold green]🎉 Setup completed successfully![/bold green]")
        if not report.changed:
            self.console.print("[dim]Database already up to date, nothing was created.[/dim]")
        self.console.print(
            f"Database: [yellow]{report.database_id}[/yellow] ({report.database_name})"
            + (" [dim]created[/dim]" if report.database_created else "")
        )

        table = Table(title="Collections")
        table.add_column("Collection", style="yellow")
        table.add_column("Status")
        table.add_column("Attributes created", justify="right")
        table.add_column("Already present", justify="right")
        table.add_column("Skipped", justify="right")
        for collection in report.collections:
            table.add_row(
                f"{collection.collection_id} ({collection.name})",
                "created" if collection.created else "existing",
                str(len(collection.attributes_created)),
                str(len(collection.attributes_existing)),
                str(len(collection.attributes_skipped)),
            )
        self.console.print(table)
        self.console.print(
            f"Relationships: {len(report.relationships_created)} created, "
            f"{len(report.relationships_existing)} already present"
        )

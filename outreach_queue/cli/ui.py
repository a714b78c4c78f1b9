"""Rich terminal UI components for the queue CLI."""

import json
from typing import Dict, List

from rich.console import Console
from rich.panel import Panel
from rich.progress import (
    BarColumn,
    Progress,
    SpinnerColumn,
    TaskID,
    TextColumn,
    TimeElapsedColumn,
)
from rich.table import Table
from rich.text import Text

from outreach_queue.core.model.progress import (
    BatchStatus,
    OutreachProgress,
    ReconciliationResult,
)
from outreach_queue.core.model.queue_item import QueueItem, QueueStatus
from outreach_queue.core.pacing import BatchTimeEstimate, format_duration

STATUS_STYLES = {
    QueueStatus.PENDING: "white",
    QueueStatus.SENT: "blue",
    QueueStatus.CONNECTION_ACCEPTED: "cyan",
    QueueStatus.PITCH_PENDING: "yellow",
    QueueStatus.PITCH_SENT: "magenta",
    QueueStatus.REPLIED: "bold green",
    QueueStatus.FAILED: "red",
}


class TerminalUI:
    """Rich terminal UI for the outreach queue."""

    def __init__(self, output_format: str = "rich"):
        self.console = Console()
        self.output_format = output_format

    def print_json(self, data) -> None:
        print(json.dumps(data, indent=2, default=str))

    def print_queue(self, items: List[QueueItem]) -> None:
        if self.output_format == "json":
            self.print_json([item.to_record() for item in items])
            return
        if not items:
            self.console.print("Queue is empty", style="yellow")
            return

        table = Table(title="Outreach Queue", show_header=True, header_style="bold magenta")
        table.add_column("ID", style="dim")
        table.add_column("Candidate", style="cyan")
        table.add_column("Type", style="blue")
        table.add_column("Status")
        table.add_column("Provider ID", style="dim")
        table.add_column("Error", style="red", max_width=40)

        for item in items:
            error = item.error_message or ""
            table.add_row(
                item.id,
                item.name,
                item.message_type.value,
                Text(item.status.value, style=STATUS_STYLES[item.status]),
                item.provider_id or "-",
                error[:40] + "..." if len(error) > 40 else error,
            )
        self.console.print(table)

    def print_summary(self, counts: Dict[str, int]) -> None:
        if self.output_format == "json":
            self.print_json(counts)
            return

        table = Table(title="Queue Summary", show_header=True, header_style="bold magenta")
        table.add_column("Status", style="cyan")
        table.add_column("Count", justify="right", style="green")
        for status in QueueStatus:
            table.add_row(status.value, str(counts.get(status.value, 0)))
        table.add_row("total", str(counts.get("total", 0)), style="bold")
        self.console.print(table)

        missing = counts.get("missing_provider_id", 0)
        if missing:
            self.console.print(
                f"{missing} pending item(s) have no provider id and will be skipped",
                style="yellow",
            )

    def print_allowance(self, date: str, profile: str, rows: Dict[str, Dict[str, int]]) -> None:
        if self.output_format == "json":
            self.print_json({"date": date, "timing_profile": profile, "kinds": rows})
            return

        table = Table(
            title=f"Daily Allowance {date} ({profile})",
            show_header=True,
            header_style="bold magenta",
        )
        table.add_column("Kind", style="cyan")
        table.add_column("Sent", justify="right")
        table.add_column("Limit", justify="right")
        table.add_column("Remaining", justify="right")
        for kind, row in rows.items():
            style = "red" if row["remaining"] == 0 else "green"
            table.add_row(
                kind,
                str(row["sent"]),
                str(row["limit"]),
                Text(str(row["remaining"]), style=style),
            )
        self.console.print(table)

    def print_estimate(self, count: int, estimate: BatchTimeEstimate) -> None:
        if self.output_format == "json":
            self.print_json({"count": count, **estimate._asdict()})
            return
        self.console.print(
            Panel(
                f"{count} message(s): about {format_duration(estimate.avg_seconds)} "
                f"(between {format_duration(estimate.min_seconds)} and "
                f"{format_duration(estimate.max_seconds)}), "
                f"~{estimate.estimated_breaks} break(s)",
                title="Estimated batch time",
                border_style="cyan",
            )
        )

    def create_progress_display(self) -> Progress:
        """Create a progress display for a batch."""
        return Progress(
            SpinnerColumn(),
            TextColumn("[progress.description]{task.description}"),
            BarColumn(),
            TextColumn("{task.completed}/{task.total}"),
            TimeElapsedColumn(),
            console=self.console,
            transient=False,
        )

    def update_progress(self, display: Progress, task_id: TaskID, progress: OutreachProgress) -> None:
        description = progress.status_message
        if progress.success_count or progress.failure_count:
            description += (
                f" [green]{progress.success_count} sent[/green]"
                f" [red]{progress.failure_count} failed[/red]"
            )
        display.update(
            task_id,
            completed=progress.current,
            total=progress.total,
            description=description,
        )

    def print_batch_result(self, progress: OutreachProgress) -> None:
        if self.output_format == "json":
            self.print_json(progress.model_dump(mode="json"))
            return

        style = {
            BatchStatus.COMPLETE: "green",
            BatchStatus.CANCELLED: "yellow",
        }.get(progress.status, "red")

        summary_text = Text()
        summary_text.append(f"Sent: {progress.success_count}\n", style="green")
        summary_text.append(f"Failed: {progress.failure_count}\n", style="red")
        summary_text.append(f"Processed: {progress.current}/{progress.total}\n")
        summary_text.append(f"\nStatus: {progress.status.value}", style=f"bold {style}")
        self.console.print(Panel(summary_text, title="Batch Finished", border_style=style))

        if progress.errors:
            self.print_errors([f"{e.candidate_name}: {e.error}" for e in progress.errors])

    def print_sync_result(self, result: ReconciliationResult) -> None:
        if self.output_format == "json":
            self.print_json(result.model_dump(mode="json"))
            return

        self.console.print(
            f"Checked {result.items_checked} item(s), "
            f"{result.trackers_found} tracker(s) found, "
            f"{result.updated_items} updated",
            style="green" if result.updated_items else None,
        )
        self.console.print(result.message)
        if result.warning:
            self.console.print(result.warning, style="bold yellow")

    def print_errors(self, errors: List[str]) -> None:
        """Print errors encountered during execution."""
        if not errors:
            return
        self.console.print("\nErrors encountered:", style="bold red")
        for i, error in enumerate(errors, 1):
            self.console.print(f"  {i}. {error}", style="red")

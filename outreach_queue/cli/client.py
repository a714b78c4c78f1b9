"""Command-line client for the outreach queue."""

import json
import sys
import time
from concurrent.futures import ThreadPoolExecutor
from pathlib import Path
from typing import Callable, List, Optional

import typer
from dotenv import load_dotenv
from loguru import logger
from pydantic import ValidationError

from outreach_queue.cli.ui import TerminalUI
from outreach_queue.config.config_loader import AppConfig, load_config
from outreach_queue.core.engine import OutreachEngine
from outreach_queue.core.errors import (
    AdmissionError,
    InvalidTransitionError,
    QueueItemNotFoundError,
    SyncError,
)
from outreach_queue.core.model.progress import OutreachProgress
from outreach_queue.core.model.queue_item import OutreachFlow, QueueItem, QueueStatus
from outreach_queue.core.pacing import CancellationToken, PacingEngine
from outreach_queue.core.utils.logging_config import configure_logging

EngineFactory = Callable[[AppConfig], OutreachEngine]


class QueueCLI:
    """Command-line interface for the outreach queue."""

    def __init__(
        self,
        engine_factory: Optional[EngineFactory] = None,
        configure_logs: bool = True,
    ):
        load_dotenv()

        self.app = typer.Typer(
            name="outreach-queue",
            help="Paced LinkedIn outreach queue with tracker reconciliation",
            no_args_is_help=True,
            rich_markup_mode=None,
        )
        self.ui = TerminalUI("rich")
        self._engine_factory = engine_factory or OutreachEngine
        self._config_path: Optional[str] = None
        self._engine: Optional[OutreachEngine] = None
        self._configure_logs = configure_logs

        self._register_commands()

    def _config(self) -> AppConfig:
        return load_config(self._config_path)

    def _get_engine(self) -> OutreachEngine:
        if self._engine is None:
            self._engine = self._engine_factory(self._config())
        return self._engine

    def _fail(self, message: str) -> None:
        self.ui.console.print(message, style="red")
        raise typer.Exit(code=1)

    def _register_commands(self):
        """Register all CLI commands."""

        @self.app.callback()
        def main(
            config_file: str = typer.Option(
                "", "--config", "-c", help="Path to outreach YAML config"
            ),
            output: str = typer.Option(
                "rich", "--output", "-o", help="Output format: rich or json"
            ),
            log_level: str = typer.Option("", "--log-level", help="Override LOG_LEVEL"),
        ):
            self._config_path = config_file or None
            self.ui = TerminalUI(output)
            if self._configure_logs:
                observability = self._config().observability
                configure_logging(
                    log_level or observability.log_level, observability.log_file
                )

        @self.app.command("list")
        def list_items(
            status: Optional[QueueStatus] = typer.Option(
                None, "--status", "-s", help="Only show items with this status"
            ),
        ):
            """Show queue items."""
            store = self._get_engine().store
            items = store.by_status(status) if status else store.list_items()
            self.ui.print_queue(items)

        @self.app.command("summary")
        def summary():
            """Show counts per status."""
            self.ui.print_summary(self._get_engine().store.summary())

        @self.app.command("allowance")
        def allowance():
            """Show today's sends against the daily caps."""
            self._allowance_command()

        @self.app.command("import")
        def import_items(
            file: Path = typer.Argument(..., exists=True, readable=True, help="JSON file of queue items"),
        ):
            """Enqueue items from a JSON file (a list, or {"items": [...]})."""
            self._import_command(file)

        @self.app.command("send")
        def send(
            item_ids: Optional[List[str]] = typer.Argument(None, help="Queue item ids, in send order"),
            all_pending: bool = typer.Option(
                False, "--all-pending", help="Send every pending item"
            ),
            flow: Optional[OutreachFlow] = typer.Option(
                None, "--flow", help="Restrict to the connection or direct flow"
            ),
        ):
            """Send a paced batch. Ctrl+C stops it at the next pause."""
            self._send_command(list(item_ids or []), all_pending, flow)

        @self.app.command("sync")
        def sync():
            """Force a sync with the tracker service."""
            try:
                result = self._get_engine().reconciler.force_sync()
            except SyncError as e:
                self._fail(str(e))
            self.ui.print_sync_result(result)

        @self.app.command("retry")
        def retry(item_id: str = typer.Argument(..., help="Failed queue item id")):
            """Reset a failed item to pending."""
            try:
                item = self._get_engine().store.retry(item_id)
            except (QueueItemNotFoundError, InvalidTransitionError) as e:
                self._fail(str(e))
            self.ui.console.print(f"{item.name} is pending again", style="green")

        @self.app.command("remove")
        def remove(item_id: str = typer.Argument(..., help="Queue item id")):
            """Remove an item from the queue."""
            try:
                item = self._get_engine().store.remove(item_id)
            except QueueItemNotFoundError as e:
                self._fail(str(e))
            self.ui.console.print(f"Removed {item.name}", style="green")

        @self.app.command("clear")
        def clear(
            yes: bool = typer.Option(False, "--yes", "-y", help="Skip confirmation"),
        ):
            """Remove every item from the queue."""
            if not yes and not typer.confirm("Remove all queue items?"):
                self.ui.console.print("Cancelled.", style="yellow")
                return
            count = self._get_engine().store.clear()
            self.ui.console.print(f"Removed {count} item(s)", style="green")

        @self.app.command("clear-completed")
        def clear_completed():
            """Remove every item that is no longer pending."""
            count = self._get_engine().store.clear_completed()
            self.ui.console.print(f"Removed {count} item(s)", style="green")

        @self.app.command("estimate")
        def estimate(count: int = typer.Argument(..., min=0, help="Number of messages")):
            """Estimate how long a batch would take with the active timing profile."""
            profile = self._config().outreach.active_profile()
            self.ui.print_estimate(count, PacingEngine(profile).estimate_batch_time(count))

        @self.app.command("serve")
        def serve(
            host: str = typer.Option("", "--host", help="Bind host (default from config)"),
            port: int = typer.Option(0, "--port", help="Bind port (default from config)"),
        ):
            """Run the HTTP API."""
            import uvicorn

            api = self._config().api
            uvicorn.run(
                "outreach_queue.core.api.app:app",
                host=host or api.host,
                port=port or api.port,
            )

    def _allowance_command(self) -> None:
        engine = self._get_engine()
        stats = engine.allowance.stats()
        remaining = engine.allowance.remaining_all()
        rows = {
            kind.value: {
                "sent": engine.allowance.sent_today(kind),
                "limit": engine.allowance.limit(kind),
                "remaining": left,
            }
            for kind, left in remaining.items()
        }
        self.ui.print_allowance(stats.date, self._config().outreach.timing_profile, rows)

    def _import_command(self, file: Path) -> None:
        try:
            data = json.loads(file.read_text())
            records = data.get("items", []) if isinstance(data, dict) else data
            items = [QueueItem.model_validate(record) for record in records]
        except (json.JSONDecodeError, ValidationError, AttributeError) as e:
            self._fail(f"Invalid queue file {file}: {e}")

        added = self._get_engine().store.add_items(items)
        skipped = len(items) - len(added)
        self.ui.console.print(f"Added {len(added)} item(s)", style="green")
        if skipped:
            self.ui.console.print(f"Skipped {skipped} duplicate(s)", style="yellow")

    def _send_command(
        self, item_ids: List[str], all_pending: bool, flow: Optional[OutreachFlow]
    ) -> None:
        engine = self._get_engine()
        if all_pending:
            item_ids += [
                item.id
                for item in engine.store.by_status(QueueStatus.PENDING)
                if flow is None or item.flow is flow
            ]
        if not item_ids:
            self._fail("Nothing selected: pass item ids or --all-pending")

        try:
            items = engine.dispatcher.prepare(item_ids, flow)
        except AdmissionError as e:
            self._fail(str(e))

        estimate = engine.pacing.estimate_batch_time(len(items))
        if self.ui.output_format != "json":
            self.ui.print_estimate(len(items), estimate)

        token = CancellationToken()
        final: Optional[OutreachProgress] = None

        with self.ui.create_progress_display() as display:
            task_id = display.add_task("Starting", total=len(items))

            def on_progress(progress: OutreachProgress) -> None:
                self.ui.update_progress(display, task_id, progress)

            with ThreadPoolExecutor(max_workers=1, thread_name_prefix="outreach-batch") as pool:
                future = pool.submit(
                    engine.dispatcher.run,
                    [item.id for item in items],
                    cancel=token,
                    on_progress=on_progress,
                    flow=flow,
                )
                while not future.done():
                    try:
                        time.sleep(0.2)
                    except KeyboardInterrupt:
                        token.cancel()
                        display.console.print(
                            "Cancelling at the next pause...", style="yellow"
                        )
                try:
                    final = future.result()
                except AdmissionError as e:
                    self._fail(str(e))
                except Exception as e:
                    logger.exception("Batch failed")
                    self._fail(f"Batch failed: {e}")

        self.ui.print_batch_result(final)

    def run(self):
        """Run the CLI application."""
        self.app()


def main():
    QueueCLI().run()


if __name__ == "__main__":
    sys.exit(main())

"""
Logging and artifact management for Web Agent.

Handles JSONL step logging, snapshot saving, and rich console output.
"""

import base64
import binascii
import json
import logging
import re
from datetime import datetime
from pathlib import Path
from typing import Any, Optional

from rich.console import Console
from rich.logging import RichHandler
from rich.panel import Panel
from rich.table import Table
from rich.text import Text

from .audit_log import AuditEntry
from .config import get_runs_dir
from .tool_schemas import ToolCall, ToolObservation
from .utils import redact_arguments, truncate_text


def setup_logging(debug: bool = False) -> None:
    """Configure root logging through Rich.

    Args:
        debug: Log at DEBUG instead of WARNING
    """
    logging.basicConfig(
        level=logging.DEBUG if debug else logging.WARNING,
        format="%(name)s: %(message)s",
        handlers=[RichHandler(show_time=debug, show_path=False)],
        force=True,
    )


def slugify(text: str, max_length: int = 30) -> str:
    """Convert text to a filesystem-safe slug."""
    slug = re.sub(r'[^\w\s-]', '', text.lower())
    slug = re.sub(r'[-\s]+', '_', slug).strip('_')
    return slug[:max_length]


class RunLogger:
    """Manages logging and artifacts for a single plan run."""

    def __init__(self, label: str, enable_console: bool = True, runs_dir: Optional[Path] = None):
        """Initialize the run logger.

        Args:
            label: Name of the run (used for directory naming), e.g. the plan file
            enable_console: Whether to print to console
            runs_dir: Parent directory for runs (defaults to the configured one)
        """
        self.label = label
        self.console = Console() if enable_console else None

        timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")
        self.run_dir = (runs_dir or get_runs_dir()) / f"{timestamp}_{slugify(label) or 'run'}"
        self.run_dir.mkdir(parents=True, exist_ok=True)

        self.snapshots_dir = self.run_dir / "snapshots"
        self.snapshots_dir.mkdir(exist_ok=True)

        self.steps_file = self.run_dir / "steps.jsonl"
        self.steps_file.touch()

        self.step_count = 0
        self.failures = 0

    def log_step(self, call: ToolCall, observation: ToolObservation) -> None:
        """Log one tool call and its observation to the JSONL file.

        Typed text is redacted and snapshot images are stored as files
        instead of inline base64.
        """
        self.step_count += 1
        if not observation.ok:
            self.failures += 1

        data = dict(observation.data) if observation.data else None
        if data and "image_base64" in data:
            path = self.save_snapshot(data.pop("image_base64"))
            data["image_file"] = str(path) if path else None

        step_data = {
            "step": self.step_count,
            "timestamp": datetime.now().isoformat(),
            "call": {"name": call.name, "arguments": redact_arguments(call.arguments)},
            "observation": observation.model_copy(update={"data": data}).to_dict(),
        }

        with open(self.steps_file, "a", encoding="utf-8") as f:
            f.write(json.dumps(step_data, default=str) + "\n")

    def save_snapshot(self, image_base64: str) -> Optional[Path]:
        """Decode a base64 PNG into the snapshots directory.

        Returns:
            Path to the saved image, or None if the data is not base64
        """
        try:
            image = base64.b64decode(image_base64, validate=True)
        except (binascii.Error, ValueError):
            return None
        path = self.snapshots_dir / f"step_{self.step_count:03d}.png"
        path.write_bytes(image)
        return path

    def print_header(self, url: Optional[str] = None) -> None:
        """Print the run header to console."""
        if not self.console:
            return

        body = f"[bold cyan]Plan:[/bold cyan] {self.label}"
        if url:
            body += f"\n[bold cyan]Start:[/bold cyan] {url}"
        self.console.print()
        self.console.print(Panel(body, title="Web Agent", border_style="cyan"))
        self.console.print()

    def print_call(self, call: ToolCall) -> None:
        """Print a tool call about to run."""
        if not self.console:
            return

        step_text = Text()
        step_text.append(f"Step {self.step_count + 1}: ", style="bold")
        step_text.append(call.name, style="bold cyan")

        args = redact_arguments(call.arguments)
        args_str = ", ".join(f"{k}={v!r}" for k, v in args.items())
        if args_str:
            step_text.append(f"({truncate_text(args_str, 160)})", style="dim")

        self.console.print(step_text)

    def print_observation(self, observation: ToolObservation) -> None:
        """Print an observation."""
        if not self.console:
            return

        data = observation.data or {}
        if observation.ok:
            summary = observation.message or self._summarize(data)
            self.console.print(f"  [green]ok[/green] {summary}")
        else:
            color = "yellow" if data.get("error") == "PolicyDenied" else "red"
            self.console.print(f"  [{color}]failed[/{color}] {observation.message or 'failed'}")

    @staticmethod
    def _summarize(data: dict[str, Any]) -> str:
        if "count" in data:
            return f"{data['count']} element(s)"
        if "blocks" in data:
            return ", ".join(f"{b['kind']}={b['count']}" for b in data["blocks"])
        if "text" in data:
            return truncate_text(str(data["text"]).replace("\n", " "), 100)
        if "image_base64" in data:
            return "snapshot captured"
        if "answer" in data:
            return f"answer: {data['answer']}"
        return ""

    def print_summary(self) -> None:
        """Print the run summary to console."""
        if not self.console:
            return

        table = Table(title="Run Summary", show_header=False)
        table.add_column("Property", style="dim")
        table.add_column("Value")

        table.add_row("Steps Executed", str(self.step_count))
        table.add_row("Failed Steps", str(self.failures))
        table.add_row("Logs Directory", str(self.run_dir))
        table.add_row("Steps Log", str(self.steps_file))
        table.add_row("Snapshots", str(len(list(self.snapshots_dir.glob("*.png")))))

        self.console.print()
        self.console.print(table)


def print_audit_table(console: Console, entries: list[AuditEntry], title: str = "Audit Log") -> None:
    """Render audit entries as a Rich table.

    Args:
        console: Console to print to
        entries: Entries, oldest first
        title: Table title
    """
    table = Table(title=title)
    table.add_column("Time", style="dim", no_wrap=True)
    table.add_column("Host")
    table.add_column("Action", style="cyan")
    table.add_column("Policy")
    table.add_column("Consent")
    table.add_column("Outcome")
    table.add_column("Parameters", style="dim")

    for entry in entries:
        policy = "[green]allowed[/green]" if entry.policy_allowed else f"[red]denied[/red] {entry.policy_reason or ''}"
        if not entry.requested_consent:
            consent = "-"
        elif entry.user_consented:
            consent = "[green]yes[/green]"
        else:
            consent = "[red]no[/red]"
        if entry.outcome_success is None:
            outcome = "-"
        elif entry.outcome_success:
            outcome = "[green]ok[/green]"
        else:
            outcome = f"[red]failed[/red] {entry.outcome_message or ''}"
        params = ", ".join(f"{k}={v}" for k, v in (entry.parameters or {}).items())

        table.add_row(
            entry.timestamp,
            entry.host or "",
            entry.action,
            policy,
            consent,
            outcome,
            truncate_text(params, 80),
        )

    console.print(table)

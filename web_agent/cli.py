"""
CLI for Web Agent.

Provides the command-line interface using argparse.
"""

import argparse
import asyncio
import json
import logging
import sys
from pathlib import Path
from typing import Any, Optional

from pydantic import ValidationError
from rich.console import Console
from rich.table import Table

from . import __version__
from .approver import get_approver
from .audit_log import AuditLog
from .config import DEFAULTS, AgentConfig
from .logger import RunLogger, print_audit_table, setup_logging
from .tool_registry import ToolRegistry
from .tool_schemas import TOOL_SCHEMAS, ToolCall, ToolName


logger = logging.getLogger(__name__)


def create_parser() -> argparse.ArgumentParser:
    """Create the argument parser."""
    parser = argparse.ArgumentParser(
        prog="web-agent",
        description="Web Agent - drive a browser tab through a closed set of audited tools.",
        epilog="""
Examples:
  # Run a plan of tool calls against a start page
  web-agent run plan.json --url https://example.com

  # Run headless, approving consent prompts automatically
  web-agent run plan.json --headless --auto-approve

  # Review what the agent did on a host
  web-agent audit --host accounts.google.com --limit 20

  # List the available tools
  web-agent tools
        """,
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )

    parser.add_argument(
        "--version",
        action="version",
        version=f"Web Agent {__version__}",
    )

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    # Run command
    run_parser = subparsers.add_parser(
        "run",
        help="Execute a JSON plan of tool calls",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )

    run_parser.add_argument(
        "plan",
        type=Path,
        help='JSON file: a list of {"name", "arguments"} calls, or {"url", "calls"}',
    )

    run_parser.add_argument(
        "--url",
        type=str,
        default=None,
        help="Page to open before the first call",
    )

    run_parser.add_argument(
        "--profile",
        type=str,
        default=None,
        help=f"Profile name for the audit log (default: {DEFAULTS['profile']})",
    )

    run_parser.add_argument(
        "--headless",
        action="store_true",
        default=DEFAULTS["headless"],
        help="Run browser in headless mode",
    )

    run_parser.add_argument(
        "--auto-approve",
        action="store_true",
        default=DEFAULTS["auto_approve"],
        help="Answer consent prompts with their default choice",
    )

    run_parser.add_argument(
        "--min-interval-ms",
        type=int,
        default=None,
        help=f"Minimum spacing between mutating actions (default: {DEFAULTS['min_action_interval_ms']})",
    )

    run_parser.add_argument(
        "--debug",
        action="store_true",
        default=False,
        help="Enable debug logging",
    )

    # Audit command
    audit_parser = subparsers.add_parser(
        "audit",
        help="Show the audit log of a profile",
    )

    audit_parser.add_argument(
        "--profile",
        type=str,
        default=None,
        help=f"Profile name (default: {DEFAULTS['profile']})",
    )

    audit_parser.add_argument(
        "--host",
        type=str,
        default=None,
        help="Only entries for this host",
    )

    audit_parser.add_argument(
        "--limit",
        type=int,
        default=50,
        help="Show at most this many of the latest entries (default: 50)",
    )

    # Tools command
    subparsers.add_parser(
        "tools",
        help="List available tools",
    )

    return parser


def load_plan(path: Path) -> tuple[Optional[str], list[ToolCall]]:
    """Read a plan file.

    Args:
        path: JSON plan file

    Returns:
        Tuple of (start_url, calls)

    Raises:
        ValueError: If the file is not a valid plan
    """
    data: Any = json.loads(path.read_text(encoding="utf-8"))
    url = None
    if isinstance(data, dict):
        url = data.get("url")
        data = data.get("calls")
    if not isinstance(data, list):
        raise ValueError("plan must be a list of tool calls")
    try:
        return url, [ToolCall.model_validate(item) for item in data]
    except ValidationError as e:
        raise ValueError(f"invalid tool call in plan: {e}") from e


async def run_plan(
    config: AgentConfig,
    calls: list[ToolCall],
    start_url: Optional[str],
    run_logger: RunLogger,
) -> int:
    """Launch Chromium and execute the calls in order.

    Returns:
        Exit code (0 when every call succeeded)
    """
    from playwright.async_api import async_playwright

    from .agent import PageAgent
    from .page import PlaywrightPage

    async with async_playwright() as playwright:
        browser = await playwright.chromium.launch(headless=config.headless)
        try:
            context = await browser.new_context(viewport={"width": 1280, "height": 800})
            page = PlaywrightPage(await context.new_page())
            await page.install_runtime()

            agent = PageAgent(
                page,
                config,
                audit_log=AuditLog(config.audit_log_path),
                approver=get_approver(auto_approve=config.auto_approve),
            )
            registry = ToolRegistry(agent)

            if start_url:
                calls = [ToolCall(name="navigate", arguments={"url": start_url})] + calls

            for call in calls:
                run_logger.print_call(call)
                observation = await registry.execute_tool(call)
                run_logger.log_step(call, observation)
                run_logger.print_observation(observation)
        finally:
            await browser.close()

    return 0 if run_logger.failures == 0 else 1


def run_command(args: argparse.Namespace) -> int:
    """Execute the run command.

    Args:
        args: Parsed command line arguments

    Returns:
        Exit code (0 for success, non-zero for failure)
    """
    console = Console()
    setup_logging(args.debug)

    config = AgentConfig.from_cli_args(
        profile=args.profile,
        headless=args.headless,
        auto_approve=args.auto_approve,
        min_action_interval_ms=args.min_interval_ms,
        debug=args.debug,
    )
    config.ensure_directories()

    try:
        start_url, calls = load_plan(args.plan)
    except (OSError, ValueError) as e:
        console.print(f"[bold red]Cannot load plan {args.plan}: {e}[/bold red]")
        return 2

    run_logger = RunLogger(args.plan.stem)
    run_logger.print_header(args.url or start_url)

    try:
        code = asyncio.run(run_plan(config, calls, args.url or start_url, run_logger))
    except KeyboardInterrupt:
        console.print("\n[yellow]Interrupted by user[/yellow]")
        return 130
    except Exception as e:
        logger.debug("Run failed", exc_info=True)
        console.print(f"[bold red]Fatal error: {e}[/bold red]")
        return 1

    run_logger.print_summary()
    return code


def audit_command(args: argparse.Namespace) -> int:
    """Render the audit log of a profile."""
    console = Console()
    config = AgentConfig.from_cli_args(profile=args.profile)
    path = config.audit_log_path

    if not path.exists():
        console.print(f"[dim]No audit log at {path}[/dim]")
        return 0

    log = AuditLog(path)
    if args.host:
        entries = log.entries_for_host(args.host)
        if args.limit and args.limit > 0:
            entries = entries[-args.limit:]
    else:
        entries = log.tail(args.limit) if args.limit and args.limit > 0 else log.all()

    if not entries:
        console.print("[dim]No matching entries.[/dim]")
        return 0

    title = f"Audit Log ({config.profile_name})"
    if args.host:
        title += f" - {args.host}"
    print_audit_table(console, entries, title=title)
    console.print(f"[dim]{len(entries)} of {len(log)} entries from {path}[/dim]")
    return 0


def tools_command() -> int:
    """List the tools and their arguments."""
    console = Console()
    table = Table(title="Tools")
    table.add_column("Name", style="cyan")
    table.add_column("Arguments")
    table.add_column("Description", style="dim")

    for name in ToolRegistry.tool_names():
        schema = TOOL_SCHEMAS[ToolName(name)]
        fields = [field.alias or field_name for field_name, field in schema.model_fields.items()]
        table.add_row(name, ", ".join(fields) or "-", (schema.__doc__ or "").strip())

    console.print(table)
    return 0


def main(argv: Optional[list[str]] = None) -> int:
    """Main entry point.

    Args:
        argv: Command line arguments (uses sys.argv if None)

    Returns:
        Exit code
    """
    parser = create_parser()
    args = parser.parse_args(argv)

    if args.command is None:
        parser.print_help()
        return 0

    if args.command == "run":
        return run_command(args)

    if args.command == "audit":
        return audit_command(args)

    if args.command == "tools":
        return tools_command()

    # Unknown command
    parser.print_help()
    return 1


if __name__ == "__main__":
    sys.exit(main())

"""
CLI interface for Cursor usage monitoring.

Provides command-line access to refresh, notification and credential
management.
"""

import asyncio
import sys
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

import typer
from rich.console import Console

from cursor_usage.client.api import CursorApiClient
from cursor_usage.config.credentials import COOKIE_NAME, CredentialStore
from cursor_usage.config.loader import DEFAULT_CONFIG_PATH, UsageConfig, load_config_or_default
from cursor_usage.core.cache import ExpiringCache
from cursor_usage.core.fingerprint import TEAM_OVERRIDE_KEY, AuthFingerprintTracker
from cursor_usage.core.monitor import UsageMonitor
from cursor_usage.core.notifications import ConsoleNotifier
from cursor_usage.core.reconciler import (
    MissingCredentialError,
    UsageReconciler,
    UsageSnapshot,
    UsageUnavailableError,
)
from cursor_usage.core.status import (
    Severity,
    StatusResult,
    StatusState,
    detail_text,
    severity,
    summary_text,
)
from cursor_usage.logs import configure_logging
from cursor_usage.storage.repository import StateRepository

app = typer.Typer()
console = Console()

EXIT_CODE_PASS = 0
EXIT_CODE_FAIL = 1

_SEVERITY_STYLES = {
    Severity.NORMAL: "green",
    Severity.WARNING: "yellow",
    Severity.ERROR: "red",
}


@dataclass
class Services:
    """Wired collaborators for one CLI invocation."""
    config: UsageConfig
    repository: StateRepository
    cache: ExpiringCache
    credentials: CredentialStore
    tracker: AuthFingerprintTracker
    reconciler: UsageReconciler

    def reconcile_fingerprint(self) -> None:
        self.tracker.reconcile(self.credentials.get(COOKIE_NAME), self.config.team_id)


def _build_services(config_path: str) -> Services:
    """Load settings and wire the core components."""
    config = load_config_or_default(config_path)
    configure_logging(config.log_level)

    repository = StateRepository(config.db_path)
    cache = ExpiringCache(repository)
    credentials_path = Path(config.db_path).expanduser().parent / "credentials.json"
    credentials = CredentialStore(str(credentials_path))
    reconciler = UsageReconciler(
        credentials=credentials,
        cache=cache,
        api_factory=CursorApiClient,
        team_setting=config.team_id,
    )
    return Services(
        config=config,
        repository=repository,
        cache=cache,
        credentials=credentials,
        tracker=AuthFingerprintTracker(repository, cache),
        reconciler=reconciler,
    )


def _services(ctx: typer.Context) -> Services:
    return _build_services(ctx.obj["config_path"])


@app.callback(invoke_without_command=True)
def main(
    ctx: typer.Context,
    config: str = typer.Option(
        DEFAULT_CONFIG_PATH,
        "--config",
        "-c",
        help="Path to YAML settings file"
    ),
):
    """Cursor usage monitor CLI."""
    ctx.obj = {"config_path": config}
    if ctx.invoked_subcommand is None:
        console.print("Cursor Usage - Use --help to see available commands")


@app.command()
def status(ctx: typer.Context):
    """Refresh usage once and print the summary."""
    services = _services(ctx)
    services.reconcile_fingerprint()

    try:
        snapshot = asyncio.run(services.reconciler.refresh())
    except MissingCredentialError as e:
        console.print(f"[yellow]Set Cookie:[/] {e}")
        sys.exit(EXIT_CODE_FAIL)
    except UsageUnavailableError as e:
        console.print(f"[red]Refresh Failed:[/] {e}")
        sys.exit(EXIT_CODE_FAIL)

    _display_snapshot(snapshot)
    sys.exit(EXIT_CODE_PASS)


@app.command("set-cookie")
def set_cookie(
    ctx: typer.Context,
    value: Optional[str] = typer.Argument(
        None,
        help="WorkosCursorSessionToken cookie value (prompted when omitted)"
    ),
):
    """Store the session cookie and invalidate cached data."""
    services = _services(ctx)
    if value is None:
        value = typer.prompt("Enter your WorkosCursorSessionToken cookie value", hide_input=True)

    if not value or not value.strip():
        console.print("[yellow]No cookie value provided.[/]")
        sys.exit(EXIT_CODE_FAIL)

    try:
        services.credentials.store(COOKIE_NAME, value)
        services.tracker.credential_updated(value.strip(), services.config.team_id)
    except Exception as e:
        console.print(f"[red]Failed to save cookie:[/] {str(e)}")
        sys.exit(EXIT_CODE_FAIL)

    console.print("[green]✓[/] Cookie saved successfully")
    sys.exit(EXIT_CODE_PASS)


@app.command()
def team(
    ctx: typer.Context,
    team_id: str = typer.Argument(..., help="Numeric team id, or 'auto' to detect"),
):
    """Choose the team to report on when the settings file leaves it empty."""
    services = _services(ctx)
    selector = team_id.strip().lower()

    if selector == "auto":
        services.repository.delete(TEAM_OVERRIDE_KEY)
        console.print("[green]✓[/] Team will be detected automatically")
    elif selector.isdigit():
        services.repository.set(TEAM_OVERRIDE_KEY, int(selector))
        console.print(f"[green]✓[/] Team set to {int(selector)}")
    else:
        console.print(f"[red]Invalid team id:[/] {team_id}")
        sys.exit(EXIT_CODE_FAIL)

    if services.config.team_id.strip():
        console.print("[dim]Note: team_id in the settings file takes precedence.[/]")
    services.reconcile_fingerprint()
    sys.exit(EXIT_CODE_PASS)


@app.command()
def notify(ctx: typer.Context):
    """Run one daily notification check."""
    services = _services(ctx)
    services.reconcile_fingerprint()
    monitor = _build_monitor(services)

    state = asyncio.run(monitor.scheduler.check())
    console.print(
        f"Notification state for {state.date}: "
        f"attempts={state.attempts}, sent={'yes' if state.sent else 'no'}"
    )
    sys.exit(EXIT_CODE_PASS)


@app.command()
def watch(ctx: typer.Context):
    """Keep refreshing usage and deliver the daily notification."""
    services = _services(ctx)
    services.reconcile_fingerprint()
    monitor = _build_monitor(services, on_status=_display_status_line)

    try:
        asyncio.run(_run_monitor(monitor))
    except KeyboardInterrupt:
        console.print("\nStopped.")
    sys.exit(EXIT_CODE_PASS)


@app.command("clear-cache")
def clear_cache(ctx: typer.Context):
    """Invalidate all cached upstream data."""
    services = _services(ctx)
    services.cache.clear_all()
    services.reconciler.reset_session()
    console.print("[green]✓[/] Cache cleared")
    sys.exit(EXIT_CODE_PASS)


def _build_monitor(services: Services, on_status=None) -> UsageMonitor:
    return UsageMonitor(
        reconciler=services.reconciler,
        repository=services.repository,
        notifier=ConsoleNotifier(console),
        poll_minutes=services.config.poll_minutes,
        notify_hour=services.config.notify_hour,
        on_status=on_status,
    )


async def _run_monitor(monitor: UsageMonitor) -> None:
    await monitor.start()
    try:
        await asyncio.Event().wait()
    finally:
        await monitor.stop()


def _display_snapshot(snapshot: UsageSnapshot) -> None:
    """Display a usage snapshot with its severity color."""
    style = _SEVERITY_STYLES[severity(snapshot)]
    console.print(f"\n[bold {style}]⚡ {summary_text(snapshot)}[/]")
    console.print("-" * 40)
    console.print(detail_text(snapshot), highlight=False)
    console.print(f"\n[dim]Source: {snapshot.source} usage[/]")


def _display_status_line(status: StatusResult) -> None:
    stamp = f"{status.updated_at:%H:%M}" if status.updated_at else "--:--"
    if status.state == StatusState.READY:
        style = _SEVERITY_STYLES[severity(status.snapshot)]
        console.print(f"[dim]{stamp}[/] [{style}]⚡ {summary_text(status.snapshot)}[/]")
    elif status.state == StatusState.UNCONFIGURED:
        console.print(f"[dim]{stamp}[/] [yellow]Set Cookie[/]")
    else:
        console.print(f"[dim]{stamp}[/] [red]Refresh Failed[/] {status.message or ''}")


if __name__ == "__main__":
    app()

"""Command line interface for proton-ovpn."""

from __future__ import annotations

import os
import signal
import threading
from typing import Callable, List, Optional

import click
import psutil
import typer
from rich.console import Console
from rich.table import Table

from . import __version__
from .core.config_store import NO_VPN_DOMAINS, ConfigStore, parse_domain_list
from .core.connection import ConnectionOrchestrator
from .core.errors import ProtonOVPNError
from .core.identity import SssctlIdentityService
from .core.installer import DEFAULT_CHECK_INTERVAL, Installer
from .core.paths import RuntimePaths, UserPaths
from .core.privilege import PrivilegeManager
from .core.resolvers import DOMAIN_ORDER, HOSTNAME_ORDER, WATCHDOG_ORDER, select_resolver
from .core.routing import BypassRoutePlanner
from .core.watchdog import ConnectivityWatchdog
from .utils.logging import configure_console
from .utils.notifications import notify
from .utils.platform import check_dependencies
from .utils.processes import find_openvpn_processes, pid_file_alive, read_pid_file, terminate_openvpn

console = Console()
app = typer.Typer(add_completion=False, help="Connect to ProtonVPN with OpenVPN, keeping selected domains off the tunnel")


def _version_callback(value: bool) -> None:
    if value:
        console.print(__version__)
        raise typer.Exit()


@app.callback()
def main_options(
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Show debug output"),
    version: bool = typer.Option(False, "--version", callback=_version_callback, is_eager=True),
) -> None:
    configure_console(verbose)


def _on_interrupt(cancel: Callable[[], None]) -> None:
    """Turn Ctrl+C and SIGTERM into a call to ``cancel``."""
    signal.signal(signal.SIGINT, lambda *_: cancel())
    signal.signal(signal.SIGTERM, lambda *_: cancel())


@app.command()
def connect(
    no_sssd: bool = typer.Option(False, "--no-sssd", help="Skip SSSD domain controller discovery"),
    no_vpn_domains: Optional[str] = typer.Option(
        None, "--no-vpn-domains", help="Comma-separated domains to route outside the VPN (overrides config)"
    ),
) -> None:
    """Connect using the newest .ovpn file in ~/Downloads."""

    user_paths = UserPaths.for_current_user()
    runtime = RuntimePaths.for_uid()
    privilege = PrivilegeManager()
    store = ConfigStore(user_paths.config_file)
    if store.path.exists():
        console.print(f"Loading configuration from {store.path}")
    domains = store.bypass_domains(override=no_vpn_domains)
    planner = BypassRoutePlanner(
        resolver=select_resolver(DOMAIN_ORDER),
        host_resolver=select_resolver(HOSTNAME_ORDER),
        identity=SssctlIdentityService(privilege),
    )
    orchestrator = ConnectionOrchestrator(
        user_paths,
        runtime,
        planner,
        privilege,
        notifier=notify,
    )
    _on_interrupt(orchestrator.cancel)
    try:
        result = orchestrator.connect(domains, include_identity=not no_sssd)
    except ProtonOVPNError as exc:
        console.print(f"[red]{exc}[/red]")
        raise typer.Exit(code=1)
    colour = "green" if result.ok else "red"
    console.print(f"[{colour}]{result.reason}[/{colour}]")
    raise typer.Exit(code=result.exit_code)


@app.command()
def disconnect() -> None:
    """Stop every running OpenVPN client."""

    stopped = terminate_openvpn(PrivilegeManager())
    if not stopped:
        console.print("OpenVPN is not running")
        return
    notify("OpenVPN", "VPN disconnected.")
    console.print(f"Stopped {stopped} OpenVPN process(es)")


@app.command()
def status(short: bool = typer.Option(False, "--short", help="Print a single line for status bar sensors")) -> None:
    """Show whether an OpenVPN client is running."""

    processes = find_openvpn_processes()
    if short:
        console.print("VPN running" if processes else "VPN not running", highlight=False)
        return
    runtime = RuntimePaths.for_uid()
    table = Table(title="OpenVPN")
    table.add_column("PID")
    table.add_column("Managed")
    table.add_column("Command")
    managed_pid = read_pid_file(runtime.pid_file) if pid_file_alive(runtime.pid_file) else None
    for proc in processes:
        try:
            cmdline = " ".join(proc.cmdline())
        except (psutil.NoSuchProcess, psutil.AccessDenied):
            cmdline = "?"
        table.add_row(str(proc.pid), "Yes" if proc.pid == managed_pid else "No", cmdline)
    console.print(table)
    console.print(f"Log file: {runtime.log_file}")
    if not processes:
        raise typer.Exit(code=1)


def _watchdog() -> ConnectivityWatchdog:
    privilege = PrivilegeManager()
    return ConnectivityWatchdog(
        resolver=select_resolver(WATCHDOG_ORDER),
        identity=SssctlIdentityService(privilege),
        privilege=privilege,
    )


@app.command()
def check(
    check_domain: Optional[str] = typer.Option(
        None, "--check-domain", envvar="CONNECTIVITY_CHECK_DOMAIN", help="Domain that must stay resolvable"
    ),
    sssd_domain: Optional[str] = typer.Option(
        None, "--sssd-domain", envvar="SSSD_DOMAIN", help="SSSD domain that must not be Offline"
    ),
) -> None:
    """Run one watchdog pass; stop OpenVPN if a check fails."""

    try:
        report = _watchdog().run_once(check_domain, sssd_domain)
    except ValueError as exc:
        console.print(f"[red]Error: {exc}[/red]")
        raise typer.Exit(code=1)
    if report.triggered:
        console.print(f"[yellow]Checks failed; stopped {report.terminated} OpenVPN process(es)[/yellow]")


@app.command()
def watch(
    check_domain: Optional[str] = typer.Option(None, "--check-domain", envvar="CONNECTIVITY_CHECK_DOMAIN"),
    sssd_domain: Optional[str] = typer.Option(None, "--sssd-domain", envvar="SSSD_DOMAIN"),
    interval: float = typer.Option(float(DEFAULT_CHECK_INTERVAL), "--interval", min=1.0, help="Seconds between passes"),
) -> None:
    """Run the watchdog in the foreground until interrupted."""

    if not check_domain and not sssd_domain:
        console.print("[red]Error: set --check-domain and/or --sssd-domain[/red]")
        raise typer.Exit(code=1)
    stop_event = threading.Event()
    _on_interrupt(stop_event.set)
    passes = _watchdog().run_forever(check_domain, sssd_domain, interval, stop_event)
    console.print(f"Watchdog stopped after {passes} pass(es)")


def _prompt(text: str, hide: bool) -> str:
    return typer.prompt(text, hide_input=hide)


@app.command()
def install(
    force: bool = typer.Option(False, "--force", help="Overwrite existing shortcuts and indicator config"),
    check_domain: Optional[str] = typer.Option(None, "--check-domain", help="Enable the watchdog for this domain"),
    no_vpn_domains: Optional[str] = typer.Option(None, "--no-vpn-domains", help="Persist the bypass-domain list"),
    check_interval: int = typer.Option(DEFAULT_CHECK_INTERVAL, "--check-interval", min=10),
) -> None:
    """Install dependencies, credentials, the watchdog timer and desktop shortcuts."""

    user_paths = UserPaths.for_current_user()
    console.print(f"Effective user home directory: {user_paths.home}")
    console.print(
        "[yellow]IMPORTANT:[/yellow] use your OpenVPN username and password from "
        "https://account.protonvpn.com/account-password#openvpn, not your normal ProtonVPN login."
    )
    installer = Installer(user_paths, PrivilegeManager(), prompt=_prompt, force=force)
    try:
        report = installer.run(check_domain, no_vpn_domains, check_interval)
    except ProtonOVPNError as exc:
        console.print(f"[red]{exc}[/red]")
        raise typer.Exit(code=1)
    for warning in report.warnings:
        console.print(f"[yellow]Warning: {warning}[/yellow]")
    console.print("[green]OpenVPN setup completed successfully![/green]")
    console.print("Next steps:")
    console.print("1) Place one or more .ovpn files in ~/Downloads. The newest one is used on connect.")
    console.print("2) If the desktop icons show 'Allow Launching', right-click them and allow it.")
    missing = [name for name, found in check_dependencies().items() if not found]
    if missing:
        console.print(f"Optional tools not found: {', '.join(missing)}")


@app.command("config")
def show_config(
    no_vpn_domains: Optional[str] = typer.Option(None, "--no-vpn-domains", help="Replace the saved bypass-domain list"),
) -> None:
    """Show or update the saved settings."""

    user_paths = UserPaths.for_current_user()
    store = ConfigStore(user_paths.config_file, owner=os.environ.get("SUDO_USER"))
    if no_vpn_domains is not None:
        store.set(NO_VPN_DOMAINS, ",".join(parse_domain_list(no_vpn_domains)))
    table = Table(title=str(store.path))
    table.add_column("Key")
    table.add_column("Value")
    for key, value in store.load().items():
        table.add_row(key, value)
    console.print(table)


def run_cli(argv: List[str] | None = None) -> int:
    try:
        result = app(args=argv, prog_name="proton-ovpn", standalone_mode=False)
    except click.ClickException as exc:
        exc.show()
        return exc.exit_code
    except click.exceptions.Abort:
        console.print("Aborted")
        return 1
    # without standalone mode click hands back typer.Exit codes as the return value
    return result if isinstance(result, int) else 0

"""Command-line interface for parentctl."""

import logging
import sys
import time
from collections.abc import Callable
from pathlib import Path
from typing import Any, Optional

import click
from rich.console import Console
from rich.table import Table

from parentctl.blocker import HostsBlocker
from parentctl.config import Config, find_config_file, load_config, merge_cli_options
from parentctl.models import BlockRule, EnforcementEvent, RuleMode, SiteRule, TerminationOutcome
from parentctl.monitor import MonitorConfig, ProcessMonitor
from parentctl.policies import RuleBook
from parentctl.security import CredentialGuard, GuardOutcome
from parentctl.storage import RuleStore

console = Console()

# How often the running monitor persists accumulated usage (seconds)
USAGE_SAVE_INTERVAL = 30

OUTCOME_STYLES = {
    TerminationOutcome.GRACEFUL: "green",
    TerminationOutcome.FORCED: "yellow",
    TerminationOutcome.FAILED: "red bold",
}

MODE_STYLES = {
    RuleMode.DISABLED: "dim",
    RuleMode.IMMEDIATE_BLOCK: "red",
    RuleMode.SCHEDULED_WITH_LIMIT: "yellow",
    RuleMode.SCHEDULED_UNLIMITED: "red",
}


def _prompt_password() -> Optional[bytearray]:
    """Ask for the parental password; None if the user declines."""
    try:
        value = click.prompt("Parental password", hide_input=True, default="", show_default=False)
    except click.Abort:
        return None
    if not value:
        return None
    return bytearray(value.encode("utf-8"))


def _guarded(ctx: click.Context, action: Callable[[], Any]) -> Any:
    """Run a mutating action behind the parental password, exiting on refusal."""
    guard: CredentialGuard = ctx.obj["guard"]
    try:
        result = guard.guard(action, _prompt_password)
    except OSError as e:
        console.print(f"[red]Error: {e}[/red]")
        sys.exit(1)

    if result.outcome == GuardOutcome.DENIED:
        console.print("[red]Incorrect password[/red]")
        sys.exit(1)
    if result.outcome == GuardOutcome.CANCELLED:
        console.print("[yellow]Action cancelled[/yellow]")
        sys.exit(1)
    return result.value


def _load_book(ctx: click.Context) -> RuleBook:
    store: RuleStore = ctx.obj["store"]
    try:
        rules, sites = store.load()
    except OSError as e:
        console.print(f"[red]Cannot load rules: {e}[/red]")
        sys.exit(1)
    return RuleBook(rules, sites)


def _save_book(ctx: click.Context, book: RuleBook) -> None:
    store: RuleStore = ctx.obj["store"]
    try:
        with book.lock:
            store.save(book.rules, book.sites)
    except OSError as e:
        console.print(f"[red]Cannot save rules: {e}[/red]")
        sys.exit(1)


def _apply_sites(ctx: click.Context, book: RuleBook) -> None:
    blocker: HostsBlocker = ctx.obj["blocker"]
    try:
        with book.lock:
            count = blocker.apply(book.sites)
    except OSError as e:
        console.print(f"[red]Website blocking failed: {e}[/red]")
        console.print("[dim]Editing the hosts file usually requires administrator rights[/dim]")
        sys.exit(1)
    active = sum(1 for site in book.sites if site.enabled)
    console.print(f"[green]Website blocking applied: {active} active sites, {count} host names[/green]")


def _make_monitor(cfg: Config, book: RuleBook, listener=None) -> ProcessMonitor:
    monitor_config = MonitorConfig(poll_interval=cfg.poll_interval, grace_period=cfg.grace_period)
    return ProcessMonitor(book.rules, book.lock, config=monitor_config, listener=listener)


def _print_event(event: EnforcementEvent) -> None:
    style = OUTCOME_STYLES.get(event.outcome, "white")
    console.print(f"[{style}][{event.outcome.value.upper()}][/{style}] {event.summary}")


def _stop_allowed(ctx: click.Context) -> bool:
    """Ask for the parental password before the monitor may stop."""
    guard: CredentialGuard = ctx.obj["guard"]
    console.print()
    try:
        result = guard.guard(lambda: True, _prompt_password)
    except OSError as e:
        console.print(f"[red]Could not check password: {e}[/red]")
        return False

    if result.outcome == GuardOutcome.DENIED:
        console.print("[red]Incorrect password[/red]")
    return result.ran


def _sync_book(ctx: click.Context, book: RuleBook, apply_sites: bool) -> None:
    """Merge rule edits saved by other commands into the running book, then save it."""
    store: RuleStore = ctx.obj["store"]
    blocker: HostsBlocker = ctx.obj["blocker"]

    try:
        rules, sites = store.load()
    except OSError as e:
        console.print(f"[red]Cannot reload rules: {e}[/red]")
        return

    sites_changed = book.reload(rules, sites)

    if apply_sites and sites_changed:
        try:
            with book.lock:
                blocker.apply(book.sites)
        except OSError as e:
            console.print(f"[red]Website blocking failed: {e}[/red]")

    try:
        with book.lock:
            store.save(book.rules, book.sites)
    except OSError as e:
        console.print(f"[red]Auto-save failed: {e}[/red]")


def _require_rule(book: RuleBook, key: str) -> BlockRule:
    rule = book.get_rule(key)
    if rule is None:
        console.print(f"[red]No unique app rule matches '{key}'[/red]")
        sys.exit(1)
    return rule


def _require_site(book: RuleBook, key: str) -> SiteRule:
    site = book.get_site(key)
    if site is None:
        console.print(f"[red]No unique site rule matches '{key}'[/red]")
        sys.exit(1)
    return site


@click.group()
@click.option(
    "--config",
    "-c",
    type=click.Path(exists=True, path_type=Path),
    default=None,
    help="Path to config file (default: searches standard locations)",
)
@click.option(
    "--data-dir",
    type=click.Path(file_okay=False, path_type=Path),
    default=None,
    help="Directory holding the rule list and password record",
)
@click.option(
    "--hosts",
    type=click.Path(dir_okay=False, path_type=Path),
    default=None,
    help="Hosts file to manage (default: the system hosts file)",
)
@click.option("--verbose", "-v", is_flag=True, help="Verbose logging")
@click.pass_context
def main(
    ctx: click.Context,
    config: Optional[Path],
    data_dir: Optional[Path],
    hosts: Optional[Path],
    verbose: bool,
) -> None:
    """parentctl - Parental control for applications and websites."""
    ctx.ensure_object(dict)

    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(asctime)s [%(levelname)s] %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )

    cfg = merge_cli_options(load_config(config), data_dir=data_dir, hosts=hosts)
    ctx.obj["config"] = cfg

    config_path = config or find_config_file()
    if config_path:
        ctx.obj["config_path"] = config_path

    ctx.obj["store"] = RuleStore(cfg.data_dir)
    ctx.obj["blocker"] = HostsBlocker(cfg.hosts_path, cfg.hosts_backup_path)
    ctx.obj["guard"] = CredentialGuard(
        cfg.password_path,
        iterations=cfg.kdf_iterations,
        key_length=cfg.kdf_key_length,
        salt_length=cfg.kdf_salt_length,
    )


@main.command()
@click.pass_context
def rules(ctx: click.Context) -> None:
    """List app rules with schedule and today's usage."""
    book = _load_book(ctx)

    if not book.rules:
        console.print("[yellow]No app rules configured[/yellow]")
        return

    table = Table(title="Blocked Applications")
    table.add_column("ID", style="dim")
    table.add_column("Name")
    table.add_column("Executable")
    table.add_column("Mode")
    table.add_column("Schedule")
    table.add_column("Usage today", justify="right")

    for rule in book.rules:
        style = MODE_STYLES.get(rule.mode, "white")
        table.add_row(
            rule.id[:8],
            rule.friendly_name,
            rule.exe_path or rule.exe_name,
            f"[{style}]{rule.mode.value}[/{style}]",
            rule.schedule_summary,
            rule.usage_summary,
        )

    console.print(table)
    console.print(f"[dim]{len(book.rules)} rules, {sum(1 for r in book.rules if r.enabled)} active[/dim]")


@main.command()
@click.pass_context
def sites(ctx: click.Context) -> None:
    """List site rules and what the hosts file currently blocks."""
    book = _load_book(ctx)
    blocker: HostsBlocker = ctx.obj["blocker"]

    if not book.sites:
        console.print("[yellow]No site rules configured[/yellow]")
        return

    try:
        blocked = set(blocker.blocked_hosts())
    except OSError as e:
        console.print(f"[yellow]Cannot read hosts file: {e}[/yellow]")
        blocked = set()

    table = Table(title="Blocked Websites")
    table.add_column("ID", style="dim")
    table.add_column("Title")
    table.add_column("Domain")
    table.add_column("Enabled")
    table.add_column("In hosts file")

    for site in book.sites:
        host = site.host
        table.add_row(
            site.id[:8],
            site.title,
            site.display_domain,
            "[green]yes[/green]" if site.enabled else "[dim]no[/dim]",
            "yes" if host and host in blocked else "no",
        )

    console.print(table)


@main.command("add-app")
@click.argument("name")
@click.option("--exe", "exe_name", type=str, default="", help="Executable name (e.g., game.exe)")
@click.option("--path", "exe_path", type=str, default="", help="Absolute executable path")
@click.option("--limit", type=click.IntRange(min=0), default=0, help="Daily limit in minutes (0 = none)")
@click.option("--schedule", type=str, default="", help="Allowed intervals, e.g. '09:00-12:00,18:00-20:00'")
@click.option("--immediate", is_flag=True, help="Block immediately, ignoring schedule and limit")
@click.pass_context
def add_app(
    ctx: click.Context,
    name: str,
    exe_name: str,
    exe_path: str,
    limit: int,
    schedule: str,
    immediate: bool,
) -> None:
    """Add an application rule."""
    rule = BlockRule(
        display_name=name,
        exe_name=exe_name,
        exe_path=exe_path,
        daily_limit_minutes=limit,
        allowed_intervals=schedule,
        immediate_block=immediate,
    )
    if not rule.is_actionable:
        console.print("[red]Error: Must specify either --exe or --path[/red]")
        sys.exit(1)

    book = _load_book(ctx)

    _guarded(ctx, lambda: book.add_rule(rule))
    _save_book(ctx, book)
    console.print(f"[green]Added {rule.friendly_name} ({rule.id[:8]})[/green]")

    if immediate:
        for event in _make_monitor(ctx.obj["config"], book).block_now(rule):
            _print_event(event)


@main.command("edit-app")
@click.argument("key")
@click.option("--name", type=str, default=None)
@click.option("--exe", "exe_name", type=str, default=None)
@click.option("--path", "exe_path", type=str, default=None)
@click.option("--limit", type=click.IntRange(min=0), default=None)
@click.option("--schedule", type=str, default=None)
@click.option("--immediate/--no-immediate", default=None)
@click.option("--enable/--disable", "enabled", default=None)
@click.pass_context
def edit_app(ctx: click.Context, key: str, **fields: Any) -> None:
    """Edit an application rule (by id, id prefix or name)."""
    book = _load_book(ctx)
    rule = _require_rule(book, key)

    names = {
        "name": "display_name",
        "exe_name": "exe_name",
        "exe_path": "exe_path",
        "limit": "daily_limit_minutes",
        "schedule": "allowed_intervals",
        "immediate": "immediate_block",
        "enabled": "enabled",
    }
    changes = {names[option]: value for option, value in fields.items() if value is not None}
    if not changes:
        console.print("[yellow]Nothing to change[/yellow]")
        return

    edited = BlockRule(
        exe_name=changes.get("exe_name", rule.exe_name),
        exe_path=changes.get("exe_path", rule.exe_path),
    )
    if not edited.is_actionable:
        console.print("[red]Error: A rule needs an executable name or path[/red]")
        sys.exit(1)

    _guarded(ctx, lambda: book.update_rule(rule, **changes))
    _save_book(ctx, book)
    console.print(f"[green]Updated {rule.friendly_name}[/green]")

    if rule.immediate_block:
        for event in _make_monitor(ctx.obj["config"], book).block_now(rule):
            _print_event(event)


@main.command("remove-app")
@click.argument("key")
@click.pass_context
def remove_app(ctx: click.Context, key: str) -> None:
    """Remove an application rule."""
    book = _load_book(ctx)
    rule = _require_rule(book, key)
    _guarded(ctx, lambda: book.remove_rule(rule))
    _save_book(ctx, book)
    console.print(f"[green]Removed {rule.friendly_name}[/green]")


@main.command()
@click.argument("key")
@click.pass_context
def block(ctx: click.Context, key: str) -> None:
    """Block an application now and keep it blocked."""
    book = _load_book(ctx)
    rule = _require_rule(book, key)

    _guarded(ctx, lambda: book.block_app(rule))
    _save_book(ctx, book)

    events = _make_monitor(ctx.obj["config"], book).block_now(rule)
    if not events:
        console.print(f"[cyan]{rule.friendly_name} is blocked (not currently running)[/cyan]")
    for event in events:
        _print_event(event)


@main.command()
@click.argument("key")
@click.pass_context
def unblock(ctx: click.Context, key: str) -> None:
    """Unblock an application (disables its rule)."""
    book = _load_book(ctx)
    rule = _require_rule(book, key)

    changed = _guarded(ctx, lambda: book.unblock_app(rule))
    if not changed:
        console.print(f"[yellow]{rule.friendly_name} is already unblocked[/yellow]")
        return
    _save_book(ctx, book)
    console.print(f"[green]Unblocked {rule.friendly_name}[/green]")


@main.command("add-site")
@click.argument("url")
@click.option("--title", type=str, default="", help="Short description")
@click.pass_context
def add_site(ctx: click.Context, url: str, title: str) -> None:
    """Add a website rule and apply it to the hosts file."""
    site = SiteRule(title=title or url, url_pattern=url)
    if site.host is None:
        console.print(f"[red]No host name found in '{url}'[/red]")
        sys.exit(1)

    book = _load_book(ctx)
    _guarded(ctx, lambda: book.add_site(site))
    _save_book(ctx, book)
    _apply_sites(ctx, book)


@main.command("remove-site")
@click.argument("key")
@click.pass_context
def remove_site(ctx: click.Context, key: str) -> None:
    """Remove a website rule and update the hosts file."""
    book = _load_book(ctx)
    site = _require_site(book, key)
    _guarded(ctx, lambda: book.remove_site(site))
    _save_book(ctx, book)
    _apply_sites(ctx, book)


@main.command("block-site")
@click.argument("key")
@click.pass_context
def block_site(ctx: click.Context, key: str) -> None:
    """Enable a website rule (or re-apply it)."""
    book = _load_book(ctx)
    site = _require_site(book, key)
    changed = _guarded(ctx, lambda: book.set_site_enabled(site, True))
    if not changed:
        console.print(f"[cyan]Re-applying block for {site.display_domain}[/cyan]")
    _save_book(ctx, book)
    _apply_sites(ctx, book)


@main.command("unblock-site")
@click.argument("key")
@click.pass_context
def unblock_site(ctx: click.Context, key: str) -> None:
    """Disable a website rule."""
    book = _load_book(ctx)
    site = _require_site(book, key)
    changed = _guarded(ctx, lambda: book.set_site_enabled(site, False))
    if not changed:
        console.print(f"[yellow]{site.display_domain} is already unblocked[/yellow]")
        return
    _save_book(ctx, book)
    _apply_sites(ctx, book)


@main.command("apply-sites")
@click.pass_context
def apply_sites(ctx: click.Context) -> None:
    """Rewrite the hosts file block from the enabled site rules."""
    book = _load_book(ctx)
    _apply_sites(ctx, book)


@main.command("clear-sites")
@click.pass_context
def clear_sites(ctx: click.Context) -> None:
    """Remove the parental control block from the hosts file."""
    blocker: HostsBlocker = ctx.obj["blocker"]
    book = _load_book(ctx)

    removed = _guarded(ctx, lambda: blocker.remove_all(book.sites))
    if removed:
        console.print("[green]Website blocking removed from hosts file[/green]")
    else:
        console.print("[yellow]Hosts file has no parental control section[/yellow]")


@main.command("set-password")
@click.pass_context
def set_password(ctx: click.Context) -> None:
    """Set or change the parental password."""
    guard: CredentialGuard = ctx.obj["guard"]

    def change() -> None:
        new = click.prompt("New password", hide_input=True, confirmation_prompt=True)
        try:
            guard.set_password(bytearray(new.encode("utf-8")))
        except ValueError as e:
            console.print(f"[red]{e}[/red]")
            sys.exit(1)
        except OSError as e:
            console.print(f"[red]Cannot save password: {e}[/red]")
            sys.exit(1)

    _guarded(ctx, change)
    console.print("[green]Parental password saved[/green]")


@main.command("check-password")
@click.pass_context
def check_password(ctx: click.Context) -> None:
    """Verify a password against the stored one."""
    guard: CredentialGuard = ctx.obj["guard"]

    if not guard.is_configured():
        console.print("[yellow]No parental password is set[/yellow]")
        sys.exit(1)

    candidate = _prompt_password()
    if candidate is None:
        console.print("[yellow]Cancelled[/yellow]")
        sys.exit(1)

    try:
        ok = guard.verify_password(candidate)
    except OSError as e:
        console.print(f"[red]Could not check password: {e}[/red]")
        sys.exit(1)

    if ok:
        console.print("[green]Password is correct[/green]")
    else:
        console.print("[red]Incorrect password[/red]")
        sys.exit(1)


@main.command()
@click.option("--interval", type=float, default=None, help="Seconds between scans (default: 2)")
@click.option("--grace", type=float, default=None, help="Seconds before force-killing (default: 0.3)")
@click.option("--no-sites", is_flag=True, help="Do not touch the hosts file")
@click.pass_context
def run(ctx: click.Context, interval: Optional[float], grace: Optional[float], no_sites: bool) -> None:
    """Run the process monitor until interrupted.

    Applies website blocking, sweeps immediate-block rules, then enforces
    schedules and daily limits every few seconds. Usage is saved
    periodically and on exit.

    Example:
        parentctl run --interval 2
    """
    cfg: Config = merge_cli_options(ctx.obj["config"], interval=interval, grace=grace)
    book = _load_book(ctx)
    store: RuleStore = ctx.obj["store"]
    blocker: HostsBlocker = ctx.obj["blocker"]

    logging.getLogger("parentctl").setLevel(logging.INFO)

    slack_notifier = None
    if cfg.slack_enabled and cfg.slack_webhook_url:
        from parentctl.notifiers.slack import SlackConfig, SlackNotifier

        slack_notifier = SlackNotifier(
            SlackConfig(webhook_url=cfg.slack_webhook_url, failures_only=cfg.slack_failures_only)
        )

    stats = {"graceful": 0, "forced": 0, "failed": 0}

    def handle_event(event: EnforcementEvent) -> None:
        stats[event.outcome.value] += 1
        _print_event(event)
        if slack_notifier:
            slack_notifier.send_event(event)

    monitor = _make_monitor(cfg, book, listener=handle_event)

    if "config_path" in ctx.obj:
        console.print(f"[dim]Config: {ctx.obj['config_path']}[/dim]")

    if not no_sites and book.sites:
        _apply_sites(ctx, book)

    active = sum(1 for rule in book.rules if rule.enabled)
    console.print(f"[green]Monitoring {active} active app rules every {cfg.poll_interval}s[/green]")
    if slack_notifier:
        failures = " (failures only)" if cfg.slack_failures_only else ""
        console.print(f"[cyan]Slack notifications enabled{failures}[/cyan]")
    console.print("[dim]Press Ctrl+C to stop[/dim]")
    console.print()

    book.apply_immediate_blocks(monitor)
    monitor.start()

    try:
        while True:
            try:
                time.sleep(USAGE_SAVE_INTERVAL)
            except KeyboardInterrupt:
                if _stop_allowed(ctx):
                    break
                console.print("[yellow]Monitor keeps running[/yellow]")
                continue
            _sync_book(ctx, book, apply_sites=not no_sites)
    finally:
        monitor.stop()
        _sync_book(ctx, book, apply_sites=False)
        if not no_sites and cfg.remove_sites_on_exit:
            try:
                blocker.remove_all(book.sites)
            except OSError as e:
                console.print(f"[yellow]Could not remove website blocking: {e}[/yellow]")
        if slack_notifier:
            slack_notifier.close()

        console.print()
        console.print("[green]Monitor stopped[/green]")
        console.print(f"  Terminated: {stats['graceful']:,}")
        console.print(f"  Force-killed: {stats['forced']:,}")
        console.print(f"  Failed: {stats['failed']:,}")


@main.command()
@click.pass_context
def status(ctx: click.Context) -> None:
    """Show configuration and protection status."""
    cfg: Config = ctx.obj["config"]
    guard: CredentialGuard = ctx.obj["guard"]
    blocker: HostsBlocker = ctx.obj["blocker"]
    book = _load_book(ctx)

    console.print("[cyan]parentctl status[/cyan]")
    if "config_path" in ctx.obj:
        console.print(f"  Config: {ctx.obj['config_path']}")
    console.print(f"  Data directory: {cfg.data_dir}")
    console.print(f"  Password: {'set' if guard.is_configured() else '[yellow]not set[/yellow]'}")
    console.print(f"  App rules: {len(book.rules)} ({sum(1 for r in book.rules if r.enabled)} active)")
    console.print(f"  Site rules: {len(book.sites)} ({sum(1 for s in book.sites if s.enabled)} active)")

    try:
        console.print(f"  Hosts file: {cfg.hosts_path} ({len(blocker.blocked_hosts())} blocked names)")
    except OSError as e:
        console.print(f"  Hosts file: {cfg.hosts_path} [yellow]unreadable: {e}[/yellow]")


if __name__ == "__main__":
    main()

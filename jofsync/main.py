"""jofsync CLI commands."""

import logging
from importlib.metadata import PackageNotFoundError, version
from pathlib import Path
from typing import Annotated

import tomlkit
import typer
from pydantic import ValidationError
from rich import print as rprint
from rich.markup import escape
from rich.table import Table

from jofsync import settings as settings_module
from jofsync.errors import ConfigError, TaskStoreError, TrackerError
from jofsync.logging_setup import setup_logging
from jofsync.models import SyncReport
from jofsync.reconcile import Reconciler
from jofsync.settings import JofsyncSettings, check_settings, get_settings, resolve_credentials
from jofsync.sources.jira import JiraSource
from jofsync.stores.omnifocus import APP_NAME, OmniFocusStore
from jofsync.system import app_is_running, notify

logger = logging.getLogger(__name__)

app = typer.Typer(help="Jira OmniFocus Sync Tool", no_args_is_help=True)


def _version() -> str:
    try:
        return version("jofsync")
    except PackageNotFoundError:
        return "unknown"


def _version_callback(value: bool) -> None:
    if value:
        typer.echo(f"jofsync {_version()}")
        raise typer.Exit()


@app.callback()
def main(
    show_version: Annotated[
        bool,
        typer.Option("--version", callback=_version_callback, is_eager=True, help="Show version and exit"),
    ] = False,
) -> None:
    pass


ConfigOpt = Annotated[
    Path | None,
    typer.Option("--config", help="Config file (default ~/.config/jofsync/config.toml)"),
]
VerboseOpt = Annotated[bool, typer.Option("--verbose", "-v", help="Debug output")]


# ---------------------------------------------------------------------------
# Settings helpers
# ---------------------------------------------------------------------------


def load_settings(config: Path | None = None, jira: dict | None = None, omnifocus: dict | None = None) -> JofsyncSettings:
    """Resolve, check and fill in credentials, or exit 1 on a configuration error."""
    try:
        settings = get_settings(config, jira=jira or {}, omnifocus=omnifocus or {})
        check_settings(settings)
        return resolve_credentials(settings)
    except (ConfigError, ValidationError) as exc:
        rprint(f"[red]{escape(str(exc))}[/red]")
        raise typer.Exit(1) from exc


def _fatal_tracker_error(exc: TrackerError, send_notification: bool) -> None:
    rprint(f"[red]{escape(str(exc))}[/red]")
    if send_notification:
        status = f"Response code: {exc.status_code}" if exc.status_code else str(exc)
        notify(status, subtitle=exc.hostname)


def render_report(report: SyncReport) -> Table:
    table = Table(title="Sync summary")
    table.add_column("Result", style="bold")
    table.add_column("Count", justify="right")
    table.add_column("Issues", style="cyan")

    rows = [
        ("Created", report.created),
        ("Already synced", report.skipped),
        ("Completed", report.completed),
        ("Deleted", report.deleted),
    ]
    for label, ids in rows:
        table.add_row(label, str(len(ids)), ", ".join(ids) or "—")
    table.add_row("[red]Failed[/red]", str(len(report.failures)), ", ".join(f.item for f in report.failures) or "—")
    return table


# ---------------------------------------------------------------------------
# Commands
# ---------------------------------------------------------------------------


@app.command("sync")
def sync(
    config: ConfigOpt = None,
    hostname: Annotated[str | None, typer.Option("--hostname", "-h", help="Jira Server Hostname")] = None,
    username: Annotated[str | None, typer.Option("--username", "-u", help="Jira Username")] = None,
    password: Annotated[str | None, typer.Option("--password", "-p", help="Jira Password")] = None,
    jql: Annotated[str | None, typer.Option("--filter", "-j", help="JQL Filter")] = None,
    auth_method: Annotated[str | None, typer.Option("--auth-method", "-a", help="basic_auth or cookie")] = None,
    use_keychain: Annotated[bool | None, typer.Option("--keychain/--no-keychain", "-k", help="Use Keychain for Jira")] = None,
    context: Annotated[str | None, typer.Option("--context", "-c", help="OF Default Context")] = None,
    project: Annotated[str | None, typer.Option("--project", "-r", help="OF Default Project")] = None,
    flag: Annotated[bool | None, typer.Option("--flag/--no-flag", "-f", help="Flag tasks in OF")] = None,
    inbox: Annotated[bool | None, typer.Option("--inbox/--no-inbox", "-i", help="Create inbox tasks")] = None,
    newproj: Annotated[bool | None, typer.Option("--newproj/--no-newproj", "-n", help="Create as projects")] = None,
    folder: Annotated[str | None, typer.Option("--folder", "-o", help="OF Default Folder")] = None,
    send_notification: Annotated[
        bool, typer.Option("--notify/--no-notify", help="Desktop notification when the tracker fails")
    ] = True,
    log_file: Annotated[Path | None, typer.Option("--log-file", help="Also write a debug log here")] = None,
    verbose: VerboseOpt = False,
) -> None:
    """Create tasks for matching issues, then complete or delete synced tasks."""
    setup_logging(verbose=verbose, log_file=log_file)

    if not app_is_running(APP_NAME):
        logger.info("%s is not running, nothing to do", APP_NAME)
        return

    settings = load_settings(
        config,
        jira={
            "hostname": hostname,
            "username": username,
            "password": password,
            "filter": jql,
            "auth_method": auth_method,
            "use_keychain": use_keychain,
        },
        omnifocus={
            "context": context,
            "project": project,
            "flag": flag,
            "inbox": inbox,
            "newproj": newproj,
            "folder": folder,
        },
    )

    with JiraSource(settings.jira) as source:
        reconciler = Reconciler(source, OmniFocusStore(), settings)
        try:
            report = reconciler.run()
        except TrackerError as exc:
            _fatal_tracker_error(exc, send_notification)
            raise typer.Exit(1) from exc
        except TaskStoreError as exc:
            rprint(f"[red]{APP_NAME}: {escape(str(exc))}[/red]")
            raise typer.Exit(1) from exc

    rprint(render_report(report))
    if not report.ok:
        for failure in report.failures:
            rprint(f"[red]✗[/red] {failure.item} ({failure.stage}): {escape(failure.error)}")
        raise typer.Exit(1)


@app.command("list-issues")
def list_issues(config: ConfigOpt = None, verbose: VerboseOpt = False) -> None:
    """Show the issues the configured filter returns."""
    setup_logging(verbose=verbose)
    settings = load_settings(config)

    with JiraSource(settings.jira) as source:
        try:
            issues = source.search(settings.jira.filter)
        except TrackerError as exc:
            rprint(f"[red]{escape(str(exc))}[/red]")
            raise typer.Exit(1) from exc

    table = Table(title=f"Issues matching: {settings.jira.filter}")
    table.add_column("ID", style="cyan")
    table.add_column("Summary")
    table.add_column("Assignee")
    table.add_column("Due")
    table.add_column("Resolution", style="dim")

    for issue in issues:
        table.add_row(
            issue.id,
            escape(issue.summary),
            escape(issue.assignee or "Unassigned"),
            issue.due_date.isoformat() if issue.due_date else "—",
            issue.resolution or "—",
        )

    rprint(table)


@app.command("config-show")
def config_show(config: ConfigOpt = None) -> None:
    """Show resolved configuration (masks credentials)."""
    try:
        settings = get_settings(config)
    except ValidationError as exc:
        rprint(f"[red]{escape(str(exc))}[/red]")
        raise typer.Exit(1) from exc

    def not_set(val: str | None) -> str:
        return val if val else "[dim](not set)[/dim]"

    password = settings.jira.password.get_secret_value()

    table = Table(title="jofsync Configuration")
    table.add_column("Field", style="bold")
    table.add_column("Value")

    table.add_row("jira.hostname", settings.jira.hostname)
    table.add_row("jira.auth_method", settings.jira.auth_method)
    table.add_row("jira.use_keychain", str(settings.jira.use_keychain))
    table.add_row("jira.username", not_set(settings.jira.username))
    table.add_row("jira.password", "***" if password else "[dim](not set)[/dim]")
    table.add_row("jira.filter", settings.jira.filter)
    table.add_row("omnifocus.context", not_set(settings.omnifocus.context))
    table.add_row("omnifocus.project", settings.omnifocus.project)
    table.add_row("omnifocus.flag", str(settings.omnifocus.flag))
    table.add_row("omnifocus.inbox", str(settings.omnifocus.inbox))
    table.add_row("omnifocus.newproj", str(settings.omnifocus.newproj))
    table.add_row("omnifocus.folder", settings.omnifocus.folder)

    rprint(table)


@app.command("init")
def init_cmd(config: ConfigOpt = None) -> None:
    """Interactive first-time setup wizard."""
    config_path = config or settings_module.CONFIG_PATH
    rprint("[bold]jofsync Setup Wizard[/bold]")
    rprint("")

    # Step 1: tracker
    hostname = typer.prompt("Jira URL (e.g. https://jira.example.com)").strip().rstrip("/")
    if not hostname.startswith(("http://", "https://")):
        rprint("[red]The Jira URL must start with http:// or https://[/red]")
        raise typer.Exit(1)

    auth_method = typer.prompt("Auth method? [basic_auth/cookie]", default="basic_auth").strip().lower()
    if auth_method not in ("basic_auth", "cookie"):
        rprint("[red]Invalid auth method. Choose 'basic_auth' or 'cookie'.[/red]")
        raise typer.Exit(1)

    jira: dict = {"hostname": hostname, "auth_method": auth_method}

    # Step 2: credentials
    use_keychain = typer.confirm("Read the username and password from the macOS keychain?", default=False)
    jira["use_keychain"] = use_keychain
    if use_keychain:
        rprint("Add the entry with: security add-internet-password -a <username> -s <host> -w <password>")
    else:
        jira["username"] = typer.prompt("Jira username").strip()
        jira["password"] = typer.prompt("Jira password", hide_input=True)

    jira["filter"] = typer.prompt("JQL filter", default=settings_module.DEFAULT_FILTER).strip()

    # Step 3: where tasks go
    omnifocus: dict = {}
    placement = typer.prompt("Create tasks in? [project/inbox/newproj]", default="project").strip().lower()
    if placement not in ("project", "inbox", "newproj"):
        rprint("[red]Invalid choice. Choose 'project', 'inbox' or 'newproj'.[/red]")
        raise typer.Exit(1)
    omnifocus["inbox"] = placement == "inbox"
    omnifocus["newproj"] = placement == "newproj"
    if placement == "project":
        omnifocus["project"] = typer.prompt("OmniFocus project", default="Jira").strip()
    elif placement == "newproj":
        omnifocus["folder"] = typer.prompt("OmniFocus folder", default="Jira").strip()
    omnifocus["context"] = typer.prompt("OmniFocus context (tag)", default="Office").strip()
    omnifocus["flag"] = typer.confirm("Flag new tasks?", default=True)

    # Step 4: write config (round-trip preserves any existing comments)
    config_path.parent.mkdir(parents=True, exist_ok=True)
    doc = tomlkit.load(config_path.open()) if config_path.exists() else tomlkit.document()
    doc["jira"] = jira
    doc["omnifocus"] = omnifocus
    config_path.write_text(tomlkit.dumps(doc))
    settings_module._load_toml.cache_clear()
    rprint(f"[green]✓[/green] Configuration written to {config_path}")

    # Step 5: show config
    rprint("")
    config_show(config=config_path)

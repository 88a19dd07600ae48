"""Command-line interface for aws-keychain."""

from typing import NoReturn, Optional

import click
from rich.console import Console
from rich.table import Table

from . import __version__
from .active import ActiveCredentialsFile
from .audit import EventType, audit_event, setup_logging
from .config import LOG_LEVELS, Settings
from .errors import KeychainError, UsageError
from .index import NameIndex
from .service import CredentialService, EntryState, StatusState
from .storage import BACKENDS, get_platform_store

console = Console()


class KeychainGroup(click.Group):
    """Command group whose usage errors exit with status 1."""

    def parse_args(self, ctx: click.Context, args: list[str]) -> list[str]:
        if not args:
            click.echo(ctx.get_help(), err=True)
            ctx.exit(1)
        try:
            return super().parse_args(ctx, args)
        except click.UsageError as e:
            # Group option errors may carry no context, so print usage here.
            click.echo(ctx.get_usage(), err=True)
            e.ctx = None
            e.exit_code = 1
            raise

    def invoke(self, ctx: click.Context):
        try:
            return super().invoke(ctx)
        except click.UsageError as e:
            e.exit_code = 1
            raise


def fail(
    ctx: click.Context, event_type: EventType, user: str, error: Exception
) -> NoReturn:
    """Record a failed audit event and abort the command with exit status 1."""
    audit_event(event_type=event_type, user=user, success=False, error=error)
    if isinstance(error, UsageError):
        raise click.UsageError(str(error), ctx)
    raise click.ClickException(str(error))


def get_service(ctx: click.Context) -> CredentialService:
    """Build the service lazily so ``--help`` never touches the secret store."""
    settings: Settings = ctx.obj
    try:
        store = get_platform_store(settings.backend)
    except (KeychainError, RuntimeError) as e:
        raise click.ClickException(str(e))
    return CredentialService(
        store=store,
        index=NameIndex(settings.index_file),
        active_file=ActiveCredentialsFile(settings.credential_file),
    )


def print_table(title: str, rows: list[dict], columns: list[tuple[str, str]]) -> None:
    """Print data in a formatted table.

    Args:
        title: Table title
        rows: List of row dictionaries
        columns: List of (key, header) tuples defining columns
    """
    table = Table(title=title)
    for _, header in columns:
        table.add_column(header, style="cyan")

    for row in rows:
        table.add_row(*[str(row.get(key) or "") for key, _ in columns])

    console.print(table)


@click.group(cls=KeychainGroup)
@click.version_option(__version__, prog_name="aws-keychain")
@click.option(
    "--credential-file",
    type=click.Path(dir_okay=False),
    default=None,
    help="Active credentials file (env: AWS_CREDENTIAL_FILE).",
)
@click.option(
    "--index-file",
    type=click.Path(dir_okay=False),
    default=None,
    help="Name index file (env: AWS_KEYCHAIN_INDEX).",
)
@click.option(
    "--backend",
    type=click.Choice(sorted(BACKENDS)),
    default=None,
    help="Secret store backend (env: AWS_KEYCHAIN_BACKEND).",
)
@click.option(
    "--log-level",
    type=click.Choice(LOG_LEVELS, case_sensitive=False),
    default=None,
    help="Log file level (env: AWS_KEYCHAIN_LOG_LEVEL).",
)
@click.pass_context
def cli(
    ctx: click.Context,
    credential_file: Optional[str],
    index_file: Optional[str],
    backend: Optional[str],
    log_level: Optional[str],
) -> None:
    """Keep named AWS access keys in the system keychain and switch between them."""
    try:
        settings = Settings.load(
            credential_file=credential_file,
            index_file=index_file,
            backend=backend,
            log_level=log_level,
        )
    except ValueError as e:
        raise click.UsageError(f"Invalid configuration: {e}", ctx)
    setup_logging(log_level=settings.log_level, base_dir=settings.log_dir)
    ctx.obj = settings


@cli.command()
@click.argument("name")
@click.argument("access_key_id")
@click.argument("secret_access_key")
@click.pass_context
def add(ctx: click.Context, name: str, access_key_id: str, secret_access_key: str) -> None:
    """Store an access key pair under NAME, replacing any existing one."""
    service = get_service(ctx)
    try:
        service.add(name, access_key_id, secret_access_key)
    except (KeychainError, OSError) as e:
        fail(ctx, EventType.CRED_CREATE, name, e)
    audit_event(
        event_type=EventType.CRED_CREATE,
        user=name,
        success=True,
        details={"access_key_id": access_key_id},
    )


@cli.command()
@click.argument("name")
@click.pass_context
def cat(ctx: click.Context, name: str) -> None:
    """Print NAME in the AWS credential file format."""
    service = get_service(ctx)
    try:
        text = service.show(name)
    except KeychainError as e:
        fail(ctx, EventType.CRED_READ, name, e)
    audit_event(event_type=EventType.CRED_READ, user=name, success=True, details={"format": "file"})
    click.echo(text, nl=False)


@cli.command()
@click.argument("name")
@click.pass_context
def env(ctx: click.Context, name: str) -> None:
    """Print shell export statements for NAME."""
    service = get_service(ctx)
    try:
        text = service.export(name)
    except KeychainError as e:
        fail(ctx, EventType.CRED_READ, name, e)
    audit_event(event_type=EventType.CRED_READ, user=name, success=True, details={"format": "env"})
    click.echo(text, nl=False)


@cli.command()
@click.pass_context
def ls(ctx: click.Context) -> None:
    """List known credential names."""
    service = get_service(ctx)
    try:
        names = service.list()
    except (KeychainError, OSError) as e:
        fail(ctx, EventType.CRED_LIST, "cli", e)
    for name in names:
        click.echo(name)
    audit_event(event_type=EventType.CRED_LIST, user="cli", success=True, details={"count": len(names)})


@cli.command()
@click.pass_context
def none(ctx: click.Context) -> None:
    """Clear the active credentials."""
    service = get_service(ctx)
    try:
        service.deactivate()
    except OSError as e:
        fail(ctx, EventType.CRED_DEACTIVATE, "cli", e)
    audit_event(event_type=EventType.CRED_DEACTIVATE, user="cli", success=True)


@cli.command()
@click.argument("name")
@click.pass_context
def rm(ctx: click.Context, name: str) -> None:
    """Delete NAME from the keychain and the name index."""
    service = get_service(ctx)
    try:
        service.remove(name)
    except (KeychainError, OSError) as e:
        fail(ctx, EventType.CRED_DELETE, name, e)
    audit_event(event_type=EventType.CRED_DELETE, user=name, success=True)


@cli.command()
@click.pass_context
def status(ctx: click.Context) -> None:
    """Show which stored credential is active."""
    service = get_service(ctx)
    try:
        result = service.status()
    except (KeychainError, OSError) as e:
        fail(ctx, EventType.CRED_STATUS, "cli", e)
    if result.state is StatusState.NONE:
        click.echo("No active credentials")
    else:
        click.echo(f"{result.name}: {result.access_key_id}")
    audit_event(
        event_type=EventType.CRED_STATUS,
        user=result.name or "cli",
        success=True,
        details={"state": result.state.value},
    )


@cli.command()
@click.argument("name")
@click.pass_context
def use(ctx: click.Context, name: str) -> None:
    """Make NAME the active credentials."""
    service = get_service(ctx)
    try:
        key = service.activate(name)
    except (KeychainError, OSError) as e:
        fail(ctx, EventType.CRED_ACTIVATE, name, e)
    audit_event(
        event_type=EventType.CRED_ACTIVATE,
        user=name,
        success=True,
        details={"access_key_id": key.access_key_id},
    )


@cli.command()
@click.pass_context
def check(ctx: click.Context) -> None:
    """Report index entries that no longer resolve in the keychain.

    Nothing is repaired; use ``rm`` or ``add`` to fix reported entries.
    """
    service = get_service(ctx)
    try:
        reports = service.check()
    except (KeychainError, OSError) as e:
        fail(ctx, EventType.INDEX_CHECK, "cli", e)

    if not reports:
        click.echo("No credentials recorded.")
    else:
        print_table(
            "Indexed Credentials",
            [report.model_dump(mode="json") for report in reports],
            [("name", "Name"), ("state", "State"), ("access_key_id", "Access Key ID")],
        )
    audit_event(
        event_type=EventType.INDEX_CHECK,
        user="cli",
        success=True,
        details={
            "total": len(reports),
            "stale": sum(report.state is not EntryState.OK for report in reports),
        },
    )


def main() -> None:
    """CLI entry point."""
    cli()

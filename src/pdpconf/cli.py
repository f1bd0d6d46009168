"""CLI entry point for pdpconf."""

from __future__ import annotations

import fnmatch
import json
import logging
import sys
from dataclasses import dataclass
from pathlib import Path

import click
import yaml
from rich.console import Console

from pdpconf import __version__
from pdpconf.formatters import (
    is_secret_key,
    render_document,
    render_leaves,
    render_problems,
    render_status,
)
from pdpconf.keystore import KeystoreError
from pdpconf.logging_utils import configure_logging
from pdpconf.models import (
    KEY_STORE_TYPES,
    SUPPORTED_CIPHERS,
    TLS_PROTOCOLS,
    ConfigValue,
    DbmsKind,
    PasswordStrength,
)
from pdpconf.session import PersistResult, SetupSession

console = Console()
err_console = Console(stderr=True)

_REDACTED = "***REDACTED***"
_STRENGTH_STYLES = {
    PasswordStrength.WEAK: "bold red",
    PasswordStrength.MODERATE: "bold yellow",
    PasswordStrength.STRONG: "bold green",
}


@dataclass
class _Options:
    locations: tuple[str, ...]
    base_dir: Path | None


def _abort(msg: str) -> None:
    console.print(f"[bold red]Error:[/] {msg}")
    sys.exit(1)


def _open_session(ctx: click.Context) -> SetupSession:
    options: _Options = ctx.obj
    return SetupSession.open(options.locations, options.base_dir)


def _report_persist(what: str, result: PersistResult) -> None:
    written, failed = result
    if written:
        console.print(f"[bold green]Saved {what}[/] to {', '.join(str(p) for p in written)}")
    elif not failed:
        console.print(f"[dim]{what.capitalize()} unchanged, nothing to write.[/]")
    if failed:
        console.print(f"[bold red]Failed to write {len(failed)} file(s):[/]")
        for source, err in failed:
            console.print(f"  {source}: {err}")
        sys.exit(1)


def _parse_value(raw: str) -> ConfigValue:
    """Parse a command line value as a YAML scalar or flow list."""
    try:
        value = yaml.safe_load(raw)
    except yaml.YAMLError as exc:
        raise click.BadParameter(f"not a valid YAML value: {exc}") from exc
    if value is None:
        raise click.BadParameter("value must not be empty")
    if isinstance(value, dict):
        raise click.BadParameter("value must be a scalar or a list, not a mapping")
    if isinstance(value, list):
        return [str(item) for item in value]
    if not isinstance(value, (str, int, float, bool)):
        return str(value)
    return value


def _effective_leaves(session: SetupSession) -> list[tuple[str, ConfigValue, Path]]:
    """Every leaf path with the value and source that reads would resolve to."""
    seen: set[str] = set()
    leaves: list[tuple[str, ConfigValue, Path]] = []
    for document in session.documents.documents:
        for path, value in document.leaves():
            if path not in seen:
                seen.add(path)
                leaves.append((path, value, document.source))
    return leaves


@click.group()
@click.option(
    "--config",
    "-c",
    "locations",
    multiple=True,
    envvar="PDPCONF_CONFIG_LOCATION",
    help="Configuration file(s), primary first. Repeatable; also comma separated.",
)
@click.option(
    "--base-dir",
    type=click.Path(file_okay=False, path_type=Path),
    envvar="PDPCONF_BASE_DIR",
    default=None,
    help="Directory relative locations resolve against (default: working directory).",
)
@click.option("--verbose", "-v", count=True, help="Log more; repeat for debug output.")
@click.version_option(__version__, "--version", "-V")
@click.pass_context
def main(
    ctx: click.Context,
    locations: tuple[str, ...],
    base_dir: Path | None,
    verbose: int,
) -> None:
    """Set up the configuration of a policy decision point server.

    \b
    Examples:
      pdpconf status
      pdpconf -c config/application.yml show
      pdpconf dbms --kind mariadb --username sapl
      pdpconf endpoint http --port 8443 --protocol TLSv1.3 --key-alias mykey
    """
    level = {0: logging.WARNING, 1: logging.INFO}.get(verbose, logging.DEBUG)
    configure_logging(level)
    ctx.obj = _Options(locations=locations, base_dir=base_dir)


@main.command("show")
@click.option(
    "--filter", "-f", "filter_pattern", default=None, help="Glob filter on configuration paths."
)
@click.option(
    "--show-values/--hide-values",
    default=True,
    help="Show or hide configuration values (default: show).",
)
@click.option(
    "--include-secrets",
    is_flag=True,
    default=False,
    help="Show password values (default: redacted).",
)
@click.option(
    "--output",
    type=click.Choice(["tree", "json"]),
    default="tree",
    help="Output format (default: tree).",
)
@click.pass_context
def show_cmd(
    ctx: click.Context,
    filter_pattern: str | None,
    show_values: bool,
    include_secrets: bool,
    output: str,
) -> None:
    """Show the configuration documents.

    \b
    Examples:
      pdpconf show
      pdpconf show --filter "server/ssl/*"
      pdpconf show --output json --include-secrets
    """
    session = _open_session(ctx)
    leaves = _effective_leaves(session)
    if filter_pattern:
        leaves = [leaf for leaf in leaves if fnmatch.fnmatch(leaf[0], filter_pattern)]

    if output == "json":
        if include_secrets:
            err_console.print("[bold yellow]WARNING:[/] Secret values will be included in output.")
        data = [
            {
                "path": path,
                "value": value
                if include_secrets or not is_secret_key(path.rsplit("/", 1)[-1])
                else _REDACTED,
                "source": str(source),
            }
            for path, value, source in leaves
        ]
        click.echo(json.dumps(data, indent=2, default=str))
    elif filter_pattern:
        pairs = [(path, value) for path, value, _ in leaves]
        console.print(render_leaves(pairs, show_values=show_values, include_secrets=include_secrets))
    else:
        for document in session.documents.documents:
            console.print(
                render_document(document, show_values=show_values, include_secrets=include_secrets)
            )


@main.command("get")
@click.argument("path")
@click.pass_context
def get_cmd(ctx: click.Context, path: str) -> None:
    """Print the value at PATH, e.g. server/ssl/enabled."""
    session = _open_session(ctx)
    value = session.documents.get_at(path)
    if value is None:
        _abort(f"{path} is not set")
        return
    if isinstance(value, str):
        click.echo(value)
    else:
        click.echo(json.dumps(value))


@main.command("set")
@click.argument("path")
@click.argument("value")
@click.pass_context
def set_cmd(ctx: click.Context, path: str, value: str) -> None:
    """Set PATH to VALUE and save.

    VALUE is read as YAML, so 8443 is a number, true a boolean and
    "[TLSv1.3, TLSv1.2]" a list.
    """
    parsed = _parse_value(value)
    session = _open_session(ctx)
    try:
        session.documents.set_at(path, parsed)
    except ValueError as exc:
        _abort(str(exc))
        return
    _report_persist(path, session.documents.persist_all())


@main.command("status")
@click.option(
    "--output",
    type=click.Choice(["table", "json"]),
    default="table",
    help="Output format (default: table).",
)
@click.pass_context
def status_cmd(ctx: click.Context, output: str) -> None:
    """Show which setup steps are finished."""
    session = _open_session(ctx)
    status = session.status()
    ready = session.ready_for_restart()
    tls_disabled = session.tls_disabled_endpoints()

    if output == "json":
        data = {"sections": status, "ready_for_restart": ready, "tls_disabled": tls_disabled}
        click.echo(json.dumps(data, indent=2))
        return

    console.print(render_status(status, tls_disabled))
    if ready:
        console.print("[bold green]Setup complete.[/] Restart the server to apply it.")
    else:
        console.print("[yellow]Setup incomplete.[/] Finish the missing sections before restarting.")


@main.command("dbms")
@click.option(
    "--kind",
    type=click.Choice([kind.name.lower() for kind in DbmsKind]),
    default=None,
    help="Database engine.",
)
@click.option("--url", default=None, help="JDBC connection URL (default: engine default).")
@click.option("--username", default=None, help="Database user.")
@click.option("--password", default=None, help="Database password.")
@click.pass_context
def dbms_cmd(
    ctx: click.Context,
    kind: str | None,
    url: str | None,
    username: str | None,
    password: str | None,
) -> None:
    """Configure the database connection.

    \b
    Examples:
      pdpconf dbms --kind h2
      pdpconf dbms --kind mariadb --url jdbc:mariadb://db:3306/sapl --username sapl
    """
    session = _open_session(ctx)
    dbms = session.dbms
    if url is not None:
        dbms.url = url
    if kind is not None:
        dbms.kind = DbmsKind[kind.upper()]
    if username is not None:
        dbms.username = username
    if password is not None:
        dbms.password = password

    if not dbms.is_valid_config():
        _abort(f"URL {dbms.url!r} does not match the {dbms.kind.name} driver")
        return
    _report_persist("database configuration", session.persist_dbms_config())


@main.command("admin")
@click.option("--username", default=None, help="Administrator login name.")
@click.option("--password", prompt=True, hide_input=True, help="Administrator password.")
@click.option(
    "--password-repeat",
    prompt="Repeat password",
    hide_input=True,
    help="The password again, for confirmation.",
)
@click.pass_context
def admin_cmd(
    ctx: click.Context, username: str | None, password: str, password_repeat: str
) -> None:
    """Create the administrator account.

    Only a salted hash of the password is written.
    """
    session = _open_session(ctx)
    admin = session.admin_user
    if username is not None:
        admin.username = username
    admin.password = password
    admin.password_repeat = password_repeat

    if not admin.username:
        _abort("Username must not be empty.")
        return
    if not admin.is_valid_config():
        _abort("Passwords do not match.")
        return

    strength = admin.password_strength()
    console.print(
        f"Password strength: [{_STRENGTH_STYLES[strength]}]{strength.value}[/]"
    )
    _report_persist("admin user", session.persist_admin_user_config())


@main.command("endpoint")
@click.argument("name", type=click.Choice(["http", "rsocket"]))
@click.option("--address", default=None, help="Bind address: localhost or an IP address.")
@click.option("--port", type=int, default=None, help="Port (1-65535).")
@click.option(
    "--protocol",
    "protocols",
    multiple=True,
    type=click.Choice(TLS_PROTOCOLS),
    help="Enabled TLS protocol. Repeatable.",
)
@click.option("--no-tls", is_flag=True, default=False, help="Disable TLS for this endpoint.")
@click.option(
    "--key-store-type", type=click.Choice(KEY_STORE_TYPES), default=None, help="Key store type."
)
@click.option("--key-store", default=None, help='Key store location, e.g. "file:config/keystore.p12".')
@click.option("--key-store-password", default=None, help="Key store password.")
@click.option("--key-password", default=None, help="Key password.")
@click.option("--key-alias", default=None, help="Alias of the server key in the key store.")
@click.option(
    "--cipher",
    "ciphers",
    multiple=True,
    type=click.Choice(SUPPORTED_CIPHERS),
    help="Enabled cipher suite. Repeatable.",
)
@click.option(
    "--check-only", is_flag=True, default=False, help="Validate without saving."
)
@click.pass_context
def endpoint_cmd(
    ctx: click.Context,
    name: str,
    address: str | None,
    port: int | None,
    protocols: tuple[str, ...],
    no_tls: bool,
    key_store_type: str | None,
    key_store: str | None,
    key_store_password: str | None,
    key_password: str | None,
    key_alias: str | None,
    ciphers: tuple[str, ...],
    check_only: bool,
) -> None:
    """Configure the http or rsocket endpoint.

    With TLS enabled the key store is opened and the key alias checked
    before anything is saved.

    \b
    Examples:
      pdpconf endpoint http --address 0.0.0.0 --port 8443 --protocol TLSv1.3 \\
          --key-store file:config/keystore.p12 --key-store-password changeit --key-alias mykey
      pdpconf endpoint rsocket --port 7000 --no-tls
    """
    if no_tls and protocols:
        _abort("--no-tls cannot be combined with --protocol.")
        return

    session = _open_session(ctx)
    endpoint = session.endpoint(name)
    if address is not None:
        endpoint.address = address
    if port is not None:
        endpoint.port = port
    if no_tls:
        endpoint.disable_tls()
    elif protocols:
        endpoint.enabled_protocols = protocols
    if key_store_type is not None:
        endpoint.key_store_type = key_store_type
    if key_store is not None:
        endpoint.key_store = key_store
    if key_store_password is not None:
        endpoint.key_store_password = key_store_password
    if key_password is not None:
        endpoint.key_password = key_password
    if key_alias is not None:
        endpoint.key_alias = key_alias
    if ciphers:
        endpoint.ciphers = ciphers

    if endpoint.tls_enabled:
        try:
            found = endpoint.test_keystore()
        except KeystoreError as exc:
            _abort(str(exc))
            return
        if not found:
            _abort(f"Key alias fault: {endpoint.key_alias!r} does not exist in this key store")
            return
        console.print("[green]Key store configuration is valid.[/]")
    else:
        console.print(
            f"[bold yellow]WARNING:[/] TLS is disabled for {name}. Do not use this in production."
        )

    if not endpoint.port_matches_protocol():
        console.print(
            f"[yellow]Note:[/] port {endpoint.port} is conventionally used "
            f"{'without' if endpoint.tls_enabled else 'with'} TLS."
        )

    problems = endpoint.problems()
    if problems:
        console.print(render_problems(f"The {name} endpoint cannot be saved:", problems))
        sys.exit(1)

    if check_only:
        console.print(f"[dim]Check only: {name} endpoint configuration not saved.[/]")
        return
    if name == "http":
        result = session.persist_http_endpoint_config()
    else:
        result = session.persist_rsocket_endpoint_config()
    _report_persist(f"{name} endpoint configuration", result)


@main.command("api-auth")
@click.option("--basic-auth/--no-basic-auth", default=None, help="Allow basic authentication.")
@click.option("--api-key-auth/--no-api-key-auth", default=None, help="Allow API key authentication.")
@click.option("--header-name", default=None, help="HTTP header carrying the API key.")
@click.option("--caching/--no-caching", default=None, help="Cache API key lookups.")
@click.option("--cache-expire", type=int, default=None, help="Cache expiry in seconds.")
@click.option("--cache-max-size", type=int, default=None, help="Maximum cached API keys.")
@click.pass_context
def api_auth_cmd(
    ctx: click.Context,
    basic_auth: bool | None,
    api_key_auth: bool | None,
    header_name: str | None,
    caching: bool | None,
    cache_expire: int | None,
    cache_max_size: int | None,
) -> None:
    """Configure how API clients authenticate.

    \b
    Examples:
      pdpconf api-auth --basic-auth --api-key-auth --header-name API_KEY
      pdpconf api-auth --caching --cache-expire 300 --cache-max-size 10000
    """
    session = _open_session(ctx)
    auth = session.api_authentication
    if basic_auth is not None:
        auth.basic_auth_enabled = basic_auth
    if api_key_auth is not None:
        auth.api_key_auth_enabled = api_key_auth
    if header_name is not None:
        auth.api_key_header_name = header_name
    if caching is not None:
        auth.api_key_caching_enabled = caching
    if cache_expire is not None:
        auth.api_key_caching_expire = cache_expire
    if cache_max_size is not None:
        auth.api_key_caching_max_size = cache_max_size

    if not auth.is_valid_config():
        _abort(
            "API key authentication needs a header name, and caching needs a "
            "positive expiry and maximum size."
        )
        return
    _report_persist("API authentication configuration", session.persist_api_authentication_config())

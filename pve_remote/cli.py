"""
Terminal front end for the Proxmox VE session client.

Usage:
    pve-remote --host 192.168.1.10 nodes
    pve-remote --host 192.168.1.10 version
    pve-remote --host 192.168.1.10 reboot <node> [--yes]
    pve-remote --host 192.168.1.10 shutdown <node> [--yes]
    pve-remote --host 192.168.1.10 console
"""

import logging
import sys
from dataclasses import dataclass
from typing import List, NoReturn, Optional, Tuple

import typer

from pve_remote.errors import ProxmoxError, ValidationError
from pve_remote.main import (
    DEFAULT_CONFIG,
    ConnectResult,
    NodeInfo,
    SessionClient,
    connect,
)

app = typer.Typer(
    help="Reboot or shut down Proxmox VE nodes", no_args_is_help=True
)

logger = logging.getLogger(__name__)

STATUS_ICONS = {"Online": "🟢", "Offline": "🔴", "Unknown": "⚪"}


@dataclass
class ConnectionOptions:
    host: str
    username: str
    password: Optional[str]
    realm: str
    accept_untrusted: bool


def setup_logging(verbose: bool) -> None:
    # Without --verbose, warnings still reach stderr via logging.lastResort.
    if not verbose:
        return
    logging.basicConfig(
        level=logging.DEBUG,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
        stream=sys.stderr,
    )


def require_fields(**fields: Optional[str]) -> None:
    """Reject empty connection fields before any request is made."""
    missing = [name for name, value in fields.items() if not value]
    if missing:
        logger.debug("Missing fields: %s", ", ".join(missing))
        raise ValidationError("Please fill all fields")


def _fail(error: Exception) -> NoReturn:
    typer.echo(f"❌ {error}")
    raise typer.Exit(code=1)


def _badge(node: NodeInfo) -> str:
    label = node.status_label
    return f"{STATUS_ICONS[label]} {label}"


def _new_client(options: ConnectionOptions) -> Tuple[SessionClient, str]:
    """Check the connection fields and build an unauthenticated client."""
    password = options.password
    if password is None:
        password = typer.prompt("Password", hide_input=True, default="", show_default=False)

    try:
        require_fields(
            host=options.host,
            username=options.username,
            password=password,
            realm=options.realm,
        )
    except ValidationError as e:
        _fail(e)

    return SessionClient(options.host, options.accept_untrusted), password


def _open_session(options: ConnectionOptions) -> Tuple[SessionClient, ConnectResult]:
    """Run the connect sequence, exiting with a message on failure."""
    client, password = _new_client(options)
    try:
        result = connect(client, options.username, password, options.realm)
    except ProxmoxError as e:
        client.logout()
        _fail(e)
    return client, result


def _send_power_command(client: SessionClient, node: str, action: str) -> None:
    if action == "reboot":
        client.reboot_node(node)
    else:
        client.shutdown_node(node)


def _print_nodes(nodes: List[NodeInfo]) -> None:
    if not nodes:
        typer.echo("No nodes found")
        return
    for node in nodes:
        typer.echo(f"  {_badge(node)}  {node.name}")


@app.callback()
def main(
    ctx: typer.Context,
    host: str = typer.Option(
        DEFAULT_CONFIG["host"], "--host", "-H", envvar="PVE_HOST",
        help="Proxmox host or IP, without scheme or port",
    ),
    username: str = typer.Option(
        DEFAULT_CONFIG["username"], "--username", "-u", envvar="PVE_USERNAME",
    ),
    password: Optional[str] = typer.Option(
        None, "--password", "-p", envvar="PVE_PASSWORD",
        help="Prompted for when omitted",
    ),
    realm: str = typer.Option(
        DEFAULT_CONFIG["realm"], "--realm", "-r", envvar="PVE_REALM",
        help="Authentication realm (pam, pve, ldap)",
    ),
    accept_untrusted: bool = typer.Option(
        DEFAULT_CONFIG["accept_untrusted_certificates"],
        "--allow-untrusted/--verify-tls", envvar="PVE_ALLOW_UNTRUSTED",
        help="Accept self-signed certificates. This weakens transport security.",
    ),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Log requests"),
):
    """Connect to a Proxmox VE host with a username and password."""
    setup_logging(verbose)
    ctx.obj = ConnectionOptions(
        host=host.strip(),
        username=username.strip(),
        password=password,
        realm=realm.strip(),
        accept_untrusted=accept_untrusted,
    )


@app.command("nodes")
def nodes_list(ctx: typer.Context):
    """Connect and list cluster nodes."""
    client, result = _open_session(ctx.obj)
    with client:
        typer.echo(result.status_message)
        _print_nodes(result.nodes)


@app.command("version")
def version_show(ctx: typer.Context):
    """Log in and print the Proxmox VE version."""
    options = ctx.obj
    client, password = _new_client(options)
    with client:
        try:
            client.login(options.username, password, options.realm)
            version = client.query_version()
        except ProxmoxError as e:
            _fail(e)
        typer.echo(f"Proxmox {version}")


def _power(ctx: typer.Context, node: str, action: str, yes: bool) -> None:
    client, result = _open_session(ctx.obj)
    with client:
        if node not in [n.name for n in result.nodes]:
            _fail(ValidationError(f"Unknown node '{node}'"))

        if not yes and not typer.confirm(f"Are you sure you want to {action} node {node}?"):
            typer.echo("Okay, no changes made.")
            return

        try:
            _send_power_command(client, node, action)
        except ProxmoxError as e:
            _fail(e)
        typer.echo(f"{action.capitalize()} requested")


@app.command("reboot")
def node_reboot(
    ctx: typer.Context,
    node: str = typer.Argument(help="Node name as listed by 'nodes'"),
    yes: bool = typer.Option(False, "--yes", "-y", help="Skip confirmation"),
):
    """Reboot a node."""
    _power(ctx, node, "reboot", yes)


@app.command("shutdown")
def node_shutdown(
    ctx: typer.Context,
    node: str = typer.Argument(help="Node name as listed by 'nodes'"),
    yes: bool = typer.Option(False, "--yes", "-y", help="Skip confirmation"),
):
    """Shut down a node."""
    _power(ctx, node, "shutdown", yes)


@app.command("console")
def console(ctx: typer.Context):
    """Interactive session: pick a node, reboot or shut it down, log out."""
    client, result = _open_session(ctx.obj)
    with client:
        typer.echo(result.status_message)
        nodes = result.nodes
        selected = nodes[0] if nodes else None

        while True:
            if selected is None:
                typer.echo("No nodes found")
            else:
                typer.echo(f"Node: {selected.name}  {_badge(selected)}")

            choice = typer.prompt(
                "[r]eboot, [s]hutdown, [n]ode, [l]ogout", default="l"
            ).strip().lower()

            if choice in ("l", "logout", "q", "quit"):
                typer.echo("Logged out")
                break

            if choice in ("n", "node"):
                for index, node in enumerate(nodes, start=1):
                    typer.echo(f"  {index}. {node.name}  {_badge(node)}")
                if nodes:
                    picked = typer.prompt("Select node", type=int, default=1)
                    if 1 <= picked <= len(nodes):
                        selected = nodes[picked - 1]
                    else:
                        typer.echo("❌ No such node")
                continue

            action = {"r": "reboot", "reboot": "reboot",
                      "s": "shutdown", "shutdown": "shutdown"}.get(choice)
            if action is None:
                typer.echo(f"❌ Unknown choice '{choice}'")
                continue
            if selected is None:
                continue
            if not typer.confirm(f"Are you sure you want to {action} node {selected.name}?"):
                typer.echo("Okay, no changes made.")
                continue

            try:
                _send_power_command(client, selected.name, action)
            except ProxmoxError as e:
                typer.echo(f"❌ {e}")
                continue
            typer.echo(f"{action.capitalize()} requested")

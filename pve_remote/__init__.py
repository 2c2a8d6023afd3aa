"""
Proxmox VE session client

Logs in with a username, password and realm, lists cluster nodes, and sends
reboot or shutdown commands to a selected node. Sessions live in memory only;
logging out simply discards them.

Requirements:
    - Python 3
    - requests library
    - typer (command line front end)

Configuration:
    The client takes a host and a certificate trust choice. The command line
    reads host, username, password and realm from options or the PVE_HOST,
    PVE_USERNAME, PVE_PASSWORD and PVE_REALM environment variables.
"""

from .errors import (
    DecodeError,
    ProxmoxError,
    StatusError,
    TransportError,
    ValidationError,
)
from .main import (
    ConnectResult,
    NodeInfo,
    Session,
    SessionClient,
    TrustPolicy,
    connect,
)

# Plugin metadata
__version__ = "1.0.0"
__author__ = "pve-remote"
__description__ = "Session-authenticated Proxmox VE client for node power control"

__all__ = [
    "SessionClient",
    "TrustPolicy",
    "Session",
    "NodeInfo",
    "ConnectResult",
    "connect",
    "ProxmoxError",
    "TransportError",
    "StatusError",
    "DecodeError",
    "ValidationError",
    "__version__",
    "__author__",
    "__description__",
]

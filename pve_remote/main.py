import logging
import re
import threading
import warnings
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Union
from urllib.parse import quote, urlencode

import requests
from requests.utils import DEFAULT_CA_BUNDLE_PATH
from urllib3.exceptions import InsecureRequestWarning

from .errors import DecodeError, ProxmoxError, StatusError, TransportError

# Plugin metadata
__version__ = "1.0.0"
__author__ = "pve-remote"
__description__ = "Session-authenticated Proxmox VE client for node power control"

API_PORT = 8006
REQUEST_TIMEOUT = 10  # seconds, never retried

FORM_CONTENT_TYPE = "application/x-www-form-urlencoded; charset=utf-8"
AUTH_COOKIE_NAME = "PVEAuthCookie"
CSRF_HEADER_NAME = "CSRFPreventionToken"

# Fallback values for the caller layer; the client itself only takes host + trust.
DEFAULT_CONFIG: Dict[str, Any] = {
    "host": "",
    "port": API_PORT,
    "username": "root",
    "realm": "pam",
    "accept_untrusted_certificates": True,
    "timeout": REQUEST_TIMEOUT,
}

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Certificate trust
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class TrustPolicy:
    """Certificate validation strategy bound to a single client.

    ``verify`` is ``True`` for the default CA store, ``False`` to accept any
    certificate the server presents, or the path of a CA bundle to validate
    against. Only chain validation changes; TLS is still negotiated and
    encrypted.
    """

    verify: Union[bool, str] = True

    @classmethod
    def system(cls) -> "TrustPolicy":
        return cls(verify=True)

    @classmethod
    def accept_any(cls) -> "TrustPolicy":
        return cls(verify=False)

    @classmethod
    def pinned(cls, ca_bundle: str) -> "TrustPolicy":
        return cls(verify=ca_bundle)

    @classmethod
    def for_flag(cls, accept_untrusted: bool) -> "TrustPolicy":
        return cls.accept_any() if accept_untrusted else cls.system()

    @property
    def accepts_any(self) -> bool:
        return self.verify is False

    @property
    def requests_verify(self) -> Union[bool, str]:
        """Value handed to requests.

        A bare ``True`` would let REQUESTS_CA_BUNDLE or CURL_CA_BUNDLE swap
        the bundle, so the default store is named by path.
        """
        return DEFAULT_CA_BUNDLE_PATH if self.verify is True else self.verify


# ---------------------------------------------------------------------------
# Value types
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class Session:
    """Credentials issued by a successful login. Replaced as a whole."""

    ticket: str = field(repr=False)
    csrf_token: str = field(repr=False)
    username: str


@dataclass(frozen=True)
class NodeInfo:
    name: str
    status: Optional[str] = None

    @property
    def is_online(self) -> bool:
        return self.status is not None and self.status.lower() == "online"

    @property
    def status_label(self) -> str:
        if self.status is None:
            return "Unknown"
        return "Online" if self.is_online else "Offline"


@dataclass
class ConnectResult:
    version: str
    nodes: List[NodeInfo] = field(default_factory=list)

    @property
    def status_message(self) -> str:
        return f"Connected • Proxmox {self.version}".rstrip()


# ---------------------------------------------------------------------------
# Response handling
# ---------------------------------------------------------------------------

def _check_status(response: requests.Response) -> None:
    # Error bodies are arbitrary (often empty or HTML), so never decode them.
    if not 200 <= response.status_code <= 299:
        raise StatusError(response.status_code, response.text)


def _unwrap(response: requests.Response) -> Any:
    """Return the payload of a ``{"data": ...}`` success envelope."""
    try:
        payload = response.json()
    except ValueError as e:
        raise DecodeError(f"Response is not valid JSON: {e}", response.text)

    if not isinstance(payload, dict) or "data" not in payload:
        raise DecodeError("Response has no 'data' envelope", response.text)
    return payload["data"]


def _require_str(data: Dict[str, Any], key: str, what: str) -> str:
    value = data.get(key)
    if not isinstance(value, str):
        raise DecodeError(f"{what} is missing string field '{key}'")
    return value


def _ignore_insecure_warnings_for(host: str) -> None:
    # urllib3 names the host in the warning text, so the filter only matches
    # this host. Re-adding an identical filter replaces it.
    warnings.filterwarnings(
        "ignore",
        message=rf"Unverified HTTPS request is being made to host '{re.escape(host)}'",
        category=InsecureRequestWarning,
    )


# ---------------------------------------------------------------------------
# Session client
# ---------------------------------------------------------------------------

class SessionClient:
    """Ticket-authenticated client for one Proxmox VE host.

    The client starts unauthenticated. ``login`` swaps in a complete
    :class:`Session`; every later request carries the ticket cookie, and
    non-GET requests also carry the CSRF token. ``logout`` drops the session
    locally and releases the transport; the API has no logout call.
    """

    def __init__(
        self,
        host: str,
        accept_untrusted_certificates: bool = False,
        trust: Optional[TrustPolicy] = None,
        http: Optional[requests.Session] = None,
    ) -> None:
        self._host = host
        self._trust = trust or TrustPolicy.for_flag(accept_untrusted_certificates)
        self._http = http or requests.Session()
        self._http.verify = self._trust.requests_verify
        self._session: Optional[Session] = None
        self._login_lock = threading.Lock()

        if self._trust.accepts_any:
            logger.warning(
                "Certificate validation disabled for %s; any certificate will be accepted",
                host,
            )
            _ignore_insecure_warnings_for(host)

    @property
    def host(self) -> str:
        return self._host

    @property
    def trust(self) -> TrustPolicy:
        return self._trust

    @property
    def accept_untrusted_certificates(self) -> bool:
        return self._trust.accepts_any

    @property
    def base_url(self) -> str:
        return f"https://{self._host}:{API_PORT}/api2/json"

    @property
    def is_authenticated(self) -> bool:
        return self._session is not None

    @property
    def username(self) -> Optional[str]:
        session = self._session
        return session.username if session else None

    def __enter__(self) -> "SessionClient":
        return self

    def __exit__(self, *args: object) -> None:
        self.logout()

    # -- transport ---------------------------------------------------------

    def _build_headers(self, method: str, is_form: bool) -> Dict[str, str]:
        headers: Dict[str, str] = {}
        if is_form:
            headers["Content-Type"] = FORM_CONTENT_TYPE

        session = self._session
        if session is not None:
            headers["Cookie"] = f"{AUTH_COOKIE_NAME}={session.ticket}"
            if method != "GET":
                headers[CSRF_HEADER_NAME] = session.csrf_token
        return headers

    def _request(
        self,
        method: str,
        path: str,
        form: Optional[Dict[str, str]] = None,
    ) -> requests.Response:
        body = urlencode(form).encode("utf-8") if form is not None else None
        headers = self._build_headers(method, is_form=form is not None)
        logger.debug("%s %s%s", method, self._host, path)

        try:
            response = self._http.request(
                method=method,
                url=f"{self.base_url}{path}",
                data=body,
                headers=headers,
                timeout=REQUEST_TIMEOUT,
                verify=self._trust.requests_verify,
            )
        except requests.exceptions.SSLError as e:
            raise TransportError(f"SSL Error: {e}") from e
        except requests.exceptions.Timeout as e:
            raise TransportError(f"Request timed out: {e}") from e
        except requests.exceptions.ConnectionError as e:
            raise TransportError(f"Cannot reach Proxmox host {self._host}: {e}") from e
        except requests.exceptions.RequestException as e:
            raise TransportError(f"Proxmox API failed: {e}") from e

        _check_status(response)
        return response

    # -- operations --------------------------------------------------------

    def login(self, username: str, password: str, realm: str) -> None:
        """Obtain a ticket and CSRF token. Leaves the old session on failure."""
        with self._login_lock:
            response = self._request(
                "POST",
                "/access/ticket",
                form={"username": username, "password": password, "realm": realm},
            )
            data = _unwrap(response)
            if not isinstance(data, dict):
                raise DecodeError("Login response payload is not an object", response.text)

            session = Session(
                ticket=_require_str(data, "ticket", "Login response"),
                csrf_token=_require_str(data, "CSRFPreventionToken", "Login response"),
                username=_require_str(data, "username", "Login response"),
            )
            self._session = session

        logger.info("Authenticated to %s as %s", self._host, session.username)

    def query_version(self) -> str:
        """Return the API version string."""
        data = _unwrap(self._request("GET", "/version"))
        if not isinstance(data, dict):
            raise DecodeError("Version payload is not an object")
        return _require_str(data, "version", "Version payload")

    def list_nodes(self) -> List[NodeInfo]:
        """List cluster nodes in the order the server returns them."""
        data = _unwrap(self._request("GET", "/nodes"))
        if not isinstance(data, list):
            raise DecodeError("Node list payload is not an array")

        nodes: List[NodeInfo] = []
        for item in data:
            if not isinstance(item, dict):
                raise DecodeError("Node entry is not an object")
            status = item.get("status")
            if status is not None and not isinstance(status, str):
                raise DecodeError("Node entry has a non-string 'status'")
            nodes.append(NodeInfo(name=_require_str(item, "node", "Node entry"), status=status))
        return nodes

    def reboot_node(self, name: str) -> None:
        """Ask the node to reboot. Fire-and-forget; never retried."""
        self._node_command(name, "reboot")

    def shutdown_node(self, name: str) -> None:
        """Ask the node to shut down. Fire-and-forget; never retried."""
        self._node_command(name, "shutdown")

    def _node_command(self, name: str, command: str) -> None:
        # The response payload (a task id) is ignored on purpose.
        self._request(
            "POST",
            f"/nodes/{quote(name, safe='')}/status",
            form={"command": command},
        )
        logger.info("%s requested for node %s on %s", command.capitalize(), name, self._host)

    def logout(self) -> None:
        """Forget the session and release the HTTP transport."""
        self._session = None
        self._http.close()
        logger.debug("Session for %s discarded", self._host)


# ---------------------------------------------------------------------------
# Connect sequence
# ---------------------------------------------------------------------------

def connect(
    client: SessionClient, username: str, password: str, realm: str
) -> ConnectResult:
    """Log in, read the version if possible, then list nodes.

    A failed version query only costs the version string. Login and node
    listing failures propagate.
    """
    client.login(username, password, realm)

    try:
        version = client.query_version()
    except ProxmoxError as e:
        logger.warning("Could not read Proxmox version from %s: %s", client.host, e)
        version = ""

    nodes = client.list_nodes()
    return ConnectResult(version=version, nodes=nodes)

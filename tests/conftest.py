"""Shared pytest fixtures and helpers."""

import json
from unittest.mock import MagicMock

import pytest
import requests

from pve_remote.main import SessionClient

LOGIN_BODY = {
    "data": {
        "ticket": "T1",
        "CSRFPreventionToken": "C1",
        "username": "root@pam",
    }
}


def make_response(status_code=200, body=b""):
    """Build a real requests.Response with the given status and body."""
    response = requests.Response()
    response.status_code = status_code
    if isinstance(body, (dict, list)):
        body = json.dumps(body).encode("utf-8")
    elif isinstance(body, str):
        body = body.encode("utf-8")
    response._content = body
    response.encoding = "utf-8"
    return response


def sent(http, index=-1):
    """Keyword arguments of a recorded ``http.request`` call."""
    return http.request.call_args_list[index].kwargs


@pytest.fixture
def http():
    return MagicMock()


@pytest.fixture
def client(http):
    return SessionClient("pve.example.com", accept_untrusted_certificates=True, http=http)


@pytest.fixture
def logged_in(client, http):
    http.request.return_value = make_response(200, LOGIN_BODY)
    client.login("root", "secret", "pam")
    http.request.reset_mock()
    return client

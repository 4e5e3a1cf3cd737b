from __future__ import annotations

from typing import Callable

import httpx

from .errors import GrantUnavailable
from .identity import ROOT_SERVICE
from .runtime import Runtime, ServiceInstance

TEST_USER = {
    "fullName": "Test User",
    "shortName": "test",
    "email": "test@storj.io",
    "password": "123a123",
}


def _check(resp: httpx.Response, step: str) -> httpx.Response:
    if resp.status_code >= 400:
        raise GrantUnavailable(f"{step} failed: HTTP {resp.status_code}: {resp.text[:200]}")
    return resp


def _field(resp: httpx.Response, step: str, name: str) -> str:
    body = resp.json()
    value = body.get(name) if isinstance(body, dict) else None
    if not value or not isinstance(value, str):
        raise GrantUnavailable(f"{step} failed: no {name} in response")
    return value


def request_api_key(
    satellite_address: str,
    console_url: str,
    timeout_s: float = 10.0,
    transport: httpx.BaseTransport | None = None,
) -> str:
    """Obtain an API key for the well-known test user from a satellite console.

    Registers the user (ignored when it already exists), logs in, creates a
    project and issues a key for it. ``satellite_address`` is ``nodeid@host:port``
    and only used to name the project.
    """
    try:
        with httpx.Client(base_url=console_url, timeout=timeout_s, transport=transport) as client:
            resp = client.post("/api/v0/auth/register", json={**TEST_USER, "isProfessional": False})
            if resp.status_code not in (200, 409):
                _check(resp, "register")

            resp = _check(
                client.post("/api/v0/auth/token", json={"email": TEST_USER["email"], "password": TEST_USER["password"]}),
                "login",
            )
            token = _field(resp, "login", "token")
            headers = {"Cookie": f"_tokenKey={token}"}

            resp = _check(
                client.post(
                    "/api/v0/projects",
                    json={"name": "test", "description": f"test project for {satellite_address}"},
                    headers=headers,
                ),
                "create project",
            )
            project_id = _field(resp, "create project", "id")

            resp = _check(
                client.post(f"/api/v0/api-keys/create/{project_id}", content="test", headers=headers),
                "create api key",
            )
            return _field(resp, "create api key", "key")
    except (httpx.HTTPError, ValueError) as e:
        raise GrantUnavailable(f"Could not reach satellite console at {console_url}: {type(e).__name__}: {e}") from e


def access_grant(runtime: Runtime, fetch: Callable[[str, str], str]) -> str:
    """Ask the root satellite (satellite-api/0) for a test API key."""
    sat = ServiceInstance(ROOT_SERVICE, 0)
    host = runtime.get_host(sat, "external")
    address = f"{runtime.get(sat, 'identity')}@{host}:{runtime.get_port(sat, 'public')}"
    console = f"http://{host}:{runtime.get_port(sat, 'console')}"
    return fetch(address, console)

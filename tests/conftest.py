"""Shared fixtures: an in-memory Services endpoint behind ``httpx.MockTransport``."""

from __future__ import annotations

import asyncio
import json
import re
from collections.abc import AsyncIterator, Callable
from typing import Any

import httpx
import pytest

from drupal_services.client import DrupalClient
from drupal_services.config import parse_config

APP_ROOT = "http://drupal.test/api"
APP_PATH = "/api"

SESSION_COOKIE = "SESSdrupaltest"

_ENTITY_PATH = re.compile(r"^/(?P<type>[a-z_]+)(?:/(?P<id>[^/]+))?$")


def node_record(nid: int, title: str, **extra: Any) -> dict[str, Any]:
    """A node as Services renders it: numbers and flags as strings."""
    record: dict[str, Any] = {
        "nid": str(nid),
        "vid": str(nid),
        "type": "article",
        "title": title,
        "uid": "1",
        "status": "1",
        "promote": "0",
        "sticky": "0",
        "created": "1400000000",
        "changed": "1400000100",
        "comment": "2",
        "rdf_mapping": {"rdftype": ["sioc:Item", "foaf:Document"]},
    }
    record.update(extra)
    return record


class FakeDrupal:
    """Stateful fake of a Drupal Services endpoint mounted at ``/api``.

    Records every request; ``overrides`` maps ``"METHOD /path"`` to a handler
    that replaces the built-in behaviour for that route.
    """

    def __init__(self) -> None:
        self.requests: list[httpx.Request] = []
        self.overrides: dict[str, Callable[[httpx.Request], httpx.Response]] = {}
        self.token = "csrf-anon"
        self.token_requests = 0
        self.token_gate: asyncio.Event | None = None
        self.accounts = {"editor": "secret"}
        self.users: dict[int, dict[str, Any]] = {
            7: {"uid": "7", "name": "editor", "status": "1", "created": "1300000000"},
        }
        self.session_uid = 0
        self.nodes: dict[int, dict[str, Any]] = {
            1: node_record(1, "First"),
            2: node_record(2, "Second", type="page"),
        }
        self.files: dict[int, dict[str, Any]] = {
            7: {
                "fid": "7",
                "filename": "photo.jpg",
                "type": "image",
                "filesize": "2048",
                "status": "1",
                "uid": "7",
            },
        }
        self.next_nid = 100

    # -- helpers ---------------------------------------------------------

    def paths(self) -> list[str]:
        return [f"{r.method} {r.url.path[len(APP_PATH):]}" for r in self.requests]

    def requests_to(self, method: str, path: str) -> list[httpx.Request]:
        return [
            r
            for r in self.requests
            if r.method == method and r.url.path == f"{APP_PATH}{path}"
        ]

    @staticmethod
    def body(request: httpx.Request) -> Any:
        return json.loads(request.content) if request.content else None

    # -- transport -------------------------------------------------------

    async def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        path = request.url.path[len(APP_PATH):]
        route = f"{request.method} {path}"

        if route in self.overrides:
            return self.overrides[route](request)

        if route == "POST /user/token":
            self.token_requests += 1
            if self.token_gate is not None:
                await self.token_gate.wait()
            return httpx.Response(200, json={"token": self.token})
        if route == "POST /system/connect":
            return self._connect()
        if route == "POST /user/login":
            return self._login(request)
        if route == "POST /user/logout":
            self.session_uid = 0
            self.token = "csrf-anon"
            return httpx.Response(200, json=[True])

        match = _ENTITY_PATH.match(path)
        if match is None:
            return httpx.Response(404, json=["Not found"])
        return self._entity(request, match["type"], match["id"])

    def _connect(self) -> httpx.Response:
        user = self.users.get(self.session_uid, {"uid": 0, "hostname": "127.0.0.1"})
        return httpx.Response(
            200,
            json={"sessid": "abc", "session_name": SESSION_COOKIE, "user": user},
        )

    def _login(self, request: httpx.Request) -> httpx.Response:
        body = self.body(request) or {}
        if self.accounts.get(body.get("username")) != body.get("password"):
            return httpx.Response(401, json=["Wrong username or password."])
        uid = next(uid for uid, u in self.users.items() if u["name"] == body["username"])
        self.session_uid = uid
        self.token = "csrf-login"
        return httpx.Response(
            200,
            json={"sessid": "xyz", "token": self.token, "user": self.users[uid]},
            headers={"Set-Cookie": f"{SESSION_COOKIE}=xyz; Path=/"},
        )

    def _entity(self, request: httpx.Request, etype: str, raw_id: str | None) -> httpx.Response:
        store = {"node": self.nodes, "file": self.files, "user": self.users}.get(etype)
        if store is None:
            return httpx.Response(404, json=[f"Unknown resource {etype}"])

        if raw_id is None:
            if request.method == "GET":
                return httpx.Response(200, json=list(store.values()))
            if request.method == "POST" and etype == "node":
                nid = self.next_nid
                self.next_nid += 1
                fields = dict(self.body(request) or {})
                record = node_record(nid, fields.pop("title", ""), **fields)
                record["nid"] = str(nid)
                self.nodes[nid] = record
                return httpx.Response(
                    200, json={"nid": str(nid), "uri": f"{APP_ROOT}/node/{nid}"}
                )
            return httpx.Response(405, json=["Method not allowed"])

        entity_id = int(raw_id)
        if entity_id not in store:
            return httpx.Response(404, json=[f"{etype} {entity_id} not found"])
        if request.method == "GET":
            return httpx.Response(200, json=store[entity_id])
        if request.method in ("PUT", "PATCH"):
            changes = self.body(request) or {}
            store[entity_id].update(
                {k: str(v) if isinstance(v, int) and not isinstance(v, bool) else v
                 for k, v in changes.items()}
            )
            id_key = {"node": "nid", "file": "fid", "user": "uid"}[etype]
            return httpx.Response(
                200, json={id_key: raw_id, "uri": f"{APP_ROOT}/{etype}/{raw_id}"}
            )
        if request.method == "DELETE":
            del store[entity_id]
            return httpx.Response(200, json=[True])
        return httpx.Response(405, json=["Method not allowed"])


@pytest.fixture
def drupal() -> FakeDrupal:
    return FakeDrupal()


@pytest.fixture
async def http_client(drupal: FakeDrupal) -> AsyncIterator[httpx.AsyncClient]:
    client = httpx.AsyncClient(transport=httpx.MockTransport(drupal.handler))
    try:
        yield client
    finally:
        await client.aclose()


@pytest.fixture
def config_data() -> dict[str, Any]:
    return {"drupal": {"app_root": APP_ROOT}}


@pytest.fixture
def client(http_client: httpx.AsyncClient, config_data: dict[str, Any]) -> DrupalClient:
    return DrupalClient(parse_config(config_data), http_client=http_client)

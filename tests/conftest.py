import itertools
import json
import time
from datetime import datetime, timedelta, timezone
from urllib.parse import unquote

import httpx
import pytest
from fastapi.testclient import TestClient

from perspective.backend.auth import AuthClient
from perspective.backend.client import BackendClient, get_backend
from perspective.main import app
from perspective.models import AuthSession, User
from perspective.routes import auth as auth_routes
from perspective.services.blogs import BlogRepository

BACKEND_URL = "http://backend.test"
OWNER_ID = "user-1"
OWNER_EMAIL = "writer@example.com"
OWNER_PASSWORD = "correct-horse"


def as_text(value):
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


class FakeHostedBackend:
    """In-memory stand-in for the hosted table, storage and auth APIs."""

    def __init__(self):
        self.rows: list[dict] = []
        self.objects: dict[str, tuple[bytes, str]] = {}
        self.users = {OWNER_EMAIL: {"id": OWNER_ID, "password": OWNER_PASSWORD}}
        self.requests: list[httpx.Request] = []
        self.failures: dict[tuple[str, str], int] = {}
        self.confirm_email = False
        self._ids = itertools.count(1)
        self._tokens = itertools.count(1)
        self._epoch = datetime(2024, 1, 1, tzinfo=timezone.utc)

    # -- helpers used by tests ------------------------------------------------

    def fail(self, method: str, path_prefix: str, status: int = 500):
        self.failures[(method, path_prefix)] = status

    def calls(self, method: str, path_prefix: str) -> list[httpx.Request]:
        return [
            r for r in self.requests
            if r.method == method and r.url.path.startswith(path_prefix)
        ]

    def add_post(self, **fields) -> dict:
        n = next(self._ids)
        row = {
            "id": f"post-{n}",
            "title": "A title",
            "content": "x" * 60,
            "excerpt": None,
            "category": "general",
            "image_url": None,
            "published": False,
            "user_id": OWNER_ID,
            "created_at": (self._epoch + timedelta(minutes=n)).isoformat(),
        }
        row.update(fields)
        self.rows.append(row)
        return row

    def session_payload(self, user_id: str, email: str) -> dict:
        n = next(self._tokens)
        return {
            "access_token": f"access-{n}",
            "refresh_token": f"refresh-{n}",
            "expires_in": 3600,
            "token_type": "bearer",
            "user": {"id": user_id, "email": email},
        }

    # -- transport ------------------------------------------------------------

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        path = request.url.path
        for (method, prefix), status in self.failures.items():
            if request.method == method and path.startswith(prefix):
                return httpx.Response(status, json={"message": "Service unavailable"})

        if path.startswith("/rest/v1/blogs"):
            return self._table(request)
        if path.startswith("/storage/v1/object/blog-images/"):
            key = unquote(path[len("/storage/v1/object/blog-images/"):])
            self.objects[key] = (request.content, request.headers.get("content-type", ""))
            return httpx.Response(200, json={"Key": f"blog-images/{key}"})
        if path == "/auth/v1/token":
            return self._token(request)
        if path == "/auth/v1/signup":
            return self._signup(request)
        if path == "/auth/v1/logout":
            return httpx.Response(204)
        return httpx.Response(404, json={"message": "No route"})

    def _matching(self, params) -> list[dict]:
        rows = self.rows
        for column, condition in params.multi_items():
            if column in ("select", "order", "limit"):
                continue
            op, _, value = condition.partition(".")
            assert op == "eq", condition
            rows = [r for r in rows if as_text(r.get(column)) == value]
        return rows

    def _table(self, request: httpx.Request) -> httpx.Response:
        params = request.url.params
        if request.method == "GET":
            rows = list(self._matching(params))
            if params.get("order") == "created_at.desc":
                rows.sort(key=lambda r: r["created_at"], reverse=True)
            if "limit" in params:
                rows = rows[:int(params["limit"])]
            select = params.get("select", "*")
            if select != "*":
                columns = select.split(",")
                rows = [{c: r.get(c) for c in columns} for r in rows]
            return httpx.Response(200, json=rows)

        if request.method == "POST":
            record = json.loads(request.content)
            row = self.add_post(**record)
            return httpx.Response(201, json=[row])

        if request.method == "PATCH":
            patch = json.loads(request.content)
            rows = self._matching(params)
            for row in rows:
                row.update(patch)
            return httpx.Response(200, json=rows)

        if request.method == "DELETE":
            doomed = self._matching(params)
            self.rows = [r for r in self.rows if r not in doomed]
            if request.headers.get("Prefer") == "return=representation":
                return httpx.Response(200, json=doomed)
            return httpx.Response(204)

        return httpx.Response(405)

    def _token(self, request: httpx.Request) -> httpx.Response:
        body = json.loads(request.content)
        grant = request.url.params.get("grant_type")
        if grant == "password":
            user = self.users.get(body["email"])
            if not user or user["password"] != body["password"]:
                return httpx.Response(
                    400,
                    json={"error": "invalid_grant", "error_description": "Invalid login credentials"},
                )
            return httpx.Response(200, json=self.session_payload(user["id"], body["email"]))
        if grant == "refresh_token":
            return httpx.Response(200, json=self.session_payload(OWNER_ID, OWNER_EMAIL))
        return httpx.Response(400, json={"error": "unsupported_grant_type"})

    def _signup(self, request: httpx.Request) -> httpx.Response:
        body = json.loads(request.content)
        if body["email"] in self.users:
            return httpx.Response(422, json={"msg": "User already registered"})
        user_id = f"user-{len(self.users) + 1}"
        self.users[body["email"]] = {"id": user_id, "password": body["password"]}
        if self.confirm_email:
            return httpx.Response(200, json={"id": user_id, "email": body["email"]})
        return httpx.Response(200, json=self.session_payload(user_id, body["email"]))


@pytest.fixture
def fake():
    return FakeHostedBackend()


@pytest.fixture
def backend(fake):
    return BackendClient(url=BACKEND_URL, anon_key="anon-key", transport=httpx.MockTransport(fake))


@pytest.fixture
def owner_session():
    return AuthSession(
        access_token="owner-access",
        refresh_token="owner-refresh",
        expires_at=int(time.time()) + 3600,
        user=User(id=OWNER_ID, email=OWNER_EMAIL),
    )


@pytest.fixture
def repository(backend, owner_session):
    return BlogRepository(backend, AuthClient(backend, owner_session))


@pytest.fixture
def client(backend):
    app.dependency_overrides[get_backend] = lambda: backend
    auth_routes.limiter.reset()
    test_client = TestClient(app)
    yield test_client
    app.dependency_overrides.clear()


@pytest.fixture
def signed_in(client, owner_session):
    client.cookies.set(
        auth_routes.SESSION_COOKIE_NAME,
        auth_routes.serializer.dumps(owner_session.to_dict()),
    )
    return client

from types import SimpleNamespace

import pytest
from postgrest.exceptions import APIError


class FakeQuery:
    """Chainable stand-in for a PostgREST query builder; records every call."""

    def __init__(self, client, table):
        self.client = client
        self.table = table
        self.calls = []

    def __getattr__(self, name):
        if name.startswith("_"):
            raise AttributeError(name)

        def _chain(*args, **kwargs):
            self.calls.append((name, args, kwargs))
            return self

        return _chain

    def called(self, name):
        return [(a, k) for n, a, k in self.calls if n == name]

    def execute(self):
        self.client.executed.append(self)
        err = self.client.errors.get(self.table)
        if err is not None:
            raise err
        for write in ("insert", "upsert"):
            if self.called(write):
                payload = self.called(write)[0][0][0]
                return SimpleNamespace(data=payload if isinstance(payload, list) else [payload], count=None)
        data = self.client.tables.get(self.table, [])
        if callable(data):
            data = data(self)
        return SimpleNamespace(data=data, count=self.client.counts.get(self.table))


class FakeAdmin:
    def __init__(self):
        self.created = []
        self.create_error = None
        self.users = []

    def create_user(self, attrs):
        self.created.append(attrs)
        if self.create_error is not None:
            raise self.create_error
        return SimpleNamespace(user=SimpleNamespace(id="new-user-id", email=attrs["email"]))

    def list_users(self):
        return list(self.users)


class FakeAuth:
    def __init__(self):
        self.admin = FakeAdmin()
        self.sign_in_result = None
        self.sign_in_error = None
        self.signed_out = 0
        self.updated = []
        self.update_error = None
        self.resets = []

    def sign_in_with_password(self, credentials):
        if self.sign_in_error is not None:
            raise self.sign_in_error
        return self.sign_in_result

    def sign_out(self):
        self.signed_out += 1

    def update_user(self, attrs):
        if self.update_error is not None:
            raise self.update_error
        self.updated.append(attrs)

    def reset_password_for_email(self, email, options=None):
        self.resets.append((email, options))


class FakeClient:
    """Supabase client double: preset rows per table, rpc results, fake auth."""

    def __init__(self, tables=None, counts=None, rpc_results=None):
        self.tables = dict(tables or {})
        self.counts = dict(counts or {})
        self.rpc_results = dict(rpc_results or {})
        self.errors = {}
        self.queries = []
        self.executed = []
        self.rpc_calls = []
        self.auth = FakeAuth()

    def table(self, name):
        q = FakeQuery(self, name)
        self.queries.append(q)
        return q

    def rpc(self, name, params):
        self.rpc_calls.append((name, params))
        q = FakeQuery(self, f"rpc:{name}")
        self.tables.setdefault(f"rpc:{name}", self.rpc_results.get(name))
        self.queries.append(q)
        return q

    def queries_for(self, table):
        return [q for q in self.queries if q.table == table]


def api_error(message="boom", code="PGRST000"):
    return APIError({"message": message, "code": code, "hint": None, "details": None})


@pytest.fixture
def client():
    return FakeClient()


@pytest.fixture
def make_client():
    return FakeClient


@pytest.fixture(name="api_error")
def api_error_fixture():
    return api_error


@pytest.fixture(autouse=True)
def local_settings(monkeypatch):
    # no secrets.toml; the depot clock is Kinshasa (UTC+1)
    from depot import db

    monkeypatch.setattr(db, "_secrets", lambda: {})
    monkeypatch.setenv("DEPOT_TIMEZONE", "Africa/Kinshasa")

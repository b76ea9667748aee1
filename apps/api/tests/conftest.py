from __future__ import annotations

from datetime import datetime, timedelta, timezone
from uuid import uuid4

import pytest
from fastapi.testclient import TestClient

from cradlelog.main import app
from cradlelog.sessions import SessionRegistry
from cradlelog.supabase import AuthContext, get_auth_context

T0 = datetime(2025, 3, 1, 8, 0, 0, tzinfo=timezone.utc)


class FakeSupabase:
    def __init__(self, *, select_queue=None, insert_queue=None, update_queue=None):
        self.select_queue = {
            table: list(items) for table, items in (select_queue or {}).items()
        }
        self.insert_queue = {
            table: list(items) for table, items in (insert_queue or {}).items()
        }
        self.update_queue = {
            table: list(items) for table, items in (update_queue or {}).items()
        }
        self.calls = []
        self.fail_with = None

    def _next(self, queue, table):
        if self.fail_with is not None:
            raise self.fail_with
        items = queue.get(table)
        if items:
            return items.pop(0)
        return []

    async def select(self, table, params):
        self.calls.append(("select", table, params))
        return self._next(self.select_queue, table)

    async def insert(self, table, payload, *, params=None):
        self.calls.append(("insert", table, payload, params))
        return self._next(self.insert_queue, table)

    async def update(self, table, payload, params):
        self.calls.append(("update", table, payload, params))
        return self._next(self.update_queue, table)

    def calls_for(self, kind, table=None):
        return [c for c in self.calls if c[0] == kind and (table is None or c[1] == table)]


class FakeClock:
    def __init__(self, start=T0):
        self.now = start

    def __call__(self):
        return self.now

    def advance(self, seconds):
        self.now += timedelta(seconds=seconds)
        return self.now


class FakeHandle:
    def __init__(self, delay, fn):
        self.delay = delay
        self.fn = fn
        self.cancelled = False
        self.fired = False

    def cancel(self):
        self.cancelled = True


class FakeScheduler:
    def __init__(self):
        self.handles = []

    def __call__(self, delay, fn):
        handle = FakeHandle(delay, fn)
        self.handles.append(handle)
        return handle

    @property
    def live(self):
        return [h for h in self.handles if not h.cancelled and not h.fired]

    def fire(self):
        (handle,) = self.live
        handle.fired = True
        handle.fn()


def make_auth(supabase) -> AuthContext:
    return AuthContext(
        user_id=str(uuid4()),
        user_email="parent@example.com",
        family_id=str(uuid4()),
        access_token="test-token",
        supabase=supabase,
        memberships=[],
    )


@pytest.fixture
def fake_supabase():
    return FakeSupabase()


@pytest.fixture
def auth(fake_supabase):
    return make_auth(fake_supabase)


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def scheduler():
    return FakeScheduler()


@pytest.fixture
def client(auth, clock, scheduler):
    original = app.state.sessions
    app.state.sessions = SessionRegistry(clock=clock, scheduler=scheduler)
    app.dependency_overrides[get_auth_context] = lambda: auth
    try:
        yield TestClient(app)
    finally:
        app.dependency_overrides.clear()
        app.state.sessions = original

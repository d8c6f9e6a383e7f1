import copy
import sys
import threading
from datetime import datetime, timedelta, timezone
from pathlib import Path

import pytest

# Enforce marker discipline so each test maps to a documented suite category.
ALLOWED_MARKERS = {"web", "store", "models", "db", "integration"}

# Keep `board` and the top-level modules importable from any working dir.
SRC_ROOT = Path(__file__).resolve().parents[1] / "src"
if str(SRC_ROOT) not in sys.path:
    sys.path.insert(0, str(SRC_ROOT))

from board.models import (  # noqa: E402
    DELETED_TEXT,
    RECENT_THREAD_LIMIT,
    Found,
    Outcome,
    Reply,
    Thread,
    ThreadView,
)


class FakeClock:
    """Clock that advances one second per reading."""

    def __init__(self, start=None):
        self._current = start or datetime(2024, 1, 1, tzinfo=timezone.utc)
        self._lock = threading.Lock()

    def __call__(self):
        with self._lock:
            self._current += timedelta(seconds=1)
            return self._current


class SequentialIds:
    """Deterministic 24-hex id factory."""

    def __init__(self):
        self._next = 0
        self._lock = threading.Lock()

    def __call__(self):
        with self._lock:
            self._next += 1
            return f"{self._next:024x}"


class FakeThreadStore:
    """In-memory store honouring the same outcomes as the PostgreSQL store.

    A single lock stands in for the database row lock so concurrent requests
    see each conditional update as one step.
    """

    def __init__(self, clock=None, id_factory=None):
        self._threads = {}
        self._lock = threading.Lock()
        self._now = clock or FakeClock()
        self._new_id = id_factory or SequentialIds()
        self.calls = []

    def raw(self, thread_id):
        """Return a deep copy of the stored (unredacted) thread."""
        with self._lock:
            return copy.deepcopy(self._threads.get(thread_id))

    def create_thread(self, board, text, delete_password):
        self.calls.append("create_thread")
        now = self._now()
        thread = Thread(
            id=self._new_id(),
            board=board,
            text=text,
            created_on=now,
            bumped_on=now,
            delete_password=delete_password,
        )
        with self._lock:
            self._threads[thread.id] = thread
            return copy.deepcopy(thread)

    def list_recent_threads(self, board, limit=RECENT_THREAD_LIMIT):
        self.calls.append("list_recent_threads")
        with self._lock:
            threads = [t for t in self._threads.values() if t.board == board]
            threads.sort(key=lambda t: t.bumped_on, reverse=True)
            return [ThreadView.preview(t) for t in threads[:limit]]

    def get_thread(self, thread_id):
        self.calls.append("get_thread")
        with self._lock:
            thread = self._threads.get(thread_id)
            if thread is None:
                return Outcome.NOT_FOUND
            return Found(ThreadView.full(thread))

    def report_thread(self, thread_id):
        self.calls.append("report_thread")
        with self._lock:
            thread = self._threads.get(thread_id)
            if thread is None:
                return Outcome.NOT_FOUND
            thread.reported = True
            return Outcome.UPDATED

    def delete_thread(self, thread_id, delete_password):
        self.calls.append("delete_thread")
        with self._lock:
            thread = self._threads.get(thread_id)
            if thread is None:
                return Outcome.NOT_FOUND
            if thread.delete_password != delete_password:
                return Outcome.WRONG_PASSWORD
            del self._threads[thread_id]
            return Outcome.DELETED

    def add_reply(self, thread_id, text, delete_password):
        self.calls.append("add_reply")
        with self._lock:
            thread = self._threads.get(thread_id)
            if thread is None:
                return Outcome.NOT_FOUND
            now = max(self._now(), thread.bumped_on + timedelta(microseconds=1))
            thread.replies.append(
                Reply(id=self._new_id(), text=text, created_on=now,
                      delete_password=delete_password)
            )
            thread.bumped_on = now
            thread.replycount += 1
            return Found(ThreadView.full(thread))

    def _find_reply(self, thread_id, reply_id):
        thread = self._threads.get(thread_id)
        if thread is None:
            return None
        return next((r for r in thread.replies if r.id == reply_id), None)

    def report_reply(self, thread_id, reply_id):
        self.calls.append("report_reply")
        with self._lock:
            reply = self._find_reply(thread_id, reply_id)
            if reply is None:
                return Outcome.NOT_FOUND
            reply.reported = True
            return Outcome.UPDATED

    def delete_reply(self, thread_id, reply_id, delete_password):
        self.calls.append("delete_reply")
        with self._lock:
            reply = self._find_reply(thread_id, reply_id)
            if reply is None:
                return Outcome.NOT_FOUND
            if reply.delete_password != delete_password:
                return Outcome.WRONG_PASSWORD
            reply.text = DELETED_TEXT
            return Outcome.UPDATED


@pytest.fixture
def fake_store():
    """Provide a fresh in-memory thread store per test."""
    return FakeThreadStore()


@pytest.fixture
def app(fake_store):
    """Create the Flask app with the in-memory store injected."""
    from board import create_app

    return create_app(test_config={"TESTING": True}, thread_store=fake_store)


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def seeded_thread(fake_store):
    """Create one thread on ``testboard`` and return its stored entity."""
    return fake_store.create_thread("testboard", "hello", "pw")


def pytest_configure(config):
    for marker in sorted(ALLOWED_MARKERS):
        config.addinivalue_line("markers", f"{marker}: {marker} suite")


def pytest_collection_modifyitems(session, config, items):
    unmarked = []
    for item in items:
        # Accept tests carrying any one approved marker; multiple markers are also valid.
        if not ALLOWED_MARKERS.intersection(item.keywords):
            unmarked.append(item.nodeid)

    if unmarked:
        # Fail collection early so CI does not run partially categorized suites.
        joined = "\n".join(f"- {nodeid}" for nodeid in unmarked)
        raise pytest.UsageError(
            "Each test must include at least one approved marker "
            f"({', '.join(sorted(ALLOWED_MARKERS))}).\n"
            "Unmarked tests:\n"
            f"{joined}"
        )

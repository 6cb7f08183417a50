import pytest

from fadenotes.db import init_db, reset_engine
from fadenotes.lifecycle import LifecycleEngine
from fadenotes.notifications import NotificationGateway, PermissionState
from fadenotes.store import NoteStore


class FakeClock:
    def __init__(self, now: int = 1_000_000):
        self.now = now

    def __call__(self) -> int:
        return self.now

    def advance(self, ms: int) -> int:
        self.now += ms
        return self.now


class RecordingNotifier(NotificationGateway):
    def __init__(self, permission=PermissionState.GRANTED, answer=True):
        super().__init__(permission)
        self.answer = answer
        self.sent = []

    def _ask(self):
        return self.answer

    def _dispatch(self, title, body):
        self.sent.append((title, body))

    def titles(self):
        return [t for t, _ in self.sent]


@pytest.fixture
def db(tmp_path, monkeypatch):
    path = tmp_path / "notes.sqlite"
    monkeypatch.setenv("FADENOTES_DB_PATH", str(path))
    reset_engine()
    init_db()
    yield path
    reset_engine()


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def notifier():
    return RecordingNotifier()


@pytest.fixture
def store(db):
    s = NoteStore()
    s.load()
    return s


@pytest.fixture
def engine(store, notifier, clock):
    return LifecycleEngine(store, gateway=notifier, clock=clock)

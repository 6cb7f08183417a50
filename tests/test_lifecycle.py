import json
from contextlib import contextmanager

from sqlalchemy.exc import OperationalError

from fadenotes import store as store_module
from fadenotes.db import session_scope
from fadenotes.lifecycle import ChangeKind
from fadenotes.models import LIFESPAN_MS, NoteSnapshot, NoteStatus, WARNING_WINDOW_MS
from fadenotes.store import NoteStore

T0 = 1_000_000


def _snapshot_ids():
    with session_scope() as s:
        row = s.get(NoteSnapshot, "notes")
        return [r["id"] for r in json.loads(row.payload)]


def test_create_builds_active_note(engine, store, notifier):
    n = engine.create("A", "body", "x, y")
    assert n.to_record() == {
        "id": T0, "title": "A", "content": "body", "tags": ["x", "y"],
        "modified": T0, "deletionTime": 2_593_000_000, "isArchived": False,
    }
    assert engine.is_warned(T0) is False
    assert engine.status_of(T0) is NoteStatus.ACTIVE
    assert store.get(T0) is n
    assert _snapshot_ids() == [T0]
    assert notifier.titles() == ["Note Saved!"]


def test_create_trims_and_rejects_empty(engine, store, notifier):
    assert engine.create("   ", "body") is None
    assert engine.create("title", "  \n ") is None
    assert store.all() == ()
    assert notifier.sent == []

    n = engine.create("  padded ", " text ", " a,, ,b ,")
    assert (n.title, n.content, n.tags) == ("padded", "text", ["a", "b"])


def test_create_in_same_millisecond_gets_unique_ids(engine, store):
    a = engine.create("a", "1")
    b = engine.create("b", "2")
    assert a.id == T0
    assert b.id == T0 + 1
    assert [n.id for n in store.all()] == [T0, T0 + 1]


def test_warns_once_inside_window(engine, clock, notifier):
    engine.create("A", "body", "x, y")
    clock.now = T0 + LIFESPAN_MS - 200_000

    result = engine.sweep()
    assert result.warned == [T0]
    assert notifier.titles().count("Note Expiration Warning") == 1
    assert 'The note "A"' in notifier.sent[-1][1]
    assert engine.status_of(T0) is NoteStatus.WARNED

    clock.advance(10_000)
    assert engine.sweep().warned == []
    assert notifier.titles().count("Note Expiration Warning") == 1


def test_window_edge_does_not_warn(engine, clock, notifier):
    engine.create("A", "body")
    clock.now = T0 + LIFESPAN_MS - WARNING_WINDOW_MS
    assert engine.sweep().warned == []
    clock.advance(1)
    assert engine.sweep().warned == [T0]


def test_expires_at_deadline(engine, store, clock, notifier):
    engine.create("A", "body", "x, y")
    clock.now = T0 + LIFESPAN_MS - 200_000
    engine.sweep()

    clock.now = T0 + LIFESPAN_MS
    result = engine.sweep()
    assert result.expired == [T0]
    assert store.get(T0) is None
    assert engine.is_warned(T0) is False
    assert _snapshot_ids() == []
    assert notifier.titles()[-1] == "Note Expired"


def test_expiry_without_prior_warning(engine, store, clock):
    # a missed window (e.g. the process was not running) still expires
    engine.create("A", "body")
    clock.now = T0 + LIFESPAN_MS + 5_000
    result = engine.sweep()
    assert result.warned == []
    assert result.expired == [T0]


def test_archived_note_never_expires(engine, store, clock):
    engine.create("A", "body", "x, y")
    engine.toggle_archive(T0)
    assert engine.status_of(T0) is NoteStatus.ARCHIVED

    for step in range(5):
        clock.now = T0 + LIFESPAN_MS + step * 10 * LIFESPAN_MS
        result = engine.sweep()
        assert result.expired == [] and result.warned == []
    assert store.get(T0) is not None


def test_archive_keeps_deadline_and_unarchive_resets(engine, store, clock, notifier):
    engine.create("A", "body")
    clock.now = T0 + LIFESPAN_MS - 200_000
    engine.sweep()
    assert engine.is_warned(T0)

    engine.toggle_archive(T0)
    assert store.get(T0).deletion_deadline == T0 + LIFESPAN_MS

    t1 = clock.advance(10 * LIFESPAN_MS)
    n = engine.toggle_archive(T0)
    assert n.archived is False
    assert n.deletion_deadline == t1 + LIFESPAN_MS
    assert engine.is_warned(T0) is False
    assert notifier.titles()[-2:] == ["Note Archived", "Note Unarchived"]

    # a fresh deadline earns exactly one more warning
    clock.now = t1 + LIFESPAN_MS - 1_000
    assert engine.sweep().warned == [T0]


def test_repeated_archive_does_not_reset_twice(engine, store, clock):
    engine.create("A", "body")
    engine.archive(T0)
    clock.advance(1_000)
    engine.archive(T0)
    engine.archive(T0)
    t1 = clock.advance(1_000)
    engine.unarchive(T0)
    assert store.get(T0).deletion_deadline == t1 + LIFESPAN_MS

    clock.advance(5_000)
    engine.unarchive(T0)
    assert store.get(T0).deletion_deadline == t1 + LIFESPAN_MS
    assert store.get(T0).archived is False


def test_edit_resets_deadline_and_warning(engine, store, clock, notifier):
    engine.create("A", "body", "x, y")
    clock.now = T0 + LIFESPAN_MS - 200_000
    engine.sweep()

    t2 = clock.advance(1_000)
    n = engine.edit(T0, "A2", "body2", "z")
    assert (n.title, n.content, n.tags) == ("A2", "body2", ["z"])
    assert n.modified_at == t2
    assert n.deletion_deadline == t2 + LIFESPAN_MS
    assert n.created_at == T0
    assert engine.is_warned(T0) is False
    assert notifier.titles()[-1] == "Note Updated!"


def test_edit_rejections_change_nothing(engine, store, clock):
    engine.create("A", "body", "x")
    clock.advance(1_000)
    assert engine.edit(T0, "", "body2") is None
    assert engine.edit(T0, "A2", "   ") is None
    assert engine.edit(12345, "A2", "body2") is None
    n = store.get(T0)
    assert (n.title, n.content, n.tags, n.modified_at) == ("A", "body", ["x"], T0)


def test_deadline_tracks_latest_reset(engine, store, clock):
    engine.create("A", "body")
    clock.advance(3_000)
    engine.edit(T0, "A", "b2")
    engine.toggle_archive(T0)
    last = clock.advance(7_000)
    engine.toggle_archive(T0)
    clock.advance(2_000)
    engine.edit(T0, "A", "b3")
    assert store.get(T0).deletion_deadline == clock.now + LIFESPAN_MS
    assert clock.now > last


def test_delete_any_state(engine, store, clock, notifier):
    a = engine.create("A", "body")
    clock.advance(1)
    b = engine.create("B", "body")
    engine.toggle_archive(b.id)

    clock.now = a.deletion_deadline - 1_000
    engine.sweep()
    assert engine.is_warned(a.id)

    assert engine.delete(a.id) is True
    assert engine.is_warned(a.id) is False
    assert engine.delete(b.id) is True
    assert engine.delete(b.id) is False
    assert store.all() == ()
    assert _snapshot_ids() == []
    assert notifier.titles()[-1] == "Note Deleted"


def test_unknown_ids_are_no_ops(engine, notifier):
    assert engine.toggle_archive(42) is None
    assert engine.archive(42) is None
    assert engine.unarchive(42) is None
    assert engine.delete(42) is False
    assert engine.status_of(42) is None
    assert notifier.sent == []


def test_mutations_and_removals_signal_render(engine, clock):
    events = []
    unsubscribe = engine.subscribe(events.append)

    engine.create("A", "body")
    engine.sweep()
    assert [e.kind for e in events] == [ChangeKind.RENDER, ChangeKind.TICK]

    clock.now = T0 + LIFESPAN_MS
    engine.sweep()
    assert [e.kind for e in events][-2:] == [ChangeKind.RENDER, ChangeKind.TICK]

    unsubscribe()
    engine.create("B", "body")
    assert len(events) == 4


def test_broken_listener_does_not_break_mutation(engine, store):
    def boom(event):
        raise RuntimeError("render failed")

    engine.subscribe(boom)
    assert engine.create("A", "body") is not None
    assert store.get(T0) is not None


@contextmanager
def _disk_full():
    raise OperationalError("UPDATE notesnapshot", {}, Exception("database or disk is full"))
    yield  # pragma: no cover


def test_persistence_failure_is_reported_and_retried(engine, store, clock, monkeypatch):
    events = []
    engine.subscribe(events.append)
    engine.create("A", "body")

    monkeypatch.setattr(store_module, "session_scope", _disk_full)
    clock.advance(1_000)
    b = engine.create("B", "body")
    assert b is not None
    assert engine.last_persistence_error is not None
    assert ChangeKind.PERSIST_FAILED in [e.kind for e in events]
    assert [n.id for n in store.all()] == [T0, b.id]
    assert _snapshot_ids() == [T0]

    monkeypatch.setattr(store_module, "session_scope", session_scope)
    clock.advance(1_000)
    engine.toggle_archive(T0)
    assert engine.last_persistence_error is None
    assert _snapshot_ids() == [T0, b.id]


def test_close_writes_unsaved_state(db, notifier, clock):
    from fadenotes.lifecycle import LifecycleEngine
    from fadenotes.models import Note

    s = NoteStore()
    s.load()
    engine = LifecycleEngine(s, gateway=notifier, clock=clock)
    s.add(Note(id=5, title="t", content="c", modified_at=5, deletion_deadline=5 + LIFESPAN_MS))
    engine.close()
    assert s.dirty is False
    assert _snapshot_ids() == [5]


def test_warned_state_is_not_persisted(engine, clock):
    engine.create("A", "body")
    clock.now = T0 + LIFESPAN_MS - 1_000
    engine.sweep()

    reloaded = NoteStore()
    reloaded.load()
    assert set(reloaded.get(T0).model_dump()) == {
        "id", "title", "content", "tags", "modified_at", "deletion_deadline", "archived",
    }

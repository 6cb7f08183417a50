from __future__ import annotations
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, Optional
import asyncio
import logging
import time

from .errors import NotFound, PersistenceError, ValidationError
from .models import (
    LIFESPAN_MS, SWEEP_INTERVAL_MS, WARNING_WINDOW_MS,
    Note, NoteStatus, parse_tags,
)
from .notifications import NotificationGateway, UnsupportedNotifier
from .store import NoteStore

logger = logging.getLogger(__name__)


def now_ms() -> int:
    return time.time_ns() // 1_000_000


class ChangeKind(str, Enum):
    RENDER = "render"          # state changed, re-render everything
    TICK = "tick"              # sweep ran; refresh live timer text only
    PERSIST_FAILED = "persist_failed"


@dataclass(frozen=True)
class ChangeEvent:
    kind: ChangeKind
    now: int
    error: Optional[PersistenceError] = None


@dataclass
class SweepResult:
    now: int
    warned: list[int] = field(default_factory=list)
    expired: list[int] = field(default_factory=list)


Listener = Callable[[ChangeEvent], None]


def _require_text(title: str, content: str) -> tuple[str, str]:
    title = (title or "").strip()
    content = (content or "").strip()
    if not title:
        raise ValidationError("title is required")
    if not content:
        raise ValidationError("content is required")
    return title, content


class LifecycleEngine:
    """All note state transitions plus the periodic expiration sweep.

    Runs on a single thread / event loop: every mutation and every sweep tick
    completes before the next one starts, so the store needs no locking.
    Failures never escape a mutation or a sweep; they are logged and the
    operation returns ``None``/``False`` (or emits ``PERSIST_FAILED``).
    """

    def __init__(
        self,
        store: NoteStore,
        gateway: Optional[NotificationGateway] = None,
        clock: Callable[[], int] = now_ms,
        sweep_interval_ms: int = SWEEP_INTERVAL_MS,
    ):
        self.store = store
        self.gateway = gateway if gateway is not None else UnsupportedNotifier()
        self.clock = clock
        self.sweep_interval_ms = sweep_interval_ms
        self.last_persistence_error: Optional[PersistenceError] = None
        self._warned: set[int] = set()
        self._listeners: list[Listener] = []
        self._task: Optional[asyncio.Task] = None
        self._running = False

    # ---------- signals ----------
    def subscribe(self, listener: Listener) -> Callable[[], None]:
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)
        return unsubscribe

    def _emit(self, kind: ChangeKind, now: int, error: Optional[PersistenceError] = None) -> None:
        event = ChangeEvent(kind, now, error)
        for listener in list(self._listeners):
            try:
                listener(event)
            except Exception:
                logger.exception("change listener failed on %s", kind.value)

    def _commit(self, now: int) -> None:
        try:
            self.store.persist()
        except PersistenceError as e:
            # memory stays authoritative; the next commit writes it again
            self.last_persistence_error = e
            logger.error("snapshot write failed: %s", e)
            self._emit(ChangeKind.PERSIST_FAILED, now, e)
        else:
            self.last_persistence_error = None
        self._emit(ChangeKind.RENDER, now)

    # ---------- status ----------
    def is_warned(self, note_id: int) -> bool:
        return note_id in self._warned

    def status_of(self, note: Note | int) -> Optional[NoteStatus]:
        if isinstance(note, int):
            found = self.store.get(note)
            if found is None:
                return None
            note = found
        if note.archived:
            return NoteStatus.ARCHIVED
        if note.id in self._warned:
            return NoteStatus.WARNED
        return NoteStatus.ACTIVE

    # ---------- mutations ----------
    def _next_id(self, now: int) -> int:
        if self.store.get(now) is None:
            return now
        return max(now, self.store.last_id() or now) + 1

    def create(self, title: str, content: str, tags_text: str = "") -> Optional[Note]:
        try:
            title, content = _require_text(title, content)
        except ValidationError as e:
            logger.info("create rejected: %s", e)
            return None
        now = self.clock()
        note_id = self._next_id(now)
        note = Note(
            id=note_id,
            title=title,
            content=content,
            tags=parse_tags(tags_text),
            modified_at=note_id,
            deletion_deadline=note_id + LIFESPAN_MS,
            archived=False,
        )
        self.gateway.notify(
            "Note Saved!",
            f'The note "{title}" has been saved. It will be auto-deleted in 30 days unless archived.',
        )
        self.store.add(note)
        logger.info("created note %d", note.id)
        self._commit(now)
        return note

    def edit(self, note_id: int, title: str, content: str, tags_text: str = "") -> Optional[Note]:
        try:
            title, content = _require_text(title, content)
        except ValidationError as e:
            logger.info("edit of note %d rejected: %s", note_id, e)
            return None
        now = self.clock()
        tags = parse_tags(tags_text)

        def apply(note: Note) -> None:
            note.title = title
            note.content = content
            note.tags = tags
            note.modified_at = now
            note.reset_deadline(now)

        try:
            note = self.store.update(note_id, apply)
        except NotFound as e:
            logger.debug("edit skipped: %s", e)
            return None
        self._warned.discard(note_id)
        self.gateway.notify(
            "Note Updated!",
            f'The note "{title}" has been updated. The 30-day deletion timer has been reset.',
        )
        logger.info("edited note %d", note_id)
        self._commit(now)
        return note

    def toggle_archive(self, note_id: int) -> Optional[Note]:
        note = self.store.get(note_id)
        if note is None:
            logger.debug("toggle_archive skipped: note %d not found", note_id)
            return None
        if note.archived:
            return self.unarchive(note_id)
        return self.archive(note_id)

    def archive(self, note_id: int) -> Optional[Note]:
        note = self.store.get(note_id)
        if note is None:
            logger.debug("archive skipped: note %d not found", note_id)
            return None
        if note.archived:
            return note
        now = self.clock()

        def apply(n: Note) -> None:
            # deadline is left as-is; it is inert while archived
            n.archived = True

        self.store.update(note_id, apply)
        self.gateway.notify(
            "Note Archived",
            f'"{note.title}" is now archived and will not be auto-deleted.',
        )
        logger.info("archived note %d", note_id)
        self._commit(now)
        return note

    def unarchive(self, note_id: int) -> Optional[Note]:
        note = self.store.get(note_id)
        if note is None:
            logger.debug("unarchive skipped: note %d not found", note_id)
            return None
        if not note.archived:
            return note
        now = self.clock()

        def apply(n: Note) -> None:
            n.archived = False
            n.reset_deadline(now)

        self.store.update(note_id, apply)
        self._warned.discard(note_id)
        self.gateway.notify(
            "Note Unarchived",
            f'"{note.title}" is now active. The 30-day deletion timer has been reset.',
        )
        logger.info("unarchived note %d", note_id)
        self._commit(now)
        return note

    def delete(self, note_id: int) -> bool:
        """Remove a note in any state. Asking the user first is the caller's job."""
        note = self.store.get(note_id)
        self._warned.discard(note_id)
        if note is None or not self.store.remove(note_id):
            logger.debug("delete skipped: note %d not found", note_id)
            return False
        now = self.clock()
        self.gateway.notify("Note Deleted", f'The note "{note.title}" has been deleted.')
        logger.info("deleted note %d", note_id)
        self._commit(now)
        return True

    # ---------- sweep ----------
    def sweep(self, now: Optional[int] = None) -> SweepResult:
        now = self.clock() if now is None else now
        result = SweepResult(now=now)

        for note in self.store.all():
            if note.archived:
                continue
            remaining = note.deletion_deadline - now
            if 0 < remaining < WARNING_WINDOW_MS and note.id not in self._warned:
                self.gateway.notify(
                    "Note Expiration Warning",
                    f'The note "{note.title}" will be deleted in less than 5 minutes.',
                )
                self._warned.add(note.id)
                result.warned.append(note.id)

        for note in self.store.all():
            if note.archived or now < note.deletion_deadline:
                continue
            self.store.remove(note.id)
            self._warned.discard(note.id)
            result.expired.append(note.id)
            self.gateway.notify("Note Expired", f'The note "{note.title}" has expired and was deleted.')
            logger.info("note %d expired", note.id)

        if result.expired:
            self._commit(now)
        self._emit(ChangeKind.TICK, now)
        return result

    # ---------- scheduling ----------
    @property
    def running(self) -> bool:
        return self._running

    def start(self) -> asyncio.Task:
        """Start the recurring sweep on the running event loop."""
        if self._task is not None and not self._task.done():
            return self._task
        self._running = True
        self._task = asyncio.get_running_loop().create_task(self._run())
        logger.info("sweep started every %d ms", self.sweep_interval_ms)
        return self._task

    async def _run(self) -> None:
        interval = self.sweep_interval_ms / 1000
        while self._running:
            await asyncio.sleep(interval)
            if not self._running:
                break
            try:
                self.sweep()
            except Exception:
                # one bad tick must not end the schedule
                logger.exception("sweep tick failed")

    def stop(self) -> None:
        """Stop the sweep. No tick runs after this returns."""
        self._running = False
        if self._task is not None:
            self._task.cancel()
            self._task = None
            logger.info("sweep stopped")

    def close(self) -> None:
        self.stop()
        if self.store.dirty:
            try:
                self.store.persist()
            except PersistenceError as e:
                self.last_persistence_error = e
                logger.error("final snapshot write failed: %s", e)

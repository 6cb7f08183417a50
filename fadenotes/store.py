from __future__ import annotations
from bisect import insort
from datetime import datetime, UTC
from typing import Callable, Optional
import json
import logging

from pydantic import TypeAdapter, ValidationError as SchemaError
from sqlalchemy.exc import SQLAlchemyError

from .db import session_scope
from .errors import NotFound, PersistenceError
from .models import Note, NoteSnapshot

logger = logging.getLogger(__name__)

_RECORDS = TypeAdapter(list[Note])


class NoteStore:
    """Canonical, id-ordered collection of notes backed by one snapshot row.

    The in-memory list is authoritative. ``persist()`` replaces the stored
    snapshot as a whole inside one transaction, so a failed write leaves the
    previous snapshot intact.
    """

    def __init__(self, snapshot_key: str = "notes"):
        self.snapshot_key = snapshot_key
        self._notes: list[Note] = []
        self.dirty = False

    def load(self) -> None:
        try:
            with session_scope() as s:
                row = s.get(NoteSnapshot, self.snapshot_key)
                payload = row.payload if row is not None else None
        except SQLAlchemyError as e:
            raise PersistenceError(f"could not read snapshot '{self.snapshot_key}': {e}") from e

        if payload is None:
            self._notes = []
        else:
            try:
                notes = _RECORDS.validate_json(payload)
            except SchemaError as e:
                raise PersistenceError(f"snapshot '{self.snapshot_key}' is unreadable: {e}") from e
            self._notes = sorted(notes, key=lambda n: n.id)
        self.dirty = False
        logger.info("loaded %d notes from snapshot %r", len(self._notes), self.snapshot_key)

    def persist(self) -> None:
        payload = json.dumps([n.to_record() for n in self._notes])
        try:
            with session_scope() as s:
                row = s.get(NoteSnapshot, self.snapshot_key)
                if row is None:
                    row = NoteSnapshot(key=self.snapshot_key)
                row.payload = payload
                row.saved_at = datetime.now(UTC)
                s.add(row)
        except (SQLAlchemyError, OSError) as e:
            self.dirty = True
            raise PersistenceError(f"could not write snapshot '{self.snapshot_key}': {e}") from e
        self.dirty = False

    def add(self, note: Note) -> None:
        if self.get(note.id) is not None:
            raise ValueError(f"Note {note.id} already exists")
        insort(self._notes, note, key=lambda n: n.id)
        self.dirty = True

    def get(self, note_id: int) -> Optional[Note]:
        for note in self._notes:
            if note.id == note_id:
                return note
        return None

    def update(self, note_id: int, mutator: Callable[[Note], None]) -> Note:
        note = self.get(note_id)
        if note is None:
            raise NotFound(note_id)
        mutator(note)
        self.dirty = True
        return note

    def remove(self, note_id: int) -> bool:
        for i, note in enumerate(self._notes):
            if note.id == note_id:
                del self._notes[i]
                self.dirty = True
                return True
        return False

    def all(self) -> tuple[Note, ...]:
        return tuple(self._notes)

    def last_id(self) -> Optional[int]:
        return self._notes[-1].id if self._notes else None

    def __len__(self) -> int:
        return len(self._notes)

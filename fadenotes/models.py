from __future__ import annotations
from datetime import datetime, UTC
from enum import Enum
from typing import Any, Optional
from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator
from sqlmodel import Field as SQLField, SQLModel

LIFESPAN_MS = 30 * 24 * 60 * 60 * 1000
WARNING_WINDOW_MS = 5 * 60 * 1000
SWEEP_INTERVAL_MS = 1000
# display only: hide "modified" when it is within a second of creation
MODIFIED_DISPLAY_THRESHOLD_MS = 1000


class NoteStatus(str, Enum):
    ACTIVE = "active"
    WARNED = "warned"
    ARCHIVED = "archived"


def parse_tags(text: Optional[str]) -> list[str]:
    """Split comma separated tag text, trimming and dropping empties."""
    if not text:
        return []
    return [t.strip() for t in text.split(",") if t.strip()]


class Note(BaseModel):
    """A single note as held in memory and written to the snapshot.

    Field aliases are the snapshot's JSON keys.
    """

    model_config = ConfigDict(populate_by_name=True)

    id: int
    title: str
    content: str
    tags: list[str] = Field(default_factory=list)
    modified_at: int = Field(alias="modified")
    deletion_deadline: int = Field(alias="deletionTime")
    archived: bool = Field(default=False, alias="isArchived")

    @model_validator(mode="before")
    @classmethod
    def _fill_legacy_fields(cls, data: Any) -> Any:
        # older snapshots predate "modified" and "deletionTime"
        if isinstance(data, dict) and "id" in data:
            data = dict(data)
            if data.get("modified") is None and data.get("modified_at") is None:
                data["modified"] = data["id"]
            if data.get("deletionTime") is None and data.get("deletion_deadline") is None:
                data["deletionTime"] = data["id"] + LIFESPAN_MS
        return data

    @field_validator("tags", mode="before")
    @classmethod
    def _none_tags(cls, v: Any) -> Any:
        return [] if v is None else v

    @property
    def created_at(self) -> int:
        return self.id

    def reset_deadline(self, now: int) -> None:
        self.deletion_deadline = now + LIFESPAN_MS

    def to_record(self) -> dict[str, Any]:
        return self.model_dump(by_alias=True)


class NoteSnapshot(SQLModel, table=True):
    # one row per snapshot key; payload is the JSON array of note records
    key: str = SQLField(primary_key=True)
    payload: str = "[]"
    saved_at: datetime = SQLField(default_factory=lambda: datetime.now(UTC))

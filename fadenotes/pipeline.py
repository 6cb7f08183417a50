from __future__ import annotations
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Callable, Iterable, Optional, Sequence
import locale
import unicodedata

from .models import MODIFIED_DISPLAY_THRESHOLD_MS, Note, NoteStatus


class StatusFilter(str, Enum):
    ACTIVE = "active"
    ARCHIVED = "archived"
    ALL = "all"


class SortOrder(str, Enum):
    CREATED_ASC = "created-asc"
    CREATED_DESC = "created-desc"
    TITLE_ASC = "title-asc"
    TITLE_DESC = "title-desc"
    MODIFIED_DESC = "modified-desc"


@dataclass
class ViewState:
    status_filter: StatusFilter = StatusFilter.ACTIVE
    tag_filter: Optional[str] = None
    sort_order: SortOrder = SortOrder.MODIFIED_DESC
    show_timers: bool = False


@dataclass(frozen=True)
class NoteCard:
    id: int
    title: str
    content: str
    tags: tuple[str, ...]
    status: NoteStatus
    created_label: str
    modified_label: Optional[str]
    archive_label: str
    timer_text: Optional[str]
    deletion_deadline: int


@dataclass(frozen=True)
class ViewModel:
    cards: tuple[NoteCard, ...]
    available_tags: tuple[str, ...]
    status_filter: StatusFilter
    tag_filter: Optional[str]
    sort_order: SortOrder
    show_timers: bool

    @property
    def empty(self) -> bool:
        return not self.cards


def _fold(text: str) -> str:
    """Casefolded text with accents stripped ("Émile" -> "emile")."""
    decomposed = unicodedata.normalize("NFKD", text)
    return "".join(c for c in decomposed if not unicodedata.combining(c)).casefold()


def _title_key(note: Note):
    # strxfrm cannot take NUL; the raw title keeps distinct titles distinct
    folded = _fold(note.title).replace("\x00", "")
    return (locale.strxfrm(folded), folded, note.title)


def _as_sort_order(value: SortOrder | str) -> SortOrder:
    try:
        return SortOrder(value)
    except ValueError:
        return SortOrder.MODIFIED_DESC


def filter_sort(
    notes: Iterable[Note],
    status_filter: StatusFilter | str = StatusFilter.ACTIVE,
    tag_filter: Optional[str] = None,
    sort_order: SortOrder | str = SortOrder.MODIFIED_DESC,
) -> list[Note]:
    """
    Return the displayable notes in display order.
    - status_filter: active|archived|all
    - tag_filter: exact tag value; None or "" means no tag filtering
    - sort_order: created-asc|created-desc|title-asc|title-desc|modified-desc;
      unknown values fall back to modified-desc
    The input is never reordered; sorting is stable.
    """
    status_filter = StatusFilter(status_filter)
    if status_filter is StatusFilter.ACTIVE:
        picked = [n for n in notes if not n.archived]
    elif status_filter is StatusFilter.ARCHIVED:
        picked = [n for n in notes if n.archived]
    else:
        picked = list(notes)

    if tag_filter:
        picked = [n for n in picked if tag_filter in n.tags]

    order = _as_sort_order(sort_order)
    if order is SortOrder.CREATED_ASC:
        return sorted(picked, key=lambda n: n.id)
    if order is SortOrder.CREATED_DESC:
        return sorted(picked, key=lambda n: n.id, reverse=True)
    if order is SortOrder.TITLE_ASC:
        return sorted(picked, key=_title_key)
    if order is SortOrder.TITLE_DESC:
        return sorted(picked, key=_title_key, reverse=True)
    return sorted(picked, key=lambda n: n.modified_at, reverse=True)


def format_remaining(ms: int) -> str:
    """HH:MM:SS, clamped at zero. Hours are not wrapped into days."""
    total = max(ms, 0) // 1000
    hours, rest = divmod(total, 3600)
    minutes, seconds = divmod(rest, 60)
    return f"{hours:02d}:{minutes:02d}:{seconds:02d}"


def format_timestamp(ms: int) -> str:
    return datetime.fromtimestamp(ms / 1000).strftime("%Y-%m-%d %H:%M:%S")


def all_tags(notes: Iterable[Note]) -> tuple[str, ...]:
    seen: dict[str, None] = {}
    for note in notes:
        for tag in note.tags:
            seen.setdefault(tag, None)
    return tuple(seen)


def _default_status(note: Note) -> NoteStatus:
    return NoteStatus.ARCHIVED if note.archived else NoteStatus.ACTIVE


def compute_view(
    notes: Sequence[Note],
    view: ViewState,
    now: int,
    status_of: Optional[Callable[[Note], Optional[NoteStatus]]] = None,
) -> ViewModel:
    status_of = status_of or _default_status
    cards = []
    for n in filter_sort(notes, view.status_filter, view.tag_filter, view.sort_order):
        modified_label = None
        if n.modified_at > n.id + MODIFIED_DISPLAY_THRESHOLD_MS:
            modified_label = format_timestamp(n.modified_at)
        timer_text = None
        if view.show_timers and not n.archived:
            timer_text = format_remaining(n.deletion_deadline - now)
        cards.append(NoteCard(
            id=n.id,
            title=n.title,
            content=n.content,
            tags=tuple(n.tags),
            status=status_of(n) or _default_status(n),
            created_label=format_timestamp(n.created_at),
            modified_label=modified_label,
            archive_label="Unarchive" if n.archived else "Archive",
            timer_text=timer_text,
            deletion_deadline=n.deletion_deadline,
        ))
    return ViewModel(
        cards=tuple(cards),
        available_tags=all_tags(notes),
        status_filter=StatusFilter(view.status_filter),
        tag_filter=view.tag_filter,
        sort_order=_as_sort_order(view.sort_order),
        show_timers=view.show_timers,
    )

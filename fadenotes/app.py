from __future__ import annotations
from typing import Callable, Optional
import locale
import logging

from .config import Settings, load_settings
from .db import init_db
from .lifecycle import ChangeEvent, ChangeKind, LifecycleEngine, Listener, now_ms
from .notifications import NotificationGateway, build_gateway
from .pipeline import SortOrder, StatusFilter, ViewModel, ViewState, compute_view
from .store import NoteStore

logger = logging.getLogger(__name__)


def configure_logging(level: str = "WARNING") -> None:
    logging.basicConfig(
        level=level,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    logging.getLogger("sqlalchemy").setLevel(logging.WARNING)


def configure_collation() -> None:
    """Use the user's locale for title ordering."""
    try:
        locale.setlocale(locale.LC_COLLATE, "")
    except locale.Error as e:
        logger.warning("could not apply the user locale for sorting: %s", e)


class NotesApp:
    """Owns one note session: store, engine, notifications and view state.

    ``open()`` loads the snapshot and asks for notification permission;
    ``start()`` begins the sweep (needs a running event loop); ``close()``
    stops the sweep and writes any unsaved state. Presentation code
    subscribes for change events and calls ``view()`` to render.
    """

    def __init__(
        self,
        settings: Optional[Settings] = None,
        gateway: Optional[NotificationGateway] = None,
        clock: Callable[[], int] = now_ms,
    ):
        self.settings = settings or load_settings()
        self.gateway = gateway if gateway is not None else build_gateway(self.settings.notifications)
        self.clock = clock
        self.store = NoteStore(self.settings.snapshot_key)
        self.engine = LifecycleEngine(
            self.store,
            gateway=self.gateway,
            clock=clock,
            sweep_interval_ms=self.settings.sweep_interval_ms,
        )
        self.view_state = ViewState()
        self._listeners: list[Listener] = []
        self._unsubscribe: Optional[Callable[[], None]] = None
        self.opened = False

    def open(self) -> "NotesApp":
        configure_logging(self.settings.log_level)
        configure_collation()
        init_db(self.settings.db_path)
        self.store.load()
        self.gateway.request_permission()
        if self._unsubscribe is None:
            self._unsubscribe = self.engine.subscribe(self._forward)
        self.opened = True
        return self

    def start(self) -> None:
        self.engine.start()

    def close(self) -> None:
        if not self.opened:
            return
        self.engine.close()
        if self._unsubscribe is not None:
            self._unsubscribe()
            self._unsubscribe = None
        self.opened = False

    def __enter__(self) -> "NotesApp":
        return self.open()

    def __exit__(self, *exc) -> None:
        self.close()

    # ---------- change signals ----------
    def subscribe(self, listener: Listener) -> Callable[[], None]:
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)
        return unsubscribe

    def _forward(self, event: ChangeEvent) -> None:
        # live timer text only matters while timers are on screen
        if event.kind is ChangeKind.TICK and not self.view_state.show_timers:
            return
        for listener in list(self._listeners):
            listener(event)

    def _rerender(self) -> None:
        self._forward(ChangeEvent(ChangeKind.RENDER, self.clock()))

    # ---------- view state ----------
    def set_status_filter(self, value: StatusFilter | str) -> None:
        self.view_state.status_filter = StatusFilter(value)
        self._rerender()

    def set_tag_filter(self, tag: Optional[str]) -> None:
        self.view_state.tag_filter = tag
        self._rerender()

    def set_sort_order(self, value: SortOrder | str) -> None:
        self.view_state.sort_order = SortOrder(value)
        self._rerender()

    def toggle_timer_display(self) -> bool:
        self.view_state.show_timers = not self.view_state.show_timers
        self._rerender()
        return self.view_state.show_timers

    def view(self) -> ViewModel:
        return compute_view(
            self.store.all(), self.view_state, self.clock(), self.engine.status_of,
        )

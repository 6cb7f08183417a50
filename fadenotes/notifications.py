from __future__ import annotations
from abc import ABC, abstractmethod
from enum import Enum
from typing import Callable, Optional
import logging

from rich.console import Console
from rich.panel import Panel
from rich.prompt import Confirm
from rich.text import Text

from .errors import NotificationUnavailable, PermissionDenied, Unsupported

logger = logging.getLogger(__name__)


class PermissionState(str, Enum):
    UNSUPPORTED = "unsupported"
    DEFAULT = "default"
    GRANTED = "granted"
    DENIED = "denied"


class NotificationGateway(ABC):
    """Permission-gated, best-effort notifications.

    Subclasses supply ``_ask`` (the one-time permission prompt) and
    ``_dispatch`` (showing a notification). ``notify`` never raises.
    """

    def __init__(self, permission: PermissionState = PermissionState.DEFAULT):
        self.permission = permission

    @property
    def supported(self) -> bool:
        return self.permission is not PermissionState.UNSUPPORTED

    def request_permission(self) -> PermissionState:
        if self.permission is not PermissionState.DEFAULT:
            return self.permission
        self.permission = PermissionState.GRANTED if self._ask() else PermissionState.DENIED
        logger.info("notification permission %s", self.permission.value)
        return self.permission

    def notify(self, title: str, body: str) -> bool:
        try:
            self._check()
        except NotificationUnavailable as e:
            logger.debug("notification %r skipped: %s", title, e)
            return False
        try:
            self._dispatch(title, body)
        except OSError as e:
            logger.warning("notification %r could not be shown: %s", title, e)
            return False
        return True

    def _check(self) -> None:
        if self.permission is PermissionState.UNSUPPORTED:
            raise Unsupported("notifications are not supported here")
        if self.permission is not PermissionState.GRANTED:
            raise PermissionDenied(f"permission is {self.permission.value}")

    @abstractmethod
    def _ask(self) -> bool:
        ...

    @abstractmethod
    def _dispatch(self, title: str, body: str) -> None:
        ...


class UnsupportedNotifier(NotificationGateway):
    def __init__(self):
        super().__init__(PermissionState.UNSUPPORTED)

    def _ask(self) -> bool:
        return False

    def _dispatch(self, title: str, body: str) -> None:
        raise Unsupported("notifications are not supported here")


class ConsoleNotifier(NotificationGateway):
    """Shows notifications as panels on a rich console.

    Only a terminal console is supported. ``prompt`` decides the permission
    request; by default the user is asked once with a yes/no prompt.
    """

    def __init__(
        self,
        console: Optional[Console] = None,
        permission: PermissionState = PermissionState.DEFAULT,
        prompt: Optional[Callable[[], bool]] = None,
    ):
        self.console = console or Console(stderr=True)
        if not self.console.is_terminal:
            permission = PermissionState.UNSUPPORTED
        super().__init__(permission)
        self._prompt = prompt

    def _ask(self) -> bool:
        if self._prompt is not None:
            return self._prompt()
        return Confirm.ask("Allow note notifications?", console=self.console, default=True)

    def _dispatch(self, title: str, body: str) -> None:
        # note titles are user text; never parse them as markup
        self.console.print(Panel(Text(body), title=Text(title, style="bold"), expand=False))


def build_gateway(mode: str, console: Optional[Console] = None) -> NotificationGateway:
    """Gateway for a FADENOTES_NOTIFICATIONS mode (ask|granted|denied|off)."""
    if mode == "off":
        return UnsupportedNotifier()
    permission = {
        "ask": PermissionState.DEFAULT,
        "granted": PermissionState.GRANTED,
        "denied": PermissionState.DENIED,
    }[mode]
    return ConsoleNotifier(console=console, permission=permission)

"""Desktop notifications for connection progress and watchdog actions."""

from __future__ import annotations

import sys
from typing import Optional

import notify2

APP_NAME = "OpenVPN"

_URGENCY = {
    "low": notify2.URGENCY_LOW,
    "normal": notify2.URGENCY_NORMAL,
    "critical": notify2.URGENCY_CRITICAL,
}


class DesktopNotifier:
    """Shows notifications over D-Bus, or writes them to stderr without a session bus."""

    def __init__(self, app_name: str = APP_NAME) -> None:
        self.app_name = app_name
        self._ready: Optional[bool] = None

    def _connect(self) -> bool:
        if self._ready is None:
            try:
                notify2.init(self.app_name)
                self._ready = True
            except Exception:
                # no session bus (sudo, ssh, systemd)
                self._ready = False
        return self._ready

    def __call__(self, title: str, message: str, urgency: str = "normal", transient: bool = False) -> None:
        if not self._connect():
            print(f"{title}: {message}", file=sys.stderr)
            return
        note = notify2.Notification(title, message)
        note.set_urgency(_URGENCY.get(urgency, notify2.URGENCY_NORMAL))
        if transient:
            note.set_hint("transient", True)
        note.show()


notify = DesktopNotifier()

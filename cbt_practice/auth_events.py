"""Publish/subscribe channel for sign-in and sign-out events.

Interested parties subscribe once and are told when the signed-in user
changes, instead of re-reading the session on a timer.
"""

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Callable, List, Optional

logger = logging.getLogger(__name__)

SIGNED_IN = "signed_in"
SIGNED_OUT = "signed_out"


@dataclass(frozen=True)
class AuthEvent:
    kind: str  # signed_in | signed_out
    user_id: Optional[str]
    email: Optional[str] = None
    role: Optional[str] = None
    at: Optional[datetime] = None


Listener = Callable[[AuthEvent], None]


class AuthEvents:
    def __init__(self):
        self._listeners: List[Listener] = []

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """Register a listener. Returns a function that unsubscribes it."""
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def publish(self, event: AuthEvent) -> None:
        for listener in list(self._listeners):
            try:
                listener(event)
            except Exception:
                # Listener errors never reach the request that published the event.
                logger.exception("Auth listener %r failed on %s", listener, event.kind)


auth_events = AuthEvents()

"""Observer registry for initialization status snapshots."""

import itertools
import logging
import threading
from typing import Callable, Dict

from faqvault.models import InitStatus

logger = logging.getLogger(__name__)

StatusCallback = Callable[[InitStatus], None]


class Subscription:
    """Handle returned by ``StatusPublisher.subscribe``; call or cancel() to unsubscribe."""

    def __init__(self, publisher: "StatusPublisher", token: int):
        self._publisher = publisher
        self._token = token

    @property
    def active(self) -> bool:
        return self._publisher.is_subscribed(self._token)

    def cancel(self) -> None:
        self._publisher.unsubscribe(self._token)

    def __call__(self) -> None:
        self.cancel()


class StatusPublisher:
    """Thread-safe set of status observers.

    Observers are called synchronously on the publishing thread. Each call is
    isolated, so an observer that raises does not reach the others or the
    publisher.
    """

    def __init__(self):
        self._lock = threading.Lock()
        self._callbacks: Dict[int, StatusCallback] = {}
        self._tokens = itertools.count(1)

    def subscribe(self, callback: StatusCallback) -> Subscription:
        with self._lock:
            token = next(self._tokens)
            self._callbacks[token] = callback
        return Subscription(self, token)

    def unsubscribe(self, token: int) -> None:
        with self._lock:
            self._callbacks.pop(token, None)

    def is_subscribed(self, token: int) -> bool:
        with self._lock:
            return token in self._callbacks

    def __len__(self) -> int:
        with self._lock:
            return len(self._callbacks)

    def publish(self, status: InitStatus) -> None:
        """Send ``status`` to every observer registered when publishing starts."""
        with self._lock:
            callbacks = list(self._callbacks.values())

        for callback in callbacks:
            try:
                callback(status.model_copy())
            except Exception:
                logger.exception("Status observer failed")

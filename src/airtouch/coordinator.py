"""Status request coalescing.

Callers ask for fresh AC or group status with a callback.  Requests
arriving within the debounce window share one outbound query, and every
callback queued for a kind fires once when that kind's status next
decodes.  A separate throttle limits combined AC + group polls.

Example:
    >>> coord = RequestCoordinator(conn.send_ac_status_query,
    ...                            conn.send_group_status_query)
    >>> coord.request_ac_status(lambda units: print(len(units)))
    >>> coord.request_ac_status(None)   # joins the pending query
    >>> coord.ac_status_received(units)
    2
    2
"""

import asyncio
import logging
import time
from typing import Callable

from airtouch.config import DEBOUNCE_MS, POLL_THROTTLE_MS

log = logging.getLogger(__name__)

StatusCallback = Callable[[list], None]


class _PendingQueue:
    """Callbacks waiting on one status kind, plus its debounce timer."""

    def __init__(self, kind: str, send_query: Callable[[], None], debounce_s: float):
        self.kind = kind
        self._send_query = send_query
        self._debounce_s = debounce_s
        self._callbacks: list[StatusCallback | None] = []
        self._timer: asyncio.TimerHandle | None = None

    def __len__(self) -> int:
        return len(self._callbacks)

    def push(self, callback: StatusCallback | None) -> None:
        """Queue *callback* and restart the debounce timer."""
        self._callbacks.append(callback)
        if self._timer is not None:
            self._timer.cancel()
        loop = asyncio.get_running_loop()
        self._timer = loop.call_later(self._debounce_s, self._fire)
        log.debug("%s status requested (%d pending)", self.kind, len(self._callbacks))

    def _fire(self) -> None:
        """Debounce expiry: send the query."""
        self._timer = None
        log.debug("%s status query after debounce", self.kind)
        self._send_query()

    def drain(self, records: list) -> int:
        """Fire and clear every queued callback; return how many were queued."""
        callbacks, self._callbacks = self._callbacks, []
        for callback in callbacks:
            if callback is None:
                continue
            try:
                callback(records)
            except Exception:
                log.exception("%s status callback failed", self.kind)
        return len(callbacks)

    def cancel(self) -> None:
        """Stop the debounce timer; queued callbacks stay."""
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None


class RequestCoordinator:
    """Debounces status requests for one controller connection.

    Args:
        send_ac_query: Called with no arguments to put an AC status query
            on the wire.
        send_group_query: Same for group status.
        debounce_ms: Coalescing window for each status kind.
        throttle_ms: ``request_status`` polls closer than or exactly this
            far apart are dropped.
        clock: Monotonic clock in seconds, replaceable in tests.
    """

    def __init__(
        self,
        send_ac_query: Callable[[], None],
        send_group_query: Callable[[], None],
        debounce_ms: int = DEBOUNCE_MS,
        throttle_ms: int = POLL_THROTTLE_MS,
        clock: Callable[[], float] = time.monotonic,
    ):
        self._send_ac_query = send_ac_query
        self._send_group_query = send_group_query
        self._ac = _PendingQueue("AC", send_ac_query, debounce_ms / 1000.0)
        self._group = _PendingQueue("group", send_group_query, debounce_ms / 1000.0)
        self._throttle_s = throttle_ms / 1000.0
        self._clock = clock
        self._last_poll: float | None = None

    @property
    def pending_ac(self) -> int:
        """Number of callbacks waiting for AC status."""
        return len(self._ac)

    @property
    def pending_group(self) -> int:
        """Number of callbacks waiting for group status."""
        return len(self._group)

    def request_status(self) -> bool:
        """Poll AC and group status unless a poll went out recently.

        Returns True if the queries were sent.
        """
        now = self._clock()
        if self._last_poll is not None and now - self._last_poll <= self._throttle_s:
            log.debug("status poll throttled")
            return False
        self._last_poll = now
        self._send_ac_query()
        self._send_group_query()
        return True

    def request_ac_status(self, callback: StatusCallback | None) -> None:
        """Queue *callback* for the next AC status and (re)arm the debounce."""
        self._ac.push(callback)

    def request_group_status(self, callback: StatusCallback | None) -> None:
        """Queue *callback* for the next group status and (re)arm the debounce."""
        self._group.push(callback)

    def ac_status_received(self, units: list) -> int:
        """Fire queued AC callbacks with *units*.

        Returns:
            The number of callbacks that were queued, ``None`` ones included.
        """
        return self._ac.drain(units)

    def group_status_received(self, groups: list) -> int:
        """Fire queued group callbacks with *groups*; return how many."""
        return self._group.drain(groups)

    def cancel(self) -> None:
        """Cancel debounce timers that have not fired; queued callbacks stay."""
        self._ac.cancel()
        self._group.cancel()

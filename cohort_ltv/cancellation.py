"""Cooperative cancellation for long-running loads."""

from __future__ import annotations

import threading

from cohort_ltv.errors import RunCancelledError


class CancelToken:
    """Thread-safe cancellation flag shared between a run and its caller.

    Event sources check the token before each query, between batches and
    periodically while reading rows; the aggregation engine checks it
    between months.

    Examples
    --------
    >>> token = CancelToken()
    >>> token.cancelled
    False
    >>> token.cancel("user interrupt")
    >>> token.raise_if_cancelled()  # doctest: +SKIP
    RunCancelledError: user interrupt
    """

    def __init__(self) -> None:
        self._event = threading.Event()
        self._reason = "run cancelled"

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    @property
    def reason(self) -> str:
        return self._reason

    def cancel(self, reason: str | None = None) -> None:
        if reason:
            self._reason = reason
        self._event.set()

    def raise_if_cancelled(self) -> None:
        if self._event.is_set():
            raise RunCancelledError(self._reason)


def check_cancelled(cancel: CancelToken | None) -> None:
    """Raise :class:`RunCancelledError` if ``cancel`` is set; ``None`` never cancels."""
    if cancel is not None:
        cancel.raise_if_cancelled()

"""Abstract event source contract shared by every computation strategy."""

from __future__ import annotations

from abc import ABC, abstractmethod
from datetime import datetime
from typing import AbstractSet, Iterable

from cohort_ltv.cancellation import CancelToken
from cohort_ltv.foundation.cohorts import CohortWindow
from cohort_ltv.foundation.events import (
    AggregateStats,
    CohortCustomer,
    InsertDateRecord,
    RawEvent,
)

DEFAULT_BATCH_SIZE = 1000


class EventSource(ABC):
    """Supplier of purchase events and of store-side cohort statistics.

    All bounds are half-open: an event dated exactly ``before`` is excluded,
    an event dated exactly at a window start is included. Implementations
    raise :class:`~cohort_ltv.errors.SourceUnavailableError` when the
    underlying store fails and
    :class:`~cohort_ltv.errors.RunCancelledError` when ``cancel`` is set.
    """

    @abstractmethod
    def load_events(
        self,
        before: datetime,
        customer_ids: AbstractSet[int] | None = None,
        *,
        cancel: CancelToken | None = None,
    ) -> list[RawEvent]:
        """Return purchase events dated strictly before ``before``.

        When ``customer_ids`` is given only those customers' events are
        returned; an empty set returns an empty list.
        """

    @abstractmethod
    def load_cohort_customers(
        self,
        window_start: datetime,
        window_end: datetime,
        *,
        cancel: CancelToken | None = None,
    ) -> list[CohortCustomer]:
        """Return customers whose first purchase lies in ``[window_start, window_end)``."""

    @abstractmethod
    def load_aggregate_stats(
        self,
        cohort_window: CohortWindow,
        period_window: CohortWindow,
        *,
        cancel: CancelToken | None = None,
    ) -> AggregateStats:
        """Compute cohort size and event statistics inside the store.

        The cohort is every customer whose first purchase lies in
        ``cohort_window``; the statistics cover that cohort's events dated
        inside ``period_window``.
        """

    @abstractmethod
    def load_insert_dates(
        self,
        event_ids: Iterable[int],
        before: datetime,
        *,
        batch_size: int = DEFAULT_BATCH_SIZE,
        cancel: CancelToken | None = None,
    ) -> list[InsertDateRecord]:
        """Return insert-date records dated before ``before`` for ``event_ids``.

        Lookups are issued in batches of ``batch_size`` ids and ``cancel`` is
        checked between batches. Several records may exist for one event.
        """


def batched(values: Iterable[int], batch_size: int) -> Iterable[list[int]]:
    """Split ``values`` into lists of at most ``batch_size`` items."""
    if batch_size <= 0:
        raise ValueError(f"batch_size must be > 0, got {batch_size}")
    batch: list[int] = []
    for value in values:
        batch.append(value)
        if len(batch) == batch_size:
            yield batch
            batch = []
    if batch:
        yield batch

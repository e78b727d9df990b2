"""Event source backed by in-memory event lists."""

from __future__ import annotations

import logging
from dataclasses import replace
from datetime import datetime
from typing import AbstractSet, Iterable, Sequence

from cohort_ltv.cancellation import CancelToken, check_cancelled
from cohort_ltv.foundation.cohorts import CohortWindow, assign_first_orders
from cohort_ltv.foundation.events import (
    AggregateStats,
    CohortCustomer,
    InsertDateRecord,
    RawEvent,
    is_qualifying,
)
from cohort_ltv.foundation.months import normalize_to_utc
from cohort_ltv.sources.base import DEFAULT_BATCH_SIZE, EventSource, batched

logger = logging.getLogger(__name__)


class InMemoryEventSource(EventSource):
    """Serve purchase events and insert dates from Python sequences.

    Useful for offline runs over exported files and for tests. The store-side
    statistics of :meth:`load_aggregate_stats` are computed in Python with the
    same definitions as the SQL implementation.
    """

    def __init__(
        self,
        events: Iterable[RawEvent],
        insert_dates: Iterable[InsertDateRecord] = (),
    ) -> None:
        self._events: list[RawEvent] = []
        for idx, event in enumerate(events):
            try:
                event_date = normalize_to_utc(event.event_date)
            except ValueError as exc:
                raise ValueError(
                    f"Event at index {idx} has a naive event_date: {event!r}"
                ) from exc
            self._events.append(replace(event, event_date=event_date))
        self._insert_dates: list[InsertDateRecord] = []
        for idx, record in enumerate(insert_dates):
            try:
                insert_date = normalize_to_utc(record.insert_date)
            except ValueError as exc:
                raise ValueError(
                    f"Insert date at index {idx} is naive: {record!r}"
                ) from exc
            self._insert_dates.append(InsertDateRecord(record.event_id, insert_date))

    def __len__(self) -> int:
        return len(self._events)

    @property
    def events(self) -> Sequence[RawEvent]:
        return tuple(self._events)

    @classmethod
    def from_dataframe(cls, events_df, insert_dates_df=None) -> InMemoryEventSource:
        """Build a source from pandas DataFrames.

        See :func:`cohort_ltv.pandas.dataframe_to_events` for the expected
        columns.
        """
        from cohort_ltv.pandas import dataframe_to_events, dataframe_to_insert_dates

        insert_dates = (
            dataframe_to_insert_dates(insert_dates_df)
            if insert_dates_df is not None
            else ()
        )
        return cls(dataframe_to_events(events_df), insert_dates)

    def load_events(
        self,
        before: datetime,
        customer_ids: AbstractSet[int] | None = None,
        *,
        cancel: CancelToken | None = None,
    ) -> list[RawEvent]:
        check_cancelled(cancel)
        if customer_ids is not None and not customer_ids:
            return []
        selected = [
            event
            for event in self._events
            if event.event_date < before
            and (customer_ids is None or event.customer_id in customer_ids)
        ]
        logger.debug(f"[LOAD] events: {len(selected)}")
        return selected

    def load_cohort_customers(
        self,
        window_start: datetime,
        window_end: datetime,
        *,
        cancel: CancelToken | None = None,
    ) -> list[CohortCustomer]:
        check_cancelled(cancel)
        window = CohortWindow(window_start, window_end)
        first_orders = assign_first_orders(
            event for event in self._events if event.event_date < window_end
        )
        customers = [
            CohortCustomer(customer_id, first_order)
            for customer_id, first_order in first_orders.items()
            if window.contains(first_order)
        ]
        logger.debug(
            f"[LOAD] cohort customers {window_start.isoformat()}.."
            f"{window_end.isoformat()}: {len(customers)}"
        )
        return customers

    def load_aggregate_stats(
        self,
        cohort_window: CohortWindow,
        period_window: CohortWindow,
        *,
        cancel: CancelToken | None = None,
    ) -> AggregateStats:
        check_cancelled(cancel)
        cohort_ids = {
            customer.customer_id
            for customer in self.load_cohort_customers(
                cohort_window.start, cohort_window.end, cancel=cancel
            )
        }

        events_read = 0
        events_with_price = 0
        gross_total: float | None = None
        for event in self._events:
            if event.customer_id not in cohort_ids:
                continue
            if not period_window.contains(event.event_date):
                continue
            events_read += 1
            if is_qualifying(event):
                events_with_price += 1
                gross_total = (gross_total or 0.0) + event.line_total

        return AggregateStats(
            cohort_clients=len(cohort_ids),
            events_read=events_read,
            events_with_price=events_with_price,
            gross_total=gross_total,
        )

    def load_insert_dates(
        self,
        event_ids: Iterable[int],
        before: datetime,
        *,
        batch_size: int = DEFAULT_BATCH_SIZE,
        cancel: CancelToken | None = None,
    ) -> list[InsertDateRecord]:
        records: list[InsertDateRecord] = []
        for batch in batched(event_ids, batch_size):
            check_cancelled(cancel)
            wanted = set(batch)
            records.extend(
                record
                for record in self._insert_dates
                if record.event_id in wanted and record.insert_date < before
            )
        return records

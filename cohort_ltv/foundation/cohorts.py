"""Cohort assignment utilities for monthly acquisition cohorts.

A customer's cohort is fixed by their first purchase: the earliest event date
observed before the observation instant. Cohort windows are half-open
(``start <= first_order_date < end``), so a first order placed exactly at
midnight on the first of a month belongs to that month.

Quick Start
-----------
>>> from datetime import datetime, timezone
>>> from decimal import Decimal
>>> from cohort_ltv.foundation.events import RawEvent
>>> from cohort_ltv.foundation.cohorts import assign_first_orders
>>>
>>> utc = timezone.utc
>>> events = [
...     RawEvent(1, datetime(2025, 3, 20, tzinfo=utc), 1, Decimal("5")),
...     RawEvent(1, datetime(2025, 3, 5, tzinfo=utc), 2, Decimal("10")),
... ]
>>> assign_first_orders(events)
{1: datetime.datetime(2025, 3, 5, 0, 0, tzinfo=datetime.timezone.utc)}
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Iterable, Mapping, Sequence

from cohort_ltv.foundation.events import CohortCustomer, RawEvent
from cohort_ltv.foundation.months import (
    ensure_utc,
    format_month,
    month_start,
    next_month,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CohortWindow:
    """Half-open acquisition window of a cohort.

    Attributes
    ----------
    start:
        Inclusive start of the window.
    end:
        Exclusive end of the window.
    """

    start: datetime
    end: datetime

    def __post_init__(self) -> None:
        """Validate window constraints."""
        if self.start >= self.end:
            raise ValueError(
                f"start must be before end: "
                f"start={self.start.isoformat()}, end={self.end.isoformat()}"
            )

    def contains(self, ts: datetime) -> bool:
        return self.start <= ts < self.end

    def clipped(self, upper: datetime) -> CohortWindow | None:
        """Return the window with its end capped at ``upper``.

        Returns ``None`` when the cap leaves an empty window.
        """
        end = min(self.end, upper)
        if end <= self.start:
            return None
        return CohortWindow(self.start, end)

    @property
    def label(self) -> str:
        return format_month(self.start)

    @classmethod
    def for_month(cls, month: datetime) -> CohortWindow:
        """Window covering the whole calendar month containing ``month``."""
        start = month_start(month)
        return cls(start, next_month(start))


def assign_first_orders(events: Iterable[RawEvent]) -> dict[int, datetime]:
    """Compute each customer's first order date.

    Parameters
    ----------
    events:
        Purchase events, already restricted to the observation window.

    Returns
    -------
    dict[int, datetime]
        Mapping of customer_id to the minimum event_date across that
        customer's events. Customers without events have no entry.

    Notes
    -----
    The entry for a customer is created from the first event seen for that
    customer and only lowered afterwards. There is no "unset" sentinel date,
    so a legitimate epoch timestamp is handled like any other date.
    """
    first_orders: dict[int, datetime] = {}
    for event in events:
        current = first_orders.get(event.customer_id)
        if current is None or event.event_date < current:
            first_orders[event.customer_id] = event.event_date
    return first_orders


def first_orders_from_customers(
    customers: Iterable[CohortCustomer],
) -> dict[int, datetime]:
    """Build a first-order mapping from customers resolved by an event source.

    Duplicate customer rows keep the earliest first order date.
    """
    first_orders: dict[int, datetime] = {}
    for customer in customers:
        current = first_orders.get(customer.customer_id)
        if current is None or customer.first_order_date < current:
            first_orders[customer.customer_id] = customer.first_order_date
    return first_orders


def create_monthly_windows(months: Sequence[datetime]) -> list[CohortWindow]:
    """Create one cohort window per month, preserving order.

    Examples
    --------
    >>> from datetime import datetime, timezone
    >>> windows = create_monthly_windows([datetime(2025, 12, 1, tzinfo=timezone.utc)])
    >>> windows[0].end.year, windows[0].end.month
    (2026, 1)
    """
    return [CohortWindow.for_month(month) for month in months]


def group_by_cohort_month(
    first_orders: Mapping[int, datetime],
) -> dict[datetime, list[int]]:
    """Group customer ids by the month start of their first order.

    Each customer lands in exactly one group, so per-month lookups do not
    rescan every customer.
    """
    groups: dict[datetime, list[int]] = {}
    for customer_id, first_order in first_orders.items():
        groups.setdefault(month_start(ensure_utc(first_order)), []).append(customer_id)
    return groups


def cohort_customers_in_window(
    first_orders: Mapping[int, datetime],
    window: CohortWindow,
) -> list[int]:
    """Return ids of customers whose first order falls inside ``window``."""
    return [
        customer_id
        for customer_id, first_order in first_orders.items()
        if window.contains(first_order)
    ]


def validate_cohort_coverage(
    first_orders: Mapping[int, datetime],
    windows: Sequence[CohortWindow],
) -> tuple[int, int]:
    """Count customers inside and outside the given windows.

    Returns
    -------
    tuple[int, int]
        ``(assigned_count, unassigned_count)``. Customers outside every window
        are normal when the requested month range is narrower than the
        customer history; they are reported at DEBUG level.
    """
    assigned = 0
    for first_order in first_orders.values():
        if any(window.contains(first_order) for window in windows):
            assigned += 1
    unassigned = len(first_orders) - assigned
    if unassigned:
        logger.debug(
            f"{unassigned}/{len(first_orders)} customers have a first order "
            f"outside the requested cohort months"
        )
    return assigned, unassigned

"""Per-customer revenue aggregation over purchase events."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Iterable

from cohort_ltv.foundation.events import RawEvent, is_qualifying


@dataclass
class RevenueTotals:
    """Per-customer revenue and event counters.

    Attributes
    ----------
    revenue_by_customer:
        Sum of ``quantity * unit_price`` over each customer's qualifying events.
        Accumulated in floating point without rounding.
    priced_events_by_customer:
        Number of qualifying events per customer.
    raw_events_by_customer:
        Number of events per customer, qualifying or not.
    raw_events_read:
        Total number of events aggregated.
    priced_events_read:
        Total number of qualifying events aggregated.

    Customers whose events are all non-qualifying appear only in
    ``raw_events_by_customer``.
    """

    revenue_by_customer: dict[int, float] = field(default_factory=dict)
    priced_events_by_customer: dict[int, int] = field(default_factory=dict)
    raw_events_by_customer: dict[int, int] = field(default_factory=dict)
    raw_events_read: int = 0
    priced_events_read: int = 0

    def add(self, event: RawEvent) -> None:
        customer_id = event.customer_id
        self.raw_events_read += 1
        self.raw_events_by_customer[customer_id] = (
            self.raw_events_by_customer.get(customer_id, 0) + 1
        )
        if not is_qualifying(event):
            return
        self.priced_events_read += 1
        self.revenue_by_customer[customer_id] = (
            self.revenue_by_customer.get(customer_id, 0.0) + event.line_total
        )
        self.priced_events_by_customer[customer_id] = (
            self.priced_events_by_customer.get(customer_id, 0) + 1
        )

    def revenue_for(self, customer_id: int) -> float:
        return self.revenue_by_customer.get(customer_id, 0.0)

    def priced_events_for(self, customer_id: int) -> int:
        return self.priced_events_by_customer.get(customer_id, 0)

    def raw_events_for(self, customer_id: int) -> int:
        return self.raw_events_by_customer.get(customer_id, 0)


def aggregate_revenue(events: Iterable[RawEvent]) -> RevenueTotals:
    """Aggregate revenue and event counts per customer.

    Examples
    --------
    >>> from datetime import datetime, timezone
    >>> from decimal import Decimal
    >>> ts = datetime(2025, 3, 5, tzinfo=timezone.utc)
    >>> totals = aggregate_revenue([
    ...     RawEvent(1, ts, 2, Decimal("10.0")),
    ...     RawEvent(1, ts, 0, Decimal("99.0")),
    ... ])
    >>> totals.revenue_for(1), totals.priced_events_for(1), totals.raw_events_for(1)
    (20.0, 1, 2)
    """
    totals = RevenueTotals()
    for event in events:
        totals.add(event)
    return totals

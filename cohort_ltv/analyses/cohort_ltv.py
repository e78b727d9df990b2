"""Cohort aggregation engine: one LTV row per requested month.

Given each customer's first order date and per-customer revenue totals, the
engine walks the requested months in order and computes, for every month:

1. the cohort clients (customers whose first order falls in the month),
2. the cohort's total gross revenue before the observation instant,
3. the raw and priced event counters of those customers,
4. ``ltv_average = revenue / cohort_clients`` (``0.0`` for an empty cohort).

Quick Start
-----------
>>> from datetime import datetime, timezone
>>> from decimal import Decimal
>>> from cohort_ltv.foundation import RawEvent, aggregate_revenue, assign_first_orders
>>> from cohort_ltv.analyses.cohort_ltv import compute_cohort_results
>>>
>>> utc = timezone.utc
>>> events = [
...     RawEvent(1, datetime(2025, 3, 5, tzinfo=utc), 2, Decimal("10.0")),
...     RawEvent(2, datetime(2025, 3, 20, tzinfo=utc), 1, Decimal("5.0")),
... ]
>>> results = compute_cohort_results(
...     [datetime(2025, 3, 1, tzinfo=utc)],
...     assign_first_orders(events),
...     aggregate_revenue(events),
... )
>>> results[0].month_label, results[0].ltv_average, results[0].cohort_client_count
('03/2025', 12.5, 2)
"""

from __future__ import annotations

import logging
from dataclasses import asdict, dataclass
from datetime import datetime
from typing import TYPE_CHECKING, Mapping, Sequence

from cohort_ltv.cancellation import CancelToken, check_cancelled
from cohort_ltv.foundation.cohorts import group_by_cohort_month
from cohort_ltv.foundation.events import AggregateStats
from cohort_ltv.foundation.months import format_month, month_start
from cohort_ltv.foundation.revenue import RevenueTotals

if TYPE_CHECKING:
    from cohort_ltv.observers import MonthObserver

logger = logging.getLogger(__name__)

#: Report line printed for each month, identical to the historical batch output.
REPORT_LINE_FORMAT = "%s ; %.15f ; cohort_clients=%d ; events=%d ; priced=%d"


@dataclass(frozen=True)
class CohortResult:
    """LTV statistics of one monthly acquisition cohort.

    Attributes
    ----------
    month_label:
        Cohort month as ``MM/YYYY``.
    ltv_average:
        Average gross revenue per cohort client up to the observation
        instant. ``0.0`` when the cohort is empty.
    cohort_client_count:
        Customers whose first order falls in the month.
    raw_events_read:
        Purchase events of the cohort clients, qualifying or not.
    priced_events_read:
        Qualifying purchase events (price and quantity both positive).
    """

    month_label: str
    ltv_average: float
    cohort_client_count: int
    raw_events_read: int
    priced_events_read: int

    def __post_init__(self) -> None:
        """Validate result constraints."""
        if self.cohort_client_count < 0:
            raise ValueError(
                f"cohort_client_count must be >= 0, got {self.cohort_client_count}"
            )
        if self.raw_events_read < 0:
            raise ValueError(
                f"raw_events_read must be >= 0, got {self.raw_events_read}"
            )
        if not 0 <= self.priced_events_read <= self.raw_events_read:
            raise ValueError(
                f"priced_events_read must be between 0 and raw_events_read "
                f"({self.raw_events_read}), got {self.priced_events_read}"
            )
        if self.cohort_client_count == 0 and self.ltv_average != 0.0:
            raise ValueError(
                f"ltv_average must be 0.0 for an empty cohort, got {self.ltv_average}"
            )

    def format_line(self) -> str:
        return REPORT_LINE_FORMAT % (
            self.month_label,
            self.ltv_average,
            self.cohort_client_count,
            self.raw_events_read,
            self.priced_events_read,
        )

    def as_dict(self) -> dict[str, object]:
        return asdict(self)


def _average(revenue: float, clients: int) -> float:
    return revenue / clients if clients > 0 else 0.0


def step_log_level(verbose: bool) -> int:
    """Level used for progress messages of a run."""
    return logging.INFO if verbose else logging.DEBUG


def result_for_customers(
    month: datetime,
    customer_ids: Sequence[int],
    totals: RevenueTotals,
) -> CohortResult:
    """Build the result row of ``month`` from its cohort and revenue totals."""
    revenue = 0.0
    raw_events = 0
    priced_events = 0
    for customer_id in customer_ids:
        revenue += totals.revenue_for(customer_id)
        raw_events += totals.raw_events_for(customer_id)
        priced_events += totals.priced_events_for(customer_id)

    return CohortResult(
        month_label=format_month(month),
        ltv_average=_average(revenue, len(customer_ids)),
        cohort_client_count=len(customer_ids),
        raw_events_read=raw_events,
        priced_events_read=priced_events,
    )


def result_from_stats(month: datetime, stats: AggregateStats) -> CohortResult:
    """Build the result row of ``month`` from store-side aggregate statistics.

    Examples
    --------
    >>> from datetime import datetime, timezone
    >>> stats = AggregateStats(cohort_clients=0, events_read=0, events_with_price=0)
    >>> result_from_stats(datetime(2025, 4, 1, tzinfo=timezone.utc), stats).ltv_average
    0.0
    """
    return CohortResult(
        month_label=format_month(month),
        ltv_average=_average(stats.revenue, stats.cohort_clients),
        cohort_client_count=stats.cohort_clients,
        raw_events_read=stats.events_read,
        priced_events_read=stats.events_with_price,
    )


def log_month_result(result: CohortResult, level: int) -> None:
    logger.log(
        level,
        f"{result.month_label} -> LTV={result.ltv_average:.6f} | "
        f"clients={result.cohort_client_count} | events={result.raw_events_read}",
    )


def compute_cohort_results(
    months: Sequence[datetime],
    first_orders: Mapping[int, datetime],
    totals: RevenueTotals,
    *,
    observer: MonthObserver | None = None,
    cancel: CancelToken | None = None,
    verbose: bool = False,
) -> list[CohortResult]:
    """Compute one :class:`CohortResult` per month, in the order given.

    Parameters
    ----------
    months:
        Month starts to report on. Every month yields a row, including
        months with no cohort clients.
    first_orders:
        Customer id to first order date, as returned by
        :func:`~cohort_ltv.foundation.cohorts.assign_first_orders`.
    totals:
        Per-customer revenue and event counters.
    observer:
        Notified after each month completes.
    cancel:
        Checked before each month. Cancellation discards every row computed
        so far.

    Returns
    -------
    list[CohortResult]
        Exactly ``len(months)`` rows.
    """
    level = step_log_level(verbose)
    cohorts = group_by_cohort_month(first_orders)

    results: list[CohortResult] = []
    for month in months:
        check_cancelled(cancel)
        customer_ids = cohorts.get(month_start(month), [])
        result = result_for_customers(month, customer_ids, totals)
        log_month_result(result, level)
        results.append(result)
        if observer is not None:
            observer.on_month_computed(month, result)
    return results

"""Interchangeable strategies computing monthly cohort LTV.

All strategies return the same rows for the same data; they differ only in
what they ask of the event source:

- ``full-scan`` loads every purchase event before the observation instant and
  does all the work in memory.
- ``cohort-prefiltered`` first resolves the customers acquired in the
  requested months, then loads only their events.
- ``aggregate-pushdown`` asks the store for one aggregate row per month and
  keeps nothing in memory. Months may be queried in parallel.
- ``insert-date-override`` is a full scan where each event's date is replaced
  by the earliest insert date recorded for it.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from concurrent.futures import ThreadPoolExecutor
from dataclasses import replace
from datetime import datetime
from enum import Enum
from typing import TYPE_CHECKING, ClassVar, Sequence

from cohort_ltv.analyses.cohort_ltv import (
    CohortResult,
    compute_cohort_results,
    log_month_result,
    result_from_stats,
    step_log_level,
)
from cohort_ltv.cancellation import CancelToken, check_cancelled
from cohort_ltv.foundation.cohorts import (
    CohortWindow,
    assign_first_orders,
    create_monthly_windows,
    first_orders_from_customers,
    validate_cohort_coverage,
)
from cohort_ltv.foundation.events import AggregateStats, RawEvent
from cohort_ltv.foundation.months import next_month
from cohort_ltv.foundation.revenue import aggregate_revenue
from cohort_ltv.sources.base import DEFAULT_BATCH_SIZE, EventSource

if TYPE_CHECKING:
    from cohort_ltv.config import RunConfig
    from cohort_ltv.observers import MonthObserver

logger = logging.getLogger(__name__)


class StrategyMode(str, Enum):
    """Computation strategy of a run."""

    FULL_SCAN = "full-scan"
    COHORT_PREFILTERED = "cohort-prefiltered"
    AGGREGATE_PUSHDOWN = "aggregate-pushdown"
    INSERT_DATE_OVERRIDE = "insert-date-override"


class CohortLTVStrategy(ABC):
    """Base class of the computation strategies.

    Parameters
    ----------
    verbose:
        Log the steps of a run at INFO instead of DEBUG.
    batch_size:
        Ids per lookup batch for strategies issuing batched lookups.
    max_workers:
        Concurrent month queries for strategies that support it.
    """

    mode: ClassVar[StrategyMode]

    def __init__(
        self,
        *,
        verbose: bool = False,
        batch_size: int = DEFAULT_BATCH_SIZE,
        max_workers: int = 1,
    ) -> None:
        if batch_size <= 0:
            raise ValueError(f"batch_size must be > 0, got {batch_size}")
        if max_workers <= 0:
            raise ValueError(f"max_workers must be > 0, got {max_workers}")
        self.verbose = verbose
        self.batch_size = batch_size
        self.max_workers = max_workers

    @property
    def log_level(self) -> int:
        return step_log_level(self.verbose)

    def _step(self, message: str) -> None:
        logger.log(self.log_level, f"[STEP] {message}")

    @abstractmethod
    def run(
        self,
        months: Sequence[datetime],
        observation: datetime,
        source: EventSource,
        *,
        observer: MonthObserver | None = None,
        cancel: CancelToken | None = None,
    ) -> list[CohortResult]:
        """Compute one result per month using only events before ``observation``."""

    def _compute_in_memory(
        self,
        months: Sequence[datetime],
        first_orders: dict[int, datetime],
        events: Sequence[RawEvent],
        *,
        observer: MonthObserver | None,
        cancel: CancelToken | None,
    ) -> list[CohortResult]:
        self._step("Aggregate purchases per customer (UnitPrice*Quantity)")
        totals = aggregate_revenue(events)
        validate_cohort_coverage(first_orders, create_monthly_windows(months))
        return compute_cohort_results(
            months,
            first_orders,
            totals,
            observer=observer,
            cancel=cancel,
            verbose=self.verbose,
        )


class FullScanStrategy(CohortLTVStrategy):
    """Load every purchase event before the observation instant."""

    mode = StrategyMode.FULL_SCAN

    def _load(
        self,
        observation: datetime,
        source: EventSource,
        cancel: CancelToken | None,
    ) -> list[RawEvent]:
        self._step(f"Load events < Observation={observation.isoformat()}")
        return source.load_events(observation, cancel=cancel)

    def run(
        self,
        months: Sequence[datetime],
        observation: datetime,
        source: EventSource,
        *,
        observer: MonthObserver | None = None,
        cancel: CancelToken | None = None,
    ) -> list[CohortResult]:
        events = self._load(observation, source, cancel)
        self._step("Compute cohort (min order date by customer)")
        first_orders = assign_first_orders(events)
        self._step(f"customers (distinct from events): {len(first_orders)}")
        return self._compute_in_memory(
            months, first_orders, events, observer=observer, cancel=cancel
        )


class CohortPrefilteredStrategy(CohortLTVStrategy):
    """Resolve the cohort customers first, then load only their events."""

    mode = StrategyMode.COHORT_PREFILTERED

    def run(
        self,
        months: Sequence[datetime],
        observation: datetime,
        source: EventSource,
        *,
        observer: MonthObserver | None = None,
        cancel: CancelToken | None = None,
    ) -> list[CohortResult]:
        window_start = months[0]
        window_end = min(next_month(months[-1]), observation)

        if window_end > window_start:
            self._step(
                f"Load cohort customers [{window_start.isoformat()}, "
                f"{window_end.isoformat()})"
            )
            customers = source.load_cohort_customers(
                window_start, window_end, cancel=cancel
            )
        else:
            customers = []
        first_orders = first_orders_from_customers(customers)

        if first_orders:
            self._step(
                f"Load events for {len(first_orders)} customers "
                f"(< {observation.isoformat()})"
            )
            events = source.load_events(observation, set(first_orders), cancel=cancel)
        else:
            self._step("No cohort customers in range, skipping event load")
            events = []

        return self._compute_in_memory(
            months, first_orders, events, observer=observer, cancel=cancel
        )


class AggregatePushdownStrategy(CohortLTVStrategy):
    """Let the store compute one aggregate row per month."""

    mode = StrategyMode.AGGREGATE_PUSHDOWN

    @staticmethod
    def _month_stats(
        month: datetime,
        observation: datetime,
        source: EventSource,
        cancel: CancelToken | None,
    ) -> AggregateStats:
        check_cancelled(cancel)
        cohort_window = CohortWindow.for_month(month).clipped(observation)
        if cohort_window is None:
            # Month starts at or after the observation instant.
            return AggregateStats(cohort_clients=0, events_read=0, events_with_price=0)
        period_window = CohortWindow(cohort_window.start, observation)
        return source.load_aggregate_stats(cohort_window, period_window, cancel=cancel)

    def _emit(
        self,
        month: datetime,
        stats: AggregateStats,
        observer: MonthObserver | None,
        results: list[CohortResult],
    ) -> None:
        result = result_from_stats(month, stats)
        log_month_result(result, self.log_level)
        results.append(result)
        if observer is not None:
            observer.on_month_computed(month, result)

    def run(
        self,
        months: Sequence[datetime],
        observation: datetime,
        source: EventSource,
        *,
        observer: MonthObserver | None = None,
        cancel: CancelToken | None = None,
    ) -> list[CohortResult]:
        self._step(
            f"Aggregate {len(months)} months in store "
            f"(workers={self.max_workers}, < {observation.isoformat()})"
        )
        results: list[CohortResult] = []

        if self.max_workers == 1 or len(months) < 2:
            for month in months:
                stats = self._month_stats(month, observation, source, cancel)
                self._emit(month, stats, observer, results)
            return results

        with ThreadPoolExecutor(
            max_workers=self.max_workers, thread_name_prefix="cohort-ltv"
        ) as executor:
            futures = [
                executor.submit(self._month_stats, month, observation, source, cancel)
                for month in months
            ]
            try:
                for month, future in zip(months, futures):
                    self._emit(month, future.result(), observer, results)
            except BaseException:
                for future in futures:
                    future.cancel()
                raise
        return results


class InsertDateOverrideStrategy(FullScanStrategy):
    """Full scan where each event is dated by its earliest insert date."""

    mode = StrategyMode.INSERT_DATE_OVERRIDE

    def _load(
        self,
        observation: datetime,
        source: EventSource,
        cancel: CancelToken | None,
    ) -> list[RawEvent]:
        events = super()._load(observation, source, cancel)
        event_ids = sorted({e.event_id for e in events if e.event_id is not None})
        self._step(
            f"Load insert dates for {len(event_ids)} events "
            f"(batch size {self.batch_size})"
        )
        records = source.load_insert_dates(
            event_ids, observation, batch_size=self.batch_size, cancel=cancel
        )

        earliest: dict[int, datetime] = {}
        for record in records:
            current = earliest.get(record.event_id)
            if current is None or record.insert_date < current:
                earliest[record.event_id] = record.insert_date

        overridden = 0
        effective: list[RawEvent] = []
        for event in events:
            insert_date = earliest.get(event.event_id) if event.event_id is not None else None
            if insert_date is None:
                effective.append(event)
            else:
                effective.append(replace(event, event_date=insert_date))
                overridden += insert_date != event.event_date
        self._step(f"Insert dates override {overridden}/{len(events)} event dates")
        return effective


_STRATEGIES: dict[StrategyMode, type[CohortLTVStrategy]] = {
    StrategyMode.FULL_SCAN: FullScanStrategy,
    StrategyMode.COHORT_PREFILTERED: CohortPrefilteredStrategy,
    StrategyMode.AGGREGATE_PUSHDOWN: AggregatePushdownStrategy,
    StrategyMode.INSERT_DATE_OVERRIDE: InsertDateOverrideStrategy,
}


def select_strategy(mode: StrategyMode | str, **options) -> CohortLTVStrategy:
    """Instantiate the strategy registered for ``mode``.

    Parameters
    ----------
    mode:
        A :class:`StrategyMode` or its string value, e.g. ``"full-scan"``.
    **options:
        Forwarded to the strategy constructor (``verbose``, ``batch_size``,
        ``max_workers``).

    Raises
    ------
    ValueError
        If ``mode`` is not a known strategy.

    Examples
    --------
    >>> select_strategy("aggregate-pushdown", max_workers=4).max_workers
    4
    """
    try:
        resolved = StrategyMode(mode)
    except ValueError:
        choices = ", ".join(m.value for m in StrategyMode)
        raise ValueError(f"unknown strategy mode {mode!r}; expected one of: {choices}")
    return _STRATEGIES[resolved](**options)


def run_cohort_ltv(
    config: RunConfig,
    source: EventSource,
    *,
    observer: MonthObserver | None = None,
    cancel: CancelToken | None = None,
) -> list[CohortResult]:
    """Run a cohort LTV computation described by ``config``.

    Returns
    -------
    list[CohortResult]
        One row per month of ``[config.start_month, config.end_month]``, in
        month order. Nothing is returned when a month fails or the run is
        cancelled; the error propagates instead.

    Raises
    ------
    SourceUnavailableError
        The event store failed.
    RunCancelledError
        ``cancel`` was set before the run completed.
    """
    months = config.months
    strategy = select_strategy(
        config.mode,
        verbose=config.verbose,
        batch_size=config.batch_size,
        max_workers=config.max_workers,
    )
    logger.log(
        strategy.log_level,
        f"[RUN] mode={strategy.mode.value} months={len(months)} "
        f"observation={config.observation.isoformat()}",
    )
    results = strategy.run(
        months, config.observation, source, observer=observer, cancel=cancel
    )
    check_cancelled(cancel)
    return results

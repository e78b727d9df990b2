"""Progress observers notified as each cohort month completes."""

from __future__ import annotations

from datetime import datetime
from typing import Protocol

import structlog

from cohort_ltv.analyses.cohort_ltv import CohortResult


class MonthObserver(Protocol):
    """Receives each month's result as soon as it is computed.

    Observers see rows of a run that may still fail or be cancelled later;
    only the list returned by the run is final.
    """

    def on_month_computed(self, month: datetime, result: CohortResult) -> None:
        ...


class CollectingMonthObserver:
    """Keep every notification in memory, in arrival order."""

    def __init__(self) -> None:
        self.notifications: list[tuple[datetime, CohortResult]] = []

    def on_month_computed(self, month: datetime, result: CohortResult) -> None:
        self.notifications.append((month, result))

    @property
    def results(self) -> list[CohortResult]:
        return [result for _, result in self.notifications]


class LoggingMonthObserver:
    """Emit one structured ``cohort_month_computed`` event per month."""

    def __init__(self, logger=None) -> None:
        self._logger = logger if logger is not None else structlog.get_logger(__name__)

    def on_month_computed(self, month: datetime, result: CohortResult) -> None:
        self._logger.info(
            "cohort_month_computed",
            month=result.month_label,
            month_start=month.isoformat(),
            ltv_average=result.ltv_average,
            cohort_clients=result.cohort_client_count,
            events=result.raw_events_read,
            priced=result.priced_events_read,
        )

"""Pandas DataFrame adapters for cohort LTV components."""

from .events import (
    dataframe_to_events,
    dataframe_to_insert_dates,
    events_to_dataframe,
    insert_dates_to_dataframe,
)
from .results import (
    dataframe_to_results,
    results_to_dataframe,
)

__all__ = [
    # Event adapters
    "dataframe_to_events",
    "dataframe_to_insert_dates",
    "events_to_dataframe",
    "insert_dates_to_dataframe",
    # Result adapters
    "dataframe_to_results",
    "results_to_dataframe",
]

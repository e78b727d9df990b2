"""Event sources supplying purchase events to cohort LTV runs."""

from .base import DEFAULT_BATCH_SIZE, EventSource, batched
from .memory import InMemoryEventSource
from .sql import (
    ORDER_EVENT_TYPE_ID,
    SQLEventSource,
    create_schema,
    validate_table_name,
    write_events,
    write_insert_dates,
)

__all__ = [
    "DEFAULT_BATCH_SIZE",
    "EventSource",
    "InMemoryEventSource",
    "ORDER_EVENT_TYPE_ID",
    "SQLEventSource",
    "batched",
    "create_schema",
    "validate_table_name",
    "write_events",
    "write_insert_dates",
]

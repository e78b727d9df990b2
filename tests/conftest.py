"""Shared fixtures for cohort LTV tests."""

from datetime import date, datetime, timezone
from decimal import Decimal

import pytest
from sqlalchemy import create_engine

from cohort_ltv.foundation.events import RawEvent
from cohort_ltv.sources.memory import InMemoryEventSource
from cohort_ltv.sources.sql import SQLEventSource, create_schema, write_events
from cohort_ltv.synthetic import (
    ScenarioConfig,
    generate_customers,
    generate_events,
    generate_insert_dates,
)

UTC = timezone.utc


def _ts(year, month, day, hour=0, minute=0, second=0):
    return datetime(year, month, day, hour, minute, second, tzinfo=UTC)


@pytest.fixture
def march_events():
    """Two March 2025 customers: 2 x 10.0 and 1 x 5.0 (LTV 12.5)."""
    return [
        RawEvent(1, _ts(2025, 3, 5), 2, Decimal("10.0"), event_id=1),
        RawEvent(2, _ts(2025, 3, 20), 1, Decimal("5.0"), event_id=2),
    ]


@pytest.fixture
def mixed_events():
    """Events spread over several months with non-qualifying rows.

    Prices are exact binary fractions so totals compare exactly whatever the
    summation order.
    """
    return [
        # C1: March cohort, repeat buyer with one unpriced event
        RawEvent(1, _ts(2025, 3, 1), 2, Decimal("10.0"), event_id=1),
        RawEvent(1, _ts(2025, 4, 10), 1, Decimal("0"), event_id=2),
        RawEvent(1, _ts(2025, 5, 2, 12), 3, Decimal("2.5"), event_id=3),
        # C2: March cohort, zero quantity first event
        RawEvent(2, _ts(2025, 3, 31, 23, 59, 59), 0, Decimal("8.0"), event_id=4),
        RawEvent(2, _ts(2025, 4, 1), 1, Decimal("4.0"), event_id=5),
        # C3: April cohort
        RawEvent(3, _ts(2025, 4, 1), 1, Decimal("20.0"), event_id=6),
        # C4: February cohort, outside a March-May range
        RawEvent(4, _ts(2025, 2, 14), 1, Decimal("50.0"), event_id=7),
        RawEvent(4, _ts(2025, 3, 14), 1, Decimal("50.0"), event_id=8),
        # C5: first event at the observation instant, excluded
        RawEvent(5, _ts(2025, 6, 1), 1, Decimal("99.0"), event_id=9),
        # C6: May cohort, only non-qualifying events
        RawEvent(6, _ts(2025, 5, 20), 2, Decimal("-1.0"), event_id=10),
    ]


@pytest.fixture
def memory_source(mixed_events):
    return InMemoryEventSource(mixed_events)


@pytest.fixture
def sqlite_engine(tmp_path):
    """File-backed SQLite engine with the event schema created.

    A file database is shared by every pooled connection, which the
    parallel pushdown tests rely on.
    """
    engine = create_engine(f"sqlite:///{tmp_path / 'events.db'}")
    create_schema(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def sql_source(sqlite_engine, mixed_events):
    write_events(sqlite_engine, mixed_events)
    return SQLEventSource(sqlite_engine)


@pytest.fixture
def synthetic_scenario():
    return ScenarioConfig(
        churn_hazard=0.15,
        base_orders_per_month=1.0,
        unpriced_rate=0.1,
        zero_quantity_rate=0.05,
        duplicate_insert_rate=0.2,
        seed=7,
    )


@pytest.fixture
def synthetic_events(synthetic_scenario):
    customers = generate_customers(
        120, date(2024, 1, 1), date(2024, 6, 30), seed=7
    )
    return generate_events(customers, date(2024, 12, 31), scenario=synthetic_scenario)


@pytest.fixture
def synthetic_insert_dates(synthetic_events, synthetic_scenario):
    return generate_insert_dates(synthetic_events, scenario=synthetic_scenario)

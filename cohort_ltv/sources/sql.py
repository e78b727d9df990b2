"""Event source reading the ``CustomerEventData`` table through SQLAlchemy.

The production store is MariaDB/MySQL; SQLite is used in tests. Queries are
plain SQL issued with :func:`sqlalchemy.text` and typed bind parameters so
that datetime values are encoded identically on every backend.

Schema
------
``CustomerEventData``
    ``EventID``, ``CustomerID``, ``EventTypeID``, ``EventDate``, ``Quantity``
    (NULL means 1), ``Digest`` (JSON, unit price at
    ``$.price.originalUnitPrice``), ``ExternalEventID``. Only rows with
    ``EventTypeID = 6`` are purchase events.
``CustomerEventInsertDate``
    ``EventID``, ``InsertDate``. Several rows may exist for one event.
"""

from __future__ import annotations

import json
import logging
import re
from contextlib import contextmanager
from datetime import datetime
from typing import AbstractSet, Iterable, Iterator

from sqlalchemy import (
    BigInteger,
    Column,
    DateTime,
    Float,
    Index,
    Integer,
    MetaData,
    String,
    Table,
    Text,
    bindparam,
    text,
)
from sqlalchemy.engine import Connection, Engine
from sqlalchemy.exc import SQLAlchemyError

from cohort_ltv.cancellation import CancelToken, check_cancelled
from cohort_ltv.errors import SourceUnavailableError
from cohort_ltv.foundation.cohorts import CohortWindow
from cohort_ltv.foundation.events import (
    AggregateStats,
    CohortCustomer,
    InsertDateRecord,
    RawEvent,
    unit_price_or_zero,
)
from cohort_ltv.foundation.months import ensure_utc
from cohort_ltv.sources.base import DEFAULT_BATCH_SIZE, EventSource, batched

logger = logging.getLogger(__name__)

#: ``EventTypeID`` of order ("Commande") events.
ORDER_EVENT_TYPE_ID = 6

DEFAULT_EVENTS_TABLE = "CustomerEventData"
DEFAULT_INSERT_DATE_TABLE = "CustomerEventInsertDate"

#: Rows read between two cancellation checks while streaming results.
ROW_CHECK_INTERVAL = 1000

_TABLE_NAME_PATTERN = re.compile(r"^[A-Za-z0-9_]+$")

_EVENTS_SQL = """
    SELECT
        ced.EventID AS event_id,
        ced.CustomerID AS customer_id,
        ced.EventDate AS event_date,
        COALESCE(ced.Quantity, 1) AS quantity,
        ced.Digest AS digest
    FROM {table} ced
    WHERE ced.EventTypeID = :event_type_id
      AND ced.EventDate < :before
"""

_COHORT_CUSTOMERS_SQL = """
    SELECT
        ced.CustomerID AS customer_id,
        MIN(ced.EventDate) AS first_order_date
    FROM {table} ced
    WHERE ced.EventTypeID = :event_type_id
      AND ced.EventDate < :window_end
    GROUP BY ced.CustomerID
    HAVING MIN(ced.EventDate) >= :window_start
"""

_AGGREGATE_STATS_SQL = """
    WITH cohort AS (
        SELECT ced.CustomerID AS customer_id
        FROM {table} ced
        WHERE ced.EventTypeID = :event_type_id
          AND ced.EventDate < :cohort_end
        GROUP BY ced.CustomerID
        HAVING MIN(ced.EventDate) >= :cohort_start
    ),
    period_events AS (
        SELECT
            COALESCE(ced.Quantity, 1) AS qty,
            {unit_price} AS unit_price
        FROM {table} ced
        JOIN cohort ON cohort.customer_id = ced.CustomerID
        WHERE ced.EventTypeID = :event_type_id
          AND ced.EventDate >= :period_start
          AND ced.EventDate < :period_end
    )
    SELECT
        (SELECT COUNT(*) FROM cohort) AS cohort_clients,
        COUNT(*) AS events_read,
        COALESCE(SUM(CASE WHEN unit_price > 0 AND qty > 0 THEN 1 ELSE 0 END), 0)
            AS events_with_price,
        SUM(CASE WHEN unit_price > 0 AND qty > 0 THEN qty * unit_price END)
            AS gross_total
    FROM period_events
"""

#: Unit price read from the digest, NULL unless it is a JSON number. Mirrors
#: :func:`~cohort_ltv.foundation.events.parse_unit_price`: booleans, strings
#: and malformed documents are non-qualifying.
_UNIT_PRICE_SQL = {
    "sqlite": """CASE
                WHEN JSON_VALID(ced.Digest) THEN
                    CASE
                        WHEN JSON_TYPE(ced.Digest, '$.price.originalUnitPrice')
                            IN ('integer', 'real')
                        THEN JSON_EXTRACT(ced.Digest, '$.price.originalUnitPrice')
                    END
            END""",
    "mysql": """CASE
                WHEN JSON_VALID(ced.Digest) THEN
                    CASE
                        WHEN JSON_TYPE(JSON_EXTRACT(ced.Digest, '$.price.originalUnitPrice'))
                            IN ('INTEGER', 'UNSIGNED INTEGER', 'DOUBLE', 'DECIMAL')
                        THEN JSON_EXTRACT(ced.Digest, '$.price.originalUnitPrice') + 0
                    END
            END""",
}
_UNIT_PRICE_SQL["mariadb"] = _UNIT_PRICE_SQL["mysql"]

_INSERT_DATES_SQL = """
    SELECT
        ied.EventID AS event_id,
        MIN(ied.InsertDate) AS insert_date
    FROM {table} ied
    WHERE ied.EventID IN :event_ids
      AND ied.InsertDate < :before
    GROUP BY ied.EventID
"""


def validate_table_name(name: str) -> str:
    """Reject table names that could not be safely interpolated into SQL."""
    if not isinstance(name, str) or not _TABLE_NAME_PATTERN.match(name):
        raise ValueError(f"invalid table name: {name!r}")
    return name


def _to_db(ts: datetime) -> datetime:
    """Encode a timestamp as the naive UTC value stored by the database."""
    return ensure_utc(ts).replace(tzinfo=None)


def build_tables(
    metadata: MetaData,
    events_table: str = DEFAULT_EVENTS_TABLE,
    insert_date_table: str = DEFAULT_INSERT_DATE_TABLE,
) -> tuple[Table, Table]:
    """Describe the event and insert-date tables on ``metadata``."""
    events = Table(
        validate_table_name(events_table),
        metadata,
        Column("EventID", BigInteger().with_variant(Integer, "sqlite"), primary_key=True),
        Column("CustomerID", BigInteger, nullable=False),
        Column("EventTypeID", Integer, nullable=False),
        Column("EventDate", DateTime, nullable=False),
        Column("Quantity", Integer, nullable=True),
        Column("Digest", Text, nullable=True),
        Column("ExternalEventID", String(64), nullable=True),
        Index(f"ix_{events_table}_type_date", "EventTypeID", "EventDate"),
        Index(f"ix_{events_table}_customer", "CustomerID"),
    )
    insert_dates = Table(
        validate_table_name(insert_date_table),
        metadata,
        Column("EventID", BigInteger, nullable=False, index=True),
        Column("InsertDate", DateTime, nullable=False),
    )
    return events, insert_dates


def create_schema(
    engine: Engine,
    *,
    events_table: str = DEFAULT_EVENTS_TABLE,
    insert_date_table: str = DEFAULT_INSERT_DATE_TABLE,
) -> tuple[Table, Table]:
    """Create the event and insert-date tables if they do not exist."""
    metadata = MetaData()
    tables = build_tables(metadata, events_table, insert_date_table)
    metadata.create_all(engine)
    return tables


def encode_digest(unit_price, currency: str = "EUR") -> str:
    """Serialise a unit price into the digest JSON stored with an event."""
    return json.dumps(
        {"price": {"originalUnitPrice": float(unit_price), "currency": currency}}
    )


def write_events(
    engine: Engine,
    events: Iterable[RawEvent],
    *,
    events_table: str = DEFAULT_EVENTS_TABLE,
    event_type_id: int = ORDER_EVENT_TYPE_ID,
    currency: str = "EUR",
) -> int:
    """Insert events into the events table and return the number written.

    Events without an ``event_id`` get one assigned by the database.
    """
    table, _ = build_tables(MetaData(), events_table)
    with_ids: list[dict[str, object]] = []
    without_ids: list[dict[str, object]] = []
    for event in events:
        row: dict[str, object] = {
            "CustomerID": event.customer_id,
            "EventTypeID": event_type_id,
            "EventDate": _to_db(event.event_date),
            "Quantity": event.quantity,
            "Digest": encode_digest(event.unit_price, currency),
        }
        if event.event_id is None:
            without_ids.append(row)
        else:
            row["EventID"] = event.event_id
            with_ids.append(row)

    with engine.begin() as conn:
        if with_ids:
            conn.execute(table.insert(), with_ids)
        if without_ids:
            conn.execute(table.insert(), without_ids)
    return len(with_ids) + len(without_ids)


def write_insert_dates(
    engine: Engine,
    records: Iterable[InsertDateRecord],
    *,
    insert_date_table: str = DEFAULT_INSERT_DATE_TABLE,
) -> int:
    """Insert insert-date records and return the number written."""
    _, table = build_tables(MetaData(), insert_date_table=insert_date_table)
    rows = [
        {"EventID": record.event_id, "InsertDate": _to_db(record.insert_date)}
        for record in records
    ]
    if rows:
        with engine.begin() as conn:
            conn.execute(table.insert(), rows)
    return len(rows)


class SQLEventSource(EventSource):
    """Event source issuing SQL against a SQLAlchemy engine.

    Parameters
    ----------
    engine:
        Engine bound to the event database. Naive timestamps returned by the
        database are interpreted as UTC.
    events_table, insert_date_table:
        Table names; restricted to ``[A-Za-z0-9_]``.
    event_type_id:
        ``EventTypeID`` selecting purchase events.
    batch_size:
        Number of ids per ``IN (...)`` list when filtering by customer.

    Examples
    --------
    >>> from sqlalchemy import create_engine
    >>> engine = create_engine("sqlite://")
    >>> _ = create_schema(engine)
    >>> source = SQLEventSource(engine)
    """

    def __init__(
        self,
        engine: Engine,
        *,
        events_table: str = DEFAULT_EVENTS_TABLE,
        insert_date_table: str = DEFAULT_INSERT_DATE_TABLE,
        event_type_id: int = ORDER_EVENT_TYPE_ID,
        batch_size: int = DEFAULT_BATCH_SIZE,
    ) -> None:
        if batch_size <= 0:
            raise ValueError(f"batch_size must be > 0, got {batch_size}")
        self.engine = engine
        self.events_table = validate_table_name(events_table)
        self.insert_date_table = validate_table_name(insert_date_table)
        self.event_type_id = event_type_id
        self.batch_size = batch_size

    @contextmanager
    def _connect(self, operation: str) -> Iterator[Connection]:
        try:
            with self.engine.connect() as conn:
                yield conn
        except SQLAlchemyError as exc:
            raise SourceUnavailableError(f"{operation} failed: {exc}") from exc

    def _events_statement(self, by_customer: bool):
        sql = _EVENTS_SQL.format(table=self.events_table)
        params = [bindparam("before", type_=DateTime())]
        if by_customer:
            sql += "      AND ced.CustomerID IN :customer_ids\n"
            params.append(bindparam("customer_ids", expanding=True))
        return (
            text(sql)
            .bindparams(*params)
            .columns(
                event_id=BigInteger,
                customer_id=BigInteger,
                event_date=DateTime,
                quantity=Integer,
                digest=Text,
            )
        )

    def _read_events(
        self,
        conn: Connection,
        statement,
        params: dict[str, object],
        cancel: CancelToken | None,
        out: list[RawEvent],
    ) -> int:
        unreadable = 0
        result = conn.execute(statement, params)
        for idx, row in enumerate(result):
            if idx % ROW_CHECK_INTERVAL == 0:
                check_cancelled(cancel)
            unit_price, failed = unit_price_or_zero(row.digest, context=row.event_id)
            unreadable += failed
            out.append(
                RawEvent(
                    customer_id=int(row.customer_id),
                    event_date=ensure_utc(row.event_date),
                    quantity=int(row.quantity),
                    unit_price=unit_price,
                    event_id=int(row.event_id) if row.event_id is not None else None,
                )
            )
        return unreadable

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

        events: list[RawEvent] = []
        unreadable = 0
        base_params = {"event_type_id": self.event_type_id, "before": _to_db(before)}
        with self._connect("load_events") as conn:
            if customer_ids is None:
                statement = self._events_statement(by_customer=False)
                unreadable += self._read_events(conn, statement, base_params, cancel, events)
            else:
                statement = self._events_statement(by_customer=True)
                for batch in batched(sorted(customer_ids), self.batch_size):
                    check_cancelled(cancel)
                    params = {**base_params, "customer_ids": batch}
                    unreadable += self._read_events(conn, statement, params, cancel, events)

        if unreadable:
            logger.warning(
                f"{unreadable} events with unreadable price data treated as non-qualifying"
            )
        logger.info(f"[LOAD] events: {len(events)}")
        return events

    def load_cohort_customers(
        self,
        window_start: datetime,
        window_end: datetime,
        *,
        cancel: CancelToken | None = None,
    ) -> list[CohortCustomer]:
        check_cancelled(cancel)
        statement = (
            text(_COHORT_CUSTOMERS_SQL.format(table=self.events_table))
            .bindparams(
                bindparam("window_start", type_=DateTime()),
                bindparam("window_end", type_=DateTime()),
            )
            .columns(customer_id=BigInteger, first_order_date=DateTime)
        )
        params = {
            "event_type_id": self.event_type_id,
            "window_start": _to_db(window_start),
            "window_end": _to_db(window_end),
        }

        customers: list[CohortCustomer] = []
        with self._connect("load_cohort_customers") as conn:
            for idx, row in enumerate(conn.execute(statement, params)):
                if idx % ROW_CHECK_INTERVAL == 0:
                    check_cancelled(cancel)
                customers.append(
                    CohortCustomer(
                        customer_id=int(row.customer_id),
                        first_order_date=ensure_utc(row.first_order_date),
                    )
                )

        logger.info(
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
        statement = (
            text(
                _AGGREGATE_STATS_SQL.format(
                    table=self.events_table,
                    unit_price=_UNIT_PRICE_SQL.get(
                        self.engine.dialect.name, _UNIT_PRICE_SQL["mysql"]
                    ),
                )
            )
            .bindparams(
                bindparam("cohort_start", type_=DateTime()),
                bindparam("cohort_end", type_=DateTime()),
                bindparam("period_start", type_=DateTime()),
                bindparam("period_end", type_=DateTime()),
            )
            .columns(
                cohort_clients=Integer,
                events_read=Integer,
                events_with_price=Integer,
                gross_total=Float,
            )
        )
        params = {
            "event_type_id": self.event_type_id,
            "cohort_start": _to_db(cohort_window.start),
            "cohort_end": _to_db(cohort_window.end),
            "period_start": _to_db(period_window.start),
            "period_end": _to_db(period_window.end),
        }

        with self._connect("load_aggregate_stats") as conn:
            row = conn.execute(statement, params).one()
        check_cancelled(cancel)

        return AggregateStats(
            cohort_clients=int(row.cohort_clients or 0),
            events_read=int(row.events_read or 0),
            events_with_price=int(row.events_with_price or 0),
            gross_total=float(row.gross_total) if row.gross_total is not None else None,
        )

    def load_insert_dates(
        self,
        event_ids: Iterable[int],
        before: datetime,
        *,
        batch_size: int = DEFAULT_BATCH_SIZE,
        cancel: CancelToken | None = None,
    ) -> list[InsertDateRecord]:
        statement = (
            text(_INSERT_DATES_SQL.format(table=self.insert_date_table))
            .bindparams(
                bindparam("event_ids", expanding=True),
                bindparam("before", type_=DateTime()),
            )
            .columns(event_id=BigInteger, insert_date=DateTime)
        )

        records: list[InsertDateRecord] = []
        batches = 0
        with self._connect("load_insert_dates") as conn:
            for batch in batched(event_ids, batch_size):
                check_cancelled(cancel)
                batches += 1
                params = {"event_ids": batch, "before": _to_db(before)}
                for row in conn.execute(statement, params):
                    records.append(
                        InsertDateRecord(
                            event_id=int(row.event_id),
                            insert_date=ensure_utc(row.insert_date),
                        )
                    )

        logger.info(f"[LOAD] insert dates: {len(records)} ({batches} batches)")
        return records

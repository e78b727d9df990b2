"""Pandas DataFrame adapters for purchase events and insert dates."""

from typing import List, Sequence

import pandas as pd  # type: ignore

from cohort_ltv.foundation.events import InsertDateRecord, RawEvent
from ._utils import check_columns, check_no_nulls, decimal_to_float, float_to_decimal

EVENT_COLUMNS = ["event_id", "customer_id", "event_date", "quantity", "unit_price"]
INSERT_DATE_COLUMNS = ["event_id", "insert_date"]


def events_to_dataframe(events: Sequence[RawEvent]) -> pd.DataFrame:
    """Convert purchase events to a DataFrame.

    Args:
        events: Sequence of RawEvent objects

    Returns:
        DataFrame with columns: event_id, customer_id, event_date (UTC),
        quantity, unit_price. Rows keep the input order.

    Example:
        >>> events_df = events_to_dataframe(generate_events(customers, scenario))
        >>> events_df.to_csv("events.csv", index=False)
    """
    if not events:
        return pd.DataFrame(columns=EVENT_COLUMNS)

    rows = [
        {
            "event_id": event.event_id,
            "customer_id": event.customer_id,
            "event_date": event.event_date,
            "quantity": event.quantity,
            "unit_price": decimal_to_float(event.unit_price),
        }
        for event in events
    ]
    df = pd.DataFrame(rows, columns=EVENT_COLUMNS)
    df["event_date"] = pd.to_datetime(df["event_date"], utc=True)
    return df


def dataframe_to_events(
    events_df: pd.DataFrame,
    customer_id_col: str = "customer_id",
    event_date_col: str = "event_date",
    quantity_col: str = "quantity",
    unit_price_col: str = "unit_price",
    event_id_col: str = "event_id",
) -> List[RawEvent]:
    """Convert a DataFrame of purchase events to RawEvent objects.

    Args:
        events_df: DataFrame with one row per purchase event
        *_col: Column name mappings for flexibility

    Returns:
        List of RawEvent objects in row order with schema:
        - customer_id: int (required, non-null)
        - event_date: datetime (required, non-null; naive values read as UTC)
        - quantity: int (optional column; null means 1)
        - unit_price: Decimal (optional column; null means 0)
        - event_id: int or None (optional column)

    Raises:
        ValueError: If required columns are missing or hold null values

    Example:
        >>> events = dataframe_to_events(pd.read_csv("events.csv"))
        >>> source = InMemoryEventSource(events)
    """
    required_cols = [customer_id_col, event_date_col]
    check_columns(events_df, required_cols)
    if events_df.empty:
        return []
    check_no_nulls(events_df, required_cols, "Purchase events")

    dates = pd.to_datetime(events_df[event_date_col], utc=True)
    has_quantity = quantity_col in events_df.columns
    has_price = unit_price_col in events_df.columns
    has_event_id = event_id_col in events_df.columns

    events = []
    for position, record in enumerate(events_df.to_dict("records")):
        quantity = record[quantity_col] if has_quantity else None
        unit_price = record[unit_price_col] if has_price else None
        event_id = record[event_id_col] if has_event_id else None
        events.append(
            RawEvent(
                customer_id=int(record[customer_id_col]),
                event_date=dates.iloc[position].to_pydatetime(),
                quantity=1 if pd.isna(quantity) else int(quantity),
                unit_price=(
                    float_to_decimal(0) if pd.isna(unit_price)
                    else float_to_decimal(float(unit_price))
                ),
                event_id=None if pd.isna(event_id) else int(event_id),
            )
        )
    return events


def insert_dates_to_dataframe(records: Sequence[InsertDateRecord]) -> pd.DataFrame:
    """Convert insert-date records to a DataFrame (event_id, insert_date)."""
    if not records:
        return pd.DataFrame(columns=INSERT_DATE_COLUMNS)
    df = pd.DataFrame(
        [{"event_id": r.event_id, "insert_date": r.insert_date} for r in records],
        columns=INSERT_DATE_COLUMNS,
    )
    df["insert_date"] = pd.to_datetime(df["insert_date"], utc=True)
    return df


def dataframe_to_insert_dates(
    insert_dates_df: pd.DataFrame,
    event_id_col: str = "event_id",
    insert_date_col: str = "insert_date",
) -> List[InsertDateRecord]:
    """Convert a DataFrame of insert dates to InsertDateRecord objects.

    Args:
        insert_dates_df: DataFrame with one row per insert-date record;
            several rows may share an event id
        event_id_col: Column holding the event id
        insert_date_col: Column holding the insert date (naive values read as UTC)

    Raises:
        ValueError: If required columns are missing or hold null values
    """
    required_cols = [event_id_col, insert_date_col]
    check_columns(insert_dates_df, required_cols)
    if insert_dates_df.empty:
        return []
    check_no_nulls(insert_dates_df, required_cols, "Insert dates")

    dates = pd.to_datetime(insert_dates_df[insert_date_col], utc=True)
    return [
        InsertDateRecord(
            event_id=int(event_id),
            insert_date=dates.iloc[position].to_pydatetime(),
        )
        for position, event_id in enumerate(insert_dates_df[event_id_col].tolist())
    ]

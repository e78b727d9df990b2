"""Month token parsing and inclusive month range enumeration.

Month tokens use the ``MMYYYY`` format (two-digit month, four-digit year).
All month boundaries are timezone-aware UTC datetimes at midnight on the
first day of the month.

Quick Start
-----------
>>> from cohort_ltv.foundation.months import parse_month, enumerate_months
>>> start = parse_month("032025")
>>> end = parse_month("062025")
>>> [format_month(m) for m in enumerate_months(start, end)]
['03/2025', '04/2025', '05/2025', '06/2025']
"""

from __future__ import annotations

from datetime import datetime, timezone

from cohort_ltv.errors import InvalidFormatError, MonthRangeError

MONTH_TOKEN_LENGTH = 6


def normalize_to_utc(dt: datetime) -> datetime:
    """Convert a timezone-aware datetime to UTC.

    Raises
    ------
    ValueError
        If the datetime is naive. Use :func:`ensure_utc` for values read from
        a store whose session timezone is known to be UTC.
    """
    if dt.tzinfo is None:
        raise ValueError(
            "Naive datetime not allowed. Use timezone-aware datetimes. "
            "For UTC timestamps, use: datetime(..., tzinfo=timezone.utc)"
        )
    return dt.astimezone(timezone.utc)


def ensure_utc(dt: datetime) -> datetime:
    """Return ``dt`` in UTC, treating naive values as already being UTC."""
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def parse_month(token: str) -> datetime:
    """Parse an ``MMYYYY`` token into the first instant of that month (UTC).

    Parameters
    ----------
    token:
        Six ASCII digits, month first, e.g. ``"032025"`` for March 2025.

    Returns
    -------
    datetime
        ``datetime(year, month, 1, tzinfo=timezone.utc)``

    Raises
    ------
    InvalidFormatError
        If the token is not exactly six digits or the month is not in 1..12.

    Examples
    --------
    >>> parse_month("032025")
    datetime.datetime(2025, 3, 1, 0, 0, tzinfo=datetime.timezone.utc)
    >>> parse_month("132025")  # doctest: +SKIP
    InvalidFormatError: invalid month in '132025': expected 01..12
    """
    if not isinstance(token, str) or len(token) != MONTH_TOKEN_LENGTH:
        raise InvalidFormatError(
            f"expected MMYYYY (e.g. 012025), got {token!r}"
        )
    if not (token.isascii() and token.isdigit()):
        raise InvalidFormatError(
            f"expected MMYYYY (e.g. 012025), got non-numeric {token!r}"
        )

    month = int(token[:2])
    year = int(token[2:])
    if not 1 <= month <= 12:
        raise InvalidFormatError(f"invalid month in {token!r}: expected 01..12")
    if year < 1:
        raise InvalidFormatError(f"invalid year in {token!r}: expected 0001..9999")
    return datetime(year, month, 1, tzinfo=timezone.utc)


def month_start(dt: datetime) -> datetime:
    """Truncate ``dt`` to the first instant of its month, keeping its tzinfo."""
    return datetime(dt.year, dt.month, 1, tzinfo=dt.tzinfo)


def next_month(dt: datetime) -> datetime:
    """Return the first instant of the month following ``dt``'s month."""
    if dt.month == 12:
        return datetime(dt.year + 1, 1, 1, tzinfo=dt.tzinfo)
    return datetime(dt.year, dt.month + 1, 1, tzinfo=dt.tzinfo)


def format_month(dt: datetime) -> str:
    """Format a month as the ``MM/YYYY`` label used in reports."""
    return f"{dt.month:02d}/{dt.year:04d}"


def month_index(dt: datetime) -> int:
    """Absolute month number (``year * 12 + month``) used for range arithmetic."""
    return dt.year * 12 + dt.month


def enumerate_months(start: datetime, end: datetime) -> list[datetime]:
    """List the first instant of every month from ``start`` to ``end`` inclusive.

    Both bounds are truncated to their month start. The result is a list so
    it can be iterated more than once during a run.

    Raises
    ------
    MonthRangeError
        If ``end`` falls in a month before ``start``.

    Examples
    --------
    >>> from datetime import datetime, timezone
    >>> months = enumerate_months(
    ...     datetime(2025, 3, 1, tzinfo=timezone.utc),
    ...     datetime(2025, 6, 1, tzinfo=timezone.utc),
    ... )
    >>> len(months)
    4
    """
    first = month_start(start)
    last = month_start(end)
    if month_index(last) < month_index(first):
        raise MonthRangeError(
            f"end month {format_month(last)} is before start month {format_month(first)}"
        )

    months: list[datetime] = []
    current = first
    while month_index(current) <= month_index(last):
        months.append(current)
        current = next_month(current)
    return months


def resolve_month_range(start_token: str, end_token: str) -> list[datetime]:
    """Parse two ``MMYYYY`` tokens and enumerate the inclusive range."""
    try:
        start = parse_month(start_token)
    except InvalidFormatError as exc:
        raise InvalidFormatError(f"start_month: {exc}") from exc
    try:
        end = parse_month(end_token)
    except InvalidFormatError as exc:
        raise InvalidFormatError(f"end_month: {exc}") from exc
    return enumerate_months(start, end)


def default_observation(now: datetime | None = None) -> datetime:
    """First instant of the current UTC month, the default observation cutoff."""
    current = ensure_utc(now) if now is not None else datetime.now(timezone.utc)
    return datetime(current.year, current.month, 1, tzinfo=timezone.utc)

"""Purchase event records exchanged between event sources and the engine."""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal

logger = logging.getLogger(__name__)

ZERO_PRICE = Decimal("0")


class PriceParseError(ValueError):
    """A digest could not be read as JSON or its price is not numeric."""


@dataclass(frozen=True, slots=True)
class RawEvent:
    """One purchase-type event.

    Attributes
    ----------
    customer_id:
        Unsigned customer identifier.
    event_date:
        Timezone-aware (UTC) timestamp of the event.
    quantity:
        Purchased quantity. Zero or negative quantities are non-qualifying.
    unit_price:
        Original unit price. Zero or negative prices are non-qualifying.
    event_id:
        Store identifier of the event. Only needed when effective dates are
        overridden by insert dates.
    """

    customer_id: int
    event_date: datetime
    quantity: int
    unit_price: Decimal
    event_id: int | None = None

    def __post_init__(self) -> None:
        if self.customer_id < 0:
            raise ValueError(f"customer_id must be >= 0, got {self.customer_id}")

    @property
    def qualifies(self) -> bool:
        return is_qualifying(self)

    @property
    def line_total(self) -> float:
        """Gross revenue of the event (``quantity * unit_price``) as a float."""
        return float(self.unit_price) * self.quantity


@dataclass(frozen=True, slots=True)
class CohortCustomer:
    """A customer and the date of their first purchase event."""

    customer_id: int
    first_order_date: datetime


@dataclass(frozen=True, slots=True)
class InsertDateRecord:
    """Secondary insert date recorded for an event."""

    event_id: int
    insert_date: datetime


@dataclass(frozen=True, slots=True)
class AggregateStats:
    """Cohort statistics computed inside the event store for one month.

    Attributes
    ----------
    cohort_clients:
        Customers whose first purchase falls in the cohort window.
    events_read:
        Events of those customers inside the period window.
    events_with_price:
        Qualifying events among ``events_read``.
    gross_total:
        Sum of ``quantity * unit_price`` over qualifying events, or ``None``
        when the store returned no qualifying rows.
    """

    cohort_clients: int
    events_read: int
    events_with_price: int
    gross_total: float | None = None

    def __post_init__(self) -> None:
        if self.cohort_clients < 0:
            raise ValueError(f"cohort_clients must be >= 0, got {self.cohort_clients}")
        if self.events_read < 0:
            raise ValueError(f"events_read must be >= 0, got {self.events_read}")
        if not 0 <= self.events_with_price <= self.events_read:
            raise ValueError(
                f"events_with_price must be between 0 and events_read "
                f"({self.events_read}), got {self.events_with_price}"
            )

    @property
    def revenue(self) -> float:
        return self.gross_total if self.gross_total is not None else 0.0


def is_qualifying(event: RawEvent) -> bool:
    """An event contributes revenue iff both price and quantity are positive."""
    return event.unit_price > 0 and event.quantity > 0


def parse_unit_price(digest: str | None) -> Decimal:
    """Extract ``price.originalUnitPrice`` from an event digest.

    Parameters
    ----------
    digest:
        Raw JSON document stored with the event, or ``None``.

    Returns
    -------
    Decimal
        The unit price, or ``0`` when the digest or the price is absent.

    Raises
    ------
    PriceParseError
        If the digest is not valid JSON or the price is not a JSON number.
        Booleans and strings (even numeric ones such as ``"12.5"``) are
        rejected, as the store-side aggregate query rejects them.

    Examples
    --------
    >>> parse_unit_price('{"price": {"originalUnitPrice": 12.5, "currency": "EUR"}}')
    Decimal('12.5')
    >>> parse_unit_price(None)
    Decimal('0')
    """
    if digest is None or digest == "":
        return ZERO_PRICE
    try:
        payload = json.loads(digest, parse_float=Decimal)
    except (TypeError, ValueError) as exc:
        raise PriceParseError(f"digest is not valid JSON: {exc}") from exc

    if not isinstance(payload, dict):
        return ZERO_PRICE
    price = payload.get("price")
    if not isinstance(price, dict):
        return ZERO_PRICE
    value = price.get("originalUnitPrice")
    if value is None:
        return ZERO_PRICE
    if isinstance(value, bool) or not isinstance(value, (int, float, Decimal)):
        raise PriceParseError(f"originalUnitPrice is not a number: {value!r}")
    unit_price = Decimal(str(value))
    if not unit_price.is_finite():
        raise PriceParseError(f"originalUnitPrice is not finite: {value!r}")
    return unit_price


def unit_price_or_zero(digest: str | None, *, context: object = None) -> tuple[Decimal, bool]:
    """Parse a digest price, treating parse failures as a zero (non-qualifying) price.

    Returns
    -------
    tuple[Decimal, bool]
        The price and whether parsing failed. Failures are logged at DEBUG
        level; callers aggregate them into a single warning per load.
    """
    try:
        return parse_unit_price(digest), False
    except PriceParseError as exc:
        logger.debug(f"Unreadable price for event {context}: {exc}")
        return ZERO_PRICE, True

from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime, timedelta, timezone
from decimal import Decimal
import math
import random
from typing import List, Optional, Sequence

from cohort_ltv.foundation.events import InsertDateRecord, RawEvent


@dataclass(frozen=True)
class SyntheticCustomer:
    customer_id: int
    acquisition_date: datetime


@dataclass(frozen=True)
class ScenarioConfig:
    """Configuration for synthetic purchase event generation.

    Attributes
    ----------
    promo_month: A calendar month (1-12) with higher purchase activity.
    promo_uplift: Multiplicative uplift for purchase propensity during promo month.
    churn_hazard: Monthly probability that an active customer stops buying.
    base_orders_per_month: Average orders per active customer per month.
    mean_unit_price: Average unit price of a purchase.
    price_variability: Coefficient in (0, 1] controlling price variance.
    quantity_mean: Average quantity per purchase.
    unpriced_rate: Share of repeat purchases recorded without a price.
    zero_quantity_rate: Share of repeat purchases recorded with quantity 0.
    duplicate_insert_rate: Share of events with a second, later insert date.
    backdated_insert_rate: Share of events whose earliest insert date differs
        from the event date. Zero keeps insert dates equal to event dates.
    seed: Optional RNG seed for reproducibility.
    """

    promo_month: Optional[int] = None
    promo_uplift: float = 1.5
    churn_hazard: float = 0.08
    base_orders_per_month: float = 1.2
    mean_unit_price: float = 30.0
    price_variability: float = 0.4
    quantity_mean: float = 1.3
    unpriced_rate: float = 0.05
    zero_quantity_rate: float = 0.02
    duplicate_insert_rate: float = 0.1
    backdated_insert_rate: float = 0.0
    seed: Optional[int] = None

    def __post_init__(self) -> None:
        for name in (
            "churn_hazard",
            "unpriced_rate",
            "zero_quantity_rate",
            "duplicate_insert_rate",
            "backdated_insert_rate",
        ):
            value = getattr(self, name)
            if not 0 <= value <= 1:
                raise ValueError(f"{name} must be between 0 and 1, got {value}")
        if self.promo_month is not None and not 1 <= self.promo_month <= 12:
            raise ValueError(f"promo_month must be 1-12, got {self.promo_month}")


def _month_starts(start: date, end: date) -> List[date]:
    cur = date(start.year, start.month, 1)
    last = date(end.year, end.month, 1)
    out: List[date] = []
    while cur <= last:
        out.append(cur)
        cur = date(cur.year + 1, 1, 1) if cur.month == 12 else date(cur.year, cur.month + 1, 1)
    return out


def _utc(day: date, hour: int = 0, minute: int = 0) -> datetime:
    return datetime(day.year, day.month, day.day, hour, minute, tzinfo=timezone.utc)


def generate_customers(
    n: int,
    start: date,
    end: date,
    *,
    seed: Optional[int] = None,
    first_id: int = 1,
) -> List[SyntheticCustomer]:
    """Generate ``n`` customers acquired uniformly between ``start`` and ``end``.

    Acquisition timestamps are UTC, at a random minute of the acquisition day.
    """

    if n <= 0:
        return []
    if start > end:
        raise ValueError("start date must be <= end date")

    rng = random.Random(seed)
    total_days = (end - start).days + 1

    customers: List[SyntheticCustomer] = []
    for i in range(n):
        day = start + timedelta(days=rng.randrange(total_days))
        customers.append(
            SyntheticCustomer(
                customer_id=first_id + i,
                acquisition_date=_utc(day, rng.randrange(24), rng.randrange(60)),
            )
        )
    return customers


def _orders_for_customer_month(rng: random.Random, lam: float) -> int:
    # Knuth's Poisson draw, fine for the small rates used here
    if lam <= 0:
        return 0
    limit = math.exp(-lam)
    k = 0
    p = 1.0
    while p > limit:
        k += 1
        p *= rng.random()
    return k - 1


def _sample_price(rng: random.Random, mean: float, variability: float) -> Decimal:
    sigma = min(max(variability, 0.01), 1.0)
    mu = math.log(max(mean, 0.01)) - 0.5 * sigma * sigma
    price = math.exp(rng.normalvariate(mu, sigma))
    return Decimal(str(round(max(price, 0.01), 2)))


def _sample_quantity(rng: random.Random, mean_q: float) -> int:
    q = rng.lognormvariate(mu=math.log(max(mean_q, 0.1)), sigma=0.5)
    return max(1, int(round(q)))


def generate_events(
    customers: Sequence[SyntheticCustomer],
    end: date,
    *,
    scenario: Optional[ScenarioConfig] = None,
) -> List[RawEvent]:
    """Generate purchase events from each customer's acquisition up to ``end``.

    Every customer gets a qualifying first purchase at their acquisition
    timestamp, so their cohort month is the acquisition month. Repeat
    purchases follow a monthly Poisson process with churn; a share of them is
    recorded without a price or with a zero quantity, as happens with
    incomplete order digests.

    Events are sorted by date and numbered from 1 in that order.
    """

    scenario = scenario or ScenarioConfig()
    rng = random.Random(scenario.seed)
    end_ts = _utc(end) + timedelta(days=1)

    drafts: list[tuple[datetime, int, int, Decimal]] = []
    for cust in customers:
        if cust.acquisition_date >= end_ts:
            continue
        drafts.append(
            (
                cust.acquisition_date,
                cust.customer_id,
                _sample_quantity(rng, scenario.quantity_mean),
                _sample_price(rng, scenario.mean_unit_price, scenario.price_variability),
            )
        )

        for month in _month_starts(cust.acquisition_date.date(), end):
            if rng.random() < scenario.churn_hazard:
                break
            multiplier = (
                scenario.promo_uplift
                if scenario.promo_month and month.month == scenario.promo_month
                else 1.0
            )
            lam = scenario.base_orders_per_month * multiplier
            for _ in range(_orders_for_customer_month(rng, lam)):
                ts = _utc(
                    month + timedelta(days=rng.randrange(28)),
                    rng.randrange(24),
                    rng.randrange(60),
                )
                if ts <= cust.acquisition_date or ts >= end_ts:
                    continue
                quantity = _sample_quantity(rng, scenario.quantity_mean)
                price = _sample_price(
                    rng, scenario.mean_unit_price, scenario.price_variability
                )
                draw = rng.random()
                if draw < scenario.unpriced_rate:
                    price = Decimal("0")
                elif draw < scenario.unpriced_rate + scenario.zero_quantity_rate:
                    quantity = 0
                drafts.append((ts, cust.customer_id, quantity, price))

    drafts.sort(key=lambda d: (d[0], d[1]))
    return [
        RawEvent(
            customer_id=customer_id,
            event_date=ts,
            quantity=quantity,
            unit_price=price,
            event_id=event_id,
        )
        for event_id, (ts, customer_id, quantity, price) in enumerate(drafts, start=1)
    ]


def generate_insert_dates(
    events: Sequence[RawEvent],
    *,
    scenario: Optional[ScenarioConfig] = None,
) -> List[InsertDateRecord]:
    """Generate insert-date records for events carrying an ``event_id``.

    Each event gets a record at its event date. ``duplicate_insert_rate``
    adds a later record for the same event (re-imports), which never changes
    the earliest insert date. ``backdated_insert_rate`` moves the earliest
    record a few days before the event date.
    """

    scenario = scenario or ScenarioConfig()
    rng = random.Random(None if scenario.seed is None else scenario.seed + 1)

    records: List[InsertDateRecord] = []
    for event in events:
        if event.event_id is None:
            continue
        first = event.event_date
        if rng.random() < scenario.backdated_insert_rate:
            first = event.event_date - timedelta(days=1 + rng.randrange(10))
        records.append(InsertDateRecord(event.event_id, first))
        if rng.random() < scenario.duplicate_insert_rate:
            later = event.event_date + timedelta(hours=1 + rng.randrange(72))
            records.append(InsertDateRecord(event.event_id, later))
    return records

"""Foundational building blocks for monthly cohort LTV.

This package exposes the purchase event records, month range resolution,
first-order cohort assignment and per-customer revenue aggregation.
"""

from .cohorts import (
    CohortWindow,
    assign_first_orders,
    cohort_customers_in_window,
    create_monthly_windows,
    first_orders_from_customers,
    group_by_cohort_month,
    validate_cohort_coverage,
)
from .events import (
    AggregateStats,
    CohortCustomer,
    InsertDateRecord,
    PriceParseError,
    RawEvent,
    is_qualifying,
    parse_unit_price,
)
from .months import (
    default_observation,
    enumerate_months,
    format_month,
    next_month,
    parse_month,
    resolve_month_range,
)
from .revenue import RevenueTotals, aggregate_revenue

__all__ = [
    "AggregateStats",
    "CohortCustomer",
    "CohortWindow",
    "InsertDateRecord",
    "PriceParseError",
    "RawEvent",
    "RevenueTotals",
    "aggregate_revenue",
    "assign_first_orders",
    "cohort_customers_in_window",
    "create_monthly_windows",
    "default_observation",
    "enumerate_months",
    "first_orders_from_customers",
    "format_month",
    "group_by_cohort_month",
    "is_qualifying",
    "next_month",
    "parse_month",
    "parse_unit_price",
    "resolve_month_range",
    "validate_cohort_coverage",
]

"""Synthetic purchase events for tests and demonstrations.

This package produces realistic-but-fake event histories to exercise the
cohort LTV strategies without accessing production data.
"""

from .generator import (
    ScenarioConfig,
    SyntheticCustomer,
    generate_customers,
    generate_events,
    generate_insert_dates,
)
from .scenarios import (
    BACKDATED_INSERTS_SCENARIO,
    BASELINE_SCENARIO,
    HIGH_CHURN_SCENARIO,
    PRICING_GAPS_SCENARIO,
    SEASONAL_SCENARIO,
)

__all__ = [
    "ScenarioConfig",
    "SyntheticCustomer",
    "generate_customers",
    "generate_events",
    "generate_insert_dates",
    "BACKDATED_INSERTS_SCENARIO",
    "BASELINE_SCENARIO",
    "HIGH_CHURN_SCENARIO",
    "PRICING_GAPS_SCENARIO",
    "SEASONAL_SCENARIO",
]

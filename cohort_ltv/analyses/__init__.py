"""Monthly cohort LTV analyses.

The aggregation engine turns first-order dates and per-customer revenue into
one :class:`CohortResult` per month; the strategies decide how the events
behind those inputs are fetched from an event source.
"""

from .cohort_ltv import (
    REPORT_LINE_FORMAT,
    CohortResult,
    compute_cohort_results,
    result_for_customers,
    result_from_stats,
)
from .strategies import (
    AggregatePushdownStrategy,
    CohortLTVStrategy,
    CohortPrefilteredStrategy,
    FullScanStrategy,
    InsertDateOverrideStrategy,
    StrategyMode,
    run_cohort_ltv,
    select_strategy,
)

__all__ = [
    # Engine
    "REPORT_LINE_FORMAT",
    "CohortResult",
    "compute_cohort_results",
    "result_for_customers",
    "result_from_stats",
    # Strategies
    "AggregatePushdownStrategy",
    "CohortLTVStrategy",
    "CohortPrefilteredStrategy",
    "FullScanStrategy",
    "InsertDateOverrideStrategy",
    "StrategyMode",
    "run_cohort_ltv",
    "select_strategy",
]

"""Monthly cohort lifetime value from purchase events."""

from cohort_ltv.analyses import CohortResult, StrategyMode, run_cohort_ltv
from cohort_ltv.config import RunConfig

__version__ = "0.1.0"

__all__ = ["CohortResult", "RunConfig", "StrategyMode", "run_cohort_ltv"]

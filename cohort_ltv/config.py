"""Run configuration."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime

from cohort_ltv.analyses.strategies import StrategyMode
from cohort_ltv.foundation.months import (
    default_observation,
    normalize_to_utc,
    resolve_month_range,
)
from cohort_ltv.sources.base import DEFAULT_BATCH_SIZE


@dataclass(frozen=True)
class RunConfig:
    """Parameters of one cohort LTV run.

    Attributes
    ----------
    start_month, end_month:
        Inclusive month range as ``MMYYYY`` tokens.
    observation:
        Timezone-aware cutoff; only events strictly before it are used.
        Normalised to UTC. Defaults to the first instant of the current UTC
        month.
    verbose:
        Log the steps of the run at INFO level.
    mode:
        Computation strategy.
    batch_size:
        Ids per batched lookup.
    max_workers:
        Concurrent month queries (aggregate pushdown only).

    Raises
    ------
    InvalidFormatError
        A month token is malformed.
    MonthRangeError
        ``end_month`` precedes ``start_month``.
    ValueError
        ``observation`` is naive or a numeric option is not positive.
    """

    start_month: str
    end_month: str
    observation: datetime = field(default_factory=default_observation)
    verbose: bool = False
    mode: StrategyMode = StrategyMode.FULL_SCAN
    batch_size: int = DEFAULT_BATCH_SIZE
    max_workers: int = 1

    def __post_init__(self) -> None:
        """Validate and normalise the configuration."""
        resolve_month_range(self.start_month, self.end_month)
        object.__setattr__(self, "observation", normalize_to_utc(self.observation))
        object.__setattr__(self, "mode", StrategyMode(self.mode))
        if self.batch_size <= 0:
            raise ValueError(f"batch_size must be > 0, got {self.batch_size}")
        if self.max_workers <= 0:
            raise ValueError(f"max_workers must be > 0, got {self.max_workers}")

    @property
    def months(self) -> list[datetime]:
        """Month starts of the requested range, in order."""
        return resolve_month_range(self.start_month, self.end_month)

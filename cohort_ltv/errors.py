"""Exception hierarchy for cohort LTV runs.

Every error is terminal for the run that raised it: a run either returns the
complete, ordered list of monthly results or raises one of these.
"""

from __future__ import annotations


class CohortLTVError(Exception):
    """Base class for all cohort LTV errors."""


class InvalidFormatError(CohortLTVError, ValueError):
    """A month token is not a valid ``MMYYYY`` string."""


class MonthRangeError(CohortLTVError, ValueError):
    """The end month of a requested range precedes its start month."""


class SourceUnavailableError(CohortLTVError):
    """The underlying event store failed.

    The original driver or SQLAlchemy exception is available as
    ``__cause__``. Failures are never retried by the core.
    """


class RunCancelledError(CohortLTVError):
    """A run was cancelled through its :class:`~cohort_ltv.cancellation.CancelToken`."""

"""Pandas DataFrame adapters for cohort LTV results."""

from typing import List, Sequence

import pandas as pd  # type: ignore

from cohort_ltv.analyses.cohort_ltv import CohortResult
from ._utils import check_columns, check_no_nulls

RESULT_COLUMNS = [
    "month_label",
    "ltv_average",
    "cohort_client_count",
    "raw_events_read",
    "priced_events_read",
]


def results_to_dataframe(results: Sequence[CohortResult]) -> pd.DataFrame:
    """Convert cohort results to a DataFrame, one row per month.

    Args:
        results: Sequence of CohortResult objects

    Returns:
        DataFrame with columns: month_label, ltv_average, cohort_client_count,
        raw_events_read, priced_events_read. Month order is preserved.

    Example:
        >>> results = run_cohort_ltv(config, source)
        >>> results_to_dataframe(results).to_csv("ltv.csv", index=False)
    """
    if not results:
        return pd.DataFrame(columns=RESULT_COLUMNS)
    return pd.DataFrame([result.as_dict() for result in results], columns=RESULT_COLUMNS)


def dataframe_to_results(results_df: pd.DataFrame) -> List[CohortResult]:
    """Convert a DataFrame back to CohortResult objects.

    Args:
        results_df: DataFrame with the columns produced by results_to_dataframe

    Returns:
        List of validated CohortResult objects in row order

    Raises:
        ValueError: If columns are missing, hold null values, or a row
            violates CohortResult constraints
    """
    check_columns(results_df, RESULT_COLUMNS)
    if results_df.empty:
        return []
    check_no_nulls(results_df, RESULT_COLUMNS, "Cohort results")

    return [
        CohortResult(
            month_label=str(record["month_label"]),
            ltv_average=float(record["ltv_average"]),
            cohort_client_count=int(record["cohort_client_count"]),
            raw_events_read=int(record["raw_events_read"]),
            priced_events_read=int(record["priced_events_read"]),
        )
        for record in results_df.to_dict("records")
    ]

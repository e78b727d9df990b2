"""Shared utilities for pandas conversion operations."""

from decimal import Decimal

import pandas as pd  # type: ignore


def decimal_to_float(value: Decimal) -> float:
    """Convert Decimal to float for pandas compatibility."""
    return float(value)


def float_to_decimal(value: float) -> Decimal:
    """Convert float to Decimal through its shortest repr.

    Args:
        value: Numeric value to convert

    Returns:
        Decimal representation of the value

    Raises:
        TypeError: If value is not numeric

    Example:
        >>> float_to_decimal(12.5)
        Decimal('12.5')
    """
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise TypeError(f"Expected numeric type, got {type(value)}")
    return Decimal(str(value))


def check_columns(df: pd.DataFrame, required_cols: list[str]) -> None:
    """Raise ValueError if ``df`` lacks any of ``required_cols``."""
    missing_cols = set(required_cols) - set(df.columns)
    if missing_cols:
        raise ValueError(f"DataFrame missing required columns: {sorted(missing_cols)}")


def check_no_nulls(df: pd.DataFrame, cols: list[str], what: str) -> None:
    """Raise ValueError if any of ``cols`` holds a null/NaN value."""
    null_cols = df[cols].isnull().any()
    if null_cols.any():
        null_col_names = null_cols[null_cols].index.tolist()
        raise ValueError(
            f"Null/NaN values found in columns: {null_col_names}. "
            f"{what} require complete data."
        )

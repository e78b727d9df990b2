"""Export cohort LTV results to JSON, CSV and Markdown.

The JSON report is a :class:`CohortLTVReport` pydantic model so that it can
be read back and validated with :func:`load_report_json`.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Sequence

from pydantic import BaseModel, Field

from cohort_ltv.analyses.cohort_ltv import CohortResult
from cohort_ltv.config import RunConfig
from cohort_ltv.pandas.results import results_to_dataframe

logger = logging.getLogger(__name__)


class CohortMonthRecord(BaseModel):
    """One month of a cohort LTV report."""

    month: str = Field(description="Cohort month as MM/YYYY")
    ltv_average: float = Field(ge=0, description="Average gross revenue per cohort client")
    cohort_clients: int = Field(ge=0)
    events: int = Field(ge=0, description="Purchase events of the cohort clients")
    priced_events: int = Field(ge=0, description="Qualifying purchase events")

    @classmethod
    def from_result(cls, result: CohortResult) -> CohortMonthRecord:
        return cls(
            month=result.month_label,
            ltv_average=result.ltv_average,
            cohort_clients=result.cohort_client_count,
            events=result.raw_events_read,
            priced_events=result.priced_events_read,
        )

    def to_result(self) -> CohortResult:
        return CohortResult(
            month_label=self.month,
            ltv_average=self.ltv_average,
            cohort_client_count=self.cohort_clients,
            raw_events_read=self.events,
            priced_events_read=self.priced_events,
        )


class CohortLTVReport(BaseModel):
    """Monthly cohort LTV report."""

    generated_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    start_month: str | None = Field(default=None, description="MMYYYY")
    end_month: str | None = Field(default=None, description="MMYYYY")
    observation: datetime | None = None
    mode: str | None = None
    metadata: dict[str, Any] = Field(default_factory=dict)
    months: list[CohortMonthRecord] = Field(default_factory=list)

    def results(self) -> list[CohortResult]:
        return [record.to_result() for record in self.months]


def build_report(
    results: Sequence[CohortResult],
    config: RunConfig | None = None,
    metadata: dict[str, Any] | None = None,
) -> CohortLTVReport:
    """Assemble a report from run results and, optionally, their configuration."""
    report = CohortLTVReport(
        metadata=metadata or {},
        months=[CohortMonthRecord.from_result(result) for result in results],
    )
    if config is not None:
        report = report.model_copy(
            update={
                "start_month": config.start_month,
                "end_month": config.end_month,
                "observation": config.observation,
                "mode": config.mode.value,
            }
        )
    return report


def export_results_json(
    results: Sequence[CohortResult],
    output_path: str | Path,
    config: RunConfig | None = None,
    metadata: dict[str, Any] | None = None,
) -> None:
    """Export results as a JSON :class:`CohortLTVReport`.

    Parameters
    ----------
    results:
        Rows returned by a run, in month order.
    output_path:
        Destination file; parent directories are created.
    config:
        Configuration of the run, recorded in the report header.
    metadata:
        Free-form values recorded in the report (e.g. data source).
    """
    output_path = Path(output_path)
    output_path.parent.mkdir(parents=True, exist_ok=True)
    report = build_report(results, config, metadata)
    output_path.write_text(report.model_dump_json(indent=2), encoding="utf-8")
    logger.info(f"Cohort LTV report exported to {output_path}")


def load_report_json(path: str | Path) -> CohortLTVReport:
    """Read back a report written by :func:`export_results_json`."""
    return CohortLTVReport.model_validate_json(Path(path).read_text(encoding="utf-8"))


def export_results_csv(
    results: Sequence[CohortResult],
    output_path: str | Path,
) -> None:
    """Export results as CSV, one row per month."""
    output_path = Path(output_path)
    output_path.parent.mkdir(parents=True, exist_ok=True)
    results_to_dataframe(results).to_csv(output_path, index=False)
    logger.info(f"Cohort LTV report exported to {output_path}")


def export_results_markdown(
    results: Sequence[CohortResult],
    output_path: str | Path,
    title: str = "Monthly Cohort LTV",
    config: RunConfig | None = None,
) -> None:
    """Export results as a Markdown table."""
    output_path = Path(output_path)
    output_path.parent.mkdir(parents=True, exist_ok=True)

    lines = [f"# {title}\n"]
    lines.append(
        f"**Generated:** {datetime.now(timezone.utc).strftime('%Y-%m-%d %H:%M:%S')} UTC\n"
    )
    if config is not None:
        lines.append(f"- **Months:** {config.start_month} to {config.end_month}")
        lines.append(f"- **Observation:** {config.observation.isoformat()}")
        lines.append(f"- **Mode:** {config.mode.value}")
        lines.append("")

    total_clients = sum(result.cohort_client_count for result in results)
    lines.append(f"- **Cohort Months:** {len(results)}")
    lines.append(f"- **Cohort Clients:** {total_clients}\n")

    lines.append("| Month | LTV | Cohort Clients | Events | Priced Events |")
    lines.append("|-------|-----|----------------|--------|---------------|")
    for result in results:
        lines.append(
            f"| {result.month_label} | {result.ltv_average:.2f} | "
            f"{result.cohort_client_count} | {result.raw_events_read} | "
            f"{result.priced_events_read} |"
        )
    lines.append("")

    output_path.write_text("\n".join(lines), encoding="utf-8")
    logger.info(f"Cohort LTV report exported to {output_path}")


def export_results(
    results: Sequence[CohortResult],
    output_path: str | Path,
    config: RunConfig | None = None,
) -> None:
    """Export results in the format given by the file extension.

    Raises
    ------
    ValueError
        If the extension is not ``.json``, ``.csv`` or ``.md``.
    """
    suffix = Path(output_path).suffix.lower()
    if suffix == ".json":
        export_results_json(results, output_path, config)
    elif suffix == ".csv":
        export_results_csv(results, output_path)
    elif suffix in (".md", ".markdown"):
        export_results_markdown(results, output_path, config=config)
    else:
        raise ValueError(
            f"Unsupported output format {suffix!r}; use .json, .csv or .md"
        )

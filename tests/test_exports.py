"""Tests for JSON, CSV and Markdown result exports."""

import json
from datetime import datetime, timezone

import pandas as pd
import pytest
from pydantic import ValidationError

from cohort_ltv.analyses.cohort_ltv import CohortResult
from cohort_ltv.config import RunConfig
from cohort_ltv.exports import (
    CohortLTVReport,
    CohortMonthRecord,
    build_report,
    export_results,
    export_results_csv,
    export_results_json,
    export_results_markdown,
    load_report_json,
)

RESULTS = [
    CohortResult("03/2025", 15.75, 2, 5, 3),
    CohortResult("04/2025", 20.0, 1, 1, 1),
    CohortResult("05/2025", 0.0, 1, 1, 0),
]


@pytest.fixture
def config():
    return RunConfig(
        "032025",
        "052025",
        observation=datetime(2025, 6, 1, tzinfo=timezone.utc),
        mode="cohort-prefiltered",
    )


class TestReportModel:
    def test_build_report_with_config(self, config):
        report = build_report(RESULTS, config, metadata={"source": "csv"})
        assert report.start_month == "032025"
        assert report.end_month == "052025"
        assert report.mode == "cohort-prefiltered"
        assert report.observation == config.observation
        assert report.metadata == {"source": "csv"}
        assert [m.month for m in report.months] == ["03/2025", "04/2025", "05/2025"]
        assert report.results() == RESULTS

    def test_build_report_without_config(self):
        report = build_report(RESULTS)
        assert report.start_month is None
        assert report.mode is None
        assert report.generated_at.tzinfo is not None

    def test_month_record_fields(self):
        record = CohortMonthRecord.from_result(RESULTS[0])
        assert record.model_dump() == {
            "month": "03/2025",
            "ltv_average": 15.75,
            "cohort_clients": 2,
            "events": 5,
            "priced_events": 3,
        }

    def test_negative_values_rejected(self):
        with pytest.raises(ValidationError):
            CohortMonthRecord(
                month="03/2025", ltv_average=1.0, cohort_clients=-1, events=0, priced_events=0
            )


class TestExports:
    def test_json_round_trip(self, tmp_path, config):
        path = tmp_path / "reports" / "ltv.json"
        export_results_json(RESULTS, path, config, metadata={"source": "sqlite"})
        payload = json.loads(path.read_text())
        assert payload["mode"] == "cohort-prefiltered"
        assert payload["months"][0]["ltv_average"] == 15.75

        report = load_report_json(path)
        assert isinstance(report, CohortLTVReport)
        assert report.results() == RESULTS
        assert report.metadata == {"source": "sqlite"}

    def test_csv(self, tmp_path):
        path = tmp_path / "ltv.csv"
        export_results_csv(RESULTS, path)
        df = pd.read_csv(path, dtype={"month_label": str})
        assert df["month_label"].tolist() == ["03/2025", "04/2025", "05/2025"]
        assert df["cohort_client_count"].tolist() == [2, 1, 1]
        assert df["priced_events_read"].tolist() == [3, 1, 0]

    def test_markdown(self, tmp_path, config):
        path = tmp_path / "ltv.md"
        export_results_markdown(RESULTS, path, title="Cohorts", config=config)
        content = path.read_text()
        assert content.startswith("# Cohorts")
        assert "- **Mode:** cohort-prefiltered" in content
        assert "- **Cohort Clients:** 4" in content
        assert "| 03/2025 | 15.75 | 2 | 5 | 3 |" in content
        assert "| 05/2025 | 0.00 | 1 | 1 | 0 |" in content

    @pytest.mark.parametrize("name", ["ltv.json", "ltv.csv", "ltv.md", "LTV.MARKDOWN"])
    def test_dispatch_by_suffix(self, tmp_path, name, config):
        path = tmp_path / name
        export_results(RESULTS, path, config)
        assert path.exists()
        assert path.stat().st_size > 0

    def test_unsupported_suffix(self, tmp_path):
        with pytest.raises(ValueError, match="Unsupported output format"):
            export_results(RESULTS, tmp_path / "ltv.xlsx")

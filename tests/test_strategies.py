"""Tests for strategy selection and strategy equivalence."""

from datetime import datetime, timedelta, timezone
from decimal import Decimal

import pytest

from cohort_ltv.analyses.cohort_ltv import CohortResult
from cohort_ltv.analyses.strategies import (
    AggregatePushdownStrategy,
    CohortPrefilteredStrategy,
    FullScanStrategy,
    InsertDateOverrideStrategy,
    StrategyMode,
    run_cohort_ltv,
    select_strategy,
)
from cohort_ltv.cancellation import CancelToken
from cohort_ltv.config import RunConfig
from cohort_ltv.errors import RunCancelledError, SourceUnavailableError
from cohort_ltv.foundation.events import InsertDateRecord, RawEvent
from cohort_ltv.observers import CollectingMonthObserver
from cohort_ltv.sources.memory import InMemoryEventSource

UTC = timezone.utc
OBSERVATION = datetime(2025, 6, 1, tzinfo=UTC)

EXPECTED_MARCH_TO_MAY = [
    CohortResult("03/2025", 15.75, 2, 5, 3),
    CohortResult("04/2025", 20.0, 1, 1, 1),
    CohortResult("05/2025", 0.0, 1, 1, 0),
]


def config(mode, start="032025", end="052025", **kwargs):
    return RunConfig(
        start_month=start,
        end_month=end,
        observation=kwargs.pop("observation", OBSERVATION),
        mode=mode,
        **kwargs,
    )


class RecordingSource(InMemoryEventSource):
    """In-memory source recording which operations a strategy calls."""

    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self.calls = []

    def load_events(self, before, customer_ids=None, *, cancel=None):
        self.calls.append(("load_events", customer_ids))
        return super().load_events(before, customer_ids, cancel=cancel)

    def load_cohort_customers(self, window_start, window_end, *, cancel=None):
        self.calls.append(("load_cohort_customers", (window_start, window_end)))
        return super().load_cohort_customers(window_start, window_end, cancel=cancel)

    def load_aggregate_stats(self, cohort_window, period_window, *, cancel=None):
        self.calls.append(("load_aggregate_stats", (cohort_window, period_window)))
        return super().load_aggregate_stats(cohort_window, period_window, cancel=cancel)

    def load_insert_dates(self, event_ids, before, *, batch_size=1000, cancel=None):
        self.calls.append(("load_insert_dates", list(event_ids)))
        return super().load_insert_dates(
            event_ids, before, batch_size=batch_size, cancel=cancel
        )

    def called(self, name):
        return [args for op, args in self.calls if op == name]


class FailingSource(InMemoryEventSource):
    def load_events(self, before, customer_ids=None, *, cancel=None):
        raise SourceUnavailableError("connection refused")

    def load_aggregate_stats(self, cohort_window, period_window, *, cancel=None):
        raise SourceUnavailableError("connection refused")


class TestSelectStrategy:
    @pytest.mark.parametrize(
        "mode, expected",
        [
            (StrategyMode.FULL_SCAN, FullScanStrategy),
            ("cohort-prefiltered", CohortPrefilteredStrategy),
            ("aggregate-pushdown", AggregatePushdownStrategy),
            ("insert-date-override", InsertDateOverrideStrategy),
        ],
    )
    def test_dispatch(self, mode, expected):
        strategy = select_strategy(mode)
        assert type(strategy) is expected
        assert strategy.mode == StrategyMode(mode)

    def test_unknown_mode(self):
        with pytest.raises(ValueError, match="unknown strategy mode"):
            select_strategy("sampling")

    def test_options_are_forwarded(self):
        strategy = select_strategy("insert-date-override", batch_size=50, verbose=True)
        assert strategy.batch_size == 50
        assert strategy.verbose is True

    @pytest.mark.parametrize("option", ["batch_size", "max_workers"])
    def test_non_positive_options_rejected(self, option):
        with pytest.raises(ValueError, match=option):
            select_strategy("full-scan", **{option: 0})


class TestStrategyEquivalence:
    """Every strategy yields the same rows for the same events."""

    @pytest.mark.parametrize("mode", list(StrategyMode))
    def test_mixed_events(self, mode, memory_source):
        assert run_cohort_ltv(config(mode), memory_source) == EXPECTED_MARCH_TO_MAY

    @pytest.mark.parametrize("mode", list(StrategyMode))
    def test_documented_example(self, mode, march_events):
        results = run_cohort_ltv(
            config(mode, "032025", "032025"), InMemoryEventSource(march_events)
        )
        assert results == [CohortResult("03/2025", 12.5, 2, 2, 2)]

    @pytest.mark.parametrize("mode", list(StrategyMode))
    def test_repeated_runs_are_identical(self, mode, memory_source):
        first = run_cohort_ltv(config(mode), memory_source)
        second = run_cohort_ltv(config(mode), memory_source)
        assert first == second

    @pytest.mark.parametrize("mode", list(StrategyMode))
    def test_range_after_observation_is_all_zero(self, mode, memory_source):
        results = run_cohort_ltv(config(mode, "062025", "082025"), memory_source)
        assert [r.cohort_client_count for r in results] == [0, 0, 0]
        assert all(r.ltv_average == 0.0 for r in results)

    def test_synthetic_history(self, synthetic_events, synthetic_insert_dates):
        source = InMemoryEventSource(synthetic_events, synthetic_insert_dates)
        runs = {
            mode: run_cohort_ltv(
                config(
                    mode,
                    "012024",
                    "082024",
                    observation=datetime(2024, 11, 1, tzinfo=UTC),
                    max_workers=3,
                ),
                source,
            )
            for mode in StrategyMode
        }
        baseline = runs[StrategyMode.FULL_SCAN]
        assert sum(r.cohort_client_count for r in baseline) > 0
        for mode, results in runs.items():
            assert [r.month_label for r in results] == [r.month_label for r in baseline]
            assert [r.cohort_client_count for r in results] == [
                r.cohort_client_count for r in baseline
            ], mode
            assert [r.raw_events_read for r in results] == [
                r.raw_events_read for r in baseline
            ], mode
            assert [r.ltv_average for r in results] == pytest.approx(
                [r.ltv_average for r in baseline]
            ), mode


class TestBoundaries:
    @pytest.mark.parametrize("mode", list(StrategyMode))
    def test_event_at_observation_is_excluded(self, mode):
        source = InMemoryEventSource(
            [
                RawEvent(1, datetime(2025, 3, 10, tzinfo=UTC), 1, Decimal("10"), 1),
                RawEvent(1, OBSERVATION, 1, Decimal("1000"), 2),
            ]
        )
        results = run_cohort_ltv(config(mode, "032025", "032025"), source)
        assert results == [CohortResult("03/2025", 10.0, 1, 1, 1)]

    @pytest.mark.parametrize("mode", list(StrategyMode))
    def test_event_at_month_start_belongs_to_that_month(self, mode):
        source = InMemoryEventSource(
            [RawEvent(1, datetime(2025, 4, 1, tzinfo=UTC), 1, Decimal("8"), 1)]
        )
        results = run_cohort_ltv(config(mode, "032025", "042025"), source)
        assert [r.cohort_client_count for r in results] == [0, 1]

    @pytest.mark.parametrize("mode", list(StrategyMode))
    def test_observation_inside_month(self, mode):
        observation = datetime(2025, 3, 15, tzinfo=UTC)
        source = InMemoryEventSource(
            [
                RawEvent(1, datetime(2025, 3, 2, tzinfo=UTC), 1, Decimal("4"), 1),
                RawEvent(1, datetime(2025, 3, 14, tzinfo=UTC), 1, Decimal("4"), 2),
                RawEvent(2, datetime(2025, 3, 20, tzinfo=UTC), 1, Decimal("4"), 3),
            ]
        )
        results = run_cohort_ltv(
            config(mode, "032025", "042025", observation=observation), source
        )
        assert results == [
            CohortResult("03/2025", 8.0, 1, 2, 2),
            CohortResult("04/2025", 0.0, 0, 0, 0),
        ]

    @pytest.mark.parametrize("mode", list(StrategyMode))
    def test_empty_source(self, mode):
        results = run_cohort_ltv(config(mode), InMemoryEventSource([]))
        assert [r.cohort_client_count for r in results] == [0, 0, 0]

    @pytest.mark.parametrize("mode", list(StrategyMode))
    def test_offset_timestamps_are_bucketed_in_utc(self, mode):
        plus_two = timezone(timedelta(hours=2))
        source = InMemoryEventSource(
            [
                RawEvent(1, datetime(2025, 3, 15, 12, tzinfo=plus_two), 2, Decimal("10"), 1),
                # 2025-03-31 23:00 UTC
                RawEvent(2, datetime(2025, 4, 1, 1, tzinfo=plus_two), 1, Decimal("5"), 2),
            ]
        )
        results = run_cohort_ltv(config(mode, "032025", "042025"), source)
        assert results == [
            CohortResult("03/2025", 12.5, 2, 2, 2),
            CohortResult("04/2025", 0.0, 0, 0, 0),
        ]

    def test_naive_event_date_rejected(self):
        event = RawEvent(1, datetime(2025, 3, 15), 1, Decimal("10"), 1)
        with pytest.raises(ValueError, match=r"index 0 has a naive event_date: RawEvent\("):
            InMemoryEventSource([event])


class TestStrategyQueries:
    def test_prefiltered_loads_only_cohort_customers(self, mixed_events):
        source = RecordingSource(mixed_events)
        run_cohort_ltv(config(StrategyMode.COHORT_PREFILTERED), source)
        assert source.called("load_cohort_customers") == [
            (datetime(2025, 3, 1, tzinfo=UTC), OBSERVATION)
        ]
        assert source.called("load_events") == [{1, 2, 3, 6}]

    def test_prefiltered_window_caps_at_next_month(self, mixed_events):
        source = RecordingSource(mixed_events)
        run_cohort_ltv(config(StrategyMode.COHORT_PREFILTERED, "032025", "032025"), source)
        assert source.called("load_cohort_customers") == [
            (datetime(2025, 3, 1, tzinfo=UTC), datetime(2025, 4, 1, tzinfo=UTC))
        ]

    def test_prefiltered_skips_event_load_without_customers(self, mixed_events):
        source = RecordingSource(mixed_events)
        results = run_cohort_ltv(
            config(StrategyMode.COHORT_PREFILTERED, "012025", "012025"), source
        )
        assert source.called("load_events") == []
        assert results == [CohortResult("01/2025", 0.0, 0, 0, 0)]

    def test_prefiltered_range_after_observation_issues_no_query(self, mixed_events):
        source = RecordingSource(mixed_events)
        run_cohort_ltv(config(StrategyMode.COHORT_PREFILTERED, "072025", "072025"), source)
        assert source.calls == []

    def test_pushdown_issues_one_query_per_month(self, mixed_events):
        source = RecordingSource(mixed_events)
        run_cohort_ltv(config(StrategyMode.AGGREGATE_PUSHDOWN), source)
        windows = source.called("load_aggregate_stats")
        assert len(windows) == 3
        cohort_window, period_window = windows[0]
        assert cohort_window.start == datetime(2025, 3, 1, tzinfo=UTC)
        assert cohort_window.end == datetime(2025, 4, 1, tzinfo=UTC)
        assert period_window.end == OBSERVATION
        assert source.called("load_events") == []

    def test_pushdown_skips_months_after_observation(self, mixed_events):
        source = RecordingSource(mixed_events)
        run_cohort_ltv(config(StrategyMode.AGGREGATE_PUSHDOWN, "052025", "072025"), source)
        assert len(source.called("load_aggregate_stats")) == 1

    def test_parallel_pushdown_keeps_month_order(self, mixed_events):
        source = InMemoryEventSource(mixed_events)
        observer = CollectingMonthObserver()
        results = run_cohort_ltv(
            config(StrategyMode.AGGREGATE_PUSHDOWN, "012025", "122025", max_workers=4),
            source,
            observer=observer,
        )
        labels = [r.month_label for r in results]
        assert labels == [f"{m:02d}/2025" for m in range(1, 13)]
        assert observer.results == results
        assert results[2:5] == EXPECTED_MARCH_TO_MAY


class TestInsertDateOverride:
    def test_earliest_insert_date_wins(self):
        events = [
            RawEvent(1, datetime(2025, 4, 10, tzinfo=UTC), 1, Decimal("10"), 1),
            RawEvent(2, datetime(2025, 4, 12, tzinfo=UTC), 1, Decimal("6"), 2),
        ]
        insert_dates = [
            InsertDateRecord(1, datetime(2025, 4, 20, tzinfo=UTC)),
            InsertDateRecord(1, datetime(2025, 3, 28, tzinfo=UTC)),
            InsertDateRecord(1, datetime(2025, 5, 1, tzinfo=UTC)),
        ]
        source = InMemoryEventSource(events, insert_dates)
        results = run_cohort_ltv(
            config(StrategyMode.INSERT_DATE_OVERRIDE, "032025", "042025"), source
        )
        # Customer 1 moves to March; customer 2 has no record and stays in April
        assert results == [
            CohortResult("03/2025", 10.0, 1, 1, 1),
            CohortResult("04/2025", 6.0, 1, 1, 1),
        ]

    def test_events_without_id_keep_their_date(self):
        events = [RawEvent(1, datetime(2025, 4, 10, tzinfo=UTC), 1, Decimal("10"))]
        source = RecordingSource(events, [InsertDateRecord(1, datetime(2025, 3, 1, tzinfo=UTC))])
        results = run_cohort_ltv(
            config(StrategyMode.INSERT_DATE_OVERRIDE, "032025", "042025"), source
        )
        assert [r.cohort_client_count for r in results] == [0, 1]
        assert source.called("load_insert_dates") == [[]]

    def test_insert_dates_after_observation_are_ignored(self):
        events = [RawEvent(1, datetime(2025, 4, 10, tzinfo=UTC), 1, Decimal("10"), 7)]
        insert_dates = [InsertDateRecord(7, datetime(2025, 7, 1, tzinfo=UTC))]
        results = run_cohort_ltv(
            config(StrategyMode.INSERT_DATE_OVERRIDE, "042025", "042025"),
            InMemoryEventSource(events, insert_dates),
        )
        assert results == [CohortResult("04/2025", 10.0, 1, 1, 1)]

    def test_differs_from_full_scan_when_insert_dates_differ(self):
        events = [RawEvent(1, datetime(2025, 4, 10, tzinfo=UTC), 1, Decimal("10"), 1)]
        source = InMemoryEventSource(
            events, [InsertDateRecord(1, datetime(2025, 3, 31, tzinfo=UTC))]
        )
        full = run_cohort_ltv(config(StrategyMode.FULL_SCAN, "032025", "042025"), source)
        override = run_cohort_ltv(
            config(StrategyMode.INSERT_DATE_OVERRIDE, "032025", "042025"), source
        )
        assert [r.cohort_client_count for r in full] == [0, 1]
        assert [r.cohort_client_count for r in override] == [1, 0]

    def test_offset_insert_dates_are_bucketed_in_utc(self):
        plus_two = timezone(timedelta(hours=2))
        events = [RawEvent(1, datetime(2025, 4, 10, tzinfo=UTC), 1, Decimal("10"), 1)]
        # 2025-03-31 22:30 UTC
        insert_dates = [InsertDateRecord(1, datetime(2025, 4, 1, 0, 30, tzinfo=plus_two))]
        results = run_cohort_ltv(
            config(StrategyMode.INSERT_DATE_OVERRIDE, "032025", "042025"),
            InMemoryEventSource(events, insert_dates),
        )
        assert results == [
            CohortResult("03/2025", 10.0, 1, 1, 1),
            CohortResult("04/2025", 0.0, 0, 0, 0),
        ]

    def test_naive_insert_date_rejected(self):
        with pytest.raises(ValueError, match="Insert date at index 0 is naive"):
            InMemoryEventSource([], [InsertDateRecord(1, datetime(2025, 3, 1))])

    def test_batches_insert_date_lookups(self, mixed_events):
        cancel = CancelToken()
        source = InMemoryEventSource(mixed_events)
        batches = []
        original = source.load_insert_dates

        def tracking(event_ids, before, *, batch_size=1000, cancel=None):
            batches.append(batch_size)
            return original(event_ids, before, batch_size=batch_size, cancel=cancel)

        source.load_insert_dates = tracking
        run_cohort_ltv(
            config(StrategyMode.INSERT_DATE_OVERRIDE, batch_size=3), source, cancel=cancel
        )
        assert batches == [3]


class TestRunFailures:
    @pytest.mark.parametrize(
        "mode", [StrategyMode.FULL_SCAN, StrategyMode.AGGREGATE_PUSHDOWN]
    )
    def test_source_failure_propagates(self, mode):
        with pytest.raises(SourceUnavailableError):
            run_cohort_ltv(config(mode), FailingSource([]))

    def test_parallel_source_failure_propagates(self):
        with pytest.raises(SourceUnavailableError):
            run_cohort_ltv(
                config(StrategyMode.AGGREGATE_PUSHDOWN, max_workers=3), FailingSource([])
            )

    @pytest.mark.parametrize("mode", list(StrategyMode))
    def test_cancelled_run_raises(self, mode, memory_source):
        cancel = CancelToken()
        cancel.cancel("user interrupt")
        with pytest.raises(RunCancelledError, match="user interrupt"):
            run_cohort_ltv(config(mode), memory_source, cancel=cancel)

    def test_observer_cancelling_midway_discards_results(self, memory_source):
        cancel = CancelToken()

        class CancelOnSecond:
            seen = 0

            def on_month_computed(self, month, result):
                self.seen += 1
                if self.seen == 2:
                    cancel.cancel()

        with pytest.raises(RunCancelledError):
            run_cohort_ltv(
                config(StrategyMode.AGGREGATE_PUSHDOWN),
                memory_source,
                observer=CancelOnSecond(),
                cancel=cancel,
            )

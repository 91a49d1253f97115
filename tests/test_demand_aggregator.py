from __future__ import annotations

from datetime import date

import pytest

from app.schemas.capacity import DataQualitySource
from app.schemas.demand import AbcClass
from app.services.demand_aggregator import (
    aggregate_demand,
    classify_abc,
    clean_demand_rows,
    filter_records,
    growth_ratio,
    months_spanned,
    window_start,
)
from tests.test_utils import demand_row, last_months, monthly_demand_rows


def _records(rows):
    records, issues = clean_demand_rows(rows)
    assert issues == []
    return records


def test_window_start_counts_period_end_month():
    assert window_start(date(2025, 6, 20), 6) == date(2025, 1, 1)
    assert window_start(date(2025, 3, 31), 12) == date(2024, 4, 1)
    assert window_start(date(2025, 3, 31), 3) == date(2025, 1, 1)
    assert months_spanned(date(2025, 1, 1), date(2025, 6, 30)) == 6


class TestAggregateDemand:
    def test_totals_counts_and_trailing_averages(self):
        rows = monthly_demand_rows("TR-0100", 1000, last_months(2025, 6, 12))
        rows += monthly_demand_rows("TR-0200", 600, last_months(2025, 6, 6), client="CLIENT-2")
        rows.append(demand_row("tr-0200 ", 300, date(2025, 6, 1), client="client-2"))
        rows.append(demand_row("TR-0200", 300, date(2025, 6, 2), client="CLIENT-3"))
        records = _records(rows)

        aggregates = aggregate_demand(records, date(2025, 1, 1), date(2025, 6, 30), window_months=6)

        assert list(aggregates) == ["TR-0100", "TR-0200"]

        tr100 = aggregates["TR-0100"]
        assert tr100.total_volume_kg == pytest.approx(6000)
        assert tr100.monthly_avg_kg == pytest.approx(1000)
        assert tr100.avg6m == pytest.approx(1000)
        assert tr100.avg12m == pytest.approx(1000)
        assert tr100.growth_ratio == pytest.approx(1.0)
        assert tr100.order_count == 6
        assert tr100.client_count == 1
        assert tr100.last_order_date == date(2025, 6, 15)

        tr200 = aggregates["TR-0200"]
        assert tr200.total_volume_kg == pytest.approx(4200)
        assert tr200.avg6m == pytest.approx(700)
        assert tr200.avg12m == pytest.approx(350)
        assert tr200.growth_ratio == pytest.approx(2.0)
        assert tr200.order_count == 8
        # "client-2" and "CLIENT-2" are the same client
        assert tr200.client_count == 2

    def test_tools_without_orders_in_window_are_absent(self):
        records = _records([demand_row("TR-0300", 500, date(2024, 8, 10))])

        aggregates = aggregate_demand(records, date(2025, 1, 1), date(2025, 6, 30), window_months=6)

        assert aggregates == {}

    def test_aggregation_is_order_independent(self):
        rows = monthly_demand_rows("TR-0100", 1000, last_months(2025, 6, 12))
        rows += monthly_demand_rows("TR-0200", 250, last_months(2025, 6, 4))
        records = _records(rows)

        forward = aggregate_demand(records, date(2025, 1, 1), date(2025, 6, 30))
        backward = aggregate_demand(list(reversed(records)), date(2025, 1, 1), date(2025, 6, 30))

        assert forward == backward


class TestGrowthRatio:
    def test_ratio_of_short_to_long_average(self):
        assert growth_ratio(600, 300) == pytest.approx(2.0)

    def test_recent_demand_without_baseline(self):
        assert growth_ratio(200, 0) == pytest.approx(1.2)

    def test_no_demand_is_neutral(self):
        assert growth_ratio(0, 0) == 1.0


class TestCleanDemandRows:
    def test_malformed_records_are_dropped_and_reported(self):
        rows = [
            demand_row("TR-0100", "1.234,56", date(2025, 1, 5)),
            demand_row("TR-0100", None, date(2025, 1, 6)),
            demand_row("TR-0100", "abc", date(2025, 1, 7)),
            demand_row("TR-0100", 0, date(2025, 1, 8)),
            demand_row("TR-0100", -10, date(2025, 1, 9)),
            demand_row("TR-0100", 100, None),
            demand_row("   ", 100, date(2025, 1, 10)),
        ]

        records, issues = clean_demand_rows(rows)

        assert len(records) == 1
        assert records[0].volume_kg == pytest.approx(1234.56)
        assert records[0].tool_code == "TR-0100"
        assert len(issues) == 6
        assert all(i.source == DataQualitySource.DEMAND for i in issues)
        assert issues[-1].tool_code is None

    def test_filters_match_substrings_case_insensitively(self):
        records = _records(
            [
                demand_row("TR-0100", 10, date(2025, 1, 5), client="Acme Aluminium"),
                demand_row("TR-0200", 10, date(2025, 1, 5), client="Other"),
            ]
        )

        assert [r.tool_code for r in filter_records(records, tool_filter="tr-01")] == ["TR-0100"]
        assert [r.tool_code for r in filter_records(records, client_filter="ACME")] == ["TR-0100"]
        assert len(filter_records(records, tool_filter="  ")) == 2


class TestClassifyAbc:
    def test_breakpoints(self):
        result = classify_abc({"T4": 5, "T2": 30, "T1": 50, "T3": 15})

        assert list(result) == ["T1", "T2", "T3", "T4"]
        assert [e.abc_class for e in result.values()] == [
            AbcClass.A,
            AbcClass.A,
            AbcClass.B,
            AbcClass.C,
        ]
        assert result["T2"].cumulative_share == pytest.approx(0.8)
        assert result["T3"].share == pytest.approx(0.15)
        assert [e.rank for e in result.values()] == [1, 2, 3, 4]

    def test_ties_are_ranked_by_tool_code(self):
        result = classify_abc({"TR-B": 10, "TR-A": 10, "TR-C": 80})

        assert list(result) == ["TR-C", "TR-A", "TR-B"]

    def test_zero_total_yields_empty_classification(self):
        assert classify_abc({}) == {}
        assert classify_abc({"T1": 0, "T2": 0}) == {}

    def test_excluded_prefixes_are_left_out(self):
        result = classify_abc({"SF-0001": 1000, "TR-0100": 10})

        assert list(result) == ["TR-0100"]
        assert result["TR-0100"].share == pytest.approx(1.0)
        assert result["TR-0100"].abc_class == AbcClass.C

    def test_accepts_aggregates(self):
        rows = monthly_demand_rows("TR-0100", 900, last_months(2025, 6, 6))
        rows += monthly_demand_rows("TR-0200", 100, last_months(2025, 6, 6))
        aggregates = aggregate_demand(_records(rows), date(2025, 1, 1), date(2025, 6, 30))

        result = classify_abc(aggregates)

        assert result["TR-0100"].volume_kg == pytest.approx(5400)
        assert result["TR-0100"].abc_class == AbcClass.B
        assert result["TR-0200"].abc_class == AbcClass.C

    def test_cumulative_share_and_classes_are_monotonic(self):
        volumes = {f"T{i:02d}": float((i * 37) % 23 + 1) for i in range(40)}

        entries = list(classify_abc(volumes).values())

        cumulative = [e.cumulative_share for e in entries]
        assert cumulative == sorted(cumulative)
        assert cumulative[-1] == pytest.approx(1.0)
        classes = [e.abc_class.value for e in entries]
        assert classes == sorted(classes)
        assert len(entries) == len(volumes)

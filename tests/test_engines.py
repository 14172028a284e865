"""Tests for the pure forecasting engines (no database)."""

import math
import sys
import os
from datetime import date, datetime

import pytest

sys.path.insert(0, os.path.join(os.path.dirname(__file__), ".."))

from cvr_backend import models
from cvr_backend.engines.periods import (
    normalize_period_key, is_period_key, period_label, period_sort_key,
)
from cvr_backend.engines.impacts import (
    ChangeSpec, HeadlineImpact, ImpactRowData, PeriodDelta, PhasedImpact,
    combine_impact_maps, resolve_bundle_impacts, resolve_change_impacts,
    summarize_impact_rows,
)
from cvr_backend.engines.baseline import BaselineRow, build_baseline_series
from cvr_backend.engines.ledger import (
    TargetLine, best_revenue_record, is_actual_period, line_amount, margin_pct, period_cost,
    period_revenue,
)
from cvr_backend.engines.overlay import merge_scenario, summarize_series
from cvr_backend.engines.forecast import (
    flat_spread_amount, future_periods, parse_total, run_rate_amount,
)
from cvr_backend.errors import ForecastValidationError


def _period(month, revenue=None, kind="actual", costs=None, extra_revenue=()):
    records = []
    if revenue is not None:
        records.append(models.RevenueRecord(id=1, revenue_type=kind, amount=revenue))
    for i, (rec_kind, amount) in enumerate(extra_revenue, start=2):
        records.append(models.RevenueRecord(id=i, revenue_type=rec_kind, amount=amount))
    cost_records = [
        models.CostRecord(id=10 + i, category_id=cid, cost_type=ckind, amount=amount)
        for i, (cid, ckind, amount) in enumerate(costs or [])
    ]
    return models.ContractPeriod(
        period_month=month, revenue_records=records, cost_records=cost_records,
    )


def _headline(change_id, effective, revenue, cost):
    return ChangeSpec(change_id, "proposed", HeadlineImpact(effective, revenue, cost))


def _phased(change_id, *rows):
    return ChangeSpec(change_id, "proposed", PhasedImpact(rows=tuple(rows)))


class TestPeriodNormalizer:
    def test_iso_date_truncates_to_month(self):
        assert normalize_period_key("2025-03-17") == "2025-03-01"

    def test_date_and_datetime(self):
        assert normalize_period_key(date(2025, 3, 17)) == "2025-03-01"
        assert normalize_period_key(datetime(2025, 3, 17, 13, 45)) == "2025-03-01"

    def test_month_string(self):
        assert normalize_period_key("2025-03") == "2025-03-01"

    def test_iso_timestamp(self):
        assert normalize_period_key("2025-03-17T10:00:00Z") == "2025-03-01"

    def test_unparseable_returned_unchanged(self):
        assert normalize_period_key("not a date") == "not a date"
        assert normalize_period_key("2025-13-40") == "2025-13-40"
        assert normalize_period_key(None) is None

    def test_is_period_key(self):
        assert is_period_key("2025-03-01")
        assert not is_period_key("2025-03-17")
        assert not is_period_key("garbage")

    def test_sort_key_puts_malformed_last(self):
        keys = ["garbage", "2025-02-01", "2024-12-01"]
        assert sorted(keys, key=period_sort_key) == ["2024-12-01", "2025-02-01", "garbage"]

    def test_label(self):
        assert period_label("2025-03-01") == "Mar 2025"


class TestChangeImpactResolver:
    def test_headline_fallback_posts_at_effective_month(self):
        change = _headline(1, "2025-03-17", 5000, 3000)
        impacts = resolve_change_impacts(change)
        assert list(impacts) == ["2025-03-01"]
        assert impacts["2025-03-01"].revenue == 5000
        assert impacts["2025-03-01"].cost == 3000

    def test_rows_in_same_period_are_summed(self):
        change = _phased(
            1,
            ImpactRowData("2025-06-01", 0, 100, cost_category_id=1),
            ImpactRowData("2025-06-01", 0, 250, cost_category_id=2),
        )
        impacts = resolve_change_impacts(change)
        assert impacts["2025-06-01"].cost == 350

    def test_impact_rows_override_headline(self):
        change = models.ContractChange(
            id=7, status="proposed", revenue_delta=999, cost_delta=999,
            effective_date=date(2025, 1, 1),
            impacts=[models.ChangeImpact(period_month=date(2025, 2, 1), revenue_delta=10, cost_delta=4)],
        )
        impacts = resolve_change_impacts(change)
        assert list(impacts) == ["2025-02-01"]
        assert impacts["2025-02-01"].to_dict() == {"revenue": 10, "cost": 4}

    def test_no_rows_and_no_date_contributes_nothing(self):
        issues = []
        impacts = resolve_change_impacts(_headline(3, None, 100, 50), issues=issues)
        assert impacts == {}
        assert issues[0].code == "change_without_timing"
        assert issues[0].change_id == 3

    def test_unparseable_row_is_skipped_and_reported(self):
        issues = []
        change = _phased(
            4,
            ImpactRowData("someday", 100, 0),
            ImpactRowData("2025-05-09", 50, 0),
        )
        impacts = resolve_change_impacts(change, issues=issues)
        assert list(impacts) == ["2025-05-01"]
        assert [i.code for i in issues] == ["unparseable_period_key"]

    def test_scenario_only_rows_can_be_excluded(self):
        change = _phased(
            5,
            ImpactRowData("2025-05-01", 100, 0),
            ImpactRowData("2025-06-01", 200, 0, is_scenario_only=True),
        )
        assert set(resolve_change_impacts(change)) == {"2025-05-01", "2025-06-01"}
        assert set(resolve_change_impacts(change, include_scenario_only=False)) == {"2025-05-01"}

    def test_plain_mapping_input(self):
        impacts = resolve_change_impacts({
            "id": 9, "revenue_delta": 10, "cost_delta": None, "effective_date": "2025-04-30",
        })
        assert impacts["2025-04-01"].to_dict() == {"revenue": 10.0, "cost": 0.0}

    def test_bundle_order_independent(self):
        a = _phased(1, ImpactRowData("2025-01-01", 100, 10), ImpactRowData("2025-02-01", 5, 5))
        b = _headline(2, "2025-02-14", 40, 20)
        ab = resolve_bundle_impacts([a, b])
        ba = resolve_bundle_impacts([b, a])
        assert {k: v.to_dict() for k, v in ab.items()} == {k: v.to_dict() for k, v in ba.items()}
        assert ab["2025-02-01"].revenue == 45

    def test_combine_does_not_mutate_inputs(self):
        first = {"2025-01-01": PeriodDelta(1, 1)}
        combine_impact_maps([first, {"2025-01-01": PeriodDelta(2, 2)}])
        assert first["2025-01-01"].revenue == 1

    def test_headline_mismatch_warning(self):
        change = models.ContractChange(
            revenue_delta=1000, cost_delta=500,
            impacts=[models.ChangeImpact(period_month=date(2025, 2, 1), revenue_delta=600, cost_delta=500)],
        )
        check = summarize_impact_rows(change)
        assert check["mode"] == "phased"
        assert len(check["warnings"]) == 1
        assert "revenue" in check["warnings"][0]


class TestMargin:
    def test_zero_revenue_is_zero(self):
        assert margin_pct(0, 500) == 0.0
        assert margin_pct(0, 0) == 0.0

    def test_regular_margin(self):
        assert abs(margin_pct(1000, 800) - 20.0) < 1e-9


class TestBaselineSeries:
    def test_derives_missing_margin_and_sorts(self):
        rows = build_baseline_series([
            {"period_key": "2025-02-01", "revenue": 0, "cost": 100},
            {"period_key": "2025-01-15", "revenue": 1000, "cost": 900, "margin_pct": 10.0},
        ])
        assert [r.period_key for r in rows] == ["2025-01-01", "2025-02-01"]
        assert rows[0].margin_pct == 10.0
        assert rows[1].margin_pct == 0.0

    def test_unparseable_rows_skipped(self):
        rows = build_baseline_series([{"period_key": "bad", "revenue": 1, "cost": 1}])
        assert rows == []


class TestOverlayMerger:
    baseline = [
        BaselineRow("2025-01-01", 1000.0, 800.0, 20.0),
        BaselineRow("2025-02-01", 0.0, 300.0, 0.0),
    ]

    def test_empty_impacts_reproduce_baseline(self):
        rows = merge_scenario(self.baseline, {})
        assert len(rows) == 2
        for base, row in zip(self.baseline, rows):
            assert row.revenue == row.scenario_revenue == base.revenue
            assert row.cost == row.scenario_cost == base.cost
            assert row.margin_pct == row.scenario_margin_pct == base.margin_pct
            assert row.delta_revenue == row.delta_cost == 0

    def test_union_includes_months_outside_baseline(self):
        rows = merge_scenario(self.baseline, {"2025-04-01": PeriodDelta(500, 200)})
        assert [r.period_key for r in rows] == ["2025-01-01", "2025-02-01", "2025-04-01"]
        extension = rows[-1]
        assert extension.revenue == 0 and extension.cost == 0
        assert extension.scenario_revenue == 500
        assert abs(extension.scenario_margin_pct - 60.0) < 1e-9
        assert extension.period == "Apr 2025"

    def test_zero_scenario_revenue_margin_is_zero(self):
        rows = merge_scenario(self.baseline, {"2025-01-01": PeriodDelta(-1000, 50)})
        assert rows[0].scenario_revenue == 0
        assert rows[0].scenario_margin_pct == 0.0
        assert not math.isnan(rows[0].scenario_margin_pct)

    def test_order_independent_merge(self):
        a = resolve_change_impacts(_headline(1, "2025-01-10", 100, 10))
        b = resolve_change_impacts(_headline(2, "2025-01-20", 50, 30))
        ab = merge_scenario(self.baseline, combine_impact_maps([a, b]))
        ba = merge_scenario(self.baseline, combine_impact_maps([b, a]))
        assert ab == ba
        assert ab[0].scenario_revenue == 1150

    def test_summary_totals(self):
        summary = summarize_series(merge_scenario(self.baseline, {"2025-02-01": PeriodDelta(400, 0)}))
        assert summary["baseline"]["revenue"] == 1000
        assert summary["scenario"]["revenue"] == 1400
        assert summary["delta"]["revenue"] == 400


class TestLedgerRules:
    def test_actual_takes_precedence_over_forecast(self):
        period = _period(date(2025, 1, 1), 500, kind="forecast", extra_revenue=[("actual", 700)])
        assert best_revenue_record(period).revenue_type == "actual"
        assert period_revenue(period) == 700
        assert is_actual_period(period)

    def test_duplicates_are_ignored_not_summed(self):
        period = _period(date(2025, 1, 1), 500, kind="forecast", extra_revenue=[("forecast", 900)])
        assert period_revenue(period) == 500

    def test_baseline_kind_ignored(self):
        period = _period(date(2025, 1, 1), 500, kind="baseline")
        assert period_revenue(period) == 0.0
        assert not is_actual_period(period)

    def test_cost_summed_across_categories(self):
        period = _period(date(2025, 1, 1), 1000, costs=[
            (1, "actual", 300), (1, "forecast", 999), (2, "forecast", 200),
        ])
        assert period_cost(period) == 500

    def test_promotion_postings_added_on_top(self):
        period = _period(date(2025, 7, 1), 1000, kind="forecast", costs=[(1, "forecast", 400)])
        period.revenue_records.append(
            models.RevenueRecord(id=5, revenue_type="forecast", amount=500, source_change_id=3)
        )
        period.cost_records.append(
            models.CostRecord(id=20, category_id=None, cost_type="forecast", amount=200, source_change_id=3)
        )
        assert best_revenue_record(period).amount == 1000
        assert period_revenue(period) == 1500
        assert period_cost(period) == 600
        assert line_amount(period, TargetLine("cost", 1)) == 400

    def test_posting_alone_does_not_make_period_actual(self):
        period = _period(date(2025, 7, 1))
        period.revenue_records.append(
            models.RevenueRecord(id=5, revenue_type="actual", amount=500, source_change_id=3)
        )
        assert period_revenue(period) == 500
        assert not is_actual_period(period)


class TestForecastMath:
    def test_flat_spread(self):
        amount = flat_spread_amount(1000, 4)
        assert amount == 250
        assert abs(amount * 4 - 1000) < 1e-9

    def test_flat_spread_no_periods(self):
        with pytest.raises(ForecastValidationError):
            flat_spread_amount(1000, 0)

    def test_non_numeric_total(self):
        with pytest.raises(ForecastValidationError):
            parse_total("abc")
        with pytest.raises(ForecastValidationError):
            parse_total(None)
        assert parse_total("1,000.50") == 1000.5

    def test_run_rate_single_actual(self):
        periods = [_period(date(2025, 1, 1), 300), _period(date(2025, 2, 1))]
        assert run_rate_amount(periods, TargetLine("revenue")) == 300

    def test_run_rate_uses_last_three(self):
        periods = [_period(date(2025, m, 1), 100 * m) for m in range(1, 6)]
        assert run_rate_amount(periods, TargetLine("revenue")) == 400

    def test_run_rate_no_actuals_is_zero(self):
        periods = [_period(date(2025, 1, 1), 100, kind="forecast")]
        assert run_rate_amount(periods, TargetLine("revenue")) == 0.0

    def test_run_rate_cost_category(self):
        periods = [
            _period(date(2025, 1, 1), 1000, costs=[(1, "actual", 300), (2, "actual", 50)]),
            _period(date(2025, 2, 1), 1000, costs=[(1, "actual", 500)]),
        ]
        assert run_rate_amount(periods, TargetLine("cost", 1)) == 400

    def test_future_periods(self):
        periods = [
            _period(date(2025, 3, 1)),
            _period(date(2025, 1, 1), 100),
            _period(date(2025, 2, 1), 100, kind="forecast"),
        ]
        assert [p.period_month for p in future_periods(periods)] == [date(2025, 2, 1), date(2025, 3, 1)]

"""Tests for the store layer in crud.py."""

import sys
import os
from datetime import date

import pytest
from sqlalchemy.exc import IntegrityError

sys.path.insert(0, os.path.join(os.path.dirname(__file__), ".."))

from cvr_backend import crud, models
from cvr_backend.schemas import (
    ChangeCreate, ChangeUpdate, ContractCreate, ContractUpdate, PeriodCreate, ScenarioCreate,
)


def _change(db, contract_id, code="VO-001", **kwargs):
    return crud.create_change(db, contract_id, ChangeCreate(change_code=code, **kwargs))


class TestContractCrud:
    def test_create_and_get(self, db_session):
        contract = crud.create_contract(db_session, ContractCreate(
            contract_code="BS-1", name="Depot refurbishment", original_value=250000,
        ))
        assert contract.id is not None
        assert crud.get_contract(db_session, contract.id).name == "Depot refurbishment"

    def test_duplicate_code_rejected(self, db_session, sample_contract):
        with pytest.raises(IntegrityError):
            crud.create_contract(db_session, ContractCreate(contract_code="BS-2025-001", name="Copy"))

    def test_update(self, db_session, sample_contract):
        updated = crud.update_contract(db_session, sample_contract.id, ContractUpdate(status="on_hold"))
        assert updated.status == "on_hold"
        assert updated.name == "Alpha Tower Construction"

    def test_delete_cascades_periods(self, db_session, sample_periods, sample_contract):
        assert crud.delete_contract(db_session, sample_contract.id) is True
        assert db_session.query(models.ContractPeriod).count() == 0
        assert crud.delete_contract(db_session, sample_contract.id) is False


class TestPeriodsAndLedger:
    def test_create_period_normalizes_month(self, db_session, sample_contract, categories):
        period = crud.create_period(db_session, sample_contract.id, PeriodCreate(
            period_month="2025-09-15", revenue=500, revenue_type="forecast",
            costs={categories["labour"]: 200}, cost_type="forecast",
        ))
        assert period.period_month == date(2025, 9, 1)
        assert len(period.revenue_records) == 1
        assert period.cost_records[0].category_id == categories["labour"]

    def test_duplicate_month_rejected(self, db_session, sample_periods, sample_contract):
        with pytest.raises(IntegrityError):
            crud.create_period(db_session, sample_contract.id, PeriodCreate(period_month="2025-01-01"))

    def test_period_id_map(self, db_session, sample_periods, sample_contract):
        mapping = crud.get_period_id_map(db_session, sample_contract.id)
        assert len(mapping) == 8
        assert mapping["2025-01-01"] == sample_periods[0].id

    def test_baseline_summary_uses_authoritative_records(self, db_session, sample_contract, categories, make_period):
        period = make_period(sample_contract.id, date(2025, 1, 1), revenue=900, revenue_type="forecast")
        crud.insert_revenue_record(db_session, period.id, "actual", 1000)
        crud.insert_revenue_record(db_session, period.id, "baseline", 5000)
        crud.insert_cost_record(db_session, period.id, "actual", 250, categories["labour"])
        db_session.commit()

        summary = crud.select_baseline_summary(db_session, sample_contract.id)
        assert summary == [{
            "period_key": "2025-01-01", "revenue": 1000.0, "cost": 250.0, "margin_pct": 75.0,
        }]

    def test_delete_cost_records_scoped_to_category(self, db_session, sample_periods, categories):
        period = sample_periods[4]
        crud.insert_cost_record(db_session, period.id, "forecast", 10, categories["labour"])
        crud.insert_cost_record(db_session, period.id, "forecast", 20, categories["materials"])
        crud.insert_cost_record(db_session, period.id, "forecast", 30)
        assert crud.delete_cost_records(db_session, period.id, "forecast", categories["labour"]) == 1
        assert crud.delete_cost_records(db_session, period.id, "forecast") == 1
        db_session.commit()
        remaining = db_session.query(models.CostRecord).filter_by(contract_period_id=period.id).all()
        assert [r.amount for r in remaining] == [20]


class TestChangeCrud:
    def test_create_with_impacts(self, db_session, sample_contract):
        change = _change(db_session, sample_contract.id, revenue_delta=1000, impacts=[
            {"period_month": "2025-06-10", "revenue_delta": 600},
            {"period_month": "2025-07-01", "revenue_delta": 400},
        ])
        change = crud.get_change(db_session, change.id)
        assert [i.period_month for i in change.impacts] == [date(2025, 6, 1), date(2025, 7, 1)]
        assert change.status == "proposed"
        assert change.approved_at is None

    def test_create_approved_sets_timestamp(self, db_session, sample_contract):
        change = _change(db_session, sample_contract.id, status="approved")
        assert change.approved_at is not None

    def test_update_replaces_impacts_as_unit(self, db_session, sample_contract):
        change = _change(db_session, sample_contract.id, impacts=[
            {"period_month": "2025-06-01", "revenue_delta": 1},
            {"period_month": "2025-07-01", "revenue_delta": 2},
        ])
        updated = crud.update_change(db_session, change.id, ChangeUpdate(
            title="Resequenced", impacts=[{"period_month": "2025-09-01", "cost_delta": 50}],
        ))
        assert updated.title == "Resequenced"
        assert len(updated.impacts) == 1
        assert updated.impacts[0].period_month == date(2025, 9, 1)
        assert db_session.query(models.ChangeImpact).count() == 1

    def test_update_without_impacts_keeps_rows(self, db_session, sample_contract):
        change = _change(db_session, sample_contract.id, impacts=[{"period_month": "2025-06-01"}])
        updated = crud.update_change(db_session, change.id, ChangeUpdate(revenue_delta=5))
        assert len(updated.impacts) == 1

    def test_list_filters_by_status(self, db_session, sample_contract):
        _change(db_session, sample_contract.id, "VO-001")
        _change(db_session, sample_contract.id, "VO-002", status="rejected")
        proposed = crud.list_changes(db_session, sample_contract.id, status="proposed")
        assert [c.change_code for c in proposed] == ["VO-001"]
        assert len(crud.list_changes(db_session, sample_contract.id)) == 2

    def test_delete_removes_links(self, db_session, sample_contract):
        change = _change(db_session, sample_contract.id)
        scenario = crud.create_scenario(db_session, sample_contract.id, ScenarioCreate(name="Upside"))
        crud.insert_link(db_session, scenario.id, change.id)
        assert crud.delete_change(db_session, change.id) is True
        assert crud.select_scenario_links(db_session, scenario.id) == []
        assert crud.get_scenario(db_session, scenario.id) is not None


class TestScenarioLinks:
    def test_link_and_unlink(self, db_session, sample_contract):
        change = _change(db_session, sample_contract.id)
        scenario = crud.create_scenario(db_session, sample_contract.id, ScenarioCreate(name="Upside"))
        crud.insert_link(db_session, scenario.id, change.id)
        assert crud.select_scenario_links(db_session, scenario.id) == [change.id]
        assert [c.id for c in crud.list_scenario_changes(db_session, scenario.id)] == [change.id]
        assert crud.delete_link(db_session, scenario.id, change.id) is True
        assert crud.delete_link(db_session, scenario.id, change.id) is False

    def test_duplicate_link_rejected(self, db_session, sample_contract):
        change = _change(db_session, sample_contract.id)
        scenario = crud.create_scenario(db_session, sample_contract.id, ScenarioCreate(name="Upside"))
        crud.insert_link(db_session, scenario.id, change.id)
        with pytest.raises(IntegrityError):
            crud.insert_link(db_session, scenario.id, change.id)

    def test_delete_scenario_keeps_changes(self, db_session, sample_contract):
        change = _change(db_session, sample_contract.id)
        scenario = crud.create_scenario(db_session, sample_contract.id, ScenarioCreate(name="Upside"))
        crud.insert_link(db_session, scenario.id, change.id)
        assert crud.delete_scenario(db_session, scenario.id) is True
        assert crud.get_change(db_session, change.id) is not None
        assert db_session.query(models.ScenarioChange).count() == 0

    def test_scenario_defaults(self, db_session, sample_contract):
        scenario = crud.create_scenario(db_session, sample_contract.id, ScenarioCreate(name="Upside"))
        assert scenario.scenario_type == "custom"
        assert scenario.description == "User created scenario"

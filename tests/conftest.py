"""Shared test fixtures for the CVR forecast backend."""

import sys
import os
from datetime import date

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

# Add project root to path
sys.path.insert(0, os.path.join(os.path.dirname(__file__), ".."))

from cvr_backend.database import Base
from cvr_backend import models


def add_period(db, contract_id, month, revenue=None, revenue_type="actual", costs=None, cost_type=None):
    """Insert a period with optional revenue and {category_id: amount} cost records."""
    period = models.ContractPeriod(contract_id=contract_id, period_month=month)
    db.add(period)
    db.flush()
    if revenue is not None:
        db.add(models.RevenueRecord(
            contract_period_id=period.id, revenue_type=revenue_type, amount=revenue,
        ))
    for category_id, amount in (costs or {}).items():
        db.add(models.CostRecord(
            contract_period_id=period.id, category_id=category_id,
            cost_type=cost_type or revenue_type, amount=amount,
        ))
    db.commit()
    db.refresh(period)
    return period


@pytest.fixture
def db_session():
    """Create an in-memory SQLite database session for testing."""
    engine = create_engine("sqlite:///:memory:", connect_args={"check_same_thread": False})
    Base.metadata.create_all(bind=engine)
    Session = sessionmaker(bind=engine)
    session = Session()
    yield session
    session.close()


@pytest.fixture
def categories(db_session):
    """Labour and materials cost categories."""
    labour = models.CostCategory(code="LAB", name="Labour", sort_order=1)
    materials = models.CostCategory(code="MAT", name="Materials", sort_order=2)
    db_session.add_all([labour, materials])
    db_session.commit()
    return {"labour": labour.id, "materials": materials.id}


@pytest.fixture
def sample_contract(db_session):
    contract = models.Contract(
        contract_code="BS-2025-001",
        name="Alpha Tower Construction",
        customer_name="Metro Corp",
        original_value=5000000,
        target_margin_pct=12.5,
        start_date=date(2025, 1, 1),
        end_date=date(2025, 8, 31),
    )
    db_session.add(contract)
    db_session.commit()
    db_session.refresh(contract)
    return contract


@pytest.fixture
def sample_periods(db_session, sample_contract, categories):
    """
    Jan-Apr 2025 actual (revenue 1000..1300, labour cost 800..1100),
    May-Aug 2025 with no records (future).
    """
    periods = []
    for i, month in enumerate(range(1, 5)):
        periods.append(add_period(
            db_session, sample_contract.id, date(2025, month, 1),
            revenue=1000 + 100 * i,
            costs={categories["labour"]: 800 + 100 * i},
        ))
    for month in range(5, 9):
        periods.append(add_period(db_session, sample_contract.id, date(2025, month, 1)))
    return periods


@pytest.fixture
def make_period(db_session):
    """Factory fixture wrapping add_period() for the test session."""
    def _make(contract_id, month, **kwargs):
        return add_period(db_session, contract_id, month, **kwargs)
    return _make

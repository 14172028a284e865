"""
CVR Forecast ORM Models

Defines all database tables using SQLAlchemy 2.0 mapped_column style.

Architecture:
    - All models inherit from Base (defined in database.py)
    - Relationships defined with back_populates for bidirectional access
    - CASCADE deletes configured so removing a parent cleans up children
    - UNIQUE constraints enforce business rules (one period per contract month,
      one link per scenario/change pair)

Tables:
    - contracts: Contract master records
    - cost_categories: Reference data for cost lines
    - contract_periods: One row per contract month (period_month = first of month)
    - contract_revenue: Revenue records per period, tagged actual/forecast/baseline
    - contract_costs: Cost records per period and category, tagged the same way
    - contract_changes: Proposed changes with headline deltas
    - contract_change_impacts: Time-phased impact rows owned by a change
    - contract_scenarios: Named what-if bundles
    - contract_scenario_changes: Scenario <-> change bundle links

Note: contract_revenue / contract_costs deliberately carry no uniqueness
constraint on (period, kind[, category]). Writers delete before insert.
"""

from datetime import date, datetime
from typing import Optional

from sqlalchemy import (
    Integer, Float, Text, Boolean, Date, DateTime, ForeignKey, UniqueConstraint
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from .database import Base


RECORD_KINDS = ("actual", "forecast", "baseline")
CHANGE_STATUSES = ("proposed", "approved", "rejected", "implemented")


# ---------------------------------------------------------------------------
# CONTRACT TABLES
# ---------------------------------------------------------------------------

class Contract(Base):
    """
    Contract master record. Read-only to the forecasting engines; owns
    periods, changes and scenarios.
    """
    __tablename__ = "contracts"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    contract_code: Mapped[str] = mapped_column(Text, nullable=False, unique=True)
    name: Mapped[str] = mapped_column(Text, nullable=False)
    customer_name: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    original_value: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    target_margin_pct: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    status: Mapped[str] = mapped_column(Text, nullable=False, default="active")
    start_date: Mapped[Optional[date]] = mapped_column(Date, nullable=True)
    end_date: Mapped[Optional[date]] = mapped_column(Date, nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime, nullable=False, default=datetime.utcnow
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, nullable=False, default=datetime.utcnow, onupdate=datetime.utcnow
    )

    # Relationships
    periods: Mapped[list["ContractPeriod"]] = relationship(
        "ContractPeriod", back_populates="contract", cascade="all, delete-orphan"
    )
    changes: Mapped[list["ContractChange"]] = relationship(
        "ContractChange", back_populates="contract", cascade="all, delete-orphan"
    )
    scenarios: Mapped[list["Scenario"]] = relationship(
        "Scenario", back_populates="contract", cascade="all, delete-orphan"
    )

    def __repr__(self) -> str:
        return f"<Contract(id={self.id}, code={self.contract_code})>"


class CostCategory(Base):
    """Stable reference data: labour, materials, subcontract, ..."""
    __tablename__ = "cost_categories"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    code: Mapped[str] = mapped_column(Text, nullable=False, unique=True)
    name: Mapped[str] = mapped_column(Text, nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    sort_order: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    def __repr__(self) -> str:
        return f"<CostCategory(id={self.id}, code={self.code})>"


# ---------------------------------------------------------------------------
# PERIOD LEDGER
# ---------------------------------------------------------------------------

class ContractPeriod(Base):
    """
    One calendar month of a contract's financial ledger.
    period_month is always stored as the first day of the month.
    """
    __tablename__ = "contract_periods"
    __table_args__ = (
        UniqueConstraint("contract_id", "period_month", name="uq_contract_period"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    contract_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("contracts.id", ondelete="CASCADE"), nullable=False
    )
    period_month: Mapped[date] = mapped_column(Date, nullable=False)
    is_baseline: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    version: Mapped[int] = mapped_column(Integer, nullable=False, default=1)

    # Relationships
    contract: Mapped["Contract"] = relationship("Contract", back_populates="periods")
    revenue_records: Mapped[list["RevenueRecord"]] = relationship(
        "RevenueRecord", back_populates="period", cascade="all, delete-orphan"
    )
    cost_records: Mapped[list["CostRecord"]] = relationship(
        "CostRecord", back_populates="period", cascade="all, delete-orphan"
    )

    def __repr__(self) -> str:
        return f"<ContractPeriod(id={self.id}, contract_id={self.contract_id}, month={self.period_month})>"


class RevenueRecord(Base):
    """
    Revenue amount for a period. revenue_type is actual, forecast or baseline.
    source_change_id is set on records posted by scenario promotion.
    """
    __tablename__ = "contract_revenue"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    contract_period_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("contract_periods.id", ondelete="CASCADE"), nullable=False
    )
    revenue_type: Mapped[str] = mapped_column(Text, nullable=False)
    amount: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    source_change_id: Mapped[Optional[int]] = mapped_column(Integer, nullable=True, index=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime, nullable=False, default=datetime.utcnow
    )

    period: Mapped["ContractPeriod"] = relationship(
        "ContractPeriod", back_populates="revenue_records"
    )


class CostRecord(Base):
    """
    Cost amount for a period and (optionally) a cost category.
    source_change_id is set on records posted by scenario promotion.
    """
    __tablename__ = "contract_costs"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    contract_period_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("contract_periods.id", ondelete="CASCADE"), nullable=False
    )
    category_id: Mapped[Optional[int]] = mapped_column(
        Integer, ForeignKey("cost_categories.id"), nullable=True
    )
    cost_type: Mapped[str] = mapped_column(Text, nullable=False)
    amount: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    source_change_id: Mapped[Optional[int]] = mapped_column(Integer, nullable=True, index=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime, nullable=False, default=datetime.utcnow
    )

    period: Mapped["ContractPeriod"] = relationship(
        "ContractPeriod", back_populates="cost_records"
    )


# ---------------------------------------------------------------------------
# CHANGES & SCENARIOS
# ---------------------------------------------------------------------------

class ContractChange(Base):
    """
    A proposed change to a contract. Headline deltas are authoritative only
    when the change owns no impact rows.
    """
    __tablename__ = "contract_changes"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    contract_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("contracts.id", ondelete="CASCADE"), nullable=False
    )
    change_code: Mapped[str] = mapped_column(Text, nullable=False)
    title: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    change_type: Mapped[str] = mapped_column(Text, nullable=False, default="other")
    status: Mapped[str] = mapped_column(Text, nullable=False, default="proposed")

    revenue_delta: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    cost_delta: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    effective_date: Mapped[Optional[date]] = mapped_column(Date, nullable=True)

    # Risk
    risk_level: Mapped[str] = mapped_column(Text, nullable=False, default="low")
    risk_narrative: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    conversion_probability_pct: Mapped[float] = mapped_column(
        Float, nullable=False, default=100.0
    )

    # Governance
    customer_approval_received: Mapped[bool] = mapped_column(
        Boolean, nullable=False, default=False
    )
    approved_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime, nullable=False, default=datetime.utcnow
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, nullable=False, default=datetime.utcnow, onupdate=datetime.utcnow
    )

    # Relationships
    contract: Mapped["Contract"] = relationship("Contract", back_populates="changes")
    impacts: Mapped[list["ChangeImpact"]] = relationship(
        "ChangeImpact", back_populates="change", cascade="all, delete-orphan",
        order_by="ChangeImpact.period_month",
    )

    def __repr__(self) -> str:
        return f"<ContractChange(id={self.id}, code={self.change_code}, status={self.status})>"


class ChangeImpact(Base):
    """One month-specific revenue/cost contribution of a change."""
    __tablename__ = "contract_change_impacts"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    contract_change_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("contract_changes.id", ondelete="CASCADE"), nullable=False
    )
    period_month: Mapped[date] = mapped_column(Date, nullable=False)
    revenue_delta: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    cost_delta: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    cost_category_id: Mapped[Optional[int]] = mapped_column(
        Integer, ForeignKey("cost_categories.id"), nullable=True
    )
    is_scenario_only: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    change: Mapped["ContractChange"] = relationship("ContractChange", back_populates="impacts")


class Scenario(Base):
    """
    Named, disposable bundle of proposed changes. Promotion dissolves the
    links but keeps the scenario row for reuse.
    """
    __tablename__ = "contract_scenarios"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    contract_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("contracts.id", ondelete="CASCADE"), nullable=False
    )
    name: Mapped[str] = mapped_column(Text, nullable=False)
    scenario_type: Mapped[str] = mapped_column(Text, nullable=False, default="custom")
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime, nullable=False, default=datetime.utcnow
    )

    contract: Mapped["Contract"] = relationship("Contract", back_populates="scenarios")
    links: Mapped[list["ScenarioChange"]] = relationship(
        "ScenarioChange", back_populates="scenario", cascade="all, delete-orphan"
    )

    def __repr__(self) -> str:
        return f"<Scenario(id={self.id}, name='{self.name}', contract_id={self.contract_id})>"


class ScenarioChange(Base):
    """Bundle association between a scenario and a change."""
    __tablename__ = "contract_scenario_changes"
    __table_args__ = (
        UniqueConstraint("scenario_id", "contract_change_id", name="uq_scenario_change"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    scenario_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("contract_scenarios.id", ondelete="CASCADE"), nullable=False
    )
    contract_change_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("contract_changes.id", ondelete="CASCADE"), nullable=False
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime, nullable=False, default=datetime.utcnow
    )

    scenario: Mapped["Scenario"] = relationship("Scenario", back_populates="links")
    change: Mapped["ContractChange"] = relationship("ContractChange")

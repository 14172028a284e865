"""
CVR Forecast Pydantic Schemas

Defines request/response models for the FastAPI REST API.

Naming convention:
    - XxxCreate: request body for creating Xxx
    - XxxUpdate: request body for updating Xxx
    - XxxResponse: response body for Xxx
"""

from datetime import date, datetime
from typing import Literal, Optional, Union
from pydantic import BaseModel, Field, field_validator

from .engines.periods import is_period_key, normalize_period_key, period_key_to_date


def _month(v):
    """Coerce any date-like value to the first day of its month."""
    if v is None:
        return v
    key = normalize_period_key(v)
    if not is_period_key(key):
        raise ValueError(f"Invalid period: {v!r}")
    return period_key_to_date(key)


# ---------------------------------------------------------------------------
# CONTRACT SCHEMAS
# ---------------------------------------------------------------------------

class ContractCreate(BaseModel):
    """Request body for creating a contract."""
    contract_code: str = Field(..., min_length=1, max_length=50)
    name: str = Field(..., min_length=1)
    customer_name: Optional[str] = None
    original_value: float = 0.0
    target_margin_pct: Optional[float] = None
    status: str = "active"
    start_date: Optional[date] = None
    end_date: Optional[date] = None

    @field_validator("status")
    @classmethod
    def validate_status(cls, v):
        valid = ["draft", "active", "on_hold", "complete", "closed"]
        if v not in valid:
            raise ValueError(f"Invalid status: {v}. Must be one of {valid}")
        return v


class ContractUpdate(BaseModel):
    """Request body for updating a contract. All fields optional."""
    contract_code: Optional[str] = None
    name: Optional[str] = None
    customer_name: Optional[str] = None
    original_value: Optional[float] = None
    target_margin_pct: Optional[float] = None
    status: Optional[str] = None
    start_date: Optional[date] = None
    end_date: Optional[date] = None


class ContractResponse(BaseModel):
    id: int
    contract_code: str
    name: str
    customer_name: Optional[str] = None
    original_value: float
    target_margin_pct: Optional[float] = None
    status: str
    start_date: Optional[date] = None
    end_date: Optional[date] = None
    created_at: datetime
    updated_at: datetime

    model_config = {"from_attributes": True}


class CostCategoryCreate(BaseModel):
    code: str = Field(..., min_length=1)
    name: str = Field(..., min_length=1)
    is_active: bool = True
    sort_order: int = 0


class CostCategoryResponse(BaseModel):
    id: int
    code: str
    name: str
    is_active: bool
    sort_order: int

    model_config = {"from_attributes": True}


# ---------------------------------------------------------------------------
# PERIOD SCHEMAS
# ---------------------------------------------------------------------------

class PeriodCreate(BaseModel):
    """A new contract month, optionally with opening revenue/cost amounts."""
    period_month: date
    revenue: Optional[float] = None
    revenue_type: Literal["actual", "forecast"] = "forecast"
    costs: dict[int, float] = Field(default_factory=dict)  # category_id -> amount
    cost_type: Literal["actual", "forecast"] = "forecast"

    @field_validator("period_month", mode="before")
    @classmethod
    def first_of_month(cls, v):
        return _month(v)


class RevenueRecordResponse(BaseModel):
    id: int
    revenue_type: str
    amount: float
    source_change_id: Optional[int] = None

    model_config = {"from_attributes": True}


class CostRecordResponse(BaseModel):
    id: int
    cost_type: str
    category_id: Optional[int] = None
    amount: float
    source_change_id: Optional[int] = None

    model_config = {"from_attributes": True}


class PeriodResponse(BaseModel):
    id: int
    contract_id: int
    period_month: date
    revenue_records: list[RevenueRecordResponse] = []
    cost_records: list[CostRecordResponse] = []

    model_config = {"from_attributes": True}


class GridEdit(BaseModel):
    period_id: int
    line: Literal["revenue", "cost"] = "revenue"
    category_id: Optional[int] = None
    amount: float


class ForecastGridSave(BaseModel):
    edits: list[GridEdit]


# ---------------------------------------------------------------------------
# CHANGE SCHEMAS
# ---------------------------------------------------------------------------

class ImpactRowSchema(BaseModel):
    """Time-phased impact row of a change."""
    period_month: date
    revenue_delta: float = 0.0
    cost_delta: float = 0.0
    cost_category_id: Optional[int] = None
    is_scenario_only: bool = False

    @field_validator("period_month", mode="before")
    @classmethod
    def first_of_month(cls, v):
        return _month(v)

    model_config = {"from_attributes": True}


class ChangeCreate(BaseModel):
    """Request body for creating a change, with its impact rows."""
    change_code: str = Field(..., min_length=1)
    title: Optional[str] = None
    description: Optional[str] = None
    change_type: str = "other"
    status: Literal["proposed", "approved", "rejected", "implemented"] = "proposed"
    revenue_delta: float = 0.0
    cost_delta: float = 0.0
    effective_date: Optional[date] = None
    risk_level: Literal["low", "medium", "high"] = "low"
    risk_narrative: Optional[str] = None
    conversion_probability_pct: float = Field(100.0, ge=0.0, le=100.0)
    customer_approval_received: bool = False
    impacts: list[ImpactRowSchema] = []


class ChangeUpdate(BaseModel):
    """
    Request body for updating a change. When `impacts` is given, the change's
    impact rows are replaced as a unit.
    """
    change_code: Optional[str] = None
    title: Optional[str] = None
    description: Optional[str] = None
    change_type: Optional[str] = None
    status: Optional[Literal["proposed", "approved", "rejected", "implemented"]] = None
    revenue_delta: Optional[float] = None
    cost_delta: Optional[float] = None
    effective_date: Optional[date] = None
    risk_level: Optional[Literal["low", "medium", "high"]] = None
    risk_narrative: Optional[str] = None
    conversion_probability_pct: Optional[float] = Field(None, ge=0.0, le=100.0)
    customer_approval_received: Optional[bool] = None
    impacts: Optional[list[ImpactRowSchema]] = None


class ChangeResponse(BaseModel):
    id: int
    contract_id: int
    change_code: str
    title: Optional[str] = None
    description: Optional[str] = None
    change_type: str
    status: str
    revenue_delta: float
    cost_delta: float
    effective_date: Optional[date] = None
    risk_level: str
    conversion_probability_pct: float
    customer_approval_received: bool
    approved_at: Optional[datetime] = None
    impacts: list[ImpactRowSchema] = []
    created_at: datetime

    model_config = {"from_attributes": True}


# ---------------------------------------------------------------------------
# SCENARIO SCHEMAS
# ---------------------------------------------------------------------------

class ScenarioCreate(BaseModel):
    name: str = Field(..., min_length=1)
    scenario_type: str = "custom"
    description: Optional[str] = "User created scenario"


class ScenarioResponse(BaseModel):
    id: int
    contract_id: int
    name: str
    scenario_type: str
    description: Optional[str] = None
    created_at: datetime

    model_config = {"from_attributes": True}


# ---------------------------------------------------------------------------
# FORECASTING SCHEMAS
# ---------------------------------------------------------------------------

class ForecastGenerateRequest(BaseModel):
    """
    Forecast generator input. `total_amount` is validated by the engine so a
    non-numeric entry is reported as a validation error, not a schema error.
    """
    line: Literal["revenue", "cost"] = "revenue"
    category_id: Optional[int] = None
    method: Literal["flat_spread", "run_rate"]
    total_amount: Optional[Union[float, str]] = None


class SplitRequest(BaseModel):
    cutoff_date: str
    confirm: bool = False

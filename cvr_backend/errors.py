"""
CVR Forecast Error Taxonomy

Engines raise these; routers translate them into HTTP responses.

    ForecastValidationError  user-correctable input problem      -> 400
    PromotionError           bundle cannot be promoted           -> 409
    NotFoundError            unknown contract/scenario/change    -> 404
    StoreError               a store call failed mid-sequence    -> 500

Data-quality problems are not exceptions: engines log them and collect
DataQualityIssue records so the surrounding operation can continue.
"""

from dataclasses import dataclass
from typing import Any, Optional


class CVRError(Exception):
    """Base class for all CVR domain errors."""


class ForecastValidationError(CVRError, ValueError):
    """Rejected before any write: bad totals, nothing to spread over, etc."""


class PromotionError(CVRError, ValueError):
    """Scenario bundle is empty or holds changes that are no longer proposed."""


class NotFoundError(CVRError, LookupError):
    """Referenced entity does not exist."""


class StoreError(CVRError, RuntimeError):
    """
    A delete/insert against the store failed. The enclosing sequence was
    rolled back; retrying the whole operation is the caller's decision.
    """


@dataclass(frozen=True)
class DataQualityIssue:
    """A skipped item reported alongside an otherwise successful result."""
    code: str
    message: str
    change_id: Optional[int] = None
    period_key: Optional[Any] = None

    def to_dict(self) -> dict:
        return {
            "code": self.code,
            "message": self.message,
            "change_id": self.change_id,
            "period_key": None if self.period_key is None else str(self.period_key),
        }

"""
Balance schemas
"""
from datetime import datetime
from decimal import Decimal
from typing import Dict, Optional
from pydantic import BaseModel, field_serializer
from app.utils.datetime_utils import iso_ist


class BalanceLine(BaseModel):
    """balance is the stored figure; available deducts pending days (lop: headroom under the cap)"""
    balance: Decimal
    pending: Decimal
    available: Decimal


class BalanceOut(BaseModel):
    employee_id: int
    balances: Dict[str, BalanceLine]
    last_updated: Optional[datetime] = None

    @field_serializer("last_updated", when_used="always")
    @classmethod
    def _ser_datetime(cls, dt: Optional[datetime]) -> Optional[str]:
        return iso_ist(dt) if dt is not None else None

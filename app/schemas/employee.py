"""
Employee schemas
"""
from datetime import date
from typing import Optional
from pydantic import BaseModel, ConfigDict


class EmployeeOut(BaseModel):
    """Compact employee view embedded in leave responses"""
    id: int
    emp_code: str
    name: str
    role: str
    status: str
    reporting_manager_id: Optional[int] = None
    date_of_joining: Optional[date] = None

    model_config = ConfigDict(from_attributes=True)

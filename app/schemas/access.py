"""
Module access schemas
"""
from typing import List, Literal
from pydantic import BaseModel, Field


class AccessToggleRequest(BaseModel):
    employee_id: int = Field(..., description="Employee to add or remove")
    action: Literal["add", "remove"]


class AccessToggleOut(BaseModel):
    module_id: str
    employee_id: int
    action: str
    changed: bool


class ModuleMembersOut(BaseModel):
    module_id: str
    employee_ids: List[int]

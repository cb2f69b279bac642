"""
Main API router
"""
from fastapi import APIRouter

from app.api.v1 import (
    health,
    leaves,
    balances,
    accrual,
    policy,
    leave_rules,
    access,
)

api_router = APIRouter()

api_router.include_router(health.router, tags=["health"])
api_router.include_router(leaves.router, prefix="/leaves", tags=["leaves"])
api_router.include_router(balances.router, prefix="/balances", tags=["balances"])
api_router.include_router(accrual.router, prefix="/accrual", tags=["accrual"])
api_router.include_router(policy.router, prefix="/policies", tags=["policies"])
api_router.include_router(leave_rules.router, prefix="/leave-rules", tags=["leave-rules"])
api_router.include_router(access.router, prefix="/access", tags=["access"])

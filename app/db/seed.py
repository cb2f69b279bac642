"""
Default leave policies and notice rules.

Policies are inserted with ON CONFLICT DO NOTHING on (role, leave_type, effective_from),
so seeding is safe to repeat and never overwrites rows HR has added.
"""
import logging
from datetime import date
from decimal import Decimal
from typing import Dict, Optional

from sqlalchemy.orm import Session

from app.db.upsert import insert_ignore
from app.models.leave import LeaveType
from app.models.policy import LeavePolicyConfiguration, LeaveRule
from app.utils.datetime_utils import now_utc

logger = logging.getLogger(__name__)

DEFAULT_EFFECTIVE_FROM = date(2024, 8, 19)

_REGULAR_CASUAL = {
    "annual_credit": Decimal("12"),
    "annual_max": Decimal("0"),
    "carry_forward_limit": Decimal("8"),
    "max_leave_per_month": Decimal("10"),
    "anniversary_3_year_bonus": Decimal("3"),
    "anniversary_5_year_bonus": Decimal("5"),
}
# Unused sick leave lapses at year end
_SICK = {
    "annual_credit": Decimal("6"),
    "annual_max": Decimal("0"),
    "carry_forward_limit": Decimal("0"),
}
_LOP = {
    "annual_credit": Decimal("0"),
    "annual_max": Decimal("10"),
    "carry_forward_limit": Decimal("0"),
    "max_leave_per_month": Decimal("5"),
}

DEFAULT_POLICIES: Dict[str, Dict[LeaveType, Dict[str, Decimal]]] = {
    "employee": {LeaveType.CASUAL: _REGULAR_CASUAL, LeaveType.SICK: _SICK, LeaveType.LOP: _LOP},
    "manager": {LeaveType.CASUAL: _REGULAR_CASUAL, LeaveType.SICK: _SICK, LeaveType.LOP: _LOP},
    "hr": {LeaveType.CASUAL: _REGULAR_CASUAL, LeaveType.SICK: _SICK, LeaveType.LOP: _LOP},
    "intern": {
        LeaveType.CASUAL: {
            "annual_credit": Decimal("6"),
            "annual_max": Decimal("0"),
            "carry_forward_limit": Decimal("0"),
            "max_leave_per_month": Decimal("10"),
        },
        LeaveType.SICK: _SICK,
        LeaveType.LOP: _LOP,
    },
    "on_notice": {
        LeaveType.CASUAL: {
            "annual_credit": Decimal("12"),
            "annual_max": Decimal("0"),
            "carry_forward_limit": Decimal("0"),
            "max_leave_per_month": Decimal("10"),
        },
        LeaveType.SICK: _SICK,
        LeaveType.LOP: _LOP,
    },
}

# (leave_required_min, leave_required_max, prior_information_days)
DEFAULT_LEAVE_RULES = (
    (Decimal("0.5"), Decimal("2.5"), 3),
    (Decimal("3"), Decimal("5"), 7),
    (Decimal("5.5"), None, 30),
)


def seed_policies(
    db: Session,
    effective_from: date = DEFAULT_EFFECTIVE_FROM,
    actor_id: Optional[int] = None,
) -> int:
    """Insert the default policy rows that are missing. Returns how many were added."""
    inserted = 0
    for role, by_type in DEFAULT_POLICIES.items():
        for leave_type, values in by_type.items():
            row = {
                "role": role,
                "leave_type": leave_type,
                "annual_credit": Decimal("0"),
                "annual_max": Decimal("0"),
                "carry_forward_limit": Decimal("0"),
                "max_leave_per_month": None,
                "anniversary_3_year_bonus": Decimal("0"),
                "anniversary_5_year_bonus": Decimal("0"),
                "effective_from": effective_from,
                "created_by": actor_id,
                "updated_by": actor_id,
                "created_at": now_utc(),
                "updated_at": now_utc(),
            }
            row.update(values)
            inserted += insert_ignore(
                db,
                LeavePolicyConfiguration,
                row,
                ["role", "leave_type", "effective_from"],
            )
    return inserted


def seed_leave_rules(db: Session, actor_id: Optional[int] = None) -> int:
    """Insert the default notice bands if no rule exists yet."""
    if db.query(LeaveRule.id).first() is not None:
        return 0
    for low, high, prior_days in DEFAULT_LEAVE_RULES:
        db.add(LeaveRule(
            leave_required_min=low,
            leave_required_max=high,
            prior_information_days=prior_days,
            is_active=True,
            created_by=actor_id,
            updated_by=actor_id,
        ))
    db.flush()
    return len(DEFAULT_LEAVE_RULES)


def seed_defaults(
    db: Session,
    effective_from: date = DEFAULT_EFFECTIVE_FROM,
    actor_id: Optional[int] = None,
) -> Dict[str, int]:
    """Seed policies and notice rules in one transaction."""
    try:
        result = {
            "policies": seed_policies(db, effective_from, actor_id),
            "leave_rules": seed_leave_rules(db, actor_id),
        }
        db.commit()
    except Exception:
        db.rollback()
        raise
    logger.info("seeded defaults: policies=%s leave_rules=%s", result["policies"], result["leave_rules"])
    return result

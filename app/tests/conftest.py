"""
Pytest configuration and fixtures
"""
import os

# Settings are read at import time; give the app a throwaway database and secret
os.environ.setdefault("DATABASE_URL", "sqlite:///:memory:")
os.environ.setdefault("JWT_SECRET_KEY", "test-secret-key")

from datetime import date
from decimal import Decimal

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine, event
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool
from sqlalchemy.engine import Engine
from app.main import app
from app.db.base import Base
from app.db.seed import seed_defaults
from app.core.deps import get_db
from app.core.security import create_access_token
from app.models import Employee, LeaveBalance, Role  # noqa: F401  registers every model
from app.services.calendar_service import StaticCalendar


# Use in-memory SQLite for testing
SQLALCHEMY_TEST_DATABASE_URL = "sqlite:///:memory:"

engine = create_engine(
    SQLALCHEMY_TEST_DATABASE_URL,
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)

# Enable foreign keys for SQLite
@event.listens_for(Engine, "connect")
def set_sqlite_pragma(dbapi_conn, connection_record):
    cursor = dbapi_conn.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()

TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture(scope="function")
def db():
    """Create a fresh database for each test"""
    Base.metadata.drop_all(bind=engine)
    Base.metadata.create_all(bind=engine)

    db = TestingSessionLocal()
    try:
        yield db
        db.commit()
    except Exception:
        db.rollback()
        raise
    finally:
        db.close()
        Base.metadata.drop_all(bind=engine)


@pytest.fixture(scope="function")
def client(db):
    """Test client fixture with database override"""
    def override_get_db():
        try:
            yield db
        finally:
            pass

    app.dependency_overrides[get_db] = override_get_db
    yield TestClient(app)
    app.dependency_overrides.clear()


@pytest.fixture
def make_employee(db):
    """Factory: make_employee("EMP001", Role.EMPLOYEE, manager=mgr)"""
    def _make(emp_code, role=Role.EMPLOYEE, manager=None, status="active", date_of_joining=date(2020, 1, 15)):
        employee = Employee(
            emp_code=emp_code,
            name=emp_code.title(),
            role=Role(role).value,
            status=status,
            reporting_manager_id=manager.id if manager else None,
            date_of_joining=date_of_joining,
        )
        db.add(employee)
        db.commit()
        db.refresh(employee)
        return employee
    return _make


@pytest.fixture
def super_admin(make_employee):
    return make_employee("ADM001", Role.SUPER_ADMIN)


@pytest.fixture
def hr_employee(make_employee):
    return make_employee("HR001", Role.HR)


@pytest.fixture
def manager_employee(make_employee):
    return make_employee("MGR001", Role.MANAGER)


@pytest.fixture
def test_employee(make_employee, manager_employee):
    """Employee reporting to manager_employee"""
    return make_employee("EMP001", Role.EMPLOYEE, manager=manager_employee)


@pytest.fixture
def policies(db):
    """Default policies (effective 2024-08-19) and notice bands"""
    seed_defaults(db)


@pytest.fixture
def set_balance(db):
    """Write a balance row directly (test setup only; production goes through the ledger)"""
    def _set(employee, casual="0", sick="0", lop="0"):
        balance = db.query(LeaveBalance).filter(LeaveBalance.employee_id == employee.id).first()
        if balance is None:
            balance = LeaveBalance(employee_id=employee.id)
            db.add(balance)
        balance.casual_balance = Decimal(str(casual))
        balance.sick_balance = Decimal(str(sick))
        balance.lop_balance = Decimal(str(lop))
        db.commit()
        db.refresh(balance)
        return balance
    return _set


@pytest.fixture
def calendar():
    """Weekends only; add holidays per test via calendar.holidays.add(...)"""
    return StaticCalendar()


@pytest.fixture
def auth_headers():
    def _headers(employee):
        token = create_access_token({"sub": str(employee.id)})
        return {"Authorization": f"Bearer {token}"}
    return _headers

"""Leave core schema: employees, leave requests/days, balances, ledger, policies, rules

Revision ID: 001_leave_core_schema
Revises:
Create Date: 2026-10-19

"""
from typing import Sequence, Union
from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision: str = '001_leave_core_schema'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

ENUMS = {
    'leavetype': ('casual', 'sick', 'lop', 'permission'),
    'daytype': ('full', 'first_half', 'second_half'),
    'leavestatus': ('pending', 'approved', 'rejected', 'cancelled', 'partially_approved'),
    'daystatus': ('pending', 'approved', 'rejected'),
    'approvalaction': ('approve', 'reject', 'cancel'),
    'ledgeroperation': ('commit', 'release', 'credit_monthly', 'credit_anniversary', 'year_end'),
}


def _audit_columns(datetime_default):
    return [
        sa.Column('created_by', sa.Integer(), sa.ForeignKey('employees.id'), nullable=True),
        sa.Column('updated_by', sa.Integer(), sa.ForeignKey('employees.id'), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=datetime_default, nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=datetime_default, nullable=False),
    ]


def upgrade() -> None:
    bind = op.get_bind()
    is_sqlite = bind.dialect.name == 'sqlite'

    if is_sqlite:
        datetime_default = sa.text('CURRENT_TIMESTAMP')

        def enum(name):
            return sa.String(32)
    else:
        datetime_default = sa.text('now()')
        for name, values in ENUMS.items():
            postgresql.ENUM(*values, name=name).create(bind, checkfirst=True)

        def enum(name):
            return postgresql.ENUM(*ENUMS[name], name=name, create_type=False)

    existing = set(sa.inspect(bind).get_table_names())

    if 'employees' not in existing:
        op.create_table(
            'employees',
            sa.Column('id', sa.Integer(), nullable=False),
            sa.Column('emp_code', sa.String(), nullable=False),
            sa.Column('name', sa.String(), nullable=False),
            sa.Column('role', sa.String(), nullable=False),
            sa.Column('status', sa.String(), nullable=False, server_default='active'),
            sa.Column('reporting_manager_id', sa.Integer(), sa.ForeignKey('employees.id'), nullable=True),
            sa.Column('date_of_joining', sa.Date(), nullable=False),
            *_audit_columns(datetime_default),
            sa.PrimaryKeyConstraint('id'),
        )
        op.create_index(op.f('ix_employees_id'), 'employees', ['id'], unique=False)
        op.create_index(op.f('ix_employees_emp_code'), 'employees', ['emp_code'], unique=True)
        op.create_index(op.f('ix_employees_reporting_manager_id'), 'employees', ['reporting_manager_id'], unique=False)

    op.create_table(
        'audit_logs',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('actor_id', sa.Integer(), sa.ForeignKey('employees.id'), nullable=True),
        sa.Column('action', sa.String(), nullable=False),
        sa.Column('entity_type', sa.String(), nullable=False),
        sa.Column('entity_id', sa.Integer(), nullable=True),
        sa.Column('meta_json', sa.JSON(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=datetime_default, nullable=False),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index(op.f('ix_audit_logs_id'), 'audit_logs', ['id'], unique=False)

    op.create_table(
        'holidays',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('holiday_date', sa.Date(), nullable=False),
        sa.Column('name', sa.String(255), nullable=False),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.true()),
        *_audit_columns(datetime_default),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index(op.f('ix_holidays_id'), 'holidays', ['id'], unique=False)
    op.create_index(op.f('ix_holidays_holiday_date'), 'holidays', ['holiday_date'], unique=True)

    op.create_table(
        'leave_policy_configurations',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('role', sa.String(32), nullable=False),
        sa.Column('leave_type', enum('leavetype'), nullable=False),
        sa.Column('annual_credit', sa.Numeric(5, 1), nullable=False, server_default='0'),
        sa.Column('annual_max', sa.Numeric(5, 1), nullable=False, server_default='0'),
        sa.Column('carry_forward_limit', sa.Numeric(5, 1), nullable=False, server_default='0'),
        sa.Column('max_leave_per_month', sa.Numeric(5, 1), nullable=True),
        sa.Column('anniversary_3_year_bonus', sa.Numeric(5, 1), nullable=False, server_default='0'),
        sa.Column('anniversary_5_year_bonus', sa.Numeric(5, 1), nullable=False, server_default='0'),
        sa.Column('effective_from', sa.Date(), nullable=False),
        *_audit_columns(datetime_default),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('role', 'leave_type', 'effective_from', name='uq_leave_policy_role_type_effective'),
    )
    op.create_index(op.f('ix_leave_policy_configurations_id'), 'leave_policy_configurations', ['id'], unique=False)
    op.create_index('ix_leave_policy_role_type', 'leave_policy_configurations', ['role', 'leave_type'], unique=False)

    op.create_table(
        'leave_rules',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('leave_required_min', sa.Numeric(5, 1), nullable=False),
        sa.Column('leave_required_max', sa.Numeric(5, 1), nullable=True),
        sa.Column('prior_information_days', sa.Integer(), nullable=False),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.true()),
        *_audit_columns(datetime_default),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index(op.f('ix_leave_rules_id'), 'leave_rules', ['id'], unique=False)

    op.create_table(
        'leave_requests',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('employee_id', sa.Integer(), sa.ForeignKey('employees.id'), nullable=False),
        sa.Column('leave_type', enum('leavetype'), nullable=False),
        sa.Column('start_date', sa.Date(), nullable=False),
        sa.Column('end_date', sa.Date(), nullable=False),
        sa.Column('start_day_type', enum('daytype'), nullable=False, server_default='full'),
        sa.Column('end_day_type', enum('daytype'), nullable=False, server_default='full'),
        sa.Column('reason', sa.Text(), nullable=True),
        sa.Column('urgent', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('doctor_note', sa.String(512), nullable=True),
        sa.Column('permission_start_time', sa.Time(), nullable=True),
        sa.Column('permission_end_time', sa.Time(), nullable=True),
        sa.Column('no_of_days', sa.Numeric(5, 1), nullable=False, server_default='0'),
        sa.Column('current_status', enum('leavestatus'), nullable=False, server_default='pending'),
        sa.Column('last_updated_by', sa.Integer(), sa.ForeignKey('employees.id'), nullable=True),
        sa.Column('last_updated_by_role', sa.String(32), nullable=True),
        sa.Column('approval_comment', sa.Text(), nullable=True),
        sa.Column('cancelled_at', sa.DateTime(timezone=True), nullable=True),
        *_audit_columns(datetime_default),
        sa.PrimaryKeyConstraint('id'),
        sa.CheckConstraint('start_date <= end_date', name='check_start_date_le_end_date'),
    )
    op.create_index(op.f('ix_leave_requests_id'), 'leave_requests', ['id'], unique=False)
    op.create_index(op.f('ix_leave_requests_employee_id'), 'leave_requests', ['employee_id'], unique=False)
    op.create_index('ix_leave_requests_employee_dates', 'leave_requests', ['employee_id', 'start_date', 'end_date'], unique=False)

    op.create_table(
        'leave_days',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('leave_request_id', sa.Integer(), sa.ForeignKey('leave_requests.id', ondelete='CASCADE'), nullable=False),
        sa.Column('employee_id', sa.Integer(), sa.ForeignKey('employees.id'), nullable=False),
        sa.Column('leave_date', sa.Date(), nullable=False),
        sa.Column('day_type', enum('daytype'), nullable=False),
        sa.Column('day_status', enum('daystatus'), nullable=False, server_default='pending'),
        *_audit_columns(datetime_default),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index(op.f('ix_leave_days_id'), 'leave_days', ['id'], unique=False)
    op.create_index(op.f('ix_leave_days_leave_request_id'), 'leave_days', ['leave_request_id'], unique=False)
    op.create_index('ix_leave_days_employee_date', 'leave_days', ['employee_id', 'leave_date'], unique=False)

    op.create_table(
        'leave_approvals',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('leave_request_id', sa.Integer(), sa.ForeignKey('leave_requests.id', ondelete='CASCADE'), nullable=False),
        sa.Column('action_by', sa.Integer(), sa.ForeignKey('employees.id'), nullable=False),
        sa.Column('action_by_role', sa.String(32), nullable=False),
        sa.Column('action', enum('approvalaction'), nullable=False),
        sa.Column('day_ids', sa.JSON(), nullable=True),
        sa.Column('remarks', sa.Text(), nullable=True),
        sa.Column('action_at', sa.DateTime(timezone=True), server_default=datetime_default, nullable=False),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index(op.f('ix_leave_approvals_id'), 'leave_approvals', ['id'], unique=False)
    op.create_index(op.f('ix_leave_approvals_leave_request_id'), 'leave_approvals', ['leave_request_id'], unique=False)

    op.create_table(
        'leave_balances',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('employee_id', sa.Integer(), sa.ForeignKey('employees.id'), nullable=False),
        sa.Column('casual_balance', sa.Numeric(4, 1), nullable=False, server_default='0'),
        sa.Column('sick_balance', sa.Numeric(4, 1), nullable=False, server_default='0'),
        sa.Column('lop_balance', sa.Numeric(4, 1), nullable=False, server_default='0'),
        sa.Column('last_updated', sa.DateTime(timezone=True), nullable=True),
        *_audit_columns(datetime_default),
        sa.PrimaryKeyConstraint('id'),
        sa.CheckConstraint('lop_balance >= 0 AND lop_balance <= 10', name='ck_leave_balances_lop_range'),
        sa.CheckConstraint('casual_balance >= 0', name='ck_leave_balances_casual_non_negative'),
        sa.CheckConstraint('sick_balance >= 0', name='ck_leave_balances_sick_non_negative'),
    )
    op.create_index(op.f('ix_leave_balances_id'), 'leave_balances', ['id'], unique=False)
    op.create_index(op.f('ix_leave_balances_employee_id'), 'leave_balances', ['employee_id'], unique=True)

    op.create_table(
        'balance_ledger_entries',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('employee_id', sa.Integer(), sa.ForeignKey('employees.id'), nullable=False),
        sa.Column('leave_type', enum('leavetype'), nullable=False),
        sa.Column('operation', enum('ledgeroperation'), nullable=False),
        sa.Column('delta', sa.Numeric(5, 1), nullable=False),
        sa.Column('balance_after', sa.Numeric(5, 1), nullable=False),
        sa.Column('idempotency_key', sa.String(200), nullable=False),
        sa.Column('leave_request_id', sa.Integer(), sa.ForeignKey('leave_requests.id', ondelete='SET NULL'), nullable=True),
        sa.Column('leave_day_id', sa.Integer(), sa.ForeignKey('leave_days.id', ondelete='SET NULL'), nullable=True),
        sa.Column('remarks', sa.Text(), nullable=True),
        *_audit_columns(datetime_default),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('idempotency_key', name='uq_balance_ledger_entries_idempotency_key'),
    )
    op.create_index(op.f('ix_balance_ledger_entries_id'), 'balance_ledger_entries', ['id'], unique=False)
    op.create_index(op.f('ix_balance_ledger_entries_employee_id'), 'balance_ledger_entries', ['employee_id'], unique=False)
    op.create_index(op.f('ix_balance_ledger_entries_leave_request_id'), 'balance_ledger_entries', ['leave_request_id'], unique=False)

    op.create_table(
        'module_access',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('module_id', sa.String(64), nullable=False),
        sa.Column('employee_id', sa.Integer(), sa.ForeignKey('employees.id', ondelete='CASCADE'), nullable=False),
        sa.Column('granted_by', sa.Integer(), sa.ForeignKey('employees.id'), nullable=True),
        *_audit_columns(datetime_default),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('module_id', 'employee_id', name='uq_module_access_module_employee'),
    )
    op.create_index(op.f('ix_module_access_id'), 'module_access', ['id'], unique=False)
    op.create_index(op.f('ix_module_access_module_id'), 'module_access', ['module_id'], unique=False)
    op.create_index(op.f('ix_module_access_employee_id'), 'module_access', ['employee_id'], unique=False)


def downgrade() -> None:
    for table in (
        'module_access',
        'balance_ledger_entries',
        'leave_balances',
        'leave_approvals',
        'leave_days',
        'leave_requests',
        'leave_rules',
        'leave_policy_configurations',
        'holidays',
        'audit_logs',
        'employees',
    ):
        op.drop_table(table)

    bind = op.get_bind()
    if bind.dialect.name != 'sqlite':
        for name in ENUMS:
            postgresql.ENUM(name=name).drop(bind, checkfirst=True)

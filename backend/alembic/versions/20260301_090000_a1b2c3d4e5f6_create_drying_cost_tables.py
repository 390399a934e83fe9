"""create drying runs, meter readings, recharges and cost settings

Revision ID: a1b2c3d4e5f6
Revises:
Create Date: 2026-03-01 09:00:00.000000

"""
from typing import Sequence, Union
from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision: str = 'a1b2c3d4e5f6'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table(
        'drying_runs',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('batch_number', sa.String(length=50), nullable=False),
        sa.Column('wood_type', sa.String(length=100), nullable=True),
        sa.Column('status', sa.Enum('IN_PROGRESS', 'COMPLETED', name='runstatus'), nullable=False),
        sa.Column('start_time', sa.DateTime(), nullable=False),
        sa.Column('end_time', sa.DateTime(), nullable=True),
        sa.Column('starting_meter', sa.Float(), nullable=False),
        sa.Column('hourly_rate_override', sa.Float(), nullable=True),
        sa.Column('total_consumed_kwh', sa.Float(), nullable=True),
        sa.Column('electricity_rate', sa.Float(), nullable=True),
        sa.Column('electricity_cost', sa.Float(), nullable=True),
        sa.Column('running_hours', sa.Float(), nullable=True),
        sa.Column('non_electrical_cost', sa.Float(), nullable=True),
        sa.Column('total_cost', sa.Float(), nullable=True),
        sa.Column('diagnostics', sa.JSON(), nullable=True),
        sa.Column('cost_calculated_at', sa.DateTime(), nullable=True),
        sa.Column('notes', sa.Text(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=True),
        sa.Column('updated_at', sa.DateTime(), nullable=True),
        sa.CheckConstraint('end_time IS NULL OR end_time >= start_time', name='check_run_times'),
        sa.CheckConstraint('starting_meter >= 0', name='check_starting_meter_positive'),
    )
    op.create_index(op.f('ix_drying_runs_id'), 'drying_runs', ['id'], unique=False)
    op.create_index(op.f('ix_drying_runs_batch_number'), 'drying_runs', ['batch_number'], unique=True)
    op.create_index(op.f('ix_drying_runs_status'), 'drying_runs', ['status'], unique=False)

    op.create_table(
        'meter_readings',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('drying_run_id', sa.Integer(), sa.ForeignKey('drying_runs.id'), nullable=False),
        sa.Column('reading_time', sa.DateTime(), nullable=False),
        sa.Column('meter_value', sa.Float(), nullable=False),
        sa.Column('humidity', sa.Float(), nullable=True),
        sa.Column('notes', sa.Text(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=True),
        sa.Column('updated_at', sa.DateTime(), nullable=True),
    )
    op.create_index(op.f('ix_meter_readings_id'), 'meter_readings', ['id'], unique=False)
    op.create_index(op.f('ix_meter_readings_drying_run_id'), 'meter_readings', ['drying_run_id'], unique=False)
    op.create_index(op.f('ix_meter_readings_reading_time'), 'meter_readings', ['reading_time'], unique=False)
    op.create_index('ix_meter_readings_run_time', 'meter_readings', ['drying_run_id', 'reading_time'], unique=False)

    op.create_table(
        'electricity_recharges',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('drying_run_id', sa.Integer(), sa.ForeignKey('drying_runs.id'), nullable=True),
        sa.Column('token', sa.String(length=40), nullable=False),
        sa.Column('recharge_time', sa.DateTime(), nullable=False),
        sa.Column('kwh_amount', sa.Float(), nullable=False),
        sa.Column('total_paid', sa.Float(), nullable=False),
        sa.Column('currency', sa.String(length=3), nullable=False),
        sa.Column('base_cost', sa.Float(), nullable=True),
        sa.Column('vat', sa.Float(), nullable=True),
        sa.Column('ewura_fee', sa.Float(), nullable=True),
        sa.Column('rea_fee', sa.Float(), nullable=True),
        sa.Column('debt_collected', sa.Float(), nullable=True),
        sa.Column('meter_reading_after', sa.Float(), nullable=True),
        sa.Column('source', sa.String(length=20), nullable=False),
        sa.Column('notes', sa.Text(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=True),
        sa.Column('updated_at', sa.DateTime(), nullable=True),
        sa.CheckConstraint('kwh_amount > 0', name='check_kwh_positive'),
        sa.CheckConstraint('total_paid >= 0', name='check_paid_not_negative'),
    )
    op.create_index(op.f('ix_electricity_recharges_id'), 'electricity_recharges', ['id'], unique=False)
    op.create_index(op.f('ix_electricity_recharges_drying_run_id'), 'electricity_recharges', ['drying_run_id'], unique=False)
    op.create_index(op.f('ix_electricity_recharges_token'), 'electricity_recharges', ['token'], unique=True)
    op.create_index(op.f('ix_electricity_recharges_recharge_time'), 'electricity_recharges', ['recharge_time'], unique=False)

    op.create_table(
        'cost_settings',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('key', sa.String(length=100), nullable=False),
        sa.Column('value', sa.Float(), nullable=False),
        sa.Column('updated_at', sa.DateTime(), nullable=True),
    )
    op.create_index(op.f('ix_cost_settings_id'), 'cost_settings', ['id'], unique=False)
    op.create_index(op.f('ix_cost_settings_key'), 'cost_settings', ['key'], unique=True)


def downgrade() -> None:
    op.drop_table('cost_settings')
    op.drop_table('electricity_recharges')
    op.drop_table('meter_readings')
    op.drop_table('drying_runs')
    sa.Enum(name='runstatus').drop(op.get_bind(), checkfirst=True)

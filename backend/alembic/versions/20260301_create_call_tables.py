"""
Create call control plane tables

This migration creates:
1. call_sessions - One record per call attempt
2. call_participants - Ordered participants with join/leave timing
3. project_call_quotas - Per-project call settings and usage counters

Revision ID: 20260301_create_call_tables
Revises:
Create Date: 2026-03-01
"""
from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision = '20260301_create_call_tables'
down_revision = None
branch_labels = None
depends_on = None


def upgrade():
    # ============================================
    # CREATE CALL_SESSIONS TABLE
    # ============================================
    op.create_table(
        'call_sessions',
        sa.Column('id', sa.String(length=36), primary_key=True),
        sa.Column('call_id', sa.String(length=64), nullable=False, unique=True),
        sa.Column('room_name', sa.String(length=128), nullable=True),
        sa.Column('request_id', sa.String(length=128), nullable=False),
        sa.Column('agent_id', sa.String(length=128), nullable=False),
        sa.Column('project_id', sa.String(length=128), nullable=True),
        sa.Column('initiator', sa.String(length=10), nullable=False),
        sa.Column('initiator_id', sa.String(length=128), nullable=True),
        sa.Column('call_type', sa.String(length=20), nullable=False, server_default='audio'),
        sa.Column('status', sa.String(length=20), nullable=False, server_default='pending'),
        sa.Column('ended_by', sa.String(length=50), nullable=True),
        sa.Column('recording_enabled', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('admission_state', sa.String(length=10), nullable=False, server_default='none'),
        sa.Column('created_at', sa.DateTime(), nullable=False, server_default=sa.func.now()),
        sa.Column('started_at', sa.DateTime(), nullable=True),
        sa.Column('ended_at', sa.DateTime(), nullable=True),
        sa.Column('duration_seconds', sa.Integer(), nullable=True),
        sa.Column('updated_at', sa.DateTime(), nullable=False, server_default=sa.func.now()),
        sa.CheckConstraint(
            "status IN ('pending', 'ringing', 'active', 'ended', 'missed', 'rejected', 'cancelled')",
            name='ck_call_sessions_status',
        ),
        sa.CheckConstraint(
            "call_type IN ('audio', 'video', 'screen_share')",
            name='ck_call_sessions_call_type',
        ),
    )

    op.create_index('ix_call_sessions_call_id', 'call_sessions', ['call_id'], unique=True)
    op.create_index('ix_call_sessions_room_name', 'call_sessions', ['room_name'])
    op.create_index('ix_call_sessions_request_id', 'call_sessions', ['request_id'])
    op.create_index('ix_call_sessions_agent_id', 'call_sessions', ['agent_id'])
    op.create_index('ix_call_sessions_project_id', 'call_sessions', ['project_id'])
    op.create_index('ix_call_sessions_request_status', 'call_sessions', ['request_id', 'status'])
    op.create_index('ix_call_sessions_agent_created', 'call_sessions', ['agent_id', 'created_at'])
    op.create_index('ix_call_sessions_status_created', 'call_sessions', ['status', 'created_at'])

    # ============================================
    # CREATE CALL_PARTICIPANTS TABLE
    # ============================================
    op.create_table(
        'call_participants',
        sa.Column('id', sa.String(length=36), primary_key=True),
        sa.Column('session_id', sa.String(length=36), sa.ForeignKey('call_sessions.id', ondelete='CASCADE'), nullable=False),
        sa.Column('position', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('identity', sa.String(length=160), nullable=False),
        sa.Column('display_name', sa.String(length=120), nullable=True),
        sa.Column('role', sa.String(length=10), nullable=False),
        sa.Column('joined_at', sa.DateTime(), nullable=True),
        sa.Column('left_at', sa.DateTime(), nullable=True),
        sa.Column('duration_seconds', sa.Integer(), nullable=True),
    )

    op.create_index('ix_call_participants_session_id', 'call_participants', ['session_id'])

    # ============================================
    # CREATE PROJECT_CALL_QUOTAS TABLE
    # ============================================
    op.create_table(
        'project_call_quotas',
        sa.Column('id', sa.String(length=36), primary_key=True),
        sa.Column('project_id', sa.String(length=128), nullable=False, unique=True),
        sa.Column('plan', sa.String(length=32), nullable=False, server_default='free'),
        # Settings
        sa.Column('enabled', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('audio_calls', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('video_calls', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('screen_sharing', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('call_recording', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('max_concurrent_calls', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('max_call_duration', sa.Integer(), nullable=False, server_default='1800'),
        sa.Column('monthly_call_limit', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('video_quality', sa.String(length=10), nullable=False, server_default='medium'),
        sa.Column('audio_quality', sa.String(length=10), nullable=False, server_default='medium'),
        sa.Column('show_call_button', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('require_precall_test', sa.Boolean(), nullable=False, server_default=sa.false()),
        # Usage
        sa.Column('calls_this_month', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('total_call_minutes', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('concurrent_calls_now', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('last_reset_date', sa.DateTime(), nullable=False, server_default=sa.func.now()),
        sa.Column('created_at', sa.DateTime(), nullable=False, server_default=sa.func.now()),
        sa.Column('updated_at', sa.DateTime(), nullable=False, server_default=sa.func.now()),
        sa.CheckConstraint('concurrent_calls_now >= 0', name='ck_project_call_quotas_concurrent'),
    )

    op.create_index('ix_project_call_quotas_project_id', 'project_call_quotas', ['project_id'], unique=True)
    op.create_index('ix_project_call_quotas_enabled', 'project_call_quotas', ['enabled'])


def downgrade():
    op.drop_table('call_participants')
    op.drop_table('call_sessions')
    op.drop_table('project_call_quotas')

"""Recurring tasks, completions and calendar tokens

Revision ID: 001
Revises:
Create Date: 2026-10-19 09:00:00.000000

"""
from alembic import op
import sqlalchemy as sa

# revision identifiers
revision = '001'
down_revision = None  # This is the first migration
branch_labels = None
depends_on = None


def upgrade():
    op.create_table('user',
        sa.Column('id', sa.String(), nullable=False),
        sa.Column('email', sa.String(length=255), nullable=False),
        sa.Column('name', sa.String(length=255), nullable=True),
        sa.Column('timezone', sa.String(length=64), server_default='UTC', nullable=False),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.Column('updated_at', sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_user_id', 'user', ['id'])
    op.create_index('ix_user_email', 'user', ['email'], unique=True)

    op.create_table('project',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('user_id', sa.String(), nullable=True),
        sa.Column('name', sa.String(length=200), nullable=False),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.ForeignKeyConstraint(['user_id'], ['user.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_project_user_id', 'project', ['user_id'])

    op.create_table('task',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('user_id', sa.String(), nullable=True),
        sa.Column('project_id', sa.Integer(), nullable=True),
        sa.Column('name', sa.String(length=200), nullable=False),
        sa.Column('description', sa.String(length=1000), nullable=True),
        sa.Column('priority', sa.String(length=20), server_default='medium', nullable=False),
        sa.Column('status', sa.String(length=20), server_default='not_started', nullable=False),
        sa.Column('due_date', sa.Date(), nullable=True),
        sa.Column('tags', sa.JSON(), nullable=True),
        sa.Column('completed_at', sa.DateTime(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.Column('updated_at', sa.DateTime(), nullable=False),
        sa.Column('recurrence_type', sa.String(length=32), server_default='none', nullable=False),
        sa.Column('recurrence_interval', sa.Integer(), server_default='1', nullable=False),
        sa.Column('recurrence_weekdays', sa.JSON(), nullable=True),
        sa.Column('recurrence_weekday', sa.Integer(), nullable=True),
        sa.Column('recurrence_week_of_month', sa.Integer(), nullable=True),
        sa.Column('recurrence_month_day', sa.Integer(), nullable=True),
        sa.Column('recurrence_end_date', sa.Date(), nullable=True),
        sa.Column('recurrence_last_spawned_date', sa.Date(), nullable=True),
        sa.Column('completion_based', sa.Boolean(), server_default=sa.text('false'), nullable=False),
        sa.Column('recurring_parent_id', sa.Integer(), nullable=True),
        sa.Column('habit_mode', sa.Boolean(), server_default=sa.text('false'), nullable=False),
        sa.Column('habit_streak_mode', sa.String(length=20), server_default='calendar', nullable=False),
        sa.Column('habit_flexibility_mode', sa.String(length=20), server_default='flexible', nullable=False),
        sa.Column('habit_target_count', sa.Integer(), nullable=True),
        sa.Column('habit_frequency_period', sa.String(length=20), nullable=True),
        sa.Column('habit_current_streak', sa.Integer(), server_default='0', nullable=False),
        sa.Column('habit_best_streak', sa.Integer(), server_default='0', nullable=False),
        sa.Column('habit_total_completions', sa.Integer(), server_default='0', nullable=False),
        sa.Column('habit_last_completion_at', sa.DateTime(), nullable=True),
        sa.ForeignKeyConstraint(['user_id'], ['user.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['project_id'], ['project.id'], ondelete='SET NULL'),
        sa.ForeignKeyConstraint(['recurring_parent_id'], ['task.id'], ondelete='SET NULL'),
        sa.PrimaryKeyConstraint('id'),
        # One spawned instance per template per due date
        sa.UniqueConstraint('recurring_parent_id', 'due_date', name='uq_task_recurring_parent_due'),
    )
    op.create_index('ix_task_user_id', 'task', ['user_id'])
    op.create_index('ix_task_project_id', 'task', ['project_id'])
    op.create_index('ix_task_due_date', 'task', ['due_date'])
    op.create_index('ix_task_recurring_parent_id', 'task', ['recurring_parent_id'])

    op.create_table('recurringcompletion',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('task_id', sa.Integer(), nullable=False),
        sa.Column('occurrence_date', sa.Date(), nullable=False),
        sa.Column('completed_at', sa.DateTime(), nullable=True),
        sa.Column('skipped', sa.Boolean(), server_default=sa.text('false'), nullable=False),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.Column('updated_at', sa.DateTime(), nullable=False),
        sa.ForeignKeyConstraint(['task_id'], ['task.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('task_id', 'occurrence_date', name='uq_completion_task_occurrence'),
    )
    op.create_index('ix_recurringcompletion_task_id', 'recurringcompletion', ['task_id'])
    op.create_index('ix_recurringcompletion_occurrence_date', 'recurringcompletion', ['occurrence_date'])

    op.create_table('apitoken',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('user_id', sa.String(), nullable=True),
        sa.Column('token_hash', sa.String(length=64), nullable=False),
        sa.Column('token_prefix', sa.String(length=16), nullable=False),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.Column('expires_at', sa.DateTime(), nullable=True),
        sa.Column('revoked_at', sa.DateTime(), nullable=True),
        sa.ForeignKeyConstraint(['user_id'], ['user.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_apitoken_user_id', 'apitoken', ['user_id'])
    op.create_index('ix_apitoken_token_hash', 'apitoken', ['token_hash'], unique=True)


def downgrade():
    op.drop_index('ix_apitoken_token_hash', table_name='apitoken')
    op.drop_index('ix_apitoken_user_id', table_name='apitoken')
    op.drop_table('apitoken')

    op.drop_index('ix_recurringcompletion_occurrence_date', table_name='recurringcompletion')
    op.drop_index('ix_recurringcompletion_task_id', table_name='recurringcompletion')
    op.drop_table('recurringcompletion')

    op.drop_index('ix_task_recurring_parent_id', table_name='task')
    op.drop_index('ix_task_due_date', table_name='task')
    op.drop_index('ix_task_project_id', table_name='task')
    op.drop_index('ix_task_user_id', table_name='task')
    op.drop_table('task')

    op.drop_index('ix_project_user_id', table_name='project')
    op.drop_table('project')

    op.drop_index('ix_user_email', table_name='user')
    op.drop_index('ix_user_id', table_name='user')
    op.drop_table('user')

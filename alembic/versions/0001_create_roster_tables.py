"""create roster tables

Revision ID: 0001_create_roster_tables
Revises:
Create Date: 2026-10-19 09:12:40.517203

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = '0001_create_roster_tables'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _base_columns():
    return [
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=True),
    ]


def _indexes(table: str, *columns: str):
    for column in ('id', 'created_at') + columns:
        op.create_index(f'ix_{table}_{column}', table, [column])


def upgrade() -> None:
    op.create_table(
        'users',
        *_base_columns(),
        sa.Column('name', sa.String(length=120), nullable=False),
        sa.Column('email', sa.String(length=254), nullable=False),
        sa.Column('role', sa.String(length=20), nullable=False),
        sa.Column('is_active', sa.Boolean(), nullable=False),
        sa.Column('student_code', sa.String(length=30), nullable=True),
        sa.PrimaryKeyConstraint('id'),
    )
    _indexes('users', 'role', 'student_code')
    op.create_index('ix_users_email', 'users', ['email'], unique=True)

    op.create_table(
        'batches',
        *_base_columns(),
        sa.Column('code', sa.String(length=30), nullable=False),
        sa.Column('title', sa.String(length=200), nullable=False),
        sa.PrimaryKeyConstraint('id'),
    )
    _indexes('batches')
    op.create_index('ix_batches_code', 'batches', ['code'], unique=True)

    op.create_table(
        'student_batch_memberships',
        *_base_columns(),
        sa.Column('student_id', sa.Uuid(), nullable=False),
        sa.Column('batch_id', sa.Uuid(), nullable=False),
        sa.Column('status', sa.String(length=20), nullable=False),
        sa.Column('joined_at', sa.DateTime(timezone=True), nullable=False),
        sa.ForeignKeyConstraint(['student_id'], ['users.id']),
        sa.ForeignKeyConstraint(['batch_id'], ['batches.id']),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('student_id', 'batch_id', name='uq_batch_membership_student_batch'),
    )
    _indexes('student_batch_memberships', 'student_id', 'batch_id', 'status')

    op.create_table(
        'missions',
        *_base_columns(),
        sa.Column('code', sa.String(length=30), nullable=False),
        sa.Column('title', sa.String(length=200), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('batch_id', sa.Uuid(), nullable=False),
        sa.Column('status', sa.String(length=20), nullable=False),
        sa.Column('start_date', sa.DateTime(timezone=True), nullable=True),
        sa.Column('end_date', sa.DateTime(timezone=True), nullable=True),
        sa.Column('max_students', sa.Integer(), nullable=False),
        sa.Column('total_students', sa.Integer(), nullable=False),
        sa.Column('student_ids', sa.JSON(), nullable=False),
        sa.Column('attendance_config', sa.JSON(), nullable=False),
        sa.CheckConstraint('total_students >= 0', name='ck_missions_total_students_non_negative'),
        sa.CheckConstraint('max_students >= 0', name='ck_missions_max_students_non_negative'),
        sa.ForeignKeyConstraint(['batch_id'], ['batches.id']),
        sa.PrimaryKeyConstraint('id'),
    )
    _indexes('missions', 'batch_id', 'status')
    op.create_index('ix_missions_code', 'missions', ['code'], unique=True)

    op.create_table(
        'mission_students',
        *_base_columns(),
        sa.Column('mission_id', sa.Uuid(), nullable=False),
        sa.Column('student_id', sa.Uuid(), nullable=False),
        sa.Column('batch_id', sa.Uuid(), nullable=False),
        sa.Column('status', sa.String(length=20), nullable=False),
        sa.Column('progress', sa.Integer(), nullable=False),
        sa.Column('attendance_rate', sa.Integer(), nullable=False),
        sa.Column('started_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('last_activity', sa.DateTime(timezone=True), nullable=False),
        sa.Column('completed_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('last_attendance_date', sa.Date(), nullable=True),
        sa.Column('notes', sa.Text(), nullable=True),
        sa.ForeignKeyConstraint(['mission_id'], ['missions.id']),
        sa.ForeignKeyConstraint(['student_id'], ['users.id']),
        sa.ForeignKeyConstraint(['batch_id'], ['batches.id']),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('mission_id', 'student_id', name='uq_mission_students_mission_student'),
    )
    _indexes('mission_students', 'mission_id', 'student_id', 'batch_id')
    op.create_index('ix_mission_students_mission_status', 'mission_students', ['mission_id', 'status'])

    op.create_table(
        'mission_mentors',
        *_base_columns(),
        sa.Column('mission_id', sa.Uuid(), nullable=False),
        sa.Column('mentor_id', sa.Uuid(), nullable=False),
        sa.Column('role', sa.String(length=20), nullable=False),
        sa.Column('max_students', sa.Integer(), nullable=False),
        sa.Column('current_workload', sa.Integer(), nullable=False),
        sa.Column('status', sa.String(length=20), nullable=False),
        sa.CheckConstraint('current_workload >= 0', name='ck_mission_mentors_workload_non_negative'),
        sa.ForeignKeyConstraint(['mission_id'], ['missions.id']),
        sa.ForeignKeyConstraint(['mentor_id'], ['users.id']),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('mission_id', 'mentor_id', name='uq_mission_mentors_mission_mentor'),
    )
    _indexes('mission_mentors', 'mission_id', 'mentor_id')

    op.create_table(
        'mentor_assignments',
        *_base_columns(),
        sa.Column('mission_id', sa.Uuid(), nullable=False),
        sa.Column('mission_mentor_id', sa.Uuid(), nullable=False),
        sa.Column('student_id', sa.Uuid(), nullable=False),
        sa.Column('is_primary', sa.Boolean(), nullable=False),
        sa.Column('assigned_at', sa.DateTime(timezone=True), nullable=False),
        sa.ForeignKeyConstraint(['mission_id'], ['missions.id']),
        sa.ForeignKeyConstraint(['mission_mentor_id'], ['mission_mentors.id']),
        sa.ForeignKeyConstraint(['student_id'], ['users.id']),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('mission_mentor_id', 'student_id', name='uq_mentor_assignments_mentor_student'),
    )
    _indexes('mentor_assignments', 'mission_id', 'mission_mentor_id', 'student_id')
    op.create_index('ix_mentor_assignments_mission_student', 'mentor_assignments', ['mission_id', 'student_id'])

    op.create_table(
        'mentorship_groups',
        *_base_columns(),
        sa.Column('mission_id', sa.Uuid(), nullable=False),
        sa.Column('name', sa.String(length=120), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('group_type', sa.String(length=20), nullable=False),
        sa.Column('max_students', sa.Integer(), nullable=False),
        sa.Column('current_students', sa.Integer(), nullable=False),
        sa.Column('status', sa.String(length=20), nullable=False),
        sa.CheckConstraint('current_students >= 0', name='ck_mentorship_groups_current_non_negative'),
        sa.ForeignKeyConstraint(['mission_id'], ['missions.id']),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('mission_id', 'name', name='uq_mentorship_groups_mission_name'),
    )
    _indexes('mentorship_groups', 'mission_id')
    op.create_index('ix_mentorship_groups_mission_status', 'mentorship_groups', ['mission_id', 'status'])

    op.create_table(
        'group_mentors',
        *_base_columns(),
        sa.Column('group_id', sa.Uuid(), nullable=False),
        sa.Column('mentor_id', sa.Uuid(), nullable=False),
        sa.Column('is_primary', sa.Boolean(), nullable=False),
        sa.ForeignKeyConstraint(['group_id'], ['mentorship_groups.id']),
        sa.ForeignKeyConstraint(['mentor_id'], ['users.id']),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('group_id', 'mentor_id', name='uq_group_mentors_group_mentor'),
    )
    _indexes('group_mentors', 'group_id', 'mentor_id')

    op.create_table(
        'group_students',
        *_base_columns(),
        sa.Column('group_id', sa.Uuid(), nullable=False),
        sa.Column('mission_id', sa.Uuid(), nullable=False),
        sa.Column('student_id', sa.Uuid(), nullable=False),
        sa.Column('joined_at', sa.DateTime(timezone=True), nullable=False),
        sa.ForeignKeyConstraint(['group_id'], ['mentorship_groups.id']),
        sa.ForeignKeyConstraint(['mission_id'], ['missions.id']),
        sa.ForeignKeyConstraint(['student_id'], ['users.id']),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('group_id', 'student_id', name='uq_group_students_group_student'),
    )
    _indexes('group_students', 'group_id', 'mission_id', 'student_id')
    op.create_index('ix_group_students_mission_student', 'group_students', ['mission_id', 'student_id'])

    op.create_table(
        'attendance_forms',
        *_base_columns(),
        sa.Column('mission_id', sa.Uuid(), nullable=False),
        sa.Column('title', sa.String(length=200), nullable=False),
        sa.Column('active', sa.Boolean(), nullable=False),
        sa.Column('version', sa.Integer(), nullable=False),
        sa.Column('questions', sa.JSON(), nullable=False),
        sa.Column('created_by', sa.Uuid(), nullable=True),
        sa.Column('updated_by', sa.Uuid(), nullable=True),
        sa.ForeignKeyConstraint(['mission_id'], ['missions.id']),
        sa.PrimaryKeyConstraint('id'),
    )
    _indexes('attendance_forms', 'mission_id')
    op.create_index('ix_attendance_forms_mission_active', 'attendance_forms', ['mission_id', 'active'])

    op.create_table(
        'attendance_logs',
        *_base_columns(),
        sa.Column('mission_id', sa.Uuid(), nullable=False),
        sa.Column('student_id', sa.Uuid(), nullable=False),
        sa.Column('group_id', sa.Uuid(), nullable=True),
        sa.Column('date', sa.Date(), nullable=False),
        sa.Column('status', sa.String(length=20), nullable=False),
        sa.Column('source', sa.String(length=20), nullable=False),
        sa.Column('notes', sa.Text(), nullable=True),
        sa.Column('answers', sa.JSON(), nullable=True),
        sa.Column('marked_by', sa.Uuid(), nullable=True),
        sa.ForeignKeyConstraint(['mission_id'], ['missions.id']),
        sa.ForeignKeyConstraint(['student_id'], ['users.id']),
        sa.ForeignKeyConstraint(['group_id'], ['mentorship_groups.id']),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('mission_id', 'student_id', 'date', name='uq_attendance_logs_mission_student_date'),
    )
    _indexes('attendance_logs', 'mission_id', 'student_id', 'group_id')
    op.create_index('ix_attendance_logs_mission_date', 'attendance_logs', ['mission_id', 'date'])


def downgrade() -> None:
    # Indexes go with their tables
    for table in (
        'attendance_logs',
        'attendance_forms',
        'group_students',
        'group_mentors',
        'mentorship_groups',
        'mentor_assignments',
        'mission_mentors',
        'mission_students',
        'missions',
        'student_batch_memberships',
        'batches',
        'users',
    ):
        op.drop_table(table)

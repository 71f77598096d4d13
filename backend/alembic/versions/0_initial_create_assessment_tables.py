"""Initial migration - create assessment tables

Revision ID: 0_initial
Revises:
Create Date: 2026-10-19 00:00:00.000000
"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql


# revision identifiers, used by Alembic.
revision: str = '0_initial'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

_ENUMS = {
    'question_kind_enum': ('single', 'multiple'),
    'attempt_status_enum': ('in_progress', 'submitted', 'expired'),
    'result_enum': ('pass', 'fail'),
    'access_request_status_enum': ('pending', 'approved', 'rejected'),
}


def _enum(name: str) -> postgresql.ENUM:
    return postgresql.ENUM(*_ENUMS[name], name=name, create_type=False)


def upgrade() -> None:
    # ── Create enums ──────────────────────────────────────────────────
    for name, values in _ENUMS.items():
        labels = ", ".join(f"'{v}'" for v in values)
        op.execute(f"""
            DO $$ BEGIN
                CREATE TYPE {name} AS ENUM ({labels});
            EXCEPTION WHEN duplicate_object THEN null;
            END $$;
        """)

    # ── subjects table ────────────────────────────────────────────────
    op.create_table(
        'subjects',
        sa.Column('id', sa.UUID(), nullable=False),
        sa.Column('title', sa.String(200), nullable=False),
        sa.Column('requires_approval', sa.Boolean(), nullable=False, server_default='false'),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint('id'),
    )

    # ── quizzes table ─────────────────────────────────────────────────
    op.create_table(
        'quizzes',
        sa.Column('id', sa.UUID(), nullable=False),
        sa.Column('title', sa.String(300), nullable=False),
        sa.Column('subject_id', sa.UUID(), nullable=True),
        sa.Column('duration_minutes', sa.Integer(), nullable=False),
        sa.Column('max_attempts', sa.Integer(), nullable=True),
        sa.Column('pass_threshold', sa.Float(), nullable=True),
        sa.Column('available_from', sa.DateTime(timezone=True), nullable=True),
        sa.Column('available_to', sa.DateTime(timezone=True), nullable=True),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default='true'),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.ForeignKeyConstraint(['subject_id'], ['subjects.id']),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_quizzes_subject_id', 'quizzes', ['subject_id'])

    # ── questions table ───────────────────────────────────────────────
    op.create_table(
        'questions',
        sa.Column('id', sa.UUID(), nullable=False),
        sa.Column('quiz_id', sa.UUID(), nullable=False),
        sa.Column('position', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('text', sa.Text(), nullable=False, server_default=''),
        sa.Column('kind', _enum('question_kind_enum'), nullable=False, server_default='single'),
        sa.Column('options', sa.JSON(), nullable=True),
        sa.Column('correct_options', sa.JSON(), nullable=False),
        sa.Column('marks', sa.Float(), nullable=False, server_default='1.0'),
        sa.Column('negative_marks', sa.Float(), nullable=False, server_default='0.0'),
        sa.ForeignKeyConstraint(['quiz_id'], ['quizzes.id']),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_questions_quiz_id', 'questions', ['quiz_id'])

    # ── attempts table ────────────────────────────────────────────────
    op.create_table(
        'attempts',
        sa.Column('id', sa.UUID(), nullable=False),
        sa.Column('quiz_id', sa.UUID(), nullable=False),
        sa.Column('user_id', sa.UUID(), nullable=False),
        sa.Column('status', _enum('attempt_status_enum'), nullable=False, server_default='in_progress'),
        sa.Column('started_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('expires_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('submitted_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('marks_obtained', sa.Float(), nullable=True),
        sa.Column('total_marks', sa.Float(), nullable=True),
        sa.Column('correct_count', sa.Integer(), nullable=True),
        sa.Column('incorrect_count', sa.Integer(), nullable=True),
        sa.Column('unattempted_count', sa.Integer(), nullable=True),
        sa.Column('percentage', sa.Float(), nullable=True),
        sa.Column('result', _enum('result_enum'), nullable=True),
        sa.ForeignKeyConstraint(['quiz_id'], ['quizzes.id']),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_attempts_quiz_id', 'attempts', ['quiz_id'])
    op.create_index('ix_attempts_user_id', 'attempts', ['user_id'])
    op.create_index('ix_attempts_expires_at', 'attempts', ['expires_at'])
    op.create_index(
        'uq_attempt_user_quiz_in_progress',
        'attempts',
        ['user_id', 'quiz_id'],
        unique=True,
        postgresql_where=sa.text("status = 'in_progress'"),
    )

    # ── attempt_answers table ─────────────────────────────────────────
    op.create_table(
        'attempt_answers',
        sa.Column('id', sa.UUID(), nullable=False),
        sa.Column('attempt_id', sa.UUID(), nullable=False),
        sa.Column('question_id', sa.UUID(), nullable=False),
        sa.Column('selection', sa.JSON(), nullable=False),
        sa.Column('answered_at', sa.DateTime(timezone=True), nullable=False),
        sa.ForeignKeyConstraint(['attempt_id'], ['attempts.id']),
        sa.ForeignKeyConstraint(['question_id'], ['questions.id']),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('attempt_id', 'question_id', name='uq_attempt_answer_question'),
    )

    # ── subject_access_requests table ─────────────────────────────────
    op.create_table(
        'subject_access_requests',
        sa.Column('id', sa.UUID(), nullable=False),
        sa.Column('user_id', sa.UUID(), nullable=False),
        sa.Column('subject_id', sa.UUID(), nullable=False),
        sa.Column('status', _enum('access_request_status_enum'), nullable=False, server_default='pending'),
        sa.Column('email', sa.String(255), nullable=False),
        sa.Column('phone', sa.String(50), nullable=True),
        sa.Column('notes', sa.String(500), nullable=True),
        sa.Column('decided_by', sa.UUID(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('decided_at', sa.DateTime(timezone=True), nullable=True),
        sa.ForeignKeyConstraint(['subject_id'], ['subjects.id']),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_subject_access_requests_user_id', 'subject_access_requests', ['user_id'])
    op.create_index('ix_subject_access_requests_subject_id', 'subject_access_requests', ['subject_id'])
    op.create_index('ix_subject_access_requests_status', 'subject_access_requests', ['status'])
    op.create_index(
        'uq_access_request_user_subject_pending',
        'subject_access_requests',
        ['user_id', 'subject_id'],
        unique=True,
        postgresql_where=sa.text("status = 'pending'"),
    )


def downgrade() -> None:
    # Drop tables in reverse order of dependencies
    op.drop_table('subject_access_requests')
    op.drop_table('attempt_answers')
    op.drop_table('attempts')
    op.drop_table('questions')
    op.drop_table('quizzes')
    op.drop_table('subjects')
    for name in _ENUMS:
        op.execute(f"DROP TYPE IF EXISTS {name}")

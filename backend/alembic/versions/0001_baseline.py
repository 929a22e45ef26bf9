"""Baseline: subscriptions, sessions, results, webhook events, analytics

Revision ID: 0001_baseline
Revises:
Create Date: 2026-10-19

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = '0001_baseline'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _timestamps() -> list:
    return [
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
    ]


def upgrade() -> None:
    """Create all Tafawoq tables."""

    op.create_table(
        'user_subscriptions',
        sa.Column('id', sa.Uuid(), primary_key=True),
        sa.Column('user_id', sa.Uuid(), nullable=False),

        # Stripe IDs
        sa.Column('stripe_customer_id', sa.String(255)),
        sa.Column('stripe_subscription_id', sa.String(255)),

        # Subscription details
        sa.Column('tier', sa.String(20), server_default='free', nullable=False),
        sa.Column('status', sa.String(20), server_default='active', nullable=False),

        # Billing dates
        sa.Column('trial_end_at', sa.DateTime(timezone=True)),
        sa.Column('current_period_start', sa.DateTime(timezone=True)),
        sa.Column('current_period_end', sa.DateTime(timezone=True)),
        sa.Column('canceled_at', sa.DateTime(timezone=True)),
        sa.Column('cancel_at_period_end', sa.Boolean, server_default='false', nullable=False),

        # Freshness watermark for lifecycle events
        sa.Column('last_event_at', sa.DateTime(timezone=True)),
        *_timestamps(),
        sa.CheckConstraint(
            "tier <> 'free' OR stripe_subscription_id IS NULL",
            name='ck_user_subscriptions_free_has_no_subscription',
        ),
        sa.CheckConstraint(
            "tier <> 'premium' OR (stripe_customer_id IS NOT NULL AND stripe_subscription_id IS NOT NULL)",
            name='ck_user_subscriptions_premium_has_ids',
        ),
    )
    op.create_index('ix_user_subscriptions_user_id', 'user_subscriptions', ['user_id'], unique=True)
    op.create_index(
        'ix_user_subscriptions_stripe_customer_id',
        'user_subscriptions',
        ['stripe_customer_id'],
        unique=True,
    )
    op.create_index(
        'ix_user_subscriptions_stripe_subscription_id',
        'user_subscriptions',
        ['stripe_subscription_id'],
        unique=True,
    )

    op.create_table(
        'content_sessions',
        sa.Column('id', sa.Uuid(), primary_key=True),
        sa.Column('user_id', sa.Uuid(), nullable=False),
        sa.Column('kind', sa.String(20), nullable=False),
        sa.Column('status', sa.String(20), server_default='in_progress', nullable=False),
        sa.Column('started_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('completed_at', sa.DateTime(timezone=True)),
        sa.Column('question_count', sa.Integer, nullable=False),
        sa.Column('questions_answered', sa.Integer, server_default='0', nullable=False),
        sa.Column('time_spent_seconds', sa.Integer, server_default='0', nullable=False),
        sa.Column('section', sa.String(20)),
        sa.Column('categories', sa.JSON, nullable=False),
        sa.Column('difficulty', sa.String(20)),
        sa.Column('academic_track', sa.String(20)),
        sa.Column('questions', sa.JSON, nullable=False),
        sa.Column('generation_metadata', sa.JSON, nullable=False),
        *_timestamps(),
        sa.CheckConstraint('questions_answered <= question_count', name='ck_content_sessions_answered'),
        sa.CheckConstraint(
            'completed_at IS NULL OR completed_at >= started_at',
            name='ck_content_sessions_completed_after_start',
        ),
    )
    op.create_index('ix_content_sessions_user_id', 'content_sessions', ['user_id'])
    # Weekly exam quota lookups
    op.create_index(
        'ix_content_sessions_quota',
        'content_sessions',
        ['user_id', 'kind', 'status', 'started_at'],
    )

    op.create_table(
        'session_results',
        sa.Column('id', sa.Uuid(), primary_key=True),
        sa.Column(
            'session_id',
            sa.Uuid(),
            sa.ForeignKey('content_sessions.id', ondelete='CASCADE'),
            nullable=False,
        ),
        sa.Column('user_id', sa.Uuid(), nullable=False),
        sa.Column('kind', sa.String(20), nullable=False),
        sa.Column('section_scores', sa.JSON, nullable=False),
        sa.Column('overall_score', sa.Float, nullable=False),
        sa.Column('category_breakdown', sa.JSON, nullable=False),
        sa.Column('strengths', sa.JSON, nullable=False),
        sa.Column('weaknesses', sa.JSON, nullable=False),
        sa.Column('improvement_advice', sa.Text, server_default='', nullable=False),
        sa.Column('answer_fingerprint', sa.String(64), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.CheckConstraint('overall_score >= 0 AND overall_score <= 100', name='ck_session_results_score_range'),
    )
    op.create_index('ix_session_results_session_id', 'session_results', ['session_id'], unique=True)
    op.create_index('ix_session_results_user_id', 'session_results', ['user_id'])

    op.create_table(
        'processed_webhook_events',
        sa.Column('event_id', sa.String(255), primary_key=True),
        sa.Column('event_type', sa.String(100), nullable=False),
        sa.Column(
            'processed_at',
            sa.DateTime(timezone=True),
            server_default=sa.text('now()'),
            nullable=False,
        ),
    )
    # Index for cleanup queries (delete events older than X days)
    op.create_index(
        'ix_processed_webhook_events_processed_at',
        'processed_webhook_events',
        ['processed_at'],
    )

    op.create_table(
        'user_analytics',
        sa.Column('id', sa.Uuid(), primary_key=True),
        sa.Column('user_id', sa.Uuid(), nullable=False),
        sa.Column('last_exam_verbal_score', sa.Float),
        sa.Column('last_exam_quantitative_score', sa.Float),
        sa.Column('last_exam_overall_average', sa.Float),
        sa.Column('total_exams_completed', sa.Integer, server_default='0', nullable=False),
        sa.Column('total_practices_completed', sa.Integer, server_default='0', nullable=False),
        sa.Column('total_practice_hours', sa.Float, server_default='0', nullable=False),
        sa.Column('strongest_category', sa.String(50)),
        sa.Column('weakest_category', sa.String(50)),
        sa.Column('last_activity_at', sa.DateTime(timezone=True)),
        *_timestamps(),
    )
    op.create_index('ix_user_analytics_user_id', 'user_analytics', ['user_id'], unique=True)

    # Enable RLS; the backend connects with the service role
    for table in ('user_subscriptions', 'content_sessions', 'session_results', 'user_analytics'):
        op.execute(f'ALTER TABLE {table} ENABLE ROW LEVEL SECURITY')
        op.execute(f"""
            CREATE POLICY "Users can view own rows"
            ON {table} FOR SELECT
            TO authenticated
            USING (user_id = auth.uid())
        """)
        op.execute(f"""
            CREATE POLICY "Service role manages rows"
            ON {table} FOR ALL
            TO service_role
            USING (true)
            WITH CHECK (true)
        """)


def downgrade() -> None:
    """Drop all Tafawoq tables."""
    for table in ('user_subscriptions', 'content_sessions', 'session_results', 'user_analytics'):
        op.execute(f'DROP POLICY IF EXISTS "Users can view own rows" ON {table}')
        op.execute(f'DROP POLICY IF EXISTS "Service role manages rows" ON {table}')

    op.drop_table('user_analytics')
    op.drop_index('ix_processed_webhook_events_processed_at', table_name='processed_webhook_events')
    op.drop_table('processed_webhook_events')
    op.drop_table('session_results')
    op.drop_table('content_sessions')
    op.drop_table('user_subscriptions')

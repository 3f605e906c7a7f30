"""marketplace_baseline

Revision ID: a3c91f0d2b57
Revises: 
Create Date: 2026-10-19 09:12:44.518203

Production-safe migration: only creates tables that do not exist yet.
"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy import inspect


# revision identifiers, used by Alembic.
revision: str = 'a3c91f0d2b57'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

user_role = sa.Enum('USER', 'ADMIN', 'EDITOR', 'BUSINESS', 'PROFESSIONAL', name='userrole')
user_status = sa.Enum('PENDING', 'APPROVED', 'INACTIVE', name='userstatus')
listing_status = sa.Enum('PENDING', 'APPROVED', 'REJECTED', name='listingstatus')
job_status = sa.Enum('PENDING', 'APPROVED', 'REJECTED', 'CLOSED', name='jobstatus')
application_status = sa.Enum('PENDING', 'REVIEWING', 'ACCEPTED', 'REJECTED', name='applicationstatus')
post_status = sa.Enum('DRAFT', 'PUBLISHED', name='poststatus')
plan_type = sa.Enum('BUSINESS', 'PROFESSIONAL', 'JOB', name='plantype')
subscription_status = sa.Enum('PENDING_PAYMENT', 'ACTIVE', 'CANCELED', name='subscriptionstatus')
payment_status = sa.Enum('PENDING', 'PAID', 'FAILED', 'REFUNDED', name='paymentstatus')
payment_method = sa.Enum('CREDIT_CARD', 'PIX', 'BOLETO', name='paymentmethod')
notification_status = sa.Enum('PENDING', 'SENT', 'FAILED', name='notificationstatus')

NOW = sa.text('(CURRENT_TIMESTAMP)')
ACTIVE_ONLY = sa.text("status = 'ACTIVE'")


def table_exists(table_name: str) -> bool:
    """Check if a table exists in the database."""
    bind = op.get_bind()
    inspector = inspect(bind)
    return table_name in inspector.get_table_names()


def _timestamps():
    return [
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=NOW, nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=NOW, nullable=False),
    ]


def upgrade() -> None:
    if not table_exists('users'):
        op.create_table('users',
            sa.Column('id', sa.Integer(), nullable=False),
            sa.Column('external_id', sa.String(), nullable=True),
            sa.Column('name', sa.String(), nullable=False),
            sa.Column('email', sa.String(), nullable=False),
            sa.Column('role', user_role, nullable=False),
            sa.Column('status', user_status, nullable=False),
            sa.Column('created_at', sa.DateTime(timezone=True), server_default=NOW, nullable=True),
            sa.Column('updated_at', sa.DateTime(timezone=True), server_default=NOW, nullable=True),
            sa.PrimaryKeyConstraint('id')
        )
        op.create_index(op.f('ix_users_id'), 'users', ['id'], unique=False)
        op.create_index(op.f('ix_users_email'), 'users', ['email'], unique=True)
        op.create_index(op.f('ix_users_external_id'), 'users', ['external_id'], unique=True)

    if not table_exists('categories'):
        op.create_table('categories',
            sa.Column('id', sa.Integer(), nullable=False),
            sa.Column('name', sa.String(), nullable=False),
            sa.Column('slug', sa.String(), nullable=False),
            sa.Column('description', sa.Text(), nullable=True),
            sa.Column('created_at', sa.DateTime(timezone=True), server_default=NOW, nullable=True),
            sa.PrimaryKeyConstraint('id'),
            sa.UniqueConstraint('name')
        )
        op.create_index(op.f('ix_categories_id'), 'categories', ['id'], unique=False)
        op.create_index(op.f('ix_categories_slug'), 'categories', ['slug'], unique=True)

    if not table_exists('plans'):
        op.create_table('plans',
            sa.Column('id', sa.Integer(), nullable=False),
            sa.Column('name', sa.String(), nullable=False),
            sa.Column('description', sa.Text(), nullable=False),
            sa.Column('price', sa.Numeric(10, 2), nullable=False),
            sa.Column('duration', sa.Integer(), nullable=False),
            sa.Column('type', plan_type, nullable=False),
            sa.Column('features', sa.JSON(), nullable=False),
            sa.Column('active', sa.Boolean(), nullable=False),
            sa.Column('created_at', sa.DateTime(timezone=True), server_default=NOW, nullable=True),
            sa.Column('updated_at', sa.DateTime(timezone=True), server_default=NOW, nullable=True),
            sa.PrimaryKeyConstraint('id')
        )
        op.create_index(op.f('ix_plans_id'), 'plans', ['id'], unique=False)
        op.create_index(op.f('ix_plans_type'), 'plans', ['type'], unique=False)

    if not table_exists('businesses'):
        op.create_table('businesses',
            sa.Column('id', sa.Integer(), nullable=False),
            sa.Column('user_id', sa.Integer(), nullable=False),
            sa.Column('category_id', sa.Integer(), nullable=True),
            sa.Column('name', sa.String(), nullable=False),
            sa.Column('description', sa.Text(), nullable=False),
            sa.Column('phone', sa.String(), nullable=True),
            sa.Column('email', sa.String(), nullable=True),
            sa.Column('website', sa.String(), nullable=True),
            sa.Column('address', sa.String(), nullable=True),
            sa.Column('city', sa.String(), nullable=True),
            sa.Column('state', sa.String(length=2), nullable=True),
            sa.Column('photos', sa.JSON(), nullable=False),
            sa.Column('status', listing_status, nullable=False),
            sa.Column('featured', sa.Boolean(), nullable=False),
            *_timestamps(),
            sa.ForeignKeyConstraint(['user_id'], ['users.id'], ),
            sa.ForeignKeyConstraint(['category_id'], ['categories.id'], ),
            sa.PrimaryKeyConstraint('id')
        )
        op.create_index('idx_business_status_created', 'businesses', ['status', 'created_at'], unique=False)
        for column in ('id', 'user_id', 'category_id', 'name', 'city', 'state', 'status', 'created_at'):
            op.create_index(op.f(f'ix_businesses_{column}'), 'businesses', [column], unique=False)

    if not table_exists('professionals'):
        op.create_table('professionals',
            sa.Column('id', sa.Integer(), nullable=False),
            sa.Column('user_id', sa.Integer(), nullable=False),
            sa.Column('category_id', sa.Integer(), nullable=True),
            sa.Column('name', sa.String(), nullable=False),
            sa.Column('occupation', sa.String(), nullable=False),
            sa.Column('bio', sa.Text(), nullable=False),
            sa.Column('phone', sa.String(), nullable=True),
            sa.Column('email', sa.String(), nullable=True),
            sa.Column('city', sa.String(), nullable=True),
            sa.Column('state', sa.String(length=2), nullable=True),
            sa.Column('portfolio', sa.JSON(), nullable=False),
            sa.Column('status', listing_status, nullable=False),
            sa.Column('featured', sa.Boolean(), nullable=False),
            *_timestamps(),
            sa.ForeignKeyConstraint(['user_id'], ['users.id'], ),
            sa.ForeignKeyConstraint(['category_id'], ['categories.id'], ),
            sa.PrimaryKeyConstraint('id')
        )
        for column in ('id', 'user_id', 'category_id', 'name', 'city', 'state', 'status', 'created_at'):
            op.create_index(op.f(f'ix_professionals_{column}'), 'professionals', [column], unique=False)

    if not table_exists('jobs'):
        op.create_table('jobs',
            sa.Column('id', sa.Integer(), nullable=False),
            sa.Column('business_id', sa.Integer(), nullable=False),
            sa.Column('title', sa.String(), nullable=False),
            sa.Column('description', sa.Text(), nullable=False),
            sa.Column('requirements', sa.Text(), nullable=True),
            sa.Column('location', sa.String(), nullable=True),
            sa.Column('job_type', sa.String(), nullable=True),
            sa.Column('salary', sa.String(), nullable=True),
            sa.Column('status', job_status, nullable=False),
            *_timestamps(),
            sa.ForeignKeyConstraint(['business_id'], ['businesses.id'], ondelete='CASCADE'),
            sa.PrimaryKeyConstraint('id')
        )
        for column in ('id', 'business_id', 'title', 'location', 'status', 'created_at'):
            op.create_index(op.f(f'ix_jobs_{column}'), 'jobs', [column], unique=False)

    if not table_exists('applications'):
        op.create_table('applications',
            sa.Column('id', sa.Integer(), nullable=False),
            sa.Column('job_id', sa.Integer(), nullable=False),
            sa.Column('user_id', sa.Integer(), nullable=False),
            sa.Column('cover_letter', sa.Text(), nullable=True),
            sa.Column('resume', sa.String(), nullable=True),
            sa.Column('status', application_status, nullable=False),
            *_timestamps(),
            sa.ForeignKeyConstraint(['job_id'], ['jobs.id'], ondelete='CASCADE'),
            sa.ForeignKeyConstraint(['user_id'], ['users.id'], ),
            sa.PrimaryKeyConstraint('id'),
            sa.UniqueConstraint('job_id', 'user_id', name='uq_application_job_user')
        )
        op.create_index(op.f('ix_applications_job_id'), 'applications', ['job_id'], unique=False)
        op.create_index(op.f('ix_applications_user_id'), 'applications', ['user_id'], unique=False)

    if not table_exists('subscriptions'):
        op.create_table('subscriptions',
            sa.Column('id', sa.Integer(), nullable=False),
            sa.Column('user_id', sa.Integer(), nullable=False),
            sa.Column('plan_id', sa.Integer(), nullable=False),
            sa.Column('business_id', sa.Integer(), nullable=True),
            sa.Column('professional_id', sa.Integer(), nullable=True),
            sa.Column('status', subscription_status, nullable=False),
            sa.Column('start_date', sa.DateTime(timezone=True), nullable=False),
            sa.Column('end_date', sa.DateTime(timezone=True), nullable=False),
            sa.Column('auto_renew', sa.Boolean(), nullable=False),
            *_timestamps(),
            sa.ForeignKeyConstraint(['user_id'], ['users.id'], ),
            sa.ForeignKeyConstraint(['plan_id'], ['plans.id'], ),
            sa.ForeignKeyConstraint(['business_id'], ['businesses.id'], ondelete='SET NULL'),
            sa.ForeignKeyConstraint(['professional_id'], ['professionals.id'], ondelete='SET NULL'),
            sa.PrimaryKeyConstraint('id')
        )
        for column in ('id', 'user_id', 'plan_id', 'business_id', 'professional_id', 'status', 'end_date'):
            op.create_index(op.f(f'ix_subscriptions_{column}'), 'subscriptions', [column], unique=False)
        op.create_index('idx_subscription_status_end', 'subscriptions', ['status', 'end_date'], unique=False)
        # At most one ACTIVE subscription per business / professional
        op.create_index('uq_active_subscription_business', 'subscriptions', ['business_id'], unique=True,
                        postgresql_where=ACTIVE_ONLY, sqlite_where=ACTIVE_ONLY)
        op.create_index('uq_active_subscription_professional', 'subscriptions', ['professional_id'], unique=True,
                        postgresql_where=ACTIVE_ONLY, sqlite_where=ACTIVE_ONLY)

    if not table_exists('payments'):
        op.create_table('payments',
            sa.Column('id', sa.Integer(), nullable=False),
            sa.Column('subscription_id', sa.Integer(), nullable=False),
            sa.Column('amount', sa.Numeric(10, 2), nullable=False),
            sa.Column('status', payment_status, nullable=False),
            sa.Column('payment_method', payment_method, nullable=False),
            sa.Column('payment_intent_id', sa.String(), nullable=True),
            sa.Column('external_reference', sa.String(), nullable=True),
            sa.Column('paid_at', sa.DateTime(timezone=True), nullable=True),
            *_timestamps(),
            sa.ForeignKeyConstraint(['subscription_id'], ['subscriptions.id'], ondelete='CASCADE'),
            sa.PrimaryKeyConstraint('id')
        )
        for column in ('id', 'subscription_id', 'status', 'payment_intent_id', 'external_reference', 'created_at'):
            op.create_index(op.f(f'ix_payments_{column}'), 'payments', [column], unique=False)

    if not table_exists('invoices'):
        op.create_table('invoices',
            sa.Column('id', sa.Integer(), nullable=False),
            sa.Column('payment_id', sa.Integer(), nullable=False),
            sa.Column('number', sa.String(), nullable=False),
            sa.Column('created_at', sa.DateTime(timezone=True), server_default=NOW, nullable=False),
            sa.ForeignKeyConstraint(['payment_id'], ['payments.id'], ondelete='CASCADE'),
            sa.PrimaryKeyConstraint('id'),
            sa.UniqueConstraint('payment_id'),
            sa.UniqueConstraint('number')
        )
        op.create_index(op.f('ix_invoices_id'), 'invoices', ['id'], unique=False)

    if not table_exists('cancellation_reasons'):
        op.create_table('cancellation_reasons',
            sa.Column('id', sa.Integer(), nullable=False),
            sa.Column('subscription_id', sa.Integer(), nullable=False),
            sa.Column('user_id', sa.Integer(), nullable=False),
            sa.Column('reason', sa.Text(), nullable=False),
            sa.Column('created_at', sa.DateTime(timezone=True), server_default=NOW, nullable=False),
            sa.ForeignKeyConstraint(['subscription_id'], ['subscriptions.id'], ondelete='CASCADE'),
            sa.ForeignKeyConstraint(['user_id'], ['users.id'], ),
            sa.PrimaryKeyConstraint('id')
        )
        op.create_index(op.f('ix_cancellation_reasons_id'), 'cancellation_reasons', ['id'], unique=False)
        op.create_index(op.f('ix_cancellation_reasons_subscription_id'), 'cancellation_reasons',
                        ['subscription_id'], unique=False)

    if not table_exists('processed_webhook_events'):
        op.create_table('processed_webhook_events',
            sa.Column('id', sa.Integer(), nullable=False),
            sa.Column('event_id', sa.String(), nullable=False),
            sa.Column('source', sa.String(), nullable=False),
            sa.Column('processed_at', sa.DateTime(timezone=True), server_default=NOW, nullable=False),
            sa.PrimaryKeyConstraint('id')
        )
        op.create_index(op.f('ix_processed_webhook_events_id'), 'processed_webhook_events', ['id'], unique=False)
        op.create_index(op.f('ix_processed_webhook_events_event_id'), 'processed_webhook_events',
                        ['event_id'], unique=True)

    if not table_exists('notifications'):
        op.create_table('notifications',
            sa.Column('id', sa.Integer(), nullable=False),
            sa.Column('template', sa.String(), nullable=False),
            sa.Column('recipient', sa.String(), nullable=False),
            sa.Column('context', sa.JSON(), nullable=False),
            sa.Column('status', notification_status, nullable=False),
            sa.Column('attempts', sa.Integer(), nullable=False),
            sa.Column('last_error', sa.Text(), nullable=True),
            sa.Column('created_at', sa.DateTime(timezone=True), server_default=NOW, nullable=False),
            sa.Column('sent_at', sa.DateTime(timezone=True), nullable=True),
            sa.PrimaryKeyConstraint('id')
        )
        op.create_index(op.f('ix_notifications_id'), 'notifications', ['id'], unique=False)
        op.create_index('idx_notification_status_created', 'notifications', ['status', 'created_at'], unique=False)

    if not table_exists('blog_posts'):
        op.create_table('blog_posts',
            sa.Column('id', sa.Integer(), nullable=False),
            sa.Column('author_id', sa.Integer(), nullable=False),
            sa.Column('category_id', sa.Integer(), nullable=True),
            sa.Column('title', sa.String(), nullable=False),
            sa.Column('slug', sa.String(), nullable=False),
            sa.Column('content', sa.Text(), nullable=False),
            sa.Column('excerpt', sa.String(), nullable=True),
            sa.Column('image', sa.String(), nullable=True),
            sa.Column('status', post_status, nullable=False),
            sa.Column('published_at', sa.DateTime(timezone=True), nullable=True),
            *_timestamps(),
            sa.ForeignKeyConstraint(['author_id'], ['users.id'], ),
            sa.ForeignKeyConstraint(['category_id'], ['categories.id'], ),
            sa.PrimaryKeyConstraint('id')
        )
        op.create_index(op.f('ix_blog_posts_slug'), 'blog_posts', ['slug'], unique=True)
        for column in ('id', 'author_id', 'category_id', 'status', 'created_at'):
            op.create_index(op.f(f'ix_blog_posts_{column}'), 'blog_posts', [column], unique=False)

    if not table_exists('comments'):
        op.create_table('comments',
            sa.Column('id', sa.Integer(), nullable=False),
            sa.Column('post_id', sa.Integer(), nullable=False),
            sa.Column('user_id', sa.Integer(), nullable=False),
            sa.Column('content', sa.Text(), nullable=False),
            sa.Column('created_at', sa.DateTime(timezone=True), server_default=NOW, nullable=False),
            sa.ForeignKeyConstraint(['post_id'], ['blog_posts.id'], ondelete='CASCADE'),
            sa.ForeignKeyConstraint(['user_id'], ['users.id'], ),
            sa.PrimaryKeyConstraint('id')
        )
        op.create_index(op.f('ix_comments_id'), 'comments', ['id'], unique=False)
        op.create_index(op.f('ix_comments_post_id'), 'comments', ['post_id'], unique=False)

    if not table_exists('reviews'):
        op.create_table('reviews',
            sa.Column('id', sa.Integer(), nullable=False),
            sa.Column('user_id', sa.Integer(), nullable=False),
            sa.Column('business_id', sa.Integer(), nullable=True),
            sa.Column('professional_id', sa.Integer(), nullable=True),
            sa.Column('rating', sa.Integer(), nullable=False),
            sa.Column('comment', sa.Text(), nullable=True),
            sa.Column('status', listing_status, nullable=False),
            *_timestamps(),
            sa.ForeignKeyConstraint(['user_id'], ['users.id'], ),
            sa.ForeignKeyConstraint(['business_id'], ['businesses.id'], ondelete='CASCADE'),
            sa.ForeignKeyConstraint(['professional_id'], ['professionals.id'], ondelete='CASCADE'),
            sa.PrimaryKeyConstraint('id'),
            sa.UniqueConstraint('user_id', 'business_id', name='uq_review_user_business'),
            sa.UniqueConstraint('user_id', 'professional_id', name='uq_review_user_professional')
        )
        for column in ('id', 'user_id', 'business_id', 'professional_id', 'status'):
            op.create_index(op.f(f'ix_reviews_{column}'), 'reviews', [column], unique=False)


def downgrade() -> None:
    for table in (
        'reviews', 'comments', 'blog_posts', 'notifications', 'processed_webhook_events',
        'cancellation_reasons', 'invoices', 'payments', 'subscriptions', 'applications',
        'jobs', 'professionals', 'businesses', 'plans', 'categories', 'users',
    ):
        if table_exists(table):
            op.drop_table(table)

    bind = op.get_bind()
    for enum in (
        notification_status, payment_method, payment_status, subscription_status, plan_type,
        post_status, application_status, job_status, listing_status, user_status, user_role,
    ):
        enum.drop(bind, checkfirst=True)

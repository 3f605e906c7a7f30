"""
Database models module.

This module imports all database models to ensure they are registered with SQLAlchemy's Base.metadata
before table creation.

All models must be imported here to be included in database migrations and table creation.
"""
from marketplace.db.models.user import User
from marketplace.db.models.category import Category
from marketplace.db.models.plan import Plan
from marketplace.db.models.subscription import Subscription
from marketplace.db.models.payment import Payment, Invoice
from marketplace.db.models.cancellation_reason import CancellationReason
from marketplace.db.models.webhook_event import ProcessedWebhookEvent
from marketplace.db.models.notification import Notification
from marketplace.db.models.business import Business
from marketplace.db.models.professional import Professional
from marketplace.db.models.job import Job
from marketplace.db.models.application import Application
from marketplace.db.models.blog import BlogPost, Comment
from marketplace.db.models.review import Review

__all__ = [
    "User",
    "Category",
    "Plan",
    "Subscription",
    "Payment",
    "Invoice",
    "CancellationReason",
    "ProcessedWebhookEvent",
    "Notification",
    "Business",
    "Professional",
    "Job",
    "Application",
    "BlogPost",
    "Comment",
    "Review",
]

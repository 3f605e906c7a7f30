"""
Notification outbox: enqueue inside business transactions, deliver later.
"""
import logging
from datetime import datetime
from typing import Dict, Optional

from sqlalchemy.orm import Session

from marketplace.core.retry import with_retry
from marketplace.db.models.enums import NotificationStatus
from marketplace.db.models.notification import Notification
from marketplace.services.email_service import EmailSender, SmtpEmailSender

logger = logging.getLogger(__name__)

MAX_ATTEMPTS = 3


def enqueue(db: Session, template: str, recipient: str, context: Dict) -> Optional[Notification]:
    """
    Add a notification to the outbox. The caller commits.

    Returns None when there is no recipient to notify.
    """
    if not recipient:
        logger.warning(f"Notification skipped, no recipient: template={template}")
        return None

    notification = Notification(
        template=template,
        recipient=recipient,
        context=context,
        status=NotificationStatus.PENDING,
        attempts=0,
    )
    db.add(notification)
    return notification


async def dispatch_pending_notifications(
    db: Session,
    sender: Optional[EmailSender] = None,
    limit: int = 100,
    initial_delay: float = 1.0,
) -> Dict[str, int]:
    """
    Deliver PENDING notifications, retrying transient failures.

    A notification that still fails is retried on later runs until it has
    been tried MAX_ATTEMPTS times, then marked FAILED. Errors are logged,
    never raised.
    """
    sender = sender or SmtpEmailSender()
    pending = (
        db.query(Notification)
        .filter(Notification.status == NotificationStatus.PENDING)
        .order_by(Notification.created_at, Notification.id)
        .limit(limit)
        .all()
    )

    sent = failed = 0
    for notification in pending:
        notification.attempts += 1
        try:
            await with_retry(
                lambda: sender.send(notification.recipient, notification.template, notification.context),
                max_retries=2,
                initial_delay=initial_delay,
            )
        except Exception as e:
            notification.last_error = str(e)
            if notification.attempts >= MAX_ATTEMPTS:
                notification.status = NotificationStatus.FAILED
                failed += 1
            logger.error(
                f"Notification delivery failed: id={notification.id}, template={notification.template}, "
                f"attempts={notification.attempts}, error={e}"
            )
        else:
            notification.status = NotificationStatus.SENT
            notification.sent_at = datetime.utcnow()
            notification.last_error = None
            sent += 1
        db.commit()

    logger.info(f"Notification dispatch: processed={len(pending)}, sent={sent}, failed={failed}")
    return {"processed": len(pending), "sent": sent, "failed": failed}

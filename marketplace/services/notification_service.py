"""In-app notifications for RFQ, quote and order events."""
import logging

from marketplace.models import Notification

logger = logging.getLogger(__name__)


def notify(session, user_id: str, title: str, message: str, type: str, link: str = None):
    """
    Queue a notification row in the caller's transaction.

    Missing recipients are skipped; the caller commits.
    """
    if not user_id:
        logger.warning(f"Skipping notification '{type}': no recipient")
        return None

    notification = Notification(
        user_id=user_id,
        title=title,
        message=message,
        type=type,
        link=link
    )
    session.add(notification)
    logger.info(f"Notification '{type}' queued for user {user_id}")
    return notification


def list_notifications(session, user_id: str, unread_only: bool = False):
    query = session.query(Notification).filter(Notification.user_id == user_id)
    if unread_only:
        query = query.filter(Notification.read == False)  # noqa: E712
    return query.order_by(Notification.id.desc()).all()

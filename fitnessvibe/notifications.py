"""Best-effort side effects: in-app notifications and email.

Nothing here may fail the operation that triggered it. Notification rows
are written inside a savepoint so a failed insert does not poison the
caller's transaction.
"""
import logging
import smtplib
from email.message import EmailMessage

from flask import current_app
from sqlalchemy.exc import SQLAlchemyError

from .models import Friendship, Notification, User, db

logger = logging.getLogger(__name__)


def notify(user_id, kind, title, message, data=None):
    try:
        recipient = db.session.get(User, user_id)
        if recipient is not None and kind in (recipient.get_preference("muted_notification_types") or []):
            logger.debug(f"Notification '{kind}' muted by user {user_id}")
            return None
        with db.session.begin_nested():
            notification = Notification(
                user_id=user_id, type=kind, title=title, message=message, data=data or {}
            )
            db.session.add(notification)
        logger.debug(f"Notification '{kind}' queued for user {user_id}")
        return notification
    except SQLAlchemyError as e:
        logger.error(f"Failed to create notification '{kind}' for user {user_id}: {str(e)}")
        return None


def notify_friends(user, kind, title, message, data=None):
    try:
        friend_ids = [f.friend_id for f in Friendship.query.filter_by(user_id=user.id).all()]
    except SQLAlchemyError as e:
        logger.error(f"Failed to load friends of user {user.id} for notification: {str(e)}")
        return 0
    for friend_id in friend_ids:
        notify(friend_id, kind, title, message, data)
    return len(friend_ids)


def send_email(to, subject, body):
    server = current_app.config.get("MAIL_SERVER")
    if not server:
        logger.info(f"Email to {to} not sent (no MAIL_SERVER configured): {subject}")
        return False
    msg = EmailMessage()
    msg["From"] = current_app.config["MAIL_SENDER"]
    msg["To"] = to
    msg["Subject"] = subject
    msg.set_content(body)
    try:
        with smtplib.SMTP(server, current_app.config["MAIL_PORT"], timeout=10) as smtp:
            smtp.send_message(msg)
        logger.info(f"Email '{subject}' sent to {to}")
        return True
    except (smtplib.SMTPException, OSError) as e:
        logger.error(f"Failed to send email '{subject}' to {to}: {str(e)}")
        return False

import logging
from datetime import datetime

from sqlalchemy import func

from ..exceptions import ForbiddenError, ValidationError
from ..models import NOTIFICATION_TYPES, REMINDER_TYPES, Goal, Notification, Reminder, db, utcnow
from ..notifications import notify
from ..validation import (
    optional_string, page_payload, pagination, parse_bool, parse_choice, parse_number, require_string,
)
from . import get_or_404

logger = logging.getLogger(__name__)

MAX_BATCH_SIZE = 100
REMINDER_STATUSES = ("active", "inactive", "all")


def _owned(user, notification_id):
    notification = get_or_404(Notification, notification_id, "Notification")
    if notification.user_id != user.id:
        raise ForbiddenError("You can only manage your own notifications")
    return notification


def list_notifications(user, args):
    page, page_size = pagination(args)
    query = Notification.query.filter_by(user_id=user.id)
    if parse_bool(args.get("unread_only")):
        query = query.filter_by(is_read=False)
    if args.get("type"):
        query = query.filter_by(type=args.get("type").strip())
    page_obj = query.order_by(Notification.created_at.desc(), Notification.id.desc()).paginate(
        page=page, per_page=page_size, error_out=False
    )
    return page_payload(page_obj, [n.to_dict() for n in page_obj.items])


def counts(user):
    rows = db.session.query(Notification.type, Notification.is_read, func.count(Notification.id)).filter(
        Notification.user_id == user.id
    ).group_by(Notification.type, Notification.is_read).all()
    by_type = {}
    total = unread = 0
    for kind, is_read, count in rows:
        total += count
        by_type[kind] = by_type.get(kind, 0) + count
        if not is_read:
            unread += count
    return {"total": total, "unread": unread, "by_type": by_type}


def mark_read(user, notification_id):
    notification = _owned(user, notification_id)
    if not notification.is_read:
        notification.is_read = True
        notification.read_at = utcnow()
        db.session.commit()
    return notification.to_dict()


def mark_all_read(user, data):
    query = Notification.query.filter_by(user_id=user.id, is_read=False)
    if data.get("type"):
        query = query.filter_by(type=str(data.get("type")).strip())
    now = utcnow()
    notifications = query.all()
    for notification in notifications:
        notification.is_read = True
        notification.read_at = now
    db.session.commit()
    logger.info(f"Marked {len(notifications)} notifications read for user {user.id}")
    return {"updated": len(notifications)}


def delete_notification(user, notification_id):
    notification = _owned(user, notification_id)
    db.session.delete(notification)
    db.session.commit()
    return {"message": "Notification deleted"}


def mark_read_batch(user, data):
    ids = data.get("notification_ids")
    if not isinstance(ids, list) or not ids:
        raise ValidationError("notification_ids must be a non-empty list")
    if len(ids) > MAX_BATCH_SIZE:
        raise ValidationError(f"At most {MAX_BATCH_SIZE} notifications can be marked at once")
    wanted = {parse_number(value, "notification_ids", minimum=1, integer=True) for value in ids}
    owned = Notification.query.filter(
        Notification.user_id == user.id, Notification.id.in_(wanted)
    ).all()
    now = utcnow()
    updated = 0
    for notification in owned:
        if not notification.is_read:
            notification.is_read = True
            notification.read_at = now
            updated += 1
    db.session.commit()
    found = {n.id for n in owned}
    logger.info(f"Batch marked {updated} notifications read for user {user.id}")
    return {"updated": updated, "not_found": sorted(wanted - found)}


def parse_muted_types(value):
    if not isinstance(value, list):
        raise ValidationError("muted_notification_types must be a list")
    muted = []
    for kind in value:
        if kind not in NOTIFICATION_TYPES:
            raise ValidationError(f"Unknown notification type: {kind}")
        if kind not in muted:
            muted.append(kind)
    return muted


def get_preferences(user):
    return {
        "email_notifications": user.get_preference("email_notifications"),
        "push_notifications": user.get_preference("push_notifications"),
        "muted_types": list(user.get_preference("muted_notification_types") or []),
        "available_types": list(NOTIFICATION_TYPES),
    }


def update_preferences(user, data):
    prefs = dict(user.preferences or {})
    for key in ("email_notifications", "push_notifications"):
        if key in data:
            if not isinstance(data[key], bool):
                raise ValidationError(f"{key} must be true or false")
            prefs[key] = data[key]
    if "muted_types" in data:
        prefs["muted_notification_types"] = parse_muted_types(data["muted_types"])
    user.preferences = prefs
    db.session.commit()
    logger.info(f"Notification preferences updated for user {user.id}")
    return get_preferences(user)


def _parse_time(value):
    if not isinstance(value, str):
        raise ValidationError("time is required (HH:MM)")
    try:
        return datetime.strptime(value.strip(), "%H:%M").time()
    except ValueError:
        raise ValidationError("time must use the HH:MM format")


def _parse_days(value):
    if not isinstance(value, list) or not value:
        raise ValidationError("days_of_week must be a non-empty list")
    return sorted({parse_number(day, "days_of_week", minimum=0, maximum=6, integer=True) for day in value})


def _apply_reminder_fields(user, reminder, data, creating):
    if creating or "type" in data:
        reminder.reminder_type = parse_choice(data.get("type"), REMINDER_TYPES, "type", default="workout")
    if creating or "title" in data:
        reminder.title = require_string(data, "title", max_length=100)
    if "message" in data:
        reminder.message = optional_string(data, "message", max_length=300) or ""
    if creating or "time" in data:
        reminder.remind_at = _parse_time(data.get("time"))
    if "days_of_week" in data:
        reminder.days_of_week = _parse_days(data["days_of_week"])
    elif creating:
        reminder.days_of_week = list(range(7))
    if "activity_type" in data:
        reminder.activity_type = optional_string(data, "activity_type", max_length=50)
    if "is_active" in data:
        reminder.is_active = parse_bool(data.get("is_active"))
    if "goal_id" in data:
        goal_id = data.get("goal_id")
        if goal_id is None:
            reminder.goal_id = None
        else:
            goal = get_or_404(Goal, parse_number(goal_id, "goal_id", minimum=1, integer=True), "Goal")
            if goal.user_id != user.id:
                raise ForbiddenError("You can only set reminders for your own goals")
            reminder.goal_id = goal.id
    if reminder.reminder_type == "goal" and reminder.goal_id is None:
        raise ValidationError("goal_id is required for goal reminders")


def create_reminder(user, data):
    reminder = Reminder(user_id=user.id)
    _apply_reminder_fields(user, reminder, data, creating=True)
    db.session.add(reminder)
    db.session.commit()
    logger.info(f"Reminder {reminder.id} created for user {user.id}")
    return reminder.to_dict()


def _owned_reminder(user, reminder_id):
    reminder = get_or_404(Reminder, reminder_id, "Reminder")
    if reminder.user_id != user.id:
        raise ForbiddenError("You can only manage your own reminders")
    return reminder


def list_reminders(user, args):
    query = Reminder.query.filter_by(user_id=user.id)
    kind = parse_choice(args.get("type"), REMINDER_TYPES + ("all",), "type", default="all")
    if kind != "all":
        query = query.filter_by(reminder_type=kind)
    status = parse_choice(args.get("status"), REMINDER_STATUSES, "status", default="all")
    if status != "all":
        query = query.filter_by(is_active=status == "active")
    reminders = query.order_by(Reminder.remind_at, Reminder.id).all()
    return {"items": [r.to_dict() for r in reminders], "total": len(reminders)}


def get_reminder(user, reminder_id):
    return _owned_reminder(user, reminder_id).to_dict()


def update_reminder(user, reminder_id, data):
    reminder = _owned_reminder(user, reminder_id)
    _apply_reminder_fields(user, reminder, data, creating=False)
    db.session.commit()
    return reminder.to_dict()


def delete_reminder(user, reminder_id):
    reminder = _owned_reminder(user, reminder_id)
    db.session.delete(reminder)
    db.session.commit()
    logger.info(f"Reminder {reminder_id} deleted for user {user.id}")
    return {"message": "Reminder deleted"}


def send_due_reminders(now=None):
    """Notify every reminder due at ``now`` that has not fired today. Returns the count sent."""
    now = now or utcnow()
    sent = 0
    for reminder in Reminder.query.filter_by(is_active=True).all():
        if not reminder.is_due(now):
            continue
        if reminder.goal_id is not None and (reminder.goal is None or reminder.goal.status != "active"
                                             or reminder.goal.is_deleted):
            continue
        message = reminder.message or f"Time for your {reminder.activity_type or 'workout'}!"
        notify(reminder.user_id, "reminder", reminder.title, message,
               {"reminder_id": reminder.id, "goal_id": reminder.goal_id})
        reminder.last_sent_on = now.date()
        sent += 1
    db.session.commit()
    logger.info(f"Sent {sent} reminders")
    return sent

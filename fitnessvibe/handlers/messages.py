import logging

from sqlalchemy import and_, or_

from ..exceptions import ForbiddenError, NotFoundError, ValidationError
from ..models import Message, User, db, utcnow
from ..notifications import notify
from ..validation import page_payload, pagination, parse_number, require_string
from . import are_friends, get_user_or_404

logger = logging.getLogger(__name__)


def send_message(user, data):
    recipient_id = parse_number(data.get("recipient_id"), "recipient_id", minimum=1, integer=True)
    if recipient_id == user.id:
        raise ValidationError("You cannot message yourself")
    recipient = get_user_or_404(recipient_id)
    if not are_friends(user.id, recipient.id):
        raise ForbiddenError("You can only message friends")
    content = require_string(data, "content", max_length=2000, label="Message")
    message = Message(sender_id=user.id, recipient_id=recipient.id, content=content)
    db.session.add(message)
    db.session.flush()
    notify(recipient.id, "message", f"New message from {user.display_name}",
           content if len(content) <= 100 else content[:97] + "...",
           {"message_id": message.id, "sender_id": user.id})
    db.session.commit()
    logger.info(f"Message {message.id} sent from {user.id} to {recipient.id}")
    return message.to_dict()


def list_conversations(user):
    messages = Message.query.filter(
        or_(Message.sender_id == user.id, Message.recipient_id == user.id),
        Message.is_deleted.is_(False),
    ).order_by(Message.created_at.desc(), Message.id.desc()).all()

    conversations = {}
    for message in messages:
        other_id = message.recipient_id if message.sender_id == user.id else message.sender_id
        entry = conversations.get(other_id)
        if entry is None:
            entry = conversations[other_id] = {"latest_message": message.to_dict(), "unread_count": 0}
        if message.recipient_id == user.id and message.read_at is None:
            entry["unread_count"] += 1

    users = {u.id: u for u in User.query.filter(User.id.in_(list(conversations))).all()} if conversations else {}
    items = []
    for other_id, entry in conversations.items():
        other = users.get(other_id)
        if other is None or other.is_deleted:
            continue
        entry["user"] = other.to_summary()
        items.append(entry)
    return {"items": items, "unread_total": sum(e["unread_count"] for e in items)}


def get_thread(user, other_id, args):
    other = get_user_or_404(other_id)
    page, page_size = pagination(args, default_size=50)
    query = Message.query.filter(
        or_(
            and_(Message.sender_id == user.id, Message.recipient_id == other.id),
            and_(Message.sender_id == other.id, Message.recipient_id == user.id),
        ),
        Message.is_deleted.is_(False),
    )
    page_obj = query.order_by(Message.created_at.desc(), Message.id.desc()).paginate(
        page=page, per_page=page_size, error_out=False
    )
    items = [m.to_dict() for m in page_obj.items]

    now = utcnow()
    unread = Message.query.filter_by(sender_id=other.id, recipient_id=user.id, read_at=None).all()
    for message in unread:
        message.read_at = now
    if unread:
        db.session.commit()
        logger.debug(f"Marked {len(unread)} messages from {other.id} as read for user {user.id}")
    payload = page_payload(page_obj, items)
    payload["user"] = other.to_summary()
    return payload


def delete_message(user, message_id):
    message = db.session.get(Message, message_id)
    if message is None or message.is_deleted:
        raise NotFoundError("Message", message_id)
    if message.sender_id != user.id:
        raise ForbiddenError("You can only delete messages you sent")
    message.is_deleted = True
    db.session.commit()
    logger.info(f"Message {message.id} deleted by user {user.id}")
    return {"message": "Message deleted"}

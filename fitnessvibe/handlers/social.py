import logging
from datetime import timedelta

from sqlalchemy import or_

from ..exceptions import ConflictError, ForbiddenError, NotFoundError, RateLimitError, ValidationError
from ..gamification import award_xp, evaluate_badges
from ..models import (
    SHARE_PRIVACY, Activity, ActivityComment, ActivityLike, ActivityShare, Cheer, FriendRequest, Friendship,
    User, db, utcnow,
)
from ..notifications import notify
from ..validation import (
    optional_number, optional_string, page_payload, pagination, parse_bool, parse_choice, parse_number,
    require_string,
)
from . import are_friends, friend_ids, get_or_404, get_user_or_404

logger = logging.getLogger(__name__)

FRIEND_REQUESTS_PER_HOUR = 10
CHEER_TYPES = ("clap", "fire", "muscle", "heart", "rocket")
CHEER_XP = 2
FEED_COMMENT_PREVIEW = 3


def _befriend(user_a, user_b):
    for left, right in ((user_a, user_b), (user_b, user_a)):
        if not Friendship.query.filter_by(user_id=left.id, friend_id=right.id).first():
            db.session.add(Friendship(user_id=left.id, friend_id=right.id))
    db.session.flush()
    evaluate_badges(user_a, kinds={"friends"})
    evaluate_badges(user_b, kinds={"friends"})


def send_friend_request(user, data):
    target_id = parse_number(data.get("target_user_id"), "target_user_id", minimum=1, integer=True)
    message = optional_string(data, "message", max_length=200, label="Message")
    if target_id == user.id:
        raise ValidationError("You cannot send a friend request to yourself")
    target = get_user_or_404(target_id)

    if are_friends(user.id, target.id):
        return {"status": "already_friends"}
    outgoing = FriendRequest.query.filter_by(sender_id=user.id, receiver_id=target.id, status="pending").first()
    if outgoing:
        return {"status": "request_exists", "request": outgoing.to_dict()}

    now = utcnow()
    incoming = FriendRequest.query.filter_by(sender_id=target.id, receiver_id=user.id, status="pending").first()
    if incoming:
        incoming.status = "accepted"
        incoming.responded_at = now
        _befriend(user, target)
        notify(target.id, "friend_request_accepted", "Friend request accepted",
               f"{user.display_name} accepted your friend request", {"user_id": user.id})
        db.session.commit()
        logger.info(f"Users {user.id} and {target.id} are now friends (mutual request)")
        return {"status": "accepted", "request": incoming.to_dict()}

    if not target.get_preference("allow_friend_requests"):
        raise ForbiddenError("This user is not accepting friend requests")
    recent = FriendRequest.query.filter(
        FriendRequest.sender_id == user.id, FriendRequest.created_at >= now - timedelta(hours=1)
    ).count()
    if recent >= FRIEND_REQUESTS_PER_HOUR:
        logger.warning(f"User {user.id} hit the friend request rate limit")
        raise RateLimitError("Too many friend requests, please try again later")

    friend_request = FriendRequest(sender_id=user.id, receiver_id=target.id, message=message, created_at=now)
    db.session.add(friend_request)
    db.session.flush()
    notify(target.id, "friend_request", "New friend request",
           f"{user.display_name} wants to be your friend", {"request_id": friend_request.id, "user_id": user.id})
    db.session.commit()
    logger.info(f"Friend request {friend_request.id} sent from {user.id} to {target.id}")
    return {"status": "sent", "request": friend_request.to_dict()}


def respond_to_friend_request(user, request_id, data):
    friend_request = get_or_404(FriendRequest, request_id, "Friend request")
    if friend_request.receiver_id != user.id:
        raise ForbiddenError("Only the recipient can respond to this friend request")
    if friend_request.status != "pending":
        raise ConflictError(f"Friend request has already been {friend_request.status}")
    if "accept" not in data:
        raise ValidationError("accept is required")
    accept = parse_bool(data.get("accept"))
    friend_request.status = "accepted" if accept else "declined"
    friend_request.responded_at = utcnow()
    if accept:
        _befriend(user, friend_request.sender)
        notify(friend_request.sender_id, "friend_request_accepted", "Friend request accepted",
               f"{user.display_name} accepted your friend request", {"user_id": user.id})
    db.session.commit()
    logger.info(f"Friend request {friend_request.id} {friend_request.status} by user {user.id}")
    return friend_request.to_dict()


def list_friends(user, args):
    page, page_size = pagination(args)
    query = User.query.join(Friendship, Friendship.friend_id == User.id).filter(
        Friendship.user_id == user.id, User.is_deleted.is_(False)
    )
    if args.get("search"):
        term = f"%{args.get('search').strip()}%"
        query = query.filter(or_(
            User.username.ilike(term), User.first_name.ilike(term), User.last_name.ilike(term)
        ))
    page_obj = query.order_by(User.username).paginate(page=page, per_page=page_size, error_out=False)
    return page_payload(page_obj, [f.to_summary() for f in page_obj.items])


def list_friend_requests(user, args):
    direction = parse_choice(args.get("direction"), ("incoming", "outgoing"), "direction", default="incoming")
    query = FriendRequest.query.filter_by(status="pending")
    if direction == "incoming":
        query = query.filter_by(receiver_id=user.id)
    else:
        query = query.filter_by(sender_id=user.id)
    requests = query.order_by(FriendRequest.created_at.desc(), FriendRequest.id.desc()).all()
    return {"direction": direction, "items": [r.to_dict() for r in requests]}


def remove_friend(user, friend_id):
    rows = Friendship.query.filter(or_(
        (Friendship.user_id == user.id) & (Friendship.friend_id == friend_id),
        (Friendship.user_id == friend_id) & (Friendship.friend_id == user.id),
    )).all()
    if not rows:
        raise NotFoundError("Friend", friend_id)
    for row in rows:
        db.session.delete(row)
    db.session.commit()
    logger.info(f"User {user.id} removed friend {friend_id}")
    return {"message": "Friend removed"}


def share_activity_record(user, activity, caption, privacy):
    """Create the feed post for an activity the caller already validated. Caller commits."""
    if activity.user_id != user.id:
        raise ForbiddenError("You can only share your own activities")
    if activity.status != "completed":
        raise ConflictError("Only completed activities can be shared")
    if caption and len(caption) > 500:
        raise ValidationError("Caption is too long (maximum 500 characters)")
    share = ActivityShare(
        user_id=user.id,
        activity_id=activity.id,
        caption=caption or "",
        privacy=parse_choice(privacy, SHARE_PRIVACY, "privacy", default="friends"),
    )
    db.session.add(share)
    db.session.flush()
    logger.info(f"Activity {activity.id} shared as post {share.id}")
    return share


def share_activity(user, data):
    activity_id = parse_number(data.get("activity_id"), "activity_id", minimum=1, integer=True)
    activity = get_or_404(Activity, activity_id, "Activity")
    caption = optional_string(data, "caption", max_length=500, label="Caption")
    share = share_activity_record(user, activity, caption, data.get("privacy"))
    db.session.commit()
    return _post(share, user)


def _can_view_share(user, share):
    if share.user_id == user.id or share.privacy == "public":
        return True
    if share.privacy == "friends":
        return are_friends(user.id, share.user_id)
    return False


def _visible_share(user, post_id):
    share = db.session.get(ActivityShare, post_id)
    if share is None or not _can_view_share(user, share):
        raise NotFoundError("Post", post_id)
    return share


def _post(share, user):
    activity = share.activity
    comments = [c for c in share.comments if not c.is_deleted]
    return {
        "id": share.id,
        "author": share.user.to_summary(),
        "caption": share.caption,
        "privacy": share.privacy,
        "shared_at": share.shared_at.isoformat(),
        "activity": {
            "id": activity.id,
            "name": activity.name,
            "activity_type": activity.activity_type,
            "duration_seconds": activity.active_seconds(),
            "distance_km": activity.distance_km,
            "calories_burned": activity.calories_burned,
            "xp_earned": activity.xp_earned,
        },
        "like_count": len(share.likes),
        "comment_count": len(comments),
        "has_liked": any(like.user_id == user.id for like in share.likes),
        "latest_comments": [c.to_dict() for c in reversed(comments[-FEED_COMMENT_PREVIEW:])],
    }


def feed(user, args):
    page, page_size = pagination(args)
    feed_type = parse_choice(args.get("feed_type"), ("friends", "public"), "feed_type", default="friends")
    if feed_type == "public":
        query = ActivityShare.query.filter(ActivityShare.privacy == "public")
    else:
        authors = friend_ids(user.id) + [user.id]
        query = ActivityShare.query.filter(
            ActivityShare.user_id.in_(authors), ActivityShare.privacy != "private"
        )
    query = query.join(User, ActivityShare.user_id == User.id).filter(User.is_deleted.is_(False))
    page_obj = query.order_by(ActivityShare.shared_at.desc(), ActivityShare.id.desc()).paginate(
        page=page, per_page=page_size, error_out=False
    )
    logger.debug(f"Feed '{feed_type}' page {page} for user {user.id}: {len(page_obj.items)} posts")
    return page_payload(page_obj, [_post(s, user) for s in page_obj.items])


def like_post(user, post_id):
    share = _visible_share(user, post_id)
    if ActivityLike.query.filter_by(share_id=share.id, user_id=user.id).first():
        raise ConflictError("You already liked this post")
    db.session.add(ActivityLike(share_id=share.id, user_id=user.id))
    db.session.flush()
    if share.user_id != user.id:
        notify(share.user_id, "post_liked", "New like",
               f"{user.display_name} liked your activity", {"post_id": share.id, "user_id": user.id})
    db.session.commit()
    return {"post_id": share.id, "like_count": len(share.likes), "has_liked": True}


def unlike_post(user, post_id):
    share = _visible_share(user, post_id)
    like = ActivityLike.query.filter_by(share_id=share.id, user_id=user.id).first()
    if like is None:
        raise NotFoundError("Like")
    db.session.delete(like)
    db.session.commit()
    return {"post_id": share.id, "like_count": len(share.likes), "has_liked": False}


def comment_on_post(user, post_id, data):
    share = _visible_share(user, post_id)
    content = require_string(data, "content", max_length=500, label="Comment")
    comment = ActivityComment(share_id=share.id, user_id=user.id, content=content)
    db.session.add(comment)
    db.session.flush()
    if share.user_id != user.id:
        notify(share.user_id, "post_commented", "New comment",
               f"{user.display_name} commented on your activity", {"post_id": share.id, "comment_id": comment.id})
    db.session.commit()
    logger.info(f"Comment {comment.id} added to post {share.id} by user {user.id}")
    return comment.to_dict()


def list_comments(user, post_id, args):
    share = _visible_share(user, post_id)
    page, page_size = pagination(args)
    page_obj = ActivityComment.query.filter_by(share_id=share.id, is_deleted=False).order_by(
        ActivityComment.created_at, ActivityComment.id
    ).paginate(page=page, per_page=page_size, error_out=False)
    return page_payload(page_obj, [c.to_dict() for c in page_obj.items])


def delete_comment(user, post_id, comment_id):
    share = _visible_share(user, post_id)
    comment = db.session.get(ActivityComment, comment_id)
    if comment is None or comment.is_deleted or comment.share_id != share.id:
        raise NotFoundError("Comment", comment_id)
    if user.id not in (comment.user_id, share.user_id):
        raise ForbiddenError("You can only delete your own comments or comments on your posts")
    comment.is_deleted = True
    db.session.commit()
    logger.info(f"Comment {comment.id} deleted by user {user.id}")
    return {"message": "Comment deleted"}


def send_cheer(user, data):
    target_id = parse_number(data.get("target_user_id"), "target_user_id", minimum=1, integer=True)
    if target_id == user.id:
        raise ValidationError("You cannot cheer for yourself")
    target = get_user_or_404(target_id)
    if not are_friends(user.id, target.id):
        raise ForbiddenError("You can only cheer for friends")
    cheer_type = parse_choice(data.get("cheer_type"), CHEER_TYPES, "cheer_type", default="clap")
    message = optional_string(data, "message", max_length=200, label="Message")

    activity_id = optional_number(data, "activity_id", minimum=1, integer=True)
    if activity_id is not None:
        activity = get_or_404(Activity, activity_id, "Activity")
        if activity.user_id != target.id:
            raise ValidationError("Activity does not belong to this user")
    else:
        activity = Activity.query.filter(
            Activity.user_id == target.id, Activity.status.in_(("active", "paused"))
        ).first()
        if activity is None:
            raise ConflictError("This friend has no live activity to cheer for")

    cheer = Cheer(sender_id=user.id, recipient_id=target.id, activity_id=activity.id,
                  cheer_type=cheer_type, message=message)
    db.session.add(cheer)
    award_xp(target, CHEER_XP, f"Cheer from {user.username}", source="cheer")
    evaluate_badges(target, context=f"Cheer from {user.username}")
    db.session.flush()
    notify(target.id, "cheer", "You got a cheer!",
           f"{user.display_name} sent you a {cheer_type}" + (f": {message}" if message else ""),
           {"cheer_id": cheer.id, "activity_id": activity.id})
    db.session.commit()
    logger.info(f"User {user.id} cheered user {target.id} on activity {activity.id}")
    return cheer.to_dict()

import logging
import math
from datetime import datetime, time, timedelta

from sqlalchemy import func

from ..exceptions import ConflictError, ValidationError
from ..gamification import award_xp as credit_xp
from ..gamification import badge_metric, evaluate_badges, grant_badge, level_for_xp, level_progress, xp_for_level
from ..models import Activity, Badge, User, UserBadge, XpTransaction, db, utcnow
from ..notifications import notify
from ..streak import calculate_streak, longest_streak, next_milestone
from ..validation import optional_number, optional_string, pagination, parse_choice, parse_number, require_string
from . import friend_ids, get_or_404, get_user_or_404

logger = logging.getLogger(__name__)

LEADERBOARD_METRICS = ("xp", "activities", "distance", "calories", "streak")
LEADERBOARD_TIMEFRAMES = ("all_time", "this_week", "this_month", "today")
LEADERBOARD_SCOPES = ("global", "friends")
RARE_RARITIES = ("rare", "epic", "legendary")


def dashboard(user):
    recent_badges = UserBadge.query.filter_by(user_id=user.id).order_by(
        UserBadge.earned_at.desc(), UserBadge.id.desc()
    ).limit(5).all()
    recent_xp = XpTransaction.query.filter_by(user_id=user.id).order_by(
        XpTransaction.created_at.desc(), XpTransaction.id.desc()
    ).limit(10).all()
    data = level_progress(user)
    data.update({
        "current_streak": calculate_streak(user.id),
        "longest_streak": longest_streak(user.id),
        "badge_count": UserBadge.query.filter_by(user_id=user.id).count(),
        "recent_badges": [b.to_dict() for b in recent_badges],
        "recent_xp_transactions": [t.to_dict() for t in recent_xp],
    })
    return data


def timeframe_start(timeframe, now=None):
    now = now or utcnow()
    today = now.date()
    if timeframe == "today":
        return datetime.combine(today, time.min)
    if timeframe == "this_week":
        return datetime.combine(today - timedelta(days=today.weekday()), time.min)
    if timeframe == "this_month":
        return datetime.combine(today.replace(day=1), time.min)
    return None


def _grouped(column, user_ids, start, xp=False):
    if xp:
        query = db.session.query(XpTransaction.user_id, func.coalesce(func.sum(column), 0)).filter(
            XpTransaction.user_id.in_(user_ids)
        )
        if start:
            query = query.filter(XpTransaction.created_at >= start)
        return dict(query.group_by(XpTransaction.user_id).all())
    query = db.session.query(Activity.user_id, column).filter(
        Activity.user_id.in_(user_ids), Activity.status == "completed"
    )
    if start:
        query = query.filter(Activity.ended_at >= start)
    return dict(query.group_by(Activity.user_id).all())


def _scores(metric, users, start):
    ids = [u.id for u in users]
    if metric == "xp":
        if start is None:
            return {u.id: u.experience_points for u in users}
        return _grouped(XpTransaction.amount, ids, start, xp=True)
    if metric == "activities":
        return _grouped(func.count(Activity.id), ids, start)
    if metric == "distance":
        return _grouped(func.coalesce(func.sum(Activity.distance_km), 0.0), ids, start)
    if metric == "calories":
        return _grouped(func.coalesce(func.sum(Activity.calories_burned), 0.0), ids, start)
    return {u.id: calculate_streak(u.id) for u in users}


def leaderboard(user, args):
    metric = parse_choice(args.get("metric"), LEADERBOARD_METRICS, "metric", default="xp")
    timeframe = parse_choice(args.get("timeframe"), LEADERBOARD_TIMEFRAMES, "timeframe", default="all_time")
    scope = parse_choice(args.get("scope"), LEADERBOARD_SCOPES, "scope", default="global")
    page, page_size = pagination(args, default_size=50)

    query = User.query.filter(User.is_deleted.is_(False))
    if scope == "friends":
        query = query.filter(User.id.in_(friend_ids(user.id) + [user.id]))
    users = [u for u in query.all() if u.id == user.id or u.get_preference("show_in_leaderboards")]

    scores = _scores(metric, users, timeframe_start(timeframe))
    ranked = sorted(users, key=lambda u: (-(scores.get(u.id) or 0), u.id))
    entries = [
        {
            "rank": rank,
            "user": u.to_summary(),
            "score": round(scores.get(u.id) or 0, 2),
            "level": u.level,
            "is_current_user": u.id == user.id,
        }
        for rank, u in enumerate(ranked, start=1)
    ]
    my_entry = next((e for e in entries if e["is_current_user"]), None)
    offset = (page - 1) * page_size
    return {
        "metric": metric,
        "timeframe": timeframe,
        "scope": scope,
        "entries": entries[offset:offset + page_size],
        "page": page,
        "page_size": page_size,
        "total": len(entries),
        "pages": math.ceil(len(entries) / page_size) if entries else 0,
        "my_position": my_entry,
    }


def badges(user):
    earned = {ub.badge_id: ub for ub in UserBadge.query.filter_by(user_id=user.id).all()}
    items = []
    for badge in Badge.query.filter_by(is_active=True).order_by(Badge.id).all():
        data = badge.to_dict()
        data["criteria"] = badge.criteria
        data["earned"] = badge.id in earned
        data["earned_at"] = earned[badge.id].earned_at.isoformat() if badge.id in earned else None
        items.append(data)
    return {"items": items, "earned_count": len(earned), "total": len(items)}


def streaks(user):
    current = calculate_streak(user.id)
    today = utcnow().date()
    counted_today = Activity.query.filter(
        Activity.user_id == user.id,
        Activity.status == "completed",
        Activity.ended_at >= datetime.combine(today, time.min),
    ).first() is not None
    return {
        "current_streak": current,
        "longest_streak": longest_streak(user.id),
        "today_counted": counted_today,
        "next_milestone": next_milestone(current),
    }


def award_xp(admin, data):
    target_id = parse_number(data.get("user_id"), "user_id", minimum=1, integer=True)
    target = get_user_or_404(target_id)
    amount = parse_number(data.get("amount"), "amount", minimum=0, exclusive_minimum=True, integer=True)
    reason = require_string(data, "reason", max_length=200)
    source = optional_string(data, "source", max_length=50) or "admin"
    source_id = optional_number(data, "source_id", integer=True)
    multiplier = optional_number(data, "multiplier_percentage", minimum=0, maximum=1000, integer=True)
    bonus = 0
    if multiplier is not None and multiplier > 100:
        bonus = int((multiplier - 100) / 100 * amount)

    starting_level = target.level
    credit_xp(target, amount, reason, source=source, source_id=source_id, bonus=bonus)
    total = amount + bonus
    earned = evaluate_badges(target, context=reason)
    notify(target.id, "xp_awarded", "XP awarded", f"You received {total} XP: {reason}", {"amount": total})
    db.session.commit()
    logger.info(f"Admin {admin.id} awarded {total} XP to user {target.id}")
    progress = level_progress(target)
    progress.update({
        "user_id": target.id,
        "xp_awarded": amount,
        "bonus_xp": bonus,
        "total_awarded": total,
        "leveled_up": target.level > starting_level,
        "badges_earned": [b.to_dict() for b in earned],
    })
    return progress


def award_badge(admin, data):
    target_id = parse_number(data.get("user_id"), "user_id", minimum=1, integer=True)
    target = get_user_or_404(target_id)
    badge_id = parse_number(data.get("badge_id"), "badge_id", minimum=1, integer=True)
    badge = get_or_404(Badge, badge_id, "Badge")
    if not badge.is_active:
        raise ValidationError("Badge is not active")
    if UserBadge.query.filter_by(user_id=target.id, badge_id=badge.id).first():
        raise ConflictError("User already has this badge")
    context = optional_string(data, "context", max_length=200)
    starting_level = target.level
    user_badge = grant_badge(target, badge, context)
    earned = evaluate_badges(target, context=context)
    notify(target.id, "badge_earned", "New badge!", f"You earned the '{badge.name}' badge",
           {"badge_id": badge.id})
    db.session.commit()
    logger.info(f"Admin {admin.id} awarded badge '{badge.code}' to user {target.id}")
    data = user_badge.to_dict()
    data.update({"user_id": target.id, "leveled_up": target.level > starting_level, "level": target.level,
                 "badges_earned": [b.to_dict() for b in earned]})
    return data


def achievements(user, args):
    """Badges earned and levels reached inside the window, newest first."""
    days = parse_number(args.get("days", 30), "days", minimum=1, maximum=365, integer=True)
    limit = parse_number(args.get("limit", 20), "limit", minimum=1, maximum=100, integer=True)
    cutoff = utcnow() - timedelta(days=days)
    items = []

    recent_badges = UserBadge.query.filter(UserBadge.user_id == user.id, UserBadge.earned_at >= cutoff).all()
    for user_badge in recent_badges:
        badge = user_badge.badge
        items.append({
            "type": "badge",
            "title": badge.name,
            "description": badge.description,
            "achieved_at": user_badge.earned_at,
            "is_rare": badge.rarity in RARE_RARITIES,
            "badge": badge.to_dict(),
            "shareable_text": f"I just earned the '{badge.name}' badge on FitnessVibe!",
        })

    # replay the ledger on top of any XP that predates it
    transactions = XpTransaction.query.filter_by(user_id=user.id).order_by(XpTransaction.id).all()
    running = max(user.experience_points - sum(t.amount for t in transactions), 0)
    for transaction in transactions:
        before = level_for_xp(running)
        running += transaction.amount
        if transaction.created_at < cutoff:
            continue
        for level in range(before + 1, level_for_xp(running) + 1):
            items.append({
                "type": "level_up",
                "title": f"Reached level {level}",
                "description": transaction.reason,
                "achieved_at": transaction.created_at,
                "is_rare": level % 10 == 0,
                "level": level,
                "shareable_text": f"I just reached level {level} on FitnessVibe!",
            })

    items.sort(key=lambda item: item["achieved_at"], reverse=True)
    items = items[:limit]
    for item in items:
        item["achieved_at"] = item["achieved_at"].isoformat()
    return {"days": days, "items": items, "total": len(items)}


def _milestone_priority(percentage):
    if percentage >= 75:
        return 1
    if percentage >= 40:
        return 2
    return 3


def _milestone(kind, title, current, target, **extra):
    percentage = round(min(current / target * 100, 100), 2) if target else 100.0
    data = {"type": kind, "title": title, "current": current, "target": target,
            "progress_percentage": percentage, "priority": _milestone_priority(percentage)}
    data.update(extra)
    return data


def milestones(user, args):
    priority = None
    if args.get("priority"):
        priority = parse_number(args.get("priority"), "priority", minimum=1, maximum=3, integer=True)

    progress = level_progress(user)
    items = [_milestone("level", f"Reach level {user.level + 1}", progress["level_progress_percentage"], 100,
                        xp_needed=progress["xp_to_next_level"], target_xp=xp_for_level(user.level + 1))]
    streak = calculate_streak(user.id)
    upcoming = next_milestone(streak)
    if upcoming is not None:
        items.append(_milestone("streak", f"Keep a {upcoming}-day streak", streak, upcoming))

    earned = {ub.badge_id for ub in UserBadge.query.filter_by(user_id=user.id).all()}
    cache = {}
    for badge in Badge.query.filter_by(is_active=True).order_by(Badge.id).all():
        kind = (badge.criteria or {}).get("type")
        if badge.id in earned or kind in (None, "welcome"):
            continue
        if kind not in cache:
            cache[kind] = badge_metric(user, kind)
        items.append(_milestone("badge", f"Earn '{badge.name}'", round(cache[kind], 2),
                                badge.criteria.get("threshold", 0), badge=badge.to_dict()))

    if priority is not None:
        items = [m for m in items if m["priority"] == priority]
    items.sort(key=lambda m: (m["priority"], -m["progress_percentage"]))
    return {"items": items, "total": len(items)}

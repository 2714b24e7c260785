import logging

from sqlalchemy import func

from .models import (
    Activity, Badge, ChallengeParticipant, Friendship, Goal, UserBadge, XpTransaction, db, utcnow,
)
from .streak import calculate_streak

logger = logging.getLogger(__name__)

LEVEL_TITLES = ((35, "Legend"), (20, "Champion"), (10, "Athlete"), (5, "Mover"), (1, "Rookie"))

BADGE_CATALOGUE = [
    {"code": "welcome", "name": "Welcome Aboard", "description": "Joined the FitnessVibe community",
     "category": "special", "rarity": "common", "points": 10, "criteria": {"type": "welcome", "threshold": 1}},
    {"code": "first_steps", "name": "First Steps", "description": "Completed your first activity",
     "category": "activity", "rarity": "common", "points": 25,
     "criteria": {"type": "activity_count", "threshold": 1}},
    {"code": "dedicated", "name": "Dedicated", "description": "Completed 10 activities",
     "category": "activity", "rarity": "uncommon", "points": 50,
     "criteria": {"type": "activity_count", "threshold": 10}},
    {"code": "fitness_fanatic", "name": "Fitness Fanatic", "description": "Completed 50 activities",
     "category": "activity", "rarity": "rare", "points": 150,
     "criteria": {"type": "activity_count", "threshold": 50}},
    {"code": "on_a_roll", "name": "On a Roll", "description": "Kept a 3-day streak",
     "category": "streak", "rarity": "common", "points": 25, "criteria": {"type": "streak", "threshold": 3}},
    {"code": "week_warrior", "name": "Week Warrior", "description": "Kept a 7-day streak",
     "category": "streak", "rarity": "uncommon", "points": 75, "criteria": {"type": "streak", "threshold": 7}},
    {"code": "unstoppable", "name": "Unstoppable", "description": "Kept a 30-day streak",
     "category": "streak", "rarity": "epic", "points": 300, "criteria": {"type": "streak", "threshold": 30}},
    {"code": "marathoner", "name": "Marathoner", "description": "Covered 42.2 km in total",
     "category": "milestone", "rarity": "uncommon", "points": 100,
     "criteria": {"type": "total_distance_km", "threshold": 42.2}},
    {"code": "globetrotter", "name": "Globetrotter", "description": "Covered 1000 km in total",
     "category": "milestone", "rarity": "legendary", "points": 500,
     "criteria": {"type": "total_distance_km", "threshold": 1000}},
    {"code": "rising_star", "name": "Rising Star", "description": "Reached level 5",
     "category": "achievement", "rarity": "uncommon", "points": 50, "criteria": {"type": "level", "threshold": 5}},
    {"code": "social_butterfly", "name": "Social Butterfly", "description": "Made 5 friends",
     "category": "social", "rarity": "common", "points": 40, "criteria": {"type": "friends", "threshold": 5}},
    {"code": "challenger", "name": "Challenger", "description": "Completed your first challenge",
     "category": "challenge", "rarity": "uncommon", "points": 75,
     "criteria": {"type": "challenges_completed", "threshold": 1}},
    {"code": "goal_getter", "name": "Goal Getter", "description": "Completed your first goal",
     "category": "achievement", "rarity": "common", "points": 50,
     "criteria": {"type": "goals_completed", "threshold": 1}},
]


def xp_for_level(level):
    """Total XP needed to reach ``level``: 100 for level 2, then +200, +300, ..."""
    if level <= 1:
        return 0
    return 50 * level * (level - 1)


def level_for_xp(xp):
    level = 1
    while xp >= xp_for_level(level + 1):
        level += 1
    return level


def level_title(level):
    for minimum, title in LEVEL_TITLES:
        if level >= minimum:
            return title
    return "Rookie"


def level_progress(user):
    current_floor = xp_for_level(user.level)
    next_floor = xp_for_level(user.level + 1)
    span = next_floor - current_floor
    return {
        "level": user.level,
        "level_title": level_title(user.level),
        "experience_points": user.experience_points,
        "xp_to_next_level": next_floor - user.experience_points,
        "level_progress_percentage": round((user.experience_points - current_floor) / span * 100, 2),
    }


def award_xp(user, amount, reason, source="system", source_id=None, bonus=0):
    """Credit XP, record the ledger row and recompute the level.

    Returns ``(total_awarded, leveled_up)``.
    """
    total = int(amount) + int(bonus)
    if total <= 0:
        return 0, False
    old_level = user.level
    user.experience_points += total
    user.level = level_for_xp(user.experience_points)
    user.last_active_at = utcnow()
    db.session.add(XpTransaction(
        user_id=user.id, amount=total, base_amount=int(amount), bonus_amount=int(bonus),
        reason=reason, source=source, source_id=source_id,
    ))
    leveled_up = user.level > old_level
    if leveled_up:
        logger.info(f"User {user.id} leveled up {old_level} -> {user.level}")
    return total, leveled_up


def grant_badge(user, badge, context=None):
    """Attach ``badge`` to ``user`` and credit its points. Caller checks for duplicates."""
    user_badge = UserBadge(user_id=user.id, badge_id=badge.id, earned_context=context)
    user_badge.badge = badge
    db.session.add(user_badge)
    if badge.points:
        award_xp(user, badge.points, f"Earned badge: {badge.name}", source="badge", source_id=badge.id)
    logger.info(f"Badge '{badge.code}' awarded to user {user.id}")
    return user_badge


def badge_metric(user, kind):
    """Current value of a badge criteria type for ``user``."""
    if kind == "welcome":
        return 1
    if kind == "activity_count":
        return Activity.query.filter_by(user_id=user.id, status="completed").count()
    if kind == "streak":
        return calculate_streak(user.id)
    if kind == "total_distance_km":
        return db.session.query(func.coalesce(func.sum(Activity.distance_km), 0.0)).filter(
            Activity.user_id == user.id, Activity.status == "completed"
        ).scalar()
    if kind == "level":
        return user.level
    if kind == "friends":
        return Friendship.query.filter_by(user_id=user.id).count()
    if kind == "challenges_completed":
        return ChallengeParticipant.query.filter_by(user_id=user.id, is_completed=True).count()
    if kind == "goals_completed":
        return Goal.query.filter_by(user_id=user.id, status="completed", is_deleted=False).count()
    return 0


def evaluate_badges(user, kinds=None, context=None):
    """Award every active badge whose criteria the user now meets."""
    db.session.flush()
    earned_ids = {ub.badge_id for ub in UserBadge.query.filter_by(user_id=user.id).all()}
    query = Badge.query.filter_by(is_active=True).order_by(Badge.id)
    awarded = []
    cache = {}
    for badge in query.all():
        if badge.id in earned_ids:
            continue
        kind = (badge.criteria or {}).get("type")
        if kinds is not None and kind not in kinds:
            continue
        if kind == "welcome" and kinds is None:
            continue
        if kind not in cache:
            cache[kind] = badge_metric(user, kind)
        if cache[kind] >= badge.criteria.get("threshold", 0):
            awarded.append(grant_badge(user, badge, context))
            # a badge's XP can unlock the level badge in the same pass
            cache.pop("level", None)
    return [ub.badge for ub in awarded]


def seed_badges():
    existing = {b.code for b in Badge.query.all()}
    added = 0
    for entry in BADGE_CATALOGUE:
        if entry["code"] in existing:
            continue
        db.session.add(Badge(
            icon_url=f"/assets/badges/{entry['code']}.svg",
            **entry
        ))
        added += 1
    if added:
        db.session.commit()
        logger.info(f"Seeded {added} badges")
    return added

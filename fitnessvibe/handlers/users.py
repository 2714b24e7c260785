import csv
import io
import logging
import secrets
from datetime import datetime, time, timedelta
from urllib.parse import urlparse

from ..auth import check_password, hash_password, revoke_refresh_tokens
from ..exceptions import AuthenticationError, ForbiddenError, ValidationError
from ..models import (
    DEFAULT_PREFERENCES, FITNESS_GOALS, FITNESS_LEVELS, GENDERS, Activity, ChallengeParticipant, Goal, UserBadge,
    XpTransaction, db, utcnow,
)
from ..streak import calculate_streak
from ..validation import optional_string, parse_bool, parse_choice, validate_password, validate_person_name
from . import are_friends, get_user_or_404
from .auth import validate_birth_date
from .notifications import parse_muted_types

logger = logging.getLogger(__name__)

PREFERENCE_CHOICES = {
    "units": ("metric", "imperial"),
    "profile_visibility": ("public", "friends", "private"),
}
BOOLEAN_PREFERENCES = (
    "allow_friend_requests", "show_in_leaderboards", "email_notifications", "push_notifications",
    "activities_public_by_default",
)
PRIVACY_KEYS = (
    "profile_visibility", "show_in_leaderboards", "allow_friend_requests", "activities_public_by_default",
)
EXPORT_FORMATS = ("json", "csv")
CSV_ACTIVITY_FIELDS = (
    "id", "activity_type", "name", "status", "started_at", "ended_at", "duration_seconds", "distance_km",
    "calories_burned", "xp_earned", "perceived_exertion", "mood_after", "is_manual", "notes",
)
TIMEFRAME_DAYS = {"week": 7, "month": 30, "year": 365}


def get_profile(user):
    profile = user.to_dict()
    profile["preferences"] = get_preferences(user)
    profile["current_streak"] = calculate_streak(user.id)
    return profile


def update_profile(user, data):
    if "first_name" in data:
        user.first_name = validate_person_name(data, "first_name", "First name")
    if "last_name" in data:
        user.last_name = validate_person_name(data, "last_name", "Last name")
    if "date_of_birth" in data:
        user.date_of_birth = validate_birth_date(data.get("date_of_birth"))
    if "gender" in data:
        user.gender = parse_choice(data.get("gender"), GENDERS, "gender")
    if "bio" in data:
        user.bio = optional_string(data, "bio", max_length=500, label="Bio")
    db.session.commit()
    logger.info(f"Profile updated for user {user.id}")
    return user.to_dict()


def update_fitness_profile(user, data):
    if "fitness_level" in data:
        user.fitness_level = parse_choice(data.get("fitness_level"), FITNESS_LEVELS, "fitness_level")
    if "primary_goal" in data:
        user.primary_goal = parse_choice(data.get("primary_goal"), FITNESS_GOALS, "primary_goal")
    db.session.commit()
    logger.info(f"Fitness profile updated for user {user.id}")
    return user.to_dict()


def set_avatar(user, data):
    url = optional_string(data, "avatar_url", max_length=500, label="Avatar URL")
    if url is not None:
        parsed = urlparse(url)
        if parsed.scheme not in ("http", "https") or not parsed.netloc:
            raise ValidationError("Avatar URL must be an http(s) URL")
    user.avatar_url = url
    db.session.commit()
    return {"avatar_url": user.avatar_url}


def get_preferences(user):
    prefs = dict(DEFAULT_PREFERENCES)
    prefs.update(user.preferences or {})
    return prefs


def update_preferences(user, data):
    unknown = sorted(set(data) - set(DEFAULT_PREFERENCES))
    if unknown:
        raise ValidationError(f"Unknown preference keys: {', '.join(unknown)}")
    prefs = get_preferences(user)
    for key, choices in PREFERENCE_CHOICES.items():
        if key in data:
            prefs[key] = parse_choice(data[key], choices, key)
    for key in BOOLEAN_PREFERENCES:
        if key in data:
            if not isinstance(data[key], bool):
                raise ValidationError(f"{key} must be true or false")
            prefs[key] = data[key]
    if "muted_notification_types" in data:
        prefs["muted_notification_types"] = parse_muted_types(data["muted_notification_types"])
    # JSON columns only notice reassignment
    user.preferences = prefs
    db.session.commit()
    return prefs


def change_password(user, data):
    if not check_password(data.get("current_password"), user.password_hash):
        raise AuthenticationError("Current password is incorrect")
    new_password = validate_password(data.get("new_password"), "New password")
    if check_password(new_password, user.password_hash):
        raise ValidationError("New password must be different from the current password")
    user.password_hash = hash_password(new_password)
    revoke_refresh_tokens(user.id)
    db.session.commit()
    logger.info(f"Password changed for user {user.id}")
    return {"message": "Password changed"}


def delete_account(user, data):
    if not check_password(data.get("password"), user.password_hash):
        raise AuthenticationError("Password is incorrect")
    now = utcnow()
    suffix = secrets.token_hex(6)
    user.is_deleted = True
    user.deleted_at = now
    user.email = f"deleted-{user.id}-{suffix}@deleted.invalid"
    user.username = f"deleted_{user.id}_{suffix}"
    user.email_verification_token = None
    user.password_reset_token = None
    revoke_refresh_tokens(user.id)
    db.session.commit()
    logger.info(f"User {user.id} deleted their account")
    return {"message": "Account deleted"}


def get_public_profile(user, user_id):
    target = get_user_or_404(user_id)
    if target.id != user.id:
        visibility = target.get_preference("profile_visibility")
        if visibility == "private":
            raise ForbiddenError("This profile is private")
        if visibility == "friends" and not are_friends(user.id, target.id):
            raise ForbiddenError("This profile is only visible to friends")
    completed = Activity.query.filter_by(user_id=target.id, status="completed").count()
    badges = UserBadge.query.filter_by(user_id=target.id, is_visible=True).count()
    profile = target.to_summary()
    profile.update({
        "first_name": target.first_name,
        "last_name": target.last_name,
        "bio": target.bio,
        "fitness_level": target.fitness_level,
        "experience_points": target.experience_points,
        "badges_count": badges,
        "completed_activities": completed,
        "current_streak": calculate_streak(target.id),
        "is_friend": are_friends(user.id, target.id),
        "member_since": target.created_at.isoformat(),
    })
    return profile


def get_analytics(user, timeframe):
    timeframe = parse_choice(timeframe, tuple(TIMEFRAME_DAYS), "timeframe", default="month")
    today = utcnow().date()
    start_date = today - timedelta(days=TIMEFRAME_DAYS[timeframe] - 1)
    start = datetime.combine(start_date, time.min)

    activities = Activity.query.filter(
        Activity.user_id == user.id,
        Activity.status == "completed",
        Activity.ended_at >= start,
    ).all()

    labels = [(start_date + timedelta(days=i)).strftime("%Y-%m-%d") for i in range((today - start_date).days + 1)]
    trend = [0] * len(labels)
    by_type = {}
    totals = {"activities": 0, "duration_minutes": 0.0, "distance_km": 0.0, "calories": 0.0}
    for activity in activities:
        minutes = activity.active_seconds() / 60
        totals["activities"] += 1
        totals["duration_minutes"] += minutes
        totals["distance_km"] += activity.distance_km or 0
        totals["calories"] += activity.calories_burned or 0

        bucket = by_type.setdefault(activity.activity_type, {
            "count": 0, "duration_minutes": 0.0, "distance_km": 0.0, "calories": 0.0,
        })
        bucket["count"] += 1
        bucket["duration_minutes"] += minutes
        bucket["distance_km"] += activity.distance_km or 0
        bucket["calories"] += activity.calories_burned or 0

        day_index = (activity.ended_at.date() - start_date).days
        if 0 <= day_index < len(trend):
            trend[day_index] += 1

    for values in [totals, *by_type.values()]:
        for key in ("duration_minutes", "distance_km", "calories"):
            values[key] = round(values[key], 2)

    logger.debug(f"Analytics fetched for user {user.username}: {totals['activities']} activities")
    return {
        "timeframe": timeframe,
        "start_date": start_date.isoformat(),
        "end_date": today.isoformat(),
        "totals": totals,
        "by_activity_type": by_type,
        "trends": {"labels": labels, "data": trend},
    }


def get_personal_records(user):
    records = {}
    metrics = (
        ("longest_distance_km", Activity.distance_km),
        ("longest_duration_minutes", None),
        ("most_calories", Activity.calories_burned),
    )
    types = [row[0] for row in db.session.query(Activity.activity_type).filter(
        Activity.user_id == user.id, Activity.status == "completed"
    ).distinct().all()]
    for activity_type in types:
        completed = Activity.query.filter_by(user_id=user.id, status="completed", activity_type=activity_type)
        entry = {}
        for key, column in metrics:
            if column is None:
                best = max(completed.all(), key=lambda a: a.active_seconds(), default=None)
                value = round(best.active_seconds() / 60, 2) if best else None
            else:
                best = completed.filter(column.isnot(None)).order_by(column.desc(), Activity.id).first()
                value = getattr(best, column.key) if best else None
            entry[key] = {"value": value, "activity_id": best.id if best and value is not None else None}
        records[activity_type] = entry
    return {"records": records}



def get_privacy_settings(user):
    prefs = get_preferences(user)
    return {key: prefs[key] for key in PRIVACY_KEYS}


def update_privacy_settings(user, data):
    unknown = sorted(set(data) - set(PRIVACY_KEYS))
    if unknown:
        raise ValidationError(f"Unknown privacy settings: {', '.join(unknown)}")
    update_preferences(user, data)
    logger.info(f"Privacy settings updated for user {user.id}")
    return get_privacy_settings(user)


def export_data(user, args):
    """Everything the user has logged, as a JSON document or an activities CSV."""
    export_format = parse_choice(args.get("format"), EXPORT_FORMATS, "format", default="json")
    include_personal = parse_bool(args.get("include_personal_data"), default=True)
    now = utcnow()
    activities = Activity.query.filter_by(user_id=user.id).order_by(Activity.started_at, Activity.id).all()
    logger.info(f"Exporting {len(activities)} activities for user {user.id} as {export_format}")

    if export_format == "csv":
        buffer = io.StringIO()
        writer = csv.DictWriter(buffer, fieldnames=CSV_ACTIVITY_FIELDS, extrasaction="ignore")
        writer.writeheader()
        for activity in activities:
            writer.writerow(activity.to_dict())
        return {
            "format": "csv",
            "filename": f"fitnessvibe-activities-{now:%Y%m%d}.csv",
            "content": buffer.getvalue(),
        }

    if include_personal:
        profile = user.to_dict()
        profile["preferences"] = get_preferences(user)
    else:
        profile = {"id": user.id, "username": user.username, "level": user.level,
                   "experience_points": user.experience_points}
    goals = Goal.query.filter_by(user_id=user.id, is_deleted=False).order_by(Goal.id).all()
    badges = UserBadge.query.filter_by(user_id=user.id).order_by(UserBadge.earned_at).all()
    transactions = XpTransaction.query.filter_by(user_id=user.id).order_by(XpTransaction.id).all()
    participations = ChallengeParticipant.query.filter_by(user_id=user.id).all()
    return {
        "format": "json",
        "exported_at": now.isoformat(),
        "profile": profile,
        "activities": [a.to_dict() for a in activities],
        "goals": [g.to_dict() for g in goals],
        "badges": [b.to_dict() for b in badges],
        "xp_transactions": [t.to_dict() for t in transactions],
        "challenges": [
            dict(p.to_dict(), challenge_id=p.challenge_id, title=p.challenge.title) for p in participations
        ],
    }

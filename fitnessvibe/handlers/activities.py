import logging
import random
from datetime import timedelta

from sqlalchemy import or_

from ..exceptions import ConflictError, ForbiddenError, ValidationError
from ..gamification import award_xp, evaluate_badges
from ..geo import route_statistics
from ..models import ACTIVITY_STATUSES, Activity, ActivityTemplate, RoutePoint, db, utcnow
from ..notifications import notify_friends
from ..streak import STREAK_MILESTONES, calculate_streak
from ..validation import (
    optional_number, optional_string, page_payload, pagination, parse_bool, parse_choice, parse_datetime,
    parse_number, require_string,
)
from . import are_friends, get_or_404
from .challenges import apply_activity_to_challenges
from .goals import apply_activity_to_goals
from .social import share_activity_record

logger = logging.getLogger(__name__)

ACTIVITY_TYPES = tuple(t.lower() for t in (
    "Running", "Cycling", "Swimming", "Walking", "Hiking",
    "Gym", "WeightLifting", "Cardio", "Yoga", "Pilates",
    "CrossFit", "Boxing", "MartialArts", "Dance", "Climbing",
    "Rowing", "Skiing", "Snowboarding", "Tennis", "Basketball",
    "Football", "Soccer", "Baseball", "Golf", "Volleyball",
    "Badminton", "TableTennis", "Surfing", "Kayaking", "Paddleboarding",
    "RockClimbing", "Bouldering", "Skateboarding", "Rollerblading",
    "Triathlon", "Duathlon", "Marathon", "HalfMarathon", "5K", "10K",
    "HIIT", "Calisthenics", "Stretching", "Meditation", "Other",
))

CALORIES_PER_HOUR = {
    "running": 600, "cycling": 500, "swimming": 650, "gym": 400,
    "yoga": 200, "hiking": 450, "walking": 300,
}
DEFAULT_CALORIES_PER_HOUR = 350
XP_PER_MINUTE = {
    "running": 5, "cycling": 4, "swimming": 6, "gym": 4,
    "yoga": 3, "hiking": 4, "walking": 2,
}
DEFAULT_XP_PER_MINUTE = 3
MIN_ACTIVITY_XP = 10
FITNESS_ADJUSTMENT = {"beginner": 0.8, "intermediate": 1.0, "advanced": 1.2, "elite": 1.2}
GPS_ACTIVITIES = ("running", "cycling", "walking", "hiking")
DEFAULT_SPEED_KMH = {"running": 10.0, "cycling": 20.0, "walking": 5.0, "hiking": 4.0}
DIFFICULTY_BANDS = {
    "running": (20, 45, 90),
    "cycling": (30, 60, 120),
}
DEFAULT_DIFFICULTY_BANDS = (30, 60, 90)
NAME_SUFFIXES = {
    "running": "Run", "cycling": "Ride", "swimming": "Swim", "gym": "Workout",
    "yoga": "Yoga Session", "hiking": "Hike", "walking": "Walk",
}
MOTIVATION = [
    "Let's do this, {name}! Your fitness journey continues!",
    "Time to move, {name}! Every workout matters!",
    "You've got this, {name}! Make it count!",
]
PERFORMANCE_RATINGS = ((3, "Easy Recovery"), (5, "Good Effort"), (7, "Strong Performance"), (9, "Excellent Workout"))
DEFAULT_TEMPLATES = [
    {"name": "Easy 5K", "activity_type": "running", "category": "cardio", "difficulty_level": 2,
     "estimated_duration_minutes": 30, "estimated_calories": 300, "is_featured": True,
     "description": "A relaxed 5 kilometre run at conversational pace.", "tags": ["5k", "beginner"]},
    {"name": "Interval Sprints", "activity_type": "running", "category": "hiit", "difficulty_level": 4,
     "estimated_duration_minutes": 25, "estimated_calories": 350,
     "description": "Alternate 1 minute hard efforts with 2 minutes easy jogging.", "tags": ["intervals"]},
    {"name": "Weekend Ride", "activity_type": "cycling", "category": "endurance", "difficulty_level": 3,
     "estimated_duration_minutes": 90, "estimated_calories": 750, "is_featured": True,
     "description": "A steady long ride to build aerobic base.", "required_equipment": ["bike", "helmet"]},
    {"name": "Full Body Strength", "activity_type": "gym", "category": "strength", "difficulty_level": 3,
     "estimated_duration_minutes": 45, "estimated_calories": 300,
     "description": "Compound lifts covering every major muscle group.", "required_equipment": ["barbell"]},
    {"name": "Morning Flow", "activity_type": "yoga", "category": "flexibility", "difficulty_level": 1,
     "estimated_duration_minutes": 20, "estimated_calories": 70, "is_featured": True,
     "description": "Gentle sun salutations to start the day.", "required_equipment": ["mat"]},
    {"name": "Lunch Walk", "activity_type": "walking", "category": "recovery", "difficulty_level": 1,
     "estimated_duration_minutes": 30, "estimated_calories": 150,
     "description": "A brisk walk to break up the day."},
]


def calorie_rate(activity_type):
    return CALORIES_PER_HOUR.get(activity_type, DEFAULT_CALORIES_PER_HOUR)


def xp_rate(activity_type):
    return XP_PER_MINUTE.get(activity_type, DEFAULT_XP_PER_MINUTE)


def estimate_calories(activity_type, minutes, fitness_level):
    adjustment = FITNESS_ADJUSTMENT.get(fitness_level, 1.0)
    return round(calorie_rate(activity_type) * (minutes / 60) * adjustment, 1)


def base_xp(activity_type, minutes):
    return max(MIN_ACTIVITY_XP, int(xp_rate(activity_type) * minutes))


def streak_bonus(base, streak):
    if streak < 7:
        return 0
    return int(min(streak // 7 * 0.1, 1.0) * base)


def difficulty_for(activity_type, minutes):
    easy, moderate, hard = DIFFICULTY_BANDS.get(activity_type, DEFAULT_DIFFICULTY_BANDS)
    if minutes < easy:
        return "Easy"
    if minutes < moderate:
        return "Moderate"
    if minutes < hard:
        return "Hard"
    return "Extreme"


def time_of_day(hour):
    if 5 <= hour < 12:
        return "Morning"
    if 12 <= hour < 17:
        return "Afternoon"
    if 17 <= hour < 22:
        return "Evening"
    return "Late Night"


def generate_activity_name(activity_type, first_name, when):
    suffix = NAME_SUFFIXES.get(activity_type, activity_type.title())
    return f"{first_name}'s {time_of_day(when.hour)} {suffix}"


def performance_rating(perceived_exertion):
    exertion = perceived_exertion or 5
    for ceiling, label in PERFORMANCE_RATINGS:
        if exertion <= ceiling:
            return label
    return "Beast Mode!"


def parse_activity_type(value):
    return parse_choice(value, ACTIVITY_TYPES, "activity_type")


def parse_tags(value):
    if value is None:
        return []
    if not isinstance(value, list):
        raise ValidationError("tags must be a list")
    if len(value) > 10:
        raise ValidationError("No more than 10 tags are allowed")
    tags = []
    for tag in value:
        if not isinstance(tag, str) or not tag.strip():
            raise ValidationError("Tags must be non-empty strings")
        if len(tag.strip()) > 30:
            raise ValidationError("Tags must be 30 characters or fewer")
        tags.append(tag.strip())
    return tags


def _owned_activity(user, activity_id):
    activity = get_or_404(Activity, activity_id, "Activity")
    if activity.user_id != user.id:
        logger.error(f"Unauthorized access to activity {activity_id} by user {user.id}")
        raise ForbiddenError("You can only modify your own activities")
    return activity


def _visible_activity(user, activity_id):
    activity = get_or_404(Activity, activity_id, "Activity")
    if activity.user_id == user.id:
        return activity
    if activity.is_public and are_friends(user.id, activity.user_id):
        return activity
    logger.error(f"User {user.id} may not view activity {activity_id}")
    raise ForbiddenError("You do not have access to this activity")


def _live_session(user_id):
    return Activity.query.filter(
        Activity.user_id == user_id, Activity.status.in_(("active", "paused"))
    ).first()


def start_activity(user, data):
    template = None
    if data.get("template_id") is not None:
        template_id = parse_number(data.get("template_id"), "template_id", minimum=1, integer=True)
        template = get_or_404(ActivityTemplate, template_id, "Activity template")
    activity_type = parse_activity_type(
        data.get("activity_type") or (template.activity_type if template else None)
    )

    if _live_session(user.id):
        raise ConflictError("You already have an activity in progress")

    latitude = optional_number(data, "start_latitude", minimum=-90, maximum=90)
    longitude = optional_number(data, "start_longitude", minimum=-180, maximum=180)
    if (latitude is None) != (longitude is None):
        raise ValidationError("Both start_latitude and start_longitude are required for GPS tracking")
    altitude = optional_number(data, "start_altitude", minimum=-500, maximum=9000)
    planned = optional_number(data, "planned_duration_minutes", minimum=1, maximum=1440, integer=True)
    notes = optional_string(data, "notes", max_length=500, label="Notes")
    tags = parse_tags(data.get("tags"))
    now = utcnow()
    name = optional_string(data, "name", max_length=100, label="Name") or \
        generate_activity_name(activity_type, user.first_name, now)

    activity = Activity(
        user_id=user.id,
        template_id=template.id if template else None,
        activity_type=activity_type,
        name=name,
        status="active",
        started_at=now,
        planned_duration_minutes=planned,
        start_latitude=latitude,
        start_longitude=longitude,
        start_altitude=altitude,
        notes=notes,
        tags=tags,
        is_public=parse_bool(data.get("is_public"), default=user.get_preference("activities_public_by_default")),
    )
    db.session.add(activity)
    if template:
        template.usage_count += 1
    db.session.commit()
    logger.info(f"Activity {activity.id} ({activity_type}) started by user {user.id}")

    if activity.is_public:
        notify_friends(
            user, "friend_activity_started", "Friend is working out",
            f"{user.display_name} just started {activity.name}", {"activity_id": activity.id},
        )
        db.session.commit()

    minutes = planned or (template.estimated_duration_minutes if template else 30)
    is_gps = activity_type in GPS_ACTIVITIES
    return {
        "activity": activity.to_dict(),
        "estimated_stats": {
            "duration_minutes": minutes,
            "calories": int(estimate_calories(activity_type, minutes, user.fitness_level)),
            "distance_km": round(DEFAULT_SPEED_KMH.get(activity_type, 0.0) * minutes / 60, 2) if is_gps else 0.0,
            "xp": int(xp_rate(activity_type) * minutes),
            "difficulty": difficulty_for(activity_type, minutes),
        },
        "is_gps_enabled": is_gps or latitude is not None,
        "live_session_url": f"/live-session/{activity.id}",
        "motivational_message": random.choice(MOTIVATION).format(name=user.first_name),
    }


def pause_activity(user, activity_id):
    activity = _owned_activity(user, activity_id)
    if activity.status != "active":
        raise ConflictError(f"Activity is {activity.status}, only active activities can be paused")
    activity.status = "paused"
    activity.paused_at = utcnow()
    db.session.commit()
    logger.info(f"Activity {activity.id} paused")
    return activity.to_dict()


def _close_pause(activity, now):
    if activity.paused_at:
        activity.paused_seconds += max(int((now - activity.paused_at).total_seconds()), 0)
        activity.paused_at = None


def resume_activity(user, activity_id):
    activity = _owned_activity(user, activity_id)
    if activity.status != "paused":
        raise ConflictError(f"Activity is {activity.status}, only paused activities can be resumed")
    _close_pause(activity, utcnow())
    activity.status = "active"
    db.session.commit()
    logger.info(f"Activity {activity.id} resumed")
    return activity.to_dict()


def complete_activity(user, activity_id, data):
    activity = _owned_activity(user, activity_id)
    if activity.status not in ("active", "paused"):
        raise ConflictError(f"Activity session is already {activity.status}")

    now = utcnow()
    end_time = parse_datetime(data.get("end_time"), "end_time") or now
    if end_time > now:
        raise ValidationError("end_time cannot be in the future")
    if end_time < activity.started_at:
        raise ValidationError("end_time cannot be before the activity started")
    manual_distance = optional_number(data, "manual_distance_km", minimum=0, maximum=1000)
    manual_calories = optional_number(data, "manual_calories", minimum=0, maximum=20000)
    exertion = optional_number(data, "perceived_exertion", minimum=1, maximum=10, integer=True)
    mood = optional_string(data, "mood_after", max_length=30, label="Mood")
    notes = optional_string(data, "notes", max_length=500, label="Notes")
    caption = optional_string(data, "caption", max_length=500, label="Caption")

    if activity.status == "paused":
        _close_pause(activity, end_time)
    activity.status = "completed"
    activity.ended_at = end_time
    activity.perceived_exertion = exertion
    activity.mood_after = mood
    if notes:
        activity.notes = notes

    if manual_distance is not None:
        activity.distance_km = round(manual_distance, 3)
    elif activity.route_points:
        activity.distance_km = round(route_statistics(activity.route_points)["total_distance_m"] / 1000, 3)
    minutes = activity.active_seconds() / 60
    if manual_calories is not None:
        activity.calories_burned = manual_calories
    else:
        activity.calories_burned = estimate_calories(activity.activity_type, minutes, user.fitness_level)

    result = reward_activity(user, activity)
    share = None
    if parse_bool(data.get("share_to_feed")):
        share = share_activity_record(user, activity, caption or "", data.get("privacy") or "friends")
    db.session.commit()
    logger.info(f"Activity {activity.id} completed by user {user.id}: {result['rewards']['xp_earned']} XP")
    if share is not None:
        result["shared_post_id"] = share.id
    return result


def cancel_activity(user, activity_id, data):
    activity = _owned_activity(user, activity_id)
    if activity.status in ("completed", "cancelled"):
        raise ConflictError(f"Activity is already {activity.status}")
    activity.cancel_reason = optional_string(data, "reason", max_length=200, label="Reason")
    activity.status = "cancelled"
    activity.paused_at = None
    activity.ended_at = utcnow()
    db.session.commit()
    logger.info(f"Activity {activity.id} cancelled by user {user.id}")
    return activity.to_dict()


def log_manual_activity(user, data):
    activity_type = parse_activity_type(data.get("activity_type"))
    started_at = parse_datetime(data.get("started_at"), "started_at", required=True)
    duration = parse_number(data.get("duration_minutes"), "duration_minutes", minimum=1, maximum=1440, integer=True)
    ended_at = started_at + timedelta(minutes=duration)
    if ended_at > utcnow():
        raise ValidationError("A manual activity cannot end in the future")
    distance = optional_number(data, "distance_km", minimum=0, maximum=1000)
    calories = optional_number(data, "calories", minimum=0, maximum=20000)
    name = optional_string(data, "name", max_length=100, label="Name") or \
        generate_activity_name(activity_type, user.first_name, started_at)

    activity = Activity(
        user_id=user.id,
        activity_type=activity_type,
        name=name,
        status="completed",
        started_at=started_at,
        ended_at=ended_at,
        distance_km=distance,
        calories_burned=calories if calories is not None else
        estimate_calories(activity_type, duration, user.fitness_level),
        notes=optional_string(data, "notes", max_length=500, label="Notes"),
        tags=parse_tags(data.get("tags")),
        is_public=parse_bool(data.get("is_public"), default=user.get_preference("activities_public_by_default")),
        is_manual=True,
    )
    db.session.add(activity)
    db.session.flush()
    result = reward_activity(user, activity)
    db.session.commit()
    logger.info(f"Manual activity {activity.id} logged by user {user.id}")
    return result


def reward_activity(user, activity):
    """XP, goals, challenges, badges and records for a newly completed activity."""
    db.session.flush()
    starting_level = user.level
    minutes = activity.active_seconds() / 60
    streak = calculate_streak(user.id)

    base = base_xp(activity.activity_type, minutes)
    bonus = streak_bonus(base, streak)
    total, _ = award_xp(
        user, base, f"Completed {activity.name}", source="activity", source_id=activity.id, bonus=bonus
    )
    activity.xp_earned = total

    goals = apply_activity_to_goals(user, activity)
    challenges = apply_activity_to_challenges(user, activity)
    badges = evaluate_badges(user, context=f"Activity {activity.id}")
    records = detect_personal_records(user, activity)

    rewards = {
        "xp_earned": base,
        "xp_bonus": bonus,
        "badges_earned": [b.to_dict() for b in badges],
        "leveled_up": user.level > starting_level,
        "new_level": user.level,
        "streak_days": streak,
        "streak_milestone": streak if streak in STREAK_MILESTONES else None,
        "goals_completed": [g.id for g in goals],
        "challenges_completed": [c.id for c in challenges],
    }
    return {
        "activity": activity.to_dict(),
        "stats": {
            "duration_minutes": round(minutes, 2),
            "distance_km": activity.distance_km,
            "calories_burned": activity.calories_burned,
            "average_pace_min_per_km": _pace(minutes, activity.distance_km),
            "route_points": len(activity.route_points),
        },
        "rewards": rewards,
        "personal_records": records,
        "performance_rating": performance_rating(activity.perceived_exertion),
        "celebration_message": celebration_message(activity, minutes, rewards, records),
    }


def _pace(minutes, distance_km):
    if not distance_km:
        return None
    return round(minutes / distance_km, 2)


def detect_personal_records(user, activity):
    previous = Activity.query.filter(
        Activity.user_id == user.id,
        Activity.status == "completed",
        Activity.activity_type == activity.activity_type,
        Activity.id != activity.id,
    ).all()
    metrics = {
        "distance_km": lambda a: a.distance_km,
        "duration_minutes": lambda a: round(a.active_seconds() / 60, 2),
        "calories_burned": lambda a: a.calories_burned,
    }
    new_records, improved = [], []
    for metric, value_of in metrics.items():
        value = value_of(activity)
        if not value:
            continue
        best = max((value_of(a) for a in previous if value_of(a)), default=None)
        if best is None:
            new_records.append({"metric": metric, "value": value, "previous": None})
        elif value > best:
            improved.append({"metric": metric, "value": value, "previous": best})
    return {"new_records": new_records, "improved_records": improved}


def celebration_message(activity, minutes, rewards, records):
    parts = [f"Workout complete! You crushed {minutes:.0f} minutes of {activity.activity_type}!"]
    parts.append(f"Earned {rewards['xp_earned'] + rewards['xp_bonus']} XP!")
    if rewards["leveled_up"]:
        parts.append(f"LEVEL UP! Welcome to level {rewards['new_level']}!")
    if rewards["badges_earned"]:
        count = len(rewards["badges_earned"])
        parts.append(f"Unlocked {count} new badge{'s' if count > 1 else ''}!")
    if records["improved_records"]:
        parts.append("NEW PERSONAL RECORD! You're stronger than ever!")
    if rewards["streak_days"] > 1:
        parts.append(f"{rewards['streak_days']}-day streak! Consistency is key!")
    return " ".join(parts)


def get_activity(user, activity_id):
    activity = _visible_activity(user, activity_id)
    data = activity.to_dict()
    data["user"] = activity.user.to_summary()
    data["route_point_count"] = len(activity.route_points)
    return data


def list_user_activities(user, args):
    page, page_size = pagination(args)
    query = Activity.query.filter(Activity.user_id == user.id)
    if args.get("status"):
        query = query.filter(Activity.status == parse_choice(args.get("status"), ACTIVITY_STATUSES, "status"))
    if args.get("activity_type"):
        query = query.filter(Activity.activity_type == parse_activity_type(args.get("activity_type")))
    start = parse_datetime(args.get("from"), "from")
    end = parse_datetime(args.get("to"), "to")
    if start and end and end < start:
        raise ValidationError("'to' must be after 'from'")
    if start:
        query = query.filter(Activity.started_at >= start)
    if end:
        query = query.filter(Activity.started_at <= end)
    page_obj = query.order_by(Activity.started_at.desc(), Activity.id.desc()).paginate(
        page=page, per_page=page_size, error_out=False
    )
    logger.debug(f"Fetched {len(page_obj.items)} activities for user {user.username}")
    return page_payload(page_obj, [a.to_dict() for a in page_obj.items])


def get_live_activity(user, activity_id):
    activity = _visible_activity(user, activity_id)
    now = utcnow()
    end = activity.ended_at or now
    active_seconds = activity.active_seconds(now)
    stats = route_statistics(activity.route_points)
    distance_km = round(stats["total_distance_m"] / 1000, 3)
    if activity.distance_km is not None and not activity.is_live:
        distance_km = activity.distance_km
    minutes = active_seconds / 60
    last_point = activity.route_points[-1].to_dict() if activity.route_points else None
    return {
        "id": activity.id,
        "name": activity.name,
        "activity_type": activity.activity_type,
        "status": activity.status,
        "user": activity.user.to_summary(),
        "started_at": activity.started_at.isoformat(),
        "elapsed_seconds": max(int((end - activity.started_at).total_seconds()), 0),
        "active_seconds": active_seconds,
        "distance_km": distance_km,
        "current_pace_min_per_km": _pace(minutes, distance_km),
        "calories_so_far": estimate_calories(activity.activity_type, minutes, activity.user.fitness_level),
        "point_count": stats["point_count"],
        "last_point": last_point,
        "cheers": [c.to_dict() for c in sorted(activity.cheers, key=lambda c: c.created_at, reverse=True)],
    }


def add_route_point(user, activity_id, data):
    activity = _owned_activity(user, activity_id)
    if activity.status != "active":
        raise ConflictError(f"Route points can only be added to an active activity (currently {activity.status})")
    latitude = parse_number(data.get("latitude"), "latitude", minimum=-90, maximum=90)
    longitude = parse_number(data.get("longitude"), "longitude", minimum=-180, maximum=180)
    elevation = optional_number(
        data, "elevation", minimum=-500, maximum=10000, exclusive_minimum=True, exclusive_maximum=True
    )
    speed = optional_number(data, "speed", minimum=0)
    accuracy = optional_number(data, "accuracy", minimum=0)
    now = utcnow()
    recorded_at = parse_datetime(data.get("timestamp"), "timestamp") or now
    if recorded_at > now:
        raise ValidationError("timestamp cannot be in the future")

    sequence = RoutePoint.query.filter_by(activity_id=activity.id).count() + 1
    point = RoutePoint(
        activity_id=activity.id, sequence=sequence, latitude=latitude, longitude=longitude,
        elevation=elevation, speed=speed, accuracy=accuracy, recorded_at=recorded_at,
    )
    db.session.add(point)
    db.session.commit()
    logger.debug(f"Route point {sequence} added to activity {activity.id}")
    return {"point": point.to_dict(), "point_count": sequence}


def get_route(user, activity_id):
    activity = _visible_activity(user, activity_id)
    points = activity.route_points
    return {
        "activity_id": activity.id,
        "points": [p.to_dict() for p in points],
        "statistics": route_statistics(points),
    }


def get_route_stats(user, activity_id, args):
    activity = _visible_activity(user, activity_id)
    start = parse_datetime(args.get("start_time"), "start_time")
    end = parse_datetime(args.get("end_time"), "end_time")
    if start and end and end < start:
        raise ValidationError("end_time must be after start_time")
    points = [
        p for p in activity.route_points
        if (start is None or p.recorded_at >= start) and (end is None or p.recorded_at <= end)
    ]
    stats = route_statistics(points)
    stats.update({
        "activity_id": activity.id,
        "start_time": start.isoformat() if start else None,
        "end_time": end.isoformat() if end else None,
    })
    return stats


def list_templates(args):
    page, page_size = pagination(args)
    query = ActivityTemplate.query
    if args.get("category"):
        query = query.filter(ActivityTemplate.category == args.get("category").strip().lower())
    if args.get("activity_type"):
        query = query.filter(ActivityTemplate.activity_type == parse_activity_type(args.get("activity_type")))
    if args.get("search"):
        term = f"%{args.get('search').strip()}%"
        query = query.filter(or_(ActivityTemplate.name.ilike(term), ActivityTemplate.description.ilike(term)))
    if args.get("featured") is not None:
        query = query.filter(ActivityTemplate.is_featured.is_(parse_bool(args.get("featured"))))
    page_obj = query.order_by(
        ActivityTemplate.is_featured.desc(), ActivityTemplate.usage_count.desc(), ActivityTemplate.id
    ).paginate(page=page, per_page=page_size, error_out=False)
    return page_payload(page_obj, [t.to_dict() for t in page_obj.items])


def _string_list(value, field):
    if value is None:
        return []
    if not isinstance(value, list) or not all(isinstance(v, str) and v.strip() for v in value):
        raise ValidationError(f"{field} must be a list of strings")
    return [v.strip() for v in value]


def create_template(user, data):
    template = ActivityTemplate(
        name=require_string(data, "name", max_length=100),
        description=optional_string(data, "description", max_length=2000) or "",
        activity_type=parse_activity_type(data.get("activity_type")),
        category=require_string(data, "category", max_length=30).lower(),
        difficulty_level=parse_number(data.get("difficulty_level"), "difficulty_level",
                                      minimum=1, maximum=5, integer=True),
        estimated_duration_minutes=parse_number(data.get("estimated_duration_minutes"),
                                                "estimated_duration_minutes", minimum=0,
                                                exclusive_minimum=True, integer=True),
        estimated_calories=parse_number(data.get("estimated_calories"), "estimated_calories",
                                        minimum=0, exclusive_minimum=True, integer=True),
        required_equipment=_string_list(data.get("required_equipment"), "required_equipment"),
        tags=parse_tags(data.get("tags")),
        icon_url=optional_string(data, "icon_url", max_length=500),
        is_featured=parse_bool(data.get("is_featured")),
    )
    db.session.add(template)
    db.session.commit()
    logger.info(f"Activity template '{template.name}' created by admin {user.id}")
    return template.to_dict()


def rate_template(user, template_id, data):
    template = get_or_404(ActivityTemplate, template_id, "Activity template")
    rating = parse_number(data.get("rating"), "rating", minimum=1, maximum=5, integer=True)
    template.add_rating(rating)
    db.session.commit()
    logger.info(f"Template {template.id} rated {rating} by user {user.id}")
    return template.to_dict()


def seed_templates():
    existing = {t.name for t in ActivityTemplate.query.all()}
    added = 0
    for entry in DEFAULT_TEMPLATES:
        if entry["name"] in existing:
            continue
        db.session.add(ActivityTemplate(**entry))
        added += 1
    if added:
        db.session.commit()
        logger.info(f"Seeded {added} activity templates")
    return added

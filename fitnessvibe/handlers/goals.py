import logging
import math
from datetime import timedelta

from ..exceptions import ConflictError, ForbiddenError, NotFoundError, ValidationError
from ..gamification import award_xp, evaluate_badges
from ..models import GOAL_FREQUENCIES, GOAL_STATUSES, GOAL_TYPES, Activity, Goal, GoalProgress, db, utcnow
from ..notifications import notify
from ..validation import (
    optional_number, optional_string, page_payload, pagination, parse_bool, parse_choice, parse_datetime,
    parse_number, require_string,
)
from . import get_or_404

logger = logging.getLogger(__name__)

GOAL_COMPLETION_XP = 50
ACTIVITY_DRIVEN_TYPES = ("distance", "duration", "frequency", "calories")
DIFFICULTIES = ("beginner", "intermediate", "advanced")
SUGGESTION_MULTIPLIERS = {"beginner": 1.05, "intermediate": 1.1, "advanced": 1.2}
BASELINE_DAYS = 28

GOAL_TEMPLATES = [
    {"id": "first-5k", "name": "Run Your First 5K", "description": "Build up to 5 km of running in a week",
     "category": "running", "difficulty": "beginner", "goal_type": "distance", "frequency": "weekly",
     "target_value": 5.0, "unit": "km", "activity_type": "running", "duration_days": 28},
    {"id": "weekly-10k", "name": "10K a Week", "description": "Run 10 km every week",
     "category": "running", "difficulty": "intermediate", "goal_type": "distance", "frequency": "weekly",
     "target_value": 10.0, "unit": "km", "activity_type": "running", "duration_days": 56},
    {"id": "marathon-base", "name": "Marathon Base", "description": "Hold 40 km of running per week",
     "category": "running", "difficulty": "advanced", "goal_type": "distance", "frequency": "weekly",
     "target_value": 40.0, "unit": "km", "activity_type": "running", "duration_days": 84},
    {"id": "move-150", "name": "150 Active Minutes", "description": "Reach the weekly recommended activity time",
     "category": "general", "difficulty": "beginner", "goal_type": "duration", "frequency": "weekly",
     "target_value": 150.0, "unit": "minutes", "activity_type": None, "duration_days": 28},
    {"id": "three-a-week", "name": "Three Workouts a Week", "description": "Work out at least three times a week",
     "category": "consistency", "difficulty": "beginner", "goal_type": "frequency", "frequency": "weekly",
     "target_value": 3.0, "unit": "workouts", "activity_type": None, "duration_days": 28},
    {"id": "five-a-week", "name": "Five Workouts a Week", "description": "Train five times every week",
     "category": "consistency", "difficulty": "intermediate", "goal_type": "frequency", "frequency": "weekly",
     "target_value": 5.0, "unit": "workouts", "activity_type": None, "duration_days": 42},
    {"id": "cycling-100", "name": "Century Rider", "description": "Ride 100 km in a week",
     "category": "cycling", "difficulty": "advanced", "goal_type": "distance", "frequency": "weekly",
     "target_value": 100.0, "unit": "km", "activity_type": "cycling", "duration_days": 56},
    {"id": "burn-2000", "name": "Burn 2000", "description": "Burn 2000 kcal through exercise each week",
     "category": "weight_loss", "difficulty": "intermediate", "goal_type": "calories", "frequency": "weekly",
     "target_value": 2000.0, "unit": "kcal", "activity_type": None, "duration_days": 42},
]
SUGGESTION_UNITS = {"distance": "km", "duration": "minutes", "frequency": "workouts", "calories": "kcal"}


def _owned_goal(user, goal_id):
    goal = get_or_404(Goal, goal_id, "Goal")
    if goal.user_id != user.id:
        logger.error(f"Unauthorized access to goal {goal_id} by user {user.id}")
        raise ForbiddenError("You can only access your own goals")
    return goal


def _complete(user, goal, now):
    """Mark completed and hand out the rewards. Caller commits."""
    goal.status = "completed"
    goal.completed_at = goal.completed_at or now
    award_xp(user, GOAL_COMPLETION_XP, f"Completed goal: {goal.title}", source="goal", source_id=goal.id)
    badges = evaluate_badges(user, context=f"Goal {goal.id}")
    notify(user.id, "goal_completed", "Goal completed!",
           f"You completed your goal '{goal.title}'. +{GOAL_COMPLETION_XP} XP", {"goal_id": goal.id})
    logger.info(f"Goal {goal.id} completed by user {user.id}")
    return badges


def _refresh(user, goals):
    """Apply time-based status changes; completing on read still pays out."""
    now = utcnow()
    changed = False
    for goal in goals:
        previous = goal.status
        if previous != "active":
            continue
        if goal.current_value >= goal.target_value:
            _complete(user, goal, now)
            changed = True
        elif goal.refresh_status(now) != previous:
            logger.info(f"Goal {goal.id} is now {goal.status}")
            changed = True
    if changed:
        db.session.commit()


def create_goal(user, data):
    title = require_string(data, "title", max_length=100)
    goal_type = parse_choice(data.get("type") or data.get("goal_type"), GOAL_TYPES, "type")
    frequency = parse_choice(data.get("frequency"), GOAL_FREQUENCIES, "frequency")
    target = parse_number(data.get("target_value"), "target_value", minimum=0, exclusive_minimum=True)
    unit = require_string(data, "unit", max_length=30)
    start_date = parse_datetime(data.get("start_date"), "start_date") or utcnow()
    end_date = parse_datetime(data.get("end_date"), "end_date", required=True)
    if end_date <= start_date:
        raise ValidationError("end_date must be after start_date")
    activity_type = optional_string(data, "activity_type", max_length=50)

    goal = Goal(
        user_id=user.id,
        title=title,
        description=optional_string(data, "description", max_length=1000),
        goal_type=goal_type,
        frequency=frequency,
        target_value=target,
        unit=unit,
        activity_type=activity_type.lower() if activity_type else None,
        start_date=start_date,
        end_date=end_date,
        is_adaptive=parse_bool(data.get("is_adaptive")),
    )
    db.session.add(goal)
    db.session.commit()
    logger.info(f"Goal created: {title} for user {user.username}")
    return goal.to_dict()


def list_goals(user, args):
    page, page_size = pagination(args)
    _refresh(user, Goal.query.filter_by(user_id=user.id, is_deleted=False, status="active").all())
    query = Goal.query.filter_by(user_id=user.id, is_deleted=False)
    if args.get("status"):
        query = query.filter(Goal.status == parse_choice(args.get("status"), GOAL_STATUSES, "status"))
    page_obj = query.order_by(Goal.end_date, Goal.id).paginate(page=page, per_page=page_size, error_out=False)
    return page_payload(page_obj, [g.to_dict() for g in page_obj.items])


def get_goal(user, goal_id):
    goal = _owned_goal(user, goal_id)
    _refresh(user, [goal])
    return goal.to_dict()


def update_goal(user, goal_id, data):
    goal = _owned_goal(user, goal_id)
    if goal.status in ("completed", "abandoned"):
        raise ConflictError(f"A {goal.status} goal cannot be edited")
    if "title" in data:
        goal.title = require_string(data, "title", max_length=100)
    if "description" in data:
        goal.description = optional_string(data, "description", max_length=1000)
    if "target_value" in data:
        goal.target_value = parse_number(data.get("target_value"), "target_value",
                                         minimum=0, exclusive_minimum=True)
    if "end_date" in data:
        end_date = parse_datetime(data.get("end_date"), "end_date", required=True)
        if end_date <= goal.start_date:
            raise ValidationError("end_date must be after start_date")
        goal.end_date = end_date
        if goal.status == "expired" and end_date > utcnow():
            goal.status = "active"
            logger.info(f"Goal {goal.id} reactivated by deadline extension")
    db.session.commit()
    _refresh(user, [goal])
    return goal.to_dict()


def delete_goal(user, goal_id):
    goal = _owned_goal(user, goal_id)
    goal.is_deleted = True
    db.session.commit()
    logger.info(f"Goal {goal.id} deleted by user {user.id}")
    return {"message": "Goal deleted"}


def update_progress(user, goal_id, data):
    goal = _owned_goal(user, goal_id)
    if goal.status != "active":
        raise ConflictError(f"Progress can only be recorded on an active goal (currently {goal.status})")
    if "increment" in data:
        delta = parse_number(data.get("increment"), "increment", minimum=0, exclusive_minimum=True)
        value = goal.current_value + delta
    elif "value" in data:
        value = parse_number(data.get("value"), "value", minimum=0)
        delta = value - goal.current_value
    else:
        raise ValidationError("Either value or increment is required")
    return _record_progress(user, goal, value, delta, "manual")


def _record_progress(user, goal, value, delta, source, activity_id=None):
    now = utcnow()
    goal.current_value = value
    db.session.add(GoalProgress(
        goal_id=goal.id, value=value, delta=delta, source=source, activity_id=activity_id, recorded_at=now,
    ))
    badges = []
    completed = goal.current_value >= goal.target_value
    if completed:
        badges = _complete(user, goal, now)
    if source == "manual":
        db.session.commit()
    result = goal.to_dict()
    result["just_completed"] = completed
    result["badges_earned"] = [b.to_dict() for b in badges]
    return result


def complete_goal(user, goal_id):
    goal = _owned_goal(user, goal_id)
    if goal.status not in ("active", "paused"):
        raise ConflictError(f"Goal is already {goal.status}")
    badges = _complete(user, goal, utcnow())
    db.session.commit()
    result = goal.to_dict()
    result["badges_earned"] = [b.to_dict() for b in badges]
    return result


def _transition(user, goal_id, allowed, target):
    goal = _owned_goal(user, goal_id)
    if goal.status not in allowed:
        raise ConflictError(f"Cannot change a {goal.status} goal to {target}")
    goal.status = target
    db.session.commit()
    logger.info(f"Goal {goal.id} is now {target}")
    return goal.to_dict()


def pause_goal(user, goal_id):
    return _transition(user, goal_id, ("active",), "paused")


def resume_goal(user, goal_id):
    return _transition(user, goal_id, ("paused",), "active")


def abandon_goal(user, goal_id):
    return _transition(user, goal_id, ("active", "paused", "expired"), "abandoned")


def progress_history(user, goal_id):
    goal = _owned_goal(user, goal_id)
    return {
        "goal": goal.to_dict(),
        "entries": [entry.to_dict() for entry in goal.progress_entries],
    }


def analytics(user):
    _refresh(user, Goal.query.filter_by(user_id=user.id, is_deleted=False, status="active").all())
    goals = Goal.query.filter_by(user_id=user.id, is_deleted=False).all()
    by_status = {status: 0 for status in GOAL_STATUSES}
    by_type = {}
    for goal in goals:
        by_status[goal.status] += 1
        by_type[goal.goal_type] = by_type.get(goal.goal_type, 0) + 1
    finished = by_status["completed"] + by_status["expired"] + by_status["abandoned"]
    return {
        "total": len(goals),
        "by_status": by_status,
        "by_type": by_type,
        "completion_rate": round(by_status["completed"] / finished * 100, 2) if finished else 0.0,
        "average_progress": round(sum(g.progress_percentage for g in goals) / len(goals), 2) if goals else 0.0,
    }


def activity_contribution(goal, activity):
    if goal.goal_type == "distance":
        return activity.distance_km or 0.0
    if goal.goal_type == "duration":
        return round(activity.active_seconds() / 60, 2)
    if goal.goal_type == "frequency":
        return 1.0
    if goal.goal_type == "calories":
        return activity.calories_burned or 0.0
    return 0.0


def apply_activity_to_goals(user, activity):
    """Feed a completed activity into matching active goals; returns goals it completed."""
    ended = activity.ended_at or utcnow()
    goals = Goal.query.filter(
        Goal.user_id == user.id,
        Goal.is_deleted.is_(False),
        Goal.status == "active",
        Goal.goal_type.in_(ACTIVITY_DRIVEN_TYPES),
        Goal.start_date <= ended,
        Goal.end_date >= ended,
    ).all()
    completed = []
    for goal in goals:
        if goal.activity_type and goal.activity_type != activity.activity_type:
            continue
        delta = activity_contribution(goal, activity)
        if delta <= 0:
            continue
        result = _record_progress(user, goal, goal.current_value + delta, delta, "activity", activity.id)
        if result["just_completed"]:
            completed.append(goal)
    return completed


def list_goal_templates(args):
    templates = GOAL_TEMPLATES
    if args.get("category"):
        category = args.get("category").strip().lower()
        templates = [t for t in templates if t["category"] == category]
    if args.get("difficulty"):
        difficulty = parse_choice(args.get("difficulty"), DIFFICULTIES, "difficulty")
        templates = [t for t in templates if t["difficulty"] == difficulty]
    return {"items": templates, "total": len(templates)}


def create_goal_from_template(user, template_id, data):
    template = next((t for t in GOAL_TEMPLATES if t["id"] == template_id), None)
    if template is None:
        raise NotFoundError("Goal template", template_id)
    start_date = parse_datetime(data.get("start_date"), "start_date") or utcnow()
    payload = {
        "title": template["name"],
        "description": template["description"],
        "type": template["goal_type"],
        "frequency": template["frequency"],
        "target_value": template["target_value"],
        "unit": template["unit"],
        "activity_type": template["activity_type"],
        "start_date": start_date.isoformat(),
        "end_date": (start_date + timedelta(days=template["duration_days"])).isoformat(),
    }
    for key in ("title", "description", "target_value", "end_date", "is_adaptive"):
        if key in data:
            payload[key] = data[key]
    logger.info(f"User {user.id} creating goal from template '{template_id}'")
    return create_goal(user, payload)


def _weekly_baseline(user, now):
    since = now - timedelta(days=BASELINE_DAYS)
    activities = Activity.query.filter(
        Activity.user_id == user.id, Activity.status == "completed", Activity.ended_at >= since
    ).all()
    weeks = BASELINE_DAYS / 7
    return {
        "distance": sum(a.distance_km or 0.0 for a in activities) / weeks,
        "duration": sum(a.active_seconds() for a in activities) / 60 / weeks,
        "frequency": len(activities) / weeks,
        "calories": sum(a.calories_burned or 0.0 for a in activities) / weeks,
    }


def goal_suggestions(user, args):
    """Weekly goals a little above what the user has done over the last four weeks."""
    default = "advanced" if user.fitness_level == "elite" else (user.fitness_level or "beginner")
    if default not in DIFFICULTIES:
        default = "beginner"
    difficulty = parse_choice(args.get("difficulty"), DIFFICULTIES, "difficulty", default=default)
    multiplier = SUGGESTION_MULTIPLIERS[difficulty]
    baseline = _weekly_baseline(user, utcnow())

    items = []
    for goal_type, unit in SUGGESTION_UNITS.items():
        current = baseline[goal_type]
        if current <= 0:
            continue
        if goal_type == "frequency":
            target = float(math.ceil(current * multiplier))
        else:
            target = round(current * multiplier, 1)
        items.append({
            "title": f"Weekly {goal_type} boost",
            "type": goal_type,
            "frequency": "weekly",
            "target_value": target,
            "unit": unit,
            "current_weekly_average": round(current, 2),
            "reason": f"You average {round(current, 1)} {unit} a week",
        })
    if not items:
        for template in GOAL_TEMPLATES:
            if template["difficulty"] != difficulty:
                continue
            items.append({
                "title": template["name"],
                "type": template["goal_type"],
                "frequency": template["frequency"],
                "target_value": template["target_value"],
                "unit": template["unit"],
                "current_weekly_average": 0.0,
                "reason": "A starting point until you have some activity history",
                "template_id": template["id"],
            })
    return {"difficulty": difficulty, "based_on_history": any(baseline.values()), "items": items}

import logging
from datetime import timedelta

from sqlalchemy.exc import SQLAlchemyError

from .models import Activity, db, utcnow

logger = logging.getLogger(__name__)

STREAK_MILESTONES = (3, 7, 14, 30, 60, 100)


def calculate_streak(user_id, today=None):
    try:
        days = _completed_dates(user_id)
    except SQLAlchemyError as e:
        logger.error(f"Database error calculating streak: {str(e)}")
        return 0
    return streak_from_dates(days, today or utcnow().date())


def streak_from_dates(days, today):
    """Consecutive days ending today, or yesterday when today has nothing yet."""
    if not days:
        return 0
    days = sorted(set(days), reverse=True)
    if days[0] < today - timedelta(days=1):
        return 0
    streak = 0
    expected = days[0]
    for day in days:
        if day != expected:
            break
        streak += 1
        expected = day - timedelta(days=1)
    return streak


def longest_streak_from_dates(days):
    longest = current = 0
    previous = None
    for day in sorted(set(days)):
        if previous is not None and (day - previous).days == 1:
            current += 1
        else:
            current = 1
        longest = max(longest, current)
        previous = day
    return longest


def longest_streak(user_id):
    return longest_streak_from_dates(_completed_dates(user_id))


def next_milestone(streak):
    for milestone in STREAK_MILESTONES:
        if streak < milestone:
            return milestone
    return None


def _completed_dates(user_id):
    ended = db.session.query(Activity.ended_at).filter(
        Activity.user_id == user_id,
        Activity.status == "completed",
        Activity.ended_at.isnot(None)
    ).all()
    return {value.date() for (value,) in ended}

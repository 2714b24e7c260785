import logging

from sqlalchemy import or_

from ..exceptions import ConflictError, ForbiddenError, ValidationError
from ..gamification import award_xp, evaluate_badges
from ..models import CHALLENGE_TYPES, Challenge, ChallengeParticipant, db, utcnow
from ..notifications import notify
from ..validation import (
    optional_string, page_payload, pagination, parse_bool, parse_choice, parse_datetime, parse_number,
    require_string,
)
from . import get_or_404

logger = logging.getLogger(__name__)

CHALLENGE_COMPLETION_XP = 100


def serialize_challenge(challenge, user):
    data = challenge.to_dict()
    participant = challenge.participant_for(user.id)
    data["is_participant"] = participant is not None
    data["my_progress"] = participant.to_dict() if participant else None
    return data


def build_challenge(user, data, club=None):
    """Validate the payload into an inactive Challenge. Caller adds and commits."""
    title = require_string(data, "title", max_length=100)
    description = optional_string(data, "description", max_length=2000) or ""
    start_date = parse_datetime(data.get("start_date"), "start_date", required=True)
    end_date = parse_datetime(data.get("end_date"), "end_date")
    if end_date is not None and end_date <= start_date:
        raise ValidationError("end_date must be after start_date")
    challenge_type = parse_choice(data.get("type") or data.get("challenge_type"), CHALLENGE_TYPES, "type")
    target = parse_number(data.get("target_value"), "target_value", minimum=0, exclusive_minimum=True)
    activity_type = optional_string(data, "activity_type", max_length=50)

    challenge = Challenge(
        title=title,
        description=description,
        start_date=start_date,
        end_date=end_date,
        challenge_type=challenge_type,
        target_value=target,
        unit=require_string(data, "unit", max_length=30),
        activity_type=activity_type.lower() if activity_type else None,
        is_private=False if club is not None else parse_bool(data.get("is_private")),
        is_active=False,
        created_by_id=user.id,
        club_id=club.id if club is not None else None,
    )
    return challenge


def create_challenge(user, data):
    challenge = build_challenge(user, data)
    db.session.add(challenge)
    db.session.commit()
    logger.info(f"Challenge '{challenge.title}' created by user {user.id}")
    return serialize_challenge(challenge, user)


def activate_challenge(user, challenge_id):
    challenge = get_or_404(Challenge, challenge_id, "Challenge")
    if challenge.created_by_id != user.id:
        raise ForbiddenError("Only the creator can activate this challenge")
    now = utcnow()
    if challenge.is_active:
        raise ConflictError("Challenge is already active")
    if challenge.start_date > now:
        raise ConflictError("Challenge cannot be activated before its start date")
    if challenge.has_ended(now):
        raise ConflictError("Challenge has already ended")
    challenge.is_active = True
    db.session.commit()
    logger.info(f"Challenge {challenge.id} activated")
    return serialize_challenge(challenge, user)


def _can_view(user, challenge):
    if challenge.club_id is not None:
        return not challenge.club.is_private or challenge.club.membership_for(user.id) is not None
    if not challenge.is_private:
        return True
    return challenge.created_by_id == user.id or challenge.participant_for(user.id) is not None


def get_challenge(user, challenge_id):
    challenge = get_or_404(Challenge, challenge_id, "Challenge")
    if not _can_view(user, challenge):
        raise ForbiddenError("This challenge is private")
    data = serialize_challenge(challenge, user)
    ranked = sorted(challenge.participants, key=lambda p: (-p.progress, p.joined_at, p.id))
    data["participants"] = [dict(p.to_dict(), rank=i) for i, p in enumerate(ranked, start=1)]
    data["has_ended"] = challenge.has_ended()
    return data


def search_challenges(user, args):
    page, page_size = pagination(args)
    query = Challenge.query.filter(Challenge.is_private.is_(False), Challenge.club_id.is_(None))
    if args.get("q"):
        term = f"%{args.get('q').strip()}%"
        query = query.filter(or_(Challenge.title.ilike(term), Challenge.description.ilike(term)))
    if args.get("type"):
        query = query.filter(Challenge.challenge_type == parse_choice(args.get("type"), CHALLENGE_TYPES, "type"))
    if parse_bool(args.get("active_only")):
        now = utcnow()
        query = query.filter(
            Challenge.is_active.is_(True),
            or_(Challenge.end_date.is_(None), Challenge.end_date >= now),
        )
    page_obj = query.order_by(Challenge.start_date.desc(), Challenge.id.desc()).paginate(
        page=page, per_page=page_size, error_out=False
    )
    return page_payload(page_obj, [serialize_challenge(c, user) for c in page_obj.items])


def my_challenges(user, args):
    page, page_size = pagination(args)
    query = Challenge.query.join(ChallengeParticipant).filter(ChallengeParticipant.user_id == user.id)
    page_obj = query.order_by(Challenge.start_date.desc(), Challenge.id.desc()).paginate(
        page=page, per_page=page_size, error_out=False
    )
    return page_payload(page_obj, [serialize_challenge(c, user) for c in page_obj.items])


def join_challenge(user, challenge_id):
    challenge = get_or_404(Challenge, challenge_id, "Challenge")
    if not challenge.is_active:
        raise ConflictError("Challenge is not active")
    if challenge.has_ended():
        raise ConflictError("Challenge has already ended")
    if challenge.is_private and challenge.created_by_id != user.id:
        raise ForbiddenError("This challenge is private")
    if challenge.club_id is not None and challenge.club.membership_for(user.id) is None:
        raise ForbiddenError("Only club members can join this challenge")
    if challenge.participant_for(user.id):
        raise ConflictError("You have already joined this challenge")
    participant = ChallengeParticipant(challenge_id=challenge.id, user_id=user.id)
    db.session.add(participant)
    db.session.flush()
    if challenge.created_by_id != user.id:
        notify(challenge.created_by_id, "challenge_joined", "New challenger",
               f"{user.display_name} joined '{challenge.title}'", {"challenge_id": challenge.id})
    db.session.commit()
    logger.info(f"User {user.id} joined challenge {challenge.id}")
    return serialize_challenge(challenge, user)


def _set_progress(user, challenge, participant, progress):
    """Caller commits. Returns True when this update completed the challenge."""
    participant.progress = progress
    if participant.is_completed or progress < challenge.target_value:
        return False
    participant.is_completed = True
    participant.completed_at = utcnow()
    award_xp(user, CHALLENGE_COMPLETION_XP, f"Completed challenge: {challenge.title}",
             source="challenge", source_id=challenge.id)
    notify(user.id, "challenge_completed", "Challenge completed!",
           f"You completed '{challenge.title}'. +{CHALLENGE_COMPLETION_XP} XP", {"challenge_id": challenge.id})
    logger.info(f"User {user.id} completed challenge {challenge.id}")
    return True


def update_progress(user, challenge_id, data):
    challenge = get_or_404(Challenge, challenge_id, "Challenge")
    participant = challenge.participant_for(user.id)
    if participant is None:
        raise ForbiddenError("Only participants can update challenge progress")
    if not challenge.is_active or challenge.has_ended():
        raise ConflictError("Challenge is not active")
    if participant.is_completed:
        raise ConflictError("Challenge already completed")
    progress = parse_number(data.get("progress"), "progress", minimum=0)
    if progress < participant.progress:
        raise ConflictError("Progress cannot decrease")
    completed = _set_progress(user, challenge, participant, progress)
    badges = evaluate_badges(user, context=f"Challenge {challenge.id}") if completed else []
    db.session.commit()
    result = participant.to_dict()
    result.update({
        "challenge_id": challenge.id,
        "just_completed": completed,
        "badges_earned": [b.to_dict() for b in badges],
    })
    return result


def activity_contribution(challenge, activity):
    if challenge.challenge_type == "distance":
        return activity.distance_km or 0.0
    if challenge.challenge_type == "calories":
        return activity.calories_burned or 0.0
    if challenge.challenge_type == "activity_count":
        return 1.0
    if challenge.challenge_type == "duration":
        return round(activity.active_seconds() / 60, 2)
    return 0.0


def apply_activity_to_challenges(user, activity):
    """Feed a completed activity into joined active challenges; returns challenges it completed."""
    now = utcnow()
    participations = ChallengeParticipant.query.join(Challenge).filter(
        ChallengeParticipant.user_id == user.id,
        ChallengeParticipant.is_completed.is_(False),
        Challenge.is_active.is_(True),
        Challenge.start_date <= now,
        or_(Challenge.end_date.is_(None), Challenge.end_date >= now),
    ).all()
    completed = []
    for participant in participations:
        challenge = participant.challenge
        if challenge.activity_type and challenge.activity_type != activity.activity_type:
            continue
        delta = activity_contribution(challenge, activity)
        if delta <= 0:
            continue
        if _set_progress(user, challenge, participant, participant.progress + delta):
            completed.append(challenge)
    return completed

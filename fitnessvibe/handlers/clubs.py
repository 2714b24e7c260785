import logging

from sqlalchemy import func, or_

from ..exceptions import ConflictError, ForbiddenError, NotFoundError, ValidationError
from ..models import Activity, Challenge, Club, ClubMember, db, utcnow
from ..notifications import notify
from ..validation import optional_string, page_payload, pagination, parse_bool, parse_choice, require_string
from . import get_or_404
from .challenges import build_challenge, serialize_challenge

logger = logging.getLogger(__name__)

ASSIGNABLE_ROLES = ("member", "admin")
MANAGER_ROLES = ("owner", "admin")
CLUB_CHALLENGE_STATUSES = ("active", "upcoming", "ended", "all")


def _serialize(club, user):
    data = club.to_dict()
    membership = club.membership_for(user.id)
    data["my_role"] = membership.role if membership else None
    return data


def _visible_club(user, club_id):
    club = get_or_404(Club, club_id, "Club")
    if club.is_private and club.membership_for(user.id) is None:
        raise ForbiddenError("This club is private")
    return club


def _require_role(user, club, roles, action):
    membership = club.membership_for(user.id)
    if membership is None or membership.role not in roles:
        raise ForbiddenError(f"You do not have permission to {action}")
    return membership


def create_club(user, data):
    name = require_string(data, "name", max_length=100, min_length=3, label="Club name")
    if Club.query.filter(func.lower(Club.name) == name.lower()).first():
        raise ConflictError("A club with this name already exists")
    category = optional_string(data, "category", max_length=50)
    club = Club(
        name=name,
        description=optional_string(data, "description", max_length=2000) or "",
        category=category.lower() if category else None,
        is_private=parse_bool(data.get("is_private")),
        owner_id=user.id,
    )
    db.session.add(club)
    db.session.flush()
    db.session.add(ClubMember(club_id=club.id, user_id=user.id, role="owner"))
    db.session.commit()
    logger.info(f"Club '{club.name}' created by user {user.id}")
    return _serialize(club, user)


def discover(user, args):
    page, page_size = pagination(args)
    query = Club.query.filter(Club.is_private.is_(False))
    if args.get("q"):
        term = f"%{args.get('q').strip()}%"
        query = query.filter(or_(Club.name.ilike(term), Club.description.ilike(term)))
    if args.get("category"):
        query = query.filter(Club.category == args.get("category").strip().lower())
    page_obj = query.order_by(Club.name).paginate(page=page, per_page=page_size, error_out=False)
    return page_payload(page_obj, [_serialize(c, user) for c in page_obj.items])


def my_clubs(user, args):
    query = Club.query.join(ClubMember).filter(ClubMember.user_id == user.id)
    if args.get("role"):
        query = query.filter(ClubMember.role == parse_choice(args.get("role"), ("owner", "admin", "member"), "role"))
    clubs = query.order_by(Club.name).all()
    return {"items": [_serialize(c, user) for c in clubs]}


def get_club(user, club_id):
    return _serialize(_visible_club(user, club_id), user)


def join_club(user, club_id):
    club = get_or_404(Club, club_id, "Club")
    if club.is_private:
        raise ForbiddenError("This club is private and requires an invitation")
    if club.membership_for(user.id):
        raise ConflictError("You are already a member of this club")
    db.session.add(ClubMember(club_id=club.id, user_id=user.id, role="member"))
    db.session.flush()
    notify(club.owner_id, "club_joined", "New club member",
           f"{user.display_name} joined {club.name}", {"club_id": club.id, "user_id": user.id})
    db.session.commit()
    logger.info(f"User {user.id} joined club {club.id}")
    return _serialize(club, user)


def leave_club(user, club_id):
    club = get_or_404(Club, club_id, "Club")
    membership = club.membership_for(user.id)
    if membership is None:
        raise NotFoundError("Club membership")
    if membership.role == "owner":
        raise ConflictError("The owner cannot leave the club")
    db.session.delete(membership)
    db.session.commit()
    logger.info(f"User {user.id} left club {club.id}")
    return {"message": "Left club"}


def members(user, club_id, args):
    club = _visible_club(user, club_id)
    page, page_size = pagination(args)
    page_obj = ClubMember.query.filter_by(club_id=club.id).order_by(
        ClubMember.joined_at, ClubMember.id
    ).paginate(page=page, per_page=page_size, error_out=False)
    return page_payload(page_obj, [m.to_dict() for m in page_obj.items])


def club_activity(user, club_id, args):
    club = _visible_club(user, club_id)
    page, page_size = pagination(args)
    member_ids = [m.user_id for m in club.members]
    page_obj = Activity.query.filter(
        Activity.user_id.in_(member_ids),
        Activity.status == "completed",
        Activity.is_public.is_(True),
    ).order_by(Activity.ended_at.desc(), Activity.id.desc()).paginate(
        page=page, per_page=page_size, error_out=False
    )
    items = []
    for activity in page_obj.items:
        data = activity.to_dict()
        data["user"] = activity.user.to_summary()
        items.append(data)
    return page_payload(page_obj, items)


def update_club(user, club_id, data):
    club = get_or_404(Club, club_id, "Club")
    _require_role(user, club, MANAGER_ROLES, "update this club")
    if "name" in data:
        name = require_string(data, "name", max_length=100, min_length=3, label="Club name")
        clash = Club.query.filter(func.lower(Club.name) == name.lower(), Club.id != club.id).first()
        if clash:
            raise ConflictError("A club with this name already exists")
        club.name = name
    if "description" in data:
        club.description = optional_string(data, "description", max_length=2000) or ""
    if "category" in data:
        category = optional_string(data, "category", max_length=50)
        club.category = category.lower() if category else None
    if "is_private" in data:
        club.is_private = parse_bool(data.get("is_private"))
    db.session.commit()
    logger.info(f"Club {club.id} updated by user {user.id}")
    return _serialize(club, user)


def _member_or_404(club, member_id):
    membership = club.membership_for(member_id)
    if membership is None:
        raise NotFoundError("Club member", member_id)
    return membership


def update_member_role(user, club_id, member_id, data):
    club = get_or_404(Club, club_id, "Club")
    _require_role(user, club, ("owner",), "change member roles")
    membership = _member_or_404(club, member_id)
    if membership.role == "owner":
        raise ConflictError("The owner's role cannot be changed")
    role = parse_choice(data.get("role"), ASSIGNABLE_ROLES, "role")
    membership.role = role
    db.session.commit()
    logger.info(f"User {member_id} is now {role} of club {club.id}")
    return membership.to_dict()


def remove_member(user, club_id, member_id):
    club = get_or_404(Club, club_id, "Club")
    actor = _require_role(user, club, MANAGER_ROLES, "remove members")
    membership = _member_or_404(club, member_id)
    if membership.role == "owner":
        raise ForbiddenError("The club owner cannot be removed")
    if membership.role == "admin" and actor.role != "owner":
        raise ForbiddenError("Only the owner can remove club admins")
    if membership.user_id == user.id:
        raise ValidationError("Use leave to exit a club yourself")
    db.session.delete(membership)
    db.session.commit()
    logger.info(f"User {member_id} removed from club {club.id} by user {user.id}")
    return {"message": "Member removed"}


def create_club_challenge(user, club_id, data):
    club = get_or_404(Club, club_id, "Club")
    _require_role(user, club, MANAGER_ROLES, "create challenges for this club")
    challenge = build_challenge(user, data, club=club)
    db.session.add(challenge)
    db.session.flush()
    for member in club.members:
        if member.user_id != user.id:
            notify(member.user_id, "club_challenge", "New club challenge",
                   f"{club.name} started '{challenge.title}'",
                   {"club_id": club.id, "challenge_id": challenge.id})
    db.session.commit()
    logger.info(f"Club challenge {challenge.id} created in club {club.id} by user {user.id}")
    return serialize_challenge(challenge, user)


def list_club_challenges(user, club_id, args):
    club = _visible_club(user, club_id)
    status = parse_choice(args.get("status"), CLUB_CHALLENGE_STATUSES, "status", default="all")
    now = utcnow()
    challenges = Challenge.query.filter_by(club_id=club.id).order_by(
        Challenge.start_date.desc(), Challenge.id.desc()
    ).all()
    if status == "active":
        challenges = [c for c in challenges if c.is_active and c.start_date <= now and not c.has_ended(now)]
    elif status == "upcoming":
        challenges = [c for c in challenges if c.start_date > now]
    elif status == "ended":
        challenges = [c for c in challenges if c.has_ended(now)]
    return {"club_id": club.id, "items": [serialize_challenge(c, user) for c in challenges],
            "total": len(challenges)}


def get_club_challenge(user, club_id, challenge_id):
    club = _visible_club(user, club_id)
    challenge = get_or_404(Challenge, challenge_id, "Challenge")
    if challenge.club_id != club.id:
        raise NotFoundError("Challenge", challenge_id)
    data = serialize_challenge(challenge, user)
    ranked = sorted(challenge.participants, key=lambda p: (-p.progress, p.joined_at, p.id))
    data["participants"] = [dict(p.to_dict(), rank=i) for i, p in enumerate(ranked, start=1)]
    data["has_ended"] = challenge.has_ended()
    return data

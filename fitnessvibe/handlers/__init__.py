"""Single-purpose command and query handlers.

Handlers take the authenticated user plus already-decoded input, raise
``FitnessVibeError`` subclasses on failure and return plain dicts that the
routes pass to ``jsonify``.
"""
from ..exceptions import NotFoundError
from ..models import Friendship, User, db


def get_or_404(model, entity_id, entity=None):
    obj = db.session.get(model, entity_id)
    if obj is None or getattr(obj, "is_deleted", False):
        raise NotFoundError(entity or model.__name__, entity_id)
    return obj


def get_user_or_404(user_id):
    return get_or_404(User, user_id, "User")


def friend_ids(user_id):
    return [row.friend_id for row in Friendship.query.filter_by(user_id=user_id).all()]


def are_friends(user_id, other_id):
    return Friendship.query.filter_by(user_id=user_id, friend_id=other_id).first() is not None

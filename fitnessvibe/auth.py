import logging
import secrets
from datetime import timedelta
from functools import wraps

import bcrypt
import jwt
from flask import current_app, jsonify, request

from .models import RefreshToken, User, db, utcnow

logger = logging.getLogger(__name__)


def hash_password(password):
    return bcrypt.hashpw(password.encode("utf-8"), bcrypt.gensalt()).decode("utf-8")


def check_password(password, password_hash):
    if not password or not password_hash:
        return False
    return bcrypt.checkpw(password.encode("utf-8"), password_hash.encode("utf-8"))


def generate_token(user_id, email):
    now = utcnow()
    expires_at = now + timedelta(minutes=current_app.config["JWT_ACCESS_TOKEN_MINUTES"])
    payload = {
        "user_id": user_id,
        "email": email,
        "type": "access",
        "exp": expires_at,
        "iat": now
    }
    token = jwt.encode(payload, current_app.config["JWT_SECRET_KEY"], algorithm="HS256")
    return token, expires_at


def issue_tokens(user):
    """Access token plus a stored, revocable refresh token."""
    access_token, expires_at = generate_token(user.id, user.email)
    refresh = RefreshToken(
        user_id=user.id,
        token=secrets.token_urlsafe(48),
        expires_at=utcnow() + timedelta(days=current_app.config["JWT_REFRESH_TOKEN_DAYS"]),
    )
    db.session.add(refresh)
    return {
        "token": access_token,
        "refresh_token": refresh.token,
        "expires_at": expires_at.isoformat(),
    }


def revoke_refresh_tokens(user_id):
    now = utcnow()
    tokens = RefreshToken.query.filter_by(user_id=user_id, revoked_at=None).all()
    for token in tokens:
        token.revoked_at = now
    return len(tokens)


def decode_token(token):
    return jwt.decode(token, current_app.config["JWT_SECRET_KEY"], algorithms=["HS256"])


# JWT middleware
def token_required(f):
    @wraps(f)
    def decorated(*args, **kwargs):
        token = request.headers.get("Authorization")
        if not token:
            logger.error("Token missing in request")
            return jsonify({"message": "Token required"}), 401
        if token.startswith("Bearer "):
            token = token[7:]
        try:
            payload = decode_token(token)
        except jwt.ExpiredSignatureError:
            logger.error("Token expired")
            return jsonify({"message": "Token expired"}), 401
        except jwt.InvalidTokenError:
            logger.error("Invalid token")
            return jsonify({"message": "Invalid token"}), 401
        if payload.get("type") != "access":
            logger.error("Non-access token presented")
            return jsonify({"message": "Invalid token"}), 401
        user = db.session.get(User, payload.get("user_id"))
        if not user or user.is_deleted:
            logger.error("User not found for token")
            return jsonify({"message": "Invalid token"}), 401
        return f(user, *args, **kwargs)
    return decorated


def admin_required(f):
    @wraps(f)
    def decorated(user, *args, **kwargs):
        if not user.is_admin:
            logger.error(f"Admin endpoint refused for user {user.id}")
            return jsonify({"message": "Administrator access required"}), 403
        return f(user, *args, **kwargs)
    return decorated

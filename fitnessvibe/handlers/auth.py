import logging
import secrets
from datetime import timedelta

from flask import current_app
from sqlalchemy import func

from ..auth import check_password, hash_password, issue_tokens, revoke_refresh_tokens
from ..exceptions import AuthenticationError, ConflictError, ValidationError
from ..gamification import evaluate_badges
from ..models import FITNESS_GOALS, FITNESS_LEVELS, GENDERS, Notification, RefreshToken, User, db, utcnow
from ..notifications import send_email
from ..streak import calculate_streak
from ..validation import (
    USERNAME_RE, parse_choice, parse_date, validate_email, validate_password,
    validate_person_name,
)

logger = logging.getLogger(__name__)

MAX_FAILED_LOGINS = 5
LOCKOUT_MINUTES = 15
RESET_TOKEN_HOURS = 1
MIN_AGE = 13
MAX_AGE = 120


def validate_birth_date(value):
    date_of_birth = parse_date(value, "date_of_birth")
    if date_of_birth is None:
        return None
    today = utcnow().date()
    age = today.year - date_of_birth.year - ((today.month, today.day) < (date_of_birth.month, date_of_birth.day))
    if age < MIN_AGE or age > MAX_AGE:
        raise ValidationError(f"Age must be between {MIN_AGE} and {MAX_AGE} years")
    return date_of_birth


def validate_username(value):
    if not isinstance(value, str) or not USERNAME_RE.match(value.strip()):
        raise ValidationError(
            "Username must be 3-30 characters and contain only letters, numbers, underscores and dots"
        )
    return value.strip()


def register(data):
    username = validate_username(data.get("username"))
    email = validate_email(data.get("email"))
    password = validate_password(data.get("password"))
    first_name = validate_person_name(data, "first_name", "First name")
    last_name = validate_person_name(data, "last_name", "Last name")
    date_of_birth = validate_birth_date(data.get("date_of_birth"))
    gender = parse_choice(data.get("gender"), GENDERS, "gender", default="not_specified")
    fitness_level = parse_choice(data.get("fitness_level"), FITNESS_LEVELS, "fitness_level", default="beginner")
    primary_goal = parse_choice(data.get("primary_goal"), FITNESS_GOALS, "primary_goal", default="general_wellness")

    if User.query.filter(func.lower(User.email) == email).first():
        raise ConflictError("An account with this email address already exists")
    if User.query.filter(func.lower(User.username) == username.lower()).first():
        raise ConflictError("Username is already taken")

    user = User(
        username=username,
        email=email,
        password_hash=hash_password(password),
        first_name=first_name,
        last_name=last_name,
        date_of_birth=date_of_birth,
        gender=gender,
        fitness_level=fitness_level,
        primary_goal=primary_goal,
        email_verification_token=secrets.token_urlsafe(32),
    )
    db.session.add(user)
    db.session.flush()
    badges = evaluate_badges(user, kinds={"welcome"}, context="Registration")
    tokens = issue_tokens(user)
    db.session.commit()
    logger.info(f"User registered: {user.username} ({user.id})")

    send_email(
        user.email,
        "Welcome to FitnessVibe!",
        f"Hi {user.first_name},\n\nWelcome aboard! Verify your email with this token: "
        f"{user.email_verification_token}\n",
    )
    return {
        "message": "User registered",
        "user": user.to_dict(),
        "badges_earned": [b.to_dict() for b in badges],
        **tokens,
    }


def _find_by_identifier(identifier):
    identifier = identifier.strip().lower()
    return User.query.filter(
        (func.lower(User.username) == identifier) | (func.lower(User.email) == identifier),
        User.is_deleted.is_(False),
    ).first()


def login(data):
    identifier = data.get("identifier") or data.get("email") or data.get("username")
    password = data.get("password")
    if not isinstance(identifier, str) or not identifier.strip() or not isinstance(password, str) or not password:
        raise ValidationError("Identifier and password required")

    user = _find_by_identifier(identifier)
    if not user:
        logger.warning("Login attempt for unknown identifier")
        raise AuthenticationError("Invalid credentials")

    now = utcnow()
    if user.locked_until and user.locked_until > now:
        logger.warning(f"Login attempt on locked account {user.id}")
        raise AuthenticationError("Account is temporarily locked")

    if not check_password(password, user.password_hash):
        if user.locked_until:
            user.failed_login_attempts = 0
            user.locked_until = None
        user.failed_login_attempts += 1
        if user.failed_login_attempts >= MAX_FAILED_LOGINS:
            user.locked_until = now + timedelta(minutes=LOCKOUT_MINUTES)
            logger.warning(f"Account {user.id} locked after {user.failed_login_attempts} failed logins")
        # counted even though the request fails
        db.session.commit()
        raise AuthenticationError("Invalid credentials")

    previous_login = user.last_login_at
    user.failed_login_attempts = 0
    user.locked_until = None
    user.last_login_at = now
    user.last_active_at = now
    tokens = issue_tokens(user)
    db.session.commit()
    logger.info(f"User logged in: {user.username}")

    unread = Notification.query.filter_by(user_id=user.id, is_read=False).count()
    return {
        "user": user.to_dict(),
        "days_since_last_login": (now - previous_login).days if previous_login else None,
        "current_streak": calculate_streak(user.id),
        "unread_notifications": unread,
        **tokens,
    }


def refresh(data):
    token = data.get("refresh_token")
    if not isinstance(token, str) or not token:
        raise ValidationError("Refresh token is required")
    stored = RefreshToken.query.filter_by(token=token).first()
    if not stored or not stored.is_usable:
        raise AuthenticationError("Invalid or expired refresh token")
    user = db.session.get(User, stored.user_id)
    if not user or user.is_deleted:
        raise AuthenticationError("Invalid or expired refresh token")
    stored.revoked_at = utcnow()
    tokens = issue_tokens(user)
    db.session.commit()
    logger.debug(f"Refresh token rotated for user {user.id}")
    return tokens


def logout(user):
    revoked = revoke_refresh_tokens(user.id)
    db.session.commit()
    logger.info(f"User {user.id} logged out, {revoked} refresh tokens revoked")
    return {"message": "Logged out"}


def forgot_password(data):
    email = validate_email(data.get("email"))
    user = User.query.filter(func.lower(User.email) == email, User.is_deleted.is_(False)).first()
    if user:
        user.password_reset_token = secrets.token_urlsafe(32)
        user.password_reset_expires_at = utcnow() + timedelta(hours=RESET_TOKEN_HOURS)
        db.session.commit()
        reset_url = f"{current_app.config['FRONTEND_URL'].split(',')[0].strip()}/reset-password" \
                    f"?token={user.password_reset_token}"
        send_email(
            user.email,
            "Reset your FitnessVibe password",
            f"Hi {user.first_name},\n\nUse this link within the next hour to reset your password:\n{reset_url}\n",
        )
        logger.info(f"Password reset requested for user {user.id}")
    else:
        logger.info("Password reset requested for unknown email")
    return {"message": "If an account exists for that email, a reset link has been sent"}


def reset_password(data):
    token = data.get("token")
    if not isinstance(token, str) or not token:
        raise ValidationError("Reset token is required")
    password = validate_password(data.get("new_password"), "New password")
    user = User.query.filter_by(password_reset_token=token, is_deleted=False).first()
    if not user or not user.password_reset_expires_at or user.password_reset_expires_at < utcnow():
        raise ValidationError("Invalid or expired reset token")
    user.password_hash = hash_password(password)
    user.password_reset_token = None
    user.password_reset_expires_at = None
    user.failed_login_attempts = 0
    user.locked_until = None
    revoke_refresh_tokens(user.id)
    db.session.commit()
    logger.info(f"Password reset for user {user.id}")
    return {"message": "Password has been reset"}


def verify_email(data):
    token = data.get("token")
    if not isinstance(token, str) or not token:
        raise ValidationError("Verification token is required")
    user = User.query.filter_by(email_verification_token=token, is_deleted=False).first()
    if not user:
        raise ValidationError("Invalid verification token")
    user.is_email_verified = True
    user.email_verification_token = None
    db.session.commit()
    logger.info(f"Email verified for user {user.id}")
    return {"message": "Email verified", "user": user.to_dict()}


def me(user):
    return {"user": user.to_dict()}

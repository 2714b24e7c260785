from datetime import datetime, timezone

from flask_sqlalchemy import SQLAlchemy

db = SQLAlchemy()

ACTIVITY_STATUSES = ("active", "paused", "completed", "cancelled")
FITNESS_LEVELS = ("beginner", "intermediate", "advanced", "elite")
FITNESS_GOALS = (
    "weight_loss", "muscle_gain", "cardio_fitness", "flexibility",
    "maintenance", "sport_performance", "general_wellness",
)
GENDERS = ("not_specified", "male", "female", "non_binary", "other")
GOAL_TYPES = ("distance", "duration", "frequency", "calories", "steps", "weight", "custom")
GOAL_FREQUENCIES = ("daily", "weekly", "monthly", "one_time")
GOAL_STATUSES = ("active", "paused", "completed", "expired", "abandoned")
CHALLENGE_TYPES = ("distance", "calories", "activity_count", "duration", "streak", "custom")
SHARE_PRIVACY = ("public", "friends", "private")
CLUB_ROLES = ("owner", "admin", "member")
REMINDER_TYPES = ("workout", "goal", "custom")
NOTIFICATION_TYPES = (
    "friend_request", "friend_request_accepted", "friend_activity_started", "message", "post_liked",
    "post_commented", "cheer", "badge_earned", "xp_awarded", "goal_completed", "challenge_joined",
    "challenge_completed", "club_joined", "club_challenge", "reminder",
)

DEFAULT_PREFERENCES = {
    "units": "metric",
    "allow_friend_requests": True,
    "show_in_leaderboards": True,
    "profile_visibility": "public",
    "email_notifications": True,
    "push_notifications": True,
    "muted_notification_types": [],
    "activities_public_by_default": True,
}


def utcnow():
    """Naive UTC timestamp; every DateTime column stores naive UTC."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def _iso(value):
    return value.isoformat() if value else None


class User(db.Model):
    id = db.Column(db.Integer, primary_key=True)
    username = db.Column(db.String(80), unique=True, nullable=False)
    email = db.Column(db.String(255), unique=True, nullable=False)
    password_hash = db.Column(db.String(120), nullable=False)
    first_name = db.Column(db.String(50), nullable=False)
    last_name = db.Column(db.String(50), nullable=False)
    date_of_birth = db.Column(db.Date)
    gender = db.Column(db.String(20), nullable=False, default="not_specified")
    bio = db.Column(db.String(500))
    avatar_url = db.Column(db.String(500))
    fitness_level = db.Column(db.String(20), nullable=False, default="beginner")
    primary_goal = db.Column(db.String(30), nullable=False, default="general_wellness")
    preferences = db.Column(db.JSON, nullable=False, default=lambda: dict(DEFAULT_PREFERENCES))
    experience_points = db.Column(db.Integer, nullable=False, default=0)
    level = db.Column(db.Integer, nullable=False, default=1)
    is_admin = db.Column(db.Boolean, nullable=False, default=False)
    is_email_verified = db.Column(db.Boolean, nullable=False, default=False)
    email_verification_token = db.Column(db.String(64), index=True)
    password_reset_token = db.Column(db.String(64), index=True)
    password_reset_expires_at = db.Column(db.DateTime)
    failed_login_attempts = db.Column(db.Integer, nullable=False, default=0)
    locked_until = db.Column(db.DateTime)
    last_login_at = db.Column(db.DateTime)
    last_active_at = db.Column(db.DateTime, default=utcnow)
    created_at = db.Column(db.DateTime, nullable=False, default=utcnow)
    updated_at = db.Column(db.DateTime, default=utcnow, onupdate=utcnow)
    is_deleted = db.Column(db.Boolean, nullable=False, default=False, index=True)
    deleted_at = db.Column(db.DateTime)
    version = db.Column(db.Integer, nullable=False)

    activities = db.relationship("Activity", backref="user", lazy=True, cascade="all, delete-orphan")
    goals = db.relationship("Goal", backref="user", lazy=True, cascade="all, delete-orphan")
    badges = db.relationship("UserBadge", backref="user", lazy=True, cascade="all, delete-orphan")

    __mapper_args__ = {"version_id_col": version}

    @property
    def display_name(self):
        return f"{self.first_name} {self.last_name}"

    def get_preference(self, key):
        prefs = self.preferences or {}
        return prefs.get(key, DEFAULT_PREFERENCES.get(key))

    def age(self, today=None):
        if not self.date_of_birth:
            return None
        today = today or utcnow().date()
        years = today.year - self.date_of_birth.year
        if (today.month, today.day) < (self.date_of_birth.month, self.date_of_birth.day):
            years -= 1
        return years

    def to_summary(self):
        return {
            "id": self.id,
            "username": self.username,
            "display_name": self.display_name,
            "avatar_url": self.avatar_url,
            "level": self.level,
        }

    def to_dict(self):
        return {
            "id": self.id,
            "username": self.username,
            "email": self.email,
            "first_name": self.first_name,
            "last_name": self.last_name,
            "display_name": self.display_name,
            "date_of_birth": _iso(self.date_of_birth),
            "age": self.age(),
            "gender": self.gender,
            "bio": self.bio,
            "avatar_url": self.avatar_url,
            "fitness_level": self.fitness_level,
            "primary_goal": self.primary_goal,
            "experience_points": self.experience_points,
            "level": self.level,
            "is_email_verified": self.is_email_verified,
            "is_admin": self.is_admin,
            "created_at": _iso(self.created_at),
            "last_active_at": _iso(self.last_active_at),
        }


class RefreshToken(db.Model):
    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey("user.id"), nullable=False, index=True)
    token = db.Column(db.String(128), unique=True, nullable=False)
    expires_at = db.Column(db.DateTime, nullable=False)
    revoked_at = db.Column(db.DateTime)
    created_at = db.Column(db.DateTime, nullable=False, default=utcnow)

    @property
    def is_usable(self):
        return self.revoked_at is None and self.expires_at > utcnow()


class Activity(db.Model):
    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey("user.id"), nullable=False, index=True)
    template_id = db.Column(db.Integer, db.ForeignKey("activity_template.id"))
    activity_type = db.Column(db.String(50), nullable=False)
    name = db.Column(db.String(100), nullable=False)
    status = db.Column(db.String(20), nullable=False, default="active", index=True)
    started_at = db.Column(db.DateTime, nullable=False, default=utcnow, index=True)
    ended_at = db.Column(db.DateTime)
    paused_at = db.Column(db.DateTime)
    paused_seconds = db.Column(db.Integer, nullable=False, default=0)
    planned_duration_minutes = db.Column(db.Integer)
    start_latitude = db.Column(db.Float)
    start_longitude = db.Column(db.Float)
    start_altitude = db.Column(db.Float)
    distance_km = db.Column(db.Float)
    calories_burned = db.Column(db.Float)
    xp_earned = db.Column(db.Integer, nullable=False, default=0)
    perceived_exertion = db.Column(db.Integer)
    mood_after = db.Column(db.String(30))
    notes = db.Column(db.Text)
    tags = db.Column(db.JSON, nullable=False, default=list)
    is_public = db.Column(db.Boolean, nullable=False, default=True)
    is_manual = db.Column(db.Boolean, nullable=False, default=False)
    cancel_reason = db.Column(db.String(200))
    created_at = db.Column(db.DateTime, nullable=False, default=utcnow)
    updated_at = db.Column(db.DateTime, default=utcnow, onupdate=utcnow)
    version = db.Column(db.Integer, nullable=False)

    route_points = db.relationship(
        "RoutePoint", backref="activity", lazy=True, cascade="all, delete-orphan",
        order_by="RoutePoint.sequence",
    )
    cheers = db.relationship("Cheer", backref="activity", lazy=True, cascade="all, delete-orphan")

    __mapper_args__ = {"version_id_col": version}

    @property
    def is_live(self):
        return self.status in ("active", "paused")

    def active_seconds(self, now=None):
        end = self.ended_at or now or utcnow()
        seconds = (end - self.started_at).total_seconds() - (self.paused_seconds or 0)
        if self.status == "paused" and self.paused_at and not self.ended_at:
            seconds -= (end - self.paused_at).total_seconds()
        return max(int(seconds), 0)

    def to_dict(self):
        return {
            "id": self.id,
            "user_id": self.user_id,
            "template_id": self.template_id,
            "activity_type": self.activity_type,
            "name": self.name,
            "status": self.status,
            "started_at": _iso(self.started_at),
            "ended_at": _iso(self.ended_at),
            "duration_seconds": self.active_seconds() if self.status != "cancelled" else 0,
            "planned_duration_minutes": self.planned_duration_minutes,
            "distance_km": self.distance_km,
            "calories_burned": self.calories_burned,
            "xp_earned": self.xp_earned,
            "perceived_exertion": self.perceived_exertion,
            "mood_after": self.mood_after,
            "notes": self.notes,
            "tags": self.tags or [],
            "is_public": self.is_public,
            "is_manual": self.is_manual,
            "cancel_reason": self.cancel_reason,
        }


class RoutePoint(db.Model):
    id = db.Column(db.Integer, primary_key=True)
    activity_id = db.Column(db.Integer, db.ForeignKey("activity.id"), nullable=False)
    sequence = db.Column(db.Integer, nullable=False)
    latitude = db.Column(db.Float, nullable=False)
    longitude = db.Column(db.Float, nullable=False)
    elevation = db.Column(db.Float)
    speed = db.Column(db.Float)
    accuracy = db.Column(db.Float)
    recorded_at = db.Column(db.DateTime, nullable=False, default=utcnow)

    __table_args__ = (db.Index("ix_route_point_activity_sequence", "activity_id", "sequence"),)

    def to_dict(self):
        return {
            "sequence": self.sequence,
            "latitude": self.latitude,
            "longitude": self.longitude,
            "elevation": self.elevation,
            "speed": self.speed,
            "accuracy": self.accuracy,
            "timestamp": _iso(self.recorded_at),
        }


class ActivityTemplate(db.Model):
    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(100), nullable=False)
    description = db.Column(db.Text, nullable=False, default="")
    activity_type = db.Column(db.String(50), nullable=False)
    category = db.Column(db.String(30), nullable=False)
    estimated_duration_minutes = db.Column(db.Integer, nullable=False)
    estimated_calories = db.Column(db.Integer, nullable=False)
    difficulty_level = db.Column(db.Integer, nullable=False)
    required_equipment = db.Column(db.JSON, nullable=False, default=list)
    tags = db.Column(db.JSON, nullable=False, default=list)
    icon_url = db.Column(db.String(500))
    is_featured = db.Column(db.Boolean, nullable=False, default=False)
    usage_count = db.Column(db.Integer, nullable=False, default=0)
    average_rating = db.Column(db.Float, nullable=False, default=0.0)
    rating_count = db.Column(db.Integer, nullable=False, default=0)
    created_at = db.Column(db.DateTime, nullable=False, default=utcnow)

    def add_rating(self, rating):
        total = self.average_rating * self.rating_count + rating
        self.rating_count += 1
        self.average_rating = total / self.rating_count

    def to_dict(self):
        return {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "activity_type": self.activity_type,
            "category": self.category,
            "estimated_duration_minutes": self.estimated_duration_minutes,
            "estimated_calories": self.estimated_calories,
            "difficulty_level": self.difficulty_level,
            "required_equipment": self.required_equipment or [],
            "tags": self.tags or [],
            "icon_url": self.icon_url,
            "is_featured": self.is_featured,
            "usage_count": self.usage_count,
            "average_rating": round(self.average_rating, 2),
            "rating_count": self.rating_count,
        }


class Cheer(db.Model):
    id = db.Column(db.Integer, primary_key=True)
    sender_id = db.Column(db.Integer, db.ForeignKey("user.id"), nullable=False)
    recipient_id = db.Column(db.Integer, db.ForeignKey("user.id"), nullable=False, index=True)
    activity_id = db.Column(db.Integer, db.ForeignKey("activity.id"))
    cheer_type = db.Column(db.String(20), nullable=False, default="clap")
    message = db.Column(db.String(200))
    created_at = db.Column(db.DateTime, nullable=False, default=utcnow)

    sender = db.relationship("User", foreign_keys=[sender_id])

    def to_dict(self):
        return {
            "id": self.id,
            "sender": self.sender.to_summary(),
            "recipient_id": self.recipient_id,
            "activity_id": self.activity_id,
            "cheer_type": self.cheer_type,
            "message": self.message,
            "created_at": _iso(self.created_at),
        }


class Goal(db.Model):
    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey("user.id"), nullable=False, index=True)
    title = db.Column(db.String(100), nullable=False)
    description = db.Column(db.Text)
    goal_type = db.Column(db.String(20), nullable=False)
    frequency = db.Column(db.String(20), nullable=False)
    target_value = db.Column(db.Float, nullable=False)
    current_value = db.Column(db.Float, nullable=False, default=0.0)
    unit = db.Column(db.String(30), nullable=False)
    activity_type = db.Column(db.String(50))
    start_date = db.Column(db.DateTime, nullable=False)
    end_date = db.Column(db.DateTime, nullable=False)
    status = db.Column(db.String(20), nullable=False, default="active", index=True)
    is_adaptive = db.Column(db.Boolean, nullable=False, default=False)
    completed_at = db.Column(db.DateTime)
    created_at = db.Column(db.DateTime, nullable=False, default=utcnow)
    updated_at = db.Column(db.DateTime, default=utcnow, onupdate=utcnow)
    is_deleted = db.Column(db.Boolean, nullable=False, default=False)
    version = db.Column(db.Integer, nullable=False)

    progress_entries = db.relationship(
        "GoalProgress", backref="goal", lazy=True, cascade="all, delete-orphan",
        order_by="GoalProgress.recorded_at",
    )

    __mapper_args__ = {"version_id_col": version}

    @property
    def progress_percentage(self):
        if not self.target_value:
            return 0.0
        return round(min(100.0, self.current_value / self.target_value * 100), 2)

    def refresh_status(self, now=None):
        """Move an active goal to completed or expired once its window has passed."""
        now = now or utcnow()
        if self.status != "active":
            return self.status
        if self.current_value >= self.target_value:
            self.status = "completed"
            self.completed_at = self.completed_at or now
        elif now > self.end_date:
            self.status = "expired"
        return self.status

    def to_dict(self, now=None):
        now = now or utcnow()
        remaining = max((self.end_date - now).total_seconds(), 0)
        return {
            "id": self.id,
            "title": self.title,
            "description": self.description,
            "type": self.goal_type,
            "frequency": self.frequency,
            "target_value": self.target_value,
            "current_value": self.current_value,
            "unit": self.unit,
            "activity_type": self.activity_type,
            "start_date": _iso(self.start_date),
            "end_date": _iso(self.end_date),
            "status": self.status,
            "is_adaptive": self.is_adaptive,
            "progress_percentage": self.progress_percentage,
            "time_remaining_seconds": int(remaining),
            "completed_at": _iso(self.completed_at),
        }


class GoalProgress(db.Model):
    id = db.Column(db.Integer, primary_key=True)
    goal_id = db.Column(db.Integer, db.ForeignKey("goal.id"), nullable=False, index=True)
    value = db.Column(db.Float, nullable=False)
    delta = db.Column(db.Float, nullable=False)
    source = db.Column(db.String(20), nullable=False, default="manual")
    activity_id = db.Column(db.Integer, db.ForeignKey("activity.id"))
    recorded_at = db.Column(db.DateTime, nullable=False, default=utcnow)

    def to_dict(self):
        return {
            "value": self.value,
            "delta": self.delta,
            "source": self.source,
            "activity_id": self.activity_id,
            "recorded_at": _iso(self.recorded_at),
        }


class Badge(db.Model):
    id = db.Column(db.Integer, primary_key=True)
    code = db.Column(db.String(50), unique=True, nullable=False)
    name = db.Column(db.String(100), nullable=False)
    description = db.Column(db.String(300), nullable=False)
    icon_url = db.Column(db.String(500), nullable=False)
    category = db.Column(db.String(20), nullable=False)
    rarity = db.Column(db.String(20), nullable=False, default="common")
    points = db.Column(db.Integer, nullable=False, default=0)
    criteria = db.Column(db.JSON, nullable=False)
    is_active = db.Column(db.Boolean, nullable=False, default=True)

    def to_dict(self):
        return {
            "id": self.id,
            "code": self.code,
            "name": self.name,
            "description": self.description,
            "icon_url": self.icon_url,
            "category": self.category,
            "rarity": self.rarity,
            "points": self.points,
        }


class UserBadge(db.Model):
    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey("user.id"), nullable=False)
    badge_id = db.Column(db.Integer, db.ForeignKey("badge.id"), nullable=False)
    earned_at = db.Column(db.DateTime, nullable=False, default=utcnow)
    earned_context = db.Column(db.String(200))
    is_visible = db.Column(db.Boolean, nullable=False, default=True)

    badge = db.relationship("Badge")

    __table_args__ = (db.UniqueConstraint("user_id", "badge_id", name="uq_user_badge"),)

    def to_dict(self):
        data = self.badge.to_dict()
        data.update({"earned_at": _iso(self.earned_at), "earned_context": self.earned_context})
        return data


class XpTransaction(db.Model):
    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey("user.id"), nullable=False, index=True)
    amount = db.Column(db.Integer, nullable=False)
    base_amount = db.Column(db.Integer, nullable=False)
    bonus_amount = db.Column(db.Integer, nullable=False, default=0)
    reason = db.Column(db.String(200), nullable=False)
    source = db.Column(db.String(50), nullable=False, default="system")
    source_id = db.Column(db.Integer)
    created_at = db.Column(db.DateTime, nullable=False, default=utcnow, index=True)

    def to_dict(self):
        return {
            "amount": self.amount,
            "base_amount": self.base_amount,
            "bonus_amount": self.bonus_amount,
            "reason": self.reason,
            "source": self.source,
            "source_id": self.source_id,
            "created_at": _iso(self.created_at),
        }


class Challenge(db.Model):
    id = db.Column(db.Integer, primary_key=True)
    title = db.Column(db.String(100), nullable=False)
    description = db.Column(db.Text, nullable=False, default="")
    start_date = db.Column(db.DateTime, nullable=False)
    end_date = db.Column(db.DateTime)
    challenge_type = db.Column(db.String(20), nullable=False)
    target_value = db.Column(db.Float, nullable=False)
    unit = db.Column(db.String(30), nullable=False)
    activity_type = db.Column(db.String(50))
    is_private = db.Column(db.Boolean, nullable=False, default=False)
    is_active = db.Column(db.Boolean, nullable=False, default=False)
    club_id = db.Column(db.Integer, db.ForeignKey("club.id"), index=True)
    created_by_id = db.Column(db.Integer, db.ForeignKey("user.id"), nullable=False)
    created_at = db.Column(db.DateTime, nullable=False, default=utcnow)

    created_by = db.relationship("User")
    club = db.relationship("Club")
    participants = db.relationship("ChallengeParticipant", backref="challenge", lazy=True, cascade="all, delete-orphan")

    def has_ended(self, now=None):
        return self.end_date is not None and self.end_date < (now or utcnow())

    def participant_for(self, user_id):
        for participant in self.participants:
            if participant.user_id == user_id:
                return participant
        return None

    def to_dict(self):
        return {
            "id": self.id,
            "title": self.title,
            "description": self.description,
            "start_date": _iso(self.start_date),
            "end_date": _iso(self.end_date),
            "type": self.challenge_type,
            "target_value": self.target_value,
            "unit": self.unit,
            "activity_type": self.activity_type,
            "is_private": self.is_private,
            "is_active": self.is_active,
            "created_by": self.created_by.to_summary(),
            "club_id": self.club_id,
            "participant_count": len(self.participants),
        }


class ChallengeParticipant(db.Model):
    id = db.Column(db.Integer, primary_key=True)
    challenge_id = db.Column(db.Integer, db.ForeignKey("challenge.id"), nullable=False)
    user_id = db.Column(db.Integer, db.ForeignKey("user.id"), nullable=False, index=True)
    joined_at = db.Column(db.DateTime, nullable=False, default=utcnow)
    progress = db.Column(db.Float, nullable=False, default=0.0)
    is_completed = db.Column(db.Boolean, nullable=False, default=False)
    completed_at = db.Column(db.DateTime)
    version = db.Column(db.Integer, nullable=False)

    user = db.relationship("User")

    __table_args__ = (db.UniqueConstraint("challenge_id", "user_id", name="uq_challenge_participant"),)
    __mapper_args__ = {"version_id_col": version}

    def to_dict(self):
        return {
            "user": self.user.to_summary(),
            "joined_at": _iso(self.joined_at),
            "progress": self.progress,
            "is_completed": self.is_completed,
            "completed_at": _iso(self.completed_at),
        }


class FriendRequest(db.Model):
    id = db.Column(db.Integer, primary_key=True)
    sender_id = db.Column(db.Integer, db.ForeignKey("user.id"), nullable=False, index=True)
    receiver_id = db.Column(db.Integer, db.ForeignKey("user.id"), nullable=False, index=True)
    message = db.Column(db.String(200))
    status = db.Column(db.String(20), nullable=False, default="pending")
    created_at = db.Column(db.DateTime, nullable=False, default=utcnow)
    responded_at = db.Column(db.DateTime)

    sender = db.relationship("User", foreign_keys=[sender_id])
    receiver = db.relationship("User", foreign_keys=[receiver_id])

    def to_dict(self):
        return {
            "id": self.id,
            "sender": self.sender.to_summary(),
            "receiver": self.receiver.to_summary(),
            "message": self.message,
            "status": self.status,
            "created_at": _iso(self.created_at),
            "responded_at": _iso(self.responded_at),
        }


class Friendship(db.Model):
    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey("user.id"), nullable=False, index=True)
    friend_id = db.Column(db.Integer, db.ForeignKey("user.id"), nullable=False)
    created_at = db.Column(db.DateTime, nullable=False, default=utcnow)

    friend = db.relationship("User", foreign_keys=[friend_id])

    __table_args__ = (db.UniqueConstraint("user_id", "friend_id", name="uq_friendship"),)


class ActivityShare(db.Model):
    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey("user.id"), nullable=False, index=True)
    activity_id = db.Column(db.Integer, db.ForeignKey("activity.id"), nullable=False)
    caption = db.Column(db.String(500), nullable=False, default="")
    privacy = db.Column(db.String(20), nullable=False, default="friends")
    shared_at = db.Column(db.DateTime, nullable=False, default=utcnow, index=True)

    user = db.relationship("User")
    activity = db.relationship("Activity")
    likes = db.relationship("ActivityLike", backref="share", lazy=True, cascade="all, delete-orphan")
    comments = db.relationship(
        "ActivityComment", backref="share", lazy=True, cascade="all, delete-orphan",
        order_by="ActivityComment.created_at",
    )


class ActivityLike(db.Model):
    id = db.Column(db.Integer, primary_key=True)
    share_id = db.Column(db.Integer, db.ForeignKey("activity_share.id"), nullable=False)
    user_id = db.Column(db.Integer, db.ForeignKey("user.id"), nullable=False)
    created_at = db.Column(db.DateTime, nullable=False, default=utcnow)

    __table_args__ = (db.UniqueConstraint("share_id", "user_id", name="uq_activity_like"),)


class ActivityComment(db.Model):
    id = db.Column(db.Integer, primary_key=True)
    share_id = db.Column(db.Integer, db.ForeignKey("activity_share.id"), nullable=False, index=True)
    user_id = db.Column(db.Integer, db.ForeignKey("user.id"), nullable=False)
    content = db.Column(db.String(500), nullable=False)
    created_at = db.Column(db.DateTime, nullable=False, default=utcnow)
    updated_at = db.Column(db.DateTime, default=utcnow, onupdate=utcnow)
    is_deleted = db.Column(db.Boolean, nullable=False, default=False)

    user = db.relationship("User")

    def to_dict(self):
        return {
            "id": self.id,
            "post_id": self.share_id,
            "user": self.user.to_summary(),
            "content": self.content,
            "created_at": _iso(self.created_at),
        }


class Club(db.Model):
    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(100), unique=True, nullable=False)
    description = db.Column(db.Text, nullable=False, default="")
    category = db.Column(db.String(50))
    is_private = db.Column(db.Boolean, nullable=False, default=False)
    owner_id = db.Column(db.Integer, db.ForeignKey("user.id"), nullable=False)
    created_at = db.Column(db.DateTime, nullable=False, default=utcnow)

    owner = db.relationship("User")
    members = db.relationship("ClubMember", backref="club", lazy=True, cascade="all, delete-orphan")

    def membership_for(self, user_id):
        for member in self.members:
            if member.user_id == user_id:
                return member
        return None

    def to_dict(self):
        return {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "category": self.category,
            "is_private": self.is_private,
            "owner": self.owner.to_summary(),
            "member_count": len(self.members),
            "created_at": _iso(self.created_at),
        }


class ClubMember(db.Model):
    id = db.Column(db.Integer, primary_key=True)
    club_id = db.Column(db.Integer, db.ForeignKey("club.id"), nullable=False)
    user_id = db.Column(db.Integer, db.ForeignKey("user.id"), nullable=False, index=True)
    role = db.Column(db.String(20), nullable=False, default="member")
    joined_at = db.Column(db.DateTime, nullable=False, default=utcnow)

    user = db.relationship("User")

    __table_args__ = (db.UniqueConstraint("club_id", "user_id", name="uq_club_member"),)

    def to_dict(self):
        return {
            "user": self.user.to_summary(),
            "role": self.role,
            "joined_at": _iso(self.joined_at),
        }


class Message(db.Model):
    id = db.Column(db.Integer, primary_key=True)
    sender_id = db.Column(db.Integer, db.ForeignKey("user.id"), nullable=False, index=True)
    recipient_id = db.Column(db.Integer, db.ForeignKey("user.id"), nullable=False, index=True)
    content = db.Column(db.String(2000), nullable=False)
    created_at = db.Column(db.DateTime, nullable=False, default=utcnow, index=True)
    read_at = db.Column(db.DateTime)
    is_deleted = db.Column(db.Boolean, nullable=False, default=False)

    def to_dict(self):
        return {
            "id": self.id,
            "sender_id": self.sender_id,
            "recipient_id": self.recipient_id,
            "content": self.content,
            "created_at": _iso(self.created_at),
            "read_at": _iso(self.read_at),
        }


class Notification(db.Model):
    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey("user.id"), nullable=False, index=True)
    type = db.Column(db.String(30), nullable=False)
    title = db.Column(db.String(100), nullable=False)
    message = db.Column(db.String(500), nullable=False)
    data = db.Column(db.JSON, nullable=False, default=dict)
    is_read = db.Column(db.Boolean, nullable=False, default=False)
    created_at = db.Column(db.DateTime, nullable=False, default=utcnow, index=True)
    read_at = db.Column(db.DateTime)

    def to_dict(self):
        return {
            "id": self.id,
            "type": self.type,
            "title": self.title,
            "message": self.message,
            "data": self.data or {},
            "is_read": self.is_read,
            "created_at": _iso(self.created_at),
            "read_at": _iso(self.read_at),
        }


class Reminder(db.Model):
    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey("user.id"), nullable=False, index=True)
    reminder_type = db.Column(db.String(20), nullable=False, default="workout")
    title = db.Column(db.String(100), nullable=False)
    message = db.Column(db.String(300), nullable=False, default="")
    # UTC wall-clock time; days_of_week uses Monday = 0
    remind_at = db.Column(db.Time, nullable=False)
    days_of_week = db.Column(db.JSON, nullable=False, default=lambda: list(range(7)))
    goal_id = db.Column(db.Integer, db.ForeignKey("goal.id"))
    activity_type = db.Column(db.String(50))
    is_active = db.Column(db.Boolean, nullable=False, default=True, index=True)
    last_sent_on = db.Column(db.Date)
    created_at = db.Column(db.DateTime, nullable=False, default=utcnow)
    updated_at = db.Column(db.DateTime, default=utcnow, onupdate=utcnow)

    goal = db.relationship("Goal")

    def is_due(self, now):
        return (
            self.is_active
            and now.weekday() in (self.days_of_week or [])
            and now.time() >= self.remind_at
            and self.last_sent_on != now.date()
        )

    def to_dict(self):
        return {
            "id": self.id,
            "type": self.reminder_type,
            "title": self.title,
            "message": self.message,
            "time": self.remind_at.strftime("%H:%M"),
            "days_of_week": sorted(self.days_of_week or []),
            "goal_id": self.goal_id,
            "activity_type": self.activity_type,
            "is_active": self.is_active,
            "last_sent_on": _iso(self.last_sent_on),
            "created_at": _iso(self.created_at),
        }

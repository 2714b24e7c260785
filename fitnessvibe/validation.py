"""Input coercion shared by the handlers.

Every helper raises ``ValidationError`` with a client-facing message, so
handlers can parse a request body field by field without try/except noise.
"""
import math
import re
from datetime import date, datetime, timezone

from .exceptions import ValidationError

EMAIL_RE = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")
NAME_RE = re.compile(r"^[a-zA-Z\s\-'\.]+$")
USERNAME_RE = re.compile(r"^[A-Za-z0-9_.]{3,30}$")
MAX_PAGE_SIZE = 100


def require_string(data, field, max_length=None, min_length=1, label=None):
    label = label or field.replace("_", " ").capitalize()
    value = data.get(field)
    if not isinstance(value, str) or len(value.strip()) < min_length:
        if min_length > 1:
            raise ValidationError(f"{label} must be at least {min_length} characters")
        raise ValidationError(f"{label} is required")
    value = value.strip()
    if max_length and len(value) > max_length:
        raise ValidationError(f"{label} is too long (maximum {max_length} characters)")
    return value


def optional_string(data, field, max_length=None, label=None):
    value = data.get(field)
    if value is None or (isinstance(value, str) and not value.strip()):
        return None
    if not isinstance(value, str):
        raise ValidationError(f"{label or field} must be a string")
    value = value.strip()
    if max_length and len(value) > max_length:
        label = label or field.replace("_", " ").capitalize()
        raise ValidationError(f"{label} is too long (maximum {max_length} characters)")
    return value


def parse_number(value, field, minimum=None, maximum=None, integer=False,
                 exclusive_minimum=False, exclusive_maximum=False):
    if isinstance(value, bool):
        raise ValidationError(f"{field} must be a number")
    try:
        number = float(value)
    except (TypeError, ValueError, OverflowError):
        raise ValidationError(f"{field} must be a number")
    if not math.isfinite(number):
        raise ValidationError(f"{field} must be a finite number")
    if integer:
        if not number.is_integer():
            raise ValidationError(f"{field} must be a whole number")
        number = value if isinstance(value, int) else int(number)
    if minimum is not None:
        if number < minimum or (exclusive_minimum and number == minimum):
            raise ValidationError(f"{field} is out of range")
    if maximum is not None:
        if number > maximum or (exclusive_maximum and number == maximum):
            raise ValidationError(f"{field} is out of range")
    return number


def optional_number(data, field, **kwargs):
    value = data.get(field)
    if value is None or value == "":
        return None
    return parse_number(value, field, **kwargs)


def parse_bool(value, default=False):
    if value is None:
        return default
    if isinstance(value, bool):
        return value
    if isinstance(value, str):
        return value.strip().lower() in ("1", "true", "yes", "on")
    return bool(value)


def parse_choice(value, choices, field, default=None):
    if value is None or value == "":
        if default is None:
            raise ValidationError(f"{field} is required")
        return default
    normalized = str(value).strip().lower()
    if normalized not in choices:
        raise ValidationError(f"{field} must be one of: {', '.join(choices)}")
    return normalized


def parse_datetime(value, field, required=False):
    """Parse ISO-8601 into naive UTC."""
    if value is None or value == "":
        if required:
            raise ValidationError(f"{field} is required")
        return None
    if isinstance(value, datetime):
        parsed = value
    else:
        try:
            parsed = datetime.fromisoformat(str(value).replace("Z", "+00:00"))
        except ValueError:
            raise ValidationError(f"{field} must be an ISO-8601 datetime")
    if parsed.tzinfo is not None:
        parsed = parsed.astimezone(timezone.utc).replace(tzinfo=None)
    return parsed


def parse_date(value, field):
    if value is None or value == "":
        return None
    if isinstance(value, date):
        return value
    try:
        return date.fromisoformat(str(value)[:10])
    except ValueError:
        raise ValidationError(f"{field} must be an ISO-8601 date")


def validate_email(email):
    if not isinstance(email, str) or not email.strip():
        raise ValidationError("Email address is required")
    email = email.strip().lower()
    if len(email) > 255:
        raise ValidationError("Email address is too long")
    if not EMAIL_RE.match(email):
        raise ValidationError("Please provide a valid email address")
    return email


def validate_password(password, field="Password"):
    if not isinstance(password, str) or not password:
        raise ValidationError(f"{field} is required")
    if len(password) < 8:
        raise ValidationError(f"{field} must be at least 8 characters long")
    if len(password) > 128:
        raise ValidationError(f"{field} is too long")
    if not (re.search(r"[a-z]", password) and re.search(r"[A-Z]", password) and re.search(r"\d", password)):
        raise ValidationError(
            f"{field} must contain at least one lowercase letter, one uppercase letter, and one number"
        )
    return password


def validate_person_name(data, field, label):
    value = require_string(data, field, max_length=50, label=label)
    if not NAME_RE.match(value):
        raise ValidationError(f"{label} contains invalid characters")
    return value


def pagination(args, default_size=20):
    page = parse_number(args.get("page", 1), "page", minimum=1, integer=True)
    page_size = parse_number(
        args.get("page_size", default_size), "page_size", minimum=1, maximum=MAX_PAGE_SIZE, integer=True
    )
    return page, page_size


def page_payload(page_obj, items):
    return {
        "items": items,
        "page": page_obj.page,
        "page_size": page_obj.per_page,
        "total": page_obj.total,
        "pages": page_obj.pages,
    }

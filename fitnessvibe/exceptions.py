class FitnessVibeError(Exception):
    """Base error for handler failures; carries the HTTP status the API maps it to."""

    status_code = 500

    def __init__(self, message, details=None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def to_dict(self):
        body = {"message": self.message}
        if self.details:
            body["details"] = self.details
        return body


class ValidationError(FitnessVibeError):
    status_code = 400


class AuthenticationError(FitnessVibeError):
    status_code = 401


class ForbiddenError(FitnessVibeError):
    status_code = 403


class NotFoundError(FitnessVibeError):
    status_code = 404

    def __init__(self, entity, entity_id=None):
        if entity_id is None:
            message = f"{entity} not found"
        else:
            message = f"{entity} {entity_id} not found"
        super().__init__(message)
        self.entity = entity
        self.entity_id = entity_id


class ConflictError(FitnessVibeError):
    status_code = 409


class RateLimitError(FitnessVibeError):
    status_code = 429

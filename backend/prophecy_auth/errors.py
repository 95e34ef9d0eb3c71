"""Error taxonomy for the auth API.

Every error carries the HTTP status it maps to; ``main.py`` renders them as
``{"error": message}``.
"""


class ApiError(Exception):
    status_code = 500

    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.message = message
        if status_code is not None:
            self.status_code = status_code

    def to_dict(self) -> dict:
        return {"error": self.message}


class ValidationError(ApiError):
    status_code = 400


class NotFoundError(ApiError):
    status_code = 404


class ConflictError(ApiError):
    status_code = 409


class AuthenticationError(ApiError):
    """Bad credentials (401) or an expired/failed ceremony (400)."""

    status_code = 401


class AuthorizationError(ApiError):
    """Access tier not met (403) or a lifecycle guard violation (400)."""

    status_code = 403


class InternalError(ApiError):
    status_code = 500


# Messages shared between modules and asserted by tests
USERNAME_TAKEN = "username already taken"
INVALID_CREDENTIALS = "invalid username or password"
NOT_APPROVED = "account not yet approved"
SUSPENDED = "account suspended"

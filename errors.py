"""Error taxonomy shared by the engines and the HTTP layer.

Engines raise these; ``main.py`` turns them into ``{"error", "message"}``
JSON bodies. ``NotFound`` covers both "missing" and "not yours".
"""


class HealthWalletError(Exception):
    status_code = 500
    kind = "internal"
    default_message = "Internal server error"

    def __init__(self, message: str = ""):
        self.message = message or self.default_message
        super().__init__(self.message)

    def to_dict(self) -> dict:
        return {"error": self.kind, "message": self.message}


class InvalidArgument(HealthWalletError):
    status_code = 400
    kind = "invalid_argument"
    default_message = "Invalid request"


class Unauthorized(HealthWalletError):
    status_code = 401
    kind = "unauthorized"
    default_message = "Authentication required"


class NotFound(HealthWalletError):
    status_code = 404
    kind = "not_found"
    default_message = "Not found"


class Conflict(HealthWalletError):
    status_code = 409
    kind = "conflict"
    default_message = "Already exists"


class RateLimited(HealthWalletError):
    status_code = 429
    kind = "rate_limited"
    default_message = "Too many attempts. Please wait before trying again."

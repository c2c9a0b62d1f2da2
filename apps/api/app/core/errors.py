"""Application error taxonomy.

Services raise these; a single exception handler in ``app.main`` renders
them as ``{"error": code, "detail": message}`` with the class status code.
The ``code`` is a stable reason string that clients can branch on.
"""


class AppError(Exception):
    """Base class for errors that map to an HTTP response."""

    status_code = 500
    default_code = "error"

    def __init__(self, code: str | None = None, message: str | None = None):
        self.code = code or self.default_code
        self.message = message or self.code
        super().__init__(self.message)


class ValidationFailed(AppError):
    """Caller input is malformed or fails a business check (400)."""

    status_code = 400
    default_code = "invalid_request"


class Unauthenticated(AppError):
    """No usable credential (401)."""

    status_code = 401
    default_code = "not_authenticated"


class Forbidden(AppError):
    """Authenticated but not allowed (403)."""

    status_code = 403
    default_code = "forbidden"


class NotFound(AppError):
    status_code = 404
    default_code = "not_found"


class Conflict(AppError):
    """Business-rule violation, e.g. opted-out phone or illegal transition (409)."""

    status_code = 409
    default_code = "conflict"


class RateLimited(AppError):
    status_code = 429
    default_code = "rate_limited"


class Upstream(AppError):
    """Dependency failure not attributable to the caller (500)."""

    status_code = 500
    default_code = "upstream_error"


class UpstreamTimeout(AppError):
    status_code = 504
    default_code = "upstream_timeout"

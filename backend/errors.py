class AttendanceError(Exception):
    """Base for errors that map onto an HTTP status and a client-safe message."""

    status_code = 500

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ValidationError(AttendanceError):
    """Missing or malformed request fields."""

    status_code = 400


class AuthenticationError(AttendanceError):
    """No session, no bound facility, or a signature that does not verify."""

    status_code = 401


class AuthorizationError(AttendanceError):
    """Caller is authenticated but the target belongs to another facility."""

    status_code = 403


class NotFoundError(AttendanceError):
    status_code = 404


class ConflictError(AttendanceError):
    status_code = 409


class StorageError(AttendanceError):
    """A write to the record store failed; details are logged, never returned."""

    status_code = 500


class ConfigurationError(AttendanceError):
    """Server-side setup is incomplete (e.g. no QR signing secret)."""

    status_code = 500

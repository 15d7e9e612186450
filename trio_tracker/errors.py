"""Error types raised by services and converted to JSON responses by the app."""


class TrackerError(Exception):
    status_code = 500

    def __init__(self, message, status_code=None):
        super().__init__(message)
        self.message = message
        if status_code is not None:
            self.status_code = status_code

    def to_dict(self):
        return {'error': self.message}


class ValidationError(TrackerError):
    status_code = 400


class AuthenticationRequired(TrackerError):
    status_code = 401


class PermissionDenied(TrackerError):
    status_code = 403


class NotFound(TrackerError):
    status_code = 404


class Conflict(TrackerError):
    status_code = 409


class SessionCodeAllocationError(TrackerError):
    status_code = 503


class DiscordPostError(TrackerError):
    status_code = 502


class ConfigurationError(TrackerError):
    status_code = 500

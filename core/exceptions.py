"""
Domain errors raised by the academic records core.

Each error carries the HTTP status it maps to; ApiErrorMiddleware turns
them into JSON responses for the API.
"""


class AcademicRecordsError(Exception):
    """Base class for all domain errors."""
    status_code = 500
    default_message = 'Internal server error'

    def __init__(self, message=None, errors=None):
        self.message = message or self.default_message
        self.errors = errors or {}
        super().__init__(self.message)

    def to_dict(self):
        payload = {'message': self.message}
        if self.errors:
            payload['errors'] = self.errors
        return payload


class NotFound(AcademicRecordsError):
    status_code = 404
    default_message = 'Not found'


class StudentNotFound(NotFound):
    default_message = 'Student not found'


class Conflict(AcademicRecordsError):
    status_code = 409
    default_message = 'Resource already exists'


class ValidationFailed(AcademicRecordsError):
    """Field constraint violation. ``errors`` maps field names to messages."""
    status_code = 400
    default_message = 'Validation failed'

    @classmethod
    def from_form(cls, form, message=None):
        errors = {
            field: [str(e) for e in messages]
            for field, messages in form.errors.items()
        }
        return cls(message, errors=errors)


class Forbidden(AcademicRecordsError):
    status_code = 403
    default_message = 'You do not have permission to perform this action'


class DivisionInvalid(AcademicRecordsError):
    """Raised when a percentage is requested against a non-positive maximum."""
    status_code = 400
    default_message = 'Maximum marks must be greater than zero'

"""
Workflow error taxonomy shared by the enquiry and quotation lifecycles.

Every error carries a human-readable message plus a machine-readable code so
that callers (the REST layer, management commands) can branch on "wrong
state" versus "bad input" without parsing text.
"""


class WorkflowError(Exception):
    """Base class for all lifecycle errors."""

    status_code = 500
    default_code = 'error'

    def __init__(self, message, code=None, details=None):
        super().__init__(message)
        self.message = message
        self.code = code or self.default_code
        self.details = details

    def __str__(self):
        return self.message


class ValidationError(WorkflowError):
    """Malformed or out-of-range input."""

    status_code = 400
    default_code = 'validation_error'


class NotFoundError(WorkflowError):
    """A referenced enquiry, quotation or product does not exist."""

    status_code = 404
    default_code = 'not_found'


class PreconditionFailedError(WorkflowError):
    """The operation is not valid for the current state of the record."""

    status_code = 409
    default_code = 'precondition_failed'


class ConflictError(WorkflowError):
    """Unique-constraint violation; the caller may retry the creation."""

    status_code = 409
    default_code = 'conflict'


class InternalError(WorkflowError):
    """Unexpected collaborator failure. The message shown to clients is opaque."""

    status_code = 500
    default_code = 'internal_error'

    def __init__(self, message='An internal error occurred.', code=None, details=None):
        super().__init__(message, code=code, details=details)


def from_django_validation(exc, message='Validation error.'):
    """Translate a django.core.exceptions.ValidationError into ours."""
    if hasattr(exc, 'message_dict'):
        details = {field: list(errors) for field, errors in exc.message_dict.items()}
    else:
        details = {'__all__': list(exc.messages)}
    return ValidationError(message, details=details)

"""Errors raised by the circulation engine.

They subclass Django's ``ValidationError`` so forms and admin actions can
catch them the same way they catch model validation failures. Each carries a
stable ``code`` that views can branch on.
"""
from django.core.exceptions import ObjectDoesNotExist, ValidationError


class CirculationError(ValidationError):
    default_message = "The circulation request could not be completed."
    default_code = 'circulation_error'

    def __init__(self, message=None, code=None, params=None):
        super().__init__(message or self.default_message, code=code or self.default_code, params=params)

    def __str__(self):
        return self.messages[0] if self.messages else self.default_message


class CopyUnavailable(CirculationError):
    default_message = "This book copy is not available for borrowing."
    default_code = 'copy_unavailable'


class AlreadyReturned(CirculationError):
    default_message = "This book has already been returned."
    default_code = 'already_returned'


class InvalidState(CirculationError):
    default_message = "This action is not allowed in the current state."
    default_code = 'invalid_state'


class NotFound(CirculationError, ObjectDoesNotExist):
    default_message = "The requested record does not exist."
    default_code = 'not_found'


class ValidationFailed(CirculationError):
    default_message = "The request is invalid."
    default_code = 'validation_failed'

"""
Error taxonomy shared by the order engine, chat relay and notification
dispatcher. Routers let these propagate; the handler registered in
server.py turns them into ``{"message": ...}`` responses.
"""


class PassItPalError(Exception):
    status_code = 500

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class NotFound(PassItPalError):
    status_code = 404


class Forbidden(PassItPalError):
    status_code = 403


class InvalidState(PassItPalError):
    status_code = 400


class Conflict(PassItPalError):
    status_code = 409


class AuthenticationFailure(PassItPalError):
    status_code = 401


class ValidationFailure(PassItPalError):
    status_code = 400


class DuplicateRecord(Exception):
    """Raised by a store when an insert violates a uniqueness rule."""

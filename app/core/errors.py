"""
Error taxonomy for account and identity operations.

ValidationError and ConflictError are safe to show to end users.
IntegrityError means the request cannot be served (store down, secret missing);
its message is for server logs and is replaced by a generic one in production.
"""


class IdentityError(Exception):
    """Base class for identity-resolution failures."""

    default_message = "Identity error"

    def __init__(self, message: str = None):
        self.message = message or self.default_message
        super().__init__(self.message)


class ValidationError(IdentityError):
    """Input could not be accepted (missing profile id, bad registration data)."""

    default_message = "Invalid input"


class SignedRequestError(ValidationError):
    """A Facebook signed request was malformed, forged or stale."""

    default_message = "Malformed signed_request"


class ConflictError(IdentityError):
    """An account with the same unique email already exists."""

    default_message = "An account with that email already exists"


class IntegrityError(IdentityError):
    """The backing store or a required secret is unavailable."""

    default_message = "Service temporarily unavailable"

"""
Error taxonomy for the signup workflow.

Every error carries the HTTP status the API layer should answer with and a
message that is safe to show to the person who triggered it.
"""

from typing import Optional


class VolunteerHubError(Exception):
    """Base class for errors surfaced to API callers."""

    status_code = 500
    default_message = "Something went wrong"

    def __init__(self, message: Optional[str] = None, details: Optional[str] = None):
        self.message = message or self.default_message
        self.details = details
        super().__init__(self.message)

    def to_dict(self) -> dict:
        body = {"detail": self.message}
        if self.details:
            body["details"] = self.details
        return body


class AlreadySignedUp(VolunteerHubError):
    status_code = 409
    default_message = "You are already signed up for this role"


class RoleFull(VolunteerHubError):
    status_code = 409
    default_message = "This role is already full"


class NotAuthorized(VolunteerHubError):
    status_code = 403
    default_message = "You are not allowed to perform this action"


class NotFound(VolunteerHubError):
    status_code = 404
    default_message = "Not found"


class IdentityCreationFailed(VolunteerHubError):
    """The auth provider refused to create the account."""

    status_code = 502
    default_message = "Failed to create user"


class SignupWindowExpired(VolunteerHubError):
    status_code = 403
    default_message = "Signup window expired. Please sign in and sign up for the role again."


class DependencyUnavailable(VolunteerHubError):
    """The store or the auth provider failed transiently."""

    status_code = 503
    default_message = "The service is temporarily unavailable. Please try again in a moment."


class ValidationFailed(VolunteerHubError, ValueError):
    status_code = 400
    default_message = "Invalid input"


class SignupIncomplete(VolunteerHubError):
    """The account exists but the reservation could not be written."""

    status_code = 500
    default_message = (
        "Your account was created but signup didn't complete. "
        "Please sign in and try signing up for this role again."
    )

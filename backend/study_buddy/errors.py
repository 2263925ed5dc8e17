"""Exception types shared by the profile pipeline and its collaborators."""

from __future__ import annotations


class ProfileNotFoundError(LookupError):
    """Raised when the document store holds no document for a user."""

    def __init__(self, user_id: str) -> None:
        super().__init__(f"No profile document for user '{user_id}'.")
        self.user_id = user_id


class ConcurrentUpdateError(RuntimeError):
    """Raised when a conditional write finds the document version has moved."""

    def __init__(self, user_id: str, expected_version: object, actual_version: object = None) -> None:
        super().__init__(
            f"Profile document for '{user_id}' changed concurrently "
            f"(expected version {expected_version!r}, found {actual_version!r})."
        )
        self.user_id = user_id
        self.expected_version = expected_version
        self.actual_version = actual_version


class ExtractionError(RuntimeError):
    """Raised when model output cannot be decoded into extracted facts."""


class AuthenticationError(RuntimeError):
    """Raised when a bearer token is missing or fails verification."""


__all__ = [
    "AuthenticationError",
    "ConcurrentUpdateError",
    "ExtractionError",
    "ProfileNotFoundError",
]

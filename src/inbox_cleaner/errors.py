"""Exception hierarchy for Inbox Cleaner."""

from __future__ import annotations


class InboxCleanerError(Exception):
    """Base exception for all Inbox Cleaner failures."""


class MailClientError(InboxCleanerError):
    """A Gmail API call failed."""

    def __init__(self, message: str, status: int | None = None) -> None:
        super().__init__(message)
        self.status = status


class AuthError(MailClientError):
    """Credentials are missing, expired or revoked.

    Raised after the single transparent re-authentication attempt has
    already been spent; the user has to sign in again.

    When raised mid-way through a chunked mutation, ``partial_result``
    holds the tally so far, with the aborted ids counted as failed.
    """

    partial_result = None


class RateLimitError(MailClientError):
    """Gmail answered with HTTP 429."""


class ValidationError(InboxCleanerError, ValueError):
    """Malformed input to a classify or mutate operation."""


class ClassificationError(InboxCleanerError):
    """The text-classification collaborator failed."""


class ClassificationParseError(ClassificationError):
    """The classification response did not contain a usable JSON object."""


class ScanError(InboxCleanerError):
    """A scan was aborted; the previously saved snapshot is untouched."""


class OperationInProgressError(InboxCleanerError):
    """A scan or bulk mutation is already running."""

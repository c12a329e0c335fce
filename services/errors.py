"""
services/errors.py — Scrim Error Taxonomy
-----------------------------------------
Three families of errors:

- ValidationError: the acting user did something not allowed right now.
  Always recoverable, shown to the user ephemerally, never mutates state.
- ExternalServiceError: the stats API or the DatHost API failed.
- InvariantViolation: the current setup cycle cannot continue and must be reset.
"""

from __future__ import annotations

from typing import Optional


# -----------------------------------------------------------------------------
# Validation errors (user-facing)
# -----------------------------------------------------------------------------


class ValidationError(Exception):
    """Base class for rejected user actions."""

    default_message = "That action is not allowed right now."

    def __init__(self, message: Optional[str] = None):
        self.message = message or self.default_message
        super().__init__(self.message)


class AlreadyQueued(ValidationError):
    default_message = "You are already in the queue."


class QueueFull(ValidationError):
    default_message = "Sorry, the queue is full."


class MissingIdentity(ValidationError):
    default_message = (
        "SteamID not found for your discord user, please use `/steamid` to assign one. "
        "Example: `/steamid STEAM_0:1:12345678`"
    )


class NotQueued(ValidationError):
    default_message = "You are not in the queue."


class WrongPhase(ValidationError):
    default_message = "That action is not available in the current setup phase."


class QueueNotFull(ValidationError):
    default_message = "The queue is not full yet."


class AlreadyStarted(ValidationError):
    default_message = "Setup has already started."


class NotStarted(ValidationError):
    default_message = "There is no setup in progress."


class AlreadyCaptain(ValidationError):
    default_message = "You are already a captain."


class NotYourTurn(ValidationError):
    default_message = "You are not the current draft picker."


class AlreadyPicked(ValidationError):
    default_message = "That player has already been picked."


class NotCaptain(ValidationError):
    default_message = "You are not the captain of the team picking sides."


class InvalidChoice(ValidationError):
    default_message = "Invalid selection."


class Busy(ValidationError):
    default_message = "Another action is still being processed, try again in a moment."


# -----------------------------------------------------------------------------
# External service errors
# -----------------------------------------------------------------------------


class ExternalServiceError(Exception):
    """Raised when an external HTTP service fails or returns an error status.

    Attributes:
        status: HTTP status code (503 for network errors)
        message: Error body or description
    """

    service = "external"

    def __init__(self, status: int, message: str):
        self.status = status
        self.message = message
        super().__init__(f"{self.service} error [{status}]: {message}")


class StatsAPIError(ExternalServiceError):
    service = "Stats API"


class DathostAPIError(ExternalServiceError):
    service = "DatHost API"


class AutoDraftUnavailable(Exception):
    """Auto-draft cannot produce a draft; manual draft is the remedy."""

    NOT_CONFIGURED = "not_configured"
    NO_STATS = "no_stats"
    INSUFFICIENT_STATS = "insufficient_stats"
    SERVICE_ERROR = "service_error"

    MESSAGES = {
        NOT_CONFIGURED: "Sorry, the scrimbot-api user/password has not been configured. This option is unavailable.",
        NO_STATS: "No statistics found for any players, please use another option.",
        INSUFFICIENT_STATS: "Unable to find stats for at least 2 players. Please use another option.",
        SERVICE_ERROR: "Something went wrong retrieving stats, please use another option.",
    }

    def __init__(self, reason: str):
        self.reason = reason
        self.message = self.MESSAGES.get(reason, self.MESSAGES[self.SERVICE_ERROR])
        super().__init__(self.message)


class NoStats(AutoDraftUnavailable):
    def __init__(self):
        super().__init__(AutoDraftUnavailable.NO_STATS)


class InsufficientStats(AutoDraftUnavailable):
    def __init__(self):
        super().__init__(AutoDraftUnavailable.INSUFFICIENT_STATS)


class LaunchError(Exception):
    """The match could not be launched on the game server."""

    def __init__(self, message: str):
        self.message = message
        super().__init__(message)


class ProviderRejected(LaunchError):
    """The provisioning API answered the start-match request with a non-2xx status."""

    def __init__(self, status: int, body: str = ""):
        self.status = status
        self.body = body
        super().__init__(f"Server failed to start, match POST response code: {status}")


# -----------------------------------------------------------------------------
# Invariant violations (abort the current setup cycle)
# -----------------------------------------------------------------------------


class InvariantViolation(Exception):
    """The current setup cycle cannot continue and must be reset."""


class NoVotes(InvariantViolation):
    def __init__(self):
        super().__init__("No map votes were submitted")

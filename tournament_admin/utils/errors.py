"""Custom exception classes for settlement errors.

Provides structured error handling with error codes, HTTP status mapping
and user-friendly messages.
"""

from __future__ import annotations

from enum import Enum
from typing import Any


class ErrorCode(str, Enum):
    """Standard error codes for settlement errors."""

    # General errors
    INTERNAL_ERROR = "INTERNAL_ERROR"
    INVALID_REQUEST = "INVALID_REQUEST"
    UNAUTHORIZED = "UNAUTHORIZED"
    FORBIDDEN = "FORBIDDEN"

    # Lookup errors
    TOURNAMENT_NOT_FOUND = "TOURNAMENT_NOT_FOUND"
    USER_NOT_FOUND = "USER_NOT_FOUND"

    # Precondition errors (nothing happened, fix and retry)
    INVALID_STATE = "INVALID_STATE"
    ALREADY_DISTRIBUTED = "ALREADY_DISTRIBUTED"
    SETTLEMENT_IN_PROGRESS = "SETTLEMENT_IN_PROGRESS"
    NO_RESULTS = "NO_RESULTS"

    # Validation errors
    INVALID_RULE = "INVALID_RULE"
    INVALID_AMOUNT = "INVALID_AMOUNT"

    # Commit errors (fully rolled back, retry safely)
    SETTLEMENT_FAILED = "SETTLEMENT_FAILED"


class SettlementError(Exception):
    """Base exception for settlement-related errors.

    Attributes:
        code: Error code for programmatic handling
        message: User-friendly error message
        details: Additional error details
        status_code: HTTP status used by the API error handler
        recoverable: Whether retrying after a fix can succeed
    """

    status_code: int = 400

    def __init__(
        self,
        code: ErrorCode | str,
        message: str,
        details: dict[str, Any] | None = None,
        recoverable: bool = True,
    ):
        self.code = code if isinstance(code, str) else code.value
        self.message = message
        self.details = details or {}
        self.recoverable = recoverable
        super().__init__(message)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return {
            "code": self.code,
            "message": self.message,
            "details": self.details,
            "recoverable": self.recoverable,
        }


class NotFoundError(SettlementError):
    """Raised when a tournament does not exist."""

    status_code = 404

    def __init__(self, tournament_id: str):
        super().__init__(
            code=ErrorCode.TOURNAMENT_NOT_FOUND,
            message=f"Tournament not found: {tournament_id}",
            details={"tournamentId": tournament_id},
            recoverable=False,
        )


class InvalidStateError(SettlementError):
    """Raised when a tournament is in the wrong state for settlement."""

    status_code = 409

    def __init__(
        self,
        tournament_id: str,
        status: str | None,
        message: str = "Tournament must be completed before distributing prizes",
    ):
        super().__init__(
            code=ErrorCode.INVALID_STATE,
            message=message,
            details={"tournamentId": tournament_id, "status": status},
        )


class AlreadyDistributedError(SettlementError):
    """Raised when prizes were already distributed for a tournament."""

    status_code = 409

    def __init__(self, tournament_id: str):
        super().__init__(
            code=ErrorCode.ALREADY_DISTRIBUTED,
            message="Prizes have already been distributed for this tournament",
            details={"tournamentId": tournament_id},
            recoverable=False,
        )


class SettlementInProgressError(SettlementError):
    """Raised when another settlement run holds the tournament lease."""

    status_code = 409

    def __init__(self, tournament_id: str):
        super().__init__(
            code=ErrorCode.SETTLEMENT_IN_PROGRESS,
            message="A prize distribution is already running for this tournament",
            details={"tournamentId": tournament_id},
        )


class NoResultsError(SettlementError):
    """Raised when a tournament has no results to settle."""

    status_code = 422

    def __init__(self, tournament_id: str):
        super().__init__(
            code=ErrorCode.NO_RESULTS,
            message="No results found for this tournament",
            details={"tournamentId": tournament_id},
        )


class InvalidRuleError(SettlementError):
    """Raised when a prize distribution rule is malformed."""

    status_code = 422

    def __init__(self, message: str, details: dict[str, Any] | None = None):
        super().__init__(
            code=ErrorCode.INVALID_RULE,
            message=message,
            details=details,
        )


class InvalidAmountError(SettlementError):
    """Raised when a wallet credit amount is not positive."""

    status_code = 422

    def __init__(self, amount: int):
        super().__init__(
            code=ErrorCode.INVALID_AMOUNT,
            message=f"Invalid amount: {amount}, credit amount must be positive",
            details={"amount": amount},
        )


class UserNotFoundError(SettlementError):
    """Raised when a wallet owner does not exist."""

    status_code = 404

    def __init__(self, user_id: str):
        super().__init__(
            code=ErrorCode.USER_NOT_FOUND,
            message=f"User not found: {user_id}",
            details={"userId": user_id},
            recoverable=False,
        )


class SettlementFailedError(SettlementError):
    """Raised when the settlement commit fails and was rolled back."""

    status_code = 503

    def __init__(
        self,
        tournament_id: str,
        reason: str,
        details: dict[str, Any] | None = None,
    ):
        super().__init__(
            code=ErrorCode.SETTLEMENT_FAILED,
            message=f"Prize distribution failed and was rolled back: {reason}",
            details={"tournamentId": tournament_id, **(details or {})},
        )

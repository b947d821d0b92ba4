"""
Settlement Error Tests.
"""

import pytest

from tournament_admin.utils.errors import (
    AlreadyDistributedError,
    ErrorCode,
    InvalidAmountError,
    InvalidRuleError,
    InvalidStateError,
    NoResultsError,
    NotFoundError,
    SettlementError,
    SettlementFailedError,
    SettlementInProgressError,
    UserNotFoundError,
)


@pytest.mark.parametrize(
    ("error", "code", "status_code"),
    [
        (NotFoundError("t-1"), ErrorCode.TOURNAMENT_NOT_FOUND, 404),
        (InvalidStateError("t-1", "live"), ErrorCode.INVALID_STATE, 409),
        (AlreadyDistributedError("t-1"), ErrorCode.ALREADY_DISTRIBUTED, 409),
        (SettlementInProgressError("t-1"), ErrorCode.SETTLEMENT_IN_PROGRESS, 409),
        (NoResultsError("t-1"), ErrorCode.NO_RESULTS, 422),
        (InvalidRuleError("bad rule"), ErrorCode.INVALID_RULE, 422),
        (InvalidAmountError(0), ErrorCode.INVALID_AMOUNT, 422),
        (UserNotFoundError("u1"), ErrorCode.USER_NOT_FOUND, 404),
        (SettlementFailedError("t-1", "db down"), ErrorCode.SETTLEMENT_FAILED, 503),
    ],
)
def test_error_codes(error, code, status_code):
    assert isinstance(error, SettlementError)
    assert error.code == code.value
    assert error.status_code == status_code


def test_to_dict():
    error = InvalidStateError("t-1", "live")

    assert error.to_dict() == {
        "code": "INVALID_STATE",
        "message": "Tournament must be completed before distributing prizes",
        "details": {"tournamentId": "t-1", "status": "live"},
        "recoverable": True,
    }


def test_failed_settlement_details_merged():
    error = SettlementFailedError("t-1", "db down", {"compensated": True})

    assert error.details == {"tournamentId": "t-1", "compensated": True}
    assert "db down" in error.message

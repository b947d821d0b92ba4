"""
Admin Token Verification Tests.
"""

from datetime import timedelta

import pytest

from tournament_admin.utils.security import (
    TokenError,
    decode_token,
    is_admin_payload,
    verify_admin_token,
)


class TestVerifyAdminToken:
    def test_admin_role(self, test_settings, token_factory):
        token = token_factory("admin-1", role="admin", email="ops@example.com")

        principal = verify_admin_token(token, test_settings)

        assert principal.user_id == "admin-1"
        assert principal.role == "admin"
        assert principal.email == "ops@example.com"

    def test_is_admin_flag(self, test_settings, token_factory):
        principal = verify_admin_token(token_factory("admin-2", is_admin=True), test_settings)
        assert principal.user_id == "admin-2"

    def test_regular_user_forbidden(self, test_settings, token_factory):
        with pytest.raises(TokenError) as exc_info:
            verify_admin_token(token_factory("player-1", role="user"), test_settings)
        assert exc_info.value.code == "FORBIDDEN"

    def test_missing_subject(self, test_settings, token_factory):
        with pytest.raises(TokenError) as exc_info:
            verify_admin_token(token_factory("", role="admin"), test_settings)
        assert exc_info.value.code == "AUTH_INVALID_TOKEN"


class TestDecodeToken:
    def test_expired(self, test_settings, token_factory):
        token = token_factory(expires_in=timedelta(seconds=-30))
        with pytest.raises(TokenError) as exc_info:
            decode_token(token, test_settings)
        assert exc_info.value.code == "AUTH_TOKEN_EXPIRED"

    @pytest.mark.parametrize("token", ["", "not-a-jwt", "a.b.c"])
    def test_malformed(self, test_settings, token):
        with pytest.raises(TokenError) as exc_info:
            decode_token(token, test_settings)
        assert exc_info.value.code == "AUTH_INVALID_TOKEN"


@pytest.mark.parametrize(
    ("payload", "expected"),
    [
        ({"role": "admin"}, True),
        ({"is_admin": True}, True),
        ({"is_admin": "true"}, False),
        ({"role": "user"}, False),
        ({}, False),
    ],
)
def test_is_admin_payload(payload, expected):
    assert is_admin_payload(payload) is expected

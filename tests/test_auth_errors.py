from __future__ import annotations

import pytest

from auth_errors import AUTH_ERROR_MESSAGES, UNVERIFIED_EMAIL_MESSAGE, friendly_auth_error, verification_error
from tests.game_fixtures import TEST_USER_ID


@pytest.mark.parametrize(
    "code, message",
    [
        ("auth/user-not-found", "No account found with this email address."),
        ("auth/wrong-password", "Incorrect password. Please try again."),
        ("auth/popup-blocked", "Popup was blocked. Please allow popups and try again."),
    ],
)
def test_known_codes(code, message):
    assert friendly_auth_error(code) == message


def test_unknown_code_falls_back():
    assert friendly_auth_error("auth/network-request-failed") == "Something went wrong. Please try again."
    assert friendly_auth_error(None, default="Google sign-in failed") == "Google sign-in failed"


def test_every_message_is_a_sentence():
    assert len(AUTH_ERROR_MESSAGES) == 7
    assert all(m.endswith(".") for m in AUTH_ERROR_MESSAGES.values())


def test_verification_gate(api):
    api.save_user_profile(TEST_USER_ID, {"email": "alex@example.com", "emailVerified": False})
    assert verification_error(api, TEST_USER_ID) == UNVERIFIED_EMAIL_MESSAGE

    api.update_user_profile(TEST_USER_ID, {"emailVerified": True})
    assert verification_error(api, TEST_USER_ID) is None


def test_verification_gate_lets_user_in_when_check_fails(api):
    # No profile record: the check answers 404 and sign-in is not blocked.
    assert verification_error(api, "unknown-user") is None

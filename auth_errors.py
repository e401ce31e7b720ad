"""Firebase Auth error codes mapped to messages fit to show the user, and the
email-verification gate applied after password sign-in."""

import logging
from typing import Optional

from client import DearlyAPIError, DearlyClient

logger = logging.getLogger("dearly.auth")

AUTH_ERROR_MESSAGES = {
    "auth/user-not-found": "No account found with this email address.",
    "auth/wrong-password": "Incorrect password. Please try again.",
    "auth/invalid-email": "Invalid email address.",
    "auth/too-many-requests": "Too many failed attempts. Please try again later.",
    "auth/popup-closed-by-user": "Sign-in was cancelled. Please try again.",
    "auth/popup-blocked": "Popup was blocked. Please allow popups and try again.",
    "auth/unauthorized-domain": "This domain is not authorized for Google sign-in.",
}

UNVERIFIED_EMAIL_MESSAGE = (
    "Please verify your email address before signing in. "
    "Check your inbox for the verification link."
)


def friendly_auth_error(code: Optional[str], default: Optional[str] = None) -> str:
    return AUTH_ERROR_MESSAGES.get(code or "", default or "Something went wrong. Please try again.")


def verification_error(api: DearlyClient, user_id: str) -> Optional[str]:
    """Message to refuse sign-in with, or None to let the user in.

    Only a definite "not verified" answer blocks; when the check itself
    fails the sign-in goes ahead.
    """
    try:
        verified = api.check_verification(user_id)
    except DearlyAPIError as e:
        logger.error("Error checking verification status for %s: %s", user_id, e)
        return None
    return UNVERIFIED_EMAIL_MESSAGE if verified is False else None

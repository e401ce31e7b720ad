"""
HTTP client for the Dearly REST backend.

Thin wrapper over httpx: one method per endpoint, JSON in and out, and a
single exception type for anything that is not a 2xx response.
"""

import logging
from typing import Any, Dict, Iterable, List, Optional

import httpx

import config

logger = logging.getLogger("dearly.client")


class DearlyAPIError(Exception):
    """Non-2xx response or transport failure talking to the backend."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.message = message
        self.status_code = status_code


def _error_message(response: httpx.Response, default: str) -> str:
    try:
        body = response.json()
    except ValueError:
        return response.reason_phrase or default
    if isinstance(body, dict):
        for key in ("error", "detail", "message"):
            value = body.get(key)
            if isinstance(value, str) and value:
                return value
    return response.reason_phrase or default


class DearlyClient:
    def __init__(self, http: Optional[httpx.Client] = None, base_url: Optional[str] = None,
                 timeout: Optional[float] = None):
        if http is None:
            http = httpx.Client(
                base_url=base_url or config.BACKEND_URL,
                timeout=timeout if timeout is not None else config.HTTP_TIMEOUT_SECONDS,
            )
        self.http = http

    def close(self):
        self.http.close()

    def __enter__(self):
        return self

    def __exit__(self, *exc):
        self.close()

    def _request(self, method: str, path: str, default_error: str, **kwargs) -> Any:
        try:
            response = self.http.request(method, path, **kwargs)
        except httpx.HTTPError as e:
            logger.error("%s %s failed: %s", method, path, e)
            raise DearlyAPIError(f"{default_error}: {e}") from e

        if response.status_code >= 400:
            message = _error_message(response, default_error)
            logger.error("%s %s -> %s: %s", method, path, response.status_code, message)
            raise DearlyAPIError(message, response.status_code)

        if not response.content:
            return {}
        return response.json()

    # ---------------------- games

    def list_games(self, user_id: str) -> List[Dict[str, Any]]:
        data = self._request("GET", f"/api/games/{user_id}", "Failed to fetch games")
        return data.get("games") or []

    def create_game(self, user_id: str, game: Dict[str, Any]) -> Dict[str, Any]:
        data = self._request("POST", f"/api/games/{user_id}", "Failed to save game", json=game)
        return data.get("game") or {}

    def update_game(self, user_id: str, game_id: str, updates: Dict[str, Any]) -> Dict[str, Any]:
        data = self._request("PUT", f"/api/games/{user_id}/{game_id}", "Failed to update game", json=updates)
        return data.get("game") or {}

    def delete_game(self, user_id: str, game_id: str) -> None:
        self._request("DELETE", f"/api/games/{user_id}/{game_id}", "Failed to delete game")

    def get_completion(self, user_id: str, game_id: str) -> Dict[str, Any]:
        return self._request("GET", f"/api/games/{user_id}/{game_id}/completion",
                             "Failed to fetch completion data")

    def complete_game(self, user_id: str, game_id: str, body: Dict[str, Any]) -> Dict[str, Any]:
        return self._request("PUT", f"/api/games/{user_id}/{game_id}/complete",
                             "Failed to update completion", json=body)

    # ---------------------- viewed rewards

    def get_viewed_rewards(self, user_id: str) -> List[str]:
        data = self._request("GET", f"/api/games/{user_id}/viewed-rewards", "Failed to load viewed rewards")
        ids = data.get("viewedRewardIds") if data.get("success") else None
        return list(ids) if isinstance(ids, list) else []

    def put_viewed_rewards(self, user_id: str, ids: Iterable[str]) -> Dict[str, Any]:
        return self._request("PUT", f"/api/games/{user_id}/viewed-rewards", "Failed to save viewed rewards",
                             json={"viewedRewardIds": list(ids)})

    # ---------------------- notifications

    def list_notifications(self, user_id: str) -> List[Dict[str, Any]]:
        data = self._request("GET", f"/api/notifications/{user_id}", "Failed to fetch notifications")
        return data.get("notifications") or []

    def mark_notification_read(self, user_id: str, notification_id: str) -> Dict[str, Any]:
        return self._request("PUT", f"/api/notifications/{user_id}/{notification_id}/read",
                             "Failed to mark notification as read")

    def mark_all_notifications_read(self, user_id: str) -> Dict[str, Any]:
        return self._request("PUT", f"/api/notifications/{user_id}/all/read",
                             "Failed to mark all notifications as read")

    def delete_notification(self, user_id: str, notification_id: str) -> Dict[str, Any]:
        return self._request("DELETE", f"/api/notifications/{user_id}/{notification_id}",
                             "Failed to delete notification")

    def clear_notifications(self, user_id: str) -> Dict[str, Any]:
        return self._request("DELETE", f"/api/notifications/{user_id}/all",
                             "Failed to clear all notifications")

    # ---------------------- receiver data

    def get_receiver_data(self, user_id: str) -> Optional[Dict[str, Any]]:
        data = self._request("GET", f"/api/receiver-data/{user_id}", "Failed to fetch receiver data")
        return data.get("data")

    def save_receiver_data(self, user_id: str, name: str, email: str) -> Dict[str, Any]:
        data = self._request("POST", f"/api/receiver-data/{user_id}", "Failed to save receiver data",
                             json={"name": name, "email": email})
        return data.get("data") or {}

    # ---------------------- user profiles and receiver accounts

    def get_user_profile(self, user_id: str) -> Dict[str, Any]:
        data = self._request("GET", f"/api/auth/user/{user_id}", "Failed to load profile")
        return data.get("data") or {}

    def save_user_profile(self, user_id: str, profile: Dict[str, Any]) -> Dict[str, Any]:
        data = self._request("POST", f"/api/auth/user/{user_id}", "Failed to save profile", json=profile)
        return data.get("data") or {}

    def update_user_profile(self, user_id: str, updates: Dict[str, Any]) -> Dict[str, Any]:
        data = self._request("PUT", f"/api/auth/user/{user_id}", "Failed to update profile", json=updates)
        return data.get("data") or {}

    def save_google_user(self, user_id: str, email: str, display_name: str = "") -> Dict[str, Any]:
        data = self._request("POST", "/api/auth/save-google-user", "Failed to save Google user",
                             json={"userId": user_id, "email": email, "displayName": display_name})
        return data.get("data") or {}

    def check_verification(self, user_id: str) -> Optional[bool]:
        data = self._request("GET", f"/api/auth/check-verification/{user_id}",
                             "Failed to check verification status")
        if not data.get("success"):
            return None
        return bool(data.get("emailVerified"))

    def link_receiver_account(self, receiver_email: str, letter_id: str, sender_user_id: str,
                              token: str) -> Dict[str, Any]:
        data = self._request("POST", "/api/receiver-accounts/link", "Failed to link account",
                             json={"receiverEmail": receiver_email, "letterId": letter_id,
                                   "senderUserId": sender_user_id, "token": token})
        return data.get("data") or {}

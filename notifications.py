"""
Sender notifications: read-state normalisation, display filtering and
message formatting, plus a feed that keeps the local list in step with the
backend after mark-as-read / clear.
"""

import logging
import time
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Mapping, Optional

import config
from client import DearlyAPIError, DearlyClient

logger = logging.getLogger("dearly.notifications")

FALLBACK_NAME = "Your loved one"
FALLBACK_LETTER = "Your Letter"

ICONS = {
    "letter_read": "💌",
    "letter_reread": "💌",
    "letter_response": "💌",
    "letter_security_access": "🔐",
    "date_invitation_rsvp": "💑",
    "game_prize": "🎮",
    "game_completion": "🎮",
    "letter_pdf_download": "📄",
    "voice_message": "🎤",
}
DEFAULT_ICON = "🔔"


def is_read(value: Any) -> bool:
    """Only True, "true" and 1 count as read; everything else is unread."""
    if value is True:
        return True
    if isinstance(value, int) and not isinstance(value, bool):
        return value == 1
    return value == "true"


def filter_notifications(items: List[Mapping[str, Any]]) -> List[Mapping[str, Any]]:
    kept = []
    for n in items:
        message = str(n.get("message") or "").lower()
        if "date invitation response received" in message or "new notification" in message:
            continue
        if n.get("type") == "date_invitation_rsvp" and n.get("status") != "accepted" and not n.get("date"):
            continue
        kept.append(n)
    return kept


def _format_date(value: str) -> str:
    try:
        d = datetime.fromisoformat(value)
    except ValueError:
        return value
    return f"{d:%A, %B} {d.day}, {d.year}"


def _format_time(value: str) -> str:
    try:
        hours, minutes = value.split(":")[:2]
        hour = int(hours)
    except ValueError:
        return value
    ampm = "PM" if hour >= 12 else "AM"
    return f"{hour % 12 or 12}:{minutes} {ampm}"


def format_notification_message(n: Mapping[str, Any]) -> Optional[str]:
    """Display text for a notification, or None when it should be hidden."""
    if n.get("message"):
        message = str(n["message"])
        if message.strip().lower() == "new notification":
            return None
        return message

    kind = n.get("type")
    title = n.get("letterTitle") or FALLBACK_LETTER
    name = n.get("receiverName") or FALLBACK_NAME

    if kind == "letter_reread":
        return f'Your letter "{title}" is being read again! 💌'
    if kind == "letter_read":
        return f'Your letter "{title}" has been read! 💌'
    if kind == "letter_security_access":
        return f'Someone is trying to access your letter "{title}" 🔐'
    if kind == "date_invitation_rsvp":
        if n.get("status") != "accepted":
            return None
        date = _format_date(n["date"]) if n.get("date") else ""
        at = _format_time(n["time"]) if n.get("time") else ""
        location = n.get("location") or ""
        return f"Your date invitation on {date} at {at} at {location} was accepted by {name}"
    if kind in ("game_prize", "game_completion"):
        game_type = n.get("gameType") or "game"
        label = config.GAME_TYPE_LABELS.get(game_type, game_type)
        score = n.get("score") if n.get("score") is not None else "N/A"
        return f"{name} passed the {label} with a score of {score}"
    if kind == "letter_response":
        return f'{name} wrote back to your letter "{title}"! 💌'
    if kind == "letter_pdf_download":
        return f'{name} downloaded your letter "{title}" as PDF! 📄'
    if kind == "voice_message":
        return f"{name} sent you a voice message! 🎤"
    return None


def notification_icon(n: Mapping[str, Any]) -> str:
    return ICONS.get(n.get("type"), DEFAULT_ICON)


def format_relative_time(timestamp: Optional[str], now: Optional[datetime] = None) -> str:
    if not timestamp:
        return "Just now"
    try:
        when = datetime.fromisoformat(str(timestamp).replace("Z", "+00:00"))
    except ValueError:
        return "Just now"
    if when.tzinfo is None:
        when = when.replace(tzinfo=timezone.utc)
    now = now or datetime.now(timezone.utc)

    minutes = int((now - when).total_seconds() // 60)
    if minutes < 1:
        return "Just now"
    if minutes < 60:
        return f"{minutes}m ago"
    if minutes < 60 * 24:
        return f"{minutes // 60}h ago"
    if minutes < 60 * 24 * 7:
        return f"{minutes // (60 * 24)}d ago"
    return when.strftime("%m/%d/%Y")


class NotificationFeed:
    """Local view of a user's notifications.

    Writes update the local state optimistically, then re-fetch with
    exponential backoff until the server agrees or attempts run out.
    """

    def __init__(
        self,
        api: DearlyClient,
        user_id: str,
        attempts: int = config.NOTIFICATION_REFRESH_ATTEMPTS,
        base_delay: float = config.NOTIFICATION_REFRESH_BASE_DELAY,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.api = api
        self.user_id = user_id
        self.attempts = attempts
        self.base_delay = base_delay
        self.sleep = sleep
        self.all: List[Dict[str, Any]] = []
        self.notifications: List[Dict[str, Any]] = []
        self.unread_count = 0

    def _apply(self, items: List[Dict[str, Any]]):
        self.all = items
        self.notifications = [
            n for n in filter_notifications(items) if format_notification_message(n)
        ]
        self.unread_count = sum(1 for n in items if not is_read(n.get("read")))

    def refresh(self) -> List[Dict[str, Any]]:
        try:
            self._apply(self.api.list_notifications(self.user_id))
        except DearlyAPIError as e:
            logger.error("Error refreshing notifications: %s", e)
        return self.notifications

    def _refresh_until(self, settled: Callable[[], bool]) -> int:
        """Re-fetch with backoff; returns the number of fetches made."""
        for attempt in range(self.attempts):
            self.sleep(self.base_delay * (2 ** attempt))
            self.refresh()
            if settled():
                return attempt + 1
        logger.warning("Notifications for %s not settled after %d attempts", self.user_id, self.attempts)
        return self.attempts

    def mark_all_read(self) -> bool:
        try:
            result = self.api.mark_all_notifications_read(self.user_id)
        except DearlyAPIError as e:
            logger.error("Error marking all notifications as read: %s", e)
            self.refresh()
            return False
        logger.info("Marked %s notifications as read", result.get("updatedCount", 0))

        self._apply([{**n, "read": True} for n in self.all])
        self._refresh_until(lambda: self.unread_count == 0)
        return True

    def mark_read(self, notification_id: str) -> bool:
        try:
            self.api.mark_notification_read(self.user_id, notification_id)
        except DearlyAPIError as e:
            logger.error("Error marking notification %s as read: %s", notification_id, e)
            self.refresh()
            return False

        self._apply([{**n, "read": True} if n.get("id") == notification_id else n for n in self.all])

        def settled():
            return all(is_read(n.get("read")) for n in self.all if n.get("id") == notification_id)

        self._refresh_until(settled)
        return True

    def clear_all(self) -> bool:
        try:
            self.api.clear_notifications(self.user_id)
        except DearlyAPIError as e:
            logger.error("Error clearing notifications: %s", e)
            self.refresh()
            return False

        self._apply([])
        self._refresh_until(lambda: not self.all)
        return True

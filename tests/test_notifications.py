from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest

from client import DearlyAPIError
from notifications import (
    NotificationFeed,
    filter_notifications,
    format_notification_message,
    format_relative_time,
    is_read,
    notification_icon,
)
from tests.game_fixtures import TEST_USER_ID


class ScriptedAPI:
    """Serves a queue of notification listings; the last one repeats."""

    def __init__(self, listings, fail_writes=False):
        self.listings = list(listings)
        self.fail_writes = fail_writes
        self.fetches = 0

    def list_notifications(self, user_id):
        self.fetches += 1
        if len(self.listings) > 1:
            return self.listings.pop(0)
        return self.listings[0]

    def _write(self):
        if self.fail_writes:
            raise DearlyAPIError("Failed to mark all notifications as read", 500)
        return {"success": True, "updatedCount": 2}

    def mark_all_notifications_read(self, user_id):
        return self._write()

    def mark_notification_read(self, user_id, notification_id):
        return self._write()

    def clear_notifications(self, user_id):
        return self._write()


def _n(nid, read=False, **fields):
    return {"id": nid, "type": "voice_message", "read": read, **fields}


@pytest.mark.parametrize(
    "value, expected",
    [(True, True), ("true", True), (1, True), (False, False), ("false", False), (0, False), (None, False), (2, False)],
)
def test_is_read(value, expected):
    assert is_read(value) is expected


def test_filter_drops_generic_and_unaccepted_rsvps():
    items = [
        {"type": "letter_read", "message": "New notification"},
        {"type": "date_invitation_rsvp", "message": "Date invitation response received"},
        {"type": "date_invitation_rsvp", "status": "declined"},
        {"type": "date_invitation_rsvp", "status": "accepted", "date": "2026-02-14"},
        {"type": "voice_message"},
    ]
    kept = filter_notifications(items)
    assert [n["type"] for n in kept] == ["date_invitation_rsvp", "voice_message"]


def test_format_messages():
    assert format_notification_message({"type": "letter_read", "letterTitle": "Hi"}) == (
        'Your letter "Hi" has been read! 💌'
    )
    assert format_notification_message({"type": "letter_reread"}) == 'Your letter "Your Letter" is being read again! 💌'
    assert format_notification_message({"type": "voice_message", "receiverName": "Sam"}) == (
        "Sam sent you a voice message! 🎤"
    )
    assert format_notification_message({"type": "game_completion", "gameType": "quiz", "score": 90}) == (
        "Your loved one passed the Quiz Game with a score of 90"
    )
    assert format_notification_message({"type": "game_prize"}) == (
        "Your loved one passed the game with a score of N/A"
    )
    assert format_notification_message({"type": "letter_read", "message": "Custom text"}) == "Custom text"
    assert format_notification_message({"type": "letter_read", "message": "new notification"}) is None
    assert format_notification_message({"type": "mystery"}) is None


def test_format_accepted_date_invitation():
    message = format_notification_message({
        "type": "date_invitation_rsvp",
        "status": "accepted",
        "date": "2026-02-14",
        "time": "19:30",
        "location": "Luigi's",
        "receiverName": "Sam",
    })
    assert message == "Your date invitation on Saturday, February 14, 2026 at 7:30 PM at Luigi's was accepted by Sam"
    assert format_notification_message({"type": "date_invitation_rsvp", "status": "declined"}) is None


def test_icons():
    assert notification_icon({"type": "letter_security_access"}) == "🔐"
    assert notification_icon({"type": "game_prize"}) == "🎮"
    assert notification_icon({"type": "something_else"}) == "🔔"


def test_relative_time():
    now = datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)
    assert format_relative_time(None, now) == "Just now"
    assert format_relative_time("garbage", now) == "Just now"
    assert format_relative_time((now - timedelta(seconds=20)).isoformat(), now) == "Just now"
    assert format_relative_time((now - timedelta(minutes=5)).isoformat(), now) == "5m ago"
    assert format_relative_time("2026-03-01T09:00:00Z", now) == "3h ago"
    assert format_relative_time((now - timedelta(days=2)).isoformat(), now) == "2d ago"
    assert format_relative_time("2026-01-15T08:00:00+00:00", now) == "01/15/2026"


def test_feed_counts_unread_and_hides_unformattable():
    api = ScriptedAPI([[_n("a"), _n("b", read="true"), {"id": "c", "type": "mystery", "read": 0}]])
    feed = NotificationFeed(api, TEST_USER_ID, sleep=lambda s: None)
    feed.refresh()
    assert feed.unread_count == 2
    assert [n["id"] for n in feed.notifications] == ["a", "b"]


def test_mark_all_read_backs_off_until_settled():
    stale = [_n("a"), _n("b")]
    settled = [_n("a", read=True), _n("b", read=True)]
    api = ScriptedAPI([stale, settled])
    delays = []
    feed = NotificationFeed(api, TEST_USER_ID, attempts=3, base_delay=0.5, sleep=delays.append)

    assert feed.mark_all_read() is True
    assert delays == [0.5, 1.0]
    assert api.fetches == 2
    assert feed.unread_count == 0


def test_mark_all_read_gives_up_after_attempts(caplog):
    api = ScriptedAPI([[_n("a")]])
    delays = []
    feed = NotificationFeed(api, TEST_USER_ID, attempts=3, base_delay=0.5, sleep=delays.append)

    assert feed.mark_all_read() is True
    assert delays == [0.5, 1.0, 2.0]
    assert feed.unread_count == 1
    assert "not settled after 3 attempts" in caplog.text


def test_write_failure_refreshes_and_reports():
    api = ScriptedAPI([[_n("a")]], fail_writes=True)
    feed = NotificationFeed(api, TEST_USER_ID, sleep=lambda s: None)
    assert feed.mark_all_read() is False
    assert feed.clear_all() is False
    assert feed.mark_read("a") is False
    assert api.fetches == 3
    assert feed.unread_count == 1


def test_feed_against_backend(api):
    api.http.post(f"/api/notifications/{TEST_USER_ID}", json={"type": "voice_message", "receiverName": "Sam"})
    api.http.post(f"/api/notifications/{TEST_USER_ID}", json={"type": "letter_read", "letterTitle": "Hello"})
    feed = NotificationFeed(api, TEST_USER_ID, sleep=lambda s: None)
    feed.refresh()
    assert feed.unread_count == 2

    target = feed.all[0]["id"]
    assert feed.mark_read(target) is True
    assert feed.unread_count == 1

    assert feed.mark_all_read() is True
    assert feed.unread_count == 0

    assert feed.clear_all() is True
    assert feed.all == []

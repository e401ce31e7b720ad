"""
Application-scoped publish/subscribe for cross-cutting game state changes
(a game was completed, the games list needs refreshing, a game was created).
"""

import logging
from collections import defaultdict
from typing import Any, Callable, Dict, List

logger = logging.getLogger("dearly.events")

GAME_COMPLETED = "gameCompleted"
REFRESH_GAMES = "refreshGames"
GAME_CREATED = "gameCreated"

Handler = Callable[[Any], None]


class EventBus:
    def __init__(self):
        self._handlers: Dict[str, List[Handler]] = defaultdict(list)

    def subscribe(self, topic: str, handler: Handler) -> Callable[[], None]:
        """Register `handler` for `topic`; returns a callable that unsubscribes it."""
        self._handlers[topic].append(handler)

        def unsubscribe():
            handlers = self._handlers.get(topic, [])
            if handler in handlers:
                handlers.remove(handler)

        return unsubscribe

    def publish(self, topic: str, payload: Any = None) -> int:
        delivered = 0
        for handler in list(self._handlers.get(topic, [])):
            try:
                handler(payload)
                delivered += 1
            except Exception:
                logger.exception("Handler for %s failed", topic)
        return delivered

    def subscriber_count(self, topic: str) -> int:
        return len(self._handlers.get(topic, []))

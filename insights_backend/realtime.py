"""
Realtime Chat Channel
=====================

In-process publish/subscribe for chat history inserts. Each websocket
subscriber owns an asyncio queue on its own event loop; publishers hand
messages over with `call_soon_threadsafe`, so publishing works from any
thread or loop (request handlers, background tasks, tests).
"""

import asyncio
import logging
import threading
from collections import deque
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Set

logger = logging.getLogger(__name__)

# Ids remembered per subscriber for duplicate suppression
SEEN_IDS_LIMIT = 500


def channel_name(chat_type: str, session_id: str) -> str:
    return f"{chat_type}:{session_id}"


@dataclass
class Subscription:
    """A single subscriber on a channel"""
    channel: str
    loop: asyncio.AbstractEventLoop
    queue: asyncio.Queue
    seen_ids: Set[Any] = field(default_factory=set)
    seen_order: deque = field(default_factory=lambda: deque(maxlen=SEEN_IDS_LIMIT))

    async def get(self) -> Dict[str, Any]:
        """Next message for this subscriber, skipping ids already delivered"""
        while True:
            message = await self.queue.get()
            message_id = message.get("id")
            if message_id is not None:
                if message_id in self.seen_ids:
                    continue
                self._remember(message_id)
            return message

    def _remember(self, message_id: Any) -> None:
        if len(self.seen_order) == self.seen_order.maxlen:
            self.seen_ids.discard(self.seen_order[0])
        self.seen_order.append(message_id)
        self.seen_ids.add(message_id)


class ChatHub:
    """Channel -> subscribers registry"""

    def __init__(self):
        self._lock = threading.Lock()
        self._subscribers: Dict[str, List[Subscription]] = {}

    def subscribe(self, channel: str) -> Subscription:
        subscription = Subscription(
            channel=channel,
            loop=asyncio.get_running_loop(),
            queue=asyncio.Queue(),
        )
        with self._lock:
            self._subscribers.setdefault(channel, []).append(subscription)
        logger.debug("Subscribed to %s", channel)
        return subscription

    def unsubscribe(self, subscription: Subscription) -> None:
        with self._lock:
            subscribers = self._subscribers.get(subscription.channel, [])
            if subscription in subscribers:
                subscribers.remove(subscription)
            if not subscribers:
                self._subscribers.pop(subscription.channel, None)

    def publish(self, channel: str, message: Dict[str, Any]) -> int:
        """Deliver to every subscriber of `channel`; returns the number of deliveries"""
        with self._lock:
            subscribers = list(self._subscribers.get(channel, []))

        delivered = 0
        for subscription in subscribers:
            if subscription.loop.is_closed():
                self.unsubscribe(subscription)
                continue
            subscription.loop.call_soon_threadsafe(subscription.queue.put_nowait, message)
            delivered += 1
        return delivered

    def subscriber_count(self, channel: Optional[str] = None) -> int:
        with self._lock:
            if channel is not None:
                return len(self._subscribers.get(channel, []))
            return sum(len(subs) for subs in self._subscribers.values())


_hub: Optional[ChatHub] = None


def get_chat_hub() -> ChatHub:
    global _hub
    if _hub is None:
        _hub = ChatHub()
    return _hub

# Self-Improving Coding Agent
# Copyright (c) 2025 Maxime Robeyns
#
# This source code is licensed under the MIT license found in the
# LICENSE file in the root directory of this source tree.
"""Event bus module for publish/subscribe between agents, the arena and observers."""

import inspect
import logging

from collections import defaultdict
from typing import Callable, Dict, List, Iterable
from pydantic import BaseModel, PrivateAttr

from ..types.event_types import EventType, Event

logger = logging.getLogger(__name__)
logger.setLevel(logging.INFO)

Topic = EventType | str


def _topic_key(topic: Topic) -> str:
    return topic.value if isinstance(topic, EventType) else str(topic)


class EventBus(BaseModel):
    """
    Per-owner publish/subscribe bus.

    Every agent owns one, and so does every arena. Topics are event type names
    ('chunk', 'toolCall', ...) or derived names such as 'chunk:toolOutput'.
    Subscribers may be plain functions or coroutine functions; an exception in
    one subscriber is logged and does not prevent delivery to the others.
    """

    _subscribers: Dict[str, List[Callable]] = PrivateAttr(
        default_factory=lambda: defaultdict(list)
    )

    class Config:
        arbitrary_types_allowed = True

    async def publish(self, event: Event, topic: Topic | None = None) -> None:
        """Publish an event to the bus.

        Args:
            event: The event to publish
            topic: Topic to publish on; defaults to the event's type
        """
        key = _topic_key(topic if topic is not None else event.type)
        logger.debug(f"Publishing {key} event")

        # Copy so subscribers may (un)subscribe while being notified
        for callback in list(self._subscribers.get(key, ())):
            try:
                result = callback(event)
                if inspect.isawaitable(result):
                    await result
            except Exception as e:
                logger.error(f"Error in event subscriber {callback}: {e}")

    def subscribe(self, topic: Topic | Iterable[Topic], callback: Callable) -> None:
        """Subscribe to events on one topic or a collection of topics."""
        if isinstance(topic, (set, list, tuple)):
            for t in topic:
                self._subscribers[_topic_key(t)].append(callback)
        else:
            self._subscribers[_topic_key(topic)].append(callback)

    def unsubscribe(self, topic: Topic | Iterable[Topic], callback: Callable) -> None:
        topics = topic if isinstance(topic, (set, list, tuple)) else [topic]
        for t in topics:
            subscribers = self._subscribers.get(_topic_key(t), [])
            if callback in subscribers:
                subscribers.remove(callback)

    def subscriber_count(self, topic: Topic) -> int:
        return len(self._subscribers.get(_topic_key(topic), ()))

    def clear(self) -> None:
        """Drop all subscribers (mainly for testing)."""
        self._subscribers.clear()

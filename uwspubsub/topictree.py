"""Hierarchical topic tree for batched publish/subscribe delivery.

Topics are '/'-separated paths. Subscriptions may use '+' to match exactly
one segment and '#' to match any remainder. Published messages are collected
per topic and delivered on :meth:`TopicTree.drain`, once per subscriber, as a
single de-duplicated, ordered :class:`Intersection` of everything that
subscriber should receive.
"""

from __future__ import annotations

import itertools
from dataclasses import dataclass, field
from typing import Any, Callable, Optional, Sequence, Union

Data = Union[str, bytes]
Message = tuple  # (inflated, deflated)

MAX_TRIGGERED_TOPICS = 64

_subscriber_serial = itertools.count()


@dataclass(eq=False)
class Subscriber:
    """A participant in the tree, typically attached to a socket."""

    user: Any = None
    subscriptions: list = field(default_factory=list, repr=False)
    _order: int = field(default_factory=lambda: next(_subscriber_serial), init=False, repr=False)


@dataclass(eq=False)
class Topic:
    """One node of the tree, named by a single path segment."""

    name: str = ""
    parent: Optional["Topic"] = field(default=None, repr=False)
    triggered: bool = False
    children: dict = field(default_factory=dict, repr=False)
    wildcard_child: Optional["Topic"] = field(default=None, repr=False)
    terminating_wildcard_child: Optional["Topic"] = field(default=None, repr=False)
    messages: dict = field(default_factory=dict, repr=False)
    subs: set = field(default_factory=set, repr=False)
    locked: bool = False
    full_name: str = ""


@dataclass(frozen=True)
class Hole:
    """Position of one message inside an intersection's data channels."""

    lengths: tuple
    message_id: int


def _concat(parts: Sequence[Data]) -> Data:
    return parts[0][:0].join(parts) if parts else ""


@dataclass
class Intersection:
    """Everything one group of subscribers receives in a drain."""

    data_channels: tuple = ("", "")
    holes: list = field(default_factory=list)

    def for_subscriber(
        self,
        sender_for_messages: Sequence[int],
        callback: Callable[[tuple, bool], Any],
    ) -> None:
        """Emit the data channels, skipping the messages this subscriber sent.

        ``callback`` receives a pair of slices and whether this is the final
        segment.
        """
        first, second = self.data_channels
        emitted_first = emitted_second = 0
        holes = iter(self.holes)

        for message_id in sender_for_messages:
            emit_first = emit_second = 0
            ignore_first = ignore_second = 0
            for hole in holes:
                if hole.message_id == message_id:
                    ignore_first += hole.lengths[0]
                    ignore_second += hole.lengths[1]
                    break
                emit_first += hole.lengths[0]
                emit_second += hole.lengths[1]

            if emit_first or emit_second:
                cut = (
                    first[emitted_first:emitted_first + emit_first],
                    second[emitted_second:emitted_second + emit_second],
                )
                fin = emitted_first + emit_first + ignore_first == len(first)
                callback(cut, fin)

            emitted_first += emit_first + ignore_first
            emitted_second += emit_second + ignore_second

        if emitted_first == len(first) and emitted_second == len(second):
            return

        callback((first[emitted_first:], second[emitted_second:]), True)


def _segments(topic: str) -> list:
    return topic.split("/")


class TopicTree:
    """Routes published messages to subscribers of matching topics."""

    def __init__(self, callback: Callable[[Subscriber, Intersection], Any]) -> None:
        self._callback = callback
        self._root = Topic()
        self._message_id = 0
        self._sender_holes: dict = {}
        self._triggered: list = []

    def lookup_topic(self, topic: str) -> Optional[Topic]:
        """Return the exact node for ``topic`` or None if it does not exist."""
        node = self._root
        for segment in _segments(topic):
            node = node.children.get(segment)
            if node is None:
                return None
        return node

    def get_sender_for(self, subscriber: Subscriber) -> list:
        """Message ids published by ``subscriber`` since the last drain."""
        return self._sender_holes.get(subscriber, [])

    def _trigger(self, topic: Topic) -> None:
        if topic.triggered:
            return
        if len(self._triggered) == MAX_TRIGGERED_TOPICS:
            self.drain()
        self._triggered.append(topic)
        topic.triggered = True

    def _trim_tree(self, topic: Topic) -> None:
        """Remove unused nodes from leaf towards the root."""
        while (
            not topic.subs
            and not topic.children
            and topic.terminating_wildcard_child is None
            and topic.wildcard_child is None
        ):
            parent = topic.parent
            if topic.name == "#":
                parent.terminating_wildcard_child = None
            elif topic.name == "+":
                parent.wildcard_child = None
            parent.children.pop(topic.name, None)

            if topic.triggered:
                self._triggered = [t for t in self._triggered if t is not topic]

            if parent is self._root:
                break
            topic = parent

    def _publish(self, node: Topic, segments: list, index: int, message: tuple) -> bool:
        did_match = False

        for position in range(index, len(segments)):
            segment = segments[position]

            # Wildcards are not allowed when publishing
            if segment in ("+", "#"):
                return did_match

            terminating = node.terminating_wildcard_child
            if terminating is not None:
                terminating.messages[self._message_id] = message
                self._trigger(terminating)
                did_match = True

            if node.wildcard_child is not None:
                did_match |= self._publish(node.wildcard_child, segments, position + 1, message)

            child = node.children.get(segment)
            if child is None:
                return did_match
            node = child

        node.messages[self._message_id] = message
        self._trigger(node)
        return True

    def subscribe(self, topic: str, subscriber: Subscriber, non_strict: bool = False) -> tuple:
        """Subscribe; returns (number of subscribers, whether newly subscribed)."""
        node = self._root
        for segment in _segments(topic):
            child = node.children.get(segment)
            if child is None:
                full_name = segment if node is self._root else f"{node.full_name}/{segment}"
                child = Topic(name=segment, parent=node, full_name=full_name)
                node.children[segment] = child
                if segment == "+":
                    node.wildcard_child = child
                elif segment == "#":
                    node.terminating_wildcard_child = child
            node = child

        if node.triggered and not non_strict:
            self.drain()

        if subscriber in node.subs:
            return len(node.subs), False
        node.subs.add(subscriber)
        subscriber.subscriptions.append(node)
        return len(node.subs), True

    def publish(self, topic: str, message: tuple, sender: Optional[Subscriber] = None) -> bool:
        """Queue ``message`` (inflated, deflated) for every matching topic.

        Returns whether at least one topic matched.
        """
        if sender is not None:
            self._sender_holes.setdefault(sender, []).append(self._message_id)

        matched = self._publish(self._root, _segments(topic), 0, tuple(message))
        self._message_id += 1
        return matched

    def unsubscribe(self, topic: str, subscriber: Subscriber, non_strict: bool = False) -> tuple:
        """Unsubscribe; returns (number of subscribers left, whether it was subscribed)."""
        if subscriber is None:
            return 0, False

        node = self.lookup_topic(topic)
        if node is None:
            return 0, False

        if node.locked:
            return len(node.subs), False

        if not any(t is node for t in subscriber.subscriptions):
            return 0, False

        if node.triggered and not non_strict:
            self.drain()

        subscriber.subscriptions.remove(node)
        node.subs.discard(subscriber)
        remaining = len(node.subs)
        self._trim_tree(node)
        return remaining, True

    def unsubscribe_all(self, subscriber: Optional[Subscriber], may_flush: bool = True) -> None:
        """Remove every subscription of ``subscriber``; None is ignored."""
        if subscriber is None:
            return
        for topic in list(subscriber.subscriptions):
            if may_flush and topic.triggered:
                self.drain()
            topic.subs.discard(subscriber)
            self._trim_tree(topic)
        subscriber.subscriptions.clear()

    @staticmethod
    def _build_intersection(messages: dict) -> Intersection:
        ordered = [messages[key] for key in sorted(messages)]
        holes = [
            Hole(lengths=(len(inflated), len(deflated)), message_id=key)
            for key, (inflated, deflated) in sorted(messages.items())
        ]
        return Intersection(
            data_channels=(
                _concat([inflated for inflated, _ in ordered]),
                _concat([deflated for _, deflated in ordered]),
            ),
            holes=holes,
        )

    def drain(self) -> None:
        """Deliver all queued messages, one callback per subscriber."""
        if not self._triggered:
            return

        live = []
        for topic in self._triggered:
            if topic.subs:
                live.append(topic)
            else:
                topic.messages.clear()
                topic.triggered = False
        self._triggered = live

        if not live:
            self._sender_holes.clear()
            self._message_id = 0
            return

        memberships = [set(topic.subs) for topic in live]
        everyone = sorted(set().union(*memberships), key=lambda s: s._order)

        cache: dict = {}
        for subscriber in everyone:
            mask = tuple(i for i, members in enumerate(memberships) if subscriber in members)
            intersection = cache.get(mask)
            if intersection is None or not intersection.data_channels[0]:
                complete: dict = {}
                for i in mask:
                    for key, message in live[i].messages.items():
                        complete.setdefault(key, message)
                intersection = self._build_intersection(complete)
                cache[mask] = intersection
            self._callback(subscriber, intersection)

        for topic in self._triggered:
            topic.messages.clear()
            topic.triggered = False
        self._triggered = []
        self._sender_holes.clear()
        self._message_id = 0
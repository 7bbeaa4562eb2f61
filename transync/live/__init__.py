"""Live updates — server-sent event parsing and the reconnecting channel."""

from transync.live.channel import ChannelState, LiveUpdateChannel
from transync.live.sse import SseEvent, SseParser, iter_events

__all__ = [
    "ChannelState",
    "LiveUpdateChannel",
    "SseEvent",
    "SseParser",
    "iter_events",
]

"""Incremental parser for the ``text/event-stream`` format."""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from typing import Any, Iterable, Iterator

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SseEvent:
    """One dispatched server-sent event."""

    data: str
    event: str = "message"
    id: str | None = None
    retry: int | None = None
    """Reconnection delay (ms) most recently requested by the server."""

    def json(self) -> dict[str, Any]:
        """Decode ``data`` as a JSON object; empty dict if it is not one."""
        try:
            payload = json.loads(self.data)
        except (json.JSONDecodeError, TypeError):
            return {}
        return payload if isinstance(payload, dict) else {}


class SseParser:
    """Feed lines, get events.

    Tracks the last event id (sent back as ``Last-Event-ID`` on reconnect)
    and any ``retry:`` delay requested by the server.
    """

    def __init__(self, last_event_id: str | None = None) -> None:
        self.last_event_id = last_event_id
        self.retry_ms: int | None = None
        self._reset()

    def _reset(self) -> None:
        self._event: str | None = None
        self._data: list[str] = []
        self._id: str | None = None

    def feed(self, line: str) -> SseEvent | None:
        """Consume one line (without its terminator)."""
        line = line.rstrip("\r\n")

        if not line:
            if not self._data:
                self._reset()
                return None
            evt = SseEvent(
                data="\n".join(self._data),
                event=self._event or "message",
                id=self._id or self.last_event_id,
                retry=self.retry_ms,
            )
            if self._id:
                self.last_event_id = self._id
            self._reset()
            return evt

        if line.startswith(":"):
            # Comment / heartbeat
            return None

        field, sep, value = line.partition(":")
        if sep and value.startswith(" "):
            value = value[1:]

        if field == "event":
            self._event = value
        elif field == "data":
            self._data.append(value)
        elif field == "id":
            if "\0" not in value:
                self._id = value
        elif field == "retry":
            if value.isdigit():
                self.retry_ms = int(value)
        else:
            logger.debug("Ignoring unknown SSE field %r", field)
        return None


def iter_events(lines: Iterable[str], parser: SseParser | None = None) -> Iterator[SseEvent]:
    """Yield every event dispatched by *lines*."""
    parser = parser or SseParser()
    for line in lines:
        evt = parser.feed(line)
        if evt is not None:
            yield evt

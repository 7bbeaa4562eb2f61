"""Abstract remote store client and its result types."""

from __future__ import annotations

import abc
from enum import Enum
from typing import Any, Iterator, Optional

from pydantic import BaseModel, Field

from transync.config import DEFAULT_POLL_INTERVAL
from transync.live.sse import SseEvent
from transync.models.translation import LineageRole, RemoteState, TranslationMap


class DownloadResult(BaseModel):
    """Decoded remote content."""

    content: TranslationMap = Field(default_factory=dict)
    hash: str = ""
    lineage_id: Optional[str] = None


class UploadReceipt(BaseModel):
    """What the remote reports after accepting an upload."""

    site_id: int
    hash: str
    role: LineageRole = LineageRole.MAIN
    line_count: int = 0
    web_url: Optional[str] = None


class DeviceCode(BaseModel):
    """Codes returned when a device-code login starts."""

    device_code: str
    user_code: str
    verification_uri: str = ""
    expires_in: int = 900
    interval: float = DEFAULT_POLL_INTERVAL


class PollStatus(str, Enum):
    AUTHORIZED = "authorized"
    PENDING = "pending"
    EXPIRED = "expired"
    DENIED = "denied"


class PollResult(BaseModel):
    """Answer to one device-code poll."""

    status: PollStatus
    access_token: Optional[str] = None
    username: Optional[str] = None
    error: Optional[str] = None

    @property
    def is_pending(self) -> bool:
        return self.status is PollStatus.PENDING


class RemoteClient(abc.ABC):
    """Request/response access to the remote translation store.

    Implementations raise :class:`~transync.errors.TransientIOError` for
    retryable failures and :class:`~transync.errors.RemoteRejectedError`
    when the remote refuses a request.
    """

    @abc.abstractmethod
    def check_lineage(self, lineage_id: str) -> RemoteState:
        """Return the remote state of *lineage_id* for the current user."""

    @abc.abstractmethod
    def download(self, site_id: int) -> DownloadResult:
        """Fetch and decode the content stored under *site_id*."""

    @abc.abstractmethod
    def upload(self, content: TranslationMap, metadata: dict[str, Any]) -> UploadReceipt:
        """Store *content*; *metadata* carries lineage fields."""

    @abc.abstractmethod
    def initiate_device_flow(self) -> DeviceCode:
        """Start a device-code login."""

    @abc.abstractmethod
    def poll_device_flow(self, device_code: str) -> PollResult:
        """Ask whether the user has approved *device_code* yet."""

    @abc.abstractmethod
    def subscribe(self, site_id: int, last_event_id: str | None = None) -> Iterator[SseEvent]:
        """Open a push stream for *site_id*.

        Raises on connection failure; the iterator ends when the remote
        closes the stream.
        """

    def set_token(self, token: str | None) -> None:
        """Use *token* for subsequent authenticated requests."""

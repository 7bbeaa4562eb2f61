"""Remote store collaborators: abstract client and the HTTP implementation."""

from transync.remote.base import (
    DeviceCode,
    DownloadResult,
    PollResult,
    PollStatus,
    RemoteClient,
    UploadReceipt,
)

__all__ = [
    "DeviceCode",
    "DownloadResult",
    "PollResult",
    "PollStatus",
    "RemoteClient",
    "UploadReceipt",
]

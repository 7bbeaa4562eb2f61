"""HttpRemoteClient — the REST translation store, via ``requests``."""

from __future__ import annotations

import gzip
import json
import logging
from typing import Any, Iterator

import requests

from transync.config import (
    DEFAULT_API_URL,
    HEARTBEAT_TIMEOUT,
    MAX_UPLOAD_BYTES,
    REQUEST_TIMEOUT,
)
from transync.errors import ContentValidationError, RemoteRejectedError, TransientIOError
from transync.live.sse import SseEvent, SseParser
from transync.models.translation import (
    LineageRole,
    RemoteState,
    TranslationMap,
    map_to_json,
    parse_translation_content,
)
from transync.remote.base import (
    DeviceCode,
    DownloadResult,
    PollResult,
    PollStatus,
    RemoteClient,
    UploadReceipt,
)

logger = logging.getLogger(__name__)

# Status codes after which retrying cannot help
_FATAL_STATUS = {400, 401, 403, 404, 409, 413, 422}


class HttpRemoteClient(RemoteClient):
    """Client for the translation store REST API.

    Parameters
    ----------
    base_url:
        API root, e.g. ``https://example.org/api/v1``.
    token:
        Bearer token from a completed device-code login.
    timeout:
        Per-request timeout in seconds.
    session:
        Optional pre-configured :class:`requests.Session`.
    """

    def __init__(
        self,
        base_url: str = DEFAULT_API_URL,
        *,
        token: str | None = None,
        timeout: float = REQUEST_TIMEOUT,
        session: requests.Session | None = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self._session = session or requests.Session()
        self._session.headers.setdefault("Accept", "application/json")
        self.set_token(token)

    def set_token(self, token: str | None) -> None:
        if token:
            self._session.headers["Authorization"] = f"Bearer {token}"
        else:
            self._session.headers.pop("Authorization", None)

    # -- Lineage --------------------------------------------------------------

    def check_lineage(self, lineage_id: str) -> RemoteState:
        data = self._request_json(
            "GET", "/translations/check-uuid", params={"uuid": lineage_id},
        )
        role = LineageRole.parse(data.get("role"))
        exists = bool(data.get("exists", False))
        translation = data.get("translation") or {}
        main = data.get("main") or {}

        state = RemoteState(
            checked=True,
            exists=exists,
            is_owner=role in (LineageRole.MAIN, LineageRole.BRANCH),
            role=role,
            dependent_count=int(data.get("branches_count") or 0),
        )
        if exists and state.is_owner:
            state.site_id = translation.get("id")
            state.hash = translation.get("file_hash") or ""
            state.owner_name = translation.get("uploader") or ""
            if role is LineageRole.BRANCH:
                state.parent_owner_name = main.get("uploader") or ""
        elif exists:
            state.site_id = main.get("id")
            state.hash = main.get("file_hash") or ""
            state.owner_name = main.get("uploader") or ""

        logger.debug(
            "check-uuid %s: exists=%s owner=%s role=%s",
            lineage_id, state.exists, state.is_owner, state.role.value,
        )
        return state

    # -- Content --------------------------------------------------------------

    def download(self, site_id: int) -> DownloadResult:
        data = self._request_json("GET", f"/translations/{site_id}/download")
        raw = data.get("content")
        if isinstance(raw, dict):
            raw = json.dumps(raw, ensure_ascii=False)
        if not isinstance(raw, str):
            raise ContentValidationError("Download response carries no content")
        content, lineage = parse_translation_content(raw)
        return DownloadResult(
            content=content,
            hash=data.get("file_hash") or "",
            lineage_id=lineage,
        )

    def upload(self, content: TranslationMap, metadata: dict[str, Any]) -> UploadReceipt:
        document: dict[str, Any] = {"_uuid": metadata.get("uuid")}
        document.update(map_to_json(content))

        payload = dict(metadata)
        payload["content"] = json.dumps(document, ensure_ascii=False)
        body = json.dumps(payload, ensure_ascii=False).encode("utf-8")
        if len(body) > MAX_UPLOAD_BYTES:
            raise RemoteRejectedError(
                f"Translation file too large ({len(body) // (1024 * 1024)}MB). "
                f"Maximum is {MAX_UPLOAD_BYTES // (1024 * 1024)}MB.",
                status_code=413,
            )

        compressed = gzip.compress(body)
        logger.info(
            "Uploading %d entries (gzip: %d -> %d bytes)",
            len(content), len(body), len(compressed),
        )
        data = self._request_json(
            "POST",
            "/translations",
            data=compressed,
            headers={"Content-Type": "application/json", "Content-Encoding": "gzip"},
        )
        translation = data.get("translation") or {}
        return UploadReceipt(
            site_id=int(translation.get("id") or 0),
            hash=translation.get("file_hash") or "",
            role=LineageRole.parse(translation.get("role")),
            line_count=int(translation.get("line_count") or 0),
            web_url=translation.get("web_url"),
        )

    # -- Device flow ----------------------------------------------------------

    def initiate_device_flow(self) -> DeviceCode:
        data = self._request_json("POST", "/auth/device")
        return DeviceCode(
            device_code=data.get("device_code") or "",
            user_code=data.get("user_code") or "",
            verification_uri=data.get("verification_uri") or "",
            expires_in=int(data.get("expires_in") or 900),
            interval=float(data.get("interval") or 5),
        )

    def poll_device_flow(self, device_code: str) -> PollResult:
        resp = self._send(
            "POST", "/auth/device/poll", json={"device_code": device_code},
        )
        data = _json_body(resp)

        if resp.ok:
            user = data.get("user") or {}
            return PollResult(
                status=PollStatus.AUTHORIZED,
                access_token=data.get("access_token"),
                username=user.get("name"),
            )

        if resp.status_code >= 500:
            raise TransientIOError(f"Device poll failed: HTTP {resp.status_code}")

        error = data.get("error")
        description = data.get("error_description") or error
        if error in ("authorization_pending", "slow_down"):
            return PollResult(status=PollStatus.PENDING)
        if error == "expired_token":
            return PollResult(status=PollStatus.EXPIRED, error=description)
        return PollResult(status=PollStatus.DENIED, error=description or f"HTTP {resp.status_code}")

    # -- Push -----------------------------------------------------------------

    def subscribe(self, site_id: int, last_event_id: str | None = None) -> Iterator[SseEvent]:
        headers = {"Accept": "text/event-stream"}
        if last_event_id:
            headers["Last-Event-ID"] = last_event_id
        resp = self._send(
            "GET", f"/translations/{site_id}/events", headers=headers, stream=True,
            timeout=(self.timeout, HEARTBEAT_TIMEOUT),
        )
        if not resp.ok:
            resp.close()
            self._raise_for_status(resp)
        return self._stream(resp, SseParser(last_event_id))

    @staticmethod
    def _stream(resp: requests.Response, parser: SseParser) -> Iterator[SseEvent]:
        try:
            for line in resp.iter_lines(decode_unicode=True):
                evt = parser.feed(line or "")
                if evt is not None:
                    yield evt
        except requests.RequestException as exc:
            raise TransientIOError(f"Event stream dropped: {exc}") from exc
        finally:
            resp.close()

    # -- Plumbing -------------------------------------------------------------

    def _send(self, method: str, path: str, **kwargs: Any) -> requests.Response:
        url = f"{self.base_url}{path}"
        logger.debug("%s %s", method, url)
        kwargs.setdefault("timeout", self.timeout)
        try:
            return self._session.request(method, url, **kwargs)
        except requests.RequestException as exc:
            raise TransientIOError(f"{method} {path} failed: {exc}") from exc

    def _request_json(self, method: str, path: str, **kwargs: Any) -> dict[str, Any]:
        resp = self._send(method, path, **kwargs)
        if not resp.ok:
            self._raise_for_status(resp)
        return _json_body(resp)

    @staticmethod
    def _raise_for_status(resp: requests.Response) -> None:
        if resp.status_code not in _FATAL_STATUS and (
            resp.status_code >= 500 or resp.status_code == 429
        ):
            raise TransientIOError(f"HTTP {resp.status_code}")
        data = _json_body(resp)
        message = data.get("error") or data.get("message") or f"HTTP {resp.status_code}"
        errors = data.get("errors")
        if isinstance(errors, dict):
            flat = [str(e) for msgs in errors.values() for e in (msgs or [])]
            if flat:
                message = ", ".join(flat)
        if resp.status_code == 401:
            message = "Not authenticated"
        raise RemoteRejectedError(message, status_code=resp.status_code)


def _json_body(resp: requests.Response) -> dict[str, Any]:
    try:
        data = resp.json()
    except ValueError:
        return {}
    return data if isinstance(data, dict) else {}

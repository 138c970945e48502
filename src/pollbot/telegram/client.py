from __future__ import annotations

from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Protocol

import anyio
import httpx
import msgspec

from ..logging import get_logger
from .api_schemas import (
    Envelope,
    File,
    Message,
    Update,
    User,
    UserProfilePhotos,
)
from .backoff import (
    BackoffPolicy,
    is_rate_limited,
    is_server_error,
    parse_retry_after,
    retry_after_header,
)
from .outcome import CallOutcome, ErrorKind, Failure, Success

logger = get_logger(__name__)

__all__ = ["BotClient", "TelegramClient"]

_POLL_GRACE_S = 10.0


class BotClient(Protocol):
    async def call(
        self, method: str, params: dict[str, Any] | None = None, *, type: Any = Any
    ) -> CallOutcome[Any]: ...

    async def send_message(
        self,
        chat_id: int,
        text: str,
        *,
        reply_markup: dict[str, Any] | None = None,
        reply_to_message_id: int | None = None,
    ) -> CallOutcome[Message]: ...

    async def send_document(
        self, chat_id: int, path: str | Path, *, caption: str | None = None
    ) -> CallOutcome[Message]: ...

    async def get_updates(
        self,
        offset: int | None,
        timeout_s: int = 30,
        allowed_updates: list[str] | None = None,
    ) -> CallOutcome[list[Update]]: ...

    async def get_chat(self, chat_id: int) -> CallOutcome[dict[str, Any]]: ...

    async def get_user_profile_photos(
        self, user_id: int, *, offset: int | None = None, limit: int | None = None
    ) -> CallOutcome[UserProfilePhotos]: ...

    async def get_file(self, file_id: str) -> CallOutcome[File]: ...

    async def download_file(self, file_path: str) -> CallOutcome[bytes]: ...

    async def answer_callback_query(
        self,
        callback_query_id: str,
        text: str | None = None,
        *,
        show_alert: bool | None = None,
    ) -> CallOutcome[bool]: ...

    async def get_me(self) -> CallOutcome[User]: ...


@dataclass(frozen=True, slots=True)
class _Retry:
    failure: Failure
    hint: float | None = None


_Resolved = CallOutcome[Any] | _Retry


def _rate_limit_hint(resp: httpx.Response) -> float | None:
    try:
        envelope = msgspec.json.decode(resp.content, type=Envelope)
    except msgspec.DecodeError:
        envelope = None
    if envelope is not None:
        if envelope.parameters is not None and envelope.parameters.retry_after is not None:
            return float(envelope.parameters.retry_after)
    header = retry_after_header(resp.headers)
    if header is not None:
        return header
    if envelope is not None:
        parsed = parse_retry_after(envelope.description)
        if parsed is not None:
            return float(parsed)
    return None


def _check_status(method: str, resp: httpx.Response) -> _Retry | None:
    status = resp.status_code
    if is_rate_limited(status):
        hint = _rate_limit_hint(resp)
        logger.warning(
            "telegram.rate_limited",
            method=method,
            status=status,
            retry_after=hint,
        )
        return _Retry(
            Failure(ErrorKind.RATE_LIMITED, "too many requests", status=status),
            hint=hint,
        )
    if is_server_error(status):
        logger.warning(
            "telegram.server_error",
            method=method,
            status=status,
            url=str(resp.request.url),
            body=resp.text,
        )
        return _Retry(
            Failure(ErrorKind.REMOTE_FAULT, f"server error: {status}", status=status)
        )
    return None


def _decode_envelope(method: str, resp: httpx.Response, type_: Any) -> _Resolved:
    status = resp.status_code
    try:
        envelope = msgspec.json.decode(resp.content, type=Envelope)
    except msgspec.DecodeError as e:
        logger.error(
            "telegram.bad_response",
            method=method,
            status=status,
            url=str(resp.request.url),
            error=str(e),
            body=resp.text,
        )
        return Failure(ErrorKind.DECODE, f"invalid envelope: {e}", status=status)

    if not envelope.ok:
        description = envelope.description or "telegram api error"
        hint = parse_retry_after(envelope.description)
        if hint is not None:
            logger.warning(
                "telegram.rate_limited",
                method=method,
                status=status,
                retry_after=hint,
                description=description,
            )
            return _Retry(
                Failure(ErrorKind.RATE_LIMITED, description, status=status),
                hint=float(hint),
            )
        logger.error(
            "telegram.api_error",
            method=method,
            status=status,
            error_code=envelope.error_code,
            description=description,
        )
        return Failure(ErrorKind.APPLICATION, description, status=status)

    try:
        result = msgspec.json.decode(envelope.result, type=type_)
    except msgspec.DecodeError as e:
        logger.error(
            "telegram.decode_error",
            method=method,
            error=str(e),
        )
        return Failure(ErrorKind.DECODE, f"unexpected result: {e}", status=status)
    logger.debug("telegram.response", method=method, status=status)
    return Success(result)


def _decode_bytes(method: str, resp: httpx.Response) -> _Resolved:
    if resp.status_code >= 400:
        logger.error(
            "telegram.download_error",
            method=method,
            status=resp.status_code,
            url=str(resp.request.url),
        )
        return Failure(
            ErrorKind.APPLICATION,
            f"download failed: {resp.status_code}",
            status=resp.status_code,
        )
    return Success(resp.content)


class TelegramClient:
    """Telegram Bot API client that retries throttled and failed requests.

    Every call resolves to exactly one :class:`Success` or :class:`Failure`.
    429 and 5xx responses, and ``ok=false`` replies whose description carries a
    ``retry after N`` hint, are retried under the backoff policy; everything
    else is terminal. Document uploads are sent once and never retried.
    """

    def __init__(
        self,
        token: str,
        *,
        timeout_s: float = 120,
        http_client: httpx.AsyncClient | None = None,
        policy: BackoffPolicy | None = None,
        sleep: Callable[[float], Awaitable[None]] = anyio.sleep,
    ) -> None:
        if not token:
            raise ValueError("Telegram token is empty")
        self._base = f"https://api.telegram.org/bot{token}"
        self._file_base = f"https://api.telegram.org/file/bot{token}"
        self._http = http_client or httpx.AsyncClient(timeout=timeout_s)
        self._owns_client = http_client is None
        self._policy = policy or BackoffPolicy()
        self._sleep = sleep

    @property
    def policy(self) -> BackoffPolicy:
        return self._policy

    async def close(self) -> None:
        if self._owns_client:
            await self._http.aclose()

    async def __aenter__(self) -> TelegramClient:
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.close()

    async def _resolve(
        self,
        method: str,
        send: Callable[[], Awaitable[httpx.Response]],
        decode: Callable[[httpx.Response], _Resolved],
        *,
        retry: bool = True,
    ) -> CallOutcome[Any]:
        attempt = 0
        while True:
            attempt += 1
            try:
                resp = await send()
            except httpx.HTTPError as e:
                logger.error(
                    "telegram.network_error",
                    method=method,
                    error=str(e),
                    error_type=e.__class__.__name__,
                )
                return Failure(ErrorKind.TRANSPORT, str(e) or e.__class__.__name__)

            resolved = _check_status(method, resp) or decode(resp)
            if not isinstance(resolved, _Retry):
                return resolved
            if not retry:
                logger.error(
                    "telegram.upload_failed",
                    method=method,
                    kind=resolved.failure.kind.value,
                    status=resolved.failure.status,
                    error=resolved.failure.message,
                )
                return resolved.failure
            if not self._policy.can_retry(attempt):
                logger.error(
                    "telegram.retries_exhausted",
                    method=method,
                    attempts=attempt,
                    kind=resolved.failure.kind.value,
                    error=resolved.failure.message,
                )
                return resolved.failure
            delay = self._policy.next_delay(attempt, resolved.hint)
            logger.info(
                "telegram.retry",
                method=method,
                attempt=attempt,
                delay=delay,
                reason=resolved.failure.message,
            )
            await self._sleep(delay)

    async def call(
        self, method: str, params: dict[str, Any] | None = None, *, type: Any = Any
    ) -> CallOutcome[Any]:
        payload = params or {}
        timeout = httpx.USE_CLIENT_DEFAULT
        if method == "getUpdates":
            timeout = float(payload.get("timeout", 0)) + _POLL_GRACE_S
        logger.debug("telegram.request", method=method, payload=payload)

        async def send() -> httpx.Response:
            return await self._http.post(
                f"{self._base}/{method}", json=payload, timeout=timeout
            )

        return await self._resolve(
            method, send, lambda resp: _decode_envelope(method, resp, type)
        )

    async def send_message(
        self,
        chat_id: int,
        text: str,
        *,
        reply_markup: dict[str, Any] | None = None,
        reply_to_message_id: int | None = None,
    ) -> CallOutcome[Message]:
        params: dict[str, Any] = {"chat_id": chat_id, "text": text}
        if reply_markup is not None:
            params["reply_markup"] = reply_markup
        if reply_to_message_id is not None:
            params["reply_to_message_id"] = reply_to_message_id
        return await self.call("sendMessage", params, type=Message)

    async def send_document(
        self, chat_id: int, path: str | Path, *, caption: str | None = None
    ) -> CallOutcome[Message]:
        # Single shot: a throttled or failed upload is returned, not retried.
        doc_path = anyio.Path(path)
        try:
            content = await doc_path.read_bytes()
        except OSError as e:
            logger.error("telegram.document_read_failed", path=str(path), error=str(e))
            return Failure(ErrorKind.IO, f"failed to read {path}: {e}")
        filename = doc_path.name or "file"
        data: dict[str, Any] = {"chat_id": str(chat_id)}
        if caption is not None:
            data["caption"] = caption
        logger.debug(
            "telegram.request",
            method="sendDocument",
            chat_id=chat_id,
            filename=filename,
            size=len(content),
        )

        async def send() -> httpx.Response:
            return await self._http.post(
                f"{self._base}/sendDocument",
                data=data,
                files={"document": (filename, content)},
            )

        return await self._resolve(
            "sendDocument",
            send,
            lambda resp: _decode_envelope("sendDocument", resp, Message),
            retry=False,
        )

    async def get_updates(
        self,
        offset: int | None,
        timeout_s: int = 30,
        allowed_updates: list[str] | None = None,
    ) -> CallOutcome[list[Update]]:
        params: dict[str, Any] = {"timeout": timeout_s}
        if offset is not None:
            params["offset"] = offset
        if allowed_updates is not None:
            params["allowed_updates"] = allowed_updates
        return await self.call("getUpdates", params, type=list[Update])

    async def get_chat(self, chat_id: int) -> CallOutcome[dict[str, Any]]:
        return await self.call("getChat", {"chat_id": chat_id}, type=dict[str, Any])

    async def get_user_profile_photos(
        self, user_id: int, *, offset: int | None = None, limit: int | None = None
    ) -> CallOutcome[UserProfilePhotos]:
        params: dict[str, Any] = {"user_id": user_id}
        if offset is not None:
            params["offset"] = offset
        if limit is not None:
            params["limit"] = limit
        return await self.call("getUserProfilePhotos", params, type=UserProfilePhotos)

    async def fetch_profile_photo_pages(
        self, user_id: int, *, page_size: int = 100
    ) -> list[UserProfilePhotos]:
        """Fetch every page of a user's profile photos; stops at the first failure."""
        pages: list[UserProfilePhotos] = []
        offset = 0
        while True:
            outcome = await self.get_user_profile_photos(
                user_id, offset=offset, limit=page_size
            )
            if not isinstance(outcome, Success):
                return pages
            page = outcome.value
            pages.append(page)
            offset += len(page.photos)
            if not page.photos or offset >= page.total_count:
                return pages

    async def get_file(self, file_id: str) -> CallOutcome[File]:
        return await self.call("getFile", {"file_id": file_id}, type=File)

    async def download_file(self, file_path: str) -> CallOutcome[bytes]:
        url = f"{self._file_base}/{file_path}"
        logger.debug("telegram.request", method="downloadFile")
        return await self._resolve(
            "downloadFile",
            lambda: self._http.get(url),
            lambda resp: _decode_bytes("downloadFile", resp),
        )

    async def answer_callback_query(
        self,
        callback_query_id: str,
        text: str | None = None,
        *,
        show_alert: bool | None = None,
    ) -> CallOutcome[bool]:
        params: dict[str, Any] = {"callback_query_id": callback_query_id}
        if text is not None:
            params["text"] = text
        if show_alert is not None:
            params["show_alert"] = show_alert
        return await self.call("answerCallbackQuery", params, type=bool)

    async def get_me(self) -> CallOutcome[User]:
        return await self.call("getMe", {}, type=User)

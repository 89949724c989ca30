"""
LectureAI Backend - Object Storage Service (Backblaze B2)
===========================================================

What:  Relays uploads to B2 and issues signed download URLs.
How:   Talks to the B2 native API (b2api/v2) through a shared httpx.AsyncClient.
Who:   /upload, /signed-download and the analysis pipeline.

Session handling:
    b2_authorize_account yields an API base URL, a download base URL and an
    account authorization token. The session is cached in-process until
    B2_SESSION_TTL elapses (B2 tokens live 24h) or B2 answers 401.

    get_session() is single-flight: concurrent requests that find the
    cache empty or expired queue on one asyncio.Lock, and only the first
    one calls the auth endpoint; the rest re-check and reuse its result.

    A 401 from an API call invalidates the cached session and the call is
    issued once more with a fresh one (tenacity, 2 attempts). A 401 from
    an upload URL means the upload token expired, so the whole upload is
    repeated with a new upload URL.

Upload flow:
    1. b2_get_upload_url(bucketId) → uploadUrl + upload token
    2. POST the file bytes, streamed from disk:
         Authorization:     upload token
         X-Bz-File-Name:    percent-encoded object name
         Content-Type:      b2/x-auto (B2 infers it from the extension)
         X-Bz-Content-Sha1: do_not_verify
         Content-Length:    file size (B2 rejects chunked bodies)

Signed downloads:
    b2_get_download_authorization scoped to fileNamePrefix=<object name>,
    so the token handed to callers opens only that object (and names that
    start with it) instead of the whole account.
"""

import asyncio
import logging
import os
import time
from dataclasses import dataclass
from typing import Any, AsyncIterator, Callable, Dict, Optional
from urllib.parse import quote

import aiofiles
import httpx
from tenacity import (
    before_sleep_log,
    retry,
    retry_if_exception_type,
    stop_after_attempt,
)

from lectureai.config import Settings, settings as default_settings
from lectureai.exceptions import (
    NotFoundError,
    StorageAuthExpiredError,
    StorageServiceError,
    ValidationError,
)
from lectureai.schemas.api import SignedDownload

logger = logging.getLogger(__name__)

B2_API_PREFIX = "/b2api/v2"

# Characters encodeURIComponent leaves alone
_FILE_NAME_SAFE = "-_.!~*'()"

_UPLOAD_CHUNK_SIZE = 1024 * 1024

# Re-issue a call exactly once after a 401 forced a fresh session
_reauthorize_once = retry(
    retry=retry_if_exception_type(StorageAuthExpiredError),
    stop=stop_after_attempt(2),
    before_sleep=before_sleep_log(logger, logging.INFO),
    reraise=True,
)


def encode_file_name(file_name: str) -> str:
    """Percent-encode an object name the way B2 expects in headers and URLs."""
    return quote(file_name, safe=_FILE_NAME_SAFE)


@dataclass
class StorageSession:
    """Result of b2_authorize_account. The token is a credential: never log it."""

    api_url: str
    download_url: str
    authorization_token: str
    account_id: str
    expires_at: float

    def is_expired(self, now: float) -> bool:
        return now >= self.expires_at


async def _iter_file(path: str) -> AsyncIterator[bytes]:
    async with aiofiles.open(path, "rb") as f:
        while True:
            chunk = await f.read(_UPLOAD_CHUNK_SIZE)
            if not chunk:
                break
            yield chunk


class StorageService:
    """
    Backblaze B2 client bound to one bucket.

    Args:
        http: Shared async HTTP client (owned by the app; closed on shutdown).
        settings: Credentials, bucket and TTLs.
        clock: Monotonic time source, replaceable in tests.
    """

    def __init__(
        self,
        http: httpx.AsyncClient,
        settings: Settings = default_settings,
        clock: Callable[[], float] = time.monotonic,
    ):
        self._http = http
        self._settings = settings
        self._clock = clock
        self._session: Optional[StorageSession] = None
        self._lock = asyncio.Lock()

    # ── Session ───────────────────────────────────────────────────────────

    async def get_session(self) -> StorageSession:
        """Cached session, authorizing at most once across concurrent callers."""
        session = self._session
        if session is not None and not session.is_expired(self._clock()):
            return session

        async with self._lock:
            session = self._session
            if session is None or session.is_expired(self._clock()):
                session = await self._authorize()
                self._session = session
            return session

    def invalidate(self, session: Optional[StorageSession] = None) -> None:
        """
        Drop the cached session.

        When `session` is given, only that exact session is dropped, so a
        late 401 on an old token cannot evict a newer one.
        """
        if session is None or self._session is session:
            self._session = None

    async def _authorize(self) -> StorageSession:
        if not self._settings.b2_key_id or not self._settings.b2_app_key:
            raise StorageServiceError(message="Storage credentials are not configured")

        logger.info("Authorizing with storage provider")
        try:
            response = await self._http.get(
                self._settings.b2_auth_url,
                auth=(self._settings.b2_key_id, self._settings.b2_app_key),
            )
        except httpx.HTTPError as e:
            logger.error("Storage authorization request failed: %s", str(e))
            raise StorageServiceError(
                message=f"Storage authorization failed: {e}",
                context={"error_type": type(e).__name__},
            )

        data = self._parse(response, "b2_authorize_account")
        try:
            return StorageSession(
                api_url=data["apiUrl"],
                download_url=data["downloadUrl"],
                authorization_token=data["authorizationToken"],
                account_id=data.get("accountId", ""),
                expires_at=self._clock() + self._settings.b2_session_ttl,
            )
        except KeyError as e:
            raise StorageServiceError(
                message=f"Storage authorization response is missing {e.args[0]}",
            )

    # ── API plumbing ──────────────────────────────────────────────────────

    @staticmethod
    def _parse(response: httpx.Response, action: str) -> Dict[str, Any]:
        """Decode a B2 JSON response, raising StorageServiceError on non-2xx."""
        if response.is_success:
            try:
                return response.json()
            except ValueError:
                raise StorageServiceError(
                    message=f"Storage provider returned a non-JSON response to {action}",
                    status=response.status_code,
                )

        try:
            body = response.json()
            detail = body.get("message") or body.get("code") or response.text
        except ValueError:
            detail = response.text or response.reason_phrase
        logger.warning("Storage %s failed with HTTP %d: %s", action, response.status_code, detail)
        raise StorageServiceError(
            message=f"{action} failed: {detail}",
            status=response.status_code,
            context={"action": action},
        )

    async def _post(self, endpoint: str, payload: Dict[str, Any]) -> Dict[str, Any]:
        """One API call on the current session. A 401 raises StorageAuthExpiredError."""
        session = await self.get_session()
        try:
            response = await self._http.post(
                f"{session.api_url}{B2_API_PREFIX}/{endpoint}",
                headers={"Authorization": session.authorization_token},
                json=payload,
            )
        except httpx.HTTPError as e:
            raise StorageServiceError(
                message=f"{endpoint} failed: {e}",
                context={"error_type": type(e).__name__},
            )

        if response.status_code == 401:
            logger.info("Storage session rejected by %s, re-authorizing", endpoint)
            self.invalidate(session)
            raise StorageAuthExpiredError(context={"action": endpoint})

        return self._parse(response, endpoint)

    @_reauthorize_once
    async def _api_call(self, endpoint: str, payload: Dict[str, Any]) -> Dict[str, Any]:
        return await self._post(endpoint, payload)

    # ── Operations ────────────────────────────────────────────────────────

    @_reauthorize_once
    async def upload_file(self, local_path: str, file_name: str) -> Dict[str, Any]:
        """
        Stream a local file to the configured bucket under `file_name`.

        Returns:
            B2's b2_upload_file response (fileId, fileName, contentLength, ...).

        Raises:
            StorageServiceError: any step failed; the provider message is kept.
        """
        # Not _api_call: the retry wraps this whole method
        target = await self._post(
            "b2_get_upload_url", {"bucketId": self._settings.b2_bucket_id}
        )
        size = os.path.getsize(local_path)

        headers = {
            "Authorization": target["authorizationToken"],
            "X-Bz-File-Name": encode_file_name(file_name),
            "Content-Type": "b2/x-auto",
            "X-Bz-Content-Sha1": "do_not_verify",
            "Content-Length": str(size),
        }

        started = time.perf_counter()
        try:
            response = await self._http.post(
                target["uploadUrl"],
                headers=headers,
                content=_iter_file(local_path),
            )
        except httpx.HTTPError as e:
            raise StorageServiceError(
                message=f"Upload failed: {e}",
                context={"file_name": file_name, "error_type": type(e).__name__},
            )

        if response.status_code == 401:
            raise StorageAuthExpiredError(
                message="Upload token expired", context={"action": "b2_upload_file"}
            )

        result = self._parse(response, "b2_upload_file")
        logger.info(
            "File uploaded to storage: %s (%d bytes in %.0fms)",
            result.get("fileName", file_name),
            size,
            (time.perf_counter() - started) * 1000,
        )
        return result

    async def get_signed_download(self, file_name: Optional[str]) -> SignedDownload:
        """
        Build a download URL and a token that authorizes fetching it.

        Raises:
            ValidationError: no object name supplied.
            StorageServiceError: the provider refused the authorization.
        """
        if not file_name:
            raise ValidationError(message="fileName is required", field="fileName")

        grant = await self._api_call(
            "b2_get_download_authorization",
            {
                "bucketId": self._settings.b2_bucket_id,
                "fileNamePrefix": file_name,
                "validDurationInSeconds": self._settings.b2_download_ttl,
            },
        )
        session = await self.get_session()

        download_url = (
            f"{session.download_url}/file/"
            f"{self._settings.b2_bucket_name}/{encode_file_name(file_name)}"
        )
        logger.info("Issued signed download for %s", file_name)
        return SignedDownload(
            download_url=download_url,
            authorization_token=grant["authorizationToken"],
        )

    async def download(self, signed: SignedDownload) -> bytes:
        """
        Fetch the bytes behind a signed download.

        Raises:
            NotFoundError: the object does not exist (404).
            StorageServiceError: any other failure.
        """
        try:
            response = await self._http.get(
                signed.download_url,
                headers={"Authorization": signed.authorization_token},
            )
        except httpx.HTTPError as e:
            raise StorageServiceError(
                message=f"Download failed: {e}",
                context={"error_type": type(e).__name__},
            )

        if response.status_code == 404:
            raise NotFoundError(resource="file", resource_id=signed.download_url.rsplit("/", 1)[-1])
        if not response.is_success:
            self._parse(response, "b2_download_file_by_name")

        logger.info("Downloaded %d bytes from storage", len(response.content))
        return response.content

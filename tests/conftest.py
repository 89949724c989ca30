"""
LectureAI Backend - Test Configuration (conftest.py)
======================================================

What:  Shared fixtures: test settings, a fake Backblaze B2 API, an
       in-memory SQLite session and an HTTP client for the app.
How:   Outbound HTTP goes through httpx.MockTransport; the database is a
       real SQLite engine (aiosqlite) so the upsert statement actually runs.

Fixture Overview:
    test_settings   Settings with fake credentials and a tmp upload dir
    fake_b2         Programmable stand-in for the B2 native API
    b2_http         httpx.AsyncClient routed to fake_b2
    storage         StorageService wired to b2_http
    db_session      AsyncSession on a fresh in-memory database
    sign_webhook    Builds a valid Stripe-Signature header for a payload
    app / test_client  The FastAPI app with storage and DB overridden
"""

import os
import tempfile

# Must be set before lectureai.config is imported
os.environ["DATABASE_URL"] = "sqlite+aiosqlite://"
os.environ["UPLOAD_DIR"] = tempfile.mkdtemp(prefix="lectureai_test_")
os.environ["GEMINI_API_KEY"] = "test-key-not-real"
os.environ["LOG_LEVEL"] = "WARNING"

import hashlib
import hmac
import json
import time
from typing import Any, Dict, List, Optional
from urllib.parse import unquote

import httpx
import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from lectureai.config import Settings
from lectureai.database import Base, get_db_session
from lectureai.dependencies import get_storage_service
from lectureai.models.subscription import UserSubscription  # noqa: F401  (registers the table)
from lectureai.services.storage_service import StorageService

B2_AUTH_URL = "https://auth.b2.test/b2api/v2/b2_authorize_account"
B2_API_URL = "https://api.b2.test"
B2_DOWNLOAD_URL = "https://f000.b2.test"
B2_UPLOAD_URL = "https://pod-000.b2.test/b2api/v2/b2_upload_file/bucket-id/c000"
BUCKET_NAME = "lectures"
WEBHOOK_SECRET = "whsec_test_secret"


# ══════════════════════════════════════════════════════════════════════════
# Fakes
# ══════════════════════════════════════════════════════════════════════════


class FakeClock:
    """Manually advanced monotonic clock."""

    def __init__(self, now: float = 1000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class FakeB2:
    """
    Minimal Backblaze B2 native API served through httpx.MockTransport.

    Knobs:
        api_401_count:     answer the next N API calls with 401 expired_auth_token
        upload_401_count:  answer the next N uploads with 401
        api_error:         (status, body) returned by every API call when set
        objects:           stored objects by name, served by the download URL
    """

    def __init__(self):
        self.requests: List[httpx.Request] = []
        self.auth_calls = 0
        self.api_401_count = 0
        self.upload_401_count = 0
        self.api_error: Optional[tuple] = None
        self.objects: Dict[str, bytes] = {}

    def calls_to(self, endpoint: str) -> List[httpx.Request]:
        return [r for r in self.requests if r.url.path.endswith(endpoint)]

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        url = str(request.url)

        if url == B2_AUTH_URL:
            self.auth_calls += 1
            return httpx.Response(
                200,
                json={
                    "accountId": "account-1",
                    "apiUrl": B2_API_URL,
                    "downloadUrl": B2_DOWNLOAD_URL,
                    "authorizationToken": f"account-token-{self.auth_calls}",
                },
            )

        if url.startswith(B2_API_URL):
            return self._api(request)

        if url == B2_UPLOAD_URL:
            if self.upload_401_count:
                self.upload_401_count -= 1
                return httpx.Response(401, json={"code": "expired_auth_token", "message": "expired"})
            name = unquote(request.headers["X-Bz-File-Name"])
            self.objects[name] = request.content
            return httpx.Response(
                200,
                json={
                    "fileId": f"4_z{len(self.objects)}",
                    "fileName": name,
                    "contentLength": len(request.content),
                    "contentType": "audio/mpeg",
                },
            )

        prefix = f"{B2_DOWNLOAD_URL}/file/{BUCKET_NAME}/"
        if url.startswith(prefix):
            name = unquote(url[len(prefix):])
            if name not in self.objects:
                return httpx.Response(404, json={"code": "not_found", "message": "File not present"})
            return httpx.Response(200, content=self.objects[name])

        return httpx.Response(500, json={"message": f"unexpected request {url}"})

    def _api(self, request: httpx.Request) -> httpx.Response:
        if self.api_401_count:
            self.api_401_count -= 1
            return httpx.Response(401, json={"code": "expired_auth_token", "message": "expired"})
        if self.api_error:
            status, body = self.api_error
            return httpx.Response(status, json=body)

        body: Dict[str, Any] = json.loads(request.content or b"{}")
        if request.url.path.endswith("/b2_get_upload_url"):
            return httpx.Response(
                200,
                json={
                    "bucketId": body["bucketId"],
                    "uploadUrl": B2_UPLOAD_URL,
                    "authorizationToken": "upload-token",
                },
            )
        if request.url.path.endswith("/b2_get_download_authorization"):
            return httpx.Response(
                200,
                json={
                    "bucketId": body["bucketId"],
                    "fileNamePrefix": body["fileNamePrefix"],
                    "authorizationToken": f"download-token-for-{body['fileNamePrefix']}",
                },
            )
        return httpx.Response(400, json={"code": "bad_request", "message": "unknown endpoint"})


# ══════════════════════════════════════════════════════════════════════════
# Fixtures
# ══════════════════════════════════════════════════════════════════════════


@pytest.fixture
def test_settings(tmp_path) -> Settings:
    return Settings(
        b2_key_id="key-id",
        b2_app_key="app-key",
        b2_bucket_id="bucket-id",
        b2_bucket_name=BUCKET_NAME,
        b2_auth_url=B2_AUTH_URL,
        stripe_secret_key="sk_test_123",
        stripe_webhook_secret=WEBHOOK_SECRET,
        price_id_subscription="price_sub_123",
        price_id_single="price_single_123",
        success_url="https://lectureai.bolt.host/success",
        cancel_url="https://lectureai.bolt.host/cancel",
        portal_return_url="https://lectureai.bolt.host/account",
        gemini_api_key="test-key-not-real",
        resend_api_key="re_test_123",
        upload_dir=str(tmp_path / "uploads"),
        database_url="sqlite+aiosqlite://",
    )


@pytest.fixture
def fake_b2() -> FakeB2:
    return FakeB2()


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest_asyncio.fixture
async def b2_http(fake_b2):
    async with httpx.AsyncClient(transport=httpx.MockTransport(fake_b2)) as client:
        yield client


@pytest.fixture
def storage(b2_http, test_settings, clock) -> StorageService:
    return StorageService(b2_http, test_settings, clock=clock)


@pytest_asyncio.fixture
async def db_session():
    """A session on a private in-memory database with the schema created."""
    engine = create_async_engine(
        "sqlite+aiosqlite://",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    factory = async_sessionmaker(engine, expire_on_commit=False)
    async with factory() as session:
        yield session
    await engine.dispose()


@pytest.fixture
def sign_webhook():
    """Return a function producing a valid Stripe-Signature header value."""

    def _sign(payload: bytes, secret: str = WEBHOOK_SECRET, timestamp: Optional[int] = None) -> str:
        ts = int(time.time()) if timestamp is None else timestamp
        signed = f"{ts}.{payload.decode('utf-8')}".encode("utf-8")
        digest = hmac.new(secret.encode("utf-8"), signed, hashlib.sha256).hexdigest()
        return f"t={ts},v1={digest}"

    return _sign


@pytest_asyncio.fixture
async def app(test_settings, storage, db_session):
    """The application built from test settings, storage and DB pointed at fakes."""
    from lectureai.main import create_app

    application = create_app(test_settings)
    application.dependency_overrides[get_storage_service] = lambda: storage

    async def _db():
        yield db_session

    application.dependency_overrides[get_db_session] = _db
    yield application
    await application.state.http_client.aclose()
    await application.state.db_engine.dispose()


@pytest_asyncio.fixture
async def test_client(app):
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        yield client

"""
LectureAI Backend - Storage Service Tests
===========================================

What:  StorageService against a fake B2 API (httpx.MockTransport).

Covers:
    - upload headers, streamed body and provider result
    - session caching, single-flight authorization and expiry
    - one re-authorization after a 401, and giving up after the second
    - object-scoped signed downloads and downloads by signed URL
"""

import asyncio

import pytest

from lectureai.exceptions import (
    NotFoundError,
    StorageAuthExpiredError,
    StorageServiceError,
    ValidationError,
)
from lectureai.services.storage_service import encode_file_name


@pytest.fixture
def audio_file(tmp_path):
    path = tmp_path / "staged.mp3"
    path.write_bytes(b"ID3" + b"\x00" * 2048)
    return path


class TestUpload:
    @pytest.mark.asyncio
    async def test_upload_sends_b2_headers(self, storage, fake_b2, audio_file):
        result = await storage.upload_file(str(audio_file), "lecture1.mp3")

        upload = fake_b2.calls_to("/b2_upload_file/bucket-id/c000")[0]
        assert upload.headers["Authorization"] == "upload-token"
        assert upload.headers["X-Bz-File-Name"] == "lecture1.mp3"
        assert upload.headers["Content-Type"] == "b2/x-auto"
        assert upload.headers["X-Bz-Content-Sha1"] == "do_not_verify"
        assert upload.headers["Content-Length"] == str(audio_file.stat().st_size)
        assert "Transfer-Encoding" not in upload.headers
        assert upload.content == audio_file.read_bytes()

        assert result["fileName"] == "lecture1.mp3"
        assert result["contentLength"] == audio_file.stat().st_size

    @pytest.mark.asyncio
    async def test_upload_requests_upload_url_for_configured_bucket(self, storage, fake_b2, audio_file):
        await storage.upload_file(str(audio_file), "lecture1.mp3")

        get_url = fake_b2.calls_to("/b2_get_upload_url")[0]
        assert get_url.headers["Authorization"] == "account-token-1"
        assert b'"bucketId":"bucket-id"' in get_url.content.replace(b" ", b"")

    @pytest.mark.asyncio
    async def test_file_name_is_percent_encoded(self, storage, fake_b2, audio_file):
        await storage.upload_file(str(audio_file), "week 1/intro & overview.mp3")

        upload = fake_b2.calls_to("/b2_upload_file/bucket-id/c000")[0]
        assert upload.headers["X-Bz-File-Name"] == "week%201%2Fintro%20%26%20overview.mp3"
        assert "week 1/intro & overview.mp3" in fake_b2.objects

    @pytest.mark.asyncio
    async def test_expired_upload_token_repeats_whole_upload(self, storage, fake_b2, audio_file):
        fake_b2.upload_401_count = 1

        result = await storage.upload_file(str(audio_file), "lecture1.mp3")

        assert result["fileName"] == "lecture1.mp3"
        assert len(fake_b2.calls_to("/b2_get_upload_url")) == 2
        assert fake_b2.auth_calls == 1

    @pytest.mark.asyncio
    async def test_upload_gives_up_after_one_reauthorization(self, storage, fake_b2, audio_file):
        fake_b2.api_401_count = 100

        with pytest.raises(StorageAuthExpiredError):
            await storage.upload_file(str(audio_file), "lecture1.mp3")

        assert fake_b2.auth_calls == 2
        assert len(fake_b2.calls_to("/b2_get_upload_url")) == 2
        assert fake_b2.calls_to("/b2_upload_file/bucket-id/c000") == []

    @pytest.mark.asyncio
    async def test_provider_error_message_is_surfaced(self, storage, fake_b2, audio_file):
        fake_b2.api_error = (400, {"code": "bad_request", "message": "Invalid bucketId"})

        with pytest.raises(StorageServiceError, match="Invalid bucketId") as exc_info:
            await storage.upload_file(str(audio_file), "lecture1.mp3")
        assert exc_info.value.status == 400

    @pytest.mark.asyncio
    async def test_missing_credentials_fail_before_any_request(self, b2_http, test_settings, fake_b2, audio_file):
        from lectureai.services.storage_service import StorageService

        test_settings.b2_key_id = ""
        service = StorageService(b2_http, test_settings)

        with pytest.raises(StorageServiceError, match="not configured"):
            await service.upload_file(str(audio_file), "lecture1.mp3")
        assert fake_b2.requests == []


class TestSession:
    @pytest.mark.asyncio
    async def test_session_is_reused_across_calls(self, storage, fake_b2):
        await storage.get_signed_download("a.mp3")
        await storage.get_signed_download("b.mp3")

        assert fake_b2.auth_calls == 1

    @pytest.mark.asyncio
    async def test_authorization_uses_basic_auth(self, storage, fake_b2):
        await storage.get_session()

        auth = fake_b2.requests[0]
        # base64("key-id:app-key")
        assert auth.headers["Authorization"] == "Basic a2V5LWlkOmFwcC1rZXk="

    @pytest.mark.asyncio
    async def test_concurrent_callers_share_one_authorization(self, storage, fake_b2):
        sessions = await asyncio.gather(*(storage.get_session() for _ in range(10)))

        assert fake_b2.auth_calls == 1
        assert all(s is sessions[0] for s in sessions)

    @pytest.mark.asyncio
    async def test_session_refreshed_after_ttl(self, storage, fake_b2, clock, test_settings):
        first = await storage.get_session()
        clock.advance(test_settings.b2_session_ttl + 1)
        second = await storage.get_session()

        assert fake_b2.auth_calls == 2
        assert first.authorization_token != second.authorization_token

    @pytest.mark.asyncio
    async def test_401_reauthorizes_once_and_succeeds(self, storage, fake_b2):
        await storage.get_session()
        fake_b2.api_401_count = 1

        signed = await storage.get_signed_download("lecture1.mp3")

        assert signed.authorization_token == "download-token-for-lecture1.mp3"
        assert fake_b2.auth_calls == 2

    @pytest.mark.asyncio
    async def test_repeated_401_gives_up_after_second_attempt(self, storage, fake_b2):
        fake_b2.api_401_count = 5

        with pytest.raises(StorageAuthExpiredError):
            await storage.get_signed_download("lecture1.mp3")

        assert len(fake_b2.calls_to("/b2_get_download_authorization")) == 2

    @pytest.mark.asyncio
    async def test_invalidate_ignores_stale_session(self, storage):
        old = await storage.get_session()
        storage.invalidate()
        fresh = await storage.get_session()

        storage.invalidate(old)

        assert await storage.get_session() is fresh


class TestSignedDownload:
    @pytest.mark.asyncio
    async def test_url_and_token_for_object(self, storage):
        signed = await storage.get_signed_download("lecture1.mp3")

        assert signed.download_url == "https://f000.b2.test/file/lectures/lecture1.mp3"
        assert signed.authorization_token

    @pytest.mark.asyncio
    async def test_authorization_is_scoped_to_object(self, storage, fake_b2, test_settings):
        await storage.get_signed_download("lecture1.mp3")

        request = fake_b2.calls_to("/b2_get_download_authorization")[0]
        body = request.content.decode()
        assert '"fileNamePrefix":"lecture1.mp3"' in body.replace(" ", "")
        assert f'"validDurationInSeconds":{test_settings.b2_download_ttl}' in body.replace(" ", "")

    @pytest.mark.asyncio
    async def test_missing_name_is_rejected(self, storage, fake_b2):
        with pytest.raises(ValidationError):
            await storage.get_signed_download("")
        assert fake_b2.requests == []

    @pytest.mark.asyncio
    async def test_download_returns_bytes(self, storage, fake_b2):
        fake_b2.objects["lecture1.mp3"] = b"ID3-audio"

        signed = await storage.get_signed_download("lecture1.mp3")
        assert await storage.download(signed) == b"ID3-audio"

        fetch = fake_b2.requests[-1]
        assert fetch.headers["Authorization"] == signed.authorization_token

    @pytest.mark.asyncio
    async def test_download_of_missing_object(self, storage):
        signed = await storage.get_signed_download("missing.mp3")

        with pytest.raises(NotFoundError):
            await storage.download(signed)


def test_encode_file_name_matches_uri_component_encoding():
    assert encode_file_name("lecture1.mp3") == "lecture1.mp3"
    assert encode_file_name("a b/c?.mp3") == "a%20b%2Fc%3F.mp3"
    assert encode_file_name("notes_(v2)!.mp3") == "notes_(v2)!.mp3"

"""
LectureAI Backend - Storage Routes
====================================

POST /upload            multipart field `file` → {message, result}
GET  /signed-download   ?fileName=<name> → {downloadUrl, authorizationHeader}

The upload is staged to a temp file for the duration of the request only;
it is deleted whether or not the relay to storage succeeds.
"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, File, Query, UploadFile

from lectureai.dependencies import get_storage_service, get_upload_staging
from lectureai.schemas.api import ErrorResponse, SignedDownloadResponse, UploadResponse
from lectureai.services.storage_service import StorageService
from lectureai.services.upload_staging import UploadStaging

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Storage"])


@router.post(
    "/upload",
    response_model=UploadResponse,
    responses={
        400: {"description": "No file, empty file or file too large", "model": ErrorResponse},
        500: {"description": "Storage provider failure", "model": ErrorResponse},
    },
    summary="Relay an audio file to object storage",
)
async def upload(
    file: Optional[UploadFile] = File(None, description="Lecture recording"),
    staging: UploadStaging = Depends(get_upload_staging),
    storage: StorageService = Depends(get_storage_service),
) -> UploadResponse:
    try:
        async with staging.stage(file) as staged:
            result = await storage.upload_file(staged.path, staged.original_name)
    finally:
        if file is not None:
            await file.close()
    return UploadResponse(result=result)


@router.get(
    "/signed-download",
    response_model=SignedDownloadResponse,
    responses={
        400: {"description": "fileName missing", "model": ErrorResponse},
        500: {"description": "Storage provider failure", "model": ErrorResponse},
    },
    summary="Issue a time-limited download URL for one object",
)
async def signed_download(
    file_name: Optional[str] = Query(None, alias="fileName"),
    storage: StorageService = Depends(get_storage_service),
) -> SignedDownloadResponse:
    signed = await storage.get_signed_download(file_name)
    return SignedDownloadResponse(
        download_url=signed.download_url,
        authorization_header=signed.authorization_token,
    )

"""
LectureAI Backend - Route Dependencies
========================================

What:  FastAPI `Depends` providers for the services built by create_app().
How:   Each provider reads its service from `request.app.state`. Tests
       replace any of them through `app.dependency_overrides`.
"""

from fastapi import Request

from lectureai.config import Settings
from lectureai.services.analysis_service import AnalysisService
from lectureai.services.billing_service import BillingService
from lectureai.services.llm_base import LLMService
from lectureai.services.storage_service import StorageService
from lectureai.services.upload_staging import UploadStaging
from lectureai.services.webhook_service import WebhookService


def get_settings(request: Request) -> Settings:
    return request.app.state.settings


def get_storage_service(request: Request) -> StorageService:
    return request.app.state.storage_service


def get_upload_staging(request: Request) -> UploadStaging:
    return request.app.state.upload_staging


def get_billing_service(request: Request) -> BillingService:
    return request.app.state.billing_service


def get_webhook_service(request: Request) -> WebhookService:
    return request.app.state.webhook_service


def get_llm_service(request: Request) -> LLMService:
    return request.app.state.llm_service


def get_analysis_service(request: Request) -> AnalysisService:
    return request.app.state.analysis_service

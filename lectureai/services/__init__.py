"""
LectureAI Backend - Services Layer
====================================

One class per external collaborator, plus the orchestration on top:

    - StorageService:         Backblaze B2 session, upload relay, signed downloads
    - UploadStaging:          temp-file lifecycle for multipart uploads
    - BillingService:         Stripe Checkout and Billing Portal sessions
    - WebhookService:         Stripe event verification and dispatch
    - SubscriptionRepository: user_subscriptions upsert
    - LLMService (abstract) / GeminiService: transcription and summarization
    - EmailService:           Resend transactional email
    - AnalysisService:        sign → download → transcribe → summarize → email
"""

"""
LectureAI Backend - Middleware
================================

Request → [Request ID] → [Logging] → [GZip] → [CORS] → Route Handler

    RequestIDMiddleware runs first so every log line of the request,
    including the access line written by RequestLoggingMiddleware, carries
    the same correlation ID.
"""

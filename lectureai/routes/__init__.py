"""
LectureAI Backend - API Routes
================================

Route Inventory:
    - health.py:    GET  /                          (plain-text liveness)
                    GET  /health                    (dependency probe)
    - storage.py:   POST /upload                    (multipart relay to B2)
                    GET  /signed-download           (download URL + token)
    - billing.py:   POST /create-checkout-session
                    POST /create-portal-session
    - webhooks.py:  POST /stripe/webhook            (raw body, signed)
    - analysis.py:  POST /analyze                   (only when ENABLE_ANALYSIS)

Handlers stay thin: read the request, call one service, shape the response.
Failures are raised as LectureAIError subclasses and rendered by the
handlers registered in main.py.
"""

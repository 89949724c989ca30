"""
LectureAI Backend - Application Package
=========================================

What:  Upload relay, billing and lecture-analysis backend for the LectureAI
       frontend.
Who:   Imported by uvicorn (lectureai.main:app), Alembic and pytest.

Layers:
    ┌─────────────────────────────────────┐
    │   Routes (HTTP contract)            │  status codes, bodies, headers
    ├─────────────────────────────────────┤
    │   Services (provider clients)       │  B2, Stripe, Gemini, Resend
    ├─────────────────────────────────────┤
    │   Models & Schemas                  │  SQLAlchemy ORM + Pydantic
    ├─────────────────────────────────────┤
    │   Database                          │  async SQLAlchemy sessions
    └─────────────────────────────────────┘

    Services are constructed once by create_app() and reach the routes
    through FastAPI dependencies, so tests can swap any of them.
"""

__version__ = "1.0.0"

"""
LectureAI Backend - Transactional Email (Resend)
==================================================

What:  Sends the finished lecture summary to the student.
How:   One POST to the Resend HTTP API per message through the shared
       httpx.AsyncClient, Bearer-authenticated with RESEND_API_KEY.
Who:   AnalysisService, as the last pipeline stage.
"""

import html
import logging
from typing import Any, Dict

import httpx

from lectureai.config import Settings, settings as default_settings
from lectureai.exceptions import EmailServiceError, ValidationError

logger = logging.getLogger(__name__)


def render_summary_html(file_name: str, summary: str) -> str:
    """
    Wrap a plain-text summary in a minimal HTML email body.

    Blank lines separate paragraphs; single newlines become <br>. All text
    is escaped, so model output cannot inject markup.
    """
    paragraphs = [p.strip() for p in summary.strip().split("\n\n") if p.strip()]
    body = "\n".join(
        f"<p>{'<br>'.join(html.escape(line) for line in p.splitlines())}</p>"
        for p in paragraphs
    )
    return (
        '<div style="font-family: Arial, sans-serif; line-height: 1.5;">'
        f"<h2>Lecture summary: {html.escape(file_name)}</h2>\n"
        f"{body}\n"
        '<p style="color: #888; font-size: 12px;">Generated by LectureAI</p>'
        "</div>"
    )


class EmailService:
    def __init__(self, http: httpx.AsyncClient, settings: Settings = default_settings):
        self._http = http
        self._settings = settings

    async def send_html(self, to: str, subject: str, html_body: str) -> Dict[str, Any]:
        """
        Send one HTML email.

        Returns:
            Resend's response body ({"id": ...}).

        Raises:
            ValidationError: no recipient.
            EmailServiceError: Resend refused the message or was unreachable.
        """
        if not to:
            raise ValidationError(message="email is required", field="email")
        if not self._settings.resend_api_key:
            raise EmailServiceError(message="Email provider is not configured")

        payload = {
            "from": self._settings.email_from,
            "to": [to],
            "subject": subject,
            "html": html_body,
        }
        try:
            response = await self._http.post(
                self._settings.resend_api_url,
                headers={"Authorization": f"Bearer {self._settings.resend_api_key}"},
                json=payload,
            )
        except httpx.HTTPError as e:
            logger.error("Email request to %s failed: %s", to, str(e))
            raise EmailServiceError(
                message=f"Email delivery failed: {e}",
                context={"error_type": type(e).__name__},
            )

        if not response.is_success:
            try:
                detail = response.json().get("message") or response.text
            except ValueError:
                detail = response.text or response.reason_phrase
            logger.error("Email provider rejected message to %s: HTTP %d %s", to, response.status_code, detail)
            raise EmailServiceError(
                message=f"Email delivery failed: {detail}",
                context={"upstream_status": response.status_code},
            )

        result = response.json()
        logger.info("Email sent to %s (id=%s)", to, result.get("id"))
        return result

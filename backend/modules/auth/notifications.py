"""
Notification sinks for verification and welcome emails.

ResendNotificationSink delivers through the Resend HTTP API. When no API key
is configured, LoggingNotificationSink stands in and only logs that an email
would have been sent (never the code itself).
"""

import logging
from html import escape
from typing import Optional

import httpx

from shared.logging import redact_email

logger = logging.getLogger(__name__)

RESEND_API_URL = "https://api.resend.com/emails"
DEFAULT_CODE_TTL_MINUTES = 15


def render_verification_email(
    app_name: str,
    first_name: str,
    code: str,
    verification_url: str,
    ttl_minutes: int = DEFAULT_CODE_TTL_MINUTES,
) -> str:
    return f"""
<div style="font-family: 'Segoe UI', sans-serif; max-width: 480px; margin: 0 auto;">
  <h1 style="color: #6b21a8;">Welcome to {escape(app_name)}!</h1>
  <p>Hi {escape(first_name)}, use this code to verify your email address:</p>
  <p style="font-size: 32px; font-weight: bold; letter-spacing: 8px; color: #4c1d95;">{escape(code)}</p>
  <p>Or open <a href="{escape(verification_url)}">this link</a>.</p>
  <p style="font-size: 14px; color: #666;">The code expires in {ttl_minutes} minutes. If you didn't sign up, you can ignore this email.</p>
</div>
""".strip()


def render_welcome_email(app_name: str, first_name: str, frontend_url: str) -> str:
    return f"""
<div style="font-family: 'Segoe UI', sans-serif; max-width: 480px; margin: 0 auto;">
  <h1 style="color: #6b21a8;">You're all set, {escape(first_name)}!</h1>
  <p>Your email is verified. Start creating magical stories at
  <a href="{escape(frontend_url)}">{escape(app_name)}</a>.</p>
</div>
""".strip()


class LoggingNotificationSink:
    """Development sink: records that an email would be sent."""

    async def send_verification_email(
        self,
        email: str,
        code: str,
        verification_url: str,
        first_name: Optional[str] = None,
    ) -> bool:
        logger.info("Verification email (not sent, no provider configured) to %s", redact_email(email))
        return True

    async def send_welcome_email(self, email: str, first_name: Optional[str] = None) -> bool:
        logger.info("Welcome email (not sent, no provider configured) to %s", redact_email(email))
        return True


class ResendNotificationSink:
    """Sends transactional email through Resend."""

    def __init__(
        self,
        api_key: str,
        from_email: str,
        app_name: str = "StoryWonder",
        frontend_url: str = "http://localhost:3000",
        verification_ttl_minutes: int = DEFAULT_CODE_TTL_MINUTES,
        timeout: float = 10.0,
        client: Optional[httpx.AsyncClient] = None,
    ):
        self._api_key = api_key
        self._from_email = from_email
        self._app_name = app_name
        self._frontend_url = frontend_url
        self._verification_ttl_minutes = verification_ttl_minutes
        self._timeout = timeout
        self._client = client

    async def send_verification_email(
        self,
        email: str,
        code: str,
        verification_url: str,
        first_name: Optional[str] = None,
    ) -> bool:
        html = render_verification_email(
            self._app_name,
            first_name or "there",
            code,
            verification_url,
            ttl_minutes=self._verification_ttl_minutes,
        )
        return await self._send(email, f"Verify your {self._app_name} account", html)

    async def send_welcome_email(self, email: str, first_name: Optional[str] = None) -> bool:
        html = render_welcome_email(self._app_name, first_name or "there", self._frontend_url)
        return await self._send(email, f"Welcome to {self._app_name}!", html)

    async def _send(self, to_email: str, subject: str, html: str) -> bool:
        payload = {
            "from": self._from_email,
            "to": [to_email],
            "subject": subject,
            "html": html,
        }
        headers = {"Authorization": f"Bearer {self._api_key}"}

        try:
            if self._client is not None:
                response = await self._client.post(RESEND_API_URL, json=payload, headers=headers)
            else:
                async with httpx.AsyncClient(timeout=self._timeout) as client:
                    response = await client.post(RESEND_API_URL, json=payload, headers=headers)
        except httpx.HTTPError:
            logger.warning("Email delivery to %s failed", redact_email(to_email), exc_info=True)
            return False

        if response.status_code >= 400:
            logger.warning(
                "Resend rejected email to %s: HTTP %d",
                redact_email(to_email),
                response.status_code,
            )
            return False

        logger.info("Email '%s' sent to %s", subject, redact_email(to_email))
        return True

from __future__ import annotations

import html
import logging
from dataclasses import dataclass
from typing import Any

import resend

logger = logging.getLogger(__name__)


class EmailError(RuntimeError):
    pass


@dataclass(frozen=True)
class EmailSender:
    """
    Transactional e-mail through Resend.
    Without an API key every send is logged and skipped (development mode).
    """

    api_key: str
    from_email: str
    frontend_url: str = "http://localhost:3000"

    @property
    def enabled(self) -> bool:
        return bool(self.api_key)

    def send(self, *, to: str, subject: str, html_body: str, text_body: str | None = None) -> str | None:
        if not self.enabled:
            logger.info("Email disabled (no RESEND_API_KEY); skipped to=%s subject=%s", to, subject)
            return None

        payload: dict[str, Any] = {
            "from": self.from_email,
            "to": [to],
            "subject": subject,
            "html": html_body,
        }
        if text_body:
            payload["text"] = text_body

        resend.api_key = self.api_key
        try:
            response = resend.Emails.send(payload)
        except Exception as e:
            logger.error("Email send failed to=%s subject=%s: %s", to, subject, e)
            raise EmailError(f"Failed to send email: {e}") from e

        message_id = response.get("id") if isinstance(response, dict) else getattr(response, "id", None)
        if not message_id:
            raise EmailError(f"Unexpected response from email provider: {response!r}")
        logger.info("Email sent to=%s subject=%s id=%s", to, subject, message_id)
        return message_id

    def send_welcome(self, email: str, name: str) -> str | None:
        body = f"""
<h1>Welcome {html.escape(name)}!</h1>
<p>Thank you for joining Template Store. We're excited to have you on board.</p>
<p>Start exploring our collection of templates and find the perfect one for your needs.</p>
"""
        return self.send(to=email, subject="Welcome to Template Store", html_body=body)

    def send_email_verification(self, email: str, token: str) -> str | None:
        url = f"{self.frontend_url}/verify-email?token={token}"
        body = f"""
<h1>Email Verification</h1>
<p>Please verify your email address by clicking the link below:</p>
<p><a href="{html.escape(url)}">Verify Email</a></p>
<p>This link will expire in 24 hours.</p>
"""
        return self.send(to=email, subject="Email Verification", html_body=body)

    def send_order_confirmation(self, email: str, order_id: int, template_name: str) -> str | None:
        body = f"""
<h1>Order Confirmation</h1>
<p>Thank you for your purchase!</p>
<p><strong>Order ID:</strong> {order_id}</p>
<p><strong>Template:</strong> {html.escape(template_name)}</p>
<p>You can download your template from your dashboard.</p>
"""
        return self.send(to=email, subject="Order Confirmation", html_body=body)

    def send_account_suspended(self, email: str, reason: str | None) -> str | None:
        body = "<h1>Account Suspended</h1><p>Your Template Store account has been suspended.</p>"
        if reason:
            body += f"<p><strong>Reason:</strong> {html.escape(reason)}</p>"
        return self.send(to=email, subject="Your account has been suspended", html_body=body)


def email_sender_from_config(config: dict) -> EmailSender:
    return EmailSender(
        api_key=(config.get("RESEND_API_KEY") or "").strip(),
        from_email=(config.get("EMAIL_FROM") or "noreply@templatestore.com").strip(),
        frontend_url=(config.get("FRONTEND_URL") or "http://localhost:3000").rstrip("/"),
    )

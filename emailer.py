import logging
from dataclasses import dataclass
from typing import Any, List, Optional, Union

from config import HTTP_MAX_ATTEMPTS, HTTP_TIMEOUT_S, Settings
from models import EmailResult
from utils import request_with_retry, response_summary

logger = logging.getLogger(__name__)

RESEND_ENDPOINT = "https://api.resend.com/emails"


@dataclass
class ResendConfig:
    api_key: str
    sender: str
    reply_to: Optional[str] = None


def _load_resend(settings: Settings) -> Optional[ResendConfig]:
    if not settings.resend_api_key:
        return None
    address = settings.email_from_address or f"noreply@{settings.resend_domain or 'resend.dev'}"
    name = settings.email_from_name or settings.brand_name
    return ResendConfig(
        api_key=settings.resend_api_key,
        sender=f"{name} <{address}>",
        reply_to=settings.support_email,
    )


class ResendMailer:
    """Transactional email over the Resend HTTP API. Never raises on send."""

    def __init__(self, config: Optional[ResendConfig], session: Any = None, max_attempts: int = HTTP_MAX_ATTEMPTS):
        self.config = config
        self.max_attempts = max_attempts
        if session is None and config is not None:
            import requests

            session = requests.Session()
        self.session = session

    @classmethod
    def from_settings(cls, settings: Settings) -> "ResendMailer":
        return cls(_load_resend(settings))

    @property
    def configured(self) -> bool:
        return self.config is not None

    def send(self, to: Union[str, List[str]], subject: str, html: str) -> EmailResult:
        if self.config is None:
            logger.warning("RESEND_API_KEY not configured. Email to %s not sent.", to)
            return EmailResult(success=False, error="Email service not configured")

        body = {
            "from": self.config.sender,
            "to": to if isinstance(to, list) else [to],
            "subject": subject,
            "html": html,
        }
        if self.config.reply_to:
            body["reply_to"] = self.config.reply_to

        try:
            resp = request_with_retry(
                self.session,
                "POST",
                RESEND_ENDPOINT,
                max_attempts=self.max_attempts,
                json=body,
                headers={"Authorization": f"Bearer {self.config.api_key}", "Content-Type": "application/json"},
                timeout=(10, HTTP_TIMEOUT_S),
            )
        except Exception as exc:
            logger.error("Error sending email to %s: %s", to, exc)
            return EmailResult(success=False, error=str(exc))

        if resp.status_code not in (200, 201, 202):
            logger.error("Failed to send email to %s (%s)", to, response_summary(resp))
            return EmailResult(success=False, error=f"Resend returned {resp.status_code}")
        try:
            message_id = (resp.json() or {}).get("id")
        except ValueError:
            message_id = None
        logger.info("Email sent to %s: %s", to, message_id)
        return EmailResult(success=True, message_id=message_id)

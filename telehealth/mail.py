"""Mail transports.

The core only builds message content; delivery is delegated to an object with
send(to, subject, body) -> MailReceipt.
"""
import uuid
from dataclasses import dataclass
from typing import Optional, Protocol

import requests

from telehealth import config
from telehealth.circuit_breaker import CircuitBreaker, CircuitBreakerOpen
from telehealth.http_client import create_http_session
from telehealth.logging_config import get_logger

logger = get_logger(__name__)


@dataclass
class MailReceipt:
    """Transport answer: ok with a provider message id, or an error."""
    ok: bool
    message_id: Optional[str] = None
    error: Optional[str] = None


class MailTransport(Protocol):
    def send(self, to: str, subject: str, body: str) -> MailReceipt: ...


class HttpMailTransport:
    """
    Deliver through an HTTP mail API (JSON POST).

    Pattern: Pooled session with timeout, behind a circuit breaker.
    Failures are returned as MailReceipt(ok=False); nothing is raised.
    """

    def __init__(
        self,
        api_url: str = config.MAIL_API_URL,
        session: Optional[requests.Session] = None,
        breaker: Optional[CircuitBreaker] = None,
        from_email: str = config.FROM_EMAIL,
        from_name: str = config.FROM_NAME,
        timeout: float = config.DISPATCH_TIMEOUT_SECONDS
    ):
        self.api_url = api_url
        # Retries are owned by the dispatcher; the session makes one attempt.
        self.session = session or create_http_session(max_retries=0, timeout=timeout)
        self.breaker = breaker or CircuitBreaker(name="mail", failure_threshold=5, timeout=60)
        self.from_email = from_email
        self.from_name = from_name

    def send(self, to: str, subject: str, body: str) -> MailReceipt:
        payload = {
            "to": to,
            "from": {"email": self.from_email, "name": self.from_name},
            "subject": subject,
            "text": body,
        }
        try:
            response = self.breaker.call(self.session.post, self.api_url, json=payload)
        except CircuitBreakerOpen as e:
            return MailReceipt(ok=False, error=str(e))
        except requests.exceptions.RequestException as e:
            logger.warning("mail_api_error", error=str(e))
            return MailReceipt(ok=False, error=str(e))

        try:
            data = response.json()
        except ValueError:
            data = {}
        return MailReceipt(ok=True, message_id=data.get("message_id") or data.get("id"))


class ConsoleMailTransport:
    """Log messages instead of sending them (local development)."""

    def send(self, to: str, subject: str, body: str) -> MailReceipt:
        message_id = f"msg_{uuid.uuid4().hex[:12]}"
        logger.info("email_logged", to=to, subject=subject, body=body, message_id=message_id)
        return MailReceipt(ok=True, message_id=message_id)

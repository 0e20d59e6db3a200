"""
Resend email sender adapter - Implements EmailSender protocol over HTTP.

Posts messages to the Resend REST API with httpx. Any transport error,
non-2xx status or response without a message id is reported as
EmailDeliveryFailed so the domain can decide whether the failure is fatal.
"""

import logging

import httpx

from src.domain.exceptions import EmailDeliveryFailed

logger = logging.getLogger(__name__)


class ResendEmailSender:
    """
    Implements EmailSender protocol via the Resend API.

    Uses structural subtyping - no explicit inheritance from Protocol.
    """

    def __init__(
        self,
        api_key: str,
        sender: str,
        sender_name: str = "",
        reply_to: str = "",
        api_url: str = "https://api.resend.com/emails",
        timeout: float = 10.0,
        client: httpx.Client | None = None,
    ) -> None:
        self._api_key = api_key
        self._from = f"{sender_name} <{sender}>" if sender_name else sender
        self._reply_to = reply_to
        self._api_url = api_url
        self._client = client or httpx.Client(timeout=timeout)

    def send_email(self, to: str, subject: str, html: str, text: str) -> None:
        payload = {
            "from": self._from,
            "to": [to],
            "subject": subject,
            "html": html,
            "text": text,
        }
        if self._reply_to:
            payload["reply_to"] = self._reply_to

        try:
            response = self._client.post(
                self._api_url,
                json=payload,
                headers={"Authorization": f"Bearer {self._api_key}"},
            )
        except httpx.HTTPError as e:
            logger.error("Failed to send email to %s: %s", to, e)
            raise EmailDeliveryFailed("Failed to send email") from e

        try:
            result = response.json()
        except ValueError:
            result = {}
        if not isinstance(result, dict):
            result = {}

        if not response.is_success or not result.get("id"):
            logger.error("Failed to send email to %s: %s %s", to, response.status_code, result)
            raise EmailDeliveryFailed("Failed to send email")

        logger.info("Email sent successfully: %s", result["id"])

    def close(self) -> None:
        self._client.close()

# src/taskflow/notify/emailjs.py

from __future__ import annotations

"""
EmailJS REST client.

The relay sends mail from a template owned by the EmailJS account; we only
pass the template parameters. Credentials (service id, template id, public
key) come from the shared SystemConfig document, not from the environment.
"""

import logging
from typing import Any

import httpx

from ..core.errors import NotificationError
from ..core.models import SystemConfig

logger = logging.getLogger(__name__)

DEFAULT_API_URL = "https://api.emailjs.com/api/v1.0/email/send"


def build_payload(
    *,
    credentials: SystemConfig,
    recipient_email: str,
    recipient_name: str,
    subject: str,
    message: str,
    task_link: str,
    template_id: str | None = None,
) -> dict[str, Any]:
    return {
        "service_id": credentials.emailjs_service_id,
        "template_id": template_id or credentials.emailjs_template_id,
        "user_id": credentials.emailjs_public_key,
        "template_params": {
            "to_name": recipient_name,
            "to_email": recipient_email,
            "subject": subject,
            "message": message,
            "task_link": task_link,
        },
    }


class EmailJsNotifier:
    """
    Notifier backed by the EmailJS send endpoint.

    One httpx.Client per notifier (connection pooled). Pass `transport` to
    plug in httpx.MockTransport in tests.
    """

    def __init__(
        self,
        *,
        api_url: str = DEFAULT_API_URL,
        timeout_seconds: float = 15.0,
        transport: httpx.BaseTransport | None = None,
    ) -> None:
        self._api_url = api_url
        self._client = httpx.Client(
            timeout=httpx.Timeout(timeout_seconds, connect=10.0),
            transport=transport,
        )

    def send(
        self,
        *,
        credentials: SystemConfig,
        recipient_email: str,
        recipient_name: str,
        subject: str,
        message: str,
        task_link: str,
        template_id: str | None = None,
    ) -> None:
        if not credentials.has_emailjs_credentials:
            raise NotificationError("EmailJS credentials are incomplete (service id, template id, public key)")
        if not recipient_email:
            raise NotificationError(f"no e-mail address for {recipient_name or 'recipient'}")

        payload = build_payload(
            credentials=credentials,
            recipient_email=recipient_email,
            recipient_name=recipient_name,
            subject=subject,
            message=message,
            task_link=task_link,
            template_id=template_id,
        )
        try:
            resp = self._client.post(self._api_url, json=payload)
        except httpx.HTTPError as e:
            logger.warning("EmailJS request failed to=%s: %s", recipient_email, e)
            raise NotificationError(f"mail relay unreachable: {e}") from e

        if resp.status_code // 100 != 2:
            # EmailJS answers errors as plain text ("The service ID is invalid", ...).
            detail = (resp.text or "").strip()[:200]
            logger.warning("EmailJS rejected send to=%s status=%s: %s", recipient_email, resp.status_code, detail)
            raise NotificationError(f"mail relay returned {resp.status_code}: {detail}")

        logger.info("EmailJS sent to=%s template=%s", recipient_email, payload["template_id"])

    def close(self) -> None:
        self._client.close()

"""
HTTP client for the Resend email API.

Used by the weekly radar to deliver the HTML briefing.
"""

from __future__ import annotations

import logging

import httpx

logger = logging.getLogger(__name__)

RESEND_API_URL = "https://api.resend.com"
DEFAULT_TIMEOUT = 30.0


class EmailError(Exception):
    """Error delivering an email."""


class ResendEmailSender:
    """Sends HTML email through Resend's REST API."""

    def __init__(
        self,
        api_key: str,
        *,
        api_url: str = RESEND_API_URL,
        transport: httpx.BaseTransport | None = None,
    ):
        if not api_key:
            raise ValueError("Resend API key required")
        self._client = httpx.Client(
            base_url=api_url.rstrip("/"),
            headers={
                "Authorization": f"Bearer {api_key}",
                "Content-Type": "application/json",
            },
            timeout=DEFAULT_TIMEOUT,
            transport=transport,
        )

    def send(self, *, sender: str, to: str, subject: str, html: str) -> str:
        """POST /emails -> delivery id."""
        payload = {"from": sender, "to": [to], "subject": subject, "html": html}
        try:
            resp = self._client.post("/emails", json=payload)
            resp.raise_for_status()
            delivery_id = resp.json().get("id")
        except httpx.HTTPStatusError as e:
            raise EmailError(
                f"Email rejected: {e.response.status_code} {e.response.text[:200]}"
            ) from e
        except (httpx.HTTPError, ValueError) as e:
            raise EmailError(f"Email delivery failed: {e}") from e

        if not delivery_id:
            raise EmailError("Email API returned no delivery id")
        logger.info("Sent email %s to %s", delivery_id, to)
        return delivery_id

    def close(self) -> None:
        """Close the HTTP client."""
        self._client.close()

"""Invoice e-mail delivery client.

Posts a delivery request to the configured e-mail service (``INVOICE_EMAIL_URL``)
with aiohttp. Non-2xx responses and transport failures raise
``EmailDeliveryError`` so the invoice tool can report an upstream failure.
"""

import json
from typing import Any, Dict, List, Optional

import aiohttp

from core.errors import EmailDeliveryError
from core.observability.logging import get_logger


logger = get_logger(__name__)

DEFAULT_TIMEOUT_SECONDS = 30


class InvoiceEmailClient:
    """Sends invoice e-mails through an HTTP delivery service."""

    def __init__(self, endpoint: Optional[str], timeout_seconds: int = DEFAULT_TIMEOUT_SECONDS):
        self.endpoint = endpoint
        self.timeout_seconds = timeout_seconds

    async def send_invoice(
        self,
        invoice_id: str,
        recipient_email: str,
        subject: str,
        owner_id: str,
        message: Optional[str] = None,
        cc_emails: Optional[List[str]] = None,
        attach_pdf: bool = False,
    ) -> Dict[str, Any]:
        if not self.endpoint:
            raise EmailDeliveryError("Invoice e-mail delivery is not configured")

        payload = {
            "invoiceId": invoice_id,
            "recipientEmail": recipient_email,
            "ccEmails": cc_emails or [],
            "subject": subject,
            "message": message,
            "attachPdf": attach_pdf,
            "userId": owner_id,
        }

        timeout = aiohttp.ClientTimeout(total=self.timeout_seconds)
        try:
            async with aiohttp.ClientSession(timeout=timeout) as session:
                async with session.post(self.endpoint, json=payload) as response:
                    response_text = await response.text()

                    if response.status >= 400:
                        logger.error(
                            "Invoice e-mail delivery refused",
                            extra_fields={"status": response.status, "invoice_id": invoice_id},
                        )
                        raise EmailDeliveryError(
                            "Failed to send email",
                            response.status,
                            response_text,
                        )

                    try:
                        return json.loads(response_text) if response_text else {}
                    except ValueError:
                        return {"response": response_text}
        except aiohttp.ClientError as e:
            logger.error("Invoice e-mail delivery failed", extra_fields={"error": str(e)})
            raise EmailDeliveryError(f"Failed to reach e-mail service: {e}") from e

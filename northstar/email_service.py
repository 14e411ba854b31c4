"""
Email Service using Resend
Provides email functionality using MJML templates for responsive design
"""

import logging
from dataclasses import dataclass, field
from typing import Optional, Union

import resend
from mjml import mjml_to_html

from .config import BUSINESS_NAME, EMAIL_FROM_ADDRESS, RESEND_API_KEY
from .email_templates import monthly_invoice_template

logger = logging.getLogger(__name__)

resend.api_key = RESEND_API_KEY


class EmailServiceError(Exception):
    """Raised when an email cannot be compiled or delivered"""


def compile_mjml_to_html(mjml_content: str) -> str:
    """Compile MJML template to production-ready HTML"""
    try:
        result = mjml_to_html(mjml_content)
        # mjml_to_html returns a dict-like result with 'html' and 'errors'
        if isinstance(result, dict):
            if result.get("errors"):
                logger.warning(f"MJML compilation warnings: {result['errors']}")
            return result.get("html", "")
        html = getattr(result, "html", None)
        if html is not None:
            if getattr(result, "errors", None):
                logger.warning(f"MJML compilation warnings: {result.errors}")
            return html
        return str(result)
    except Exception as e:
        logger.error(f"MJML compilation error: {e}")
        raise EmailServiceError(f"Failed to compile MJML template: {str(e)}") from e


async def send_email(
    to: Union[str, list[str]],
    subject: str,
    mjml_content: str,
    from_address: Optional[str] = None,
) -> dict:
    """
    Send an email through Resend

    Args:
        to: Recipient email(s)
        subject: Email subject line
        mjml_content: MJML template content (will be compiled to HTML)
        from_address: Optional custom from address

    Returns:
        Send response dict
    """
    html_content = compile_mjml_to_html(mjml_content)

    recipients = [to] if isinstance(to, str) else to
    sender = from_address or EMAIL_FROM_ADDRESS

    if not RESEND_API_KEY:
        logger.error("❌ No email service configured - RESEND_API_KEY missing")
        raise EmailServiceError("Email service not configured")

    try:
        logger.info(f"📧 Sending email via Resend to: {to}")
        response = resend.Emails.send(
            {
                "from": sender,
                "to": recipients,
                "subject": subject,
                "html": html_content,
            }
        )
        logger.info(f"✅ Email sent successfully via Resend: {response}")
        return response
    except Exception as e:
        logger.error(f"❌ Email send error to {recipients}: {e}")
        raise EmailServiceError(f"Failed to send email: {str(e)}") from e


# ============================================
# Invoice notification
# ============================================


@dataclass
class InvoiceEmailPayload:
    """Everything the invoice email needs, detached from the ORM session"""

    to: str
    client_name: str
    invoice_id: int
    invoice_number: str
    billing_period: str
    line_items: list[dict] = field(default_factory=list)
    subtotal: float = 0.0
    tax: float = 0.0
    total: float = 0.0
    due_date: str = ""


async def send_invoice_email(payload: InvoiceEmailPayload) -> dict:
    """Send a consolidated monthly invoice to the client"""
    mjml_content = monthly_invoice_template(
        client_name=payload.client_name,
        invoice_number=payload.invoice_number,
        billing_period=payload.billing_period,
        line_items=payload.line_items,
        subtotal=payload.subtotal,
        tax=payload.tax,
        total=payload.total,
        due_date=payload.due_date,
        invoice_id=payload.invoice_id,
    )
    return await send_email(
        to=payload.to,
        subject=f"Invoice {payload.invoice_number} - {BUSINESS_NAME}",
        mjml_content=mjml_content,
    )

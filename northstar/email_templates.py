"""
MJML Email Templates
Client-facing email templates using MJML for responsive, cross-client compatibility
"""

from html import escape
from typing import Optional

from .config import BUSINESS_NAME, FRONTEND_URL

# Brand colors - Navy/Gold color scheme
THEME = {
    "primary": "#1e3a8a",
    "primary_dark": "#1e293b",
    "accent": "#d4a017",
    "background": "#f8fafc",
    "card_bg": "#ffffff",
    "text_primary": "#0f172a",
    "text_secondary": "#334155",
    "text_muted": "#64748b",
    "border": "#e2e8f0",
}


def get_base_template(
    title: str,
    preview_text: str,
    content_sections: str,
    cta_url: Optional[str] = None,
    cta_label: Optional[str] = None,
) -> str:
    """Base MJML template wrapper for all emails"""

    cta_section = ""
    if cta_url and cta_label:
        cta_section = f"""
        <mj-section padding="20px 0">
          <mj-column>
            <mj-button
              href="{cta_url}"
              background-color="{THEME['primary']}"
              color="#ffffff"
              font-weight="600"
              border-radius="8px"
              padding="18px 40px"
              font-size="16px">
              {cta_label}
            </mj-button>
          </mj-column>
        </mj-section>
        """

    return f"""
    <mjml>
      <mj-head>
        <mj-title>{title}</mj-title>
        <mj-preview>{preview_text}</mj-preview>
        <mj-attributes>
          <mj-all font-family="-apple-system, BlinkMacSystemFont, 'Segoe UI', 'Helvetica Neue', Arial, sans-serif" />
          <mj-text font-size="16px" line-height="1.6" color="{THEME['text_secondary']}" />
        </mj-attributes>
      </mj-head>
      <mj-body background-color="{THEME['background']}">
        <!-- Header -->
        <mj-section background-color="{THEME['primary']}" padding="28px 20px">
          <mj-column>
            <mj-text align="center" font-size="22px" font-weight="700" color="#ffffff" padding="0">
              {escape(BUSINESS_NAME)}
            </mj-text>
          </mj-column>
        </mj-section>

        <!-- Main Content -->
        <mj-section background-color="{THEME['card_bg']}" padding="40px 40px 48px 40px">
          <mj-column>
            <mj-text font-size="24px" font-weight="600" color="{THEME['text_primary']}" line-height="1.3" padding="0 0 16px 0">
              {title}
            </mj-text>

            {content_sections}
          </mj-column>
        </mj-section>

        {cta_section}

        <!-- Footer -->
        <mj-section padding="32px 20px">
          <mj-column>
            <mj-text align="center" font-size="13px" color="#94a3b8" padding="0">
              You're receiving this because you are a client of {escape(BUSINESS_NAME)}.
            </mj-text>
          </mj-column>
        </mj-section>
      </mj-body>
    </mjml>
    """


def _line_item_rows(line_items: list[dict]) -> str:
    rows = []
    for item in line_items:
        rows.append(
            f"""
            <tr style="border-bottom: 1px solid {THEME['border']};">
              <td style="padding: 8px 0;">{escape(str(item.get('description', '')))}</td>
              <td style="padding: 8px 0; text-align: right;">{float(item.get('quantity', 0)):g}</td>
              <td style="padding: 8px 0; text-align: right;">${float(item.get('unit_price', 0)):,.2f}</td>
              <td style="padding: 8px 0; text-align: right;">${float(item.get('amount', 0)):,.2f}</td>
            </tr>"""
        )
    return "".join(rows)


def monthly_invoice_template(
    client_name: str,
    invoice_number: str,
    billing_period: str,
    line_items: list[dict],
    subtotal: float,
    tax: float,
    total: float,
    due_date: str,
    invoice_id: Optional[int] = None,
) -> str:
    """
    Consolidated monthly invoice for a client

    Args:
        billing_period: Human readable month, e.g. "March 2025"
        line_items: Snapshot of the invoice's line items
    """
    content = f"""
    <mj-text>
      Hi {escape(client_name)},
    </mj-text>

    <mj-text>
      Your invoice for services provided in <strong>{billing_period}</strong> is ready.
    </mj-text>

    <mj-text align="center" font-size="32px" font-weight="700" color="{THEME['text_primary']}" padding="20px 0">
      ${total:,.2f}
    </mj-text>

    <mj-text font-size="14px" color="{THEME['text_muted']}">
      Invoice: {invoice_number}<br/>Due Date: {due_date}
    </mj-text>

    <mj-table font-size="14px" color="{THEME['text_secondary']}" padding="16px 0">
      <tr style="border-bottom: 2px solid {THEME['border']}; text-align: left;">
        <th style="padding: 8px 0;">Service</th>
        <th style="padding: 8px 0; text-align: right;">Qty</th>
        <th style="padding: 8px 0; text-align: right;">Rate</th>
        <th style="padding: 8px 0; text-align: right;">Amount</th>
      </tr>
      {_line_item_rows(line_items)}
      <tr>
        <td colspan="3" style="padding: 8px 0; text-align: right;">Subtotal</td>
        <td style="padding: 8px 0; text-align: right;">${subtotal:,.2f}</td>
      </tr>
      <tr>
        <td colspan="3" style="padding: 8px 0; text-align: right;">Tax</td>
        <td style="padding: 8px 0; text-align: right;">${tax:,.2f}</td>
      </tr>
      <tr>
        <td colspan="3" style="padding: 8px 0; text-align: right;"><strong>Total</strong></td>
        <td style="padding: 8px 0; text-align: right;"><strong>${total:,.2f}</strong></td>
      </tr>
    </mj-table>
    """

    invoice_url = f"{FRONTEND_URL}/billing/invoices/{invoice_id}" if invoice_id else None

    return get_base_template(
        title="Your Monthly Invoice",
        preview_text=f"Invoice {invoice_number} - {billing_period}",
        content_sections=content,
        cta_url=invoice_url,
        cta_label="View Invoice" if invoice_url else None,
    )


__all__ = [
    "THEME",
    "get_base_template",
    "monthly_invoice_template",
]

"""
HTML email bodies for invoice, tracking and review-request emails.

Table-based inline-styled markup so the emails render in Outlook and Gmail.
Every interpolated value that originates from shop or customer data is
HTML-escaped.
"""

from html import escape
from typing import Optional

_FOOTER_LINK = '<a href="{site}" style="color: #1e40af;">Xpose Management</a>'


def _logo_html(shop_name: str, logo_url: Optional[str]) -> str:
    if not logo_url:
        return ""
    return (
        f'<img src="{escape(logo_url)}" alt="{escape(shop_name)}" '
        f'style="max-height: 60px; margin-bottom: 20px;">'
    )


def _page(title: str, header_background: str, shop_name: str, logo_url: Optional[str],
          content: str, footer_text: str, site: str) -> str:
    """Wrap content in the shared header/footer shell."""
    return f"""<!DOCTYPE html>
<html>
<head>
  <meta charset="utf-8">
  <meta name="viewport" content="width=device-width, initial-scale=1">
  <title>{escape(title)}</title>
</head>
<body style="margin: 0; padding: 0; font-family: -apple-system, BlinkMacSystemFont, 'Segoe UI', Roboto, 'Helvetica Neue', Arial, sans-serif; background-color: #f5f5f5;">
  <table width="100%" cellpadding="0" cellspacing="0" style="background-color: #f5f5f5; padding: 40px 20px;">
    <tr>
      <td align="center">
        <table width="600" cellpadding="0" cellspacing="0" style="background-color: #ffffff; border-radius: 8px; overflow: hidden; box-shadow: 0 2px 8px rgba(0,0,0,0.1);">
          <tr>
            <td style="padding: 30px; text-align: center; background: {header_background};">
              {_logo_html(shop_name, logo_url)}
              <h1 style="margin: 0; color: #ffffff; font-size: 24px;">{escape(shop_name)}</h1>
            </td>
          </tr>
          <tr>
            <td style="padding: 40px 30px;">
{content}
            </td>
          </tr>
          <tr>
            <td style="padding: 20px 30px; background-color: #f8fafc; border-top: 1px solid #e5e5e5;">
              <p style="margin: 0; font-size: 12px; color: #999; text-align: center;">
                {escape(footer_text)} {escape(shop_name)} via
                {_FOOTER_LINK.format(site=site)}
              </p>
            </td>
          </tr>
        </table>
      </td>
    </tr>
  </table>
</body>
</html>"""


def _button(url: str, label: str) -> str:
    return f"""              <table width="100%" cellpadding="0" cellspacing="0">
                <tr>
                  <td align="center">
                    <a href="{escape(url)}" style="display: inline-block; padding: 16px 40px; background-color: #1e40af; color: #ffffff; text-decoration: none; border-radius: 8px; font-size: 16px; font-weight: 600;">
                      {label}
                    </a>
                  </td>
                </tr>
              </table>
              <p style="margin: 30px 0 0; font-size: 14px; color: #666; text-align: center;">
                This link will expire in 30 days.
              </p>"""


def render_invoice_email(
    shop_name: str,
    customer_name: str,
    number: str,
    total: str,
    url: str,
    logo_url: Optional[str] = None,
    paid: bool = False,
) -> str:
    intro = (
        "Your invoice has been paid - thank you for your business!"
        if paid
        else "Thank you for your business! Your invoice is ready for viewing."
    )
    amount_label = "Amount Paid" if paid else "Amount Due"
    amount_color = "#10b981" if paid else "#1e40af"

    content = f"""              <p style="margin: 0 0 20px; font-size: 16px; color: #333;">Hi {escape(customer_name)},</p>
              <p style="margin: 0 0 30px; font-size: 16px; color: #333;">{intro}</p>
              <table width="100%" cellpadding="0" cellspacing="0" style="background-color: #f8fafc; border-radius: 8px; margin-bottom: 30px;">
                <tr>
                  <td style="padding: 25px;">
                    <table width="100%">
                      <tr>
                        <td style="font-size: 14px; color: #666;">Invoice Number</td>
                        <td align="right" style="font-size: 16px; font-weight: 600; color: #333;">#{escape(number)}</td>
                      </tr>
                      <tr>
                        <td colspan="2" style="padding: 10px 0;"><hr style="border: none; border-top: 1px solid #e5e5e5; margin: 0;"></td>
                      </tr>
                      <tr>
                        <td style="font-size: 14px; color: #666;">{amount_label}</td>
                        <td align="right" style="font-size: 24px; font-weight: 700; color: {amount_color};">${escape(total)}</td>
                      </tr>
                    </table>
                  </td>
                </tr>
              </table>
{_button(url, "View Invoice")}"""

    return _page(
        title=f"Invoice from {shop_name}",
        header_background="#1e40af",
        shop_name=shop_name,
        logo_url=logo_url,
        content=content,
        footer_text="This invoice was sent from",
        site="https://xposemanagement.com",
    )


def render_tracking_email(
    shop_name: str,
    customer_name: str,
    vehicle: str,
    status_text: str,
    status_label: str,
    url: str,
    logo_url: Optional[str] = None,
) -> str:
    gradient = "linear-gradient(135deg, #667eea 0%, #764ba2 100%)"
    content = f"""              <p style="margin: 0 0 20px; font-size: 16px; color: #333;">Hi {escape(customer_name)},</p>
              <p style="margin: 0 0 30px; font-size: 16px; color: #333;">
                Your {escape(vehicle)} {escape(status_text)}. You can track the status of your vehicle in real-time using the link below.
              </p>
              <table width="100%" cellpadding="0" cellspacing="0" style="background: {gradient}; border-radius: 8px; margin-bottom: 30px;">
                <tr>
                  <td style="padding: 25px; color: white;">
                    <div style="font-size: 14px; opacity: 0.9; margin-bottom: 8px;">Your Vehicle</div>
                    <div style="font-size: 20px; font-weight: 700; margin-bottom: 12px;">{escape(vehicle)}</div>
                    <div style="font-size: 14px; opacity: 0.9;">Status: {escape(status_label)}</div>
                  </td>
                </tr>
              </table>
{_button(url, "Track Your Vehicle")}"""

    return _page(
        title=f"Track Your Vehicle - {shop_name}",
        header_background=gradient,
        shop_name=shop_name,
        logo_url=logo_url,
        content=content,
        footer_text="This tracking link was sent from",
        site="https://xpose.management",
    )


def render_review_email(shop_name: str, customer_name: Optional[str], review_url: str) -> str:
    name = escape(customer_name or "there")
    shop = escape(shop_name)
    return f"""<!DOCTYPE html>
<html>
<head><meta charset="utf-8"></head>
<body style="font-family: Arial, sans-serif; line-height: 1.6; color: #333;">
  <div style="max-width: 600px; margin: 0 auto; padding: 20px;">
    <div style="background: linear-gradient(135deg, #667eea 0%, #764ba2 100%); color: white; padding: 30px; text-align: center; border-radius: 8px 8px 0 0;">
      <h1 style="margin: 0; font-size: 1.75rem;">Share Your Experience</h1>
    </div>
    <div style="background: #f9fafb; padding: 30px; border-radius: 0 0 8px 8px;">
      <p>Hi {name}!</p>
      <p>Thank you for choosing <strong>{shop}</strong>! We hope you had a great experience with us.</p>
      <p>We'd love to hear your feedback. Your review helps us improve and helps others find us!</p>
      <div style="text-align: center; margin: 30px 0;">
        <a href="{escape(review_url)}" style="display: inline-block; background: #10b981; color: white; padding: 15px 30px; text-decoration: none; border-radius: 6px; font-weight: bold;">Leave a Google Review</a>
      </div>
      <p style="color: #6b7280; font-size: 0.875rem;">Thank you for your time!</p>
      <p style="color: #6b7280; font-size: 0.875rem;">The team at {shop}</p>
    </div>
  </div>
</body>
</html>"""

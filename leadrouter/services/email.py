"""
Transactional email service - SendGrid-based lead lifecycle emails.

Provider side: new lead assigned, payment failed on acceptance.
Customer side: proposal received, lead declined.
"""
import asyncio
import html as html_lib
import logging
from typing import Optional

from leadrouter.config import get_settings
from leadrouter.utils.logging import mask_email

logger = logging.getLogger(__name__)


async def _send_transactional(
    to_email: str,
    subject: str,
    html_content: str,
    text_content: str,
) -> dict:
    """
    Send a transactional email via SendGrid.

    Returns: {"message_id": str|None, "status": str, "error": str|None}
    """
    settings = get_settings()

    if not settings.sendgrid_api_key:
        logger.error("No SendGrid API key configured for transactional email")
        return {"message_id": None, "status": "error", "error": "SendGrid not configured"}

    try:
        from sendgrid import SendGridAPIClient
        from sendgrid.helpers.mail import Mail, Email, To, Content

        message = Mail(
            from_email=Email(settings.from_email, settings.from_name),
            to_emails=To(to_email),
            subject=subject,
        )
        message.content = [
            Content("text/plain", text_content),
            Content("text/html", html_content),
        ]

        sg = SendGridAPIClient(api_key=settings.sendgrid_api_key)
        # Offload synchronous SendGrid SDK call to thread pool
        loop = asyncio.get_running_loop()
        response = await loop.run_in_executor(None, lambda: sg.send(message))
        message_id = response.headers.get("X-Message-Id", "")

        logger.info(
            "Transactional email sent: to=%s subject=%s",
            mask_email(to_email), subject[:40],
        )
        return {"message_id": message_id, "status": "sent", "error": None}

    except Exception as e:
        logger.error(
            "Transactional email failed: to=%s error=%s",
            mask_email(to_email), str(e),
        )
        return {"message_id": None, "status": "error", "error": str(e)}


def _wrap(title: str, body_html: str, cta_url: Optional[str] = None, cta_label: str = "") -> str:
    cta = ""
    if cta_url:
        cta = f"""
      <div style="text-align: center; margin: 32px 0;">
        <a href="{cta_url}" style="background: #2563eb; color: white; padding: 12px 32px; border-radius: 10px; text-decoration: none; font-weight: 600; font-size: 15px; display: inline-block;">
          {cta_label}
        </a>
      </div>"""
    return f"""
    <div style="font-family: -apple-system, BlinkMacSystemFont, 'Segoe UI', Roboto, sans-serif; max-width: 480px; margin: 0 auto; padding: 40px 20px;">
      <h2 style="margin: 0 0 24px; color: #111; font-size: 20px;">{title}</h2>
      {body_html}{cta}
      <hr style="border: none; border-top: 1px solid #eee; margin: 32px 0;" />
      <p style="color: #bbb; font-size: 11px; text-align: center;">LeadRouter</p>
    </div>
    """


def _p(text: str) -> str:
    return f'<p style="color: #555; font-size: 15px; line-height: 1.6;">{html_lib.escape(text)}</p>'


async def send_new_lead(
    email: str,
    provider_name: str,
    project_title: str,
    zip_code: Optional[str],
    is_fallback: bool = False,
) -> dict:
    """Tell a provider a lead was assigned to them."""
    url = f"{get_settings().frontend_url}/provider/leads"
    intro = (
        "The original provider did not respond in time, so this request is now open to you."
        if is_fallback
        else "A customer near you is looking for help."
    )
    where = f" in {zip_code}" if zip_code else ""
    html = _wrap(
        "New lead available",
        _p(f"Hi {provider_name},") + _p(intro) + _p(f"Project: {project_title}{where}"),
        url, "View lead",
    )
    text = (
        f"Hi {provider_name},\n\n{intro}\n\nProject: {project_title}{where}\n\n"
        f"View the lead: {url}\n\n-- LeadRouter"
    )
    return await _send_transactional(email, f"New lead: {project_title[:60]}", html, text)


async def send_proposal_received(
    email: str,
    customer_name: str,
    provider_name: str,
    project_title: str,
    price: str,
) -> dict:
    """Tell the customer a provider accepted their request and sent a proposal."""
    url = f"{get_settings().frontend_url}/service-requests"
    html = _wrap(
        "You have a new proposal",
        _p(f"Hi {customer_name},")
        + _p(f"{provider_name} sent a proposal for \"{project_title}\".")
        + _p(f"Quoted price: ${price}"),
        url, "Review proposal",
    )
    text = (
        f"Hi {customer_name},\n\n{provider_name} sent a proposal for \"{project_title}\".\n"
        f"Quoted price: ${price}\n\nReview it here: {url}\n\n-- LeadRouter"
    )
    return await _send_transactional(email, "New proposal for your service request", html, text)


async def send_lead_declined(
    email: str,
    customer_name: str,
    provider_name: str,
    project_title: str,
    reason: str,
) -> dict:
    """Tell the customer a provider passed on their request and why."""
    html = _wrap(
        "Update on your service request",
        _p(f"Hi {customer_name},")
        + _p(f"{provider_name} is unable to take on \"{project_title}\".")
        + _p(f"Reason: {reason}")
        + _p("We are reaching out to other providers for you."),
    )
    text = (
        f"Hi {customer_name},\n\n{provider_name} is unable to take on \"{project_title}\".\n"
        f"Reason: {reason}\n\nWe are reaching out to other providers for you.\n\n-- LeadRouter"
    )
    return await _send_transactional(email, "Update on your service request", html, text)


async def send_lead_payment_failed(
    email: str,
    provider_name: str,
    project_title: str,
) -> dict:
    """Tell a provider their acceptance charge did not go through."""
    url = f"{get_settings().frontend_url}/provider/leads"
    html = _wrap(
        "Payment failed",
        _p(f"Hi {provider_name},")
        + _p(f"We could not process the payment to accept \"{project_title}\".")
        + _p("The lead is still available. Update your payment method and try again."),
        url, "Retry",
    )
    text = (
        f"Hi {provider_name},\n\nWe could not process the payment to accept \"{project_title}\".\n"
        f"The lead is still available. Update your payment method and try again: {url}\n\n-- LeadRouter"
    )
    return await _send_transactional(email, "Lead payment failed", html, text)

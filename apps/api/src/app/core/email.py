"""
Email Service using Resend

Handles sending emails for the admission verification flow.
"""

import asyncio
import logging
from html import escape
from typing import Any

import resend

from app.core.config import settings

logger = logging.getLogger(__name__)

# Initialize Resend with API key
resend.api_key = settings.resend_api_key

_BASE_STYLE = """
            body { font-family: system-ui, -apple-system, sans-serif; line-height: 1.6; color: #1f2937; }
            .container { max-width: 600px; margin: 0 auto; padding: 40px 20px; }
            .header { color: #1a365d; margin-bottom: 24px; }
            .footer { margin-top: 40px; padding-top: 20px; border-top: 1px solid #e5e7eb; color: #6b7280; font-size: 14px; }
"""


class EmailDeliveryError(Exception):
    """Raised when the email provider refuses or fails a send."""


async def send_email(
    to_email: str,
    subject: str,
    html_content: str,
) -> str | None:
    """
    Send an email using Resend.

    Args:
        to_email: Recipient email address
        subject: Email subject line
        html_content: HTML content of the email

    Returns:
        The provider message id, or None when sending is disabled

    Raises:
        EmailDeliveryError: If the provider call fails
    """
    if not resend.api_key:
        logger.warning("RESEND_API_KEY not set - logging email instead of sending")
        logger.info(f"EMAIL TO: {to_email} | SUBJECT: {subject}")
        return None

    params: resend.Emails.SendParams = {
        "from": settings.email_from,
        "to": [to_email],
        "subject": subject,
        "html": html_content,
    }

    try:
        # Run sync Resend call in thread pool to avoid blocking event loop
        email = await asyncio.to_thread(resend.Emails.send, params)
    except Exception as e:
        logger.error(f"Failed to send email to {to_email}: {e}")
        raise EmailDeliveryError(str(e)) from e

    logger.info(f"Email sent successfully to {to_email}, id: {email['id']}")
    return email["id"]


async def send_application_approved(
    to_email: str,
    student_name: str,
    application_id: str,
    course: str | None,
    remarks: str | None,
) -> str | None:
    """Send notification that an application was approved."""
    # Escape user inputs to prevent XSS
    safe_student_name = escape(student_name)
    safe_application_id = escape(application_id)
    safe_course = escape(course or "your selected course")
    safe_remarks = escape(remarks or "")

    dashboard_url = f"{settings.frontend_url}/applications"
    remarks_block = (
        f'<div class="remarks-box"><p><strong>Remarks:</strong></p><p>{safe_remarks}</p></div>'
        if safe_remarks
        else ""
    )
    html_content = f"""
    <!DOCTYPE html>
    <html>
    <head>
        <style>
{_BASE_STYLE}
            .success-banner {{ background-color: #d1fae5; border: 1px solid #22c55e; padding: 16px; border-radius: 8px; margin: 16px 0; text-align: center; }}
            .remarks-box {{ background-color: #f9fafb; border: 1px solid #e5e7eb; padding: 16px; border-radius: 8px; margin: 16px 0; }}
            .button {{ display: inline-block; background-color: #1a365d; color: white; padding: 14px 28px; text-decoration: none; border-radius: 8px; margin: 24px 0; }}
        </style>
    </head>
    <body>
        <div class="container">
            <h1 class="header">Application Approved</h1>

            <div class="success-banner">
                <strong>Congratulations!</strong> Your application <strong>{safe_application_id}</strong> for <strong>{safe_course}</strong> has been approved.
            </div>

            <p>Dear {safe_student_name},</p>

            <p>Our admissions team has verified your documents. You can now continue with fee payment from your dashboard.</p>

            {remarks_block}

            <a href="{dashboard_url}" class="button">Open Dashboard</a>

            <div class="footer">
                <p>Admissions Office</p>
            </div>
        </div>
    </body>
    </html>
    """

    return await send_email(
        to_email=to_email,
        subject=f"Application {safe_application_id} approved",
        html_content=html_content,
    )


async def send_application_rejected(
    to_email: str,
    student_name: str,
    application_id: str,
    rejection_reason: str,
    rejection_message: str,
    rejection_details: list[dict[str, Any]] | None = None,
) -> str | None:
    """Send notification that an application was rejected, with the reason to fix."""
    # Escape user inputs to prevent XSS
    safe_student_name = escape(student_name)
    safe_application_id = escape(application_id)
    safe_reason = escape(rejection_reason)
    safe_message = escape(rejection_message)

    detail_items = "".join(
        f"<li><strong>{escape(str(d.get('section', '')))}:</strong> "
        f"{escape(str(d.get('message', '')))}"
        f"{' (resubmission required)' if d.get('requiresResubmission') else ''}</li>"
        for d in (rejection_details or [])
    )
    details_block = f"<ul>{detail_items}</ul>" if detail_items else ""

    resubmit_url = f"{settings.frontend_url}/applications/{safe_application_id}"
    html_content = f"""
    <!DOCTYPE html>
    <html>
    <head>
        <style>
{_BASE_STYLE}
            .reason-box {{ background-color: #fef2f2; border: 1px solid #fecaca; padding: 16px; border-radius: 8px; margin: 16px 0; }}
            .reason-box p {{ margin: 0; }}
        </style>
    </head>
    <body>
        <div class="container">
            <h1 class="header">Update on Your Application</h1>

            <p>Hello {safe_student_name},</p>

            <p>After reviewing application <strong>{safe_application_id}</strong>, we need a few corrections before it can be approved.</p>

            <div class="reason-box">
                <p><strong>{safe_reason}</strong></p>
                <p>{safe_message}</p>
                {details_block}
            </div>

            <p>Please update the application and resubmit it: <a href="{resubmit_url}">{resubmit_url}</a></p>

            <div class="footer">
                <p>Best regards,</p>
                <p>Admissions Office</p>
            </div>
        </div>
    </body>
    </html>
    """

    return await send_email(
        to_email=to_email,
        subject=f"Action required on application {safe_application_id}",
        html_content=html_content,
    )

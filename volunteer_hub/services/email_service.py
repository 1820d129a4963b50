"""
Email service using SendGrid for volunteer notifications.

Every sender returns a bool and never raises: an email that fails to go out
must not undo a signup that already committed.
"""

import os
import html
import asyncio
import logging
from typing import Optional, Dict
from sqlalchemy.ext.asyncio import AsyncSession
from sendgrid import SendGridAPIClient
from sendgrid.helpers.mail import Mail, Email, To, Content
from dotenv import load_dotenv

from volunteer_hub.services import settings_service
from volunteer_hub.utils.time_display import format_event_date, format_time_range

# Load environment variables
load_dotenv()

logger = logging.getLogger(__name__)

# SendGrid Configuration
SENDGRID_API_KEY = os.getenv("SENDGRID_API_KEY")
SENDGRID_FROM_EMAIL = os.getenv("SENDGRID_FROM_EMAIL", "notifications@volunteerhub.local")
ENABLE_EMAIL = settings_service.get_bool_env("ENABLE_EMAIL", default=True)

SITE_URL = os.getenv("SITE_URL", "http://localhost:5173").rstrip("/")
EVENT_NAME = os.getenv("EVENT_NAME", "Berkeley Omnium 2026")
EVENT_SITE_URL = os.getenv("EVENT_SITE_URL", "https://berkeleybikeclub.org/2026-berkeley-omnium")

LINK_EXPIRY_NOTE = "This link expires in 60 minutes and can only be used once."


async def is_enabled(session: Optional[AsyncSession] = None) -> bool:
    """
    Check if email is enabled, checking database first.

    Args:
        session: Optional database session for checking database settings

    Returns:
        True if email is enabled, False otherwise
    """
    try:
        return await settings_service.get_bool_setting(
            session, "enable_email", env_var="ENABLE_EMAIL", default=True
        )
    except Exception as e:
        logger.warning(f"Error getting ENABLE_EMAIL from settings, using default: {e}")
        return ENABLE_EMAIL


async def send_email(
    to: str, subject: str, html_body: str, session: Optional[AsyncSession] = None
) -> bool:
    """
    Send an HTML email via SendGrid.

    Args:
        to: Recipient address
        subject: Subject line
        html_body: HTML content
        session: Optional database session for checking database settings

    Returns:
        bool: True if sent (or skipped because email is off), False on failure
    """
    if not await is_enabled(session):
        logger.info(f"Email sending is disabled. Skipped '{subject}' to {to}")
        return True

    if not SENDGRID_API_KEY:
        logger.warning("SENDGRID_API_KEY not configured. Email notification skipped.")
        return True

    try:
        message = Mail(
            from_email=Email(SENDGRID_FROM_EMAIL, "Volunteer Manager"),
            to_emails=To(to),
            subject=subject,
            html_content=Content("text/html", html_body),
        )
        sg = SendGridAPIClient(SENDGRID_API_KEY)
        # The SendGrid client is synchronous
        response = await asyncio.to_thread(sg.send, message)

        if 200 <= response.status_code < 300:
            logger.info(f"Email '{subject}' sent to {to}")
            return True
        logger.error(f"SendGrid returned status {response.status_code}: {response.body}")
        return False

    except Exception as e:
        logger.error(f"Failed to send email '{subject}' to {to}: {str(e)}")
        return False


def _role_details_html(role: Dict) -> str:
    role_date = format_event_date(role.get("event_date"), "long")
    role_time = format_time_range(role.get("start_time"), role.get("end_time"))
    location = role.get("location")
    items = [
        f"<li><strong>{html.escape(role.get('name') or '')}</strong></li>",
        f"<li>Date: {role_date}</li>",
        f"<li>Time: {role_time}</li>",
    ]
    if location:
        items.append(f"<li>Location: {html.escape(location)}</li>")
    return "<ul>" + "".join(items) + "</ul>"


def _volunteer_name(first_name: Optional[str], last_name: Optional[str]) -> str:
    return " ".join(p for p in (first_name, last_name) if p).strip() or "the volunteer"


def _login_button(action_link: str) -> str:
    href = html.escape(action_link, quote=True)
    return (
        f'<p style="text-align:center;"><a href="{href}" '
        'style="display:inline-block;background:#1a56b0;color:#ffffff;text-decoration:none;'
        'font-size:16px;font-weight:600;padding:12px 32px;">Log In to Volunteer Hub</a></p>'
        f'<p style="font-size:13px;color:#6b7280;text-align:center;">{LINK_EXPIRY_NOTE}</p>'
    )


def _wrap(title: str, body: str, footer: str) -> str:
    return (
        "<!DOCTYPE html><html lang=\"en\"><head><meta charset=\"UTF-8\" />"
        f"<title>{html.escape(title)}</title></head>"
        '<body style="margin:0;padding:24px;background-color:#f4f5f7;font-family:Arial,Helvetica,sans-serif;">'
        '<div style="max-width:520px;margin:0 auto;background:#ffffff;border:1px solid #e5e7eb;">'
        f'<div style="background:#1a56b0;padding:24px 32px;text-align:center;color:#ffffff;'
        f'font-size:18px;font-weight:700;">{html.escape(EVENT_NAME)}<br/>'
        '<span style="color:#b4d4f0;font-size:13px;font-weight:400;">Volunteer Hub</span></div>'
        f'<div style="padding:32px;font-size:15px;color:#4b5563;line-height:1.6;">{body}</div>'
        f'<div style="padding:20px 32px 24px;font-size:13px;color:#6b7280;border-top:1px solid #e5e7eb;">{footer}</div>'
        "</div></body></html>"
    )


def build_role_confirmation(first_name: Optional[str], role: Dict) -> Dict[str, str]:
    """Subject and HTML for 'you're signed up for this role'."""
    role_url = f"{SITE_URL}/signup/{role.get('id')}"
    body = (
        "<h2>Thanks for volunteering!</h2>"
        f"<p>Hi {html.escape(first_name or 'there')},</p>"
        "<p>You're signed up for:</p>"
        f"{_role_details_html(role)}"
        f'<p><a href="{html.escape(role_url, quote=True)}">View role details</a></p>'
        "<p>We'll send reminders before the event. See you there!</p>"
    )
    return {
        "subject": f"You're signed up: {role.get('name')} – {EVENT_NAME}",
        "html": _wrap("Signup confirmation", body, f"– {html.escape(EVENT_NAME)} Volunteer Team"),
    }


def build_welcome(action_link: str, prompt_waiver_and_emergency_contact: bool = False) -> Dict[str, str]:
    """Subject and HTML for the first email a new volunteer gets, with a one-click sign-in link."""
    site_href = html.escape(EVENT_SITE_URL, quote=True)
    body = (
        '<p style="font-size:18px;font-weight:700;color:#111827;">Welcome to the Volunteer Hub</p>'
        f"<p>Thanks for signing up to help at {html.escape(EVENT_NAME)}. "
        "Your support as a volunteer is what makes the event possible!</p>"
        f'<p>To learn more about the event, check out the <a href="{site_href}">event site here</a>.</p>'
    )
    if prompt_waiver_and_emergency_contact:
        body += (
            "<p>When you sign in, you'll be asked to sign the liability waiver and provide "
            "emergency contact information if you haven't already.</p>"
        )
    body += (
        '<p style="font-size:18px;font-weight:700;color:#111827;">Your login link</p>'
        "<p>Click the button below to sign in. No password needed.</p>"
        f"{_login_button(action_link)}"
    )
    return {
        "subject": f"Welcome to {EVENT_NAME}",
        "html": _wrap(
            "Welcome",
            body,
            "If you didn't sign up for the Volunteer Hub, you can safely ignore this email.",
        ),
    }


def build_magic_link_login(action_link: str) -> Dict[str, str]:
    """Subject and HTML for a requested sign-in link."""
    body = (
        '<p style="font-size:18px;font-weight:700;color:#111827;">Your login link</p>'
        "<p>We received a request to log in. Click the button below to sign in. No password needed.</p>"
        f"{_login_button(action_link)}"
    )
    return {
        "subject": f"Log in to {EVENT_NAME} Volunteer Hub",
        "html": _wrap(
            "Your login link",
            body,
            "If you didn't request this link, you can safely ignore this email. "
            "Someone may have entered your email address by mistake.",
        ),
    }


def build_parent_guardian_confirmation(
    parent_guardian_name: Optional[str],
    volunteer_first_name: Optional[str],
    volunteer_last_name: Optional[str],
    role: Dict,
) -> Dict[str, str]:
    """Confirmation to a parent/guardian who signed the waiver during a role signup."""
    volunteer = html.escape(_volunteer_name(volunteer_first_name, volunteer_last_name))
    role_url = f"{SITE_URL}/signup/{role.get('id')}"
    body = (
        "<h2>Parent/Guardian confirmation</h2>"
        f"<p>Hi {html.escape(parent_guardian_name or 'there')},</p>"
        f"<p>You signed the liability waiver on behalf of <strong>{volunteer}</strong>, "
        f"who is now signed up to volunteer at {html.escape(EVENT_NAME)}.</p>"
        "<p><strong>Role details:</strong></p>"
        f"{_role_details_html(role)}"
        f'<p><a href="{html.escape(role_url, quote=True)}">View role details</a></p>'
        f"<p>{volunteer} will also receive a confirmation and welcome email at the address they provided.</p>"
    )
    return {
        "subject": f"Confirmation: You signed the waiver for {_volunteer_name(volunteer_first_name, volunteer_last_name)} – {EVENT_NAME}",
        "html": _wrap("Parent/Guardian confirmation", body, f"– {html.escape(EVENT_NAME)} Volunteer Team"),
    }


def build_parent_guardian_waiver_signed(
    parent_guardian_name: Optional[str],
    volunteer_first_name: Optional[str],
    volunteer_last_name: Optional[str],
) -> Dict[str, str]:
    """Confirmation to a parent/guardian who signed the waiver outside a role signup."""
    name = _volunteer_name(volunteer_first_name, volunteer_last_name)
    volunteer = html.escape(name)
    my_signups_url = f"{SITE_URL}/my-signups"
    body = (
        "<h2>Parent/Guardian confirmation</h2>"
        f"<p>Hi {html.escape(parent_guardian_name or 'there')},</p>"
        f"<p>You signed the liability waiver on behalf of <strong>{volunteer}</strong>. "
        f"They are all set to volunteer at {html.escape(EVENT_NAME)}.</p>"
        f"<p>When {volunteer} signs in to the volunteer hub, they can view their signups and role details.</p>"
        f'<p><a href="{html.escape(my_signups_url, quote=True)}">Volunteer hub – My Signups</a></p>'
    )
    return {
        "subject": f"Confirmation: You signed the waiver for {name} – {EVENT_NAME}",
        "html": _wrap("Parent/Guardian confirmation", body, f"– {html.escape(EVENT_NAME)} Volunteer Team"),
    }

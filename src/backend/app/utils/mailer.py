import smtplib
from datetime import datetime
from email.message import EmailMessage
from typing import Any, Dict, Iterable

from app.config import settings
from app.utils.logger import get_logger

logger = get_logger(__name__)


def _format_value(value: Any) -> str:
    if value is None or value == "":
        return "N/A"
    if isinstance(value, datetime):
        return value.isoformat()
    return str(value)


def _lead_lines(lead_data: Dict[str, Any]) -> list[str]:
    lines = []
    for label, key in [
        ("Name", "contact_name"),
        ("Email", "contact_email"),
        ("Phone", "contact_phone"),
        ("Postcode", "postal_code"),
        ("Support type", "support_type"),
        ("Visit frequency", "visit_frequency"),
        ("Care duration", "care_duration"),
        ("Priority", "priority"),
        ("Status", "status"),
        ("Received", "created_at"),
    ]:
        lines.append(f"+ {label}: {_format_value(lead_data.get(key))}")
    return lines


def _build_lead_body(lead_data: Dict[str, Any]) -> str:
    lines = ["A new care enquiry was submitted through the website:"]
    lines.extend(_lead_lines(lead_data))
    return "\n".join(lines)


def _build_assignment_body(manager_name: str | None, lead_data: Dict[str, Any]) -> str:
    greeting = f"Hello {manager_name}," if manager_name else "Hello,"
    lines = [greeting, "", "The following lead has been assigned to you:"]
    lines.extend(_lead_lines(lead_data))
    return "\n".join(lines)


def _send(subject: str, recipients: Iterable[str], body: str) -> bool:
    recipients = [r.strip() for r in recipients if r and r.strip()]
    if not recipients:
        logger.warning("No recipients for '%s'; skipping email.", subject)
        return False

    if not settings.smtp_host:
        logger.warning("SMTP host is not configured; skipping '%s'.", subject)
        return False

    message = EmailMessage()
    message["Subject"] = subject
    message["From"] = settings.lead_notification_from
    message["To"] = ", ".join(recipients)
    message.set_content(body)

    server_cls = smtplib.SMTP_SSL if settings.smtp_use_ssl else smtplib.SMTP
    try:
        with server_cls(
            settings.smtp_host, settings.smtp_port, timeout=settings.smtp_timeout
        ) as smtp:
            if not settings.smtp_use_ssl and settings.smtp_use_tls:
                smtp.starttls()
            if settings.smtp_username and settings.smtp_password:
                smtp.login(settings.smtp_username, settings.smtp_password)
            smtp.send_message(message)
        logger.info("Email '%s' sent to %s", subject, ", ".join(recipients))
        return True
    except Exception as exc:
        logger.exception("Failed to send email '%s': %s", subject, exc)
        return False


def send_lead_notification(lead_data: Dict[str, Any]) -> None:
    if not settings.lead_notification_enabled:
        logger.debug("Lead notification is disabled in settings.")
        return
    _send(
        settings.lead_notification_subject,
        settings.lead_notification_recipients,
        _build_lead_body(lead_data),
    )


def send_assignment_notification(contact: Dict[str, Any], lead_data: Dict[str, Any]) -> None:
    """Tell a manager a lead is theirs, if they opted in to both email and assignment notices."""
    if not contact.get("email"):
        return
    if not (contact.get("email_notifications") and contact.get("lead_assignment_notifications")):
        logger.debug("Manager %s opted out of assignment emails.", contact.get("email"))
        return
    _send(
        "A lead has been assigned to you",
        [contact["email"]],
        _build_assignment_body(contact.get("full_name"), lead_data),
    )


def send_password_reset(email: str, link: str) -> None:
    body = "\n".join(
        [
            "We received a request to reset the password for your account.",
            "",
            f"Reset your password: {link}",
            "",
            "If you did not ask for this, you can ignore this email.",
        ]
    )
    _send("Reset your password", [email], body)

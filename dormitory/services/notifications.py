# dormitory/services/notifications.py
"""
Transactional email.

Every send is best-effort: a failure for one recipient is logged and reported
as ``False`` so batch callers can keep going with the next one.
"""
import logging
from typing import Optional

from django.conf import settings
from django.core.mail import EmailMultiAlternatives
from django.db import transaction
from django.template.loader import render_to_string

logger = logging.getLogger(__name__)


def send(recipient: dict, subject: str, text_body: str, html_body: Optional[str] = None) -> bool:
    """Send one email to ``recipient`` (``{"email": ..., "name": ...}``)."""
    address = (recipient or {}).get("email")
    if not address:
        logger.warning("Skipping email %r: recipient %r has no address", subject, recipient)
        return False

    name = recipient.get("name")
    to = f"{name} <{address}>" if name else address
    try:
        email = EmailMultiAlternatives(
            subject=subject,
            body=text_body,
            from_email=settings.DEFAULT_FROM_EMAIL,
            to=[to],
        )
        if html_body:
            email.attach_alternative(html_body, "text/html")
        sent = email.send()
    except Exception:
        logger.exception("Error sending email %r to %s", subject, address)
        return False

    if not sent:
        logger.error("Email backend accepted nothing for %s (%r)", address, subject)
        return False
    logger.info("Email %r sent to %s", subject, address)
    return True


def send_template(recipient: dict, subject: str, template: str, context: dict) -> bool:
    """Render ``dormitory/emails/<template>.txt`` and ``.html`` and send them."""
    context = {"recipient": recipient, **context}
    try:
        text_body = render_to_string(f"dormitory/emails/{template}.txt", context)
        html_body = render_to_string(f"dormitory/emails/{template}.html", context)
    except Exception:
        logger.exception("Error rendering email template %r for %s", template, (recipient or {}).get("email"))
        return False
    return send(recipient, subject, text_body, html_body)


def send_after_commit(recipient: dict, subject: str, template: str, context: dict) -> None:
    transaction.on_commit(lambda: send_template(recipient, subject, template, context))

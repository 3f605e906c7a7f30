"""
Templated transactional email over SMTP.
"""
import logging
from abc import ABC, abstractmethod
import smtplib
import ssl
from email.message import EmailMessage
from typing import Dict, Tuple

from marketplace.core import config

logger = logging.getLogger(__name__)

TEMPLATES: Dict[str, Tuple[str, str]] = {
    "welcome": (
        "Welcome to the marketplace, {name}",
        "Hi {name},\n\nYour account has been created. You can now list your business, "
        "publish your professional profile and apply to jobs.\n",
    ),
    "payment_confirmation": (
        "Payment confirmed: {plan_name}",
        "Hi {name},\n\nWe received your payment of {amount} for the {plan_name} plan.\n"
        "Your subscription is valid until {end_date}.\n",
    ),
    "subscription_canceled": (
        "Subscription canceled: {plan_name}",
        "Hi {name},\n\nYour {plan_name} subscription has been canceled and will not renew.\n",
    ),
    "subscription_expiring": (
        "Your {plan_name} subscription expires soon",
        "Hi {name},\n\nYour {plan_name} subscription expires on {end_date}. "
        "Renew it to keep your listing featured.\n",
    ),
}


def render(template: str, context: Dict) -> Tuple[str, str]:
    """Return (subject, body) for a template name; raises KeyError if unknown."""
    subject, body = TEMPLATES[template]
    return subject.format(**context), body.format(**context)


class EmailSender(ABC):
    """Sends rendered templates. Raises on delivery failure."""

    @abstractmethod
    def send(self, recipient: str, template: str, context: Dict) -> None:
        pass


class SmtpEmailSender(EmailSender):
    def __init__(self, host: str = None, port: int = None, user: str = None, password: str = None,
                 sender: str = None):
        self.host = host or config.SMTP_HOST
        self.port = port or config.SMTP_PORT
        self.user = user or config.SMTP_USER
        self.password = password or config.SMTP_PASS
        self.sender = sender or config.EMAIL_FROM

    def send(self, recipient: str, template: str, context: Dict) -> None:
        subject, body = render(template, context)

        if not self.host:
            # No SMTP configured: keep the message in the logs instead
            logger.info(f"Email not sent (SMTP disabled): to={recipient}, subject={subject!r}")
            return

        msg = EmailMessage()
        msg["From"] = self.sender
        msg["To"] = recipient
        msg["Subject"] = subject
        msg.set_content(body)

        ctx = ssl.create_default_context()
        with smtplib.SMTP(self.host, self.port, timeout=30) as s:
            s.starttls(context=ctx)
            if self.user and self.password:
                s.login(self.user, self.password)
            s.send_message(msg)

        logger.info(f"Email sent: to={recipient}, template={template}")

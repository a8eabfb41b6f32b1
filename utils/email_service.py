"""Outbound account email over SMTP."""
import smtplib
import ssl
from contextlib import contextmanager
from email.message import EmailMessage
from email.utils import formatdate, make_msgid
from typing import Iterator, List

from flask import current_app

from utils.markdown_formatter import markdown_to_email_html, markdown_to_plaintext, password_reset_markdown


class EmailDeliveryError(Exception):
    """Raised when email dispatch fails."""


def build_message(subject: str, markdown_body: str, sender: str, recipients: List[str]) -> EmailMessage:
    """Multipart message with a plain-text part and a sanitized HTML alternative."""
    msg = EmailMessage()
    msg["Subject"] = subject
    msg["From"] = sender
    msg["To"] = ", ".join(recipients)
    msg["Date"] = formatdate(localtime=True)
    msg["Message-ID"] = make_msgid()
    msg.set_content(markdown_to_plaintext(markdown_body))
    msg.add_alternative(markdown_to_email_html(markdown_body), subtype="html")
    return msg


@contextmanager
def _smtp_session() -> Iterator[smtplib.SMTP]:
    config = current_app.config
    host = config.get("MAIL_SERVER")
    if not host:
        raise EmailDeliveryError("MAIL_SERVER is not configured")
    port = int(config.get("MAIL_PORT", 25))
    timeout = float(config.get("MAIL_TIMEOUT_SECONDS", 30))

    if config.get("MAIL_USE_SSL"):
        server = smtplib.SMTP_SSL(host, port, context=ssl.create_default_context(), timeout=timeout)
    else:
        server = smtplib.SMTP(host, port, timeout=timeout)
    with server:
        if not config.get("MAIL_USE_SSL"):
            server.ehlo()
            if config.get("MAIL_USE_TLS"):
                server.starttls(context=ssl.create_default_context())
        if config.get("MAIL_USERNAME") and config.get("MAIL_PASSWORD"):
            server.login(config["MAIL_USERNAME"], config["MAIL_PASSWORD"])
        yield server


def _dispatch_email(subject: str, markdown_body: str, recipients: List[str]) -> None:
    if not recipients:
        raise EmailDeliveryError("No recipients resolved for email dispatch")
    sender = current_app.config.get("MAIL_DEFAULT_SENDER") or current_app.config.get("MAIL_USERNAME")
    if not sender:
        raise EmailDeliveryError("MAIL_DEFAULT_SENDER is not configured")

    msg = build_message(subject, markdown_body, sender, recipients)
    try:
        with _smtp_session() as server:
            server.send_message(msg)
    except (smtplib.SMTPException, OSError) as exc:  # pragma: no cover - external I/O
        raise EmailDeliveryError(str(exc)) from exc
    current_app.logger.info("Email sent", extra={"subject": subject, "recipient_count": len(recipients)})


def send_password_reset_email(recipient: str, user_name: str, reset_link: str, expires_minutes: int) -> None:
    _dispatch_email(
        "Reset your password",
        password_reset_markdown(user_name, reset_link, expires_minutes),
        [recipient],
    )

"""Outgoing email over SMTP with simple text templates."""

from __future__ import annotations

import logging
import smtplib
from dataclasses import dataclass
from email.message import EmailMessage
from string import Template

from gestao_obras.core.config import Settings, get_settings

logger = logging.getLogger(__name__)


class MailDeliveryError(RuntimeError):
    """Raised when the SMTP server rejects or cannot receive a message."""


@dataclass(slots=True, frozen=True)
class OutgoingEmail:
    to: str
    subject: str
    body: str


@dataclass(slots=True, frozen=True)
class EmailTemplate:
    subject: Template
    body: Template

    def render(self, to: str, **values: str) -> OutgoingEmail:
        return OutgoingEmail(
            to=to,
            subject=self.subject.substitute(values),
            body=self.body.substitute(values),
        )


PORTAL_INVITATION = EmailTemplate(
    subject=Template("Acesso ao portal da obra $project_name"),
    body=Template(
        "Olá,\n\n"
        "Você recebeu acesso ao portal do cliente para acompanhar a obra "
        "$project_name ($client_name).\n\n"
        "Para definir sua senha e entrar, acesse:\n$portal_url\n\n"
        "Se você não esperava este convite, ignore esta mensagem.\n"
    ),
)

PORTAL_ACCESS_GRANTED = EmailTemplate(
    subject=Template("Nova obra disponível no portal: $project_name"),
    body=Template(
        "Olá,\n\n"
        "A obra $project_name ($client_name) foi adicionada ao seu acesso no "
        "portal do cliente.\n\n"
        "Acesse: $portal_url\n"
    ),
)


class Mailer:
    """Sends plain-text messages through the configured SMTP server."""

    def __init__(self, settings: Settings) -> None:
        self.settings = settings

    def send(self, message: OutgoingEmail) -> None:
        if not self.settings.smtp_configured:
            logger.warning("SMTP not configured; email not sent", extra={"to": message.to, "subject": message.subject})
            return

        email = EmailMessage()
        email["Subject"] = message.subject
        email["From"] = self.settings.mail_from
        email["To"] = message.to
        email.set_content(message.body)

        try:
            with smtplib.SMTP(
                self.settings.smtp_host,
                self.settings.smtp_port,
                timeout=self.settings.smtp_timeout_seconds,
            ) as smtp:
                if self.settings.smtp_use_tls:
                    smtp.starttls()
                if self.settings.smtp_user:
                    smtp.login(self.settings.smtp_user, self.settings.smtp_password or "")
                smtp.send_message(email)
        except (smtplib.SMTPException, OSError) as exc:
            raise MailDeliveryError(f"Could not deliver email to {message.to}") from exc

        logger.info("Email sent", extra={"to": message.to, "subject": message.subject})


def get_mailer() -> Mailer:
    return Mailer(get_settings())

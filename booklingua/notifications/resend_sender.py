# notifications/resend_sender.py
import logging
from typing import Optional

import resend

from booklingua.notifications.base import EmailMessage, EmailSender

logger = logging.getLogger(__name__)


class ResendSender(EmailSender):

    def __init__(self, api_key: str):
        if not api_key:
            raise ValueError("ResendSender necesita una api_key")
        # El SDK de Resend solo admite la clave a nivel de módulo
        resend.api_key = api_key

    def send(self, message: EmailMessage) -> Optional[str]:
        params: resend.Emails.SendParams = {
            "from":    message.from_address,
            "to":      [message.to],
            "subject": message.subject,
            "html":    message.html,
        }
        # Los errores del SDK burbujean: el paso que envía se reintenta
        response = resend.Emails.send(params)
        email_id = response.get("id") if isinstance(response, dict) else None
        logger.info("Email enviado a %s (id=%s)", message.to, email_id)
        return email_id

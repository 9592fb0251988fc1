from booklingua.notifications.base import EmailMessage, EmailSender
from booklingua.notifications.resend_sender import ResendSender
from booklingua.notifications.templates import (
    DownloadLink,
    build_admin_email,
    build_completion_email,
    download_url,
)

__all__ = [
    "EmailMessage",
    "EmailSender",
    "ResendSender",
    "DownloadLink",
    "build_admin_email",
    "build_completion_email",
    "download_url",
]

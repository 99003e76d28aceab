"""
Best-effort email notifications for appointment events.

Delivery is handed to an ``enqueue`` callable. Inside a request this is
``BackgroundTasks.add_task`` so mail goes out after the response; elsewhere
jobs run inline. Either way a failed delivery is logged and never raised.
"""
import logging
import smtplib
import ssl
from datetime import datetime
from html import escape
from types import SimpleNamespace
from email.message import EmailMessage
from typing import Callable, Optional

from ..core.config import settings

logger = logging.getLogger(__name__)


def run_inline(func: Callable, *args, **kwargs) -> None:
    func(*args, **kwargs)


def format_appointment_time(value: datetime) -> str:
    return value.strftime("%Y-%m-%d %H:%M UTC")


def _escape_all(**values: str) -> SimpleNamespace:
    """HTML-escape user-supplied values before they go into an email body."""
    return SimpleNamespace(**{key: escape(value or "") for key, value in values.items()})


class EmailSender:
    """Send multipart (text + HTML) email over SMTP."""

    def __init__(
        self,
        host: Optional[str] = None,
        port: Optional[int] = None,
        user: Optional[str] = None,
        password: Optional[str] = None,
        use_tls: Optional[bool] = None,
        from_address: Optional[str] = None,
    ):
        self.host = host if host is not None else settings.SMTP_HOST
        self.port = port or settings.SMTP_PORT
        self.user = user if user is not None else settings.SMTP_USER
        self.password = password if password is not None else settings.SMTP_PASSWORD
        self.use_tls = settings.SMTP_USE_TLS if use_tls is None else use_tls
        self.from_address = from_address or settings.EMAIL_FROM

    def send(self, to: str, subject: str, text: str, html: str) -> bool:
        if not self.host:
            logger.info(f"SMTP not configured, skipping email '{subject}' to {to}")
            return False

        message = EmailMessage()
        message["From"] = self.from_address
        message["To"] = to
        message["Subject"] = subject
        message.set_content(text)
        message.add_alternative(html, subtype="html")

        with smtplib.SMTP(self.host, self.port, timeout=10) as server:
            if self.use_tls:
                server.starttls(context=ssl.create_default_context())
            if self.user and self.password:
                server.login(self.user, self.password)
            server.send_message(message)

        logger.info(f"Email sent to {to}")
        return True


class NotificationService:
    def __init__(
        self,
        sender: Optional[EmailSender] = None,
        enqueue: Optional[Callable] = None,
    ):
        self.sender = sender or EmailSender()
        self.enqueue = enqueue or run_inline

    def send_booking_confirmation(
        self,
        user_email: str,
        user_name: str,
        psychiatrist_name: str,
        appointment_time: datetime,
        meeting_link: str,
    ) -> None:
        """Tell the patient their appointment is booked."""
        when = format_appointment_time(appointment_time)
        safe = _escape_all(user_name=user_name, psychiatrist_name=psychiatrist_name, meeting_link=meeting_link)
        subject = "Your Appointment Has Been Booked"
        text = (
            f"Hello {user_name},\n\n"
            f"Your appointment with {psychiatrist_name} has been successfully booked for {when}.\n\n"
            f"Meeting Link: {meeting_link}\n\nThank you!"
        )
        html = (
            "<div>"
            "<h2>Appointment Confirmation</h2>"
            f"<p>Hello {safe.user_name},</p>"
            f"<p>Your appointment with <strong>{safe.psychiatrist_name}</strong> has been successfully "
            f"booked for <strong>{when}</strong>.</p>"
            f'<p><strong>Meeting Link:</strong> <a href="{safe.meeting_link}">Join Meeting</a></p>'
            "<p>Thank you!</p>"
            "</div>"
        )
        self._dispatch(user_email, subject, text, html)

    def send_new_booking_notice(
        self,
        user_email: str,
        user_name: str,
        patient_name: str,
        appointment_time: datetime,
        meeting_link: str,
    ) -> None:
        """Tell the psychiatrist a patient booked a session with them."""
        when = format_appointment_time(appointment_time)
        safe = _escape_all(user_name=user_name, patient_name=patient_name, meeting_link=meeting_link)
        subject = "New Appointment Booked"
        text = (
            f"Hello {user_name},\n\n"
            f"{patient_name} has booked an appointment with you for {when}.\n\n"
            f"Meeting Link: {meeting_link}\n\nThank you!"
        )
        html = (
            "<div>"
            "<h2>New Appointment</h2>"
            f"<p>Hello {safe.user_name},</p>"
            f"<p><strong>{safe.patient_name}</strong> has booked an appointment with you for "
            f"<strong>{when}</strong>.</p>"
            f'<p><strong>Meeting Link:</strong> <a href="{safe.meeting_link}">Join Meeting</a></p>'
            "<p>Thank you!</p>"
            "</div>"
        )
        self._dispatch(user_email, subject, text, html)

    def send_cancellation_notice(
        self,
        user_email: str,
        user_name: str,
        psychiatrist_name: str,
        appointment_time: datetime,
    ) -> None:
        """Tell the patient their appointment was cancelled."""
        when = format_appointment_time(appointment_time)
        safe = _escape_all(user_name=user_name, psychiatrist_name=psychiatrist_name)
        subject = "Your Appointment Has Been Cancelled"
        text = (
            f"Hello {user_name},\n\n"
            f"Your appointment with {psychiatrist_name} scheduled for {when} has been cancelled.\n\n"
            "Thank you!"
        )
        html = (
            "<div>"
            "<h2>Appointment Cancellation</h2>"
            f"<p>Hello {safe.user_name},</p>"
            f"<p>Your appointment with <strong>{safe.psychiatrist_name}</strong> scheduled for "
            f"<strong>{when}</strong> has been cancelled.</p>"
            "<p>Thank you!</p>"
            "</div>"
        )
        self._dispatch(user_email, subject, text, html)

    def _dispatch(self, to: str, subject: str, text: str, html: str) -> None:
        try:
            self.enqueue(self._deliver, to, subject, text, html)
        except Exception:
            logger.exception(f"Failed to queue email '{subject}' to {to}")

    def _deliver(self, to: str, subject: str, text: str, html: str) -> None:
        try:
            self.sender.send(to, subject, text, html)
        except Exception:
            logger.exception(f"Failed to send email '{subject}' to {to}")

"""Outbound email over SMTP (password-reset codes, contact form)."""

import logging
import smtplib
from email.message import EmailMessage
from html import escape
from typing import Any, Dict, Optional

from config import Settings
from errors import UpstreamFailure

logger = logging.getLogger(__name__)

BRAND = "Rekraft"


class Mailer:
    def __init__(self, settings: Settings, timeout: float = 15.0) -> None:
        self.host = settings.smtp_host
        self.port = settings.smtp_port
        self.user = settings.email_user
        self.password = settings.email_pass
        self.timeout = timeout

    @property
    def configured(self) -> bool:
        return bool(self.user and self.password)

    def send(self, to: str, subject: str, html: str) -> None:
        if not self.configured:
            raise UpstreamFailure("Email service is not configured")
        msg = EmailMessage()
        msg["From"] = self.user
        msg["To"] = to
        msg["Subject"] = subject
        msg.set_content("This message requires an HTML capable mail client.")
        msg.add_alternative(html, subtype="html")
        try:
            with smtplib.SMTP(self.host, self.port, timeout=self.timeout) as smtp:
                smtp.starttls()
                smtp.login(self.user, self.password)
                smtp.send_message(msg)
        except (smtplib.SMTPException, OSError) as e:
            logger.error("Sending mail to %s failed: %s", to, e)
            raise UpstreamFailure("Failed to send email") from e
        logger.info("Mail sent to %s: %s", to, subject)


def password_reset_html(otp: str, ttl_minutes: int) -> str:
    return f"""
    <div style="font-family: Arial, sans-serif; max-width: 600px; margin: 0 auto;">
      <div style="background: #8f1eae; padding: 20px; text-align: center;">
        <h1 style="color: white; margin: 0;">{BRAND}</h1>
      </div>
      <div style="padding: 20px;">
        <h2 style="color: #8f1eae;">Password Reset Request</h2>
        <p>You requested to reset your password for your {BRAND} account.</p>
        <div style="background: #f5f2fa; padding: 20px; text-align: center; margin: 20px 0; border-radius: 8px;">
          <h3 style="margin: 0; color: #8f1eae; font-size: 24px; letter-spacing: 5px;">{otp}</h3>
          <p style="margin: 10px 0 0 0; color: #666;">This OTP will expire in {ttl_minutes} minutes</p>
        </div>
        <p>If you didn't request this, please ignore this email.</p>
      </div>
    </div>
    """


def send_password_reset(mailer: Mailer, email: str, otp: str, ttl_minutes: int) -> None:
    mailer.send(email, f"Password Reset OTP - {BRAND}", password_reset_html(otp, ttl_minutes))


def send_contact_message(mailer: Mailer, admin_email: Optional[str], contact: Dict[str, Any]) -> None:
    """Notify the shop and send the visitor an auto-reply."""
    if not admin_email:
        raise UpstreamFailure("Contact inbox is not configured")
    name = escape(contact["name"])
    message = escape(contact["message"]).replace("\n", "<br>")
    admin_html = f"""
    <h2>New Contact Form Submission</h2>
    <p><strong>Name:</strong> {name}</p>
    <p><strong>Email:</strong> {escape(contact["email"])}</p>
    <p><strong>Phone:</strong> {escape(contact.get("phone") or "Not provided")}</p>
    <p><strong>Subject:</strong> {escape(contact["subject"])}</p>
    <p><strong>Message:</strong></p>
    <p>{message}</p>
    """
    reply_html = f"""
    <h2>Thank you for reaching out, {name}!</h2>
    <p>We have received your message and our team will get back to you within 24 hours.</p>
    <p><strong>Your Message:</strong></p>
    <p>{message}</p>
    <hr>
    <p><strong>{BRAND} Team</strong></p>
    """
    mailer.send(admin_email, f"New Contact Form: {contact['subject']}", admin_html)
    mailer.send(contact["email"], f"Thank you for contacting {BRAND}", reply_html)

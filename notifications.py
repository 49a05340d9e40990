"""
Outbound notifications: email over SMTP (SendGrid relay or a plain SMTP
account) and WhatsApp/SMS through Twilio. Every sender returns a result dict
and never raises.
"""
import os
import smtplib
import logging
from email.mime.text import MIMEText
from email.mime.multipart import MIMEMultipart
from email.utils import make_msgid
from typing import Any, Dict

from twilio.rest import Client as TwilioClient

logger = logging.getLogger(__name__)

EMAIL_FROM = os.getenv("EMAIL_FROM", "GhostFounder <noreply@ghostfounder.com>")
EMAIL_USER = os.getenv("EMAIL_USER")
EMAIL_PASSWORD = os.getenv("EMAIL_PASSWORD")
SMTP_HOST = os.getenv("SMTP_HOST", "smtp.gmail.com")
SMTP_PORT = int(os.getenv("SMTP_PORT", "587"))
SENDGRID_API_KEY = os.getenv("SENDGRID_API_KEY")

TWILIO_ACCOUNT_SID = os.getenv("TWILIO_ACCOUNT_SID")
TWILIO_AUTH_TOKEN = os.getenv("TWILIO_AUTH_TOKEN")
TWILIO_WHATSAPP_NUMBER = os.getenv("TWILIO_WHATSAPP_NUMBER", "whatsapp:+14155238886")
TWILIO_PHONE_NUMBER = os.getenv("TWILIO_PHONE_NUMBER")

twilio_client = None
if TWILIO_ACCOUNT_SID and TWILIO_AUTH_TOKEN:
    twilio_client = TwilioClient(TWILIO_ACCOUNT_SID, TWILIO_AUTH_TOKEN)


def _smtp_settings():
    if SENDGRID_API_KEY:
        return "smtp.sendgrid.net", 587, "apikey", SENDGRID_API_KEY
    return SMTP_HOST, SMTP_PORT, EMAIL_USER, EMAIL_PASSWORD


def send_email(to: str, subject: str, html: str) -> Dict[str, Any]:
    host, port, user, password = _smtp_settings()
    if not user or not password:
        logger.warning("Email not configured")
        return {"success": False, "error": "Email not configured"}

    msg = MIMEMultipart("alternative")
    msg["From"] = EMAIL_FROM
    msg["To"] = to
    msg["Subject"] = subject
    msg["Message-ID"] = make_msgid(domain="ghostfounder.com")
    msg.attach(MIMEText(html, "html"))

    try:
        with smtplib.SMTP(host, port, timeout=30) as server:
            server.starttls()
            server.login(user, password)
            server.send_message(msg)
    except (smtplib.SMTPException, OSError) as e:
        logger.error("Email send error: %s", e)
        return {"success": False, "error": str(e)}

    logger.info("Email sent: %s", msg["Message-ID"])
    return {"success": True, "message_id": msg["Message-ID"]}


def send_whatsapp(to: str, message: str) -> Dict[str, Any]:
    if twilio_client is None:
        logger.warning("Twilio not configured")
        return {"success": False, "error": "Twilio not configured"}

    try:
        result = twilio_client.messages.create(
            from_=TWILIO_WHATSAPP_NUMBER,
            to=to if to.startswith("whatsapp:") else f"whatsapp:{to}",
            body=message,
        )
    except Exception as e:
        logger.error("WhatsApp send error: %s", e)
        return {"success": False, "error": str(e)}

    logger.info("WhatsApp sent: %s", result.sid)
    return {"success": True, "sid": result.sid}


def send_sms(to: str, message: str) -> Dict[str, Any]:
    if twilio_client is None:
        logger.warning("Twilio not configured")
        return {"success": False, "error": "Twilio not configured"}

    try:
        result = twilio_client.messages.create(from_=TWILIO_PHONE_NUMBER, to=to, body=message)
    except Exception as e:
        logger.error("SMS send error: %s", e)
        return {"success": False, "error": str(e)}

    logger.info("SMS sent: %s", result.sid)
    return {"success": True, "sid": result.sid}

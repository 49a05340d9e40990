from unittest.mock import MagicMock

import notifications


def _twilio(monkeypatch):
    client = MagicMock()
    client.messages.create.return_value.sid = "SM123"
    monkeypatch.setattr(notifications, "twilio_client", client)
    return client


def test_senders_report_missing_configuration():
    assert notifications.send_email("a@b.co", "Hi", "<p>Hi</p>") == {"success": False, "error": "Email not configured"}
    assert notifications.send_whatsapp("+15550001", "boo") == {"success": False, "error": "Twilio not configured"}
    assert notifications.send_sms("+15550001", "boo") == {"success": False, "error": "Twilio not configured"}


def test_sendgrid_key_selects_relay(monkeypatch):
    monkeypatch.setattr(notifications, "SENDGRID_API_KEY", "SG.key")
    assert notifications._smtp_settings() == ("smtp.sendgrid.net", 587, "apikey", "SG.key")


def test_send_email_over_smtp(monkeypatch):
    monkeypatch.setattr(notifications, "EMAIL_USER", "bot@example.com")
    monkeypatch.setattr(notifications, "EMAIL_PASSWORD", "pw")
    smtp = MagicMock()
    monkeypatch.setattr(notifications.smtplib, "SMTP", smtp)

    result = notifications.send_email("founder@example.com", "Report", "<b>ready</b>")

    assert result["success"] is True
    server = smtp.return_value.__enter__.return_value
    server.login.assert_called_once_with("bot@example.com", "pw")
    sent = server.send_message.call_args.args[0]
    assert sent["To"] == "founder@example.com"
    assert sent["Message-ID"] == result["message_id"]


def test_send_email_failure_is_reported(monkeypatch):
    monkeypatch.setattr(notifications, "EMAIL_USER", "bot@example.com")
    monkeypatch.setattr(notifications, "EMAIL_PASSWORD", "pw")
    monkeypatch.setattr(notifications.smtplib, "SMTP", MagicMock(side_effect=OSError("no route")))
    assert notifications.send_email("founder@example.com", "Report", "x") == {"success": False, "error": "no route"}


def test_whatsapp_prefixes_number(monkeypatch):
    client = _twilio(monkeypatch)
    assert notifications.send_whatsapp("+15550001", "boo") == {"success": True, "sid": "SM123"}
    assert client.messages.create.call_args.kwargs["to"] == "whatsapp:+15550001"

    notifications.send_whatsapp("whatsapp:+15550002", "boo")
    assert client.messages.create.call_args.kwargs["to"] == "whatsapp:+15550002"


def test_sms_uses_phone_number(monkeypatch):
    client = _twilio(monkeypatch)
    monkeypatch.setattr(notifications, "TWILIO_PHONE_NUMBER", "+15559999")
    assert notifications.send_sms("+15550001", "boo")["sid"] == "SM123"
    assert client.messages.create.call_args.kwargs == {"from_": "+15559999", "to": "+15550001", "body": "boo"}


def test_twilio_errors_become_results(monkeypatch):
    client = _twilio(monkeypatch)
    client.messages.create.side_effect = RuntimeError("invalid number")
    assert notifications.send_sms("+1", "boo") == {"success": False, "error": "invalid number"}

import pytest

import notifications
from config import Settings
from conftest import ADDRESS, SEED, FailingSender
from notifications import LogSender, SmtpSender, build_sender, render, send_quietly

ORDER = {
    "orderNumber": "RD2506010042",
    "items": [SEED],
    "shippingAddress": ADDRESS,
    "subtotal": 200.0,
    "shippingCost": 0.0,
    "total": 200.0,
    "status": "pending",
    "notes": "<b>ring twice</b>",
    "createdAt": "2025-06-01T09:00:00+00:00",
}
USER = {"name": "Ravi", "email": "ravi@x.com", "phone": "9876543210"}


def test_otp_template_contains_code_and_validity():
    html = render("otp", {"name": "Ravi", "otp": "482913", "ttlMinutes": 10})
    assert "482913" in html
    assert "valid for 10 minutes" in html


def test_order_templates_list_items_and_totals():
    confirmation = render("order_confirmation", {"order": ORDER, "user": USER})
    assert "RD2506010042" in confirmation
    assert "Seed" in confirmation and "200.00" in confirmation

    alert = render("order_alert", {"order": ORDER, "user": USER})
    assert "PENDING" in alert
    assert "9876543210" in alert
    assert "&lt;b&gt;ring twice&lt;/b&gt;" in alert
    assert "<b>ring twice</b>" not in alert


def test_unknown_template():
    with pytest.raises(ValueError):
        render("newsletter", {"order": ORDER, "user": USER})


def test_send_quietly_swallows_failures():
    sender = FailingSender()
    assert send_quietly(sender, "ravi@x.com", "Hi", "otp", {}) is False
    assert sender.attempts == 1


def test_send_quietly_skips_missing_recipient():
    sender = FailingSender()
    assert send_quietly(sender, None, "Hi", "otp", {}) is False
    assert sender.attempts == 0


def test_build_sender_picks_smtp_only_when_configured():
    assert isinstance(build_sender(Settings()), LogSender)
    assert isinstance(build_sender(Settings(smtp_host="smtp.gmail.com")), SmtpSender)


def test_smtp_sender_uses_starttls_and_login(monkeypatch):
    calls = []

    class FakeSMTP:
        def __init__(self, host, port, timeout):
            calls.append(("connect", host, port, timeout))

        def __enter__(self):
            return self

        def __exit__(self, *exc):
            return False

        def starttls(self):
            calls.append(("starttls",))

        def login(self, user, password):
            calls.append(("login", user, password))

        def send_message(self, message):
            calls.append(("send", message["To"], message["Subject"]))

    monkeypatch.setattr(notifications.smtplib, "SMTP", FakeSMTP)
    settings = Settings(smtp_host="smtp.gmail.com", smtp_user="shop@rythudipo.in",
                        smtp_password="app-pass", smtp_timeout=5)
    SmtpSender(settings).send("ravi@x.com", "Hello", "otp", {"name": "Ravi", "otp": "123456"})
    assert calls == [
        ("connect", "smtp.gmail.com", 587, 5),
        ("starttls",),
        ("login", "shop@rythudipo.in", "app-pass"),
        ("send", "ravi@x.com", "Hello"),
    ]

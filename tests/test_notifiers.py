import requests

from fare_watch import notifiers
from fare_watch.notifiers import email, telegram


class FakeResponse:
    def __init__(self, status_code=200):
        self.status_code = status_code
        self.text = "error"

    def json(self):
        return {"ok": self.status_code == 200}

    def raise_for_status(self):
        if self.status_code != 200:
            raise requests.exceptions.HTTPError(f"{self.status_code}")


def test_telegram_unconfigured_returns_false(monkeypatch):
    monkeypatch.delenv("TELEGRAM_BOT_TOKEN", raising=False)
    monkeypatch.delenv("TELEGRAM_CHAT_ID", raising=False)

    assert telegram.send_telegram_message("hi") is False


def test_telegram_posts_message(monkeypatch):
    calls = []
    monkeypatch.setenv("TELEGRAM_BOT_TOKEN", "tok")
    monkeypatch.setenv("TELEGRAM_CHAT_ID", "42")
    monkeypatch.setenv("NOTIFY_TIMEOUT_SECONDS", "3")

    def fake_post(url, json, timeout):
        calls.append((url, json, timeout))
        return FakeResponse()

    monkeypatch.setattr(telegram.requests, "post", fake_post)

    assert telegram.send_telegram_message("price changed") is True
    url, payload, timeout = calls[0]
    assert url == "https://api.telegram.org/bottok/sendMessage"
    assert payload["chat_id"] == "42"
    assert payload["text"] == "price changed"
    assert timeout == 3.0


def test_telegram_errors_are_swallowed(monkeypatch):
    monkeypatch.setenv("TELEGRAM_BOT_TOKEN", "tok")
    monkeypatch.setenv("TELEGRAM_CHAT_ID", "42")

    def timeout_post(*args, **kwargs):
        raise requests.exceptions.Timeout("slow")

    monkeypatch.setattr(telegram.requests, "post", timeout_post)
    assert telegram.send_telegram_message("x") is False

    monkeypatch.setattr(telegram.requests, "post", lambda *a, **k: FakeResponse(500))
    assert telegram.send_telegram_message("x") is False


def test_email_unconfigured_returns_false(monkeypatch):
    monkeypatch.delenv("SMTP_USER", raising=False)
    monkeypatch.delenv("SMTP_PASS", raising=False)

    assert email.send_email_message("hi") is False


def test_email_bad_port_returns_false(monkeypatch):
    monkeypatch.setenv("SMTP_USER", "me@example.com")
    monkeypatch.setenv("SMTP_PASS", "secret")
    monkeypatch.setenv("SMTP_PORT", "smtp")

    assert email.send_email_message("hi") is False


def test_notify_reports_any_delivery(monkeypatch):
    monkeypatch.setattr(notifiers, "send_telegram_message", lambda message: False)
    monkeypatch.setattr(notifiers, "send_email_message", lambda message: True)

    assert notifiers.notify("x") is True

    monkeypatch.setattr(notifiers, "send_email_message", lambda message: False)

    assert notifiers.notify("x") is False


def test_long_messages_are_split_on_line_boundaries():
    lines = [f"{i:03d} CZ3455 08:00->10:30 ¥1280" for i in range(300)]
    message = "\n".join(lines)

    parts = telegram.split_message(message, limit=500)

    assert all(len(p) <= 500 for p in parts)
    assert "".join(parts) == message
    assert all(p.endswith("\n") for p in parts[:-1])


def test_overlong_line_is_hard_split():
    assert telegram.split_message("x" * 25, limit=10) == ["x" * 10, "x" * 10, "x" * 5]
    assert telegram.split_message("short") == ["short"]


def test_telegram_sends_every_part(monkeypatch):
    sent = []
    monkeypatch.setenv("TELEGRAM_BOT_TOKEN", "tok")
    monkeypatch.setenv("TELEGRAM_CHAT_ID", "42")
    monkeypatch.setattr(telegram, "split_message", lambda message: ["a\n", "b"])
    monkeypatch.setattr(telegram.requests, "post", lambda url, json, timeout: sent.append(json["text"]) or FakeResponse())

    assert telegram.send_telegram_message("a\nb") is True
    assert sent == ["a\n", "b"]


def test_build_email_uses_first_line_as_subject():
    msg = email.build_email("✈️ Lowest outbound price for the day changed\nSZX->CKG", "me@example.com", "you@example.com")

    assert msg["Subject"] == "Fare Watch: ✈️ Lowest outbound price for the day changed"
    assert msg["To"] == "you@example.com"
    assert "SZX->CKG" in msg.get_payload(decode=True).decode("utf-8")

import smtplib

import pytest

from voyagevault.service import email as email_module
from voyagevault.service.email import EmailService, mask_recipient


class FakeSMTP:
    instances: list["FakeSMTP"] = []
    fail_with: Exception | None = None

    def __init__(self, host, port, timeout=None):
        self.host = host
        self.port = port
        self.started_tls = False
        self.logged_in = None
        self.sent = []
        FakeSMTP.instances.append(self)

    def __enter__(self):
        return self

    def __exit__(self, *exc):
        return False

    def starttls(self, context=None):
        self.started_tls = True

    def login(self, user, password):
        self.logged_in = (user, password)

    def send_message(self, message):
        if FakeSMTP.fail_with is not None:
            raise FakeSMTP.fail_with
        self.sent.append(message)


@pytest.fixture
def fake_smtp(monkeypatch):
    FakeSMTP.instances = []
    FakeSMTP.fail_with = None
    monkeypatch.setattr(email_module.smtplib, "SMTP", FakeSMTP)
    return FakeSMTP


def _service(**overrides):
    options = dict(
        smtp_host="smtp.example.com",
        smtp_user="mailer",
        smtp_password="pw",
        from_email="no-reply@voyagevault.com",
    )
    options.update(overrides)
    return EmailService(**options)


def test_dev_mode_skips_smtp(fake_smtp):
    service = EmailService()

    assert service.is_configured is False
    assert service.send_verification_code("ada@example.com", "123456") is True
    assert fake_smtp.instances == []


def test_sends_code_over_starttls(fake_smtp):
    assert _service().send_verification_code("ada@example.com", "042042") is True

    smtp = fake_smtp.instances[0]
    assert (smtp.host, smtp.port) == ("smtp.example.com", 587)
    assert smtp.started_tls is True
    assert smtp.logged_in == ("mailer", "pw")
    message = smtp.sent[0]
    assert message["To"] == "ada@example.com"
    assert message["Subject"] == "VoyageVault Verification Code"
    assert "042042" in message.get_body(preferencelist=("plain",)).get_content()
    assert "042042" in message.get_body(preferencelist=("html",)).get_content()


def test_plain_smtp_when_tls_disabled(fake_smtp):
    _service(smtp_use_tls=False, smtp_user=None, smtp_password=None).send_verification_code(
        "ada@example.com", "123456"
    )

    smtp = fake_smtp.instances[0]
    assert smtp.started_tls is False
    assert smtp.logged_in is None


@pytest.mark.parametrize(
    "error",
    [
        smtplib.SMTPRecipientsRefused({"ada@example.com": (550, b"no such user")}),
        smtplib.SMTPAuthenticationError(535, b"bad credentials"),
        ConnectionRefusedError("refused"),
    ],
)
def test_delivery_failure_returns_false(fake_smtp, error):
    fake_smtp.fail_with = error

    assert _service().send_verification_code("ada@example.com", "123456") is False


def test_mask_recipient():
    assert mask_recipient("ada@example.com") == "ad***@example.com"
    assert mask_recipient("not-an-email") == "redacted"

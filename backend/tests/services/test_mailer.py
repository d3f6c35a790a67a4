"""Mailer — message shape, the unconfigured guard and SMTP failure mapping.

Invariants:
    - Messages carry a text part and an HTML alternative, sent from the SMTP user
    - send() without credentials raises ServiceNotConfiguredError and never connects
    - smtplib failures surface as ExternalServiceError("email")
"""

import smtplib

import pytest

from tutorassist.core.errors import ExternalServiceError, ServiceNotConfiguredError
from tutorassist.infrastructure import mailer as mailer_module
from tutorassist.infrastructure.mailer import Mailer


def _mailer(username="tutorassist@example.com", password="app-password") -> Mailer:
    return Mailer("smtp.example.com", 587, username, password, "TutorAssist")


class _RecordingSMTP:
    """Stands in for smtplib.SMTP as a context manager."""

    instances: list["_RecordingSMTP"] = []
    fail_login = False

    def __init__(self, host, port, timeout=None):
        self.host = host
        self.port = port
        self.sent = []
        self.started_tls = False
        _RecordingSMTP.instances.append(self)

    def __enter__(self):
        return self

    def __exit__(self, *exc):
        return False

    def starttls(self):
        self.started_tls = True

    def login(self, username, password):
        if _RecordingSMTP.fail_login:
            raise smtplib.SMTPAuthenticationError(535, b"bad credentials")

    def send_message(self, message):
        self.sent.append(message)


@pytest.fixture
def smtp(monkeypatch):
    _RecordingSMTP.instances = []
    _RecordingSMTP.fail_login = False
    monkeypatch.setattr(mailer_module.smtplib, "SMTP", _RecordingSMTP)
    return _RecordingSMTP


def test_build_message_has_text_and_html_parts():
    message = _mailer().build_message("pat@example.com", "Hello", "<p>Hi</p>", "Hi")
    assert message["To"] == "pat@example.com"
    assert message["From"] == "TutorAssist <tutorassist@example.com>"
    assert message.get_content_type() == "multipart/alternative"
    parts = [part.get_content_type() for part in message.iter_parts()]
    assert parts == ["text/plain", "text/html"]


def test_is_configured_needs_username_and_password():
    assert _mailer().is_configured() is True
    assert _mailer(password="").is_configured() is False
    assert _mailer(username="").is_configured() is False


async def test_unconfigured_send_never_connects(smtp):
    with pytest.raises(ServiceNotConfiguredError) as exc_info:
        await _mailer(password="").send("pat@example.com", "Hello", "<p>Hi</p>", "Hi")
    assert exc_info.value.http_status == 503
    assert smtp.instances == []


async def test_send_uses_starttls(smtp):
    await _mailer().send("pat@example.com", "Hello", "<p>Hi</p>", "Hi")
    [server] = smtp.instances
    assert (server.host, server.port) == ("smtp.example.com", 587)
    assert server.started_tls is True
    assert [m["Subject"] for m in server.sent] == ["Hello"]


async def test_smtp_failure_is_external_service_error(smtp):
    smtp.fail_login = True
    with pytest.raises(ExternalServiceError) as exc_info:
        await _mailer().send("pat@example.com", "Hello", "<p>Hi</p>", "Hi")
    assert exc_info.value.service == "email"
    assert exc_info.value.http_status == 502

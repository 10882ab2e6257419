"""Tests for notifications.py: send policy, rendering and the Resend client."""

import json
from unittest.mock import patch

import httpx
import pytest

from conftest import FakeResend
from exceptions import UpstreamError
from models import EmailLog
from notifications import (
    EmailSender,
    render_notification,
    send_hydration_notification,
    should_send_notification,
)

# ---------------------------------------------------------------------------
# should_send_notification
# ---------------------------------------------------------------------------


@pytest.mark.parametrize("glasses", [0, 1, 3, 7])
def test_no_notification_on_odd_or_zero_counts(db, user, glasses: int) -> None:
    assert should_send_notification(db, user.id, glasses) is False


def test_notification_on_even_count(db, user) -> None:
    assert should_send_notification(db, user.id, 4) is True


def test_notification_sent_at_most_once_per_count(db, user) -> None:
    db.add(EmailLog(user_id=user.id, email=user.email, subject="s", glasses_count=4, sent=True))
    db.commit()

    assert should_send_notification(db, user.id, 4) is False
    assert should_send_notification(db, user.id, 6) is True


def test_failed_send_does_not_block_next_attempt(db, user) -> None:
    db.add(EmailLog(user_id=user.id, email=user.email, subject="s", glasses_count=4, sent=False, error="down"))
    db.commit()

    assert should_send_notification(db, user.id, 4) is True


def test_policy_is_per_user(db, user) -> None:
    db.add(EmailLog(user_id="someone_else", email="x@example.com", subject="s", glasses_count=4, sent=True))
    db.commit()

    assert should_send_notification(db, user.id, 4) is True


# ---------------------------------------------------------------------------
# render_notification
# ---------------------------------------------------------------------------


def test_subject_mentions_glass_count() -> None:
    subject, _ = render_notification("Ana", 4, 2, 8)
    assert subject == "💕 Hydration Milestone: 4 Glasses Down!"


@pytest.mark.parametrize(
    ("glasses", "expected"),
    [
        (2, "Great progress!"),
        (4, "Halfway there!"),
        (7, "So close! Just 1 more glass(es) to go!"),
        (8, "completed your daily hydration goal"),
    ],
)
def test_message_depends_on_progress(glasses: int, expected: str) -> None:
    _, html = render_notification("Ana", glasses, 1, 8)
    assert expected in html


def test_remaining_is_never_negative() -> None:
    _, html = render_notification("Ana", 10, 1, 8)
    assert "<strong>0</strong><br>Glasses Left" in html
    assert "width: 100%" in html


def test_name_is_escaped_and_defaulted() -> None:
    _, html = render_notification("<b>Ana</b>", 2, 1, 8)
    assert "&lt;b&gt;Ana&lt;/b&gt;" in html
    _, html = render_notification(None, 2, 1, 8)
    assert "Hi Beautiful!" in html


# ---------------------------------------------------------------------------
# EmailSender
# ---------------------------------------------------------------------------


def test_send_posts_to_resend(sender, resend) -> None:
    sender.send("ana@example.com", "Hello", "<p>hi</p>")

    [request] = resend.requests
    assert request.method == "POST"
    assert str(request.url) == "https://api.resend.com/emails"
    assert request.headers["Authorization"] == "Bearer re_test"
    payload = json.loads(request.content)
    assert payload["to"] == ["ana@example.com"]
    assert payload["subject"] == "Hello"
    assert payload["html"] == "<p>hi</p>"


def test_send_without_api_key() -> None:
    with pytest.raises(UpstreamError):
        EmailSender(api_key="").send("ana@example.com", "Hello", "<p>hi</p>")


def test_send_http_error() -> None:
    failing = FakeResend(status_code=500)
    sender = EmailSender(api_key="re_test", transport=httpx.MockTransport(failing.handler))
    with pytest.raises(UpstreamError, match="500"):
        sender.send("ana@example.com", "Hello", "<p>hi</p>")


def test_send_accepts_non_json_success_body() -> None:
    plain = httpx.MockTransport(lambda request: httpx.Response(200, text="OK"))
    sender = EmailSender(api_key="re_test", transport=plain)

    assert sender.send("ana@example.com", "Hello", "<p>hi</p>") == {}


def test_send_transport_error() -> None:
    def unreachable(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("connection refused", request=request)

    sender = EmailSender(api_key="re_test", transport=httpx.MockTransport(unreachable))
    with pytest.raises(UpstreamError):
        sender.send("ana@example.com", "Hello", "<p>hi</p>")


# ---------------------------------------------------------------------------
# send_hydration_notification
# ---------------------------------------------------------------------------


def test_successful_send_is_logged(db, user, sender) -> None:
    assert send_hydration_notification(db, sender, user.email, glasses=2, streak=1, target=8, user=user) is True

    [log] = db.query(EmailLog).all()
    assert log.sent is True
    assert log.glasses_count == 2
    assert log.user_id == user.id
    assert log.error is None


def test_failed_send_is_logged_not_raised(db, user) -> None:
    failing = FakeResend(status_code=503)
    sender = EmailSender(api_key="re_test", transport=httpx.MockTransport(failing.handler))

    assert send_hydration_notification(db, sender, user.email, glasses=2, streak=1, target=8, user=user) is False

    [log] = db.query(EmailLog).all()
    assert log.sent is False
    assert "503" in log.error
    assert should_send_notification(db, user.id, 2) is True


def test_unexpected_sender_error_is_logged_not_raised(db, user) -> None:
    sender = EmailSender(api_key="re_test")

    with patch.object(sender, "send", side_effect=RuntimeError("sender exploded")):
        assert send_hydration_notification(db, sender, user.email, glasses=4, streak=0, target=8, user=user) is False

    [log] = db.query(EmailLog).all()
    assert log.sent is False
    assert log.error == "sender exploded"

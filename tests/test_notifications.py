"""Tests for the Telegram notification dispatcher."""
import asyncio
import json
from datetime import time, timedelta

import httpx
import pytest

from hanami.models import Appointment, Notification
from hanami.services.notifications import NotificationService, NotificationType, describe_client


@pytest.fixture
def appointment(db, catalogue, day):
    appointment = Appointment(
        therapist_id=catalogue["anna"].id,
        service_id=catalogue["massage"].id,
        appointment_date=day,
        appointment_time=time(10, 0),
        duration_minutes=60,
        status="confirmed",
        guest_name="Ola",
        guest_phone="+48500100200",
    )
    db.add(appointment)
    db.commit()
    return appointment


@pytest.fixture
def telegram(monkeypatch):
    """Route httpx.AsyncClient through a mock transport and collect the requests"""
    requests = []
    status = {"code": 200}
    real_client = httpx.AsyncClient

    def handler(request):
        requests.append(request)
        return httpx.Response(status["code"], json={"ok": status["code"] == 200})

    monkeypatch.setattr(
        httpx, "AsyncClient",
        lambda *args, **kwargs: real_client(transport=httpx.MockTransport(handler))
    )
    return requests, status


class TestNotificationService:
    """Test NotificationService."""

    def test_unconfigured_is_skipped(self, db, appointment):
        """Without a token nothing is sent and a failed row is recorded."""
        service = NotificationService()
        service.bot_token = service.chat_id = None

        delivered = asyncio.run(service.notify_appointment_created(appointment, "Classic massage", db))

        assert delivered is False
        row = db.query(Notification).one()
        assert row.status == "failed"
        assert row.notification_type == NotificationType.NEW_BOOKING.value

    def test_sends_to_salon_chat(self, db, appointment, telegram):
        """The message goes to the configured chat and is logged as sent."""
        requests, _ = telegram
        service = NotificationService(bot_token="token", chat_id="42")

        delivered = asyncio.run(service.notify_appointment_created(appointment, "Classic massage", db))

        assert delivered is True
        payload = json.loads(requests[0].content)
        assert requests[0].url.path == "/bottoken/sendMessage"
        assert payload["chat_id"] == "42"
        assert "Classic massage" in payload["text"]
        assert "Ola" in payload["text"]
        assert db.query(Notification).one().status == "sent"

    def test_rejected_by_telegram(self, db, appointment, telegram):
        """A non-200 answer is recorded as failed, never raised."""
        _, status = telegram
        status["code"] = 403
        service = NotificationService(bot_token="token", chat_id="42")

        delivered = asyncio.run(service.notify_status_changed(appointment, "pending", db))

        assert delivered is False
        assert db.query(Notification).one().status == "failed"

    def test_cancellation_kind(self, db, appointment, telegram):
        """Cancellations are recorded as their own notification kind."""
        appointment.status = "cancelled"
        db.commit()
        service = NotificationService(bot_token="token", chat_id="42")

        asyncio.run(service.notify_status_changed(appointment, "confirmed", db))

        assert db.query(Notification).one().notification_type == NotificationType.CANCELLED_BOOKING.value

    def test_unexpected_error_swallowed(self, db, appointment, monkeypatch):
        """Delivery errors never reach the booking flow."""
        service = NotificationService(bot_token="token", chat_id="42")

        async def boom(text, parse_mode="HTML"):
            raise RuntimeError("network down")

        monkeypatch.setattr(service, "send_telegram_message", boom)

        assert asyncio.run(service.notify_appointment_created(appointment, "Classic massage", db)) is False

    def test_describe_client(self, appointment):
        assert describe_client(appointment) == "Ola (+48500100200, guest)"

    def test_guest_fields_escaped(self, db, appointment, telegram):
        """Client-supplied text cannot inject Telegram HTML."""
        requests, _ = telegram
        appointment.guest_name = "<Ola & Co>"
        db.commit()
        service = NotificationService(bot_token="token", chat_id="42")

        asyncio.run(service.notify_appointment_created(appointment, "Classic massage", db))

        text = json.loads(requests[0].content)["text"]
        assert "&lt;Ola &amp; Co&gt;" in text
        assert "<Ola" not in text


class TestSendReminders:
    """Test send_reminders."""

    def test_confirmed_appointment_reminded_once(self, db, appointment, day, telegram):
        """The reminder goes out and the appointment is flagged."""
        requests, _ = telegram
        service = NotificationService(bot_token="token", chat_id="42")

        assert asyncio.run(service.send_reminders(db, day)) == 1

        db.refresh(appointment)
        assert appointment.notification_sent is True
        assert "Classic massage" in json.loads(requests[0].content)["text"]
        assert db.query(Notification).one().notification_type == NotificationType.REMINDER.value

        assert asyncio.run(service.send_reminders(db, day)) == 0
        assert len(requests) == 1

    def test_skips_cancelled_and_other_days(self, db, appointment, day, telegram):
        requests, _ = telegram
        appointment.status = "cancelled"
        db.commit()
        service = NotificationService(bot_token="token", chat_id="42")

        assert asyncio.run(service.send_reminders(db, day)) == 0
        assert asyncio.run(service.send_reminders(db, day + timedelta(days=1))) == 0
        assert requests == []

    def test_failed_delivery_retried_later(self, db, appointment, day, telegram):
        """A rejected reminder leaves the flag unset for the next run."""
        _, status = telegram
        status["code"] = 403
        service = NotificationService(bot_token="token", chat_id="42")

        assert asyncio.run(service.send_reminders(db, day)) == 0

        db.refresh(appointment)
        assert not appointment.notification_sent
        assert db.query(Notification).one().status == "failed"

"""
Notifications about appointments

Fire-and-forget: delivery problems are logged and recorded in the
notifications table, never raised back into the booking flow.
"""
import html
import logging
from typing import Optional
from datetime import date, datetime, timedelta
from enum import Enum

import httpx
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ..config import get_settings
from ..models.appointment import Appointment
from ..models.notification import Notification
from ..models.service import Service

settings = get_settings()
logger = logging.getLogger(__name__)


class NotificationType(str, Enum):
    """Notification kinds"""
    NEW_BOOKING = "new_booking"
    STATUS_CHANGED = "status_changed"
    CANCELLED_BOOKING = "cancelled_booking"
    REMINDER = "reminder"


STATUS_LABELS = {
    "pending": "Pending",
    "confirmed": "Confirmed",
    "completed": "Completed",
    "cancelled": "Cancelled",
}


class NotificationService:
    """Sends appointment notifications to the salon Telegram chat"""

    def __init__(self, bot_token: Optional[str] = None, chat_id: Optional[str] = None,
                 timeout: Optional[float] = None):
        self.bot_token = bot_token or settings.TELEGRAM_BOT_TOKEN
        self.chat_id = chat_id or settings.TELEGRAM_ADMIN_CHAT_ID
        self.timeout = timeout or settings.NOTIFICATION_TIMEOUT_SECONDS
        self.api_url = f"https://api.telegram.org/bot{self.bot_token}"

    async def send_telegram_message(self, text: str, parse_mode: str = "HTML") -> bool:
        """
        Send a message to the salon chat

        Returns:
            bool: True if Telegram accepted the message
        """
        if not self.chat_id or not self.bot_token:
            logger.warning("Telegram is not configured, skipping notification")
            return False

        try:
            async with httpx.AsyncClient() as client:
                response = await client.post(
                    f"{self.api_url}/sendMessage",
                    json={
                        "chat_id": self.chat_id,
                        "text": text,
                        "parse_mode": parse_mode
                    },
                    timeout=self.timeout
                )
        except httpx.HTTPError as e:
            logger.error(f"Telegram request failed: {e}")
            return False

        if response.status_code != 200:
            logger.error(f"Telegram rejected notification: {response.status_code} {response.text[:200]}")
            return False

        logger.info(f"Notification sent to chat {self.chat_id}")
        return True

    def _record(self, db: Optional[Session], notification_type: NotificationType,
                appointment_id: int, message: str, delivered: bool):
        if db is None:
            return
        try:
            db.add(Notification(
                appointment_id=appointment_id,
                notification_type=notification_type.value,
                message=message,
                status="sent" if delivered else "failed"
            ))
            db.commit()
        except SQLAlchemyError as e:
            db.rollback()
            logger.error(f"Could not record notification for appointment {appointment_id}: {e}")

    async def dispatch(
        self,
        notification_type: NotificationType,
        message: str,
        appointment_id: int,
        db: Optional[Session] = None
    ) -> bool:
        """Send and record one notification, swallowing delivery errors"""
        icons = {
            NotificationType.NEW_BOOKING: "📅",
            NotificationType.STATUS_CHANGED: "📋",
            NotificationType.CANCELLED_BOOKING: "❌",
            NotificationType.REMINDER: "⏰",
        }
        icon = icons.get(notification_type, "📢")
        text = (
            f"{icon} <b>{notification_type.value.replace('_', ' ').upper()}</b>\n\n"
            f"{message}\n\n"
            f"🕐 {datetime.now():%d.%m.%Y %H:%M} • ID #{appointment_id}"
        )

        try:
            delivered = await self.send_telegram_message(text)
        except Exception as e:  # fire-and-forget, the appointment write stays
            logger.error(f"Notification for appointment {appointment_id} failed: {e}")
            delivered = False

        self._record(db, notification_type, appointment_id, message, delivered)
        return delivered

    async def notify_appointment_created(self, appointment, service_name: str,
                                         db: Optional[Session] = None) -> bool:
        message = (
            f"👤 <b>Client:</b> {describe_client(appointment)}\n"
            f"💆 <b>Service:</b> {html.escape(service_name)} ({appointment.duration_minutes} min)\n"
            f"📆 <b>Date:</b> {appointment.appointment_date:%d.%m.%Y}\n"
            f"🕐 <b>Time:</b> {appointment.appointment_time:%H:%M}\n"
            f"📋 <b>Status:</b> {STATUS_LABELS.get(appointment.status, appointment.status)}"
        )
        if appointment.voucher_code:
            message += f"\n🎁 <b>Voucher:</b> {html.escape(appointment.voucher_code)}"

        return await self.dispatch(NotificationType.NEW_BOOKING, message, appointment.id, db)

    async def notify_status_changed(self, appointment, previous_status: str,
                                    db: Optional[Session] = None) -> bool:
        notification_type = (
            NotificationType.CANCELLED_BOOKING
            if appointment.status == "cancelled"
            else NotificationType.STATUS_CHANGED
        )
        message = (
            f"👤 <b>Client:</b> {describe_client(appointment)}\n"
            f"📆 <b>Date:</b> {appointment.appointment_date:%d.%m.%Y} {appointment.appointment_time:%H:%M}\n"
            f"📋 <b>Status:</b> {STATUS_LABELS.get(previous_status, previous_status)}"
            f" → {STATUS_LABELS.get(appointment.status, appointment.status)}"
        )
        return await self.dispatch(notification_type, message, appointment.id, db)

    async def send_reminders(self, db: Session, target_date: Optional[date] = None) -> int:
        """
        Day-before reminders for confirmed appointments

        Each appointment is reminded once: notification_sent is set only
        after Telegram accepted the message, so failed ones are retried on
        the next run.

        Args:
            db: database session
            target_date: day whose appointments are reminded (default: tomorrow)

        Returns:
            int: number of reminders delivered
        """
        target_date = target_date or date.today() + timedelta(days=1)

        pending = db.query(Appointment, Service.name).join(
            Service, Service.id == Appointment.service_id
        ).filter(
            Appointment.appointment_date == target_date,
            Appointment.status == "confirmed",
            Appointment.notification_sent == False  # noqa: E712
        ).order_by(Appointment.appointment_time).all()

        logger.info(f"{len(pending)} appointments to remind for {target_date}")

        sent = 0
        for appointment, service_name in pending:
            message = (
                f"👤 <b>Client:</b> {describe_client(appointment)}\n"
                f"💆 <b>Service:</b> {html.escape(service_name)}\n"
                f"📆 <b>Date:</b> {appointment.appointment_date:%d.%m.%Y} {appointment.appointment_time:%H:%M}"
            )
            if not await self.dispatch(NotificationType.REMINDER, message, appointment.id, db):
                logger.error(f"Reminder for appointment {appointment.id} not delivered")
                continue

            try:
                appointment.notification_sent = True
                db.commit()
            except SQLAlchemyError as e:
                db.rollback()
                logger.error(f"Could not mark appointment {appointment.id} as reminded: {e}")
                continue
            sent += 1

        return sent


def describe_client(appointment) -> str:
    if appointment.client_user_id:
        return f"user {html.escape(appointment.client_user_id)}"
    return f"{html.escape(appointment.guest_name)} ({html.escape(appointment.guest_phone)}, guest)"


notification_service = NotificationService()

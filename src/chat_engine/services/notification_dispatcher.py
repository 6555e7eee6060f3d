"""Push / email notifications for recipients who are not watching the conversation.

Each channel is decided and delivered independently. Provider failures are
logged and reported in the result; they never propagate to the message sender.
"""
from __future__ import annotations

import asyncio
import html
import logging
import re
from collections import Counter
from typing import Any

from chat_engine.application.dto.notification import ChannelResult, NotificationResult
from chat_engine.application.ports.notifications import (
    DeliveryError,
    EmailGateway,
    PushGateway,
)
from chat_engine.application.uow import UoWFactory
from chat_engine.domain.entities.message import Message
from chat_engine.domain.entities.notification_preference import NotificationPreference
from chat_engine.domain.entities.participant import Participant
from chat_engine.domain.value_objects.enums import DeliveryOutcome, NotificationChannel

logger = logging.getLogger(__name__)

_EMAIL_RE = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")


def is_valid_email(address: str | None) -> bool:
    return bool(address and _EMAIL_RE.match(address))


class NotificationDispatcher:
    def __init__(
        self,
        *,
        uow_factory: UoWFactory,
        push_gateway: PushGateway | None = None,
        email_gateway: EmailGateway | None = None,
        notify_when_online: bool = False,
        app_base_url: str = "",
    ) -> None:
        self._uow_factory = uow_factory
        self._push = push_gateway
        self._email = email_gateway
        self._notify_when_online = notify_when_online
        self._app_base_url = app_base_url.rstrip("/")
        self._tasks: set[asyncio.Task[NotificationResult | None]] = set()
        self._outcomes: Counter[tuple[str, str]] = Counter()

    async def notify(
        self,
        recipient_id: str,
        sender_name: str,
        preview: str,
        *,
        data: dict[str, Any] | None = None,
    ) -> NotificationResult:
        async with self._uow_factory() as uow:
            preference = await uow.participants.get_preferences(recipient_id)
            recipient = await uow.participants.get(recipient_id)

        if preference is None or recipient is None:
            logger.warning("No notification preferences for recipient %s", recipient_id)
            return NotificationResult(recipient_id=recipient_id)

        push_result, email_result = await asyncio.gather(
            self._send_push(preference, sender_name, preview, data or {}),
            self._send_email(recipient, preference, sender_name, preview),
        )
        result = NotificationResult(
            recipient_id=recipient_id, channels=[push_result, email_result],
        )
        for channel_result in result.channels:
            self._outcomes[(channel_result.channel.value, channel_result.outcome.value)] += 1

        if result.degraded:
            logger.warning(
                "Notification delivery degraded for %s: %s",
                recipient_id,
                ", ".join(
                    f"{c.channel}={c.error}" for c in result.channels
                    if c.outcome == DeliveryOutcome.FAILED
                ),
            )
        elif result.is_noop:
            logger.debug("No notification channel available for %s", recipient_id)
        return result

    async def notify_message(
        self,
        message: Message,
        sender: Participant,
        *,
        recipient_online: bool,
    ) -> NotificationResult | None:
        """Notify the recipient of ``message`` unless they are watching the conversation."""
        if recipient_online and not self._notify_when_online:
            logger.debug(
                "Recipient %s is online in %s, skipping notification",
                message.recipient_id, message.conversation_key,
            )
            return None
        return await self.notify(
            message.recipient_id,
            sender.display_name or "someone",
            message.preview,
            data={
                "type": "new_message",
                "message_id": str(message.id),
                "conversation_key": message.conversation_key,
                "sender_id": sender.id,
                "sender_name": sender.display_name,
                "action": "open_chat",
            },
        )

    def dispatch_in_background(
        self,
        message: Message,
        sender: Participant,
        *,
        recipient_online: bool,
    ) -> asyncio.Task[NotificationResult | None]:
        task = asyncio.create_task(
            self.notify_message(message, sender, recipient_online=recipient_online),
            name=f"notify-{message.id}",
        )
        self._tasks.add(task)
        task.add_done_callback(self._on_task_done)
        return task

    def _on_task_done(self, task: asyncio.Task[NotificationResult | None]) -> None:
        self._tasks.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.error(
                "Notification task %s failed", task.get_name(), exc_info=exc,
            )

    async def drain(self) -> None:
        """Wait for every in-flight notification task."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    @property
    def metrics(self) -> dict[str, dict[str, int]]:
        out: dict[str, dict[str, int]] = {}
        for (channel, outcome), count in self._outcomes.items():
            out.setdefault(channel, {})[outcome] = count
        return out

    # -- channels ---------------------------------------------------------

    async def _send_push(
        self,
        preference: NotificationPreference,
        sender_name: str,
        preview: str,
        data: dict[str, Any],
    ) -> ChannelResult:
        channel = NotificationChannel.PUSH
        if not preference.push_enabled:
            return ChannelResult(channel, DeliveryOutcome.DISABLED)
        if not preference.push_token or self._push is None:
            return ChannelResult(channel, DeliveryOutcome.UNAVAILABLE)

        title = f"New message from {sender_name}"
        body = preview or "You have a new message"
        payload = {k: str(v) for k, v in data.items()}
        try:
            await self._push.send(preference.push_token, title, body, payload)
        except DeliveryError as exc:
            logger.warning(
                "Push delivery failed for %s (permanent=%s): %s",
                preference.user_id, exc.permanent, exc.detail,
            )
            return ChannelResult(channel, DeliveryOutcome.FAILED, error=exc.detail)
        except Exception as exc:
            logger.exception("Unexpected push gateway error for %s", preference.user_id)
            return ChannelResult(channel, DeliveryOutcome.FAILED, error=str(exc))
        logger.info("Push notification sent to %s", preference.user_id)
        return ChannelResult(channel, DeliveryOutcome.DELIVERED)

    async def _send_email(
        self,
        recipient: Participant,
        preference: NotificationPreference,
        sender_name: str,
        preview: str,
    ) -> ChannelResult:
        channel = NotificationChannel.EMAIL
        if not preference.email_enabled:
            return ChannelResult(channel, DeliveryOutcome.DISABLED)
        if not is_valid_email(recipient.email) or self._email is None:
            return ChannelResult(channel, DeliveryOutcome.UNAVAILABLE)

        subject = f"New message from {sender_name} on Changánet"
        try:
            await self._email.send(
                recipient.email,  # type: ignore[arg-type]
                subject,
                render_email_html(recipient.display_name, sender_name, preview, self._app_base_url),
                render_email_text(recipient.display_name, sender_name, preview, self._app_base_url),
            )
        except DeliveryError as exc:
            logger.warning("Email delivery failed for %s: %s", recipient.id, exc.detail)
            return ChannelResult(channel, DeliveryOutcome.FAILED, error=exc.detail)
        except Exception as exc:
            logger.exception("Unexpected email gateway error for %s", recipient.id)
            return ChannelResult(channel, DeliveryOutcome.FAILED, error=str(exc))
        logger.info("Email notification sent to %s", recipient.id)
        return ChannelResult(channel, DeliveryOutcome.DELIVERED)


def render_email_text(recipient_name: str, sender_name: str, preview: str, base_url: str) -> str:
    greeting = f"Hi {recipient_name}," if recipient_name else "Hi,"
    return (
        f"{greeting}\n\n"
        f"{sender_name} sent you a new message:\n\n"
        f"  {preview}\n\n"
        f"Reply at {base_url}/chat\n\n"
        "You are receiving this because email notifications are enabled "
        "in your account settings.\n"
    )


def render_email_html(recipient_name: str, sender_name: str, preview: str, base_url: str) -> str:
    name = html.escape(recipient_name) if recipient_name else ""
    sender = html.escape(sender_name)
    body = html.escape(preview)
    link = html.escape(f"{base_url}/chat", quote=True)
    return f"""<!DOCTYPE html>
<html>
<head><meta charset="UTF-8"><title>New message</title></head>
<body style="font-family: sans-serif; background: #f8fafc; color: #333;">
  <div style="max-width: 600px; margin: 0 auto; background: #fff; padding: 24px;">
    <p>Hi {name},</p>
    <p><strong>{sender}</strong> sent you a new message:</p>
    <blockquote style="border-left: 4px solid #10B981; margin: 0; padding: 8px 16px;">{body}</blockquote>
    <p><a href="{link}" style="color: #10B981;">Open the conversation</a></p>
    <p style="font-size: 12px; color: #888;">
      You are receiving this because email notifications are enabled in your account settings.
    </p>
  </div>
</body>
</html>
"""

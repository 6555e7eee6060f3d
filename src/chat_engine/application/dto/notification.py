from __future__ import annotations

from dataclasses import dataclass, field

from chat_engine.domain.value_objects.enums import DeliveryOutcome, NotificationChannel


@dataclass(frozen=True, slots=True)
class ChannelResult:
    channel: NotificationChannel
    outcome: DeliveryOutcome
    error: str | None = None


@dataclass(frozen=True, slots=True)
class NotificationResult:
    recipient_id: str
    channels: list[ChannelResult] = field(default_factory=list)

    @property
    def attempted(self) -> list[ChannelResult]:
        return [
            c for c in self.channels
            if c.outcome in (DeliveryOutcome.DELIVERED, DeliveryOutcome.FAILED)
        ]

    @property
    def is_noop(self) -> bool:
        return not self.attempted

    @property
    def degraded(self) -> bool:
        """At least one channel was attempted and failed."""
        return any(c.outcome == DeliveryOutcome.FAILED for c in self.channels)

    def outcome_for(self, channel: NotificationChannel) -> DeliveryOutcome | None:
        for c in self.channels:
            if c.channel == channel:
                return c.outcome
        return None

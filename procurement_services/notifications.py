"""
procurement_services.notifications -- post-commit notification dispatch.

Responsibility:
    Defines the ``Notifier`` collaborator protocol and the outbox the
    coordinator fills while a transaction runs.  Notifications are handed
    to the notifier only after the transaction commits.

Architecture position:
    Services layer.  Notification *delivery* (email, push, chat) is an
    external collaborator; this module only shapes and hands off messages.

Invariants enforced:
    - Nothing is dispatched for a rolled-back transaction.
    - A delivery failure is logged and never propagates; the committed
      state transition stands.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Mapping, Protocol, runtime_checkable
from uuid import UUID

from procurement_kernel.logging_config import get_logger

logger = get_logger("services.notifications")


@dataclass(frozen=True)
class Notification:
    """A fire-and-forget message about a state transition."""

    kind: str
    entity_id: UUID
    recipients: tuple[UUID, ...] = ()
    payload: Mapping[str, Any] = field(default_factory=dict)


@runtime_checkable
class Notifier(Protocol):
    def notify(self, notification: Notification) -> None:
        ...


class LoggingNotifier:
    """Default notifier: writes each notification to the structured log."""

    def notify(self, notification: Notification) -> None:
        logger.info(
            "notification",
            extra={
                "kind": notification.kind,
                "notified_entity_id": str(notification.entity_id),
                "recipients": [str(r) for r in notification.recipients],
                "payload": dict(notification.payload),
            },
        )


class NullNotifier:
    """Discards notifications (notifications disabled)."""

    def notify(self, notification: Notification) -> None:
        return None


class NotificationOutbox:
    """Notifications collected during one coordinator transaction."""

    def __init__(self) -> None:
        self._pending: list[Notification] = []

    def add(
        self,
        kind: str,
        entity_id: UUID,
        recipients: tuple[UUID | None, ...] | list[UUID | None] = (),
        **payload: Any,
    ) -> None:
        unique: list[UUID] = []
        for r in recipients:
            if r is not None and r not in unique:
                unique.append(r)
        self._pending.append(
            Notification(
                kind=kind,
                entity_id=entity_id,
                recipients=tuple(unique),
                payload=payload,
            )
        )

    def discard(self) -> None:
        self._pending.clear()

    def __len__(self) -> int:
        return len(self._pending)

    def dispatch(self, notifier: Notifier) -> int:
        """
        Hand every pending notification to ``notifier``.

        Returns:
            Number of notifications delivered without error.
        """
        delivered = 0
        pending, self._pending = self._pending, []
        for notification in pending:
            try:
                notifier.notify(notification)
                delivered += 1
            except Exception:
                # Delivery is fire-and-forget; the transition is already committed.
                logger.warning(
                    "notification_delivery_failed",
                    extra={
                        "kind": notification.kind,
                        "notified_entity_id": str(notification.entity_id),
                    },
                    exc_info=True,
                )
        return delivered

"""
procurement_services -- transaction-owning services above the kernel.

Exports the WorkflowCoordinator (the engine's external API), the payment
webhook adapter and the notification collaborators.
"""

from procurement_services.notifications import (
    LoggingNotifier,
    Notification,
    NotificationOutbox,
    Notifier,
    NullNotifier,
)
from procurement_services.payment_webhook import (
    PAYMENT_GATEWAY_ACTOR,
    PaymentNotification,
    apply_payment_notification,
    decode_extra_data,
    encode_extra_data,
)
from procurement_services.workflow_coordinator import WorkflowCoordinator

__all__ = [
    "LoggingNotifier",
    "Notification",
    "NotificationOutbox",
    "Notifier",
    "NullNotifier",
    "PAYMENT_GATEWAY_ACTOR",
    "PaymentNotification",
    "WorkflowCoordinator",
    "apply_payment_notification",
    "decode_extra_data",
    "encode_extra_data",
]

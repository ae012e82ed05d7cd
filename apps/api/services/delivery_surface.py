"""
Delivery Surface

Where a delivered quote goes: an email notification, the widget slot, or
both. The delivery is already recorded by the time the surface runs, so a
surface failure is logged and never turned into a scheduling failure.
"""

import logging
from typing import Optional

from services.notification_service import NotificationService, notification_service
from services.quote_schedule import DeliveryMethod, QuoteDelivery
from services.quote_widget_cache import write_widget_quote

logger = logging.getLogger(__name__)


class DeliverySurface:
    """Receives each delivered quote. Returns True if every channel accepted it."""

    def deliver(self, delivery: QuoteDelivery) -> bool:
        raise NotImplementedError


class DefaultDeliverySurface(DeliverySurface):
    """Notification via email, widget via the Redis slot."""

    def __init__(self, notifier: Optional[NotificationService] = None):
        self.notifier = notifier or notification_service

    def deliver(self, delivery: QuoteDelivery) -> bool:
        method = DeliveryMethod(delivery.delivery_method)
        accepted = True
        if method.uses_notification:
            accepted = self.notifier.send_quote_notification(delivery.author, delivery.text) and accepted
        if method.uses_widget:
            accepted = write_widget_quote(
                quote_id=delivery.quote_id,
                schedule_id=delivery.schedule_id,
                author=delivery.author,
                text=delivery.text,
            ) and accepted
        return accepted


def deliver_safely(surface: DeliverySurface, delivery: QuoteDelivery) -> bool:
    """Hand a delivery to the surface; any failure is logged, not raised."""
    try:
        accepted = surface.deliver(delivery)
    except Exception as e:
        logger.warning(
            f"Delivery surface failed for quote {delivery.quote_id} "
            f"(schedule {delivery.schedule_id}): {e}",
            exc_info=True,
        )
        return False
    if not accepted:
        logger.warning(
            f"Delivery surface did not accept quote {delivery.quote_id} "
            f"(schedule {delivery.schedule_id}, method {delivery.delivery_method.value})"
        )
    return bool(accepted)

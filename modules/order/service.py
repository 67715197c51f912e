"""
Order Module - Service Layer
==============================
Creates paid orders from renewed subscriptions.
"""

import logging
from datetime import datetime
from typing import List, Optional

from sqlalchemy import desc
from sqlalchemy.orm import Session

from common.helpers import now_utc
from common.repository import Repository
from modules.order.models import Order, OrderItem, OrderStatus
from modules.payment.gateways import ChargeResult

logger = logging.getLogger("storefront.order")


class OrderService:

    def create_from_subscription(self, tx: Repository, subscription, charge: ChargeResult,
                                 now: Optional[datetime] = None) -> Order:
        """Paid order mirroring the subscription's items at their current snapshot price."""
        now = now or now_utc()
        order = Order(
            user_id=subscription.user_id,
            subscription_id=subscription.id,
            total_amount=subscription.amount,
            status=OrderStatus.PAID,
            payment_ref=charge.reference,
            paid_at=now,
        )
        for item in subscription.items:
            order.items.append(OrderItem(
                product_id=item.product_id,
                quantity=item.quantity,
                price=item.price,
            ))
        tx.save(order)
        logger.info(f"Order #{order.id} created from subscription {subscription.id} ({order.total_amount})")
        return order

    def get_subscription_orders(self, db: Session, subscription_id: int) -> List[Order]:
        return db.query(Order).filter(
            Order.subscription_id == subscription_id,
        ).order_by(desc(Order.created_at), desc(Order.id)).all()


# Singleton
order_service = OrderService()

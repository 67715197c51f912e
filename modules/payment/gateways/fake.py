"""
Fake Processor
===============
In-process processor for development and tests. No external calls.
Configure it to succeed, fail everything, or decline specific subscriptions.
"""

import logging
import uuid
from typing import Iterable

from modules.payment.gateways import BasePaymentProcessor, ChargeResult, register_processor

logger = logging.getLogger("storefront.gateway.fake")


class FakePaymentProcessor(BasePaymentProcessor):
    name = "fake"
    label = "Fake (sandbox)"

    def __init__(self):
        self.should_succeed = True
        self.failure_reason = "Card declined"
        self.declined_ids = set()
        self.calls = []

    def configure(self, should_succeed: bool = True, failure_reason: str = "Card declined",
                  decline_ids: Iterable[int] = ()):
        self.should_succeed = should_succeed
        self.failure_reason = failure_reason
        self.declined_ids = set(decline_ids)

    def reset(self):
        self.configure()
        self.calls.clear()

    def charge(self, subscription) -> ChargeResult:
        self.calls.append({
            "subscription_id": subscription.id,
            "amount": subscription.amount,
            "payment_method_id": subscription.payment_method_id,
        })
        if not self.should_succeed or subscription.id in self.declined_ids:
            logger.info(f"Fake charge declined [sub {subscription.id}]: {self.failure_reason}")
            return ChargeResult(success=False, reason=self.failure_reason)

        ref = f"fake_{uuid.uuid4().hex[:12]}"
        logger.info(f"Fake charge ok [sub {subscription.id}]: {subscription.amount} ref={ref}")
        return ChargeResult(success=True, reference=ref)


register_processor(FakePaymentProcessor())

"""
Payment Service
=================
Resolves the configured payment processor for subscription renewals.
Active processor is selected via settings.PAYMENT_PROCESSOR.
"""

import logging
from typing import Optional

from config.settings import PAYMENT_PROCESSOR
from common.exceptions import InvalidInputError

# Import processor modules to trigger register_processor() calls
from modules.payment.gateways import BasePaymentProcessor, get_processor, get_all_processor_names
import modules.payment.gateways.fake     # noqa: F401

logger = logging.getLogger("storefront.payment")


class PaymentService:

    def get_active_processor(self, name: Optional[str] = None) -> BasePaymentProcessor:
        name = name or PAYMENT_PROCESSOR
        processor = get_processor(name)
        if processor is None:
            logger.error(f"Unknown payment processor '{name}' (registered: {get_all_processor_names()})")
            raise InvalidInputError(f"Payment processor '{name}' is not available")
        return processor


# Singleton
payment_service = PaymentService()

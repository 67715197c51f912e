"""
Payment Processor Abstraction
===============================
Each processor implements charge(subscription) -> ChargeResult.
Registry pattern for processor lookup by name.
"""

import logging
from typing import Dict, Optional, List
from dataclasses import dataclass

logger = logging.getLogger("storefront.gateway")


@dataclass
class ChargeResult:
    """Result of charge()."""
    success: bool
    reference: Optional[str] = None
    reason: Optional[str] = None


class BasePaymentProcessor:
    """Abstract processor interface."""
    name: str = ""
    label: str = ""

    def charge(self, subscription) -> ChargeResult:
        raise NotImplementedError


# ── Registry ──

_PROCESSORS: Dict[str, BasePaymentProcessor] = {}


def register_processor(processor: BasePaymentProcessor):
    _PROCESSORS[processor.name] = processor


def get_processor(name: str) -> Optional[BasePaymentProcessor]:
    return _PROCESSORS.get(name)


def get_all_processor_names() -> List[str]:
    return list(_PROCESSORS.keys())

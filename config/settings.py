"""
Storefront Core - Centralized Configuration
============================================
All environment variables and constants are loaded here.
No other module should call os.getenv() directly.
"""

import os
from decimal import Decimal
from dotenv import load_dotenv

load_dotenv()


# ==========================================
# 🗄️ Database
# ==========================================
DATABASE_URL = os.getenv("DATABASE_URL", "sqlite:///./storefront.db")

DB_POOL_SIZE = int(os.getenv("DB_POOL_SIZE", "20"))
DB_MAX_OVERFLOW = int(os.getenv("DB_MAX_OVERFLOW", "40"))


# ==========================================
# 🛒 Cart Rates
# ==========================================
SHIPPING_FLAT_RATE = Decimal(os.getenv("SHIPPING_FLAT_RATE", "5.99"))
FREE_SHIPPING_THRESHOLD = Decimal(os.getenv("FREE_SHIPPING_THRESHOLD", "50"))
TAX_RATE = Decimal(os.getenv("TAX_RATE", "0.10"))

GIFT_MESSAGE_MAX_LENGTH = 500


# ==========================================
# 🔁 Subscriptions
# ==========================================
SCHEDULER_ENABLED = os.getenv("SCHEDULER_ENABLED", "true").lower() == "true"
RENEWAL_INTERVAL_MINUTES = int(os.getenv("RENEWAL_INTERVAL_MINUTES", "60"))

# Name of a registered payment processor (see modules/payment/gateways)
PAYMENT_PROCESSOR = os.getenv("PAYMENT_PROCESSOR", "fake")


# ==========================================
# 🔧 App
# ==========================================
DEBUG = os.getenv("DEBUG", "false").lower() == "true"
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()

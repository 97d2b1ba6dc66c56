import os
from decimal import Decimal

# Database Configuration
# Uses default credentials for local Docker Compose setup
DB_URL = os.getenv("DATABASE_URL", "postgres://user:password@db:5432/marketplace_db")

# Application Metadata
PROJECT_NAME = "Kitchen Marketplace Orders & Settlement"
VERSION = "1.0.0"
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")

# Payment gateway (Paystack-compatible API)
PAYMENT_SECRET_KEY = os.getenv("PAYMENT_SECRET_KEY", "")
PAYMENT_API_URL = os.getenv("PAYMENT_API_URL", "https://api.paystack.co")
PAYMENT_CURRENCY = os.getenv("PAYMENT_CURRENCY", "NGN")
GATEWAY_TIMEOUT = float(os.getenv("GATEWAY_TIMEOUT", 10.0))
SIGNATURE_HEADER = "x-paystack-signature"

# Amounts reported by the gateway are in minor units (kobo)
MINOR_UNITS_PER_MAJOR = Decimal("100")

# Vendor receives total / 1.2, the platform keeps the rest
PAYOUT_DIVISOR = Decimal("1.2")

# Notification delivery (optional, fire-and-forget)
NOTIFICATION_WEBHOOK_URL = os.getenv("NOTIFICATION_WEBHOOK_URL", "")

# Outbox Poller Configuration
POLLING_INTERVAL = int(os.getenv("POLLING_INTERVAL", 1)) # Poller checks for new events every N seconds
MAX_ATTEMPTS = int(os.getenv("MAX_ATTEMPTS", 5)) # Max retries for an event
BATCH_SIZE = int(os.getenv("BATCH_SIZE", 50)) # How many events to fetch per poll

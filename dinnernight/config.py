import os

from dotenv import load_dotenv

load_dotenv()

# ----------------------------
# Config & Constants
# ----------------------------
DATABASE_URL = os.environ.get(
    "DATABASE_URL", "sqlite+aiosqlite:///./dinnernight.db"
)
# postgres only; sqlite runs single-writer
DB_POOL_SIZE = int(os.environ.get("DB_POOL_SIZE", "10"))
DB_MAX_OVERFLOW = int(os.environ.get("DB_MAX_OVERFLOW", "10"))
DB_POOL_TIMEOUT = int(os.environ.get("DB_POOL_TIMEOUT", "30"))
# 0: derive from the pool size
DB_GATE_LIMIT = int(os.environ.get("DB_GATE_LIMIT", "0"))

SESSION_SECRET = os.environ.get("SESSION_SECRET", "dev-secret-change-me")
ADMIN_USERNAME = os.environ.get("ADMIN_USERNAME", "admin")
ADMIN_PASSWORD = os.environ.get("ADMIN_PASSWORD", "supasecret")

LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO").upper()

# 'mock' | 'paystack'
PAYMENT_GATEWAY = os.environ.get("PAYMENT_GATEWAY", "mock").lower()
PAYSTACK_SECRET_KEY = os.environ.get("PAYSTACK_SECRET_KEY", "")
PAYSTACK_PUBLIC_KEY = os.environ.get("PAYSTACK_PUBLIC_KEY", "")
PAYSTACK_BASE_URL = os.environ.get(
    "PAYSTACK_BASE_URL", "https://api.paystack.co"
)
PAYSTACK_CALLBACK_URL = os.environ.get("PAYSTACK_CALLBACK_URL", "")
GATEWAY_TIMEOUT_SECONDS = float(
    os.environ.get("GATEWAY_TIMEOUT_SECONDS", "10")
)

MOCK_SECRET = os.environ.get("MOCK_SECRET", "supersecret")
MOCK_WEBHOOK_URL = os.environ.get(
    "MOCK_WEBHOOK_URL",
    "http://localhost:8000/payments/webhook"
)

# 'sql' | 'redis'
PAYSESSION_BACKEND = os.environ.get("PAYSESSION_BACKEND", "sql").lower()
REDIS_URL = os.environ.get("REDIS_URL", "redis://127.0.0.1:6379")
PAYSESSION_TTL_SECONDS = 24 * 3600

SMTP_HOST = os.environ.get("SMTP_HOST", "smtp.mailtrap.io")
SMTP_PORT = int(os.environ.get("SMTP_PORT", "2525"))
SMTP_USER = os.environ.get("SMTP_USER", "")
SMTP_PASS = os.environ.get("SMTP_PASS", "")
SMTP_FROM = os.environ.get("SMTP_FROM", "noreply@naps-dinner.com")
ADMIN_EMAIL = os.environ.get("ADMIN_EMAIL", "admin@naps-dinner.com")

APP_BASE_URL = os.environ.get("APP_BASE_URL", "http://localhost:8000")

POOL_RANGE_START = int(os.environ.get("POOL_RANGE_START", "501"))
POOL_RANGE_END = int(os.environ.get("POOL_RANGE_END", "1000"))

REFERRAL_APPROVAL_THRESHOLD = int(
    os.environ.get("REFERRAL_APPROVAL_THRESHOLD", "5")
)

CURRENCY = "ngn"

# prices in kobo
TICKET_CATEGORIES = {
    "regular": {
        "name": "Regular",
        "price": 5_000_00,
        "description": "Standard dining experience",
    },
    "couples": {
        "name": "Couples Table",
        "price": 8_000_00,
        "description": "Romantic table for two",
    },
    "vip": {
        "name": "VIP Table",
        "price": 50_000_00,
        "description": "Premium table with six seats",
    },
    "sponsors": {
        "name": "Sponsors",
        "price": 100_000_00,
        "description": "Exclusive sponsorship package",
    },
}

EVENT_DETAILS = {
    "name": "NAPS Dinner Night",
    "tagline": "Courtesy of Luminous Executives",
    "date": "December 22, 2024",
    "time": "6:00 PM - 11:00 PM",
    "venue": "Grand Ballroom, Lagos",
}

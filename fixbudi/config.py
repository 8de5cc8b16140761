import os
from decimal import Decimal
from pathlib import Path

from dotenv import load_dotenv

# Load .env from project root
env_path = Path(__file__).resolve().parent.parent / ".env"
load_dotenv(dotenv_path=env_path)

DATABASE_URL = os.getenv("DATABASE_URL", "sqlite:///./fixbudi.db")

# Security - CRITICAL: No default secret key in production
SECRET_KEY = os.getenv("SECRET_KEY")
if not SECRET_KEY:
    import warnings

    warnings.warn(
        "SECRET_KEY not set! Using insecure default - DO NOT USE IN PRODUCTION", RuntimeWarning, stacklevel=2
    )
    SECRET_KEY = "INSECURE-DEV-KEY-CHANGE-IN-PRODUCTION"  # noqa: S105 - Dev fallback only

# Frontend base URL for redirects
FRONTEND_URL = os.getenv("FRONTEND_URL", "http://localhost:5173")
ALLOWED_ORIGINS = [
    origin.strip()
    for origin in os.getenv("ALLOWED_ORIGINS", f"https://fixbudi.com,https://www.fixbudi.com,{FRONTEND_URL}").split(",")
    if origin.strip()
]

# Resend Email Configuration
RESEND_API_KEY = os.getenv("RESEND_API_KEY")
EMAIL_FROM_ADDRESS = os.getenv("EMAIL_FROM_ADDRESS", "FixBudi <noreply@fixbudi.com>")
ADMIN_NOTIFICATION_EMAIL = os.getenv("ADMIN_NOTIFICATION_EMAIL")

# Bank account number encryption key (generate with: python -c "from cryptography.fernet import Fernet; print(Fernet.generate_key().decode())")
BANK_ACCOUNT_ENCRYPTION_KEY = os.getenv("BANK_ACCOUNT_ENCRYPTION_KEY")

# Paystack Configuration (repair payments, NGN)
PAYSTACK_SECRET_KEY = os.getenv("PAYSTACK_SECRET_KEY")
PAYSTACK_API_URL = os.getenv("PAYSTACK_API_URL", "https://api.paystack.co")

# Stripe checkout (international payments)
STRIPE_SECRET_KEY = os.getenv("STRIPE_SECRET_KEY")
STRIPE_API_URL = os.getenv("STRIPE_API_URL", "https://api.stripe.com/v1")
STRIPE_WEBHOOK_SECRET = os.getenv("STRIPE_WEBHOOK_SECRET")

# Terminal Africa courier
TERMINAL_AFRICA_API_KEY = os.getenv("TERMINAL_AFRICA_API_KEY")
TERMINAL_AFRICA_API_URL = os.getenv("TERMINAL_AFRICA_API_URL", "https://api.terminal.africa/v1")
TERMINAL_AFRICA_WEBHOOK_SECRET = os.getenv("TERMINAL_AFRICA_WEBHOOK_SECRET")

# SendStack courier (credentials are issued as an app id / app secret pair)
SENDSTACK_APP_ID = os.getenv("SENDSTACK_APP_ID")
SENDSTACK_APP_SECRET = os.getenv("SENDSTACK_APP_SECRET")
SENDSTACK_API_URL = os.getenv("SENDSTACK_API_URL", "https://api.sendstack.africa/api/v1")
SENDSTACK_WEBHOOK_SECRET = os.getenv("SENDSTACK_WEBHOOK_SECRET")

# Courier HTTP calls are synchronous from the caller's point of view; a timeout aborts the booking
COURIER_TIMEOUT_SECONDS = float(os.getenv("COURIER_TIMEOUT_SECONDS", "30"))

DEFAULT_CURRENCY = os.getenv("DEFAULT_CURRENCY", "NGN")

# Fee constants
# Platform cut of every completed repair job, deducted from the repair center payout
REPAIR_COMMISSION_RATE = Decimal(os.getenv("REPAIR_COMMISSION_RATE", "0.075"))
# Platform cut of cash-to-courier delivery payments, settled separately
DELIVERY_COMMISSION_RATE = Decimal(os.getenv("DELIVERY_COMMISSION_RATE", "0.05"))
# Service fee added on top of the repair cost when the customer pays
PLATFORM_FEE_RATE = Decimal(os.getenv("PLATFORM_FEE_RATE", "0.075"))

# Days a whitelisted bank account stays locked after its last change
BANK_ACCOUNT_LOCK_DAYS = int(os.getenv("BANK_ACCOUNT_LOCK_DAYS", "14"))

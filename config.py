import os

BASE_DIR = os.path.abspath(os.path.dirname(__file__))

class Config:
    # Secrets
    SECRET_KEY = os.getenv("SECRET_KEY", "dev-only-change-me")

    # SQLite database file stored next to the code as sati.db
    SQLALCHEMY_DATABASE_URI = os.getenv(
        "DATABASE_URL",
        "sqlite:///" + os.path.join(BASE_DIR, "sati.db")
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    # Session cookie name for our auth token
    AUTH_COOKIE_NAME = "sati_session"

    # Absolute session lifetime: 7 days
    SESSION_LIFETIME_SECONDS = int(os.getenv("SESSION_ABSOLUTE_DAYS", "7")) * 24 * 60 * 60

    # Idle timeout: 30 minutes
    IDLE_TIMEOUT_SECONDS = int(os.getenv("SESSION_TIMEOUT_MINUTES", "30")) * 60

    # Session/cookie security defaults
    SESSION_COOKIE_HTTPONLY = True
    SESSION_COOKIE_SAMESITE = "Lax"
    SESSION_COOKIE_SECURE = os.getenv("SESSION_COOKIE_SECURE", "false").lower() == "true"

    PASSWORD_MIN_LEN = 6
    BCRYPT_ROUNDS = int(os.getenv("BCRYPT_ROUNDS", "12"))

    # Uploaded profile images and professional documents
    UPLOAD_FOLDER = os.getenv("UPLOAD_FOLDER", os.path.join(BASE_DIR, "uploads"))
    MAX_CONTENT_LENGTH = 5 * 1024 * 1024

    # Defaults seeded into system_config; the table is the source of truth at runtime
    DEFAULT_BOOKING_RULES = {
        "max_active_bookings": ("8", "Maximum confirmed upcoming bookings per therapist"),
        "max_active_bookings_trusted": ("12", "Active booking quota for trusted therapists"),
        "max_active_bookings_vip": ("20", "Active booking quota for VIP therapists"),
        "max_active_bookings_monthly": ("30", "Active booking quota for monthly subscribers"),
        "advance_booking_days": ("0", "Minimum days in advance a booking must be made"),
        "cancellation_hours_notice": ("24", "Minimum hours of notice to cancel a booking"),
        "max_booking_duration_hours": ("4", "Maximum consecutive hours per booking"),
        "trust_promotion_enabled": ("true", "Promote therapists automatically"),
        "trust_bookings_for_trusted": ("5", "Completed bookings needed to become trusted"),
        "trust_bookings_for_vip": ("20", "Completed bookings needed to become VIP"),
        "trust_degradation_enabled": ("true", "Demote therapists automatically"),
        "trust_cancellations_for_degradation": ("5", "Cancellations in the period that trigger a demotion"),
        "trust_degradation_period_days": ("30", "Window in days for counting cancellations"),
    }

    # Email (SMTP)
    SMTP_HOST = os.getenv("SMTP_HOST")
    SMTP_PORT = int(os.getenv("SMTP_PORT", "587"))
    SMTP_USERNAME = os.getenv("SMTP_USERNAME")
    SMTP_PASSWORD = os.getenv("SMTP_PASSWORD")
    SMTP_FROM_EMAIL = os.getenv("SMTP_FROM_EMAIL")
    SMTP_USE_TLS = os.getenv("SMTP_USE_TLS", "true").lower() == "true"

    # Stripe
    STRIPE_SECRET_KEY = os.getenv("STRIPE_SECRET_KEY")
    STRIPE_WEBHOOK_SECRET = os.getenv("STRIPE_WEBHOOK_SECRET")
    ALLOWED_CURRENCIES = ("mxn", "usd", "eur")

    # Logging
    LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")
    LOG_DIR = os.getenv("LOG_DIR", os.path.join(BASE_DIR, "logs"))

    # Basic app settings
    DEBUG = False
    SEED_CONFIG_ON_STARTUP = True

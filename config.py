import os

BASE_DIR = os.path.abspath(os.path.dirname(__file__))

class Config:
    # Secrets
    SECRET_KEY = os.getenv("SECRET_KEY", "dev-only-change-me")

    # SQLite database file stored next to the app as courtslot.db
    SQLALCHEMY_DATABASE_URI = os.getenv(
        "DATABASE_URL",
        "sqlite:///" + os.path.join(BASE_DIR, "courtslot.db")
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False
    SQLALCHEMY_ENGINE_OPTIONS = {"pool_pre_ping": True}

    # Session cookie issued by the auth service
    AUTH_COOKIE_NAME = "courtslot_session"

    # 8 hours session lifetime 
    SESSION_LIFETIME_SECONDS = 8 * 60 * 60

    # Idle timeout: 20 minutes 
    IDLE_TIMEOUT_SECONDS = 20 * 60

    # Session/cookie security defaults 
    SESSION_COOKIE_HTTPONLY = True
    SESSION_COOKIE_SAMESITE = "Lax"
    SESSION_COOKIE_SECURE = False  # set True when using HTTPS

    # Holds
    HOLD_DURATION_MINUTES = int(os.getenv("HOLD_DURATION_MINUTES", "15"))
    HOLD_SWEEP_INTERVAL_SECONDS = int(os.getenv("HOLD_SWEEP_INTERVAL_SECONDS", "60"))

    # Cancellation policy
    CANCEL_CUTOFF_HOURS = int(os.getenv("CANCEL_CUTOFF_HOURS", "12"))
    CANCEL_REFUND_PERCENT = int(os.getenv("CANCEL_REFUND_PERCENT", "80"))
    # owner approves/rejects through {url}?token=...&decision=approve|reject
    CANCELLATION_DECISION_BASE_URL = os.getenv(
        "CANCELLATION_DECISION_BASE_URL",
        "http://127.0.0.1:5002/cancellations/decision"
    )

    # Money
    PLATFORM_FEE_PERCENT = int(os.getenv("PLATFORM_FEE_PERCENT", "5"))
    CURRENCY = os.getenv("CURRENCY", "NPR")

    # Deadlock retries per unit of work
    TX_MAX_ATTEMPTS = int(os.getenv("TX_MAX_ATTEMPTS", "3"))

    # Email (SMTP)
    SMTP_HOST = os.getenv("SMTP_HOST")
    SMTP_PORT = int(os.getenv("SMTP_PORT", "587"))
    SMTP_USERNAME = os.getenv("SMTP_USERNAME")
    SMTP_PASSWORD = os.getenv("SMTP_PASSWORD")
    SMTP_FROM_EMAIL = os.getenv("SMTP_FROM_EMAIL")
    SMTP_USE_TLS = os.getenv("SMTP_USE_TLS", "true").lower() == "true"
    SMTP_TIMEOUT_SECONDS = int(os.getenv("SMTP_TIMEOUT_SECONDS", "10"))

    # Stripe
    STRIPE_SECRET_KEY = os.getenv("STRIPE_SECRET_KEY")
    STRIPE_WEBHOOK_SECRET = os.getenv("STRIPE_WEBHOOK_SECRET")
    STRIPE_SUCCESS_URL = os.getenv("STRIPE_SUCCESS_URL")
    STRIPE_CANCEL_URL = os.getenv("STRIPE_CANCEL_URL")

    # Celery (periodic hold sweep)
    CELERY_BROKER_URL = os.getenv("CELERY_BROKER_URL", "redis://localhost:6379/0")
    CELERY_RESULT_BACKEND = os.getenv("CELERY_RESULT_BACKEND", "redis://localhost:6379/0")

    # Disable when the schema is created elsewhere (tests, first migrate)
    SEED_ROLES_ON_STARTUP = os.getenv("SEED_ROLES_ON_STARTUP", "true").lower() == "true"

    LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")

    # Basic app settings
    DEBUG = False

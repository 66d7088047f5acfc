import os


def _env_int(name, default=None):
    raw = os.environ.get(name, "").strip()
    return int(raw) if raw else default


def _env_flag(name, default=False):
    raw = os.environ.get(name, "").strip().lower()
    if not raw:
        return default
    return raw in {"1", "true", "yes", "on"}


class Config:
    SECRET_KEY = os.environ.get("SECRET_KEY", "dev_secret_key")
    SQLALCHEMY_DATABASE_URI = os.environ.get("SQLALCHEMY_DATABASE_URI", "sqlite:///chapterdesk.db")
    SQLALCHEMY_TRACK_MODIFICATIONS = False
    LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO").upper()
    ADMIN_EMAILS = [
        e.strip().lower()
        for e in os.environ.get("ADMIN_EMAILS", "").split(",")
        if e.strip()
    ]
    # JSON clients call the action endpoints directly.
    WTF_CSRF_ENABLED = _env_flag("WTF_CSRF_ENABLED", False)

    MAIL_SERVER = os.environ.get("MAIL_SERVER", "smtp.gmail.com")
    MAIL_PORT = _env_int("MAIL_PORT", 587)
    MAIL_USE_TLS = _env_flag("MAIL_USE_TLS", True)
    MAIL_USERNAME = os.environ.get("MAIL_USERNAME", "")
    MAIL_PASSWORD = os.environ.get("MAIL_PASSWORD", "")
    MAIL_DEFAULT_SENDER = os.environ.get("MAIL_DEFAULT_SENDER", "noreply@chapterdesk.local")

    # Pricing. Percentages are whole-number percents of the order amount.
    CURRENCY = os.environ.get("CURRENCY", "KES")
    BASE_RATE_PER_PAGE = os.environ.get("BASE_RATE_PER_PAGE", "400")
    WORDS_PER_PAGE = _env_int("WORDS_PER_PAGE", 250)
    LEVEL_MULTIPLIERS = {"masters": "1.0", "phd": "1.3"}
    WORK_TYPE_MULTIPLIERS = {"coursework": "1.0", "revision": "0.8", "statistics": "1.4"}
    URGENCY_MULTIPLIERS = {"normal": "1.0", "urgent": "1.5", "very_urgent": "2.0"}
    MULTIPLIER_MIN = "0.1"
    MULTIPLIER_MAX = "5.0"
    PLATFORM_FEE_PERCENTAGE = os.environ.get("PLATFORM_FEE_PERCENTAGE", "5")
    WRITER_COMMISSION_PERCENTAGE = os.environ.get("WRITER_COMMISSION_PERCENTAGE", "90")
    # Carried for the admin settings screen; bids are only ever accepted explicitly.
    AUTO_APPROVAL_THRESHOLD = _env_int("AUTO_APPROVAL_THRESHOLD", 50000)

    OPEN_BIDDING_ON_CREATE = _env_flag("OPEN_BIDDING_ON_CREATE", True)
    PAYMENT_DUE_DAYS = _env_int("PAYMENT_DUE_DAYS", 7)
    REVISION_DEADLINE_DAYS = _env_int("REVISION_DEADLINE_DAYS", 5)
    MAX_REVISION_REQUESTS = _env_int("MAX_REVISION_REQUESTS")

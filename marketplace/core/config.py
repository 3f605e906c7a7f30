import os


def _env_bool(name: str, default: str = "false") -> bool:
    return os.getenv(name, default).strip().lower() in ("1", "true", "yes", "on")


def _env_list(name: str, default: str = "") -> list:
    return [item.strip() for item in os.getenv(name, default).split(",") if item.strip()]


# ✅ Database
DATABASE_URL = os.getenv("DATABASE_URL", "sqlite:///./marketplace.db")

# ✅ Logging
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")
LOG_DIR = os.getenv("LOG_DIR", "logs")

# ✅ Public URLs
API_URL = os.getenv("API_URL", "http://localhost:8000")
FRONTEND_URL = os.getenv("FRONTEND_URL", "http://localhost:3000")
CORS_ORIGINS = _env_list("CORS_ORIGINS", "http://localhost:3000,http://127.0.0.1:3000")

# ✅ Identity provider
IDENTITY_ISSUER = os.getenv("IDENTITY_ISSUER", "")
IDENTITY_JWKS_URL = os.getenv("IDENTITY_JWKS_URL") or (
    f"{IDENTITY_ISSUER.rstrip('/')}/.well-known/jwks.json" if IDENTITY_ISSUER else ""
)
IDENTITY_AUDIENCE = os.getenv("IDENTITY_AUDIENCE")
IDENTITY_API_URL = os.getenv("IDENTITY_API_URL", "https://api.clerk.com/v1")
IDENTITY_SECRET_KEY = os.getenv("IDENTITY_SECRET_KEY")
IDENTITY_WEBHOOK_SECRET = os.getenv("IDENTITY_WEBHOOK_SECRET")
JWKS_CACHE_TTL_SECONDS = int(os.getenv("JWKS_CACHE_TTL_SECONDS", "3600"))
LEGACY_TOKEN_PREFIXES = tuple(_env_list("LEGACY_TOKEN_PREFIXES", "sess_,clerk_token_"))

# ✅ Token revocation
REDIS_URL = os.getenv("REDIS_URL")
REVOCATION_TTL_SECONDS = int(os.getenv("REVOCATION_TTL_SECONDS", str(24 * 60 * 60)))

# ✅ Stripe
STRIPE_SECRET_KEY = os.getenv("STRIPE_SECRET_KEY")
STRIPE_WEBHOOK_SECRET = os.getenv("STRIPE_WEBHOOK_SECRET")
PAYMENT_CURRENCY = os.getenv("PAYMENT_CURRENCY", "brl")

# ✅ Subscription lifecycle
# When true, subscriptions start ACTIVE at checkout instead of PENDING_PAYMENT.
EAGER_SUBSCRIPTION_ACTIVATION = _env_bool("EAGER_SUBSCRIPTION_ACTIVATION", "true")
EXPIRY_WARNING_DAYS = int(os.getenv("EXPIRY_WARNING_DAYS", "7"))

# ✅ Retry defaults for read-heavy database calls
DB_RETRY_MAX_RETRIES = int(os.getenv("DB_RETRY_MAX_RETRIES", "3"))
DB_RETRY_INITIAL_DELAY = float(os.getenv("DB_RETRY_INITIAL_DELAY", "0.5"))
DB_RETRY_BACKOFF_FACTOR = float(os.getenv("DB_RETRY_BACKOFF_FACTOR", "2"))

# ✅ Email
SMTP_HOST = os.getenv("SMTP_HOST", "")
SMTP_PORT = int(os.getenv("SMTP_PORT", "587"))
SMTP_USER = os.getenv("SMTP_USER", "")
SMTP_PASS = os.getenv("SMTP_PASS", "")
EMAIL_FROM = os.getenv("EMAIL_FROM", "no-reply@marketplace.local")

# ✅ Uploads
UPLOAD_DIR = os.getenv("UPLOAD_DIR", "uploads")
MAX_UPLOAD_BYTES = int(os.getenv("MAX_UPLOAD_BYTES", str(5 * 1024 * 1024)))

# ✅ Rate limiting
RATE_LIMIT_MAX_REQUESTS = int(os.getenv("RATE_LIMIT_MAX_REQUESTS", "30"))
RATE_LIMIT_WINDOW_SECONDS = int(os.getenv("RATE_LIMIT_WINDOW_SECONDS", "60"))

# ✅ Backups
BACKUP_DIR = os.getenv("BACKUP_DIR", "backups")
BACKUP_BUCKET = os.getenv("BACKUP_BUCKET")
BACKUP_RETENTION_DAYS = int(os.getenv("BACKUP_RETENTION_DAYS", "7"))

# ✅ Migrations (RUN_MIGRATIONS=1 runs alembic upgrade head at startup)
RUN_MIGRATIONS = _env_bool("RUN_MIGRATIONS", "false")

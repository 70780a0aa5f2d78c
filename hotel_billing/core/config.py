import os
from dotenv import load_dotenv

# Loads .env from the project root
load_dotenv()

_TRUTHY = {"1", "true", "yes", "on"}


def _flag(name: str, default: str) -> bool:
    return os.getenv(name, default).strip().lower() in _TRUTHY


DATABASE_URL = os.getenv("DATABASE_URL", "sqlite:///./hotel_billing.db")
ENV = os.getenv("ENV", "dev")
ENV_NORMALIZED = ENV.lower()
IS_DEV = ENV_NORMALIZED in {"dev", "development", "local"}
IS_PROD = ENV_NORMALIZED in {"prod", "production"}
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()

# CORS
_cors_env = os.getenv("CORS_ORIGINS", "")
CORS_ORIGINS = [origin.strip() for origin in _cors_env.split(",") if origin.strip() and origin.strip() != "*"]

if not CORS_ORIGINS and IS_DEV:
    CORS_ORIGINS = [
        "http://localhost:3000",
        "http://127.0.0.1:3000",
    ]

# Auth (JWT) - sub carries the hotel id
JWT_SECRET_KEY = os.getenv("JWT_SECRET_KEY", "CHANGE_ME_DEV_SECRET")
JWT_ALGORITHM = os.getenv("JWT_ALGORITHM", "HS256")
ACCESS_TOKEN_EXPIRE_MINUTES = int(os.getenv("ACCESS_TOKEN_EXPIRE_MINUTES", str(60 * 12)))

# External invoice generation (Hugging Face Inference API compatible)
INVOICE_AI_API_KEY = os.getenv("INVOICE_AI_API_KEY", os.getenv("HUGGINGFACE_API_KEY", "")).strip()
INVOICE_AI_MODEL = os.getenv("INVOICE_AI_MODEL", os.getenv("HUGGINGFACE_MODEL", "facebook/bart-large-cnn"))
INVOICE_AI_BASE_URL = os.getenv("INVOICE_AI_BASE_URL", "https://api-inference.huggingface.co").rstrip("/")
INVOICE_AI_TIMEOUT_SECONDS = float(os.getenv("INVOICE_AI_TIMEOUT_SECONDS", "10"))
INVOICE_AI_MAX_RETRIES = int(os.getenv("INVOICE_AI_MAX_RETRIES", "2"))

# Invoice artifacts
INVOICE_PDF_ENABLED = _flag("INVOICE_PDF_ENABLED", "1")
S3_BUCKET_INVOICES = os.getenv("S3_BUCKET_INVOICES", "").strip()
S3_ENDPOINT_URL = os.getenv("S3_ENDPOINT_URL", "").strip() or None
AWS_REGION = os.getenv("AWS_REGION", "us-east-1")
AWS_ACCESS_KEY_ID = os.getenv("AWS_ACCESS_KEY_ID", "").strip()
AWS_SECRET_ACCESS_KEY = os.getenv("AWS_SECRET_ACCESS_KEY", "").strip()
PRESIGNED_URL_EXPIRATION_SECONDS = int(os.getenv("PRESIGNED_URL_EXPIRATION_SECONDS", str(15 * 60)))

# Billing pipeline
BILLING_LOCK_TTL_SECONDS = int(os.getenv("BILLING_LOCK_TTL_SECONDS", "300"))
INVOICE_STORE_MAX_RETRIES = int(os.getenv("INVOICE_STORE_MAX_RETRIES", "3"))

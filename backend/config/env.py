import os
from dotenv import load_dotenv

load_dotenv()

# =====================================================
# ENV
# =====================================================
ENV = os.getenv("ENV", "development")

# =====================================================
# DATABASE
# =====================================================
MONGO_URI = os.getenv("MONGO_URI") or os.getenv("MONGODB_URI")

# =====================================================
# JWT
# =====================================================
JWT_SECRET = os.getenv("JWT_SECRET")
JWT_ALGORITHM = os.getenv("JWT_ALGORITHM", "HS256")
ACCESS_TOKEN_HOURS = int(os.getenv("ACCESS_TOKEN_HOURS", 24))

# =====================================================
# QR PAYMENTS
# =====================================================
QR_EXPIRY_MINUTES = int(os.getenv("QR_EXPIRY_MINUTES", 30))
QR_VERIFIER = os.getenv("QR_VERIFIER", "stub")          # stub | hmac
QR_VERIFIER_SECRET = os.getenv("QR_VERIFIER_SECRET")

# =====================================================
# LISTINGS / REPUTATION
# =====================================================
DEFAULT_DAILY_LISTING_LIMIT = int(os.getenv("DEFAULT_DAILY_LISTING_LIMIT", 5))
RANKING_MIN_RATINGS = int(os.getenv("RANKING_MIN_RATINGS", 3))

# =====================================================
# WORKERS
# =====================================================
EXPIRY_SWEEP_SECONDS = int(os.getenv("EXPIRY_SWEEP_SECONDS", 300))

# =====================================================
# CORS
# =====================================================
CORS_ALLOWED_ORIGINS = os.getenv("CORS_ALLOWED_ORIGINS", "").split(",")


def validate_production_env() -> None:
    if (ENV or "").lower() != "production":
        return

    required = {
        "JWT_SECRET": JWT_SECRET,
        "MONGODB_URI": MONGO_URI,
    }
    if QR_VERIFIER == "hmac":
        required["QR_VERIFIER_SECRET"] = QR_VERIFIER_SECRET

    invalid = []
    for key, value in required.items():
        val = (value or "").strip()
        if not val or val.startswith("CHANGE_THIS"):
            invalid.append(key)

    if invalid:
        raise RuntimeError(f"Production env misconfigured. Invalid keys: {', '.join(sorted(invalid))}")

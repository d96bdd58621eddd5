import hashlib
import hmac

from fastapi import HTTPException

from config import env

# ===============================
# QR PAYMENT VERIFIER
# ===============================
# "stub": every confirmation is accepted (no bank/wallet integration yet)
# "hmac": the confirmation must carry HMAC_SHA256(secret, "codigo_qr|monto")


def _require_secret() -> str:
    secret = (env.QR_VERIFIER_SECRET or "").strip()
    if not secret:
        raise HTTPException(status_code=500, detail="QR verifier secret is not configured")
    return secret


def expected_signature(codigo_qr: str, monto: float, secret: str) -> str:
    message = f"{codigo_qr}|{monto:.2f}".encode("utf-8")
    return hmac.new(secret.encode("utf-8"), message, hashlib.sha256).hexdigest()


def verify_qr_payment(intent: dict, codigo_verificacion: str | None, datos_pago: dict | None = None) -> bool:
    mode = (env.QR_VERIFIER or "stub").lower()

    if mode == "stub":
        return True

    if mode == "hmac":
        if not codigo_verificacion:
            return False
        expected = expected_signature(intent["codigo_qr"], intent["monto"], _require_secret())
        return hmac.compare_digest(expected, codigo_verificacion)

    raise HTTPException(status_code=500, detail=f"Unknown QR verifier: {mode}")

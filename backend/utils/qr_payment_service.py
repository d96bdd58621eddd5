import logging
import random
import string
import time
from datetime import datetime, timedelta

from pymongo.errors import DuplicateKeyError

from config import env
from config.constants import (
    ORDER_PENDING,
    QR_PENDING,
    QR_COMPLETED,
    QR_FAILED,
    QR_EXPIRED,
    QR_CANCELLED,
)
from utils.errors import NotFound, Conflict, InvalidAmount, Expired, PaymentRejected
from utils.guards import parse_object_id
from utils.audit import log_audit, SYSTEM_ACTOR
from utils.order_service import get_order, mark_order_paid
from utils.payment_verifier import verify_qr_payment

logger = logging.getLogger(__name__)

CODE_SUFFIX_ALPHABET = string.ascii_lowercase + string.digits
CODE_ATTEMPTS = 3


# ==============================
# Pure helpers
# ==============================

def generate_qr_code() -> str:
    suffix = "".join(random.choices(CODE_SUFFIX_ALPHABET, k=9))
    return f"QR_{int(time.time() * 1000)}_{suffix}"


def is_expired(intent: dict, now: datetime) -> bool:
    expires_at = intent.get("fecha_expiracion")
    return (
        intent.get("estado") == QR_PENDING
        and expires_at is not None
        and now > expires_at
    )


def amounts_match(a: float, b: float) -> bool:
    return round(float(a), 2) == round(float(b), 2)


# ==============================
# Lazy expiry (atomic)
# ==============================

async def expire_if_due(db, intent: dict, now: datetime) -> dict:
    """
    Flips a pending intent past its expiry to `expirado`.
    The write is conditional, so concurrent readers cannot clobber a
    confirmation that landed in between.
    """
    if not is_expired(intent, now):
        return intent

    result = await db.pagos_qr.update_one(
        {"_id": intent["_id"], "estado": QR_PENDING, "fecha_expiracion": {"$lt": now}},
        {"$set": {"estado": QR_EXPIRED}},
    )
    if result.modified_count:
        logger.info("QR_PAYMENT_EXPIRED intent=%s", intent["_id"])
        intent = dict(intent)
        intent["estado"] = QR_EXPIRED
        return intent

    return await db.pagos_qr.find_one({"_id": intent["_id"]})


async def sweep_expired_intents(db, now: datetime | None = None) -> int:
    now = now or datetime.utcnow()
    result = await db.pagos_qr.update_many(
        {"estado": QR_PENDING, "fecha_expiracion": {"$lt": now}},
        {"$set": {"estado": QR_EXPIRED}},
    )
    return result.modified_count


# ==============================
# Create
# ==============================

async def create_intent(
    db,
    *,
    order_id,
    amount: float,
    channel: str,
    qr_data: dict | None = None,
    now: datetime | None = None,
) -> dict:
    now = now or datetime.utcnow()
    order = await get_order(db, order_id)

    if not amounts_match(amount, order["monto_total"]):
        raise InvalidAmount()

    if order["estado"] != ORDER_PENDING:
        raise Conflict(f"El pedido no admite pagos en estado {order['estado']}")

    intent = {
        "id_pedido": order["_id"],
        "monto": round(float(amount), 2),
        "metodo_pago": channel,
        "datos_qr": qr_data or {},
        "estado": QR_PENDING,
        "fecha_creacion": now,
        "fecha_expiracion": now + timedelta(minutes=env.QR_EXPIRY_MINUTES),
        "fecha_pago": None,
        "codigo_verificacion": None,
        "datos_pago": {},
    }

    for attempt in range(CODE_ATTEMPTS):
        intent["codigo_qr"] = generate_qr_code()
        try:
            await db.pagos_qr.insert_one(intent)
            break
        except DuplicateKeyError:
            intent.pop("_id", None)
            if attempt == CODE_ATTEMPTS - 1:
                raise

    # keep a single live intent per order, once the new one is stored
    await db.pagos_qr.update_many(
        {"id_pedido": order["_id"], "estado": QR_PENDING, "_id": {"$ne": intent["_id"]}},
        {"$set": {"estado": QR_CANCELLED}},
    )

    logger.info("QR_PAYMENT_CREATED intent=%s order=%s", intent["_id"], order["_id"])
    return intent


# ==============================
# Reads
# ==============================

async def get_intent(db, intent_id, *, now: datetime | None = None) -> dict:
    now = now or datetime.utcnow()
    intent = await db.pagos_qr.find_one({"_id": parse_object_id(intent_id, "id_pago")})
    if not intent:
        raise NotFound("Pago QR no encontrado")
    return await expire_if_due(db, intent, now)


async def get_intent_by_code(db, code: str, *, now: datetime | None = None) -> dict:
    now = now or datetime.utcnow()
    intent = await db.pagos_qr.find_one({"codigo_qr": code})
    if not intent:
        raise NotFound("Código QR no válido")
    return await expire_if_due(db, intent, now)


async def list_intents(db, *, status: str | None = None, skip: int = 0, limit: int = 10, now: datetime | None = None):
    await sweep_expired_intents(db, now)

    query = {"estado": status} if status else {}
    total = await db.pagos_qr.count_documents(query)
    cursor = db.pagos_qr.find(query).sort("fecha_creacion", -1).skip(skip).limit(limit)
    return await cursor.to_list(length=limit), total


# ==============================
# Confirm (payment -> order cascade)
# ==============================

async def _restore_pending(db, intent_id) -> None:
    await db.pagos_qr.update_one(
        {"_id": intent_id, "estado": QR_COMPLETED},
        {
            "$set": {
                "estado": QR_PENDING,
                "fecha_pago": None,
                "codigo_verificacion": None,
                "datos_pago": {},
            }
        },
    )
    logger.warning("QR_PAYMENT_ROLLED_BACK intent=%s", intent_id)


async def confirm_intent(
    db,
    intent_id,
    *,
    verification_code: str | None = None,
    payment_data: dict | None = None,
    actor_id=None,
    now: datetime | None = None,
) -> dict:
    now = now or datetime.utcnow()
    intent = await db.pagos_qr.find_one({"_id": parse_object_id(intent_id, "id_pago")})
    if not intent:
        raise NotFound("Pago QR no encontrado")

    if intent["estado"] == QR_COMPLETED:
        raise Conflict("El pago ya ha sido procesado")

    if intent.get("fecha_expiracion") and now > intent["fecha_expiracion"]:
        await expire_if_due(db, intent, now)
        raise Expired()

    if intent["estado"] != QR_PENDING:
        raise Conflict(f"El pago QR está {intent['estado']}")

    order = await db.pedidos.find_one({"_id": intent["id_pedido"]})
    if not order:
        raise NotFound("Pedido no encontrado")

    if order["estado"] != ORDER_PENDING:
        raise Conflict(f"El pedido no admite pagos en estado {order['estado']}")

    if not verify_qr_payment(intent, verification_code, payment_data):
        await db.pagos_qr.update_one(
            {"_id": intent["_id"], "estado": QR_PENDING},
            {"$set": {"estado": QR_FAILED}},
        )
        logger.info("QR_PAYMENT_FAILED intent=%s", intent["_id"])
        raise PaymentRejected()

    update = {
        "estado": QR_COMPLETED,
        "fecha_pago": now,
        "codigo_verificacion": verification_code,
        "datos_pago": payment_data or {},
    }
    result = await db.pagos_qr.update_one(
        {"_id": intent["_id"], "estado": QR_PENDING},
        {"$set": update},
    )
    if result.modified_count == 0:
        raise Conflict("El pago ya ha sido procesado")

    try:
        paid = await mark_order_paid(db, order["_id"], now=now)
    except Exception:
        await _restore_pending(db, intent["_id"])
        raise

    if not paid:
        await _restore_pending(db, intent["_id"])
        raise Conflict("El pedido cambió de estado durante la confirmación del pago")

    await log_audit(
        db,
        "QR_PAYMENT_CONFIRMED",
        entity="pagos_qr",
        entity_id=intent["_id"],
        actor_id=actor_id,
        actor_role="usuario" if actor_id else SYSTEM_ACTOR,
        metadata={"order_id": str(order["_id"]), "monto": intent["monto"]},
    )
    logger.info("QR_PAYMENT_CONFIRMED intent=%s order=%s", intent["_id"], order["_id"])

    intent = dict(intent)
    intent.update(update)
    return intent


# ==============================
# Cancel
# ==============================

async def cancel_intent(db, intent_id, *, now: datetime | None = None) -> dict:
    now = now or datetime.utcnow()
    intent = await get_intent(db, intent_id, now=now)

    if intent["estado"] == QR_COMPLETED:
        raise Conflict("No se puede cancelar un pago completado")

    if intent["estado"] != QR_PENDING:
        raise Conflict(f"El pago QR ya está {intent['estado']}")

    result = await db.pagos_qr.update_one(
        {"_id": intent["_id"], "estado": QR_PENDING},
        {"$set": {"estado": QR_CANCELLED}},
    )
    if result.modified_count == 0:
        raise Conflict("El pago QR fue modificado por otra operación")

    intent = dict(intent)
    intent["estado"] = QR_CANCELLED
    return intent

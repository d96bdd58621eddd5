import logging
from datetime import datetime
from fastapi import HTTPException

from config.constants import (
    ORDER_PENDING,
    ORDER_PAID,
    ORDER_COMPLETED,
    ORDER_CANCELLED,
    ORDER_STATUSES,
    ORDER_TRANSITIONS,
    ROLE_ADMIN,
)
from utils.errors import NotFound, Conflict
from utils.guards import parse_object_id
from utils.audit import log_audit

logger = logging.getLogger(__name__)


# ==============================
# Transition table guard
# ==============================

def can_transition(current: str, new: str) -> bool:
    return new in ORDER_TRANSITIONS.get(current, set())


def assert_transition(current: str, new: str) -> None:
    if new not in ORDER_STATUSES:
        raise HTTPException(400, f"Estado de pedido inválido: {new}")

    if not can_transition(current, new):
        raise Conflict(f"Transición no permitida: {current} -> {new}")


# ==============================
# Reads
# ==============================

async def get_order(db, order_id) -> dict:
    order = await db.pedidos.find_one({"_id": parse_object_id(order_id, "id_pedido")})
    if not order:
        raise NotFound("Pedido no encontrado")
    return order


# ==============================
# Create
# ==============================

async def create_order(
    db,
    *,
    buyer_id,
    seller_id,
    amount: float,
    listing_id=None,
    listing_type: str | None = None,
    now: datetime | None = None,
) -> dict:
    """
    Creates an order in `pendiente`.
    The amount is taken as given; it is not checked against any listing price.
    """
    now = now or datetime.utcnow()
    buyer_oid = parse_object_id(buyer_id, "id_comprador")
    seller_oid = parse_object_id(seller_id, "id_vendedor")

    if not await db.usuarios.find_one({"_id": buyer_oid}, {"_id": 1}):
        raise NotFound("Comprador no encontrado")

    if not await db.usuarios.find_one({"_id": seller_oid}, {"_id": 1}):
        raise NotFound("Vendedor no encontrado")

    order = {
        "id_comprador": buyer_oid,
        "id_vendedor": seller_oid,
        "id_anuncio": parse_object_id(listing_id, "id_anuncio") if listing_id else None,
        "tipo_anuncio": listing_type,
        "monto_total": round(float(amount), 2),
        "estado": ORDER_PENDING,
        "verificado_manualmente": False,
        "notas_verificacion": None,
        "fecha": now,
        "fecha_actualizacion": now,
    }

    await db.pedidos.insert_one(order)
    logger.info("ORDER_CREATED order=%s amount=%s", order["_id"], order["monto_total"])
    return order


# ==============================
# Status transitions
# ==============================

async def _apply_transition(db, order: dict, new_status: str, now: datetime, extra: dict | None = None) -> dict:
    update = {"estado": new_status, "fecha_actualizacion": now}
    if extra:
        update.update(extra)

    # guarded on the status we validated against
    result = await db.pedidos.update_one(
        {"_id": order["_id"], "estado": order["estado"]},
        {"$set": update},
    )
    if result.modified_count == 0:
        raise Conflict("El pedido fue modificado por otra operación")

    logger.info(
        "ORDER_STATUS_CHANGED order=%s %s->%s",
        order["_id"], order["estado"], new_status,
    )
    order = dict(order)
    order.update(update)
    return order


async def update_order(
    db,
    order_id,
    *,
    status: str | None = None,
    amount: float | None = None,
    now: datetime | None = None,
) -> dict:
    """
    Applies an amount edit and/or a status change as one write.
    Everything is validated against the current status first, so a rejected
    request leaves the order untouched.
    """
    now = now or datetime.utcnow()
    order = await get_order(db, order_id)

    update = {"fecha_actualizacion": now}

    if amount is not None:
        if order["estado"] != ORDER_PENDING:
            raise Conflict("Solo se puede modificar el monto de un pedido pendiente")
        update["monto_total"] = round(float(amount), 2)

    if status is not None:
        assert_transition(order["estado"], status)
        update["estado"] = status

    result = await db.pedidos.update_one(
        {"_id": order["_id"], "estado": order["estado"]},
        {"$set": update},
    )
    if result.matched_count == 0:
        raise Conflict("El pedido fue modificado por otra operación")

    if status is not None:
        logger.info(
            "ORDER_STATUS_CHANGED order=%s %s->%s",
            order["_id"], order["estado"], status,
        )
    order.update(update)
    return order


async def update_order_status(db, order_id, new_status: str, *, now: datetime | None = None) -> dict:
    return await update_order(db, order_id, status=new_status, now=now)


async def update_order_amount(db, order_id, amount: float, *, now: datetime | None = None) -> dict:
    return await update_order(db, order_id, amount=amount, now=now)


async def cancel_order(db, order_id, *, now: datetime | None = None) -> dict:
    now = now or datetime.utcnow()
    order = await get_order(db, order_id)

    if order["estado"] == ORDER_CANCELLED:
        raise Conflict("El pedido ya está cancelado")

    if order["estado"] == ORDER_COMPLETED:
        raise Conflict("No se puede cancelar un pedido completado")

    assert_transition(order["estado"], ORDER_CANCELLED)
    return await _apply_transition(db, order, ORDER_CANCELLED, now)


async def verify_order_manually(db, order_id, *, admin_id, notes: str | None = None, now: datetime | None = None) -> dict:
    now = now or datetime.utcnow()
    order = await get_order(db, order_id)
    assert_transition(order["estado"], ORDER_PAID)

    order = await _apply_transition(
        db,
        order,
        ORDER_PAID,
        now,
        extra={"verificado_manualmente": True, "notas_verificacion": notes},
    )

    await log_audit(
        db,
        "ORDER_VERIFIED_MANUALLY",
        entity="pedidos",
        entity_id=order["_id"],
        actor_id=admin_id,
        actor_role=ROLE_ADMIN,
        metadata={"notes": notes},
    )
    return order


async def mark_order_paid(db, order_id, *, now: datetime) -> bool:
    """
    Payment cascade: pendiente -> pagado in a single conditional write.
    Returns False when the order was no longer pending.
    """
    result = await db.pedidos.update_one(
        {"_id": order_id, "estado": ORDER_PENDING},
        {"$set": {"estado": ORDER_PAID, "fecha_actualizacion": now}},
    )
    if result.modified_count:
        logger.info("ORDER_STATUS_CHANGED order=%s %s->%s", order_id, ORDER_PENDING, ORDER_PAID)
    return bool(result.modified_count)

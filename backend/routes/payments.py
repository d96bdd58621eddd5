from typing import Optional

from fastapi import APIRouter, Depends

from database import get_db
from models.payment import QrPaymentCreate, QrPaymentConfirm
from routes.orders import assert_participant
from utils.guards import paginate, pagination_meta
from utils.mongo import serialize_doc, serialize_docs
from utils.order_service import get_order
from utils.qr_payment_service import (
    create_intent,
    get_intent,
    get_intent_by_code,
    list_intents,
    confirm_intent,
    cancel_intent,
)
from utils.security import get_current_user, require_admin

router = APIRouter(
    prefix="/api/pagos-qr",
    tags=["Pagos QR"]
)


# ======================================================
# CREATE QR INTENT
# ======================================================

@router.post("", status_code=201)
async def post_qr_payment(
    data: QrPaymentCreate,
    user=Depends(get_current_user),
    db=Depends(get_db),
):
    order = await get_order(db, data.id_pedido)
    assert_participant(order, user)

    intent = await create_intent(
        db,
        order_id=order["_id"],
        amount=data.monto,
        channel=data.metodo_pago,
        qr_data=data.datos_qr,
    )
    return {
        "success": True,
        "message": "Código QR generado exitosamente",
        "data": serialize_doc(intent),
    }


# ======================================================
# LIST (ADMIN)
# ======================================================

@router.get("")
async def get_qr_payments(
    estado: Optional[str] = None,
    page: int = 1,
    limit: int = 10,
    admin=Depends(require_admin),
    db=Depends(get_db),
):
    page, limit, skip = paginate(page, limit)
    intents, total = await list_intents(db, status=estado, skip=skip, limit=limit)
    return {
        "success": True,
        "data": serialize_docs(intents),
        "pagination": pagination_meta(page, limit, total),
    }


# ======================================================
# PUBLIC STATUS BY CODE
# ======================================================

@router.get("/codigo/{codigo_qr}")
async def get_status_by_code(codigo_qr: str, db=Depends(get_db)):
    intent = await get_intent_by_code(db, codigo_qr)
    order = await db.pedidos.find_one({"_id": intent["id_pedido"]}, {"monto_total": 1})

    return {
        "success": True,
        "data": {
            "id": str(intent["_id"]),
            "estado": intent["estado"],
            "monto": intent["monto"],
            "fecha_creacion": intent["fecha_creacion"].isoformat(),
            "fecha_expiracion": intent["fecha_expiracion"].isoformat(),
            "pedido": serialize_doc(order),
        },
    }


@router.get("/{intent_id}")
async def get_qr_payment(
    intent_id: str,
    user=Depends(get_current_user),
    db=Depends(get_db),
):
    intent = await get_intent(db, intent_id)
    assert_participant(await get_order(db, intent["id_pedido"]), user)
    return {"success": True, "data": serialize_doc(intent)}


# ======================================================
# CONFIRM (CASCADES ORDER -> pagado)
# ======================================================

@router.put("/{intent_id}/verificar")
async def verify_qr_payment(
    intent_id: str,
    data: QrPaymentConfirm,
    user=Depends(get_current_user),
    db=Depends(get_db),
):
    intent = await get_intent(db, intent_id)
    assert_participant(await get_order(db, intent["id_pedido"]), user)

    intent = await confirm_intent(
        db,
        intent["_id"],
        verification_code=data.codigo_verificacion,
        payment_data=data.datos_pago,
        actor_id=user["_id"],
    )
    return {
        "success": True,
        "message": "Pago verificado y procesado exitosamente",
        "data": serialize_doc(intent),
    }


@router.delete("/{intent_id}")
async def cancel_qr_payment(
    intent_id: str,
    user=Depends(get_current_user),
    db=Depends(get_db),
):
    intent = await get_intent(db, intent_id)
    assert_participant(await get_order(db, intent["id_pedido"]), user)

    await cancel_intent(db, intent["_id"])
    return {"success": True, "message": "Pago QR cancelado exitosamente"}

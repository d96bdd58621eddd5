from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query

from config.constants import ROLE_ADMIN
from database import get_db
from models.order import OrderCreate, OrderUpdate, ManualVerification
from utils.guards import parse_object_id, paginate, pagination_meta
from utils.mongo import serialize_doc, serialize_docs
from utils.order_service import (
    create_order,
    get_order,
    update_order,
    cancel_order,
    verify_order_manually,
)
from utils.security import get_current_user, require_admin, has_role

router = APIRouter(
    prefix="/api/pedidos",
    tags=["Pedidos"]
)

PARTY_FIELDS = {"nombre": 1, "apellido": 1, "telefono": 1}


# ======================================================
# HELPERS
# ======================================================

def assert_participant(order: dict, user: dict):
    if has_role(user, ROLE_ADMIN):
        return
    if user["_id"] not in (order["id_comprador"], order["id_vendedor"]):
        raise HTTPException(403, "No participas en este pedido")


async def with_parties(db, order: dict) -> dict:
    doc = serialize_doc(order)
    doc["comprador"] = serialize_doc(await db.usuarios.find_one({"_id": order["id_comprador"]}, PARTY_FIELDS))
    doc["vendedor"] = serialize_doc(await db.usuarios.find_one({"_id": order["id_vendedor"]}, PARTY_FIELDS))
    return doc


# ======================================================
# CREATE ORDER
# ======================================================

@router.post("", status_code=201)
async def post_order(
    data: OrderCreate,
    user=Depends(get_current_user),
    db=Depends(get_db),
):
    if not has_role(user, ROLE_ADMIN) and str(user["_id"]) not in (data.id_comprador, data.id_vendedor):
        raise HTTPException(403, "Solo el comprador o el vendedor pueden crear el pedido")

    order = await create_order(
        db,
        buyer_id=data.id_comprador,
        seller_id=data.id_vendedor,
        listing_id=data.id_anuncio,
        listing_type=data.tipo_anuncio,
        amount=data.monto_total,
    )
    return {
        "success": True,
        "message": "Pedido creado exitosamente",
        "data": await with_parties(db, order),
    }


# ======================================================
# LIST (ADMIN) / BY USER
# ======================================================

@router.get("")
async def list_orders(
    estado: Optional[str] = None,
    page: int = 1,
    limit: int = 10,
    admin=Depends(require_admin),
    db=Depends(get_db),
):
    page, limit, skip = paginate(page, limit)
    query = {"estado": estado} if estado else {}

    total = await db.pedidos.count_documents(query)
    orders = await db.pedidos.find(query).sort("fecha", -1).skip(skip).limit(limit).to_list(length=limit)

    return {
        "success": True,
        "data": serialize_docs(orders),
        "pagination": pagination_meta(page, limit, total),
    }


@router.get("/usuario/{usuario_id}")
async def list_user_orders(
    usuario_id: str,
    tipo: str = Query("todos", pattern="^(comprador|vendedor|todos)$"),
    page: int = 1,
    limit: int = 10,
    user=Depends(get_current_user),
    db=Depends(get_db),
):
    user_oid = parse_object_id(usuario_id, "usuario_id")
    if user_oid != user["_id"] and not has_role(user, ROLE_ADMIN):
        raise HTTPException(403, "Solo puedes ver tus propios pedidos")

    page, limit, skip = paginate(page, limit)

    if tipo == "comprador":
        query = {"id_comprador": user_oid}
    elif tipo == "vendedor":
        query = {"id_vendedor": user_oid}
    else:
        query = {"$or": [{"id_comprador": user_oid}, {"id_vendedor": user_oid}]}

    total = await db.pedidos.count_documents(query)
    orders = await db.pedidos.find(query).sort("fecha", -1).skip(skip).limit(limit).to_list(length=limit)

    return {
        "success": True,
        "data": serialize_docs(orders),
        "pagination": pagination_meta(page, limit, total),
    }


@router.get("/{order_id}")
async def get_order_detail(
    order_id: str,
    user=Depends(get_current_user),
    db=Depends(get_db),
):
    order = await get_order(db, order_id)
    assert_participant(order, user)
    return {"success": True, "data": await with_parties(db, order)}


# ======================================================
# STATUS / AMOUNT UPDATES
# ======================================================

@router.put("/{order_id}")
async def put_order(
    order_id: str,
    data: OrderUpdate,
    user=Depends(get_current_user),
    db=Depends(get_db),
):
    if data.estado is None and data.monto_total is None:
        raise HTTPException(400, "No hay campos para actualizar")

    order = await get_order(db, order_id)
    assert_participant(order, user)

    order = await update_order(
        db,
        order["_id"],
        status=data.estado,
        amount=data.monto_total,
    )

    return {
        "success": True,
        "message": "Pedido actualizado exitosamente",
        "data": await with_parties(db, order),
    }


@router.patch("/{order_id}/cancelar")
async def cancel(
    order_id: str,
    user=Depends(get_current_user),
    db=Depends(get_db),
):
    order = await get_order(db, order_id)
    assert_participant(order, user)

    order = await cancel_order(db, order["_id"])
    return {
        "success": True,
        "message": "Pedido cancelado exitosamente",
        "data": serialize_doc(order),
    }


@router.put("/{order_id}/verificar")
async def verify_manually(
    order_id: str,
    data: ManualVerification,
    admin=Depends(require_admin),
    db=Depends(get_db),
):
    order = await verify_order_manually(
        db,
        order_id,
        admin_id=admin["_id"],
        notes=data.notas_verificacion,
    )
    return {
        "success": True,
        "message": "Pago verificado manualmente",
        "data": serialize_doc(order),
    }

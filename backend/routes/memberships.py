from datetime import datetime
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException

from config.constants import ROLE_ADMIN
from database import get_db
from models.membership import MembershipCreate, MembershipUpdate, MembershipAssign
from utils.guards import parse_object_id, paginate, pagination_meta
from utils.membership_service import (
    get_membership,
    delete_membership,
    assign_membership,
    get_active_membership,
    get_membership_history,
    cancel_membership,
    renew_membership,
    get_membership_stats,
)
from utils.mongo import serialize_doc, serialize_docs
from utils.security import get_current_user, require_admin, has_role

router = APIRouter(prefix="/api/membresias", tags=["Membresías"])


# ==================== USER MEMBERSHIPS (STATIC ROUTES FIRST) ====================

@router.post("/asignar", status_code=201)
async def assign(
    data: MembershipAssign,
    user=Depends(get_current_user),
    db=Depends(get_db),
):
    if parse_object_id(data.id_usuario, "id_usuario") != user["_id"] and not has_role(user, ROLE_ADMIN):
        raise HTTPException(403, "Solo puedes asignarte membresías a ti mismo")

    assignment = await assign_membership(
        db,
        user_id=data.id_usuario,
        membership_id=data.id_membresia,
        actor_id=user["_id"],
    )
    return {
        "success": True,
        "message": "Membresía asignada exitosamente",
        "data": serialize_doc(assignment),
    }


@router.get("/mi-membresia")
async def my_membership(user=Depends(get_current_user), db=Depends(get_db)):
    assignment = await get_active_membership(db, user["_id"])
    if not assignment:
        return {"success": True, "message": "Usuario sin membresía activa", "data": None}

    return {"success": True, "data": serialize_doc(assignment)}


@router.get("/historial")
async def history(
    page: int = 1,
    limit: int = 10,
    user=Depends(get_current_user),
    db=Depends(get_db),
):
    page, limit, skip = paginate(page, limit)
    assignments, total = await get_membership_history(db, user["_id"], skip=skip, limit=limit)
    return {
        "success": True,
        "data": serialize_docs(assignments),
        "pagination": pagination_meta(page, limit, total),
    }


@router.put("/cancelar")
async def cancel(user=Depends(get_current_user), db=Depends(get_db)):
    await cancel_membership(db, user["_id"])
    return {"success": True, "message": "Membresía cancelada exitosamente"}


@router.put("/renovar/{assignment_id}")
async def renew(
    assignment_id: str,
    user=Depends(get_current_user),
    db=Depends(get_db),
):
    assignment = await renew_membership(db, assignment_id, user_id=user["_id"])
    return {
        "success": True,
        "message": "Membresía renovada exitosamente",
        "data": serialize_doc(assignment),
    }


@router.get("/estadisticas")
async def stats(admin=Depends(require_admin), db=Depends(get_db)):
    return {"success": True, "data": await get_membership_stats(db)}


# ==================== CATALOG ====================

@router.get("")
async def list_memberships(activo: Optional[bool] = None, db=Depends(get_db)):
    query = {"activo": activo} if activo is not None else {}
    memberships = await db.membresias.find(query).sort("precio", 1).to_list(length=None)
    return {"success": True, "data": serialize_docs(memberships)}


@router.post("", status_code=201)
async def create_membership(
    data: MembershipCreate,
    admin=Depends(require_admin),
    db=Depends(get_db),
):
    membership = {**data.model_dump(), "fecha_creacion": datetime.utcnow()}
    await db.membresias.insert_one(membership)
    return {
        "success": True,
        "message": "Membresía creada exitosamente",
        "data": serialize_doc(membership),
    }


@router.get("/{membership_id}")
async def get_membership_detail(membership_id: str, db=Depends(get_db)):
    return {"success": True, "data": serialize_doc(await get_membership(db, membership_id))}


@router.put("/{membership_id}")
async def update_membership(
    membership_id: str,
    data: MembershipUpdate,
    admin=Depends(require_admin),
    db=Depends(get_db),
):
    membership = await get_membership(db, membership_id)

    updates = data.model_dump(exclude_unset=True)
    if updates:
        await db.membresias.update_one({"_id": membership["_id"]}, {"$set": updates})
        membership.update(updates)

    return {
        "success": True,
        "message": "Membresía actualizada exitosamente",
        "data": serialize_doc(membership),
    }


@router.delete("/{membership_id}")
async def remove_membership(
    membership_id: str,
    admin=Depends(require_admin),
    db=Depends(get_db),
):
    await delete_membership(db, membership_id)
    return {"success": True, "message": "Membresía eliminada exitosamente"}

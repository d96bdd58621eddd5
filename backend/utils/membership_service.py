import logging
import math
from datetime import datetime, timedelta
from typing import Any, Dict, Optional

from utils.errors import NotFound, Conflict, Inactive
from utils.guards import parse_object_id
from utils.audit import log_audit

logger = logging.getLogger(__name__)

SECONDS_PER_DAY = 60 * 60 * 24


# ==============================
# Pure helpers
# ==============================

def compute_expiry(start: datetime, duration_days: int) -> datetime:
    return start + timedelta(days=int(duration_days))


def is_assignment_expired(assignment: dict, now: datetime) -> bool:
    expires_at = assignment.get("fecha_expiracion")
    return expires_at is not None and now > expires_at


def days_remaining(assignment: dict, now: datetime) -> int:
    seconds = (assignment["fecha_expiracion"] - now).total_seconds()
    return max(0, math.ceil(seconds / SECONDS_PER_DAY))


# ==============================
# Catalog
# ==============================

async def get_membership(db, membership_id) -> dict:
    membership = await db.membresias.find_one({"_id": parse_object_id(membership_id, "id_membresia")})
    if not membership:
        raise NotFound("Membresía no encontrada")
    return membership


async def delete_membership(db, membership_id) -> None:
    membership = await get_membership(db, membership_id)

    active_users = await db.usuario_membresias.count_documents({
        "id_membresia": membership["_id"],
        "activo": True,
    })
    if active_users > 0:
        raise Conflict("No se puede eliminar una membresía con usuarios activos")

    await db.membresias.delete_one({"_id": membership["_id"]})


# ==============================
# Assignment
# ==============================

async def _deactivate_active(db, user_oid, now: datetime) -> int:
    result = await db.usuario_membresias.update_many(
        {"id_usuario": user_oid, "activo": True},
        {"$set": {"activo": False, "fecha_desactivacion": now}},
    )
    return result.modified_count


async def assign_membership(db, *, user_id, membership_id, actor_id=None, now: datetime | None = None) -> dict:
    now = now or datetime.utcnow()
    membership = await get_membership(db, membership_id)

    if not membership.get("activo", True):
        raise Inactive()

    user_oid = parse_object_id(user_id, "id_usuario")
    if not await db.usuarios.find_one({"_id": user_oid}, {"_id": 1}):
        raise NotFound("Usuario no encontrado")

    await _deactivate_active(db, user_oid, now)

    assignment = {
        "id_usuario": user_oid,
        "id_membresia": membership["_id"],
        "fecha_inicio": now,
        "fecha_expiracion": compute_expiry(now, membership["duracion_dias"]),
        "activo": True,
    }
    await db.usuario_membresias.insert_one(assignment)

    await log_audit(
        db,
        "MEMBERSHIP_ASSIGNED",
        entity="usuario_membresias",
        entity_id=assignment["_id"],
        actor_id=actor_id or user_oid,
        actor_role="usuario",
        metadata={
            "user_id": str(user_oid),
            "membership_id": str(membership["_id"]),
            "expires_at": assignment["fecha_expiracion"].isoformat(),
        },
    )
    logger.info("MEMBERSHIP_ASSIGNED user=%s membership=%s", user_oid, membership["_id"])
    return assignment


async def get_active_membership(db, user_id, *, now: datetime | None = None) -> Optional[Dict[str, Any]]:
    """
    Returns the active assignment with its catalog entry and `dias_restantes`,
    or None. An assignment found past its expiry is deactivated on the way out.
    """
    now = now or datetime.utcnow()
    user_oid = parse_object_id(user_id, "id_usuario")

    assignment = await db.usuario_membresias.find_one({"id_usuario": user_oid, "activo": True})
    if not assignment:
        return None

    if is_assignment_expired(assignment, now):
        await db.usuario_membresias.update_one(
            {"_id": assignment["_id"], "activo": True, "fecha_expiracion": {"$lt": now}},
            {"$set": {"activo": False, "fecha_desactivacion": now}},
        )
        logger.info("MEMBERSHIP_EXPIRED assignment=%s", assignment["_id"])
        return None

    assignment["membresia"] = await db.membresias.find_one(
        {"_id": assignment["id_membresia"]},
        {"nombre": 1, "descripcion": 1, "caracteristicas": 1, "precio": 1},
    )
    assignment["dias_restantes"] = days_remaining(assignment, now)
    return assignment


async def get_membership_history(db, user_id, *, skip: int = 0, limit: int = 10):
    query = {"id_usuario": parse_object_id(user_id, "id_usuario")}
    total = await db.usuario_membresias.count_documents(query)
    cursor = db.usuario_membresias.find(query).sort("fecha_inicio", -1).skip(skip).limit(limit)
    return await cursor.to_list(length=limit), total


async def cancel_membership(db, user_id, *, now: datetime | None = None) -> dict:
    now = now or datetime.utcnow()
    user_oid = parse_object_id(user_id, "id_usuario")

    assignment = await db.usuario_membresias.find_one({"id_usuario": user_oid, "activo": True})
    if not assignment:
        raise NotFound("No tienes una membresía activa")

    await db.usuario_membresias.update_one(
        {"_id": assignment["_id"]},
        {"$set": {"activo": False, "fecha_desactivacion": now}},
    )
    logger.info("MEMBERSHIP_CANCELLED assignment=%s", assignment["_id"])

    assignment["activo"] = False
    assignment["fecha_desactivacion"] = now
    return assignment


async def renew_membership(db, assignment_id, *, user_id, now: datetime | None = None) -> dict:
    now = now or datetime.utcnow()
    user_oid = parse_object_id(user_id, "id_usuario")

    assignment = await db.usuario_membresias.find_one({
        "_id": parse_object_id(assignment_id, "id_usuario_membresia"),
        "id_usuario": user_oid,
    })
    if not assignment:
        raise NotFound("Membresía no encontrada")

    membership = await get_membership(db, assignment["id_membresia"])

    await _deactivate_active(db, user_oid, now)

    update = {
        "fecha_inicio": now,
        "fecha_expiracion": compute_expiry(now, membership["duracion_dias"]),
        "activo": True,
        "fecha_desactivacion": None,
    }
    await db.usuario_membresias.update_one({"_id": assignment["_id"]}, {"$set": update})
    logger.info("MEMBERSHIP_RENEWED assignment=%s", assignment["_id"])

    assignment.update(update)
    return assignment


async def sweep_expired_memberships(db, now: datetime | None = None) -> int:
    now = now or datetime.utcnow()
    result = await db.usuario_membresias.update_many(
        {"activo": True, "fecha_expiracion": {"$lt": now}},
        {"$set": {"activo": False, "fecha_desactivacion": now}},
    )
    return result.modified_count


# ==============================
# Admin stats
# ==============================

async def get_membership_stats(db) -> Dict[str, Any]:
    total = await db.membresias.count_documents({})
    active_catalog = await db.membresias.count_documents({"activo": True})
    users_with_membership = await db.usuario_membresias.count_documents({"activo": True})

    pipeline = [
        {"$match": {"activo": True}},
        {"$group": {"_id": "$id_membresia", "total_usuarios": {"$sum": 1}}},
        {"$sort": {"total_usuarios": -1}},
    ]
    rows = await db.usuario_membresias.aggregate(pipeline).to_list(None)

    catalog = {
        m["_id"]: m
        async for m in db.membresias.find({"_id": {"$in": [r["_id"] for r in rows]}})
    }

    popular = []
    revenue = 0.0
    for row in rows:
        membership = catalog.get(row["_id"], {})
        price = float(membership.get("precio") or 0)
        revenue += price * row["total_usuarios"]
        popular.append({
            "id_membresia": str(row["_id"]),
            "nombre": membership.get("nombre"),
            "precio": membership.get("precio"),
            "total_usuarios": row["total_usuarios"],
        })

    return {
        "totalMembresias": total,
        "membresiasActivas": active_catalog,
        "usuariosConMembresia": users_with_membership,
        "membresiasPopulares": popular[:5],
        "ingresosEstimados": round(revenue, 2),
    }

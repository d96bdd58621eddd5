import logging
from datetime import datetime
from typing import Any, Dict, List

from fastapi import HTTPException, status
from pymongo.errors import DuplicateKeyError

from config import env
from config.constants import MIN_SCORE, MAX_SCORE, RATEABLE_ORDER_STATUSES, ROLE_ADMIN
from utils.errors import NotFound, Conflict, InvalidScore
from utils.guards import parse_object_id

logger = logging.getLogger(__name__)

# ============================================================
# REPUTATION LEDGER
# ============================================================
# One rating per (rater, ratee, order). Only delivered/completed
# orders are eligible. Aggregates are always derived from the
# `reputaciones` collection, never cached on the user.
# ============================================================


def validate_score(score) -> int:
    if isinstance(score, bool) or not isinstance(score, int):
        raise InvalidScore()
    if score < MIN_SCORE or score > MAX_SCORE:
        raise InvalidScore()
    return score


def round_average(value) -> float:
    return round(float(value), 1) if value is not None else 0.0


# ============================================================
# SUBMIT
# ============================================================

async def submit_rating(
    db,
    *,
    rater_id,
    ratee_id,
    score,
    order_id=None,
    comment: str | None = None,
    now: datetime | None = None,
) -> dict:
    now = now or datetime.utcnow()
    score = validate_score(score)

    rater_oid = parse_object_id(rater_id, "id_usuario_calificador")
    ratee_oid = parse_object_id(ratee_id, "id_usuario_calificado")
    order_oid = parse_object_id(order_id, "id_pedido") if order_id else None

    if order_oid:
        order = await db.pedidos.find_one({"_id": order_oid})
        if not order:
            raise NotFound("Pedido no encontrado")

        if order["estado"] not in RATEABLE_ORDER_STATUSES:
            raise Conflict("Solo se puede calificar pedidos entregados o completados")

        existing = await db.reputaciones.find_one({
            "id_usuario_calificador": rater_oid,
            "id_usuario_calificado": ratee_oid,
            "id_pedido": order_oid,
        })
        if existing:
            raise Conflict("Ya has calificado este pedido")

    rating = {
        "id_usuario_calificador": rater_oid,
        "id_usuario_calificado": ratee_oid,
        "id_pedido": order_oid,
        "calificacion": score,
        "comentario": comment,
        "fecha_calificacion": now,
    }

    try:
        await db.reputaciones.insert_one(rating)
    except DuplicateKeyError:
        raise Conflict("Ya has calificado este pedido")

    logger.info("RATING_SUBMITTED rating=%s ratee=%s score=%s", rating["_id"], ratee_oid, score)
    return rating


# ============================================================
# USER REPUTATION (AGGREGATION)
# ============================================================

async def get_rating_stats(db, user_id) -> Dict[str, Any]:
    user_oid = parse_object_id(user_id, "id_usuario")

    pipeline = [
        {"$match": {"id_usuario_calificado": user_oid}},
        {"$group": {
            "_id": "$calificacion",
            "cantidad": {"$sum": 1},
        }},
    ]
    rows = await db.reputaciones.aggregate(pipeline).to_list(None)

    histogram = {score: 0 for score in range(MIN_SCORE, MAX_SCORE + 1)}
    for row in rows:
        histogram[int(row["_id"])] = row["cantidad"]

    total = sum(histogram.values())
    weighted = sum(score * count for score, count in histogram.items())

    return {
        "promedio": round_average(weighted / total) if total else 0.0,
        "totalCalificaciones": total,
        "distribucion": [
            {"calificacion": score, "cantidad": count}
            for score, count in histogram.items()
        ],
    }


async def get_user_reputation(db, user_id, *, skip: int = 0, limit: int | None = None) -> Dict[str, Any]:
    user_oid = parse_object_id(user_id, "id_usuario")

    cursor = db.reputaciones.find({"id_usuario_calificado": user_oid}).sort("fecha_calificacion", -1)
    if skip:
        cursor = cursor.skip(skip)
    if limit:
        cursor = cursor.limit(limit)

    ratings = await cursor.to_list(length=limit)
    stats = await get_rating_stats(db, user_oid)

    return {
        "calificaciones": ratings,
        "estadisticas": stats,
    }


async def get_given_ratings(db, user_id, *, skip: int = 0, limit: int = 10):
    query = {"id_usuario_calificador": parse_object_id(user_id, "id_usuario")}
    total = await db.reputaciones.count_documents(query)
    cursor = db.reputaciones.find(query).sort("fecha_calificacion", -1).skip(skip).limit(limit)
    return await cursor.to_list(length=limit), total


# ============================================================
# RANKING
# ============================================================

async def get_ranking(db, limit: int = 10, min_ratings: int | None = None) -> List[Dict[str, Any]]:
    min_ratings = env.RANKING_MIN_RATINGS if min_ratings is None else min_ratings

    pipeline = [
        {"$group": {
            "_id": "$id_usuario_calificado",
            "promedio": {"$avg": "$calificacion"},
            "total_calificaciones": {"$sum": 1},
        }},
        {"$match": {"total_calificaciones": {"$gte": min_ratings}}},
        {"$sort": {"promedio": -1, "total_calificaciones": -1}},
        {"$limit": limit},
    ]
    rows = await db.reputaciones.aggregate(pipeline).to_list(None)

    user_ids = [row["_id"] for row in rows]
    users = {
        u["_id"]: u
        async for u in db.usuarios.find(
            {"_id": {"$in": user_ids}},
            {"nombre": 1, "apellido": 1, "foto_perfil_url": 1, "verificado": 1},
        )
    }

    ranking = []
    for position, row in enumerate(rows, start=1):
        user = users.get(row["_id"], {})
        ranking.append({
            "posicion": position,
            "usuario": {
                "id_usuario": str(row["_id"]),
                "nombre": user.get("nombre"),
                "apellido": user.get("apellido"),
                "foto_perfil_url": user.get("foto_perfil_url"),
                "verificado": user.get("verificado", False),
            },
            "promedio": round_average(row["promedio"]),
            "totalCalificaciones": row["total_calificaciones"],
        })

    return ranking


# ============================================================
# EDIT / DELETE
# ============================================================

async def _get_rating(db, rating_id) -> dict:
    rating = await db.reputaciones.find_one({"_id": parse_object_id(rating_id, "id_reputacion")})
    if not rating:
        raise NotFound("Calificación no encontrada")
    return rating


async def update_rating(db, rating_id, *, actor_id, score=None, comment: str | None = None) -> dict:
    rating = await _get_rating(db, rating_id)

    if rating["id_usuario_calificador"] != parse_object_id(actor_id):
        raise HTTPException(status.HTTP_403_FORBIDDEN, "No tienes permisos para editar esta calificación")

    update = {}
    if score is not None:
        update["calificacion"] = validate_score(score)
    if comment is not None:
        update["comentario"] = comment

    if update:
        await db.reputaciones.update_one({"_id": rating["_id"]}, {"$set": update})
        rating.update(update)

    return rating


async def delete_rating(db, rating_id, *, actor: dict) -> None:
    rating = await _get_rating(db, rating_id)

    is_owner = rating["id_usuario_calificador"] == actor["_id"]
    if not is_owner and ROLE_ADMIN not in actor.get("roles", []):
        raise HTTPException(status.HTTP_403_FORBIDDEN, "No tienes permisos para eliminar esta calificación")

    await db.reputaciones.delete_one({"_id": rating["_id"]})
    logger.info("RATING_DELETED rating=%s actor=%s", rating["_id"], actor["_id"])

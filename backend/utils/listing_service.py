import logging
import re
from datetime import datetime
from typing import Any, Dict, Optional

from fastapi import HTTPException

from config import env
from config.constants import LISTING_SELL, LISTING_BUY, LISTING_ACTIVE, LISTING_STATUSES
from utils.errors import NotFound, QuotaExceeded
from utils.guards import parse_object_id

logger = logging.getLogger(__name__)

LISTING_COLLECTIONS = {
    LISTING_SELL: "anuncios_venta",
    LISTING_BUY: "anuncios_compra",
}

# buy listings carry an offered price instead of an asking price
PRICE_FIELD = {
    LISTING_SELL: "precio",
    LISTING_BUY: "precio_ofertado",
}


def listings_collection(db, listing_type: str):
    name = LISTING_COLLECTIONS.get(listing_type)
    if not name:
        raise HTTPException(400, "Tipo de anuncio inválido (venta | compra)")
    return db[name]


# ======================================================
# DAILY QUOTA
# ======================================================

def published_today(user: dict, now: datetime) -> int:
    last = user.get("ultima_publicacion")
    if not last or last.date() != now.date():
        return 0
    return user.get("anuncios_publicados_hoy", 0)


async def reserve_listing_slot(db, user: dict, now: datetime) -> None:
    """
    Takes one slot of the user's daily posting quota.
    The counter restarts on the first publication of a new (UTC) day.
    """
    limit = user.get("limite_anuncios_diarios", env.DEFAULT_DAILY_LISTING_LIMIT)
    count = published_today(user, now)

    if count >= limit:
        raise QuotaExceeded(limit, count)

    if count == 0:
        result = await db.usuarios.update_one(
            {"_id": user["_id"], "ultima_publicacion": user.get("ultima_publicacion")},
            {"$set": {"anuncios_publicados_hoy": 1, "ultima_publicacion": now}},
        )
    else:
        result = await db.usuarios.update_one(
            {"_id": user["_id"], "anuncios_publicados_hoy": {"$lt": limit}},
            {"$inc": {"anuncios_publicados_hoy": 1}, "$set": {"ultima_publicacion": now}},
        )

    if result.modified_count == 0:
        # another publication landed first; re-evaluate against fresh counters
        fresh = await db.usuarios.find_one({"_id": user["_id"]})
        raise QuotaExceeded(limit, published_today(fresh or user, now))


async def release_listing_slot(db, user_id) -> None:
    await db.usuarios.update_one(
        {"_id": user_id, "anuncios_publicados_hoy": {"$gt": 0}},
        {"$inc": {"anuncios_publicados_hoy": -1}},
    )


# ======================================================
# CREATE
# ======================================================

async def create_listing(db, *, owner: dict, listing_type: str, data: Dict[str, Any], now: datetime | None = None) -> dict:
    now = now or datetime.utcnow()
    collection = listings_collection(db, listing_type)

    product_oid = parse_object_id(data["id_producto"], "id_producto")
    product = await db.productos.find_one({"_id": product_oid, "estado": True})
    if not product:
        raise NotFound("Producto no encontrado")

    await reserve_listing_slot(db, owner, now)

    listing = {
        "id_usuario": owner["_id"],
        "id_producto": product_oid,
        "cantidad": data["cantidad"],
        "unidad": data["unidad"],
        PRICE_FIELD[listing_type]: data["precio"],
        "descripcion": data.get("descripcion"),
        "estado": LISTING_ACTIVE,
        "moderado": False,
        "fecha_moderacion": None,
        "reportes": 0,
        "fecha_publicacion": now,
    }
    if listing_type == LISTING_SELL:
        listing.update({
            "ubicacion": data.get("ubicacion"),
            "ubicacion_lat": data.get("ubicacion_lat"),
            "ubicacion_lng": data.get("ubicacion_lng"),
        })

    try:
        await collection.insert_one(listing)
    except Exception:
        await release_listing_slot(db, owner["_id"])
        raise

    logger.info("LISTING_CREATED type=%s listing=%s user=%s", listing_type, listing["_id"], owner["_id"])
    return listing


# ======================================================
# QUERIES
# ======================================================

async def _attach_refs(db, listings: list) -> list:
    product_ids = {l["id_producto"] for l in listings}
    user_ids = {l["id_usuario"] for l in listings}

    products = {
        p["_id"]: p
        async for p in db.productos.find(
            {"_id": {"$in": list(product_ids)}},
            {"nombre": 1, "unidad_medida": 1, "imagen_url": 1},
        )
    }
    users = {
        u["_id"]: u
        async for u in db.usuarios.find(
            {"_id": {"$in": list(user_ids)}},
            {"nombre": 1, "apellido": 1, "telefono": 1, "verificado": 1},
        )
    }

    for listing in listings:
        listing["producto"] = products.get(listing["id_producto"])
        listing["usuario"] = users.get(listing["id_usuario"])
    return listings


async def list_listings(
    db,
    listing_type: str,
    *,
    status: str = LISTING_ACTIVE,
    product_id: Optional[str] = None,
    search: Optional[str] = None,
    location: Optional[str] = None,
    min_price: Optional[float] = None,
    max_price: Optional[float] = None,
    min_quantity: Optional[float] = None,
    skip: int = 0,
    limit: int = 20,
):
    collection = listings_collection(db, listing_type)
    price_field = PRICE_FIELD[listing_type]

    query: dict = {"estado": status}

    if product_id:
        query["id_producto"] = parse_object_id(product_id, "producto_id")

    if search:
        pattern = re.escape(search)
        matching = [
            p["_id"]
            async for p in db.productos.find({"nombre": {"$regex": pattern, "$options": "i"}}, {"_id": 1})
        ]
        if "id_producto" in query:
            matching = [pid for pid in matching if pid == query["id_producto"]]
        query["id_producto"] = {"$in": matching}

    if location and listing_type == LISTING_SELL:
        query["ubicacion"] = {"$regex": re.escape(location), "$options": "i"}

    if min_price is not None or max_price is not None:
        query[price_field] = {}
        if min_price is not None:
            query[price_field]["$gte"] = min_price
        if max_price is not None:
            query[price_field]["$lte"] = max_price

    if min_quantity is not None:
        query["cantidad"] = {"$gte": min_quantity}

    total = await collection.count_documents(query)
    cursor = collection.find(query).sort("fecha_publicacion", -1).skip(skip).limit(limit)
    listings = await cursor.to_list(length=limit)
    return await _attach_refs(db, listings), total


async def my_listings(db, owner_id, listing_type: str) -> list:
    collection = listings_collection(db, listing_type)
    cursor = collection.find({"id_usuario": owner_id}).sort("fecha_publicacion", -1)
    return await _attach_refs(db, await cursor.to_list(length=None))


# ======================================================
# OWNER / MODERATION ACTIONS
# ======================================================

async def update_listing_status(db, *, owner_id, listing_type: str, listing_id, status: str) -> dict:
    if status not in LISTING_STATUSES:
        raise HTTPException(400, f"Estado de anuncio inválido: {status}")

    collection = listings_collection(db, listing_type)
    listing = await collection.find_one({
        "_id": parse_object_id(listing_id, "id_anuncio"),
        "id_usuario": owner_id,
    })
    if not listing:
        raise NotFound("Anuncio no encontrado o no tienes permisos para modificarlo")

    await collection.update_one({"_id": listing["_id"]}, {"$set": {"estado": status}})
    listing["estado"] = status
    return listing


async def report_listing(db, *, listing_type: str, listing_id) -> int:
    collection = listings_collection(db, listing_type)
    listing_oid = parse_object_id(listing_id, "id_anuncio")

    result = await collection.update_one({"_id": listing_oid}, {"$inc": {"reportes": 1}})
    if result.matched_count == 0:
        raise NotFound("Anuncio no encontrado")

    listing = await collection.find_one({"_id": listing_oid}, {"reportes": 1})
    return listing["reportes"]

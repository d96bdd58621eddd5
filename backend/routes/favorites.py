from datetime import datetime
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from pydantic import BaseModel
from pymongo.errors import DuplicateKeyError

from database import get_db
from utils.errors import NotFound, Conflict
from utils.guards import parse_object_id, paginate, pagination_meta
from utils.mongo import serialize_doc, serialize_docs
from utils.security import get_current_user

router = APIRouter(
    prefix="/api/favoritos",
    tags=["Favoritos"]
)


class AddFavorite(BaseModel):
    id_producto: Optional[str] = None
    id_anuncio_venta: Optional[str] = None


def _target_query(id_producto: Optional[str], id_anuncio_venta: Optional[str]) -> dict:
    if bool(id_producto) == bool(id_anuncio_venta):
        raise HTTPException(400, "Debe especificar un producto o un anuncio de venta")

    return {
        "id_producto": parse_object_id(id_producto, "id_producto") if id_producto else None,
        "id_anuncio_venta": parse_object_id(id_anuncio_venta, "id_anuncio_venta") if id_anuncio_venta else None,
    }


# ======================================================
# ADD
# ======================================================

@router.post("", status_code=201)
async def add_favorite(
    data: AddFavorite,
    user=Depends(get_current_user),
    db=Depends(get_db),
):
    target = _target_query(data.id_producto, data.id_anuncio_venta)

    if target["id_producto"] and not await db.productos.find_one({"_id": target["id_producto"]}, {"_id": 1}):
        raise NotFound("Producto no encontrado")
    if target["id_anuncio_venta"] and not await db.anuncios_venta.find_one({"_id": target["id_anuncio_venta"]}, {"_id": 1}):
        raise NotFound("Anuncio no encontrado")

    query = {"id_usuario": user["_id"], **target}
    if await db.favoritos.find_one(query, {"_id": 1}):
        raise Conflict("El elemento ya está en favoritos")

    favorite = {**query, "fecha_agregado": datetime.utcnow()}
    try:
        await db.favoritos.insert_one(favorite)
    except DuplicateKeyError:
        raise Conflict("El elemento ya está en favoritos")

    return {
        "success": True,
        "message": "Agregado a favoritos exitosamente",
        "data": serialize_doc(favorite),
    }


# ======================================================
# READ
# ======================================================

@router.get("/mis-favoritos")
async def my_favorites(
    tipo: Optional[str] = Query(None, pattern="^(producto|anuncio)$"),
    page: int = 1,
    limit: int = 20,
    user=Depends(get_current_user),
    db=Depends(get_db),
):
    page, limit, skip = paginate(page, limit)

    query = {"id_usuario": user["_id"]}
    if tipo == "producto":
        query["id_producto"] = {"$ne": None}
    elif tipo == "anuncio":
        query["id_anuncio_venta"] = {"$ne": None}

    total = await db.favoritos.count_documents(query)
    favorites = await db.favoritos.find(query).sort("fecha_agregado", -1).skip(skip).limit(limit).to_list(length=limit)

    for favorite in favorites:
        if favorite.get("id_producto"):
            favorite["producto"] = await db.productos.find_one({"_id": favorite["id_producto"]})
        if favorite.get("id_anuncio_venta"):
            favorite["anuncio_venta"] = await db.anuncios_venta.find_one({"_id": favorite["id_anuncio_venta"]})

    return {
        "success": True,
        "data": serialize_docs(favorites),
        "pagination": pagination_meta(page, limit, total),
    }


@router.get("/verificar")
async def check_favorite(
    id_producto: Optional[str] = None,
    id_anuncio_venta: Optional[str] = None,
    user=Depends(get_current_user),
    db=Depends(get_db),
):
    query = {"id_usuario": user["_id"], **_target_query(id_producto, id_anuncio_venta)}
    favorite = await db.favoritos.find_one(query, {"_id": 1})

    return {
        "success": True,
        "data": {
            "es_favorito": favorite is not None,
            "id_favorito": str(favorite["_id"]) if favorite else None,
        },
    }


@router.get("/populares")
async def popular_products(
    limit: int = Query(10, ge=1, le=50),
    db=Depends(get_db),
):
    pipeline = [
        {"$match": {"id_producto": {"$ne": None}}},
        {"$group": {"_id": "$id_producto", "total_favoritos": {"$sum": 1}}},
        {"$sort": {"total_favoritos": -1}},
        {"$limit": limit},
    ]
    rows = await db.favoritos.aggregate(pipeline).to_list(length=limit)

    popular = []
    for row in rows:
        product = await db.productos.find_one({"_id": row["_id"]})
        if product:
            popular.append({"producto": serialize_doc(product), "total_favoritos": row["total_favoritos"]})

    return {"success": True, "data": popular}


# ======================================================
# REMOVE (OWNER ONLY)
# ======================================================

@router.delete("/{favorite_id}")
async def remove_favorite(
    favorite_id: str,
    user=Depends(get_current_user),
    db=Depends(get_db),
):
    favorite = await db.favoritos.find_one({"_id": parse_object_id(favorite_id, "favorite_id")})
    if not favorite:
        raise NotFound("Favorito no encontrado")

    if favorite["id_usuario"] != user["_id"]:
        raise HTTPException(403, "No tienes permiso para eliminar este favorito")

    await db.favoritos.delete_one({"_id": favorite["_id"]})
    return {"success": True, "message": "Eliminado de favoritos exitosamente"}

from datetime import datetime
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, Field

from config.constants import ROLE_ADMIN
from database import get_db
from utils.errors import NotFound
from utils.guards import parse_object_id, paginate, pagination_meta
from utils.mongo import serialize_docs, serialize_doc
from utils.security import get_current_user, has_role

router = APIRouter(
    prefix="/api/comentarios",
    tags=["Comentarios"]
)

AUTHOR_FIELDS = {"nombre": 1, "apellido": 1, "foto_perfil_url": 1}

# -------------------------------------------------
# SCHEMA
# -------------------------------------------------

class CreateComment(BaseModel):
    contenido: str = Field(..., min_length=1, max_length=1000)
    id_producto: Optional[str] = None
    id_anuncio_venta: Optional[str] = None


class UpdateComment(BaseModel):
    contenido: str = Field(..., min_length=1, max_length=1000)


async def _with_authors(db, comments: list) -> list:
    author_ids = list({c["id_usuario"] for c in comments})
    authors = {
        u["_id"]: u
        async for u in db.usuarios.find({"_id": {"$in": author_ids}}, AUTHOR_FIELDS)
    }
    for comment in comments:
        comment["usuario"] = authors.get(comment["id_usuario"])
    return comments


async def _list(db, query: dict, page: int, limit: int) -> dict:
    page, limit, skip = paginate(page, limit)
    total = await db.comentarios.count_documents(query)
    comments = await db.comentarios.find(query).sort("fecha", -1).skip(skip).limit(limit).to_list(length=limit)

    return {
        "success": True,
        "data": serialize_docs(await _with_authors(db, comments)),
        "pagination": pagination_meta(page, limit, total),
    }


async def _get_owned_comment(db, comment_id: str, user: dict, allow_admin: bool = False) -> dict:
    comment = await db.comentarios.find_one({"_id": parse_object_id(comment_id, "comment_id")})
    if not comment:
        raise NotFound("Comentario no encontrado")

    if comment["id_usuario"] != user["_id"] and not (allow_admin and has_role(user, ROLE_ADMIN)):
        raise HTTPException(403, "No tienes permiso para modificar este comentario")
    return comment


# -------------------------------------------------
# CREATE COMMENT
# -------------------------------------------------

@router.post("", status_code=201)
async def create_comment(
    data: CreateComment,
    user=Depends(get_current_user),
    db=Depends(get_db),
):
    if not data.id_producto and not data.id_anuncio_venta:
        raise HTTPException(400, "Debe especificar un producto o un anuncio de venta")

    comment = {
        "id_usuario": user["_id"],
        "contenido": data.contenido.strip(),
        "id_producto": None,
        "id_anuncio_venta": None,
        "fecha": datetime.utcnow(),
    }

    if data.id_producto:
        product_oid = parse_object_id(data.id_producto, "id_producto")
        if not await db.productos.find_one({"_id": product_oid}, {"_id": 1}):
            raise NotFound("Producto no encontrado")
        comment["id_producto"] = product_oid

    if data.id_anuncio_venta:
        listing_oid = parse_object_id(data.id_anuncio_venta, "id_anuncio_venta")
        if not await db.anuncios_venta.find_one({"_id": listing_oid}, {"_id": 1}):
            raise NotFound("Anuncio no encontrado")
        comment["id_anuncio_venta"] = listing_oid

    await db.comentarios.insert_one(comment)

    return {
        "success": True,
        "message": "Comentario creado exitosamente",
        "data": serialize_doc(comment),
    }


# -------------------------------------------------
# LISTINGS (PUBLIC)
# -------------------------------------------------

@router.get("/producto/{product_id}")
async def comments_by_product(product_id: str, page: int = 1, limit: int = 10, db=Depends(get_db)):
    return await _list(db, {"id_producto": parse_object_id(product_id, "product_id")}, page, limit)


@router.get("/anuncio/{listing_id}")
async def comments_by_listing(listing_id: str, page: int = 1, limit: int = 10, db=Depends(get_db)):
    return await _list(db, {"id_anuncio_venta": parse_object_id(listing_id, "listing_id")}, page, limit)


@router.get("/usuario/{user_id}")
async def comments_by_user(user_id: str, page: int = 1, limit: int = 10, db=Depends(get_db)):
    return await _list(db, {"id_usuario": parse_object_id(user_id, "user_id")}, page, limit)


# -------------------------------------------------
# EDIT / DELETE
# -------------------------------------------------

@router.put("/{comment_id}")
async def update_comment(
    comment_id: str,
    data: UpdateComment,
    user=Depends(get_current_user),
    db=Depends(get_db),
):
    comment = await _get_owned_comment(db, comment_id, user)

    now = datetime.utcnow()
    await db.comentarios.update_one(
        {"_id": comment["_id"]},
        {"$set": {"contenido": data.contenido.strip(), "fecha_edicion": now}},
    )
    comment.update({"contenido": data.contenido.strip(), "fecha_edicion": now})

    return {
        "success": True,
        "message": "Comentario actualizado exitosamente",
        "data": serialize_doc(comment),
    }


@router.delete("/{comment_id}")
async def delete_comment(
    comment_id: str,
    user=Depends(get_current_user),
    db=Depends(get_db),
):
    comment = await _get_owned_comment(db, comment_id, user, allow_admin=True)
    await db.comentarios.delete_one({"_id": comment["_id"]})
    return {"success": True, "message": "Comentario eliminado exitosamente"}

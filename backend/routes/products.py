import re
from datetime import datetime
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query

from database import get_db
from models.product import ProductCreate, ProductUpdate
from utils.errors import NotFound
from utils.guards import parse_object_id, paginate, pagination_meta
from utils.mongo import serialize_doc
from utils.security import require_admin

router = APIRouter(prefix="/api/productos", tags=["Productos"])


# =========================
# PUBLIC SEARCH
# =========================

@router.get("")
async def list_products(
    search: Optional[str] = Query(None, description="Texto en nombre o descripción"),
    categoria: Optional[str] = None,
    precio_min: Optional[float] = None,
    precio_max: Optional[float] = None,
    page: int = 1,
    limit: int = 20,
    db=Depends(get_db),
):
    page, limit, skip = paginate(page, limit, max_limit=50)

    query: dict = {"estado": True}

    if search:
        pattern = re.escape(search)
        query["$or"] = [
            {"nombre": {"$regex": pattern, "$options": "i"}},
            {"descripcion": {"$regex": pattern, "$options": "i"}},
        ]

    if categoria:
        query["categorias"] = categoria

    if precio_min is not None or precio_max is not None:
        query["precio_referencial"] = {}
        if precio_min is not None:
            query["precio_referencial"]["$gte"] = precio_min
        if precio_max is not None:
            query["precio_referencial"]["$lte"] = precio_max

    total = await db.productos.count_documents(query)
    cursor = db.productos.find(query).sort("nombre", 1).skip(skip).limit(limit)

    return {
        "success": True,
        "data": [serialize_doc(p) async for p in cursor],
        "pagination": pagination_meta(page, limit, total),
    }


@router.get("/{product_id}")
async def get_product(product_id: str, db=Depends(get_db)):
    product = await db.productos.find_one({"_id": parse_object_id(product_id, "id_producto")})
    if not product:
        raise NotFound("Producto no encontrado")
    return {"success": True, "data": serialize_doc(product)}


# =========================
# ADMIN CATALOG
# =========================

@router.post("", status_code=201)
async def create_product(
    data: ProductCreate,
    admin=Depends(require_admin),
    db=Depends(get_db),
):
    product = {
        **data.model_dump(),
        "estado": True,
        "fecha_registro": datetime.utcnow(),
    }
    await db.productos.insert_one(product)

    return {
        "success": True,
        "message": "Producto creado exitosamente",
        "data": serialize_doc(product),
    }


@router.put("/{product_id}")
async def update_product(
    product_id: str,
    data: ProductUpdate,
    admin=Depends(require_admin),
    db=Depends(get_db),
):
    updates = data.model_dump(exclude_unset=True)
    if not updates:
        raise HTTPException(400, "No hay campos para actualizar")

    product_oid = parse_object_id(product_id, "id_producto")
    result = await db.productos.update_one({"_id": product_oid}, {"$set": updates})
    if result.matched_count == 0:
        raise NotFound("Producto no encontrado")

    product = await db.productos.find_one({"_id": product_oid})
    return {
        "success": True,
        "message": "Producto actualizado exitosamente",
        "data": serialize_doc(product),
    }


@router.delete("/{product_id}")
async def delete_product(
    product_id: str,
    admin=Depends(require_admin),
    db=Depends(get_db),
):
    # soft delete: listings and orders keep referencing the product
    result = await db.productos.update_one(
        {"_id": parse_object_id(product_id, "id_producto")},
        {"$set": {"estado": False}},
    )
    if result.matched_count == 0:
        raise NotFound("Producto no encontrado")

    return {"success": True, "message": "Producto eliminado exitosamente"}

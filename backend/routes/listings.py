from typing import Optional

from fastapi import APIRouter, Depends, Query

from config.constants import LISTING_ACTIVE
from database import get_db
from models.listing import ListingCreate, ListingStatusUpdate
from utils.guards import paginate, pagination_meta
from utils.listing_service import (
    create_listing,
    list_listings,
    my_listings,
    update_listing_status,
    report_listing,
)
from utils.mongo import serialize_doc, serialize_docs
from utils.security import get_current_user

router = APIRouter(prefix="/api/anuncios", tags=["Anuncios"])


# ======================================================
# MY LISTINGS (STATIC ROUTE FIRST)
# ======================================================

@router.get("/mis-anuncios")
async def get_my_listings(
    tipo: str = Query("venta"),
    user=Depends(get_current_user),
    db=Depends(get_db),
):
    listings = await my_listings(db, user["_id"], tipo)
    return {"success": True, "tipo": tipo, "data": serialize_docs(listings)}


# ======================================================
# CREATE (QUOTA ENFORCED)
# ======================================================

@router.post("/{tipo}", status_code=201)
async def post_listing(
    tipo: str,
    data: ListingCreate,
    user=Depends(get_current_user),
    db=Depends(get_db),
):
    listing = await create_listing(
        db,
        owner=user,
        listing_type=tipo,
        data=data.model_dump(),
    )
    return {
        "success": True,
        "message": f"Anuncio de {tipo} creado exitosamente",
        "data": serialize_doc(listing),
    }


# ======================================================
# PUBLIC SEARCH
# ======================================================

@router.get("/{tipo}")
async def search_listings(
    tipo: str,
    estado: str = LISTING_ACTIVE,
    producto_id: Optional[str] = None,
    search: Optional[str] = None,
    ubicacion: Optional[str] = None,
    precio_min: Optional[float] = None,
    precio_max: Optional[float] = None,
    cantidad_min: Optional[float] = None,
    page: int = 1,
    limit: int = 20,
    db=Depends(get_db),
):
    page, limit, skip = paginate(page, limit, max_limit=50)

    listings, total = await list_listings(
        db,
        tipo,
        status=estado,
        product_id=producto_id,
        search=search,
        location=ubicacion,
        min_price=precio_min,
        max_price=precio_max,
        min_quantity=cantidad_min,
        skip=skip,
        limit=limit,
    )
    return {
        "success": True,
        "data": serialize_docs(listings),
        "pagination": pagination_meta(page, limit, total),
    }


# ======================================================
# OWNER STATUS CHANGE
# ======================================================

@router.put("/{tipo}/{listing_id}/estado")
async def change_listing_status(
    tipo: str,
    listing_id: str,
    data: ListingStatusUpdate,
    user=Depends(get_current_user),
    db=Depends(get_db),
):
    listing = await update_listing_status(
        db,
        owner_id=user["_id"],
        listing_type=tipo,
        listing_id=listing_id,
        status=data.estado,
    )
    return {
        "success": True,
        "message": "Estado del anuncio actualizado exitosamente",
        "data": serialize_doc(listing),
    }


@router.post("/{tipo}/{listing_id}/reportar")
async def report(
    tipo: str,
    listing_id: str,
    user=Depends(get_current_user),
    db=Depends(get_db),
):
    reports = await report_listing(db, listing_type=tipo, listing_id=listing_id)
    return {"success": True, "message": "Anuncio reportado", "reportes": reports}

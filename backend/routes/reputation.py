from fastapi import APIRouter, Depends, Query

from database import get_db
from models.rating import RatingCreate, RatingUpdate
from utils.guards import paginate, pagination_meta
from utils.mongo import serialize_doc, serialize_docs
from utils.reputation import (
    submit_rating,
    get_user_reputation,
    get_given_ratings,
    get_ranking,
    update_rating,
    delete_rating,
)
from utils.security import get_current_user

router = APIRouter(
    prefix="/api/reputacion",
    tags=["Reputación"]
)


# -------------------------------------------------
# SUBMIT RATING (RATER = CURRENT USER)
# -------------------------------------------------

@router.post("", status_code=201)
async def post_rating(
    data: RatingCreate,
    user=Depends(get_current_user),
    db=Depends(get_db),
):
    rating = await submit_rating(
        db,
        rater_id=user["_id"],
        ratee_id=data.id_usuario_calificado,
        order_id=data.id_pedido,
        score=data.calificacion,
        comment=data.comentario,
    )
    return {
        "success": True,
        "message": "Calificación creada exitosamente",
        "data": serialize_doc(rating),
    }


# -------------------------------------------------
# PUBLIC: RANKING / USER REPUTATION
# -------------------------------------------------

@router.get("/ranking")
async def ranking(
    limit: int = Query(10, ge=1, le=100),
    db=Depends(get_db),
):
    return {"success": True, "data": await get_ranking(db, limit=limit)}


@router.get("/usuario/{user_id}")
async def user_reputation(
    user_id: str,
    page: int = 1,
    limit: int = 10,
    db=Depends(get_db),
):
    page, limit, skip = paginate(page, limit)
    reputation = await get_user_reputation(db, user_id, skip=skip, limit=limit)
    stats = reputation["estadisticas"]

    return {
        "success": True,
        "data": {
            "calificaciones": serialize_docs(reputation["calificaciones"]),
            "estadisticas": stats,
            "pagination": pagination_meta(page, limit, stats["totalCalificaciones"]),
        },
    }


@router.get("/calificadas/{user_id}")
async def given_ratings(
    user_id: str,
    page: int = 1,
    limit: int = 10,
    user=Depends(get_current_user),
    db=Depends(get_db),
):
    page, limit, skip = paginate(page, limit)
    ratings, total = await get_given_ratings(db, user_id, skip=skip, limit=limit)
    return {
        "success": True,
        "data": serialize_docs(ratings),
        "pagination": pagination_meta(page, limit, total),
    }


# -------------------------------------------------
# EDIT / DELETE
# -------------------------------------------------

@router.put("/{rating_id}")
async def put_rating(
    rating_id: str,
    data: RatingUpdate,
    user=Depends(get_current_user),
    db=Depends(get_db),
):
    rating = await update_rating(
        db,
        rating_id,
        actor_id=user["_id"],
        score=data.calificacion,
        comment=data.comentario,
    )
    return {
        "success": True,
        "message": "Calificación actualizada exitosamente",
        "data": serialize_doc(rating),
    }


@router.delete("/{rating_id}")
async def remove_rating(
    rating_id: str,
    user=Depends(get_current_user),
    db=Depends(get_db),
):
    await delete_rating(db, rating_id, actor=user)
    return {"success": True, "message": "Calificación eliminada exitosamente"}

import pytest
from bson import ObjectId
from fastapi import HTTPException

from utils.errors import Conflict, InvalidScore, NotFound
from utils.reputation import (
    submit_rating,
    get_rating_stats,
    get_ranking,
    update_rating,
    delete_rating,
)


@pytest.mark.parametrize("score", [0, 6, -1, 4.5, "5", True, None])
async def test_out_of_range_scores_rejected(db, make_user, score):
    rater = await make_user()
    ratee = await make_user()

    with pytest.raises(InvalidScore):
        await submit_rating(db, rater_id=rater["_id"], ratee_id=ratee["_id"], score=score)

    assert await db.reputaciones.count_documents({}) == 0


@pytest.mark.parametrize("score", [1, 2, 3, 4, 5])
async def test_valid_scores_accepted(db, make_user, score):
    rater = await make_user()
    ratee = await make_user()

    rating = await submit_rating(db, rater_id=rater["_id"], ratee_id=ratee["_id"], score=score)

    assert rating["calificacion"] == score
    assert await db.reputaciones.count_documents({"id_usuario_calificado": ratee["_id"]}) == 1


async def test_one_rating_per_order(db, make_order):
    order = await make_order(status="entregado")

    await submit_rating(
        db,
        rater_id=order["id_comprador"],
        ratee_id=order["id_vendedor"],
        order_id=order["_id"],
        score=5,
    )
    with pytest.raises(Conflict):
        await submit_rating(
            db,
            rater_id=order["id_comprador"],
            ratee_id=order["id_vendedor"],
            order_id=order["_id"],
            score=3,
        )

    assert await db.reputaciones.count_documents({}) == 1


async def test_seller_can_rate_buyer_on_same_order(db, make_order):
    order = await make_order(status="completado")

    await submit_rating(db, rater_id=order["id_comprador"], ratee_id=order["id_vendedor"], order_id=order["_id"], score=5)
    await submit_rating(db, rater_id=order["id_vendedor"], ratee_id=order["id_comprador"], order_id=order["_id"], score=4)

    assert await db.reputaciones.count_documents({"id_pedido": order["_id"]}) == 2


async def test_pending_order_not_rateable(db, make_order):
    order = await make_order()

    with pytest.raises(Conflict):
        await submit_rating(
            db,
            rater_id=order["id_comprador"],
            ratee_id=order["id_vendedor"],
            order_id=order["_id"],
            score=4,
        )


async def test_unknown_order(db, make_user):
    rater = await make_user()
    ratee = await make_user()

    with pytest.raises(NotFound):
        await submit_rating(db, rater_id=rater["_id"], ratee_id=ratee["_id"], order_id=ObjectId(), score=4)


async def test_stats_average_and_histogram(db, make_user):
    ratee = await make_user()
    for score in (5, 4, 4):
        rater = await make_user()
        await submit_rating(db, rater_id=rater["_id"], ratee_id=ratee["_id"], score=score)

    stats = await get_rating_stats(db, ratee["_id"])

    assert stats["promedio"] == 4.3
    assert stats["totalCalificaciones"] == 3
    counts = {row["calificacion"]: row["cantidad"] for row in stats["distribucion"]}
    assert counts == {1: 0, 2: 0, 3: 0, 4: 2, 5: 1}


async def test_stats_for_unrated_user(db, make_user):
    user = await make_user()

    stats = await get_rating_stats(db, user["_id"])

    assert stats["promedio"] == 0.0
    assert stats["totalCalificaciones"] == 0


async def test_ranking_requires_three_ratings(db, make_user):
    top = await make_user(nombre="Rosa")
    newcomer = await make_user(nombre="Luis")
    steady = await make_user(nombre="Marta")
    veteran = await make_user(nombre="Ana")

    for ratee, scores in (
        (top, (5, 5, 5)),
        (newcomer, (5, 5)),
        (steady, (4, 4, 4, 4)),
        (veteran, (4, 4, 4)),
    ):
        for score in scores:
            await submit_rating(db, rater_id=(await make_user())["_id"], ratee_id=ratee["_id"], score=score)

    ranking = await get_ranking(db)

    ids = [entry["usuario"]["id_usuario"] for entry in ranking]
    assert str(newcomer["_id"]) not in ids
    # equal averages: more ratings ranks higher
    assert ids == [str(top["_id"]), str(steady["_id"]), str(veteran["_id"])]
    assert [entry["posicion"] for entry in ranking] == [1, 2, 3]
    assert ranking[0]["promedio"] == 5.0
    assert ranking[0]["usuario"]["nombre"] == "Rosa"
    assert ranking[1]["totalCalificaciones"] == 4


async def test_only_author_edits_rating(db, make_user):
    rater = await make_user()
    ratee = await make_user()
    rating = await submit_rating(db, rater_id=rater["_id"], ratee_id=ratee["_id"], score=3)

    with pytest.raises(HTTPException) as exc:
        await update_rating(db, rating["_id"], actor_id=ratee["_id"], score=1)
    assert exc.value.status_code == 403

    with pytest.raises(InvalidScore):
        await update_rating(db, rating["_id"], actor_id=rater["_id"], score=9)

    updated = await update_rating(db, rating["_id"], actor_id=rater["_id"], score=4, comment="Mejoró")
    assert updated["calificacion"] == 4


async def test_admin_may_delete_any_rating(db, make_user):
    rater = await make_user()
    ratee = await make_user()
    admin = await make_user(roles=("administrador",))
    rating = await submit_rating(db, rater_id=rater["_id"], ratee_id=ratee["_id"], score=2)

    with pytest.raises(HTTPException):
        await delete_rating(db, rating["_id"], actor=ratee)

    await delete_rating(db, rating["_id"], actor=admin)
    assert await db.reputaciones.count_documents({}) == 0

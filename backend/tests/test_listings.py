from datetime import datetime, timedelta

import pytest
from fastapi import HTTPException

from utils.errors import NotFound, QuotaExceeded
from utils.listing_service import create_listing, list_listings, update_listing_status

T0 = datetime(2024, 6, 10, 9, 0, 0)


def _data(product, precio=4.5):
    return {"id_producto": str(product["_id"]), "cantidad": 100, "unidad": "kg", "precio": precio}


async def _publish(db, user_id, product, listing_type="venta", now=T0, **kwargs):
    # quota counters live on the user document, so always post with a fresh copy
    owner = await db.usuarios.find_one({"_id": user_id})
    return await create_listing(db, owner=owner, listing_type=listing_type, data=_data(product, **kwargs), now=now)


async def test_daily_quota(db, make_user, make_product):
    user = await make_user()
    product = await make_product()

    for i in range(5):
        await _publish(db, user["_id"], product, now=T0 + timedelta(minutes=i))

    with pytest.raises(QuotaExceeded) as exc:
        await _publish(db, user["_id"], product, now=T0 + timedelta(hours=1))

    assert exc.value.status_code == 429
    assert exc.value.detail["limite"] == 5
    assert exc.value.detail["publicados"] == 5
    assert await db.anuncios_venta.count_documents({}) == 5


async def test_quota_resets_next_day(db, make_user, make_product):
    user = await make_user(limite_anuncios_diarios=1)
    product = await make_product()

    await _publish(db, user["_id"], product)
    with pytest.raises(QuotaExceeded):
        await _publish(db, user["_id"], product, now=T0 + timedelta(hours=2))

    await _publish(db, user["_id"], product, now=T0 + timedelta(days=1))

    stored = await db.usuarios.find_one({"_id": user["_id"]})
    assert stored["anuncios_publicados_hoy"] == 1


async def test_inactive_product_does_not_use_quota(db, make_user, make_product):
    user = await make_user()
    product = await make_product(estado=False)

    with pytest.raises(NotFound):
        await _publish(db, user["_id"], product)

    stored = await db.usuarios.find_one({"_id": user["_id"]})
    assert stored["anuncios_publicados_hoy"] == 0


async def test_buy_listing_carries_offered_price(db, make_user, make_product):
    user = await make_user()
    product = await make_product()

    listing = await _publish(db, user["_id"], product, listing_type="compra", precio=3.2)

    assert listing["precio_ofertado"] == 3.2
    assert "precio" not in listing
    assert await db.anuncios_compra.count_documents({}) == 1


async def test_unknown_listing_type(db, make_user, make_product):
    user = await make_user()
    product = await make_product()

    with pytest.raises(HTTPException) as exc:
        await _publish(db, user["_id"], product, listing_type="trueque")
    assert exc.value.status_code == 400


async def test_search_filters(db, make_user, make_product):
    user = await make_user(limite_anuncios_diarios=10)
    papa = await make_product(nombre="Papa Huaycha")
    maiz = await make_product(nombre="Maíz amarillo")

    await _publish(db, user["_id"], papa, precio=2.0)
    await _publish(db, user["_id"], papa, precio=6.0)
    await _publish(db, user["_id"], maiz, precio=3.0)

    listings, total = await list_listings(db, "venta", search="papa", max_price=5)
    assert total == 1
    assert listings[0]["precio"] == 2.0
    assert listings[0]["producto"]["nombre"] == "Papa Huaycha"

    _, total = await list_listings(db, "venta")
    assert total == 3


async def test_only_owner_changes_status(db, make_user, make_product):
    owner = await make_user()
    other = await make_user()
    listing = await _publish(db, owner["_id"], await make_product())

    with pytest.raises(NotFound):
        await update_listing_status(db, owner_id=other["_id"], listing_type="venta", listing_id=listing["_id"], status="pausado")

    paused = await update_listing_status(db, owner_id=owner["_id"], listing_type="venta", listing_id=listing["_id"], status="pausado")
    assert paused["estado"] == "pausado"

    _, total = await list_listings(db, "venta")
    assert total == 0

from datetime import datetime

import pytest
from bson import ObjectId
from httpx import ASGITransport, AsyncClient
from mongomock_motor import AsyncMongoMockClient

from config import env
from database import get_db
from main import app
from utils import jwt as jwt_utils
from utils.jwt import create_access_token
from utils.order_service import create_order

TEST_JWT_SECRET = "test-jwt-secret"


@pytest.fixture(autouse=True)
def test_settings(monkeypatch):
    # utils.jwt binds the secret at import time
    monkeypatch.setattr(jwt_utils, "JWT_SECRET", TEST_JWT_SECRET)
    monkeypatch.setattr(env, "QR_VERIFIER", "stub")
    monkeypatch.setattr(env, "QR_EXPIRY_MINUTES", 30)
    monkeypatch.setattr(env, "RANKING_MIN_RATINGS", 3)
    monkeypatch.setattr(env, "DEFAULT_DAILY_LISTING_LIMIT", 5)


@pytest.fixture
def db():
    return AsyncMongoMockClient()["agromarket_test"]


@pytest.fixture
async def client(db):
    app.dependency_overrides[get_db] = lambda: db
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as c:
        yield c
    app.dependency_overrides.clear()


@pytest.fixture
def make_user(db):
    async def _make(roles=("cliente",), **fields):
        user = {
            "nombre": "Usuario",
            "apellido": "Prueba",
            "email": f"{ObjectId()}@agromarket.com",
            "telefono": "70000000",
            "roles": list(roles),
            "estado": True,
            "verificado": False,
            "limite_anuncios_diarios": 5,
            "anuncios_publicados_hoy": 0,
            "ultima_publicacion": None,
            "fecha_registro": datetime.utcnow(),
        }
        user.update(fields)
        await db.usuarios.insert_one(user)
        return user

    return _make


@pytest.fixture
def make_order(db, make_user):
    async def _make(amount=250.0, status=None, buyer=None, seller=None, now=None):
        buyer = buyer or await make_user()
        seller = seller or await make_user(roles=("productor",))
        order = await create_order(
            db,
            buyer_id=buyer["_id"],
            seller_id=seller["_id"],
            amount=amount,
            now=now,
        )
        if status:
            await db.pedidos.update_one({"_id": order["_id"]}, {"$set": {"estado": status}})
            order["estado"] = status
        return order

    return _make


@pytest.fixture
def make_product(db):
    async def _make(nombre="Papa", estado=True, **fields):
        product = {
            "nombre": nombre,
            "descripcion": None,
            "unidad_medida": "kg",
            "precio_referencial": 5.0,
            "categorias": ["tuberculos"],
            "estado": estado,
            "fecha_creacion": datetime.utcnow(),
        }
        product.update(fields)
        await db.productos.insert_one(product)
        return product

    return _make


@pytest.fixture
def auth_headers():
    def _headers(user):
        token = create_access_token(user)
        return {"Authorization": f"Bearer {token}"}

    return _headers

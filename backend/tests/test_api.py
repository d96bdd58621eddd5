from bson import ObjectId


async def test_health(client):
    resp = await client.get("/api/health")

    assert resp.status_code == 200
    assert resp.json() == {"status": "ok"}


# ==================== USERS ====================

async def test_register_then_login(client):
    payload = {
        "nombre": "Rosa",
        "apellido": "Quispe",
        "email": "Rosa.Quispe@agromarket.com",
        "password": "papas2024",
        "roles": ["productor"],
    }

    resp = await client.post("/api/usuarios/registro", json=payload)
    assert resp.status_code == 201
    body = resp.json()
    assert body["data"]["email"] == "rosa.quispe@agromarket.com"
    assert "password_hash" not in body["data"]

    dup = await client.post("/api/usuarios/registro", json=payload)
    assert dup.status_code == 409

    login = await client.post("/api/usuarios/login", json={"email": payload["email"], "password": "papas2024"})
    assert login.status_code == 200
    token = login.json()["token"]

    profile = await client.get("/api/usuarios/perfil", headers={"Authorization": f"Bearer {token}"})
    assert profile.status_code == 200
    assert profile.json()["data"]["nombre"] == "Rosa"


async def test_register_cannot_claim_admin(client):
    resp = await client.post("/api/usuarios/registro", json={
        "nombre": "Eva",
        "email": "eva@agromarket.com",
        "password": "secreto123",
        "roles": ["administrador"],
    })

    assert resp.status_code == 400


async def test_login_is_rate_limited(client):
    creds = {"email": "nadie@agromarket.com", "password": "incorrecta"}

    for _ in range(5):
        resp = await client.post("/api/usuarios/login", json=creds)
        assert resp.status_code == 401

    resp = await client.post("/api/usuarios/login", json=creds)
    assert resp.status_code == 429


async def test_protected_route_requires_token(client):
    resp = await client.get("/api/usuarios/perfil")
    assert resp.status_code in (401, 403)

    resp = await client.get("/api/usuarios/perfil", headers={"Authorization": "Bearer basura"})
    assert resp.status_code == 401


async def test_admin_routes_reject_clients(client, make_user, auth_headers):
    user = await make_user()

    resp = await client.get("/api/usuarios", headers=auth_headers(user))
    assert resp.status_code == 403


async def test_disabled_user_token_rejected(client, make_user, auth_headers):
    user = await make_user(estado=False)

    resp = await client.get("/api/usuarios/perfil", headers=auth_headers(user))
    assert resp.status_code == 401


# ==================== ORDER + QR PAYMENT FLOW ====================

async def test_order_payment_flow(client, db, make_user, auth_headers):
    buyer = await make_user()
    seller = await make_user(roles=("productor",))
    headers = auth_headers(buyer)

    resp = await client.post("/api/pedidos", headers=headers, json={
        "id_comprador": str(buyer["_id"]),
        "id_vendedor": str(seller["_id"]),
        "monto_total": 250.0,
    })
    assert resp.status_code == 201
    order = resp.json()["data"]
    assert order["estado"] == "pendiente"
    assert order["vendedor"]["nombre"] == seller["nombre"]

    wrong = await client.post("/api/pagos-qr", headers=headers, json={
        "id_pedido": order["id"],
        "monto": 249.99,
        "metodo_pago": "tigo_money",
    })
    assert wrong.status_code == 400
    assert await db.pagos_qr.count_documents({}) == 0

    resp = await client.post("/api/pagos-qr", headers=headers, json={
        "id_pedido": order["id"],
        "monto": 250.0,
        "metodo_pago": "tigo_money",
    })
    assert resp.status_code == 201
    intent = resp.json()["data"]

    public = await client.get(f"/api/pagos-qr/codigo/{intent['codigo_qr']}")
    assert public.status_code == 200
    assert public.json()["data"]["estado"] == "pendiente"

    confirm = await client.put(f"/api/pagos-qr/{intent['id']}/verificar", headers=headers, json={
        "codigo_verificacion": "TX-991",
    })
    assert confirm.status_code == 200
    assert confirm.json()["data"]["estado"] == "completado"

    again = await client.put(f"/api/pagos-qr/{intent['id']}/verificar", headers=headers, json={})
    assert again.status_code == 409

    detail = await client.get(f"/api/pedidos/{order['id']}", headers=headers)
    assert detail.json()["data"]["estado"] == "pagado"


async def test_outsiders_cannot_see_orders(client, make_order, make_user, auth_headers):
    order = await make_order()
    outsider = await make_user()

    resp = await client.get(f"/api/pedidos/{order['_id']}", headers=auth_headers(outsider))
    assert resp.status_code == 403


async def test_cancel_order_twice(client, make_order, db, auth_headers):
    order = await make_order()
    buyer = await db.usuarios.find_one({"_id": order["id_comprador"]})

    first = await client.patch(f"/api/pedidos/{order['_id']}/cancelar", headers=auth_headers(buyer))
    assert first.status_code == 200

    second = await client.patch(f"/api/pedidos/{order['_id']}/cancelar", headers=auth_headers(buyer))
    assert second.status_code == 409


async def test_illegal_status_jump(client, make_order, db, auth_headers):
    order = await make_order()
    seller = await db.usuarios.find_one({"_id": order["id_vendedor"]})

    resp = await client.put(f"/api/pedidos/{order['_id']}", headers=auth_headers(seller), json={"estado": "entregado"})
    assert resp.status_code == 409


async def test_rejected_update_leaves_amount_untouched(client, make_order, db, auth_headers):
    order = await make_order(amount=250.0)
    buyer = await db.usuarios.find_one({"_id": order["id_comprador"]})

    resp = await client.put(
        f"/api/pedidos/{order['_id']}",
        headers=auth_headers(buyer),
        json={"monto_total": 999.0, "estado": "completado"},
    )
    assert resp.status_code == 409

    stored = await db.pedidos.find_one({"_id": order["_id"]})
    assert stored["estado"] == "pendiente"
    assert stored["monto_total"] == 250.0

    resp = await client.put(
        f"/api/pedidos/{order['_id']}",
        headers=auth_headers(buyer),
        json={"monto_total": 300.0, "estado": "pagado"},
    )
    assert resp.status_code == 200
    assert resp.json()["data"]["monto_total"] == 300.0
    assert resp.json()["data"]["estado"] == "pagado"


async def test_unknown_order_is_404(client, make_user, auth_headers):
    user = await make_user()

    resp = await client.get(f"/api/pedidos/{ObjectId()}", headers=auth_headers(user))
    assert resp.status_code == 404

    resp = await client.get("/api/pedidos/no-es-un-id", headers=auth_headers(user))
    assert resp.status_code == 400


# ==================== REPUTATION ====================

async def test_rating_endpoints(client, make_order, db, auth_headers):
    order = await make_order(status="entregado")
    buyer = await db.usuarios.find_one({"_id": order["id_comprador"]})
    payload = {
        "id_usuario_calificado": str(order["id_vendedor"]),
        "id_pedido": str(order["_id"]),
        "calificacion": 6,
    }

    resp = await client.post("/api/reputacion", headers=auth_headers(buyer), json=payload)
    assert resp.status_code == 400

    payload["calificacion"] = 4.5
    resp = await client.post("/api/reputacion", headers=auth_headers(buyer), json=payload)
    assert resp.status_code == 400

    payload["calificacion"] = 5
    resp = await client.post("/api/reputacion", headers=auth_headers(buyer), json=payload)
    assert resp.status_code == 201
    assert resp.json()["data"]["id_usuario_calificador"] == str(buyer["_id"])

    dup = await client.post("/api/reputacion", headers=auth_headers(buyer), json=payload)
    assert dup.status_code == 409

    rep = await client.get(f"/api/reputacion/usuario/{order['id_vendedor']}")
    stats = rep.json()["data"]["estadisticas"]
    assert stats["promedio"] == 5.0
    assert stats["totalCalificaciones"] == 1

    ranking = await client.get("/api/reputacion/ranking")
    assert ranking.status_code == 200
    assert ranking.json()["data"] == []


# ==================== MEMBERSHIPS ====================

async def test_membership_endpoints(client, db, make_user, auth_headers):
    admin = await make_user(roles=("administrador",))
    user = await make_user()
    other = await make_user()

    resp = await client.post("/api/membresias", headers=auth_headers(admin), json={
        "nombre": "Premium",
        "precio": 50,
        "duracion_dias": 30,
    })
    assert resp.status_code == 201
    membership_id = resp.json()["data"]["id"]

    none = await client.get("/api/membresias/mi-membresia", headers=auth_headers(user))
    assert none.json()["data"] is None

    forbidden = await client.post("/api/membresias/asignar", headers=auth_headers(user), json={
        "id_usuario": str(other["_id"]),
        "id_membresia": membership_id,
    })
    assert forbidden.status_code == 403

    resp = await client.post("/api/membresias/asignar", headers=auth_headers(user), json={
        "id_usuario": str(user["_id"]),
        "id_membresia": membership_id,
    })
    assert resp.status_code == 201

    mine = await client.get("/api/membresias/mi-membresia", headers=auth_headers(user))
    data = mine.json()["data"]
    assert data["membresia"]["nombre"] == "Premium"
    assert data["dias_restantes"] == 30

    blocked = await client.delete(f"/api/membresias/{membership_id}", headers=auth_headers(admin))
    assert blocked.status_code == 409


# ==================== LISTINGS ====================

async def test_listing_quota_over_http(client, make_user, make_product, auth_headers):
    user = await make_user(limite_anuncios_diarios=1)
    product = await make_product()
    payload = {"id_producto": str(product["_id"]), "cantidad": 50, "unidad": "kg", "precio": 3.5}

    first = await client.post("/api/anuncios/venta", headers=auth_headers(user), json=payload)
    assert first.status_code == 201

    second = await client.post("/api/anuncios/venta", headers=auth_headers(user), json=payload)
    assert second.status_code == 429
    detail = second.json()["detail"]
    assert detail["limite"] == 1
    assert detail["publicados"] == 1

    public = await client.get("/api/anuncios/venta")
    assert public.json()["pagination"]["totalItems"] == 1


# ==================== COMMENTS / FAVORITES ====================

async def test_comment_needs_existing_target(client, make_user, make_product, auth_headers):
    user = await make_user()

    resp = await client.post("/api/comentarios", headers=auth_headers(user), json={"contenido": "Buena calidad"})
    assert resp.status_code == 400

    resp = await client.post("/api/comentarios", headers=auth_headers(user), json={
        "contenido": "Buena calidad",
        "id_producto": str(ObjectId()),
    })
    assert resp.status_code == 404

    product = await make_product()
    resp = await client.post("/api/comentarios", headers=auth_headers(user), json={
        "contenido": "Buena calidad",
        "id_producto": str(product["_id"]),
    })
    assert resp.status_code == 201

    listed = await client.get(f"/api/comentarios/producto/{product['_id']}")
    assert listed.json()["data"][0]["usuario"]["nombre"] == user["nombre"]


async def test_comment_edit_and_delete_rights(client, make_user, make_product, auth_headers):
    author = await make_user()
    stranger = await make_user()
    admin = await make_user(roles=("administrador",))
    product = await make_product()

    resp = await client.post("/api/comentarios", headers=auth_headers(author), json={
        "contenido": "Llegó a tiempo",
        "id_producto": str(product["_id"]),
    })
    comment_id = resp.json()["data"]["id"]

    edit = await client.put(f"/api/comentarios/{comment_id}", headers=auth_headers(stranger), json={"contenido": "x"})
    assert edit.status_code == 403

    removed = await client.delete(f"/api/comentarios/{comment_id}", headers=auth_headers(admin))
    assert removed.status_code == 200


async def test_favorites(client, make_user, make_product, auth_headers):
    user = await make_user()
    other = await make_user()
    product = await make_product()
    payload = {"id_producto": str(product["_id"])}

    resp = await client.post("/api/favoritos", headers=auth_headers(user), json=payload)
    assert resp.status_code == 201
    favorite_id = resp.json()["data"]["id"]

    dup = await client.post("/api/favoritos", headers=auth_headers(user), json=payload)
    assert dup.status_code == 409

    check = await client.get("/api/favoritos/verificar", headers=auth_headers(user), params=payload)
    assert check.json()["data"]["es_favorito"] is True

    popular = await client.get("/api/favoritos/populares")
    assert popular.json()["data"][0]["total_favoritos"] == 1

    denied = await client.delete(f"/api/favoritos/{favorite_id}", headers=auth_headers(other))
    assert denied.status_code == 403

    removed = await client.delete(f"/api/favoritos/{favorite_id}", headers=auth_headers(user))
    assert removed.status_code == 200

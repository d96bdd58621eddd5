import re
from datetime import datetime

from fastapi import APIRouter, Depends, HTTPException, Query
from pymongo.errors import DuplicateKeyError

from config import env
from config.constants import ALL_ROLES, SELF_ASSIGNABLE_ROLES, ROLE_ADMIN, ROLE_CLIENT
from database import get_db
from models.user import UserCreate, UserLogin, UserUpdate, RolesUpdate, ActiveUpdate
from utils.audit import log_audit
from utils.errors import Conflict, NotFound
from utils.guards import parse_object_id, paginate, pagination_meta
from utils.hash import hash_password, verify_password
from utils.jwt import create_access_token
from utils.mongo import serialize_doc
from utils.rate_limit import rate_limit, reset_rate_limit
from utils.security import get_current_user, require_admin

router = APIRouter(prefix="/api/usuarios", tags=["Usuarios"])

LOGIN_MAX_ATTEMPTS = 5
LOGIN_WINDOW_SECONDS = 300

PRIVATE_FIELDS = ("password_hash", "reset_password_token", "reset_password_expires")

# ======================
# Helpers
# ======================

def public_user(user: dict) -> dict:
    doc = {k: v for k, v in user.items() if k not in PRIVATE_FIELDS}
    return serialize_doc(doc)

# ======================
# Register
# ======================

@router.post("/registro", status_code=201)
async def register(data: UserCreate, db=Depends(get_db)):
    roles = set(data.roles or [ROLE_CLIENT])
    if not roles <= SELF_ASSIGNABLE_ROLES:
        raise HTTPException(400, f"Roles permitidos: {', '.join(sorted(SELF_ASSIGNABLE_ROLES))}")

    email = data.email.lower()
    if await db.usuarios.find_one({"email": email}, {"_id": 1}):
        raise Conflict("El email ya está registrado")

    try:
        password_hash = hash_password(data.password)
    except ValueError as e:
        raise HTTPException(400, str(e))

    now = datetime.utcnow()
    user = {
        "nombre": data.nombre,
        "apellido": data.apellido,
        "email": email,
        "password_hash": password_hash,
        "telefono": data.telefono,
        "direccion": data.direccion,
        "ubicacion_lat": data.ubicacion_lat,
        "ubicacion_lng": data.ubicacion_lng,
        "roles": sorted(roles),
        "estado": True,
        "verificado": False,
        "documento_identidad": None,
        "foto_perfil_url": None,
        "limite_anuncios_diarios": env.DEFAULT_DAILY_LISTING_LIMIT,
        "anuncios_publicados_hoy": 0,
        "ultima_publicacion": None,
        "fecha_registro": now,
    }

    try:
        await db.usuarios.insert_one(user)
    except DuplicateKeyError:
        raise Conflict("El email ya está registrado")

    return {
        "success": True,
        "message": "Usuario registrado exitosamente",
        "data": public_user(user),
        "token": create_access_token(user),
    }

# ======================
# Login
# ======================

@router.post("/login")
async def login(data: UserLogin, db=Depends(get_db)):
    email = data.email.lower()

    await rate_limit(
        db=db,
        key=f"login:{email}",
        max_requests=LOGIN_MAX_ATTEMPTS,
        window_seconds=LOGIN_WINDOW_SECONDS,
    )

    user = await db.usuarios.find_one({"email": email})
    if not user or not user.get("estado", True):
        raise HTTPException(401, "Credenciales inválidas o cuenta desactivada")

    valid, new_hash = verify_password(data.password, user.get("password_hash"))
    if not valid:
        raise HTTPException(401, "Credenciales inválidas")

    if new_hash:
        await db.usuarios.update_one({"_id": user["_id"]}, {"$set": {"password_hash": new_hash}})

    await reset_rate_limit(db, f"login:{email}")

    return {
        "success": True,
        "message": "Inicio de sesión exitoso",
        "data": public_user(user),
        "token": create_access_token(user),
        "token_type": "bearer",
    }

# ======================
# Current User
# ======================

@router.get("/perfil")
async def get_profile(user=Depends(get_current_user)):
    return {"success": True, "data": public_user(user)}


@router.put("/perfil")
async def update_profile(
    data: UserUpdate,
    user=Depends(get_current_user),
    db=Depends(get_db),
):
    updates = data.model_dump(exclude_unset=True)
    if not updates:
        raise HTTPException(400, "No hay campos para actualizar")

    await db.usuarios.update_one({"_id": user["_id"]}, {"$set": updates})
    user.update(updates)

    return {
        "success": True,
        "message": "Perfil actualizado exitosamente",
        "data": public_user(user),
    }

# ======================
# Admin
# ======================

@router.get("")
async def list_users(
    page: int = 1,
    limit: int = 10,
    search: str | None = Query(None),
    admin=Depends(require_admin),
    db=Depends(get_db),
):
    page, limit, skip = paginate(page, limit)

    query: dict = {}
    if search:
        pattern = re.escape(search)
        query["$or"] = [
            {"nombre": {"$regex": pattern, "$options": "i"}},
            {"apellido": {"$regex": pattern, "$options": "i"}},
            {"email": {"$regex": pattern, "$options": "i"}},
        ]

    total = await db.usuarios.count_documents(query)
    cursor = db.usuarios.find(query).sort("fecha_registro", -1).skip(skip).limit(limit)
    users = [public_user(u) async for u in cursor]

    return {
        "success": True,
        "data": users,
        "pagination": pagination_meta(page, limit, total),
    }


async def _get_user(db, user_id) -> dict:
    user = await db.usuarios.find_one({"_id": parse_object_id(user_id, "id_usuario")})
    if not user:
        raise NotFound("Usuario no encontrado")
    return user


@router.put("/{user_id}/roles")
async def set_roles(
    user_id: str,
    data: RolesUpdate,
    admin=Depends(require_admin),
    db=Depends(get_db),
):
    roles = set(data.roles)
    if not roles <= ALL_ROLES:
        raise HTTPException(400, f"Roles permitidos: {', '.join(sorted(ALL_ROLES))}")

    user = await _get_user(db, user_id)
    await db.usuarios.update_one({"_id": user["_id"]}, {"$set": {"roles": sorted(roles)}})

    await log_audit(
        db,
        "USER_ROLES_CHANGED",
        entity="usuarios",
        entity_id=user["_id"],
        actor_id=admin["_id"],
        actor_role=ROLE_ADMIN,
        metadata={"roles": sorted(roles)},
    )

    user["roles"] = sorted(roles)
    return {"success": True, "message": "Roles actualizados", "data": public_user(user)}


@router.put("/{user_id}/estado")
async def set_active(
    user_id: str,
    data: ActiveUpdate,
    admin=Depends(require_admin),
    db=Depends(get_db),
):
    user = await _get_user(db, user_id)
    await db.usuarios.update_one({"_id": user["_id"]}, {"$set": {"estado": data.estado}})

    await log_audit(
        db,
        "USER_ENABLED" if data.estado else "USER_DISABLED",
        entity="usuarios",
        entity_id=user["_id"],
        actor_id=admin["_id"],
        actor_role=ROLE_ADMIN,
    )

    user["estado"] = data.estado
    return {"success": True, "message": "Estado actualizado", "data": public_user(user)}


@router.put("/{user_id}/verificar")
async def verify_user(
    user_id: str,
    admin=Depends(require_admin),
    db=Depends(get_db),
):
    user = await _get_user(db, user_id)
    await db.usuarios.update_one(
        {"_id": user["_id"]},
        {"$set": {"verificado": True, "fecha_verificacion": datetime.utcnow()}},
    )

    user["verificado"] = True
    return {"success": True, "message": "Usuario verificado", "data": public_user(user)}

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from jose import JWTError
from datetime import datetime

from config.constants import ROLE_ADMIN
from utils.jwt import decode_token
from utils.guards import parse_object_id
from database import get_db

security = HTTPBearer()


async def get_current_user(
    credentials: HTTPAuthorizationCredentials = Depends(security),
    db=Depends(get_db),
):
    try:
        payload = decode_token(credentials.credentials)
    except JWTError:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Token inválido",
        )

    user_id = payload.get("sub")
    if not user_id:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid token payload",
        )

    user = await db.usuarios.find_one({"_id": parse_object_id(user_id, "token subject")})
    if not user or not user.get("estado", True):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Token inválido o usuario desactivado",
        )

    await db.usuarios.update_one(
        {"_id": user["_id"]},
        {"$set": {"ultima_actividad": datetime.utcnow()}}
    )

    return user


def has_role(user: dict, *roles: str) -> bool:
    return any(r in user.get("roles", []) for r in roles)


def require_role(*required_roles: str):
    async def checker(user=Depends(get_current_user)):
        if not has_role(user, *required_roles):
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail="No tienes permisos para acceder a este recurso",
            )
        return user

    return checker


require_admin = require_role(ROLE_ADMIN)

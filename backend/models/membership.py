from pydantic import BaseModel, Field
from typing import Any, Dict, Optional


class MembershipCreate(BaseModel):
    nombre: str = Field(..., min_length=1, max_length=100)
    descripcion: Optional[str] = None
    precio: float = Field(..., ge=0)
    duracion_dias: int = Field(..., gt=0)
    caracteristicas: Dict[str, Any] = {}
    activo: bool = True


class MembershipUpdate(BaseModel):
    nombre: Optional[str] = Field(None, min_length=1, max_length=100)
    descripcion: Optional[str] = None
    precio: Optional[float] = Field(None, ge=0)
    duracion_dias: Optional[int] = Field(None, gt=0)
    caracteristicas: Optional[Dict[str, Any]] = None
    activo: Optional[bool] = None


class MembershipAssign(BaseModel):
    id_usuario: str
    id_membresia: str

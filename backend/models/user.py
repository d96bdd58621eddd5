from pydantic import BaseModel, EmailStr, Field
from typing import List, Optional


class UserCreate(BaseModel):
    nombre: str = Field(..., min_length=1, max_length=100)
    apellido: Optional[str] = Field(None, max_length=100)
    email: EmailStr
    password: str = Field(..., min_length=6)
    telefono: Optional[str] = Field(None, max_length=20)
    direccion: Optional[str] = Field(None, max_length=200)
    ubicacion_lat: Optional[float] = Field(None, ge=-90, le=90)
    ubicacion_lng: Optional[float] = Field(None, ge=-180, le=180)
    roles: List[str] = ["cliente"]      # cliente | productor


class UserLogin(BaseModel):
    email: EmailStr
    password: str


class UserUpdate(BaseModel):
    nombre: Optional[str] = Field(None, min_length=1, max_length=100)
    apellido: Optional[str] = Field(None, max_length=100)
    telefono: Optional[str] = Field(None, max_length=20)
    direccion: Optional[str] = Field(None, max_length=200)
    ubicacion_lat: Optional[float] = Field(None, ge=-90, le=90)
    ubicacion_lng: Optional[float] = Field(None, ge=-180, le=180)
    documento_identidad: Optional[str] = Field(None, max_length=20)
    foto_perfil_url: Optional[str] = None


class RolesUpdate(BaseModel):
    roles: List[str] = Field(..., min_length=1)


class ActiveUpdate(BaseModel):
    estado: bool

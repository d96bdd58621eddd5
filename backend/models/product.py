from pydantic import BaseModel, Field
from typing import List, Optional


class ProductCreate(BaseModel):
    nombre: str = Field(..., min_length=1, max_length=100)
    descripcion: Optional[str] = None
    unidad_medida: str = Field(..., max_length=50)      # kg, arrobas, cajas, quintales
    precio_referencial: Optional[float] = Field(None, ge=0)
    categorias: List[str] = []
    imagen_url: Optional[str] = None


class ProductUpdate(BaseModel):
    nombre: Optional[str] = Field(None, min_length=1, max_length=100)
    descripcion: Optional[str] = None
    unidad_medida: Optional[str] = Field(None, max_length=50)
    precio_referencial: Optional[float] = Field(None, ge=0)
    categorias: Optional[List[str]] = None
    imagen_url: Optional[str] = None
    estado: Optional[bool] = None

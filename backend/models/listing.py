from pydantic import BaseModel, Field
from typing import Literal, Optional


class ListingCreate(BaseModel):
    id_producto: str
    cantidad: float = Field(..., gt=0)
    unidad: str = Field(..., max_length=50)
    precio: float = Field(..., gt=0)     # precio (venta) / precio_ofertado (compra)
    descripcion: Optional[str] = None
    ubicacion: Optional[str] = Field(None, max_length=200)
    ubicacion_lat: Optional[float] = Field(None, ge=-90, le=90)
    ubicacion_lng: Optional[float] = Field(None, ge=-180, le=180)


class ListingStatusUpdate(BaseModel):
    estado: Literal["activo", "vendido", "pausado", "cancelado"]

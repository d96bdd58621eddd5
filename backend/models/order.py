from pydantic import BaseModel, Field
from typing import Literal, Optional


class OrderCreate(BaseModel):
    id_comprador: str
    id_vendedor: str
    id_anuncio: Optional[str] = None
    tipo_anuncio: Optional[Literal["venta", "compra"]] = None
    monto_total: float = Field(..., gt=0)


class OrderUpdate(BaseModel):
    estado: Optional[str] = None
    monto_total: Optional[float] = Field(None, gt=0)


class ManualVerification(BaseModel):
    notas_verificacion: Optional[str] = None

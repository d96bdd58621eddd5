from pydantic import BaseModel, Field
from typing import Any, Dict, Optional


class QrPaymentCreate(BaseModel):
    id_pedido: str
    monto: float = Field(..., gt=0)
    metodo_pago: str = Field(..., min_length=1, max_length=50)    # tigo_money, qr_simple, banco...
    datos_qr: Dict[str, Any] = {}


class QrPaymentConfirm(BaseModel):
    codigo_verificacion: Optional[str] = None
    datos_pago: Dict[str, Any] = {}

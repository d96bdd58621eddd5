from pydantic import BaseModel
from typing import Optional, Union


# scores are validated by the reputation ledger, not here,
# so fractional or out-of-range scores surface as InvalidScore
class RatingCreate(BaseModel):
    id_usuario_calificado: str
    id_pedido: Optional[str] = None
    calificacion: Union[int, float]
    comentario: Optional[str] = None


class RatingUpdate(BaseModel):
    calificacion: Optional[Union[int, float]] = None
    comentario: Optional[str] = None

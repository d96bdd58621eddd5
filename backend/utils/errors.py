from fastapi import HTTPException, status

# -------------------------------
# Lifecycle error taxonomy
# -------------------------------


class NotFound(HTTPException):
    def __init__(self, detail: str = "Recurso no encontrado"):
        super().__init__(status_code=status.HTTP_404_NOT_FOUND, detail=detail)


class Conflict(HTTPException):
    def __init__(self, detail: str):
        super().__init__(status_code=status.HTTP_409_CONFLICT, detail=detail)


class InvalidScore(HTTPException):
    def __init__(self, detail: str = "La calificación debe estar entre 1 y 5"):
        super().__init__(status_code=status.HTTP_400_BAD_REQUEST, detail=detail)


class InvalidAmount(HTTPException):
    def __init__(self, detail: str = "El monto no coincide con el total del pedido"):
        super().__init__(status_code=status.HTTP_400_BAD_REQUEST, detail=detail)


class Expired(HTTPException):
    def __init__(self, detail: str = "El código QR ha expirado"):
        super().__init__(status_code=status.HTTP_410_GONE, detail=detail)


class Inactive(HTTPException):
    def __init__(self, detail: str = "La membresía no está disponible"):
        super().__init__(status_code=status.HTTP_400_BAD_REQUEST, detail=detail)


class PaymentRejected(HTTPException):
    def __init__(self, detail: str = "No se pudo verificar el pago"):
        super().__init__(status_code=status.HTTP_402_PAYMENT_REQUIRED, detail=detail)


class QuotaExceeded(HTTPException):
    def __init__(self, limit: int, published: int):
        super().__init__(
            status_code=status.HTTP_429_TOO_MANY_REQUESTS,
            detail={
                "error": "Límite diario de anuncios alcanzado",
                "limite": limit,
                "publicados": published,
                "mensaje": "Puedes publicar más anuncios mañana o mejorar tu membresía",
            },
        )

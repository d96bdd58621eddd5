# backend/config/constants.py

# -----------------------------
# ROLES
# -----------------------------

ROLE_ADMIN = "administrador"
ROLE_PRODUCER = "productor"
ROLE_CLIENT = "cliente"

ALL_ROLES = {ROLE_ADMIN, ROLE_PRODUCER, ROLE_CLIENT}
SELF_ASSIGNABLE_ROLES = {ROLE_PRODUCER, ROLE_CLIENT}

# -----------------------------
# ORDERS (PEDIDOS)
# -----------------------------

ORDER_PENDING = "pendiente"
ORDER_PAID = "pagado"
ORDER_SHIPPED = "enviado"
ORDER_DELIVERED = "entregado"
ORDER_COMPLETED = "completado"
ORDER_CANCELLED = "cancelado"

# current status -> statuses it may move to
ORDER_TRANSITIONS = {
    ORDER_PENDING: {ORDER_PAID, ORDER_CANCELLED},
    ORDER_PAID: {ORDER_SHIPPED, ORDER_CANCELLED},
    ORDER_SHIPPED: {ORDER_DELIVERED, ORDER_COMPLETED, ORDER_CANCELLED},
    ORDER_DELIVERED: {ORDER_COMPLETED, ORDER_CANCELLED},
    ORDER_COMPLETED: set(),
    ORDER_CANCELLED: set(),
}

ORDER_STATUSES = set(ORDER_TRANSITIONS)
RATEABLE_ORDER_STATUSES = {ORDER_DELIVERED, ORDER_COMPLETED}

# -----------------------------
# QR PAYMENTS
# -----------------------------

QR_PENDING = "pendiente"
QR_COMPLETED = "completado"
QR_FAILED = "fallido"
QR_EXPIRED = "expirado"
QR_CANCELLED = "cancelado"

QR_STATUSES = {QR_PENDING, QR_COMPLETED, QR_FAILED, QR_EXPIRED, QR_CANCELLED}

# -----------------------------
# LISTINGS (ANUNCIOS)
# -----------------------------

LISTING_SELL = "venta"
LISTING_BUY = "compra"

LISTING_ACTIVE = "activo"
LISTING_STATUSES = {"activo", "vendido", "pausado", "cancelado"}

# -----------------------------
# REPUTATION
# -----------------------------

MIN_SCORE = 1
MAX_SCORE = 5

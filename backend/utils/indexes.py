from pymongo import ASCENDING, DESCENDING
from pymongo.errors import OperationFailure

RATE_LIMIT_TTL_SECONDS = 60 * 60
AUDIT_TTL_SECONDS = 60 * 60 * 24 * 90


def _key_pattern(keys):
    return [(k, v) for k, v in keys]


async def _create_index_safe(collection, keys, **kwargs):
    """
    Create an index, replacing any index on the same key pattern whose
    options conflict (Mongo error codes 85/86).
    """
    desired_key = _key_pattern(keys)
    desired_name = kwargs.get("name")
    try:
        await collection.create_index(keys, **kwargs)
        return
    except OperationFailure as e:
        if getattr(e, "code", None) not in {85, 86}:
            raise

    async for idx in collection.list_indexes():
        if _key_pattern(list(idx.get("key", {}).items())) != desired_key:
            continue
        if idx.get("name") and idx.get("name") != desired_name:
            await collection.drop_index(idx["name"])

    await collection.create_index(keys, **kwargs)


async def ensure_indexes(db):
    # Usuarios
    await _create_index_safe(
        db.usuarios,
        [("email", ASCENDING)],
        name="usuarios_email_unique_idx",
        unique=True,
    )

    # Anuncios
    for name in ("anuncios_venta", "anuncios_compra"):
        await _create_index_safe(
            db[name],
            [("estado", ASCENDING), ("fecha_publicacion", DESCENDING)],
            name=f"{name}_estado_fecha_idx",
        )
        await _create_index_safe(
            db[name],
            [("id_usuario", ASCENDING), ("fecha_publicacion", DESCENDING)],
            name=f"{name}_usuario_fecha_idx",
        )

    # Pedidos
    await _create_index_safe(
        db.pedidos,
        [("id_comprador", ASCENDING), ("fecha", DESCENDING)],
        name="pedidos_comprador_fecha_idx",
    )
    await _create_index_safe(
        db.pedidos,
        [("id_vendedor", ASCENDING), ("fecha", DESCENDING)],
        name="pedidos_vendedor_fecha_idx",
    )

    # Pagos QR
    await _create_index_safe(
        db.pagos_qr,
        [("codigo_qr", ASCENDING)],
        name="pagos_qr_codigo_unique_idx",
        unique=True,
    )
    await _create_index_safe(
        db.pagos_qr,
        [("estado", ASCENDING), ("fecha_expiracion", ASCENDING)],
        name="pagos_qr_estado_expiracion_idx",
    )
    await _create_index_safe(
        db.pagos_qr,
        [("id_pedido", ASCENDING), ("estado", ASCENDING)],
        name="pagos_qr_pedido_estado_idx",
    )

    # Reputaciones: one rating per (rater, ratee, order)
    await _create_index_safe(
        db.reputaciones,
        [
            ("id_usuario_calificador", ASCENDING),
            ("id_usuario_calificado", ASCENDING),
            ("id_pedido", ASCENDING),
        ],
        name="reputaciones_triple_unique_idx",
        unique=True,
        partialFilterExpression={"id_pedido": {"$type": "objectId"}},
    )
    await _create_index_safe(
        db.reputaciones,
        [("id_usuario_calificado", ASCENDING), ("fecha_calificacion", DESCENDING)],
        name="reputaciones_calificado_fecha_idx",
    )

    # Membresias
    await _create_index_safe(
        db.usuario_membresias,
        [("id_usuario", ASCENDING), ("activo", ASCENDING)],
        name="usuario_membresias_usuario_activo_idx",
    )
    await _create_index_safe(
        db.usuario_membresias,
        [("activo", ASCENDING), ("fecha_expiracion", ASCENDING)],
        name="usuario_membresias_expiracion_idx",
    )

    # Favoritos
    await _create_index_safe(
        db.favoritos,
        [("id_usuario", ASCENDING), ("id_producto", ASCENDING), ("id_anuncio_venta", ASCENDING)],
        name="favoritos_usuario_elemento_unique_idx",
        unique=True,
    )

    # Housekeeping
    await _create_index_safe(
        db.rate_limits,
        [("created_at", ASCENDING)],
        name="rate_limits_ttl_idx",
        expireAfterSeconds=RATE_LIMIT_TTL_SECONDS,
    )
    await _create_index_safe(
        db.audit_logs,
        [("created_at", ASCENDING)],
        name="audit_logs_ttl_idx",
        expireAfterSeconds=AUDIT_TTL_SECONDS,
    )

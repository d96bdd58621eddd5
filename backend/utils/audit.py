from datetime import datetime

# audit_logs entries expire through the TTL index in utils/indexes.py
SYSTEM_ACTOR = "sistema"


async def log_audit(
    db,
    action: str,
    *,
    entity: str,
    entity_id,
    actor_id=None,
    actor_role: str = SYSTEM_ACTOR,
    metadata: dict | None = None,
):
    await db.audit_logs.insert_one({
        "action": action,
        "entity": entity,
        "entity_id": str(entity_id),
        "actor_id": str(actor_id) if actor_id is not None else None,
        "actor_role": actor_role,
        "metadata": metadata or {},
        "created_at": datetime.utcnow(),
    })

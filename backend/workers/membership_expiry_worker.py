import asyncio
import logging
from datetime import datetime

from config.env import EXPIRY_SWEEP_SECONDS
from database import get_db
from utils.membership_service import sweep_expired_memberships

logger = logging.getLogger(__name__)


async def membership_expiry_worker():
    db = get_db()

    while True:
        try:
            expired = await sweep_expired_memberships(db, datetime.utcnow())
            if expired:
                logger.info("MEMBERSHIPS_EXPIRED count=%s", expired)
        except Exception:
            logger.exception("MEMBERSHIP_EXPIRY_ERROR")

        await asyncio.sleep(EXPIRY_SWEEP_SECONDS)

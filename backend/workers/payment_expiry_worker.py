import asyncio
import logging
from datetime import datetime

from config.env import EXPIRY_SWEEP_SECONDS
from database import get_db
from utils.qr_payment_service import sweep_expired_intents

logger = logging.getLogger(__name__)


async def payment_expiry_worker():
    db = get_db()

    while True:
        try:
            expired = await sweep_expired_intents(db, datetime.utcnow())
            if expired:
                logger.info("QR_PAYMENTS_EXPIRED count=%s", expired)
        except Exception:
            logger.exception("QR_PAYMENT_EXPIRY_ERROR")

        await asyncio.sleep(EXPIRY_SWEEP_SECONDS)

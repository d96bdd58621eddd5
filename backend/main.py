from dotenv import load_dotenv
load_dotenv()

import asyncio
import logging
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from database import get_db
from utils.indexes import ensure_indexes

# ENV
from config.env import ENV, CORS_ALLOWED_ORIGINS, validate_production_env

# ROUTES
from routes.users import router as users_router
from routes.products import router as products_router
from routes.listings import router as listings_router
from routes.orders import router as orders_router
from routes.payments import router as payments_router
from routes.reputation import router as reputation_router
from routes.memberships import router as memberships_router
from routes.comments import router as comments_router
from routes.favorites import router as favorites_router

# WORKERS
from workers.payment_expiry_worker import payment_expiry_worker
from workers.membership_expiry_worker import membership_expiry_worker

logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(name)s %(message)s")
logger = logging.getLogger(__name__)

logger.info("ENV: %s", ENV)

app = FastAPI(
    title="AgroMarket API",
    version="1.0.0",
    docs_url=None if ENV == "production" else "/docs",
    redoc_url=None if ENV == "production" else "/redoc",
    openapi_url=None if ENV == "production" else "/openapi.json",
)

# -----------------------------
# CORS
# -----------------------------

allowed_origins = [origin.strip() for origin in CORS_ALLOWED_ORIGINS if origin.strip()]
if not allowed_origins:
    allowed_origins = [
        "http://localhost:3000",
        "http://localhost:5173",
        "http://127.0.0.1:5173",
    ]

app.add_middleware(
    CORSMiddleware,
    allow_origins=allowed_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# -----------------------------
# ROUTES (each router carries its own /api prefix)
# -----------------------------

app.include_router(users_router)
app.include_router(products_router)
app.include_router(listings_router)
app.include_router(orders_router)
app.include_router(payments_router)
app.include_router(reputation_router)
app.include_router(memberships_router)
app.include_router(comments_router)
app.include_router(favorites_router)

# -----------------------------
# HEALTH CHECKS
# -----------------------------

@app.get("/api/health")
async def health():

    return {"status": "ok"}

@app.get("/api/health/db")
async def health_db():
    db = get_db()
    await db.command("ping")
    return {"status": "mongodb connected"}

# -----------------------------
# STARTUP (ONE PLACE ONLY)
# -----------------------------

@app.on_event("startup")
async def startup():
    validate_production_env()
    await ensure_indexes(get_db())

    asyncio.create_task(payment_expiry_worker())
    asyncio.create_task(membership_expiry_worker())

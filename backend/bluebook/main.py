"""
hf.bluebook API v2.0
FastAPI backend for AutoPlan fire safety plans and Golden Thread handover
packages: async SQLAlchemy, JWT bearer auth, Celery background work,
litellm vision analysis.
"""
import logging
import os
from contextlib import asynccontextmanager

from dotenv import load_dotenv
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

load_dotenv()

from bluebook.services.logging_config import setup_logging  # noqa: E402
from bluebook.services.middleware import RequestTimingMiddleware  # noqa: E402

_log_level = os.getenv("LOG_LEVEL", "INFO")
_json_logs = os.getenv("LOG_FORMAT", "json").lower() != "text"
setup_logging(level=_log_level, json_output=_json_logs)
logger = logging.getLogger("bluebook-api")

for var in ["DATABASE_URL", "JWT_SECRET_KEY"]:
    if not os.getenv(var):
        logger.warning(f"MISSING env var: {var} — running in dev mode")


@asynccontextmanager
async def lifespan(app: FastAPI):
    try:
        from bluebook.db import init_db
        await init_db()
    except Exception as e:
        logger.warning(f"Table init warning: {e}")
    yield


app = FastAPI(
    title="hf.bluebook API",
    version="2.0.0",
    description="AutoPlan fire safety plans and Golden Thread compliance packages",
    lifespan=lifespan,
)

_cors_default = "http://localhost:3000,http://localhost:8000"
cors_origins = [o.strip() for o in os.getenv("CORS_ORIGINS", _cors_default).split(",") if o.strip()]

app.add_middleware(
    CORSMiddleware,
    allow_origins=cors_origins,
    allow_credentials=True,
    allow_methods=["GET", "POST", "PUT", "PATCH", "DELETE", "OPTIONS"],
    allow_headers=["Authorization", "Content-Type", "Accept", "X-Requested-With"],
)
# Request timing + X-Request-ID must be outermost so it wraps all other middleware
app.add_middleware(RequestTimingMiddleware)

from bluebook.api.autoplan_routes import router as autoplan_router  # noqa: E402
from bluebook.api.golden_thread_routes import router as golden_thread_router  # noqa: E402

app.include_router(autoplan_router)
app.include_router(golden_thread_router)


@app.get("/health")
async def health():
    return {"status": "ok", "service": "hf.bluebook", "version": app.version}

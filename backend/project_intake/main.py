import logging

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from project_intake.config import settings
from project_intake.middleware.exceptions import register_exception_handlers
from project_intake.routers import health, intake

logging.basicConfig(
    level=settings.log_level.upper(),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)

app = FastAPI(
    title="Project Intake",
    description="Progressive project intake and completeness scoring",
    version="0.1.0",
)

# ── Exception Handlers ───────────────────────────────────────
register_exception_handlers(app)

# ── Middleware ───────────────────────────────────────────────
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.allowed_origins.split(","),
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# ── Routers ──────────────────────────────────────────────────
app.include_router(health.router)
app.include_router(intake.router, prefix="/api/intake", tags=["intake"])

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from freightlink.config import settings
from freightlink.middleware.exceptions import register_exception_handlers
from freightlink.routers import cmr, health, incidents, plans, trips
from freightlink.services.scheduler import lifespan

app = FastAPI(
    title="FreightLink",
    description="Transport plan lifecycle, carrier proposals and incident tracking",
    version="0.1.0",
    lifespan=lifespan,
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
app.include_router(plans.router, prefix="/api/plans", tags=["plans"])
app.include_router(trips.router, prefix="/api/trips", tags=["trips"])
app.include_router(cmr.router, prefix="/api/cmr", tags=["cmr"])
app.include_router(incidents.router, prefix="/api/incidents", tags=["incidents"])

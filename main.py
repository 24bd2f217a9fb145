import logging
from contextlib import asynccontextmanager
from pathlib import Path

from fastapi import FastAPI
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.staticfiles import StaticFiles
from starlette.exceptions import HTTPException as StarletteHTTPException

from core.config import settings
from core.database import create_db_and_tables
from core.errors import http_error_handler, unexpected_error_handler, validation_error_handler
from models.models import utcnow
from routes.admin import router as admin_router
from routes.audit import router as audit_router
from routes.auth import router as auth_router
from routes.excel import router as excel_router
from routes.legal import router as legal_router
from routes.payments import router as payments_router
from routes.realtime import router as realtime_router
from routes.support import router as support_router
from services.realtime_service import EventRegistry, RoomManager

logging.basicConfig(
    level=getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)

STATIC_DIR = Path(__file__).resolve().parent / "static"


# =========================================
# 🏁 Lifespan (DB + realtime registries)
# =========================================
@asynccontextmanager
async def lifespan(app: FastAPI):
    create_db_and_tables()
    app.state.event_registry = EventRegistry(settings.MAX_SSE_CLIENTS)
    app.state.rooms = RoomManager()
    logger.info("✅ SheetDesk started.")
    yield
    logger.info("✅ Application shutting down.")


# =========================================
#  ✅ FastAPI App
# =========================================
app = FastAPI(
    lifespan=lifespan,
    title="SheetDesk Backend",
    docs_url=None if settings.IS_PRODUCTION else "/docs",
    redoc_url=None if settings.IS_PRODUCTION else "/redoc",
)

allowed_origins = [
    settings.FRONTEND_URL,
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

app.add_exception_handler(StarletteHTTPException, http_error_handler)
app.add_exception_handler(RequestValidationError, validation_error_handler)
app.add_exception_handler(Exception, unexpected_error_handler)


# =========================================
# 📦 Routers
# =========================================
app.include_router(auth_router, prefix="/auth", tags=["Authentication"])
app.include_router(excel_router, prefix="/excel", tags=["Excel"])
app.include_router(audit_router, prefix="/audit", tags=["Audit"])
app.include_router(payments_router, prefix="/payments", tags=["Payments"])
app.include_router(admin_router, prefix="/admin", tags=["Admin"])
app.include_router(support_router, prefix="/support", tags=["Support"])
app.include_router(legal_router, prefix="/legal", tags=["Legal"])
app.include_router(realtime_router, prefix="/realtime", tags=["Realtime"])

# Dashboard
app.mount("/app", StaticFiles(directory=STATIC_DIR, html=True), name="app")


# =========================================
# 🩺 Health Check
# =========================================
@app.get("/health")
def health_check():
    return {"ok": True, "ts": utcnow().isoformat()}


@app.get("/")
def read_root():
    return {"message": "Backend running"}

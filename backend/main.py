from fastapi import FastAPI, Request, status
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
import structlog
import uvicorn
from contextlib import asynccontextmanager
from core.cache import MemoryCache
from core.config import settings
from core.logging import configure_logging
from db.database import create_db_and_tables, engine
from routers.auth import router as auth_router
from routers.inventory import router as inventory_router
from routers.orders import router as orders_router
from routers.performance import router as performance_router
from routers.system_health import router as system_health_router

log = structlog.get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    configure_logging(settings.log_level, settings.log_json)
    await create_db_and_tables()
    app.state.cache = MemoryCache()
    log.info("startup_complete", environment=settings.app_env)
    yield
    await engine.dispose()


app = FastAPI(
    title="LogiTrack API",
    description="Inventory and order tracking API",
    version=settings.app_version,
    docs_url="/docs",
    redoc_url="/redoc",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    # Malformed bodies are client errors (400), never 422
    errors = jsonable_encoder(exc.errors())
    if request.url.path.startswith("/api/auth"):
        content = {"success": False, "message": "Invalid input data.", "errors": errors}
    else:
        content = {"detail": "Invalid request data.", "errors": errors}
    return JSONResponse(status_code=status.HTTP_400_BAD_REQUEST, content=content)


@app.exception_handler(Exception)
async def unhandled_exception_handler(request: Request, exc: Exception):
    log.exception("unhandled_error", method=request.method, path=request.url.path)
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={"detail": "An unexpected error occurred."},
    )


# Authentication routes
app.include_router(auth_router, prefix="/api/auth", tags=["auth"])

# Resource routes
app.include_router(inventory_router, prefix="/api/inventory", tags=["inventory"])
app.include_router(orders_router, prefix="/api/orders", tags=["orders"])

# Diagnostics
app.include_router(system_health_router, prefix="/api/systemhealth", tags=["systemhealth"])
app.include_router(performance_router, prefix="/api/performancetest", tags=["performancetest"])

if __name__ == "__main__":
    uvicorn.run("main:app", host="0.0.0.0", port=8000, reload=True)

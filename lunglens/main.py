import logging
from contextlib import asynccontextmanager
from typing import (
    Any,
    Dict,
)
from fastapi import (
    FastAPI,
    Request,
    status,
)
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from lunglens.config.settings import Settings, get_settings
from lunglens.config.mongodb import connect_to_mongo, get_database, ensure_indexes, close_mongo_connection
from lunglens.config.cloudinary import configure_cloudinary
from lunglens.services.patient_service import PatientStore
from lunglens.services.user_service import UserStore
from lunglens.services.prediction_service import PredictionClient
from lunglens.services.report_service import ReportGenerator
from lunglens.utils.cloudinary_service import ImageStore
from lunglens.api.v1.patients import router as patients_router
from lunglens.api.v1.images import router as images_router
from lunglens.api.v1.reports import router as reports_router
from lunglens.api.v1.users import router as users_router

settings = get_settings()

logging.basicConfig(
    level=logging.DEBUG if settings.DEBUG else getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)


def build_handles(app: FastAPI, app_settings: Settings, database) -> None:
    """Construct the per-process dependency handles and attach them to app.state."""
    app.state.settings = app_settings
    app.state.patient_store = PatientStore(
        database[app_settings.PATIENTS_COLLECTION],
        search_limit=app_settings.SEARCH_RESULT_LIMIT,
    )
    app.state.user_store = UserStore(database[app_settings.USERS_COLLECTION])
    app.state.image_store = ImageStore(app_settings)
    app.state.prediction_client = PredictionClient(app_settings)
    app.state.report_generator = ReportGenerator(app_settings)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Manage application lifespan events."""
    logger.info(f"{settings.APP_NAME} starting")
    mongo_client = connect_to_mongo(settings)
    database = get_database(mongo_client, settings)
    await ensure_indexes(database, settings)
    configure_cloudinary(settings)
    build_handles(app, settings, database)
    logger.info(f"CORS origins: {settings.CORS_ORIGINS}")
    yield
    close_mongo_connection(mongo_client)
    logger.info(f"{settings.APP_NAME} stopped")


app = FastAPI(
    title=settings.APP_NAME,
    description="Lung Lens chest X-ray triage API",
    version="0.1.0",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Include API routers
app.include_router(patients_router, prefix="/api")
app.include_router(images_router, prefix="/api")
app.include_router(reports_router, prefix="/api")
app.include_router(users_router, prefix="/api")


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    """Answer malformed requests with 400 and a flat list of problems."""
    errors = [
        f"{'.'.join(str(part) for part in err.get('loc', ()))}: {err.get('msg', '')}"
        for err in exc.errors()
    ]
    logger.warning(f"Invalid request to {request.method} {request.url.path}: {errors}")
    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content={"detail": "Invalid request", "errors": errors},
    )


@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    logger.error(f"Unhandled exception on {request.method} {request.url.path}: {exc}", exc_info=True)
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={
            "detail": "Internal server error",
            "error": str(exc) if settings.DEBUG else None,
        },
    )


@app.get("/")
async def root(request: Request):
    """Root endpoint returning basic API information."""
    return {"name": settings.APP_NAME, "version": "0.1.0", "status": "healthy"}


@app.get("/health")
async def health_check(request: Request) -> Dict[str, Any]:
    """Health check endpoint returning basic API information."""
    return {"status": "healthy"}

# reservas/main.py
from fastapi import FastAPI, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.gzip import GZipMiddleware
from fastapi.responses import JSONResponse
from slowapi import _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded
from slowapi.middleware import SlowAPIMiddleware
from sqlalchemy.exc import OperationalError
import time
from datetime import datetime

from reservas.core.config import settings
from reservas.core.exceptions import (BackupFormatError, BookingRejectedError, BookingValidationError,
                                      NotFoundError, PermissionDeniedError, ReferenceInUseError, ReservaError,
                                      SlotConflictError, StorageUnavailableError, UniquenessError)
from reservas.core.rate_limit import limiter
from reservas.db.session import check_database_connection
from reservas.utils.logger import logger
from reservas.api.endpoints import auth, backup, catalog, environments, reservations, users

SETUP_HINT = "Serviço indisponível: o banco de dados não responde ou o esquema está desatualizado. Execute scripts/setup_db.py."

app = FastAPI(title=settings.PROJECT_NAME)

app.state.limiter = limiter
app.state.db_ready = False
app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)

app.add_middleware(SlowAPIMiddleware)
app.add_middleware(
    CORSMiddleware,
    allow_origins=[str(origin) for origin in settings.BACKEND_CORS_ORIGINS],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)
app.add_middleware(GZipMiddleware, minimum_size=1000)

@app.middleware("http")
async def log_requests_and_add_headers(request: Request, call_next):
    start_time = time.time()
    response = await call_next(request)
    process_time = (time.time() - start_time) * 1000
    formatted_process_time = f'{process_time:.2f}'

    response.headers["X-Content-Type-Options"] = "nosniff"
    response.headers["X-Frame-Options"] = "DENY"

    logger.info(f'"{request.method} {request.url.path}" {response.status_code} - {formatted_process_time}ms')
    return response

# --- Tradução da taxonomia de erros para HTTP ---

ERROR_STATUS = {
    BookingValidationError: status.HTTP_400_BAD_REQUEST,
    SlotConflictError: status.HTTP_409_CONFLICT,
    UniquenessError: status.HTTP_400_BAD_REQUEST,
    ReferenceInUseError: status.HTTP_400_BAD_REQUEST,
    BackupFormatError: status.HTTP_400_BAD_REQUEST,
    NotFoundError: status.HTTP_404_NOT_FOUND,
    PermissionDeniedError: status.HTTP_403_FORBIDDEN,
    StorageUnavailableError: status.HTTP_503_SERVICE_UNAVAILABLE,
}

@app.exception_handler(ReservaError)
async def reserva_error_handler(request: Request, error: ReservaError):
    body = {"detail": error.message, "reason": error.reason}
    if isinstance(error, BookingRejectedError):
        if error.rejection.conflict is not None:
            body["conflito"] = error.rejection.conflict.as_dict()
        if error.rejection.index is not None:
            body["indice"] = error.rejection.index
    if isinstance(error, UniquenessError):
        body["campo"] = error.field
    status_code = ERROR_STATUS.get(type(error), status.HTTP_400_BAD_REQUEST)
    return JSONResponse(status_code=status_code, content=body)

@app.exception_handler(OperationalError)
async def database_unavailable_handler(request: Request, error: OperationalError):
    logger.error(f"Banco de dados indisponível em '{request.url.path}': {error}")
    return JSONResponse(
        status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
        content={"detail": "Serviço de dados indisponível. Tente novamente em instantes.",
                 "reason": StorageUnavailableError.reason},
    )

@app.on_event("startup")
def probe_database():
    app.state.db_ready = check_database_connection()
    if not app.state.db_ready:
        logger.error(SETUP_HINT)

# Incluindo os routers na aplicação
app.include_router(auth.router, prefix=f"{settings.API_V1_STR}/auth", tags=["Auth"])
app.include_router(users.router, prefix=f"{settings.API_V1_STR}/usuarios", tags=["Users"])
app.include_router(catalog.types_router, prefix=f"{settings.API_V1_STR}/tipos", tags=["Environment Types"])
app.include_router(catalog.resources_router, prefix=f"{settings.API_V1_STR}/recursos", tags=["Resources"])
app.include_router(environments.router, prefix=f"{settings.API_V1_STR}/ambientes", tags=["Environments"])
app.include_router(reservations.router, prefix=f"{settings.API_V1_STR}/reservas", tags=["Reservations"])
app.include_router(backup.router, prefix=f"{settings.API_V1_STR}/backup", tags=["Backup"])


@app.get(f"{settings.API_V1_STR}/health", tags=["System"])
def health_check():
    if not app.state.db_ready:
        # Nova tentativa: o operador pode ter rodado o script de setup depois da subida
        app.state.db_ready = check_database_connection()
    if not app.state.db_ready:
        return JSONResponse(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            content={"status": "UNAVAILABLE", "detail": SETUP_HINT},
        )
    return {"status": "OK", "timestamp": datetime.now()}

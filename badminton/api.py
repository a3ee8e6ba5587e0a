from __future__ import annotations

import logging

from fastapi import FastAPI
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from .config import get_log_level
from .services.exceptions import ServiceError
from .routes.players import router as players_router
from .routes.trainings import router as trainings_router
from .routes.matches import router as matches_router

logging.basicConfig(level=get_log_level())
logger = logging.getLogger(__name__)

app = FastAPI(title="Badminton club")


@app.exception_handler(RequestValidationError)
def validation_exception_handler(request, exc):
    return JSONResponse(status_code=400, content={"detail": jsonable_encoder(exc.errors())})


@app.exception_handler(ServiceError)
def service_error_handler(request, exc: ServiceError):
    if exc.status_code >= 500:
        logger.error("%s %s failed: %s", request.method, request.url.path, exc.message)
    return JSONResponse(status_code=exc.status_code, content={"detail": exc.message})


app.include_router(players_router)
app.include_router(trainings_router)
app.include_router(matches_router)


@app.get("/health")
def health():
    return {"status": "ok"}

import logging

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from backend.app.api.v1.router import router as v1_router
from backend.app.core.logging import configure_logging
from backend.services.errors import StockError, ValidationError

configure_logging()
logger = logging.getLogger(__name__)

app = FastAPI(title="Retail Stock Engine", version="0.1.0")
app.include_router(v1_router, prefix="/v1")


def _error_body(exc: StockError) -> dict:
    return {
        "error": type(exc).__name__,
        "detail": exc.message,
        "lines": exc.details,
    }


@app.exception_handler(StockError)
def stock_error_handler(request: Request, exc: StockError):
    if exc.status_code >= 500:
        logger.error("%s %s failed: %s", request.method, request.url.path, exc.message)
    else:
        logger.info("%s %s -> %s %s", request.method, request.url.path, exc.status_code, exc.message)
    return JSONResponse(status_code=exc.status_code, content=_error_body(exc))


@app.exception_handler(RequestValidationError)
def request_validation_handler(request: Request, exc: RequestValidationError):
    # payload rejected before reaching a service: same body as a service ValidationError
    lines = [
        {
            "field": ".".join(str(part) for part in err.get("loc", ())),
            "error": err.get("msg"),
            "type": err.get("type"),
        }
        for err in exc.errors()
    ]
    error = ValidationError("Invalid request", lines)
    logger.info("%s %s -> %s %s", request.method, request.url.path, error.status_code, lines)
    return JSONResponse(status_code=error.status_code, content=_error_body(error))

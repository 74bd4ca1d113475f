"""
FastAPI application entry point for ScholarCheck.
Configures the application, middleware, routes, and error handlers.
"""

from contextlib import asynccontextmanager
from typing import AsyncGenerator, Dict

from fastapi import FastAPI, Request, Response
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from scholarcheck.agents.base_agent import ExtractionError
from scholarcheck.agents.paper_analyzer import AnalysisInputError
from scholarcheck.agents.verdict_aggregator import NoUsableEvidenceError
from scholarcheck.config import get_settings
from scholarcheck.db.database import dispose_engine, init_db, init_engine
from scholarcheck.errors import InvalidRequestError, error_body
from scholarcheck.routers import fact_check, papers
from scholarcheck.services.fact_check_service import PipelineError
from scholarcheck.services.kafka_service import KafkaConnectionError
from scholarcheck.services.openalex_service import SearchError
from scholarcheck.services.paper_reader_service import PaperNotFoundError
from scholarcheck.services.session_service import PersistenceError, SessionNotFoundError
from scholarcheck.utils.file_handler import FileValidationError
from scholarcheck.utils.logger import get_correlation_id, get_logger, set_correlation_id, setup_logging

# Initialize settings and logging
settings = get_settings()
setup_logging(settings.log_level, service_name="scholarcheck-api", environment=settings.environment)
logger = get_logger(__name__)

VERSION = "1.0.0"


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Open the connection pool at startup and close it at shutdown."""
    logger.info("Starting ScholarCheck API", version=VERSION)

    try:
        init_engine(settings.database_url)
        init_db()
        logger.info("Database initialization completed")
    except Exception as e:
        logger.error("Database initialization failed", error=str(e))
        raise

    yield

    logger.info("Shutting down ScholarCheck API")
    dispose_engine()


app = FastAPI(
    title="ScholarCheck API",
    description="Fact-checking statements against academic literature",
    version=VERSION,
    docs_url="/docs",
    redoc_url="/redoc",
    lifespan=lifespan
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["GET", "POST"],
    allow_headers=["*"],
)


@app.middleware("http")
async def correlation_id_middleware(request: Request, call_next) -> Response:
    """Add correlation ID to all requests for tracing."""
    correlation_id = set_correlation_id(request.headers.get("X-Correlation-ID"))

    logger.info("Request started",
                method=request.method,
                url=str(request.url),
                client_ip=request.client.host if request.client else "unknown")

    response = await call_next(request)

    response.headers["X-Correlation-ID"] = correlation_id

    logger.info("Request completed",
                method=request.method,
                url=str(request.url),
                status_code=response.status_code)

    return response


def _error_response(status_code: int, error: str, message: str = None) -> JSONResponse:
    correlation_id = get_correlation_id() or set_correlation_id()
    return JSONResponse(status_code=status_code, content=error_body(error, correlation_id, message))


def _validation_message(exc: RequestValidationError) -> str:
    messages = []
    for error in exc.errors():
        location = ".".join(str(part) for part in error.get("loc", ()) if part != "body")
        messages.append(f"{location}: {error.get('msg')}" if location else str(error.get("msg")))
    return "; ".join(messages)


@app.exception_handler(RequestValidationError)
async def request_validation_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Schema validation failures are reported as 400 with the offending fields."""
    message = _validation_message(exc)
    logger.warning("Request validation failed", url=str(request.url), error=message)
    return _error_response(400, "Invalid request", message)


@app.exception_handler(InvalidRequestError)
@app.exception_handler(FileValidationError)
@app.exception_handler(AnalysisInputError)
@app.exception_handler(NoUsableEvidenceError)
async def bad_request_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.warning("Bad request", error=str(exc), error_type=type(exc).__name__, url=str(request.url))
    return _error_response(400, str(exc))


@app.exception_handler(SessionNotFoundError)
async def session_not_found_handler(request: Request, exc: SessionNotFoundError) -> JSONResponse:
    logger.warning("Session not found", error=str(exc), url=str(request.url))
    return _error_response(404, "Session not found")


@app.exception_handler(PaperNotFoundError)
async def paper_not_found_handler(request: Request, exc: PaperNotFoundError) -> JSONResponse:
    logger.warning("Paper not found", error=str(exc), url=str(request.url))
    return _error_response(404, "Paper not found")


@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    return _error_response(exc.status_code, str(exc.detail))


@app.exception_handler(PipelineError)
async def pipeline_error_handler(request: Request, exc: PipelineError) -> JSONResponse:
    """Whole-request pipeline failure, reported with the failing stage."""
    logger.error("Fact-check pipeline failed", stage=exc.stage.value, error=exc.message)
    response = _error_response(
        500,
        "Fact-check failed",
        None if settings.is_production else exc.message,
    )
    response.headers["X-Pipeline-Stage"] = exc.stage.value
    return response


@app.exception_handler(SearchError)
@app.exception_handler(ExtractionError)
async def upstream_error_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.error("Upstream service error", error=str(exc), error_type=type(exc).__name__, url=str(request.url))
    return _error_response(
        500,
        "Upstream service error",
        None if settings.is_production else str(exc),
    )


@app.exception_handler(PersistenceError)
async def persistence_error_handler(request: Request, exc: PersistenceError) -> JSONResponse:
    logger.error("Persistence error", error=str(exc), url=str(request.url))
    return _error_response(500, "Failed to save data")


@app.exception_handler(KafkaConnectionError)
async def kafka_connection_handler(request: Request, exc: KafkaConnectionError) -> JSONResponse:
    """Handle Kafka connection errors."""
    logger.error("Kafka connection error", error=str(exc), url=str(request.url))
    return _error_response(503, "Deep-analysis queue temporarily unavailable")


@app.exception_handler(Exception)
async def general_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Handle all other unhandled exceptions."""
    logger.error("Unhandled exception",
                 error=str(exc),
                 error_type=type(exc).__name__,
                 url=str(request.url))
    return _error_response(
        500,
        "Internal server error",
        None if settings.is_production else str(exc),
    )


app.include_router(fact_check.router)
app.include_router(papers.router)


@app.get("/health")
async def health_check() -> Dict[str, str]:
    """Health check endpoint for monitoring."""
    return {
        "status": "healthy",
        "service": "scholarcheck-api",
        "version": VERSION
    }


@app.get("/")
async def root() -> Dict[str, str]:
    """Root endpoint with API information."""
    return {
        "service": "ScholarCheck API",
        "version": VERSION,
        "description": "Fact-checking statements against academic literature",
        "docs": "/docs",
        "health": "/health"
    }


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "scholarcheck.main:app",
        host="0.0.0.0",
        port=8000,
        reload=True,
        log_level=settings.log_level.lower()
    )

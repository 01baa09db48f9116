import logging
from contextlib import asynccontextmanager
from os import environ

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from neo4j.exceptions import Neo4jError, ServiceUnavailable
from starlette.exceptions import HTTPException as StarletteHTTPException

from blog.api import auth, category, comment, post, tag, user
from blog.db import DatabaseManager
from blog.schemas.responses import HealthCheckResponseSchema

logger = logging.getLogger(__name__)


def setup_logging(level: str = "INFO") -> None:
    """Configure the root logger."""
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )


@asynccontextmanager
async def lifespan(app: FastAPI):
    setup_logging(environ.get("LOG_LEVEL", "INFO"))
    this_db = DatabaseManager()
    try:
        this_db.verify_connectivity()
        this_db.ensure_constraints()
    except (ServiceUnavailable, Neo4jError) as e:
        logger.warning("Neo4j not ready at startup: %s", e)
    app.state.driver = this_db.driver
    yield
    this_db.close()
    logger.info("Neo4j driver closed")


app = FastAPI(title="Blog API", lifespan=lifespan)
app.add_middleware(
    CORSMiddleware,
    allow_origins=environ.get("CORS_ORIGINS", "http://localhost:3000").split(","),
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

for module in (auth, user, post, category, tag, comment):
    app.include_router(module.router, prefix="/api")


@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(
    request: Request, exc: StarletteHTTPException
) -> JSONResponse:
    return JSONResponse(
        status_code=exc.status_code,
        content={"success": False, "message": exc.detail},
        headers=getattr(exc, "headers", None),
    )


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(
    request: Request, exc: RequestValidationError
) -> JSONResponse:
    """Report the first invalid field the way service errors are reported.

    An id in the path that does not parse names no existing resource, so it
    is answered with 404 like an unknown id.
    """
    errors = exc.errors()
    for error in errors:
        loc = error.get("loc", ())
        if len(loc) > 1 and loc[0] == "path":
            resource = str(loc[1]).removesuffix("_id").capitalize()
            return JSONResponse(
                status_code=status.HTTP_404_NOT_FOUND,
                content={"success": False, "message": f"{resource} not found"},
            )
    message = errors[0]["msg"] if errors else "Invalid request"
    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content={"success": False, "message": message},
    )


@app.exception_handler(Exception)
async def unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.exception("Unhandled error on %s %s", request.method, request.url.path)
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={"success": False, "message": "Server error"},
    )


@app.get("/api/health", response_model=HealthCheckResponseSchema)
async def health_check() -> HealthCheckResponseSchema:
    return HealthCheckResponseSchema(success=True)

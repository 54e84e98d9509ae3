from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from contextlib import asynccontextmanager
import logging
from reflector_server.core.config import settings
from reflector_server.core.errors import ConfigurationError, PreconditionError
from reflector_server.core.logging_config import configure_logging
from reflector_server.api import sessions as sessions_router
from reflector_server.api import plans as plans_router
from reflector_server.api import version as version_router
from reflector_server.sessions.registry import registry

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Configure logging on startup; close every held session on shutdown."""
    configure_logging(settings.log_level)
    for line in settings.diagnostics or []:
        logger.info("[config] %s", line)
    yield
    registry.clear()


app = FastAPI(title=settings.app_name, lifespan=lifespan)


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    logger.info("validation error url=%s errors=%s", request.url, exc.errors())
    return JSONResponse(status_code=422, content={'detail': exc.errors()})


@app.exception_handler(ConfigurationError)
async def configuration_exception_handler(request: Request, exc: ConfigurationError):
    return JSONResponse(status_code=400, content={'detail': exc.to_dict()})


@app.exception_handler(PreconditionError)
async def precondition_exception_handler(request: Request, exc: PreconditionError):
    return JSONResponse(status_code=409, content={'detail': exc.to_dict()})


# Routers
app.include_router(sessions_router.router, prefix=settings.api_v1_prefix)
app.include_router(plans_router.router, prefix=settings.api_v1_prefix)
app.include_router(version_router.router, prefix=settings.api_v1_prefix)


@app.get('/')
async def root():
    return {'status': 'ok', 'app': settings.app_name}

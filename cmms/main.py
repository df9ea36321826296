from contextlib import asynccontextmanager
import logging

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from cmms.core.errors import EngineError
from cmms.core.logging import configure_logging, generate_trace_id, trace_id_var
from cmms import models  # noqa: F401
from cmms.routers.alerts import router as alerts_router
from cmms.routers.auth import router as auth_router
from cmms.routers.costing import router as costing_router
from cmms.routers.downtime import router as downtime_router
from cmms.routers.employees import router as employees_router
from cmms.routers.jobs import router as jobs_router
from cmms.routers.period_locks import router as period_locks_router
from cmms.routers.pm import router as pm_router
from cmms.routers.stores import router as stores_router

logger = logging.getLogger(__name__)

TRACE_HEADER = "X-Trace-Id"


@asynccontextmanager
async def lifespan(app: FastAPI):
    configure_logging()
    yield


app = FastAPI(
    title="CMMS Job Lifecycle & Cost Accounting Engine",
    lifespan=lifespan,
)


@app.exception_handler(EngineError)
async def engine_error_handler(request: Request, exc: EngineError):
    if exc.status_code >= 500:
        logger.error("Engine error", extra={"code": exc.code, "path": request.url.path})
    else:
        logger.info("Request rejected", extra={"code": exc.code, "path": request.url.path})
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


@app.middleware("http")
async def catch_unhandled_exceptions(request: Request, call_next):
    trace_id = request.headers.get(TRACE_HEADER) or generate_trace_id()
    token = trace_id_var.set(trace_id)
    try:
        response = await call_next(request)
    except Exception:
        logger.exception("Unhandled exception", extra={"path": request.url.path})
        response = JSONResponse(
            status_code=500,
            content={"detail": "Internal Server Error", "trace_id": trace_id},
        )
    finally:
        trace_id_var.reset(token)

    response.headers[TRACE_HEADER] = trace_id
    return response


app.include_router(auth_router)
app.include_router(jobs_router)
app.include_router(costing_router)
app.include_router(downtime_router)
app.include_router(pm_router)
app.include_router(period_locks_router)
app.include_router(stores_router)
app.include_router(employees_router)
app.include_router(alerts_router)


@app.get("/")
def root():
    return {"status": "CMMS engine running"}


@app.get("/health")
def health():
    return {
        "status": "ok",
        "version": "1.0.0",
    }

from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse

from download_access.core.logging import setup_logging
from download_access.db.session import Base, engine
from download_access.errors import StoreUnavailable
from download_access.scheduler import start_scheduler, stop_scheduler

# Register every mapped table on Base.metadata before create_all
from download_access.models import catalog, entitlement, token, user  # noqa: F401


def register_startup(app: FastAPI) -> None:
    @app.on_event("startup")
    def _startup() -> None:
        setup_logging()
        Base.metadata.create_all(bind=engine)
        app.state.scheduler = start_scheduler()

    @app.on_event("shutdown")
    def _shutdown() -> None:
        stop_scheduler(getattr(app.state, "scheduler", None))


def register_error_handlers(app: FastAPI) -> None:
    @app.exception_handler(StoreUnavailable)
    async def _store_unavailable(request: Request, exc: StoreUnavailable) -> JSONResponse:
        # Transient: clients should retry rather than treat this as a denial
        return JSONResponse(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            content={"detail": {"code": "store_unavailable", "message": str(exc), "retryable": True}},
        )

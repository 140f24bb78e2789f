from fastapi import FastAPI

from download_access.core.settings import settings
from download_access.routers.downloads import router as downloads_router
from download_access.routers.me import router as me_router
from download_access.routers.tokens import router as tokens_router
from download_access.startup import register_error_handlers, register_startup

app = FastAPI(title=settings.app_name)

register_startup(app)
register_error_handlers(app)

app.include_router(downloads_router, prefix="/download", tags=["download"])
app.include_router(tokens_router, prefix="/tokens", tags=["tokens"])
app.include_router(me_router, tags=["me"])


@app.get("/health")
def health_check():
    return {"status": "ok"}

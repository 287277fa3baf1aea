import logging
from fastapi import FastAPI
from .core.config import get_settings
from .core.database import create_db_and_tables
from .core.dependencies import get_email_dispatcher
from .api.invitations import router as invitation_router

settings = get_settings()

logging.basicConfig(
    level=settings.LOG_LEVEL,
    format="%(asctime)s %(levelname)s [%(threadName)s] %(name)s: %(message)s"
)

app = FastAPI(
    title="OrgFlow API",
    description="Organization invitations and email delivery",
    version="0.1.0"
)


@app.on_event("startup")
async def on_startup():
    create_db_and_tables()
    get_email_dispatcher().start()


@app.on_event("shutdown")
async def on_shutdown():
    get_email_dispatcher().stop(timeout=settings.DELIVERY_BACKOFF_MAX_SECONDS)


@app.get("/api/health", tags=['Health Check'])
async def health_check():
    return {"status": "ok", "message": "OrgFlow API is running"}

app.include_router(invitation_router, prefix='/api', tags=['Invitations'])

if __name__ == "__main__":
    import uvicorn
    uvicorn.run("orgflow.main:app", host="0.0.0.0", port=8000, reload=True)

from contextlib import asynccontextmanager
from fastapi import FastAPI
from dropshot.api.routes import entries, shot
from dropshot.core.database import engine, Base
from dropshot.core.logger import logger
from dropshot.config import settings
from dropshot.services.container import build_services


@asynccontextmanager
async def lifespan(app: FastAPI):
    try:
        Base.metadata.create_all(bind=engine)
    except Exception as e:
        logger.error("database_init_failed", error=str(e))
        raise

    app.state.services = build_services()
    logger.info("dropshot_startup", environment=settings.environment)

    yield

    services = app.state.services
    if services.geolocator is not None:
        services.geolocator.close()
    logger.info("dropshot_shutdown")


app = FastAPI(
    title="dropshot",
    description="Link and file drop service with per-entry access policies",
    version="1.0.0",
    lifespan=lifespan
)


@app.get("/health", include_in_schema=False)
async def health():
    return {"status": "healthy"}


app.include_router(entries.router)
app.include_router(shot.router)

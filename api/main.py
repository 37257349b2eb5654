import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from ads import router as ads_router
from ads.cursors import CursorManager
from ads.repository import PostgresAdRepository
from core import config
from core.db import Database
from images import router as images_router
from images.repository import LocalImageRepository

logging.basicConfig(
    level=config.log_level(),
    format="%(asctime)s %(levelname)s %(name)s %(message)s",
)


@asynccontextmanager
async def lifespan(app: FastAPI):
    # One pool and one cursor session per process.
    database = Database.from_env()
    await database.open()

    cursors = CursorManager(database, idle_ttl_s=config.cursor_idle_ttl_s())
    try:
        cursors.start_sweeper(config.cursor_sweep_interval_s())

        image_repository = LocalImageRepository(config.image_dir())
        image_repository.ensure_dir()

        app.state.ad_repository = PostgresAdRepository(database, cursors)
        app.state.image_repository = image_repository
        yield
    finally:
        await cursors.close()
        await database.close()


app = FastAPI(lifespan=lifespan)

# Allow local frontend dev server to call this API from the browser.
app.add_middleware(
    CORSMiddleware,
    allow_origins=config.cors_allow_origins(),
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(ads_router.router, tags=["ads"])
app.include_router(images_router.router, tags=["images"])


@app.get("/health")
def health() -> dict:
    return {"status": "ok"}


@app.get("/")
def root() -> dict:
    return {"message": "bazaar api"}

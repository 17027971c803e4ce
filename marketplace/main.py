import logging
from contextlib import asynccontextmanager
from fastapi import FastAPI

from marketplace.config import settings
from marketplace.database import engine
from marketplace.infrastructure.db_schema import metadata
from marketplace.presentation.api import router

logging.basicConfig(
    level=settings.LOG_LEVEL,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Управление жизненным циклом приложения"""
    async with engine.begin() as conn:
        await conn.run_sync(metadata.create_all)
    logger.info("Таблицы проверены")

    yield

    logger.info("Приложение останавливается...")
    await engine.dispose()


app = FastAPI(
    title="Pharmacy Marketplace Orders",
    description="Корзины и заказы аптек у складов",
    version="1.0.0",
    lifespan=lifespan
)

app.include_router(router, prefix="/api")


@app.get("/")
async def root():
    return {"message": "Marketplace order service работает"}


@app.get("/health")
async def health():
    return {"status": "healthy"}

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI

from adapters.entry.http.admin_router import router as admin_router
from adapters.entry.http.trigger_router import router as triggers_router

from adapters.external.advisory.openai_advisory_client import OpenAIAdvisoryClient
from adapters.external.database.log_repository_mongodb import LogRepositoryMongoDB
from adapters.external.database.mongodb_client import get_mongo_client
from adapters.external.database.snapshot_repository_mongodb import SnapshotRepositoryMongoDB
from adapters.external.database.trade_repository_mongodb import TradeRepositoryMongoDB
from adapters.external.exchange.ccxt_exchange_client import CcxtExchangeClient
from adapters.external.news.news_http_client import NewsHttpClient
from config.settings import settings


def _setup_logging() -> None:
    logging.basicConfig(
        level=settings.LOG_LEVEL,
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
    )


@asynccontextmanager
async def lifespan(app: FastAPI):
    _setup_logging()
    logger = logging.getLogger(__name__)
    logger.info("Starting %s (lifespan startup)...", settings.APP_NAME)

    mongo_client = get_mongo_client()
    db = mongo_client[settings.MONGODB_DB_NAME]

    app.state.mongo_client = mongo_client
    app.state.mongo_db = db

    # Long-lived external clients, shared by every request
    app.state.exchange = CcxtExchangeClient()
    app.state.advisory = OpenAIAdvisoryClient()
    app.state.news = NewsHttpClient() if settings.NEWS_API_URL else None

    try:
        await db.command("ping")
        logger.info("MongoDB ping ok.")
        await TradeRepositoryMongoDB(db).ensure_indexes()
        await SnapshotRepositoryMongoDB(db, history_cap=settings.SNAPSHOT_HISTORY_CAP).ensure_indexes()
        await LogRepositoryMongoDB(db, history_cap=settings.LOG_HISTORY_CAP).ensure_indexes()
    except Exception:
        logger.exception("MongoDB startup checks failed.")
        raise

    if not app.state.advisory.is_configured:
        logger.warning("OPENAI_API_KEY not set; auto-tune and calendar refresh are disabled.")

    try:
        yield
    finally:
        logger.info("Shutting down %s (lifespan shutdown)...", settings.APP_NAME)
        await app.state.exchange.aclose()
        await app.state.advisory.aclose()
        mongo_client.close()
        logger.info("MongoDB client closed.")


app = FastAPI(title=settings.APP_NAME, version="0.1.0", lifespan=lifespan)

app.include_router(admin_router)
app.include_router(triggers_router)


@app.get("/healthz")
async def healthz():
    return {"status": "ok"}

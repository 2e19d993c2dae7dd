"""
Application configuration for api-spot-trader.

Centralizes environment variables using python-dotenv.
"""

import os
from typing import Optional

from dotenv import load_dotenv

# Load variables from .env (if present)
load_dotenv()


class Settings:
    """
    Configuration settings for the api-spot-trader service.
    """

    # MongoDB
    MONGODB_URI: str = os.getenv("MONGODB_URI", "mongodb://localhost:27017")
    MONGODB_DB_NAME: str = os.getenv("MONGODB_DB_NAME", "spot_trader_db")
    MONGODB_MAX_POOL_SIZE: int = int(os.getenv("MONGODB_MAX_POOL_SIZE", "50"))
    MONGODB_SERVER_SELECTION_TIMEOUT_MS: int = int(
        os.getenv("MONGODB_SERVER_SELECTION_TIMEOUT_MS", "5000")
    )
    MONGODB_CONNECT_TIMEOUT_MS: int = int(
        os.getenv("MONGODB_CONNECT_TIMEOUT_MS", "3000")
    )
    MONGODB_SOCKET_TIMEOUT_MS: int = int(
        os.getenv("MONGODB_SOCKET_TIMEOUT_MS", "10000")
    )

    # Retention (ring caps)
    SNAPSHOT_HISTORY_CAP: int = int(os.getenv("SNAPSHOT_HISTORY_CAP", "5000"))
    LOG_HISTORY_CAP: int = int(os.getenv("LOG_HISTORY_CAP", "1000"))

    # Binance (spot, via ccxt)
    BINANCE_API_KEY: Optional[str] = os.getenv("BINANCE_API_KEY")
    BINANCE_SECRET_KEY: Optional[str] = os.getenv("BINANCE_SECRET_KEY")
    BINANCE_USE_TESTNET: bool = os.getenv("BINANCE_USE_TESTNET", "0") in ("1", "true", "True")
    EXCHANGE_TIMEOUT_MS: int = int(os.getenv("EXCHANGE_TIMEOUT_MS", "10000"))
    QUOTE_ASSET: str = os.getenv("QUOTE_ASSET", "USDT").upper()

    # Pair selection filters
    PAIR_VOLUME_USDT_MIN: float = float(os.getenv("PAIR_VOLUME_USDT_MIN", "5000000"))
    PAIR_SPREAD_MAX: float = float(os.getenv("PAIR_SPREAD_MAX", "0.0025"))

    # Cron run
    # Shared secret for /triggers/cron; empty disables the check.
    CRON_SECRET: str = os.getenv("CRON_SECRET", "")
    RUN_TIMEOUT_SEC: float = float(os.getenv("RUN_TIMEOUT_SEC", "55"))
    ANALYSIS_CONCURRENCY: int = int(os.getenv("ANALYSIS_CONCURRENCY", "4"))

    # Advisory service (OpenAI-compatible chat completions)
    OPENAI_API_KEY: str = os.getenv("OPENAI_API_KEY", "")
    OPENAI_MODEL: str = os.getenv("OPENAI_MODEL", "gpt-4o-mini")
    OPENAI_BASE_URL: str = os.getenv("OPENAI_BASE_URL", "https://api.openai.com/v1")
    ADVISORY_TIMEOUT_SEC: float = float(os.getenv("ADVISORY_TIMEOUT_SEC", "30"))
    # AM/PM consult windows are evaluated in this offset from UTC.
    ADVISORY_TZ_OFFSET_HOURS: int = int(os.getenv("ADVISORY_TZ_OFFSET_HOURS", "3"))

    # News digest (optional)
    NEWS_API_URL: str = os.getenv("NEWS_API_URL", "")
    NEWS_API_KEY: str = os.getenv("NEWS_API_KEY", "")
    NEWS_TIMEOUT_SEC: float = float(os.getenv("NEWS_TIMEOUT_SEC", "10"))

    # Log / app
    LOG_LEVEL: str = os.getenv("LOG_LEVEL", "INFO").upper()
    APP_NAME: str = os.getenv("APP_NAME", "api-spot-trader")


settings = Settings()

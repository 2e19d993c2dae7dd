import logging
from typing import Any, Dict, List, Optional

import ccxt.async_support as ccxt

from config.settings import settings
from core.common.errors import ExchangeError
from core.domain.entities.market_entity import BalanceEntity, OrderResultEntity, TickerEntity
from core.gateways.exchange_gateway import ExchangeGateway


class CcxtExchangeClient(ExchangeGateway):
    """
    Binance spot through ccxt's async API.

    Design:
      - One exchange instance per process (shared connection pool, built-in
        rate limiter), closed on app shutdown.
      - No retries here: a failed call raises ExchangeError and the caller
        decides whether to skip the pair or fail the run.
      - Order amounts are rounded to the market's precision before sending.
    """

    def __init__(
        self,
        api_key: Optional[str] = None,
        secret: Optional[str] = None,
        use_testnet: Optional[bool] = None,
        timeout_ms: Optional[int] = None,
        exchange: Optional[Any] = None,
    ) -> None:
        self._logger = logging.getLogger(self.__class__.__name__)
        if exchange is not None:
            self._ex = exchange
        else:
            self._ex = ccxt.binance(
                {
                    "apiKey": api_key if api_key is not None else settings.BINANCE_API_KEY,
                    "secret": secret if secret is not None else settings.BINANCE_SECRET_KEY,
                    "enableRateLimit": True,
                    "timeout": int(timeout_ms or settings.EXCHANGE_TIMEOUT_MS),
                    "options": {"defaultType": "spot"},
                }
            )
            testnet = settings.BINANCE_USE_TESTNET if use_testnet is None else use_testnet
            if testnet:
                self._ex.set_sandbox_mode(True)
        self._markets_loaded = False

    async def aclose(self) -> None:
        try:
            await self._ex.close()
        except Exception as exc:  # noqa: BLE001
            self._logger.warning("Error closing exchange client: %s", exc)

    async def _call(self, label: str, fn, *args, **kwargs):
        try:
            return await fn(*args, **kwargs)
        except ccxt.BaseError as exc:
            raise ExchangeError(f"{label} failed: {exc}") from exc

    async def _ensure_markets(self) -> None:
        if not self._markets_loaded:
            await self._call("load_markets", self._ex.load_markets)
            self._markets_loaded = True

    async def _amount(self, symbol: str, amount: float) -> float:
        await self._ensure_markets()
        try:
            return float(self._ex.amount_to_precision(symbol, amount))
        except ccxt.BaseError as exc:
            raise ExchangeError(f"Invalid amount {amount} for {symbol}: {exc}") from exc

    async def fetch_ohlcv(self, symbol: str, interval: str, limit: int) -> List[List[Any]]:
        rows = await self._call(
            f"fetch_ohlcv {symbol}@{interval}",
            self._ex.fetch_ohlcv,
            symbol,
            timeframe=interval,
            limit=int(limit),
        )
        return list(rows or [])

    async def fetch_tickers(self) -> Dict[str, TickerEntity]:
        raw = await self._call("fetch_tickers", self._ex.fetch_tickers)
        return {sym: TickerEntity.from_raw(sym, t) for sym, t in (raw or {}).items()}

    async def fetch_ticker(self, symbol: str) -> TickerEntity:
        raw = await self._call(f"fetch_ticker {symbol}", self._ex.fetch_ticker, symbol)
        return TickerEntity.from_raw(symbol, raw)

    async def fetch_balance(self) -> BalanceEntity:
        raw = await self._call("fetch_balance", self._ex.fetch_balance)
        return BalanceEntity.from_raw(raw)

    async def create_market_buy_order(
        self, symbol: str, amount: float, reference_price: Optional[float] = None
    ) -> OrderResultEntity:
        qty = await self._amount(symbol, amount)
        raw = await self._call(
            f"market buy {symbol}", self._ex.create_market_buy_order, symbol, qty
        )
        return OrderResultEntity.from_raw(symbol, "buy", raw, qty, reference_price or 0.0)

    async def create_market_sell_order(
        self, symbol: str, amount: float, reference_price: Optional[float] = None
    ) -> OrderResultEntity:
        qty = await self._amount(symbol, amount)
        raw = await self._call(
            f"market sell {symbol}", self._ex.create_market_sell_order, symbol, qty
        )
        return OrderResultEntity.from_raw(symbol, "sell", raw, qty, reference_price or 0.0)

import logging
from typing import Optional

from core.domain.entities.market_entity import AssetPosition, BalanceEntity, PortfolioValuation
from core.gateways.exchange_gateway import ExchangeGateway


class PortfolioValuationService:
    """
    Values the account in quote currency: quote balance plus each held asset
    marked at its `<ASSET>/<QUOTE>` last price. Assets without a usable
    ticker are left out of the total and logged.
    """

    def __init__(
        self,
        exchange: ExchangeGateway,
        quote_asset: str = "USDT",
        logger: Optional[logging.Logger] = None,
    ):
        self._exchange = exchange
        self._quote = quote_asset.upper()
        self._logger = logger or logging.getLogger(self.__class__.__name__)

    async def value(self, balance: Optional[BalanceEntity] = None) -> PortfolioValuation:
        if balance is None:
            balance = await self._exchange.fetch_balance()

        quote_balance = balance.amount_of(self._quote)
        assets = []
        total = quote_balance

        for asset in balance.held_assets(exclude=self._quote):
            amount = balance.amount_of(asset)
            if amount <= 0:
                continue
            symbol = f"{asset}/{self._quote}"
            try:
                ticker = await self._exchange.fetch_ticker(symbol)
            except Exception as exc:
                self._logger.warning("No ticker for held asset %s: %s", symbol, exc)
                continue
            if ticker.last <= 0:
                continue
            value = amount * ticker.last
            total += value
            assets.append(
                AssetPosition(
                    asset=asset,
                    symbol=symbol,
                    amount=amount,
                    usdt_value=value,
                    price=ticker.last,
                )
            )

        return PortfolioValuation(total_usdt=total, quote_balance=quote_balance, assets=assets)
